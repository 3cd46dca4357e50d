"""Optional self-test output: a startup banner and a periodic heartbeat line.

Runs outside the capture core. It only writes to stdout like any other
producer would, which makes it easy to confirm capture works end to end.
"""

import logging
import platform
import socket
import threading
from datetime import datetime
from typing import Callable

from devlog_capture import BUILD_INFO

logger = logging.getLogger(__name__)


def _print_line(line: str):
    print(line, flush=True)


def banner_lines() -> list[str]:
    return [
        "Console capture started successfully!",
        f"Host: {socket.gethostname()}",
        f"Platform: {platform.platform()}",
        BUILD_INFO,
    ]


def heartbeat_line(now: datetime | None = None) -> str:
    now = now or datetime.now()
    return f"{now.strftime('%Y-%m-%d %H:%M:%S.%f')[:-2]} - Periodic test log"


class DiagnosticProducer:
    """Writes the banner once, then a heartbeat every ``interval`` seconds (0 disables)."""

    def __init__(
        self,
        interval: float = 0.0,
        write: Callable[[str], None] = _print_line,
        shutdown_event: threading.Event | None = None,
    ):
        self._interval = interval
        self._write = write
        self._shutdown = shutdown_event or threading.Event()
        self._thread: threading.Thread | None = None

    def start(self):
        self._thread = threading.Thread(target=self._run, name="devlog-diagnostics", daemon=True)
        self._thread.start()

    def stop(self):
        self._shutdown.set()
        if self._thread:
            self._thread.join(timeout=5)

    def _run(self):
        for line in banner_lines():
            self._write(line)
        if self._interval <= 0:
            return
        logger.info("Heartbeat every %.1fs", self._interval)
        while not self._shutdown.wait(timeout=self._interval):
            self._write(heartbeat_line())
