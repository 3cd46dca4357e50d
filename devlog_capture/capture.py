"""Capture controller — redirects stdout into the filter/store pipeline.

Threads involved while capturing:

- the startup timer, which begins redirection ``startup_delay`` seconds
  after the server starts so its own startup messages are not lost;
- a reader that pulls intercepted bytes off the pipe, copies them through to
  the original output and queues them;
- a worker that drains the queue in order through the LineReassembler and
  LogFilter into the server's LogStore.

Every redirection gets its own ``CaptureSession`` (redirect, reassembler,
queue and threads), so a session that fails to drain in time can be
abandoned without touching the next one.
"""

import enum
import logging
import os
import queue
import threading
from typing import Callable

from devlog_capture.config import Config
from devlog_capture.filter import LogFilter
from devlog_capture.reassembler import FINAL_MARKER, LineReassembler
from devlog_capture.redirect import OutputRedirect
from devlog_capture.server import LogServer

logger = logging.getLogger(__name__)

JOIN_TIMEOUT = 5.0


class CaptureState(enum.Enum):
    IDLE = "idle"
    CAPTURING = "capturing"


class CaptureSession:
    """One redirection: its pipe, reassembly buffer and the two threads draining it."""

    def __init__(
        self,
        redirect: OutputRedirect,
        read_fd: int,
        on_line: Callable[[str], None],
        on_final: Callable[[str], None],
        max_buffer_size: int,
        recv_size: int,
    ):
        self.redirect = redirect
        self._read_fd = read_fd
        self._recv_size = recv_size
        self._on_line = on_line
        self._on_final = on_final
        self._abandoned = threading.Event()
        self._reassembler = LineReassembler(
            self._emit_line, max_buffer_size, on_final=self._emit_final,
        )
        self._chunks: queue.Queue[bytes | None] = queue.Queue()
        self._reader = threading.Thread(
            target=self._read_loop, name="devlog-reader", daemon=True,
        )
        self._worker = threading.Thread(
            target=self._process_loop, name="devlog-worker", daemon=True,
        )

    def start(self):
        self._reader.start()
        self._worker.start()

    def finish(self, timeout: float = JOIN_TIMEOUT) -> bool:
        """Restore the descriptor, drain the pipe and flush the trailing line.

        Returns False if the threads did not finish within ``timeout``; the
        session is then abandoned and anything it still reads is discarded.
        """
        self.redirect.restore()
        self._reader.join(timeout=timeout)
        self._worker.join(timeout=timeout)
        if self._worker.is_alive():
            self._abandoned.set()
            return False
        self._reassembler.flush()
        return True

    def _read_loop(self):
        try:
            while True:
                try:
                    data = os.read(self._read_fd, self._recv_size)
                except OSError as e:
                    logger.warning("Reading captured output failed: %s", e)
                    break
                if not data:
                    break
                self.redirect.write_through(data)
                self._chunks.put(data)
        finally:
            self._chunks.put(None)
            self.redirect.release()

    def _process_loop(self):
        while True:
            chunk = self._chunks.get()
            if chunk is None:
                break
            try:
                self._reassembler.feed(chunk)
            except Exception:
                logger.exception("Failed to process %d bytes of captured output", len(chunk))

    def _emit_line(self, line: str):
        if not self._abandoned.is_set():
            self._on_line(line)

    def _emit_final(self, line: str):
        if not self._abandoned.is_set():
            self._on_final(line)


class CaptureController:
    """Owns the server and the capture sessions started on it.

    ``redirect_factory`` returns a fresh, unacquired ``OutputRedirect`` for
    each session; by default it targets this process's stdout.
    """

    def __init__(
        self,
        config: Config | None = None,
        server: LogServer | None = None,
        redirect_factory: Callable[[], OutputRedirect] | None = None,
        log_filter: LogFilter | None = None,
    ):
        self._config = config or Config()
        self._server = server or LogServer(self._config)
        self._redirect_factory = redirect_factory or OutputRedirect.for_stdout
        self._filter = log_filter or LogFilter(
            self._config.filter_patterns,
            self._config.filter_levels,
            self._config.structured_tag,
        )

        self._state = CaptureState.IDLE
        self._lock = threading.Lock()
        self._timer: threading.Timer | None = None
        self._session: CaptureSession | None = None
        self._redirected = threading.Event()

    @property
    def server(self) -> LogServer:
        return self._server

    @property
    def log_filter(self) -> LogFilter:
        return self._filter

    @property
    def state(self) -> CaptureState:
        return self._state

    @property
    def is_capturing(self) -> bool:
        return self._state is CaptureState.CAPTURING

    @property
    def session(self) -> CaptureSession | None:
        return self._session

    def start(self):
        """Start the server, then begin redirecting after the startup delay.

        No-op if already capturing. Never blocks on the delay.
        """
        with self._lock:
            if self._state is CaptureState.CAPTURING:
                return
            self._state = CaptureState.CAPTURING
            self._redirected.clear()

        self._server.start()

        delay = self._config.startup_delay
        if delay > 0:
            timer = threading.Timer(delay, self._begin_redirect)
            timer.daemon = True
            with self._lock:
                self._timer = timer
            timer.start()
        else:
            self._begin_redirect()

    def wait_until_capturing(self, timeout: float | None = None) -> bool:
        """Block until output is actually being intercepted."""
        return self._redirected.wait(timeout=timeout)

    def stop(self):
        """Drain pending output, restore the original descriptor and stop the server.

        Idempotent. Returns only after every intercepted byte has gone through
        the filter, including a trailing partial line (marked ``[FINAL]``).
        """
        with self._lock:
            if self._state is CaptureState.IDLE:
                return
            self._state = CaptureState.IDLE
            timer, self._timer = self._timer, None
            session, self._session = self._session, None

        if timer is not None:
            timer.cancel()

        if session is not None and not session.finish(JOIN_TIMEOUT):
            logger.warning("Capture session did not drain within %.1fs and was abandoned; "
                           "another process may still hold the pipe", JOIN_TIMEOUT)
        self._redirected.clear()

        self._server.stop()
        logger.info("Console capture stopped")

    def add_filter_pattern(self, pattern: str) -> bool:
        return self._filter.add_pattern(pattern)

    def remove_filter_pattern(self, pattern: str) -> bool:
        return self._filter.remove_pattern(pattern)

    def list_filter_patterns(self) -> list[str]:
        return self._filter.list_patterns()

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.stop()
        return False

    # Internal helpers

    def _begin_redirect(self):
        with self._lock:
            if self._state is not CaptureState.CAPTURING or self._session is not None:
                return
            redirect = self._redirect_factory()
            try:
                read_fd = redirect.acquire()
            except OSError as e:
                logger.error("Failed to redirect output: %s", e)
                return

            self._session = CaptureSession(
                redirect, read_fd,
                on_line=self._ingest_line,
                on_final=self._ingest_final,
                max_buffer_size=self._config.max_buffer_size,
                recv_size=self._config.recv_size,
            )
            self._session.start()
            self._redirected.set()
        logger.info("Console capture started on fd %d", redirect.fd)

    def _ingest_line(self, line: str):
        if self._filter.accepts(line):
            self._server.ingest(line)

    def _ingest_final(self, line: str):
        # The marker is added only after the bare text passes the filter
        if self._filter.accepts(line):
            self._server.ingest(line + FINAL_MARKER)
