#!/usr/bin/env python3
"""devlog-capture — Entry Point.

Starts capturing this process's stdout, optionally runs a child command
whose stdout is inherited (and therefore captured), and keeps serving
``/logs`` until interrupted.
"""

import logging
import signal
import subprocess
import sys
import threading

from devlog_capture import BUILD_INFO
from devlog_capture.capture import CaptureController
from devlog_capture.config import load_config
from devlog_capture.diagnostics import DiagnosticProducer

logger = logging.getLogger(__name__)


def run_child(command: list[str]) -> int | None:
    """Run command with the (redirected) stdout inherited. Returns its exit code."""
    logger.info("Running child command: %s", " ".join(command))
    try:
        result = subprocess.run(command, check=False)
    except OSError as e:
        logger.error("Could not run %s: %s", command[0], e)
        return None
    logger.info("Child exited with code %d", result.returncode)
    return result.returncode


def main(argv: list[str] | None = None) -> int:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [DEVLOG] %(levelname)s %(name)s — %(message)s",
        stream=sys.stderr,
    )

    config, command = load_config(argv)
    shutdown_event = threading.Event()

    def signal_handler(signum, frame):
        logger.info("Received signal %d, shutting down...", signum)
        shutdown_event.set()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    logger.info("%s — port=%d, capacity=%d", BUILD_INFO, config.port, config.capacity)

    controller = CaptureController(config)
    diagnostics = DiagnosticProducer(config.heartbeat_interval, shutdown_event=shutdown_event)

    controller.start()
    if not controller.server.is_running:
        controller.stop()
        return 1
    if not controller.wait_until_capturing(timeout=config.startup_delay + 5.0):
        logger.warning("Output redirection did not start; serving without capture")
    diagnostics.start()

    try:
        if command:
            run_child(command)
        logger.info("Serving logs. Press Ctrl+C to stop.")
        while not shutdown_event.wait(timeout=1.0):
            pass
    except KeyboardInterrupt:
        pass
    finally:
        diagnostics.stop()
        controller.stop()

    logger.info("Stats: %d lines accepted this session, %d held in memory",
                controller.server.store.total_ingested, len(controller.server.store))
    return 0


if __name__ == "__main__":
    sys.exit(main())
