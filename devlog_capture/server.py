"""TCP accept loop — spawns a ConnectionHandler thread per HTTP connection."""

import enum
import logging
import socket
import threading
from typing import Callable

from devlog_capture.config import Config
from devlog_capture.handler import ConnectionHandler
from devlog_capture.models import LogEntry
from devlog_capture.network import resolve_local_address
from devlog_capture.store import LogStore

logger = logging.getLogger(__name__)


class ServerState(enum.Enum):
    SETUP = "setup"
    READY = "ready"
    FAILED = "failed"
    CANCELLED = "cancelled"


StateObserver = Callable[["LogServer", ServerState], None]


class LogServer:
    """Minimal HTTP server that owns the LogStore and its listener.

    ``start`` binds and returns immediately; accepting happens on a daemon
    thread. Transport errors are logged and never raised to the caller.
    """

    def __init__(self, config: Config | None = None, store: LogStore | None = None):
        self._config = config or Config()
        self._store = store or LogStore(self._config.capacity)
        self._sock: socket.socket | None = None
        self._server_address: tuple | None = None
        self._shutdown_event = threading.Event()
        self._accept_thread: threading.Thread | None = None
        self._state = ServerState.SETUP
        self._observers: list[StateObserver] = [_log_state]
        self._connections: set[ConnectionHandler] = set()
        self._connections_lock = threading.Lock()
        self._lifecycle_lock = threading.Lock()

    @property
    def store(self) -> LogStore:
        return self._store

    @property
    def config(self) -> Config:
        return self._config

    @property
    def server_address(self) -> tuple | None:
        """Return (host, port) the server is bound to. Useful when port=0."""
        return self._server_address

    @property
    def state(self) -> ServerState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state is ServerState.READY

    @property
    def connection_count(self) -> int:
        with self._connections_lock:
            return len(self._connections)

    def add_state_observer(self, observer: StateObserver):
        self._observers.append(observer)

    def start(self, port: int | None = None) -> bool:
        """Bind and listen, then accept on a background thread.

        Returns False if the listener could not be bound.
        """
        with self._lifecycle_lock:
            if self._state is ServerState.READY:
                return True
            port = self._config.port if port is None else port
            self._shutdown_event = threading.Event()

            sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
            try:
                sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
                sock.settimeout(1.0)
                sock.bind((self._config.host, port))
                sock.listen(16)
            except OSError as e:
                sock.close()
                logger.error("Failed to start server on %s:%d: %s",
                             self._config.host, port, e)
                self._set_state(ServerState.FAILED)
                return False

            self._sock = sock
            self._server_address = sock.getsockname()
            self._accept_thread = threading.Thread(
                target=self._accept_loop, args=(sock, self._shutdown_event),
                name="devlog-accept", daemon=True,
            )
            self._accept_thread.start()
            self._set_state(ServerState.READY)
            return True

    def stop(self):
        """Cancel every tracked connection and close the listener. Idempotent."""
        with self._lifecycle_lock:
            if self._state is not ServerState.READY:
                return
            self._shutdown_event.set()

            with self._connections_lock:
                connections = list(self._connections)
                self._connections.clear()
            for handler in connections:
                handler.cancel()

            if self._sock is not None:
                try:
                    self._sock.shutdown(socket.SHUT_RDWR)
                except OSError:
                    pass
                try:
                    self._sock.close()
                except OSError:
                    pass
                self._sock = None
            self._set_state(ServerState.CANCELLED)
        logger.info("Server stopped")

    # Ingestion API used by the capture pipeline

    def ingest(self, message: str, level: str = "INFO") -> LogEntry:
        return self._store.ingest(message, level)

    def snapshot(self) -> tuple[LogEntry, ...]:
        return self._store.snapshot()

    # Internal helpers

    def _accept_loop(self, sock: socket.socket, shutdown_event: threading.Event):
        while not shutdown_event.is_set():
            try:
                conn, addr = sock.accept()
            except socket.timeout:
                continue
            except OSError as e:
                if not shutdown_event.is_set():
                    logger.error("Accept failed: %s", e)
                break

            handler = ConnectionHandler(
                conn, addr, self._store,
                recv_size=self._config.recv_size,
                on_close=self._remove_connection,
            )
            with self._connections_lock:
                stopping = shutdown_event.is_set()
                if not stopping:
                    self._connections.add(handler)
            if stopping:
                handler.cancel()
                break

            t = threading.Thread(target=handler.run, daemon=True)
            t.start()

    def _remove_connection(self, handler: ConnectionHandler):
        with self._connections_lock:
            self._connections.discard(handler)

    def _set_state(self, state: ServerState):
        self._state = state
        for observer in list(self._observers):
            try:
                observer(self, state)
            except Exception:
                logger.exception("Server state observer failed for %s", state.value)


def _log_state(server: LogServer, state: ServerState):
    """Default observer: report readiness and where to reach the server."""
    if state is ServerState.READY:
        port = server.server_address[1]
        logger.info("HTTP server ready on port %d", port)
        address = resolve_local_address(server.config.network_interface)
        logger.info("Device IP: %s (logs at http://%s:%d/logs)", address, address, port)
    elif state is ServerState.FAILED:
        logger.error("Server failed")
    elif state is ServerState.CANCELLED:
        logger.info("Server cancelled")
