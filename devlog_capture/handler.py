"""Per-connection handler — one request, one response, then close."""

import enum
import logging
import socket
import threading
from typing import Callable

from devlog_capture import responses
from devlog_capture.store import LogStore

logger = logging.getLogger(__name__)

MAX_REQUEST_SIZE = 65536


class ConnectionState(enum.Enum):
    ACCEPTED = "accepted"
    READING = "reading"
    DISPATCHED = "dispatched"
    RESPONDING = "responding"
    CLOSED = "closed"


class ConnectionHandler:
    """State machine for a single accepted socket.

    ACCEPTED -> READING -> DISPATCHED -> RESPONDING -> CLOSED. A read error or
    a peer that closes before sending anything goes straight to CLOSED.
    There is no keep-alive: the socket is closed after one response.
    """

    def __init__(
        self,
        conn: socket.socket,
        addr: tuple,
        store: LogStore,
        recv_size: int = 65536,
        timeout: float = 5.0,
        on_close: Callable[["ConnectionHandler"], None] | None = None,
    ):
        self._conn = conn
        self._addr = addr
        self._store = store
        self._recv_size = recv_size
        self._timeout = timeout
        self._on_close = on_close
        self._state = ConnectionState.ACCEPTED
        self._lock = threading.Lock()

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def peer(self) -> str:
        return f"{self._addr[0]}:{self._addr[1]}"

    def run(self):
        """Serve one request. Runs in its own thread."""
        try:
            self._conn.settimeout(self._timeout)
            request = self._read_request()
            if request is None:
                return
            response = self._dispatch(request)
            self._respond(response)
        finally:
            self.close()

    def cancel(self):
        """Abort the connection immediately, dropping any in-flight write."""
        with self._lock:
            if self._state is ConnectionState.CLOSED:
                return
            try:
                self._conn.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass
        self.close()

    def close(self):
        with self._lock:
            if self._state is ConnectionState.CLOSED:
                return
            self._state = ConnectionState.CLOSED
            try:
                self._conn.close()
            except OSError:
                pass
        if self._on_close is not None:
            self._on_close(self)

    def _transition(self, state: ConnectionState) -> bool:
        with self._lock:
            if self._state is ConnectionState.CLOSED:
                return False
            self._state = state
            return True

    def _read_request(self) -> str | None:
        """Read until the request line is complete. None means close without replying."""
        if not self._transition(ConnectionState.READING):
            return None

        buf = b""
        while b"\n" not in buf and len(buf) < MAX_REQUEST_SIZE:
            try:
                data = self._conn.recv(self._recv_size)
            except socket.timeout:
                if buf:
                    break
                logger.warning("Timed out waiting for request from %s", self.peer)
                return None
            except OSError as e:
                if self._state is not ConnectionState.CLOSED:
                    logger.warning("Receive error from %s: %s", self.peer, e)
                return None
            if not data:
                break
            buf += data

        if not buf:
            return None
        return buf.decode("utf-8", errors="replace")

    def _dispatch(self, request: str) -> bytes:
        self._transition(ConnectionState.DISPATCHED)
        route = responses.classify_request(request)
        logger.debug("%s -> %s", self.peer, route)

        if route == responses.ROUTE_LOGS:
            return responses.logs_response(self._store.snapshot())
        if route == responses.ROUTE_CLEAR:
            self._store.clear()
            return responses.clear_response()
        if route == responses.ROUTE_OPTIONS:
            return responses.options_response()
        return responses.not_found_response()

    def _respond(self, response: bytes):
        if not self._transition(ConnectionState.RESPONDING):
            return
        try:
            self._conn.sendall(response)
            self._discard_unread()
        except OSError as e:
            if self._state is not ConnectionState.CLOSED:
                logger.warning("Send error to %s: %s", self.peer, e)

    def _discard_unread(self):
        # Unread request bytes at close() make the kernel send RST, which can
        # destroy the response before the client reads it.
        self._conn.setblocking(False)
        try:
            while self._conn.recv(self._recv_size):
                pass
        except (BlockingIOError, InterruptedError):
            pass
