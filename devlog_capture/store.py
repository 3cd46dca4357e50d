"""Thread-safe bounded ring of recent log entries."""

import collections
import logging
import threading

from devlog_capture.models import LogEntry, create_log_entry

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 100


class LogStore:
    """In-memory log storage backed by a bounded deque.

    Every read and write goes through one lock, so an ingest never
    interleaves with a snapshot or a clear. Oldest entries are evicted
    first once ``capacity`` is reached.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        if capacity < 1:
            raise ValueError(f"capacity must be positive, got {capacity}")
        self._capacity = capacity
        self._logs: collections.deque[LogEntry] = collections.deque(maxlen=capacity)
        self._lock = threading.Lock()
        self._total_ingested = 0

    def ingest(self, message: str, level: str = "INFO") -> LogEntry:
        """Create an entry stamped now, append it and evict past capacity."""
        with self._lock:
            entry = create_log_entry(message, level)
            self._logs.append(entry)
            self._total_ingested += 1
        return entry

    def snapshot(self) -> tuple[LogEntry, ...]:
        """Point-in-time copy, oldest first."""
        with self._lock:
            return tuple(self._logs)

    def clear(self):
        with self._lock:
            self._logs.clear()
        logger.info("Logs cleared")

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def total_ingested(self) -> int:
        """Number of entries ingested since creation, including evicted and cleared ones."""
        with self._lock:
            return self._total_ingested

    def __len__(self) -> int:
        with self._lock:
            return len(self._logs)
