"""Log entry model with factory function."""

import time
import uuid
from dataclasses import dataclass, asdict
from datetime import datetime


@dataclass(frozen=True)
class LogEntry:
    id: str
    timestamp: float
    time: str
    level: str
    message: str


def format_time(timestamp: float) -> str:
    """Local wall-clock time with millisecond precision, e.g. ``14:30:45.123``."""
    return datetime.fromtimestamp(timestamp).strftime("%H:%M:%S.%f")[:-3]


def create_log_entry(message: str, level: str = "INFO",
                     timestamp: float | None = None) -> LogEntry:
    if timestamp is None:
        timestamp = time.time()
    return LogEntry(
        id=str(uuid.uuid4()).upper(),
        timestamp=timestamp,
        time=format_time(timestamp),
        level=level,
        message=message,
    )


def entry_to_dict(entry: LogEntry) -> dict:
    return asdict(entry)
