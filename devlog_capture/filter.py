"""Noise filtering — an ordered rule list evaluated by pure functions.

``rejection_reason`` walks ``RULES`` in order and returns the name of the
first rule that rejects the line. Structured ``EP_LOG`` lines short-circuit
the walk and are always kept. ``LogFilter`` holds the runtime-mutable
pattern and level sets and hands an immutable ``FilterRules`` snapshot to
the pure functions on every check.
"""

import re
import threading
from dataclasses import dataclass
from typing import Callable, Iterable

from devlog_capture.config import DEFAULT_FILTER_LEVELS, DEFAULT_FILTER_PATTERNS

ALLOWED_PUNCTUATION = frozenset("[](){}<>.,!?:;\"'-_=+/*@#$%^&|\\")
MIN_LINE_LENGTH = 3
REPETITIVE_MIN_LENGTH = 10
REPETITIVE_MAX_DISTINCT = 2


@dataclass(frozen=True)
class FilterRules:
    patterns: tuple[str, ...] = ()
    levels: tuple[str, ...] = ()
    structured_tag: str = "EP_LOG"


def structured_pattern(tag: str) -> re.Pattern:
    return re.compile(
        r"^" + re.escape(tag)
        + r" - \d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}\.\d{4} - \[[^\]]+\]"
    )


_structured_cache: dict[str, re.Pattern] = {}


def is_structured(line: str, tag: str = "EP_LOG") -> bool:
    """Return True if line matches ``TAG - YYYY-MM-DD HH:MM:SS.ssss - [LEVEL]``."""
    pattern = _structured_cache.get(tag)
    if pattern is None:
        pattern = _structured_cache.setdefault(tag, structured_pattern(tag))
    return pattern.match(line) is not None


def _is_special(ch: str) -> bool:
    return not (ch.isalnum() or ch.isspace() or ch in ALLOWED_PUNCTUATION)


# Each predicate returns True when the line should be rejected.

def _noise_pattern(line: str, lowered: str, rules: FilterRules) -> bool:
    return any(p.lower() in lowered for p in rules.patterns)


def _noisy_level(line: str, lowered: str, rules: FilterRules) -> bool:
    for level in rules.levels:
        level = level.lower()
        if f"[{level}]" in lowered or f"{level}:" in lowered:
            return True
    return False


def _mostly_special(line: str, lowered: str, rules: FilterRules) -> bool:
    special = sum(1 for ch in line if _is_special(ch))
    return special > len(line) // 2


def _too_short(line: str, lowered: str, rules: FilterRules) -> bool:
    return len(line) < MIN_LINE_LENGTH


def _all_digits(line: str, lowered: str, rules: FilterRules) -> bool:
    return all(ch.isnumeric() for ch in line)


def _repetitive(line: str, lowered: str, rules: FilterRules) -> bool:
    return (len(line) > REPETITIVE_MIN_LENGTH
            and len(set(line)) <= REPETITIVE_MAX_DISTINCT)


RULES: tuple[tuple[str, Callable[[str, str, FilterRules], bool]], ...] = (
    ("noise_pattern", _noise_pattern),
    ("noisy_level", _noisy_level),
    ("special_characters", _mostly_special),
    ("too_short", _too_short),
    ("all_digits", _all_digits),
    ("repetitive", _repetitive),
)


def rejection_reason(line: str, rules: FilterRules) -> str | None:
    """Return the name of the first rule rejecting line, or None if it is kept."""
    line = line.strip()
    if not line:
        return "empty"
    if is_structured(line, rules.structured_tag):
        return None

    lowered = line.lower()
    for name, rejects in RULES:
        if rejects(line, lowered, rules):
            return name
    return None


def should_accept(line: str, rules: FilterRules) -> bool:
    return rejection_reason(line, rules) is None


class FilterPatternSet:
    """Case-insensitive set of substrings, kept in first-insertion order.

    Writers are serialized; readers take the last published tuple without
    locking, so a check racing with an add may still see the old set.
    """

    def __init__(self, items: Iterable[str] = ()):
        self._lock = threading.Lock()
        self._items: tuple[str, ...] = ()
        for item in items:
            self.add(item)

    def add(self, item: str) -> bool:
        """Add item. Returns False if an equal (case-insensitive) item exists."""
        if not item:
            return False
        with self._lock:
            key = item.lower()
            if any(existing.lower() == key for existing in self._items):
                return False
            self._items = self._items + (item,)
            return True

    def remove(self, item: str) -> bool:
        """Remove item (case-insensitive). Returns False if it was not present."""
        with self._lock:
            key = item.lower()
            kept = tuple(i for i in self._items if i.lower() != key)
            if len(kept) == len(self._items):
                return False
            self._items = kept
            return True

    def items(self) -> tuple[str, ...]:
        return self._items

    def __contains__(self, item: str) -> bool:
        key = item.lower()
        return any(i.lower() == key for i in self._items)

    def __len__(self) -> int:
        return len(self._items)


class LogFilter:
    """Runtime-configurable front end over the pure rule functions."""

    def __init__(
        self,
        patterns: Iterable[str] = DEFAULT_FILTER_PATTERNS,
        levels: Iterable[str] = DEFAULT_FILTER_LEVELS,
        structured_tag: str = "EP_LOG",
    ):
        self._patterns = FilterPatternSet(patterns)
        self._levels = FilterPatternSet(levels)
        self._structured_tag = structured_tag

    def rules(self) -> FilterRules:
        return FilterRules(
            patterns=self._patterns.items(),
            levels=self._levels.items(),
            structured_tag=self._structured_tag,
        )

    def accepts(self, line: str) -> bool:
        return should_accept(line, self.rules())

    def add_pattern(self, pattern: str) -> bool:
        return self._patterns.add(pattern)

    def remove_pattern(self, pattern: str) -> bool:
        return self._patterns.remove(pattern)

    def list_patterns(self) -> list[str]:
        return list(self._patterns.items())

    def add_level(self, level: str) -> bool:
        return self._levels.add(level)

    def remove_level(self, level: str) -> bool:
        return self._levels.remove(level)

    def list_levels(self) -> list[str]:
        return list(self._levels.items())
