"""Line reassembly — turns arbitrary byte chunks into complete text lines."""

import logging
import re
from typing import Callable

logger = logging.getLogger(__name__)

PARTIAL_MARKER = " [PARTIAL]"
FINAL_MARKER = " [FINAL]"
DEFAULT_MAX_BUFFER_SIZE = 16384

# Line breaks other than \n, as UTF-8 bytes: CR, VT, FF, NEL, LS, PS
SOFT_BREAKS = re.compile(rb"\r\n|[\r\x0b\x0c]|\xc2\x85|\xe2\x80[\xa8\xa9]")


def _char_boundary(data: bytes | bytearray, index: int) -> int:
    """Move index back until it no longer points into a UTF-8 continuation byte."""
    while index > 0 and (data[index] & 0xC0) == 0x80:
        index -= 1
    return index


class LineReassembler:
    """Buffers raw output and emits one trimmed line per ``\\n`` terminator.

    Not thread-safe: a capture session feeds it from a single worker thread.
    When the buffer grows past ``max_buffer_size`` without a terminator it is
    force-split so memory stays bounded:

    - if other line breaks (carriage return, vertical tab, form feed, NEL,
      U+2028, U+2029) break it into several pieces, every piece but the
      last is emitted and the last is kept;
    - otherwise the first half is emitted with a ``[PARTIAL]`` suffix and the
      second half is kept.

    ``flush`` hands the trailing text to ``on_final`` when one is given, so
    the caller can decide on the bare text before marking it; otherwise it
    emits the text with a ``[FINAL]`` suffix through ``on_line``.
    """

    def __init__(
        self,
        on_line: Callable[[str], None],
        max_buffer_size: int = DEFAULT_MAX_BUFFER_SIZE,
        on_final: Callable[[str], None] | None = None,
    ):
        self._on_line = on_line
        self._on_final = on_final
        self._max_buffer_size = max_buffer_size
        self._buffer = bytearray()

    @property
    def pending(self) -> int:
        """Number of buffered bytes still waiting for a terminator."""
        return len(self._buffer)

    def feed(self, chunk: bytes):
        """Append a chunk and emit every line it completes."""
        if not chunk:
            return
        self._buffer.extend(chunk)

        while True:
            idx = self._buffer.find(b"\n")
            if idx == -1:
                break
            line = bytes(self._buffer[:idx])
            del self._buffer[:idx + 1]
            self._emit(line)

        if len(self._buffer) > self._max_buffer_size:
            self._force_split()

    def flush(self):
        """Emit whatever is left as a final line, then clear the buffer."""
        if not self._buffer:
            return
        data = bytes(self._buffer)
        self._buffer.clear()

        text = self._decode(data)
        if text is None:
            return
        text = text.strip()
        if not text:
            return
        if self._on_final is not None:
            self._on_final(text)
        else:
            self._on_line(text + FINAL_MARKER)

    def reset(self):
        """Drop buffered data without emitting it."""
        self._buffer.clear()

    def _force_split(self):
        pieces = SOFT_BREAKS.split(bytes(self._buffer))
        if len(pieces) > 1:
            logger.debug("Buffer over %d bytes, flushing %d soft-break lines",
                         self._max_buffer_size, len(pieces) - 1)
            for piece in pieces[:-1]:
                self._emit(piece)
            self._buffer = bytearray(pieces[-1])
            return

        half = _char_boundary(self._buffer, len(self._buffer) // 2)
        if half == 0:
            half = len(self._buffer) // 2
        first = bytes(self._buffer[:half])
        self._buffer = self._buffer[half:]
        logger.debug("Buffer over %d bytes with no line break, splitting at %d",
                     self._max_buffer_size, half)

        text = self._decode(first)
        if text is not None:
            self._on_line(text.strip() + PARTIAL_MARKER)

    def _emit(self, line: bytes):
        text = self._decode(line)
        if text is not None:
            self._on_line(text.strip())

    @staticmethod
    def _decode(data: bytes) -> str | None:
        try:
            return data.decode("utf-8")
        except UnicodeDecodeError:
            logger.debug("Dropping %d bytes of non UTF-8 output", len(data))
            return None
