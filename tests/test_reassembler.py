"""Tests for the line reassembler."""

import random

import pytest

from devlog_capture.reassembler import FINAL_MARKER, PARTIAL_MARKER, LineReassembler


def _make_reassembler(max_buffer_size: int = 16384):
    """Return (reassembler, emitted_lines_list)."""
    emitted: list[str] = []
    return LineReassembler(emitted.append, max_buffer_size), emitted


class TestFeed:
    def test_single_line(self):
        r, emitted = _make_reassembler()
        r.feed(b"hello world\n")
        assert emitted == ["hello world"]
        assert r.pending == 0

    def test_multiple_lines_one_chunk(self):
        r, emitted = _make_reassembler()
        r.feed(b"one\ntwo\nthree\n")
        assert emitted == ["one", "two", "three"]

    def test_line_split_across_chunks(self):
        r, emitted = _make_reassembler()
        r.feed(b"hel")
        assert emitted == []
        r.feed(b"lo wor")
        r.feed(b"ld\nnext")
        assert emitted == ["hello world"]
        assert r.pending == len(b"next")

    def test_trailing_text_is_held(self):
        r, emitted = _make_reassembler()
        r.feed(b"no terminator yet")
        assert emitted == []
        assert r.pending == 17

    def test_lines_are_trimmed(self):
        r, emitted = _make_reassembler()
        r.feed(b"  padded  \r\n\ttabbed\n")
        assert emitted == ["padded", "tabbed"]

    def test_empty_lines_are_emitted(self):
        r, emitted = _make_reassembler()
        r.feed(b"a\n\nb\n")
        assert emitted == ["a", "", "b"]

    def test_empty_chunk_is_ignored(self):
        r, emitted = _make_reassembler()
        r.feed(b"")
        assert emitted == []
        assert r.pending == 0

    def test_invalid_utf8_line_dropped(self):
        r, emitted = _make_reassembler()
        r.feed(b"good line\n\xff\xfe garbage\nanother good line\n")
        assert emitted == ["good line", "another good line"]

    def test_multibyte_char_split_across_chunks(self):
        r, emitted = _make_reassembler()
        data = "café au lait\n".encode("utf-8")
        cut = data.index(b"\xc3") + 1
        r.feed(data[:cut])
        r.feed(data[cut:])
        assert emitted == ["café au lait"]


class TestChunkBoundaries:
    LINES = [
        "Server started on port 8080",
        "user=alice action=login",
        "",
        "δέλτα unicode line",
        "x" * 200,
        "last line",
    ]

    @pytest.mark.parametrize("seed", range(20))
    def test_any_chunking_reproduces_lines(self, seed):
        data = ("\n".join(self.LINES) + "\n").encode("utf-8")
        rng = random.Random(seed)
        cuts = sorted(rng.sample(range(1, len(data)), rng.randint(1, 40)))

        r, emitted = _make_reassembler()
        prev = 0
        for cut in cuts + [len(data)]:
            r.feed(data[prev:cut])
            prev = cut

        assert emitted == self.LINES
        assert ("\n".join(emitted) + "\n").encode("utf-8") == data

    def test_byte_by_byte(self):
        data = ("\n".join(self.LINES) + "\n").encode("utf-8")
        r, emitted = _make_reassembler()
        for i in range(len(data)):
            r.feed(data[i:i + 1])
        assert emitted == self.LINES


class TestForceSplit:
    def test_midpoint_split_without_line_breaks(self):
        r, emitted = _make_reassembler(max_buffer_size=16)
        r.feed(b"a" * 20)
        assert emitted == ["a" * 10 + PARTIAL_MARKER]
        assert r.pending == 10

    def test_under_threshold_is_not_split(self):
        r, emitted = _make_reassembler(max_buffer_size=16)
        r.feed(b"a" * 16)
        assert emitted == []
        assert r.pending == 16

    def test_midpoint_moves_to_char_boundary(self):
        r, emitted = _make_reassembler(max_buffer_size=16)
        data = b"a" + "é".encode("utf-8") * 10
        r.feed(data)
        assert emitted == ["aéééé" + PARTIAL_MARKER]
        assert r.pending == len(data) - 9

    def test_carriage_returns_split_into_lines(self):
        r, emitted = _make_reassembler(max_buffer_size=16)
        r.feed(b"first\rsecond\rthird-part-long")
        assert emitted == ["first", "second"]
        assert r.pending == len(b"third-part-long")

    @pytest.mark.parametrize("sep", [
        b"\x0b", b"\x0c", b"\r\n", "\u0085".encode("utf-8"),
        "\u2028".encode("utf-8"), "\u2029".encode("utf-8"),
    ])
    def test_other_line_breaks_split_into_lines(self, sep):
        r, emitted = _make_reassembler(max_buffer_size=16)
        r.feed(b"first" + sep + b"second" + sep + b"third-part-long")
        assert emitted == ["first", "second"]
        assert r.pending == len(b"third-part-long")

    def test_remainder_completes_on_next_newline(self):
        r, emitted = _make_reassembler(max_buffer_size=16)
        r.feed(b"a" * 20)
        r.feed(b"b\n")
        assert emitted == ["a" * 10 + PARTIAL_MARKER, "a" * 10 + "b"]
        assert r.pending == 0

    def test_memory_stays_bounded(self):
        r, emitted = _make_reassembler(max_buffer_size=1024)
        for _ in range(100):
            r.feed(b"z" * 500)
            assert r.pending <= 1024
        assert all(line.endswith(PARTIAL_MARKER) for line in emitted)


class TestFlush:
    def test_flush_emits_final_marker(self):
        r, emitted = _make_reassembler()
        r.feed(b"complete\ndangling text")
        r.flush()
        assert emitted == ["complete", "dangling text" + FINAL_MARKER]
        assert r.pending == 0

    def test_flush_empty_buffer_emits_nothing(self):
        r, emitted = _make_reassembler()
        r.feed(b"complete\n")
        r.flush()
        assert emitted == ["complete"]

    def test_flush_whitespace_only_emits_nothing(self):
        r, emitted = _make_reassembler()
        r.feed(b"   \t ")
        r.flush()
        assert emitted == []
        assert r.pending == 0

    def test_flush_is_once(self):
        r, emitted = _make_reassembler()
        r.feed(b"tail")
        r.flush()
        r.flush()
        assert emitted == ["tail" + FINAL_MARKER]

    def test_flush_hands_bare_text_to_on_final(self):
        emitted: list[str] = []
        finals: list[str] = []
        r = LineReassembler(emitted.append, on_final=finals.append)
        r.feed(b"done\n  tail  ")
        r.flush()
        assert emitted == ["done"]
        assert finals == ["tail"]

    def test_reset_drops_buffer(self):
        r, emitted = _make_reassembler()
        r.feed(b"tail")
        r.reset()
        r.flush()
        assert emitted == []
