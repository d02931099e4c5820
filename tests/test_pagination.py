"""Tests for cursors and text windows."""

import base64

import pytest

from mcp_bugherd.models import InvalidCursorError
from mcp_bugherd.pagination import (
    PageCursor,
    TextCursor,
    chunk_text,
    decode_page_cursor,
    decode_text_cursor,
    encode_cursor,
    page_cursor,
    truncate,
)


def _token(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


class TestCursors:
    """Test cursor encoding and decoding."""

    def test_page_cursor_round_trip(self) -> None:
        token = page_cursor(2)
        assert decode_page_cursor(token) == PageCursor(page=2)

    def test_text_cursor_round_trip(self) -> None:
        token = encode_cursor(TextCursor(offset=37))
        assert decode_text_cursor(token).offset == 37

    def test_tokens_are_url_safe_without_padding(self) -> None:
        token = encode_cursor(TextCursor(offset=123456))
        assert "=" not in token
        assert "+" not in token and "/" not in token

    @pytest.mark.parametrize("literal,expected", [(3, 3), ("3", 3), ("12", 12)])
    def test_literal_page_numbers(self, literal, expected) -> None:
        assert decode_page_cursor(literal).page == expected

    @pytest.mark.parametrize("literal,expected", [(0, 0), ("0", 0), ("37", 37)])
    def test_literal_offsets(self, literal, expected) -> None:
        assert decode_text_cursor(literal).offset == expected

    @pytest.mark.parametrize("token", ["not-a-cursor", "%%%", "-1", 0, "0", -2, _token(b"[1,2]"), _token(b"\xff\xfe")])
    def test_invalid_page_cursors(self, token) -> None:
        with pytest.raises(InvalidCursorError, match="next_cursor"):
            decode_page_cursor(token)

    def test_same_literal_in_both_contexts(self) -> None:
        assert decode_page_cursor("37") == PageCursor(page=37)
        assert decode_text_cursor("37") == TextCursor(offset=37)

    def test_garbage_fails_in_both_contexts(self) -> None:
        with pytest.raises(InvalidCursorError):
            decode_page_cursor("not-a-token")
        with pytest.raises(InvalidCursorError):
            decode_text_cursor("not-a-token")

    def test_page_cursor_rejected_by_text_decoder(self) -> None:
        with pytest.raises(InvalidCursorError):
            decode_text_cursor(page_cursor(2))

    def test_text_cursor_rejected_by_page_decoder(self) -> None:
        with pytest.raises(InvalidCursorError):
            decode_page_cursor(encode_cursor(TextCursor(offset=5)))

    def test_extra_keys_rejected(self) -> None:
        with pytest.raises(InvalidCursorError):
            decode_page_cursor(_token(b'{"page":2,"offset":3}'))

    def test_bool_is_not_a_literal(self) -> None:
        with pytest.raises(InvalidCursorError):
            decode_text_cursor(True)  # type: ignore[arg-type]

    def test_error_message_gives_guidance(self) -> None:
        with pytest.raises(InvalidCursorError) as exc_info:
            decode_text_cursor("garbage!")
        assert "character offset" in str(exc_info.value)
        assert exc_info.value.cursor == "garbage!"
        assert isinstance(exc_info.value, ValueError)


class TestChunkText:
    """Test fixed-size text windows."""

    def test_reading_chunks_reassembles_text(self) -> None:
        text = "abcdefghij" * 7
        pieces = []
        offset = 0
        while True:
            window = chunk_text(text, offset, 15)
            pieces.append(window.chunk)
            assert len(window.chunk) <= 15
            if window.next_cursor is None:
                break
            offset = decode_text_cursor(window.next_cursor).offset
        assert "".join(pieces) == text

    @pytest.mark.parametrize(
        "offset,chunk,next_offset",
        [(0, "hello", 5), (5, " worl", 10), (10, "d", None)],
    )
    def test_hello_world_windows(self, offset, chunk, next_offset) -> None:
        window = chunk_text("hello world", offset, 5)
        assert window.chunk == chunk
        assert window.next_offset == next_offset

    @pytest.mark.parametrize("size", [1, 2, 3, 7, 64])
    def test_any_window_size_reassembles(self, size) -> None:
        text = "Überschrift: ñ ✓ done\nline two"
        pieces = []
        cursor: str | None = None
        while True:
            offset = decode_text_cursor(cursor).offset if cursor else 0
            window = chunk_text(text, offset, size)
            pieces.append(window.chunk)
            cursor = window.next_cursor
            if cursor is None:
                break
        assert "".join(pieces) == text

    def test_last_window_has_no_next(self) -> None:
        window = chunk_text("hello", 0, 10)
        assert window.chunk == "hello"
        assert window.next_offset is None
        assert window.next_cursor is None

    def test_exact_fit_has_no_next(self) -> None:
        window = chunk_text("hello", 0, 5)
        assert window.next_offset is None

    def test_next_offset_is_end_of_chunk(self) -> None:
        window = chunk_text("hello world", 2, 4)
        assert window.chunk == "llo "
        assert window.start_offset == 2
        assert window.next_offset == 6

    def test_offset_past_end_is_clamped(self) -> None:
        window = chunk_text("short", 100, 10)
        assert window.chunk == ""
        assert window.start_offset == 5
        assert window.next_offset is None

    def test_empty_text(self) -> None:
        window = chunk_text("", 0, 10)
        assert window.chunk == ""
        assert window.next_cursor is None

    def test_non_positive_window_rejected(self) -> None:
        with pytest.raises(ValueError, match="max_chars"):
            chunk_text("text", 0, 0)


def test_truncate_marks_cut() -> None:
    assert truncate("abcdef", 3) == "abc…"
    assert truncate("abc", 3) == "abc"
