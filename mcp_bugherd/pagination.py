"""Opaque cursors and fixed-size text windows.

Page cursors resume a list tool at a remote page; text cursors resume a chunk
reading tool at a character offset. Both are URL-safe base64 of a compact JSON
object. Their payload shapes differ and extra keys are rejected, so a cursor
issued by one kind of tool never decodes as the other kind.

Callers may also pass a bare non-negative integer (``37`` or ``"37"``) in place
of a cursor; it is taken as the page number or the offset directly.
"""

import base64
import binascii
import json
import re
from dataclasses import dataclass
from typing import TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .models import InvalidCursorError

_DIGITS = re.compile(r"\d+", re.ASCII)


class PageCursor(BaseModel):
    """Position of a list tool: a 1-based remote page."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    page: int = Field(gt=0)


class TextCursor(BaseModel):
    """Position of a chunk reading tool: a character offset."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    offset: int = Field(ge=0)


C = TypeVar("C", PageCursor, TextCursor)


def encode_cursor(cursor: PageCursor | TextCursor) -> str:
    """Encode a cursor as an opaque URL-safe token."""
    raw = json.dumps(cursor.model_dump(), separators=(",", ":")).encode("utf-8")
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def _literal_int(token: object) -> int | None:
    """Return the integer a literal cursor stands for, or None if it is not one."""
    if isinstance(token, bool):
        return None
    if isinstance(token, int):
        return token if token >= 0 else None
    if isinstance(token, str) and _DIGITS.fullmatch(token):
        return int(token)
    return None


def _decode(token: str | int, model: type[C], field: str, expected: str, example: int) -> C:
    literal = _literal_int(token)
    if literal is not None:
        data: object = {field: literal}
    elif isinstance(token, str) and token:
        padded = token + "=" * (-len(token) % 4)
        try:
            data = json.loads(base64.urlsafe_b64decode(padded.encode("ascii")).decode("utf-8"))
        except (json.JSONDecodeError, UnicodeError, ValueError, binascii.Error) as e:
            raise InvalidCursorError(token, expected, example) from e
    else:
        raise InvalidCursorError(token, expected, example)

    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise InvalidCursorError(token, expected, example) from e


def decode_page_cursor(token: str | int) -> PageCursor:
    """Decode a page cursor or a literal page number.

    Raises:
        InvalidCursorError: If the token is not a page cursor or a page >= 1.
    """
    return _decode(token, PageCursor, "page", "page number", 1)


def decode_text_cursor(token: str | int) -> TextCursor:
    """Decode a text cursor or a literal character offset.

    Raises:
        InvalidCursorError: If the token is not a text cursor or an offset >= 0.
    """
    return _decode(token, TextCursor, "offset", "character offset", 0)


def page_cursor(page: int) -> str:
    """Shorthand for encoding a page cursor."""
    return encode_cursor(PageCursor(page=page))


@dataclass(frozen=True)
class TextWindow:
    """A bounded slice of a longer text.

    ``next_offset`` is None when the window reaches the end of the text.
    """

    chunk: str
    start_offset: int
    next_offset: int | None

    @property
    def next_cursor(self) -> str | None:
        """Cursor resuming at ``next_offset``, or None at end of text."""
        if self.next_offset is None:
            return None
        return encode_cursor(TextCursor(offset=self.next_offset))


def chunk_text(text: str, offset: int, max_chars: int) -> TextWindow:
    """Return the window of ``text`` starting at ``offset``.

    The offset is clamped into ``[0, len(text)]`` so a stale cursor yields an
    empty or short final window instead of an error.

    Raises:
        ValueError: If max_chars is not positive.
    """
    if max_chars <= 0:
        raise ValueError(f"max_chars must be > 0, got {max_chars}")
    start = min(max(offset, 0), len(text))
    end = min(start + max_chars, len(text))
    return TextWindow(
        chunk=text[start:end],
        start_offset=start,
        next_offset=end if end < len(text) else None,
    )


def truncate(text: str, max_chars: int) -> str:
    """Cut ``text`` to ``max_chars`` characters, marking the cut with an ellipsis."""
    if len(text) <= max_chars:
        return text
    return text[:max_chars] + "…"
