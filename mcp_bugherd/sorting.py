"""Deterministic ordering of a fetched page of tasks or comments."""

from collections.abc import Iterable
from enum import Enum
from typing import Any, Protocol, TypeVar

from .models import SortMode


class Sortable(Protocol):
    """Fields the sorter reads from an item."""

    id: int


T = TypeVar("T", bound=Sortable)

# mode -> (field, descending)
_ORDERINGS: dict[SortMode, tuple[str, bool]] = {
    SortMode.UPDATED_AT_DESC: ("updated_at", True),
    SortMode.UPDATED_AT_ASC: ("updated_at", False),
    SortMode.CREATED_AT_DESC: ("created_at", True),
    SortMode.CREATED_AT_ASC: ("created_at", False),
    SortMode.LOCAL_TASK_ID_DESC: ("local_task_id", True),
    SortMode.LOCAL_TASK_ID_ASC: ("local_task_id", False),
}


def _as_sort_mode(mode: str | Enum) -> SortMode:
    value = mode.value if isinstance(mode, Enum) else mode
    return SortMode(value)


def sort_items(items: Iterable[T], mode: str | Enum) -> list[T]:
    """Return ``items`` in the order given by ``mode`` without touching the input.

    ``api`` keeps the incoming order. Other modes compare the named field and
    then the item id, both in the requested direction, so no two distinct
    items compare equal and the result depends only on the input contents.

    Only the items passed in are ordered; this is not a sort across remote
    pages.

    Raises:
        ValueError: If mode is not a known sort mode.
    """
    sort_mode = _as_sort_mode(mode)
    if sort_mode is SortMode.API:
        return list(items)

    field, descending = _ORDERINGS[sort_mode]

    def key(item: T) -> tuple[Any, int]:
        return (getattr(item, field), item.id)

    return sorted(items, key=key, reverse=descending)
