"""Per-project cache of task board columns."""

import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field

from .models import Column, Task, UnknownColumnError

logger = logging.getLogger(__name__)

ColumnFetcher = Callable[[int], Awaitable[list[Column]]]


@dataclass(frozen=True)
class ColumnMap:
    """Bidirectional mapping between column ids and names of one project.

    Name lookups are case-insensitive.
    """

    id_to_name: dict[int, str] = field(default_factory=dict)
    name_to_id: dict[str, int] = field(default_factory=dict)

    @classmethod
    def from_columns(cls, columns: Iterable[Column]) -> "ColumnMap":
        """Build the map from a project's column list."""
        id_to_name: dict[int, str] = {}
        name_to_id: dict[str, int] = {}
        for column in columns:
            id_to_name[column.id] = column.name
            name_to_id[column.name.lower()] = column.id
        return cls(id_to_name=id_to_name, name_to_id=name_to_id)

    def name_for(self, column_id: int) -> str | None:
        """Return the column name for an id, or None if unknown."""
        return self.id_to_name.get(column_id)

    def lookup(self, value: int | str) -> int | None:
        """Normalize a column id or column name to a known column id.

        Accepts an int id, a digit string id, or a name. Returns None when
        the value matches no column.
        """
        if isinstance(value, int) and not isinstance(value, bool):
            return value if value in self.id_to_name else None
        text = str(value).strip()
        if text.isascii() and text.isdigit() and int(text) in self.id_to_name:
            return int(text)
        return self.name_to_id.get(text.lower())

    def require(self, value: int | str) -> int:
        """Like ``lookup`` but raises for unknown columns.

        Raises:
            UnknownColumnError: If the value matches no column.
        """
        column_id = self.lookup(value)
        if column_id is None:
            raise UnknownColumnError(value)
        return column_id

    def status_of(self, task: Task) -> str:
        """Status label of a task.

        BugHerd's computed label wins; otherwise the column name. Tasks with
        no column are still in the feedback inbox.
        """
        if task.status:
            return task.status
        if task.status_id is not None:
            return self.id_to_name.get(task.status_id, "unknown")
        return "feedback"


class ColumnCache:
    """Column maps keyed by project id, filled on first use.

    Entries live for the lifetime of the cache object. A column renamed or
    removed in BugHerd after its project was loaded is not seen until the
    process restarts.
    """

    def __init__(self, fetch_columns: ColumnFetcher) -> None:
        """Initialize the cache.

        Args:
            fetch_columns: Coroutine function returning the columns of a project
        """
        self._fetch_columns = fetch_columns
        self._maps: dict[int, ColumnMap] = {}

    def __contains__(self, project_id: object) -> bool:
        return project_id in self._maps

    async def resolve(self, project_id: int) -> ColumnMap:
        """Return the column map of a project, fetching it on first use.

        A failed fetch is not cached; the next call fetches again.
        """
        cached = self._maps.get(project_id)
        if cached is not None:
            return cached

        columns = await self._fetch_columns(project_id)
        column_map = ColumnMap.from_columns(columns)
        self._maps[project_id] = column_map
        logger.info("Cached %d columns for project %s", len(column_map.id_to_name), project_id)
        return column_map
