"""Bounded, resumable listings of tasks and comments.

Each call reads exactly one page from BugHerd, filters and sorts it locally,
cuts it to the configured page size and describes how to reach the
neighbouring pages with cursors.
"""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from .client import BugHerdClient
from .columns import ColumnCache, ColumnMap
from .config import Settings
from .models import (
    STANDARD_STATUSES,
    Comment,
    CommentSortMode,
    ListCommentsParams,
    ListTasksParams,
    SortMode,
    Task,
    TaskScope,
    TasksResponse,
    UnknownColumnError,
)
from .pagination import decode_page_cursor, page_cursor
from .sorting import sort_items

logger = logging.getLogger(__name__)

R = TypeVar("R")


async def call_remote(func: Callable[..., R], *args: Any, **kwargs: Any) -> R:
    """Run a blocking BugHerd client call without blocking the event loop."""
    return await asyncio.to_thread(func, *args, **kwargs)


def resolve_page(page: int | None, cursor: str | int | None) -> int:
    """Page to fetch: the cursor wins over the literal page, default 1."""
    if cursor is not None and cursor != "":
        return decode_page_cursor(cursor).page
    return page or 1


@dataclass(frozen=True)
class Navigation:
    """Position of a listing and its neighbours."""

    page: int
    page_size: int
    next_page: int | None = None
    prev_page: int | None = None
    total_pages: int | None = None

    @classmethod
    def around(cls, page: int, page_size: int, *, has_next: bool, total_pages: int | None = None) -> "Navigation":
        """Navigation for ``page`` given whether a following page exists."""
        return cls(
            page=page,
            page_size=page_size,
            next_page=page + 1 if has_next else None,
            prev_page=page - 1 if page > 1 else None,
            total_pages=total_pages,
        )

    @property
    def cursor(self) -> str:
        return page_cursor(self.page)

    @property
    def next_cursor(self) -> str | None:
        return page_cursor(self.next_page) if self.next_page else None

    @property
    def prev_cursor(self) -> str | None:
        return page_cursor(self.prev_page) if self.prev_page else None

    def as_dict(self) -> dict[str, Any]:
        """Navigation fields; neighbour fields are left out when absent."""
        data: dict[str, Any] = {"page": self.page}
        if self.total_pages:
            data["total_pages"] = self.total_pages
        data["page_size"] = self.page_size
        data["cursor"] = self.cursor
        if self.next_page:
            data["next_page"] = self.next_page
        if self.prev_page:
            data["prev_page"] = self.prev_page
        if self.next_cursor:
            data["next_cursor"] = self.next_cursor
        if self.prev_cursor:
            data["prev_cursor"] = self.prev_cursor
        return data

    def lines(self) -> list[str]:
        """Navigation as ``key: value`` lines, page line excluded."""
        return [f"{key}: {value}" for key, value in self.as_dict().items() if key not in ("page", "total_pages")]


@dataclass(frozen=True)
class TaskPage:
    """Result of a task listing."""

    scope: TaskScope
    sort: SortMode
    tasks: list[Task]
    total: int
    navigation: Navigation
    columns: ColumnMap


@dataclass(frozen=True)
class CommentPage:
    """Result of a comment listing."""

    task: Task
    sort: CommentSortMode
    comments: list[Comment]
    total: int
    navigation: Navigation


def filter_by_status(tasks: list[Task], status: str, columns: ColumnMap) -> list[Task]:
    """Keep tasks in the column (or with the status label) named ``status``.

    Raises:
        UnknownColumnError: If ``status`` is neither a column of the project,
            a standard BugHerd status, nor the status label of a fetched task.
    """
    column_id = columns.lookup(status)
    if column_id is not None:
        return [task for task in tasks if task.status_id == column_id]

    wanted = status.lower()
    matched = [task for task in tasks if task.status and task.status.lower() == wanted]
    if not matched and wanted not in STANDARD_STATUSES:
        raise UnknownColumnError(status)
    return matched


class ListingService:
    """Lists tasks and comments of the configured project in bounded pages."""

    def __init__(self, client: BugHerdClient, columns: ColumnCache, settings: Settings) -> None:
        """Initialize the service.

        Args:
            client: BugHerd API client
            columns: Column cache shared with the other tools
            settings: Server settings (project, page size, active columns)
        """
        self.client = client
        self.columns = columns
        self.settings = settings

    async def _fetch_tasks(self, params: ListTasksParams, page: int) -> TasksResponse:
        project_id = self.settings.project_id
        if params.scope is TaskScope.ARCHIVED:
            return await call_remote(self.client.list_archived_tasks, project_id, page)
        if params.scope is TaskScope.FEEDBACK:
            return await call_remote(self.client.list_feedback_tasks, project_id, page)
        if params.scope is TaskScope.ALL:
            return await call_remote(
                self.client.list_tasks,
                project_id,
                page=page,
                priority=params.priority.value if params.priority else None,
                tag=params.tag,
            )
        return await call_remote(self.client.list_taskboard_tasks, project_id, page)

    async def list_tasks(self, params: ListTasksParams) -> TaskPage:
        """Fetch, filter, sort and cut one page of tasks."""
        page = resolve_page(params.page, params.cursor)
        result = await self._fetch_tasks(params, page)
        columns = await self.columns.resolve(self.settings.project_id)

        tasks = result.tasks
        if params.status:
            tasks = filter_by_status(tasks, params.status, columns)
        if params.priority:
            tasks = [task for task in tasks if task.priority_name == params.priority.value]
        if params.tag:
            wanted = params.tag.lower()
            tasks = [task for task in tasks if any(tag.lower() == wanted for tag in task.tag_names)]
        active = self.settings.active_column_ids
        if active and params.scope in (TaskScope.TASKBOARD, TaskScope.ALL):
            tasks = [task for task in tasks if task.status_id is None or task.status_id in active]

        tasks = sort_items(tasks, params.sort)
        limited = tasks[: self.settings.page_size]

        meta = result.meta
        current_page = (meta.current_page if meta else None) or page
        total_pages = meta.total_pages if meta else None
        total = meta.count if meta and meta.count is not None else len(tasks)
        navigation = Navigation.around(
            current_page,
            self.settings.page_size,
            has_next=bool(total_pages and current_page < total_pages),
            total_pages=total_pages,
        )
        logger.debug(
            "Listed %d/%d tasks (scope=%s, page=%s)", len(limited), total, params.scope.value, current_page
        )
        return TaskPage(
            scope=params.scope,
            sort=params.sort,
            tasks=limited,
            total=total,
            navigation=navigation,
            columns=columns,
        )

    async def get_task(self, local_task_id: int) -> Task:
        """Fetch a task by its local id."""
        return await call_remote(self.client.get_task_by_local_id, self.settings.project_id, local_task_id)

    async def list_comments(self, params: ListCommentsParams) -> CommentPage:
        """Fetch a task's comments and cut out one page of them.

        BugHerd returns all comments of a task at once, so the page is sliced
        locally after sorting.
        """
        page = resolve_page(params.page, params.cursor)
        task = await self.get_task(params.local_task_id)
        result = await call_remote(self.client.list_comments, self.settings.project_id, task.id)

        comments = sort_items(result.comments, params.sort)
        size = self.settings.page_size
        start = (page - 1) * size
        end = start + size
        total = result.meta.count if result.meta and result.meta.count is not None else len(comments)
        return CommentPage(
            task=task,
            sort=params.sort,
            comments=comments[start:end],
            total=total,
            navigation=Navigation.around(page, size, has_next=end < len(comments)),
        )

    async def get_comment(self, local_task_id: int, comment_id: int) -> tuple[Task, Comment | None]:
        """Fetch a task and one of its comments (None if it has no such comment)."""
        task = await self.get_task(local_task_id)
        result = await call_remote(self.client.list_comments, self.settings.project_id, task.id)
        comment = next((c for c in result.comments if c.id == comment_id), None)
        return task, comment
