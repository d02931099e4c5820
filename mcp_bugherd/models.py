"""Pydantic models and error types for BugHerd entities."""

from datetime import datetime
from enum import Enum
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field

# BugHerd priority ids (from BugHerd API v2)
PRIORITY_NAMES: dict[int, str] = {
    0: "not set",
    1: "critical",
    2: "important",
    3: "normal",
    4: "minor",
}

# Status labels BugHerd computes for tasks outside custom columns
STANDARD_STATUSES = frozenset({"feedback", "backlog", "todo", "doing", "done", "closed"})


class BugHerdError(Exception):
    """Base class for errors raised by the BugHerd MCP server."""


class InvalidCursorError(BugHerdError, ValueError):
    """Raised when a cursor is malformed or of the wrong kind.

    Attributes:
        cursor: The cursor value that was rejected
        message: Explanation with recovery guidance
    """

    def __init__(self, cursor: object, expected: str, example: int) -> None:
        """Initialize the exception with recovery guidance."""
        self.cursor = cursor
        self.message = (
            f"Invalid cursor {cursor!r}. Use the next_cursor returned by a previous response, "
            f"or pass a literal non-negative integer {expected} (e.g. {example})."
        )
        super().__init__(self.message)


class UnknownColumnError(BugHerdError, ValueError):
    """Raised when a status or column reference matches no column of the project.

    Attributes:
        column: The column id or name that was not found
        message: Explanation with guidance
    """

    def __init__(self, column: object) -> None:
        """Initialize the exception with helpful guidance."""
        self.column = column
        kind = "id" if isinstance(column, int) else "name"
        self.message = f"Unknown column {kind} {column!r}. Use bugherd_list_columns to see valid columns."
        super().__init__(self.message)


class BugHerdAPIError(BugHerdError):
    """Raised when a BugHerd API call fails.

    Attributes:
        status_code: HTTP status code, or None for network failures
        detail: Remote error detail
    """

    def __init__(self, message: str, status_code: int | None = None, detail: str | None = None) -> None:
        """Initialize the exception with the remote detail preserved."""
        self.status_code = status_code
        self.detail = detail
        super().__init__(message)


class ConfigurationError(BugHerdError, ValueError):
    """Raised when the environment configuration is invalid."""


class StrictBaseModel(BaseModel):
    """Base model with strict validation that forbids extra fields.

    Typos in tool parameters are reported instead of silently ignored.
    String fields are stripped of leading/trailing whitespace.
    """

    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)


class ResponseFormat(str, Enum):
    """Output format for tool responses.

    Attributes:
        MARKDOWN: Human-readable markdown format
        JSON: Machine-readable JSON format with full metadata
    """

    MARKDOWN = "markdown"
    JSON = "json"


def _normalize_lower(v: Any) -> Any:
    """Normalize enum input to lowercase."""
    if isinstance(v, str):
        return v.lower()
    return v


ResponseFormatInput = Annotated[ResponseFormat, BeforeValidator(_normalize_lower)]


class TaskScope(str, Enum):
    """Which BugHerd task endpoint a listing reads from."""

    TASKBOARD = "taskboard"
    ALL = "all"
    FEEDBACK = "feedback"
    ARCHIVED = "archived"


class TaskPriority(str, Enum):
    """Priority names accepted by BugHerd."""

    CRITICAL = "critical"
    IMPORTANT = "important"
    NORMAL = "normal"
    MINOR = "minor"


class SortMode(str, Enum):
    """Ordering applied to the items of a fetched page.

    ``API`` keeps the order the BugHerd API returned. Every other mode sorts by
    the named field and breaks ties by item id in the same direction.
    """

    API = "api"
    UPDATED_AT_DESC = "updated_at_desc"
    UPDATED_AT_ASC = "updated_at_asc"
    CREATED_AT_DESC = "created_at_desc"
    CREATED_AT_ASC = "created_at_asc"
    LOCAL_TASK_ID_DESC = "local_task_id_desc"
    LOCAL_TASK_ID_ASC = "local_task_id_asc"


class CommentSortMode(str, Enum):
    """Ordering applied to a task's comments."""

    API = "api"
    CREATED_AT_DESC = "created_at_desc"
    CREATED_AT_ASC = "created_at_asc"


class Meta(BaseModel):
    """Pagination metadata returned by BugHerd list endpoints."""

    count: int | None = None
    total_pages: int | None = None
    current_page: int | None = None


class UserBrief(BaseModel):
    """Brief user information."""

    id: int
    email: str | None = None
    display_name: str | None = None
    avatar_url: str | None = None


class SelectorInfo(BaseModel):
    """DOM selector information captured with a task."""

    path: str | None = None
    selector: str | None = None
    url: str | None = None
    html: str | None = None


class ClientInfo(BaseModel):
    """Legacy browser environment structure seen in some payloads."""

    operating_system: str | None = None
    browser: str | None = None
    resolution: str | None = None
    browser_window_size: str | None = None
    color_depth: str | int | None = None


class SiteRef(BaseModel):
    """Site reference when BugHerd returns it as an object."""

    url: str | None = None


class Column(BaseModel):
    """Project column (status) on the task board."""

    id: int
    name: str
    position: int | None = None


class Task(BaseModel):
    """BugHerd task."""

    id: int
    project_id: int | None = None
    local_task_id: int
    priority_id: int | None = None
    status_id: int | None = None
    title: str | None = None
    description: str = ""
    created_at: datetime
    updated_at: datetime
    closed_at: datetime | None = None
    external_id: str | None = None
    requester_email: str | None = None
    assigned_to_id: int | None = None
    tag_names: list[str] = Field(default_factory=list)
    admin_link: str | None = None
    secret_link: str | None = None

    # Computed labels; present on some endpoints only
    status: str | None = None
    priority: str | None = None

    # Environment metadata
    screenshot_url: str | None = None
    screenshot: str | None = None
    requester_os: str | None = None
    requester_browser: str | None = None
    requester_browser_size: str | None = None
    requester_resolution: str | None = None
    selector_info: SelectorInfo | None = None
    site: SiteRef | str | None = None
    url: str | None = None
    client_info: ClientInfo | None = None
    fullstory_session_url: str | None = None
    logrocket_session_url: str | None = None

    @property
    def priority_name(self) -> str:
        """Priority label, preferring the computed label over the id."""
        if self.priority:
            return self.priority
        if self.priority_id is None:
            return "not set"
        return PRIORITY_NAMES.get(self.priority_id, "not set")


class Comment(BaseModel):
    """Comment on a task."""

    id: int
    user_id: int | None = None
    text: str = ""
    created_at: datetime
    updated_at: datetime | None = None
    user: UserBrief | None = None

    @property
    def author(self) -> str:
        """Display name of the author, or a user id placeholder."""
        if self.user and self.user.display_name:
            return self.user.display_name
        return f"user:{self.user_id}"


class TasksResponse(BaseModel):
    """One page of tasks as returned by BugHerd."""

    tasks: list[Task] = Field(default_factory=list)
    meta: Meta | None = None


class CommentsResponse(BaseModel):
    """Comments of a task as returned by BugHerd."""

    comments: list[Comment] = Field(default_factory=list)
    meta: Meta | None = None


PageCursorInput = Annotated[
    str | int | None,
    Field(description="Opaque cursor from a previous response (or a numeric page)"),
]
TextCursorInput = Annotated[
    str | int | None,
    Field(description="Opaque cursor from a previous chunk (or a numeric character offset)"),
]


class ListColumnsParams(StrictBaseModel):
    """List columns request parameters."""

    response_format: ResponseFormatInput = Field(
        default=ResponseFormat.MARKDOWN, description="Output format: \"markdown\" (default) or \"json\""
    )


class ListTasksParams(StrictBaseModel):
    """List tasks request parameters."""

    sort: Annotated[SortMode, BeforeValidator(_normalize_lower)] = Field(
        description="Sort mode applied within the fetched page"
    )
    scope: Annotated[TaskScope, BeforeValidator(_normalize_lower)] = Field(
        default=TaskScope.TASKBOARD, description="Which BugHerd task endpoint to use"
    )
    page: int | None = Field(None, ge=1, description="1-based page (ignored when cursor is given)")
    cursor: PageCursorInput = None
    status: str | None = Field(None, min_length=1, max_length=100, description="Filter by column (status) name")
    tag: str | None = Field(None, min_length=1, max_length=100, description="Filter by tag name")
    priority: Annotated[TaskPriority | None, BeforeValidator(_normalize_lower)] = Field(
        None, description="Filter by priority"
    )
    response_format: ResponseFormatInput = Field(
        default=ResponseFormat.MARKDOWN, description="Output format: \"markdown\" (default) or \"json\""
    )


class GetTaskParams(StrictBaseModel):
    """Get task request parameters."""

    local_task_id: int = Field(gt=0, description="Local task id (#123)")


class TaskDescriptionMoreParams(StrictBaseModel):
    """Read the next chunk of a task description."""

    local_task_id: int = Field(gt=0, description="Local task id (#123)")
    cursor: TextCursorInput = None


class MoveTaskParams(StrictBaseModel):
    """Move task request parameters."""

    local_task_id: int = Field(gt=0, description="Local task id (#123)")
    to_column: int | str = Field(description="Target column id or column name")


class ListCommentsParams(StrictBaseModel):
    """List comments request parameters."""

    local_task_id: int = Field(gt=0, description="Local task id (#123)")
    sort: Annotated[CommentSortMode, BeforeValidator(_normalize_lower)] = Field(
        default=CommentSortMode.API, description="Sort mode applied to the comments"
    )
    page: int | None = Field(None, ge=1, description="1-based page (ignored when cursor is given)")
    cursor: PageCursorInput = None
    response_format: ResponseFormatInput = Field(
        default=ResponseFormat.MARKDOWN, description="Output format: \"markdown\" (default) or \"json\""
    )


class CommentTextMoreParams(StrictBaseModel):
    """Read the next chunk of a comment text."""

    local_task_id: int = Field(gt=0, description="Local task id (#123)")
    comment_id: int = Field(gt=0, description="Comment id")
    cursor: TextCursorInput = None


class AddCommentParams(StrictBaseModel):
    """Add comment request parameters."""

    local_task_id: int = Field(gt=0, description="Local task id (#123)")
    text: str = Field(min_length=1, max_length=100000, description="Comment text")
