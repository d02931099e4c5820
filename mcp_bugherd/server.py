"""BugHerd MCP Server implementation."""

import json
import logging
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, NoReturn
from urllib.parse import urljoin

from dotenv import load_dotenv
from mcp.server.fastmcp import FastMCP
from mcp.server.fastmcp.exceptions import ToolError
from mcp.types import ToolAnnotations
from pydantic import ValidationError
from starlette.requests import Request
from starlette.responses import JSONResponse

from .client import BugHerdClient
from .columns import ColumnCache
from .config import Settings
from .listing import CommentPage, ListingService, TaskPage, call_remote
from .models import (
    AddCommentParams,
    BugHerdAPIError,
    BugHerdError,
    Column,
    Comment,
    CommentTextMoreParams,
    GetTaskParams,
    InvalidCursorError,
    ListColumnsParams,
    ListCommentsParams,
    ListTasksParams,
    MoveTaskParams,
    ResponseFormat,
    Task,
    TaskDescriptionMoreParams,
    UnknownColumnError,
)
from .pagination import chunk_text, decode_text_cursor, truncate

# Configure logging
logger = logging.getLogger(__name__)

# Constants
TASK_PREVIEW_LENGTH = 140  # Description preview per task in listings
COMMENT_PREVIEW_LENGTH = 300  # Upper bound for comment previews in listings
DESCRIPTION_PREVIEW_LENGTH = 600  # Upper bound for the description shown by get_task
BUGHERD_APP_URL = "https://www.bugherd.com"


def _read_only_annotations(title: str) -> ToolAnnotations:
    """Create read-only tool annotations with title."""
    return ToolAnnotations(
        readOnlyHint=True,
        destructiveHint=False,
        idempotentHint=True,
        openWorldHint=True,
        title=title,
    )


def _write_annotations(title: str) -> ToolAnnotations:
    """Create write tool annotations with title."""
    return ToolAnnotations(
        readOnlyHint=False,
        destructiveHint=False,
        idempotentHint=False,
        openWorldHint=True,
        title=title,
    )


def _idempotent_write_annotations(title: str) -> ToolAnnotations:
    """Create idempotent write tool annotations with title."""
    return ToolAnnotations(
        readOnlyHint=False,
        destructiveHint=False,
        idempotentHint=True,
        openWorldHint=True,
        title=title,
    )


def _handle_api_error(e: Exception, context: str = "operation") -> str:
    """Format errors with actionable guidance for LLM agents.

    Args:
        e: The exception that occurred
        context: Description of what was being attempted

    Returns:
        Formatted error message with guidance
    """
    if isinstance(e, InvalidCursorError | UnknownColumnError):
        return f"Error: {e}"

    if isinstance(e, BugHerdAPIError):
        if e.status_code == 404:
            return f"Error: Resource not found during {context}. Please verify the id is correct. ({e})"
        if e.status_code == 401:
            return f"Error: Authentication failed for {context}. Check BUGHERD_API_KEY is valid."
        if e.status_code == 429:
            return f"Error: Rate limit hit during {context}. Wait a moment and try again."
        if e.status_code is None:
            return f"Error: Network issue during {context}. Check that BugHerd is reachable. ({e})"
        return f"Error during {context}: {e}"

    # Generic error with type information
    return f"Error during {context}: {type(e).__name__} - {e}"


def _raise_tool_error(e: Exception, context: str) -> NoReturn:
    """Log a failed tool call and turn it into a tool-level error result."""
    logger.warning("Tool call failed during %s: %s", context, e)
    raise ToolError(_handle_api_error(e, context)) from e


def _one_line(text: str) -> str:
    return " ".join(text.split())


def _format_columns_markdown(columns: list[Column], active_ids: tuple[int, ...] | None) -> str:
    """Format project columns as markdown, ordered by board position."""
    active = set(active_ids or ())
    lines = ["## Columns", ""]
    for column in sorted(columns, key=lambda c: (c.position or 0, c.id)):
        pos = column.position if column.position is not None else "n/a"
        marker = " (active)" if column.id in active else ""
        lines.append(f"- {column.name} (id: {column.id}, pos: {pos}){marker}")
    if active_ids:
        lines.extend(["", f"Active columns hint: {', '.join(str(i) for i in active_ids)}"])
    return "\n".join(lines)


def _columns_payload(columns: list[Column], settings: Settings) -> dict[str, Any]:
    ordered = sorted(columns, key=lambda c: (c.position or 0, c.id))
    return {
        "project_id": settings.project_id,
        "active_column_ids": list(settings.active_column_ids) if settings.active_column_ids else None,
        "columns": [column.model_dump() for column in ordered],
    }


def _format_task_list_markdown(result: TaskPage) -> str:
    """Format a task listing as markdown with navigation lines."""
    nav = result.navigation
    header = [f"scope: {result.scope.value}", f"sort: {result.sort.value}", f"page: {nav.page}"]
    if nav.total_pages:
        header.append(f"total_pages: {nav.total_pages}")

    lines = [f"## Tasks ({len(result.tasks)}/{result.total})", " | ".join(header), *nav.lines(), ""]
    for task in result.tasks:
        preview = truncate(_one_line(task.description), TASK_PREVIEW_LENGTH)
        lines.append(f"- #{task.local_task_id}: {preview}")
        lines.append(
            f"  status: {result.columns.status_of(task)} | priority: {task.priority_name}"
            f" | updated: {task.updated_at.isoformat()}"
        )
    return "\n".join(lines)


def _format_task_list_json(result: TaskPage) -> str:
    """Format a task listing as JSON; absent neighbours are omitted, not null."""
    response: dict[str, Any] = {
        "items": [
            {
                "id": task.id,
                "local_task_id": task.local_task_id,
                "status": result.columns.status_of(task),
                "priority": task.priority_name,
                "tag_names": task.tag_names,
                "created_at": task.created_at.isoformat(),
                "updated_at": task.updated_at.isoformat(),
                "description": truncate(task.description, TASK_PREVIEW_LENGTH),
            }
            for task in result.tasks
        ],
        "count": len(result.tasks),
        "total": result.total,
        "scope": result.scope.value,
        "sort": result.sort.value,
        **result.navigation.as_dict(),
    }
    return json.dumps(response, indent=2, default=str)


def _page_url(task: Task) -> str:
    """Best available URL of the page a task was reported on."""
    if task.selector_info and task.selector_info.url:
        return task.selector_info.url
    site_url = task.site if isinstance(task.site, str) else (task.site.url if task.site else None)
    if site_url and task.url:
        return urljoin(site_url, task.url)
    return site_url or task.url or "Not available"


def _technical_lines(task: Task) -> list[str]:
    """Environment details captured by the BugHerd widget."""
    selector = task.selector_info
    client = task.client_info
    lines = [
        f"page_url: {_page_url(task)}",
        f"selector: {(selector and (selector.path or selector.selector)) or 'Not available'}",
        f"screenshot: {task.screenshot_url or task.screenshot or 'No screenshot'}",
        f"os: {task.requester_os or (client and client.operating_system) or 'Not available'}",
        f"browser: {task.requester_browser or (client and client.browser) or 'Not available'}",
        f"resolution: {task.requester_resolution or (client and client.resolution) or 'Not available'}",
        f"window_size: {task.requester_browser_size or (client and client.browser_window_size) or 'Not available'}",
        f"color_depth: {(client and client.color_depth) or 'Not available'}",
    ]
    if task.fullstory_session_url:
        lines.append(f"fullstory: {task.fullstory_session_url}")
    if task.logrocket_session_url:
        lines.append(f"logrocket: {task.logrocket_session_url}")
    return lines


def _format_task_detail_markdown(task: Task, status: str, preview_chars: int) -> str:
    """Format a single task with technical context and a description preview.

    Args:
        task: Task to format
        status: Resolved status label
        preview_chars: Maximum characters of description to include

    Returns:
        Markdown-formatted string
    """
    link = task.admin_link
    if not link and task.project_id:
        link = f"{BUGHERD_APP_URL}/projects/{task.project_id}/tasks/{task.local_task_id}"

    window = chunk_text(task.description, 0, preview_chars)
    lines = [
        f"## Task #{task.local_task_id}",
        "",
        f"id: {task.id}",
        f"status: {status}",
        f"priority: {task.priority_name}",
        f"created: {task.created_at.isoformat()}",
        f"updated: {task.updated_at.isoformat()}",
    ]
    if task.tag_names:
        lines.append(f"tags: {', '.join(task.tag_names)}")
    if link:
        lines.append(f"link: {link}")
    lines.extend(["", "### Technical", *_technical_lines(task), "", "### Description", window.chunk])
    if window.next_cursor:
        lines.extend(
            [
                "",
                f"description_next_offset: {window.next_offset}",
                f"description_next_cursor: {window.next_cursor}",
                "Use bugherd_task_description_more with cursor (or offset) to read more.",
            ]
        )
    return "\n".join(lines)


def _format_chunk(title: str, meta: list[str], text: str, offset: int, max_chars: int) -> str:
    """Format one window of a long text with its resume position."""
    window = chunk_text(text, offset, max_chars)
    lines = [title, *meta, f"offset: {window.start_offset}"]
    if window.next_offset is not None:
        lines.append(f"next_offset: {window.next_offset}")
        lines.append(f"next_cursor: {window.next_cursor}")
    lines.extend(["", window.chunk])
    return "\n".join(lines)


def _format_comment_list_markdown(result: CommentPage, preview_chars: int) -> str:
    """Format a comment listing as markdown with navigation lines."""
    nav = result.navigation
    lines = [
        f"## Comments on Task #{result.task.local_task_id} ({len(result.comments)}/{result.total})",
        f"page: {nav.page}",
        *nav.lines(),
        "",
    ]
    for comment in result.comments:
        lines.append(f"- id:{comment.id} | {comment.author} | {comment.created_at.isoformat()}")
        lines.append(f"  {truncate(comment.text, preview_chars)}")
        if len(comment.text) > preview_chars:
            lines.append("  (truncated; use bugherd_comment_text_more to read all)")
    return "\n".join(lines)


def _format_comment_list_json(result: CommentPage, preview_chars: int) -> str:
    """Format a comment listing as JSON; absent neighbours are omitted, not null."""
    response: dict[str, Any] = {
        "items": [
            {
                "id": comment.id,
                "author": comment.author,
                "created_at": comment.created_at.isoformat(),
                "text": truncate(comment.text, preview_chars),
                "truncated": len(comment.text) > preview_chars,
            }
            for comment in result.comments
        ],
        "count": len(result.comments),
        "total": result.total,
        "local_task_id": result.task.local_task_id,
        "sort": result.sort.value,
        **result.navigation.as_dict(),
    }
    return json.dumps(response, indent=2, default=str)


class BugHerdMCPServer:
    """BugHerd MCP Server with proper client lifecycle management."""

    def __init__(self, host: str = "127.0.0.1", port: int = 8000) -> None:
        """Initialize the server.

        Args:
            host: Host to bind for HTTP transport (default: 127.0.0.1)
            port: Port to bind for HTTP transport (default: 8000)
        """
        self.client: BugHerdClient | None = None
        self.settings: Settings | None = None
        self.columns: ColumnCache | None = None
        self.listing: ListingService | None = None
        self.mcp = FastMCP("bugherd_mcp", host=host, port=port, lifespan=self._create_lifespan())
        self._setup_tools()
        self._setup_resources()

    def _create_lifespan(self) -> Any:
        """Create the lifespan context manager for the server."""

        @asynccontextmanager
        async def lifespan(_app: FastMCP) -> AsyncIterator[None]:
            """Initialize resources on startup and cleanup on shutdown."""
            await self.initialize()
            try:
                yield
            finally:
                if self.client is not None:
                    self.client.session.close()
                    self.client = None
                    self.listing = None
                    logger.info("BugHerd client cleaned up")

        return lifespan

    def configure(self, settings: Settings, client: BugHerdClient) -> None:
        """Wire settings, client, column cache and listing service together.

        The column cache is created here and lives until the process exits.
        """
        self.settings = settings
        self.client = client
        self.columns = ColumnCache(lambda project_id: call_remote(client.list_columns, project_id))
        self.listing = ListingService(client, self.columns, settings)

    def get_client(self) -> BugHerdClient:
        """Get the BugHerd client, ensuring it's initialized."""
        if not self.client:
            raise RuntimeError("BugHerd client not initialized")
        return self.client

    def get_listing(self) -> ListingService:
        """Get the listing service, ensuring the client is initialized."""
        if not self.listing:
            raise RuntimeError("BugHerd client not initialized")
        return self.listing

    async def initialize(self) -> None:
        """Initialize the BugHerd client on server startup."""
        cwd_env = Path.cwd() / ".env"
        if cwd_env.exists():
            load_dotenv(cwd_env)
            logger.info("Loaded environment from %s", cwd_env)

        # Also support loading from parent directories (for when running from subdirs)
        load_dotenv()

        envrc_path = Path.cwd() / ".envrc"
        if envrc_path.exists() and not os.getenv("BUGHERD_API_KEY"):
            logger.warning(
                "Found .envrc but environment variables not loaded. Consider using direnv or creating a .env file"
            )

        try:
            settings = Settings.from_env()
            client = BugHerdClient.from_settings(settings)
            self.configure(settings, client)
            logger.info("BugHerd client initialized successfully")

            # Test connection
            project = await call_remote(client.get_project, settings.project_id)
            logger.info("Connected to project %s (%s)", settings.project_id, project.get("name", "unknown"))
        except Exception:
            logger.exception("Failed to initialize BugHerd client")
            raise

    def _setup_tools(self) -> None:
        """Register all tools with the MCP server."""
        self._setup_task_tools()
        self._setup_comment_tools()

    def _setup_task_tools(self) -> None:  # noqa: PLR0915
        """Register column and task tools."""

        @self.mcp.tool(annotations=_read_only_annotations("List Columns"))
        async def bugherd_list_columns(params: ListColumnsParams) -> str:
            """List the project's columns (statuses) with their ids.

            Use the ids or names with bugherd_move_task and the names with the
            status filter of bugherd_list_tasks.
            """
            listing = self.get_listing()
            try:
                columns = await call_remote(listing.client.list_columns, listing.settings.project_id)
            except (BugHerdError, ValidationError) as e:
                _raise_tool_error(e, "listing columns")

            if params.response_format == ResponseFormat.JSON:
                return json.dumps(_columns_payload(columns, listing.settings), indent=2, default=str)
            return _format_columns_markdown(columns, listing.settings.active_column_ids)

        @self.mcp.tool(annotations=_read_only_annotations("List Tasks"))
        async def bugherd_list_tasks(params: ListTasksParams) -> str:
            """List tasks of the configured project, one page at a time.

            Args:
                params (ListTasksParams): Validated parameters containing:
                    - sort (SortMode): Required. "api" keeps BugHerd's order; otherwise one of
                      updated_at_desc/asc, created_at_desc/asc, local_task_id_desc/asc
                    - scope (TaskScope): taskboard (default), all, feedback, archived
                    - page (int | None): 1-based page
                    - cursor (str | int | None): cursor from a previous response; wins over page
                    - status (str | None): Column name filter
                    - tag (str | None): Tag filter (case-insensitive)
                    - priority (TaskPriority | None): critical, important, normal, minor
                    - response_format (ResponseFormat): Output format (default: "markdown")

            Returns:
                str: Up to page_size tasks plus navigation:

                ```
                ## Tasks (2/57)
                scope: taskboard | sort: updated_at_desc | page: 1 | total_pages: 3
                page_size: 20
                cursor: eyJwYWdlIjoxfQ
                next_page: 2
                next_cursor: eyJwYWdlIjoyfQ

                - #12: Button overlaps footer on mobile
                  status: doing | priority: important | updated: 2024-01-15T10:30:00+00:00
                ```

            Note:
                Sorting applies within the fetched page only; changing sort never
                changes which remote page is read. next_page/prev_page and their
                cursors appear only when that page exists.

            Error Handling:
                - Invalid cursor: pass next_cursor from a previous response or a page number
                - Unknown status: use bugherd_list_columns to see valid column names
            """
            try:
                result = await self.get_listing().list_tasks(params)
            except (BugHerdError, ValidationError) as e:
                _raise_tool_error(e, "listing tasks")

            if params.response_format == ResponseFormat.JSON:
                return _format_task_list_json(result)
            return _format_task_list_markdown(result)

        @self.mcp.tool(annotations=_read_only_annotations("Get Task Details"))
        async def bugherd_get_task(params: GetTaskParams) -> str:
            """Get a task by its local id (#123) with technical context.

            The description is cut to a preview; when it is longer the response
            carries description_next_cursor for bugherd_task_description_more.
            """
            listing = self.get_listing()
            try:
                task = await listing.get_task(params.local_task_id)
                columns = await listing.columns.resolve(listing.settings.project_id)
            except (BugHerdError, ValidationError) as e:
                _raise_tool_error(e, f"retrieving task #{params.local_task_id}")

            preview_chars = min(listing.settings.description_max_chars, DESCRIPTION_PREVIEW_LENGTH)
            return _format_task_detail_markdown(task, columns.status_of(task), preview_chars)

        @self.mcp.tool(annotations=_read_only_annotations("Read Task Description"))
        async def bugherd_task_description_more(params: TaskDescriptionMoreParams) -> str:
            """Read a long task description in chunks.

            Pass the cursor (or a character offset) from the previous chunk;
            omit it to start at the beginning. next_cursor is present while more
            text remains.
            """
            listing = self.get_listing()
            try:
                offset = decode_text_cursor(params.cursor).offset if params.cursor not in (None, "") else 0
                task = await listing.get_task(params.local_task_id)
            except (BugHerdError, ValidationError) as e:
                _raise_tool_error(e, f"reading description of task #{params.local_task_id}")

            return _format_chunk(
                f"## Task #{task.local_task_id} Description (chunk)",
                [],
                task.description,
                offset,
                listing.settings.description_max_chars,
            )

        @self.mcp.tool(annotations=_idempotent_write_annotations("Move Task To Column"))
        async def bugherd_move_task(params: MoveTaskParams) -> str:
            """Move a task to another column, given the column id or name."""
            listing = self.get_listing()
            try:
                task = await listing.get_task(params.local_task_id)
                columns = await listing.columns.resolve(listing.settings.project_id)
                column_id = columns.require(params.to_column)
                to_name = columns.name_for(column_id) or str(column_id)
                from_name = columns.status_of(task)
                await call_remote(listing.client.update_task, listing.settings.project_id, task.id, status=to_name)
            except (BugHerdError, ValidationError) as e:
                _raise_tool_error(e, f"moving task #{params.local_task_id}")

            logger.info("Moved task #%s from %s to %s", task.local_task_id, from_name, to_name)
            return f"Task #{task.local_task_id} moved\n\nfrom: {from_name}\nto: {to_name}"

    def _setup_comment_tools(self) -> None:
        """Register comment tools."""

        @self.mcp.tool(annotations=_read_only_annotations("List Task Comments"))
        async def bugherd_list_comments(params: ListCommentsParams) -> str:
            """List comments of a task, one page at a time.

            Args:
                params (ListCommentsParams): Validated parameters containing:
                    - local_task_id (int): Local task id (#123)
                    - sort (CommentSortMode): api (default), created_at_desc, created_at_asc
                    - page (int | None): 1-based page
                    - cursor (str | int | None): cursor from a previous response; wins over page
                    - response_format (ResponseFormat): Output format (default: "markdown")

            Returns:
                str: Up to page_size comments with previews. Long comments can be read
                in full with bugherd_comment_text_more.
            """
            listing = self.get_listing()
            try:
                result = await listing.list_comments(params)
            except (BugHerdError, ValidationError) as e:
                _raise_tool_error(e, f"listing comments of task #{params.local_task_id}")

            preview_chars = min(listing.settings.comment_max_chars, COMMENT_PREVIEW_LENGTH)
            if params.response_format == ResponseFormat.JSON:
                return _format_comment_list_json(result, preview_chars)
            return _format_comment_list_markdown(result, preview_chars)

        @self.mcp.tool(annotations=_read_only_annotations("Read Comment Text"))
        async def bugherd_comment_text_more(params: CommentTextMoreParams) -> str:
            """Read a long comment in chunks; next_cursor is present while more text remains."""
            listing = self.get_listing()
            context = f"reading comment {params.comment_id} of task #{params.local_task_id}"
            try:
                offset = decode_text_cursor(params.cursor).offset if params.cursor not in (None, "") else 0
                task, comment = await listing.get_comment(params.local_task_id, params.comment_id)
            except (BugHerdError, ValidationError) as e:
                _raise_tool_error(e, context)

            if comment is None:
                raise ToolError(f"Error: Comment {params.comment_id} not found on task #{task.local_task_id}.")
            return _format_comment_chunk(task, comment, offset, listing.settings.comment_max_chars)

        @self.mcp.tool(annotations=_write_annotations("Add Task Comment"))
        async def bugherd_add_comment(params: AddCommentParams) -> str:
            """Add a comment to a task as the configured bot user."""
            listing = self.get_listing()
            settings = listing.settings
            try:
                task = await listing.get_task(params.local_task_id)
                created = await call_remote(
                    listing.client.create_comment,
                    settings.project_id,
                    task.id,
                    settings.apply_signature(params.text),
                    settings.bot_user_id,
                )
            except (BugHerdError, ValidationError) as e:
                _raise_tool_error(e, f"adding comment to task #{params.local_task_id}")

            return f"Comment added to Task #{task.local_task_id}\n\nid: {created.get('id', 'unknown')}"

    def _setup_resources(self) -> None:
        """Register all resources with the MCP server."""

        @self.mcp.resource("bugherd://columns", mime_type="application/json")
        async def get_columns_resource() -> str:
            """Columns (statuses) of the configured project."""
            listing = self.get_listing()
            try:
                columns = await call_remote(listing.client.list_columns, listing.settings.project_id)
            except (BugHerdError, ValidationError) as e:
                return _handle_api_error(e, context="retrieving columns")
            return json.dumps(_columns_payload(columns, listing.settings), indent=2, default=str)


def _format_comment_chunk(task: Task, comment: Comment, offset: int, max_chars: int) -> str:
    return _format_chunk(
        f"## Comment {comment.id} on Task #{task.local_task_id} (chunk)",
        [f"author: {comment.author}", f"created: {comment.created_at.isoformat()}"],
        comment.text,
        offset,
        max_chars,
    )


# Create the server instance with host/port from environment
# This allows HTTP transport to bind to the configured address
_host = os.getenv("MCP_HOST", "127.0.0.1")
_port = int(os.getenv("MCP_PORT", "8000"))
server = BugHerdMCPServer(host=_host, port=_port)

# Export the MCP server instance
mcp = server.mcp


# Health check endpoint for HTTP transport
@mcp.custom_route("/health", methods=["GET"])
async def health_check(request: Request) -> JSONResponse:  # noqa: ARG001
    """Health check endpoint for HTTP transport.

    Args:
        request: The incoming HTTP request (required by FastMCP).

    Returns:
        JSONResponse with health status.
    """
    return JSONResponse({"status": "healthy", "transport": "http"})


def _configure_logging() -> None:
    """Configure logging from LOG_LEVEL environment variable.

    Reads LOG_LEVEL environment variable (default: INFO) and configures
    the root logger. Valid values: DEBUG, INFO, WARNING, ERROR, CRITICAL.
    """
    log_level_str = os.getenv("LOG_LEVEL", "INFO").upper()
    valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}

    if log_level_str not in valid_levels:
        invalid_level = log_level_str
        log_level_str = "INFO"
        logger.warning(
            "Invalid LOG_LEVEL '%s', defaulting to INFO. Valid values: %s",
            invalid_level,
            ", ".join(sorted(valid_levels)),
        )

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_level_str))

    # Add handler if none exists
    if not root_logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))
        root_logger.addHandler(handler)


def main() -> None:
    """Main entry point for the server."""
    _configure_logging()
    mcp.run()
