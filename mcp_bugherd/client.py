"""BugHerd API v2 client.

Authentication is HTTP Basic with the API key as user and ``x`` as password.
BugHerd allows about 60 requests per minute with bursts of 10.
"""

import logging
from typing import Any

import requests  # type: ignore[import-untyped]
from requests.auth import HTTPBasicAuth  # type: ignore[import-untyped]

from .config import DEFAULT_BASE_URL, Settings
from .models import (
    BugHerdAPIError,
    Column,
    CommentsResponse,
    Task,
    TasksResponse,
)

logger = logging.getLogger(__name__)

# Keep request logging from leaking the Authorization header
logging.getLogger("urllib3").setLevel(logging.WARNING)

ERROR_BODY_LIMIT = 500


class BugHerdClient:
    """Synchronous client for the BugHerd endpoints the server uses."""

    def __init__(self, api_key: str, base_url: str = DEFAULT_BASE_URL, timeout: float = 30.0) -> None:
        """Initialize the client.

        Args:
            api_key: BugHerd API key
            base_url: API root (default: BugHerd API v2)
            timeout: Request timeout in seconds
        """
        if not api_key:
            raise ValueError("BugHerd API key is required. Get it from BugHerd Settings > General Settings.")
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = requests.Session()
        self.session.auth = HTTPBasicAuth(api_key, "x")
        self.session.headers.update({"Accept": "application/json", "Content-Type": "application/json"})

    @classmethod
    def from_settings(cls, settings: Settings) -> "BugHerdClient":
        """Create a client from server settings."""
        return cls(settings.api_key, base_url=settings.base_url, timeout=settings.timeout)

    def _request(
        self,
        method: str,
        endpoint: str,
        *,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Send a request and return the decoded JSON body.

        Raises:
            BugHerdAPIError: On network failure or a non-2xx response
        """
        url = f"{self.base_url}{endpoint}"
        logger.debug("BugHerd %s %s params=%s", method, endpoint, params)
        try:
            response = self.session.request(method, url, params=params, json=json, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            raise BugHerdAPIError(f"BugHerd network error during {method} {endpoint}: {e}", detail=str(e)) from e

        if not response.ok:
            raise self._error_for(response, endpoint)

        if response.status_code == 204 or not response.content:
            return {}
        try:
            body = response.json()
        except ValueError as e:
            text = response.text[:ERROR_BODY_LIMIT]
            raise BugHerdAPIError(
                f"BugHerd returned invalid JSON: {text}", status_code=response.status_code, detail=text
            ) from e
        return body if isinstance(body, dict) else {"items": body}

    @staticmethod
    def _error_for(response: requests.Response, endpoint: str) -> BugHerdAPIError:
        status = response.status_code
        detail = response.text[:ERROR_BODY_LIMIT]
        if status == 429:
            message = "BugHerd API rate limit exceeded. Wait a moment and try again."
        elif status == 401:
            message = "BugHerd API authentication failed. Check your BUGHERD_API_KEY."
        elif status == 404:
            message = f"BugHerd resource not found: {endpoint}"
        else:
            message = f"BugHerd API error ({status}): {detail}"
        return BugHerdAPIError(message, status_code=status, detail=detail)

    # Projects

    def get_project(self, project_id: int) -> dict[str, Any]:
        """Get a single project."""
        return self._request("GET", f"/projects/{project_id}.json").get("project", {})

    # Columns

    def list_columns(self, project_id: int) -> list[Column]:
        """List the columns (statuses) of a project."""
        data = self._request("GET", f"/projects/{project_id}/columns.json")
        return [Column(**column) for column in data.get("columns", [])]

    # Tasks

    def list_tasks(
        self,
        project_id: int,
        *,
        page: int | None = None,
        priority: str | None = None,
        tag: str | None = None,
        assigned_to: int | None = None,
    ) -> TasksResponse:
        """List one page of all tasks of a project.

        Priority, tag and assignee are filtered by BugHerd. Status is not
        passed on because BugHerd does not filter custom columns reliably.
        """
        params: dict[str, Any] = {}
        if priority:
            params["priority"] = priority
        if tag:
            params["tag"] = tag
        if assigned_to:
            params["assigned_to_id"] = assigned_to
        if page:
            params["page"] = page
        data = self._request("GET", f"/projects/{project_id}/tasks.json", params=params or None)
        return TasksResponse(**data)

    def _list_task_view(self, project_id: int, view: str, page: int | None) -> TasksResponse:
        params = {"page": page} if page else None
        data = self._request("GET", f"/projects/{project_id}/tasks/{view}.json", params=params)
        return TasksResponse(**data)

    def list_feedback_tasks(self, project_id: int, page: int | None = None) -> TasksResponse:
        """List one page of feedback (unprocessed) tasks."""
        return self._list_task_view(project_id, "feedback", page)

    def list_archived_tasks(self, project_id: int, page: int | None = None) -> TasksResponse:
        """List one page of archived tasks."""
        return self._list_task_view(project_id, "archive", page)

    def list_taskboard_tasks(self, project_id: int, page: int | None = None) -> TasksResponse:
        """List one page of task board tasks (neither feedback nor archived)."""
        return self._list_task_view(project_id, "taskboard", page)

    def get_task_by_local_id(self, project_id: int, local_task_id: int) -> Task:
        """Get a task by its project-local id (#123)."""
        data = self._request("GET", f"/projects/{project_id}/local_tasks/{local_task_id}.json")
        return Task(**data["task"])

    def update_task(
        self,
        project_id: int,
        task_id: int,
        *,
        status: str | None = None,
        priority: str | None = None,
        description: str | None = None,
    ) -> dict[str, Any]:
        """Update a task. BugHerd expects status and priority as names."""
        task: dict[str, Any] = {}
        if status:
            task["status"] = status
        if priority:
            task["priority"] = priority
        if description is not None:
            task["description"] = description
        return self._request("PUT", f"/projects/{project_id}/tasks/{task_id}.json", json={"task": task})

    # Comments

    def list_comments(self, project_id: int, task_id: int) -> CommentsResponse:
        """List all comments of a task."""
        data = self._request("GET", f"/projects/{project_id}/tasks/{task_id}/comments.json")
        return CommentsResponse(**data)

    def create_comment(self, project_id: int, task_id: int, text: str, user_id: int | None = None) -> dict[str, Any]:
        """Create a comment on a task and return the created comment record."""
        comment: dict[str, Any] = {"text": text}
        if user_id is not None:
            comment["user_id"] = user_id
        data = self._request(
            "POST", f"/projects/{project_id}/tasks/{task_id}/comments.json", json={"comment": comment}
        )
        return data.get("comment", {})
