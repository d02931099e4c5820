"""Shared fixtures for BugHerd MCP tests."""

from collections.abc import Callable
from typing import Any
from unittest.mock import Mock

import pytest

from mcp_bugherd.config import Settings
from mcp_bugherd.models import Column, Comment, Task


@pytest.fixture
def decorator_capturer():
    """Factory that replaces an MCP decorator and captures the decorated functions.

    Usage::

        test_tools, capture_tool = decorator_capturer(server.mcp.tool)
        server.mcp.tool = capture_tool
        server._setup_tools()
        await test_tools["bugherd_list_tasks"](params)

    Functions are keyed by the first positional decorator argument (resource
    URIs) or by their own name (tools).
    """

    def make(_original: Callable[..., Any]) -> tuple[dict[str, Callable[..., Any]], Callable[..., Any]]:
        captured: dict[str, Callable[..., Any]] = {}

        def capture(*args: Any, **kwargs: Any) -> Callable[..., Any]:
            def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
                key = args[0] if args and isinstance(args[0], str) else kwargs.get("name", func.__name__)
                captured[key] = func
                return func

            return decorator

        return captured, capture

    return make


@pytest.fixture
def settings():
    """Settings for project 42 with small limits so paging is easy to exercise."""
    return Settings(
        api_key="test-key",
        project_id=42,
        bot_user_id=7,
        description_max_chars=50,
        comment_max_chars=40,
        page_size=3,
    )


@pytest.fixture
def task_factory():
    """Factory fixture to create tasks with custom values."""

    def make(local_task_id: int, **overrides: Any) -> Task:
        data: dict[str, Any] = {
            "id": 1000 + local_task_id,
            "project_id": 42,
            "local_task_id": local_task_id,
            "priority_id": 3,
            "status_id": 10,
            "description": f"Task {local_task_id} description",
            "created_at": "2024-01-01T00:00:00Z",
            "updated_at": "2024-01-02T00:00:00Z",
            "tag_names": [],
        }
        data.update(overrides)
        return Task(**data)

    return make


@pytest.fixture
def comment_factory():
    """Factory fixture to create comments with custom values."""

    def make(comment_id: int, **overrides: Any) -> Comment:
        data: dict[str, Any] = {
            "id": comment_id,
            "user_id": 7,
            "text": f"Comment {comment_id}",
            "created_at": f"2024-01-{comment_id:02d}T00:00:00Z",
        }
        data.update(overrides)
        return Comment(**data)

    return make


@pytest.fixture
def sample_columns():
    """Columns of project 42."""
    return [
        Column(id=10, name="To Do", position=1),
        Column(id=11, name="Doing", position=2),
        Column(id=12, name="Done", position=3),
    ]


@pytest.fixture
def mock_client(sample_columns):
    """Mock BugHerd client with the columns of project 42."""
    client = Mock()
    client.list_columns.return_value = sample_columns
    client.get_project.return_value = {"id": 42, "name": "Website"}
    return client
