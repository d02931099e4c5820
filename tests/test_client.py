"""Tests for the BugHerd HTTP client."""

from unittest.mock import Mock, patch

import pytest
import requests

from mcp_bugherd.client import BugHerdClient
from mcp_bugherd.models import BugHerdAPIError, Column, TasksResponse

TASK_DATA = {
    "id": 1012,
    "local_task_id": 12,
    "description": "Button overlaps footer",
    "created_at": "2024-01-01T00:00:00Z",
    "updated_at": "2024-01-02T00:00:00Z",
}


def _response(status: int = 200, body: object = None, text: str | None = None) -> Mock:
    response = Mock()
    response.status_code = status
    response.ok = status < 400
    if body is None and text is None:
        response.content = b""
        response.text = ""
        response.json.side_effect = ValueError("no body")
    elif text is not None:
        response.content = text.encode()
        response.text = text
        response.json.side_effect = ValueError("invalid json")
    else:
        response.content = b"{...}"
        response.text = str(body)
        response.json.return_value = body
    return response


@pytest.fixture
def client():
    return BugHerdClient("key", base_url="https://bugherd.test/api_v2/", timeout=5)


def test_requires_api_key():
    with pytest.raises(ValueError, match="API key is required"):
        BugHerdClient("")


def test_basic_auth_with_api_key(client):
    assert client.session.auth.username == "key"
    assert client.session.auth.password == "x"
    assert client.base_url == "https://bugherd.test/api_v2"


def test_list_taskboard_tasks(client):
    body = {"tasks": [TASK_DATA], "meta": {"count": 1, "total_pages": 1, "current_page": 2}}
    with patch.object(client.session, "request", return_value=_response(body=body)) as mock_request:
        result = client.list_taskboard_tasks(42, page=2)

    assert isinstance(result, TasksResponse)
    assert result.tasks[0].local_task_id == 12
    assert result.meta.current_page == 2
    mock_request.assert_called_once_with(
        "GET", "https://bugherd.test/api_v2/projects/42/tasks/taskboard.json", params={"page": 2}, json=None, timeout=5
    )


def test_list_archived_tasks_uses_archive_endpoint(client):
    with patch.object(client.session, "request", return_value=_response(body={"tasks": []})) as mock_request:
        client.list_archived_tasks(42)

    assert mock_request.call_args.args[1].endswith("/projects/42/tasks/archive.json")
    assert mock_request.call_args.kwargs["params"] is None


def test_list_tasks_passes_remote_filters(client):
    with patch.object(client.session, "request", return_value=_response(body={"tasks": []})) as mock_request:
        client.list_tasks(42, page=3, priority="critical", tag="ui")

    assert mock_request.call_args.kwargs["params"] == {"priority": "critical", "tag": "ui", "page": 3}


def test_list_columns(client):
    body = {"columns": [{"id": 10, "name": "To Do", "position": 1}]}
    with patch.object(client.session, "request", return_value=_response(body=body)):
        columns = client.list_columns(42)

    assert columns == [Column(id=10, name="To Do", position=1)]


def test_get_task_by_local_id(client):
    with patch.object(client.session, "request", return_value=_response(body={"task": TASK_DATA})) as mock_request:
        task = client.get_task_by_local_id(42, 12)

    assert task.id == 1012
    assert mock_request.call_args.args[1].endswith("/projects/42/local_tasks/12.json")


def test_update_task_sends_status_name(client):
    with patch.object(client.session, "request", return_value=_response(body={"task": TASK_DATA})) as mock_request:
        client.update_task(42, 1012, status="Done")

    assert mock_request.call_args.args[0] == "PUT"
    assert mock_request.call_args.kwargs["json"] == {"task": {"status": "Done"}}


def test_create_comment(client):
    body = {"comment": {"id": 5, "text": "hi"}}
    with patch.object(client.session, "request", return_value=_response(status=201, body=body)) as mock_request:
        created = client.create_comment(42, 1012, "hi", user_id=7)

    assert created == {"id": 5, "text": "hi"}
    assert mock_request.call_args.kwargs["json"] == {"comment": {"text": "hi", "user_id": 7}}


def test_empty_body_is_empty_dict(client):
    with patch.object(client.session, "request", return_value=_response(status=204)):
        assert client.update_task(42, 1012, status="Done") == {}


@pytest.mark.parametrize(
    "status,match",
    [
        (401, "authentication failed"),
        (404, "not found"),
        (429, "rate limit"),
        (500, r"BugHerd API error \(500\)"),
    ],
)
def test_http_errors(client, status, match):
    with patch.object(client.session, "request", return_value=_response(status=status, text="oops")):
        with pytest.raises(BugHerdAPIError, match=match) as exc_info:
            client.list_columns(42)

    assert exc_info.value.status_code == status
    assert exc_info.value.detail == "oops"


def test_network_error(client):
    with patch.object(client.session, "request", side_effect=requests.exceptions.ConnectionError("down")):
        with pytest.raises(BugHerdAPIError, match="network error") as exc_info:
            client.list_columns(42)

    assert exc_info.value.status_code is None


def test_invalid_json(client):
    with patch.object(client.session, "request", return_value=_response(text="<html>")):
        with pytest.raises(BugHerdAPIError, match="invalid JSON"):
            client.get_project(42)
