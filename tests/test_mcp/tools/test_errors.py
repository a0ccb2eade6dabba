"""Tests for mcp/tools/errors.py: error builders and Jira error translation."""

import mcp.types as types
import pytest

from tract_sync.exceptions import RemoteError, RemoteRejected, RemoteUnavailable
from tract_sync.mcp.tools.errors import (
    build_error_response,
    require,
    text_result,
    translate_remote_error,
)


def _get_error_text(result: types.CallToolResult) -> str:
    content = result.content[0]
    assert isinstance(content, types.TextContent)
    return content.text


class TestBuildErrorResponse:
    def test_structure(self):
        result = build_error_response("not_found", "Not found", "Try again")
        assert isinstance(result, types.CallToolResult)
        assert result.isError is True
        assert len(result.content) == 1

    def test_error_format(self):
        result = build_error_response(
            "validation_error", "time is required", "Provide time, e.g. '2h'."
        )
        assert _get_error_text(result) == (
            "Error (validation_error): time is required\n\n"
            "Action: Provide time, e.g. '2h'."
        )


class TestTextResult:
    def test_structured_content(self):
        result = text_result("ok", {"count": 1})
        assert _get_error_text(result) == "ok"
        assert result.structuredContent == {"count": 1}
        assert not result.isError


class TestRequire:
    def test_present(self):
        require({"issue_id": "APP-1", "time": "2h"}, "issue_id", "time")

    @pytest.mark.parametrize("args", [{}, {"time": ""}, {"time": None}])
    def test_missing_or_empty(self, args):
        with pytest.raises(ValueError, match="time is required"):
            require(args, "time")


class TestTranslateRemoteError:
    def test_unavailable(self):
        text = _get_error_text(
            translate_remote_error(RemoteUnavailable("POST /issue: timeout"))
        )
        assert text.startswith("Error (remote_unavailable)")
        assert "queue_reconcile" in text

    @pytest.mark.parametrize("status", [401, 403])
    def test_permission_denied(self, status):
        error = RemoteRejected(f"HTTP {status}", status_code=status)
        assert "permission_denied" in _get_error_text(
            translate_remote_error(error)
        )

    def test_not_found_names_issue(self):
        error = RemoteRejected(
            "GET /issue/APP-9: HTTP 404",
            status_code=404,
            payload={"errorMessages": ["Issue Does Not Exist"]},
        )
        text = _get_error_text(translate_remote_error(error, "APP-9"))
        assert "not_found" in text
        assert "Issue Does Not Exist" in text
        assert "'APP-9'" in text

    def test_not_found_without_key(self):
        error = RemoteRejected("HTTP 404", status_code=404)
        assert "the issue" in _get_error_text(translate_remote_error(error))

    def test_validation_keeps_field_errors(self):
        error = RemoteRejected(
            "PUT /issue/APP-1: HTTP 400",
            status_code=400,
            payload={"errors": {"summary": "too long"}},
        )
        text = _get_error_text(translate_remote_error(error))
        assert "validation_error" in text
        assert "summary: too long" in text

    def test_other_status_is_server_error(self):
        error = RemoteError("odd", status_code=418)
        assert "server_error" in _get_error_text(translate_remote_error(error))
