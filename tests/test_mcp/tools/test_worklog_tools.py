"""Tests for the worklog_add, worklog_list and timesheet tools."""

from unittest.mock import MagicMock

import mcp.types as types
import pytest

from tract_sync.config_schema import UnifiedConfig
from tract_sync.core.repo import GitRepo
from tract_sync.exceptions import RemoteUnavailable
from tract_sync.mcp.tools import WORKLOG_SPECS, ToolRegistry
from tract_sync.sync.engine import SyncService


@pytest.fixture
def service(mock_config, fake_jira, tmp_path):
    repo = MagicMock(spec=GitRepo)
    repo.root = tmp_path / "repo"
    repo.has_changes.return_value = False
    service = SyncService(mock_config, UnifiedConfig(), fake_jira, repo=repo)
    yield service
    service.worklog.scheduler.cancel()


@pytest.fixture
def registry():
    return ToolRegistry(WORKLOG_SPECS)


def _text(result: types.CallToolResult) -> str:
    content = result.content[0]
    assert isinstance(content, types.TextContent)
    return content.text


async def _log(registry, service, issue_id, author, time, started, **extra):
    return await registry.call_tool(
        "worklog_add",
        {
            "issue_id": issue_id,
            "author": author,
            "time": time,
            "started": started,
            **extra,
        },
        service,
    )


class TestWorklogAdd:
    async def test_logged_and_posted(self, registry, service, fake_jira):
        result = await _log(
            registry,
            service,
            "APP-1",
            "alice",
            "2h",
            "2026-02-12T10:00:00Z",
            comment="pairing",
        )

        assert _text(result) == (
            "Logged 2h on APP-1 for alice at 2026-02-12T10:00:00.000Z"
        )
        assert result.structuredContent["remote_posted"] is True
        assert result.structuredContent["entry"]["seconds"] == 7200
        assert fake_jira.calls_to("add_worklog") == [
            ("APP-1", 7200, "2026-02-12T10:00:00.000+0000", "pairing")
        ]

    async def test_remote_failure_reported(self, registry, service, fake_jira):
        fake_jira.fail["add_worklog"] = RemoteUnavailable("timeout")
        result = await _log(
            registry, service, "APP-1", "alice", "30m", "2026-02-12T10:00:00Z"
        )
        assert not result.isError
        assert "Not posted to Jira: timeout" in _text(result)

    async def test_bad_time(self, registry, service):
        result = await _log(
            registry, service, "APP-1", "alice", "soon", "2026-02-12T10:00:00Z"
        )
        assert result.isError
        assert "Invalid time format 'soon'" in _text(result)

    async def test_missing_author(self, registry, service):
        result = await registry.call_tool(
            "worklog_add", {"issue_id": "APP-1", "time": "1h"}, service
        )
        assert result.isError
        assert "author is required" in _text(result)


class TestWorklogQueries:
    @pytest.fixture
    async def logged(self, registry, service):
        await _log(registry, service, "APP-1", "alice", "2h", "2026-02-12T10:00:00Z")
        await _log(registry, service, "APP-2", "alice", "1h", "2026-02-13T10:00:00Z")
        await _log(registry, service, "APP-1", "bob", "30m", "2026-03-02T10:00:00Z")

    async def test_worklog_list(self, registry, service, logged):
        result = await registry.call_tool(
            "worklog_list", {"issue_id": "APP-1"}, service
        )
        assert _text(result).startswith("Worklogs for APP-1")
        data = result.structuredContent
        assert data["total_seconds"] == 7200 + 1800
        assert [e["author"] for e in data["entries"]] == ["alice", "bob"]

    async def test_timesheet_month(self, registry, service, logged):
        result = await registry.call_tool(
            "timesheet", {"author": "alice", "month": "2026-02"}, service
        )
        assert _text(result).startswith("Timesheet for alice (month 2026-02)")
        assert result.structuredContent["total_seconds"] == 10800
        assert result.structuredContent["month"] == "2026-02"

    async def test_timesheet_one_period_only(self, registry, service):
        result = await registry.call_tool(
            "timesheet",
            {"author": "alice", "day": "2026-02-12", "month": "2026-02"},
            service,
        )
        assert result.isError
        assert "at most one of day, week or month" in _text(result)
