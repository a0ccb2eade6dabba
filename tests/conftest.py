"""Shared pytest fixtures for tract-sync tests."""

import copy
import shutil
from typing import Any
from unittest.mock import MagicMock

import pytest
from dotenv import load_dotenv

from tract_sync.config import Config
from tract_sync.exceptions import RemoteRejected

load_dotenv()


def pytest_addoption(parser):
    """Add custom CLI options for test filtering."""
    parser.addoption(
        "--run-live",
        action="store_true",
        default=False,
        help="Run tests that require a live Jira instance",
    )


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "live: mark test as requiring a live Jira instance"
    )


def pytest_collection_modifyitems(config, items):
    """Skip live tests unless --run-live is passed."""
    if config.getoption("--run-live"):
        return
    skip_live = pytest.mark.skip(reason="need --run-live option to run")
    for item in items:
        if "live" in item.keywords:
            item.add_marker(skip_live)


@pytest.fixture
def mock_config(tmp_path):
    """Create a Config pointing at a temporary repository path."""
    return Config(
        jira_url="https://jira.example.com",
        username="sync-bot",
        password="testpass",
        repo_path=str(tmp_path / "repo"),
        sync_user="tract-sync",
        sync_email="tract-sync@example.com",
        commit_delay=300,
    )


@pytest.fixture
def mock_jira_client(mock_config):
    """Create a mock JiraClient instance for testing."""
    from tract_sync.core.client import JiraClient

    client = MagicMock(spec=JiraClient)
    client.config = mock_config
    return client


# ---------------------------------------------------------------------------
# In-memory Jira
# ---------------------------------------------------------------------------


def make_issue(key: str, **fields: Any) -> dict[str, Any]:
    """Build a Jira issue JSON document with sensible defaults."""
    base: dict[str, Any] = {
        "summary": f"Issue {key}",
        "issuetype": {"name": "Task"},
        "status": {"name": "Open"},
        "priority": {"name": "Medium"},
        "labels": [],
        "components": [],
        "issuelinks": [],
        "comment": {"comments": []},
    }
    base.update(fields)
    return {"key": key, "fields": base}


class FakeJiraClient:
    """Minimal JiraClient replacement backed by dicts.

    Every call is recorded in ``calls`` as ``(method, *args)``.  Setting
    ``fail[method]`` to an exception makes that method raise it.
    """

    def __init__(self) -> None:
        self.issues: dict[str, dict[str, Any]] = {}
        self.transitions: dict[str, list[dict[str, Any]]] = {}
        self.calls: list[tuple] = []
        self.fail: dict[str, Exception] = {}
        self._next_key = 100
        self._next_link = 1000

    def _record(self, method: str, *args: Any) -> None:
        self.calls.append((method, *args))
        exc = self.fail.get(method)
        if exc is not None:
            raise exc

    def calls_to(self, method: str) -> list[tuple]:
        return [call[1:] for call in self.calls if call[0] == method]

    def add_issue(self, key: str, **fields: Any) -> dict[str, Any]:
        self.issues[key] = make_issue(key, **fields)
        return self.issues[key]

    def get_issue(self, key: str) -> dict[str, Any]:
        self._record("get_issue", key)
        if key not in self.issues:
            raise RemoteRejected(
                f"GET /issue/{key}: HTTP 404",
                status_code=404,
                payload={"errorMessages": ["Issue Does Not Exist"]},
            )
        return copy.deepcopy(self.issues[key])

    def create_issue(self, fields: dict[str, Any]) -> dict[str, Any]:
        self._record("create_issue", fields)
        key = f"{fields['project']['key']}-{self._next_key}"
        self._next_key += 1
        self.add_issue(key, summary=fields.get("summary", ""))
        return {"id": str(self._next_key), "key": key}

    def update_fields(self, key: str, fields: dict[str, Any]) -> None:
        self._record("update_fields", key, fields)

    def get_transitions(self, key: str) -> list[dict[str, Any]]:
        self._record("get_transitions", key)
        return self.transitions.get(key, [])

    def transition(self, key: str, transition_id: str) -> None:
        self._record("transition", key, transition_id)

    def add_comment(
        self, key: str, body: str, origin: str | None = None
    ) -> dict[str, Any]:
        self._record("add_comment", key, body, origin)
        return {"id": "1", "body": body}

    def create_link(
        self, link_type: str, source_key: str, target_key: str
    ) -> None:
        self._record("create_link", link_type, source_key, target_key)
        link_id = str(self._next_link)
        self._next_link += 1
        if source_key in self.issues:
            self.issues[source_key]["fields"]["issuelinks"].append(
                {
                    "id": link_id,
                    "type": {"name": link_type},
                    "outwardIssue": {"key": target_key},
                }
            )
        if target_key in self.issues:
            self.issues[target_key]["fields"]["issuelinks"].append(
                {
                    "id": link_id,
                    "type": {"name": link_type},
                    "inwardIssue": {"key": source_key},
                }
            )

    def delete_link(self, link_id: str) -> None:
        self._record("delete_link", link_id)
        for issue in self.issues.values():
            issue["fields"]["issuelinks"] = [
                raw
                for raw in issue["fields"]["issuelinks"]
                if raw.get("id") != link_id
            ]

    def add_worklog(
        self, key: str, seconds: int, started: str, comment: str = ""
    ) -> dict[str, Any]:
        self._record("add_worklog", key, seconds, started, comment)
        return {"id": "1"}

    def validate_connection(self) -> str:
        self._record("validate_connection")
        return "sync-bot"


@pytest.fixture
def fake_jira():
    return FakeJiraClient()


# ---------------------------------------------------------------------------
# Git
# ---------------------------------------------------------------------------


@pytest.fixture
def git_repo(tmp_path, monkeypatch):
    """An empty git working copy at ``tmp_path/repo``.

    Skipped when git is not installed.  Global and system git config are
    masked so host settings (signing, hooks) cannot interfere.
    """
    if shutil.which("git") is None:
        pytest.skip("git is not installed")
    from tract_sync.core.repo import GitRepo

    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    monkeypatch.setenv("GIT_CONFIG_GLOBAL", str(tmp_path / "gitconfig"))
    repo = GitRepo(tmp_path / "repo", "tract-sync", "tract-sync@example.com")
    repo.init()
    return repo
