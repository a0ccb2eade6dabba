"""Tests for tract_sync.mcp.lifespan: server startup and shutdown.

server_lifespan() loads configuration, builds the SyncService, checks the
repository and Jira, promotes queued offline tickets and flushes pending
worklog commits on shutdown.
"""

from unittest.mock import MagicMock, patch

import pytest

from tract_sync.config import Config
from tract_sync.exceptions import RemoteUnavailable
from tract_sync.mcp.lifespan import server_lifespan
from tract_sync.sync.models import PromotionResult, ReconcileResult

LIFESPAN = "tract_sync.mcp.lifespan"


def _make_config(**overrides):
    defaults = {
        "jira_url": "https://jira.example.com",
        "username": "sync-bot",
        "password": "testpass",
    }
    defaults.update(overrides)
    return Config(**defaults)


def _make_service(queued=0, is_repo=True):
    service = MagicMock()
    service.repo.is_repo.return_value = is_repo
    service.repo.root = "/srv/tickets"
    service.queue.__len__.return_value = queued
    return service


@pytest.fixture
def env():
    """Patch configuration sources and the service factory."""
    service = _make_service()
    with (
        patch(f"{LIFESPAN}.load_dotenv"),
        patch(f"{LIFESPAN}.discover_config_files", return_value=[]),
        patch(f"{LIFESPAN}.load_hierarchical_config", return_value={}),
        patch(f"{LIFESPAN}.apply_logging_config"),
        patch(f"{LIFESPAN}.load_config", return_value=_make_config()) as load,
        patch(f"{LIFESPAN}.SyncService") as service_cls,
        patch(f"{LIFESPAN}._stderr_print") as stderr,
    ):
        service_cls.from_config.return_value = service
        yield {
            "service": service,
            "service_cls": service_cls,
            "load_config": load,
            "stderr": stderr,
        }


def _printed(stderr) -> str:
    return "\n".join(c.args[0] for c in stderr.call_args_list)


# -------------------------------------------------------------------------
# Startup
# -------------------------------------------------------------------------


class TestServerLifespanStartup:
    async def test_successful_startup(self, env):
        with patch(f"{LIFESPAN}.run_sync", return_value="sync-bot") as run:
            async with server_lifespan() as ctx:
                assert ctx["service"] is env["service"]
                run.assert_called_once_with(
                    env["service"].client.validate_connection
                )
        assert "Connected to Jira as sync-bot" in _printed(env["stderr"])

    async def test_overrides_passed_to_load_config(self, env):
        overrides = {
            "url": "https://other.example.com",
            "username": "u",
            "password": "p",
            "repo_path": "/srv/tickets",
            "insecure": True,
        }
        with patch(f"{LIFESPAN}.run_sync", return_value="u"):
            async with server_lifespan(config_overrides=overrides):
                pass

        kwargs = env["load_config"].call_args.kwargs
        assert kwargs["url"] == "https://other.example.com"
        assert kwargs["repo_path"] == "/srv/tickets"
        assert kwargs["insecure"] is True
        assert kwargs["debug"] is False
        assert "CLI arguments" in _printed(env["stderr"])

    async def test_repo_path_from_env(self, env, monkeypatch):
        monkeypatch.setenv("TRACT_REPO_PATH", "/env/tickets")
        with patch(f"{LIFESPAN}.run_sync", return_value="u"):
            async with server_lifespan():
                pass
        assert env["load_config"].call_args.kwargs["repo_path"] == (
            "/env/tickets"
        )

    async def test_queued_tickets_promoted_on_startup(self, env):
        env["service"].queue.__len__.return_value = 1
        result = ReconcileResult(
            promoted=1,
            results=[PromotionResult(temp_id="APP-TEMP-1", real_id="APP-9")],
        )

        async def fake_run_sync(func, *args, **kwargs):
            if func is env["service"].reconcile:
                return result
            return "sync-bot"

        with patch(f"{LIFESPAN}.run_sync", side_effect=fake_run_sync):
            async with server_lifespan():
                pass

        assert "1 promoted, 0 still queued" in _printed(env["stderr"])


# -------------------------------------------------------------------------
# Failures
# -------------------------------------------------------------------------


class TestServerLifespanFailures:
    async def test_config_error_raises_runtime_error(self, env):
        env["load_config"].side_effect = ValueError("Jira URL not found")

        with pytest.raises(RuntimeError, match="Configuration error"):
            async with server_lifespan():
                pass
        env["service_cls"].from_config.assert_not_called()

    async def test_not_a_git_repository(self, env):
        env["service"].repo.is_repo.return_value = False

        with patch(f"{LIFESPAN}.run_sync") as run:
            with pytest.raises(RuntimeError, match="not a git repository"):
                async with server_lifespan():
                    pass
        run.assert_not_called()

    async def test_unreachable_jira_is_a_warning(self, env):
        async def fake_run_sync(func, *args, **kwargs):
            if func is env["service"].client.validate_connection:
                raise RemoteUnavailable("connection refused")
            return None

        with patch(f"{LIFESPAN}.run_sync", side_effect=fake_run_sync):
            async with server_lifespan() as ctx:
                assert ctx["service"] is env["service"]

        printed = _printed(env["stderr"])
        assert "WARNING: Jira connection failed" in printed
        env["service"].reconcile.assert_not_called()


# -------------------------------------------------------------------------
# Shutdown
# -------------------------------------------------------------------------


class TestServerLifespanShutdown:
    async def test_service_closed_on_exit(self, env):
        with patch(f"{LIFESPAN}.run_sync", return_value="sync-bot") as run:
            async with server_lifespan():
                pass
        run.assert_called_with(env["service"].close)
        assert "shutting down" in _printed(env["stderr"])

    async def test_service_closed_when_body_raises(self, env):
        with patch(f"{LIFESPAN}.run_sync", return_value="sync-bot") as run:
            with pytest.raises(KeyError):
                async with server_lifespan():
                    raise KeyError("boom")
        run.assert_called_with(env["service"].close)
