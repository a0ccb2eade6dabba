"""Lifespan management for MCP server startup and shutdown."""

import logging
import os
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from dotenv import load_dotenv

from ..config import load_config
from ..config_loader import (
    discover_config_files,
    load_hierarchical_config,
)
from ..config_schema import build_config, to_fallbacks
from ..core.async_utils import run_sync
from ..exceptions import RemoteError
from ..logger import apply_logging_config
from ..sync.engine import SyncService
from ..sync.reporter import format_reconcile_result

logger = logging.getLogger(__name__)


def _stderr_print(msg: str) -> None:
    """Print message to stderr for user feedback (safe in MCP mode)."""
    print(msg, file=sys.stderr, flush=True)


@asynccontextmanager
async def server_lifespan(
    config_overrides: dict[str, Any] | None = None,
) -> AsyncIterator[dict[str, Any]]:
    """
    Manage server startup and shutdown lifecycle.

    On startup:
    - Load .env file (so values are available for env var lookups and YAML interpolation)
    - Load YAML config files from the ticket repository and the user config dir
    - Merge all sources via load_config(): CLI > env vars > .env > YAML > defaults
    - Build the SyncService and check the repository is a git working copy
    - Check Jira connectivity; an unreachable Jira is only a warning, since
      ticket creation and worklogs work offline
    - Promote tickets left in the offline queue

    On shutdown:
    - Commit pending worklog entries

    Args:
        config_overrides: Optional dict with config values from CLI (url,
            username, password, repo_path, insecure, debug)

    Yields:
        Dict with 'service' key containing the initialized SyncService

    Raises:
        RuntimeError: If configuration is invalid or the repository is not
            a git working copy.
    """
    logger.info("MCP server starting...")
    _stderr_print("tract-sync MCP server starting...")

    overrides = config_overrides or {}
    try:
        # .env first so ${VAR} interpolation in YAML can use its values
        load_dotenv()

        repo_hint = overrides.get("repo_path") or os.getenv("TRACT_REPO_PATH")
        sources = [
            f"config file: {path}"
            for path in discover_config_files(repo_hint)
        ]
        unified = build_config(load_hierarchical_config(repo_hint))
        apply_logging_config(unified.logging.level, unified.logging.file)

        config = load_config(
            url=overrides.get("url"),
            username=overrides.get("username"),
            password=overrides.get("password"),
            repo_path=repo_hint,
            insecure=overrides.get("insecure", False),
            debug=overrides.get("debug", False),
            yaml_fallbacks=to_fallbacks(unified),
        )

        if overrides:
            sources.append("CLI arguments")
        sources.append("environment variables")
        source_desc = ", ".join(sources)
        logger.info("Configuration loaded from: %s", source_desc)
        _stderr_print(f"  Configuration loaded from: {source_desc}")
        logger.info("Jira URL: %s", config.jira_url)
        _stderr_print(f"  Jira URL: {config.jira_url}")
    except ValueError as e:
        logger.error("Configuration error: %s", e)
        _stderr_print(f"ERROR: Configuration error: {e}")
        _stderr_print(
            "  Ensure JIRA_URL, JIRA_USERNAME, JIRA_PASSWORD are set."
        )
        raise RuntimeError(
            f"Configuration error: {e}. Ensure JIRA_URL, JIRA_USERNAME, JIRA_PASSWORD are set."
        ) from e

    service = SyncService.from_config(config, unified)
    if not service.repo.is_repo():
        _stderr_print(f"ERROR: {service.repo.root} is not a git repository.")
        raise RuntimeError(
            f"{service.repo.root} is not a git repository. "
            "Set TRACT_REPO_PATH or pass --repo."
        )
    _stderr_print(f"  Ticket repository: {service.repo.root}")

    logger.info("Validating Jira connection...")
    _stderr_print("  Validating Jira connection...")
    try:
        account = await run_sync(service.client.validate_connection)
    except RemoteError as e:
        logger.warning("Jira unreachable at startup: %s", e)
        _stderr_print(f"  WARNING: Jira connection failed: {e}")
        _stderr_print("  Continuing offline; queued tickets wait for Jira.")
    else:
        logger.info("Connected to Jira as %s", account)
        _stderr_print(f"  Connected to Jira as {account}")
        if len(service.queue):
            result = await run_sync(service.reconcile)
            logger.info("%s", format_reconcile_result(result))
            _stderr_print(
                f"  Offline queue: {result.promoted} promoted, "
                f"{result.still_queued} still queued"
            )

    _stderr_print("Server ready. Waiting for MCP client connection...")

    try:
        yield {"service": service}
    finally:
        logger.info("MCP server shutting down")
        await run_sync(service.close)
        _stderr_print("tract-sync MCP server shutting down.")
