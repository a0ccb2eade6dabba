"""Unified configuration schema for tract_sync.

Defines Pydantic models for the YAML config structure with dedicated
sections for the Jira connection, the ticket repository, the sync identity,
worklog batching, field-value mapping and logging.  Includes an adapter
that flattens the sections into the fallbacks accepted by
``config.load_config()``.

Usage:
    from tract_sync.config_schema import build_config, to_fallbacks

    raw = load_hierarchical_config()
    unified = build_config(raw)
    config = load_config(yaml_fallbacks=to_fallbacks(unified))
"""

from __future__ import annotations

import logging

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class JiraConfig(BaseModel):
    """Jira server connection settings.

    All fields are optional to support zero-config: env vars and CLI args
    can supply them at runtime instead.
    """

    url: str | None = Field(default=None, description="Jira base URL")
    username: str | None = Field(default=None, description="Jira username")
    password: str | None = Field(
        default=None, description="Jira password or API token"
    )
    insecure: bool = Field(
        default=False,
        description="Disable SSL verification (development only)",
    )
    debug: bool = Field(default=False, description="Enable debug mode")

    model_config = {"frozen": True}


class RepoConfig(BaseModel):
    """Ticket repository layout."""

    path: str | None = Field(
        default=None, description="Path to the git working copy"
    )
    issues_dir: str = Field(
        default="issues", description="Directory holding ticket documents"
    )
    worklogs_dir: str = Field(
        default="worklogs", description="Directory holding monthly worklogs"
    )
    queue_dir: str = Field(
        default=".tract/queue",
        description="Directory holding offline creation queue items",
    )

    model_config = {"frozen": True}


class IdentityConfig(BaseModel):
    """The identity used for sync-authored commits and comments."""

    name: str | None = Field(default=None, description="Sync user name")
    email: str | None = Field(default=None, description="Sync user email")

    model_config = {"frozen": True}


class WorklogConfig(BaseModel):
    """Worklog commit batching."""

    commit_delay: float = Field(
        default=300,
        gt=0,
        description="Seconds between the first append and the batched commit",
    )

    model_config = {"frozen": True}


_DEFAULT_CANONICAL: dict[str, list[str]] = {
    "type": ["task", "bug", "story", "epic", "sub-task", "improvement"],
    "status": [
        "open",
        "todo",
        "in-progress",
        "in-review",
        "blocked",
        "done",
        "closed",
    ],
    "priority": ["lowest", "low", "medium", "high", "highest"],
}

_DEFAULT_ALIASES: dict[str, dict[str, str]] = {
    "type": {"defect": "bug", "subtask": "sub-task", "feature": "story"},
    "status": {
        "to-do": "todo",
        "reopened": "open",
        "resolved": "done",
        "wip": "in-progress",
        "review": "in-review",
    },
    "priority": {
        "trivial": "lowest",
        "minor": "low",
        "major": "high",
        "critical": "highest",
        "blocker": "highest",
    },
}

_DEFAULT_FALLBACKS: dict[str, str] = {
    "type": "task",
    "status": "open",
    "priority": "medium",
}

# canonical values whose title-cased form is not the Jira name
_DEFAULT_REMOTE_NAMES: dict[str, dict[str, str]] = {
    "type": {"sub-task": "Sub-task"},
    "status": {"todo": "To Do"},
}


class MappingConfig(BaseModel):
    """Field-value vocabulary for enum fields.

    Attributes:
        canonical: Canonical local values per field (``type``, ``status``,
            ``priority``).
        aliases: Per-field alias table mapping slugified remote values to
            canonical values.
        defaults: Per-field value used when nothing else matches.
        remote_names: Per-field map from canonical value to the exact Jira
            display name, for values whose title-cased form is wrong.
    """

    canonical: dict[str, list[str]] = Field(
        default_factory=lambda: {
            k: list(v) for k, v in _DEFAULT_CANONICAL.items()
        }
    )
    aliases: dict[str, dict[str, str]] = Field(
        default_factory=lambda: {
            k: dict(v) for k, v in _DEFAULT_ALIASES.items()
        }
    )
    defaults: dict[str, str] = Field(
        default_factory=lambda: dict(_DEFAULT_FALLBACKS)
    )
    remote_names: dict[str, dict[str, str]] = Field(
        default_factory=lambda: {
            k: dict(v) for k, v in _DEFAULT_REMOTE_NAMES.items()
        }
    )

    model_config = {"frozen": True}


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
            Unset keeps the mode default (WARNING for MCP, INFO for CLI).
        file: Optional log file path.
    """

    level: str | None = Field(
        default=None, description="Log level (default depends on mode)"
    )
    file: str | None = Field(default=None, description="Log file path")

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Top-level unified config
# ---------------------------------------------------------------------------


class UnifiedConfig(BaseModel):
    """Top-level unified configuration.

    Every section has sensible defaults, so ``UnifiedConfig()``
    (zero-config) is always valid.
    """

    jira: JiraConfig = Field(default_factory=JiraConfig)
    repo: RepoConfig = Field(default_factory=RepoConfig)
    identity: IdentityConfig = Field(default_factory=IdentityConfig)
    worklog: WorklogConfig = Field(default_factory=WorklogConfig)
    mapping: MappingConfig = Field(default_factory=MappingConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Factory function
# ---------------------------------------------------------------------------


def build_config(raw_data: dict) -> UnifiedConfig:
    """Construct a ``UnifiedConfig`` from the raw dict returned by
    ``load_hierarchical_config()``.

    Handles missing sections gracefully; anything absent gets defaults.

    Args:
        raw_data: Merged configuration dictionary.

    Returns:
        Validated ``UnifiedConfig`` instance.
    """
    if not raw_data:
        return UnifiedConfig()

    return UnifiedConfig(**raw_data)


def to_fallbacks(unified: UnifiedConfig) -> dict:
    """Flatten the connection, repo, identity and worklog sections into the
    ``yaml_fallbacks`` dict understood by ``load_config()``.

    ``None`` values are dropped so they never shadow a built-in default.
    """
    flat = {
        **unified.jira.model_dump(),
        "repo_path": unified.repo.path,
        "sync_user": unified.identity.name,
        "sync_email": unified.identity.email,
        "commit_delay": unified.worklog.commit_delay,
    }
    return {k: v for k, v in flat.items() if v is not None}
