"""Runtime configuration for the sync service.

Reads Jira connection settings, the repository location and the sync
identity from CLI args, environment variables, .env files, and YAML config
file fallbacks.

Precedence (highest to lowest):
    CLI args > Environment variables > .env file > YAML config > Built-in defaults

Environment variables:
    JIRA_URL: Jira base URL (required)
    JIRA_USERNAME: Jira username used for API calls (required)
    JIRA_PASSWORD: Jira password or API token (required)
    JIRA_INSECURE: Skip SSL verification (optional, default: false)
    TRACT_REPO_PATH: Path to the ticket repository (optional, default: cwd)
    SYNC_USER: Name of the sync identity (optional, default: tract-sync)
        Must be the Jira account name in JIRA_USERNAME too: the loop check
        drops Jira events whose actor is SYNC_USER, and the engine writes
        to Jira as JIRA_USERNAME.
    SYNC_EMAIL: Email of the sync identity (optional, default: tract-sync@localhost)
    TRACT_COMMIT_DELAY: Worklog commit debounce in seconds (optional, default: 300)
"""

import logging
import os
from dataclasses import dataclass
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

DEFAULT_SYNC_USER = "tract-sync"
DEFAULT_SYNC_EMAIL = "tract-sync@localhost"
DEFAULT_COMMIT_DELAY = 300


@dataclass
class Config:
    jira_url: str
    username: str
    password: str
    repo_path: str = "."
    sync_user: str = DEFAULT_SYNC_USER
    sync_email: str = DEFAULT_SYNC_EMAIL
    insecure: bool = False
    debug: bool = False
    commit_delay: float = DEFAULT_COMMIT_DELAY


def validate_config(config: Config) -> None:
    """Validate configuration values and raise ValueError if invalid.

    Args:
        config: Config instance to validate.

    Raises:
        ValueError: If URL format is invalid, credentials are empty or the
            commit delay is not positive.
    """
    config.jira_url = config.jira_url.strip()

    if not config.jira_url.startswith(("http://", "https://")):
        raise ValueError(
            f"Invalid Jira URL '{config.jira_url}': must start with http:// or https://"
        )

    parsed = urlparse(config.jira_url)
    if not parsed.hostname:
        raise ValueError(
            f"Invalid Jira URL '{config.jira_url}': URL must include a hostname"
        )

    config.jira_url = config.jira_url.removesuffix("/")

    if not config.username.strip():
        raise ValueError(
            "Jira username cannot be empty. Set JIRA_USERNAME environment variable."
        )

    if not config.password.strip():
        raise ValueError(
            "Jira password cannot be empty. Set JIRA_PASSWORD environment variable."
        )

    if not config.sync_user.strip():
        raise ValueError("Sync identity name cannot be empty (SYNC_USER).")

    if config.commit_delay <= 0:
        raise ValueError(
            f"Invalid commit delay {config.commit_delay}: must be a positive number of seconds"
        )

    if config.sync_user.strip() != config.username.strip():
        logger.warning(
            "Sync identity '%s' differs from the Jira account '%s'; "
            "Jira events caused by the engine's own writes will not be "
            "recognized as its own. Set SYNC_USER=%s.",
            config.sync_user,
            config.username,
            config.username,
        )

    if config.insecure:
        logger.warning(
            "WARNING: SSL verification disabled (insecure=True). Use only for development."
        )


_TRUTHY = ("true", "1", "yes", "on")


def _env_bool(key: str) -> bool | None:
    """True/False from an env var, ``None`` when it is unset."""
    raw = os.getenv(key)
    return None if raw is None else raw.lower() in _TRUTHY


def _required(label: str, env_key: str, name: str, *values) -> str:
    value = next((v for v in values if v), None)
    if not value:
        raise ValueError(
            f"Jira {label} not found. Set {env_key} environment variable, "
            f"pass --{name} CLI argument, or add '{name}' to config.yml."
        )
    return value.strip()


def _commit_delay(fb: dict) -> float:
    raw = os.getenv("TRACT_COMMIT_DELAY")
    if raw is None:
        return float(fb.get("commit_delay", DEFAULT_COMMIT_DELAY))
    try:
        return float(raw)
    except ValueError:
        raise ValueError(
            f"Invalid TRACT_COMMIT_DELAY '{raw}': must be a number of seconds"
        ) from None


def load_config(
    url: str | None = None,
    username: str | None = None,
    password: str | None = None,
    repo_path: str | None = None,
    insecure: bool = False,
    debug: bool = False,
    yaml_fallbacks: dict | None = None,
) -> Config:
    """Resolve every setting and return a validated ``Config``.

    Each value comes from the first source that has one: CLI argument,
    environment (``load_dotenv()`` must already have run for .env values),
    *yaml_fallbacks*, built-in default.  Boolean CLI flags can only switch
    a setting on; an env var set to a false value wins over the YAML file.

    Args:
        yaml_fallbacks: Flat dict from ``config_schema.to_fallbacks()``
            (keys: url, username, password, insecure, debug, repo_path,
            sync_user, sync_email, commit_delay).

    Raises:
        ValueError: If URL, username or password is missing everywhere, or
            a value is invalid.
    """
    fb = yaml_fallbacks or {}
    env = os.getenv

    def flag(cli: bool, env_key: str, key: str) -> bool:
        if cli:
            return True
        from_env = _env_bool(env_key)
        return from_env if from_env is not None else bool(fb.get(key, False))

    config = Config(
        jira_url=_required(
            "URL", "JIRA_URL", "url", url, env("JIRA_URL"), fb.get("url")
        ),
        username=_required(
            "username",
            "JIRA_USERNAME",
            "username",
            username,
            env("JIRA_USERNAME"),
            fb.get("username"),
        ),
        password=_required(
            "password",
            "JIRA_PASSWORD",
            "password",
            password,
            env("JIRA_PASSWORD"),
            fb.get("password"),
        ),
        repo_path=(
            repo_path or env("TRACT_REPO_PATH") or fb.get("repo_path") or "."
        ),
        sync_user=(
            env("SYNC_USER") or fb.get("sync_user") or DEFAULT_SYNC_USER
        ).strip(),
        sync_email=(
            env("SYNC_EMAIL") or fb.get("sync_email") or DEFAULT_SYNC_EMAIL
        ).strip(),
        insecure=flag(insecure, "JIRA_INSECURE", "insecure"),
        debug=flag(debug, "TRACT_DEBUG", "debug"),
        commit_delay=_commit_delay(fb),
    )
    validate_config(config)
    return config
