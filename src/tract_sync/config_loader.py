"""
YAML config file discovery and loading for tract_sync.

A ticket repository may carry its own ``.tract/config.yml``; a user-wide
file under ``~/.config/tract_sync/`` supplies the rest.  Files may pull in
fragments with ``!include`` (handy for keeping credentials out of the
repository) and reference environment variables as ``${VAR}`` or
``${VAR:-default}``.

Usage:
    from tract_sync.config_loader import load_hierarchical_config

    raw = load_hierarchical_config(repo_path)
"""

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

ENV_OVERRIDE = "TRACT_SYNC_CONFIG"

# relative to the ticket repository, highest precedence first
REPO_CONFIG_NAMES = (".tract/config.yml", ".tract/config.yaml")

USER_CONFIG = Path(".config") / "tract_sync" / "config.yml"

_ENV_REF = re.compile(r"\$\{(?P<name>[^}:]+?)(?::-(?P<default>.*?))?\}")


# ---------------------------------------------------------------------------
# ${VAR} references
# ---------------------------------------------------------------------------


def interpolate_env_vars(value: str) -> str:
    """Expand ``${VAR}`` and ``${VAR:-default}`` references in *value*.

    An unset or empty variable expands to its default, or to ``""`` when
    there is none.  An unterminated ``${`` is kept as written.
    """
    return _ENV_REF.sub(
        lambda m: os.environ.get(m["name"]) or m["default"] or "", value
    )


def _interpolate_recursive(obj: Any) -> Any:
    if isinstance(obj, dict):
        return {key: _interpolate_recursive(val) for key, val in obj.items()}
    if isinstance(obj, list):
        return list(map(_interpolate_recursive, obj))
    if isinstance(obj, str):
        return interpolate_env_vars(obj)
    return obj


# ---------------------------------------------------------------------------
# !include
# ---------------------------------------------------------------------------


class ConfigLoader(yaml.SafeLoader):
    """SafeLoader that also understands ``!include <path>``.

    Relative include paths resolve against the including file.  Each loader
    knows the chain of files that led to it, so a cycle is reported instead
    of recursing forever.  ``yaml.SafeLoader`` itself is left alone.
    """

    def __init__(self, stream, chain: tuple[Path, ...] = ()):
        super().__init__(stream)
        self.chain = chain

    def construct_include(self, node: yaml.ScalarNode) -> Any:
        target = Path(self.construct_scalar(node)).expanduser()
        if not target.is_absolute():
            target = self.chain[-1].parent / target
        target = target.resolve()

        if target in self.chain:
            cycle = " -> ".join(str(p) for p in (*self.chain, target))
            raise ValueError(f"Circular include detected: {cycle}")
        if not target.is_file():
            raise FileNotFoundError(
                f"Include file not found: {target} "
                f"(referenced from {self.chain[-1]})"
            )
        return _load_yaml_with_includes(target, _include_stack=self.chain)


ConfigLoader.add_constructor("!include", ConfigLoader.construct_include)


def _load_yaml_with_includes(
    path: Path,
    *,
    _include_stack: tuple[Path, ...] = (),
) -> Any:
    """Parse one YAML file, following ``!include`` directives."""
    path = Path(path).resolve()
    with path.open(encoding="utf-8") as fh:
        loader = ConfigLoader(fh, (*_include_stack, path))
        try:
            return loader.get_single_data()
        finally:
            loader.dispose()


# ---------------------------------------------------------------------------
# Discovery and merge
# ---------------------------------------------------------------------------


def discover_config_files(repo_path: str | Path | None = None) -> list[Path]:
    """Config files that exist, highest precedence first.

    1. the file named by ``TRACT_SYNC_CONFIG``
    2. ``.tract/config.yml`` then ``.tract/config.yaml`` in the ticket
       repository (the current directory when *repo_path* is not given)
    3. ``~/.config/tract_sync/config.yml``
    """
    root = Path(repo_path) if repo_path else Path.cwd()
    candidates = [root / name for name in REPO_CONFIG_NAMES]
    candidates.append(Path.home() / USER_CONFIG)

    override = os.environ.get(ENV_OVERRIDE)
    if override:
        candidates.insert(0, Path(override).expanduser().resolve())

    found: list[Path] = []
    for path in candidates:
        if path.is_file() and path not in found:
            found.append(path)
    return found


def load_hierarchical_config(
    repo_path: str | Path | None = None,
) -> dict[str, Any]:
    """Merge every discovered config file into one dict.

    Files are applied from lowest to highest precedence and a top-level
    section from a stronger file replaces the whole section of a weaker
    one; sections are not deep-merged.  ``${VAR}`` references are expanded
    after merging.  No files at all yields ``{}``.

    Raises:
        yaml.YAMLError: If a file is not valid YAML.
        FileNotFoundError, ValueError: For a broken ``!include``.
    """
    merged: dict[str, Any] = {}
    for path in reversed(discover_config_files(repo_path)):
        logger.debug("Loading config: %s", path)
        data = _load_yaml_with_includes(path)
        if data is None:
            continue
        if not isinstance(data, dict):
            logger.warning(
                "Config file %s has non-dict root (%s), skipping",
                path,
                type(data).__name__,
            )
            continue
        merged.update(data)

    if not merged:
        logger.debug("No config found, using zero-config defaults")
    return _interpolate_recursive(merged)
