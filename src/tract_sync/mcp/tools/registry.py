"""ToolSpec and ToolRegistry for scope-based tool filtering.

Every MCP tool is described by a ``ToolSpec`` that pairs the tool
definition with the scopes it needs and an async handler taking
``(service, args)``.  Operators can restrict the exposed surface with a
scopes file, e.g. a read-only deployment that lists only
``WORKLOG_VIEW``.

Scopes in use:

- ``SYNC_PUSH`` -- apply local document changes to Jira.
- ``SYNC_EVENT`` -- apply Jira webhook events to the local store.
- ``TICKET_CREATE`` -- create tickets and reconcile the offline queue.
- ``WORKLOG_WRITE`` / ``WORKLOG_VIEW`` -- log and read time.
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path

import mcp.types as types

from ...exceptions import (
    MalformedDocument,
    NoSeconds,
    RemoteError,
)
from ...sync.engine import SyncService

logger = logging.getLogger(__name__)

SCOPES = frozenset(
    {"SYNC_PUSH", "SYNC_EVENT", "TICKET_CREATE", "WORKLOG_WRITE", "WORKLOG_VIEW"}
)


@dataclass(frozen=True, slots=True)
class ToolSpec:
    """Immutable specification for a single MCP tool.

    Attributes:
        tool: The MCP Tool definition (name, description, inputSchema).
        scopes: Scopes required to use this tool.  An empty frozenset means
            the tool is always available.
        handler: Async handler with signature (service, args) -> CallToolResult.
    """

    tool: types.Tool
    scopes: frozenset[str]
    handler: Callable[[SyncService, dict], Awaitable[types.CallToolResult]]


class ToolRegistry:
    """Registry of ToolSpecs with optional scope filtering.

    If allowed_scopes is None every spec is registered.  Otherwise a spec
    is registered only when its scopes are empty or a subset of
    allowed_scopes.
    """

    def __init__(
        self,
        specs: list[ToolSpec],
        allowed_scopes: frozenset[str] | None = None,
    ):
        self._specs: dict[str, ToolSpec] = {}
        for spec in specs:
            if (
                allowed_scopes is None
                or not spec.scopes
                or spec.scopes <= allowed_scopes
            ):
                self._specs[spec.tool.name] = spec

    def list_tools(self) -> list[types.Tool]:
        """Return list of types.Tool for all registered specs."""
        return [spec.tool for spec in self._specs.values()]

    def tool_count(self) -> int:
        return len(self._specs)

    async def call_tool(
        self,
        name: str,
        arguments: dict | None,
        service: SyncService,
    ) -> types.CallToolResult:
        """Dispatch a tool call to its registered handler.

        Remote failures, validation errors and unexpected exceptions are
        translated into structured error results with a corrective action.

        Raises:
            ValueError: If the tool name is not registered.
        """
        from .errors import build_error_response, translate_remote_error

        spec = self._specs.get(name)
        if spec is None:
            raise ValueError(f"Unknown tool: {name}")
        args = arguments or {}
        try:
            return await spec.handler(service, args)
        except RemoteError as e:
            logger.warning("Jira error in %s: %s", name, e)
            return translate_remote_error(e, _issue_key_from_args(args))
        except (ValueError, MalformedDocument, NoSeconds) as e:
            return build_error_response(
                "validation_error",
                str(e),
                "Check parameter values and retry.",
            )
        except Exception as e:
            logger.exception("Unexpected error in tool %s", name)
            return build_error_response(
                "server_error",
                str(e),
                "Check the server log and retry.",
            )


def _issue_key_from_args(args: dict) -> str | None:
    return args.get("issue_id") or args.get("project_key")


def load_scopes_file(path: str | Path) -> frozenset[str]:
    """Read the scopes a deployment grants, one per line.

    Blank lines and ``#`` comments are ignored.  Example::

        # read-only deployment
        WORKLOG_VIEW

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If a line names an unknown scope, or no scope is listed.
    """
    path = Path(path)
    granted: set[str] = set()
    for line_num, raw in enumerate(path.read_text().splitlines(), 1):
        scope = raw.split("#", 1)[0].strip()
        if not scope:
            continue
        if scope not in SCOPES:
            raise ValueError(
                f"Unknown scope '{scope}' at line {line_num} in {path}. "
                f"Known scopes: {', '.join(sorted(SCOPES))}."
            )
        granted.add(scope)
    if not granted:
        raise ValueError(f"No scopes found in {path}.")
    return frozenset(granted)
