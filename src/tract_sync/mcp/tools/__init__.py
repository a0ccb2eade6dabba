"""MCP tool handlers for tract_sync.

Each module defines its ``types.Tool`` list and the matching ``ToolSpec``
list; handlers bridge to the synchronous ``SyncService`` with
``run_sync()`` and return structured results.
"""

from .errors import build_error_response, translate_remote_error
from .registry import ToolRegistry, ToolSpec, load_scopes_file
from .sync import SYNC_SPECS, SYNC_TOOLS
from .tickets import TICKET_SPECS, TICKET_TOOLS
from .worklog import WORKLOG_SPECS, WORKLOG_TOOLS

ALL_SPECS: list[ToolSpec] = SYNC_SPECS + TICKET_SPECS + WORKLOG_SPECS

__all__ = [
    "build_error_response",
    "translate_remote_error",
    # Registry
    "ToolSpec",
    "ToolRegistry",
    "load_scopes_file",
    # Spec lists
    "ALL_SPECS",
    "SYNC_SPECS",
    "TICKET_SPECS",
    "WORKLOG_SPECS",
    # Tool lists
    "SYNC_TOOLS",
    "TICKET_TOOLS",
    "WORKLOG_TOOLS",
]
