"""MCP tool handlers for the two sync paths.

Defines two tools:

- ``sync_git_push`` -- apply the ticket documents changed by a push to Jira.
- ``sync_jira_event`` -- apply one Jira webhook event to the local store.

Both are meant to be driven by the webhook front end; an agent can also
call them directly to replay a push or an event.
"""

from __future__ import annotations

import logging
from typing import Any

import mcp.types as types

from ...core.async_utils import run_sync
from ...sync.engine import SyncService
from ...sync.reporter import (
    format_inbound_result,
    format_push_report,
    push_report_to_json,
)
from .errors import require, text_result
from .registry import ToolSpec

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Tool definitions
# ---------------------------------------------------------------------------


SYNC_TOOLS: list[types.Tool] = [
    types.Tool(
        name="sync_git_push",
        description=(
            "Sync ticket documents changed by a git push to Jira. Each "
            "changed file under the issues directory is diffed against its "
            "previous version and only the changed field groups are sent. "
            "Pushes authored by the sync identity are ignored."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=True,
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "changedFiles": {
                    "type": "array",
                    "description": "Files changed by the push",
                    "items": {
                        "type": "object",
                        "properties": {
                            "path": {
                                "type": "string",
                                "description": "Repository-relative path",
                            },
                            "oldContent": {
                                "type": ["string", "null"],
                                "description": "Text before the push (null when added)",
                            },
                            "newContent": {
                                "type": ["string", "null"],
                                "description": "Text after the push (null when deleted)",
                            },
                        },
                        "required": ["path"],
                    },
                },
                "author": {
                    "type": "string",
                    "description": "Push author, 'name <email>' or bare name",
                },
                "message": {
                    "type": "string",
                    "description": "Head commit message",
                },
            },
            "required": ["changedFiles"],
        },
    ),
    types.Tool(
        name="sync_jira_event",
        description=(
            "Apply a Jira webhook event to the local ticket store. The "
            "issue is re-fetched when the event is incomplete, written to "
            "issues/<KEY>.md and committed. Events caused by the sync "
            "identity are dropped."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=True,
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "event": {
                    "type": "object",
                    "description": (
                        "Webhook body as sent by Jira (webhookEvent, user, "
                        "issue, comment)"
                    ),
                },
            },
            "required": ["event"],
        },
    ),
]


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


async def _handle_git_push(
    service: SyncService, args: dict[str, Any]
) -> types.CallToolResult:
    require(args, "changedFiles")
    if not isinstance(args["changedFiles"], list):
        raise ValueError("changedFiles must be a list")
    report = await run_sync(service.handle_git_push, args)
    return text_result(format_push_report(report), push_report_to_json(report))


async def _handle_jira_event(
    service: SyncService, args: dict[str, Any]
) -> types.CallToolResult:
    require(args, "event")
    event = args["event"]
    if not isinstance(event, dict):
        raise ValueError("event must be a JSON object")
    result = await run_sync(service.handle_remote_event, event)
    return text_result(
        format_inbound_result(result), result.model_dump(mode="json")
    )


SYNC_SPECS: list[ToolSpec] = [
    ToolSpec(
        tool=SYNC_TOOLS[0],
        scopes=frozenset({"SYNC_PUSH"}),
        handler=_handle_git_push,
    ),
    ToolSpec(
        tool=SYNC_TOOLS[1],
        scopes=frozenset({"SYNC_EVENT"}),
        handler=_handle_jira_event,
    ),
]
