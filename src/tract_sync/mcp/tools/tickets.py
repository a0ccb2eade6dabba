"""Ticket creation tool handlers for MCP server.

``ticket_create`` creates the issue in Jira and writes its document; when
Jira is unreachable the ticket is created locally under a temp id and
queued.  ``queue_reconcile`` replays the queue.
"""

from typing import Any

import mcp.types as types

from ...core.async_utils import run_sync
from ...sync.engine import SyncService
from ...sync.models import CreateState
from ...sync.reporter import format_reconcile_result
from .errors import require, text_result
from .registry import ToolSpec

_DRAFT_FIELDS = (
    "title",
    "type",
    "priority",
    "assignee",
    "reporter",
    "description",
    "labels",
    "components",
    "links",
    "parent",
)

TICKET_TOOLS: list[types.Tool] = [
    types.Tool(
        name="ticket_create",
        description=(
            "Create a ticket in Jira and write issues/<KEY>.md. If Jira is "
            "unreachable the ticket is created locally with a temporary id "
            "(<PROJECT>-TEMP-<n>) and promoted later by queue_reconcile. "
            "Description is Markdown."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=False,
            idempotentHint=False,
            openWorldHint=True,
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "project_key": {
                    "type": "string",
                    "description": "Jira project key, e.g. APP",
                },
                "title": {"type": "string", "description": "Summary"},
                "type": {
                    "type": "string",
                    "description": "Ticket type (default: task)",
                    "default": "task",
                },
                "priority": {"type": "string"},
                "assignee": {"type": "string"},
                "reporter": {"type": "string"},
                "description": {
                    "type": "string",
                    "description": "Body in Markdown",
                },
                "labels": {"type": "array", "items": {"type": "string"}},
                "components": {
                    "type": "array",
                    "items": {"type": "string"},
                },
                "links": {
                    "type": "array",
                    "description": "Links to other tickets",
                    "items": {
                        "type": "object",
                        "properties": {
                            "relation": {
                                "type": "string",
                                "description": "blocks, blocked_by, relates, ...",
                            },
                            "target": {"type": "string"},
                        },
                        "required": ["relation", "target"],
                    },
                },
                "parent": {
                    "type": "string",
                    "description": "Parent key for sub-tasks",
                },
            },
            "required": ["project_key", "title"],
        },
    ),
    types.Tool(
        name="queue_reconcile",
        description=(
            "Create queued offline tickets in Jira, rename their documents "
            "to the real key and rewrite references to the temporary id."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=True,
        ),
        inputSchema={"type": "object", "properties": {}, "required": []},
    ),
]


async def _handle_create(
    service: SyncService, args: dict[str, Any]
) -> types.CallToolResult:
    """Handle ticket_create."""
    require(args, "project_key", "title")
    draft = {k: args[k] for k in _DRAFT_FIELDS if args.get(k) is not None}
    result = await run_sync(service.create_ticket, args["project_key"], draft)

    if result.state is CreateState.CREATED:
        text = f"Created {result.id}: {args['title']}"
    else:
        text = (
            f"Jira unavailable; created {result.id} offline: {args['title']}\n"
            f"  Reason: {result.error}\n"
            "  Run queue_reconcile once Jira is reachable."
        )
    return text_result(text, result.model_dump(mode="json"))


async def _handle_reconcile(
    service: SyncService, args: dict[str, Any]
) -> types.CallToolResult:
    """Handle queue_reconcile."""
    result = await run_sync(service.reconcile)
    return text_result(
        format_reconcile_result(result), result.model_dump(mode="json")
    )


TICKET_SPECS: list[ToolSpec] = [
    ToolSpec(
        tool=TICKET_TOOLS[0],
        scopes=frozenset({"TICKET_CREATE"}),
        handler=_handle_create,
    ),
    ToolSpec(
        tool=TICKET_TOOLS[1],
        scopes=frozenset({"TICKET_CREATE"}),
        handler=_handle_reconcile,
    ),
]
