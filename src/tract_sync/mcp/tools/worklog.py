"""Worklog tool handlers for MCP server.

Tools: ``worklog_add``, ``worklog_list`` and ``timesheet``.  Entries are
appended to ``worklogs/<YYYY-MM>.jsonl`` immediately; the git commit is
batched.
"""

from typing import Any

import mcp.types as types

from ...core.async_utils import run_sync
from ...sync.engine import SyncService
from ...sync.mapper import format_seconds
from ...sync.reporter import format_timesheet
from ...sync.worklog import WorklogBatcher
from .errors import require, text_result
from .registry import ToolSpec

WORKLOG_TOOLS: list[types.Tool] = [
    types.Tool(
        name="worklog_add",
        description=(
            "Log time spent on a ticket. Time accepts 30m, 2h, 1.5h, 1d "
            "(8h), 1w (5d) or a bare number of hours. The entry is stored "
            "locally and posted to Jira when reachable."
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
                "issue_id": {"type": "string", "description": "Ticket id"},
                "author": {"type": "string", "description": "Who did the work"},
                "time": {"type": "string", "description": "Duration, e.g. 2h"},
                "comment": {"type": "string"},
                "started": {
                    "type": "string",
                    "description": "ISO-8601 start time (default: now)",
                },
            },
            "required": ["issue_id", "author", "time"],
        },
    ),
    types.Tool(
        name="worklog_list",
        description="List every worklog entry recorded for a ticket.",
        annotations=types.ToolAnnotations(
            readOnlyHint=True,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=False,
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "issue_id": {"type": "string", "description": "Ticket id"},
            },
            "required": ["issue_id"],
        },
    ),
    types.Tool(
        name="timesheet",
        description=(
            "List an author's worklog entries with a total, optionally "
            "limited to one day (YYYY-MM-DD), ISO week (YYYY-Www) or "
            "month (YYYY-MM)."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=True,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=False,
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "author": {"type": "string"},
                "day": {"type": "string"},
                "week": {"type": "string"},
                "month": {"type": "string"},
            },
            "required": ["author"],
        },
    ),
]


async def _handle_add(
    service: SyncService, args: dict[str, Any]
) -> types.CallToolResult:
    require(args, "issue_id", "author", "time")
    result = await run_sync(
        service.log_work,
        args["issue_id"],
        args["author"],
        args["time"],
        args.get("comment") or "",
        args.get("started"),
    )
    entry = result.entry
    text = (
        f"Logged {format_seconds(entry.seconds)} on {entry.issue} "
        f"for {entry.author} at {entry.started}"
    )
    if not result.remote_posted:
        text += f"\n  Not posted to Jira: {result.remote_error}"
    return text_result(text, result.model_dump(mode="json"))


async def _handle_list(
    service: SyncService, args: dict[str, Any]
) -> types.CallToolResult:
    require(args, "issue_id")
    entries = await run_sync(service.worklogs, args["issue_id"])
    return text_result(
        format_timesheet(entries, f"Worklogs for {args['issue_id']}"),
        {
            "issue_id": args["issue_id"],
            "total_seconds": WorklogBatcher.total(entries),
            "entries": [e.model_dump() for e in entries],
        },
    )


async def _handle_timesheet(
    service: SyncService, args: dict[str, Any]
) -> types.CallToolResult:
    require(args, "author")
    periods = {k: args[k] for k in ("day", "week", "month") if args.get(k)}
    if len(periods) > 1:
        raise ValueError("Give at most one of day, week or month")

    entries = await run_sync(service.timesheet, args["author"], **periods)
    title = f"Timesheet for {args['author']}"
    for kind, value in periods.items():
        title += f" ({kind} {value})"
    return text_result(
        format_timesheet(entries, title),
        {
            "author": args["author"],
            **periods,
            "total_seconds": WorklogBatcher.total(entries),
            "entries": [e.model_dump() for e in entries],
        },
    )


WORKLOG_SPECS: list[ToolSpec] = [
    ToolSpec(
        tool=WORKLOG_TOOLS[0],
        scopes=frozenset({"WORKLOG_WRITE"}),
        handler=_handle_add,
    ),
    ToolSpec(
        tool=WORKLOG_TOOLS[1],
        scopes=frozenset({"WORKLOG_VIEW"}),
        handler=_handle_list,
    ),
    ToolSpec(
        tool=WORKLOG_TOOLS[2],
        scopes=frozenset({"WORKLOG_VIEW"}),
        handler=_handle_timesheet,
    ),
]
