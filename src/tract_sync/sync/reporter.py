"""Sync report formatting functions.

Provides human-readable and machine-readable output for sync operations:

- ``format_sync_report`` -- per-ticket outbound summary.
- ``format_push_report`` -- summary of one local change notification.
- ``format_inbound_result`` -- one line per inbound event.
- ``format_reconcile_result`` -- offline queue promotion summary.
- ``format_timesheet`` -- worklog listing with a total.
- ``report_to_json`` / ``push_report_to_json`` -- structured dicts for MCP
  tool output.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from .mapper import format_seconds
from .worklog import WorklogBatcher

if TYPE_CHECKING:
    from .models import (
        InboundResult,
        PushReport,
        ReconcileResult,
        SyncReport,
        WorklogEntry,
    )

# ------------------------------------------------------------------
# Human-readable reports
# ------------------------------------------------------------------


def format_sync_report(report: SyncReport) -> str:
    """Format one ticket's outbound sync as human-readable text.

    Failed groups carry the remote error; skipped entries (links to
    tickets still offline) are listed so nothing disappears silently.

    Args:
        report: The completed sync report.

    Returns:
        Multi-line formatted string.
    """
    lines = [f"{report.ticket_id}:"]
    if not report.outcomes:
        lines.append("  no changes")
    for outcome in report.outcomes:
        label = outcome.group.value
        if outcome.success:
            detail = ", ".join(outcome.fields) if outcome.fields else "ok"
            lines.append(f"  {label}: {detail}")
        else:
            lines.append(f"  {label}: FAILED - {outcome.error}")
        if outcome.skipped:
            lines.append(
                f"  {label}: deferred {', '.join(outcome.skipped)}"
                " (target not yet created in Jira)"
            )
    return "\n".join(lines)


def format_push_report(push: PushReport) -> str:
    """Format a local change notification's outcome.

    Args:
        push: The push report.

    Returns:
        Multi-line formatted string.
    """
    if push.dropped:
        return "Push authored by the sync identity; nothing to do."

    lines: list[str] = []
    lines.append(
        f"Processed {len(push.results)} documents: "
        f"{len(push.synced)} synced, {len(push.skipped)} skipped, "
        f"{len(push.errors)} with errors"
    )
    lines.append("")

    for result in push.synced:
        lines.append(format_sync_report(result.report))
        lines.append("")

    failed = [r for r in push.results if r.error]
    if failed:
        lines.append("Errors:")
        for r in failed:
            lines.append(f"  {r.path}: {r.error}")
        lines.append("")

    if push.skipped:
        lines.append("Skipped:")
        for r in push.skipped:
            lines.append(f"  {r.path}: {r.skipped}")
        lines.append("")

    return "\n".join(lines).rstrip()


def format_inbound_result(result: InboundResult) -> str:
    target = result.ticket_id or "(no issue)"
    line = f"{target}: {result.state.value}"
    if result.reason:
        line += f" ({result.reason})"
    if result.error:
        line += f" - {result.error}"
    return line


def format_reconcile_result(result: ReconcileResult) -> str:
    lines = [
        f"Offline queue: {result.promoted} promoted, "
        f"{result.still_queued} still queued"
    ]
    for r in result.results:
        if r.error is None:
            line = f"  {r.temp_id} -> {r.real_id}"
            if r.rewritten:
                line += f" (updated references in {', '.join(r.rewritten)})"
        else:
            line = f"  {r.temp_id}: {r.error}"
        lines.append(line)
    return "\n".join(lines)


def format_timesheet(entries: list[WorklogEntry], title: str) -> str:
    """Format worklog entries as a table-like listing with a total."""
    if not entries:
        return f"{title}\n  no entries"
    lines = [title]
    for e in entries:
        line = f"  {e.started}  {e.issue:<14} {format_seconds(e.seconds):>7}"
        if e.comment:
            line += f"  {e.comment}"
        lines.append(line)
    lines.append(f"  Total: {format_seconds(WorklogBatcher.total(entries))}")
    return "\n".join(lines)


# ------------------------------------------------------------------
# JSON output
# ------------------------------------------------------------------


def report_to_json(report: SyncReport) -> dict:
    """Convert a sync report to a structured dict for JSON serialisation.

    Args:
        report: The sync report.

    Returns:
        Dict with the ticket id, overall status and per-group outcomes.
    """
    outcomes = []
    for o in report.outcomes:
        entry: dict = {
            "group": o.group.value,
            "success": o.success,
            "fields": list(o.fields),
        }
        if o.error:
            entry["error"] = o.error
        if o.payload is not None:
            entry["payload"] = o.payload
        if o.skipped:
            entry["skipped"] = list(o.skipped)
        outcomes.append(entry)

    return {
        "ticket_id": report.ticket_id,
        "ok": report.ok,
        "started_at": report.started_at,
        "completed_at": report.completed_at,
        "outcomes": outcomes,
    }


def push_report_to_json(push: PushReport) -> dict:
    results = []
    for r in push.results:
        entry: dict = {"path": r.path, "ticket_id": r.ticket_id, "ok": r.ok}
        if r.report is not None:
            entry["report"] = report_to_json(r.report)
        if r.error:
            entry["error"] = r.error
        if r.skipped:
            entry["skipped"] = r.skipped
        results.append(entry)

    return {
        "dropped": push.dropped,
        "ok": push.ok,
        "started_at": push.started_at,
        "completed_at": push.completed_at,
        "counts": {
            "total": len(push.results),
            "synced": len(push.synced),
            "skipped": len(push.skipped),
            "errors": len(push.errors),
        },
        "results": results,
    }
