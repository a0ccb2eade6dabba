"""Bidirectional ticket sync engine.

Public API for keeping ``issues/<ID>.md`` documents in a git repository in
step with Jira issues.

Architecture
------------
Two independent one-way paths share a document model and a schema mapper:

* **Outbound** (local -> Jira): a git push notification carries the old
  and new text of each changed document.  Both are parsed, diffed into a
  sparse ``ChangeSet``, and the change-set is applied to Jira field group
  by field group.
* **Inbound** (Jira -> local): a webhook event is loop-checked, the issue
  re-fetched when the event is incomplete, converted into a document and
  committed.  The remote record wins.

Ticket creation goes through the offline queue when Jira is unreachable;
worklogs are appended locally first and committed in batches.

Modules:

- ``document``  -- parse / serialize / diff ticket documents.
- ``mapper``    -- ``SchemaMapper``: enum normalization, relation table,
  duration parsing, record translation.
- ``outbound``  -- ``OutboundSync``: apply a change-set to Jira.
- ``inbound``   -- ``InboundSync``, ``LoopGuard``: apply webhook events.
- ``queue``     -- ``OfflineQueue``: durable pending creations.
- ``creator``   -- ``TicketCreator``: create, queue and promote tickets.
- ``worklog``   -- ``WorklogBatcher``, ``CommitScheduler``.
- ``locks``     -- ``TicketLocks``: per-ticket critical sections.
- ``engine``    -- ``SyncService``: routes triggers to the above.
- ``models``    -- pydantic data contracts.
- ``reporter``  -- human-readable and JSON report formatting.

Usage example
-------------
::

    from tract_sync.config import load_config
    from tract_sync.sync import SyncService, format_push_report

    with SyncService.from_config(load_config()) as service:
        service.reconcile()
        report = service.handle_git_push(payload)
        print(format_push_report(report))
"""

from .creator import TicketCreator
from .document import diff, parse_document, serialize_document
from .engine import SyncService
from .inbound import InboundSync, LoopGuard
from .locks import TicketLocks
from .mapper import SchemaMapper, format_seconds, map_relation, to_seconds
from .models import (
    ChangeSet,
    Comment,
    CreateResult,
    Link,
    PushReport,
    ReconcileResult,
    Relation,
    SyncReport,
    Ticket,
    TicketDraft,
    WebhookEvent,
    WorklogEntry,
)
from .outbound import OutboundSync
from .queue import OfflineQueue
from .reporter import (
    format_push_report,
    format_sync_report,
    push_report_to_json,
    report_to_json,
)
from .worklog import CommitScheduler, WorklogBatcher

__all__ = [
    "ChangeSet",
    "Comment",
    "CommitScheduler",
    "CreateResult",
    "InboundSync",
    "Link",
    "LoopGuard",
    "OfflineQueue",
    "OutboundSync",
    "PushReport",
    "ReconcileResult",
    "Relation",
    "SchemaMapper",
    "SyncReport",
    "SyncService",
    "Ticket",
    "TicketCreator",
    "TicketDraft",
    "TicketLocks",
    "WebhookEvent",
    "WorklogBatcher",
    "WorklogEntry",
    "diff",
    "format_push_report",
    "format_seconds",
    "format_sync_report",
    "map_relation",
    "parse_document",
    "push_report_to_json",
    "report_to_json",
    "serialize_document",
    "to_seconds",
]
