"""Pydantic models for the bidirectional sync engine.

Defines the core data contracts used across all sync modules:

- ``Relation``, ``Link``: typed, directional ticket relationships.
- ``Comment``, ``TimeTracking``, ``Ticket``: the local document model.
- ``ChangeSet``: sparse field-level difference between two tickets.
- ``FieldGroup``, ``FieldOutcome``, ``SyncReport``, ``FileResult``,
  ``PushReport``: outbound results.
- ``EventType``, ``WebhookEvent``, ``InboundState``, ``InboundResult``:
  inbound events and their outcome.
- ``TicketDraft``, ``QueueItem``, ``CreateResult``, ``ReconcileResult``:
  ticket creation and the offline queue.
- ``WorklogEntry``, ``WorklogResult``: time logging.

All models are frozen (immutable); use ``model_copy(update=...)`` to derive
a modified instance.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

# ---------------------------------------------------------------------------
# Relations
# ---------------------------------------------------------------------------


class Relation(str, Enum):
    """Canonical link relations, each with exactly one inverse."""

    BLOCKS = "blocks"
    BLOCKED_BY = "blocked_by"
    DUPLICATES = "duplicates"
    DUPLICATED_BY = "duplicated_by"
    RELATES = "relates"
    DEPENDS_ON = "depends_on"
    REQUIRED_BY = "required_by"
    CAUSES = "causes"
    CAUSED_BY = "caused_by"
    CLONES = "clones"
    CLONED_BY = "cloned_by"

    @property
    def inverse(self) -> Relation:
        return _INVERSES[self]


_INVERSES: dict[Relation, Relation] = {
    Relation.BLOCKS: Relation.BLOCKED_BY,
    Relation.BLOCKED_BY: Relation.BLOCKS,
    Relation.DUPLICATES: Relation.DUPLICATED_BY,
    Relation.DUPLICATED_BY: Relation.DUPLICATES,
    Relation.RELATES: Relation.RELATES,
    Relation.DEPENDS_ON: Relation.REQUIRED_BY,
    Relation.REQUIRED_BY: Relation.DEPENDS_ON,
    Relation.CAUSES: Relation.CAUSED_BY,
    Relation.CAUSED_BY: Relation.CAUSES,
    Relation.CLONES: Relation.CLONED_BY,
    Relation.CLONED_BY: Relation.CLONES,
}


class Link(BaseModel):
    """A directional link from the owning ticket to ``target``."""

    relation: Relation
    target: str

    model_config = {"frozen": True}

    def key(self) -> tuple[str, str]:
        return (self.relation.value, self.target)


# ---------------------------------------------------------------------------
# Ticket document
# ---------------------------------------------------------------------------


class Comment(BaseModel):
    """A ticket comment.  Identity is the (author, timestamp, body) triple."""

    author: str
    timestamp: str
    body: str

    model_config = {"frozen": True}

    def key(self) -> tuple[str, str, str]:
        return (self.author, self.timestamp, self.body)


class TimeTracking(BaseModel):
    """Time-tracking values in integer seconds."""

    estimate: int | None = None
    logged: int | None = None
    remaining: int | None = None

    model_config = {"frozen": True}

    def is_empty(self) -> bool:
        return (
            self.estimate is None
            and self.logged is None
            and self.remaining is None
        )


class Ticket(BaseModel):
    """A ticket as stored in ``issues/<id>.md``.

    Attributes:
        id: Jira key (``APP-12``) or temp id (``APP-TEMP-...``).
        labels: Label set; order is preserved on disk but ignored by diff.
        components: Component set; same semantics as ``labels``.
        resolved: Resolved-at timestamp.
        parent: Parent ticket id for sub-tasks.
        offline: True while the ticket is waiting in the offline queue.
    """

    id: str
    title: str = ""
    type: str | None = None
    status: str | None = None
    priority: str | None = None
    assignee: str | None = None
    reporter: str | None = None
    labels: list[str] = []
    components: list[str] = []
    fix_version: str | None = None
    affected_version: str | None = None
    resolution: str | None = None
    resolved: str | None = None
    parent: str | None = None
    links: list[Link] = []
    time_tracking: TimeTracking = Field(default_factory=TimeTracking)
    description: str = ""
    comments: list[Comment] = []
    created: str | None = None
    updated: str | None = None
    offline: bool = False

    model_config = {"frozen": True}


class ChangeSet(BaseModel):
    """Sparse difference between two ticket snapshots.

    Attributes:
        fields: Changed field name -> new value.  Links are stored as a
            ``list[Link]``; time tracking as a ``TimeTracking``.
        new_comments: Comments present in the new snapshot only.
    """

    fields: dict[str, Any] = {}
    new_comments: list[Comment] = []

    model_config = {"frozen": True}

    @property
    def is_empty(self) -> bool:
        return not self.fields and not self.new_comments

    def keys(self) -> set[str]:
        """Names of everything that changed, ``comments`` included."""
        names = set(self.fields)
        if self.new_comments:
            names.add("comments")
        return names


# ---------------------------------------------------------------------------
# Outbound results
# ---------------------------------------------------------------------------


class FieldGroup(str, Enum):
    """Independently-applied groups of an outbound change-set."""

    STATUS = "status"
    FIELDS = "fields"
    LINKS = "links"
    COMMENTS = "comments"


class FieldOutcome(BaseModel):
    """Result of applying one field group to the remote record.

    Attributes:
        group: The field group.
        success: Whether every call for the group succeeded.
        fields: Field names (or link keys / comment authors) covered.
        error: Error message if the group failed.
        payload: Remote error payload, verbatim, when available.
        skipped: Entries deliberately not applied (e.g. links to temp ids).
    """

    group: FieldGroup
    success: bool
    fields: list[str] = []
    error: str | None = None
    payload: Any = None
    skipped: list[str] = []

    model_config = {"frozen": True}


class SyncReport(BaseModel):
    """Aggregate outcome of one outbound sync for one ticket."""

    ticket_id: str
    outcomes: list[FieldOutcome] = []
    started_at: str
    completed_at: str | None = None

    model_config = {"frozen": True}

    @property
    def ok(self) -> bool:
        return all(o.success for o in self.outcomes)

    @property
    def errors(self) -> list[FieldOutcome]:
        return [o for o in self.outcomes if not o.success]

    def outcome(self, group: FieldGroup) -> FieldOutcome | None:
        for o in self.outcomes:
            if o.group == group:
                return o
        return None

    def summary(self) -> str:
        """One line per field group, e.g. ``status: ok``."""
        lines = [f"Outbound sync for {self.ticket_id}"]
        if not self.outcomes:
            lines.append("  no changes")
        for o in self.outcomes:
            state = "ok" if o.success else f"FAILED ({o.error})"
            lines.append(f"  {o.group.value}: {state}")
        return "\n".join(lines)


class FileResult(BaseModel):
    """Outcome of one changed document in a git push.

    Exactly one of ``report``, ``error`` or ``skipped`` explains what
    happened to the file.
    """

    path: str
    ticket_id: str | None = None
    report: SyncReport | None = None
    error: str | None = None
    skipped: str | None = None

    model_config = {"frozen": True}

    @property
    def ok(self) -> bool:
        return self.error is None and (self.report is None or self.report.ok)


class PushReport(BaseModel):
    """Aggregate outcome of one local change notification.

    Attributes:
        dropped: The push was authored by the sync identity and ignored.
    """

    results: list[FileResult] = []
    dropped: bool = False
    started_at: str
    completed_at: str | None = None

    model_config = {"frozen": True}

    @property
    def ok(self) -> bool:
        return all(r.ok for r in self.results)

    @property
    def synced(self) -> list[FileResult]:
        return [r for r in self.results if r.report is not None]

    @property
    def errors(self) -> list[FileResult]:
        return [r for r in self.results if not r.ok]

    @property
    def skipped(self) -> list[FileResult]:
        return [r for r in self.results if r.skipped is not None]


# ---------------------------------------------------------------------------
# Inbound events
# ---------------------------------------------------------------------------


class EventType(str, Enum):
    """Normalized inbound webhook event types."""

    RECORD_CREATED = "record-created"
    RECORD_UPDATED = "record-updated"
    COMMENT_CREATED = "comment-created"
    COMMENT_UPDATED = "comment-updated"
    OTHER = "other"


_WEBHOOK_EVENTS: dict[str, EventType] = {
    "jira:issue_created": EventType.RECORD_CREATED,
    "jira:issue_updated": EventType.RECORD_UPDATED,
    "comment_created": EventType.COMMENT_CREATED,
    "comment_updated": EventType.COMMENT_UPDATED,
}


class WebhookEvent(BaseModel):
    """An inbound notification from Jira.

    Attributes:
        event_type: Normalized event type.
        actor: Name of the user who triggered the event.
        issue_key: Key of the affected issue.
        issue: Issue JSON embedded in the event, if any.
        comment: Comment JSON embedded in the event, if any.
    """

    event_type: EventType
    actor: str | None = None
    issue_key: str | None = None
    issue: dict[str, Any] | None = None
    comment: dict[str, Any] | None = None

    model_config = {"frozen": True}

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> WebhookEvent:
        """Build an event from a raw Jira webhook body."""
        raw_type = payload.get("webhookEvent") or ""
        user = payload.get("user") or {}
        issue = payload.get("issue")
        return cls(
            event_type=_WEBHOOK_EVENTS.get(raw_type, EventType.OTHER),
            actor=user.get("name") or user.get("accountId"),
            issue_key=(issue or {}).get("key"),
            issue=issue,
            comment=payload.get("comment"),
        )

    @property
    def is_comment_event(self) -> bool:
        return self.event_type in (
            EventType.COMMENT_CREATED,
            EventType.COMMENT_UPDATED,
        )


class InboundState(str, Enum):
    """Terminal states of the inbound state machine."""

    DROPPED = "dropped"
    IGNORED = "ignored"
    COMMITTED = "committed"
    UNCHANGED = "unchanged"
    FAILED = "failed"


class InboundPolicy(str, Enum):
    """How an inbound record is applied to the local document."""

    REMOTE_WINS = "remote-wins"


class InboundResult(BaseModel):
    """Outcome of processing one inbound event."""

    ticket_id: str | None = None
    state: InboundState
    reason: str | None = None
    error: str | None = None

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Ticket creation and offline queue
# ---------------------------------------------------------------------------


class TicketDraft(BaseModel):
    """Creation payload for a new ticket, replayed verbatim on reconcile."""

    title: str
    type: str = "task"
    priority: str | None = None
    assignee: str | None = None
    description: str = ""
    labels: list[str] = []
    components: list[str] = []
    links: list[Link] = []
    parent: str | None = None
    reporter: str | None = None

    model_config = {"frozen": True}


class QueueItem(BaseModel):
    """A persisted creation intent, keyed by temp id.

    ``real_id`` is recorded as soon as the remote accepts the ticket, so an
    interrupted promotion resumes without creating a duplicate.
    """

    temp_id: str
    project_key: str
    payload: TicketDraft
    created_at: str
    real_id: str | None = None

    model_config = {"frozen": True}


class CreateState(str, Enum):
    CREATED = "created"
    OFFLINE = "offline"


class CreateResult(BaseModel):
    """Result of ``TicketCreator.create_ticket()``.

    Attributes:
        id: Real key when ``state`` is CREATED, temp id when OFFLINE.
        state: Whether the remote accepted the ticket.
        error: The remote failure that forced the offline path.
    """

    id: str
    state: CreateState
    error: str | None = None

    model_config = {"frozen": True}


class PromotionResult(BaseModel):
    temp_id: str
    real_id: str | None = None
    error: str | None = None
    rewritten: list[str] = []

    model_config = {"frozen": True}


class ReconcileResult(BaseModel):
    """Counts and per-item detail from one ``reconcile()`` run."""

    promoted: int = 0
    still_queued: int = 0
    results: list[PromotionResult] = []

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Worklogs
# ---------------------------------------------------------------------------


class WorklogEntry(BaseModel):
    """An immutable time log line."""

    issue: str
    author: str
    started: str
    seconds: int
    comment: str = ""

    model_config = {"frozen": True}


class WorklogResult(BaseModel):
    """Local entry plus the outcome of the best-effort remote post."""

    entry: WorklogEntry
    remote_posted: bool
    remote_error: str | None = None

    model_config = {"frozen": True}
