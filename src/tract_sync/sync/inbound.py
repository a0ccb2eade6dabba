"""Inbound sync: apply a Jira webhook event to the local document.

Each event walks one path through::

    received -> loop-check -> dropped
                           -> ignored            (event type "other")
                           -> fetch-if-needed -> transform -> write -> commit

and ends in one ``InboundState``.  The loop check always runs first.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from tract_sync.core.client import ORIGIN_PROPERTY, JiraClient
from tract_sync.core.repo import GitRepo
from tract_sync.exceptions import GitError, RemoteError
from tract_sync.file_handler import atomic_write_text, read_text
from tract_sync.sync.document import serialize_document, ticket_path
from tract_sync.sync.mapper import SchemaMapper
from tract_sync.sync.models import (
    EventType,
    InboundPolicy,
    InboundResult,
    InboundState,
    WebhookEvent,
)

logger = logging.getLogger(__name__)


def comment_origin(comment: dict[str, Any] | None) -> str | None:
    """Value of the ``tract-sync.origin`` property on a Jira comment."""
    for prop in (comment or {}).get("properties") or []:
        if prop.get("key") != ORIGIN_PROPERTY:
            continue
        value = prop.get("value")
        if isinstance(value, dict):
            return value.get("origin")
    return None


class LoopGuard:
    """Recognize events caused by the engine's own writes."""

    def __init__(self, identity: str) -> None:
        self.identity = identity

    def is_own_event(self, event: WebhookEvent) -> bool:
        if event.actor and event.actor == self.identity:
            return True
        return comment_origin(event.comment) == self.identity


class InboundSync:
    """Overwrite local documents from Jira issues.

    Args:
        client: Jira REST client, used to re-fetch incomplete events.
        mapper: Schema mapper.
        repo: Ticket repository.
        issues_dir: Absolute path of the issues directory.
        guard: Loop guard for the sync identity.
        policy: How the remote record is applied (only remote-wins).
    """

    def __init__(
        self,
        client: JiraClient,
        mapper: SchemaMapper,
        repo: GitRepo,
        issues_dir: Path,
        guard: LoopGuard,
        policy: InboundPolicy = InboundPolicy.REMOTE_WINS,
    ) -> None:
        self.client = client
        self.mapper = mapper
        self.repo = repo
        self.issues_dir = issues_dir
        self.guard = guard
        self.policy = policy

    def handle(self, event: WebhookEvent) -> InboundResult:
        key = event.issue_key
        log_extra = {"ticket": key, "event": event.event_type.value}

        if self.guard.is_own_event(event):
            logger.debug("Dropping own event for %s", key, extra=log_extra)
            return InboundResult(
                ticket_id=key,
                state=InboundState.DROPPED,
                reason="originated from sync identity",
            )
        if event.event_type == EventType.OTHER:
            return InboundResult(
                ticket_id=key,
                state=InboundState.IGNORED,
                reason="unsupported event type",
            )
        if not key:
            return InboundResult(
                state=InboundState.IGNORED, reason="event carries no issue"
            )

        try:
            issue = self._fetch_if_needed(event)
        except RemoteError as exc:
            logger.error(
                "Failed to fetch %s: %s", key, exc, extra=log_extra
            )
            return InboundResult(
                ticket_id=key, state=InboundState.FAILED, error=str(exc)
            )

        ticket = self.mapper.ticket_from_issue(issue)
        path = ticket_path(self.issues_dir, ticket.id)
        rendered = serialize_document(ticket)
        if path.exists() and read_text(path) == rendered:
            logger.debug("%s already up to date", key, extra=log_extra)
            return InboundResult(
                ticket_id=ticket.id, state=InboundState.UNCHANGED
            )

        atomic_write_text(path, rendered)
        try:
            self.repo.commit(f"Sync {ticket.id} from Jira", [path])
        except GitError as exc:
            logger.error(
                "Wrote %s but commit failed: %s", path, exc, extra=log_extra
            )
            return InboundResult(
                ticket_id=ticket.id, state=InboundState.FAILED, error=str(exc)
            )

        logger.info(
            "Synced %s from Jira (%s)",
            ticket.id,
            self.policy.value,
            extra=log_extra,
        )
        return InboundResult(ticket_id=ticket.id, state=InboundState.COMMITTED)

    def _fetch_if_needed(self, event: WebhookEvent) -> dict[str, Any]:
        """Comment events and payloads without a comment list are
        incomplete; fetch the whole issue for those."""
        issue = event.issue or {}
        fields = issue.get("fields") or {}
        if event.is_comment_event or "comment" not in fields:
            return self.client.get_issue(event.issue_key)
        return issue
