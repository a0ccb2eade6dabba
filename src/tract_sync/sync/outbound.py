"""Outbound sync: apply a local change-set to the Jira issue.

A change-set is split into four field groups that are applied
independently, in this order:

1. **status** -- through the workflow: fetch the available transitions,
   execute the one whose destination matches the target status.  Status
   is never written as a plain field.
2. **fields** -- every changed simple field coalesced into one
   ``PUT /issue/{key}``.
3. **links** -- set difference between the links fetched fresh from Jira
   and the desired local links.  Links to temp ids are skipped until the
   target is promoted.
4. **comments** -- one ``POST`` per new comment, attributed and tagged
   with the ``tract-sync.origin`` comment property.

A failure in one group is recorded on its ``FieldOutcome`` and never stops
the others.

Inverse links on other local documents are maintained by
``update_inverse_link()``; the caller runs it under the target's lock.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from tract_sync.converters import markdown_to_jira
from tract_sync.core.client import JiraClient
from tract_sync.exceptions import NoTransitionPath, RemoteError
from tract_sync.sync.document import load_ticket, ticket_path, write_ticket
from tract_sync.sync.mapper import (
    READ_ONLY_FIELDS,
    SIMPLE_FIELDS,
    SchemaMapper,
    attribute,
    links_from_issue,
    map_relation,
)
from tract_sync.sync.models import (
    ChangeSet,
    Comment,
    FieldGroup,
    FieldOutcome,
    Link,
    SyncReport,
    Ticket,
)
from tract_sync.validators import is_temp_id

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _failure(
    group: FieldGroup, names: list[str], exc: Exception, **extra: Any
) -> FieldOutcome:
    payload = exc.payload if isinstance(exc, RemoteError) else None
    return FieldOutcome(
        group=group,
        success=False,
        fields=names,
        error=str(exc),
        payload=payload,
        **extra,
    )


def link_changes(
    old: list[Link], new: list[Link]
) -> tuple[list[Link], list[Link]]:
    """``(added, removed)`` between two link lists, compared by key."""
    old_keys = {link.key() for link in old}
    new_keys = {link.key() for link in new}
    added = [link for link in new if link.key() not in old_keys]
    removed = [link for link in old if link.key() not in new_keys]
    return added, removed


class OutboundSync:
    """Push local ticket changes to Jira.

    Args:
        client: Jira REST client.
        mapper: Schema mapper.
        api_user: Jira account the client authenticates as.  Comments by
            anyone else get an ``[author]`` attribution prefix.
        origin: Sync identity name stored in the comment origin property.
    """

    def __init__(
        self,
        client: JiraClient,
        mapper: SchemaMapper,
        api_user: str,
        origin: str,
    ) -> None:
        self.client = client
        self.mapper = mapper
        self.api_user = api_user
        self.origin = origin

    # ------------------------------------------------------------------
    # Main entry point
    # ------------------------------------------------------------------

    def apply(
        self, ticket_id: str, changes: ChangeSet, ticket: Ticket
    ) -> SyncReport:
        """Apply *changes* (computed from a diff ending in *ticket*).

        Returns:
            A ``SyncReport`` with one ``FieldOutcome`` per touched group.
        """
        started_at = _now()
        if changes.is_empty:
            return SyncReport(
                ticket_id=ticket_id,
                started_at=started_at,
                completed_at=started_at,
            )

        changed = changes.keys()
        ignored = sorted(changed & READ_ONLY_FIELDS)
        if ignored:
            logger.info(
                "%s: ignoring read-only fields %s",
                ticket_id,
                ", ".join(ignored),
                extra={"ticket": ticket_id},
            )

        outcomes: list[FieldOutcome] = []
        if "status" in changed and ticket.status:
            outcomes.append(self._apply_status(ticket_id, ticket.status))
        simple = changed & SIMPLE_FIELDS
        if simple:
            outcomes.append(self._apply_fields(ticket_id, ticket, simple))
        if "links" in changed:
            outcomes.append(self._apply_links(ticket_id, ticket.links))
        if changes.new_comments:
            outcomes.append(
                self._apply_comments(ticket_id, changes.new_comments)
            )

        report = SyncReport(
            ticket_id=ticket_id,
            outcomes=outcomes,
            started_at=started_at,
            completed_at=_now(),
        )
        for outcome in report.errors:
            logger.warning(
                "%s: %s failed: %s",
                ticket_id,
                outcome.group.value,
                outcome.error,
                extra={"ticket": ticket_id},
            )
        return report

    # ------------------------------------------------------------------
    # Field groups
    # ------------------------------------------------------------------

    def _apply_status(self, ticket_id: str, status: str) -> FieldOutcome:
        try:
            transitions = self.client.get_transitions(ticket_id)
            match = next(
                (
                    t
                    for t in transitions
                    if self.mapper.matches_remote(
                        (t.get("to") or {}).get("name", ""), status, "status"
                    )
                ),
                None,
            )
            if match is None:
                raise NoTransitionPath(
                    ticket_id,
                    status,
                    [(t.get("to") or {}).get("name", "") for t in transitions],
                )
            self.client.transition(ticket_id, str(match["id"]))
        except (RemoteError, NoTransitionPath) as exc:
            return _failure(FieldGroup.STATUS, ["status"], exc)
        logger.info(
            "%s: transitioned to %s via '%s'",
            ticket_id,
            status,
            match.get("name"),
            extra={"ticket": ticket_id},
        )
        return FieldOutcome(
            group=FieldGroup.STATUS, success=True, fields=["status"]
        )

    def _apply_fields(
        self, ticket_id: str, ticket: Ticket, names: set[str]
    ) -> FieldOutcome:
        fields = self.mapper.ticket_to_fields(ticket, names)
        covered = sorted(names)
        if not fields:
            return FieldOutcome(
                group=FieldGroup.FIELDS, success=True, fields=covered
            )
        try:
            self.client.update_fields(ticket_id, fields)
        except RemoteError as exc:
            return _failure(FieldGroup.FIELDS, covered, exc)
        logger.info(
            "%s: updated %s",
            ticket_id,
            ", ".join(sorted(fields)),
            extra={"ticket": ticket_id},
        )
        return FieldOutcome(
            group=FieldGroup.FIELDS, success=True, fields=covered
        )

    def _apply_links(self, ticket_id: str, desired: list[Link]) -> FieldOutcome:
        skipped = [
            f"{link.relation.value}:{link.target}"
            for link in desired
            if is_temp_id(link.target)
        ]
        wanted = {
            link.key(): link for link in desired if not is_temp_id(link.target)
        }
        try:
            issue = self.client.get_issue(ticket_id)
        except RemoteError as exc:
            return _failure(FieldGroup.LINKS, [], exc, skipped=skipped)

        existing = {
            link.key(): (link, link_id)
            for link, link_id in links_from_issue(issue)
        }
        touched: list[str] = []
        errors: list[RemoteError] = []

        for key, (link, link_id) in existing.items():
            if key in wanted:
                continue
            try:
                self.client.delete_link(link_id)
                touched.append(f"-{key[0]}:{key[1]}")
            except RemoteError as exc:
                errors.append(exc)

        for key, link in wanted.items():
            if key in existing:
                continue
            link_type, inward = map_relation(link.relation)
            source, target = (
                (link.target, ticket_id) if inward else (ticket_id, link.target)
            )
            try:
                self.client.create_link(link_type, source, target)
                touched.append(f"+{key[0]}:{key[1]}")
            except RemoteError as exc:
                errors.append(exc)

        if errors:
            return FieldOutcome(
                group=FieldGroup.LINKS,
                success=False,
                fields=touched,
                error="; ".join(str(e) for e in errors),
                payload=[e.payload for e in errors],
                skipped=skipped,
            )
        return FieldOutcome(
            group=FieldGroup.LINKS,
            success=True,
            fields=touched,
            skipped=skipped,
        )

    def _apply_comments(
        self, ticket_id: str, comments: list[Comment]
    ) -> FieldOutcome:
        posted: list[str] = []
        errors: list[RemoteError] = []
        for comment in comments:
            body = markdown_to_jira(comment.body)
            if comment.author != self.api_user:
                body = attribute(body, comment.author)
            try:
                self.client.add_comment(ticket_id, body, origin=self.origin)
                posted.append(f"{comment.author} {comment.timestamp}")
            except RemoteError as exc:
                errors.append(exc)

        if errors:
            return FieldOutcome(
                group=FieldGroup.COMMENTS,
                success=False,
                fields=posted,
                error="; ".join(str(e) for e in errors),
                payload=[e.payload for e in errors],
            )
        return FieldOutcome(
            group=FieldGroup.COMMENTS, success=True, fields=posted
        )

    # ------------------------------------------------------------------
    # Local inverse links
    # ------------------------------------------------------------------

    @staticmethod
    def update_inverse_link(
        issues_dir: Path, source_id: str, link: Link, present: bool
    ) -> Path | None:
        """Add or remove the inverse of ``source -link-> target`` on the
        target's document.

        Returns:
            The path written, or ``None`` when the target has no local
            document or already agrees.
        """
        path = ticket_path(issues_dir, link.target)
        if not path.exists():
            return None
        target = load_ticket(path)
        inverse = Link(relation=link.relation.inverse, target=source_id)
        has_inverse = any(
            other.key() == inverse.key() for other in target.links
        )
        if present == has_inverse:
            return None
        if present:
            links = [*target.links, inverse]
        else:
            links = [
                other
                for other in target.links
                if other.key() != inverse.key()
            ]
        write_ticket(path, target.model_copy(update={"links": links}))
        return path
