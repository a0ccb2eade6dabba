"""Sync service: routes triggers to the sync components.

``SyncService`` owns one instance of every component for a repository and
is the only object the command surface talks to:

1. ``handle_git_push()`` -- local document changes -> Outbound Sync.
2. ``handle_remote_event()`` -- Jira webhook events -> Inbound Sync.
3. ``create_ticket()`` / ``reconcile()`` -- ticket creation and the
   offline queue.
4. ``log_work()`` / ``worklogs()`` / ``timesheet()`` -- worklogs.
5. ``close()`` -- flushes the pending worklog commit; call on shutdown.

Every operation that reads and writes a ticket runs under that ticket's
lock.  Error handling is per document: one bad file never aborts a push.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any

from tract_sync.config import Config
from tract_sync.config_schema import UnifiedConfig
from tract_sync.core.client import JiraClient
from tract_sync.core.repo import GitRepo, has_origin_trailer
from tract_sync.exceptions import GitError, MalformedDocument
from tract_sync.sync.creator import TicketCreator
from tract_sync.sync.document import (
    diff,
    is_ticket_path,
    parse_document,
    ticket_id_from_path,
)
from tract_sync.sync.inbound import InboundSync, LoopGuard
from tract_sync.sync.locks import TicketLocks
from tract_sync.sync.mapper import SchemaMapper
from tract_sync.sync.models import (
    CreateResult,
    FileResult,
    InboundResult,
    Link,
    PushReport,
    ReconcileResult,
    TicketDraft,
    WebhookEvent,
    WorklogEntry,
    WorklogResult,
)
from tract_sync.sync.outbound import OutboundSync, link_changes
from tract_sync.sync.queue import OfflineQueue
from tract_sync.sync.worklog import WorklogBatcher
from tract_sync.validators import is_temp_id

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def author_name(author: Any) -> str | None:
    """Name part of ``"name <email>"``, ``{"name": ...}`` or a bare name."""
    if not author:
        return None
    if isinstance(author, dict):
        return author.get("name")
    return str(author).split("<", 1)[0].strip() or None


class SyncService:
    """Bidirectional sync between ``<repo>/issues`` and Jira.

    Args:
        config: Connection and identity settings.
        unified: Repository layout, value mapping and worklog settings.
        client: Jira REST client.
        repo: Git repository; built from *config* when omitted.
    """

    def __init__(
        self,
        config: Config,
        unified: UnifiedConfig,
        client: JiraClient,
        repo: GitRepo | None = None,
    ) -> None:
        self.config = config
        self.client = client
        root = Path(config.repo_path).resolve()
        self.repo = repo or GitRepo(root, config.sync_user, config.sync_email)

        layout = unified.repo
        self.issues_prefix = layout.issues_dir.strip("/")
        self.issues_dir = self.repo.root / self.issues_prefix

        self.locks = TicketLocks()
        self.mapper = SchemaMapper(unified.mapping, sync_user=config.username)
        self.outbound = OutboundSync(
            client,
            self.mapper,
            api_user=config.username,
            origin=config.sync_user,
        )
        self.inbound = InboundSync(
            client,
            self.mapper,
            self.repo,
            self.issues_dir,
            LoopGuard(config.sync_user),
        )
        self.queue = OfflineQueue(self.repo.root / layout.queue_dir)
        self.creator = TicketCreator(
            client,
            self.mapper,
            self.repo,
            self.issues_dir,
            self.queue,
            locks=self.locks,
        )
        self.worklog = WorklogBatcher(
            client,
            self.repo,
            self.repo.root / layout.worklogs_dir,
            commit_delay=config.commit_delay,
        )

    @classmethod
    def from_config(
        cls, config: Config, unified: UnifiedConfig | None = None
    ) -> SyncService:
        return cls(config, unified or UnifiedConfig(), JiraClient(config))

    # ------------------------------------------------------------------
    # Local -> Jira
    # ------------------------------------------------------------------

    def handle_git_push(self, payload: dict[str, Any]) -> PushReport:
        """Sync the ticket documents changed by one push.

        Args:
            payload: ``{"changedFiles": [{"path", "oldContent",
                "newContent"}], "author"?, "message"?}``.  Paths outside the
                issues directory are ignored.

        Returns:
            A ``PushReport`` with one ``FileResult`` per ticket document.
        """
        started_at = _now()
        author = author_name(payload.get("author"))
        message = payload.get("message") or ""
        if author == self.config.sync_user or has_origin_trailer(
            message, self.config.sync_user
        ):
            logger.debug("Dropping push authored by the sync identity")
            return PushReport(
                dropped=True, started_at=started_at, completed_at=_now()
            )

        results: list[FileResult] = []
        for change in payload.get("changedFiles") or []:
            path = change.get("path") or ""
            if not is_ticket_path(path, self.issues_prefix):
                continue
            results.append(self._sync_changed_file(path, change))

        return PushReport(
            results=results, started_at=started_at, completed_at=_now()
        )

    def _sync_changed_file(
        self, path: str, change: dict[str, Any]
    ) -> FileResult:
        ticket_id = ticket_id_from_path(path)
        new_content = change.get("newContent")
        if new_content is None:
            return FileResult(
                path=path, ticket_id=ticket_id, skipped="document deleted"
            )
        if is_temp_id(ticket_id):
            return FileResult(
                path=path,
                ticket_id=ticket_id,
                skipped="offline ticket; synced once promoted",
            )

        try:
            new = parse_document(new_content, path)
            if new.id != ticket_id:
                raise MalformedDocument(
                    f"id '{new.id}' does not match the file name", path
                )
        except MalformedDocument as exc:
            logger.warning(
                "Not syncing %s: %s", path, exc, extra={"ticket": ticket_id}
            )
            return FileResult(path=path, ticket_id=ticket_id, error=str(exc))

        old = None
        old_content = change.get("oldContent")
        if old_content:
            try:
                old = parse_document(old_content, path)
            except MalformedDocument as exc:
                logger.warning(
                    "Previous version of %s unreadable, diffing against "
                    "empty: %s",
                    path,
                    exc,
                )

        changes = diff(old, new)
        if changes.is_empty:
            return FileResult(
                path=path, ticket_id=ticket_id, skipped="no changes"
            )

        with self.locks.hold(ticket_id):
            report = self.outbound.apply(ticket_id, changes, new)

        if "links" in changes.fields:
            added, removed = link_changes(old.links if old else [], new.links)
            self._maintain_inverse_links(ticket_id, added, removed)

        return FileResult(path=path, ticket_id=ticket_id, report=report)

    def _maintain_inverse_links(
        self, ticket_id: str, added: list[Link], removed: list[Link]
    ) -> None:
        """Mirror link changes on the target documents, one commit."""
        changed: list[Path] = []
        pending = [(link, True) for link in added]
        pending += [(link, False) for link in removed]
        for link, present in pending:
            with self.locks.hold(link.target):
                try:
                    path = OutboundSync.update_inverse_link(
                        self.issues_dir, ticket_id, link, present
                    )
                except MalformedDocument as exc:
                    logger.warning(
                        "Cannot update inverse link on %s: %s",
                        link.target,
                        exc,
                    )
                    continue
            if path is not None:
                changed.append(path)
        if not changed:
            return
        try:
            self.repo.commit(f"Update links to {ticket_id}", changed)
        except GitError as exc:
            logger.error(
                "Inverse link commit for %s failed: %s",
                ticket_id,
                exc,
                extra={"ticket": ticket_id},
            )

    # ------------------------------------------------------------------
    # Jira -> Local
    # ------------------------------------------------------------------

    def handle_remote_event(self, payload: dict[str, Any]) -> InboundResult:
        """Apply one Jira webhook body to the local store."""
        event = WebhookEvent.from_payload(payload)
        # loop check first, without touching any lock
        if not event.issue_key or self.inbound.guard.is_own_event(event):
            return self.inbound.handle(event)
        with self.locks.hold(event.issue_key):
            return self.inbound.handle(event)

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create_ticket(
        self, project_key: str, draft: TicketDraft | dict[str, Any]
    ) -> CreateResult:
        if isinstance(draft, dict):
            draft = TicketDraft.model_validate(draft)
        return self.creator.create_ticket(project_key, draft)

    def reconcile(self) -> ReconcileResult:
        return self.creator.reconcile()

    # ------------------------------------------------------------------
    # Worklogs
    # ------------------------------------------------------------------

    def log_work(
        self,
        issue_id: str,
        author: str,
        time: str,
        comment: str = "",
        started: str | None = None,
    ) -> WorklogResult:
        return self.worklog.append(issue_id, author, time, comment, started)

    def worklogs(self, issue_id: str) -> list[WorklogEntry]:
        return self.worklog.get_worklogs(issue_id)

    def timesheet(
        self,
        author: str,
        day: date | str | None = None,
        week: str | None = None,
        month: str | None = None,
    ) -> list[WorklogEntry]:
        return self.worklog.get_timesheet(
            author, day=day, week=week, month=month
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Commit pending worklog entries.  Safe to call more than once."""
        sha = self.worklog.flush()
        if sha:
            logger.info("Flushed pending worklog commit %s", sha[:8])

    def __enter__(self) -> SyncService:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
