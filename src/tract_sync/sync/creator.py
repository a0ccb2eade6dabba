"""Ticket creation with an offline fallback, and queue reconciliation.

``create_ticket()`` tries Jira first.  When Jira is unreachable or rejects
the request, the ticket is still created locally under a temp id
(``<PROJECT>-TEMP-<n>``), marked ``offline: true`` and queued.

``reconcile()`` replays every queued creation.  A successful promotion

1. records the real key on the queue item (so an interrupted promotion
   never creates the issue twice),
2. renames ``issues/<temp>.md`` to ``issues/<real>.md`` and updates the
   embedded id,
3. rewrites ``links`` / ``parent`` references to the temp id in other
   documents and in other queue items,
4. commits the rename and the rewrites together, then deletes the queue
   item.

Failures leave the item and the document untouched; one failing item never
blocks the others.
"""

from __future__ import annotations

import logging
import threading
import time
from datetime import datetime, timezone
from pathlib import Path

from tract_sync.core.client import JiraClient
from tract_sync.core.repo import GitRepo
from tract_sync.exceptions import GitError, MalformedDocument, RemoteError
from tract_sync.sync.document import (
    DOCUMENT_SUFFIX,
    load_ticket,
    ticket_path,
    write_ticket,
)
from tract_sync.sync.mapper import SchemaMapper, map_relation
from tract_sync.sync.models import (
    CreateResult,
    CreateState,
    Link,
    PromotionResult,
    QueueItem,
    ReconcileResult,
    Ticket,
    TicketDraft,
)
from tract_sync.sync.locks import TicketLocks
from tract_sync.sync.outbound import OutboundSync
from tract_sync.sync.queue import OfflineQueue
from tract_sync.validators import is_temp_id, validate_project_key

logger = logging.getLogger(__name__)


def _timestamp() -> str:
    now = datetime.now(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


class TempIdAllocator:
    """Issue ``<PROJECT>-TEMP-<n>`` ids, strictly increasing per process.

    ``n`` starts from ``time.time_ns()`` and is bumped past the last id
    handed out and past any id *taken* reports as in use.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._last = 0

    def allocate(self, project_key: str, taken=None) -> str:
        with self._lock:
            n = max(time.time_ns(), self._last + 1)
            while taken is not None and taken(f"{project_key}-TEMP-{n}"):
                n += 1
            self._last = n
            return f"{project_key}-TEMP-{n}"


class TicketCreator:
    """Create tickets and promote offline ones.

    Args:
        client: Jira REST client.
        mapper: Schema mapper.
        repo: Ticket repository.
        issues_dir: Absolute path of the issues directory.
        queue: Offline creation queue.
        locks: Per-ticket locks shared with the rest of the engine.
    """

    def __init__(
        self,
        client: JiraClient,
        mapper: SchemaMapper,
        repo: GitRepo,
        issues_dir: Path,
        queue: OfflineQueue,
        locks: TicketLocks | None = None,
    ) -> None:
        self.client = client
        self.mapper = mapper
        self.repo = repo
        self.issues_dir = issues_dir
        self.queue = queue
        self.locks = locks or TicketLocks()
        self.temp_ids = TempIdAllocator()

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def create_ticket(
        self, project_key: str, draft: TicketDraft
    ) -> CreateResult:
        """Create a ticket remotely, or locally + queued when that fails.

        Never raises for remote failures.

        Raises:
            ValueError: If *project_key* is not a valid project key.
        """
        is_valid, message = validate_project_key(project_key)
        if not is_valid:
            raise ValueError(message)

        fields = self.mapper.draft_to_create_fields(project_key, draft)
        try:
            response = self.client.create_issue(fields)
        except RemoteError as exc:
            logger.warning(
                "Creating %s ticket remotely failed, queueing: %s",
                project_key,
                exc,
            )
            return self._create_offline(project_key, draft, exc)

        key = response["key"]
        ticket = self._ticket_from_draft(key, draft, offline=False)
        path = ticket_path(self.issues_dir, key)
        write_ticket(path, ticket)
        paths = [path, *self._update_inverse_links(key, ticket.links)]
        self._create_remote_links(self._link_triples(key, ticket.links))

        error = self._commit(f"Create {key}: {draft.title}", paths)
        logger.info("Created %s", key, extra={"ticket": key})
        return CreateResult(id=key, state=CreateState.CREATED, error=error)

    def _create_offline(
        self, project_key: str, draft: TicketDraft, cause: RemoteError
    ) -> CreateResult:
        temp_id = self.temp_ids.allocate(project_key, self._is_taken)
        ticket = self._ticket_from_draft(temp_id, draft, offline=True)
        path = ticket_path(self.issues_dir, temp_id)
        write_ticket(path, ticket)
        self.queue.save(
            QueueItem(
                temp_id=temp_id,
                project_key=project_key,
                payload=draft,
                created_at=_timestamp(),
            )
        )
        paths = [path, *self._update_inverse_links(temp_id, ticket.links)]
        self._commit(f"Create {temp_id}: {draft.title} (offline)", paths)
        logger.info(
            "Queued offline ticket %s",
            temp_id,
            extra={"ticket": temp_id, "temp_id": temp_id},
        )
        return CreateResult(
            id=temp_id, state=CreateState.OFFLINE, error=str(cause)
        )

    def _is_taken(self, temp_id: str) -> bool:
        return (
            ticket_path(self.issues_dir, temp_id).exists()
            or temp_id in self.queue
        )

    def _ticket_from_draft(
        self, ticket_id: str, draft: TicketDraft, offline: bool
    ) -> Ticket:
        now = _timestamp()
        return Ticket(
            id=ticket_id,
            title=draft.title,
            type=self.mapper.normalize_enum(draft.type, "type"),
            status=self.mapper.default("status"),
            priority=self.mapper.normalize_enum(draft.priority, "priority"),
            assignee=draft.assignee,
            reporter=draft.reporter,
            labels=list(draft.labels),
            components=list(draft.components),
            parent=draft.parent,
            links=list(draft.links),
            description=draft.description,
            created=now,
            updated=now,
            offline=offline,
        )

    # ------------------------------------------------------------------
    # Reconcile
    # ------------------------------------------------------------------

    def reconcile(self) -> ReconcileResult:
        """Promote every queued ticket that Jira now accepts."""
        results = []
        for listed in self.queue.items():
            with self.locks.hold(listed.temp_id):
                # reload: an earlier promotion may have rewritten it
                item = self.queue.load(listed.temp_id)
                if item is None:
                    continue
                results.append(self.promote(item))
        promoted = sum(1 for r in results if r.error is None)
        result = ReconcileResult(
            promoted=promoted,
            still_queued=len(results) - promoted,
            results=results,
        )
        if results:
            logger.info(
                "Reconciled offline queue: %d promoted, %d still queued",
                result.promoted,
                result.still_queued,
            )
        return result

    def promote(self, item: QueueItem) -> PromotionResult:
        """Create *item* remotely and rename its document to the real key."""
        temp_id = item.temp_id
        fresh = item.real_id is None
        if fresh:
            fields = self.mapper.draft_to_create_fields(
                item.project_key, item.payload
            )
            try:
                real_id = self.client.create_issue(fields)["key"]
            except RemoteError as exc:
                logger.info(
                    "%s still offline: %s",
                    temp_id,
                    exc,
                    extra={"temp_id": temp_id},
                )
                return PromotionResult(temp_id=temp_id, error=str(exc))
            item = item.model_copy(update={"real_id": real_id})
            self.queue.save(item)

        with self.locks.hold(item.real_id):
            return self._finish_promotion(item, fresh)

    def _finish_promotion(
        self, item: QueueItem, fresh: bool
    ) -> PromotionResult:
        temp_id, real_id = item.temp_id, item.real_id
        old_path = ticket_path(self.issues_dir, temp_id)
        new_path = ticket_path(self.issues_dir, real_id)
        if old_path.exists():
            ticket = load_ticket(old_path)
        elif new_path.exists():
            # renamed by an interrupted earlier run
            ticket = load_ticket(new_path)
        else:
            ticket = self._ticket_from_draft(real_id, item.payload, False)
        ticket = ticket.model_copy(update={"id": real_id, "offline": False})
        write_ticket(new_path, ticket)
        if old_path.exists():
            old_path.unlink()

        rewritten = self._rewrite_references(temp_id, real_id)
        self._rewrite_queued_references(temp_id, real_id)

        if fresh:
            triples = self._link_triples(real_id, ticket.links)
            for path in rewritten:
                other = load_ticket(path)
                triples |= self._link_triples(
                    other.id,
                    [link for link in other.links if link.target == real_id],
                )
            self._create_remote_links(triples)

        error = self._commit(
            f"Sync {temp_id} -> {real_id} from offline queue",
            [old_path, new_path, *rewritten],
        )
        if error:
            return PromotionResult(
                temp_id=temp_id,
                real_id=real_id,
                error=error,
                rewritten=[p.stem for p in rewritten],
            )
        self.queue.delete(temp_id)
        logger.info(
            "Promoted %s to %s",
            temp_id,
            real_id,
            extra={"ticket": real_id, "temp_id": temp_id},
        )
        return PromotionResult(
            temp_id=temp_id,
            real_id=real_id,
            rewritten=[p.stem for p in rewritten],
        )

    def _rewrite_references(self, temp_id: str, real_id: str) -> list[Path]:
        """Point ``links`` and ``parent`` of other documents at *real_id*."""
        changed: list[Path] = []
        if not self.issues_dir.is_dir():
            return changed
        for path in sorted(self.issues_dir.glob(f"*{DOCUMENT_SUFFIX}")):
            if path.stem in (temp_id, real_id):
                continue
            with self.locks.hold(path.stem):
                if self._rewrite_document(path, temp_id, real_id):
                    changed.append(path)
        return changed

    def _rewrite_document(
        self, path: Path, temp_id: str, real_id: str
    ) -> bool:
        try:
            ticket = load_ticket(path)
        except MalformedDocument as exc:
            logger.warning("Not rewriting %s: %s", path, exc)
            return False
        if ticket.parent != temp_id and not any(
            link.target == temp_id for link in ticket.links
        ):
            return False
        links = [
            Link(relation=link.relation, target=real_id)
            if link.target == temp_id
            else link
            for link in ticket.links
        ]
        parent = real_id if ticket.parent == temp_id else ticket.parent
        write_ticket(
            path,
            ticket.model_copy(update={"links": links, "parent": parent}),
        )
        return True

    def _rewrite_queued_references(self, temp_id: str, real_id: str) -> None:
        for other in self.queue.items():
            draft = other.payload
            if other.temp_id == temp_id:
                continue
            if draft.parent != temp_id and not any(
                link.target == temp_id for link in draft.links
            ):
                continue
            links = [
                Link(relation=link.relation, target=real_id)
                if link.target == temp_id
                else link
                for link in draft.links
            ]
            parent = real_id if draft.parent == temp_id else draft.parent
            self.queue.save(
                other.model_copy(
                    update={
                        "payload": draft.model_copy(
                            update={"links": links, "parent": parent}
                        )
                    }
                )
            )

    # ------------------------------------------------------------------
    # Links
    # ------------------------------------------------------------------

    def _update_inverse_links(
        self, ticket_id: str, links: list[Link]
    ) -> list[Path]:
        paths = []
        for link in links:
            with self.locks.hold(link.target):
                path = OutboundSync.update_inverse_link(
                    self.issues_dir, ticket_id, link, present=True
                )
            if path is not None:
                paths.append(path)
        return paths

    @staticmethod
    def _link_triples(
        ticket_id: str, links: list[Link]
    ) -> set[tuple[str, str, str]]:
        """Remote links as ``(type, source, target)``; a link and its
        inverse collapse onto the same triple."""
        triples = set()
        for link in links:
            if is_temp_id(link.target) or is_temp_id(ticket_id):
                continue
            link_type, inward = map_relation(link.relation)
            if inward:
                pair = (link.target, ticket_id)
            else:
                pair = (ticket_id, link.target)
            if link.relation.inverse == link.relation:
                pair = tuple(sorted(pair))
            triples.add((link_type, *pair))
        return triples

    def _create_remote_links(self, triples: set[tuple[str, str, str]]) -> None:
        for link_type, source, target in sorted(triples):
            try:
                self.client.create_link(link_type, source, target)
            except RemoteError as exc:
                logger.warning(
                    "Could not link %s %s %s: %s",
                    source,
                    link_type,
                    target,
                    exc,
                    extra={"ticket": source},
                )

    def _commit(self, subject: str, paths: list[Path]) -> str | None:
        """Commit *paths*; returns an error message instead of raising."""
        try:
            self.repo.commit(subject, paths)
        except GitError as exc:
            logger.error("Commit '%s' failed: %s", subject, exc)
            return str(exc)
        return None
