"""Append-only worklogs with batched commits.

Entries live in monthly JSONL buckets, ``worklogs/<YYYY-MM>.jsonl``, one
JSON object per line::

    {"issue": "APP-12", "author": "alice", "started": "2026-02-12T10:00:00.000Z",
     "seconds": 7200, "comment": "pairing"}

The bucket is chosen by the entry's ``started`` month (UTC).  Entries are
never rewritten; a correction is a new entry.

Every append is written and fsynced before anything else happens.  The
git commit is deferred: the first append arms a ``CommitScheduler`` timer
and every append until it fires rides on the same commit.  ``flush()``
commits immediately and must run on shutdown.
"""

from __future__ import annotations

import json
import logging
import threading
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Callable

from tract_sync.core.client import JiraClient
from tract_sync.core.repo import GitRepo
from tract_sync.exceptions import GitError, NoSeconds, RemoteError
from tract_sync.file_handler import append_line
from tract_sync.sync.mapper import format_seconds, to_seconds
from tract_sync.sync.models import WorklogEntry, WorklogResult
from tract_sync.validators import is_temp_id, validate_ticket_id

logger = logging.getLogger(__name__)

WORKLOG_SUFFIX = ".jsonl"
JIRA_STARTED_FORMAT = "%Y-%m-%dT%H:%M:%S.000+0000"


def parse_started(value: str | None) -> datetime:
    """Parse an ISO-8601 timestamp (``Z`` allowed) into an aware UTC
    datetime.  ``None`` means now."""
    if not value:
        return datetime.now(timezone.utc)
    parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def format_started(moment: datetime) -> str:
    """``2026-02-12T10:00:00.000Z``"""
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def iso_week(moment: datetime) -> str:
    """ISO week label, e.g. ``2026-W07``."""
    year, week, _ = moment.isocalendar()
    return f"{year}-W{week:02d}"


class CommitScheduler:
    """One-shot debounce timer around a commit callback.

    The first ``schedule()`` arms a timer of fixed length; further calls
    while it is armed do nothing.  The callback runs on the timer thread.
    """

    def __init__(self, delay: float, callback: Callable[[], object]) -> None:
        self.delay = delay
        self._callback = callback
        self._lock = threading.Lock()
        self._timer: threading.Timer | None = None

    @property
    def armed(self) -> bool:
        return self._timer is not None

    def schedule(self) -> bool:
        """Arm the timer.  Returns ``False`` if it was already armed."""
        with self._lock:
            if self._timer is not None:
                return False
            self._timer = threading.Timer(self.delay, self._fire)
            self._timer.daemon = True
            self._timer.start()
            return True

    def cancel(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

    def flush(self) -> object:
        """Cancel the pending timer and run the callback now."""
        self.cancel()
        return self._callback()

    def _fire(self) -> None:
        with self._lock:
            self._timer = None
        self._callback()


class WorklogBatcher:
    """Record time spent on tickets.

    Args:
        client: Jira REST client for the best-effort remote post.
        repo: Ticket repository.
        worklogs_dir: Absolute path of the worklogs directory.
        commit_delay: Seconds between the first append and the commit.
    """

    def __init__(
        self,
        client: JiraClient,
        repo: GitRepo,
        worklogs_dir: Path,
        commit_delay: float = 300,
    ) -> None:
        self.client = client
        self.repo = repo
        self.worklogs_dir = worklogs_dir
        self.scheduler = CommitScheduler(commit_delay, self.commit)
        self._write_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Append
    # ------------------------------------------------------------------

    def append(
        self,
        issue_id: str,
        author: str,
        time: str,
        comment: str = "",
        started: str | None = None,
    ) -> WorklogResult:
        """Log *time* (``"2h"``, ``"30m"``, ``"1d"``...) on *issue_id*.

        Raises:
            NoSeconds: If *time* does not parse.  Nothing is written.
            ValueError: If *issue_id* or *started* is invalid.
        """
        is_valid, message = validate_ticket_id(issue_id)
        if not is_valid:
            raise ValueError(message)
        seconds = to_seconds(time)
        if not seconds:
            raise NoSeconds(time)
        moment = parse_started(started)

        entry = WorklogEntry(
            issue=issue_id,
            author=author,
            started=format_started(moment),
            seconds=seconds,
            comment=comment or "",
        )
        path = self.worklogs_dir / f"{moment:%Y-%m}{WORKLOG_SUFFIX}"
        with self._write_lock:
            append_line(path, json.dumps(entry.model_dump()))
        logger.info(
            "Logged %s on %s for %s",
            format_seconds(seconds),
            issue_id,
            author,
            extra={"ticket": issue_id},
        )

        remote_error = None
        if is_temp_id(issue_id):
            remote_error = "ticket is offline; not posted to Jira"
        else:
            try:
                self.client.add_worklog(
                    issue_id,
                    seconds,
                    moment.strftime(JIRA_STARTED_FORMAT),
                    entry.comment,
                )
            except RemoteError as exc:
                logger.warning(
                    "Worklog for %s kept locally, Jira post failed: %s",
                    issue_id,
                    exc,
                    extra={"ticket": issue_id},
                )
                remote_error = str(exc)

        self.scheduler.schedule()
        return WorklogResult(
            entry=entry,
            remote_posted=remote_error is None,
            remote_error=remote_error,
        )

    # ------------------------------------------------------------------
    # Commit
    # ------------------------------------------------------------------

    def commit(self) -> str | None:
        """Commit every pending change under the worklogs directory.

        Returns:
            The commit sha, or ``None`` if there was nothing to commit or
            the commit failed (failures are logged).
        """
        prefix = self.worklogs_dir.relative_to(self.repo.root).as_posix()
        try:
            if not self.repo.has_changes(prefix):
                return None
            stamp = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")
            return self.repo.commit(
                f"Worklog entries {stamp}", [self.worklogs_dir]
            )
        except GitError as exc:
            logger.error("Worklog commit failed: %s", exc)
            return None

    def flush(self) -> str | None:
        """Cancel the pending timer and commit now."""
        return self.scheduler.flush()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def _entries(self) -> list[WorklogEntry]:
        if not self.worklogs_dir.is_dir():
            return []
        entries: list[WorklogEntry] = []
        for path in sorted(self.worklogs_dir.glob(f"*{WORKLOG_SUFFIX}")):
            with open(path, encoding="utf-8") as fh:
                for number, line in enumerate(fh, start=1):
                    if not line.strip():
                        continue
                    try:
                        entries.append(
                            WorklogEntry.model_validate(json.loads(line))
                        )
                    except ValueError as exc:
                        logger.warning(
                            "Skipping malformed line %s:%d: %s",
                            path.name,
                            number,
                            exc,
                        )
        return entries

    def get_worklogs(self, issue_id: str) -> list[WorklogEntry]:
        """Every entry logged on *issue_id*, oldest first."""
        return sorted(
            (e for e in self._entries() if e.issue == issue_id),
            key=lambda e: e.started,
        )

    def get_timesheet(
        self,
        author: str,
        day: date | str | None = None,
        week: str | None = None,
        month: str | None = None,
    ) -> list[WorklogEntry]:
        """Entries by *author*, optionally limited to one day, ISO week
        (``2026-W07``) or month (``2026-02``), oldest first."""
        if isinstance(day, str):
            day = date.fromisoformat(day)

        def keep(entry: WorklogEntry) -> bool:
            if entry.author != author:
                return False
            moment = parse_started(entry.started)
            if day is not None:
                return moment.date() == day
            if week is not None:
                return iso_week(moment) == week
            if month is not None:
                return f"{moment:%Y-%m}" == month
            return True

        return sorted(
            (e for e in self._entries() if keep(e)),
            key=lambda e: e.started,
        )

    @staticmethod
    def total(entries: list[WorklogEntry]) -> int:
        """Seconds logged across *entries*."""
        return sum(e.seconds for e in entries)
