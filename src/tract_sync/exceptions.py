"""Error kinds raised by the sync engine.

Every error derives from ``TractSyncError`` so callers at the command
surface can catch the family in one clause.  Remote failures are split in
two: ``RemoteUnavailable`` covers network-level problems and 5xx responses
(ticket creation falls back to the offline queue on these), while
``RemoteRejected`` carries the 4xx status code and the error payload
returned by Jira so it can be surfaced verbatim.
"""

from __future__ import annotations

from typing import Any


class TractSyncError(Exception):
    """Base class for all sync engine errors."""


class MalformedDocument(TractSyncError):
    """A local ticket document could not be parsed."""

    def __init__(self, message: str, path: str | None = None) -> None:
        self.path = path
        if path:
            message = f"{path}: {message}"
        super().__init__(message)


class RemoteError(TractSyncError):
    """Base class for failures talking to the remote service."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        payload: Any = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload


class RemoteUnavailable(RemoteError):
    """Network-level failure or a 5xx response."""


class RemoteRejected(RemoteError):
    """The remote service rejected the request (4xx)."""

    def error_messages(self) -> list[str]:
        """Flatten Jira's ``errorMessages`` / ``errors`` payload into strings."""
        if not isinstance(self.payload, dict):
            return [str(self.payload)] if self.payload else []
        messages = list(self.payload.get("errorMessages") or [])
        for field, msg in (self.payload.get("errors") or {}).items():
            messages.append(f"{field}: {msg}")
        return messages


class NoTransitionPath(TractSyncError):
    """No workflow transition leads from the current status to the target."""

    def __init__(
        self, ticket_id: str, target: str, available: list[str]
    ) -> None:
        self.ticket_id = ticket_id
        self.target = target
        self.available = available
        choices = ", ".join(available) if available else "none"
        super().__init__(
            f"No transition to '{target}' for {ticket_id} "
            f"(available: {choices})"
        )


class NoSeconds(TractSyncError):
    """A duration string could not be converted to seconds."""

    def __init__(self, value: str) -> None:
        self.value = value
        super().__init__(
            f"Invalid time format '{value}'. "
            "Use e.g. 2h, 30m, 1d, 1w or a bare number of hours."
        )


class GitError(TractSyncError):
    """A git command failed in the ticket repository."""

    def __init__(self, command: list[str], returncode: int, stderr: str) -> None:
        self.command = command
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(
            f"git {' '.join(command)} exited with {returncode}: {stderr.strip()}"
        )
