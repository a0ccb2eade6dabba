"""
Input validation for ticket ids, project keys and document paths.

Validators return ``(is_valid, error_message)`` tuples so callers can
decide whether to raise, log or report.
"""

import re

TICKET_ID_RE = re.compile(r"^[A-Z][A-Z0-9]+-\d+$")
TEMP_ID_RE = re.compile(r"^([A-Z][A-Z0-9]+)-TEMP-(\d+)$")
PROJECT_KEY_RE = re.compile(r"^[A-Z][A-Z0-9]+$")


def format_validation_error(field_name: str, reason: str) -> str:
    """Generate consistent error message for validation failures."""
    return f"{field_name} {reason}"


def is_temp_id(ticket_id: str) -> bool:
    """Return ``True`` if *ticket_id* is a locally-allocated temp id."""
    return bool(TEMP_ID_RE.match(ticket_id or ""))


def validate_ticket_id(ticket_id: str) -> tuple[bool, str]:
    """
    Validate a ticket id.

    Real Jira keys (``APP-123``) and temp ids (``APP-TEMP-1739...``) are
    both accepted.

    Returns:
        Tuple of (is_valid, error_message).
    """
    if not ticket_id or not ticket_id.strip():
        return (False, format_validation_error("Ticket id", "cannot be empty"))
    if TICKET_ID_RE.match(ticket_id) or TEMP_ID_RE.match(ticket_id):
        return (True, "")
    return (
        False,
        format_validation_error(
            "Ticket id",
            f"'{ticket_id}' must look like PROJ-123 or PROJ-TEMP-123",
        ),
    )


def validate_project_key(project_key: str) -> tuple[bool, str]:
    """
    Validate a Jira project key (uppercase letters and digits, letter first).

    Returns:
        Tuple of (is_valid, error_message).
    """
    if not project_key or not project_key.strip():
        return (
            False,
            format_validation_error("Project key", "cannot be empty"),
        )
    if not PROJECT_KEY_RE.match(project_key):
        return (
            False,
            format_validation_error(
                "Project key",
                f"'{project_key}' must be uppercase letters and digits",
            ),
        )
    return (True, "")
