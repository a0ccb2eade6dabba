"""Error response builders and shared helpers for MCP tool handlers.

Structured error responses carry a corrective action so an agent can
recover without a human, e.g. by fixing a parameter or retrying once Jira
is reachable again.
"""

from typing import Any

import mcp.types as types

from ...exceptions import RemoteError, RemoteRejected, RemoteUnavailable


def build_error_response(
    error_type: str, message: str, corrective_action: str
) -> types.CallToolResult:
    """Build a structured error response with corrective action.

    Args:
        error_type: Error category (not_found, permission_denied,
            validation_error, remote_unavailable, server_error)
        message: Human-readable error description
        corrective_action: Specific action the agent can take to resolve the error

    Returns:
        CallToolResult with isError=True

    Examples:
        >>> build_error_response("validation_error", "time is required", "Provide time, e.g. '2h'.")
        CallToolResult(content=[TextContent(...)], isError=True)
    """
    error_text = f"Error ({error_type}): {message}\n\nAction: {corrective_action}"

    return types.CallToolResult(
        content=[types.TextContent(type="text", text=error_text)],
        isError=True,
    )


def text_result(
    text: str, structured: dict[str, Any] | None = None
) -> types.CallToolResult:
    """Successful result with text content and optional structured JSON."""
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=text)],
        structuredContent=structured,
    )


def require(args: dict, *names: str) -> None:
    """Raise ValueError naming the first missing or empty argument."""
    for name in names:
        if args.get(name) in (None, ""):
            raise ValueError(f"{name} is required")


# ---------------------------------------------------------------------------
# Remote error translation
# ---------------------------------------------------------------------------


def translate_remote_error(
    error: RemoteError, issue_key: str | None = None
) -> types.CallToolResult:
    """Translate a Jira failure into a structured error response.

    Rejections keep Jira's own error messages verbatim; the HTTP status
    decides the category and the suggested action.
    """
    if isinstance(error, RemoteUnavailable):
        return build_error_response(
            "remote_unavailable",
            str(error),
            "Jira is unreachable. Local changes are kept; retry later "
            "(queued tickets are promoted by queue_reconcile).",
        )

    message = str(error)
    if isinstance(error, RemoteRejected):
        details = error.error_messages()
        if details:
            message = f"{message}: {'; '.join(details)}"

    match error.status_code:
        case 401 | 403:
            return build_error_response(
                "permission_denied",
                message,
                "Check JIRA_USERNAME / JIRA_PASSWORD and the account's "
                "project permissions.",
            )
        case 404:
            target = f"'{issue_key}'" if issue_key else "the issue"
            return build_error_response(
                "not_found",
                message,
                f"Verify that {target} exists in Jira.",
            )
        case 400:
            return build_error_response(
                "validation_error",
                message,
                "Fix the rejected fields and retry.",
            )
        case _:
            return build_error_response(
                "server_error",
                message,
                "Contact the Jira administrator or retry later.",
            )
