"""MCP server exposing the ticket sync service over stdio.

This module implements the Model Context Protocol server that lets the
webhook front end and AI agents drive the sync service: apply pushes and
Jira events, create tickets (offline when needed) and log time.

Transport: stdio
Protocol: JSON-RPC 2.0 over MCP
"""

import argparse
import asyncio
import logging
import sys

import mcp.server.stdio
import mcp.types as types
from mcp.server import NotificationOptions, Server
from mcp.server.models import InitializationOptions

from .. import __version__
from ..core.async_utils import run_sync
from ..exceptions import RemoteError
from ..logger import setup_logging
from ..sync.engine import SyncService
from .lifespan import server_lifespan
from .tools import (
    ALL_SPECS,
    ToolRegistry,
    build_error_response,
    load_scopes_file,
)
from .tools.registry import ToolSpec

logger = logging.getLogger(__name__)

server = Server("tract-sync")

# Initialized in main()
_service: SyncService | None = None
_registry: ToolRegistry | None = None


# ---------------------------------------------------------------------------
# Ping tool (always available, no scope required)
# ---------------------------------------------------------------------------


async def _handle_ping(
    service: SyncService, args: dict
) -> types.CallToolResult:
    """Handle ping tool -- report Jira connectivity and queue depth."""
    queued = len(service.queue)
    try:
        account = await run_sync(service.client.validate_connection)
    except RemoteError as e:
        return types.CallToolResult(
            content=[
                types.TextContent(
                    type="text",
                    text=(
                        f"Jira connection failed: {e}. {queued} ticket(s) "
                        "queued offline. Check JIRA_URL, JIRA_USERNAME, "
                        "JIRA_PASSWORD."
                    ),
                )
            ],
            isError=True,
        )
    return types.CallToolResult(
        content=[
            types.TextContent(
                type="text",
                text=(
                    f"Connected to Jira as {account}. Repository: "
                    f"{service.repo.root}. Offline queue: {queued}."
                ),
            )
        ],
        structuredContent={
            "account": account,
            "repository": str(service.repo.root),
            "queued": queued,
        },
    )


PING_SPEC = ToolSpec(
    tool=types.Tool(
        name="ping",
        description="Test Jira connectivity and report the offline queue depth",
        inputSchema={
            "type": "object",
            "properties": {},
            "required": [],
        },
    ),
    scopes=frozenset(),
    handler=_handle_ping,
)


# ---------------------------------------------------------------------------
# Global accessors
# ---------------------------------------------------------------------------


def get_service() -> SyncService:
    """Get the global SyncService instance.

    Raises:
        RuntimeError: If the service is not initialized
    """
    if _service is None:
        raise RuntimeError(
            "SyncService not initialized. Server lifespan not started."
        )
    return _service


def set_service(service: SyncService | None) -> None:
    global _service
    _service = service


def get_registry() -> ToolRegistry:
    """Get the global ToolRegistry instance.

    Raises:
        RuntimeError: If registry is not initialized
    """
    if _registry is None:
        raise RuntimeError("ToolRegistry not initialized.")
    return _registry


def set_registry(registry: ToolRegistry | None) -> None:
    global _registry
    _registry = registry


# ---------------------------------------------------------------------------
# MCP protocol handlers
# ---------------------------------------------------------------------------


@server.list_tools()
async def handle_list_tools() -> list[types.Tool]:
    """List registered (and permitted) tools."""
    return get_registry().list_tools()


@server.call_tool()
async def handle_call_tool(
    name: str, arguments: dict | None
) -> types.CallToolResult:
    """Handle tool execution via ToolRegistry dispatch."""
    service = get_service()
    try:
        return await get_registry().call_tool(name, arguments, service)
    except ValueError as e:
        # Unknown or filtered-out tool name
        return build_error_response(
            "unknown_tool",
            str(e),
            "Use list_tools to see available tools.",
        )


# ---------------------------------------------------------------------------
# Server lifecycle
# ---------------------------------------------------------------------------


def build_registry(scopes_file: str | None = None) -> ToolRegistry:
    """The ping tool plus every tool the scopes file allows (all of them
    when no file is given)."""
    specs = [PING_SPEC, *ALL_SPECS]
    allowed = load_scopes_file(scopes_file) if scopes_file else None
    registry = ToolRegistry(specs, allowed)
    logger.info(
        "Registered %d of %d tools%s",
        registry.tool_count(),
        len(specs),
        f" (scopes from {scopes_file})" if scopes_file else "",
    )
    return registry


async def main(config_overrides: dict | None = None):
    """Run the MCP server with stdio transport.

    Args:
        config_overrides: Values from ``overrides_from_args()``: the
            connection flags plus log_file, log_format and scopes_file.
    """
    overrides = config_overrides or {}

    # before stdio_server so nothing reaches stdout during negotiation
    setup_logging(
        mode="mcp",
        debug=overrides.get("debug", False),
        log_file=overrides.get("log_file"),
        debug_format=overrides.get("log_format", "text"),
    )

    scopes_file = overrides.get("scopes_file")
    registry = build_registry(scopes_file)
    if scopes_file:
        print(
            f"Scopes file: {scopes_file} "
            f"({registry.tool_count()} tools enabled)",
            file=sys.stderr,
        )
    set_registry(registry)

    # set_service() is called here, not in the lifespan: under
    # `python -m tract_sync.mcp.server` this module is __main__ and a
    # relative import from lifespan.py would reach a second copy of it.
    lifespan_overrides = {
        k: v for k, v in overrides.items() if k in _CONFIG_FLAGS
    }
    async with server_lifespan(config_overrides=lifespan_overrides) as ctx:
        set_service(ctx["service"])
        try:
            async with mcp.server.stdio.stdio_server() as streams:
                init_options = InitializationOptions(
                    server_name="tract-sync",
                    server_version=__version__,
                    capabilities=server.get_capabilities(
                        notification_options=NotificationOptions(),
                        experimental_capabilities={},
                    ),
                )
                await server.run(*streams, init_options)
        finally:
            set_service(None)
            set_registry(None)


# ---------------------------------------------------------------------------
# Command line
# ---------------------------------------------------------------------------


# Connection and repository flags forwarded to server_lifespan()
_CONFIG_FLAGS = ("url", "username", "password", "repo_path", "insecure", "debug")

_EPILOG = """
Examples:
  # Serve the ticket repository in the current directory
  tract-sync

  # Serve another repository against another Jira
  tract-sync --repo /srv/tickets --url https://jira.example.com

  # Expose only the worklog read tools
  tract-sync --scopes-file /etc/tract/read-only.scopes

Settings come from CLI flags, then JIRA_* / TRACT_* environment variables
(.env included), then .tract/config.yml.  stdout carries the MCP protocol;
user-facing messages go to stderr.
"""


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tract-sync",
        description="Keep a git Markdown ticket store in sync with Jira (MCP over stdio)",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=_EPILOG,
    )

    jira = parser.add_argument_group("Jira connection")
    jira.add_argument("--url", help="Jira base URL (overrides JIRA_URL)")
    jira.add_argument(
        "--username", help="Account used for API calls (overrides JIRA_USERNAME)"
    )
    jira.add_argument(
        "--password",
        help="Password or API token; visible in the process list, "
        "prefer JIRA_PASSWORD",
    )
    jira.add_argument(
        "--insecure",
        action="store_true",
        help="Skip SSL certificate verification (development only)",
    )

    parser.add_argument(
        "--repo",
        dest="repo_path",
        help="Ticket repository working copy (default: TRACT_REPO_PATH or cwd)",
    )
    parser.add_argument(
        "--scopes-file",
        help="Only expose tools whose scopes are listed in this file "
        "(one scope per line, e.g. WORKLOG_VIEW; # starts a comment)",
    )

    logging_group = parser.add_argument_group("Logging")
    logging_group.add_argument(
        "--debug", action="store_true", help="Log at DEBUG level"
    )
    logging_group.add_argument(
        "--log-file",
        help="Log file path (default: LOG_FILE or /tmp/tract-sync.log)",
    )
    logging_group.add_argument(
        "--log-format",
        choices=["text", "json"],
        default="text",
        help="Log line format (default: %(default)s)",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"tract-sync {__version__}",
    )
    return parser


def overrides_from_args(args: argparse.Namespace) -> dict:
    """Collect the flags that were actually given, plus the logging
    settings, into the ``config_overrides`` dict taken by ``main()``."""
    overrides = {
        name: getattr(args, name)
        for name in _CONFIG_FLAGS
        if getattr(args, name)
    }
    if args.scopes_file:
        overrides["scopes_file"] = args.scopes_file
    overrides["log_file"] = args.log_file
    overrides["log_format"] = args.log_format
    return overrides


def run(argv: list[str] | None = None) -> None:
    """Console entry point."""
    overrides = overrides_from_args(build_parser().parse_args(argv))

    shown = [
        name
        for name in (*_CONFIG_FLAGS, "scopes_file")
        if name in overrides and name != "password"
    ]
    if shown:
        print(f"Config overrides from CLI: {', '.join(shown)}", file=sys.stderr)

    try:
        asyncio.run(main(config_overrides=overrides))
    except RuntimeError:
        # lifespan already reported the cause on stderr
        sys.exit(1)
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(0)


if __name__ == "__main__":
    run()
