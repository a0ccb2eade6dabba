"""Jira client and git plumbing shared by the sync engine and the MCP server."""

from .async_utils import run_sync
from .client import JiraClient
from .repo import GitRepo

__all__ = ["GitRepo", "JiraClient", "run_sync"]
