"""Bidirectional sync between a git-versioned Markdown ticket store and Jira."""

__version__ = "0.4.0"
