"""Format conversion between Markdown and Jira wiki markup."""

from .common import (
    ConversionResult,
    jira_to_markdown_lang,
    markdown_to_jira_lang,
)
from .jira_to_markdown import JiraMarkupParser, jira_to_markdown
from .markdown_to_jira import JiraRenderer, markdown_to_jira

__all__ = [
    "ConversionResult",
    "JiraMarkupParser",
    "JiraRenderer",
    "jira_to_markdown",
    "jira_to_markdown_lang",
    "markdown_to_jira",
    "markdown_to_jira_lang",
]
