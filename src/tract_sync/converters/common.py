"""Common types and utilities for format conversion."""

from dataclasses import dataclass, field

# =============================================================================
# Code Block Language Mapping
# =============================================================================
#
# Markdown: ```python
# Jira:     {code:python}
#
# Markdown->Jira is the canonical direction; the reverse map only lists the
# cases where Jira's name is not also the preferred Markdown name.  Unknown
# languages pass through unchanged.
# =============================================================================

_MARKDOWN_TO_JIRA_MAP: dict[str, str] = {
    "sh": "bash",
    "shell": "bash",
    "zsh": "bash",
    "js": "javascript",
    "ts": "typescript",
    "py": "python",
    "yml": "yaml",
    "c++": "cpp",
    "plaintext": "none",
    "text": "none",
}

_JIRA_TO_MARKDOWN_MAP: dict[str, str] = {
    "none": "text",
}


def markdown_to_jira_lang(lang: str) -> str:
    """
    Convert a Markdown code fence language to a Jira ``{code}`` language.

    Examples:
        >>> markdown_to_jira_lang("sh")
        'bash'
        >>> markdown_to_jira_lang("python")
        'python'
    """
    return _MARKDOWN_TO_JIRA_MAP.get(lang.lower(), lang)


def jira_to_markdown_lang(lang: str) -> str:
    """Convert a Jira ``{code:lang}`` language to a Markdown fence language."""
    return _JIRA_TO_MARKDOWN_MAP.get(lang.lower(), lang)


@dataclass
class ConversionResult:
    """Result of format conversion with metadata and warnings.

    Attributes:
        text: Converted text output
        source_format: Format of input text ('markdown' or 'jira')
        target_format: Format of output text ('markdown' or 'jira')
        warnings: List of warnings about lossy conversions
    """

    text: str
    source_format: str = "unknown"
    target_format: str = "unknown"
    warnings: list[str] = field(default_factory=list)
