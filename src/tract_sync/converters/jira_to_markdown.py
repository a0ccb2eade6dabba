"""Jira wiki markup to Markdown conversion using regex patterns."""

import re

from .common import ConversionResult, jira_to_markdown_lang

_PLACEHOLDER = "\x00CODE{}\x00"
_PLACEHOLDER_RE = re.compile(r"\x00CODE(\d+)\x00")


class JiraMarkupParser:
    """Parser for converting Jira wiki markup to Markdown."""

    def __init__(self):
        self.warnings: list[str] = []
        self._code: list[str] = []

    def parse(self, jira_text: str) -> ConversionResult:
        """
        Convert Jira markup to Markdown.

        Best-effort, one-to-one rewrites of code blocks, headings, emphasis,
        monospace, links, lists and quotes.  Anything unrecognized passes
        through unchanged.  Code is lifted out first so nothing inside a
        code block is rewritten.

        Args:
            jira_text: Jira formatted text

        Returns:
            ConversionResult with Markdown text and warnings
        """
        self.warnings = []
        self._code = []

        text = jira_text.replace("\r\n", "\n").replace("\r", "\n")
        self._detect_lossy_elements(text)

        text = self._extract_code_blocks(text)
        text = self._extract_monospace(text)
        text = self._convert_lists(text)
        text = self._convert_headings(text)
        text = self._convert_formatting(text)
        text = self._convert_links(text)
        text = self._convert_quotes(text)
        text = self._restore_code(text)

        return ConversionResult(
            text=text,
            source_format="jira",
            target_format="markdown",
            warnings=self.warnings,
        )

    def _detect_lossy_elements(self, text: str) -> None:
        if re.search(r"\{color[:}]", text):
            self.warnings.append("Color markup dropped (no Markdown equivalent)")
        if re.search(r"^\s*\|\|", text, re.MULTILINE):
            self.warnings.append("Tables passed through as Jira markup")
        if re.search(r"\{panel[:}]", text):
            self.warnings.append("Panels passed through as Jira markup")

    def _stash(self, markdown: str) -> str:
        self._code.append(markdown)
        return _PLACEHOLDER.format(len(self._code) - 1)

    def _extract_code_blocks(self, text: str) -> str:
        def code(match: re.Match) -> str:
            lang = jira_to_markdown_lang(match.group(1) or "")
            body = match.group(2).strip("\n")
            return self._stash(f"```{lang}\n{body}\n```")

        def noformat(match: re.Match) -> str:
            return self._stash(f"```\n{match.group(1).strip(chr(10))}\n```")

        text = re.sub(
            r"\{code(?::([^}|]+))?(?:\|[^}]*)?\}(.*?)\{code\}",
            code,
            text,
            flags=re.DOTALL,
        )
        return re.sub(
            r"\{noformat(?:[:|][^}]*)?\}(.*?)\{noformat\}",
            noformat,
            text,
            flags=re.DOTALL,
        )

    def _extract_monospace(self, text: str) -> str:
        return re.sub(
            r"\{\{(.+?)\}\}",
            lambda m: self._stash(f"`{m.group(1)}`"),
            text,
        )

    def _convert_lists(self, text: str) -> str:
        def bullet(match: re.Match) -> str:
            markers = match.group(1)
            indent = "  " * (len(markers) - 1)
            item = "1." if markers[-1] == "#" else "-"
            return f"{indent}{item} "

        return re.sub(r"^([*#-]+)\s+", bullet, text, flags=re.MULTILINE)

    def _convert_headings(self, text: str) -> str:
        return re.sub(
            r"^h([1-6])\.\s+(.*)$",
            lambda m: "#" * int(m.group(1)) + " " + m.group(2),
            text,
            flags=re.MULTILINE,
        )

    def _convert_formatting(self, text: str) -> str:
        # bold first: its output must not be re-read as italic
        text = re.sub(
            r"(?<![\w*])\*(?=\S)([^*\n]+?)(?<=\S)\*(?![\w*])", r"**\1**", text
        )
        text = re.sub(
            r"(?<![\w_])_(?=\S)([^_\n]+?)(?<=\S)_(?![\w_])", r"*\1*", text
        )
        text = re.sub(
            r"(?<![\w-])-(?=\S)([^-\n]+?)(?<=\S)-(?![\w-])", r"~~\1~~", text
        )
        text = re.sub(r"\{color(?::[^}]*)?\}", "", text)
        return text

    def _convert_links(self, text: str) -> str:
        text = re.sub(r"\[([^\]|\n]+)\|([^\]\n]+)\]", r"[\1](\2)", text)
        text = re.sub(r"\[((?:https?|ftp|mailto):[^\]\s]+)\]", r"<\1>", text)
        return re.sub(r"!([^!\s|]+)(?:\|[^!]*)?!", r"![](\1)", text)

    def _convert_quotes(self, text: str) -> str:
        text = re.sub(r"^bq\.\s+", "> ", text, flags=re.MULTILINE)

        def quote(match: re.Match) -> str:
            body = match.group(1).strip("\n")
            return "\n".join(f"> {line}" for line in body.split("\n"))

        return re.sub(r"\{quote\}(.*?)\{quote\}", quote, text, flags=re.DOTALL)

    def _restore_code(self, text: str) -> str:
        return _PLACEHOLDER_RE.sub(lambda m: self._code[int(m.group(1))], text)


def jira_to_markdown(jira_text: str) -> ConversionResult:
    """
    Convert Jira markup to Markdown.

    Args:
        jira_text: Jira formatted text

    Returns:
        ConversionResult with Markdown text and warnings
    """
    return JiraMarkupParser().parse(jira_text)
