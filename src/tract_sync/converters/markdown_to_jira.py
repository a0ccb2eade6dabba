"""Markdown to Jira wiki markup conversion using mistune AST rendering."""

import re
from typing import Any

import mistune

from .common import markdown_to_jira_lang


class JiraRenderer(mistune.BaseRenderer):
    """Renderer that converts Markdown AST to Jira wiki markup."""

    NAME = "jira"

    def __init__(self):
        super().__init__()
        # One marker per open list level: "*" unordered, "#" ordered
        self._list_markers: list[str] = []

    def text(self, text: str) -> str:
        return text

    def emphasis(self, text: str) -> str:
        return f"_{text}_"

    def strong(self, text: str) -> str:
        return f"*{text}*"

    def strikethrough(self, text: str) -> str:
        return f"-{text}-"

    def codespan(self, text: str) -> str:
        return f"{{{{{text}}}}}"

    def linebreak(self) -> str:
        return "\\\\\n"

    def softbreak(self) -> str:
        return "\n"

    def blank_line(self) -> str:
        return ""

    def newline(self) -> str:
        return ""

    def heading(self, text: str, level: int, **attrs) -> str:
        return f"h{level}. {text}\n\n"

    def paragraph(self, text: str) -> str:
        return f"{text}\n\n"

    def block_text(self, text: str) -> str:
        return text

    def block_code(self, code: str, info: str | None = None) -> str:
        """Render a fenced block as ``{code:lang}`` (or bare ``{code}``)."""
        code = code.rstrip("\n")
        if info:
            lang = markdown_to_jira_lang(info.split()[0])
            return f"{{code:{lang}}}\n{code}\n{{code}}\n\n"
        return f"{{code}}\n{code}\n{{code}}\n\n"

    def block_quote(self, text: str) -> str:
        return f"{{quote}}\n{text.strip()}\n{{quote}}\n\n"

    def block_html(self, html: str) -> str:
        return f"{{noformat}}\n{html.strip()}\n{{noformat}}\n\n"

    def inline_html(self, html: str) -> str:
        return html

    def block_error(self, text: str) -> str:
        return text

    def thematic_break(self) -> str:
        return "----\n\n"

    def link(self, text: str, url: str, title=None) -> str:
        if not text or text == url:
            return f"[{url}]"
        return f"[{text}|{url}]"

    def image(self, text: str, url: str, title=None) -> str:
        return f"!{url}!"

    # GFM tables
    def table(self, text: str) -> str:
        return text.rstrip("\n") + "\n\n"

    def table_head(self, text: str) -> str:
        return f"{text}||\n"

    def table_body(self, text: str) -> str:
        return text

    def table_row(self, text: str) -> str:
        return f"{text}|\n"

    def table_cell(
        self, text: str, align: str | None = None, head: bool = False
    ) -> str:
        return f"||{text}" if head else f"|{text}"

    def list(self, text: str, ordered: bool, **attrs) -> str:
        return text

    def list_item(self, text: str) -> str:
        return text

    def render_token(self, token: dict[str, Any], state) -> str:
        """Track list nesting so items get ``*``/``#`` prefixes per level."""
        token_type: str = token.get("type") or ""

        if token_type == "list":
            attrs = token.get("attrs") or {}
            marker = "#" if attrs.get("ordered") else "*"
            self._list_markers.append(marker)
            try:
                text = self.render_tokens(token.get("children", []), state)
            finally:
                self._list_markers.pop()
            # a top-level list is a block; nested lists are part of an item
            return text if self._list_markers else text + "\n"

        if token_type == "list_item":
            prefix = "".join(self._list_markers)
            inline, nested = [], []
            for child in token.get("children", []):
                (nested if child.get("type") == "list" else inline).append(
                    child
                )
            text = self.render_tokens(inline, state).strip("\n")
            text = re.sub(r"\n{2,}", "\n", text)
            nested_text = self.render_tokens(nested, state) if nested else ""
            return f"{prefix} {text}\n{nested_text}"

        func = self._get_method(token_type)
        attrs = token.get("attrs")
        if "raw" in token:
            text = token["raw"]
        elif "text" in token:
            text = token["text"]
        elif "children" in token:
            text = self.render_tokens(token["children"], state)
        else:
            return func(**attrs) if attrs else func()
        return func(text, **attrs) if attrs else func(text)


def markdown_to_jira(markdown_text: str) -> str:
    """
    Convert Markdown text to Jira wiki markup.

    Args:
        markdown_text: Markdown formatted text

    Returns:
        Jira formatted text
    """
    if not markdown_text.strip():
        return ""
    markdown = mistune.create_markdown(
        renderer=JiraRenderer(), plugins=["table", "strikethrough"]
    )
    result: str = markdown(markdown_text)  # type: ignore[assignment]
    result = re.sub(r"\n{3,}", "\n\n", result)
    return result.rstrip("\n")
