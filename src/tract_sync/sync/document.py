"""Ticket document model: parse, serialize and diff ``issues/<ID>.md``.

On-disk layout::

    ---
    id: APP-12
    title: Fix login redirect
    status: in-progress
    labels:
    - auth
    links:
    - blocks: APP-14
    time_tracking:
      estimate: 7200
    ---

    Description in Markdown.

    ## Comments

    ### alice - 2026-02-12T10:00:00.000Z

    First comment.

The frontmatter block is mandatory and must contain ``id``.  The comments
section is optional; when present every block must match
``### <author> - <timestamp>`` followed by a blank line and the body.
Inside the description and comment bodies, a line that would read as one
of those headings (``## Comments`` or anything starting ``### ``) is
written with a leading backslash, so Jira ``h2.``/``h3.`` headings survive
the trip::

    \\### Step 1 - install

``diff()`` compares two ``Ticket`` snapshots field by field.  Comments are
compared as a multiset of ``(author, timestamp, body)`` triples and only
appended comments are reported, so edits and deletions of existing
comments never show up in a change-set.
"""

from __future__ import annotations

import logging
import re
from collections import Counter
from datetime import date, datetime
from pathlib import Path, PurePosixPath
from typing import Any

import yaml

from ..exceptions import MalformedDocument
from ..file_handler import atomic_write_text, read_text
from .mapper import to_seconds
from .models import ChangeSet, Comment, Link, Relation, Ticket, TimeTracking

logger = logging.getLogger(__name__)

DOCUMENT_SUFFIX = ".md"
COMMENTS_HEADING = "## Comments"

_FRONTMATTER_RE = re.compile(
    r"\A---[ \t]*\n(?P<yaml>.*?)^---[ \t]*(?:\n|\Z)(?P<body>.*)\Z",
    re.DOTALL | re.MULTILINE,
)
_COMMENTS_RE = re.compile(r"^## Comments[ \t]*$", re.MULTILINE)
# The author is greedy and the timestamp has no spaces, so an author
# containing " - " still splits at the last separator.
_COMMENT_HEADER_RE = re.compile(
    r"^### (?P<author>.+) - (?P<timestamp>\S*)[ \t]*$", re.MULTILINE
)

# Description and comment lines that would read as structure are written
# with one extra leading backslash and lose it again on parse.
_RESERVED = r"\\*(?:## Comments[ \t]*$|### )"
_ESCAPE_RE = re.compile(rf"^(?={_RESERVED})", re.MULTILINE)
_UNESCAPE_RE = re.compile(rf"^\\(?={_RESERVED})", re.MULTILINE)

# Frontmatter key order on disk.
_STRING_FIELDS = (
    "title",
    "type",
    "status",
    "priority",
    "assignee",
    "reporter",
)
_LIST_FIELDS = ("labels", "components")
_TRAILING_STRING_FIELDS = (
    "fix_version",
    "affected_version",
    "resolution",
    "resolved",
    "parent",
)

# Fields compared with plain equality by diff().
SCALAR_FIELDS = (
    "title",
    "type",
    "status",
    "priority",
    "assignee",
    "reporter",
    "fix_version",
    "affected_version",
    "resolution",
    "resolved",
    "parent",
    "description",
    "created",
    "updated",
    "offline",
)
SET_FIELDS = ("labels", "components")


# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------


def is_ticket_path(path: str, issues_dir: str = "issues") -> bool:
    """Return ``True`` for ``<issues_dir>/<name>.md`` (direct children only)."""
    p = PurePosixPath(path.replace("\\", "/"))
    return (
        p.suffix == DOCUMENT_SUFFIX
        and str(p.parent) == issues_dir.strip("/")
    )


def ticket_id_from_path(path: str) -> str:
    """``issues/APP-12.md`` -> ``APP-12``."""
    return PurePosixPath(path.replace("\\", "/")).stem


def ticket_path(issues_dir: Path, ticket_id: str) -> Path:
    return issues_dir / f"{ticket_id}{DOCUMENT_SUFFIX}"


# ---------------------------------------------------------------------------
# Parse
# ---------------------------------------------------------------------------


def _as_str(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


def _as_list(value: Any, field: str) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, list):
        return [str(v) for v in value if v is not None]
    raise MalformedDocument(f"'{field}' must be a list")


def _parse_relation(raw: Any) -> Relation:
    name = str(raw).strip().lower().replace("-", "_").replace(" ", "_")
    try:
        return Relation(name)
    except ValueError:
        raise MalformedDocument(f"unknown link relation '{raw}'") from None


def _parse_links(value: Any) -> list[Link]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise MalformedDocument("'links' must be a list")
    links: list[Link] = []
    for item in value:
        if isinstance(item, dict) and "relation" in item:
            relation, target = item.get("relation"), item.get("target")
        elif isinstance(item, dict) and len(item) == 1:
            ((relation, target),) = item.items()
        else:
            raise MalformedDocument(f"invalid link entry {item!r}")
        if not target:
            raise MalformedDocument(f"link {item!r} has no target")
        links.append(
            Link(relation=_parse_relation(relation), target=str(target))
        )
    return links


def _parse_duration(value: Any, field: str) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool):
        raise MalformedDocument(f"time_tracking.{field} must be a duration")
    if isinstance(value, int):
        return value
    seconds = to_seconds(str(value))
    if seconds is None:
        logger.warning(
            "Ignoring unparsable time_tracking.%s value %r", field, value
        )
    return seconds


def _parse_time_tracking(value: Any) -> TimeTracking:
    if value is None:
        return TimeTracking()
    if not isinstance(value, dict):
        raise MalformedDocument("'time_tracking' must be a mapping")
    return TimeTracking(
        estimate=_parse_duration(value.get("estimate"), "estimate"),
        logged=_parse_duration(value.get("logged"), "logged"),
        remaining=_parse_duration(value.get("remaining"), "remaining"),
    )


def _escape(text: str) -> str:
    return _ESCAPE_RE.sub(r"\\", text)


def _unescape(text: str) -> str:
    return _UNESCAPE_RE.sub("", text)


def _parse_comments(section: str) -> list[Comment]:
    headers = list(_COMMENT_HEADER_RE.finditer(section))
    leading = section[: headers[0].start()] if headers else section
    if leading.strip():
        raise MalformedDocument(
            "comments section must start with '### <author> - <timestamp>'"
        )

    comments: list[Comment] = []
    for index, header in enumerate(headers):
        end = (
            headers[index + 1].start()
            if index + 1 < len(headers)
            else len(section)
        )
        block = section[header.end() : end]
        # header line is followed by "\n\n<body>" or nothing at all
        if block.strip() and not block.startswith("\n\n"):
            raise MalformedDocument(
                f"comment by {header.group('author')} at "
                f"{header.group('timestamp')} needs a blank line after "
                "its header"
            )
        comments.append(
            Comment(
                author=header.group("author").strip(),
                timestamp=header.group("timestamp"),
                body=_unescape(block.strip("\n")),
            )
        )
    return comments


def parse_document(raw_text: str, path: str | None = None) -> Ticket:
    """Parse a ticket document.

    Args:
        raw_text: Full document text.
        path: Optional path, used only in error messages.

    Returns:
        The parsed ``Ticket``.

    Raises:
        MalformedDocument: If the frontmatter block is absent or invalid,
            ``id`` is missing, or the comments section does not follow the
            comment-block grammar.
    """
    text = raw_text.lstrip("﻿").replace("\r\n", "\n")
    match = _FRONTMATTER_RE.match(text)
    if match is None:
        raise MalformedDocument("missing '---' frontmatter block", path)

    try:
        meta = yaml.safe_load(match.group("yaml"))
    except yaml.YAMLError as exc:
        raise MalformedDocument(f"invalid frontmatter: {exc}", path) from exc
    if not isinstance(meta, dict):
        raise MalformedDocument("frontmatter must be a mapping", path)
    if not meta.get("id"):
        raise MalformedDocument("frontmatter has no 'id'", path)

    body = match.group("body")
    heading = _COMMENTS_RE.search(body)
    if heading:
        description = _unescape(body[: heading.start()].strip("\n"))
        comments_text = body[heading.end() :]
    else:
        description, comments_text = _unescape(body.strip("\n")), ""

    try:
        fields: dict[str, Any] = {
            "id": str(meta["id"]),
            "title": _as_str(meta.get("title")) or "",
            "links": _parse_links(meta.get("links")),
            "time_tracking": _parse_time_tracking(meta.get("time_tracking")),
            "description": description,
            "comments": _parse_comments(comments_text),
            "created": _as_str(meta.get("created")),
            "updated": _as_str(meta.get("updated")),
            "offline": bool(meta.get("offline", False)),
        }
        for name in _STRING_FIELDS[1:] + _TRAILING_STRING_FIELDS:
            fields[name] = _as_str(meta.get(name))
        for name in _LIST_FIELDS:
            fields[name] = _as_list(meta.get(name), name)
    except MalformedDocument as exc:
        if path and exc.path is None:
            raise MalformedDocument(str(exc), path) from exc
        raise

    return Ticket(**fields)


def load_ticket(path: Path) -> Ticket:
    """Read and parse the document at *path*."""
    return parse_document(read_text(path), str(path))


# ---------------------------------------------------------------------------
# Serialize
# ---------------------------------------------------------------------------


def _frontmatter(ticket: Ticket) -> dict[str, Any]:
    meta: dict[str, Any] = {"id": ticket.id}
    for name in _STRING_FIELDS:
        value = getattr(ticket, name)
        if value:
            meta[name] = value
    for name in _LIST_FIELDS:
        value = getattr(ticket, name)
        if value:
            meta[name] = list(value)
    for name in _TRAILING_STRING_FIELDS:
        value = getattr(ticket, name)
        if value:
            meta[name] = value
    if ticket.links:
        meta["links"] = [
            {link.relation.value: link.target} for link in ticket.links
        ]
    if not ticket.time_tracking.is_empty():
        meta["time_tracking"] = ticket.time_tracking.model_dump(
            exclude_none=True
        )
    if ticket.created:
        meta["created"] = ticket.created
    if ticket.updated:
        meta["updated"] = ticket.updated
    if ticket.offline:
        meta["offline"] = True
    return meta


def serialize_document(ticket: Ticket) -> str:
    """Render *ticket* in the on-disk document format."""
    header = yaml.safe_dump(
        _frontmatter(ticket),
        sort_keys=False,
        allow_unicode=True,
        default_flow_style=False,
        width=1000,
    )
    parts = [f"---\n{header}---\n"]
    description = _escape(ticket.description.strip("\n"))
    if description:
        parts.append(f"\n{description}\n")
    if ticket.comments:
        parts.append(f"\n{COMMENTS_HEADING}\n")
        for comment in ticket.comments:
            parts.append(f"\n### {comment.author} - {comment.timestamp}\n")
            body = _escape(comment.body.strip("\n"))
            if body:
                parts.append(f"\n{body}\n")
    return "".join(parts)


def write_ticket(path: Path, ticket: Ticket) -> None:
    """Serialize *ticket* and write it to *path* atomically."""
    atomic_write_text(path, serialize_document(ticket))


# ---------------------------------------------------------------------------
# Diff
# ---------------------------------------------------------------------------


def _normalized_text(value: str) -> str:
    return value.replace("\r\n", "\n").strip("\n")


def diff(old: Ticket | None, new: Ticket) -> ChangeSet:
    """Compute the sparse change-set from *old* to *new*.

    A ``None`` *old* (newly added document) is diffed against an empty
    ticket with the same id.
    """
    if old is None:
        old = Ticket(id=new.id)

    changed: dict[str, Any] = {}
    for name in SCALAR_FIELDS:
        before, after = getattr(old, name), getattr(new, name)
        if name == "description":
            before, after = _normalized_text(before), _normalized_text(after)
        if before != after:
            changed[name] = after
    for name in SET_FIELDS:
        if set(getattr(old, name)) != set(getattr(new, name)):
            changed[name] = list(getattr(new, name))
    if {link.key() for link in old.links} != {
        link.key() for link in new.links
    }:
        changed["links"] = list(new.links)
    if old.time_tracking != new.time_tracking:
        changed["time_tracking"] = new.time_tracking

    seen = Counter(_comment_key(c) for c in old.comments)
    appended: list[Comment] = []
    for comment in new.comments:
        key = _comment_key(comment)
        if seen[key]:
            seen[key] -= 1
        else:
            appended.append(comment)

    return ChangeSet(fields=changed, new_comments=appended)


def _comment_key(comment: Comment) -> tuple[str, str, str]:
    author, timestamp, body = comment.key()
    return (author, timestamp, _normalized_text(body))
