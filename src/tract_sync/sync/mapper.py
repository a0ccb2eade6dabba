"""Schema mapper between the local ticket vocabulary and Jira's.

Three concerns live here:

1. **Enum normalization** -- ``SchemaMapper.normalize_enum()`` turns any
   remote type/status/priority name into a canonical local value.
   Resolution order:

   a. slugify and return it if it is already canonical;
   b. look the slug up in the field's alias table;
   c. bidirectional substring match against the canonical set (logged);
   d. the field's default (``task`` / ``open`` / ``medium``, logged).

   The mapper never raises: precision is traded for availability, and
   every lossy step is visible in the log.

2. **Relations** -- a static table maps each ``Relation`` to a Jira link
   type name and a direction flag.  Jira only names the link type; which
   side of the link the local ticket sits on decides the relation.

3. **Durations** -- ``to_seconds()`` and ``format_seconds()`` use Jira's
   working-time conventions (1d = 8h, 1w = 5d).

``ticket_from_issue()`` and the ``*_fields()`` helpers translate whole
records using the three building blocks above.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from typing import Any

from ..config_schema import MappingConfig
from ..converters import jira_to_markdown, markdown_to_jira
from .models import Comment, Link, Relation, Ticket, TicketDraft, TimeTracking

logger = logging.getLogger(__name__)

ENUM_FIELDS = ("type", "status", "priority")

# Fields applied with a single coalesced PUT /issue/{key}.
SIMPLE_FIELDS = frozenset(
    {
        "title",
        "assignee",
        "priority",
        "labels",
        "components",
        "fix_version",
        "affected_version",
        "description",
        "time_tracking",
    }
)
# Fields owned by Jira (or local bookkeeping) that outbound sync never writes.
READ_ONLY_FIELDS = frozenset(
    {
        "type",
        "reporter",
        "resolution",
        "resolved",
        "parent",
        "created",
        "updated",
        "offline",
    }
)

# ---------------------------------------------------------------------------
# Durations
# ---------------------------------------------------------------------------

_DURATION_RE = re.compile(r"^(\d+(?:\.\d+)?)\s*([mhdw]?)$", re.IGNORECASE)

MINUTE = 60
HOUR = 60 * MINUTE
WORKDAY = 8 * HOUR
WORKWEEK = 5 * WORKDAY

_UNIT_SECONDS = {"m": MINUTE, "h": HOUR, "d": WORKDAY, "w": WORKWEEK}


def to_seconds(value: str | None) -> int | None:
    """Parse ``<number><unit>`` into seconds.

    Units are ``m``, ``h`` (default), ``d`` (8h) and ``w`` (5d).  Compound
    strings such as ``"2h 30m"`` are not accepted.

    Returns:
        Seconds, or ``None`` when *value* cannot be parsed.  Callers treat
        ``None`` as "leave the field alone", never as zero.
    """
    if not isinstance(value, str):
        return None
    match = _DURATION_RE.match(value.strip())
    if match is None:
        return None
    amount = float(match.group(1))
    unit = (match.group(2) or "h").lower()
    return int(round(amount * _UNIT_SECONDS[unit]))


def format_seconds(seconds: int | None) -> str:
    """Render seconds as ``1d 2h``, ``3h 15m`` or ``45m``."""
    if not seconds:
        return "0m"
    hours, rest = divmod(int(seconds), HOUR)
    minutes = rest // MINUTE
    if hours >= 8:
        days, hours = divmod(hours, 8)
        return f"{days}d {hours}h" if hours else f"{days}d"
    if hours:
        return f"{hours}h {minutes}m" if minutes else f"{hours}h"
    return f"{minutes}m"


# ---------------------------------------------------------------------------
# Relations
# ---------------------------------------------------------------------------

# canonical relation -> (Jira link type name, local ticket is inward side)
_RELATION_TABLE: dict[Relation, tuple[str, bool]] = {
    Relation.BLOCKS: ("Blocks", False),
    Relation.BLOCKED_BY: ("Blocks", True),
    Relation.DUPLICATES: ("Duplicate", False),
    Relation.DUPLICATED_BY: ("Duplicate", True),
    Relation.RELATES: ("Relates", False),
    Relation.DEPENDS_ON: ("Dependency", False),
    Relation.REQUIRED_BY: ("Dependency", True),
    Relation.CAUSES: ("Cause", False),
    Relation.CAUSED_BY: ("Cause", True),
    Relation.CLONES: ("Cloners", False),
    Relation.CLONED_BY: ("Cloners", True),
}
_REMOTE_TABLE: dict[tuple[str, bool], Relation] = {
    (name.lower(), inward): relation
    for relation, (name, inward) in _RELATION_TABLE.items()
}


def map_relation(relation: Relation | str) -> tuple[str, bool]:
    """Return ``(jira_link_type, is_inward)`` for a canonical relation.

    Unknown relations map to ``("Relates", False)``.
    """
    try:
        return _RELATION_TABLE[Relation(relation)]
    except ValueError:
        logger.warning("Unknown relation %r, mapping to Relates", relation)
        return _RELATION_TABLE[Relation.RELATES]


def relation_from_remote(type_name: str, is_inward: bool) -> Relation:
    """Inverse of ``map_relation()``; unknown types become ``relates``."""
    key = (type_name or "").lower()
    # symmetric types (Relates) only have an outward entry
    relation = _REMOTE_TABLE.get((key, is_inward)) or _REMOTE_TABLE.get(
        (key, False)
    )
    if relation is None:
        logger.warning(
            "Unknown Jira link type %r, mapping to relates", type_name
        )
        return Relation.RELATES
    return relation


def links_from_issue(issue: dict[str, Any]) -> list[tuple[Link, str]]:
    """Canonical links of a Jira issue, each with its Jira link id.

    A link where this issue is the outward participant carries
    ``outwardIssue``; the inward participant sees ``inwardIssue``.
    """
    links: list[tuple[Link, str]] = []
    for raw in (issue.get("fields") or {}).get("issuelinks") or []:
        type_name = (raw.get("type") or {}).get("name", "")
        if raw.get("outwardIssue"):
            target, inward = raw["outwardIssue"]["key"], False
        elif raw.get("inwardIssue"):
            target, inward = raw["inwardIssue"]["key"], True
        else:
            continue
        link = Link(
            relation=relation_from_remote(type_name, inward), target=target
        )
        links.append((link, str(raw.get("id", ""))))
    return links


# ---------------------------------------------------------------------------
# Enum normalization
# ---------------------------------------------------------------------------


def slugify(value: str | None) -> str:
    """Lowercase, collapse whitespace to ``-``, drop anything else odd."""
    text = re.sub(r"\s+", "-", (value or "").strip().lower())
    return re.sub(r"[^a-z0-9-]", "", text)


def _jira_timestamp(value: str | None) -> str | None:
    """Normalize a Jira timestamp to ``YYYY-MM-DDTHH:MM:SS.mmmZ``."""
    if not value:
        return value
    try:
        parsed = datetime.strptime(value, "%Y-%m-%dT%H:%M:%S.%f%z")
    except ValueError:
        return value
    utc = parsed.astimezone(timezone.utc)
    return utc.strftime("%Y-%m-%dT%H:%M:%S.") + f"{utc.microsecond // 1000:03d}Z"


class SchemaMapper:
    """Translate field values and records between the two schemas.

    Args:
        mapping: Canonical sets, alias tables and defaults per enum field.
        sync_user: Name of the sync identity, used to recover the original
            author of comments that outbound sync posted on someone's
            behalf.
    """

    def __init__(
        self,
        mapping: MappingConfig | None = None,
        sync_user: str | None = None,
    ) -> None:
        self._mapping = mapping or MappingConfig()
        self._sync_user = sync_user

    # ------------------------------------------------------------------
    # Enums
    # ------------------------------------------------------------------

    def canonical(self, field: str) -> list[str]:
        return self._mapping.canonical.get(field, [])

    def default(self, field: str) -> str:
        return self._mapping.defaults.get(field, "")

    def normalize_enum(self, value: str | None, field: str) -> str:
        """Return the canonical value for *value* in *field*.  Never raises."""
        slug = slugify(value)
        fallback = self.default(field)
        if not slug:
            return fallback

        canonical = self.canonical(field)
        if slug in canonical:
            return slug

        aliased = self._mapping.aliases.get(field, {}).get(slug)
        if aliased:
            logger.debug("%s %r resolved by alias to %r", field, value, aliased)
            return aliased

        for candidate in canonical:
            if candidate in slug or slug in candidate:
                logger.warning(
                    "%s %r has no exact mapping; fuzzy-matched to %r",
                    field,
                    value,
                    candidate,
                )
                return candidate

        logger.warning(
            "%s %r matches nothing; using default %r", field, value, fallback
        )
        return fallback

    def to_remote_name(self, value: str, field: str) -> str:
        """Jira display name for a canonical value (``in-progress`` ->
        ``In Progress`` unless configured otherwise)."""
        override = self._mapping.remote_names.get(field, {}).get(value)
        if override:
            return override
        return " ".join(word.capitalize() for word in value.split("-"))

    def matches_remote(self, remote_name: str, value: str, field: str) -> bool:
        """``True`` if Jira's *remote_name* denotes canonical *value*.

        Only exact comparisons are used (display name, slug, alias table);
        the fuzzy fallback of ``normalize_enum()`` is deliberately skipped.
        """
        if remote_name.lower() == self.to_remote_name(value, field).lower():
            return True
        slug = slugify(remote_name)
        if slug == value:
            return True
        return self._mapping.aliases.get(field, {}).get(slug) == value

    # ------------------------------------------------------------------
    # Local -> Jira
    # ------------------------------------------------------------------

    def ticket_to_fields(
        self, ticket: Ticket, changed: set[str] | frozenset[str]
    ) -> dict[str, Any]:
        """Jira ``fields`` payload for the simple fields in *changed*."""
        fields: dict[str, Any] = {}
        for name in sorted(changed & SIMPLE_FIELDS):
            match name:
                case "title":
                    fields["summary"] = ticket.title
                case "assignee":
                    fields["assignee"] = (
                        {"name": ticket.assignee} if ticket.assignee else None
                    )
                case "priority":
                    fields["priority"] = (
                        {"name": self.to_remote_name(ticket.priority, "priority")}
                        if ticket.priority
                        else None
                    )
                case "labels":
                    fields["labels"] = list(ticket.labels)
                case "components":
                    fields["components"] = [
                        {"name": c} for c in ticket.components
                    ]
                case "fix_version":
                    fields["fixVersions"] = (
                        [{"name": ticket.fix_version}]
                        if ticket.fix_version
                        else []
                    )
                case "affected_version":
                    fields["versions"] = (
                        [{"name": ticket.affected_version}]
                        if ticket.affected_version
                        else []
                    )
                case "description":
                    fields["description"] = markdown_to_jira(
                        ticket.description
                    )
                case "time_tracking":
                    tracking = self._timetracking_field(ticket.time_tracking)
                    if tracking:
                        fields["timetracking"] = tracking
        return fields

    @staticmethod
    def _timetracking_field(tracking: TimeTracking) -> dict[str, str]:
        # logged time only ever changes through worklogs
        result: dict[str, str] = {}
        if tracking.estimate is not None:
            result["originalEstimate"] = format_seconds(tracking.estimate)
        if tracking.remaining is not None:
            result["remainingEstimate"] = format_seconds(tracking.remaining)
        return result

    def draft_to_create_fields(
        self, project_key: str, draft: TicketDraft
    ) -> dict[str, Any]:
        """Jira ``fields`` payload for ``POST /issue``."""
        issue_type = self.normalize_enum(draft.type, "type")
        fields: dict[str, Any] = {
            "project": {"key": project_key},
            "summary": draft.title,
            "issuetype": {"name": self.to_remote_name(issue_type, "type")},
        }
        if draft.description:
            fields["description"] = markdown_to_jira(draft.description)
        if draft.priority:
            priority = self.normalize_enum(draft.priority, "priority")
            fields["priority"] = {
                "name": self.to_remote_name(priority, "priority")
            }
        if draft.assignee:
            fields["assignee"] = {"name": draft.assignee}
        if draft.labels:
            fields["labels"] = list(draft.labels)
        if draft.components:
            fields["components"] = [{"name": c} for c in draft.components]
        if draft.parent:
            fields["parent"] = {"key": draft.parent}
        return fields

    # ------------------------------------------------------------------
    # Jira -> Local
    # ------------------------------------------------------------------

    def ticket_from_issue(self, issue: dict[str, Any]) -> Ticket:
        """Build a ``Ticket`` from a Jira issue JSON document."""
        fields = issue.get("fields") or {}

        def name_of(value: Any) -> str | None:
            if not value:
                return None
            return value.get("name") or value.get("displayName")

        def first_name(values: Any) -> str | None:
            return values[0].get("name") if values else None

        tracking = fields.get("timetracking") or {}
        return Ticket(
            id=issue["key"],
            title=fields.get("summary") or "",
            type=self.normalize_enum(name_of(fields.get("issuetype")), "type"),
            status=self.normalize_enum(name_of(fields.get("status")), "status"),
            priority=self.normalize_enum(
                name_of(fields.get("priority")), "priority"
            ),
            assignee=name_of(fields.get("assignee")),
            reporter=name_of(fields.get("reporter")),
            labels=list(fields.get("labels") or []),
            components=[c["name"] for c in fields.get("components") or []],
            fix_version=first_name(fields.get("fixVersions")),
            affected_version=first_name(fields.get("versions")),
            resolution=name_of(fields.get("resolution")),
            resolved=fields.get("resolutiondate"),
            parent=(fields.get("parent") or {}).get("key"),
            links=[link for link, _ in links_from_issue(issue)],
            time_tracking=TimeTracking(
                estimate=tracking.get("originalEstimateSeconds"),
                logged=tracking.get("timeSpentSeconds"),
                remaining=tracking.get("remainingEstimateSeconds"),
            ),
            description=jira_to_markdown(fields.get("description") or "").text,
            comments=[
                self.comment_from_remote(c)
                for c in (fields.get("comment") or {}).get("comments") or []
            ],
            created=fields.get("created"),
            updated=fields.get("updated"),
        )

    def comment_from_remote(self, raw: dict[str, Any]) -> Comment:
        """Convert a Jira comment, undoing outbound author attribution."""
        author = name_of_author(raw.get("author")) or "Unknown"
        body = jira_to_markdown(raw.get("body") or "").text
        if author == self._sync_user:
            author, body = split_attribution(body, author)
        return Comment(
            author=author,
            timestamp=_jira_timestamp(raw.get("created")) or "",
            body=body,
        )


def name_of_author(value: dict[str, Any] | None) -> str | None:
    if not value:
        return None
    return value.get("name") or value.get("displayName")


_ATTRIBUTION_RE = re.compile(r"\A\[(?P<author>[^\]\n]+)\]\n\n")


def attribute(body: str, author: str) -> str:
    """Prefix *body* with ``[author]`` for comments posted on their behalf."""
    return f"[{author}]\n\n{body}"


def split_attribution(body: str, default_author: str) -> tuple[str, str]:
    """Inverse of ``attribute()``; returns ``(author, body)``."""
    match = _ATTRIBUTION_RE.match(body)
    if match is None:
        return default_author, body
    return match.group("author"), body[match.end() :]
