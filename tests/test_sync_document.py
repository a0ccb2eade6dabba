"""Tests for the ticket document model: parse, serialize, diff and paths."""

from __future__ import annotations

import pytest

from tract_sync.exceptions import MalformedDocument
from tract_sync.sync.document import (
    diff,
    is_ticket_path,
    load_ticket,
    parse_document,
    serialize_document,
    ticket_id_from_path,
    ticket_path,
    write_ticket,
)
from tract_sync.sync.models import (
    Comment,
    Link,
    Relation,
    Ticket,
    TimeTracking,
)

FULL_DOCUMENT = """\
---
id: APP-12
title: Fix login redirect
type: bug
status: in-progress
priority: high
assignee: alice
labels:
- auth
- web
links:
- blocks: APP-14
- relation: relates
  target: APP-3
time_tracking:
  estimate: 2h
  remaining: 3600
---

Users land on /home after login.

```
GET /login?next=/settings
```

## Comments

### alice - 2026-02-12T10:00:00.000Z

Reproduced on staging.

### bob - 2026-02-12T11:30:00.000Z

Fix is in review.
"""


# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------


class TestPaths:
    @pytest.mark.parametrize(
        "path, expected",
        [
            ("issues/APP-12.md", True),
            ("issues/APP-TEMP-1.md", True),
            ("issues/sub/APP-12.md", False),
            ("docs/APP-12.md", False),
            ("issues/APP-12.txt", False),
            ("APP-12.md", False),
        ],
    )
    def test_is_ticket_path(self, path, expected):
        assert is_ticket_path(path) is expected

    def test_is_ticket_path_custom_dir(self):
        assert is_ticket_path("tickets/APP-1.md", "tickets/")
        assert not is_ticket_path("issues/APP-1.md", "tickets")

    def test_ticket_id_from_path(self):
        assert ticket_id_from_path("issues/APP-12.md") == "APP-12"

    def test_ticket_path(self, tmp_path):
        assert ticket_path(tmp_path, "APP-1") == tmp_path / "APP-1.md"


# ---------------------------------------------------------------------------
# Parse
# ---------------------------------------------------------------------------


class TestParseDocument:
    def test_full_document(self):
        ticket = parse_document(FULL_DOCUMENT)

        assert ticket.id == "APP-12"
        assert ticket.title == "Fix login redirect"
        assert ticket.type == "bug"
        assert ticket.status == "in-progress"
        assert ticket.labels == ["auth", "web"]
        assert ticket.links == [
            Link(relation=Relation.BLOCKS, target="APP-14"),
            Link(relation=Relation.RELATES, target="APP-3"),
        ]
        assert ticket.time_tracking == TimeTracking(
            estimate=7200, remaining=3600
        )
        assert ticket.description.startswith("Users land on /home")
        assert "GET /login?next=/settings" in ticket.description
        assert [c.author for c in ticket.comments] == ["alice", "bob"]
        assert ticket.comments[0].timestamp == "2026-02-12T10:00:00.000Z"
        assert ticket.comments[0].body == "Reproduced on staging."

    def test_minimal_document(self):
        ticket = parse_document("---\nid: APP-1\n---\n")
        assert ticket.id == "APP-1"
        assert ticket.title == ""
        assert ticket.description == ""
        assert ticket.comments == []
        assert ticket.offline is False

    def test_crlf_line_endings(self):
        ticket = parse_document(FULL_DOCUMENT.replace("\n", "\r\n"))
        assert ticket.id == "APP-12"
        assert len(ticket.comments) == 2

    def test_single_label_string_becomes_list(self):
        ticket = parse_document("---\nid: APP-1\nlabels: auth\n---\n")
        assert ticket.labels == ["auth"]

    def test_relation_spelling_is_normalized(self):
        ticket = parse_document(
            "---\nid: APP-1\nlinks:\n- Blocked-By: APP-2\n---\n"
        )
        assert ticket.links == [
            Link(relation=Relation.BLOCKED_BY, target="APP-2")
        ]

    def test_offline_flag(self):
        ticket = parse_document(
            "---\nid: APP-TEMP-1\noffline: true\n---\n"
        )
        assert ticket.offline is True

    def test_comment_with_empty_body(self):
        ticket = parse_document(
            "---\nid: APP-1\n---\n\n## Comments\n\n### alice - 2026-01-01\n"
        )
        assert ticket.comments == [
            Comment(author="alice", timestamp="2026-01-01", body="")
        ]

    @pytest.mark.parametrize(
        "text, message",
        [
            ("no frontmatter here", "missing '---' frontmatter"),
            ("---\nid: [unclosed\n---\n", "invalid frontmatter"),
            ("---\n- a\n- b\n---\n", "must be a mapping"),
            ("---\ntitle: x\n---\n", "no 'id'"),
            ("---\nid: APP-1\nlinks: APP-2\n---\n", "'links' must be a list"),
            (
                "---\nid: APP-1\nlinks:\n- fancies: APP-2\n---\n",
                "unknown link relation",
            ),
            (
                "---\nid: APP-1\n---\n\n## Comments\n\nstray text\n",
                "must start with",
            ),
            (
                "---\nid: APP-1\n---\n\n## Comments\n\n"
                "### alice - 2026-01-01\nno blank line\n",
                "needs a blank line",
            ),
        ],
    )
    def test_malformed(self, text, message):
        with pytest.raises(MalformedDocument, match=message):
            parse_document(text)

    def test_malformed_error_carries_path(self):
        with pytest.raises(MalformedDocument) as excinfo:
            parse_document("---\ntitle: x\n---\n", "issues/APP-1.md")
        assert excinfo.value.path == "issues/APP-1.md"
        assert str(excinfo.value).startswith("issues/APP-1.md:")

    def test_unparsable_duration_is_ignored(self):
        ticket = parse_document(
            "---\nid: APP-1\ntime_tracking:\n  estimate: soon\n---\n"
        )
        assert ticket.time_tracking.estimate is None


# ---------------------------------------------------------------------------
# Serialize
# ---------------------------------------------------------------------------


class TestSerializeDocument:
    def test_round_trip(self):
        ticket = parse_document(FULL_DOCUMENT)
        assert parse_document(serialize_document(ticket)) == ticket

    @pytest.mark.parametrize(
        "ticket",
        [
            Ticket(
                id="APP-1",
                description="Intro\n\n## Comments\n\nPlease keep feedback below.",
            ),
            Ticket(id="APP-1", description="### alice - 2026-01-01\n\nquoted"),
            Ticket(id="APP-1", description="\\### already escaped\n\\\\## Comments"),
            Ticket(
                id="APP-1",
                comments=[
                    Comment(
                        author="alice",
                        timestamp="2026-02-12T10:00:00.000Z",
                        body="### Step 1 - install\n\nRun it.\n\n## Comments",
                    )
                ],
            ),
            Ticket(
                id="APP-1",
                comments=[
                    Comment(
                        author="Jean - Luc",
                        timestamp="2026-02-12T10:00:00.000Z",
                        body="Salut",
                    ),
                    Comment(author="bob", timestamp="", body="no date"),
                ],
            ),
        ],
        ids=[
            "comments-heading-in-description",
            "comment-header-in-description",
            "backslashes-kept",
            "headings-in-comment-body",
            "author-with-separator",
        ],
    )
    def test_round_trip_with_reserved_lines(self, ticket):
        parsed = parse_document(serialize_document(ticket))
        assert parsed == ticket
        assert diff(parsed, ticket).is_empty

    def test_reserved_lines_escaped_on_disk(self):
        ticket = Ticket(
            id="APP-1",
            description="## Comments",
            comments=[Comment(author="a", timestamp="t", body="### Step")],
        )
        text = serialize_document(ticket)
        assert "\n\\## Comments\n" in text
        assert "\n\\### Step\n" in text

    def test_layout(self):
        ticket = Ticket(
            id="APP-1",
            title="Title",
            status="open",
            description="Body text.",
            comments=[
                Comment(author="alice", timestamp="2026-01-01", body="Hi")
            ],
        )
        text = serialize_document(ticket)
        assert text == (
            "---\n"
            "id: APP-1\n"
            "title: Title\n"
            "status: open\n"
            "---\n"
            "\n"
            "Body text.\n"
            "\n"
            "## Comments\n"
            "\n"
            "### alice - 2026-01-01\n"
            "\n"
            "Hi\n"
        )

    def test_empty_fields_are_omitted(self):
        text = serialize_document(Ticket(id="APP-1"))
        assert text == "---\nid: APP-1\n---\n"

    def test_links_written_in_short_form(self):
        ticket = Ticket(
            id="APP-1",
            links=[Link(relation=Relation.BLOCKED_BY, target="APP-2")],
        )
        assert "links:\n- blocked_by: APP-2\n" in serialize_document(ticket)

    def test_offline_written_only_when_true(self):
        assert "offline: true" in serialize_document(
            Ticket(id="APP-TEMP-1", offline=True)
        )
        assert "offline" not in serialize_document(Ticket(id="APP-1"))

    def test_write_and_load(self, tmp_path):
        ticket = parse_document(FULL_DOCUMENT)
        path = tmp_path / "issues" / "APP-12.md"
        write_ticket(path, ticket)
        assert load_ticket(path) == ticket


# ---------------------------------------------------------------------------
# Diff
# ---------------------------------------------------------------------------


class TestDiff:
    def test_identical_snapshots_are_empty(self):
        ticket = parse_document(FULL_DOCUMENT)
        assert diff(ticket, ticket).is_empty

    def test_scalar_change(self):
        old = Ticket(id="APP-1", title="Old", status="open")
        new = Ticket(id="APP-1", title="New", status="done")
        changes = diff(old, new)
        assert changes.fields == {"title": "New", "status": "done"}
        assert changes.new_comments == []

    def test_label_order_is_ignored(self):
        old = Ticket(id="APP-1", labels=["a", "b"])
        new = Ticket(id="APP-1", labels=["b", "a"])
        assert diff(old, new).is_empty

    def test_label_change(self):
        old = Ticket(id="APP-1", labels=["a"])
        new = Ticket(id="APP-1", labels=["a", "b"])
        assert diff(old, new).fields == {"labels": ["a", "b"]}

    def test_description_trailing_newlines_ignored(self):
        old = Ticket(id="APP-1", description="Body\n")
        new = Ticket(id="APP-1", description="Body")
        assert diff(old, new).is_empty

    def test_link_change(self):
        old = Ticket(
            id="APP-1", links=[Link(relation=Relation.BLOCKS, target="APP-2")]
        )
        new = Ticket(
            id="APP-1",
            links=[Link(relation=Relation.RELATES, target="APP-2")],
        )
        changes = diff(old, new)
        assert changes.fields["links"] == new.links

    def test_time_tracking_change(self):
        old = Ticket(id="APP-1", time_tracking=TimeTracking(estimate=3600))
        new = Ticket(id="APP-1", time_tracking=TimeTracking(estimate=7200))
        assert diff(old, new).fields == {
            "time_tracking": TimeTracking(estimate=7200)
        }

    def test_appended_comment_reported(self):
        first = Comment(author="alice", timestamp="t1", body="one")
        second = Comment(author="bob", timestamp="t2", body="two")
        old = Ticket(id="APP-1", comments=[first])
        new = Ticket(id="APP-1", comments=[first, second])
        changes = diff(old, new)
        assert changes.fields == {}
        assert changes.new_comments == [second]
        assert changes.keys() == {"comments"}

    def test_edited_comment_shows_up_as_new_triple(self):
        old = Ticket(
            id="APP-1",
            comments=[Comment(author="alice", timestamp="t1", body="one")],
        )
        new = Ticket(
            id="APP-1",
            comments=[Comment(author="alice", timestamp="t1", body="uno")],
        )
        # the old triple is simply gone; only the new text is reported
        assert diff(old, new).new_comments == new.comments

    def test_deleted_comment_not_reported(self):
        old = Ticket(
            id="APP-1",
            comments=[Comment(author="alice", timestamp="t1", body="one")],
        )
        new = Ticket(id="APP-1")
        assert diff(old, new).is_empty

    def test_duplicate_comments_counted(self):
        comment = Comment(author="alice", timestamp="t1", body="+1")
        old = Ticket(id="APP-1", comments=[comment])
        new = Ticket(id="APP-1", comments=[comment, comment])
        assert diff(old, new).new_comments == [comment]

    def test_new_document_diffed_against_empty(self):
        new = Ticket(id="APP-1", title="Brand new", status="open")
        changes = diff(None, new)
        assert changes.fields == {"title": "Brand new", "status": "open"}
