"""Tests for the offline creation queue."""

import json
from unittest.mock import patch

import pytest

from tract_sync.sync.models import Link, QueueItem, Relation, TicketDraft
from tract_sync.sync.queue import OfflineQueue


def item(temp_id: str, created_at: str = "2026-02-12T10:00:00.000Z", **kw):
    return QueueItem(
        temp_id=temp_id,
        project_key="APP",
        payload=TicketDraft(title=f"Draft {temp_id}"),
        created_at=created_at,
        **kw,
    )


class TestOfflineQueue:
    def test_empty_queue(self, tmp_path):
        queue = OfflineQueue(tmp_path / "queue")
        assert queue.items() == []
        assert len(queue) == 0
        assert queue.load("APP-TEMP-1") is None

    def test_save_and_load(self, tmp_path):
        queue = OfflineQueue(tmp_path / "queue")
        original = QueueItem(
            temp_id="APP-TEMP-1",
            project_key="APP",
            payload=TicketDraft(
                title="Offline",
                labels=["x"],
                links=[Link(relation=Relation.BLOCKS, target="APP-2")],
            ),
            created_at="2026-02-12T10:00:00.000Z",
        )

        path = queue.save(original)

        assert path == tmp_path / "queue" / "APP-TEMP-1.json"
        assert queue.load("APP-TEMP-1") == original
        assert "APP-TEMP-1" in queue
        assert len(queue) == 1

    def test_file_format(self, tmp_path):
        queue = OfflineQueue(tmp_path)
        queue.save(item("APP-TEMP-1"))
        data = json.loads((tmp_path / "APP-TEMP-1.json").read_text())
        assert data["temp_id"] == "APP-TEMP-1"
        assert data["project_key"] == "APP"
        assert data["payload"]["title"] == "Draft APP-TEMP-1"
        assert data["real_id"] is None

    def test_save_replaces_and_leaves_no_temp_files(self, tmp_path):
        queue = OfflineQueue(tmp_path)
        queue.save(item("APP-TEMP-1"))
        queue.save(item("APP-TEMP-1", real_id="APP-9"))

        assert queue.load("APP-TEMP-1").real_id == "APP-9"
        assert [p.name for p in tmp_path.iterdir()] == ["APP-TEMP-1.json"]

    def test_failed_save_keeps_previous_version(self, tmp_path):
        queue = OfflineQueue(tmp_path)
        queue.save(item("APP-TEMP-1"))

        with patch(
            "tract_sync.file_handler.os.replace", side_effect=OSError("disk full")
        ):
            with pytest.raises(OSError):
                queue.save(item("APP-TEMP-1", real_id="APP-9"))

        assert queue.load("APP-TEMP-1").real_id is None
        assert [p.name for p in tmp_path.iterdir()] == ["APP-TEMP-1.json"]

    def test_items_oldest_first(self, tmp_path):
        queue = OfflineQueue(tmp_path)
        queue.save(item("APP-TEMP-3", created_at="2026-02-12T09:00:00.000Z"))
        queue.save(item("APP-TEMP-1", created_at="2026-02-12T11:00:00.000Z"))
        queue.save(item("APP-TEMP-2", created_at="2026-02-12T09:00:00.000Z"))

        assert [i.temp_id for i in queue.items()] == [
            "APP-TEMP-2",
            "APP-TEMP-3",
            "APP-TEMP-1",
        ]

    def test_unreadable_item_skipped_not_deleted(self, tmp_path, caplog):
        queue = OfflineQueue(tmp_path)
        queue.save(item("APP-TEMP-1"))
        broken = tmp_path / "APP-TEMP-2.json"
        broken.write_text("{not json")

        assert [i.temp_id for i in queue.items()] == ["APP-TEMP-1"]
        assert broken.exists()
        assert "unreadable queue item" in caplog.text

    def test_delete(self, tmp_path):
        queue = OfflineQueue(tmp_path)
        queue.save(item("APP-TEMP-1"))
        queue.delete("APP-TEMP-1")
        queue.delete("APP-TEMP-1")
        assert len(queue) == 0
        assert "APP-TEMP-1" not in queue
