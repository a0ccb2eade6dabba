"""Offline creation queue.

One JSON file per pending ticket creation, stored as
``<queue_dir>/<temp_id>.json``::

    {
      "temp_id": "APP-TEMP-1739354400000000000",
      "project_key": "APP",
      "payload": {"title": "...", "type": "task", ...},
      "created_at": "2026-02-12T10:00:00+00:00",
      "real_id": null
    }

``payload`` is the original ``TicketDraft`` and is replayed verbatim on
reconcile.  Items are written with ``atomic_write_text()``, so a crash
never leaves a half-written item behind.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from pydantic import ValidationError

from ..file_handler import atomic_write_text
from .models import QueueItem

logger = logging.getLogger(__name__)

QUEUE_SUFFIX = ".json"


class OfflineQueue:
    """Durable store of ``QueueItem`` records keyed by temp id.

    Args:
        queue_dir: Directory holding the item files.  Created on first
            save.
    """

    def __init__(self, queue_dir: Path) -> None:
        self._queue_dir = queue_dir

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save(self, item: QueueItem) -> Path:
        """Persist *item* atomically, replacing any previous version."""
        target = self.path_for(item.temp_id)
        atomic_write_text(
            target, json.dumps(item.model_dump(mode="json"), indent=2)
        )
        return target

    def load(self, temp_id: str) -> QueueItem | None:
        path = self.path_for(temp_id)
        if not path.exists():
            return None
        return self._read(path)

    def delete(self, temp_id: str) -> None:
        """Remove the item for *temp_id*.  No-op if absent."""
        try:
            self.path_for(temp_id).unlink()
        except FileNotFoundError:
            pass

    def items(self) -> list[QueueItem]:
        """All readable items, oldest first.

        Unreadable files are logged and skipped, never deleted.
        """
        if not self._queue_dir.is_dir():
            return []
        items: list[QueueItem] = []
        for path in sorted(self._queue_dir.glob(f"*{QUEUE_SUFFIX}")):
            try:
                items.append(self._read(path))
            except (OSError, ValueError, ValidationError) as exc:
                logger.warning("Skipping unreadable queue item %s: %s", path, exc)
        return sorted(items, key=lambda i: (i.created_at, i.temp_id))

    def __contains__(self, temp_id: str) -> bool:
        return self.path_for(temp_id).exists()

    def __len__(self) -> int:
        if not self._queue_dir.is_dir():
            return 0
        return sum(1 for _ in self._queue_dir.glob(f"*{QUEUE_SUFFIX}"))

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def path_for(self, temp_id: str) -> Path:
        return self._queue_dir / f"{temp_id}{QUEUE_SUFFIX}"

    @staticmethod
    def _read(path: Path) -> QueueItem:
        with open(path, encoding="utf-8") as fh:
            return QueueItem.model_validate(json.load(fh))
