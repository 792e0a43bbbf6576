"""
History Store
=============
Keeps a short, newest-first list of build records in a JSON file.

Scope:
    - Simple key-value history only (record id → record)
    - Capped at HISTORY_LIMIT entries; the oldest fall off
    - A missing or unreadable file reads as an empty history

Not Stored:
    - Access tokens
    - Event streams (they live with the in-memory session only)
"""
import json
import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from smart_builder.core.config import HISTORY_LIMIT, HISTORY_PATH
from smart_builder.models.build_record import BuildRecord

logger = logging.getLogger(__name__)


class HistoryStore:
    """
    JSON-file build history.

    Usage:
        store = HistoryStore("build_history.json")
        store.add(BuildRecord(id="web_build_1", target_device="x86_64"))
        store.update("web_build_1", status="success")
    """

    def __init__(self, path: str = HISTORY_PATH, limit: int = HISTORY_LIMIT) -> None:
        self.path = os.path.abspath(path)
        self.limit = limit

    def list(self) -> List[BuildRecord]:
        """Return all records, newest first."""
        if not os.path.exists(self.path):
            return []
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                raw = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Could not read build history %s: %s", self.path, e)
            return []

        records = []
        for item in raw if isinstance(raw, list) else []:
            try:
                records.append(BuildRecord.model_validate(item))
            except ValidationError as e:
                logger.debug("Skipping malformed history entry: %s", e)
        return records

    def get(self, record_id: str) -> Optional[BuildRecord]:
        return next((r for r in self.list() if r.id == record_id), None)

    def add(self, record: BuildRecord) -> BuildRecord:
        records = [r for r in self.list() if r.id != record.id]
        records.insert(0, record)
        self._write(records[: self.limit])
        return record

    def update(self, record_id: str, **changes: Any) -> Optional[BuildRecord]:
        records = self.list()
        for index, record in enumerate(records):
            if record.id == record_id:
                changes.setdefault("updated_at", datetime.now(timezone.utc))
                records[index] = record.model_copy(update=changes)
                self._write(records)
                return records[index]
        logger.debug("No history record %s to update", record_id)
        return None

    def delete(self, record_id: str) -> bool:
        records = self.list()
        remaining = [r for r in records if r.id != record_id]
        if len(remaining) == len(records):
            return False
        self._write(remaining)
        return True

    def clear(self) -> None:
        if os.path.exists(self.path):
            os.remove(self.path)
            logger.info("Build history cleared")

    def stats(self) -> Dict[str, int]:
        records = self.list()
        stats = {
            "total": len(records),
            "success": sum(1 for r in records if r.status == "success"),
            "failed": sum(1 for r in records if r.status == "failed"),
            "running": sum(1 for r in records if r.status == "running"),
        }
        stats["success_rate"] = round(stats["success"] / stats["total"] * 100) if stats["total"] else 0
        return stats

    def _write(self, records: List[BuildRecord]) -> None:
        directory = os.path.dirname(self.path)
        if directory and not os.path.exists(directory):
            os.makedirs(directory)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump([r.model_dump(mode="json") for r in records], f, indent=2)
