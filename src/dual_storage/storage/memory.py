"""In-memory storage backend for tests and local dry runs."""

from __future__ import annotations

import copy
import threading
from typing import Any

from dual_storage.contracts.records import ContentRecord
from dual_storage.contracts.validation import validate_record


class InMemoryContentStorage:
    """Simple dict-backed implementation keyed by ``(type, id)``.

    Rows are kept as plain dicts so tests can seed malformed data that only
    fails once it is read back through the schema layer.
    """

    def __init__(self, name: str = "memory") -> None:
        self.name = name
        self._rows: dict[tuple[str, str], dict[str, Any]] = {}
        self._backups: dict[str, dict[tuple[str, str], dict[str, Any]]] = {}
        self._lock = threading.Lock()

    def migrate(self) -> None:
        return None

    def seed(self, row: dict[str, Any]) -> None:
        with self._lock:
            self._rows[(str(row.get("type")), str(row.get("id")))] = copy.deepcopy(row)

    def upsert(self, record: ContentRecord) -> ContentRecord:
        row = record.model_dump(mode="json")
        with self._lock:
            self._rows[record.key] = row
        return validate_record(row)

    def get(self, record_type: str, record_id: str) -> ContentRecord | None:
        with self._lock:
            row = self._rows.get((record_type, record_id))
        if row is None:
            return None
        return validate_record(row)

    def count(self) -> int:
        with self._lock:
            return len(self._rows)

    def list_page(self, *, offset: int, limit: int) -> list[dict[str, Any]]:
        with self._lock:
            rows = sorted(
                self._rows.values(),
                key=lambda row: (str(row.get("created_at", "")), str(row.get("type")), str(row.get("id"))),
            )
        return [copy.deepcopy(row) for row in rows[offset : offset + limit]]

    def list_keys(self) -> list[tuple[str, str]]:
        with self._lock:
            return list(self._rows.keys())

    def create_backup(self, backup_id: str) -> int:
        with self._lock:
            self._backups[backup_id] = copy.deepcopy(self._rows)
            return len(self._rows)

    def restore_backup(self, backup_id: str) -> int:
        with self._lock:
            backup = self._backups.get(backup_id)
            if backup is None:
                raise KeyError(f"Backup {backup_id} does not exist")
            # Upsert only; rows created after the backup are kept.
            self._rows.update(copy.deepcopy(backup))
            return len(backup)

    def rollback_steps(self, backup_id: str) -> list[str]:
        return [f"restore {self.name} rows from in-memory backup {backup_id} (upsert by type, id)"]

    def verification_steps(self, backup_id: str) -> list[str]:
        return [
            f"compare row count of backup {backup_id} with {self.name}",
            "run verify-integrity and confirm no missing keys",
        ]
