"""PostgreSQL-backed content storage (backend A) with automatic table migration."""

from __future__ import annotations

import json
import re
import threading
from datetime import datetime
from typing import Any

from dual_storage.contracts.records import ContentRecord
from dual_storage.contracts.validation import validate_record

TABLE_NAME = "content_records"
_BACKUP_ID_PATTERN = re.compile(r"^[a-z0-9_]{1,40}$")


class PostgresContentStorage:
    """Persist content records of every type in one relational table."""

    def __init__(self, database_url: str, *, name: str = "backend_a") -> None:
        if not database_url:
            raise ValueError("DUAL_STORAGE_DATABASE_URL is required")
        self.name = name
        self.database_url = database_url
        self._lock = threading.Lock()
        self._psycopg, self._dict_row, self._json_wrapper = self._load_psycopg()

    def migrate(self) -> None:
        with self._lock, self._connect() as conn:
            conn.execute(f"""
                CREATE TABLE IF NOT EXISTS {TABLE_NAME} (
                    record_type TEXT NOT NULL,
                    id TEXT NOT NULL,
                    title TEXT NOT NULL,
                    owner_id TEXT,
                    status TEXT NOT NULL,
                    project_id TEXT,
                    payload JSONB NOT NULL DEFAULT '{{}}'::jsonb,
                    created_at TIMESTAMPTZ NOT NULL,
                    updated_at TIMESTAMPTZ NOT NULL,
                    PRIMARY KEY (record_type, id)
                )
                """)
            conn.execute(f"""
                CREATE INDEX IF NOT EXISTS idx_{TABLE_NAME}_status
                ON {TABLE_NAME}(status)
                """)
            conn.execute(f"""
                CREATE INDEX IF NOT EXISTS idx_{TABLE_NAME}_project_id
                ON {TABLE_NAME}(project_id)
                """)
            conn.execute(f"""
                CREATE INDEX IF NOT EXISTS idx_{TABLE_NAME}_created_at
                ON {TABLE_NAME}(created_at, record_type, id)
                """)
            conn.commit()

    def upsert(self, record: ContentRecord) -> ContentRecord:
        with self._lock, self._connect() as conn:
            row = conn.execute(
                f"""
                INSERT INTO {TABLE_NAME} (
                    record_type,
                    id,
                    title,
                    owner_id,
                    status,
                    project_id,
                    payload,
                    created_at,
                    updated_at
                ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
                ON CONFLICT (record_type, id) DO UPDATE
                SET title = EXCLUDED.title,
                    owner_id = EXCLUDED.owner_id,
                    status = EXCLUDED.status,
                    project_id = EXCLUDED.project_id,
                    payload = EXCLUDED.payload,
                    created_at = EXCLUDED.created_at,
                    updated_at = EXCLUDED.updated_at
                RETURNING *
                """,
                (
                    record.type,
                    record.id,
                    record.title,
                    record.owner_id,
                    record.status,
                    record.project_id,
                    self._json_wrapper(record.payload.model_dump(mode="json")),
                    record.created_at,
                    record.updated_at,
                ),
            ).fetchone()
            conn.commit()
        if row is None:
            raise RuntimeError(f"Failed to persist {record.type} {record.id}")
        return validate_record(self._row_to_dict(row))

    def get(self, record_type: str, record_id: str) -> ContentRecord | None:
        with self._lock, self._connect() as conn:
            row = conn.execute(
                f"SELECT * FROM {TABLE_NAME} WHERE record_type = %s AND id = %s",
                (record_type, record_id),
            ).fetchone()
        if row is None:
            return None
        return validate_record(self._row_to_dict(row))

    def count(self) -> int:
        with self._lock, self._connect() as conn:
            row = conn.execute(f"SELECT COUNT(*) AS total FROM {TABLE_NAME}").fetchone()
        return int(row["total"]) if row else 0

    def list_page(self, *, offset: int, limit: int) -> list[dict[str, Any]]:
        with self._lock, self._connect() as conn:
            rows = conn.execute(
                f"""
                SELECT *
                FROM {TABLE_NAME}
                ORDER BY created_at ASC, record_type ASC, id ASC
                OFFSET %s
                LIMIT %s
                """,
                (offset, limit),
            ).fetchall()
        return [self._row_to_dict(row) for row in rows]

    def list_keys(self) -> list[tuple[str, str]]:
        with self._lock, self._connect() as conn:
            rows = conn.execute(f"SELECT record_type, id FROM {TABLE_NAME}").fetchall()
        return [(str(row["record_type"]), str(row["id"])) for row in rows]

    def create_backup(self, backup_id: str) -> int:
        table = self._backup_table(backup_id)
        with self._lock, self._connect() as conn:
            conn.execute(f"CREATE TABLE {table} AS SELECT * FROM {TABLE_NAME}")
            row = conn.execute(f"SELECT COUNT(*) AS total FROM {table}").fetchone()
            conn.commit()
        return int(row["total"]) if row else 0

    def restore_backup(self, backup_id: str) -> int:
        with self._lock, self._connect() as conn:
            for statement in self.rollback_steps(backup_id):
                conn.execute(statement)
            row = conn.execute(
                f"SELECT COUNT(*) AS total FROM {self._backup_table(backup_id)}"
            ).fetchone()
            conn.commit()
        return int(row["total"]) if row else 0

    def rollback_steps(self, backup_id: str) -> list[str]:
        table = self._backup_table(backup_id)
        return [
            f"""
            INSERT INTO {TABLE_NAME}
            SELECT * FROM {table}
            ON CONFLICT (record_type, id) DO UPDATE
            SET title = EXCLUDED.title,
                owner_id = EXCLUDED.owner_id,
                status = EXCLUDED.status,
                project_id = EXCLUDED.project_id,
                payload = EXCLUDED.payload,
                created_at = EXCLUDED.created_at,
                updated_at = EXCLUDED.updated_at
            """.strip(),
        ]

    def verification_steps(self, backup_id: str) -> list[str]:
        table = self._backup_table(backup_id)
        return [
            f"SELECT COUNT(*) FROM {table};",
            f"SELECT COUNT(*) FROM {TABLE_NAME};",
            "Compare counts with backend B using verify-integrity",
        ]

    def _connect(self) -> Any:
        return self._psycopg.connect(self.database_url, row_factory=self._dict_row)

    @staticmethod
    def _backup_table(backup_id: str) -> str:
        if not _BACKUP_ID_PATTERN.match(backup_id):
            raise ValueError(f"Invalid backup identifier: {backup_id!r}")
        return f"{TABLE_NAME}_{backup_id}"

    @staticmethod
    def _load_psycopg() -> tuple[Any, Any, Any]:
        try:
            import psycopg
            from psycopg.rows import dict_row
            from psycopg.types.json import Json
        except ImportError as exc:  # pragma: no cover
            raise RuntimeError(
                "PostgreSQL storage requires psycopg. "
                'Install with: python -m pip install "psycopg[binary]>=3.2,<4.0"'
            ) from exc
        return psycopg, dict_row, Json

    @staticmethod
    def _parse_json_object(raw: Any) -> dict[str, Any]:
        if isinstance(raw, str):
            parsed = json.loads(raw)
        else:
            parsed = raw
        if isinstance(parsed, dict):
            return parsed
        return {}

    @staticmethod
    def _parse_datetime(raw: Any) -> datetime:
        if isinstance(raw, datetime):
            return raw
        if isinstance(raw, str):
            return datetime.fromisoformat(raw)
        raise TypeError(f"Unsupported datetime value: {type(raw)!r}")

    @classmethod
    def _row_to_dict(cls, row: Any) -> dict[str, Any]:
        return {
            "id": str(row["id"]),
            "type": str(row["record_type"]),
            "title": row["title"],
            "owner_id": row["owner_id"],
            "status": row["status"],
            "project_id": row["project_id"],
            "payload": cls._parse_json_object(row["payload"]),
            "created_at": cls._parse_datetime(row["created_at"]),
            "updated_at": cls._parse_datetime(row["updated_at"]),
        }
