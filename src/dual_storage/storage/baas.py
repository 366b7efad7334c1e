"""Backend-as-a-service content storage (backend B) over a PostgREST-style table API.

One table per content type. Payload fields are stored as flat columns, so
reading a row back re-derives the typed payload from those columns.
"""

from __future__ import annotations

import json
import threading
from pathlib import Path
from typing import Any
from urllib import error, parse, request

from dual_storage.contracts.records import (
    RECORD_TYPES,
    ContentRecord,
    PromptPayload,
    ScenarioPayload,
    StoryPayload,
    VideoJobPayload,
)
from dual_storage.contracts.validation import validate_record

TABLES: dict[str, str] = {
    "story": "stories",
    "scenario": "scenarios",
    "prompt": "prompts",
    "video_job": "video_jobs",
}

PAYLOAD_FIELDS: dict[str, tuple[str, ...]] = {
    "story": tuple(StoryPayload.model_fields),
    "scenario": tuple(ScenarioPayload.model_fields),
    "prompt": tuple(PromptPayload.model_fields),
    "video_job": tuple(VideoJobPayload.model_fields),
}

PAGE_SIZE = 1000


class BaasContentStorage:
    """Persist content records through the BaaS REST table API."""

    def __init__(
        self,
        base_url: str,
        service_key: str,
        *,
        name: str = "backend_b",
        timeout_s: float = 5.0,
        backup_dir: str | Path = "backups",
    ) -> None:
        if not base_url:
            raise ValueError("DUAL_STORAGE_BAAS_URL is required")
        if not service_key:
            raise ValueError("DUAL_STORAGE_BAAS_SERVICE_KEY is required")
        self.name = name
        self.base_url = base_url.rstrip("/")
        self.service_key = service_key
        self.timeout_s = timeout_s
        self.backup_dir = Path(backup_dir)
        self._lock = threading.Lock()

    def migrate(self) -> None:
        # Tables are provisioned through the provider's dashboard/migrations.
        return None

    def upsert(self, record: ContentRecord) -> ContentRecord:
        rows, _ = self._request(
            "POST",
            TABLES[record.type],
            query={"on_conflict": "id"},
            body=[to_row(record)],
            prefer="resolution=merge-duplicates,return=representation",
        )
        if not isinstance(rows, list) or not rows:
            raise RuntimeError(f"BaaS upsert returned no row for {record.type} {record.id}")
        return validate_record(from_row(record.type, rows[0]))

    def get(self, record_type: str, record_id: str) -> ContentRecord | None:
        rows, _ = self._request(
            "GET",
            _table(record_type),
            query={"id": f"eq.{record_id}", "select": "*", "limit": "1"},
        )
        if not isinstance(rows, list) or not rows:
            return None
        return validate_record(from_row(record_type, rows[0]))

    def count(self) -> int:
        return sum(self._count_table(record_type) for record_type in RECORD_TYPES)

    def list_page(self, *, offset: int, limit: int) -> list[dict[str, Any]]:
        output: list[dict[str, Any]] = []
        remaining = limit
        cursor = offset
        for record_type in RECORD_TYPES:
            if remaining <= 0:
                break
            table_total = self._count_table(record_type)
            if cursor >= table_total:
                cursor -= table_total
                continue
            rows, _ = self._request(
                "GET",
                TABLES[record_type],
                query={
                    "select": "*",
                    "order": "created_at.asc,id.asc",
                    "offset": str(cursor),
                    "limit": str(remaining),
                },
            )
            page = [from_row(record_type, row) for row in rows or []]
            output.extend(page)
            remaining -= len(page)
            cursor = 0
        return output

    def list_keys(self) -> list[tuple[str, str]]:
        keys: list[tuple[str, str]] = []
        for record_type in RECORD_TYPES:
            offset = 0
            while True:
                rows, _ = self._request(
                    "GET",
                    TABLES[record_type],
                    query={
                        "select": "id",
                        "order": "id.asc",
                        "offset": str(offset),
                        "limit": str(PAGE_SIZE),
                    },
                )
                rows = rows or []
                keys.extend((record_type, str(row["id"])) for row in rows)
                if len(rows) < PAGE_SIZE:
                    break
                offset += PAGE_SIZE
        return keys

    def create_backup(self, backup_id: str) -> int:
        path = self._backup_path(backup_id)
        path.parent.mkdir(parents=True, exist_ok=True)
        written = 0
        with self._lock, path.open("w", encoding="utf-8") as handle:
            offset = 0
            while True:
                page = self.list_page(offset=offset, limit=PAGE_SIZE)
                for row in page:
                    handle.write(json.dumps(row, ensure_ascii=False, default=str) + "\n")
                written += len(page)
                if len(page) < PAGE_SIZE:
                    break
                offset += PAGE_SIZE
        return written

    def restore_backup(self, backup_id: str) -> int:
        path = self._backup_path(backup_id)
        if not path.exists():
            raise FileNotFoundError(f"Backup file not found: {path}")
        restored = 0
        with path.open("r", encoding="utf-8") as handle:
            for line in handle:
                if not line.strip():
                    continue
                self.upsert(validate_record(json.loads(line)))
                restored += 1
        return restored

    def rollback_steps(self, backup_id: str) -> list[str]:
        path = self._backup_path(backup_id)
        return [
            f"for each line in {path}: POST /rest/v1/<table>?on_conflict=id "
            "with Prefer: resolution=merge-duplicates",
        ]

    def verification_steps(self, backup_id: str) -> list[str]:
        path = self._backup_path(backup_id)
        return [
            f"count lines in {path}",
            "GET /rest/v1/<table>?select=id with Prefer: count=exact for "
            + ", ".join(TABLES.values()),
            "Compare counts with backend A using verify-integrity",
        ]

    def _backup_path(self, backup_id: str) -> Path:
        if not backup_id or "/" in backup_id or backup_id.startswith("."):
            raise ValueError(f"Invalid backup identifier: {backup_id!r}")
        return self.backup_dir / f"{backup_id}.jsonl"

    def _count_table(self, record_type: str) -> int:
        _, headers = self._request(
            "GET",
            TABLES[record_type],
            query={"select": "id", "limit": "1"},
            prefer="count=exact",
        )
        # Content-Range looks like "0-0/42" or "*/0".
        content_range = headers.get("Content-Range", "")
        total = content_range.rsplit("/", 1)[-1] if "/" in content_range else ""
        if not total.isdigit():
            raise RuntimeError(f"BaaS count for {record_type} returned no total")
        return int(total)

    def _request(
        self,
        method: str,
        table: str,
        *,
        query: dict[str, str] | None = None,
        body: Any = None,
        prefer: str | None = None,
    ) -> tuple[Any, dict[str, str]]:
        url = f"{self.base_url}/rest/v1/{table}"
        if query:
            url = f"{url}?{parse.urlencode(query)}"
        headers = {
            "apikey": self.service_key,
            "Authorization": f"Bearer {self.service_key}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if prefer:
            headers["Prefer"] = prefer

        req = request.Request(
            url=url,
            data=json.dumps(body, default=str).encode("utf-8") if body is not None else None,
            method=method,
            headers=headers,
        )
        try:
            with request.urlopen(req, timeout=self.timeout_s) as response:
                raw = response.read().decode("utf-8")
                response_headers = dict(response.headers.items())
        except error.HTTPError as exc:
            message = exc.read().decode("utf-8", errors="replace")
            raise RuntimeError(
                f"BaaS request {method} {table} failed with status {exc.code}: {message[:400]}"
            ) from exc
        except error.URLError as exc:
            raise RuntimeError(f"BaaS request {method} {table} failed: {exc.reason}") from exc

        if not raw.strip():
            return None, response_headers
        try:
            return json.loads(raw), response_headers
        except json.JSONDecodeError as exc:
            raise RuntimeError("BaaS returned non-JSON response") from exc


def to_row(record: ContentRecord) -> dict[str, Any]:
    """Flatten a record into the column layout of its BaaS table."""
    row: dict[str, Any] = {
        "id": record.id,
        "title": record.title,
        "user_id": record.owner_id,
        "status": record.status,
        "project_id": record.project_id,
        "created_at": record.created_at.isoformat(),
        "updated_at": record.updated_at.isoformat(),
    }
    row.update(record.payload.model_dump(mode="json"))
    return row


def from_row(record_type: str, row: dict[str, Any]) -> dict[str, Any]:
    """Re-derive the canonical record shape from a flat BaaS row."""
    payload = {
        field: row[field]
        for field in PAYLOAD_FIELDS[_known_type(record_type)]
        if field in row and row[field] is not None
    }
    return {
        "id": str(row.get("id", "")),
        "type": record_type,
        "title": row.get("title"),
        "owner_id": row.get("user_id"),
        "status": row.get("status"),
        "project_id": row.get("project_id"),
        "payload": payload,
        "created_at": row.get("created_at"),
        "updated_at": row.get("updated_at"),
    }


def _known_type(record_type: str) -> str:
    if record_type not in TABLES:
        raise ValueError(f"Unknown record type: {record_type}")
    return record_type


def _table(record_type: str) -> str:
    return TABLES[_known_type(record_type)]
