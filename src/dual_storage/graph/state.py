"""Typed state contract for the per-record migration graph."""

from typing import Any, TypedDict

from dual_storage.contracts.records import ContentRecord
from dual_storage.contracts.results import (
    DataQualityReport,
    DualStorageResult,
    MigrationRecordError,
)


class RecordState(TypedDict, total=False):
    raw: dict[str, Any]
    record_type: str | None
    record_id: str
    record: ContentRecord | None
    dry_run: bool
    # pending -> (skipped | writing) -> (succeeded | failed); validate decides the first hop
    status: str
    quality: DataQualityReport | None
    attempt: int
    max_retries: int
    transient: bool
    last_result: DualStorageResult | None
    last_error: str | None
    error: MigrationRecordError | None


def initial_state(raw: dict[str, Any], *, dry_run: bool = False, max_retries: int = 3) -> RecordState:
    return {
        "raw": dict(raw),
        "record_type": raw.get("type"),
        "record_id": str(raw.get("id") or "<unknown>"),
        "record": None,
        "dry_run": dry_run,
        "status": "pending",
        "quality": None,
        "attempt": 0,
        "max_retries": max_retries,
        "transient": False,
        "last_result": None,
        "last_error": None,
        "error": None,
    }
