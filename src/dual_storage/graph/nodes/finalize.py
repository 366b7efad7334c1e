"""Finalize node: turn a terminal record state into a report entry."""

from __future__ import annotations

from dual_storage.contracts.results import MigrationRecordError
from dual_storage.graph.state import RecordState


def run(state: RecordState) -> RecordState:
    status = state.get("status", "failed")
    if status == "succeeded":
        return {"error": None}

    record_id = state.get("record_id", "<unknown>")
    record_type = state.get("record_type")
    message = state.get("last_error") or "unknown error"

    if status == "skipped":
        error = MigrationRecordError(
            record_id=record_id,
            record_type=record_type,
            error=message,
            severity="medium",
            recoverable=True,
            suggested_action="Correct the source record and re-run the migration",
        )
    else:
        transient = bool(state.get("transient", False))
        error = MigrationRecordError(
            record_id=record_id,
            record_type=record_type,
            error=message,
            severity="high",
            recoverable=transient,
            suggested_action=(
                "Check backend logs and re-run the migration for this record"
                if transient
                else "Wait for the backend circuit to close, then re-run the migration"
            ),
        )
    return {"status": status, "error": error}
