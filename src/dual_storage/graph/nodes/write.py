"""Write node: one attempt at storing the record on both backends."""

from __future__ import annotations

from dual_storage.contracts.records import CONTENT_RECORD_ADAPTER
from dual_storage.engine.writer import BACKEND_A, BACKEND_B, DualStorageWriter
from dual_storage.graph.state import RecordState


async def run(state: RecordState, *, writer: DualStorageWriter) -> RecordState:
    record = state["record"]
    attempt = int(state.get("attempt", 0)) + 1

    if state.get("dry_run", False):
        # Re-derive the record from its serialised form without touching a backend.
        CONTENT_RECORD_ADAPTER.validate_python(record.model_dump(mode="json"))
        return {"attempt": attempt, "status": "succeeded", "transient": False, "last_error": None}

    result = await writer.write(record)
    if result.consistency == "full":
        return {
            "attempt": attempt,
            "status": "succeeded",
            "transient": False,
            "last_result": result,
            "last_error": None,
        }

    outcomes = {BACKEND_A: result.backend_a, BACKEND_B: result.backend_b}
    transient = all(outcome.attempted for outcome in outcomes.values()) and any(
        not outcome.success for outcome in outcomes.values()
    )
    errors = [outcome.error for outcome in outcomes.values() if outcome.error]
    return {
        "attempt": attempt,
        "status": "failed",
        "transient": transient,
        "last_result": result,
        "last_error": "; ".join(errors) or f"write consistency {result.consistency}",
    }
