"""Validate node: schema check plus the quality pre-check that can skip a record."""

from __future__ import annotations

import logging

from dual_storage.contracts.validation import validate_record
from dual_storage.engine.quality import score_record
from dual_storage.errors import ValidationError
from dual_storage.graph.state import RecordState

logger = logging.getLogger(__name__)


def run(state: RecordState, *, skip_threshold: int = 60, threshold: int = 80) -> RecordState:
    try:
        record = validate_record(state.get("raw", {}))
    except ValidationError as exc:
        logger.warning("Skipping %s %s: %s", state.get("record_type"), state.get("record_id"), exc)
        return {"status": "skipped", "last_error": str(exc)}

    quality = score_record(record, threshold=threshold)
    if quality.score < skip_threshold:
        logger.warning(
            "Skipping %s %s: quality score %d below %d",
            record.type,
            record.id,
            quality.score,
            skip_threshold,
        )
        return {
            "status": "skipped",
            "record": record,
            "quality": quality,
            "last_error": f"data quality score too low: {quality.score}",
        }

    return {"status": "writing", "record": record, "quality": quality}
