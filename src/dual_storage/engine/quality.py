"""Additive quality scoring shared by the evaluator and the migration pre-check."""

from __future__ import annotations

from collections.abc import Iterable

from dual_storage.contracts.records import RecordBase, primary_text
from dual_storage.contracts.results import (
    SEVERITY_PENALTIES,
    ConsistencyViolation,
    DataQualityReport,
    QualityMetrics,
)


def score_violations(violations: Iterable[ConsistencyViolation]) -> int:
    """100 minus 30 per critical, 10 per warning, 2 per info; never below 0."""
    penalty = sum(SEVERITY_PENALTIES[violation.severity] for violation in violations)
    return max(0, 100 - penalty)


def score_record(record: RecordBase, *, threshold: int = 80) -> DataQualityReport:
    """Score a single record on intrinsic completeness before it is migrated."""
    violations: list[ConsistencyViolation] = []

    if not record.title.strip():
        violations.append(
            ConsistencyViolation(field="title", issue="title is blank", severity="critical")
        )
    elif record.title != record.title.strip():
        violations.append(
            ConsistencyViolation(
                field="title",
                issue="title has surrounding whitespace",
                severity="info",
                backend_a_value=record.title,
            )
        )

    if not primary_text(record).strip():
        violations.append(
            ConsistencyViolation(
                field="payload",
                issue=f"{record.type} body text is empty",  # type: ignore[attr-defined]
                severity="critical",
            )
        )

    if not record.owner_id:
        violations.append(
            ConsistencyViolation(field="owner_id", issue="owner is missing", severity="warning")
        )

    if record.updated_at < record.created_at:
        violations.append(
            ConsistencyViolation(
                field="updated_at",
                issue="updated_at precedes created_at",
                severity="warning",
                backend_a_value=record.created_at.isoformat(),
                backend_b_value=record.updated_at.isoformat(),
            )
        )

    score = score_violations(violations)
    core = [item for item in violations if item.field in ("title", "owner_id")]
    payload = [item for item in violations if item.field == "payload"]
    timing = [item for item in violations if item.field == "updated_at"]
    return DataQualityReport(
        record_type=record.type,  # type: ignore[attr-defined]
        record_id=record.id,
        is_consistent=score >= threshold,
        score=score,
        violations=violations,
        metrics=QualityMetrics(
            consistency=score_violations(core),
            completeness=score_violations(payload),
            accuracy=score_violations(core + payload),
            timeliness=score_violations(timing),
        ),
    )
