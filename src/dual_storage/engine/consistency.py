"""Cross-backend consistency evaluation and data-quality scoring."""

from __future__ import annotations

import asyncio
import logging
from collections import Counter
from collections.abc import Iterable
from typing import Any

from dual_storage.contracts.records import ContentRecord
from dual_storage.contracts.results import (
    AggregateQualityReport,
    ConsistencyViolation,
    DataQualityReport,
    QualityDistribution,
    QualityMetrics,
)
from dual_storage.engine.quality import score_violations
from dual_storage.engine.writer import BACKEND_A, BACKEND_B
from dual_storage.storage.base import ContentStorage

logger = logging.getLogger(__name__)

CORE_FIELDS: dict[str, str] = {
    "title": "text",
    "owner_id": "critical",
    "status": "warning",
    "project_id": "warning",
}

# Per-type payload comparison rules; fields not listed compare as "warning".
PAYLOAD_RULES: dict[str, dict[str, str]] = {
    "story": {"content": "text"},
    "scenario": {"content": "text"},
    "prompt": {"final_prompt": "text", "keywords": "keywords", "keyword_count": "derived"},
    "video_job": {"prompt": "text", "video_url": "critical"},
}

TIMESTAMP_SEVERITY: dict[str, str] = {"created_at": "warning", "updated_at": "info"}


class ConsistencyEvaluator:
    """Fetch a record from both backends and score how far they diverge."""

    def __init__(
        self,
        backend_a: ContentStorage,
        backend_b: ContentStorage,
        *,
        threshold: int = 80,
        timestamp_tolerance_s: float = 5.0,
        timeout_s: float = 5.0,
    ) -> None:
        self.backend_a = backend_a
        self.backend_b = backend_b
        self.threshold = threshold
        self.timestamp_tolerance_s = timestamp_tolerance_s
        self.timeout_s = timeout_s

    async def evaluate(self, record_type: str, record_id: str) -> DataQualityReport:
        record_a, record_b, fetch_violations = await self.fetch_pair(record_type, record_id)
        return self.compare(
            record_a,
            record_b,
            record_type=record_type,
            record_id=record_id,
            fetch_violations=fetch_violations,
        )

    def compare(
        self,
        record_a: ContentRecord | None,
        record_b: ContentRecord | None,
        *,
        record_type: str | None = None,
        record_id: str | None = None,
        fetch_violations: Iterable[ConsistencyViolation] = (),
    ) -> DataQualityReport:
        violations = list(fetch_violations)
        failed_sides = {item.field for item in violations}

        if record_a is None and BACKEND_A not in failed_sides:
            violations.append(
                ConsistencyViolation(
                    field="record",
                    issue="record missing from backend_a",
                    severity="critical",
                    backend_b_value=record_b.id if record_b else None,
                )
            )
        if record_b is None and BACKEND_B not in failed_sides:
            violations.append(
                ConsistencyViolation(
                    field="record",
                    issue="record missing from backend_b",
                    severity="critical",
                    backend_a_value=record_a.id if record_a else None,
                )
            )

        if record_a is not None and record_b is not None:
            violations.extend(self._compare_core(record_a, record_b))
            violations.extend(self._compare_payload(record_a, record_b))
            violations.extend(self._compare_timestamps(record_a, record_b))

        present = int(record_a is not None) + int(record_b is not None)
        score = score_violations(violations)
        reference = record_a or record_b
        return DataQualityReport(
            record_type=record_type or (reference.type if reference else None),
            record_id=record_id or (reference.id if reference else None),
            is_consistent=score >= self.threshold,
            score=score,
            violations=violations,
            metrics=QualityMetrics(
                consistency=score_violations(
                    item for item in violations if item.field in CORE_FIELDS
                ),
                completeness={2: 100, 1: 50, 0: 0}[present],
                accuracy=score_violations(
                    item for item in violations if item.field.startswith("payload.")
                ),
                timeliness=score_violations(
                    item for item in violations if item.field in TIMESTAMP_SEVERITY
                ),
            ),
        )

    async def evaluate_many(self, keys: Iterable[tuple[str, str]]) -> AggregateQualityReport:
        reports = [await self.evaluate(record_type, record_id) for record_type, record_id in keys]
        return aggregate_reports(reports, threshold=self.threshold)

    async def fetch_pair(
        self, record_type: str, record_id: str
    ) -> tuple[ContentRecord | None, ContentRecord | None, list[ConsistencyViolation]]:
        """Read one join key from both backends; fetch failures become violations."""
        record_a, failure_a = await self._fetch(BACKEND_A, self.backend_a, record_type, record_id)
        record_b, failure_b = await self._fetch(BACKEND_B, self.backend_b, record_type, record_id)
        return record_a, record_b, [item for item in (failure_a, failure_b) if item is not None]

    async def _fetch(
        self,
        label: str,
        storage: ContentStorage,
        record_type: str,
        record_id: str,
    ) -> tuple[ContentRecord | None, ConsistencyViolation | None]:
        try:
            record = await asyncio.wait_for(
                asyncio.to_thread(storage.get, record_type, record_id),
                self.timeout_s,
            )
        except TimeoutError:
            message = f"fetch timed out after {self.timeout_s:.2f}s"
        except Exception as exc:  # noqa: BLE001
            message = f"fetch failed: {exc}"
        else:
            return record, None

        logger.warning("Consistency fetch %s %s from %s: %s", record_type, record_id, label, message)
        return None, ConsistencyViolation(field=label, issue=message, severity="critical")

    def _compare_core(
        self, record_a: ContentRecord, record_b: ContentRecord
    ) -> list[ConsistencyViolation]:
        violations: list[ConsistencyViolation] = []
        for field, rule in CORE_FIELDS.items():
            violation = _compare_value(
                field, rule, getattr(record_a, field), getattr(record_b, field)
            )
            if violation is not None:
                violations.append(violation)
        return violations

    def _compare_payload(
        self, record_a: ContentRecord, record_b: ContentRecord
    ) -> list[ConsistencyViolation]:
        rules = PAYLOAD_RULES.get(record_a.type, {})
        payload_a = record_a.payload.model_dump(mode="json")
        payload_b = record_b.payload.model_dump(mode="json")
        violations: list[ConsistencyViolation] = []
        for field in payload_a:
            violation = _compare_value(
                f"payload.{field}",
                rules.get(field, "warning"),
                payload_a.get(field),
                payload_b.get(field),
            )
            if violation is not None:
                violations.append(violation)
        return violations

    def _compare_timestamps(
        self, record_a: ContentRecord, record_b: ContentRecord
    ) -> list[ConsistencyViolation]:
        violations: list[ConsistencyViolation] = []
        for field, severity in TIMESTAMP_SEVERITY.items():
            value_a = getattr(record_a, field)
            value_b = getattr(record_b, field)
            skew_s = abs((value_a - value_b).total_seconds())
            if skew_s > self.timestamp_tolerance_s:
                violations.append(
                    ConsistencyViolation(
                        field=field,
                        issue=f"{field} differs by {skew_s:.1f}s (tolerance {self.timestamp_tolerance_s:.1f}s)",
                        severity=severity,  # type: ignore[arg-type]
                        backend_a_value=value_a.isoformat(),
                        backend_b_value=value_b.isoformat(),
                    )
                )
        return violations


def normalize_text(value: Any) -> str:
    return " ".join(str(value or "").split())


def _compare_value(field: str, rule: str, value_a: Any, value_b: Any) -> ConsistencyViolation | None:
    if value_a == value_b:
        return None

    if rule == "text":
        if normalize_text(value_a) == normalize_text(value_b):
            severity, issue = "info", f"{field} differs only in whitespace"
        else:
            severity, issue = "critical", f"{field} differs between backends"
    elif rule == "keywords":
        if sorted(value_a or []) == sorted(value_b or []):
            severity, issue = "info", f"{field} ordering differs"
        else:
            severity, issue = "warning", f"{field} set differs between backends"
    elif rule == "derived":
        severity, issue = "warning", f"{field} denormalised value drifted"
    elif rule == "critical":
        severity, issue = "critical", f"{field} differs between backends"
    else:
        severity, issue = "warning", f"{field} differs between backends"

    return ConsistencyViolation(
        field=field,
        issue=issue,
        severity=severity,  # type: ignore[arg-type]
        backend_a_value=value_a,
        backend_b_value=value_b,
    )


def aggregate_reports(
    reports: list[DataQualityReport], *, threshold: int = 80
) -> AggregateQualityReport:
    """Summarise many per-record reports into one migration-level report."""
    if not reports:
        return AggregateQualityReport()

    distribution = QualityDistribution()
    for report in reports:
        if report.score >= 95:
            distribution.excellent += 1
        elif report.score >= 80:
            distribution.good += 1
        elif report.score >= 60:
            distribution.poor += 1
        else:
            distribution.critical += 1

    inconsistent = [
        f"{report.record_type}:{report.record_id}" for report in reports if not report.is_consistent
    ]
    issue_counts = Counter(
        violation.issue for report in reports for violation in report.violations
    )
    average = round(sum(report.score for report in reports) / len(reports), 2)

    recommendations: list[str] = []
    if inconsistent:
        recommendations.append("Re-run migration or resync the inconsistent records")
    if average < threshold:
        recommendations.append(f"Review records scoring below {threshold}")
    if any("tolerance" in issue for issue in issue_counts):
        recommendations.append("Check clock skew and commit latency between backends")

    return AggregateQualityReport(
        records_evaluated=len(reports),
        average_score=average,
        distribution=distribution,
        inconsistent_records=inconsistent,
        common_issues=[issue for issue, _ in issue_counts.most_common(5)],
        recommendations=recommendations,
        is_consistent=not inconsistent,
    )
