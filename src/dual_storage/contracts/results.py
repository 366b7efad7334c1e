"""Result and report models produced by the engine.

Every object here crosses a component boundary (writer -> caller,
evaluator -> migration service, engine -> CLI/API), so each is a validated
pydantic model rather than a loose dict.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field, model_validator

Consistency = Literal["full", "partial", "failed"]
DegradationMode = Literal[
    "none",
    "backendB-disabled",
    "backendA-circuit-open",
    "backendB-circuit-open",
]
Severity = Literal["critical", "warning", "info"]
ErrorSeverity = Literal["low", "medium", "high", "critical"]
SyncHealth = Literal["healthy", "conflict", "missing", "outdated", "unreachable"]
BackendName = Literal["backend_a", "backend_b"]

SEVERITY_PENALTIES: dict[str, int] = {"critical": 30, "warning": 10, "info": 2}


def _now() -> datetime:
    return datetime.now(tz=UTC)


class BackendOutcome(BaseModel):
    """What happened to one backend during a single write."""

    attempted: bool = False
    success: bool = False
    error: str | None = None
    timing_ms: float = Field(default=0.0, ge=0.0)

    @model_validator(mode="after")
    def _success_requires_attempt(self) -> BackendOutcome:
        if self.success and not self.attempted:
            raise ValueError("a backend that was not attempted cannot report success")
        return self


class DualStorageResult(BaseModel):
    """Outcome of one logical write across both backends."""

    id: str
    record_type: str
    success: bool
    backend_a: BackendOutcome
    backend_b: BackendOutcome
    consistency: Consistency
    degradation_mode: DegradationMode = "none"
    total_time_ms: float = Field(default=0.0, ge=0.0)

    @model_validator(mode="after")
    def _check_consistency(self) -> DualStorageResult:
        succeeded = int(self.backend_a.success) + int(self.backend_b.success)
        expected = {2: "full", 1: "partial", 0: "failed"}[succeeded]
        if self.consistency != expected:
            raise ValueError(
                f"consistency={self.consistency!r} contradicts backend outcomes "
                f"(expected {expected!r})"
            )
        if self.success != (succeeded > 0):
            raise ValueError("success must be true iff at least one backend stored the record")
        return self


class StorageHealth(BaseModel):
    backend: str
    failures: int = Field(default=0, ge=0)
    last_failure_at: float | None = None
    is_healthy: bool = True


class ConsistencyViolation(BaseModel):
    field: str
    issue: str
    severity: Severity
    backend_a_value: Any = None
    backend_b_value: Any = None


class QualityMetrics(BaseModel):
    consistency: int = Field(default=100, ge=0, le=100)
    completeness: int = Field(default=100, ge=0, le=100)
    accuracy: int = Field(default=100, ge=0, le=100)
    timeliness: int = Field(default=100, ge=0, le=100)


class DataQualityReport(BaseModel):
    """Diagnostic comparison of one record; never persisted."""

    record_type: str | None = None
    record_id: str | None = None
    is_consistent: bool
    score: int = Field(ge=0, le=100)
    violations: list[ConsistencyViolation] = Field(default_factory=list)
    metrics: QualityMetrics = Field(default_factory=QualityMetrics)
    evaluated_at: datetime = Field(default_factory=_now)

    def count(self, severity: Severity) -> int:
        return sum(1 for violation in self.violations if violation.severity == severity)


class QualityDistribution(BaseModel):
    excellent: int = 0
    good: int = 0
    poor: int = 0
    critical: int = 0


class AggregateQualityReport(BaseModel):
    """Quality summary over many records, attached to a migration report."""

    records_evaluated: int = 0
    average_score: float = Field(default=100.0, ge=0.0, le=100.0)
    distribution: QualityDistribution = Field(default_factory=QualityDistribution)
    inconsistent_records: list[str] = Field(default_factory=list)
    common_issues: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)
    is_consistent: bool = True


class MigrationRecordError(BaseModel):
    """Per-record failure captured during a batch run."""

    record_id: str
    record_type: str | None = None
    error: str
    severity: ErrorSeverity
    recoverable: bool
    suggested_action: str


class RollbackPlan(BaseModel):
    backup_identifier: str
    rollback_steps: list[str] = Field(default_factory=list)
    verification_steps: list[str] = Field(default_factory=list)
    estimated_time_ms: int = Field(default=0, ge=0)


class MigrationOptions(BaseModel):
    dry_run: bool = False
    batch_size: int = Field(default=50, ge=1)
    max_retries: int = Field(default=3, ge=1)
    create_backup: bool = True
    source: BackendName = "backend_b"
    concurrency: int = Field(default=1, ge=1)

    @model_validator(mode="after")
    def _bound_concurrency(self) -> MigrationOptions:
        if self.concurrency > self.batch_size:
            self.concurrency = self.batch_size
        return self


class MigrationReport(BaseModel):
    total_records: int = 0
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    errors: list[MigrationRecordError] = Field(default_factory=list)
    quality_report: AggregateQualityReport = Field(default_factory=AggregateQualityReport)
    execution_time_ms: float = 0.0
    rollback_plan: RollbackPlan | None = None
    dry_run: bool = False
    cancelled: bool = False
    source_backend: BackendName = "backend_b"

    @model_validator(mode="after")
    def _check_partition(self) -> MigrationReport:
        if self.succeeded + self.failed + self.skipped != self.processed:
            raise ValueError("processed must equal succeeded + failed + skipped")
        return self

    @property
    def is_complete(self) -> bool:
        return self.succeeded >= self.total_records and not self.cancelled


class SyncStatusReport(BaseModel):
    record_type: str
    record_id: str
    # None when the backend could not be read.
    present_in_a: bool | None
    present_in_b: bool | None
    sync_health: SyncHealth
    needs_resync: bool
    quality: DataQualityReport
    recommendations: list[str] = Field(default_factory=list)


class IntegrityStatistics(BaseModel):
    total_backend_a: int = 0
    total_backend_b: int = 0
    synced: int = 0
    missing_in_backend_a: int = 0
    missing_in_backend_b: int = 0
    duplicate_keys: int = 0
    sync_rate: float = 100.0


class IntegrityReport(BaseModel):
    is_valid: bool
    issues: list[str] = Field(default_factory=list)
    statistics: IntegrityStatistics = Field(default_factory=IntegrityStatistics)
