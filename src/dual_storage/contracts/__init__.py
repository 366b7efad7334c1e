"""Record schemas, result models and boundary validation."""

from dual_storage.contracts.records import (
    RECORD_TYPES,
    ContentRecord,
    PromptPayload,
    PromptRecord,
    RecordBase,
    ScenarioPayload,
    ScenarioRecord,
    StoryPayload,
    StoryRecord,
    VideoJobPayload,
    VideoJobRecord,
    primary_text,
)
from dual_storage.contracts.results import (
    AggregateQualityReport,
    BackendOutcome,
    ConsistencyViolation,
    DataQualityReport,
    DualStorageResult,
    IntegrityReport,
    IntegrityStatistics,
    MigrationOptions,
    MigrationRecordError,
    MigrationReport,
    QualityMetrics,
    RollbackPlan,
    StorageHealth,
    SyncStatusReport,
)
from dual_storage.contracts.validation import validate_model, validate_record

__all__ = [
    "RECORD_TYPES",
    "AggregateQualityReport",
    "BackendOutcome",
    "ConsistencyViolation",
    "ContentRecord",
    "DataQualityReport",
    "DualStorageResult",
    "IntegrityReport",
    "IntegrityStatistics",
    "MigrationOptions",
    "MigrationRecordError",
    "MigrationReport",
    "PromptPayload",
    "PromptRecord",
    "QualityMetrics",
    "RecordBase",
    "RollbackPlan",
    "ScenarioPayload",
    "ScenarioRecord",
    "StorageHealth",
    "StoryPayload",
    "StoryRecord",
    "SyncStatusReport",
    "VideoJobPayload",
    "VideoJobRecord",
    "primary_text",
    "validate_model",
    "validate_record",
]
