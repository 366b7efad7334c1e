"""Dual-write engine: health tracking, writer, consistency evaluation and migration."""

from dual_storage.engine.consistency import ConsistencyEvaluator
from dual_storage.engine.health import HealthTracker
from dual_storage.engine.migration import MigrationService
from dual_storage.engine.service import DualStorageEngine, build_engine
from dual_storage.engine.writer import BACKEND_A, BACKEND_B, DualStorageWriter, ensure_full

__all__ = [
    "BACKEND_A",
    "BACKEND_B",
    "ConsistencyEvaluator",
    "DualStorageEngine",
    "DualStorageWriter",
    "HealthTracker",
    "MigrationService",
    "build_engine",
    "ensure_full",
]
