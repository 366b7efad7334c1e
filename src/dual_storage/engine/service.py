"""Explicitly constructed engine wiring backends, health, writer, evaluator and migration."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from dual_storage.config.settings import Settings
from dual_storage.contracts.records import ContentRecord
from dual_storage.contracts.results import (
    DataQualityReport,
    DualStorageResult,
    IntegrityReport,
    MigrationOptions,
    MigrationReport,
    StorageHealth,
    SyncStatusReport,
)
from dual_storage.engine.consistency import ConsistencyEvaluator
from dual_storage.engine.health import HealthTracker
from dual_storage.engine.migration import MigrationService
from dual_storage.engine.writer import BACKEND_A, BACKEND_B, DualStorageWriter, ensure_full
from dual_storage.storage.baas import BaasContentStorage
from dual_storage.storage.base import ContentStorage
from dual_storage.storage.postgres import PostgresContentStorage

logger = logging.getLogger(__name__)


class DualStorageEngine:
    """One engine instance per process; tests build their own with in-memory backends."""

    def __init__(
        self,
        backend_a: ContentStorage,
        backend_b: ContentStorage,
        *,
        settings: Settings,
        health: HealthTracker | None = None,
    ) -> None:
        self.settings = settings
        self.backend_a = backend_a
        self.backend_b = backend_b
        self.health = health or HealthTracker(
            failure_threshold=settings.failure_threshold,
            cool_down_ms=settings.cool_down_ms,
        )
        self.writer = DualStorageWriter(
            backend_a,
            backend_b,
            self.health,
            timeout_s=settings.backend_timeout_s,
            backend_b_enabled=settings.backend_b_enabled,
        )
        self.evaluator = ConsistencyEvaluator(
            backend_a,
            backend_b,
            threshold=settings.consistency_threshold,
            timestamp_tolerance_s=settings.timestamp_tolerance_s,
            timeout_s=settings.backend_timeout_s,
        )
        self.migration = MigrationService(
            backend_a,
            backend_b,
            self.writer,
            self.evaluator,
            skip_quality_threshold=settings.skip_quality_threshold,
            retry_base_delay_s=settings.retry_base_delay_s,
            inter_batch_delay_s=settings.inter_batch_delay_s,
            quality_sample_size=settings.quality_sample_size,
            timeout_s=settings.backend_timeout_s,
            backup_timeout_s=settings.backup_timeout_s,
        )

    def migrate(self) -> None:
        self.backend_a.migrate()
        self.backend_b.migrate()

    async def write(
        self, record: ContentRecord | dict[str, Any], *, require_full: bool = False
    ) -> DualStorageResult:
        result = await self.writer.write(record)
        if require_full:
            ensure_full(result)
        return result

    async def read(self, record_type: str, record_id: str) -> ContentRecord | None:
        """Read from backend A, falling back to backend B when A misses or fails."""
        for label, storage in ((BACKEND_A, self.backend_a), (BACKEND_B, self.backend_b)):
            if label == BACKEND_A and not self.health.is_healthy(BACKEND_A):
                continue
            if label == BACKEND_B and not self.settings.backend_b_enabled:
                continue
            try:
                record = await asyncio.wait_for(
                    asyncio.to_thread(storage.get, record_type, record_id),
                    self.settings.backend_timeout_s,
                )
            except Exception as exc:  # noqa: BLE001
                logger.warning("Read %s %s from %s failed: %s", record_type, record_id, label, exc)
                continue
            if record is not None:
                return record
        return None

    async def evaluate(self, record_type: str, record_id: str) -> DataQualityReport:
        return await self.evaluator.evaluate(record_type, record_id)

    async def run_migration(
        self,
        options: MigrationOptions | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> MigrationReport:
        return await self.migration.run_migration(options or self.default_options(), cancel_event)

    async def check_sync_status(self, record_type: str, record_id: str) -> SyncStatusReport:
        return await self.migration.check_sync_status(record_type, record_id)

    async def verify_integrity(self) -> IntegrityReport:
        return await self.migration.verify_integrity()

    async def rollback(self, backup_id: str, *, source: str | None = None) -> int:
        return await self.migration.rollback(
            backup_id, source=source or self.settings.migration_source
        )

    def default_options(self, **overrides: Any) -> MigrationOptions:
        values: dict[str, Any] = {
            "dry_run": self.settings.dry_run,
            "batch_size": self.settings.batch_size,
            "max_retries": self.settings.max_retries,
            "create_backup": self.settings.create_backup,
            "source": self.settings.migration_source,
            "concurrency": self.settings.migration_concurrency,
        }
        values.update({key: value for key, value in overrides.items() if value is not None})
        return MigrationOptions(**values)

    def health_snapshot(self) -> list[StorageHealth]:
        return [self.health.snapshot(BACKEND_A), self.health.snapshot(BACKEND_B)]


def build_engine(settings: Settings) -> DualStorageEngine:
    database_url = settings.resolved_database_url()
    if not database_url:
        raise RuntimeError(
            "Missing database URL. Set DUAL_STORAGE_DATABASE_URL or DATABASE_URL "
            "before starting the engine."
        )
    baas_url = settings.resolved_baas_url()
    if not baas_url:
        raise RuntimeError(
            "Missing BaaS URL. Set DUAL_STORAGE_BAAS_URL or SUPABASE_URL "
            "before starting the engine."
        )
    backend_a = PostgresContentStorage(database_url, name=BACKEND_A)
    backend_b = BaasContentStorage(
        baas_url,
        settings.resolved_baas_service_key(),
        name=BACKEND_B,
        timeout_s=settings.backend_timeout_s,
        backup_dir=settings.backup_dir,
    )
    return DualStorageEngine(backend_a, backend_b, settings=settings)
