"""Batch backfill from one backend into both, plus sync and integrity checks."""

from __future__ import annotations

import asyncio
import logging
import time
from collections import Counter
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from dual_storage.contracts.results import (
    IntegrityReport,
    IntegrityStatistics,
    MigrationOptions,
    MigrationRecordError,
    MigrationReport,
    RollbackPlan,
    SyncStatusReport,
)
from dual_storage.engine.consistency import ConsistencyEvaluator
from dual_storage.engine.writer import BACKEND_A, BACKEND_B, DualStorageWriter
from dual_storage.errors import SyncSystemError
from dual_storage.graph.state import initial_state
from dual_storage.graph.workflow import build_record_graph, recursion_limit
from dual_storage.storage.base import ContentStorage

logger = logging.getLogger(__name__)

SYNC_RATE_TARGET = 95.0
BACKUP_BASE_MS = 30_000
BACKUP_PER_ROW_MS = 10


@dataclass
class _Tally:
    total: int = 0
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    errors: list[MigrationRecordError] = field(default_factory=list)
    written_keys: list[tuple[str, str]] = field(default_factory=list)


class MigrationService:
    """Copy every record of a source backend through the dual writer.

    Record-level failures are collected into the report and never abort the
    run. Only setup failures (backup, count, enumeration) stop it, and those
    are reported as a single ``SYSTEM`` error.
    """

    def __init__(
        self,
        backend_a: ContentStorage,
        backend_b: ContentStorage,
        writer: DualStorageWriter,
        evaluator: ConsistencyEvaluator,
        *,
        skip_quality_threshold: int = 60,
        retry_base_delay_s: float = 1.0,
        inter_batch_delay_s: float = 0.1,
        quality_sample_size: int = 0,
        timeout_s: float = 5.0,
        backup_timeout_s: float = 600.0,
    ) -> None:
        self.backends: dict[str, ContentStorage] = {BACKEND_A: backend_a, BACKEND_B: backend_b}
        self.writer = writer
        self.evaluator = evaluator
        self.skip_quality_threshold = skip_quality_threshold
        self.retry_base_delay_s = retry_base_delay_s
        self.inter_batch_delay_s = inter_batch_delay_s
        self.quality_sample_size = quality_sample_size
        self.timeout_s = timeout_s
        self.backup_timeout_s = backup_timeout_s

    async def run_migration(
        self,
        options: MigrationOptions | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> MigrationReport:
        options = options or MigrationOptions()
        started_at = time.perf_counter()
        source = self.backends[options.source]
        tally = _Tally()
        rollback_plan: RollbackPlan | None = None
        cancelled = False

        logger.info(
            "Migration started source=%s dry_run=%s batch_size=%d max_retries=%d backup=%s",
            options.source,
            options.dry_run,
            options.batch_size,
            options.max_retries,
            options.create_backup,
        )

        try:
            if options.create_backup and not options.dry_run:
                rollback_plan = await self._create_backup(source)

            tally.total = await self._call(source.count, action="count source records")
            graph = build_record_graph(
                writer=self.writer,
                skip_threshold=self.skip_quality_threshold,
                threshold=self.evaluator.threshold,
                base_delay_s=self.retry_base_delay_s,
            )
            total_batches = -(-tally.total // options.batch_size)
            offset = 0
            batch_number = 0
            while offset < tally.total:
                if cancel_event is not None and cancel_event.is_set():
                    cancelled = True
                    logger.warning(
                        "Migration cancelled after %d/%d records", tally.processed, tally.total
                    )
                    break

                rows = await self._call(
                    source.list_page,
                    offset=offset,
                    limit=options.batch_size,
                    action=f"list source records at offset {offset}",
                )
                if not rows:
                    break
                batch_number += 1
                logger.info(
                    "Processing batch %d/%d (%d records)", batch_number, total_batches, len(rows)
                )
                await self._process_batch(graph, rows, options, tally)

                offset += len(rows)
                if offset < tally.total and self.inter_batch_delay_s > 0:
                    await asyncio.sleep(self.inter_batch_delay_s)
        except SyncSystemError as exc:
            logger.exception("Migration aborted: %s", exc)
            tally.errors.append(
                MigrationRecordError(
                    record_id="SYSTEM",
                    error=str(exc),
                    severity="critical",
                    recoverable=False,
                    suggested_action="Contact the system administrator",
                )
            )

        quality_keys = [] if options.dry_run else tally.written_keys
        if self.quality_sample_size and len(quality_keys) > self.quality_sample_size:
            quality_keys = quality_keys[: self.quality_sample_size]
        quality_report = await self.evaluator.evaluate_many(quality_keys)

        report = MigrationReport(
            total_records=tally.total,
            processed=tally.processed,
            succeeded=tally.succeeded,
            failed=tally.failed,
            skipped=tally.skipped,
            errors=tally.errors,
            quality_report=quality_report,
            execution_time_ms=round((time.perf_counter() - started_at) * 1000.0, 2),
            rollback_plan=rollback_plan,
            dry_run=options.dry_run,
            cancelled=cancelled,
            source_backend=options.source,
        )
        logger.info(
            "Migration finished total=%d succeeded=%d failed=%d skipped=%d in %.2fs",
            report.total_records,
            report.succeeded,
            report.failed,
            report.skipped,
            report.execution_time_ms / 1000.0,
        )
        return report

    async def check_sync_status(self, record_type: str, record_id: str) -> SyncStatusReport:
        record_a, record_b, fetch_violations = await self.evaluator.fetch_pair(
            record_type, record_id
        )
        quality = self.evaluator.compare(
            record_a,
            record_b,
            record_type=record_type,
            record_id=record_id,
            fetch_violations=fetch_violations,
        )

        unreachable = {violation.field for violation in fetch_violations}
        if unreachable:
            sync_health = "unreachable"
        elif record_a is None or record_b is None:
            sync_health = "missing"
        elif quality.count("critical"):
            sync_health = "conflict"
        elif not quality.is_consistent or any(
            violation.field == "updated_at" for violation in quality.violations
        ):
            sync_health = "outdated"
        else:
            sync_health = "healthy"

        recommendations: list[str] = []
        if sync_health == "unreachable":
            recommendations.append(
                f"Backend unreachable ({', '.join(sorted(unreachable))}); "
                "retry the status check once it recovers"
            )
        elif sync_health == "missing":
            recommendations.append("Record is missing from one backend; re-run the migration for it")
        elif sync_health == "conflict":
            recommendations.append("Backends disagree on critical fields; review manually")
        elif sync_health == "outdated":
            recommendations.append("One copy is stale; resync the record")
        if quality.score < self.evaluator.threshold and sync_health != "unreachable":
            recommendations.append("Data quality is below threshold; correct the record data")

        return SyncStatusReport(
            record_type=record_type,
            record_id=record_id,
            present_in_a=None if BACKEND_A in unreachable else record_a is not None,
            present_in_b=None if BACKEND_B in unreachable else record_b is not None,
            sync_health=sync_health,
            needs_resync=sync_health in ("missing", "conflict", "outdated"),
            quality=quality,
            recommendations=recommendations,
        )

    async def verify_integrity(self) -> IntegrityReport:
        logger.info("Integrity verification started")
        try:
            keys_a = await self._call(self.backends[BACKEND_A].list_keys, action="list backend_a keys")
            keys_b = await self._call(self.backends[BACKEND_B].list_keys, action="list backend_b keys")
        except SyncSystemError as exc:
            logger.exception("Integrity verification failed: %s", exc)
            return IntegrityReport(is_valid=False, issues=[f"integrity verification failed: {exc}"])

        set_a = set(keys_a)
        set_b = set(keys_b)
        duplicates = _duplicate_count(keys_a) + _duplicate_count(keys_b)
        union = set_a | set_b
        synced = len(set_a & set_b)
        statistics = IntegrityStatistics(
            total_backend_a=len(set_a),
            total_backend_b=len(set_b),
            synced=synced,
            missing_in_backend_a=len(set_b - set_a),
            missing_in_backend_b=len(set_a - set_b),
            duplicate_keys=duplicates,
            sync_rate=round(synced / len(union) * 100.0, 2) if union else 100.0,
        )

        issues: list[str] = []
        if statistics.missing_in_backend_a:
            issues.append(f"{statistics.missing_in_backend_a} records exist only in backend_b")
        if statistics.missing_in_backend_b:
            issues.append(f"{statistics.missing_in_backend_b} records exist only in backend_a")
        if statistics.duplicate_keys:
            issues.append(f"{statistics.duplicate_keys} duplicate record keys found")
        if statistics.sync_rate < SYNC_RATE_TARGET:
            issues.append(
                f"sync rate too low: {statistics.sync_rate:.1f}% (target {SYNC_RATE_TARGET:.0f}%)"
            )

        report = IntegrityReport(is_valid=not issues, issues=issues, statistics=statistics)
        logger.info(
            "Integrity verification finished valid=%s issues=%d sync_rate=%.1f",
            report.is_valid,
            len(issues),
            statistics.sync_rate,
        )
        return report

    async def rollback(self, backup_id: str, *, source: str = BACKEND_B) -> int:
        """Restore ``source`` from a backup taken by a previous migration run."""
        storage = self.backends[source]
        logger.warning("Rolling back %s from backup %s", source, backup_id)
        restored = await self._call(
            storage.restore_backup,
            backup_id,
            action=f"restore backup {backup_id}",
            timeout_s=self.backup_timeout_s,
        )
        logger.info("Rollback restored %d records into %s", restored, source)
        return restored

    async def _create_backup(self, source: ContentStorage) -> RollbackPlan:
        backup_id = "backup_" + datetime.now(tz=UTC).strftime("%Y%m%d_%H%M%S_%f")
        rows = await self._call(
            source.create_backup,
            backup_id,
            action="create backup",
            timeout_s=self.backup_timeout_s,
        )
        logger.info("Backed up %d records of %s as %s", rows, source.name, backup_id)
        return RollbackPlan(
            backup_identifier=backup_id,
            rollback_steps=source.rollback_steps(backup_id),
            verification_steps=source.verification_steps(backup_id),
            estimated_time_ms=BACKUP_BASE_MS + BACKUP_PER_ROW_MS * rows,
        )

    async def _process_batch(
        self,
        graph: Any,
        rows: list[dict[str, Any]],
        options: MigrationOptions,
        tally: _Tally,
    ) -> None:
        semaphore = asyncio.Semaphore(options.concurrency)

        async def _bounded(row: dict[str, Any]) -> dict[str, Any]:
            async with semaphore:
                return await self._migrate_row(graph, row, options)

        for final in await asyncio.gather(*(_bounded(row) for row in rows)):
            tally.processed += 1
            status = final.get("status")
            if status == "succeeded":
                tally.succeeded += 1
                tally.written_keys.append((final["record_type"], final["record_id"]))
                continue
            if status == "skipped":
                tally.skipped += 1
            else:
                tally.failed += 1
                if final.get("record") is not None:
                    tally.written_keys.append((final["record_type"], final["record_id"]))
            if final.get("error") is not None:
                tally.errors.append(final["error"])

    async def _migrate_row(
        self, graph: Any, row: dict[str, Any], options: MigrationOptions
    ) -> dict[str, Any]:
        state = initial_state(row, dry_run=options.dry_run, max_retries=options.max_retries)
        try:
            return await graph.ainvoke(
                state, config={"recursion_limit": recursion_limit(options.max_retries)}
            )
        except Exception as exc:  # noqa: BLE001
            logger.exception(
                "Record %s %s crashed the migration graph",
                state["record_type"],
                state["record_id"],
            )
            return {
                **state,
                "status": "failed",
                "error": MigrationRecordError(
                    record_id=state["record_id"],
                    record_type=state["record_type"],
                    error=str(exc) or type(exc).__name__,
                    severity="high",
                    recoverable=False,
                    suggested_action="Escalate to the engineering team",
                ),
            }

    async def _call(
        self,
        func: Any,
        *args: Any,
        action: str,
        timeout_s: float | None = None,
        **kwargs: Any,
    ) -> Any:
        """Run a blocking backend call off the loop; whole-table work passes its own budget."""
        budget_s = timeout_s or self.timeout_s
        try:
            return await asyncio.wait_for(asyncio.to_thread(func, *args, **kwargs), budget_s)
        except TimeoutError as exc:
            raise SyncSystemError(f"{action} timed out after {budget_s:.2f}s") from exc
        except Exception as exc:
            raise SyncSystemError(f"{action} failed: {exc}") from exc


def _duplicate_count(keys: list[tuple[str, str]]) -> int:
    return sum(1 for count in Counter(keys).values() if count > 1)
