"""Coordinated single-record writes across backend A and backend B."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any

from dual_storage.contracts.records import ContentRecord
from dual_storage.contracts.results import BackendOutcome, DualStorageResult
from dual_storage.contracts.validation import validate_model, validate_record
from dual_storage.engine.health import HealthTracker
from dual_storage.errors import BackendUnavailableError, BackendWriteError
from dual_storage.storage.base import ContentStorage

logger = logging.getLogger(__name__)

BACKEND_A = "backend_a"
BACKEND_B = "backend_b"


class DualStorageWriter:
    """Write one logical record to both backends in fixed order A then B.

    Backend failures never raise; they are reported in the returned
    ``DualStorageResult`` and fed to the health tracker. Only invalid input
    raises ``ValidationError``, before any backend is called.
    """

    def __init__(
        self,
        backend_a: ContentStorage,
        backend_b: ContentStorage,
        health: HealthTracker,
        *,
        timeout_s: float = 5.0,
        backend_b_enabled: bool = True,
    ) -> None:
        self.backend_a = backend_a
        self.backend_b = backend_b
        self.health = health
        self.timeout_s = timeout_s
        self.backend_b_enabled = backend_b_enabled

    async def write(self, record: ContentRecord | dict[str, Any]) -> DualStorageResult:
        validated = validate_record(record)
        started_at = time.perf_counter()

        outcome_a, opened_a = await self._attempt(BACKEND_A, self.backend_a, validated)
        outcome_b, opened_b = await self._attempt(
            BACKEND_B,
            self.backend_b,
            validated,
            disabled=not self.backend_b_enabled,
        )

        succeeded = int(outcome_a.success) + int(outcome_b.success)
        result = validate_model(
            DualStorageResult,
            {
                "id": validated.id,
                "record_type": validated.type,
                "success": succeeded > 0,
                "backend_a": outcome_a,
                "backend_b": outcome_b,
                "consistency": {2: "full", 1: "partial", 0: "failed"}[succeeded],
                "degradation_mode": _degradation_mode(outcome_a, outcome_b, opened_a, opened_b),
                "total_time_ms": _duration_ms(started_at),
            },
        )
        if result.consistency != "full":
            logger.warning(
                "Dual write %s %s consistency=%s degradation=%s a_error=%s b_error=%s",
                validated.type,
                validated.id,
                result.consistency,
                result.degradation_mode,
                outcome_a.error,
                outcome_b.error,
            )
        return result

    async def _attempt(
        self,
        label: str,
        storage: ContentStorage,
        record: ContentRecord,
        *,
        disabled: bool = False,
    ) -> tuple[BackendOutcome, bool]:
        if disabled:
            unavailable = BackendUnavailableError(label, "disabled by configuration")
            return BackendOutcome(attempted=False, error=str(unavailable)), False
        if not self.health.is_healthy(label):
            return BackendOutcome(
                attempted=False, error=str(BackendUnavailableError(label, "circuit open"))
            ), False

        started_at = time.perf_counter()
        try:
            await asyncio.wait_for(asyncio.to_thread(storage.upsert, record), self.timeout_s)
        except TimeoutError:
            failure = f"timed out after {self.timeout_s:.2f}s"
        except Exception as exc:  # noqa: BLE001
            failure = str(exc) or type(exc).__name__
        else:
            self.health.record_outcome(label, True)
            return BackendOutcome(
                attempted=True,
                success=True,
                timing_ms=_duration_ms(started_at),
            ), False

        opened = self.health.record_outcome(label, False)
        return BackendOutcome(
            attempted=True,
            success=False,
            error=str(BackendWriteError(label, failure)),
            timing_ms=_duration_ms(started_at),
        ), opened


def ensure_full(result: DualStorageResult) -> DualStorageResult:
    """Raise when a caller needs both backends and the write was not ``full``."""
    if result.consistency == "full":
        return result
    for label, outcome in ((BACKEND_A, result.backend_a), (BACKEND_B, result.backend_b)):
        if outcome.success:
            continue
        if not outcome.attempted:
            raise BackendUnavailableError(
                label, _reason(outcome.error, f"{label} unavailable: ") or "not attempted"
            )
        raise BackendWriteError(
            label, _reason(outcome.error, f"{label} write failed: ") or "unknown error"
        )
    return result


def _degradation_mode(
    outcome_a: BackendOutcome,
    outcome_b: BackendOutcome,
    opened_a: bool,
    opened_b: bool,
) -> str:
    if not outcome_a.attempted or opened_a:
        return "backendA-circuit-open"
    if not outcome_b.attempted:
        return "backendB-disabled"
    if opened_b:
        return "backendB-circuit-open"
    return "none"


def _reason(error: str | None, prefix: str) -> str:
    return (error or "").removeprefix(prefix)


def _duration_ms(started_at: float) -> float:
    return round((time.perf_counter() - started_at) * 1000.0, 2)
