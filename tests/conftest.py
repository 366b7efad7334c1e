from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from dual_storage.config.settings import Settings
from dual_storage.contracts.records import ContentRecord
from dual_storage.engine.service import DualStorageEngine
from dual_storage.storage.memory import InMemoryContentStorage

BASE_TIME = datetime(2026, 1, 15, 9, 30, tzinfo=UTC)


class FlakyStorage(InMemoryContentStorage):
    """In-memory backend that fails the next ``fail_writes`` upserts."""

    def __init__(self, name: str, *, fail_writes: int = 0, fail_reads: bool = False) -> None:
        super().__init__(name)
        self.fail_writes = fail_writes
        self.fail_reads = fail_reads
        self.write_calls = 0

    def upsert(self, record: ContentRecord) -> ContentRecord:
        self.write_calls += 1
        if self.fail_writes > 0:
            self.fail_writes -= 1
            raise ConnectionError(f"{self.name} connection reset")
        return super().upsert(record)

    def get(self, record_type: str, record_id: str) -> ContentRecord | None:
        if self.fail_reads:
            raise ConnectionError(f"{self.name} read refused")
        return super().get(record_type, record_id)


def make_record(
    record_type: str = "story",
    record_id: str = "rec-1",
    *,
    offset_s: int = 0,
    **overrides: Any,
) -> dict[str, Any]:
    created_at = BASE_TIME + timedelta(seconds=offset_s)
    payloads: dict[str, dict[str, Any]] = {
        "story": {"content": "A lighthouse keeper finds a map.", "genre": "drama"},
        "scenario": {"content": "INT. LIGHTHOUSE - NIGHT", "logline": "Keeper follows the map."},
        "prompt": {
            "final_prompt": "cinematic lighthouse at dusk",
            "keywords": ["lighthouse", "dusk"],
            "keyword_count": 2,
        },
        "video_job": {"prompt": "slow dolly toward the lighthouse", "provider": "seedance"},
    }
    record: dict[str, Any] = {
        "id": record_id,
        "type": record_type,
        "title": "The Keeper",
        "owner_id": "user-1",
        "status": "draft",
        "project_id": "project-1",
        "payload": payloads[record_type],
        "created_at": created_at.isoformat(),
        "updated_at": created_at.isoformat(),
    }
    record.update(overrides)
    return record


def make_settings(**overrides: Any) -> Settings:
    values: dict[str, Any] = {
        "retry_base_delay_s": 0.0,
        "inter_batch_delay_s": 0.0,
        "backend_timeout_s": 2.0,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def backend_a() -> FlakyStorage:
    return FlakyStorage("backend_a")


@pytest.fixture
def backend_b() -> FlakyStorage:
    return FlakyStorage("backend_b")


@pytest.fixture
def engine(backend_a: FlakyStorage, backend_b: FlakyStorage) -> DualStorageEngine:
    return DualStorageEngine(backend_a, backend_b, settings=make_settings())


@pytest.fixture
def record_factory():
    return make_record


@pytest.fixture
def settings_factory():
    return make_settings
