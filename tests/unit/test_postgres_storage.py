from typing import Any

import pytest

from dual_storage.contracts.validation import validate_record
from dual_storage.storage.postgres import PostgresContentStorage


class FakeCursor:
    def __init__(self, row: Any) -> None:
        self._row = row

    def fetchone(self) -> Any:
        return self._row

    def fetchall(self) -> list[Any]:
        return [] if self._row is None else [self._row]


class FakeConnection:
    def __init__(self, owner: "FakePsycopg") -> None:
        self.owner = owner

    def execute(self, sql: str, params: Any = None) -> FakeCursor:
        self.owner.statements.append((" ".join(sql.split()), params))
        return FakeCursor(self.owner.next_row)

    def commit(self) -> None:
        self.owner.commits += 1

    def __enter__(self) -> "FakeConnection":
        return self

    def __exit__(self, *_: Any) -> None:
        return None


class FakePsycopg:
    def __init__(self) -> None:
        self.statements: list[tuple[str, Any]] = []
        self.commits = 0
        self.next_row: Any = None

    def connect(self, database_url: str, row_factory: Any) -> FakeConnection:
        return FakeConnection(self)


@pytest.fixture
def fake_psycopg(monkeypatch: pytest.MonkeyPatch) -> FakePsycopg:
    fake = FakePsycopg()
    monkeypatch.setattr(
        PostgresContentStorage,
        "_load_psycopg",
        staticmethod(lambda: (fake, object(), lambda value: value)),
    )
    return fake


def test_requires_database_url() -> None:
    with pytest.raises(ValueError, match="DATABASE_URL"):
        PostgresContentStorage("")


def test_upsert_round_trips_returned_row(fake_psycopg, record_factory) -> None:
    storage = PostgresContentStorage("postgresql://test@localhost/db")
    record = validate_record(record_factory("scenario", "sc-1"))
    fake_psycopg.next_row = {
        "record_type": "scenario",
        "id": "sc-1",
        "title": record.title,
        "owner_id": record.owner_id,
        "status": record.status,
        "project_id": record.project_id,
        "payload": '{"content": "INT. LIGHTHOUSE - NIGHT", "logline": "Keeper follows the map."}',
        "created_at": record.created_at,
        "updated_at": record.updated_at.isoformat(),
    }

    stored = storage.upsert(record)

    sql, params = fake_psycopg.statements[0]
    assert "ON CONFLICT (record_type, id) DO UPDATE" in sql
    assert params[:2] == ("scenario", "sc-1")
    assert fake_psycopg.commits == 1
    assert stored == record


def test_upsert_without_returned_row_raises(fake_psycopg, record_factory) -> None:
    storage = PostgresContentStorage("postgresql://test@localhost/db")

    with pytest.raises(RuntimeError, match="Failed to persist"):
        storage.upsert(validate_record(record_factory()))


def test_backup_uses_validated_table_name(fake_psycopg) -> None:
    storage = PostgresContentStorage("postgresql://test@localhost/db")
    fake_psycopg.next_row = {"total": 4}

    assert storage.create_backup("backup_20260115_093000_000001") == 4
    assert fake_psycopg.statements[0][0] == (
        "CREATE TABLE content_records_backup_20260115_093000_000001 AS SELECT * FROM content_records"
    )
    assert "content_records_backup_20260115_093000_000001" in storage.rollback_steps(
        "backup_20260115_093000_000001"
    )[0]


@pytest.mark.parametrize("backup_id", ["Backup", "x; DROP TABLE content_records", "a" * 41])
def test_backup_rejects_unsafe_identifiers(fake_psycopg, backup_id: str) -> None:
    storage = PostgresContentStorage("postgresql://test@localhost/db")

    with pytest.raises(ValueError, match="Invalid backup identifier"):
        storage.create_backup(backup_id)
