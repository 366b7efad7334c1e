import pytest
from fastapi.testclient import TestClient

from dual_storage.api.main import create_app


@pytest.fixture
def client(engine) -> TestClient:
    with TestClient(create_app(engine=engine)) as test_client:
        yield test_client


def test_health(client: TestClient) -> None:
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "service": "dual-storage-sync"}


def test_write_and_read_record(client: TestClient, record_factory) -> None:
    response = client.post("/records", json=record_factory("scenario", "sc-1"))

    assert response.status_code == 200
    body = response.json()
    assert body["consistency"] == "full"
    assert body["degradation_mode"] == "none"

    fetched = client.get("/records/scenario/sc-1")
    assert fetched.status_code == 200
    assert fetched.json()["payload"]["logline"] == "Keeper follows the map."


def test_read_falls_back_to_backend_b(client: TestClient, backend_a, record_factory) -> None:
    client.post("/records", json=record_factory())
    backend_a.fail_reads = True

    response = client.get("/records/story/rec-1")

    assert response.status_code == 200
    assert response.json()["id"] == "rec-1"


def test_read_unknown_record_type_is_404(client: TestClient) -> None:
    assert client.get("/records/storyboard/x").status_code == 404
    assert client.get("/records/story/missing").status_code == 404


def test_invalid_record_returns_422(client: TestClient, backend_a, record_factory) -> None:
    raw = record_factory()
    raw["payload"] = {}

    response = client.post("/records", json=raw)

    assert response.status_code == 422
    assert any(error.startswith("payload.content") for error in response.json()["field_errors"])
    assert backend_a.write_calls == 0


def test_require_full_rejects_partial_write(client: TestClient, backend_b, record_factory) -> None:
    backend_b.fail_writes = 1

    partial = client.post("/records", json=record_factory(record_id="r-1"))
    assert partial.status_code == 200
    assert partial.json()["consistency"] == "partial"

    backend_b.fail_writes = 1
    strict = client.post("/records?require_full=true", json=record_factory(record_id="r-2"))
    assert strict.status_code == 503
    assert strict.json()["backend"] == "backend_b"


def test_backend_health_endpoint(client: TestClient, backend_b, record_factory) -> None:
    backend_b.fail_writes = 1
    client.post("/records", json=record_factory())

    response = client.get("/health/backends")

    assert response.status_code == 200
    health = {item["backend"]: item for item in response.json()}
    assert health["backend_b"]["failures"] == 1
    assert health["backend_a"]["is_healthy"] is True


def test_sync_status_and_integrity(client: TestClient, record_factory) -> None:
    client.post("/records", json=record_factory())

    status = client.get("/records/story/rec-1/sync-status")
    integrity = client.get("/integrity")

    assert status.status_code == 200
    assert status.json()["sync_health"] == "healthy"
    assert integrity.json()["is_valid"] is True


def test_run_migration_endpoint(client: TestClient, backend_b, record_factory) -> None:
    for index in range(3):
        backend_b.seed(record_factory(record_id=f"rec-{index}", offset_s=index))

    response = client.post("/migrations", json={"batch_size": 2, "create_backup": False})

    assert response.status_code == 200
    body = response.json()
    assert body["succeeded"] == 3
    assert body["rollback_plan"] is None


def test_create_app_requires_database_url(
    monkeypatch: pytest.MonkeyPatch, settings_factory
) -> None:
    monkeypatch.delenv("DATABASE_URL", raising=False)
    settings = settings_factory(database_url="", baas_url="https://baas.example.com")
    app = create_app(settings_override=settings)

    with pytest.raises(RuntimeError, match="DUAL_STORAGE_DATABASE_URL"):
        with TestClient(app):
            pass
