import io
import json
from typing import Any
from urllib import error, parse

import pytest

from dual_storage.contracts.validation import validate_record
from dual_storage.storage import baas as baas_module
from dual_storage.storage.baas import BaasContentStorage, from_row, to_row


class FakeResponse:
    def __init__(self, body: Any, headers: dict[str, str] | None = None) -> None:
        self._raw = b"" if body is None else json.dumps(body).encode("utf-8")
        self.headers = headers or {}

    def read(self) -> bytes:
        return self._raw

    def __enter__(self) -> "FakeResponse":
        return self

    def __exit__(self, *_: Any) -> None:
        return None


class FakeBaas:
    """Records every request and answers from a per-table row store."""

    def __init__(self) -> None:
        self.requests: list[Any] = []
        self.tables: dict[str, list[dict[str, Any]]] = {}

    def __call__(self, req: Any, timeout: float) -> FakeResponse:
        self.requests.append(req)
        url = parse.urlparse(req.full_url)
        table = url.path.rsplit("/", 1)[-1]
        query = dict(parse.parse_qsl(url.query))
        rows = self.tables.setdefault(table, [])

        if req.get_method() == "POST":
            for row in json.loads(req.data):
                rows[:] = [existing for existing in rows if existing["id"] != row["id"]]
                rows.append(row)
            return FakeResponse(json.loads(req.data))

        if req.get_header("Prefer") == "count=exact":
            return FakeResponse([], {"Content-Range": f"0-0/{len(rows)}"})

        if "id" in query:
            wanted = query["id"].removeprefix("eq.")
            return FakeResponse([row for row in rows if row["id"] == wanted])

        offset = int(query.get("offset", 0))
        limit = int(query.get("limit", 1000))
        return FakeResponse(rows[offset : offset + limit])


@pytest.fixture
def fake_baas(monkeypatch: pytest.MonkeyPatch) -> FakeBaas:
    fake = FakeBaas()
    monkeypatch.setattr(baas_module.request, "urlopen", fake)
    return fake


def _storage(tmp_path) -> BaasContentStorage:
    return BaasContentStorage(
        "https://baas.example.com/",
        "service-key",
        backup_dir=tmp_path / "backups",
    )


def test_requires_url_and_key() -> None:
    with pytest.raises(ValueError, match="BAAS_URL"):
        BaasContentStorage("", "key")
    with pytest.raises(ValueError, match="SERVICE_KEY"):
        BaasContentStorage("https://baas.example.com", "")


def test_upsert_posts_flat_row_with_merge_headers(fake_baas, tmp_path, record_factory) -> None:
    storage = _storage(tmp_path)
    record = validate_record(record_factory("prompt", "p-1"))

    stored = storage.upsert(record)

    req = fake_baas.requests[0]
    assert req.full_url == "https://baas.example.com/rest/v1/prompts?on_conflict=id"
    assert req.get_header("Prefer") == "resolution=merge-duplicates,return=representation"
    assert req.get_header("Apikey") == "service-key"
    assert req.get_header("Authorization") == "Bearer service-key"
    body = json.loads(req.data)[0]
    assert body["user_id"] == "user-1"
    assert body["keywords"] == ["lighthouse", "dusk"]
    assert stored == record


def test_get_returns_none_when_absent(fake_baas, tmp_path) -> None:
    assert _storage(tmp_path).get("story", "missing") is None


def test_count_and_pages_span_tables(fake_baas, tmp_path, record_factory) -> None:
    storage = _storage(tmp_path)
    storage.upsert(validate_record(record_factory("story", "s-1")))
    storage.upsert(validate_record(record_factory("story", "s-2", offset_s=1)))
    storage.upsert(validate_record(record_factory("video_job", "v-1")))

    assert storage.count() == 3
    page = storage.list_page(offset=1, limit=2)
    assert [(row["type"], row["id"]) for row in page] == [("story", "s-2"), ("video_job", "v-1")]
    assert sorted(storage.list_keys()) == [("story", "s-1"), ("story", "s-2"), ("video_job", "v-1")]


def test_http_error_becomes_runtime_error(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    def failing_urlopen(req: Any, timeout: float) -> FakeResponse:
        raise error.HTTPError(req.full_url, 503, "unavailable", {}, io.BytesIO(b"maintenance"))

    monkeypatch.setattr(baas_module.request, "urlopen", failing_urlopen)

    with pytest.raises(RuntimeError, match="status 503: maintenance"):
        _storage(tmp_path).get("story", "s-1")


def test_backup_and_restore_round_trip(fake_baas, tmp_path, record_factory) -> None:
    storage = _storage(tmp_path)
    storage.upsert(validate_record(record_factory("scenario", "sc-1")))

    assert storage.create_backup("backup_1") == 1
    storage.upsert(validate_record(record_factory("scenario", "sc-1", title="Changed")))
    assert storage.restore_backup("backup_1") == 1

    assert storage.get("scenario", "sc-1").title == "The Keeper"
    assert (tmp_path / "backups" / "backup_1.jsonl").exists()


def test_backup_identifier_cannot_escape_directory(tmp_path) -> None:
    with pytest.raises(ValueError):
        _storage(tmp_path).create_backup("../etc")


def test_row_mapping_drops_null_payload_columns(record_factory) -> None:
    record = validate_record(record_factory("video_job", "v-1"))

    row = to_row(record)
    restored = validate_record(from_row("video_job", row))

    assert row["user_id"] == "user-1"
    assert "payload" not in row
    assert restored == record
