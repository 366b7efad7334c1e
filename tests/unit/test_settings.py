import pytest

from dual_storage.config.settings import Settings
from dual_storage.engine.service import DualStorageEngine, build_engine


def test_settings_read_prefixed_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DUAL_STORAGE_FAILURE_THRESHOLD", "7")
    monkeypatch.setenv("DUAL_STORAGE_BACKEND_B_ENABLED", "false")
    monkeypatch.setenv("DUAL_STORAGE_MIGRATION_SOURCE", "backend_a")

    settings = Settings(_env_file=None)

    assert settings.failure_threshold == 7
    assert settings.backend_b_enabled is False
    assert settings.migration_source == "backend_a"
    assert settings.consistency_threshold == 80
    assert settings.skip_quality_threshold == 60


def test_settings_fall_back_to_provider_variables(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("DUAL_STORAGE_DATABASE_URL", raising=False)
    monkeypatch.setenv("DATABASE_URL", "postgresql://fallback@localhost/db")
    monkeypatch.setenv("SUPABASE_URL", "https://project.supabase.co")
    monkeypatch.setenv("SUPABASE_SERVICE_ROLE_KEY", "role-key")

    settings = Settings(_env_file=None)

    assert settings.resolved_database_url() == "postgresql://fallback@localhost/db"
    assert settings.resolved_baas_url() == "https://project.supabase.co"
    assert settings.resolved_baas_service_key() == "role-key"


def test_build_engine_requires_baas_url(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("SUPABASE_URL", raising=False)
    settings = Settings(_env_file=None, database_url="postgresql://x@localhost/db", baas_url="")

    with pytest.raises(RuntimeError, match="DUAL_STORAGE_BAAS_URL"):
        build_engine(settings)


def test_default_options_come_from_settings(backend_a, backend_b, settings_factory) -> None:
    engine = DualStorageEngine(
        backend_a,
        backend_b,
        settings=settings_factory(batch_size=7, max_retries=2, create_backup=False),
    )

    options = engine.default_options(dry_run=True, concurrency=None)

    assert options.batch_size == 7
    assert options.max_retries == 2
    assert options.create_backup is False
    assert options.dry_run is True
    assert options.concurrency == 1
