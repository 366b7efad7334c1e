"""Application settings."""

from functools import lru_cache
import os
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

PROJECT_ROOT = Path(__file__).resolve().parents[3]


class Settings(BaseSettings):
    """Runtime settings loaded from environment variables."""

    app_name: str = "dual-storage-sync"
    log_level: str = "INFO"

    # Backend A (relational) and backend B (BaaS table API).
    database_url: str = ""
    baas_url: str = ""
    baas_service_key: str = ""
    backend_b_enabled: bool = True
    backend_timeout_s: float = Field(default=5.0, gt=0.0)

    # Health tracker.
    failure_threshold: int = Field(default=5, ge=1)
    cool_down_ms: int = Field(default=60_000, ge=0)

    # Consistency and quality scoring.
    consistency_threshold: int = Field(default=80, ge=0, le=100)
    skip_quality_threshold: int = Field(default=60, ge=0, le=100)
    timestamp_tolerance_s: float = Field(default=5.0, ge=0.0)

    # Migration defaults.
    batch_size: int = Field(default=50, ge=1)
    max_retries: int = Field(default=3, ge=1)
    create_backup: bool = True
    dry_run: bool = False
    retry_base_delay_s: float = Field(default=1.0, ge=0.0)
    inter_batch_delay_s: float = Field(default=0.1, ge=0.0)
    migration_source: Literal["backend_a", "backend_b"] = "backend_b"
    migration_concurrency: int = Field(default=1, ge=1)
    quality_sample_size: int = Field(default=0, ge=0)
    backup_dir: str = "backups"
    backup_timeout_s: float = Field(default=600.0, gt=0.0)

    model_config = SettingsConfigDict(
        env_prefix="DUAL_STORAGE_",
        extra="ignore",
        env_file=(PROJECT_ROOT / ".env", PROJECT_ROOT / ".env.local"),
        env_file_encoding="utf-8",
    )

    def resolved_database_url(self) -> str:
        return self.database_url or os.getenv("DATABASE_URL", "")

    def resolved_baas_url(self) -> str:
        return self.baas_url or os.getenv("SUPABASE_URL", "")

    def resolved_baas_service_key(self) -> str:
        return self.baas_service_key or os.getenv("SUPABASE_SERVICE_ROLE_KEY", "")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
