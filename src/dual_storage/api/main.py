"""FastAPI app entrypoint for the dual-storage engine."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, Literal

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from dual_storage.config.settings import Settings, get_settings
from dual_storage.contracts.records import RECORD_TYPES
from dual_storage.contracts.results import (
    DualStorageResult,
    IntegrityReport,
    MigrationReport,
    StorageHealth,
    SyncStatusReport,
)
from dual_storage.engine.service import DualStorageEngine, build_engine
from dual_storage.errors import BackendUnavailableError, BackendWriteError, ValidationError


class MigrationRequest(BaseModel):
    dry_run: bool | None = None
    batch_size: int | None = Field(default=None, ge=1)
    max_retries: int | None = Field(default=None, ge=1)
    create_backup: bool | None = None
    source: Literal["backend_a", "backend_b"] | None = None
    concurrency: int | None = Field(default=None, ge=1)


def _ensure_runtime_state(
    app: FastAPI,
    *,
    settings: Settings,
    engine_override: DualStorageEngine | None,
) -> None:
    if not hasattr(app.state, "engine"):
        app.state.engine = engine_override or build_engine(settings)
        app.state.engine.migrate()

    if not hasattr(app.state, "settings"):
        app.state.settings = settings


def create_app(
    *,
    engine: DualStorageEngine | None = None,
    settings_override: Settings | None = None,
) -> FastAPI:
    settings = settings_override or (engine.settings if engine is not None else get_settings())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        _ensure_runtime_state(app, settings=settings, engine_override=engine)
        yield

    app_lifespan = lifespan if engine is None else None
    app = FastAPI(title=settings.app_name, lifespan=app_lifespan)

    # Keep test paths reliable when lifespan is not executed by the client.
    if engine is not None:
        _ensure_runtime_state(app, settings=settings, engine_override=engine)

    def _get_engine(request: Request) -> DualStorageEngine:
        if not hasattr(request.app.state, "engine"):
            _ensure_runtime_state(request.app, settings=settings, engine_override=engine)
        return request.app.state.engine

    @app.exception_handler(ValidationError)
    async def _validation_error(_: Request, exc: ValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=422,
            content={"detail": str(exc), "field_errors": exc.field_errors},
        )

    @app.exception_handler(BackendUnavailableError)
    @app.exception_handler(BackendWriteError)
    async def _backend_error(_: Request, exc: Exception) -> JSONResponse:
        return JSONResponse(
            status_code=503,
            content={"detail": str(exc), "backend": getattr(exc, "backend", None)},
        )

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok", "service": settings.app_name}

    @app.get("/health/backends", response_model=list[StorageHealth])
    def backend_health(request: Request) -> list[StorageHealth]:
        return _get_engine(request).health_snapshot()

    @app.post("/records", response_model=DualStorageResult)
    async def write_record(
        payload: dict[str, Any],
        request: Request,
        require_full: bool = False,
    ) -> DualStorageResult:
        return await _get_engine(request).write(payload, require_full=require_full)

    @app.get("/records/{record_type}/{record_id}")
    async def read_record(record_type: str, record_id: str, request: Request) -> dict[str, Any]:
        _check_record_type(record_type)
        record = await _get_engine(request).read(record_type, record_id)
        if record is None:
            raise HTTPException(status_code=404, detail="Record not found")
        return record.model_dump(mode="json")

    @app.get("/records/{record_type}/{record_id}/sync-status", response_model=SyncStatusReport)
    async def sync_status(record_type: str, record_id: str, request: Request) -> SyncStatusReport:
        _check_record_type(record_type)
        return await _get_engine(request).check_sync_status(record_type, record_id)

    @app.get("/integrity", response_model=IntegrityReport)
    async def integrity(request: Request) -> IntegrityReport:
        return await _get_engine(request).verify_integrity()

    @app.post("/migrations", response_model=MigrationReport)
    async def run_migration(payload: MigrationRequest, request: Request) -> MigrationReport:
        current = _get_engine(request)
        options = current.default_options(**payload.model_dump())
        return await current.run_migration(options)

    return app


app = create_app()


def _check_record_type(record_type: str) -> None:
    if record_type not in RECORD_TYPES:
        raise HTTPException(status_code=404, detail=f"Unknown record type: {record_type}")
