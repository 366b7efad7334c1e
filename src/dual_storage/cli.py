"""Operator CLI: run migrations, inspect sync state, verify integrity and roll back."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any

from pydantic import BaseModel

from dual_storage.config.settings import get_settings
from dual_storage.contracts.records import RECORD_TYPES
from dual_storage.engine.service import DualStorageEngine, build_engine
from dual_storage.errors import DualStorageError, ValidationError

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_INVALID = 2


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="dual-storage",
        description="Keep content records synchronized across the relational and BaaS backends.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    migrate = subparsers.add_parser("migrate", help="Backfill every source record into both backends.")
    migrate.add_argument("--dry-run", action="store_true", default=None, help="Validate only; write nothing.")
    migrate.add_argument("--batch-size", type=int, default=None)
    migrate.add_argument("--max-retries", type=int, default=None)
    migrate.add_argument(
        "--no-backup",
        dest="create_backup",
        action="store_false",
        default=None,
        help="Skip the pre-migration backup.",
    )
    migrate.add_argument("--source", choices=("backend_a", "backend_b"), default=None)
    migrate.add_argument("--concurrency", type=int, default=None)

    status = subparsers.add_parser("sync-status", help="Compare one record across both backends.")
    status.add_argument("record_type", choices=RECORD_TYPES)
    status.add_argument("record_id")

    subparsers.add_parser("verify-integrity", help="Compare record keys across both backends.")

    rollback = subparsers.add_parser("rollback", help="Restore the source backend from a backup.")
    rollback.add_argument("backup_id")
    rollback.add_argument("--source", choices=("backend_a", "backend_b"), default=None)

    write = subparsers.add_parser("write", help="Write one JSON record to both backends.")
    write.add_argument(
        "--file",
        type=Path,
        default=None,
        help="Path to a JSON record (default: read from stdin).",
    )
    write.add_argument("--require-full", action="store_true")

    return parser.parse_args(argv)


def _emit(payload: BaseModel | dict[str, Any]) -> None:
    if isinstance(payload, BaseModel):
        text = payload.model_dump_json(indent=2)
    else:
        text = json.dumps(payload, indent=2, default=str)
    print(text)


async def _run(args: argparse.Namespace, engine: DualStorageEngine) -> int:
    if args.command == "migrate":
        options = engine.default_options(
            dry_run=args.dry_run,
            batch_size=args.batch_size,
            max_retries=args.max_retries,
            create_backup=args.create_backup,
            source=args.source,
            concurrency=args.concurrency,
        )
        report = await engine.run_migration(options)
        _emit(report)
        return EXIT_OK if report.is_complete and not report.errors else EXIT_FAILED

    if args.command == "sync-status":
        status = await engine.check_sync_status(args.record_type, args.record_id)
        _emit(status)
        return EXIT_OK if status.quality.is_consistent else EXIT_FAILED

    if args.command == "verify-integrity":
        integrity = await engine.verify_integrity()
        _emit(integrity)
        return EXIT_OK if integrity.is_valid else EXIT_FAILED

    if args.command == "rollback":
        restored = await engine.rollback(args.backup_id, source=args.source)
        _emit({"backup_id": args.backup_id, "restored": restored})
        return EXIT_OK

    if args.command == "write":
        raw_text = args.file.read_text(encoding="utf-8") if args.file else sys.stdin.read()
        try:
            raw = json.loads(raw_text)
        except json.JSONDecodeError as exc:
            raise ValidationError("record is not valid JSON", field_errors=[str(exc)]) from exc
        result = await engine.write(raw, require_full=args.require_full)
        _emit(result)
        return EXIT_OK if result.success else EXIT_FAILED

    raise ValueError(f"Unknown command: {args.command}")


def main(argv: list[str] | None = None, *, engine: DualStorageEngine | None = None) -> int:
    args = _parse_args(argv)
    settings = engine.settings if engine is not None else get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if engine is None:
        try:
            engine = build_engine(settings)
        except (RuntimeError, ValueError) as exc:
            logger.error("Engine configuration failed: %s", exc)
            _emit({"error": str(exc)})
            return EXIT_INVALID
        engine.migrate()

    try:
        return asyncio.run(_run(args, engine))
    except ValidationError as exc:
        _emit({"error": str(exc), "field_errors": exc.field_errors})
        return EXIT_INVALID
    except DualStorageError as exc:
        logger.error("%s failed: %s", args.command, exc)
        _emit({"error": str(exc)})
        return EXIT_FAILED


if __name__ == "__main__":
    raise SystemExit(main())
