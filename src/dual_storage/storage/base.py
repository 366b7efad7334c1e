"""Storage interface implemented by both persistence backends."""

from __future__ import annotations

from typing import Any, Protocol

from dual_storage.contracts.records import ContentRecord


class ContentStorage(Protocol):
    name: str

    def migrate(self) -> None: ...

    def upsert(self, record: ContentRecord) -> ContentRecord: ...

    def get(self, record_type: str, record_id: str) -> ContentRecord | None: ...

    def count(self) -> int: ...

    def list_page(self, *, offset: int, limit: int) -> list[dict[str, Any]]: ...

    def list_keys(self) -> list[tuple[str, str]]: ...

    def create_backup(self, backup_id: str) -> int: ...

    def restore_backup(self, backup_id: str) -> int: ...

    def rollback_steps(self, backup_id: str) -> list[str]: ...

    def verification_steps(self, backup_id: str) -> list[str]: ...
