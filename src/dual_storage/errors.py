"""Exception taxonomy for the dual-storage engine.

Only input validation and system-level setup failures are raised past the
writer/migration boundary. Backend failures are carried as data in
``DualStorageResult`` and ``MigrationReport`` entries.
"""

from __future__ import annotations


class DualStorageError(Exception):
    """Base class for engine errors."""


class ValidationError(DualStorageError):
    """Input failed structural validation before any backend call."""

    def __init__(self, message: str, *, field_errors: list[str] | None = None) -> None:
        self.field_errors = list(field_errors or [])
        detail = f"{message}: {'; '.join(self.field_errors)}" if self.field_errors else message
        super().__init__(detail)


class BackendUnavailableError(DualStorageError):
    """Backend skipped because its circuit is open or it is disabled."""

    def __init__(self, backend: str, reason: str = "circuit open") -> None:
        self.backend = backend
        self.reason = reason
        super().__init__(f"{backend} unavailable: {reason}")


class BackendWriteError(DualStorageError):
    """Transient I/O or backend failure while writing a record."""

    def __init__(self, backend: str, message: str) -> None:
        self.backend = backend
        super().__init__(f"{backend} write failed: {message}")


class SyncSystemError(DualStorageError):
    """Setup or enumeration failure that aborts a whole migration run."""
