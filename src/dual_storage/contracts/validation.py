"""Schema boundary helpers: parse untrusted input into typed records.

Invalid input fails closed with ``ValidationError`` carrying dotted field
paths, before any backend is touched.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from dual_storage.contracts.records import (
    CONTENT_RECORD_ADAPTER,
    RECORD_TYPES,
    ContentRecord,
    RecordBase,
)
from dual_storage.errors import ValidationError


def validate_record(raw: Any) -> ContentRecord:
    """Validate a record (dict or model instance) against its tagged schema."""
    if isinstance(raw, RecordBase):
        raw = raw.model_dump()
    if not isinstance(raw, dict):
        raise ValidationError("record must be an object", field_errors=[f"<root>: {type(raw)!r}"])
    try:
        return CONTENT_RECORD_ADAPTER.validate_python(raw)
    except PydanticValidationError as exc:
        raise ValidationError(
            f"invalid {raw.get('type', 'content')} record",
            field_errors=format_errors(exc),
        ) from exc


def validate_model(model_cls: type[BaseModel], raw: Any) -> BaseModel:
    """Validate a result/report payload against its model."""
    try:
        return model_cls.model_validate(raw)
    except PydanticValidationError as exc:
        raise ValidationError(
            f"invalid {model_cls.__name__}",
            field_errors=format_errors(exc),
        ) from exc


def format_errors(exc: PydanticValidationError) -> list[str]:
    messages: list[str] = []
    for item in exc.errors():
        loc = [str(part) for part in item.get("loc", ())]
        # Discriminated unions prefix the location with the matched tag.
        if loc and loc[0] in RECORD_TYPES:
            loc = loc[1:]
        path = ".".join(loc) or "<root>"
        messages.append(f"{path}: {item.get('msg', 'invalid value')}")
    return messages
