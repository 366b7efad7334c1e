"""Content record models shared by the engine and every storage backend.

Terms used in this file:
- Record: one piece of user content (story, scenario, prompt, video job).
- Payload: the type-specific body of a record; its shape depends on ``type``.
- Join key: ``(type, id)``, the identity used to match a record across backends.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator

RecordType = Literal["story", "scenario", "prompt", "video_job"]
RecordStatus = Literal["draft", "processing", "completed", "failed", "archived"]
VideoProvider = Literal["seedance", "openai", "runways", "luma", "stable_video"]

RECORD_TYPES: tuple[str, ...] = ("story", "scenario", "prompt", "video_job")


class StrictModel(BaseModel):
    model_config = ConfigDict(extra="forbid")


class StoryPayload(StrictModel):
    content: str
    genre: str = "general"
    tone: str | None = None
    target_audience: str | None = None
    structure: dict[str, Any] = Field(default_factory=dict)


class ScenarioPayload(StrictModel):
    content: str
    logline: str | None = None
    structure: dict[str, Any] = Field(default_factory=dict)
    version: int = Field(default=1, ge=1)


class PromptPayload(StrictModel):
    final_prompt: str
    keywords: list[str] = Field(default_factory=list)
    # Denormalised copy of len(keywords) kept by the BaaS table.
    keyword_count: int = Field(default=0, ge=0)
    negative_prompt: str | None = None
    visual_style: str | None = None
    mood: str | None = None
    scenario_id: str | None = None


class VideoJobPayload(StrictModel):
    prompt: str
    provider: VideoProvider = "seedance"
    video_url: str | None = None
    thumbnail_url: str | None = None
    duration_sec: float | None = Field(default=None, gt=0)
    aspect_ratio: str | None = None
    job_id: str | None = None


class RecordBase(StrictModel):
    """Fields common to every content type."""

    id: str = Field(min_length=1)
    title: str
    owner_id: str | None = None
    status: RecordStatus = "draft"
    project_id: str | None = None
    created_at: datetime
    updated_at: datetime

    @field_validator("created_at", "updated_at")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value

    @property
    def key(self) -> tuple[str, str]:
        return (self.type, self.id)  # type: ignore[attr-defined]


class StoryRecord(RecordBase):
    type: Literal["story"] = "story"
    payload: StoryPayload


class ScenarioRecord(RecordBase):
    type: Literal["scenario"] = "scenario"
    payload: ScenarioPayload


class PromptRecord(RecordBase):
    type: Literal["prompt"] = "prompt"
    payload: PromptPayload


class VideoJobRecord(RecordBase):
    type: Literal["video_job"] = "video_job"
    payload: VideoJobPayload


ContentRecord = Annotated[
    Union[StoryRecord, ScenarioRecord, PromptRecord, VideoJobRecord],
    Field(discriminator="type"),
]

CONTENT_RECORD_ADAPTER: TypeAdapter[ContentRecord] = TypeAdapter(ContentRecord)


def primary_text(record: RecordBase) -> str:
    """Return the main body text of a record, whatever its type."""
    payload = record.payload  # type: ignore[attr-defined]
    if isinstance(payload, PromptPayload):
        return payload.final_prompt
    if isinstance(payload, VideoJobPayload):
        return payload.prompt
    return payload.content
