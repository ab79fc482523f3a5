"""Pipeline state, status and stage models."""

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, Field

from miditone.models.tags import TrackTags


class ProcessingStatus(StrEnum):
    """Per-record status persisted back to the store."""

    UNSET = "unset"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class PipelineStage(StrEnum):
    """Stages of the per-record pipeline."""

    EXTRACTING = "extracting"
    RENDERING = "rendering"
    NORMALIZING = "normalizing"
    ENCODING = "encoding"
    COMMITTING = "committing"
    COMPLETED = "completed"
    FAILED = "failed"


class PipelineState(BaseModel):
    """Current state of one record's pipeline attempt sequence."""

    hash: str = Field(..., min_length=1)
    stage: PipelineStage = Field(default=PipelineStage.EXTRACTING)
    attempt: int = Field(default=1, ge=1)
    started_at: datetime | None = None
    updated_at: datetime | None = None
    completed_at: datetime | None = None
    error: str | None = None


class PipelineResult(BaseModel):
    """Outcome of a successful pipeline run for one record."""

    hash: str
    output_path: str
    processing_duration_ms: int = Field(..., ge=0)
    audio_duration: float | None = Field(default=None, ge=0)
    original_lufs: float
    target_lufs: float
    file_size_bytes: int = Field(default=0, ge=0)
    attempts: int = Field(default=1, ge=1)
    tags: TrackTags
