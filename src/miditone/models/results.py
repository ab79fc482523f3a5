"""Result models for the conversion stages and the output commit."""

from pydantic import BaseModel, Field

from miditone.models.tags import TrackTags


class RenderResult(BaseModel):
    """Result of synthesizing MIDI into WAV."""

    output_path: str
    duration_ms: int = Field(default=0, ge=0)


class NormalizationResult(BaseModel):
    """Result of the two-pass loudness normalization."""

    output_path: str
    original_lufs: float
    target_lufs: float
    true_peak: float | None = None
    loudness_range: float | None = None
    duration_ms: int = Field(default=0, ge=0)


class EncodingResult(BaseModel):
    """Result of MP3 encoding and tag embedding."""

    output_path: str
    tags: TrackTags
    tags_written: bool = True
    audio_duration: float | None = Field(default=None, ge=0)
    duration_ms: int = Field(default=0, ge=0)


class CommitResult(BaseModel):
    """Result of committing an artifact into the output tree."""

    path: str
    size: int = Field(..., ge=0)
    duration_ms: int = Field(default=0, ge=0)
    atomic: bool = True
