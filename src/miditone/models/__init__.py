"""Data models for Miditone."""

from miditone.models.errors import (
    CommitError,
    ConfigurationError,
    EncodeError,
    FailureRecord,
    InsufficientSpaceError,
    MalformedPayloadError,
    MiditoneError,
    NormalizeError,
    OutputExistsError,
    ProcessingError,
    RenderError,
    SilentAudioError,
    StoreError,
    TransformError,
)
from miditone.models.pipeline import (
    PipelineResult,
    PipelineStage,
    PipelineState,
    ProcessingStatus,
)
from miditone.models.record import BinaryPayload, MetadataSource, MidiRecord, TextPayload
from miditone.models.results import (
    CommitResult,
    EncodingResult,
    NormalizationResult,
    RenderResult,
)
from miditone.models.stats import ProcessingStats, StatsSummary
from miditone.models.tags import TrackTags, UserText

__all__ = [
    "BinaryPayload",
    "CommitError",
    "CommitResult",
    "ConfigurationError",
    "EncodeError",
    "EncodingResult",
    "FailureRecord",
    "InsufficientSpaceError",
    "MalformedPayloadError",
    "MetadataSource",
    "MidiRecord",
    "MiditoneError",
    "NormalizationResult",
    "NormalizeError",
    "OutputExistsError",
    "PipelineResult",
    "PipelineStage",
    "PipelineState",
    "ProcessingError",
    "ProcessingStats",
    "ProcessingStatus",
    "RenderError",
    "RenderResult",
    "SilentAudioError",
    "StatsSummary",
    "StoreError",
    "TextPayload",
    "TrackTags",
    "TransformError",
    "UserText",
]
