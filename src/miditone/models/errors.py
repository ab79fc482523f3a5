"""Error hierarchy and failure report models."""

from pydantic import BaseModel, Field


class MiditoneError(Exception):
    """Base error for all Miditone errors."""

    def __init__(self, message: str, component: str = "", details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.component = component
        self.details = details or {}


class ConfigurationError(MiditoneError):
    """Invalid configuration; fatal before any record is touched."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message, component="configuration", details=details)


class StoreError(MiditoneError):
    """Document store failures (connection, cursor, status update)."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message, component="store", details=details)


class MalformedPayloadError(MiditoneError):
    """The record payload is missing or does not decode to a MIDI file."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message, component="extract", details=details)


class ProcessingError(MiditoneError):
    """Unexpected failure inside a pipeline stage."""

    def __init__(self, message: str, component: str = "processing", details: dict | None = None):
        super().__init__(message, component=component, details=details)


class TransformError(MiditoneError):
    """Failure reported by one of the external conversion stages."""

    stage = "transform"

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message, component=self.stage, details=details)


class RenderError(TransformError):
    """MIDI to WAV synthesis failed."""

    stage = "render"


class NormalizeError(TransformError):
    """Loudness measurement or normalization failed."""

    stage = "normalize"


class SilentAudioError(NormalizeError):
    """Rendered audio is silent or below the measurable loudness floor."""


class EncodeError(TransformError):
    """MP3 encoding failed."""

    stage = "encode"


class CommitError(MiditoneError):
    """Writing the finished artifact into the output tree failed."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message, component="commit", details=details)


class InsufficientSpaceError(CommitError):
    """Target filesystem does not have room for the artifact."""


class OutputExistsError(CommitError):
    """Every candidate output path is already taken."""


class FailureRecord(BaseModel):
    """One failed record in a batch run."""

    hash: str = Field(..., description="Record content hash, or 'unknown'")
    error: str = Field(..., description="Message of the last error")
    error_type: str = Field(default="")
    component: str = Field(default="", description="Component that raised the error")

    @classmethod
    def from_exception(cls, hash: str, exc: BaseException) -> "FailureRecord":
        return cls(
            hash=hash,
            error=str(exc),
            error_type=type(exc).__name__,
            component=getattr(exc, "component", ""),
        )
