"""Application configuration using Pydantic BaseSettings."""

import shutil
from pathlib import Path

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings

from miditone.models.errors import ConfigurationError


class Settings(BaseSettings):
    """Miditone configuration loaded from environment variables."""

    model_config = {"env_prefix": "MIDITONE_", "env_file": ".env", "extra": "ignore"}

    # MongoDB
    mongodb_uri: str = "mongodb://localhost:27017"
    mongodb_database: str = "midi_database"
    mongodb_collection: str = "midi_collection"
    mongodb_max_pool_size: int = Field(default=10, ge=1)
    mongodb_min_pool_size: int = Field(default=2, ge=0)
    mongodb_server_selection_timeout_ms: int = Field(default=5000, ge=1)

    # Directories
    soundfont_path: Path = Path("soundfont.sf2")
    output_dir: Path = Path("output")
    temp_dir: Path = Path("temp")

    # Audio
    target_lufs: float = Field(default=-14.0, ge=-70.0, le=0.0)
    true_peak: float = -1.5
    loudness_range: float = 11.0
    silence_threshold_lufs: float = -70.0
    sample_rate: int = Field(default=44100, ge=8000, le=192000)
    bit_depth: int = 16

    # MP3 encoding
    mp3_bitrate: int = Field(default=320, ge=64, le=320)
    mp3_quality: int = Field(default=0, ge=0, le=9)
    embed_full_metadata: bool = True

    # Processing
    concurrency: int = Field(default=4, ge=1, le=20)
    max_retries: int = Field(default=2, ge=0)
    retry_base_delay: float = Field(default=1.0, ge=0.0)
    progress_interval: int = Field(default=10, ge=1)
    enable_duplicate_check: bool = True
    skip_failed: bool = False
    transform_timeout: float = Field(default=600.0, gt=0)

    # Output naming
    output_extension: str = "mp3"
    max_component_length: int = Field(default=200, ge=1)
    hash_suffix_length: int = Field(default=8, ge=1)

    # External tools
    fluidsynth_binary: str = "fluidsynth"
    ffmpeg_binary: str = "ffmpeg"
    ffprobe_binary: str = "ffprobe"

    # Logging
    log_level: str = "INFO"
    log_file: Path | None = None

    @field_validator("bit_depth")
    @classmethod
    def check_bit_depth(cls, v: int) -> int:
        if v not in (8, 16, 24, 32):
            raise ValueError("bit_depth must be 8, 16, 24, or 32")
        return v

    @field_validator("output_extension")
    @classmethod
    def strip_extension_dot(cls, v: str) -> str:
        v = v.lstrip(".").lower()
        if not v:
            raise ValueError("output_extension must not be empty")
        return v

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        v = v.upper()
        if v not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level: {v}")
        return v


def get_settings(**overrides) -> Settings:
    """Return a freshly loaded settings instance."""
    try:
        return Settings(**overrides)
    except ValidationError as e:
        problems = [f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()]
        raise ConfigurationError(
            "Configuration validation failed:\n" + "\n".join(problems),
            details={"errors": problems},
        ) from e


def validate_runtime(settings: Settings) -> None:
    """Check the environment the pipeline depends on before touching any record."""
    problems = []
    if not settings.mongodb_uri:
        problems.append("MIDITONE_MONGODB_URI is required")
    if not settings.soundfont_path.is_file():
        problems.append(f"Soundfont file not found: {settings.soundfont_path}")
    for binary in (settings.fluidsynth_binary, settings.ffmpeg_binary, settings.ffprobe_binary):
        if shutil.which(binary) is None:
            problems.append(f"Required executable not found on PATH: {binary}")
    if settings.mongodb_max_pool_size < settings.concurrency:
        problems.append(
            f"mongodb_max_pool_size ({settings.mongodb_max_pool_size}) "
            f"must be >= concurrency ({settings.concurrency})"
        )

    if problems:
        raise ConfigurationError(
            "Configuration validation failed:\n" + "\n".join(problems),
            details={"errors": problems},
        )
