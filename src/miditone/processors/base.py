"""Base classes for the external conversion stages."""

import logging
import subprocess
from abc import ABC, abstractmethod
from pathlib import Path

from miditone.models.errors import TransformError
from miditone.models.results import EncodingResult, NormalizationResult, RenderResult
from miditone.models.tags import TrackTags

logger = logging.getLogger(__name__)


class Renderer(ABC):
    """Synthesizes a canonical MIDI buffer into a WAV file."""

    @abstractmethod
    def render(self, midi: bytes, output_path: Path) -> RenderResult: ...


class Normalizer(ABC):
    """Brings a WAV file to a target integrated loudness."""

    @abstractmethod
    def normalize(
        self, input_path: Path, output_path: Path, target_lufs: float
    ) -> NormalizationResult: ...


class Encoder(ABC):
    """Encodes a WAV file into a tagged lossy artifact."""

    @abstractmethod
    def encode(self, input_path: Path, output_path: Path, tags: TrackTags) -> EncodingResult: ...


def run_tool(
    cmd: list[str],
    error_cls: type[TransformError],
    timeout: float | None = None,
) -> subprocess.CompletedProcess:
    """Run an external tool, mapping every failure onto error_cls."""
    logger.debug("Executing %s", " ".join(cmd))
    try:
        result = subprocess.run(cmd, capture_output=True, text=True, timeout=timeout)
    except FileNotFoundError:
        raise error_cls(
            f"{cmd[0]} not found. Please install it and make sure it is on PATH.",
            details={"command": cmd[0]},
        )
    except subprocess.TimeoutExpired:
        raise error_cls(
            f"{cmd[0]} timed out after {timeout}s",
            details={"command": cmd[0], "timeout": timeout},
        )

    if result.returncode != 0:
        stderr_tail = "\n".join(result.stderr.splitlines()[-30:])
        if result.returncode < 0:
            exit_info = f"signal {-result.returncode}"
        else:
            exit_info = f"code {result.returncode}"
        logger.error("%s failed (%s)", cmd[0], exit_info)
        raise error_cls(
            f"{cmd[0]} failed with {exit_info}: {stderr_tail}",
            details={"stderr": stderr_tail, "returncode": result.returncode},
        )
    return result
