"""Two-pass EBU R128 loudness normalization with FFmpeg's loudnorm filter."""

import json
import logging
import re
import time
from pathlib import Path

from miditone.config import Settings, get_settings
from miditone.models.errors import NormalizeError, SilentAudioError
from miditone.models.results import NormalizationResult
from miditone.processors.base import Normalizer, run_tool
from miditone.processors.ffmpeg_builder import FFmpegCommandBuilder

logger = logging.getLogger(__name__)

MEASURED_KEYS = ("input_i", "input_tp", "input_lra", "input_thresh")


def parse_loudnorm_stats(stderr: str) -> dict[str, str]:
    """Pull the JSON block printed by loudnorm out of FFmpeg's stderr."""
    match = re.search(r"\{[^{}]*\"input_i\"[^{}]*\}", stderr, re.DOTALL)
    if not match:
        raise NormalizeError("Could not parse loudness data", details={"stderr": stderr[-500:]})
    try:
        stats = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        raise NormalizeError(f"Failed to parse loudness data: {e}") from e

    missing = [k for k in MEASURED_KEYS if k not in stats]
    if missing:
        raise NormalizeError(f"Loudness data missing fields: {missing}")
    return {k: str(v) for k, v in stats.items()}


def is_silent(input_i: str, threshold: float) -> bool:
    """True when the measured integrated loudness is -inf or at/below threshold."""
    try:
        return float(input_i) <= threshold
    except ValueError:
        return True


class LoudnessNormalizer(Normalizer):
    """Measures loudness, then applies linear gain using the measured values."""

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()
        self.builder = FFmpegCommandBuilder(self.settings)

    def measure(self, input_path: Path, target_lufs: float | None = None) -> dict[str, str]:
        """First pass: measure integrated loudness, true peak, range and threshold."""
        cmd = self.builder.build_measure_command(input_path, target_lufs)
        result = run_tool(cmd, NormalizeError, timeout=self.settings.transform_timeout)
        stats = parse_loudnorm_stats(result.stderr)
        logger.debug("Loudness analysis of %s: %s", input_path, stats)
        return stats

    def normalize(
        self, input_path: Path, output_path: Path, target_lufs: float | None = None
    ) -> NormalizationResult:
        start = time.monotonic()
        target = self.settings.target_lufs if target_lufs is None else target_lufs

        stats = self.measure(input_path, target)
        if is_silent(stats["input_i"], self.settings.silence_threshold_lufs):
            logger.warning(
                "Audio %s is silent or too quiet (input_i=%s)", input_path, stats["input_i"]
            )
            raise SilentAudioError(
                f"Audio is silent (Input Integrated: {stats['input_i']})",
                details={"stats": stats},
            )

        logger.info(
            "Normalizing %s from %s LUFS to %s LUFS (true peak %s)",
            input_path,
            stats["input_i"],
            target,
            stats["input_tp"],
        )
        cmd = self.builder.build_normalize_command(input_path, output_path, stats, target)
        run_tool(cmd, NormalizeError, timeout=self.settings.transform_timeout)

        duration_ms = int((time.monotonic() - start) * 1000)
        logger.info("Normalization complete: %s (%d ms)", output_path, duration_ms)
        return NormalizationResult(
            output_path=str(output_path),
            original_lufs=float(stats["input_i"]),
            target_lufs=target,
            true_peak=_maybe_float(stats["input_tp"]),
            loudness_range=_maybe_float(stats["input_lra"]),
            duration_ms=duration_ms,
        )


def _maybe_float(value: str) -> float | None:
    try:
        return float(value)
    except ValueError:
        return None
