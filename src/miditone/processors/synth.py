"""MIDI synthesis with the FluidSynth command-line renderer."""

import logging
import time
from pathlib import Path

from miditone.config import Settings, get_settings
from miditone.models.errors import RenderError
from miditone.models.results import RenderResult
from miditone.processors.base import Renderer, run_tool
from miditone.processors.ffmpeg_builder import FFmpegCommandBuilder
from miditone.storage.temp_store import TempFileManager

logger = logging.getLogger(__name__)


class FluidSynthRenderer(Renderer):
    """Renders MIDI bytes to WAV through a soundfont."""

    def __init__(self, temp_store: TempFileManager, settings: Settings | None = None):
        self.settings = settings or get_settings()
        self.temp_store = temp_store
        self.builder = FFmpegCommandBuilder(self.settings)

    def render(self, midi: bytes, output_path: Path) -> RenderResult:
        if not Path(self.settings.soundfont_path).is_file():
            raise RenderError(f"Soundfont not found: {self.settings.soundfont_path}")

        midi_path = self.temp_store.allocate(".mid")
        try:
            midi_path.write_bytes(midi)
            logger.debug("Wrote %d MIDI bytes to %s", len(midi), midi_path)

            start = time.monotonic()
            cmd = self.builder.build_render_command(midi_path, output_path)
            run_tool(cmd, RenderError, timeout=self.settings.transform_timeout)

            if not output_path.exists() or output_path.stat().st_size == 0:
                raise RenderError(
                    "FluidSynth produced no audio", details={"output": str(output_path)}
                )

            duration_ms = int((time.monotonic() - start) * 1000)
            logger.info("MIDI rendered to %s in %d ms", output_path, duration_ms)
            return RenderResult(output_path=str(output_path), duration_ms=duration_ms)
        except OSError as e:
            raise RenderError(f"MIDI rendering failed: {e}") from e
        finally:
            self.temp_store.release(midi_path)
