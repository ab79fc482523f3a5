"""Command-line construction for FluidSynth, FFmpeg and ffprobe."""

from pathlib import Path

from miditone.config import Settings, get_settings


class FFmpegCommandBuilder:
    """Builds the argument lists for the external audio tools."""

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()

    def build_render_command(self, midi_path: Path, output_path: Path) -> list[str]:
        """fluidsynth fast-render of a MIDI file to WAV, no audio/MIDI hardware."""
        s = self.settings
        return [
            s.fluidsynth_binary,
            "-F", str(output_path),
            "-a", "file",
            "-m", "file",
            "-g", "1.0",
            "-r", str(s.sample_rate),
            "-T", "wav",
            "-q",
            str(s.soundfont_path),
            str(midi_path),
        ]  # fmt: skip

    def build_loudness_filter(
        self,
        measured: dict[str, str] | None = None,
        target_lufs: float | None = None,
    ) -> str:
        """loudnorm filter for the measurement pass, or the apply pass when measured is given."""
        s = self.settings
        target = s.target_lufs if target_lufs is None else target_lufs
        if measured is None:
            return f"loudnorm=I={target}:print_format=json"
        return (
            f"loudnorm=I={target}:TP={s.true_peak}:LRA={s.loudness_range}:"
            f"measured_I={measured['input_i']}:"
            f"measured_LRA={measured['input_lra']}:"
            f"measured_TP={measured['input_tp']}:"
            f"measured_thresh={measured['input_thresh']}:"
            f"linear=true:print_format=summary"
        )

    def build_measure_command(
        self, input_path: Path, target_lufs: float | None = None
    ) -> list[str]:
        return [
            self.settings.ffmpeg_binary,
            "-hide_banner",
            "-nostdin",
            "-i", str(input_path),
            "-af", self.build_loudness_filter(target_lufs=target_lufs),
            "-f", "null",
            "-",
        ]  # fmt: skip

    def build_normalize_command(
        self,
        input_path: Path,
        output_path: Path,
        measured: dict[str, str],
        target_lufs: float | None = None,
    ) -> list[str]:
        s = self.settings
        return [
            s.ffmpeg_binary,
            "-hide_banner",
            "-nostdin",
            "-y",
            "-i", str(input_path),
            "-af", self.build_loudness_filter(measured, target_lufs),
            "-c:a", f"pcm_s{s.bit_depth}le" if s.bit_depth > 8 else "pcm_u8",
            "-ar", str(s.sample_rate),
            "-ac", "2",
            str(output_path),
        ]  # fmt: skip

    def build_encode_command(self, input_path: Path, output_path: Path) -> list[str]:
        s = self.settings
        return [
            s.ffmpeg_binary,
            "-hide_banner",
            "-nostdin",
            "-y",
            "-i", str(input_path),
            "-c:a", "libmp3lame",
            "-b:a", f"{s.mp3_bitrate}k",
            "-q:a", str(s.mp3_quality),
            "-ac", "2",
            "-ar", str(s.sample_rate),
            "-f", "mp3",
            str(output_path),
        ]  # fmt: skip

    def build_probe_command(self, path: Path) -> list[str]:
        return [
            self.settings.ffprobe_binary,
            "-v", "quiet",
            "-print_format", "json",
            "-show_format",
            "-show_streams",
            str(path),
        ]  # fmt: skip
