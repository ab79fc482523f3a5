"""MP3 encoding with LAME through FFmpeg, and ID3 tagging with mutagen."""

import json
import logging
import subprocess
import time
from pathlib import Path

from mutagen import MutagenError
from mutagen.id3 import COMM, ID3, TALB, TCON, TDRC, TIT2, TPE1, TXXX, ID3NoHeaderError

from miditone.config import Settings, get_settings
from miditone.models.errors import EncodeError
from miditone.models.results import EncodingResult
from miditone.models.tags import TrackTags
from miditone.processors.base import Encoder, run_tool
from miditone.processors.ffmpeg_builder import FFmpegCommandBuilder

logger = logging.getLogger(__name__)


def build_id3(tags: TrackTags) -> ID3:
    """Translate TrackTags into ID3v2 frames."""
    id3 = ID3()
    id3.add(TPE1(encoding=3, text=tags.artist))
    id3.add(TIT2(encoding=3, text=tags.title))
    id3.add(TALB(encoding=3, text=tags.album))
    if tags.year:
        id3.add(TDRC(encoding=3, text=tags.year))
    if tags.genre:
        id3.add(TCON(encoding=3, text=tags.genre))
    if tags.comment:
        id3.add(COMM(encoding=3, lang=tags.comment_language, desc="", text=tags.comment))
    for frame in tags.user_text:
        id3.add(TXXX(encoding=3, desc=frame.description, text=frame.value))
    return id3


def write_tags(path: Path, tags: TrackTags) -> bool:
    """Replace the ID3 tags of path. Returns False if writing failed."""
    try:
        try:
            ID3(path).delete(path)
        except ID3NoHeaderError:
            pass
        build_id3(tags).save(path)
        return True
    except MutagenError as e:
        logger.warning("Failed to write ID3 tags to %s: %s", path, e)
        return False


class Mp3Encoder(Encoder):
    """Encodes normalized WAV to MP3 and embeds the resolved tags."""

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()
        self.builder = FFmpegCommandBuilder(self.settings)

    def encode(self, input_path: Path, output_path: Path, tags: TrackTags) -> EncodingResult:
        start = time.monotonic()
        logger.info("Encoding %s to MP3 at %dk", input_path, self.settings.mp3_bitrate)

        cmd = self.builder.build_encode_command(input_path, output_path)
        run_tool(cmd, EncodeError, timeout=self.settings.transform_timeout)
        if not output_path.exists():
            raise EncodeError("MP3 output was not created", details={"output": str(output_path)})

        tags_written = write_tags(output_path, tags)
        audio_duration = self.probe_duration(output_path)

        duration_ms = int((time.monotonic() - start) * 1000)
        logger.info("MP3 encoding complete: %s (%d ms)", output_path, duration_ms)
        return EncodingResult(
            output_path=str(output_path),
            tags=tags,
            tags_written=tags_written,
            audio_duration=audio_duration,
            duration_ms=duration_ms,
        )

    def probe_duration(self, path: Path) -> float | None:
        """Duration of an encoded file in seconds, None if ffprobe cannot tell."""
        try:
            result = subprocess.run(
                self.builder.build_probe_command(path),
                capture_output=True,
                text=True,
                timeout=30,
            )
            probe = json.loads(result.stdout)
            return float(probe["format"]["duration"])
        except (
            OSError,
            subprocess.TimeoutExpired,
            json.JSONDecodeError,
            KeyError,
            ValueError,
        ) as e:
            logger.warning("Could not probe duration of %s: %s", path, e)
            return None
