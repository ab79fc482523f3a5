"""Output path derivation, sanitization and collision handling."""

import logging
import re
from pathlib import Path

from miditone import metadata
from miditone.config import Settings, get_settings
from miditone.models.record import MidiRecord

logger = logging.getLogger(__name__)

PLACEHOLDER = "Unknown"

_ILLEGAL = re.compile(r'[<>:"/\\|?*\x00-\x1f]')
_EDGES = re.compile(r"^[\s.]+|[\s.]+$")
_WHITESPACE = re.compile(r"\s+")


def sanitize_component(value: str | None, max_length: int = 200) -> str:
    """Make a string safe to use as a single path segment."""
    if not value or not isinstance(value, str):
        return PLACEHOLDER
    cleaned = _ILLEGAL.sub("", value)
    cleaned = _WHITESPACE.sub(" ", cleaned)
    cleaned = _EDGES.sub("", cleaned)
    # Truncation can expose a trailing space or dot again
    cleaned = _EDGES.sub("", cleaned[:max_length])
    return cleaned or PLACEHOLDER


class OutputPathResolver:
    """Maps a record to `<output_dir>/Artist/Album/Title.<ext>`."""

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()

    @property
    def extension(self) -> str:
        return f".{self.settings.output_extension}"

    def resolve(self, record: MidiRecord) -> Path:
        limit = self.settings.max_component_length
        artist = sanitize_component(metadata.path_artist(record), limit)
        album = sanitize_component(metadata.path_album(record), limit)
        title = sanitize_component(metadata.path_title(record), limit)

        path = Path(self.settings.output_dir) / artist / album / f"{title}{self.extension}"
        logger.debug("Resolved output path %s", path)
        return path

    def disambiguate(self, path: Path, key: str) -> Path:
        """Alternate path carrying a short prefix of the record's hash.

        A pure function of (path, key): repeated calls give the same result.
        """
        short = key[: self.settings.hash_suffix_length]
        return path.with_name(f"{path.stem}_{short}{path.suffix}")

    def candidates(self, record: MidiRecord) -> tuple[Path, Path | None]:
        """Primary output path and the alternate used if the primary is taken."""
        path = self.resolve(record)
        if not record.hash:
            return path, None
        return path, self.disambiguate(path, record.hash)
