"""Metadata resolution from a record's alternative attribute sets.

Each field is resolved by walking a fixed precedence list of sources; the
first non-empty value wins and a placeholder is used when none is set.

Output path precedence (artist/album/title):
    artist: musicLLM, musicbrainz.top, redacted, musicbrainz.oldest
    album:  musicLLM.album, redacted.album, redacted.release
    title:  musicLLM, musicbrainz.top, redacted, musicbrainz.oldest, file name

Tag precedence (artist/title/album):
    redacted, musicLLM, musicbrainz.top, musicbrainz.oldest (title: then file name)
"""

import json
import re
from datetime import UTC, datetime

from miditone.models.record import MetadataSource, MidiRecord
from miditone.models.tags import TrackTags, UserText

UNKNOWN_ARTIST = "Unknown Artist"
UNKNOWN_ALBUM = "Unknown Album"
UNKNOWN_TITLE = "Unknown Title"


def _first(*values: str | None) -> str | None:
    for value in values:
        if value and value.strip():
            return value
    return None


def _field(source: MetadataSource | None, name: str) -> str | None:
    if source is None:
        return None
    return getattr(source, name)


def file_title(record: MidiRecord) -> str | None:
    """Title derived from the stored file name, without the .mid suffix."""
    if not record.file_name:
        return None
    return re.sub(r"\.mid$", "", record.file_name, flags=re.IGNORECASE) or None


def path_artist(record: MidiRecord) -> str:
    return (
        _first(
            _field(record.music_llm, "artist"),
            _field(record.musicbrainz_top, "artist"),
            _field(record.redacted, "artist"),
            _field(record.musicbrainz_oldest, "artist"),
        )
        or UNKNOWN_ARTIST
    )


def path_album(record: MidiRecord) -> str:
    return (
        _first(
            _field(record.music_llm, "album"),
            _field(record.redacted, "album"),
            _field(record.redacted, "release"),
        )
        or UNKNOWN_ALBUM
    )


def path_title(record: MidiRecord) -> str:
    return (
        _first(
            _field(record.music_llm, "title"),
            _field(record.musicbrainz_top, "title"),
            _field(record.redacted, "title"),
            _field(record.musicbrainz_oldest, "title"),
            file_title(record),
        )
        or UNKNOWN_TITLE
    )


def _tag_sources(record: MidiRecord) -> list[MetadataSource | None]:
    return [record.redacted, record.music_llm, record.musicbrainz_top, record.musicbrainz_oldest]


def release_year(record: MidiRecord) -> str | None:
    date = _first(
        _field(record.musicbrainz_top, "first_release_date"),
        _field(record.musicbrainz_oldest, "first_release_date"),
    )
    if not date:
        return None
    match = re.search(r"(\d{4})", date)
    return match.group(1) if match else None


def genre(record: MidiRecord) -> str | None:
    for source in (record.redacted, record.musicbrainz_top, record.musicbrainz_oldest):
        if source is not None and source.tags:
            return source.tags[0]
    return None


def resolve_tags(
    record: MidiRecord,
    database: str | None = None,
    collection: str | None = None,
    embed_full_metadata: bool = True,
) -> TrackTags:
    """Build the ID3 tag set for a record."""
    sources = _tag_sources(record)
    artist = _first(*(_field(s, "artist") for s in sources)) or UNKNOWN_ARTIST
    title = _first(*(_field(s, "title") for s in sources), file_title(record)) or UNKNOWN_TITLE
    album = _first(*(_field(s, "album") for s in sources)) or UNKNOWN_ALBUM

    reference = []
    if record.hash:
        reference.append(f"MIDI Hash: {record.hash}")
    if record.record_id:
        reference.append(f"MongoDB ID: {record.record_id}")
    if database and collection:
        reference.append(f"DB: {database}/{collection}")

    user_text = []
    if record.record_id:
        user_text.append(UserText(description="MONGODB_ID", value=record.record_id))
    if record.hash:
        user_text.append(UserText(description="MIDI_HASH", value=record.hash))
    if embed_full_metadata:
        user_text.append(
            UserText(description="MONGODB_METADATA", value=json.dumps(metadata_snapshot(record)))
        )

    return TrackTags(
        artist=artist,
        title=title,
        album=album,
        year=release_year(record),
        genre=genre(record),
        comment=" | ".join(reference) or None,
        user_text=user_text,
    )


def metadata_snapshot(record: MidiRecord) -> dict:
    """Source metadata embedded as JSON alongside the audio."""
    snapshot = {
        "mongoId": record.record_id or None,
        "midiHash": record.hash,
        "fileName": record.file_name,
        "musicLLM": record.music_llm.snapshot() if record.music_llm else None,
        "musicbrainz": {
            "top": record.musicbrainz_top.snapshot() if record.musicbrainz_top else None,
        },
        "redacted": record.redacted.snapshot() if record.redacted else None,
        "processedAt": datetime.now(UTC).isoformat(),
    }
    return snapshot
