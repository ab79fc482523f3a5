"""Hypothesis strategies for property-based testing."""

import struct

from hypothesis import strategies as st

from miditone.models.record import MetadataSource, MidiRecord


@st.composite
def generate_midi_bytes(draw):
    """Generate a buffer that starts with a MIDI header chunk."""
    fmt = draw(st.sampled_from([0, 1]))
    tracks = draw(st.integers(min_value=1, max_value=4))
    division = draw(st.integers(min_value=24, max_value=960))
    body = draw(st.binary(min_size=0, max_size=512))
    return b"MThd" + struct.pack(">IHHH", 6, fmt, tracks, division) + body


# Free-form text as it shows up in metadata fields, control characters included
metadata_text = st.text(
    alphabet=st.characters(blacklist_categories=("Cs",)),
    min_size=0,
    max_size=300,
)


@st.composite
def generate_metadata_source(draw):
    """Generate a metadata source with any subset of fields set."""
    optional = st.one_of(st.none(), metadata_text)
    return MetadataSource(
        artist=draw(optional),
        title=draw(optional),
        album=draw(optional),
        release=draw(optional),
    )


@st.composite
def generate_record(draw):
    """Generate a record with arbitrary metadata and a hex hash."""
    key = draw(st.text(alphabet="0123456789abcdef", min_size=8, max_size=64))
    source = st.one_of(st.none(), generate_metadata_source())
    return MidiRecord(
        record_id=draw(st.text(alphabet="0123456789abcdef", min_size=24, max_size=24)),
        hash=key,
        file_name=draw(st.one_of(st.none(), metadata_text)),
        music_llm=draw(source),
        musicbrainz_top=draw(source),
        musicbrainz_oldest=draw(source),
        redacted=draw(source),
    )
