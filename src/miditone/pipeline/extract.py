"""Payload normalization into a canonical MIDI byte buffer."""

import base64
import binascii
import logging
from collections.abc import Iterator

from miditone.models.errors import MalformedPayloadError
from miditone.models.record import BinaryPayload, MidiRecord, TextPayload

logger = logging.getLogger(__name__)

MIDI_MAGIC = b"MThd"


def has_midi_header(data: bytes) -> bool:
    return len(data) >= len(MIDI_MAGIC) and data[: len(MIDI_MAGIC)] == MIDI_MAGIC


def _text_candidates(text: str) -> Iterator[tuple[str, bytes]]:
    try:
        yield "latin1", text.encode("latin-1")
    except UnicodeEncodeError:
        pass
    stripped = "".join(text.split())
    try:
        yield "base64", base64.b64decode(stripped, validate=True)
    except (binascii.Error, ValueError):
        pass
    try:
        yield "hex", bytes.fromhex(stripped)
    except ValueError:
        pass


def candidates(payload: BinaryPayload | TextPayload) -> Iterator[tuple[str, bytes]]:
    """Decodings to try, in order: binary container, latin-1, base64, hex."""
    if isinstance(payload, BinaryPayload):
        yield "binary", payload.data
        # Binary containers sometimes hold the text encodings verbatim
        yield from _text_candidates(payload.data.decode("latin-1"))
    else:
        yield from _text_candidates(payload.text)


def extract_midi(record: MidiRecord) -> bytes:
    """Return the record's payload as bytes starting with the MIDI header."""
    if not record.hash:
        raise MalformedPayloadError("Document missing midifile.hash")
    if record.payload is None:
        raise MalformedPayloadError(
            "Document missing midifile.data", details={"hash": record.hash}
        )

    tried = []
    for encoding, data in candidates(record.payload):
        tried.append(encoding)
        if has_midi_header(data):
            logger.debug("Decoded %s payload as %s (%d bytes)", record.hash, encoding, len(data))
            return data

    raise MalformedPayloadError(
        f"Payload does not decode to a MIDI file (tried: {', '.join(tried) or 'nothing'})",
        details={"hash": record.hash, "tried": tried},
    )
