"""MIDI record and metadata source models."""

from typing import Annotated, Literal

from pydantic import BaseModel, Field


class BinaryPayload(BaseModel):
    """Payload stored as bytes (BSON binary, buffer export, byte array)."""

    kind: Literal["binary"] = "binary"
    data: bytes


class TextPayload(BaseModel):
    """Payload stored as a string (raw latin-1 bytes, base64 or hex)."""

    kind: Literal["text"] = "text"
    text: str


Payload = Annotated[BinaryPayload | TextPayload, Field(discriminator="kind")]


class MetadataSource(BaseModel):
    """One set of descriptive attributes attached to a record."""

    artist: str | None = None
    title: str | None = None
    album: str | None = None
    release: str | None = None
    first_release_date: str | None = None
    tags: list[str] = Field(default_factory=list)

    def snapshot(self) -> dict:
        return self.model_dump(exclude_none=True, exclude_defaults=True)


class MidiRecord(BaseModel):
    """A MIDI document pulled from the store."""

    record_id: str = Field(..., description="Store identifier (stringified ObjectId)")
    hash: str | None = Field(default=None, description="MIDI content hash, natural key")
    file_name: str | None = None
    payload: Payload | None = None

    music_llm: MetadataSource | None = None
    musicbrainz_top: MetadataSource | None = None
    musicbrainz_oldest: MetadataSource | None = None
    redacted: MetadataSource | None = None

    @property
    def display_hash(self) -> str:
        return self.hash or "unknown"
