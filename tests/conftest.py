"""Shared test fixtures, fakes for the store and the conversion stages."""

import base64
import struct
import threading
import time
from pathlib import Path

import pytest

from miditone.config import Settings
from miditone.models.errors import RenderError, SilentAudioError
from miditone.models.pipeline import ProcessingStatus
from miditone.models.record import MetadataSource, MidiRecord, TextPayload
from miditone.models.results import EncodingResult, NormalizationResult, RenderResult
from miditone.processors.base import Encoder, Normalizer, Renderer
from miditone.storage.document_store import DocumentStore, STATUS_FIELD
from miditone.storage.temp_store import TempFileManager


def make_midi_bytes(n_events: int = 4) -> bytes:
    """A small but well-formed type-0 MIDI file."""
    header = b"MThd" + struct.pack(">IHHH", 6, 0, 1, 96)
    events = b""
    for i in range(n_events):
        note = 60 + i
        events += bytes([0x00, 0x90, note, 0x64, 0x60, 0x80, note, 0x40])
    events += b"\x00\xff\x2f\x00"
    track = b"MTrk" + struct.pack(">I", len(events)) + events
    return header + track


def make_record(
    hash: str = "abcdef0123456789",
    payload=None,
    artist: str | None = "Test Artist",
    album: str | None = "Test Album",
    title: str | None = "Test Title",
    **kwargs,
) -> MidiRecord:
    if payload is None:
        payload = TextPayload(text=base64.b64encode(make_midi_bytes()).decode())
    return MidiRecord(
        record_id=kwargs.pop("record_id", f"id-{hash}"),
        hash=hash,
        payload=payload,
        music_llm=MetadataSource(artist=artist, album=album, title=title),
        **kwargs,
    )


class FakeDocumentStore(DocumentStore):
    """In-memory store recording every status update and cursor pull."""

    def __init__(self, records: list[MidiRecord] | None = None, statuses: dict | None = None):
        self.records = list(records or [])
        self.statuses: dict[str, str] = dict(statuses or {})
        self.updates: list[tuple[str, ProcessingStatus, dict]] = []
        self.pulled: list[str] = []
        self.queries: list[dict] = []
        self.opened = False
        self.closed = False
        self.reachable = True
        self._lock = threading.Lock()

    def open(self) -> None:
        self.opened = True

    def close(self) -> None:
        self.closed = True

    def ping(self) -> bool:
        return self.reachable

    def _matches(self, record: MidiRecord, query: dict) -> bool:
        clause = query.get(STATUS_FIELD)
        if clause is None and "$and" in query:
            clause = next((c[STATUS_FIELD] for c in query["$and"] if STATUS_FIELD in c), None)
        if not clause:
            return True
        status = self.statuses.get(record.hash or "", ProcessingStatus.UNSET.value)
        return status not in clause.get("$nin", [])

    def count_matching(self, query: dict) -> int:
        self.queries.append(query)
        return sum(1 for r in self.records if self._matches(r, query))

    def stream_matching(self, query: dict, limit: int | None = None):
        self.queries.append(query)
        yielded = 0
        for record in self.records:
            if limit is not None and yielded >= limit:
                return
            if not self._matches(record, query):
                continue
            self.pulled.append(record.display_hash)
            yielded += 1
            yield record

    def update_status(self, key: str, status: ProcessingStatus, fields: dict | None = None) -> None:
        with self._lock:
            self.updates.append((key, status, dict(fields or {})))
            self.statuses[key] = status.value

    def statuses_for(self, key: str) -> list[ProcessingStatus]:
        return [status for k, status, _ in self.updates if k == key]

    def last_fields(self, key: str) -> dict:
        return next(fields for k, _, fields in reversed(self.updates) if k == key)


class ConcurrencyProbe:
    """Tracks how many stage executions overlap."""

    def __init__(self):
        self.active = 0
        self.max_active = 0
        self._lock = threading.Lock()

    def __enter__(self):
        with self._lock:
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        return self

    def __exit__(self, *exc):
        with self._lock:
            self.active -= 1


class FakeRenderer(Renderer):
    def __init__(self, fail_times: int = 0, delay: float = 0.0):
        self.fail_times = fail_times
        self.delay = delay
        self.probe = ConcurrencyProbe()
        self.calls = 0
        self.outputs: list[Path] = []
        self._lock = threading.Lock()

    def render(self, midi: bytes, output_path: Path) -> RenderResult:
        with self._lock:
            self.calls += 1
            call = self.calls
            self.outputs.append(output_path)
        with self.probe:
            time.sleep(self.delay)
        if call <= self.fail_times:
            output_path.write_bytes(b"partial")
            raise RenderError("FluidSynth failed with code 1: boom")
        output_path.write_bytes(b"RIFF" + midi)
        return RenderResult(output_path=str(output_path))


class FakeNormalizer(Normalizer):
    def __init__(self, silent: bool = False, original_lufs: float = -23.5):
        self.silent = silent
        self.original_lufs = original_lufs
        self.calls = 0

    def normalize(
        self, input_path: Path, output_path: Path, target_lufs: float
    ) -> NormalizationResult:
        self.calls += 1
        if self.silent:
            output_path.write_bytes(b"")
            raise SilentAudioError("Audio is silent (Input Integrated: -inf)")
        output_path.write_bytes(input_path.read_bytes())
        return NormalizationResult(
            output_path=str(output_path),
            original_lufs=self.original_lufs,
            target_lufs=target_lufs,
        )


class FakeEncoder(Encoder):
    def __init__(self):
        self.calls = 0
        self.tags = []

    def encode(self, input_path: Path, output_path: Path, tags) -> EncodingResult:
        self.calls += 1
        self.tags.append(tags)
        output_path.write_bytes(b"ID3" + input_path.read_bytes())
        return EncodingResult(output_path=str(output_path), tags=tags, audio_duration=1.5)


@pytest.fixture
def midi_bytes():
    return make_midi_bytes()


@pytest.fixture
def settings(tmp_path):
    """Settings pointing every directory into tmp_path, with no retry delay."""
    soundfont = tmp_path / "soundfont.sf2"
    soundfont.write_bytes(b"sfbk")
    return Settings(
        _env_file=None,
        soundfont_path=soundfont,
        output_dir=tmp_path / "output",
        temp_dir=tmp_path / "temp",
        retry_base_delay=0.0,
        progress_interval=2,
    )


@pytest.fixture
def temp_store(settings):
    return TempFileManager(settings.temp_dir)


@pytest.fixture
def sample_record():
    return make_record()
