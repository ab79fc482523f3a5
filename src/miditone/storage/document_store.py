"""Document store access: query building, record conversion and the MongoDB adapter."""

import logging
import re
from abc import ABC, abstractmethod
from collections.abc import Iterator, Mapping
from datetime import UTC, datetime
from typing import Any

from bson import Binary
from pymongo import MongoClient
from pymongo.errors import PyMongoError

from miditone.config import Settings, get_settings
from miditone.models.errors import StoreError
from miditone.models.pipeline import ProcessingStatus
from miditone.models.record import (
    BinaryPayload,
    MetadataSource,
    MidiRecord,
    TextPayload,
)

logger = logging.getLogger(__name__)

STATUS_ROOT = "midiToAudioProcessing"
STATUS_FIELD = f"{STATUS_ROOT}.status"
HASH_FIELD = "midifile.hash"


class DocumentStore(ABC):
    """Narrow interface the batch engine needs from the document store."""

    def open(self) -> None:
        """Acquire connections. No-op by default."""

    def close(self) -> None:
        """Release connections. No-op by default."""

    def ping(self) -> bool:
        return True

    @abstractmethod
    def count_matching(self, query: dict) -> int: ...

    @abstractmethod
    def stream_matching(self, query: dict, limit: int | None = None) -> Iterator[MidiRecord]:
        """Lazily yield records matching query; each record at most once."""
        ...

    @abstractmethod
    def update_status(self, key: str, status: ProcessingStatus, fields: dict | None = None) -> None:
        ...

    def __enter__(self) -> "DocumentStore":
        self.open()
        return self

    def __exit__(self, *exc) -> None:
        self.close()


def excluded_statuses(enable_duplicate_check: bool = True, skip_failed: bool = False) -> list[str]:
    """Statuses the cursor never yields.

    `processing` is never excluded: a record left behind by a crashed run
    is picked up again by the next one.
    """
    excluded = []
    if enable_duplicate_check:
        excluded.append(ProcessingStatus.COMPLETED.value)
    if skip_failed:
        excluded.append(ProcessingStatus.FAILED.value)
    return excluded


def build_query(
    filter: Mapping[str, Any] | None = None,
    enable_duplicate_check: bool = True,
    skip_failed: bool = False,
) -> dict:
    """Append the status exclusion clause to a caller-supplied filter."""
    query = dict(filter or {})
    excluded = excluded_statuses(enable_duplicate_check, skip_failed)
    if not excluded:
        return query

    clause = {STATUS_FIELD: {"$nin": excluded}}
    if STATUS_FIELD in query:
        return {"$and": [query, clause]}
    query.update(clause)
    return query


def mask_uri(uri: str) -> str:
    """Hide credentials in a connection string."""
    return re.sub(r"//([^:/@]+):([^@]+)@", "//***:***@", uri)


def _payload_from_value(value: Any) -> BinaryPayload | TextPayload | None:
    if value is None:
        return None
    if isinstance(value, str):
        return TextPayload(text=value)
    if isinstance(value, Binary | bytes | bytearray | memoryview):
        return BinaryPayload(data=bytes(value))
    if isinstance(value, list) and all(isinstance(b, int) for b in value):
        return BinaryPayload(data=bytes(value))
    if isinstance(value, Mapping):
        # Node Buffer export: {"type": "Buffer", "data": [...]}
        if value.get("type") == "Buffer" and isinstance(value.get("data"), list):
            return BinaryPayload(data=bytes(value["data"]))
        # Extended JSON: {"$binary": {"base64": "...", "subType": "00"}}
        if "$binary" in value:
            inner = value["$binary"]
            encoded = inner.get("base64") if isinstance(inner, Mapping) else inner
            return TextPayload(text=encoded) if isinstance(encoded, str) else None
        if "buffer" in value:
            return _payload_from_value(value["buffer"])
    raise ValueError(f"Unsupported payload type: {type(value).__name__}")


def _mapping(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


def _source_from(value: Any) -> MetadataSource | None:
    if not isinstance(value, Mapping):
        return None
    tags = []
    raw_tags = value.get("tags")
    for tag in raw_tags if isinstance(raw_tags, list) else []:
        name = tag.get("name") if isinstance(tag, Mapping) else tag
        if name:
            tags.append(str(name))
    return MetadataSource(
        artist=_text(value.get("artist")),
        title=_text(value.get("title")),
        album=_text(value.get("album")),
        release=_text(value.get("release")),
        first_release_date=_text(value.get("firstReleaseDate")),
        tags=tags,
    )


def _text(value: Any) -> str | None:
    if value is None:
        return None
    return str(value)


def record_from_document(doc: Mapping[str, Any]) -> MidiRecord:
    """Convert a raw store document into a MidiRecord.

    Malformed fields become empty values so the record still reaches the
    pipeline and fails there on its own.
    """
    midifile = _mapping(doc.get("midifile"))
    musicbrainz = _mapping(doc.get("musicbrainz"))

    try:
        payload = _payload_from_value(midifile.get("data"))
    except (TypeError, ValueError) as e:
        logger.warning("Record %s: %s", midifile.get("hash", "unknown"), e)
        payload = None

    return MidiRecord(
        record_id=str(doc.get("_id", "")),
        hash=_text(midifile.get("hash")) or None,
        file_name=_text(midifile.get("fileName")),
        payload=payload,
        music_llm=_source_from(doc.get("musicLLM")),
        musicbrainz_top=_source_from(musicbrainz.get("top")),
        musicbrainz_oldest=_source_from(musicbrainz.get("oldest")),
        redacted=_source_from(doc.get("redacted")),
    )


def status_update(status: ProcessingStatus, fields: Mapping[str, Any] | None = None) -> dict:
    """Build the `$set` document for a status transition."""
    update = {
        STATUS_FIELD: status.value,
        f"{STATUS_ROOT}.lastUpdated": datetime.now(UTC),
    }
    for key, value in (fields or {}).items():
        update[f"{STATUS_ROOT}.{key}"] = value
    return {"$set": update}


class MongoDocumentStore(DocumentStore):
    """MongoDB-backed document store."""

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()
        self._client: MongoClient | None = None
        self._collection = None

    def open(self) -> None:
        if self._client is not None:
            return
        logger.info("Connecting to MongoDB at %s", mask_uri(self.settings.mongodb_uri))
        try:
            self._client = MongoClient(
                self.settings.mongodb_uri,
                maxPoolSize=self.settings.mongodb_max_pool_size,
                minPoolSize=self.settings.mongodb_min_pool_size,
                serverSelectionTimeoutMS=self.settings.mongodb_server_selection_timeout_ms,
            )
            db = self._client[self.settings.mongodb_database]
            self._collection = db[self.settings.mongodb_collection]
        except PyMongoError as e:
            self._client = None
            raise StoreError(f"Failed to connect to MongoDB: {e}") from e
        logger.info(
            "Using collection %s.%s",
            self.settings.mongodb_database,
            self.settings.mongodb_collection,
        )

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None
            self._collection = None
            logger.info("Disconnected from MongoDB")

    @property
    def collection(self):
        if self._collection is None:
            raise StoreError("Document store is not open")
        return self._collection

    def ping(self) -> bool:
        try:
            self.collection.database.client.admin.command("ping")
            return True
        except PyMongoError as e:
            logger.error("MongoDB health check failed: %s", e)
            return False

    def count_matching(self, query: dict) -> int:
        try:
            count = self.collection.count_documents(query)
        except PyMongoError as e:
            raise StoreError(f"Count failed: {e}", details={"query": str(query)}) from e
        logger.debug("Counted %d MIDI documents", count)
        return count

    def stream_matching(self, query: dict, limit: int | None = None) -> Iterator[MidiRecord]:
        try:
            cursor = self.collection.find(query)
            if limit:
                cursor = cursor.limit(limit)
            with cursor:
                for doc in cursor:
                    yield record_from_document(doc)
        except PyMongoError as e:
            raise StoreError(f"Cursor failed: {e}", details={"query": str(query)}) from e

    def update_status(self, key: str, status: ProcessingStatus, fields: dict | None = None) -> None:
        try:
            result = self.collection.update_one({HASH_FIELD: key}, status_update(status, fields))
        except PyMongoError as e:
            raise StoreError(f"Status update failed for {key}: {e}") from e
        logger.debug("Updated status of %s to %s (matched %d)", key, status, result.matched_count)
