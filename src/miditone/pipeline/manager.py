"""Pipeline manager: extract → render → normalize → encode → commit for one record."""

import logging
import time
from collections.abc import Callable
from datetime import UTC, datetime
from typing import TypeVar

from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception,
    stop_after_attempt,
    wait_incrementing,
)

from miditone import metadata
from miditone.config import Settings, get_settings
from miditone.filesystem.paths import OutputPathResolver
from miditone.filesystem.writer import AtomicWriter
from miditone.models.errors import (
    ConfigurationError,
    MiditoneError,
    ProcessingError,
    StoreError,
)
from miditone.models.pipeline import (
    PipelineResult,
    PipelineStage,
    PipelineState,
    ProcessingStatus,
)
from miditone.models.record import MidiRecord
from miditone.models.tags import TrackTags
from miditone.pipeline.extract import extract_midi
from miditone.processors.base import Encoder, Normalizer, Renderer
from miditone.storage.document_store import DocumentStore
from miditone.storage.temp_store import TempFileManager

logger = logging.getLogger(__name__)

T = TypeVar("T")


def is_retryable(exc: BaseException) -> bool:
    """Per-record failures are retried; store and configuration failures abort the batch."""
    return isinstance(exc, MiditoneError) and not isinstance(exc, StoreError | ConfigurationError)


class PipelineManager:
    """Runs the per-record conversion state machine with bounded retry."""

    def __init__(
        self,
        store: DocumentStore,
        temp_store: TempFileManager,
        renderer: Renderer,
        normalizer: Normalizer,
        encoder: Encoder,
        settings: Settings | None = None,
        writer: AtomicWriter | None = None,
        resolver: OutputPathResolver | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.settings = settings or get_settings()
        self.store = store
        self.temp_store = temp_store
        self.renderer = renderer
        self.normalizer = normalizer
        self.encoder = encoder
        self.writer = writer or AtomicWriter()
        self.resolver = resolver or OutputPathResolver(self.settings)
        self._sleep = sleep

    def process(self, record: MidiRecord, state: PipelineState | None = None) -> PipelineResult:
        """Run a single pipeline attempt.

        Strict ordering: extract → render → normalize → encode → commit.
        Temp files of the attempt are released whatever the outcome.
        """
        state = state or PipelineState(hash=record.display_hash, started_at=datetime.now(UTC))
        start = time.monotonic()

        midi = self._run_stage(state, PipelineStage.EXTRACTING, lambda: extract_midi(record))
        key = record.hash

        logger.info(
            "Starting pipeline for %s (%d bytes, attempt %d)", key, len(midi), state.attempt
        )
        self.store.update_status(
            key,
            ProcessingStatus.PROCESSING,
            {"startedAt": datetime.now(UTC), "attempt": state.attempt},
        )

        with self.temp_store.attempt() as scratch:
            # Stage 1: Render
            logger.info("Step 1/4: Rendering MIDI to WAV for %s", key)
            wav_path = scratch.allocate(".wav")
            self._run_stage(
                state, PipelineStage.RENDERING, lambda: self.renderer.render(midi, wav_path)
            )

            # Stage 2: Normalize
            logger.info("Step 2/4: Normalizing audio for %s", key)
            normalized_path = scratch.allocate("_normalized.wav")
            loudness = self._run_stage(
                state,
                PipelineStage.NORMALIZING,
                lambda: self.normalizer.normalize(
                    wav_path, normalized_path, self.settings.target_lufs
                ),
            )

            # Stage 3: Encode + tag
            logger.info("Step 3/4: Encoding to MP3 for %s", key)
            mp3_path = scratch.allocate(f".{self.settings.output_extension}")
            encoding = self._run_stage(
                state,
                PipelineStage.ENCODING,
                lambda: self.encoder.encode(normalized_path, mp3_path, self.resolve_tags(record)),
            )

            # Stage 4: Commit
            logger.info("Step 4/4: Writing %s to output directory", key)
            target, alternate = self.resolver.candidates(record)
            commit = self._run_stage(
                state,
                PipelineStage.COMMITTING,
                lambda: self.writer.commit(mp3_path, target, alternate),
            )

        result = PipelineResult(
            hash=key,
            output_path=commit.path,
            processing_duration_ms=int((time.monotonic() - start) * 1000),
            audio_duration=encoding.audio_duration,
            original_lufs=loudness.original_lufs,
            target_lufs=loudness.target_lufs,
            file_size_bytes=commit.size,
            attempts=state.attempt,
            tags=encoding.tags,
        )
        self.store.update_status(
            key,
            ProcessingStatus.COMPLETED,
            {
                "completedAt": datetime.now(UTC),
                "outputPath": result.output_path,
                "originalLUFS": result.original_lufs,
                "targetLUFS": result.target_lufs,
                "processingDuration": result.processing_duration_ms,
                "audioDuration": result.audio_duration,
                "attempts": result.attempts,
                "metadata": result.tags.snapshot(),
            },
        )
        self._update_state(state, PipelineStage.COMPLETED)
        state.completed_at = datetime.now(UTC)
        logger.info(
            "Pipeline completed for %s: %s (%d ms)",
            key,
            result.output_path,
            result.processing_duration_ms,
        )
        return result

    def process_with_retry(self, record: MidiRecord) -> PipelineResult:
        """Run process() up to max_retries + 1 times with incremental backoff.

        `failed` is persisted only after the last attempt; the last error is re-raised.
        """
        base = self.settings.retry_base_delay
        state = PipelineState(hash=record.display_hash, started_at=datetime.now(UTC))

        def before_attempt(retry_state: RetryCallState) -> None:
            state.attempt = retry_state.attempt_number
            state.error = None

        def log_retry(retry_state: RetryCallState) -> None:
            error = retry_state.outcome.exception()
            logger.warning(
                "Retrying %s after error (attempt %d/%d, waiting %.1fs): %s",
                record.display_hash,
                retry_state.attempt_number,
                self.settings.max_retries + 1,
                retry_state.next_action.sleep,
                error,
            )

        retrying = Retrying(
            stop=stop_after_attempt(self.settings.max_retries + 1),
            wait=wait_incrementing(start=base, increment=base),
            retry=retry_if_exception(is_retryable),
            before=before_attempt,
            before_sleep=log_retry,
            sleep=self._sleep,
            reraise=True,
        )
        try:
            return retrying(self.process, record, state)
        except (StoreError, ConfigurationError):
            raise
        except MiditoneError as e:
            self._mark_failed(record, state, e)
            raise

    def resolve_tags(self, record: MidiRecord) -> TrackTags:
        return metadata.resolve_tags(
            record,
            database=self.settings.mongodb_database,
            collection=self.settings.mongodb_collection,
            embed_full_metadata=self.settings.embed_full_metadata,
        )

    def _run_stage(self, state: PipelineState, stage: PipelineStage, fn: Callable[[], T]) -> T:
        self._update_state(state, stage)
        try:
            return fn()
        except MiditoneError:
            raise
        except Exception as e:
            raise ProcessingError(f"{stage.value} failed: {e}", component=stage.value) from e

    def _mark_failed(self, record: MidiRecord, state: PipelineState, error: MiditoneError) -> None:
        self._update_state(state, PipelineStage.FAILED, error=str(error))
        logger.error(
            "Pipeline failed for %s after %d attempt(s): %s",
            record.display_hash,
            state.attempt,
            error,
        )
        if not record.hash:
            return
        self.store.update_status(
            record.hash,
            ProcessingStatus.FAILED,
            {
                "failedAt": datetime.now(UTC),
                "error": str(error),
                "errorType": type(error).__name__,
                "stage": error.component,
                "attempts": state.attempt,
            },
        )

    def _update_state(
        self, state: PipelineState, stage: PipelineStage, error: str | None = None
    ) -> None:
        state.stage = stage
        state.updated_at = datetime.now(UTC)
        if stage == PipelineStage.FAILED:
            state.error = error
