"""Batch orchestration: stream records from the store through a bounded worker pool."""

import logging
import threading
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from miditone.config import Settings, get_settings
from miditone.models.errors import (
    ConfigurationError,
    FailureRecord,
    MiditoneError,
    StoreError,
)
from miditone.models.pipeline import PipelineResult
from miditone.models.record import MidiRecord
from miditone.models.stats import ProcessingStats, StatsSummary
from miditone.storage.document_store import DocumentStore, build_query

logger = logging.getLogger(__name__)

MAX_CONCURRENCY = 20


class BatchOptions(BaseModel):
    """Options for one batch run."""

    limit: int | None = Field(default=None, ge=1, description="Maximum records to pull")
    filter: dict[str, Any] = Field(default_factory=dict, description="Store query, passed through")
    concurrency: int = Field(default=4, ge=1, le=MAX_CONCURRENCY)

    @classmethod
    def create(cls, **kwargs: Any) -> "BatchOptions":
        """Validate options, reporting problems as ConfigurationError."""
        try:
            return cls(**kwargs)
        except ValidationError as e:
            problems = [
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
            ]
            raise ConfigurationError(
                "Invalid batch options:\n" + "\n".join(problems), details={"errors": problems}
            ) from e


class BatchProcessor:
    """Consumes a store cursor, running at most `concurrency` pipelines at once.

    Admission blocks on a semaphore before the next record is pulled, so the
    number of records held by workers never exceeds the concurrency limit.
    Per-record failures are counted; anything else aborts the run.
    """

    def __init__(
        self,
        store: DocumentStore,
        process_record: Callable[[MidiRecord], PipelineResult],
        settings: Settings | None = None,
    ):
        self.settings = settings or get_settings()
        self.store = store
        self.process_record = process_record
        self._fatal: list[BaseException] = []
        self._fatal_lock = threading.Lock()

    def run(self, options: BatchOptions) -> StatsSummary:
        pool_size = self.settings.mongodb_max_pool_size
        if options.concurrency > pool_size:
            raise ConfigurationError(
                f"Concurrency {options.concurrency} exceeds store pool size {pool_size}",
                details={"concurrency": options.concurrency, "pool_size": pool_size},
            )
        query = build_query(
            options.filter,
            enable_duplicate_check=self.settings.enable_duplicate_check,
            skip_failed=self.settings.skip_failed,
        )

        stats = ProcessingStats(total=options.limit or self.store.count_matching(query))
        logger.info(
            "Starting batch processing: total=%d concurrency=%d filter=%s",
            stats.total,
            options.concurrency,
            options.filter,
        )
        self._fatal = []

        slots = threading.BoundedSemaphore(options.concurrency)
        in_flight: set[Future] = set()

        def finished(future: Future) -> None:
            in_flight.discard(future)
            slots.release()

        records = iter(self.store.stream_matching(query, limit=options.limit))
        pool = ThreadPoolExecutor(
            max_workers=options.concurrency, thread_name_prefix="miditone-worker"
        )
        try:
            while True:
                # Wait for a free slot before pulling the next record
                slots.acquire()
                record = None if self._fatal else next(records, None)
                if record is None:
                    slots.release()
                    break
                future = pool.submit(self._process_one, record, stats)
                in_flight.add(future)
                future.add_done_callback(finished)
            pool.shutdown(wait=True)
        except KeyboardInterrupt:
            pool.shutdown(wait=False, cancel_futures=True)
            logger.warning(
                "Interrupted: abandoning %d in-flight record(s); "
                "their temporary files will be removed",
                len(in_flight),
            )
            raise
        except Exception:
            pool.shutdown(wait=True)
            raise

        if self._fatal:
            logger.error("Batch processing aborted: %s", self._fatal[0])
            raise self._fatal[0]

        summary = stats.summary()
        logger.info(
            "Batch processing completed: %d/%d successful, %d failed in %d ms (%.2f docs/sec)",
            summary.successful,
            summary.processed,
            summary.failed,
            summary.duration_ms,
            summary.rate,
        )
        for failure in summary.failures:
            logger.warning("Failed: %s: %s", failure.hash, failure.error)
        return summary

    def _process_one(self, record: MidiRecord, stats: ProcessingStats) -> None:
        try:
            result = self.process_record(record)
        except MiditoneError as e:
            if not isinstance(e, ConfigurationError | StoreError):
                failure = FailureRecord.from_exception(record.display_hash, e)
                processed = stats.record_failure(failure)
                logger.error(
                    "Document %s failed (%.2f%%): %s", record.display_hash, stats.progress, e
                )
                self._maybe_report(stats, processed)
                return
            self._abort(e)
            return
        except Exception as e:
            self._abort(e)
            return

        processed = stats.record_success()
        logger.info(
            "Document %s processed successfully (%d/%d, %.2f%%)",
            result.hash,
            processed,
            stats.total,
            stats.progress,
        )
        self._maybe_report(stats, processed)

    def _abort(self, error: BaseException) -> None:
        with self._fatal_lock:
            self._fatal.append(error)

    def _maybe_report(self, stats: ProcessingStats, processed: int) -> None:
        if processed % self.settings.progress_interval == 0:
            summary = stats.summary()
            logger.info(
                "Progress: %d/%d (%.2f%%), %d successful, %d failed, %.2f docs/sec",
                summary.processed,
                summary.total,
                summary.progress,
                summary.successful,
                summary.failed,
                summary.rate,
            )
