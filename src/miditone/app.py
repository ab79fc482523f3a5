"""Application context and batch entry points."""

import logging
from typing import Any

from miditone.batch.processor import BatchOptions, BatchProcessor
from miditone.config import Settings, get_settings, validate_runtime
from miditone.models.errors import StoreError
from miditone.models.stats import StatsSummary
from miditone.pipeline.manager import PipelineManager
from miditone.processors.encoder import Mp3Encoder
from miditone.processors.loudness import LoudnessNormalizer
from miditone.processors.synth import FluidSynthRenderer
from miditone.storage.document_store import DocumentStore, MongoDocumentStore, build_query, mask_uri
from miditone.storage.temp_store import TempFileManager

logger = logging.getLogger(__name__)


class AppContext:
    """Owns the store handle, temp files and conversion stages for one process."""

    def __init__(
        self,
        settings: Settings | None = None,
        store: DocumentStore | None = None,
        pipeline: PipelineManager | None = None,
    ):
        self.settings = settings or get_settings()
        self.store = store or MongoDocumentStore(self.settings)
        self.temp_store = TempFileManager(self.settings.temp_dir)
        self.pipeline = pipeline or PipelineManager(
            store=self.store,
            temp_store=self.temp_store,
            renderer=FluidSynthRenderer(self.temp_store, self.settings),
            normalizer=LoudnessNormalizer(self.settings),
            encoder=Mp3Encoder(self.settings),
            settings=self.settings,
        )
        self._open = False

    def open(self) -> "AppContext":
        if not self._open:
            self.store.open()
            self._open = True
        return self

    def close(self) -> None:
        if self._open:
            self._open = False
            self.store.close()

    def __enter__(self) -> "AppContext":
        return self.open()

    def __exit__(self, *exc) -> None:
        self.close()

    def query(self, filter: dict | None = None) -> dict:
        return build_query(
            filter,
            enable_duplicate_check=self.settings.enable_duplicate_check,
            skip_failed=self.settings.skip_failed,
        )


def run_batch(
    context: AppContext,
    limit: int | None = None,
    filter: dict[str, Any] | None = None,
    concurrency: int | None = None,
) -> StatsSummary:
    """Process every matching record; the caller exits non-zero when summary.failed > 0."""
    options = BatchOptions.create(
        limit=limit,
        filter=filter or {},
        concurrency=concurrency or context.settings.concurrency,
    )
    processor = BatchProcessor(
        store=context.store,
        process_record=context.pipeline.process_with_retry,
        settings=context.settings,
    )
    with context.temp_store.session():
        return processor.run(options)


def dry_run(context: AppContext) -> dict[str, Any]:
    """Validate configuration and store reachability without opening a cursor."""
    validate_runtime(context.settings)
    if not context.store.ping():
        raise StoreError("Document store is not reachable")
    report = {
        "mongodb": mask_uri(context.settings.mongodb_uri),
        "soundfont": str(context.settings.soundfont_path),
        "output": str(context.settings.output_dir),
    }
    logger.info("Configuration validated: %s", report)
    return report


def count_candidates(context: AppContext, filter: dict[str, Any] | None = None) -> int:
    """Number of records a batch run with this filter would consider."""
    count = context.store.count_matching(context.query(filter))
    logger.info("Statistics: %d matching documents (filter=%s)", count, filter or {})
    return count
