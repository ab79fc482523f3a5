"""Aggregate statistics for one batch run."""

import threading
import time

from pydantic import BaseModel, Field

from miditone.models.errors import FailureRecord


class StatsSummary(BaseModel):
    """Point-in-time snapshot of a batch run."""

    total: int = Field(..., ge=0)
    processed: int = Field(..., ge=0)
    successful: int = Field(..., ge=0)
    failed: int = Field(..., ge=0)
    progress: float = Field(..., ge=0, description="Percent of total processed")
    duration_ms: int = Field(..., ge=0)
    rate: float = Field(..., ge=0, description="Records per second")
    failures: list[FailureRecord] = Field(default_factory=list)


class ProcessingStats:
    """Counters shared by all worker threads of a batch run."""

    def __init__(self, total: int = 0):
        self.total = total
        self.processed = 0
        self.successful = 0
        self.failed = 0
        self.start_time = time.monotonic()
        self.failures: list[FailureRecord] = []
        self._lock = threading.Lock()

    def record_success(self) -> int:
        with self._lock:
            self.processed += 1
            self.successful += 1
            return self.processed

    def record_failure(self, failure: FailureRecord) -> int:
        with self._lock:
            self.processed += 1
            self.failed += 1
            self.failures.append(failure)
            return self.processed

    @property
    def progress(self) -> float:
        if self.total <= 0:
            return 0.0
        return round(self.processed / self.total * 100, 2)

    @property
    def duration_ms(self) -> int:
        return int((time.monotonic() - self.start_time) * 1000)

    @property
    def rate(self) -> float:
        seconds = self.duration_ms / 1000
        return round(self.processed / seconds, 2) if seconds > 0 else 0.0

    def summary(self) -> StatsSummary:
        with self._lock:
            return StatsSummary(
                total=self.total,
                processed=self.processed,
                successful=self.successful,
                failed=self.failed,
                progress=self.progress,
                duration_ms=self.duration_ms,
                rate=self.rate,
                failures=list(self.failures),
            )
