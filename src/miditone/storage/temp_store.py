"""Temporary file lifecycle management."""

import logging
import secrets
import shutil
import signal
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from miditone.config import get_settings

logger = logging.getLogger(__name__)


class TempFileManager:
    """Allocates uniquely named scratch files and tracks them until released.

    One instance is shared by every worker of a batch run; the live set is
    guarded by a lock.
    """

    def __init__(self, base_dir: Path | None = None):
        self.base_dir = Path(base_dir or get_settings().temp_dir)
        self._live: set[Path] = set()
        self._lock = threading.Lock()

    def allocate(self, extension: str) -> Path:
        """Return a fresh path in the temp directory and register it."""
        self.base_dir.mkdir(parents=True, exist_ok=True)
        path = self.base_dir / f"{secrets.token_hex(16)}{extension}"
        with self._lock:
            self._live.add(path)
        return path

    def release(self, path: Path) -> None:
        """Delete a temp file if present. Never raises."""
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning("Failed to delete temp file %s: %s", path, e)
            return
        with self._lock:
            self._live.discard(path)

    def release_all(self) -> int:
        """Delete every registered temp file; returns how many were removed."""
        with self._lock:
            paths = list(self._live)
        deleted = 0
        for path in paths:
            existed = path.exists()
            self.release(path)
            if existed and not path.exists():
                deleted += 1
        logger.info("Cleaned up %d temporary files", deleted)
        return deleted

    @property
    def live(self) -> frozenset[Path]:
        with self._lock:
            return frozenset(self._live)

    @contextmanager
    def attempt(self) -> Iterator["AttemptScope"]:
        """Scope for one pipeline attempt; its files are released on exit."""
        scope = AttemptScope(self)
        try:
            yield scope
        finally:
            scope.release()

    def empty_directory(self) -> None:
        """Remove leftovers from earlier runs and recreate the temp directory."""
        try:
            if self.base_dir.exists():
                shutil.rmtree(self.base_dir)
            self.base_dir.mkdir(parents=True, exist_ok=True)
            logger.info("Emptied temp directory %s", self.base_dir)
        except OSError as e:
            logger.warning("Failed to empty temp directory %s: %s", self.base_dir, e)

    @contextmanager
    def session(self) -> Iterator["TempFileManager"]:
        """Guard a whole batch run.

        SIGTERM is turned into KeyboardInterrupt while the guard is active so
        that termination unwinds through the same cleanup path as Ctrl-C.
        """
        self.empty_directory()
        previous = None
        in_main_thread = threading.current_thread() is threading.main_thread()
        if in_main_thread:
            previous = signal.signal(signal.SIGTERM, _raise_interrupt)
        try:
            yield self
        except KeyboardInterrupt:
            logger.info("Interrupted, cleaning up %d temporary file(s)...", len(self.live))
            raise
        finally:
            self.release_all()
            if in_main_thread:
                signal.signal(signal.SIGTERM, previous or signal.SIG_DFL)


class AttemptScope:
    """Temp files allocated during a single pipeline attempt."""

    def __init__(self, manager: TempFileManager):
        self._manager = manager
        self.paths: list[Path] = []

    def allocate(self, extension: str) -> Path:
        path = self._manager.allocate(extension)
        self.paths.append(path)
        return path

    def release(self) -> None:
        for path in self.paths:
            self._manager.release(path)


def _raise_interrupt(signum, frame):
    raise KeyboardInterrupt(f"Received signal {signum}")
