"""Atomic commit of finished artifacts into the output tree."""

import errno
import logging
import os
import secrets
import shutil
import sys
import time
from pathlib import Path

from miditone.models.errors import CommitError, InsufficientSpaceError, OutputExistsError
from miditone.models.results import CommitResult

logger = logging.getLogger(__name__)

UNBOUNDED = sys.maxsize

# Filesystems without hard links report one of these from link()
NO_HARD_LINKS = frozenset({errno.EXDEV, errno.EPERM, errno.ENOTSUP, errno.EOPNOTSUPP})


def available_space(path: Path) -> int:
    """Free bytes on the filesystem holding path (or its nearest existing parent).

    Returns UNBOUNDED when the space cannot be determined.
    """
    probe = Path(path)
    while not probe.exists() and probe != probe.parent:
        probe = probe.parent
    try:
        return shutil.disk_usage(probe).free
    except OSError as e:
        logger.warning("Could not determine available disk space for %s: %s", path, e)
        return UNBOUNDED


def file_size(path: Path) -> int:
    try:
        return path.stat().st_size
    except OSError as e:
        logger.warning("Could not get size of %s: %s", path, e)
        return 0


def place_exclusive(staging: Path, target: Path) -> bool:
    """Give staging the name target, failing with FileExistsError if target exists.

    Returns False when hard links are unavailable and an exclusive-create
    copy was used, which is not atomic.
    """
    try:
        os.link(staging, target)
        return True
    except OSError as e:
        if e.errno not in NO_HARD_LINKS:
            raise
    logger.warning("Hard links unsupported for %s, falling back to exclusive copy", target)
    with open(staging, "rb") as src, open(target, "xb") as dst:
        try:
            shutil.copyfileobj(src, dst)
        except OSError:
            target.unlink(missing_ok=True)
            raise
    return False


class AtomicWriter:
    """Copies a file to a temp name beside the target, then links it into place.

    An existing file at the target is never replaced. When the target is
    taken the artifact goes to `alternate` instead, which is derived from
    the record's own hash and so may be overwritten by a re-run.
    """

    def commit(self, source: Path, target: Path, alternate: Path | None = None) -> CommitResult:
        start = time.monotonic()
        source = Path(source)
        target = Path(target)

        size = file_size(source)
        free = available_space(target)
        if size > free:
            raise InsufficientSpaceError(
                f"Insufficient disk space. Required: {size}, Available: {free}",
                details={"required": size, "available": free, "target": str(target)},
            )

        staging = target.with_name(f".{target.name}.{secrets.token_hex(8)}.tmp")
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(source, staging)
            try:
                atomic = place_exclusive(staging, target)
            except FileExistsError:
                if alternate is None:
                    raise OutputExistsError(
                        f"Output file {target} already exists", details={"target": str(target)}
                    ) from None
                logger.warning("Output file %s already exists, using %s", target, alternate)
                target = Path(alternate)
                os.replace(staging, target)
                atomic = True
        except OSError as e:
            logger.error("File write failed for %s: %s", target, e)
            if e.errno == errno.ENOSPC:
                raise InsufficientSpaceError(f"Disk full while writing {target}") from e
            raise CommitError(
                f"Failed to write {target}: {e}", details={"target": str(target)}
            ) from e
        finally:
            if staging.exists():
                try:
                    staging.unlink()
                except OSError as e:
                    logger.warning("Failed to remove staging file %s: %s", staging, e)

        duration_ms = int((time.monotonic() - start) * 1000)
        logger.info("File written to %s (%d bytes, %d ms)", target, size, duration_ms)
        return CommitResult(path=str(target), size=size, duration_ms=duration_ms, atomic=atomic)
