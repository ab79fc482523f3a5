"""Tests for the temp file manager."""

import os
import signal
import threading
import time
from unittest.mock import patch

import pytest

from miditone.storage.temp_store import TempFileManager


class TestAllocate:
    def test_unique_paths(self, temp_store):
        paths = {temp_store.allocate(".wav") for _ in range(100)}
        assert len(paths) == 100

    def test_path_shape(self, temp_store, settings):
        path = temp_store.allocate("_normalized.wav")
        assert path.parent == settings.temp_dir
        assert path.name.endswith("_normalized.wav")
        assert len(path.name) == 32 + len("_normalized.wav")

    def test_registers_and_creates_directory(self, temp_store):
        path = temp_store.allocate(".mid")
        assert path in temp_store.live
        assert path.parent.is_dir()
        assert not path.exists()

    def test_concurrent_allocation(self, temp_store):
        results = []

        def worker():
            for _ in range(50):
                results.append(temp_store.allocate(".wav"))

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert len(set(results)) == 400
        assert len(temp_store.live) == 400


class TestRelease:
    def test_release_deletes_and_unregisters(self, temp_store):
        path = temp_store.allocate(".wav")
        path.write_bytes(b"data")
        temp_store.release(path)
        assert not path.exists()
        assert path not in temp_store.live

    def test_release_missing_file(self, temp_store):
        path = temp_store.allocate(".wav")
        temp_store.release(path)
        assert path not in temp_store.live

    def test_release_never_raises(self, temp_store):
        path = temp_store.allocate(".wav")
        path.write_bytes(b"data")
        with patch("pathlib.Path.unlink", side_effect=PermissionError("busy")):
            temp_store.release(path)
        assert path in temp_store.live

    def test_release_all(self, temp_store):
        written = [temp_store.allocate(".wav") for _ in range(3)]
        for path in written:
            path.write_bytes(b"x")
        temp_store.allocate(".never-written")

        assert temp_store.release_all() == 3
        assert temp_store.live == frozenset()
        assert not any(p.exists() for p in written)


class TestAttemptScope:
    def test_released_on_success(self, temp_store):
        with temp_store.attempt() as scope:
            path = scope.allocate(".wav")
            path.write_bytes(b"x")
        assert not path.exists()
        assert temp_store.live == frozenset()

    def test_released_on_error(self, temp_store):
        with pytest.raises(RuntimeError):
            with temp_store.attempt() as scope:
                path = scope.allocate(".wav")
                path.write_bytes(b"x")
                raise RuntimeError("stage failed")
        assert not path.exists()
        assert path not in temp_store.live

    def test_scopes_are_independent(self, temp_store):
        other = temp_store.allocate(".wav")
        other.write_bytes(b"keep")
        with temp_store.attempt() as scope:
            scope.allocate(".wav").write_bytes(b"x")
        assert other.exists()
        assert temp_store.live == frozenset({other})


class TestSession:
    def test_empties_directory_on_start(self, tmp_path):
        base = tmp_path / "temp"
        base.mkdir()
        (base / "stale.wav").write_bytes(b"old")
        manager = TempFileManager(base)
        with manager.session():
            assert list(base.iterdir()) == []

    def test_releases_on_exit(self, temp_store):
        with temp_store.session():
            path = temp_store.allocate(".wav")
            path.write_bytes(b"x")
        assert not path.exists()

    def test_releases_on_interrupt(self, temp_store):
        with pytest.raises(KeyboardInterrupt):
            with temp_store.session():
                path = temp_store.allocate(".wav")
                path.write_bytes(b"x")
                raise KeyboardInterrupt
        assert not path.exists()

    @pytest.mark.skipif(os.name == "nt", reason="POSIX signals")
    def test_sigterm_becomes_interrupt(self, temp_store):
        before = signal.getsignal(signal.SIGTERM)
        with pytest.raises(KeyboardInterrupt):
            with temp_store.session():
                path = temp_store.allocate(".wav")
                path.write_bytes(b"x")
                os.kill(os.getpid(), signal.SIGTERM)
                time.sleep(5)
        assert not path.exists()
        assert signal.getsignal(signal.SIGTERM) == before
