"""Tests for the reader/writer lock."""

import threading

import pytest

from everest_provisioner.utils.rwlock import ReadWriteLock


class TestReadWriteLock:
    """Test shared reads and exclusive writes."""

    def test_readers_share(self) -> None:
        lock = ReadWriteLock()
        with lock.read():
            with lock.read():
                assert lock.readers == 2
        assert lock.readers == 0

    def test_writer_waits_for_readers(self) -> None:
        lock = ReadWriteLock()
        acquired = threading.Event()

        def writer() -> None:
            with lock.write():
                acquired.set()

        lock.acquire_read()
        thread = threading.Thread(target=writer)
        thread.start()
        try:
            assert not acquired.wait(0.05)
        finally:
            lock.release_read()
        assert acquired.wait(1.0)
        thread.join(1.0)
        assert not lock.writing

    def test_writers_exclude_each_other(self) -> None:
        lock = ReadWriteLock()
        acquired = threading.Event()

        def second_writer() -> None:
            with lock.write():
                acquired.set()

        lock.acquire_write()
        thread = threading.Thread(target=second_writer)
        thread.start()
        try:
            assert lock.writing
            assert not acquired.wait(0.05)
        finally:
            lock.release_write()
        assert acquired.wait(1.0)
        thread.join(1.0)

    def test_reader_waits_for_writer(self) -> None:
        lock = ReadWriteLock()
        acquired = threading.Event()

        def reader() -> None:
            with lock.read():
                acquired.set()

        with lock.write():
            thread = threading.Thread(target=reader)
            thread.start()
            assert not acquired.wait(0.05)
        assert acquired.wait(1.0)
        thread.join(1.0)

    def test_write_released_on_error(self) -> None:
        lock = ReadWriteLock()
        with pytest.raises(ValueError):
            with lock.write():
                raise ValueError("fail")
        assert not lock.writing

    def test_unbalanced_release(self) -> None:
        lock = ReadWriteLock()
        with pytest.raises(RuntimeError):
            lock.release_read()
        with pytest.raises(RuntimeError):
            lock.release_write()
