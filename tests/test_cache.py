"""Tests for the raw file cache and the value cache."""

import io
import threading

import pytest

from triage.cache import TMP_SUFFIX, FileCache, ValueCache
from triage.errors import NotFoundError
from triage.models import BuildData, FinishedRecord, StartedRecord, TestResult, TestStatus


class BrokenStream(io.RawIOBase):
    """Yields some bytes and then fails, like a dropped connection."""

    def __init__(self, data: bytes):
        self._data = data
        self._sent = False

    def readable(self):
        return True

    def readinto(self, buffer):
        if self._sent:
            raise ConnectionResetError("connection reset by peer")
        self._sent = True
        buffer[: len(self._data)] = self._data
        return len(self._data)


def _leftovers(root):
    return [p for p in root.rglob("*") if p.is_file()]


def test_open_fetches_once(tmp_path):
    cache = FileCache(tmp_path)
    calls = []

    def fetch():
        calls.append(1)
        return io.BytesIO(b"payload")

    with cache.open("bucket/logs/job/1/started.json", fetch) as f:
        first = f.read()
    with cache.open("bucket/logs/job/1/started.json", fetch) as f:
        second = f.read()

    assert first == second == b"payload"
    assert len(calls) == 1


def test_open_serves_existing_file_without_fetching(tmp_path):
    cache = FileCache(tmp_path)
    path = cache.path_for("bucket/object")
    path.parent.mkdir(parents=True)
    path.write_bytes(b"cached")

    def fetch():
        raise AssertionError("fetch must not be called")

    with cache.open("bucket/object", fetch) as f:
        assert f.read() == b"cached"


def test_interrupted_fetch_leaves_no_entry(tmp_path):
    cache = FileCache(tmp_path)

    with pytest.raises(ConnectionResetError):
        cache.open("bucket/object", lambda: BrokenStream(b"partial"))

    assert not cache.path_for("bucket/object").exists()
    assert _leftovers(tmp_path) == []

    with cache.open("bucket/object", lambda: io.BytesIO(b"complete")) as f:
        assert f.read() == b"complete"


def test_fetch_error_propagates(tmp_path):
    cache = FileCache(tmp_path)

    def fetch():
        raise NotFoundError("gs://bucket/object")

    with pytest.raises(NotFoundError):
        cache.open("bucket/object", fetch)
    assert _leftovers(tmp_path) == []


def test_concurrent_open_is_consistent(tmp_path):
    cache = FileCache(tmp_path)
    payload = b"x" * 200_000
    results = []
    lock = threading.Lock()

    def worker():
        with cache.open("bucket/big", lambda: io.BytesIO(payload)) as f:
            data = f.read()
        with lock:
            results.append(data)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert results == [payload] * 8
    assert [p.name for p in _leftovers(tmp_path)] == ["big"]


def test_delete_prefix(tmp_path):
    cache = FileCache(tmp_path)
    for key in ("bucket/logs/job/1/a", "bucket/logs/job/1/b/c", "bucket/logs/job/2/a"):
        cache.open(key, lambda: io.BytesIO(b"data")).close()

    cache.delete_prefix("bucket/logs/job/1/")

    assert not cache.path_for("bucket/logs/job/1").exists()
    assert cache.path_for("bucket/logs/job/2/a").exists()
    cache.delete_prefix("bucket/logs/job/1/")


@pytest.mark.parametrize("prefix", ["bucket/logs", "/"])
def test_delete_prefix_rejects_invalid_prefix(tmp_path, prefix):
    with pytest.raises(ValueError):
        FileCache(tmp_path).delete_prefix(prefix)


def test_value_cache_roundtrip_with_model(tmp_path):
    cache = ValueCache(tmp_path)
    data = BuildData(
        started=StartedRecord(timestamp=100),
        finished=FinishedRecord(timestamp=150, result="SUCCESS"),
        test_results=[TestResult(test="t", status=TestStatus.FAILURE, summary="boom")],
    )

    cache.save("job/1", data)

    assert BuildData.model_validate(cache.load("job/1")) == data
    assert cache.path_for("job/1").read_bytes()[:2] == b"\x1f\x8b"


def test_value_cache_load_missing_key(tmp_path):
    with pytest.raises(NotFoundError) as exc_info:
        ValueCache(tmp_path).load("job/404")
    assert exc_info.value.key == "job/404"


def test_value_cache_rejects_reserved_suffix(tmp_path):
    cache = ValueCache(tmp_path)
    with pytest.raises(ValueError):
        cache.save("job/1" + TMP_SUFFIX, {"a": 1})
    assert _leftovers(tmp_path) == []


def test_value_cache_delete_is_idempotent(tmp_path):
    cache = ValueCache(tmp_path)
    cache.save("job/1", {"a": 1})

    cache.delete("job/1")
    cache.delete("job/1")

    with pytest.raises(NotFoundError):
        cache.load("job/1")
