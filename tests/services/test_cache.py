# tests/services/test_cache.py
import hashlib

import pytest

from codemind.core.errors import CacheStorageError
from codemind.services import cache as cache_module
from codemind.services.cache import (
    ANALYSIS_STORE,
    ContentCache,
    MemoryCacheStorage,
    SqliteCacheStorage,
    hash_content,
)


class FakeClock:
    def __init__(self, now=1_000_000):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def storage():
    return MemoryCacheStorage()


@pytest.fixture
def cache(storage, clock):
    return ContentCache(storage, clock=clock)


def test_hash_content_is_sha256_hex():
    assert hash_content("abc") == hashlib.sha256(b"abc").hexdigest()


def test_hash_falls_back_to_fnv1a(mocker):
    mocker.patch.object(cache_module, "SHA256_AVAILABLE", False)
    # FNV-1a 32-bit of "a" is 0xe40c292c
    assert hash_content("a") == "fnv1a-e40c292c"
    assert hash_content("") == "fnv1a-811c9dc5"


def test_analysis_entry_expires(cache, storage, clock):
    cache.set_analysis("k", [{"name": "f"}], ttl_ms=1000)
    assert cache.get_analysis("k") == [{"name": "f"}]

    clock.now += 1000
    # Expiry is strict: exactly at expires_at the entry is still valid
    assert cache.get_analysis("k") == [{"name": "f"}]

    clock.now += 1
    assert cache.get_analysis("k") is None
    assert storage.get(ANALYSIS_STORE, "k") is None
    assert cache.get_analysis("k") is None


@pytest.mark.parametrize("ttl", [None, 0, -5])
def test_non_positive_ttl_never_expires(cache, clock, ttl):
    cache.set_analysis("k", "v", ttl_ms=ttl)
    clock.now += 10 ** 12
    assert cache.get_analysis("k") == "v"


def test_relevance_is_gated_on_repo_hash(cache, storage):
    cache.set_relevance("q", ["a.ts"], repo_hash="repo-1", ttl_ms=60_000)
    assert cache.get_relevance("q", "repo-1") == ["a.ts"]
    # A different file set never reuses the answer, and the stale entry is dropped
    assert cache.get_relevance("q", "repo-2") is None
    assert len(storage) == 0
    assert cache.get_relevance("q", "repo-1") is None


def test_relevance_expires(cache, clock):
    cache.set_relevance("q", ["a.ts"], repo_hash="r", ttl_ms=10)
    clock.now += 11
    assert cache.get_relevance("q", "r") is None


def test_http_entries(cache):
    assert cache.get_http("https://x") is None
    cache.set_http("https://x", {"a": 1}, '"etag-1"')
    entry = cache.get_http("https://x")
    assert entry.data == {"a": 1}
    assert entry.etag == '"etag-1"'


def test_storage_failures_degrade(mocker, clock):
    broken = mocker.Mock()
    broken.get.side_effect = CacheStorageError("disk gone")
    broken.put.side_effect = CacheStorageError("disk gone")
    cache = ContentCache(broken, clock=clock)
    assert cache.get_analysis("k") is None
    cache.set_analysis("k", "v")
    assert cache.get_http("u") is None


def test_sqlite_storage_round_trip(tmp_path, clock):
    storage = SqliteCacheStorage(tmp_path / "db" / "cache.sqlite3")
    cache = ContentCache(storage, clock=clock)
    cache.set_relevance("q", ["a.ts", "b.ts"], repo_hash="r")
    cache.set_http("https://x", {"tree": []}, None)

    reopened = ContentCache(SqliteCacheStorage(tmp_path / "db" / "cache.sqlite3"), clock=clock)
    assert reopened.get_relevance("q", "r") == ["a.ts", "b.ts"]
    assert reopened.get_http("https://x").data == {"tree": []}
    storage.delete("relevance", "q")
    assert reopened.get_relevance("q", "r") is None


def test_sqlite_unserializable_value_is_a_storage_error(tmp_path):
    storage = SqliteCacheStorage(tmp_path / "cache.sqlite3")
    with pytest.raises(CacheStorageError):
        storage.put("analysis", "k", {"value": object()})
