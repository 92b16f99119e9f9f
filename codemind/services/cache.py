# codemind/services/cache.py
"""
Content-addressable cache for analysis results, relevance results and
ETag'd HTTP responses.

Entries are invalidated lazily on read: an expired analysis entry, or a
relevance entry whose repo hash differs from the caller's, is deleted and
reported as a miss. Nothing is swept proactively.
"""
import hashlib
import json
import sqlite3
import time
from contextlib import closing
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Protocol, Tuple
from loguru import logger

from ..core.errors import CacheStorageError

# --- Hashing ---

try:
    hashlib.sha256(b"")
    SHA256_AVAILABLE = True
except (ValueError, AttributeError):  # FIPS builds or stripped interpreters
    SHA256_AVAILABLE = False
    logger.warning("sha256 unavailable, cache keys fall back to fnv1a-32.")

FALLBACK_PREFIX = "fnv1a-"


def _fnv1a_32(content: str) -> str:
    value = 0x811C9DC5
    for ch in content:
        value ^= ord(ch)
        value = (value * 0x01000193) & 0xFFFFFFFF
    return f"{FALLBACK_PREFIX}{value:x}"


def hash_content(content: str) -> str:
    """Hex sha256 of ``content``; a prefixed 32-bit FNV-1a when sha256 is unavailable."""
    if SHA256_AVAILABLE:
        return hashlib.sha256(content.encode("utf-8")).hexdigest()
    return _fnv1a_32(content)


# --- Storage backends ---

ANALYSIS_STORE = "analysis"
RELEVANCE_STORE = "relevance"
HTTP_STORE = "http"


class CacheStorage(Protocol):
    def get(self, store: str, key: str) -> Optional[Dict[str, Any]]: ...
    def put(self, store: str, key: str, record: Dict[str, Any]) -> None: ...
    def delete(self, store: str, key: str) -> None: ...


class MemoryCacheStorage:
    """Process-local storage, mostly for tests and one-shot CLI runs."""

    def __init__(self):
        self._records: Dict[Tuple[str, str], Dict[str, Any]] = {}

    def get(self, store: str, key: str) -> Optional[Dict[str, Any]]:
        record = self._records.get((store, key))
        return dict(record) if record is not None else None

    def put(self, store: str, key: str, record: Dict[str, Any]) -> None:
        self._records[(store, key)] = dict(record)

    def delete(self, store: str, key: str) -> None:
        self._records.pop((store, key), None)

    def __len__(self) -> int:
        return len(self._records)


class SqliteCacheStorage:
    """One table keyed by (store, key) holding JSON records."""

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)
        self._schema_ready = False

    def _connect(self) -> sqlite3.Connection:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(self.db_path)
        conn.execute("PRAGMA busy_timeout = 5000;")
        if not self._schema_ready:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS cache_entry (
                    store TEXT NOT NULL,
                    key TEXT NOT NULL,
                    payload TEXT NOT NULL,
                    PRIMARY KEY (store, key)
                )
                """
            )
            conn.commit()
            self._schema_ready = True
        return conn

    def get(self, store: str, key: str) -> Optional[Dict[str, Any]]:
        try:
            with closing(self._connect()) as conn:
                row = conn.execute(
                    "SELECT payload FROM cache_entry WHERE store = ? AND key = ?", (store, key)
                ).fetchone()
            return json.loads(row[0]) if row else None
        except (sqlite3.Error, OSError, ValueError) as exc:
            raise CacheStorageError(f"Cache read failed for {store}/{key}: {exc}") from exc

    def put(self, store: str, key: str, record: Dict[str, Any]) -> None:
        try:
            payload = json.dumps(record)
            with closing(self._connect()) as conn, conn:
                conn.execute(
                    "INSERT OR REPLACE INTO cache_entry (store, key, payload) VALUES (?, ?, ?)",
                    (store, key, payload),
                )
        except (sqlite3.Error, OSError, TypeError, ValueError) as exc:
            raise CacheStorageError(f"Cache write failed for {store}/{key}: {exc}") from exc

    def delete(self, store: str, key: str) -> None:
        try:
            with closing(self._connect()) as conn, conn:
                conn.execute("DELETE FROM cache_entry WHERE store = ? AND key = ?", (store, key))
        except (sqlite3.Error, OSError) as exc:
            raise CacheStorageError(f"Cache delete failed for {store}/{key}: {exc}") from exc


# --- Cache facade ---

@dataclass
class HttpEntry:
    url: str
    data: Any
    etag: Optional[str] = None


def _now_ms() -> int:
    return int(time.time() * 1000)


class ContentCache:
    """TTL- and hash-gated cache. Storage failures never block the caller."""

    def __init__(self, storage: CacheStorage, clock: Callable[[], int] = _now_ms):
        self.storage = storage
        self.clock = clock

    def _read(self, store: str, key: str) -> Optional[Dict[str, Any]]:
        try:
            return self.storage.get(store, key)
        except CacheStorageError as e:
            logger.warning(f"{e}; treating as cache miss.")
            return None

    def _write(self, store: str, key: str, record: Dict[str, Any]) -> None:
        try:
            self.storage.put(store, key, record)
        except CacheStorageError as e:
            logger.warning(str(e))

    def _invalidate(self, store: str, key: str, reason: str) -> None:
        logger.debug(f"Invalidating {store} cache entry {key[:12]} ({reason})")
        try:
            self.storage.delete(store, key)
        except CacheStorageError as e:
            logger.warning(str(e))

    def _is_expired(self, record: Dict[str, Any]) -> bool:
        expires_at = record.get("expiresAt")
        return expires_at is not None and self.clock() > expires_at

    def _expiry(self, now: int, ttl_ms: Optional[int]) -> Optional[int]:
        return now + ttl_ms if ttl_ms and ttl_ms > 0 else None

    # Analysis entries

    def get_analysis(self, key: str) -> Optional[Any]:
        record = self._read(ANALYSIS_STORE, key)
        if record is None:
            logger.debug(f"Analysis cache miss: {key[:12]}")
            return None
        if self._is_expired(record):
            self._invalidate(ANALYSIS_STORE, key, "expired")
            return None
        logger.debug(f"Analysis cache hit: {key[:12]}")
        return record.get("value")

    def set_analysis(self, key: str, value: Any, ttl_ms: Optional[int] = None) -> None:
        now = self.clock()
        self._write(ANALYSIS_STORE, key, {
            "key": key,
            "value": value,
            "createdAt": now,
            "expiresAt": self._expiry(now, ttl_ms),
        })

    # Relevance entries

    def get_relevance(self, key: str, repo_hash: str) -> Optional[Any]:
        record = self._read(RELEVANCE_STORE, key)
        if record is None:
            logger.debug(f"Relevance cache miss: {key[:12]}")
            return None
        if record.get("repoHash") != repo_hash:
            self._invalidate(RELEVANCE_STORE, key, "repo hash changed")
            return None
        if self._is_expired(record):
            self._invalidate(RELEVANCE_STORE, key, "expired")
            return None
        logger.debug(f"Relevance cache hit: {key[:12]}")
        return record.get("value")

    def set_relevance(self, key: str, value: Any, repo_hash: str, ttl_ms: Optional[int] = None) -> None:
        now = self.clock()
        self._write(RELEVANCE_STORE, key, {
            "key": key,
            "value": value,
            "createdAt": now,
            "expiresAt": self._expiry(now, ttl_ms),
            "repoHash": repo_hash,
        })

    # HTTP entries

    def get_http(self, url: str) -> Optional[HttpEntry]:
        record = self._read(HTTP_STORE, url)
        if record is None:
            return None
        return HttpEntry(url=url, data=record.get("data"), etag=record.get("etag"))

    def set_http(self, url: str, data: Any, etag: Optional[str]) -> None:
        self._write(HTTP_STORE, url, {"url": url, "data": data, "etag": etag})
