"""TTL caches for embeddings, responses and file metadata.

Every region is bounded and evicts its oldest-inserted entry when full
(insertion order, not access order). Expired entries are purged lazily when
they are read. The embedding and metadata regions can be persisted to a JSON
file between processes.
"""

import hashlib
import json
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Generic, Iterator, Optional, TypeVar

from pydantic import BaseModel, Field, ValidationError

from .logging_config import get_logger
from .models import FileMetadata

logger = get_logger(__name__)

T = TypeVar("T")

HOUR = 60 * 60
DAY = 24 * HOUR

CACHE_FORMAT_VERSION = 1


@dataclass
class CacheEntry(Generic[T]):
    data: T
    created_at: float
    expires_at: Optional[float] = None   # None: never expires

    def is_expired(self, now: float) -> bool:
        return self.expires_at is not None and now >= self.expires_at


class TTLCache(Generic[T]):
    """Bounded key-value store with per-entry expiry.

    Args:
        max_size: Maximum number of entries before the oldest is evicted
        default_ttl: Seconds until an entry expires, None for never
        clock: Time source returning seconds (injectable for tests)
    """

    def __init__(
        self,
        max_size: int,
        default_ttl: Optional[float] = None,
        clock: Callable[[], float] = time.time,
    ):
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.max_size = max_size
        self.default_ttl = default_ttl
        self._clock = clock
        self._entries: OrderedDict[str, CacheEntry[T]] = OrderedDict()
        self._lock = threading.RLock()

    def set(self, key: str, value: T, ttl: Optional[float] = None) -> None:
        """Store a value; re-setting a key counts as a fresh insertion."""
        now = self._clock()
        ttl = self.default_ttl if ttl is None else ttl
        entry = CacheEntry(
            data=value,
            created_at=now,
            expires_at=now + ttl if ttl is not None else None,
        )
        with self._lock:
            if key in self._entries:
                del self._entries[key]
            elif len(self._entries) >= self.max_size:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug("Evicted cache entry %s", evicted)
            self._entries[key] = entry

    def restore(self, key: str, entry: CacheEntry[T]) -> None:
        """Insert a previously persisted entry, keeping its timestamps."""
        with self._lock:
            if key in self._entries:
                del self._entries[key]
            elif len(self._entries) >= self.max_size:
                self._entries.popitem(last=False)
            self._entries[key] = entry

    def get_entry(self, key: str) -> Optional[CacheEntry[T]]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.is_expired(self._clock()):
                del self._entries[key]
                return None
            return entry

    def get(self, key: str, default: Any = None) -> Any:
        entry = self.get_entry(key)
        return default if entry is None else entry.data

    def has(self, key: str) -> bool:
        return self.get_entry(key) is not None

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def purge_expired(self) -> int:
        """Drop every expired entry and return how many were removed."""
        now = self._clock()
        with self._lock:
            expired = [k for k, e in self._entries.items() if e.is_expired(now)]
            for key in expired:
                del self._entries[key]
        return len(expired)

    def items(self) -> Iterator[tuple[str, CacheEntry[T]]]:
        """Yield live (key, entry) pairs in insertion order."""
        now = self._clock()
        with self._lock:
            snapshot = list(self._entries.items())
        for key, entry in snapshot:
            if not entry.is_expired(now):
                yield key, entry

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return self.has(key)


# =============================================================================
# Persisted form
# =============================================================================

class _PersistedEmbedding(BaseModel):
    data: list[float]
    created_at: float
    expires_at: Optional[float] = None


class _PersistedFileMetadata(BaseModel):
    path: str
    last_modified: float
    size: int
    hash: str


class _PersistedMetadataEntry(BaseModel):
    data: _PersistedFileMetadata
    created_at: float
    expires_at: Optional[float] = None


class PersistedCache(BaseModel):
    """On-disk schema of the cache file."""
    version: int
    timestamp: float
    embeddings: dict[str, _PersistedEmbedding] = Field(default_factory=dict)
    metadata: dict[str, _PersistedMetadataEntry] = Field(default_factory=dict)


# =============================================================================
# Cache manager
# =============================================================================

class CacheManager:
    """Owns the four cache regions used by the engine.

    Args:
        settings: The ``cache`` section of the config (missing keys use defaults)
        clock: Time source shared by every region
    """

    def __init__(self, settings: Optional[dict] = None, clock: Callable[[], float] = time.time):
        settings = settings or {}
        self._clock = clock
        self.max_age = settings.get("max_age", 7 * DAY)
        self.embeddings: TTLCache[list[float]] = TTLCache(
            settings.get("max_embeddings", 1000), settings.get("embedding_ttl", DAY), clock
        )
        self.responses: TTLCache[str] = TTLCache(
            settings.get("max_responses", 100), settings.get("response_ttl", HOUR), clock
        )
        self.metadata: TTLCache[FileMetadata] = TTLCache(
            settings.get("max_metadata", 10000), None, clock
        )
        self.generic: TTLCache[Any] = TTLCache(
            settings.get("max_entries", 1000), settings.get("default_ttl"), clock
        )
        self.hits = 0
        self.misses = 0

    # ------------------------------------------------------------------ generic

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        self.generic.set(key, value, ttl)

    def get(self, key: str, default: Any = None) -> Any:
        entry = self.generic.get_entry(key)
        if entry is None:
            self.misses += 1
            return default
        self.hits += 1
        return entry.data

    def has(self, key: str) -> bool:
        return self.generic.has(key)

    def delete(self, key: str) -> bool:
        return self.generic.delete(key)

    def clear(self) -> None:
        """Clear the generic region and reset hit/miss counters."""
        self.generic.clear()
        self.hits = 0
        self.misses = 0

    # --------------------------------------------------------------- embeddings

    def get_embedding(self, key: str) -> Optional[list[float]]:
        return self.embeddings.get(key)

    def set_embedding(self, key: str, vector: list[float]) -> None:
        self.embeddings.set(key, vector)

    def clear_embeddings(self) -> None:
        self.embeddings.clear()

    # ---------------------------------------------------------------- responses

    def get_response(self, key: str) -> Optional[str]:
        return self.responses.get(key)

    def set_response(self, key: str, response: str) -> None:
        self.responses.set(key, response)

    def clear_responses(self) -> None:
        self.responses.clear()

    # ----------------------------------------------------------------- metadata

    def get_file_metadata(self, path: str) -> Optional[FileMetadata]:
        return self.metadata.get(path)

    def set_file_metadata(self, metadata: FileMetadata) -> None:
        self.metadata.set(metadata.path, metadata)

    def delete_file_metadata(self, path: str) -> bool:
        return self.metadata.delete(path)

    def has_file_changed(self, path: str, modified: float, size: Optional[int] = None) -> bool:
        """True unless the stored fingerprint matches mtime (and size when given)."""
        cached = self.get_file_metadata(path)
        if cached is None:
            return True
        if cached.last_modified != modified:
            return True
        return size is not None and cached.size != size

    # -------------------------------------------------------------------- misc

    def clear_all(self) -> None:
        self.embeddings.clear()
        self.responses.clear()
        self.metadata.clear()
        self.clear()

    def stats(self) -> dict:
        return {
            "size": len(self.generic),
            "hits": self.hits,
            "misses": self.misses,
            "embeddings": len(self.embeddings),
            "responses": len(self.responses),
            "metadata": len(self.metadata),
        }

    # -------------------------------------------------------------- persistence

    def save(self, path: str | Path) -> None:
        """Write live embedding and metadata entries to a JSON file."""
        path = Path(path)
        blob = PersistedCache(
            version=CACHE_FORMAT_VERSION,
            timestamp=self._clock(),
            embeddings={
                key: _PersistedEmbedding(
                    data=entry.data, created_at=entry.created_at, expires_at=entry.expires_at
                )
                for key, entry in self.embeddings.items()
            },
            metadata={
                key: _PersistedMetadataEntry(
                    data=_PersistedFileMetadata(**entry.data.to_dict()),
                    created_at=entry.created_at,
                    expires_at=entry.expires_at,
                )
                for key, entry in self.metadata.items()
            },
        )
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_suffix(path.suffix + ".tmp")
        tmp_path.write_text(blob.model_dump_json(), encoding="utf-8")
        tmp_path.replace(path)
        logger.debug(
            "Saved cache to %s (%s embeddings, %s metadata)",
            path, len(blob.embeddings), len(blob.metadata),
        )

    def load(self, path: str | Path) -> bool:
        """Load a cache file written by save().

        A missing, corrupt, wrong-version or too old file leaves the cache
        cold; corrupt or stale files are removed. Never raises.

        Returns:
            True if entries were restored
        """
        path = Path(path)
        if not path.exists():
            return False

        try:
            blob = PersistedCache.model_validate(json.loads(path.read_text(encoding="utf-8")))
        except (OSError, ValueError, ValidationError) as e:
            logger.warning("Discarding unreadable cache file %s: %s", path, e)
            self._discard(path)
            return False

        if blob.version != CACHE_FORMAT_VERSION:
            logger.info("Discarding cache file %s with version %s", path, blob.version)
            self._discard(path)
            return False

        now = self._clock()
        if now - blob.timestamp > self.max_age:
            logger.info("Discarding cache file %s older than %ss", path, self.max_age)
            self._discard(path)
            return False

        restored = 0
        for key, item in blob.embeddings.items():
            entry = CacheEntry(item.data, item.created_at, item.expires_at)
            if entry.is_expired(now):
                continue
            self.embeddings.restore(key, entry)
            restored += 1
        for key, item in blob.metadata.items():
            entry = CacheEntry(
                FileMetadata.from_dict(item.data.model_dump()), item.created_at, item.expires_at
            )
            if entry.is_expired(now):
                continue
            self.metadata.restore(key, entry)
            restored += 1

        logger.debug("Restored %s cache entries from %s", restored, path)
        return True

    @staticmethod
    def _discard(path: Path) -> None:
        try:
            path.unlink()
        except OSError as e:
            logger.debug("Could not remove cache file %s: %s", path, e)


# =============================================================================
# Key helpers
# =============================================================================

def hash_string(text: str) -> str:
    """Stable content hash used in cache keys."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def generate_file_cache_key(path: str, content: str) -> str:
    return f"{path}:{hash_string(content)}"


def generate_response_cache_key(prompt: str, context: str = "") -> str:
    return f"ai:{hash_string(prompt + context)}"
