"""Unit tests for the TTL caches and cache persistence."""

import json

import pytest

from codectx.cache import (
    CACHE_FORMAT_VERSION,
    DAY,
    CacheManager,
    TTLCache,
    generate_file_cache_key,
    generate_response_cache_key,
)
from codectx.models import FileMetadata


class TestTTLCache:
    """Test expiry and eviction of a single region."""

    def test_entry_expires_after_ttl(self, clock):
        cache = TTLCache(10, default_ttl=5, clock=clock)
        cache.set("k", "v")
        clock.advance(4.9)
        assert cache.get("k") == "v"
        clock.advance(0.2)
        assert cache.get("k") is None
        assert len(cache) == 0

    def test_entry_without_ttl_never_expires(self, clock):
        cache = TTLCache(10, default_ttl=None, clock=clock)
        cache.set("k", "v")
        clock.advance(365 * DAY)
        assert cache.has("k")

    def test_explicit_ttl_overrides_default(self, clock):
        cache = TTLCache(10, default_ttl=100, clock=clock)
        cache.set("short", 1, ttl=1)
        clock.advance(2)
        assert "short" not in cache

    def test_evicts_oldest_inserted_when_full(self, clock):
        cache = TTLCache(2, clock=clock)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.get("a")  # reads do not refresh position
        cache.set("c", 3)
        assert not cache.has("a")
        assert cache.get("b") == 2
        assert cache.get("c") == 3

    def test_reset_key_moves_to_newest(self, clock):
        cache = TTLCache(2, clock=clock)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.set("a", 10)
        cache.set("c", 3)
        assert cache.get("a") == 10
        assert not cache.has("b")

    def test_purge_expired(self, clock):
        cache = TTLCache(10, default_ttl=1, clock=clock)
        cache.set("a", 1)
        cache.set("b", 2, ttl=100)
        clock.advance(5)
        assert cache.purge_expired() == 1
        assert [key for key, _ in cache.items()] == ["b"]

    def test_rejects_zero_size(self):
        with pytest.raises(ValueError):
            TTLCache(0)


class TestCacheManager:
    """Test region accessors and statistics."""

    def test_generic_region_counts_hits_and_misses(self, cache):
        cache.set("x", 1)
        assert cache.get("x") == 1
        assert cache.get("missing", "dflt") == "dflt"
        stats = cache.stats()
        assert stats["hits"] == 1
        assert stats["misses"] == 1
        cache.clear()
        assert cache.stats()["hits"] == 0

    def test_embedding_region_uses_day_ttl(self, cache, clock):
        cache.set_embedding("e", [1.0, 2.0])
        clock.advance(DAY - 1)
        assert cache.get_embedding("e") == [1.0, 2.0]
        clock.advance(2)
        assert cache.get_embedding("e") is None

    def test_has_file_changed(self, cache):
        assert cache.has_file_changed("a.ts", 1.0)
        cache.set_file_metadata(FileMetadata("a.ts", 1.0, 10, "a.ts:h"))
        assert not cache.has_file_changed("a.ts", 1.0)
        assert not cache.has_file_changed("a.ts", 1.0, 10)
        assert cache.has_file_changed("a.ts", 2.0)
        assert cache.has_file_changed("a.ts", 1.0, 11)

    def test_clear_all_empties_every_region(self, cache):
        cache.set("x", 1)
        cache.set_embedding("e", [1.0])
        cache.set_response("r", "text")
        cache.set_file_metadata(FileMetadata("a.ts", 1.0, 1, "h"))
        cache.clear_all()
        stats = cache.stats()
        assert (stats["size"], stats["embeddings"], stats["responses"], stats["metadata"]) == (0, 0, 0, 0)


class TestCachePersistence:
    """Test save/load of the embedding and metadata regions."""

    def test_save_and_load_restores_entries(self, tmp_path, clock):
        path = tmp_path / "state" / "cache.json"
        original = CacheManager(clock=clock)
        original.set_embedding("emb:1", [0.5, 0.25])
        original.set_file_metadata(FileMetadata("src/a.ts", 12.0, 40, "src/a.ts:abc"))
        original.set_response("ai:1", "not persisted")
        original.save(path)

        restored = CacheManager(clock=clock)
        assert restored.load(path) is True
        assert restored.get_embedding("emb:1") == [0.5, 0.25]
        assert restored.get_file_metadata("src/a.ts") == FileMetadata("src/a.ts", 12.0, 40, "src/a.ts:abc")
        assert restored.get_response("ai:1") is None

    def test_load_skips_entries_expired_since_save(self, tmp_path, clock):
        path = tmp_path / "cache.json"
        original = CacheManager(clock=clock)
        original.set_embedding("emb:1", [1.0])
        original.save(path)

        clock.advance(DAY + 1)
        restored = CacheManager(clock=clock)
        assert restored.load(path) is True
        assert restored.get_embedding("emb:1") is None

    def test_missing_file_is_cold_start(self, tmp_path, cache):
        assert cache.load(tmp_path / "nope.json") is False

    def test_corrupt_file_is_discarded(self, tmp_path, cache):
        path = tmp_path / "cache.json"
        path.write_text("{not json", encoding="utf-8")
        assert cache.load(path) is False
        assert not path.exists()

    def test_wrong_version_is_discarded(self, tmp_path, cache, clock):
        path = tmp_path / "cache.json"
        path.write_text(json.dumps({
            "version": CACHE_FORMAT_VERSION + 1,
            "timestamp": clock(),
            "embeddings": {"emb:1": {"data": [1.0], "created_at": clock(), "expires_at": None}},
            "metadata": {},
        }), encoding="utf-8")
        assert cache.load(path) is False
        assert cache.get_embedding("emb:1") is None
        assert not path.exists()

    def test_too_old_file_is_discarded(self, tmp_path, clock):
        path = tmp_path / "cache.json"
        CacheManager(clock=clock).save(path)
        clock.advance(8 * DAY)
        assert CacheManager(clock=clock).load(path) is False
        assert not path.exists()


class TestKeyHelpers:

    def test_file_key_changes_with_content(self):
        assert generate_file_cache_key("a.ts", "x") != generate_file_cache_key("a.ts", "y")
        assert generate_file_cache_key("a.ts", "x").startswith("a.ts:")

    def test_response_key_prefix(self):
        assert generate_response_cache_key("prompt", "ctx").startswith("ai:")
