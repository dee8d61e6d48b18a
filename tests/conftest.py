"""Pytest configuration and fixtures for context engine testing."""

import pytest

from codectx.cache import CacheManager
from codectx.embedding import EmbeddingService
from codectx.service import IndexService
from codectx.testing import (
    FakeClock,
    HashEmbeddingBackend,
    InMemoryFileSystem,
    InMemoryIndexStore,
)


TEST_CONFIG = {
    "state_dir": ".codectx",
    "embedding": {"dimension": 64},
    "cache": {},
    "indexer": {"concurrency": 2},
    "graph": {"min_rebuild_interval": 0.0},
    "context": {},
}


@pytest.fixture
def clock():
    """Manually advanced clock shared by caches and the graph builder."""
    return FakeClock()


@pytest.fixture
def cache(clock):
    return CacheManager(clock=clock)


@pytest.fixture
def embedder(cache):
    """Embedding service backed by the deterministic hash backend.

    Returns:
        EmbeddingService with no primary, so every call goes to the hash backend
    """
    service = EmbeddingService(None, HashEmbeddingBackend(), cache=cache, dimension=64)
    yield service
    service.close()


@pytest.fixture
def memory_fs():
    return InMemoryFileSystem()


@pytest.fixture
def service_factory(tmp_path, clock):
    """Factory for IndexService instances over an in-memory project.

    Example:
        >>> def test_query(service_factory):
        ...     service = service_factory({"src/a.ts": "export const a = 1;"})
        ...     service.index_project()
    """
    created = []

    def _factory(files=None, fs=None, config=None):
        fs = fs or InMemoryFileSystem(files)
        cache = CacheManager(clock=clock)
        embedder = EmbeddingService(None, HashEmbeddingBackend(), cache=cache, dimension=64)
        service = IndexService(
            config or TEST_CONFIG,
            repo_root=tmp_path,
            cache=cache,
            embedder=embedder,
            fs=fs,
            store=InMemoryIndexStore(),
            clock=clock,
        )
        created.append(service)
        return service

    yield _factory
    for service in created:
        service.close()
