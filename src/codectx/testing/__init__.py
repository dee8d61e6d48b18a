"""Deterministic test doubles for the context engine."""

from .fakes import (
    CountingBackend,
    FailingBackend,
    FakeClock,
    HashEmbeddingBackend,
    InMemoryFileSystem,
    InMemoryIndexStore,
    SlowBackend,
)

__all__ = [
    "CountingBackend",
    "FailingBackend",
    "FakeClock",
    "HashEmbeddingBackend",
    "InMemoryFileSystem",
    "InMemoryIndexStore",
    "SlowBackend",
]
