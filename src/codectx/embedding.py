"""Text embeddings with a primary -> fallback backend chain.

The primary backend talks to an OpenAI-compatible embeddings endpoint; the
fallback runs sentence-transformers/all-MiniLM-L6-v2 locally (384 dims, CPU).
The first primary failure switches the service to the fallback for the rest
of the process. If both fail the caller gets a zero vector, never an error.
"""

import threading
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Iterable, Optional, Protocol, Sequence

import numpy as np

from .cache import CacheManager, hash_string
from .logging_config import get_logger
from .models import EmbeddingError, FileRecord

logger = get_logger(__name__)

DEFAULT_DIMENSION = 384


class EmbeddingBackend(Protocol):
    """Anything that turns one string into a dense vector."""

    name: str

    def embed(self, text: str) -> list[float]:
        ...


class OpenAICompatibleBackend:
    """Embeddings from an OpenAI-compatible HTTP endpoint via langchain-openai."""

    def __init__(self, model: str, base_url: str, api_key: str = "not-needed"):
        self.name = f"openai:{model}"
        self.model = model
        self.base_url = base_url
        self.api_key = api_key
        self._client = None

    def _get_client(self):
        if self._client is None:
            from langchain_openai import OpenAIEmbeddings

            # Local servers don't ship tiktoken vocabularies for their models
            self._client = OpenAIEmbeddings(
                model=self.model,
                base_url=self.base_url,
                api_key=self.api_key,
                check_embedding_ctx_length=False,
            )
        return self._client

    def embed(self, text: str) -> list[float]:
        return self._get_client().embed_query(text)


class SentenceTransformerBackend:
    """Local sentence-transformers model, loaded on first use."""

    def __init__(self, model_name: str = "sentence-transformers/all-MiniLM-L6-v2"):
        self.name = f"sentence-transformers:{model_name}"
        self.model_name = model_name
        self._model = None
        self._lock = threading.Lock()

    def _get_model(self):
        with self._lock:
            if self._model is None:
                from sentence_transformers import SentenceTransformer

                logger.info("Loading embedding model %s (first time only)...", self.model_name)
                self._model = SentenceTransformer(self.model_name)
        return self._model

    def embed(self, text: str) -> list[float]:
        vector = self._get_model().encode(text, normalize_embeddings=True)
        return vector.tolist()


def create_default_backends(settings: dict) -> tuple[Optional[EmbeddingBackend], EmbeddingBackend]:
    """Build (primary, fallback) from the ``embedding`` config section."""
    primary_cfg = settings.get("primary", {})
    primary = None
    if primary_cfg.get("enabled", True):
        primary = OpenAICompatibleBackend(
            model=primary_cfg.get("model", "bge-small-en-v1.5"),
            base_url=primary_cfg.get("base_url", "http://127.0.0.1:5000/v1"),
            api_key=primary_cfg.get("api_key", "not-needed"),
        )
    fallback = SentenceTransformerBackend(
        settings.get("fallback", {}).get("model", "sentence-transformers/all-MiniLM-L6-v2")
    )
    return primary, fallback


class EmbeddingService:
    """Memoized text -> vector with one-way fallback.

    Args:
        primary: Preferred backend (None starts directly on the fallback)
        fallback: Backend used after the primary fails
        cache: Cache manager whose embedding region memoizes results
        dimension: Length of the zero vector returned on failure
        timeout: Seconds to wait for any single backend call
        max_input_chars: Input is truncated to this many characters
    """

    def __init__(
        self,
        primary: Optional[EmbeddingBackend],
        fallback: Optional[EmbeddingBackend] = None,
        cache: Optional[CacheManager] = None,
        dimension: int = DEFAULT_DIMENSION,
        timeout: float = 30.0,
        max_input_chars: int = 5000,
    ):
        self.primary = primary
        self.fallback = fallback
        self.cache = cache
        self.dimension = dimension
        self.timeout = timeout
        self.max_input_chars = max_input_chars
        self._use_fallback = primary is None
        self._lock = threading.Lock()
        self._executor = ThreadPoolExecutor(max_workers=8, thread_name_prefix="codectx-embed")

    @property
    def is_using_fallback(self) -> bool:
        return self._use_fallback

    @property
    def active_backend(self) -> Optional[EmbeddingBackend]:
        return self.fallback if self._use_fallback else self.primary

    def zero_vector(self) -> list[float]:
        return [0.0] * self.dimension

    def embed(self, text: str) -> list[float]:
        """Embed text. Never raises; total failure yields a zero vector."""
        if not text or not text.strip():
            return self.zero_vector()

        key = f"emb:{hash_string(text)}"
        if self.cache is not None:
            cached = self.cache.get_embedding(key)
            if cached is not None:
                return cached

        vector = self._compute(text[: self.max_input_chars])
        if vector is None:
            logger.error("All embedding backends failed, returning zero vector")
            return self.zero_vector()

        if self.cache is not None:
            self.cache.set_embedding(key, vector)
        return vector

    def embed_batch(self, texts: Iterable[str]) -> list[list[float]]:
        return [self.embed(text) for text in texts]

    @staticmethod
    def similarity(a: Sequence[float], b: Sequence[float]) -> float:
        return cosine_similarity(a, b)

    def reset(self) -> None:
        """Return to the primary backend (the fallback latch is otherwise permanent)."""
        with self._lock:
            self._use_fallback = self.primary is None

    def close(self) -> None:
        self._executor.shutdown(wait=False)

    def _compute(self, text: str) -> Optional[list[float]]:
        if not self._use_fallback and self.primary is not None:
            try:
                return self._call(self.primary, text)
            except Exception as e:
                self._switch_to_fallback(e)

        if self.fallback is None:
            return None
        try:
            return self._call(self.fallback, text)
        except Exception as e:
            logger.error("Fallback embedding backend %s failed: %s", self.fallback.name, e)
            return None

    def _call(self, backend: EmbeddingBackend, text: str) -> list[float]:
        future = self._executor.submit(backend.embed, text)
        try:
            result = future.result(timeout=self.timeout)
        except FutureTimeoutError as e:
            future.cancel()
            raise EmbeddingError(f"{backend.name} timed out after {self.timeout}s") from e
        return _validate(result, backend.name)

    def _switch_to_fallback(self, error: Exception) -> None:
        with self._lock:
            if self._use_fallback:
                return
            self._use_fallback = True
        fallback_name = self.fallback.name if self.fallback is not None else "none"
        logger.warning(
            "Primary embedding backend %s failed (%s); switching to %s",
            self.primary.name, error, fallback_name,
        )


def _validate(vector: Sequence[float], backend_name: str) -> list[float]:
    if vector is None or len(vector) == 0:
        raise EmbeddingError(f"{backend_name} returned an empty embedding")
    return [float(x) for x in vector]


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity of two vectors.

    Vectors of unequal length are compared over the shorter length. Empty or
    zero-magnitude input yields 0.0.
    """
    n = min(len(a), len(b))
    if n == 0:
        return 0.0
    va = np.asarray(a[:n], dtype=np.float64)
    vb = np.asarray(b[:n], dtype=np.float64)
    denominator = float(np.linalg.norm(va) * np.linalg.norm(vb))
    if denominator == 0.0 or not np.isfinite(denominator):
        return 0.0
    return float(np.dot(va, vb) / denominator)


def find_relevant_files(
    query_embedding: Sequence[float],
    records: Iterable[FileRecord],
    top_k: int = 5,
    min_score: float = 0.15,
) -> list[tuple[FileRecord, float]]:
    """Rank records by similarity; keep the top_k scoring above min_score."""
    scored = [(record, cosine_similarity(query_embedding, record.embedding)) for record in records]
    scored.sort(key=lambda item: item[1], reverse=True)
    return [(record, score) for record, score in scored[:top_k] if score > min_score]
