"""Process-wide owner of the file index, caches and dependency graph.

One IndexService is constructed per repository and handed to whatever needs
context (CLI commands, the LangChain tool, editor integrations).
"""

import threading
import time
from pathlib import Path
from typing import Callable, Optional

from .analysis.builder import GraphBuilder
from .analysis.graph import DependencyGraph
from .cache import CacheManager, generate_response_cache_key
from .context.assembler import ContextAssembler
from .context.formatting import format_context
from .embedding import EmbeddingService, create_default_backends
from .filesystem import FileSystem, LocalFileSystem
from .indexer import IncrementalIndexer, ProgressCallback
from .logging_config import get_logger
from .models import ContextBuildOptions, ContextEntry, FileRecord, IndexingResult
from .store import FileIndexStore

logger = get_logger(__name__)

CACHE_FILE = "cache.json"
INDEX_DIR = "index"


class IndexService:
    """Indexes a repository and answers context queries against it.

    Args:
        config: Application config dict (defaults to ``codectx.config.config``)
        repo_root: Repository root; file paths are relative to it
        cache: Cache manager (built from the ``cache`` config section if None)
        embedder: Embedding service (built from the ``embedding`` section if None)
        fs: File-system primitives (LocalFileSystem over repo_root if None)
        store: Persistent file index (chromadb under the state dir if None)
        clock: Time source for caches and graph throttling
    """

    def __init__(
        self,
        config: Optional[dict] = None,
        *,
        repo_root: str | Path = ".",
        cache: Optional[CacheManager] = None,
        embedder: Optional[EmbeddingService] = None,
        fs: Optional[FileSystem] = None,
        store: Optional[FileIndexStore] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        if config is None:
            from .config import config as default_config
            config = default_config
        self.config = config
        self.repo_root = Path(repo_root).resolve()
        self.state_dir = self.repo_root / config.get("state_dir", ".codectx")

        self.cache = cache or CacheManager(config.get("cache"), clock=clock or time.time)
        if embedder is None:
            emb_cfg = config.get("embedding", {})
            primary, fallback = create_default_backends(emb_cfg)
            embedder = EmbeddingService(
                primary,
                fallback,
                cache=self.cache,
                dimension=emb_cfg.get("dimension", 384),
                timeout=emb_cfg.get("timeout", 30.0),
                max_input_chars=emb_cfg.get("max_input_chars", 5000),
            )
        self.embedder = embedder
        self.fs = fs or LocalFileSystem(self.repo_root)
        self.store = store or FileIndexStore(self.state_dir / INDEX_DIR)

        idx_cfg = config.get("indexer", {})
        self.indexer = IncrementalIndexer(
            self.embedder,
            self.cache,
            self.fs,
            concurrency=idx_cfg.get("concurrency", 5),
            max_content_chars=idx_cfg.get("max_content_chars", 10000),
            max_file_size=idx_cfg.get("max_file_size", 1_000_000),
        )
        self.graph_builder = GraphBuilder(
            min_interval=config.get("graph", {}).get("min_rebuild_interval", 60.0),
            clock=clock or time.monotonic,
        )
        self.assembler = ContextAssembler(clock=clock or time.time)

        self._files: dict[str, FileRecord] = {}
        self._generation = 0
        self._lock = threading.RLock()

    def close(self) -> None:
        self.indexer.close()
        self.embedder.close()

    # ------------------------------------------------------------------- index

    @property
    def files(self) -> list[FileRecord]:
        with self._lock:
            return list(self._files.values())

    @property
    def generation(self) -> int:
        """Bumped on every change that can alter query results."""
        return self._generation

    def _bump(self) -> None:
        self._generation += 1

    def index_project(self, root: str = ".", on_progress: Optional[ProgressCallback] = None) -> IndexingResult:
        """Incrementally re-index the project.

        On a scan failure the current index is kept and the returned result
        carries the error.
        """
        previous = self.files
        result = self.indexer.index_project(root, previous, on_progress)
        if result.error is not None:
            logger.warning("Keeping previous index after failed scan: %s", result.error)
            return result

        changed = bool(result.added or result.updated or result.removed)
        with self._lock:
            current = {record.path: record for record in result.records}
            for path in self._files:
                if path not in current:
                    self.cache.delete_file_metadata(path)
            self._files = current
            if changed:
                self._bump()
        if changed:
            # A finished indexing pass always rebuilds, bypassing the throttle
            self.graph_builder.rebuild(self.files)
        return result

    def index_file(self, path: str) -> Optional[FileRecord]:
        """Re-index one file; a file that is gone or not indexable is dropped."""
        with self._lock:
            previous = self._files.get(path)
        record = self.indexer.index_single_file(path, previous)
        if record is None:
            self.remove_file(path)
            return None
        if record is not previous:
            with self._lock:
                self._files[path] = record
                self.graph_builder.request_rebuild()
                self._bump()
            logger.debug("Re-indexed %s", path)
        return record

    def remove_file(self, path: str) -> bool:
        with self._lock:
            removed = self._files.pop(path, None) is not None
            self.cache.delete_file_metadata(path)
            if removed:
                self.graph_builder.request_rebuild()
                self._bump()
        return removed

    # ------------------------------------------------------------------- graph

    @property
    def graph(self) -> Optional[DependencyGraph]:
        return self.graph_builder.graph

    def ensure_graph(self) -> DependencyGraph:
        """Current graph, rebuilt first if missing or stale and due."""
        return self.graph_builder.maybe_rebuild(self.files)

    # ------------------------------------------------------------------- query

    def default_options(self) -> ContextBuildOptions:
        ctx_cfg = self.config.get("context", {})
        return ContextBuildOptions(
            max_files=ctx_cfg.get("max_files", 10),
            max_tokens=ctx_cfg.get("max_tokens", 8000),
            semantic_top_k=ctx_cfg.get("semantic_top_k", 5),
            min_similarity=ctx_cfg.get("min_similarity", 0.15),
        )

    def query(
        self,
        query: str,
        current_file: Optional[str] = None,
        options: Optional[ContextBuildOptions] = None,
    ) -> list[ContextEntry]:
        """Ranked context for query. Never raises; faults yield fewer entries."""
        options = options or self.default_options()
        try:
            graph = self.ensure_graph()
        except Exception as e:
            logger.warning("Dependency graph unavailable: %s", e)
            graph = None
        query_embedding = self.embedder.embed(query)
        return self.assembler.build_context(query, query_embedding, self.files, current_file, options, graph)

    def render_context(self, query: str, current_file: Optional[str] = None, max_tokens: int = 4000) -> str:
        """Formatted context for a prompt, memoized until the index changes."""
        key = generate_response_cache_key(query, f"{self._generation}:{current_file or ''}:{max_tokens}")
        cached = self.cache.get_response(key)
        if cached is not None:
            return cached

        options = self.default_options()
        options.max_tokens = max_tokens
        text = format_context(self.query(query, current_file, options), max_tokens=max_tokens)
        self.cache.set_response(key, text)
        return text

    # ---------------------------------------------------------------- tracking

    def track_file_edit(self, path: str) -> None:
        self.assembler.track_file_edit(path)
        self._bump()

    def track_file_open(self, path: str) -> None:
        self.assembler.track_file_open(path)
        self._bump()

    def track_file_close(self, path: str) -> None:
        self.assembler.track_file_close(path)
        self._bump()

    # ------------------------------------------------------------- persistence

    def save_state(self) -> None:
        """Persist the cache and the file index under the state directory."""
        self.cache.save(self.state_dir / CACHE_FILE)
        self.store.save(self.files)
        logger.info("Saved state for %s files to %s", len(self._files), self.state_dir)

    def load_state(self) -> int:
        """Restore the cache and file index saved by save_state().

        Returns:
            Number of file records restored
        """
        self.cache.load(self.state_dir / CACHE_FILE)
        records = self.store.load()
        with self._lock:
            self._files = {record.path: record for record in records}
            self.graph_builder.request_rebuild()
            self._bump()
        logger.info("Loaded %s files from %s", len(records), self.state_dir)
        return len(records)

    def stats(self) -> dict:
        backend = self.embedder.active_backend
        return {
            "repository": str(self.repo_root),
            "files": len(self._files),
            "generation": self._generation,
            "embedding_backend": getattr(backend, "name", None),
            "using_fallback": self.embedder.is_using_fallback,
            "cache": self.cache.stats(),
            "graph": self.graph_builder.stats(),
        }
