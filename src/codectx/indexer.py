"""Incremental indexing: re-embed only files whose fingerprint changed."""

import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, Iterable, Optional

from .cache import CacheManager, generate_file_cache_key
from .embedding import EmbeddingService
from .filesystem import FileSystem
from .ignore import should_index_file
from .logging_config import get_logger
from .models import FileMetadata, FileRecord, FileStat, IndexingResult

logger = get_logger(__name__)

ProgressCallback = Callable[[int, int, str], None]


class IncrementalIndexer:
    """Builds FileRecords for a project, reusing unchanged ones.

    Change detection compares the stat fingerprint (mtime + size) with the
    metadata cache, or with the previous record's mtime when the cache holds
    nothing for the path. Unchanged files keep their previous record object.
    Embeddings for changed files run on a bounded thread pool, one batch of
    ``concurrency`` files at a time; records are merged on the calling thread.

    Args:
        embedder: Embedding service used for new or changed content
        cache: Cache manager (embedding + metadata regions)
        fs: File-system primitives
        concurrency: Batch size and embedding worker count
        max_content_chars: Content retained per record
        max_file_size: Larger files are treated as not indexable
    """

    def __init__(
        self,
        embedder: EmbeddingService,
        cache: CacheManager,
        fs: FileSystem,
        concurrency: int = 5,
        max_content_chars: int = 10000,
        max_file_size: int = 1_000_000,
    ):
        self.embedder = embedder
        self.cache = cache
        self.fs = fs
        self.concurrency = max(1, concurrency)
        self.max_content_chars = max_content_chars
        self.max_file_size = max_file_size
        self._pool = ThreadPoolExecutor(max_workers=self.concurrency, thread_name_prefix="codectx-index")
        self._run_lock = threading.Lock()
        self._inflight: dict[str, Future] = {}
        self._inflight_lock = threading.Lock()

    def close(self) -> None:
        self._pool.shutdown(wait=True)

    # ------------------------------------------------------------------ public

    def index_project(
        self,
        root: str,
        previous_index: Iterable[FileRecord] = (),
        on_progress: Optional[ProgressCallback] = None,
    ) -> IndexingResult:
        """Index every indexable file under root.

        A call for a root that is already being indexed waits for and returns
        the in-flight result. Runs for different roots are serialized.
        """
        with self._inflight_lock:
            pending = self._inflight.get(root)
            owner = pending is None
            if owner:
                pending = Future()
                self._inflight[root] = pending

        if not owner:
            logger.info("Indexing of %s already in progress, waiting for it", root)
            return pending.result()

        try:
            with self._run_lock:
                result = self._index_project(root, previous_index, on_progress)
        except BaseException as e:
            pending.set_exception(e)
            raise
        else:
            pending.set_result(result)
            return result
        finally:
            with self._inflight_lock:
                self._inflight.pop(root, None)

    def index_single_file(self, path: str, previous: Optional[FileRecord] = None) -> Optional[FileRecord]:
        """Index one file; returns previous when unchanged, None when skipped or unreadable."""
        if not should_index_file(path):
            logger.debug("Filtered out %s", path)
            return None
        try:
            stat = self.fs.stat(path)
            if previous is not None and not self._has_changed(path, stat, previous):
                return previous
            if stat.size > self.max_file_size:
                logger.debug("Skipping %s (%s bytes)", path, stat.size)
                return None
            content = self.fs.read(path)
        except OSError as e:
            logger.warning("Could not index %s: %s", path, e)
            return None

        key = generate_file_cache_key(path, content)
        embedding = self.cache.get_embedding(key)
        if embedding is None:
            embedding = self._embed(key, content)
        return self._make_record(path, stat, content, key, embedding)

    def index_batch(self, paths: list[str], previous_index: Iterable[FileRecord] = ()) -> list[FileRecord]:
        """Index the given files in parallel batches; unreadable files are dropped."""
        previous = {record.path: record for record in previous_index}
        results: list[FileRecord] = []
        for i in range(0, len(paths), self.concurrency):
            batch = paths[i:i + self.concurrency]
            futures = [self._pool.submit(self.index_single_file, p, previous.get(p)) for p in batch]
            for future in futures:
                record = future.result()
                if record is not None:
                    results.append(record)
        return results

    # ---------------------------------------------------------------- internal

    def _index_project(
        self,
        root: str,
        previous_index: Iterable[FileRecord],
        on_progress: Optional[ProgressCallback],
    ) -> IndexingResult:
        start = time.perf_counter()
        previous = {record.path: record for record in previous_index}
        result = IndexingResult()

        try:
            scanned = self.fs.scan(root)
        except Exception as e:
            logger.error("Could not scan %s: %s", root, e)
            result.error = str(e)
            result.duration_ms = (time.perf_counter() - start) * 1000
            return result

        files = [path for path in scanned if should_index_file(path)]
        logger.info("Found %s files to index (%s filtered)", len(files), len(scanned) - len(files))

        current_paths = set(files)
        total = len(files)
        done = 0

        for i in range(0, total, self.concurrency):
            batch = files[i:i + self.concurrency]
            to_embed = []

            for path in batch:
                prev = previous.get(path)
                try:
                    stat = self.fs.stat(path)
                    if prev is not None and not self._has_changed(path, stat, prev):
                        result.records.append(prev)
                        result.skipped += 1
                        done += 1
                        self._report(on_progress, done, total, path)
                        continue
                    if stat.size > self.max_file_size:
                        logger.debug("Skipping %s (%s bytes)", path, stat.size)
                        current_paths.discard(path)
                        done += 1
                        self._report(on_progress, done, total, path)
                        continue
                    content = self.fs.read(path)
                except OSError as e:
                    logger.warning("Could not index %s: %s", path, e)
                    result.failed += 1
                    done += 1
                    self._report(on_progress, done, total, path)
                    continue

                key = generate_file_cache_key(path, content)
                cached = self.cache.get_embedding(key)
                future = None if cached is not None else self._pool.submit(self.embedder.embed, content)
                to_embed.append((path, stat, content, key, cached, future, prev))

            for path, stat, content, key, cached, future, prev in to_embed:
                if future is not None:
                    embedding = future.result()
                    self._remember(key, embedding)
                else:
                    embedding = cached
                result.records.append(self._make_record(path, stat, content, key, embedding))
                if prev is not None:
                    result.updated += 1
                else:
                    result.added += 1
                done += 1
                self._report(on_progress, done, total, path)

        result.removed = sum(1 for path in previous if path not in current_paths)
        result.indexed = len(result.records)
        result.duration_ms = (time.perf_counter() - start) * 1000
        logger.info(
            "Indexing complete: %s files (added %s, updated %s, skipped %s, removed %s, failed %s) in %.2fs",
            result.indexed, result.added, result.updated, result.skipped,
            result.removed, result.failed, result.duration_ms / 1000,
        )
        return result

    def _has_changed(self, path: str, stat: FileStat, previous: FileRecord) -> bool:
        # A zero vector is a failed embedding; re-embed even if the file is untouched
        if not any(previous.embedding):
            return True
        if self.cache.get_file_metadata(path) is not None:
            return self.cache.has_file_changed(path, stat.modified_at, stat.size)
        return previous.last_modified != stat.modified_at

    def _embed(self, key: str, content: str) -> list[float]:
        embedding = self.embedder.embed(content)
        self._remember(key, embedding)
        return embedding

    def _remember(self, key: str, embedding: list[float]) -> None:
        # Zero vectors mark a failed embedding; leave them uncached so they retry
        if any(embedding):
            self.cache.set_embedding(key, embedding)

    def _make_record(
        self, path: str, stat: FileStat, content: str, key: str, embedding: list[float]
    ) -> FileRecord:
        self.cache.set_file_metadata(FileMetadata(
            path=path,
            last_modified=stat.modified_at,
            size=stat.size,
            hash=key,
        ))
        return FileRecord(
            path=path,
            content=content[: self.max_content_chars],
            embedding=embedding,
            last_modified=stat.modified_at,
        )

    @staticmethod
    def _report(on_progress: Optional[ProgressCallback], current: int, total: int, path: str) -> None:
        if on_progress is None:
            return
        try:
            on_progress(current, total, path)
        except Exception as e:
            logger.warning("Progress callback failed for %s: %s", path, e)
