"""Throttled dependency-graph rebuilds over the current file index."""

import threading
import time
from typing import Callable, Iterable, Optional

from ..cache import hash_string
from ..logging_config import get_logger
from ..models import FileAnalysis, FileRecord, ParseError
from .extractor import SymbolExtractor
from .graph import DependencyGraph, build_dependency_graph

logger = get_logger(__name__)


class GraphBuilder:
    """Owns per-file analyses and the current DependencyGraph.

    Analyses are memoized by content hash, so a rebuild only re-parses files
    whose content changed. A rebuild happens on explicit request, or through
    maybe_rebuild() when no graph exists yet or when the graph is dirty and
    at least ``min_interval`` seconds have passed since the last build.
    """

    def __init__(
        self,
        extractor: Optional[SymbolExtractor] = None,
        min_interval: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.extractor = extractor or SymbolExtractor()
        self.min_interval = min_interval
        self._clock = clock
        self._analyses: dict[str, tuple[str, Optional[FileAnalysis]]] = {}
        self.failures: dict[str, str] = {}
        self.graph: Optional[DependencyGraph] = None
        self._dirty = False
        self._last_build: Optional[float] = None
        self._lock = threading.Lock()

    @property
    def is_dirty(self) -> bool:
        return self._dirty

    @property
    def last_build(self) -> Optional[float]:
        return self._last_build

    def analyze_file(self, path: str, content: str) -> Optional[FileAnalysis]:
        """Analyze one file, reusing the previous result if content is unchanged.

        Parse failures are logged and the file is left out (None).
        """
        digest = hash_string(content)
        cached = self._analyses.get(path)
        if cached is not None and cached[0] == digest:
            return cached[1]

        try:
            analysis = self.extractor.analyze(path, content)
            self.failures.pop(path, None)
        except ParseError as e:
            logger.warning("Excluding %s from the dependency graph: %s", path, e)
            self.failures[path] = str(e)
            analysis = None

        self._analyses[path] = (digest, analysis)
        return analysis

    def rebuild(self, files: Iterable[FileRecord]) -> DependencyGraph:
        with self._lock:
            start = time.time()
            analyses = []
            live = set()
            for record in files:
                live.add(record.path)
                analysis = self.analyze_file(record.path, record.content)
                if analysis is not None:
                    analyses.append(analysis)

            for path in list(self._analyses):
                if path not in live:
                    del self._analyses[path]
                    self.failures.pop(path, None)

            self.graph = build_dependency_graph(analyses)
            self._dirty = False
            self._last_build = self._clock()
            logger.info(
                "Dependency graph rebuilt: %s files, %s parse failures (%.2fs)",
                len(self.graph.nodes), len(self.failures), time.time() - start,
            )
            return self.graph

    def request_rebuild(self) -> None:
        """Mark the graph stale; the next eligible maybe_rebuild() rebuilds it."""
        self._dirty = True

    def maybe_rebuild(self, files: Iterable[FileRecord]) -> DependencyGraph:
        if self.graph is None:
            return self.rebuild(files)
        if self._dirty and self._clock() - self._last_build >= self.min_interval:
            return self.rebuild(files)
        return self.graph

    def stats(self) -> dict:
        stats = self.graph.stats() if self.graph is not None else {}
        stats.update({
            "analyzed_files": sum(1 for _, a in self._analyses.values() if a is not None),
            "parse_failures": len(self.failures),
            "dirty": self._dirty,
        })
        return stats
