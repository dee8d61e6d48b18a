"""Multi-signal context assembly.

Stages run in priority order and never add a path twice:

1. symbol matches (0.95) and files of related symbols (0.85)
2. the active file (1.0)
3. semantic matches (similarity, capped at 0.9)
4. dependencies (0.85) and dependents (0.75) of the active file
5. recently edited (0.7) and open (0.75) files
6. keyword matches (0.85)

Entries are then sorted by score, cut to max_files and fitted to the token
budget.
"""

import threading
import time
from collections import OrderedDict
from typing import Callable, Iterable, Iterator, Optional, Sequence

from ..analysis.graph import DependencyGraph, build_import_graph
from ..embedding import find_relevant_files
from ..logging_config import get_logger
from ..models import ContextBuildOptions, ContextEntry, ContextQuality, FileAnalysis, FileRecord
from .budget import apply_token_limit
from .search import keyword_matches

logger = get_logger(__name__)

SYMBOL_SCORE = 0.95
RELATED_SYMBOL_SCORE = 0.85
ACTIVE_FILE_SCORE = 1.0
SEMANTIC_SCORE_CAP = 0.9
DEPENDENCY_SCORE = 0.85
DEPENDENT_SCORE = 0.75
SUGGESTED_SCORE = 0.8
RECENT_SCORE = 0.7
OPEN_SCORE = 0.75
KEYWORD_SCORE = 0.85

MAX_SYMBOL_MATCHES = 5
MAX_DEPENDENTS = 2
MAX_SUGGESTED = 3
MAX_RECENT_EDITS = 3
MAX_OPEN_FILES = 2
MAX_KEYWORD_MATCHES = 2
MAX_DEPTH = 10


class ContextAssembler:
    """Ranks files for a query and tracks editor activity.

    Args:
        recent_limit: How many recently touched files to remember
        clock: Time source for edit timestamps
    """

    def __init__(self, recent_limit: int = 20, clock: Callable[[], float] = time.time):
        self.recent_limit = recent_limit
        self._clock = clock
        self._edit_history: OrderedDict[str, float] = OrderedDict()
        self._open_files: dict[str, None] = {}
        self._recent: list[str] = []
        self._lock = threading.Lock()

    # ------------------------------------------------------------ assembly

    def build_context(
        self,
        query: str,
        query_embedding: Sequence[float],
        all_files: Iterable[FileRecord],
        current_file: Optional[str] = None,
        options: Optional[ContextBuildOptions] = None,
        graph: Optional[DependencyGraph] = None,
    ) -> list[ContextEntry]:
        """Build ranked, budgeted context. Internal faults are logged and yield []."""
        options = options or ContextBuildOptions()
        try:
            return self._build(query, query_embedding, list(all_files), current_file, options, graph)
        except Exception:
            logger.exception("Context assembly failed for query %r", query)
            return []

    def _build(
        self,
        query: str,
        query_embedding: Sequence[float],
        all_files: list[FileRecord],
        current_file: Optional[str],
        options: ContextBuildOptions,
        graph: Optional[DependencyGraph],
    ) -> list[ContextEntry]:
        by_path = {record.path: record for record in all_files}
        entries: list[ContextEntry] = []
        added: set[str] = set()

        def add(entry: ContextEntry) -> None:
            if entry.path not in added:
                entries.append(entry)
                added.add(entry.path)

        if graph is not None:
            for entry in self._symbol_entries(query, graph, by_path):
                add(entry)

        if current_file and current_file in by_path:
            analysis = graph.nodes.get(current_file) if graph is not None else None
            add(self._file_entry(by_path[current_file], ACTIVE_FILE_SCORE, "Active file", analysis, True))

        remaining = [record for record in all_files if record.path not in added]
        for record, similarity in find_relevant_files(
            query_embedding, remaining, options.semantic_top_k, options.min_similarity
        ):
            add(ContextEntry(
                path=record.path,
                content=record.content,
                score=min(similarity, SEMANTIC_SCORE_CAP),
                reason=f"Semantic match ({similarity * 100:.0f}%)",
            ))

        if options.include_dependencies and current_file:
            for entry in self._dependency_entries(current_file, graph, by_path, all_files):
                add(entry)

        if options.include_recent:
            for path in [p for p in self.recently_edited() if p not in added][:MAX_RECENT_EDITS]:
                if path in by_path:
                    add(self._file_entry(by_path[path], RECENT_SCORE, "Recently edited"))

        if options.prioritize_open:
            for path in [p for p in self.get_open_files() if p not in added][:MAX_OPEN_FILES]:
                if path in by_path:
                    add(self._file_entry(by_path[path], OPEN_SCORE, "Open file"))

        keyword_hits = [r for r, _ in keyword_matches(query, all_files) if r.path not in added]
        for record in keyword_hits[:MAX_KEYWORD_MATCHES]:
            add(self._file_entry(record, KEYWORD_SCORE, "Keyword match"))

        # sort() is stable, so equal scores keep stage order
        entries.sort(key=lambda entry: entry.score, reverse=True)
        return apply_token_limit(entries[: options.max_files], options.max_tokens)

    @staticmethod
    def _file_entry(
        record: FileRecord,
        score: float,
        reason: str,
        analysis: Optional[FileAnalysis] = None,
        all_symbols_relevant: bool = False,
    ) -> ContextEntry:
        symbols = list(analysis.symbols) if analysis is not None else []
        return ContextEntry(
            path=record.path,
            content=record.content,
            score=score,
            reason=reason,
            relevant_symbols=[s.name for s in symbols] if all_symbols_relevant else [],
            symbols=symbols,
        )

    def _symbol_entries(
        self, query: str, graph: DependencyGraph, by_path: dict[str, FileRecord]
    ) -> Iterator[ContextEntry]:
        """Symbol matches and their related files, limited to indexed paths."""
        for symbol in graph.find_symbols(query, limit=MAX_SYMBOL_MATCHES):
            analysis = graph.nodes.get(symbol.file_path)
            record = by_path.get(symbol.file_path)
            if analysis is None or record is None:
                continue
            related = graph.related_symbols(symbol.name)
            logger.debug("Symbol match %s with %s related symbols", symbol.name, len(related))

            local = [symbol.name] + [r.name for r in related if r.file_path == symbol.file_path]
            yield ContextEntry(
                path=symbol.file_path,
                content=record.content,
                score=SYMBOL_SCORE,
                reason=f"Symbol match: {symbol.name}",
                relevant_symbols=list(dict.fromkeys(local)),
                symbols=list(analysis.symbols),
            )

            related_names = {r.name for r in related}
            for path in dict.fromkeys(r.file_path for r in related):
                related_analysis = graph.nodes.get(path)
                if path == symbol.file_path or related_analysis is None or path not in by_path:
                    continue
                related_symbols = [s for s in related_analysis.symbols if s.name in related_names]
                yield ContextEntry(
                    path=path,
                    content=by_path[path].content,
                    score=RELATED_SYMBOL_SCORE,
                    reason=f"Related to {symbol.name}",
                    relevant_symbols=[s.name for s in related_symbols],
                    symbols=list(related_analysis.symbols),
                )

    def _dependency_entries(
        self,
        current_file: str,
        graph: Optional[DependencyGraph],
        by_path: dict[str, FileRecord],
        all_files: list[FileRecord],
    ) -> Iterator[ContextEntry]:
        if graph is not None and current_file in graph.nodes:
            for path in graph.dependencies_of(current_file):
                if path in by_path:
                    yield self._file_entry(by_path[path], DEPENDENCY_SCORE, "Dependency", graph.nodes.get(path), True)
            for path in graph.dependents_of(current_file)[:MAX_DEPENDENTS]:
                if path in by_path:
                    yield self._file_entry(by_path[path], DEPENDENT_SCORE, "Dependent", graph.nodes.get(path), True)
            return

        # No syntax graph for this file: fall back to regex-detected imports
        import_graph = build_import_graph(all_files)
        for path in import_graph.suggest_context(current_file, MAX_SUGGESTED):
            if path in by_path:
                yield self._file_entry(by_path[path], SUGGESTED_SCORE, "Related file")

    # ------------------------------------------------------------ tracking

    def track_file_edit(self, path: str) -> None:
        with self._lock:
            self._edit_history[path] = self._clock()
            self._edit_history.move_to_end(path)
            self._add_to_recent(path)

    def track_file_open(self, path: str) -> None:
        with self._lock:
            self._open_files[path] = None
            self._add_to_recent(path)

    def track_file_close(self, path: str) -> None:
        with self._lock:
            self._open_files.pop(path, None)

    def _add_to_recent(self, path: str) -> None:
        if path in self._recent:
            self._recent.remove(path)
        self._recent.insert(0, path)
        del self._recent[self.recent_limit:]

    def recently_edited(self) -> list[str]:
        """Edited paths, most recent first."""
        with self._lock:
            return list(reversed(self._edit_history))

    def get_recent_files(self) -> list[str]:
        with self._lock:
            return list(self._recent)

    def get_open_files(self) -> list[str]:
        with self._lock:
            return list(self._open_files)

    def clear_history(self) -> None:
        with self._lock:
            self._recent.clear()
            self._open_files.clear()
            self._edit_history.clear()

    # ------------------------------------------------------------- quality

    def evaluate_context_quality(
        self, entries: list[ContextEntry], graph: Optional[DependencyGraph] = None
    ) -> ContextQuality:
        """Heuristic 0-100 rating of an assembled context with improvement hints."""
        if not entries:
            return ContextQuality(score=0.0, coverage="none", suggestions=["Context is empty, add more files"])

        suggestions = []
        score = min(len(entries) * 10, 50)
        average = sum(e.score for e in entries) / len(entries)
        score += average * 30
        reasons = {e.reason for e in entries}
        score += len(reasons) * 5

        total_symbols = sum(len(e.symbols) for e in entries)
        relevant_symbols = sum(len(e.relevant_symbols) for e in entries)
        has_semantic_data = total_symbols > 0
        if has_semantic_data:
            score += 10

        if average < 0.5:
            suggestions.append("Low relevance, make the query more specific")
        if len(entries) < 3:
            suggestions.append("Few files, add more context")
        if len(reasons) == 1:
            suggestions.append("Single source, include different kinds of files")
        if not has_semantic_data:
            suggestions.append("No symbol data, include TypeScript/JavaScript files")

        if score > 80:
            coverage = "excellent"
        elif score > 60:
            coverage = "good"
        elif score > 40:
            coverage = "fair"
        else:
            coverage = "poor"

        metrics = {}
        if has_semantic_data:
            metrics = {
                "total_symbols": total_symbols,
                "relevant_symbols": relevant_symbols,
                "dependency_depth": dependency_depth(graph, [e.path for e in entries]) if graph else 0,
            }
        return ContextQuality(score=score, coverage=coverage, suggestions=suggestions, semantic_metrics=metrics)


def dependency_depth(graph: DependencyGraph, paths: Iterable[str], limit: int = MAX_DEPTH) -> int:
    """Longest import chain (capped at limit) starting from any of paths."""
    def depth(path: str, visited: frozenset) -> int:
        if path in visited or len(visited) > limit:
            return len(visited) - 1 if visited else 0
        deps = graph.dependencies_of(path)
        if not deps:
            return len(visited)
        return max(depth(dep, visited | {path}) for dep in deps)

    return max((depth(p, frozenset()) for p in paths if p in graph.nodes), default=0)
