"""Project-wide file dependency graph and symbol queries."""

import posixpath
import re
from dataclasses import dataclass, field
from typing import Iterable, Iterator, Optional

import networkx as nx

from ..logging_config import get_logger
from ..models import CallHierarchy, FileAnalysis, FileRecord, Symbol
from .extractor import is_relative_specifier, resolve_import_path

logger = get_logger(__name__)

_EXTENSION_CANDIDATES = (".ts", ".tsx", ".js", ".jsx", ".mts", ".mjs")
_INDEX_CANDIDATES = ("/index.ts", "/index.tsx", "/index.js", "/index.jsx")
# ESM sources often import "./x.js" while the file on disk is x.ts
_COMPILED_EXTENSIONS = {".js": (".ts", ".tsx"), ".jsx": (".tsx",), ".mjs": (".mts",)}

_WORD_RE = re.compile(r"[A-Za-z_$][\w$]*")
_REGEX_IMPORT_RE = re.compile(
    r"""(?:import|export)\s+(?:[\w*{}\s,$]+?\s+from\s+)?['"]([^'"\n]+)['"]"""
    r"""|require\(\s*['"]([^'"\n]+)['"]\s*\)"""
)


@dataclass
class DependencyGraph:
    """File-level import graph.

    ``digraph`` holds an edge A -> B for every resolved import of B by A,
    with successors in source order. For every such edge, B is a node, A is
    in ``edges[B]`` and in ``nodes[B].dependents``.
    """
    nodes: dict[str, FileAnalysis] = field(default_factory=dict)
    digraph: nx.DiGraph = field(default_factory=nx.DiGraph)

    def __contains__(self, path: str) -> bool:
        return path in self.nodes

    @property
    def edges(self) -> dict[str, set[str]]:
        """Imported file -> files importing it."""
        return {path: set(self.digraph.predecessors(path)) for path in self.digraph}

    def add_node(self, analysis: FileAnalysis) -> None:
        analysis.dependents = []
        self.nodes[analysis.file_path] = analysis
        self.digraph.add_node(analysis.file_path)

    def add_import(self, importer: str, target: str) -> None:
        if importer == target or self.digraph.has_edge(importer, target):
            return
        self.digraph.add_edge(importer, target)
        self.nodes[target].dependents.append(importer)

    def resolve(self, dependency: str, from_path: str) -> Optional[str]:
        """Match a textual dependency to a node.

        Tries the exact path, then extension and index-file variants, then a
        partial-string match (either path containing the other). The last
        step is a heuristic and can pick the wrong file.
        """
        if dependency in self.nodes:
            return dependency

        candidates = [dependency + ext for ext in _EXTENSION_CANDIDATES]
        candidates += [dependency + index for index in _INDEX_CANDIDATES]
        stem, ext = posixpath.splitext(dependency)
        candidates += [stem + alt for alt in _COMPILED_EXTENSIONS.get(ext, ())]
        for candidate in candidates:
            if candidate in self.nodes:
                return candidate

        for path in self.nodes:
            if path != from_path and (dependency in path or path in dependency):
                return path
        return None

    # ------------------------------------------------------------ file queries

    def dependencies_of(self, path: str) -> list[str]:
        if path not in self.digraph:
            return []
        return list(self.digraph.successors(path))

    def dependents_of(self, path: str) -> list[str]:
        node = self.nodes.get(path)
        return list(node.dependents) if node is not None else []

    def all_dependencies(self, path: str) -> list[str]:
        """Every file reachable through imports, excluding path itself."""
        if path not in self.digraph:
            return []
        return sorted(nx.descendants(self.digraph, path))

    def all_dependents(self, path: str) -> list[str]:
        """Every file that transitively imports path, excluding path itself."""
        if path not in self.digraph:
            return []
        return sorted(nx.ancestors(self.digraph, path))

    def impact_score(self, path: str) -> int:
        return len(self.all_dependents(path))

    def critical_files(self, top_n: int = 10) -> list[tuple[str, int]]:
        scores = [(path, self.impact_score(path)) for path in self.nodes]
        scores.sort(key=lambda item: item[1], reverse=True)
        return scores[:top_n]

    def detect_cycles(self) -> list[list[str]]:
        """Every simple import cycle, once each.

        A cycle is the ordered list of files starting at its lexicographically
        smallest member (the start is not repeated). Cycles are sorted.
        """
        cycles = set()
        for cycle in nx.simple_cycles(self.digraph):
            pivot = cycle.index(min(cycle))
            cycles.add(tuple(cycle[pivot:] + cycle[:pivot]))
        return [list(cycle) for cycle in sorted(cycles)]

    def relationship(self, file_a: str, file_b: str) -> str:
        """One of depends-on, depended-by, related (shared dependency) or unrelated."""
        if file_a not in self.nodes or file_b not in self.nodes:
            return "unrelated"
        if self.digraph.has_edge(file_a, file_b):
            return "depends-on"
        if self.digraph.has_edge(file_b, file_a):
            return "depended-by"
        if nx.descendants(self.digraph, file_a) & nx.descendants(self.digraph, file_b):
            return "related"
        return "unrelated"

    def suggest_context(self, path: str, max_files: int = 5) -> list[str]:
        """Files worth sending alongside path.

        Direct dependencies first, then up to two direct dependents, then
        files under the same directory.
        """
        if path not in self.nodes:
            return []
        suggestions: dict[str, None] = {}
        for dep in self.dependencies_of(path):
            suggestions[dep] = None
        for dep in self.nodes[path].dependents[:2]:
            suggestions[dep] = None
        directory = posixpath.dirname(path)
        prefix = directory + "/" if directory else ""
        for other in self.nodes:
            if other != path and other.startswith(prefix):
                suggestions[other] = None
        return list(suggestions)[:max_files]

    # ---------------------------------------------------------- symbol queries

    def iter_symbols(self) -> Iterator[Symbol]:
        for analysis in self.nodes.values():
            yield from analysis.symbols

    def get_symbol(self, name: str) -> Optional[Symbol]:
        for symbol in self.iter_symbols():
            if symbol.name == name:
                return symbol
        return None

    def find_symbols(self, query: str, limit: int = 10) -> list[Symbol]:
        """Symbols named as a word in query, or whose name contains the whole query."""
        needle = query.strip().lower()
        if not needle:
            return []
        words = {w.lower() for w in _WORD_RE.findall(query)}
        results = []
        for symbol in self.iter_symbols():
            name = symbol.name.lower()
            if (len(name) >= 2 and name in words) or needle in name:
                results.append(symbol)
                if len(results) >= limit:
                    break
        return results

    def related_symbols(self, name: str) -> list[Symbol]:
        """Direct callees of the named symbol followed by its direct callers."""
        target = self.get_symbol(name)
        if target is None:
            return []
        related: list[Symbol] = []
        callees = set(target.dependencies)
        for symbol in self.iter_symbols():
            if symbol is not target and symbol.name in callees and symbol not in related:
                related.append(symbol)
        for symbol in self.iter_symbols():
            if symbol is not target and name in symbol.dependencies and symbol not in related:
                related.append(symbol)
        return related

    def call_hierarchy(self, name: str) -> Optional[CallHierarchy]:
        target = self.get_symbol(name)
        if target is None:
            logger.debug("Symbol not found for call hierarchy: %s", name)
            return None
        callees = [s for s in self.iter_symbols() if s is not target and s.name in target.dependencies]
        callers = [s for s in self.iter_symbols() if s is not target and name in s.dependencies]
        return CallHierarchy(symbol=name, file_path=target.file_path, callers=callers, callees=callees)

    def stats(self) -> dict:
        return {
            "files": len(self.nodes),
            "edges": self.digraph.number_of_edges(),
            "symbols": sum(len(a.symbols) for a in self.nodes.values()),
            "complexity": sum(a.complexity for a in self.nodes.values()),
            "lines_of_code": sum(a.lines_of_code for a in self.nodes.values()),
        }


def build_dependency_graph(analyses: Iterable[FileAnalysis]) -> DependencyGraph:
    """Aggregate per-file analyses into a graph.

    Resets every node's ``dependents`` before recomputing them, so a graph
    can be rebuilt from the same analyses any number of times.
    """
    graph = DependencyGraph()
    for analysis in analyses:
        graph.add_node(analysis)

    for path, analysis in graph.nodes.items():
        for dependency in analysis.dependencies:
            target = graph.resolve(dependency, path)
            if target is not None:
                graph.add_import(path, target)

    logger.debug(
        "Dependency graph built: %s nodes, %s edges",
        graph.digraph.number_of_nodes(), graph.digraph.number_of_edges(),
    )
    return graph


def build_import_graph(records: Iterable[FileRecord]) -> DependencyGraph:
    """Regex-based graph over indexed content, for when no syntax graph exists.

    Only import edges are known; nodes carry no symbols.
    """
    analyses = []
    for record in records:
        analysis = FileAnalysis(file_path=record.path)
        for match in _REGEX_IMPORT_RE.finditer(record.content):
            specifier = match.group(1) or match.group(2)
            if is_relative_specifier(specifier):
                resolved = resolve_import_path(record.path, specifier)
                if resolved not in analysis.dependencies:
                    analysis.dependencies.append(resolved)
        analyses.append(analysis)
    return build_dependency_graph(analyses)
