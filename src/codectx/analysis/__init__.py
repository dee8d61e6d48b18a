"""Syntax-tree analysis: symbol extraction and the file dependency graph."""

from .builder import GraphBuilder
from .extractor import SymbolExtractor, get_complexity_metrics, resolve_import_path
from .graph import DependencyGraph, build_dependency_graph, build_import_graph

__all__ = [
    "GraphBuilder",
    "SymbolExtractor",
    "get_complexity_metrics",
    "resolve_import_path",
    "DependencyGraph",
    "build_dependency_graph",
    "build_import_graph",
]
