"""Data structures shared by the indexer, analyzer and context assembler.

- FileRecord / FileMetadata / FileStat: the indexed view of one source file
- Symbol / ImportInfo / ExportInfo / FileAnalysis: syntax-level extraction results
- ContextEntry / ContextBuildOptions: ranked context output and its knobs
- IndexingResult / CallHierarchy / ContextQuality: operation results
"""

from dataclasses import dataclass, field
from enum import Enum


class CodectxError(Exception):
    """Base class for errors raised by the context engine."""


class ParseError(CodectxError):
    """A source file could not be parsed."""

    def __init__(self, file_path: str, message: str):
        super().__init__(f"{file_path}: {message}")
        self.file_path = file_path


class EmbeddingError(CodectxError):
    """An embedding backend failed to produce a vector."""


# =============================================================================
# Indexed files
# =============================================================================

@dataclass
class FileStat:
    """Fingerprint returned by the file-system stat primitive."""
    modified_at: float
    size: int


@dataclass
class FileRecord:
    """One indexed file. Replaced wholesale whenever the file is re-indexed."""
    path: str
    content: str                 # Truncated to the indexer's max_content_chars
    embedding: list[float]
    last_modified: float

    def to_dict(self) -> dict:
        return {
            "path": self.path,
            "content": self.content,
            "embedding": list(self.embedding),
            "last_modified": self.last_modified,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "FileRecord":
        return cls(
            path=data["path"],
            content=data.get("content", ""),
            embedding=list(data.get("embedding", [])),
            last_modified=float(data.get("last_modified", 0.0)),
        )


@dataclass
class FileMetadata:
    """Change-detection fingerprint kept in the metadata cache region."""
    path: str
    last_modified: float
    size: int
    hash: str                    # File cache key (path + content hash)

    def to_dict(self) -> dict:
        return {
            "path": self.path,
            "last_modified": self.last_modified,
            "size": self.size,
            "hash": self.hash,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "FileMetadata":
        return cls(
            path=data["path"],
            last_modified=float(data["last_modified"]),
            size=int(data.get("size", 0)),
            hash=data.get("hash", ""),
        )


# =============================================================================
# Symbols and file analysis
# =============================================================================

class SymbolKind(str, Enum):
    """Kind of a declared symbol."""
    FUNCTION = "function"
    CLASS = "class"
    INTERFACE = "interface"
    VARIABLE = "variable"
    CONST = "const"
    TYPE = "type"
    ENUM = "enum"


@dataclass
class Symbol:
    """A named declaration extracted from a syntax tree."""
    name: str
    kind: SymbolKind
    file_path: str
    line: int                    # 1-based
    column: int                  # 1-based
    signature: str
    documentation: str | None = None
    is_exported: bool = False
    dependencies: list[str] = field(default_factory=list)  # Names called within the declaration
    end_line: int = 0            # 1-based, inclusive; 0 when unknown
    complexity: int = 0          # Cyclomatic complexity, 0 for non-callable kinds

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "kind": self.kind.value,
            "file_path": self.file_path,
            "line": self.line,
            "column": self.column,
            "signature": self.signature,
            "documentation": self.documentation,
            "is_exported": self.is_exported,
            "dependencies": list(self.dependencies),
            "end_line": self.end_line,
            "complexity": self.complexity,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Symbol":
        return cls(
            name=data["name"],
            kind=SymbolKind(data["kind"]),
            file_path=data["file_path"],
            line=data.get("line", 1),
            column=data.get("column", 0),
            signature=data.get("signature", ""),
            documentation=data.get("documentation"),
            is_exported=data.get("is_exported", False),
            dependencies=list(data.get("dependencies", [])),
            end_line=data.get("end_line", 0),
            complexity=data.get("complexity", 0),
        )


@dataclass
class ImportInfo:
    module_name: str
    imported_symbols: list[str] = field(default_factory=list)
    is_default: bool = False
    line: int = 0
    is_type_only: bool = False


@dataclass
class ExportInfo:
    symbol_name: str
    is_default: bool = False
    line: int = 0


@dataclass
class FileAnalysis:
    """Everything the extractor learned about one file.

    ``dependents`` is never filled by the extractor; the graph builder
    recomputes it on every rebuild.
    """
    file_path: str
    symbols: list[Symbol] = field(default_factory=list)
    imports: list[ImportInfo] = field(default_factory=list)
    exports: list[ExportInfo] = field(default_factory=list)
    dependencies: list[str] = field(default_factory=list)
    dependents: list[str] = field(default_factory=list)
    complexity: int = 0
    lines_of_code: int = 0


# =============================================================================
# Context assembly
# =============================================================================

@dataclass
class ContextEntry:
    """A ranked piece of file content handed to the prompt builder."""
    path: str
    content: str
    score: float
    reason: str
    relevant_symbols: list[str] = field(default_factory=list)
    symbols: list[Symbol] = field(default_factory=list)  # Spans used for chunking

    def to_dict(self) -> dict:
        return {
            "path": self.path,
            "content": self.content,
            "score": self.score,
            "reason": self.reason,
            "relevant_symbols": list(self.relevant_symbols),
        }


@dataclass
class ContextBuildOptions:
    max_files: int = 10
    max_tokens: int = 8000
    include_recent: bool = True
    include_dependencies: bool = True
    prioritize_open: bool = True
    semantic_top_k: int = 5
    min_similarity: float = 0.15


# =============================================================================
# Operation results
# =============================================================================

@dataclass
class IndexingResult:
    indexed: int = 0
    added: int = 0
    updated: int = 0
    skipped: int = 0
    removed: int = 0
    failed: int = 0
    duration_ms: float = 0.0
    records: list[FileRecord] = field(default_factory=list)
    error: str | None = None     # Set when the scan itself failed

    def to_dict(self) -> dict:
        """Serialize the counters (records are omitted)."""
        return {
            "indexed": self.indexed,
            "added": self.added,
            "updated": self.updated,
            "skipped": self.skipped,
            "removed": self.removed,
            "failed": self.failed,
            "duration_ms": self.duration_ms,
            "error": self.error,
        }


@dataclass
class CallHierarchy:
    symbol: str
    file_path: str
    callers: list[Symbol] = field(default_factory=list)
    callees: list[Symbol] = field(default_factory=list)


@dataclass
class ContextQuality:
    score: float
    coverage: str
    suggestions: list[str] = field(default_factory=list)
    semantic_metrics: dict = field(default_factory=dict)
