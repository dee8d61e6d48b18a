"""Keyword, hybrid and pattern-based file selection over the file index."""

import posixpath
import re
from typing import Iterable, Sequence

from ..embedding import cosine_similarity
from ..models import FileRecord

MIN_WORD_LENGTH = 3

IMPORTANT_FILE_PATTERNS = [
    re.compile(r"package\.json$"),
    re.compile(r"tsconfig\.json$"),
    re.compile(r"README\.md$", re.IGNORECASE),
    re.compile(r"vite\.config\.(ts|js)$"),
    re.compile(r"tailwind\.config\.(ts|js)$"),
    re.compile(r"postcss\.config\.(ts|js)$"),
    re.compile(r"Cargo\.toml$"),
    re.compile(r"pyproject\.toml$"),
    re.compile(r"\.gitignore$"),
]

STRUCTURE_FILE_PATTERNS = [
    re.compile(p)
    for p in (
        r"(^|/)src/index\.(ts|tsx|js|jsx)$",
        r"(^|/)src/App\.(ts|tsx|js|jsx)$",
        r"(^|/)src/main\.(ts|tsx|js|jsx)$",
        r"(^|/)src/types/index\.ts$",
        r"(^|/)src/services/[^/]+\.ts$",
    )
]

LANGUAGES = {
    "ts": "typescript",
    "tsx": "typescript",
    "mts": "typescript",
    "cts": "typescript",
    "js": "javascript",
    "jsx": "javascript",
    "mjs": "javascript",
    "cjs": "javascript",
    "rs": "rust",
    "py": "python",
    "json": "json",
    "md": "markdown",
    "css": "css",
    "html": "html",
    "toml": "toml",
}


def query_words(query: str) -> list[str]:
    """Lower-cased whitespace-separated words longer than two characters."""
    return [w for w in query.lower().split() if len(w) >= MIN_WORD_LENGTH]


def keyword_matches(query: str, files: Iterable[FileRecord]) -> list[tuple[FileRecord, int]]:
    """Files mentioning query words; a path hit weighs 3, a content hit 1."""
    words = query_words(query)
    if not words:
        return []
    matches = []
    for record in files:
        path = record.path.lower()
        content = record.content.lower()
        count = 0
        for word in words:
            if word in path:
                count += 3
            if word in content:
                count += 1
        if count > 0:
            matches.append((record, count))
    matches.sort(key=lambda item: item[1], reverse=True)
    return matches


def hybrid_search(
    query: str,
    files: Iterable[FileRecord],
    query_embedding: Sequence[float],
    top_k: int = 5,
    min_score: float = 0.15,
) -> list[tuple[FileRecord, float]]:
    """Blend embedding similarity (0.6), keyword coverage (0.3) and a filename hit (0.1)."""
    words = query_words(query)
    scored = []
    for record in files:
        embedding_score = cosine_similarity(query_embedding, record.embedding)
        text = (record.path + " " + record.content).lower()
        keyword_score = sum(1 for w in words if w in text) / len(words) if words else 0.0
        name = posixpath.basename(record.path).lower()
        filename_score = 0.5 if any(w in name for w in words) else 0.0
        score = embedding_score * 0.6 + keyword_score * 0.3 + filename_score * 0.1
        scored.append((record, score))
    scored.sort(key=lambda item: item[1], reverse=True)
    return [(record, score) for record, score in scored[:top_k] if score > min_score]


def get_important_files(files: Iterable[FileRecord]) -> list[FileRecord]:
    """Project manifests and configuration files."""
    return [f for f in files if any(p.search(f.path) for p in IMPORTANT_FILE_PATTERNS)]


def get_project_structure_files(files: Iterable[FileRecord]) -> list[FileRecord]:
    """Entry points and service modules that outline the project layout."""
    return [f for f in files if any(p.search(f.path) for p in STRUCTURE_FILE_PATTERNS)]


def language_for_path(path: str) -> str:
    _, ext = posixpath.splitext(path.lower())
    ext = ext.lstrip(".")
    return LANGUAGES.get(ext, ext or "text")
