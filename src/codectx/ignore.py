"""Index inclusion rules: built-in exclusions plus .gitignore / .ctxignore patterns."""

import posixpath
import re
from pathlib import Path

from .logging_config import get_logger

logger = get_logger(__name__)

IGNORE_FILE_NAME = ".ctxignore"

IGNORED_DIRECTORIES = {
    "node_modules", "dist", "build", ".git", ".next", "target", "out", ".turbo",
    "coverage", ".cache", "public/assets", ".vscode", ".idea", "__pycache__",
    "venv", "env",
}

IGNORED_EXTENSIONS = {
    # Images
    ".png", ".jpg", ".jpeg", ".gif", ".bmp", ".ico", ".svg", ".webp", ".tiff",
    # Fonts
    ".woff", ".woff2", ".ttf", ".otf", ".eot",
    # Media
    ".mp3", ".mp4", ".wav", ".ogg", ".webm", ".avi", ".mov", ".flac",
    # Archives
    ".zip", ".tar", ".gz", ".tgz", ".bz2", ".xz", ".7z", ".rar",
    # Binaries
    ".exe", ".dll", ".so", ".dylib", ".bin", ".o", ".a", ".class", ".pyc", ".wasm", ".pdf",
    # Generated
    ".lock", ".log", ".map",
}

IGNORED_FILE_NAMES = {"package-lock.json", "yarn.lock", "Cargo.lock"}
IGNORED_FILE_SUFFIXES = (".min.js", ".min.css")

IgnorePattern = tuple[re.Pattern, bool, bool]


def should_index_file(path: str) -> bool:
    """Built-in inclusion filter applied to every scanned path.

    Excludes dependency, build and VCS directories, binary and media files,
    lock files and minified bundles.
    """
    normalized = path.replace("\\", "/")
    parts = [p for p in normalized.split("/") if p]
    if not parts:
        return False

    # Directory components, plus two-component names like public/assets
    directories = parts[:-1]
    for i, part in enumerate(directories):
        if part in IGNORED_DIRECTORIES:
            return False
        if i + 1 < len(directories) and f"{part}/{directories[i + 1]}" in IGNORED_DIRECTORIES:
            return False

    name = parts[-1]
    if name in IGNORED_FILE_NAMES or name.endswith(IGNORED_FILE_SUFFIXES):
        return False
    _, ext = posixpath.splitext(name.lower())
    return ext not in IGNORED_EXTENSIONS


def _parse_gitignore_pattern(pattern: str) -> tuple[str | None, bool, bool]:
    """Parse a gitignore pattern into a regex pattern.

    Returns:
        (regex_pattern, is_directory_pattern, negated) or (None, False, False) if should skip
    """
    pattern = pattern.strip()

    if not pattern or pattern.startswith("#"):
        return None, False, False

    negated = pattern.startswith("!")
    if negated:
        pattern = pattern[1:]

    is_dir = pattern.endswith("/")
    if is_dir:
        pattern = pattern[:-1]

    anchored = pattern.startswith("/")
    if anchored:
        pattern = pattern[1:]

    # Escape special regex chars, then restore wildcards
    pattern = re.escape(pattern)
    pattern = pattern.replace(r"\*\*", "GITIGNORE_DOUBLE_STAR")
    pattern = pattern.replace(r"\*", r"[^/]*")
    pattern = pattern.replace(r"\?", r"[^/]")
    pattern = pattern.replace("GITIGNORE_DOUBLE_STAR", r".*")

    pattern = ("^" if anchored else "(^|/)") + pattern
    if is_dir:
        # Match the directory itself and anything beneath it
        pattern += "/"
    else:
        pattern += "(/|$)"

    return pattern, is_dir, negated


def _load_pattern_file(path: Path) -> list[IgnorePattern]:
    patterns: list[IgnorePattern] = []
    if not path.exists():
        return patterns

    try:
        with open(path, "r", encoding="utf-8") as f:
            for line in f:
                pattern_str, is_dir, negated = _parse_gitignore_pattern(line)
                if not pattern_str:
                    continue
                try:
                    patterns.append((re.compile(pattern_str), is_dir, negated))
                except re.error:
                    logger.debug("Skipping invalid pattern %r in %s", line.strip(), path)
    except OSError as e:
        logger.warning("Could not read %s: %s", path, e)

    return patterns


def load_ignore_patterns(repo_root: Path) -> list[IgnorePattern]:
    """Load .gitignore then .ctxignore patterns.

    .ctxignore comes last so it can re-include paths with negation (!).
    """
    repo_root = Path(repo_root)
    patterns = _load_pattern_file(repo_root / ".gitignore")
    patterns.extend(_load_pattern_file(repo_root / IGNORE_FILE_NAME))
    return patterns


def should_ignore(rel_path: str, patterns: list[IgnorePattern], is_dir: bool = False) -> bool:
    """Check a repo-relative path against ignore patterns.

    Dot-prefixed path components are always ignored and cannot be re-included.
    """
    rel_path = rel_path.replace("\\", "/").strip("/")
    if any(part.startswith(".") for part in rel_path.split("/")):
        return True

    candidate = rel_path + ("/" if is_dir else "")
    ignored = False
    for pattern, _, negated in patterns:
        if pattern.search(candidate):
            ignored = not negated
    return ignored
