"""File-system primitives consumed by the indexer (scan, read, stat)."""

import os
from pathlib import Path
from typing import Protocol

from .ignore import IGNORED_DIRECTORIES, load_ignore_patterns, should_ignore
from .logging_config import get_logger
from .models import FileStat

logger = get_logger(__name__)


class FileSystem(Protocol):
    """Contract the indexer depends on. Paths are opaque string keys."""

    def scan(self, root: str) -> list[str]:
        ...

    def read(self, path: str) -> str:
        ...

    def stat(self, path: str) -> FileStat:
        ...


class LocalFileSystem:
    """Disk-backed file system rooted at a repository directory.

    Paths handed out and accepted are POSIX-style and relative to ``base_dir``,
    so they double as stable index keys across machines.
    """

    def __init__(self, base_dir: str | Path):
        self.base_dir = Path(base_dir).resolve()
        self._patterns = load_ignore_patterns(self.base_dir)

    def reload_ignore_patterns(self) -> None:
        self._patterns = load_ignore_patterns(self.base_dir)

    def resolve(self, path: str) -> Path:
        return self.base_dir / path

    def relative(self, path: str | Path) -> str | None:
        """Convert an absolute path into an index key, None if outside base_dir."""
        try:
            return Path(path).resolve().relative_to(self.base_dir).as_posix()
        except ValueError:
            return None

    def is_ignored(self, rel_path: str, is_dir: bool = False) -> bool:
        return should_ignore(rel_path, self._patterns, is_dir=is_dir)

    def scan(self, root: str = ".") -> list[str]:
        """List files under root, honoring .gitignore / .ctxignore.

        Raises:
            FileNotFoundError: If root is not a directory
        """
        start = self.resolve(root)
        if not start.is_dir():
            raise FileNotFoundError(f"Not a directory: {start}")

        results = []
        for dirpath, dirnames, filenames in os.walk(start):
            rel_dir = Path(dirpath).relative_to(self.base_dir).as_posix()
            rel_dir = "" if rel_dir == "." else rel_dir

            # Prune in place so os.walk never descends into ignored trees
            kept = []
            for name in sorted(dirnames):
                rel = f"{rel_dir}/{name}" if rel_dir else name
                if name in IGNORED_DIRECTORIES or self.is_ignored(rel, is_dir=True):
                    continue
                kept.append(name)
            dirnames[:] = kept

            for name in sorted(filenames):
                rel = f"{rel_dir}/{name}" if rel_dir else name
                if not self.is_ignored(rel):
                    results.append(rel)

        logger.debug("Scanned %s files under %s", len(results), start)
        return results

    def read(self, path: str) -> str:
        with open(self.resolve(path), "r", encoding="utf-8", errors="replace") as f:
            return f.read()

    def stat(self, path: str) -> FileStat:
        st = self.resolve(path).stat()
        return FileStat(modified_at=st.st_mtime, size=st.st_size)
