"""Unit tests for index inclusion rules and the local file system."""

import pytest

from codectx.filesystem import LocalFileSystem
from codectx.ignore import load_ignore_patterns, should_ignore, should_index_file


class TestShouldIndexFile:
    """Test the built-in exclusion filter."""

    @pytest.mark.parametrize("path", [
        "src/app.ts",
        "README.md",
        "package.json",
        "src/styles/site.css",
    ])
    def test_source_files_are_indexed(self, path):
        assert should_index_file(path)

    @pytest.mark.parametrize("path", [
        "node_modules/react/index.js",
        "packages/web/dist/bundle.js",
        "public/assets/app.js",
        "img/logo.png",
        "package-lock.json",
        "vendor/jquery.min.js",
        "fonts/inter.woff2",
        "",
    ])
    def test_excluded_files(self, path):
        assert not should_index_file(path)


class TestIgnorePatterns:
    """Test .gitignore / .ctxignore handling."""

    def test_gitignore_and_ctxignore_negation(self, tmp_path):
        (tmp_path / ".gitignore").write_text("*.generated.ts\nbuild/\n/secret.ts\n", encoding="utf-8")
        (tmp_path / ".ctxignore").write_text("!keep.generated.ts\n", encoding="utf-8")
        patterns = load_ignore_patterns(tmp_path)

        assert should_ignore("src/api.generated.ts", patterns)
        assert not should_ignore("keep.generated.ts", patterns)
        assert should_ignore("build", patterns, is_dir=True)
        assert should_ignore("pkg/build/out.js", patterns)
        assert should_ignore("secret.ts", patterns)
        assert not should_ignore("src/secret.ts", patterns)
        assert not should_ignore("src/app.ts", patterns)

    def test_dot_paths_are_always_ignored(self):
        assert should_ignore(".codectx/cache.json", [])
        assert should_ignore("src/.env", [])

    def test_missing_ignore_files(self, tmp_path):
        assert load_ignore_patterns(tmp_path) == []


class TestLocalFileSystem:
    """Test scanning, reading and stat on disk."""

    def test_scan_returns_relative_posix_paths(self, tmp_path):
        (tmp_path / "src" / "lib").mkdir(parents=True)
        (tmp_path / "src" / "lib" / "a.ts").write_text("export const a = 1;", encoding="utf-8")
        (tmp_path / "src" / "b.ts").write_text("export const b = 2;", encoding="utf-8")
        (tmp_path / "node_modules" / "x").mkdir(parents=True)
        (tmp_path / "node_modules" / "x" / "index.js").write_text("", encoding="utf-8")
        (tmp_path / ".codectx").mkdir()
        (tmp_path / ".codectx" / "cache.json").write_text("{}", encoding="utf-8")
        (tmp_path / ".gitignore").write_text("src/lib/\n", encoding="utf-8")

        fs = LocalFileSystem(tmp_path)
        assert fs.scan() == ["src/b.ts"]

    def test_read_and_stat(self, tmp_path):
        (tmp_path / "a.ts").write_text("héllo", encoding="utf-8")
        fs = LocalFileSystem(tmp_path)
        assert fs.read("a.ts") == "héllo"
        assert fs.stat("a.ts").size == len("héllo".encode("utf-8"))

    def test_scan_missing_root_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            LocalFileSystem(tmp_path).scan("nope")

    def test_relative(self, tmp_path):
        fs = LocalFileSystem(tmp_path)
        assert fs.relative(tmp_path / "src" / "a.ts") == "src/a.ts"
        assert fs.relative(tmp_path.parent / "elsewhere.ts") is None
