"""Integration tests: real files on disk through indexing, graph and context assembly.

Embeddings come from the deterministic hash backend; everything else (file
system, tree-sitter parsing, chromadb store, cache file) is real.
"""

import os

import pytest

from codectx.cache import CacheManager
from codectx.embedding import EmbeddingService
from codectx.service import IndexService
from codectx.testing import HashEmbeddingBackend

CONFIG = {
    "state_dir": ".codectx",
    "embedding": {"dimension": 64},
    "cache": {},
    "indexer": {"concurrency": 3},
    "graph": {"min_rebuild_interval": 0.0},
    "context": {},
}


def _write(root, files):
    for path, content in files.items():
        target = root / path
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")


def _bump_mtime(path, seconds=10):
    stat = path.stat()
    os.utime(path, (stat.st_atime, stat.st_mtime + seconds))


@pytest.fixture
def make_service(tmp_path):
    created = []

    def _make():
        cache = CacheManager()
        embedder = EmbeddingService(None, HashEmbeddingBackend(), cache=cache, dimension=64)
        service = IndexService(CONFIG, repo_root=tmp_path, cache=cache, embedder=embedder)
        created.append(service)
        return service

    yield _make
    for service in created:
        service.close()


class TestDependencyAnalysis:
    """Graph queries over parsed TypeScript projects."""

    def test_chain_critical_file(self, tmp_path, make_service):
        _write(tmp_path, {
            "a.ts": "import { b } from './b';\nexport const a = b;\n",
            "b.ts": "import { c } from './c';\nexport const b = c;\n",
            "c.ts": "export const c = 1;\n",
        })
        service = make_service()
        service.index_project()
        graph = service.ensure_graph()
        assert graph.critical_files(1) == [("c.ts", 2)]

    def test_cycle_detection(self, tmp_path, make_service):
        _write(tmp_path, {
            "A.ts": "import './B';\nexport const a = 1;\n",
            "B.ts": "import './C';\nexport const b = 1;\n",
            "C.ts": "import './A';\nexport const c = 1;\n",
        })
        service = make_service()
        service.index_project()
        assert service.ensure_graph().detect_cycles() == [["A.ts", "B.ts", "C.ts"]]


class TestContext:
    """Context assembly over an indexed project."""

    def test_explain_symbol_puts_defining_file_first(self, tmp_path, make_service):
        _write(tmp_path, {
            "src/util.ts": "/** Doubles a value. */\nexport function foo(x: number): number {\n  return x * 2;\n}\n",
            "src/app.ts": "import { foo } from './util';\n\nexport function run() {\n  return foo(21);\n}\n",
            "src/theme.css": "body { color: black; }\n",
        })
        service = make_service()
        service.index_project()
        entries = service.query("explain foo")
        assert entries[0].path == "src/util.ts"
        assert entries[0].reason.startswith("Symbol match")
        assert "src/app.ts" in [e.path for e in entries]


class TestIncrementalUpdates:
    """Skip / update / remove across runs and restarts."""

    def test_skip_update_remove(self, tmp_path, make_service):
        _write(tmp_path, {
            "src/a.ts": "export const a = 1;\n",
            "src/b.ts": "export const b = 2;\n",
            "node_modules/dep/index.js": "module.exports = 1;\n",
        })
        service = make_service()
        first = service.index_project()
        assert first.added == 2

        second = service.index_project()
        assert second.skipped == 2

        (tmp_path / "src" / "a.ts").write_text("export const a = 100;\n", encoding="utf-8")
        _bump_mtime(tmp_path / "src" / "a.ts")
        (tmp_path / "src" / "b.ts").unlink()
        third = service.index_project()
        assert (third.updated, third.removed, third.added) == (1, 1, 0)
        assert [r.path for r in service.files] == ["src/a.ts"]

    def test_state_survives_restart(self, tmp_path, make_service):
        _write(tmp_path, {"src/a.ts": "export const a = 1;\n", "src/b.ts": "export const b = 2;\n"})
        service = make_service()
        service.index_project()
        service.save_state()

        restarted = make_service()
        assert restarted.load_state() == 2
        assert restarted.index_project().skipped == 2

    def test_missing_root_keeps_index(self, tmp_path, make_service):
        _write(tmp_path, {"src/a.ts": "export const a = 1;\n"})
        service = make_service()
        service.index_project()
        result = service.index_project("does-not-exist")
        assert result.error is not None
        assert [r.path for r in service.files] == ["src/a.ts"]
