"""Unit tests for the IndexService facade."""

from codectx.models import ContextBuildOptions
from codectx.testing import InMemoryFileSystem

THROTTLED_GRAPH = {
    "embedding": {"dimension": 64},
    "indexer": {"concurrency": 2},
    "graph": {"min_rebuild_interval": 60.0},
}

PROJECT = {
    "src/util.ts": "export function foo(x: number): number {\n  return x * 2;\n}\n",
    "src/main.ts": "import { foo } from './util';\nexport function main() {\n  return foo(1);\n}\n",
    "README.md": "# Demo project\n",
}


class TestIndexing:
    """Test index bookkeeping and invalidation."""

    def test_index_project_populates_files(self, service_factory):
        service = service_factory(PROJECT)
        result = service.index_project()
        assert result.added == 3
        assert sorted(r.path for r in service.files) == ["README.md", "src/main.ts", "src/util.ts"]

    def test_scan_failure_keeps_previous_index(self, service_factory):
        fs = InMemoryFileSystem(PROJECT)
        service = service_factory(fs=fs)
        service.index_project()
        fs.fail_scan = True
        result = service.index_project()
        assert result.error is not None
        assert len(service.files) == 3

    def test_unchanged_reindex_does_not_bump_generation(self, service_factory):
        service = service_factory(PROJECT)
        service.index_project()
        generation = service.generation
        service.index_project()
        assert service.generation == generation

    def test_index_file_and_remove_file(self, service_factory):
        fs = InMemoryFileSystem(PROJECT)
        service = service_factory(fs=fs)
        service.index_project()

        fs.write("src/new.ts", "export const fresh = true;")
        assert service.index_file("src/new.ts").path == "src/new.ts"
        assert "src/new.ts" in [r.path for r in service.files]

        fs.delete("src/new.ts")
        assert service.index_file("src/new.ts") is None
        assert "src/new.ts" not in [r.path for r in service.files]
        assert service.remove_file("src/main.ts") is True
        assert service.remove_file("src/main.ts") is False

    def test_graph_follows_index_changes(self, service_factory):
        fs = InMemoryFileSystem(PROJECT)
        service = service_factory(fs=fs)
        service.index_project()
        assert service.ensure_graph().dependencies_of("src/main.ts") == ["src/util.ts"]

        fs.write("src/main.ts", "export function main() { return 1; }\n")
        service.index_file("src/main.ts")
        assert service.ensure_graph().dependencies_of("src/main.ts") == []

    def test_index_project_rebuilds_throttled_graph(self, service_factory):
        fs = InMemoryFileSystem(PROJECT)
        service = service_factory(fs=fs, config=THROTTLED_GRAPH)
        service.index_project()
        assert service.query("explain foo")[0].path == "src/util.ts"

        fs.delete("src/util.ts")
        assert service.index_project().removed == 1
        assert "src/util.ts" not in service.graph
        assert "src/util.ts" not in [e.path for e in service.query("explain foo")]

    def test_removed_file_leaves_context_before_graph_rebuild(self, service_factory):
        service = service_factory(PROJECT, config=THROTTLED_GRAPH)
        service.index_project()
        service.remove_file("src/util.ts")
        assert "src/util.ts" in service.ensure_graph()
        assert "src/util.ts" not in [e.path for e in service.query("explain foo")]


class TestQueries:
    """Test query, rendering and response memoization."""

    def test_query_finds_symbol(self, service_factory):
        service = service_factory(PROJECT)
        service.index_project()
        entries = service.query("explain foo")
        assert entries[0].path == "src/util.ts"
        assert entries[0].reason == "Symbol match: foo"

    def test_query_options(self, service_factory):
        service = service_factory(PROJECT)
        service.index_project()
        assert len(service.query("foo main demo", options=ContextBuildOptions(max_files=1))) == 1

    def test_render_context_is_memoized_until_index_changes(self, service_factory):
        fs = InMemoryFileSystem(PROJECT)
        service = service_factory(fs=fs)
        service.index_project()

        first = service.render_context("explain foo")
        assert "src/util.ts" in first
        assert service.cache.stats()["responses"] == 1
        assert service.render_context("explain foo") == first
        assert service.cache.stats()["responses"] == 1

        fs.write("src/util.ts", "export function foo() { return 'changed'; }\n")
        service.index_file("src/util.ts")
        assert "changed" in service.render_context("explain foo")

    def test_tracking_reaches_assembler(self, service_factory):
        service = service_factory(PROJECT)
        service.index_project()
        service.track_file_open("README.md")
        service.track_file_edit("src/main.ts")
        service.track_file_close("README.md")
        assert service.assembler.get_open_files() == []
        assert service.assembler.recently_edited() == ["src/main.ts"]


class TestPersistence:

    def test_save_and_load_state(self, service_factory, tmp_path):
        fs = InMemoryFileSystem(PROJECT)
        service = service_factory(fs=fs)
        service.index_project()
        service.save_state()
        assert (tmp_path / ".codectx" / "cache.json").exists()

        restored = service_factory(fs=fs)
        restored.store = service.store
        assert restored.load_state() == 3
        result = restored.index_project()
        assert result.skipped == 3

    def test_stats(self, service_factory):
        service = service_factory(PROJECT)
        service.index_project()
        stats = service.stats()
        assert stats["files"] == 3
        assert stats["using_fallback"] is True
        assert stats["embedding_backend"] == "hash"
