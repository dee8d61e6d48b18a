"""Unit tests for the codectx command line."""

import pytest

from codectx import __main__ as cli
from codectx.testing import InMemoryFileSystem

PROJECT = {
    "src/util.ts": "export function foo(x: number): number {\n  return x * 2;\n}\n",
    "src/main.ts": "import { foo } from './util';\nexport function main() {\n  return foo(1);\n}\n",
}


@pytest.fixture
def fake_service(monkeypatch, service_factory):
    """Route the CLI to an in-memory service shared across commands."""
    fs = InMemoryFileSystem(PROJECT)
    created = []

    def _create(repo_root, cfg):
        service = service_factory(fs=fs)
        if created:
            service.store = created[0].store
        created.append(service)
        return service

    monkeypatch.setattr(cli, "create_service", _create)
    return created


class TestCli:
    """Test command dispatch and output."""

    def test_no_command_prints_help(self, capsys):
        assert cli.main([]) == 1
        assert "usage" in capsys.readouterr().out.lower()

    def test_index_then_stats(self, fake_service, capsys):
        assert cli.main(["index"]) == 0
        out = capsys.readouterr().out
        assert "Files indexed: 2" in out

        assert cli.main(["stats"]) == 0
        assert "Total files: 2" in capsys.readouterr().out

    def test_update_skips_unchanged(self, fake_service, capsys):
        cli.main(["index"])
        capsys.readouterr()
        assert cli.main(["update"]) == 0
        assert "Skipped: 2" in capsys.readouterr().out

    def test_query(self, fake_service, capsys):
        cli.main(["index"])
        capsys.readouterr()
        assert cli.main(["query", "explain foo"]) == 0
        out = capsys.readouterr().out
        assert "src/util.ts" in out
        assert "Symbol match: foo" in out
        assert "Quality:" in out

    def test_graph(self, fake_service, capsys):
        assert cli.main(["graph", "--top", "1", "--cycles"]) == 0
        out = capsys.readouterr().out
        assert "src/util.ts" in out
        assert "Circular imports: 0" in out

    def test_errors_return_exit_code_one(self, fake_service, monkeypatch, capsys):
        def boom(self, *args, **kwargs):
            raise RuntimeError("disk on fire")

        monkeypatch.setattr("codectx.service.IndexService.index_project", boom)
        assert cli.main(["index", "--force"]) == 1
        assert "disk on fire" in capsys.readouterr().err
