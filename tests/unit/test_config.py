"""Unit tests for configuration loading."""

import json

from codectx.config import DEFAULT_CONFIG, load_config


class TestLoadConfig:
    """Test defaults, file overrides and environment overrides."""

    def test_defaults_without_file(self, tmp_path, monkeypatch):
        monkeypatch.delenv("CODECTX_LOG_LEVEL", raising=False)
        monkeypatch.delenv("CODECTX_EMBEDDING_BASE_URL", raising=False)
        config = load_config(tmp_path / "missing.json")
        assert config["context"] == DEFAULT_CONFIG["context"]
        assert config["embedding"]["primary"]["base_url"] == "http://127.0.0.1:5000/v1"
        assert config["debug"] is False

    def test_file_values_merge_into_defaults(self, tmp_path):
        path = tmp_path / "codectx.json"
        path.write_text(json.dumps({"context": {"max_files": 4}, "indexer": {"concurrency": 2}}), encoding="utf-8")
        config = load_config(path)
        assert config["context"]["max_files"] == 4
        assert config["context"]["max_tokens"] == 8000
        assert config["indexer"]["concurrency"] == 2

    def test_invalid_file_falls_back_to_defaults(self, tmp_path):
        path = tmp_path / "codectx.json"
        path.write_text("{oops", encoding="utf-8")
        assert load_config(path)["context"] == DEFAULT_CONFIG["context"]

    def test_environment_overrides(self, tmp_path, monkeypatch):
        monkeypatch.setenv("CODECTX_EMBEDDING_BASE_URL", "http://embed:9000/v1")
        monkeypatch.setenv("CODECTX_EMBEDDING_MODEL", "nomic-embed")
        monkeypatch.setenv("CODECTX_DISABLE_REMOTE_EMBEDDINGS", "true")
        monkeypatch.setenv("CODECTX_LOG_LEVEL", "debug")
        config = load_config(tmp_path / "missing.json")
        primary = config["embedding"]["primary"]
        assert primary["base_url"] == "http://embed:9000/v1"
        assert primary["model"] == "nomic-embed"
        assert primary["enabled"] is False
        assert config["log_level"] == "DEBUG"
        assert config["debug"] is True

    def test_defaults_are_not_mutated(self, tmp_path):
        path = tmp_path / "codectx.json"
        path.write_text(json.dumps({"embedding": {"primary": {"model": "other"}}}), encoding="utf-8")
        load_config(path)
        assert DEFAULT_CONFIG["embedding"]["primary"]["model"] == "bge-small-en-v1.5"
