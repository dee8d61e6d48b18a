"""Unit tests for logging setup."""

import logging

import pytest

from codectx.logging_config import ROOT_LOGGER, get_logger, reset_logging, setup_logging


@pytest.fixture(autouse=True)
def fresh_logging(monkeypatch):
    monkeypatch.delenv("CODECTX_LOG_LEVEL", raising=False)
    monkeypatch.delenv("CODECTX_LOG_FILE", raising=False)
    reset_logging()
    yield
    reset_logging()


class TestSetupLogging:
    """Test level resolution, handlers and idempotence."""

    def test_level_and_stream_handler(self):
        root = setup_logging("warning")
        assert root.name == ROOT_LOGGER
        assert root.level == logging.WARNING
        assert len(root.handlers) == 1

    def test_env_level_wins(self, monkeypatch):
        monkeypatch.setenv("CODECTX_LOG_LEVEL", "debug")
        assert setup_logging("ERROR").level == logging.DEBUG

    def test_unknown_level_defaults_to_info(self):
        assert setup_logging("chatty").level == logging.INFO

    def test_file_handler_creates_directory(self, tmp_path):
        log_file = tmp_path / "state" / "codectx.log"
        root = setup_logging("INFO", str(log_file))
        assert log_file.parent.is_dir()
        assert any(isinstance(h, logging.FileHandler) for h in root.handlers)

    def test_second_call_is_a_no_op(self):
        setup_logging("ERROR")
        root = setup_logging("DEBUG")
        assert root.level == logging.ERROR
        assert len(root.handlers) == 1

    def test_quiets_third_party_loggers(self):
        setup_logging("DEBUG")
        assert logging.getLogger("chromadb").level == logging.WARNING


class TestGetLogger:
    """Test logger naming."""

    def test_nests_foreign_names(self):
        assert get_logger("tests.something").name == "codectx.tests.something"

    def test_keeps_package_names(self):
        assert get_logger("codectx.indexer").name == "codectx.indexer"
        assert get_logger("codectx").name == "codectx"
