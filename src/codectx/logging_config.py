"""Logging setup shared by the CLI, the indexer and the LangChain tool.

Every module logs through ``get_logger(__name__)`` so all records land under
the single ``codectx`` logger configured here.
"""

import logging
import os
from pathlib import Path
from typing import Optional

ROOT_LOGGER = "codectx"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Chatty dependencies that log request-level detail at INFO
NOISY_LIBRARIES = (
    "chromadb",
    "httpx",
    "openai",
    "sentence_transformers",
    "urllib3",
    "watchdog",
)

_configured = False


def _resolve_level(level: str) -> int:
    env_level = os.getenv("CODECTX_LOG_LEVEL")
    if env_level:
        level = env_level
    resolved = logging.getLevelName(level.upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def _file_handler(log_file: str, formatter: logging.Formatter) -> Optional[logging.Handler]:
    path = Path(log_file)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(path, encoding="utf-8")
    except OSError:
        return None
    handler.setFormatter(formatter)
    return handler


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    quiet_libraries: bool = True,
) -> logging.Logger:
    """Configure the ``codectx`` logger once per process.

    ``CODECTX_LOG_LEVEL`` and ``CODECTX_LOG_FILE`` win over the arguments, so
    a deployed CLI can be made verbose without touching its config file.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR)
        log_file: Optional log file; its directory is created when missing
        quiet_libraries: Cap third-party loggers at WARNING

    Returns:
        The package root logger.
    """
    global _configured
    root = logging.getLogger(ROOT_LOGGER)
    if _configured:
        return root

    log_level = _resolve_level(level)
    env_file = os.getenv("CODECTX_LOG_FILE")
    if env_file is not None:
        log_file = env_file or None

    root.setLevel(log_level)
    root.handlers.clear()

    formatter = logging.Formatter(LOG_FORMAT)
    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)
    root.addHandler(stream_handler)

    if log_file:
        handler = _file_handler(log_file, formatter)
        if handler is None:
            root.warning("Could not open log file %s, logging to stderr only", log_file)
        else:
            root.addHandler(handler)

    if quiet_libraries:
        for name in NOISY_LIBRARIES:
            logging.getLogger(name).setLevel(max(log_level, logging.WARNING))

    _configured = True
    return root


def reset_logging() -> None:
    """Drop handlers so the next setup_logging() call reconfigures."""
    global _configured
    root = logging.getLogger(ROOT_LOGGER)
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    _configured = False


def get_logger(name: str) -> logging.Logger:
    """Logger for name, nested under ``codectx`` when it is not already."""
    if name == ROOT_LOGGER or name.startswith(ROOT_LOGGER + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")
