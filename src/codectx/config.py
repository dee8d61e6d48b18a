import copy
import json
import os
from pathlib import Path
from typing import Optional

from .logging_config import get_logger

logger = get_logger(__name__)
config: dict = None

HOUR = 60 * 60
DAY = 24 * HOUR

DEFAULT_CONFIG = {
    "log_level": "INFO",
    "log_file": None,
    "state_dir": ".codectx",
    "embedding": {
        "dimension": 384,
        "timeout": 30.0,
        "max_input_chars": 5000,
        "primary": {
            "enabled": True,
            "model": "bge-small-en-v1.5",
            "base_url": "http://127.0.0.1:5000/v1",
            "api_key": "not-needed",
        },
        "fallback": {
            "model": "sentence-transformers/all-MiniLM-L6-v2",
        },
    },
    "cache": {
        "embedding_ttl": DAY,
        "response_ttl": HOUR,
        "default_ttl": None,
        "max_embeddings": 1000,
        "max_responses": 100,
        "max_metadata": 10000,
        "max_entries": 1000,
        "max_age": 7 * DAY,
    },
    "indexer": {
        "concurrency": 5,
        "max_content_chars": 10000,
        "max_file_size": 1_000_000,
    },
    "graph": {
        "min_rebuild_interval": 60.0,
    },
    "context": {
        "max_files": 10,
        "max_tokens": 8000,
        "semantic_top_k": 5,
        "min_similarity": 0.15,
    },
}


def _merge(base: dict, overrides: dict) -> dict:
    """Recursively merge overrides into base (in place) and return base."""
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            _merge(base[key], value)
        else:
            base[key] = value
    return base


def load_config(path: Optional[str | Path] = None) -> dict:
    """Build application configuration.

    Starts from DEFAULT_CONFIG, merges a JSON file (``path``, then
    ``$CODECTX_CONFIG``, then ``./codectx.json``) and finally applies
    environment overrides.
    """
    result = copy.deepcopy(DEFAULT_CONFIG)

    if path is None:
        path = os.getenv("CODECTX_CONFIG") or "codectx.json"

    # Missing file is fine, defaults apply
    try:
        with open(path, "r", encoding="utf-8") as f:
            _merge(result, json.load(f))
    except FileNotFoundError:
        logger.debug("No config file at %s (using defaults)", path)
    except (OSError, json.JSONDecodeError) as e:
        logger.warning("Could not load config from %s: %s (using defaults)", path, e)

    if os.getenv("CODECTX_EMBEDDING_BASE_URL"):
        result["embedding"]["primary"]["base_url"] = os.getenv("CODECTX_EMBEDDING_BASE_URL")
    if os.getenv("CODECTX_EMBEDDING_MODEL"):
        result["embedding"]["primary"]["model"] = os.getenv("CODECTX_EMBEDDING_MODEL")
    if os.getenv("CODECTX_DISABLE_REMOTE_EMBEDDINGS", "").strip().lower() in ("1", "true", "yes"):
        result["embedding"]["primary"]["enabled"] = False

    if os.getenv("CODECTX_LOG_LEVEL"):
        result["log_level"] = os.getenv("CODECTX_LOG_LEVEL").upper()
    if os.getenv("CODECTX_LOG_FILE") is not None:
        result["log_file"] = os.getenv("CODECTX_LOG_FILE")

    result["debug"] = result["log_level"] == "DEBUG"
    return result


config = load_config()
