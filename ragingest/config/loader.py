"""YAML configuration loader with environment variable overrides.

# ─── CONFIGURATION HIERARCHY (Junior Developer Guide) ──────────────────
#
# Configuration is loaded in layers (later layers override earlier):
#
#   1. config/config.yaml  → static defaults checked into the repo
#   2. .env file           → local developer overrides (not committed)
#   3. Environment vars    → set at deploy time
#
# load_config() reads the YAML file first, then deep-merges the values
# derived from Settings on top.  The `processing` section is the one
# exception: a Settings field only wins there when it was set explicitly,
# so `chunk_size: 250` in YAML survives an untouched default of 512.
#
#   base      = {"processing": {"chunk_size": 250}}
#   overrides = {"processing": {"max_embedding_retries": 3}}
#   result    = {"processing": {"chunk_size": 250, "max_embedding_retries": 3}}
# ──────────────────────────────────────────────────────────────────────
"""

from pathlib import Path
from typing import Any

import yaml

from ragingest.config.settings import Settings


def load_config(path: str = "config/config.yaml", settings: Settings | None = None) -> dict:
    """Load YAML config and merge with environment-based Settings.

    Environment variables (via Settings) override YAML values where keys overlap,
    except for the ``processing`` section: values set explicitly in the
    environment win, untouched Settings defaults do not clobber YAML values.

    Args:
        path: Path to the YAML configuration file.
        settings: Pre-built settings; a fresh ``Settings()`` is used otherwise.

    Returns:
        Fully resolved configuration dictionary.
    """
    config_path = Path(path)
    if config_path.exists():
        with open(config_path) as f:
            yaml_config = yaml.safe_load(f) or {}
    else:
        yaml_config = {}

    settings = settings or Settings()
    explicit = settings.model_fields_set

    processing: dict[str, Any] = {}
    for key in (
        "chunk_size",
        "chunk_overlap",
        "max_embedding_retries",
        "embedding_batch_size",
        "retry_base_delay",
        "retry_max_delay",
        "cleanup_partial_chunks",
    ):
        if key in explicit or key not in yaml_config.get("processing", {}):
            processing[key] = getattr(settings, key)

    env_overrides = {
        "app": {
            "host": settings.app_host,
            "port": settings.app_port,
            "env": settings.app_env,
        },
        "embedding": {
            "dimension": settings.embedding_dimension,
            "available_providers": settings.get_available_embedding_providers(),
        },
        "processing": processing,
        "progress": {
            "retention_seconds": settings.progress_retention_seconds,
            "orphan_ttl_seconds": settings.progress_orphan_ttl_seconds,
            "poll_interval_seconds": settings.progress_poll_interval_seconds,
        },
        "logging": {
            "level": settings.log_level,
        },
    }

    _deep_merge(yaml_config, env_overrides)
    return yaml_config


def _deep_merge(base: dict, overrides: dict) -> None:
    """Recursively merge overrides into base dict, mutating base in place."""
    for key, value in overrides.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
