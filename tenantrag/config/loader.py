"""YAML configuration loader with environment variable overrides.

Layers, later wins:

  1. ``config/config.yaml`` -- static defaults checked into the repo
  2. ``.env`` file          -- local developer overrides
  3. Environment variables  -- set at deploy time

:func:`load_config` reads the YAML file and deep-merges the values
resolved by :class:`Settings` on top of it.
"""

from pathlib import Path

import yaml

from tenantrag.config.settings import Settings


def load_config(path: str = "config/config.yaml", settings: Settings | None = None) -> dict:
    """Load YAML config and merge with environment-based Settings.

    Args:
        path: Path to the YAML configuration file.
        settings: Pre-built settings; a fresh ``Settings()`` when omitted.

    Returns:
        Fully resolved configuration dictionary.
    """
    config_path = Path(path)
    if config_path.exists():
        with open(config_path) as f:
            yaml_config = yaml.safe_load(f) or {}
    else:
        yaml_config = {}

    s = settings or Settings()
    env_overrides = {
        "app": {
            "host": s.app_host,
            "port": s.app_port,
            "env": s.app_env,
        },
        "embedding": {
            "model": s.huggingface_embedding_model,
            "dimension": s.embedding_dimension,
            "configured": bool(s.huggingface_api_key),
        },
        "vector_store": {
            "index_name": s.vector_index_name,
            "persist_dir": s.chromadb_persist_dir,
        },
        "llm": {
            "available_providers": s.get_available_llm_providers(),
        },
        "ingestion": {
            "chunk_size": s.chunk_size,
            "chunk_overlap": s.chunk_overlap,
            "upload_batch_size": s.upload_batch_size,
            "upload_max_attempts": s.upload_max_attempts,
        },
        "logging": {
            "level": s.log_level,
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
