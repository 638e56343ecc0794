"""YAML configuration loader with environment variable overrides.

# ─── CONFIGURATION HIERARCHY ───────────────────────────────────────────
#
# Configuration is loaded in layers (later layers override earlier):
#
#   1. config/config.yaml : Static defaults checked into the repo
#   2. .env file          : Local developer overrides (not committed)
#   3. Environment vars   : Set at deploy time
#
# Keys that only exist in YAML (CORS origins, text encodings) pass through
# untouched; keys backed by Settings are always taken from Settings.
# ──────────────────────────────────────────────────────────────────────
"""

from pathlib import Path

import yaml

from knowlex.config.settings import Settings


def load_config(path: str = "config/config.yaml", settings: Settings | None = None) -> dict:
    """Load YAML config and merge with environment-based Settings.

    Args:
        path: Path to the YAML configuration file.
        settings: Pre-built Settings; a fresh instance is read when omitted.

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
    env_overrides = {
        "app": {
            "host": settings.app_host,
            "port": settings.app_port,
            "env": settings.app_env,
        },
        "storage": {
            "storage_dir": settings.storage_dir,
            "database_path": settings.database_path,
        },
        "limits": {
            "max_files_per_project": settings.max_files_per_project,
            "max_file_size": settings.max_file_size,
            "max_total_size": settings.max_total_size,
        },
        "chunking": {
            "chunk_size": settings.chunk_size,
            "chunk_overlap": settings.chunk_overlap,
        },
        "queue": {
            "max_concurrent": settings.queue_max_concurrent,
            "max_retries": settings.queue_max_retries,
            "backoff_base": settings.queue_backoff_base,
            "reconcile_on_startup": settings.reconcile_on_startup,
        },
        "logging": {
            "level": settings.log_level,
            "quiet_loggers": list(settings.log_quiet_loggers),
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
