"""Application settings loaded from environment variables via pydantic-settings.

# ─── HOW SETTINGS WORK ─────────────────────────────────────────────────
#
# pydantic-settings reads configuration from two sources (in priority order):
#
#   1. **Environment variables**: e.g., KNOWLEX_MAX_FILE_SIZE=10485760
#   2. **.env file**: key=value lines in the project root .env file
#
# Field ``max_file_size`` maps to env var ``KNOWLEX_MAX_FILE_SIZE`` (the
# ``env_prefix`` is prepended and the name is matched case-insensitively).
# Defaults below are used when neither source sets a value.
# ──────────────────────────────────────────────────────────────────────
"""

from pydantic_settings import BaseSettings, SettingsConfigDict

from knowlex.utils.logging import DEFAULT_QUIET_LOGGERS

_MB = 1024 * 1024


class Settings(BaseSettings):
    """Knowlex ingestion settings.

    Environment variables override defaults. Loaded from .env file when present.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="KNOWLEX_",
        extra="ignore",
    )

    # === Storage ===
    # Uploaded originals live under <storage_dir>/<project_id>/<file_id>/.
    storage_dir: str = "./data/project-files"
    database_path: str = "./data/knowlex.db"

    # === Upload limits ===
    max_files_per_project: int = 100
    max_file_size: int = 50 * _MB
    max_total_size: int = 200 * _MB

    # === Chunking ===
    chunk_size: int = 1000
    chunk_overlap: int = 200

    # === Processing queue ===
    queue_max_concurrent: int = 2
    queue_max_retries: int = 3
    # Seconds per backoff unit: retry N waits backoff_base * 2**N.
    queue_backoff_base: float = 1.0
    # Re-enqueue pending/orphaned files when the app starts.
    reconcile_on_startup: bool = True

    # === App Config ===
    app_host: str = "127.0.0.1"
    app_port: int = 8000
    app_env: str = "development"
    log_level: str = "INFO"
    # stdlib loggers kept at WARNING or above (JSON list in the environment).
    log_quiet_loggers: list[str] = list(DEFAULT_QUIET_LOGGERS)
