"""Configuration module: exports Settings and load_config."""

from knowlex.config.loader import load_config
from knowlex.config.settings import Settings

__all__ = ["Settings", "load_config"]
