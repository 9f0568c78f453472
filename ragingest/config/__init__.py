"""Configuration module -- exports Settings and load_config."""

from ragingest.config.loader import load_config
from ragingest.config.settings import Settings

__all__ = ["Settings", "load_config"]
