"""Configuration management for the MelodyCompare backend."""

from .settings import Config, get_cors_origins, is_production

__all__ = ["Config", "get_cors_origins", "is_production"]
