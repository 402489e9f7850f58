"""Application configuration (environment driven)."""

from .settings import configure_logging, get_app_config

__all__ = ["configure_logging", "get_app_config"]
