"""
Configuration module for Formzilla.

Provides centralized configuration management using Pydantic Settings,
environment variable loading, and structured logging setup.
"""

from formzilla.config.logging_config import configure_logging, get_logger
from formzilla.config.settings import Environment, Settings, get_settings


__all__ = [
    "Settings",
    "get_settings",
    "Environment",
    "configure_logging",
    "get_logger",
]
