"""Configuration module for Focus-UserCount.

This module provides centralized configuration management using pydantic-settings,
ensuring 12-factor app compliance and strict validation of all environment variables.
"""

from config.settings import GlobalConfig, SourceConfig, SourceId, get_config

__all__ = ["GlobalConfig", "SourceConfig", "SourceId", "get_config"]
