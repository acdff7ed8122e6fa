"""Application configuration helpers."""

from __future__ import annotations

from .dashboard import DashboardConfig, get_dashboard_config
from .env import require_env_var, require_env_vars
from .errors import (
    ConfigurationError,
    InvalidConfigurationValueError,
    MissingConfigurationError,
)
from .http_resilience import CacheConfig, RateLimit, ResilienceConfig, RetryPolicy
from .logging import configure_logging
from .matching import MatchingConfig, get_matching_config
from .storage import DatabaseConfig, StorageConfig, get_database_config, get_storage_config

__all__ = [
    "CacheConfig",
    "ConfigurationError",
    "DashboardConfig",
    "DatabaseConfig",
    "InvalidConfigurationValueError",
    "MatchingConfig",
    "MissingConfigurationError",
    "RateLimit",
    "ResilienceConfig",
    "RetryPolicy",
    "StorageConfig",
    "configure_logging",
    "get_dashboard_config",
    "get_database_config",
    "get_matching_config",
    "get_storage_config",
    "require_env_var",
    "require_env_vars",
]
