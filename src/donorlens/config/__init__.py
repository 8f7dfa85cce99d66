"""Application configuration helpers."""

from __future__ import annotations

from .env import env_bool, env_float, env_int, optional_env, require_env_vars
from .errors import ConfigurationError, MissingConfigurationError
from .http_resilience import CacheConfig, RateLimit, ResilienceConfig, RetryPolicy
from .pipeline import (
    RESEARCH_SOURCES,
    VERIFIER_SERVICES,
    PipelineSettings,
    ResearchSourceSpec,
    get_pipeline_settings,
)
from .remote import RemoteServiceConfig, get_remote_service_config
from .resilience import get_backoff_policy, get_breaker_presets
from .storage import DatabaseConfig, StorageConfig, get_database_config, get_storage_config

__all__ = [
    "RESEARCH_SOURCES",
    "VERIFIER_SERVICES",
    "CacheConfig",
    "ConfigurationError",
    "DatabaseConfig",
    "MissingConfigurationError",
    "PipelineSettings",
    "RateLimit",
    "RemoteServiceConfig",
    "ResearchSourceSpec",
    "ResilienceConfig",
    "RetryPolicy",
    "StorageConfig",
    "env_bool",
    "env_float",
    "env_int",
    "get_backoff_policy",
    "get_breaker_presets",
    "get_database_config",
    "get_pipeline_settings",
    "get_remote_service_config",
    "get_storage_config",
    "optional_env",
    "require_env_vars",
]
