"""Endpoints and credentials for remote research and verification services."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Final

from .env import env_float, optional_env, require_env_vars
from .http_resilience import CacheConfig, RateLimit, ResilienceConfig

DEFAULT_TIMEOUT_SECONDS: Final[float] = 60.0
DEFAULT_CALLS_PER_SECOND: Final[int] = 2


@dataclass(frozen=True)
class RemoteServiceConfig:
    """Holds the endpoint, credential and HTTP behaviour for one remote service."""

    service: str
    base_url: str
    api_key: str
    resilience: ResilienceConfig


def _env_prefix(service: str) -> str:
    return f"DONORLENS_{service.upper()}"


def get_remote_service_config(
    service: str,
    *,
    resilience: ResilienceConfig | None = None,
) -> RemoteServiceConfig:
    """Read ``DONORLENS_<SERVICE>_URL`` and ``DONORLENS_<SERVICE>_API_KEY``.

    Raises ``MissingConfigurationError`` when either is absent.
    """

    prefix = _env_prefix(service)
    values = require_env_vars((f"{prefix}_URL", f"{prefix}_API_KEY"))
    base_url = values[f"{prefix}_URL"].rstrip("/") + "/"
    cache_enabled = (optional_env(f"{prefix}_CACHE") or "on").lower() not in {"0", "off", "false"}
    return RemoteServiceConfig(
        service=service,
        base_url=base_url,
        api_key=values[f"{prefix}_API_KEY"],
        resilience=resilience
        or ResilienceConfig(
            name=service,
            base_url=base_url,
            timeout_seconds=env_float(f"{prefix}_TIMEOUT", DEFAULT_TIMEOUT_SECONDS),
            ratelimit=RateLimit(max_calls=DEFAULT_CALLS_PER_SECOND, per_seconds=1.0),
            cache=CacheConfig(backend="memory") if cache_enabled else None,
        ),
    )
