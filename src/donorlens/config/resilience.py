"""Circuit breaker presets and step retry configuration."""

from __future__ import annotations

from typing import Final

from donorlens.domain.resilience import BackoffPolicy, BreakerSettings

from .env import env_float, env_int

PRIMARY_RESEARCH: Final[str] = "primary_research"
SECONDARY_RESEARCH: Final[str] = "secondary_research"
WEB_SEARCH: Final[str] = "web_search"
VERIFICATION: Final[str] = "verification"

# primary research is lenient, optional searches trip fast, verification APIs are slow
_PRESETS: Final[dict[str, BreakerSettings]] = {
    PRIMARY_RESEARCH: BreakerSettings(
        name=PRIMARY_RESEARCH, failure_threshold=5, success_threshold=2, timeout_seconds=60.0
    ),
    SECONDARY_RESEARCH: BreakerSettings(
        name=SECONDARY_RESEARCH, failure_threshold=3, success_threshold=2, timeout_seconds=45.0
    ),
    WEB_SEARCH: BreakerSettings(
        name=WEB_SEARCH, failure_threshold=3, success_threshold=2, timeout_seconds=30.0
    ),
    VERIFICATION: BreakerSettings(
        name=VERIFICATION, failure_threshold=5, success_threshold=1, timeout_seconds=120.0
    ),
}


def _override(preset: BreakerSettings) -> BreakerSettings:
    prefix = f"DONORLENS_BREAKER_{preset.name.upper()}"
    return BreakerSettings(
        name=preset.name,
        failure_threshold=env_int(f"{prefix}_FAILURES", preset.failure_threshold),
        success_threshold=env_int(f"{prefix}_SUCCESSES", preset.success_threshold),
        timeout_seconds=env_float(f"{prefix}_TIMEOUT", preset.timeout_seconds),
    )


def get_breaker_presets() -> dict[str, BreakerSettings]:
    """Return breaker settings per service, applying environment overrides."""

    return {name: _override(preset) for name, preset in _PRESETS.items()}


def get_backoff_policy() -> BackoffPolicy:
    default = BackoffPolicy()
    return BackoffPolicy(
        max_retries=env_int("DONORLENS_STEP_MAX_RETRIES", default.max_retries),
        base_delay_seconds=env_float("DONORLENS_STEP_BASE_DELAY", default.base_delay_seconds),
        max_delay_seconds=env_float("DONORLENS_STEP_MAX_DELAY", default.max_delay_seconds),
    )
