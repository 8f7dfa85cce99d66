"""Research pipeline settings and the catalog of research sources."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Final

from donorlens.domain.research import ResearchOptions

from .env import env_bool, env_float, env_int
from .errors import ConfigurationError
from .resilience import PRIMARY_RESEARCH, SECONDARY_RESEARCH, WEB_SEARCH

PRIMARY_STEP: Final[str] = "research_primary"
FOLLOWUP_STEP: Final[str] = "research_followup"
WEB_SEARCH_STEP: Final[str] = "web_search"
NEWS_SEARCH_STEP: Final[str] = "news_search"


@dataclass(frozen=True, slots=True)
class ResearchSourceSpec:
    """Static description of a search step and the remote service behind it."""

    step_name: str
    service: str
    breaker: str
    required: bool = False
    skippable: bool = False
    timeout_seconds: float | None = None
    depends_on: tuple[str, ...] = ()
    # a second pass over this step's record, asking only for its missing sections
    followup_of: str | None = None
    # skip once the followed-up step already produced a record this complete
    skip_above_quality: int | None = None


RESEARCH_SOURCES: Final[tuple[ResearchSourceSpec, ...]] = (
    ResearchSourceSpec(
        step_name=PRIMARY_STEP,
        service="perplexity",
        breaker=PRIMARY_RESEARCH,
        required=True,
        timeout_seconds=60.0,
    ),
    ResearchSourceSpec(
        step_name=FOLLOWUP_STEP,
        service="perplexity",
        breaker=PRIMARY_RESEARCH,
        skippable=True,
        timeout_seconds=60.0,
        depends_on=(PRIMARY_STEP,),
        followup_of=PRIMARY_STEP,
        skip_above_quality=60,
    ),
    ResearchSourceSpec(
        step_name=WEB_SEARCH_STEP,
        service="linkup",
        breaker=WEB_SEARCH,
        skippable=True,
        timeout_seconds=30.0,
    ),
    ResearchSourceSpec(
        step_name=NEWS_SEARCH_STEP,
        service="gemini",
        breaker=SECONDARY_RESEARCH,
        skippable=True,
        timeout_seconds=45.0,
    ),
)

# authoritative verification services and the claim types they answer
VERIFIER_SERVICES: Final[dict[str, tuple[str, ...]]] = {
    "sec_edgar": ("sec_insider",),
    "fec": ("political_giving",),
    "propublica": ("nonprofit_board",),
}


@dataclass(frozen=True, slots=True)
class PipelineSettings:
    run_optional_steps: bool = True
    skip_verification: bool = False
    max_concurrent_subjects: int = 2
    default_timeout_seconds: float = 60.0
    verification_threshold: float = 0.7

    def research_options(self, *, force: bool = False) -> ResearchOptions:
        return ResearchOptions(
            run_optional_steps=self.run_optional_steps,
            skip_verification=self.skip_verification,
            verification_threshold=self.verification_threshold,
            force=force,
        )


def get_pipeline_settings() -> PipelineSettings:
    defaults = PipelineSettings()
    settings = PipelineSettings(
        run_optional_steps=env_bool("DONORLENS_RUN_OPTIONAL_STEPS", defaults.run_optional_steps),
        skip_verification=env_bool("DONORLENS_SKIP_VERIFICATION", defaults.skip_verification),
        max_concurrent_subjects=env_int(
            "DONORLENS_MAX_CONCURRENT_SUBJECTS", defaults.max_concurrent_subjects
        ),
        default_timeout_seconds=env_float(
            "DONORLENS_STEP_TIMEOUT", defaults.default_timeout_seconds
        ),
        verification_threshold=env_float(
            "DONORLENS_VERIFICATION_THRESHOLD", defaults.verification_threshold
        ),
    )
    if settings.max_concurrent_subjects < 1:
        raise ConfigurationError("DONORLENS_MAX_CONCURRENT_SUBJECTS must be at least 1")
    if settings.default_timeout_seconds <= 0:
        raise ConfigurationError("DONORLENS_STEP_TIMEOUT must be positive")
    if not 0.0 <= settings.verification_threshold <= 1.0:
        raise ConfigurationError("DONORLENS_VERIFICATION_THRESHOLD must be between 0 and 1")
    return settings
