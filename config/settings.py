"""Centralised configuration settings for the ATS autofill engine.

All environment variable reads are consolidated here into typed, frozen
dataclass instances. Every other module should import the module-level
singletons (``engine_config``, ``api_config``, ``run_config``) from this
module instead of calling ``os.getenv()`` directly.

Secrets are loaded exclusively from environment variables (optionally from
a local ``.env`` file via ``python-dotenv``). No values are hard-coded.
"""

import logging
import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

load_dotenv(override=False)

__all__ = [
    "engine_config",
    "api_config",
    "run_config",
    "get_settings",
    "EngineConfig",
    "APIConfig",
    "RunConfig",
]


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes")


@dataclass(frozen=True)
class EngineConfig:
    """Timing and threshold configuration for one fill session.

    Every wait in the engine is a fixed sleep read from this object; nothing
    in the pipeline sleeps on an ambient constant.

    Attributes:
        settle_delay_ms: Wait after clicking an "Add" control so the page
            can insert the new section's fields.
        step_delay_ms: Wait between orchestrator steps and section entries.
        typing_delay_ms: Short wait between focus / clear / type actions.
        max_suggestion_wait_ms: Wait for an autocomplete widget to fetch
            and render its suggestion list. Clamped to 700–1200 ms.
        row_threshold_px: Maximum vertical delta for two fields to share a
            row when grouping newly revealed section fields.
        proximity_px: Maximum vertical distance between a label and a
            checkbox for proximity matching.
        min_resume_bytes: Resume blobs smaller than this are treated as
            broken and never attached.
        classify_batch_cap: Maximum fields per classification request;
            excess fields are dropped.
        resume_text_cap: Maximum characters of resume text sent to the LLM.
        job_description_cap: Maximum characters of job description sent to
            the LLM.
        expand_sections: Force experience/education expansion even when the
            selected adapter does not declare section support.
    """

    settle_delay_ms: int = field(
        default_factory=lambda: int(os.getenv("AUTOFILL_SETTLE_DELAY_MS", "1500"))
    )
    step_delay_ms: int = field(
        default_factory=lambda: int(os.getenv("AUTOFILL_STEP_DELAY_MS", "800"))
    )
    typing_delay_ms: int = field(
        default_factory=lambda: int(os.getenv("AUTOFILL_TYPING_DELAY_MS", "50"))
    )
    max_suggestion_wait_ms: int = field(
        default_factory=lambda: int(
            os.getenv("AUTOFILL_MAX_SUGGESTION_WAIT_MS", "1200")
        )
    )
    row_threshold_px: int = field(
        default_factory=lambda: int(os.getenv("AUTOFILL_ROW_THRESHOLD_PX", "20"))
    )
    proximity_px: int = field(
        default_factory=lambda: int(os.getenv("AUTOFILL_PROXIMITY_PX", "30"))
    )
    min_resume_bytes: int = field(
        default_factory=lambda: int(os.getenv("AUTOFILL_MIN_RESUME_BYTES", "1024"))
    )
    classify_batch_cap: int = field(
        default_factory=lambda: int(os.getenv("AUTOFILL_CLASSIFY_BATCH_CAP", "40"))
    )
    resume_text_cap: int = field(
        default_factory=lambda: int(os.getenv("AUTOFILL_RESUME_TEXT_CAP", "4000"))
    )
    job_description_cap: int = field(
        default_factory=lambda: int(
            os.getenv("AUTOFILL_JOB_DESCRIPTION_CAP", "1000")
        )
    )
    expand_sections: bool = field(
        default_factory=lambda: _env_bool("AUTOFILL_EXPAND_SECTIONS", "false")
    )

    @property
    def suggestion_wait_seconds(self) -> float:
        """Return the autocomplete wait, clamped to the 700–1200 ms window."""
        return min(max(self.max_suggestion_wait_ms, 700), 1200) / 1000.0

    @property
    def settle_seconds(self) -> float:
        return self.settle_delay_ms / 1000.0

    @property
    def step_seconds(self) -> float:
        return self.step_delay_ms / 1000.0

    @property
    def typing_seconds(self) -> float:
        return self.typing_delay_ms / 1000.0


@dataclass(frozen=True)
class APIConfig:
    """LLM provider configuration for remote field classification.

    Attributes:
        classifier_model: ``litellm`` model string used for classification.
        openai_api_key: Provider API key. Empty means "not configured".
        api_base: Optional provider base URL override.
        temperature: Sampling temperature for classification calls.
        max_tokens: Completion token budget per classification call.
        request_timeout: Seconds before the provider call is abandoned.
    """

    classifier_model: str = field(
        default_factory=lambda: os.getenv(
            "AUTOFILL_CLASSIFIER_MODEL", "openai/gpt-4o-mini"
        )
    )
    openai_api_key: str = field(
        default_factory=lambda: os.getenv("OPENAI_API_KEY", "")
    )
    api_base: str = field(
        default_factory=lambda: os.getenv("AUTOFILL_API_BASE", "")
    )
    temperature: float = field(
        default_factory=lambda: float(os.getenv("AUTOFILL_TEMPERATURE", "0.3"))
    )
    max_tokens: int = field(
        default_factory=lambda: int(os.getenv("AUTOFILL_MAX_TOKENS", "2000"))
    )
    request_timeout: int = field(
        default_factory=lambda: int(os.getenv("AUTOFILL_REQUEST_TIMEOUT", "60"))
    )


@dataclass(frozen=True)
class RunConfig:
    """Process-level runtime configuration.

    Attributes:
        log_level: Python ``logging`` level string (e.g. ``"INFO"``).
    """

    log_level: str = field(
        default_factory=lambda: os.getenv("LOG_LEVEL", "INFO")
    )


def get_settings() -> tuple[EngineConfig, APIConfig, RunConfig]:
    """Initialise logging and build all configuration singletons.

    Returns:
        A three-element tuple ``(engine_config, api_config, run_config)``,
        each a frozen dataclass populated from environment variables.
    """
    run = RunConfig()
    logging.basicConfig(
        level=run.log_level.upper(),
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    return EngineConfig(), APIConfig(), run


engine_config, api_config, run_config = get_settings()
