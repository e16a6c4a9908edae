"""Base class for all ATS adapters.

An adapter bundles what is platform-specific about one applicant tracking
system: how to recognise its pages from the URL, which element attribute
identifies a field, which identifiers map straight onto candidate-profile
keys, how its custom dropdowns open, and how a resume is attached. All
DOM work is delegated to the shared ``FieldDetector`` / ``FillExecutor``;
subclasses mostly override class attributes.

``detect(url)`` is a pure predicate over the page URL so the registry can
select an adapter without touching the page.
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence

from playwright.async_api import Page

from autofill.control_locator import ChainedLocator, ControlLocator, default_locator
from autofill.field_detector import DetectedField, FieldDetector
from autofill.fill_executor import (
    DEFAULT_OPTION_SELECTOR,
    FillExecutor,
    FillPlanEntry,
    FillStrategy,
    UploadOutcome,
    strategy_for,
)
from config.settings import EngineConfig, engine_config

logger = logging.getLogger(__name__)

__all__ = ["BaseATSAdapter"]

MAPPED_CONFIDENCE = 1.0


class BaseATSAdapter:
    """Default ATS adapter; concrete platforms override class attributes.

    Class Attributes:
        NAME: Short platform name used in logs and reports.
        URL_PATTERNS: Lower-case substrings of the page URL that identify
            the platform.
        SUPPORTS_SECTIONS: Whether the orchestrator should run the
            repeating-section expansion (experience / education) here.
        IDENTIFIER_ATTRIBUTE: Element attribute carrying the platform's
            field identifier. Empty keeps the detector's default
            (``data-automation-id`` / ``id`` / ``name``).
        IDENTIFIER_MAP: Identifier → candidate-profile key for fields the
            platform always renders the same way.
        STRATEGY_OVERRIDES: Identifier → fill strategy where the widget
            class alone picks the wrong one (typeahead inputs).
        OPTION_SELECTOR: Selector for the options of an open custom
            dropdown.

    Constructor Args:
        page: Live Playwright async page.
        executor: Shared fill executor; built from ``page`` when omitted.
        detector: Shared field detector; built from ``page`` when omitted.
        config: Engine timing/threshold configuration.
    """

    NAME: str = "base"
    URL_PATTERNS: tuple[str, ...] = ()
    SUPPORTS_SECTIONS: bool = False
    IDENTIFIER_ATTRIBUTE: str = ""
    IDENTIFIER_MAP: dict[str, str] = {}
    STRATEGY_OVERRIDES: dict[str, FillStrategy] = {}
    OPTION_SELECTOR: str = DEFAULT_OPTION_SELECTOR

    def __init__(
        self,
        page: Page,
        executor: Optional[FillExecutor] = None,
        detector: Optional[FieldDetector] = None,
        config: Optional[EngineConfig] = None,
    ) -> None:
        self.page = page
        self.config = config or engine_config
        self.executor = executor or FillExecutor(page, self.config)
        self.detector = detector or FieldDetector(page)
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    # ------------------------------------------------------------------
    # Detection
    # ------------------------------------------------------------------

    @classmethod
    def detect(cls, url: str) -> bool:
        """Return True when ``url`` belongs to this platform."""
        url_lower = (url or "").lower()
        return any(pattern in url_lower for pattern in cls.URL_PATTERNS)

    @property
    def locators(self) -> Sequence[ControlLocator]:
        """Platform locators tried before the generic heuristics."""
        return ()

    def control_locator(self) -> ChainedLocator:
        return default_locator().prepend(*self.locators)

    # ------------------------------------------------------------------
    # Fields
    # ------------------------------------------------------------------

    def identifier_for(self, field: DetectedField) -> str:
        if self.IDENTIFIER_ATTRIBUTE:
            own = field.descriptor.attributes.get(self.IDENTIFIER_ATTRIBUTE, "")
            if own:
                return own
        return field.identifier

    def profile_key_for(self, field: DetectedField) -> Optional[str]:
        """Return the profile key for a field the platform always renders
        the same way, or ``None`` when the classifier has to decide."""
        return self.IDENTIFIER_MAP.get(field.identifier)

    def strategy_for(self, field: DetectedField) -> FillStrategy:
        return self.STRATEGY_OVERRIDES.get(field.identifier) or strategy_for(field)

    async def detect_fields(self) -> list[DetectedField]:
        """Detect every fillable field and apply the platform identifier map.

        Mapped fields carry confidence 1.0; the rest keep the detector's
        default and are left to the classifier.
        """
        fields = await self.detector.detect_all()
        mapped = 0
        for field in fields:
            field.identifier = self.identifier_for(field)
            if self.profile_key_for(field) is not None:
                field.confidence = MAPPED_CONFIDENCE
                mapped += 1
        self.logger.info(
            "%s: %d field(s), %d mapped by identifier", self.NAME, len(fields), mapped
        )
        return fields

    # ------------------------------------------------------------------
    # Filling
    # ------------------------------------------------------------------

    async def fill_field(self, entry: FillPlanEntry) -> bool:
        """Fill one plan entry, routing dropdowns and uploads to the
        platform handlers."""
        if entry.strategy == FillStrategy.CUSTOM_DROPDOWN:
            return await self.handle_dropdown(entry.field, entry.target_value)
        if entry.strategy == FillStrategy.FILE:
            outcome = await self.handle_file_upload(entry.field, entry.target_value)
            return outcome.attached
        return await self.executor.execute(entry)

    async def handle_dropdown(self, field: DetectedField, value: str) -> bool:
        try:
            return await self.executor.select_custom_option(
                field.uid, value, self.OPTION_SELECTOR
            )
        except Exception as exc:  # noqa: BLE001
            self.logger.warning("handle_dropdown %r: %s", field.label, exc)
            return False

    async def handle_file_upload(
        self,
        field: Optional[DetectedField],
        resume_url: str,
        file_name: str = "resume.pdf",
    ) -> UploadOutcome:
        """Attach the resume at ``resume_url``. Never raises."""
        return await self.executor.upload_resume(resume_url, file_name)

    async def prepare_section(self, name: str) -> int:
        """Hook run once before a repeating section is expanded.

        Returns:
            Number of pre-existing entries removed (0 by default).
        """
        return 0
