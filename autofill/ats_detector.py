"""
ATS adapter registry for the autofill engine.

Picks the adapter that knows the applicant tracking system behind the
current page. Selection is layered:

  **Layer 1: URL pattern** (pure, instant):
    A linear scan over the registered adapters; the first whose
    ``detect(url)`` answers True wins.

  **Layer 2: DOM fingerprint** (one ``query_selector`` per probe):
    Only when the URL is not recognised, e.g. a board embedded on an
    employer's own careers domain.

Anything else falls back to ``GenericAdapter``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence

from playwright.async_api import Page

from autofill.field_detector import FieldDetector
from autofill.fill_executor import FillExecutor
from autofill.platforms import (
    BaseATSAdapter,
    GenericAdapter,
    GreenhouseAdapter,
    LeverAdapter,
    SmartRecruitersAdapter,
    WorkdayAdapter,
)
from config.settings import EngineConfig

logger = logging.getLogger(__name__)

__all__ = ["ATSDetector", "ATSSelection", "DetectionMethod", "DEFAULT_ADAPTERS"]


# ═══════════════════════════════════════════════════════════════════════════
# Registry tables
# ═══════════════════════════════════════════════════════════════════════════

DEFAULT_ADAPTERS: tuple[type[BaseATSAdapter], ...] = (
    SmartRecruitersAdapter,
    WorkdayAdapter,
    GreenhouseAdapter,
    LeverAdapter,
)

DOM_FINGERPRINTS: dict[type[BaseATSAdapter], list[str]] = {
    GreenhouseAdapter: [
        "form#application-form.application--form",
        "#grnhse_app",
    ],
    LeverAdapter: [
        "div.lever-application",
        "input[data-qa='name-input']",
    ],
    SmartRecruitersAdapter: [
        "div[data-qa='application-form']",
        "form[action*='smartrecruiters']",
    ],
    WorkdayAdapter: [
        "div[data-automation-id='applicationWidget']",
        "[data-automation-id]",
    ],
}


class DetectionMethod(Enum):
    URL_PATTERN = "url_pattern"
    DOM_FINGERPRINT = "dom_fingerprint"
    FALLBACK = "fallback"


@dataclass(frozen=True)
class ATSSelection:
    """Adapter class chosen for a page and how it was chosen."""

    adapter_cls: type[BaseATSAdapter]
    method: DetectionMethod
    confidence: float

    @property
    def name(self) -> str:
        return self.adapter_cls.NAME


# ═══════════════════════════════════════════════════════════════════════════
# ATSDetector
# ═══════════════════════════════════════════════════════════════════════════


class ATSDetector:
    """Ordered adapter registry.

    Usage::

        registry = ATSDetector()
        adapter = await registry.create(page)
        fields = await adapter.detect_fields()
    """

    def __init__(
        self,
        adapters: Optional[Sequence[type[BaseATSAdapter]]] = None,
        fallback: type[BaseATSAdapter] = GenericAdapter,
    ) -> None:
        self.adapters: list[type[BaseATSAdapter]] = list(
            DEFAULT_ADAPTERS if adapters is None else adapters
        )
        self.fallback = fallback
        self.logger = logging.getLogger(self.__class__.__name__)

    def register(self, adapter_cls: type[BaseATSAdapter], first: bool = False) -> None:
        """Add an adapter class; ``first=True`` gives it priority."""
        if first:
            self.adapters.insert(0, adapter_cls)
        else:
            self.adapters.append(adapter_cls)

    # ------------------------------------------------------------------
    # Layers
    # ------------------------------------------------------------------

    def select(self, url: str) -> type[BaseATSAdapter]:
        """Return the first adapter whose ``detect(url)`` is True.

        Pure: reads nothing but ``url``. Falls back to ``GenericAdapter``.
        """
        for adapter_cls in self.adapters:
            if adapter_cls.detect(url):
                return adapter_cls
        return self.fallback

    async def _detect_by_dom(self, page: Page) -> Optional[type[BaseATSAdapter]]:
        # Workday's bare [data-automation-id] probe is the loosest; it goes last.
        for adapter_cls, selectors in DOM_FINGERPRINTS.items():
            if adapter_cls not in self.adapters:
                continue
            for selector in selectors:
                try:
                    if await page.query_selector(selector) is not None:
                        return adapter_cls
                except Exception:  # noqa: BLE001
                    continue
        return None

    async def detect(self, page: Page, url: Optional[str] = None) -> ATSSelection:
        """Select the adapter for ``page`` (URL first, then DOM). Never raises."""
        page_url = url if url is not None else page.url
        adapter_cls = self.select(page_url)
        if adapter_cls is not self.fallback:
            self.logger.info(
                "ATS detected by URL: %s (confidence=%.2f)", adapter_cls.NAME, 0.90
            )
            return ATSSelection(adapter_cls, DetectionMethod.URL_PATTERN, 0.90)

        try:
            dom_match = await self._detect_by_dom(page)
        except Exception as exc:  # noqa: BLE001
            self.logger.warning("detect: DOM layer error: %s", exc)
            dom_match = None
        if dom_match is not None:
            self.logger.info(
                "ATS detected by DOM: %s (confidence=%.2f)", dom_match.NAME, 0.95
            )
            return ATSSelection(dom_match, DetectionMethod.DOM_FINGERPRINT, 0.95)

        self.logger.info("No ATS recognised for %s, using %s", page_url, self.fallback.NAME)
        return ATSSelection(self.fallback, DetectionMethod.FALLBACK, 0.30)

    async def create(
        self,
        page: Page,
        executor: Optional[FillExecutor] = None,
        detector: Optional[FieldDetector] = None,
        config: Optional[EngineConfig] = None,
        url: Optional[str] = None,
    ) -> BaseATSAdapter:
        """Detect the platform and return an adapter bound to ``page``."""
        selection = await self.detect(page, url)
        return selection.adapter_cls(page, executor=executor, detector=detector, config=config)

    def get_all_supported_ats(self) -> list[str]:
        return sorted(adapter_cls.NAME for adapter_cls in self.adapters)
