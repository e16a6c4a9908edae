"""
Control location by accessible role, text proximity and fixed-offset probes.

Section forms reveal new fields behind an "Add" control placed next to a
section heading. The control may be a real ``<button>``, a styled ``<span>``
or an icon with no text at all, so locating it is a chain of strategies:

1. ``RoleQueryLocator``: buttons (``<button>`` / ``role=button``) whose text
   or ``aria-label`` starts with the wanted text.
2. ``TextProximityLocator``: any short visible text starting with the
   wanted text, nearest vertically to the anchor.
3. ``OffsetProbeLocator``: ``elementFromPoint`` at fixed x-offsets from the
   right edge of the viewport, level with the anchor.

Each strategy returns candidate data from the page; the choice of the
nearest candidate is made in Python (``pick_nearest``). Platform adapters
can prepend their own ``ControlLocator`` to the chain.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Iterable, Optional, Sequence

from playwright.async_api import Page

from autofill.deep_query import in_page

logger = logging.getLogger(__name__)

__all__ = [
    "ControlMatch",
    "ControlLocator",
    "RoleQueryLocator",
    "TextProximityLocator",
    "OffsetProbeLocator",
    "ChainedLocator",
    "default_locator",
    "pick_nearest",
    "find_heading",
    "click_uid",
    "click_by_text",
]

MAX_ANCHOR_DISTANCE_PX = 200
SHORT_TEXT_CHARS = 20
HEADING_TEXT_CHARS = 30
PROBE_OFFSETS: tuple[int, ...] = (-60, -80, -100)


@dataclass(frozen=True)
class ControlMatch:
    """A located clickable control.

    Attributes:
        uid: ``data-autofill-uid`` of the control element.
        text: Its trimmed text (or aria-label).
        y: Top of its bounding rect, viewport coordinates.
        strategy: Name of the locator that found it.
    """

    uid: str
    text: str
    y: float
    strategy: str


def pick_nearest(
    candidates: Iterable[dict[str, Any]],
    anchor_y: float,
    limit: float = MAX_ANCHOR_DISTANCE_PX,
) -> Optional[dict[str, Any]]:
    """Return the candidate whose ``y`` is closest to ``anchor_y``.

    Candidates at a distance of ``limit`` or more are ignored; ties keep
    the earliest candidate.
    """
    best: Optional[dict[str, Any]] = None
    best_distance = limit
    for candidate in candidates:
        distance = abs(float(candidate.get("y", 0.0)) - anchor_y)
        if distance < best_distance:
            best_distance = distance
            best = candidate
    return best


# ═══════════════════════════════════════════════════════════════════════════
# Strategies
# ═══════════════════════════════════════════════════════════════════════════


class ControlLocator(ABC):
    """Strategy for finding a clickable control near a vertical anchor."""

    name: str = "base"

    @abstractmethod
    async def locate(
        self, page: Page, anchor_y: float, text: str
    ) -> Optional[ControlMatch]:
        """Return the control matching ``text`` near ``anchor_y``, if any."""


_ROLE_CANDIDATES_JS = in_page(
    """
const lower = args.text.toLowerCase();
return deepQueryAll('button, [role="button"]').filter((el) => {
  const r = el.getBoundingClientRect();
  if (r.width === 0 || r.height === 0) return false;
  const t = (el.getAttribute('aria-label') || ownText(el)).toLowerCase();
  return t.startsWith(lower);
}).map((el) => ({
  uid: stampUid(el),
  text: el.getAttribute('aria-label') || ownText(el),
  y: el.getBoundingClientRect().top,
}));
"""
)


class RoleQueryLocator(ControlLocator):
    """Buttons whose accessible text starts with the wanted text."""

    name = "role_query"

    async def locate(
        self, page: Page, anchor_y: float, text: str
    ) -> Optional[ControlMatch]:
        candidates = await page.evaluate(_ROLE_CANDIDATES_JS, {"text": text})
        best = pick_nearest(candidates, anchor_y)
        if best is None:
            return None
        return ControlMatch(best["uid"], best["text"], float(best["y"]), self.name)


_TEXT_CANDIDATES_JS = in_page(
    """
const lower = args.text.toLowerCase();
return findAllVisibleByText(args.text).filter((el) => {
  const t = ownText(el);
  return t.length <= args.maxChars && t.toLowerCase().startsWith(lower);
}).map((el) => ({
  uid: stampUid(el),
  text: ownText(el),
  y: el.getBoundingClientRect().top,
}));
"""
)


class TextProximityLocator(ControlLocator):
    """Short visible text starting with the wanted text, nearest the anchor."""

    name = "text_proximity"

    async def locate(
        self, page: Page, anchor_y: float, text: str
    ) -> Optional[ControlMatch]:
        candidates = await page.evaluate(
            _TEXT_CANDIDATES_JS, {"text": text, "maxChars": SHORT_TEXT_CHARS}
        )
        best = pick_nearest(candidates, anchor_y)
        if best is None:
            return None
        return ControlMatch(best["uid"], best["text"], float(best["y"]), self.name)


_PROBE_JS = in_page(
    """
const word = args.text.toLowerCase();
const w = document.documentElement.clientWidth;
const has = (el) => !!el && ownText(el).toLowerCase().includes(word);
for (const dx of args.offsets) {
  const el = document.elementFromPoint(w + dx, args.anchorY + 15);
  if (!el) continue;
  const hit = has(el) ? el : (has(el.parentElement) ? el.parentElement : null);
  if (hit) {
    return { uid: stampUid(hit), text: ownText(hit), y: hit.getBoundingClientRect().top };
  }
}
return null;
"""
)


class OffsetProbeLocator(ControlLocator):
    """Probe fixed x-offsets from the viewport's right edge.

    Catches icon-only controls that carry no direct text of their own but
    whose parent does.
    """

    name = "offset_probe"

    def __init__(self, offsets: Sequence[int] = PROBE_OFFSETS) -> None:
        self.offsets = list(offsets)

    async def locate(
        self, page: Page, anchor_y: float, text: str
    ) -> Optional[ControlMatch]:
        hit = await page.evaluate(
            _PROBE_JS,
            {"text": text, "anchorY": anchor_y, "offsets": self.offsets},
        )
        if not hit:
            return None
        return ControlMatch(hit["uid"], hit["text"], float(hit["y"]), self.name)


class ChainedLocator(ControlLocator):
    """Try each locator in order; the first match wins.

    A locator that raises is logged and skipped.
    """

    name = "chain"

    def __init__(self, locators: Sequence[ControlLocator]) -> None:
        self.locators = list(locators)
        self.logger = logging.getLogger(self.__class__.__name__)

    def prepend(self, *locators: ControlLocator) -> "ChainedLocator":
        return ChainedLocator([*locators, *self.locators])

    async def locate(
        self, page: Page, anchor_y: float, text: str
    ) -> Optional[ControlMatch]:
        for locator in self.locators:
            try:
                match = await locator.locate(page, anchor_y, text)
            except Exception as exc:  # noqa: BLE001
                self.logger.warning("%s failed for %r: %s", locator.name, text, exc)
                continue
            if match is not None:
                self.logger.info(
                    "located %r via %s: %r at y=%.0f",
                    text,
                    match.strategy,
                    match.text,
                    match.y,
                )
                return match
        self.logger.info("no control found for %r near y=%.0f", text, anchor_y)
        return None


def default_locator() -> ChainedLocator:
    """Return the role → text proximity → offset probe chain."""
    return ChainedLocator(
        [RoleQueryLocator(), TextProximityLocator(), OffsetProbeLocator()]
    )


# ═══════════════════════════════════════════════════════════════════════════
# Headings and clicks
# ═══════════════════════════════════════════════════════════════════════════

_HEADING_JS = in_page(
    """
const name = args.name.toLowerCase();
const cap = args.name.charAt(0).toUpperCase() + args.name.slice(1);
const els = findAllVisibleByText(cap);
const pack = (el) => ({ uid: stampUid(el), text: ownText(el), y: el.getBoundingClientRect().top });
const heading = els.find((el) => /^H[1-6]$/.test(el.tagName));
if (heading) return pack(heading);
const exact = els.find((el) => ownText(el).toLowerCase() === name);
if (exact) return pack(exact);
const short = els.find((el) => {
  const t = ownText(el);
  return t.length < args.maxChars && t.toLowerCase().startsWith(name);
});
if (short) return pack(short);
return els.length ? pack(els[0]) : null;
"""
)


async def find_heading(page: Page, name: str) -> Optional[ControlMatch]:
    """Locate the visible heading for a section name.

    Prefers h1–h6, then an exact (case-insensitive) text match, then a short
    text starting with the name, then the first visible match.
    """
    hit = await page.evaluate(
        _HEADING_JS, {"name": name, "maxChars": HEADING_TEXT_CHARS}
    )
    if not hit:
        return None
    return ControlMatch(hit["uid"], hit["text"], float(hit["y"]), "heading")


_CLICK_UID_JS = in_page(
    """
const el = findByUid(args.uid);
if (!el) return false;
el.click();
return true;
"""
)


async def click_uid(page: Page, uid: str) -> bool:
    """Dispatch exactly one DOM click on a stamped element."""
    return bool(await page.evaluate(_CLICK_UID_JS, {"uid": uid}))


_CLICK_TEXT_JS = in_page(
    """
const lower = args.text.toLowerCase();
for (const btn of deepQueryAll('button, [role="button"], input[type="submit"]')) {
  if (btn.getBoundingClientRect().width === 0) continue;
  const t = (ownText(btn) || btn.value || '').toLowerCase();
  if (t.includes(lower)) { btn.click(); return ownText(btn) || btn.value || args.text; }
}
for (const el of findAllVisibleByText(args.text)) {
  if (ownText(el).length < args.maxChars) { el.click(); return ownText(el); }
}
return null;
"""
)


async def click_by_text(page: Page, text: str, settle_seconds: float = 0.7) -> bool:
    """Click the first visible button (or short text) containing ``text``.

    Args:
        page: Active Playwright page.
        text: Text to look for, case-insensitive.
        settle_seconds: Sleep after a successful click.

    Returns:
        ``True`` if something was clicked.
    """
    clicked = await page.evaluate(
        _CLICK_TEXT_JS, {"text": text, "maxChars": SHORT_TEXT_CHARS}
    )
    if clicked is None:
        logger.info("click_by_text: %r not found", text)
        return False
    logger.info("click_by_text: clicked %r", clicked)
    await asyncio.sleep(settle_seconds)
    return True
