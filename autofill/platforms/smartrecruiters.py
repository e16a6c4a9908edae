"""SmartRecruiters adapter.

SmartRecruiters renders its application as web components, so every query
goes through the shadow-piercing helpers. It is the platform the repeating
section flow was built for: experience and education entries are added one
at a time through an "Add" control under each heading.

Profiles imported from a resume often leave stale entries in those
sections; ``prepare_section`` deletes them before new ones are added.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from autofill.control_locator import find_heading
from autofill.deep_query import in_page
from autofill.platforms.base_platform import BaseATSAdapter

logger = logging.getLogger(__name__)

__all__ = ["SmartRecruitersAdapter"]

MAX_DELETES = 10
DELETE_SETTLE_SECONDS = 0.8
CONFIRM_SETTLE_SECONDS = 0.5
CONFIRM_WORDS: tuple[str, ...] = ("yes", "confirm", "ok", "delete", "remove")

# ---------------------------------------------------------------------------
# In-page scripts
# ---------------------------------------------------------------------------

_DELETE_ONE_JS = in_page(
    """
const heading = findByUid(args.headingUid);
if (!heading) return null;
const section = heading.closest(
  'section, fieldset, [class*="section"], [data-test], .application-section'
) || (heading.parentElement && heading.parentElement.parentElement);
if (!section) return null;
const shown = (el) => {
  const r = el.getBoundingClientRect();
  return r.width > 0 && r.height > 0;
};
let buttons = Array.from(section.querySelectorAll(
  '[aria-label*="elete"], [aria-label*="emove"], [aria-label*="rash"]'
)).filter(shown);
if (!buttons.length) {
  buttons = Array.from(section.querySelectorAll('button, [role="button"]')).filter((btn) => {
    const text = ownText(btn).toLowerCase();
    const aria = (btn.getAttribute('aria-label') || '').toLowerCase();
    const iconOnly = btn.querySelector('svg') !== null && text === '';
    return shown(btn) && (text.includes('delete') || text.includes('remove') ||
      aria.includes('delete') || aria.includes('remove') || iconOnly);
  });
}
if (!buttons.length) return null;
const btn = buttons[0];
const label = btn.getAttribute('aria-label') || ownText(btn).slice(0, 30) || 'delete';
btn.scrollIntoView({ block: 'center' });
btn.click();
return label;
"""
)

_CONFIRM_JS = in_page(
    """
for (const word of args.words) {
  for (const el of findAllVisibleByText(word)) {
    const btn = el.closest('button') || (el.getAttribute('role') === 'button' ? el : null);
    if (!btn) continue;
    const text = ownText(el).toLowerCase();
    if (text.length < 20 && args.words.some((w) => text.includes(w))) {
      btn.dispatchEvent(new MouseEvent('click', { bubbles: true }));
      return ownText(el);
    }
  }
}
return null;
"""
)


class SmartRecruitersAdapter(BaseATSAdapter):
    """Adapter for ``jobs.smartrecruiters.com`` application forms."""

    NAME = "smartrecruiters"
    URL_PATTERNS = ("jobs.smartrecruiters.com",)
    SUPPORTS_SECTIONS = True

    async def prepare_section(self, name: str) -> int:
        """Delete the entries already listed under section ``name``.

        Clicks the first delete control of the section container, confirms
        the dialog if one opens, and repeats until no control is left (at
        most ``MAX_DELETES`` times).

        Returns:
            Number of entries deleted.
        """
        heading = await find_heading(self.page, name)
        if heading is None:
            self.logger.info("%s: no heading, nothing to delete", name)
            return 0

        deleted = 0
        while deleted < MAX_DELETES:
            label: Optional[str] = await self.page.evaluate(
                _DELETE_ONE_JS, {"headingUid": heading.uid}
            )
            if label is None:
                break
            self.logger.info("%s: deleting entry %d (%r)", name, deleted + 1, label)
            await asyncio.sleep(DELETE_SETTLE_SECONDS)
            confirmed = await self.page.evaluate(
                _CONFIRM_JS, {"words": list(CONFIRM_WORDS)}
            )
            if confirmed:
                self.logger.debug("%s: confirmed with %r", name, confirmed)
            await asyncio.sleep(CONFIRM_SETTLE_SECONDS)
            deleted += 1

        self.logger.info("%s: cleared %d existing entr(ies)", name, deleted)
        return deleted
