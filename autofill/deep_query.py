"""Shadow-DOM aware element queries shared by every in-page script.

The autofill engine runs its DOM work as JavaScript through
``page.evaluate``. Every script is wrapped with ``in_page`` so that it can
use the same helpers:

- ``deepQueryAll(selector, root)``: ``querySelectorAll`` that also descends
  into every open shadow root, to any depth.
- ``findAllVisibleByText(text)``: elements whose *direct* text nodes
  contain ``text`` (case-insensitive) and that have a non-empty rect.
- ``stampUid(el)``: assigns a stable ``data-autofill-uid`` to an element
  so Python can compare snapshots by identity and re-locate the element
  later with ``uid_selector``.
- ``visibleField(el)``: the field visibility rule (rect wider than 30px,
  taller than 10px, computed display not ``none``).
"""

from __future__ import annotations

import logging
from typing import Optional

from playwright.async_api import ElementHandle, Locator, Page

logger = logging.getLogger(__name__)

__all__ = [
    "UID_ATTRIBUTE",
    "PRELUDE",
    "in_page",
    "uid_selector",
    "locate_uid",
    "deep_query_all",
    "deep_count",
]

UID_ATTRIBUTE = "data-autofill-uid"

# ---------------------------------------------------------------------------
# JavaScript prelude
# ---------------------------------------------------------------------------

PRELUDE = r"""
const UID_ATTR = 'data-autofill-uid';
const deepQueryAll = (selector, root) => {
  const results = [];
  const walk = (node) => {
    node.querySelectorAll(selector).forEach((el) => results.push(el));
    node.querySelectorAll('*').forEach((el) => {
      if (el.shadowRoot) walk(el.shadowRoot);
    });
  };
  walk(root || document);
  return results;
};
const findAllVisibleByText = (text) => {
  const lower = String(text).toLowerCase();
  const results = [];
  const walk = (node) => {
    node.querySelectorAll('*').forEach((el) => {
      if (el.shadowRoot) walk(el.shadowRoot);
      let direct = '';
      el.childNodes.forEach((c) => {
        if (c.nodeType === Node.TEXT_NODE) direct += c.textContent || '';
      });
      if (direct.trim().toLowerCase().includes(lower)) {
        const r = el.getBoundingClientRect();
        if (r.width > 0 && r.height > 0) results.push(el);
      }
    });
  };
  walk(document);
  return results;
};
const stampUid = (el) => {
  if (!el.hasAttribute(UID_ATTR)) {
    window.__autofillUid = (window.__autofillUid || 0) + 1;
    el.setAttribute(UID_ATTR, String(window.__autofillUid));
  }
  return el.getAttribute(UID_ATTR);
};
const findByUid = (uid) =>
  deepQueryAll('[' + UID_ATTR + '="' + uid + '"]')[0] || null;
const visibleField = (el) => {
  const r = el.getBoundingClientRect();
  return r.width > 30 && r.height > 10 &&
    window.getComputedStyle(el).display !== 'none';
};
const rectOf = (el) => {
  const r = el.getBoundingClientRect();
  return { x: r.left, y: r.top, width: r.width, height: r.height };
};
const ownText = (el) => ((el && el.textContent) || '').trim();
"""


def in_page(body: str) -> str:
    """Wrap a script body so it runs with the shared prelude in scope.

    The returned function takes a single ``args`` parameter (whatever is
    passed as the ``arg`` of ``page.evaluate``).

    Args:
        body: JavaScript statements; must ``return`` the result.

    Returns:
        A JavaScript arrow function source string.
    """
    return "(args) => {\n" + PRELUDE + "\n" + body + "\n}"


def uid_selector(uid: str) -> str:
    """Return the CSS selector for an element stamped with ``uid``."""
    return f'[{UID_ATTRIBUTE}="{uid}"]'


def locate_uid(page: Page, uid: str) -> Locator:
    """Return a Playwright locator for a stamped element.

    Playwright CSS locators pierce open shadow roots, so this reaches the
    element wherever the snapshot found it.
    """
    return page.locator(uid_selector(uid)).first


_DEEP_QUERY_JS = in_page(
    """
    const root = args.rootUid ? findByUid(args.rootUid) : null;
    return deepQueryAll(args.selector, root && (root.shadowRoot || root))
      .map((el) => stampUid(el));
    """
)


async def deep_query_all(
    page: Page, selector: str, root_uid: Optional[str] = None
) -> list[ElementHandle]:
    """Return every element matching ``selector`` including shadow roots.

    Order is document order within each shadow boundary; callers needing
    visual order re-sort by rect.

    Args:
        page: Active Playwright page.
        selector: CSS selector evaluated in the document and every open
            shadow root.
        root_uid: Optional uid of an element to scope the search to.

    Returns:
        Element handles, possibly empty. Never raises on a missing root.
    """
    uids: list[str] = await page.evaluate(
        _DEEP_QUERY_JS, {"selector": selector, "rootUid": root_uid}
    )
    handles: list[ElementHandle] = []
    for uid in uids:
        handle = await page.query_selector(uid_selector(uid))
        if handle is not None:
            handles.append(handle)
    logger.debug("deep_query_all(%r): %d match(es)", selector, len(handles))
    return handles


_DEEP_COUNT_JS = in_page("return deepQueryAll(args.selector).length;")


async def deep_count(page: Page, selector: str) -> int:
    """Return how many elements match ``selector`` across shadow roots."""
    return int(await page.evaluate(_DEEP_COUNT_JS, {"selector": selector}))
