"""
Fill executor: one strategy per widget class.

Every strategy acts on an element identified by its ``data-autofill-uid``
stamp and runs its DOM work through ``page.evaluate`` so that framework
controlled inputs (React, Angular, web components) see the same event
sequence a user would produce. Waits are fixed sleeps from
``EngineConfig``.

Strategies (``FillStrategy``):

- ``text``: clear, ``execCommand('insertText')``, native-setter fallback,
  read-back verification.
- ``date``: ``YYYY-MM-DD`` via the prototype's native setter plus a second
  ``insertText`` pass, then Escape to close any calendar popover.
- ``autocomplete``: type, wait for suggestions, click the matching one.
- ``select``: native ``<select>`` by label, value, then partial label.
- ``custom_dropdown``: open the widget, pick a listed option.
- ``checkbox``: checkbox or radio option, by uid or by label proximity.
- ``file``: resume via ``set_input_files``, drag-and-drop fallback.
"""

from __future__ import annotations

import asyncio
import base64
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Sequence

import httpx
from dateutil import parser as date_parser
from playwright.async_api import Page

from autofill.control_locator import click_uid
from autofill.deep_query import deep_query_all, in_page, locate_uid
from autofill.field_detector import DetectedField, FieldType
from autofill.resume import ResumeBlob, fetch_resume
from config.settings import EngineConfig, engine_config

logger = logging.getLogger(__name__)

__all__ = [
    "FillStrategy",
    "FillPlanEntry",
    "UploadOutcome",
    "FillExecutor",
    "make_plan_entry",
    "strategy_for",
    "format_date_iso",
    "choose_suggestion",
    "SUGGESTION_SELECTORS",
    "DROPZONE_SELECTOR",
]

SUGGESTION_SELECTORS: tuple[str, ...] = (
    '[role="option"]',
    '[role="listbox"] li',
    "mat-option",
    ".cdk-overlay-pane li",
    '.cdk-overlay-pane [role="option"]',
)
DEFAULT_OPTION_SELECTOR = '[role="option"], [role="listbox"] li'
DROPZONE_SELECTOR = (
    '[class*="dropzone"], [class*="drop-zone"], [class*="upload"], '
    '[class*="file-upload"]'
)
SELECT_TIMEOUT_MS = 2000
UPLOAD_TIMEOUT_MS = 5000
CLICK_SETTLE_SECONDS = 0.4


# ═══════════════════════════════════════════════════════════════════════════
# Plan types
# ═══════════════════════════════════════════════════════════════════════════


class FillStrategy(Enum):
    TEXT = "text"
    DATE = "date"
    AUTOCOMPLETE = "autocomplete"
    SELECT = "select"
    CUSTOM_DROPDOWN = "custom_dropdown"
    CHECKBOX = "checkbox"
    FILE = "file"


def strategy_for(field: DetectedField) -> FillStrategy:
    """Return the default strategy for a detected field's widget class."""
    field_type = field.field_type
    if field_type == FieldType.SELECT:
        return FillStrategy.SELECT
    if field_type == FieldType.CUSTOM_DROPDOWN:
        return FillStrategy.CUSTOM_DROPDOWN
    if field_type in (FieldType.CHECKBOX, FieldType.RADIO):
        return FillStrategy.CHECKBOX
    if field_type == FieldType.FILE:
        return FillStrategy.FILE
    if field.is_date:
        return FillStrategy.DATE
    return FillStrategy.TEXT


@dataclass
class FillPlanEntry:
    """One field to fill and how.

    Attributes:
        field: Target field.
        target_value: Value to write (option text for option fields).
        strategy: Widget strategy.
        confidence: Confidence of the value, 1.0 for schema/profile slots.
        factual: True for known factual slots (schema rows, adapter
            identifier maps), which may carry an empty value.
        source: Where the value came from (``profile``, ``classifier``,
            ``schema``), for logging.
    """

    field: DetectedField
    target_value: str
    strategy: FillStrategy
    confidence: float = 1.0
    factual: bool = False
    source: str = ""

    def __post_init__(self) -> None:
        if not self.target_value.strip() and self.confidence <= 0 and not self.factual:
            raise ValueError(
                f"empty zero-confidence plan entry for field {self.field.uid}"
            )


def make_plan_entry(
    field: DetectedField,
    value: str,
    confidence: float = 1.0,
    strategy: Optional[FillStrategy] = None,
    factual: bool = False,
    source: str = "",
) -> Optional[FillPlanEntry]:
    """Build a plan entry, or ``None`` for an empty zero-confidence value."""
    value = value or ""
    if not value.strip() and confidence <= 0 and not factual:
        return None
    return FillPlanEntry(
        field=field,
        target_value=value,
        strategy=strategy or strategy_for(field),
        confidence=confidence,
        factual=factual,
        source=source,
    )


@dataclass(frozen=True)
class UploadOutcome:
    """Result of a resume attachment attempt.

    Attributes:
        attached: Whether a file input or drop zone accepted the file.
        method: ``file_input``, ``dropzone`` or ``none``.
        size: Size of the fetched blob in bytes (0 when not fetched).
        reason: Short explanation when not attached.
    """

    attached: bool
    method: str = "none"
    size: int = 0
    reason: str = ""


# ═══════════════════════════════════════════════════════════════════════════
# Pure helpers
# ═══════════════════════════════════════════════════════════════════════════

_MONTH_YEAR_RE = re.compile(r"^(\d{1,2})/(\d{4})$")
_YEAR_MONTH_RE = re.compile(r"^(\d{4})-(\d{1,2})$")
_DEFAULT_DAY = datetime(2000, 1, 1)


def format_date_iso(value: str) -> Optional[str]:
    """Normalise a profile date to ``YYYY-MM-DD`` in UTC.

    Accepts ISO 8601 (including a trailing ``Z``), ``YYYY-MM``,
    ``MM/DD/YYYY``, ``MM/YYYY`` and ``Month YYYY``. Dates without a day
    resolve to the first of the month.

    Returns:
        The formatted date, or ``None`` when ``value`` is not a date.
    """
    text = (value or "").strip()
    if not text:
        return None

    match = _YEAR_MONTH_RE.match(text)
    if match:
        year, month = int(match.group(1)), int(match.group(2))
        return f"{year:04d}-{month:02d}-01" if 1 <= month <= 12 else None
    match = _MONTH_YEAR_RE.match(text)
    if match:
        month, year = int(match.group(1)), int(match.group(2))
        return f"{year:04d}-{month:02d}-01" if 1 <= month <= 12 else None

    try:
        parsed = date_parser.parse(text, default=_DEFAULT_DAY)
    except (ValueError, OverflowError):
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc)
    return parsed.strftime("%Y-%m-%d")


def choose_suggestion(
    suggestions: Sequence[str], target: str
) -> tuple[Optional[int], bool]:
    """Pick the suggestion to click for an autocomplete target.

    Returns:
        ``(index, matched)``: the first suggestion whose text contains the
        target or is contained in it (case-insensitive) with
        ``matched=True``; otherwise index 0 with ``matched=False``; or
        ``(None, False)`` when there are no suggestions.
    """
    wanted = target.strip().lower()
    for index, text in enumerate(suggestions):
        candidate = (text or "").strip().lower()
        if candidate and wanted and (wanted in candidate or candidate in wanted):
            return index, True
    if suggestions:
        return 0, False
    return None, False


def _choose_option(options: Sequence[str], value: str) -> Optional[int]:
    """Exact option first, then case-insensitive equal, then containment."""
    if value in options:
        return list(options).index(value)
    wanted = value.strip().lower()
    for index, option in enumerate(options):
        if option.strip().lower() == wanted:
            return index
    for index, option in enumerate(options):
        text = option.strip().lower()
        if text and wanted and (wanted in text or text in wanted):
            return index
    return None


# ═══════════════════════════════════════════════════════════════════════════
# In-page scripts
# ═══════════════════════════════════════════════════════════════════════════

_WIDGET_JS = r"""
const nativeSet = (el, value) => {
  const proto = el instanceof HTMLTextAreaElement ? HTMLTextAreaElement.prototype
    : el instanceof HTMLSelectElement ? HTMLSelectElement.prototype
    : HTMLInputElement.prototype;
  try {
    const desc = Object.getOwnPropertyDescriptor(proto, 'value');
    if (desc && desc.set) { desc.set.call(el, value); return; }
  } catch (e) { /* fall through to plain assignment */ }
  el.value = value;
};
const fire = (el, type) => el.dispatchEvent(new Event(type, { bubbles: true }));
const fireFocus = (el, type) => el.dispatchEvent(new FocusEvent(type, { bubbles: true }));
const settle = (el) => { fire(el, 'change'); fireFocus(el, 'blur'); fireFocus(el, 'focusout'); };
const target = findByUid(args.uid);
"""


def _widget_script(body: str) -> str:
    return in_page(_WIDGET_JS + body)


_FOCUS_JS = _widget_script(
    """
if (!target) return false;
target.scrollIntoView({ block: 'center' });
target.focus();
fireFocus(target, 'focus');
fireFocus(target, 'focusin');
if (args.click) target.click();
return true;
"""
)

_CLEAR_JS = _widget_script(
    """
if (!target) return false;
nativeSet(target, '');
target.dispatchEvent(new InputEvent('input', { bubbles: true, inputType: 'deleteContentBackward' }));
return true;
"""
)

_INSERT_TEXT_JS = _widget_script(
    """
if (!target) return null;
let inserted = false;
try {
  target.select();
  inserted = document.execCommand('insertText', false, args.value);
} catch (e) { inserted = false; }
if (inserted && target.value === args.value) {
  if (args.settle) settle(target);
  return target.value;
}
nativeSet(target, args.value);
target.dispatchEvent(new InputEvent('input', { bubbles: true, data: args.value, inputType: 'insertText' }));
if (args.settle) settle(target);
else fire(target, 'change');
return target.value;
"""
)

_DATE_SET_JS = _widget_script(
    """
if (!target) return null;
nativeSet(target, args.value);
fire(target, 'input');
fire(target, 'change');
target.dispatchEvent(new InputEvent('input', { bubbles: true, data: args.value, inputType: 'insertText' }));
return target.value;
"""
)

_DATE_SECOND_PASS_JS = _widget_script(
    """
if (!target) return null;
try {
  target.focus();
  target.select();
  document.execCommand('insertText', false, args.value);
} catch (e) { /* calendar widgets may not accept text insertion */ }
if (target.value !== args.value) nativeSet(target, args.value);
settle(target);
document.dispatchEvent(new KeyboardEvent('keydown', { key: 'Escape', bubbles: true }));
return target.value;
"""
)

_SUGGESTIONS_JS = in_page(
    """
for (const sel of args.selectors) {
  const visible = deepQueryAll(sel).filter((o) => {
    const r = o.getBoundingClientRect();
    return r.width > 0 && r.height > 0;
  });
  if (visible.length) {
    return visible.map((o) => ({
      uid: stampUid(o),
      text: ownText(o) || o.getAttribute('aria-label') || o.getAttribute('title') || '',
    }));
  }
}
return [];
"""
)

_TAB_OUT_JS = _widget_script(
    """
if (!target) return false;
target.dispatchEvent(new KeyboardEvent('keydown', { key: 'Tab', code: 'Tab', keyCode: 9, bubbles: true }));
settle(target);
return true;
"""
)

_SET_CHECKED_JS = _widget_script(
    """
if (!target) return null;
if (target.checked !== args.checked) {
  target.click();
  fire(target, 'change');
}
return target.checked;
"""
)

_CHECK_BY_LABEL_JS = in_page(
    """
const labels = findAllVisibleByText(args.text);
const tick = (cb) => { cb.click(); cb.dispatchEvent(new Event('change', { bubbles: true })); };
for (const label of labels) {
  const cb = label.querySelector('input[type="checkbox"]')
    || (label.parentElement && label.parentElement.querySelector('input[type="checkbox"]'));
  if (cb) {
    if (!cb.checked) tick(cb);
    return 'label';
  }
}
const boxes = deepQueryAll('input[type="checkbox"]');
for (const label of labels) {
  const top = label.getBoundingClientRect().top;
  for (const cb of boxes) {
    if (Math.abs(cb.getBoundingClientRect().top - top) <= args.proximity) {
      if (!cb.checked) tick(cb);
      return 'proximity';
    }
  }
}
return null;
"""
)

_DROP_JS = in_page(
    """
const bytes = Uint8Array.from(atob(args.data), (c) => c.charCodeAt(0));
const file = new File([bytes], args.name, { type: args.type });
for (const dz of deepQueryAll(args.selector)) {
  try {
    const dt = new DataTransfer();
    dt.items.add(file);
    ['dragenter', 'dragover', 'drop'].forEach((type) => {
      dz.dispatchEvent(new DragEvent(type, { bubbles: true, cancelable: true, dataTransfer: dt }));
    });
    return String(dz.className || dz.tagName).slice(0, 50);
  } catch (e) { /* try the next drop zone */ }
}
return null;
"""
)

_TEXTAREA_BELOW_JS = in_page(
    """
const headings = findAllVisibleByText(args.text);
if (!headings.length) return null;
let headingY = -Infinity;
headings.forEach((h) => { headingY = Math.max(headingY, h.getBoundingClientRect().top); });
let best = null;
let bestDist = args.maxDistance;
deepQueryAll('textarea').forEach((ta) => {
  const r = ta.getBoundingClientRect();
  if (r.width < args.minWidth) return;
  const dist = r.top - headingY;
  if (dist > 0 && dist < bestDist) { bestDist = dist; best = ta; }
});
return best ? { uid: stampUid(best), headingY } : null;
"""
)


# ═══════════════════════════════════════════════════════════════════════════
# FillExecutor
# ═══════════════════════════════════════════════════════════════════════════


class FillExecutor:
    """Widget fill strategies bound to one Playwright page.

    Every public method returns a boolean (or ``UploadOutcome``) and logs
    its decision. ``execute`` additionally converts Playwright errors into
    a ``False`` result.
    """

    def __init__(
        self,
        page: Page,
        config: Optional[EngineConfig] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.page = page
        self.config = config or engine_config
        self.http_client = http_client
        self.logger = logging.getLogger(self.__class__.__name__)

    async def _pause(self, seconds: Optional[float] = None) -> None:
        await asyncio.sleep(self.config.typing_seconds if seconds is None else seconds)

    # ------------------------------------------------------------------
    # Text / date
    # ------------------------------------------------------------------

    async def fill_text(self, uid: str, value: str) -> bool:
        """Type ``value`` into a text input or textarea and verify it."""
        if not await self.page.evaluate(_FOCUS_JS, {"uid": uid, "click": False}):
            self.logger.info("fill_text: element %s is gone", uid)
            return False
        await self._pause()
        await self.page.evaluate(_CLEAR_JS, {"uid": uid})
        await self._pause()
        final = await self.page.evaluate(
            _INSERT_TEXT_JS, {"uid": uid, "value": value, "settle": True}
        )
        ok = final == value
        self.logger.debug("fill_text %s: %r -> %s", uid, value[:40], ok)
        return ok

    async def fill_date(self, uid: str, value: str, input_type: str = "date") -> bool:
        """Fill a native date input from any supported date notation."""
        formatted = format_date_iso(value)
        if formatted is None:
            self.logger.info("fill_date: cannot parse %r, skipping", value)
            return False
        if input_type == "month":
            formatted = formatted[:7]
        if not await self.page.evaluate(_FOCUS_JS, {"uid": uid, "click": True}):
            return False
        await self._pause(0.2)
        await self.page.evaluate(_DATE_SET_JS, {"uid": uid, "value": formatted})
        await self._pause(0.1)
        final = await self.page.evaluate(
            _DATE_SECOND_PASS_JS, {"uid": uid, "value": formatted}
        )
        await self._pause(0.3)
        self.logger.info("fill_date %s: %r (from %r) -> %r", uid, formatted, value, final)
        return final == formatted

    # ------------------------------------------------------------------
    # Autocomplete / dropdowns
    # ------------------------------------------------------------------

    async def fill_autocomplete(self, uid: str, value: str) -> bool:
        """Type into an autocomplete combobox and pick a suggestion.

        When suggestions appear but none matches, the first visible one is
        clicked and logged as a low-confidence pick. With no suggestions
        the typed text is accepted by tabbing out.
        """
        if not await self.page.evaluate(_FOCUS_JS, {"uid": uid, "click": False}):
            return False
        await self._pause(0.1)
        await self.page.evaluate(_CLEAR_JS, {"uid": uid})
        await self._pause()
        await self.page.evaluate(
            _INSERT_TEXT_JS, {"uid": uid, "value": value, "settle": False}
        )
        await asyncio.sleep(self.config.suggestion_wait_seconds)

        suggestions = await self.page.evaluate(
            _SUGGESTIONS_JS, {"selectors": list(SUGGESTION_SELECTORS)}
        )
        index, matched = choose_suggestion([s["text"] for s in suggestions], value)
        if index is None:
            self.logger.info("autocomplete %r: no suggestions, tabbing out", value[:30])
            await self.page.evaluate(_TAB_OUT_JS, {"uid": uid})
            return True

        chosen = suggestions[index]
        if matched:
            self.logger.info("autocomplete %r: clicking %r", value[:30], chosen["text"][:40])
        else:
            self.logger.warning(
                "autocomplete %r: %d suggestion(s), none match; low-confidence pick %r",
                value[:30],
                len(suggestions),
                chosen["text"][:40],
            )
        await click_uid(self.page, chosen["uid"])
        await asyncio.sleep(CLICK_SETTLE_SECONDS)
        return True

    async def select_option(self, uid: str, value: str, options: Sequence[str] = ()) -> bool:
        """Select a native ``<select>`` option by label, value, then partial label."""
        locator = locate_uid(self.page, uid)
        try:
            await locator.select_option(label=value, timeout=SELECT_TIMEOUT_MS)
            return True
        except Exception:  # noqa: BLE001
            pass
        try:
            await locator.select_option(value=value, timeout=SELECT_TIMEOUT_MS)
            return True
        except Exception:  # noqa: BLE001
            pass

        wanted = value.strip().lower()
        for option in options:
            text = option.strip().lower()
            if wanted and text and (wanted in text or text in wanted):
                try:
                    await locator.select_option(label=option, timeout=SELECT_TIMEOUT_MS)
                    return True
                except Exception:  # noqa: BLE001
                    continue
        self.logger.info("select_option %s: no option for %r", uid, value)
        return False

    async def select_custom_option(
        self,
        uid: str,
        value: str,
        option_selector: str = DEFAULT_OPTION_SELECTOR,
    ) -> bool:
        """Open a custom dropdown and click the option matching ``value``.

        Falls back to the autocomplete strategy when opening the widget
        shows no options at all.
        """
        if not await click_uid(self.page, uid):
            return False
        await asyncio.sleep(self.config.suggestion_wait_seconds)
        listed = await self.page.evaluate(
            _SUGGESTIONS_JS, {"selectors": [option_selector]}
        )
        if not listed:
            return await self.fill_autocomplete(uid, value)
        index = _choose_option([o["text"] for o in listed], value)
        if index is None:
            self.logger.info(
                "custom dropdown %s: %d option(s), none match %r", uid, len(listed), value
            )
            await self.page.keyboard.press("Escape")
            return False
        await click_uid(self.page, listed[index]["uid"])
        await asyncio.sleep(CLICK_SETTLE_SECONDS)
        return True

    # ------------------------------------------------------------------
    # Checkboxes / radios
    # ------------------------------------------------------------------

    async def set_checked(self, uid: str, checked: bool = True) -> bool:
        result = await self.page.evaluate(
            _SET_CHECKED_JS, {"uid": uid, "checked": checked}
        )
        return result is not None and bool(result) == checked

    async def check_radio(self, field: DetectedField, value: str) -> bool:
        """Check the radio of a group whose label matches ``value``."""
        index = _choose_option(field.descriptor.options, value)
        if index is None or index >= len(field.option_uids):
            self.logger.info("check_radio %r: no option for %r", field.label, value)
            return False
        return await self.set_checked(field.option_uids[index], True)

    async def check_by_label(self, text: str) -> bool:
        """Check the checkbox labelled by (or level with) ``text``."""
        how = await self.page.evaluate(
            _CHECK_BY_LABEL_JS, {"text": text, "proximity": self.config.proximity_px}
        )
        if how is None:
            self.logger.info("check_by_label: no checkbox for %r", text)
            return False
        self.logger.info("check_by_label: checked %r (%s)", text, how)
        return True

    # ------------------------------------------------------------------
    # Files
    # ------------------------------------------------------------------

    async def upload_resume(self, url: str, file_name: str = "resume.pdf") -> UploadOutcome:
        """Fetch the resume and attach it to the page. Never raises."""
        if not url:
            self.logger.info("upload_resume: no resume URL, skipping")
            return UploadOutcome(False, reason="no resume url")
        try:
            blob = await fetch_resume(url, file_name, client=self.http_client)
            if blob is None:
                return UploadOutcome(False, reason="fetch failed")
            if blob.size < self.config.min_resume_bytes:
                self.logger.warning(
                    "upload_resume: %d bytes is below %d, not a valid document",
                    blob.size,
                    self.config.min_resume_bytes,
                )
                return UploadOutcome(False, size=blob.size, reason="file too small")
            return await self.attach_file(blob)
        except Exception as exc:  # noqa: BLE001
            self.logger.warning("upload_resume: %s", exc)
            return UploadOutcome(False, reason=str(exc))

    async def attach_file(self, blob: ResumeBlob) -> UploadOutcome:
        """Attach ``blob`` to the first accepting file input or drop zone."""
        payload = {
            "name": blob.file_name,
            "mimeType": blob.content_type,
            "buffer": blob.content,
        }
        inputs = await deep_query_all(self.page, 'input[type="file"]')
        self.logger.info("attach_file: %d file input(s)", len(inputs))
        for handle in inputs:
            try:
                await handle.set_input_files(payload, timeout=UPLOAD_TIMEOUT_MS)
                self.logger.info("attach_file: attached via file input")
                return UploadOutcome(True, "file_input", blob.size)
            except Exception as exc:  # noqa: BLE001
                self.logger.debug("attach_file: input rejected file: %s", exc)

        zone = await self.page.evaluate(
            _DROP_JS,
            {
                "data": base64.b64encode(blob.content).decode("ascii"),
                "name": blob.file_name,
                "type": blob.content_type,
                "selector": DROPZONE_SELECTOR,
            },
        )
        if zone:
            self.logger.info("attach_file: dropped on %r", zone)
            return UploadOutcome(True, "dropzone", blob.size)
        self.logger.warning("attach_file: no file input or drop zone accepted the file")
        return UploadOutcome(False, size=blob.size, reason="no target")

    # ------------------------------------------------------------------
    # Layout helpers
    # ------------------------------------------------------------------

    async def find_textarea_below(
        self, text: str, max_distance: float = 300, min_width: float = 100
    ) -> Optional[str]:
        """Return the uid of the textarea just below the lowest ``text``."""
        hit = await self.page.evaluate(
            _TEXTAREA_BELOW_JS,
            {"text": text, "maxDistance": max_distance, "minWidth": min_width},
        )
        if not hit:
            return None
        return str(hit["uid"])

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    async def execute(self, entry: FillPlanEntry) -> bool:
        """Apply one plan entry. Playwright errors are logged, not raised."""
        field = entry.field
        try:
            if entry.strategy == FillStrategy.TEXT:
                return await self.fill_text(field.uid, entry.target_value)
            if entry.strategy == FillStrategy.DATE:
                return await self.fill_date(
                    field.uid, entry.target_value, field.input_type or "date"
                )
            if entry.strategy == FillStrategy.AUTOCOMPLETE:
                return await self.fill_autocomplete(field.uid, entry.target_value)
            if entry.strategy == FillStrategy.SELECT:
                return await self.select_option(
                    field.uid, entry.target_value, field.descriptor.options
                )
            if entry.strategy == FillStrategy.CUSTOM_DROPDOWN:
                return await self.select_custom_option(field.uid, entry.target_value)
            if entry.strategy == FillStrategy.CHECKBOX:
                if field.field_type == FieldType.RADIO:
                    return await self.check_radio(field, entry.target_value)
                wanted = entry.target_value.strip().lower() not in ("", "no", "false", "0")
                return await self.set_checked(field.uid, wanted)
            if entry.strategy == FillStrategy.FILE:
                outcome = await self.upload_resume(entry.target_value)
                return outcome.attached
        except Exception as exc:  # noqa: BLE001
            self.logger.warning(
                "execute: %s on %r failed: %s", entry.strategy.value, field.label, exc
            )
            return False
        return False
