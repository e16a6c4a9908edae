"""
Field detection for arbitrary job-application pages.

Enumerates the visible form controls of the current page (including those
inside open shadow roots) and turns each into a ``DetectedField``: a
``FieldDescriptor`` (what the classifier sees) bound to one live element
through its ``data-autofill-uid`` stamp (what the fill executor acts on).

Two passes are provided:

- ``snapshot()``: text-like controls (``input``, ``textarea``, ``select``)
  that pass the visibility rule. Also used by the section expander to diff
  the page before and after an "Add" click.
- ``detect_choice_fields()``: radio groups (one field per ``name``),
  checkboxes and file inputs, which need their own descriptors.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from playwright.async_api import Page

from autofill.deep_query import in_page

logger = logging.getLogger(__name__)

__all__ = [
    "FieldType",
    "FieldDescriptor",
    "Rect",
    "DetectedField",
    "FieldDetector",
    "FIELD_ATTRIBUTES",
]

FIELD_ATTRIBUTES: tuple[str, ...] = (
    "name",
    "id",
    "aria-label",
    "data-automation-id",
    "data-qa",
    "autocomplete",
    "type",
)


# ═══════════════════════════════════════════════════════════════════════════
# Enums and dataclasses
# ═══════════════════════════════════════════════════════════════════════════


class FieldType(Enum):
    """Widget class of a detected form field."""

    TEXT = "text"
    TEXTAREA = "textarea"
    SELECT = "select"
    RADIO = "radio"
    CHECKBOX = "checkbox"
    CUSTOM_DROPDOWN = "custom-dropdown"
    FILE = "file"

    @property
    def has_options(self) -> bool:
        return self in (FieldType.SELECT, FieldType.RADIO, FieldType.CUSTOM_DROPDOWN)


@dataclass
class FieldDescriptor:
    """Serializable description of a form field sent to the classifier.

    Attributes:
        label: Best-effort human label for the field.
        placeholder: Placeholder text, if any.
        attributes: Selected identifying attributes (name, id, aria-label,
            data-automation-id, data-qa, autocomplete, type) with non-empty
            values.
        field_type: Widget class.
        options: Option texts for select / radio / custom dropdowns.
            Empty for free-text fields.
    """

    label: str = ""
    placeholder: str = ""
    attributes: dict[str, str] = field(default_factory=dict)
    field_type: FieldType = FieldType.TEXT
    options: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "label": self.label,
            "placeholder": self.placeholder,
            "attributes": dict(self.attributes),
            "fieldType": self.field_type.value,
            "options": list(self.options),
        }


@dataclass(frozen=True)
class Rect:
    x: float = 0.0
    y: float = 0.0
    width: float = 0.0
    height: float = 0.0


@dataclass
class DetectedField:
    """A ``FieldDescriptor`` bound to one live element on the page.

    Attributes:
        uid: Value of the element's ``data-autofill-uid`` stamp.
        tag: Lower-case tag name (``input``, ``textarea``, ``select``).
        input_type: The element's ``type`` (``text``, ``date``, ...).
        descriptor: Classifier-facing description.
        rect: Bounding box at snapshot time (viewport coordinates).
        value: Current value at snapshot time.
        identifier: Platform identifier used to map the field onto a
            profile key (``data-automation-id`` / ``id`` / ``name`` unless an
            adapter remaps it).
        confidence: Detection confidence; 1.0 for adapter-mapped fields.
        option_uids: For radio groups, the uid of each radio in
            ``descriptor.options`` order.
    """

    uid: str
    tag: str
    input_type: str
    descriptor: FieldDescriptor
    rect: Rect = field(default_factory=Rect)
    value: str = ""
    identifier: str = ""
    confidence: float = 0.0
    option_uids: list[str] = field(default_factory=list)

    @property
    def label(self) -> str:
        return self.descriptor.label

    @property
    def field_type(self) -> FieldType:
        return self.descriptor.field_type

    @property
    def is_empty(self) -> bool:
        return not self.value.strip()

    @property
    def is_date(self) -> bool:
        return self.input_type in ("date", "month")

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "DetectedField":
        """Build a field from the JSON object returned by the page scripts."""
        attributes = {
            key: str(value)
            for key, value in (payload.get("attributes") or {}).items()
            if value
        }
        descriptor = FieldDescriptor(
            label=str(payload.get("label") or "").strip(),
            placeholder=str(payload.get("placeholder") or "").strip(),
            attributes=attributes,
            field_type=FieldType(payload.get("fieldType") or "text"),
            options=[str(o) for o in payload.get("options") or []],
        )
        rect = payload.get("rect") or {}
        identifier = (
            attributes.get("data-automation-id")
            or attributes.get("id")
            or attributes.get("name")
            or ""
        )
        return cls(
            uid=str(payload["uid"]),
            tag=str(payload.get("tag") or "input"),
            input_type=str(payload.get("inputType") or ""),
            descriptor=descriptor,
            rect=Rect(
                x=float(rect.get("x", 0.0)),
                y=float(rect.get("y", 0.0)),
                width=float(rect.get("width", 0.0)),
                height=float(rect.get("height", 0.0)),
            ),
            value=str(payload.get("value") or ""),
            identifier=identifier,
            option_uids=[str(u) for u in payload.get("optionUids") or []],
        )


# ═══════════════════════════════════════════════════════════════════════════
# In-page scripts
# ═══════════════════════════════════════════════════════════════════════════

_LABEL_JS = r"""
const labelFor = (el) => {
  const root = el.getRootNode();
  if (el.id && root.querySelector) {
    const byFor = root.querySelector('label[for="' + CSS.escape(el.id) + '"]');
    if (byFor && ownText(byFor)) return ownText(byFor);
  }
  const wrap = el.closest('label');
  if (wrap && ownText(wrap)) return ownText(wrap);
  const labelledBy = el.getAttribute('aria-labelledby');
  if (labelledBy) {
    const text = labelledBy.split(/\s+/).map((id) => {
      const n = root.getElementById ? root.getElementById(id) : document.getElementById(id);
      return n ? ownText(n) : '';
    }).filter(Boolean).join(' ');
    if (text) return text;
  }
  const aria = el.getAttribute('aria-label');
  if (aria && aria.trim()) return aria.trim();
  const prev = el.previousElementSibling;
  if (prev && ownText(prev) && ownText(prev).length < 120) return ownText(prev);
  return el.getAttribute('placeholder') || '';
};
const attrsOf = (el) => {
  const out = {};
  ATTRS.forEach((a) => { const v = el.getAttribute(a); if (v) out[a] = v; });
  return out;
};
"""

_ATTRS_JS = "const ATTRS = " + json.dumps(list(FIELD_ATTRIBUTES)) + ";\n"

_SNAPSHOT_JS = in_page(
    _ATTRS_JS
    + _LABEL_JS
    + r"""
const sel = 'input:not([type="hidden"]):not([type="file"]):not([type="checkbox"])'
  + ':not([type="radio"]):not([type="submit"]), textarea, select';
return deepQueryAll(sel).filter(visibleField).map((el) => {
  const tag = el.tagName.toLowerCase();
  let fieldType = 'text';
  if (tag === 'textarea') fieldType = 'textarea';
  else if (tag === 'select') fieldType = 'select';
  else {
    const ac = (el.getAttribute('aria-autocomplete') || '').toLowerCase();
    if (el.getAttribute('role') === 'combobox' || (ac && ac !== 'none')) {
      fieldType = 'custom-dropdown';
    }
  }
  const options = tag === 'select'
    ? Array.from(el.options).map((o) => o.text.trim()).filter((t) => t.length > 0)
    : [];
  return {
    uid: stampUid(el),
    tag,
    inputType: (el.type || '').toLowerCase(),
    label: labelFor(el),
    placeholder: el.getAttribute('placeholder') || '',
    attributes: attrsOf(el),
    fieldType,
    options,
    rect: rectOf(el),
    value: el.value || '',
  };
});
"""
)

_CHOICE_JS = in_page(
    _ATTRS_JS
    + _LABEL_JS
    + r"""
const shown = (el) => window.getComputedStyle(el).display !== 'none';
const out = [];
const groups = new Map();
deepQueryAll('input[type="radio"]').filter(shown).forEach((el) => {
  const key = el.name || stampUid(el);
  if (!groups.has(key)) groups.set(key, []);
  groups.get(key).push(el);
});
groups.forEach((radios) => {
  const first = radios[0];
  const fieldset = first.closest('fieldset');
  const legend = fieldset ? fieldset.querySelector('legend') : null;
  const group = first.closest('[role="radiogroup"]');
  let label = legend ? ownText(legend) : '';
  if (!label && group) label = group.getAttribute('aria-label') || '';
  if (!label) label = first.name || '';
  const checked = radios.find((r) => r.checked);
  out.push({
    uid: stampUid(first),
    tag: 'input',
    inputType: 'radio',
    label,
    placeholder: '',
    attributes: attrsOf(first),
    fieldType: 'radio',
    options: radios.map((r) => labelFor(r) || r.value),
    optionUids: radios.map((r) => stampUid(r)),
    rect: rectOf(first),
    value: checked ? (labelFor(checked) || checked.value) : '',
  });
});
deepQueryAll('input[type="checkbox"]').filter(shown).forEach((el) => {
  out.push({
    uid: stampUid(el),
    tag: 'input',
    inputType: 'checkbox',
    label: labelFor(el),
    placeholder: '',
    attributes: attrsOf(el),
    fieldType: 'checkbox',
    options: [],
    rect: rectOf(el),
    value: el.checked ? 'true' : '',
  });
});
deepQueryAll('input[type="file"]').forEach((el) => {
  out.push({
    uid: stampUid(el),
    tag: 'input',
    inputType: 'file',
    label: labelFor(el),
    placeholder: '',
    attributes: attrsOf(el),
    fieldType: 'file',
    options: [],
    rect: rectOf(el),
    value: el.files && el.files.length ? el.files[0].name : '',
  });
});
return out;
"""
)

_READ_VALUE_JS = in_page(
    """
const el = findByUid(args.uid);
if (!el) return null;
if (el.type === 'checkbox' || el.type === 'radio') return el.checked ? 'true' : '';
return el.value == null ? '' : String(el.value);
"""
)


# ═══════════════════════════════════════════════════════════════════════════
# FieldDetector
# ═══════════════════════════════════════════════════════════════════════════


class FieldDetector:
    """Enumerates fillable controls on a live page.

    Usage::

        detector = FieldDetector(page)
        fields = await detector.detect_all()
    """

    def __init__(self, page: Page) -> None:
        self.page = page
        self.logger = logging.getLogger(self.__class__.__name__)

    async def snapshot(self) -> list[DetectedField]:
        """Return every visible text-like control on the page.

        Excludes ``hidden``, ``file``, ``checkbox``, ``radio`` and ``submit``
        inputs. Visible means rect width > 30, height > 10 and a computed
        display other than ``none``.
        """
        payloads: list[dict[str, Any]] = await self.page.evaluate(_SNAPSHOT_JS)
        fields = [DetectedField.from_payload(p) for p in payloads]
        self.logger.debug("snapshot: %d visible field(s)", len(fields))
        return fields

    async def detect_choice_fields(self) -> list[DetectedField]:
        """Return radio groups, checkboxes and file inputs."""
        payloads: list[dict[str, Any]] = await self.page.evaluate(_CHOICE_JS)
        fields = [DetectedField.from_payload(p) for p in payloads]
        self.logger.debug("detect_choice_fields: %d field(s)", len(fields))
        return fields

    async def detect_all(self) -> list[DetectedField]:
        """Return ``snapshot()`` followed by ``detect_choice_fields()``."""
        fields = await self.snapshot()
        fields.extend(await self.detect_choice_fields())
        self.logger.info(
            "detect_all: %d field(s) on %s", len(fields), self.page.url
        )
        return fields

    async def read_value(self, uid: str) -> Optional[str]:
        """Read back the live value of a stamped element.

        Returns:
            The value string, ``"true"``/``""`` for checkable inputs, or
            ``None`` when the element is no longer in the page.
        """
        return await self.page.evaluate(_READ_VALUE_JS, {"uid": uid})
