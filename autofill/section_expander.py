"""
Section expansion by snapshot diff.

Repeating sections ("Experience", "Education") only render their inputs
after an "Add" control is clicked. ``SectionExpander`` snapshots the
visible fields, clicks the control nearest the section heading, snapshots
again and treats the difference as the new entry's fields. Those fields
are ordered visually, grouped into rows and mapped onto a fixed row/column
schema per section.

Every miss (no heading, no control, no field at a schema slot) is logged
and skipped; nothing here raises into the orchestrator.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from dataclasses import dataclass, field
from typing import Optional, Sequence, Union

from playwright.async_api import Page

from autofill.control_locator import (
    ControlLocator,
    click_by_text,
    click_uid,
    default_locator,
    find_heading,
)
from autofill.field_detector import DetectedField, FieldDetector
from autofill.fill_executor import (
    FillExecutor,
    FillPlanEntry,
    FillStrategy,
    make_plan_entry,
)
from autofill.profile import EducationEntry, WorkExperienceEntry
from config.settings import EngineConfig, engine_config

logger = logging.getLogger(__name__)

__all__ = [
    "SchemaSlot",
    "SectionResult",
    "SectionExpander",
    "EXPERIENCE_SCHEMA",
    "EDUCATION_SCHEMA",
    "sort_by_position",
    "group_by_row",
    "filter_stray_fields",
    "slot_values",
    "build_section_plan",
]

SectionEntry = Union[WorkExperienceEntry, EducationEntry]

MAX_CLUSTER_SPREAD_PX = 800
MIN_CLUSTER_FIELDS = 3
STRAY_PLACEHOLDERS = frozenset({"country"})


# ---------------------------------------------------------------------------
# Layout
# ---------------------------------------------------------------------------


def sort_by_position(
    fields: Sequence[DetectedField], threshold: float = 20
) -> list[DetectedField]:
    """Order fields top-to-bottom, left-to-right.

    Two fields whose tops differ by no more than ``threshold`` compare by x.
    """

    def compare(a: DetectedField, b: DetectedField) -> float:
        dy = a.rect.y - b.rect.y
        if abs(dy) > threshold:
            return dy
        return a.rect.x - b.rect.x

    return sorted(fields, key=functools.cmp_to_key(compare))


def group_by_row(
    fields: Sequence[DetectedField], threshold: float = 20
) -> list[list[DetectedField]]:
    """Split position-sorted fields into rows.

    A field joins the current row when its top is within ``threshold`` of
    the previous field's top; each row is ordered by x.
    """
    rows: list[list[DetectedField]] = []
    previous: Optional[DetectedField] = None
    for current in fields:
        if previous is None or abs(current.rect.y - previous.rect.y) > threshold:
            rows.append([current])
        else:
            rows[-1].append(current)
        previous = current
    return [sorted(row, key=lambda f: f.rect.x) for row in rows]


def filter_stray_fields(
    fields: Sequence[DetectedField], max_spread: float = MAX_CLUSTER_SPREAD_PX
) -> list[DetectedField]:
    """Drop fields that belong to other widgets or other sections.

    Removes "Country" placeholder inputs, then, when more than three fields
    remain, fields further than ``max_spread`` from the median top (only if
    at least three survive that cut).
    """
    kept = [
        f
        for f in fields
        if f.descriptor.placeholder.strip().lower() not in STRAY_PLACEHOLDERS
    ]
    if len(kept) > MIN_CLUSTER_FIELDS:
        tops = sorted(f.rect.y for f in kept)
        median = tops[len(tops) // 2]
        clustered = [f for f in kept if abs(f.rect.y - median) < max_spread]
        if len(clustered) >= MIN_CLUSTER_FIELDS:
            kept = clustered
    return kept


# ---------------------------------------------------------------------------
# Schemas
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SchemaSlot:
    row: int
    col: int
    name: str
    strategy: FillStrategy


EXPERIENCE_SCHEMA: tuple[SchemaSlot, ...] = (
    SchemaSlot(0, 0, "job_title", FillStrategy.AUTOCOMPLETE),
    SchemaSlot(0, 1, "employer_name", FillStrategy.AUTOCOMPLETE),
    SchemaSlot(1, 0, "location", FillStrategy.AUTOCOMPLETE),
    SchemaSlot(2, 0, "description", FillStrategy.TEXT),
    SchemaSlot(3, 0, "start_date", FillStrategy.DATE),
    SchemaSlot(3, 1, "end_date", FillStrategy.DATE),
)

# Row 3 holds the description textarea, filled after the schema pass.
EDUCATION_SCHEMA: tuple[SchemaSlot, ...] = (
    SchemaSlot(0, 0, "school_name", FillStrategy.AUTOCOMPLETE),
    SchemaSlot(1, 0, "field_of_study", FillStrategy.TEXT),
    SchemaSlot(1, 1, "degree_type", FillStrategy.TEXT),
    SchemaSlot(2, 0, "location", FillStrategy.AUTOCOMPLETE),
    SchemaSlot(4, 0, "start_date", FillStrategy.DATE),
    SchemaSlot(4, 1, "graduation_date", FillStrategy.DATE),
)

SCHEMAS: dict[str, tuple[SchemaSlot, ...]] = {
    "experience": EXPERIENCE_SCHEMA,
    "education": EDUCATION_SCHEMA,
}

CURRENT_PHRASES: dict[str, str] = {
    "experience": "currently work",
    "education": "currently attend",
}


def slot_values(entry: SectionEntry) -> dict[str, str]:
    """Return the schema slot values of one section entry."""
    if isinstance(entry, WorkExperienceEntry):
        return {
            "job_title": entry.job_title,
            "employer_name": entry.employer_name,
            "location": entry.location,
            "description": entry.description,
            "start_date": entry.start_date,
            "end_date": "" if entry.is_current else entry.end_date,
        }
    return {
        "school_name": entry.school_name,
        "field_of_study": entry.field_of_study,
        "degree_type": entry.degree_type,
        "location": entry.location,
        "start_date": entry.start_date,
        "graduation_date": entry.graduation_date,
    }


def build_section_plan(
    rows: Sequence[Sequence[DetectedField]],
    schema: Sequence[SchemaSlot],
    values: dict[str, str],
) -> list[FillPlanEntry]:
    """Map grouped rows onto schema slots.

    Slots with an empty value, or without a field at their row/column, are
    skipped.
    """
    plan: list[FillPlanEntry] = []
    for slot in schema:
        value = values.get(slot.name, "")
        if not value:
            logger.debug("slot row%d col%d (%s): no value", slot.row, slot.col, slot.name)
            continue
        if slot.row >= len(rows) or slot.col >= len(rows[slot.row]):
            logger.debug(
                "slot row%d col%d (%s): no field (%d rows)",
                slot.row,
                slot.col,
                slot.name,
                len(rows),
            )
            continue
        entry = make_plan_entry(
            rows[slot.row][slot.col],
            value,
            confidence=1.0,
            strategy=slot.strategy,
            factual=True,
            source="schema",
        )
        if entry is not None:
            plan.append(entry)
    return plan


# ---------------------------------------------------------------------------
# SectionExpander
# ---------------------------------------------------------------------------


@dataclass
class SectionResult:
    """Outcome of expanding and filling one section entry."""

    section: str
    revealed: int = 0
    filled: int = 0
    failed: int = 0
    saved: bool = False
    aborted: str = ""
    control: Optional[str] = None
    notes: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.aborted


class SectionExpander:
    """Reveal and fill one repeating-section entry at a time.

    Usage::

        expander = SectionExpander(page, executor)
        result = await expander.expand("experience", profile.work_experience[0])
    """

    def __init__(
        self,
        page: Page,
        executor: FillExecutor,
        detector: Optional[FieldDetector] = None,
        locator: Optional[ControlLocator] = None,
        config: Optional[EngineConfig] = None,
    ) -> None:
        self.page = page
        self.executor = executor
        self.detector = detector or FieldDetector(page)
        self.locator = locator or default_locator()
        self.config = config or engine_config
        self.logger = logging.getLogger(self.__class__.__name__)

    async def reveal(self, name: str, result: SectionResult) -> list[DetectedField]:
        """Click the section's "Add" control and return the new fields.

        Returns an empty list and sets ``result.aborted`` when the heading
        or the control cannot be found.
        """
        before = {f.uid for f in await self.detector.snapshot()}
        self.logger.info("%s: %d field(s) before Add", name, len(before))

        heading = await find_heading(self.page, name)
        if heading is None:
            result.aborted = "no heading"
            self.logger.info("%s: no heading, skipping section", name)
            return []

        control = await self.locator.locate(self.page, heading.y, "Add")
        if control is None:
            result.aborted = "no add control"
            self.logger.info("%s: no Add control near y=%.0f", name, heading.y)
            return []

        result.control = control.text
        self.logger.info("%s: clicking %r (%s)", name, control.text, control.strategy)
        await click_uid(self.page, control.uid)
        await asyncio.sleep(self.config.settle_seconds)

        after = await self.detector.snapshot()
        new_fields = [f for f in after if f.uid not in before]
        self.logger.info(
            "%s: %d field(s) after Add, %d new", name, len(after), len(new_fields)
        )
        kept = filter_stray_fields(new_fields)
        if len(kept) != len(new_fields):
            self.logger.info(
                "%s: filtered %d stray field(s)", name, len(new_fields) - len(kept)
            )
        return kept

    async def expand(self, name: str, entry: SectionEntry) -> SectionResult:
        """Reveal a new entry for section ``name`` and fill it from ``entry``."""
        result = SectionResult(section=name)
        new_fields = await self.reveal(name, result)
        result.revealed = len(new_fields)
        if not new_fields:
            if not result.aborted:
                result.aborted = "no new fields"
            return result

        ordered = sort_by_position(new_fields, self.config.row_threshold_px)
        rows = group_by_row(ordered, self.config.row_threshold_px)
        self.logger.info("%s: grouped into %d row(s)", name, len(rows))
        for index, field_ in enumerate(ordered):
            self.logger.debug(
                "%s: new[%d] <%s type=%s> at (%.0f,%.0f) ph=%r",
                name,
                index,
                field_.tag,
                field_.input_type,
                field_.rect.x,
                field_.rect.y,
                field_.descriptor.placeholder,
            )

        for plan_entry in build_section_plan(rows, SCHEMAS[name], slot_values(entry)):
            if await self.executor.execute(plan_entry):
                result.filled += 1
            else:
                result.failed += 1

        await self._fill_empty_textareas(name, ordered, entry, result)

        is_current = (
            entry.is_current
            if isinstance(entry, WorkExperienceEntry)
            else entry.is_currently_attending
        )
        if is_current:
            await self.executor.check_by_label(CURRENT_PHRASES[name])

        await asyncio.sleep(0.3)
        result.saved = await click_by_text(self.page, "Save")
        self.logger.info(
            "%s: filled=%d failed=%d saved=%s",
            name,
            result.filled,
            result.failed,
            result.saved,
        )
        return result

    async def _fill_empty_textareas(
        self,
        name: str,
        fields: Sequence[DetectedField],
        entry: SectionEntry,
        result: SectionResult,
    ) -> None:
        description = entry.description
        if not description and isinstance(entry, EducationEntry):
            description = entry.summary
        textareas = [f for f in fields if f.tag == "textarea"]
        if not textareas:
            return
        if not description:
            self.logger.info("%s: no description data, skipping textareas", name)
            return
        for textarea in textareas:
            current = await self.detector.read_value(textarea.uid)
            if current is None or current.strip():
                continue
            if await self.executor.fill_text(textarea.uid, description):
                result.filled += 1
                result.notes.append(f"description: {description[:60]}")
