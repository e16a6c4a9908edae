# autofill/tests/test_section_expander.py
# Layout grouping, schema mapping and the Add -> diff -> fill flow.

from unittest.mock import AsyncMock, MagicMock

import pytest

import autofill.section_expander as section_expander
from autofill.control_locator import ControlMatch
from autofill.field_detector import FieldType
from autofill.fill_executor import FillStrategy
from autofill.profile import EducationEntry, WorkExperienceEntry
from autofill.section_expander import (
    EXPERIENCE_SCHEMA,
    SectionExpander,
    build_section_plan,
    filter_stray_fields,
    group_by_row,
    slot_values,
    sort_by_position,
)


def test_group_by_row_threshold(field_factory):
    fields = [field_factory(i, y=y) for i, y in enumerate([100, 104, 160, 300, 305])]
    rows = group_by_row(sort_by_position(fields, 20), 20)
    assert [[f.rect.y for f in row] for row in rows] == [[100, 104], [160], [300, 305]]


def test_rows_ordered_left_to_right(field_factory):
    right = field_factory("r", y=102, x=400)
    left = field_factory("l", y=100, x=10)
    below = field_factory("b", y=200, x=0)
    ordered = sort_by_position([below, right, left], 20)
    assert [f.uid for f in ordered] == ["l", "r", "b"]
    rows = group_by_row(ordered, 20)
    assert [[f.uid for f in row] for row in rows] == [["l", "r"], ["b"]]


def test_filter_drops_country_placeholder(field_factory):
    fields = [
        field_factory(1, y=100),
        field_factory(2, y=100, placeholder="Country"),
        field_factory(3, y=160),
    ]
    assert [f.uid for f in filter_stray_fields(fields)] == ["1", "3"]


def test_filter_drops_far_outlier(field_factory):
    fields = [field_factory(i, y=y) for i, y in enumerate([100, 120, 160, 220, 2400])]
    kept = filter_stray_fields(fields)
    assert [f.rect.y for f in kept] == [100, 120, 160, 220]


def test_filter_keeps_small_sets(field_factory):
    fields = [field_factory(1, y=100), field_factory(2, y=1500), field_factory(3, y=3000)]
    assert len(filter_stray_fields(fields)) == 3


def test_slot_values_current_job_has_no_end_date():
    entry = WorkExperienceEntry(
        job_title="NP", employer_name="Clinic", end_date="2024-01", is_current=True
    )
    assert slot_values(entry)["end_date"] == ""


def test_education_summary():
    entry = EducationEntry(
        school_name="State University", degree_type="MSN", field_of_study="Nursing"
    )
    assert entry.summary == "MSN in Nursing at State University"


def _experience_fields(field_factory):
    return [
        field_factory("t", y=100, x=0, label="Job title"),
        field_factory("c", y=100, x=300, label="Company"),
        field_factory("l", y=160, x=0, label="Location"),
        field_factory("d", y=220, x=0, tag="textarea", field_type=FieldType.TEXTAREA),
        field_factory("s", y=400, x=0, input_type="date"),
        field_factory("e", y=400, x=300, input_type="date"),
    ]


def test_build_plan_maps_schema_slots(field_factory):
    rows = group_by_row(sort_by_position(_experience_fields(field_factory)))
    entry = WorkExperienceEntry(
        job_title="Nurse Practitioner",
        employer_name="Mind Clinic",
        employer_city="Austin",
        employer_state="TX",
        start_date="2021-04",
        end_date="2023-05",
        description="Outpatient care",
    )
    plan = build_section_plan(rows, EXPERIENCE_SCHEMA, slot_values(entry))
    assert [(p.field.uid, p.target_value, p.strategy) for p in plan] == [
        ("t", "Nurse Practitioner", FillStrategy.AUTOCOMPLETE),
        ("c", "Mind Clinic", FillStrategy.AUTOCOMPLETE),
        ("l", "Austin, TX", FillStrategy.AUTOCOMPLETE),
        ("d", "Outpatient care", FillStrategy.TEXT),
        ("s", "2021-04", FillStrategy.DATE),
        ("e", "2023-05", FillStrategy.DATE),
    ]
    assert all(p.factual and p.confidence == 1.0 for p in plan)


def test_build_plan_skips_missing_rows(field_factory):
    rows = [[field_factory("t", y=100)]]
    plan = build_section_plan(
        rows, EXPERIENCE_SCHEMA, {"job_title": "NP", "employer_name": "Clinic"}
    )
    assert [p.field.uid for p in plan] == ["t"]


@pytest.fixture
def expander_parts(page, field_factory, fast_config, monkeypatch, no_sleep):
    existing = [field_factory("x", y=40, label="Email")]
    revealed = _experience_fields(field_factory)

    detector = MagicMock()
    detector.snapshot = AsyncMock(side_effect=[existing, existing + revealed])
    detector.read_value = AsyncMock(return_value="Outpatient psychiatric care")

    locator = MagicMock()
    locator.locate = AsyncMock(return_value=ControlMatch("add", "Add", 90.0, "role"))

    executor = MagicMock()
    executor.execute = AsyncMock(return_value=True)
    executor.fill_text = AsyncMock(return_value=True)
    executor.check_by_label = AsyncMock(return_value=True)

    monkeypatch.setattr(
        section_expander,
        "find_heading",
        AsyncMock(return_value=ControlMatch("h", "Experience", 60.0, "heading")),
    )
    click = AsyncMock(return_value=True)
    monkeypatch.setattr(section_expander, "click_uid", click)
    save = AsyncMock(return_value=True)
    monkeypatch.setattr(section_expander, "click_by_text", save)

    expander = SectionExpander(
        page, executor, detector=detector, locator=locator, config=fast_config
    )
    return expander, executor, click, save


async def test_expand_current_job(expander_parts, profile):
    expander, executor, click, save = expander_parts
    entry = profile.work_experience[0]
    assert entry.is_current

    result = await expander.expand("experience", entry)

    assert result.ok
    assert result.revealed == 6
    click.assert_awaited_once_with(expander.page, "add")
    filled_uids = [c.args[0].field.uid for c in executor.execute.await_args_list]
    assert filled_uids == ["t", "c", "l", "d", "s"]
    assert "e" not in filled_uids
    executor.check_by_label.assert_awaited_once_with("currently work")
    save.assert_awaited_once()
    assert result.saved


async def test_expand_without_heading_is_noop(expander_parts, monkeypatch, profile):
    expander, executor, click, save = expander_parts
    monkeypatch.setattr(section_expander, "find_heading", AsyncMock(return_value=None))

    result = await expander.expand("experience", profile.work_experience[0])

    assert result.aborted == "no heading"
    click.assert_not_awaited()
    executor.execute.assert_not_awaited()
    save.assert_not_awaited()


async def test_expand_without_add_control(expander_parts, profile):
    expander, executor, click, _ = expander_parts
    expander.locator.locate = AsyncMock(return_value=None)

    result = await expander.expand("experience", profile.work_experience[0])

    assert result.aborted == "no add control"
    click.assert_not_awaited()


async def test_education_fills_empty_textarea_with_summary(expander_parts, profile):
    expander, executor, _, _ = expander_parts
    expander.detector.read_value = AsyncMock(return_value="")

    result = await expander.expand("education", profile.education[0])

    executor.fill_text.assert_awaited_once_with(
        "d", "MSN in Psychiatric Nursing at State University"
    )
    executor.check_by_label.assert_not_awaited()
    assert result.filled >= 1
