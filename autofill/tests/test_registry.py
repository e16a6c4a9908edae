# autofill/tests/test_registry.py
# Adapter selection and per-platform identifier maps.

from unittest.mock import AsyncMock, MagicMock

import pytest

from autofill.ats_detector import ATSDetector, DetectionMethod
from autofill.control_locator import ControlMatch
from autofill.field_detector import FieldType
from autofill.fill_executor import FillPlanEntry, FillStrategy, UploadOutcome
from autofill.platforms import (
    GenericAdapter,
    GreenhouseAdapter,
    LeverAdapter,
    SmartRecruitersAdapter,
    WorkdayAdapter,
)
import autofill.platforms.smartrecruiters as smartrecruiters


@pytest.mark.parametrize(
    "url,adapter_cls",
    [
        ("https://jobs.smartrecruiters.com/Acme/123-nurse", SmartRecruitersAdapter),
        ("https://acme.wd5.myworkdayjobs.com/en-US/careers/job/1/apply", WorkdayAdapter),
        ("https://boards.greenhouse.io/acme/jobs/42", GreenhouseAdapter),
        ("https://job-boards.greenhouse.io/acme/jobs/42", GreenhouseAdapter),
        ("https://jobs.lever.co/acme/0c1d/apply", LeverAdapter),
        ("https://careers.acme.com/apply/7", GenericAdapter),
        ("", GenericAdapter),
    ],
)
def test_select_by_url(url, adapter_cls):
    assert ATSDetector().select(url) is adapter_cls


def test_select_first_match_wins():
    class EarlyAdapter(GenericAdapter):
        NAME = "early"

        @classmethod
        def detect(cls, url):
            return "lever" in url

    registry = ATSDetector()
    registry.register(EarlyAdapter, first=True)
    assert registry.select("https://jobs.lever.co/acme/1") is EarlyAdapter


def test_detect_is_pure():
    url = "https://jobs.lever.co/acme/1"
    assert LeverAdapter.detect(url) is True
    assert LeverAdapter.detect(url) is True
    assert WorkdayAdapter.detect(url) is False


async def test_detect_by_url_skips_dom(page):
    page.url = "https://boards.greenhouse.io/acme/jobs/1"
    selection = await ATSDetector().detect(page)
    assert selection.adapter_cls is GreenhouseAdapter
    assert selection.method == DetectionMethod.URL_PATTERN
    page.query_selector.assert_not_awaited()


async def test_detect_by_dom_fingerprint(page):
    page.url = "https://careers.acme.com/apply"

    async def probe(selector):
        return MagicMock() if selector == "div.lever-application" else None

    page.query_selector = AsyncMock(side_effect=probe)
    selection = await ATSDetector().detect(page)
    assert selection.adapter_cls is LeverAdapter
    assert selection.method == DetectionMethod.DOM_FINGERPRINT


async def test_detect_falls_back_to_generic(page):
    page.url = "https://careers.acme.com/apply"
    selection = await ATSDetector().detect(page)
    assert selection.adapter_cls is GenericAdapter
    assert selection.method == DetectionMethod.FALLBACK


async def test_create_binds_adapter_to_page(page, fast_config):
    page.url = "https://jobs.smartrecruiters.com/Acme/1"
    adapter = await ATSDetector().create(page, config=fast_config)
    assert isinstance(adapter, SmartRecruitersAdapter)
    assert adapter.page is page
    assert adapter.SUPPORTS_SECTIONS


def test_workday_matches_prefixed_automation_ids(page, field_factory):
    adapter = WorkdayAdapter(page)
    field = field_factory(1, attributes={"data-automation-id": "1_legalNameSection_firstName"})
    assert adapter.profile_key_for(field) == "first_name"
    other = field_factory(2, attributes={"data-automation-id": "howDidYouHear"})
    assert adapter.profile_key_for(other) is None


def test_greenhouse_questions(page, field_factory):
    adapter = GreenhouseAdapter(page)
    linkedin = field_factory(1, label="LinkedIn Profile", attributes={"id": "question_123"})
    essay = field_factory(2, label="Why us?", attributes={"id": "question_456"})
    email = field_factory(3, attributes={"id": "email"})
    assert adapter.profile_key_for(linkedin) == "linkedin_url"
    assert adapter.profile_key_for(essay) is None
    assert adapter.profile_key_for(email) == "email"


def test_greenhouse_country_is_typeahead(page, field_factory):
    adapter = GreenhouseAdapter(page)
    country = field_factory(1, attributes={"id": "country"})
    assert adapter.strategy_for(country) == FillStrategy.AUTOCOMPLETE


async def test_lever_detect_fields_maps_names(page, field_factory, profile):
    detector = MagicMock()
    detector.detect_all = AsyncMock(
        return_value=[
            field_factory(1, attributes={"name": "name", "id": "name-input"}),
            field_factory(2, attributes={"name": "org"}),
            field_factory(3, attributes={"name": "urls[LinkedIn]"}),
            field_factory(4, attributes={"name": "cards[abc][field0]"}),
        ]
    )
    adapter = LeverAdapter(page, executor=MagicMock(), detector=detector)

    fields = await adapter.detect_fields()

    assert [f.identifier for f in fields] == ["name", "org", "urls[LinkedIn]", "cards[abc][field0]"]
    keys = [adapter.profile_key_for(f) for f in fields]
    assert keys == ["full_name", "current_employer", "linkedin_url", None]
    assert [f.confidence for f in fields] == [1.0, 1.0, 1.0, 0.0]
    assert profile.value_for("current_employer") == "Mind Clinic"


async def test_lever_location_retries_city(page, field_factory):
    executor = MagicMock()
    executor.execute = AsyncMock(return_value=False)
    executor.fill_autocomplete = AsyncMock(return_value=True)
    adapter = LeverAdapter(page, executor=executor, detector=MagicMock())
    location = field_factory(1, attributes={"name": "location"})
    entry = FillPlanEntry(location, "Austin, TX", adapter.strategy_for(location))

    assert entry.strategy == FillStrategy.AUTOCOMPLETE
    assert await adapter.fill_field(entry)
    executor.fill_autocomplete.assert_awaited_once_with("1", "Austin")


async def test_fill_field_routes_dropdowns_and_files(page, field_factory):
    executor = MagicMock()
    executor.select_custom_option = AsyncMock(return_value=True)
    executor.upload_resume = AsyncMock(return_value=UploadOutcome(True, "file_input", 4096))
    executor.execute = AsyncMock(return_value=True)
    adapter = WorkdayAdapter(page, executor=executor, detector=MagicMock())

    dropdown = field_factory(1, field_type=FieldType.CUSTOM_DROPDOWN)
    assert await adapter.fill_field(FillPlanEntry(dropdown, "Texas", FillStrategy.CUSTOM_DROPDOWN))
    executor.select_custom_option.assert_awaited_once_with("1", "Texas", WorkdayAdapter.OPTION_SELECTOR)

    upload = field_factory(2, field_type=FieldType.FILE)
    assert await adapter.fill_field(FillPlanEntry(upload, "https://x/cv.pdf", FillStrategy.FILE))
    executor.upload_resume.assert_awaited_once_with("https://x/cv.pdf", "resume.pdf")
    executor.execute.assert_not_awaited()


async def test_smartrecruiters_clears_existing_entries(page, monkeypatch, no_sleep):
    monkeypatch.setattr(
        smartrecruiters,
        "find_heading",
        AsyncMock(return_value=ControlMatch("h", "Experience", 50.0, "heading")),
    )
    page.evaluate = AsyncMock(
        side_effect=["Delete entry", "Yes", "Delete entry", None, None]
    )
    adapter = SmartRecruitersAdapter(page, executor=MagicMock(), detector=MagicMock())

    assert await adapter.prepare_section("experience") == 2


async def test_smartrecruiters_without_heading(page, monkeypatch):
    monkeypatch.setattr(smartrecruiters, "find_heading", AsyncMock(return_value=None))
    adapter = SmartRecruitersAdapter(page, executor=MagicMock(), detector=MagicMock())
    assert await adapter.prepare_section("education") == 0
    page.evaluate.assert_not_awaited()


def test_supported_platform_names():
    assert ATSDetector().get_all_supported_ats() == [
        "greenhouse",
        "lever",
        "smartrecruiters",
        "workday",
    ]
