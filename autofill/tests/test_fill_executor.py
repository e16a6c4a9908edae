# autofill/tests/test_fill_executor.py
# Pure helpers plus the resume floor and dispatch behaviour on a mocked page.

import threading
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from autofill.field_detector import FieldType
import autofill.fill_executor as fill_executor
from autofill.fill_executor import (
    SELECT_TIMEOUT_MS,
    FillExecutor,
    FillPlanEntry,
    FillStrategy,
    UploadOutcome,
    choose_suggestion,
    format_date_iso,
    make_plan_entry,
    strategy_for,
)
import autofill.resume as resume
from autofill.resume import ResumeBlob


@pytest.mark.parametrize(
    "value,expected",
    [
        ("2024-03-05T00:00:00Z", "2024-03-05"),
        ("2024-03-05", "2024-03-05"),
        ("2024-03", "2024-03-01"),
        ("03/2024", "2024-03-01"),
        ("03/05/2024", "2024-03-05"),
        ("March 2024", "2024-03-01"),
        ("2024-03-05T23:30:00-05:00", "2024-03-06"),
    ],
)
def test_format_date_iso(value, expected):
    assert format_date_iso(value) == expected


@pytest.mark.parametrize("value", ["", "   ", "Present", "2024-13"])
def test_format_date_iso_rejects(value):
    assert format_date_iso(value) is None


def test_choose_suggestion_contains_either_way():
    suggestions = ["Austin, TX, USA", "Austin Peay State University"]
    assert choose_suggestion(suggestions, "austin, tx") == (0, True)
    assert choose_suggestion(["Nurse"], "Nurse Practitioner") == (0, True)


def test_choose_suggestion_falls_back_to_first():
    assert choose_suggestion(["Dallas", "Houston"], "Austin") == (0, False)
    assert choose_suggestion([], "Austin") == (None, False)


def test_strategy_for_widget_classes(field_factory):
    assert strategy_for(field_factory(1)) == FillStrategy.TEXT
    assert strategy_for(field_factory(2, input_type="date")) == FillStrategy.DATE
    assert strategy_for(field_factory(3, field_type=FieldType.SELECT)) == FillStrategy.SELECT
    assert strategy_for(field_factory(4, field_type=FieldType.RADIO)) == FillStrategy.CHECKBOX
    assert (
        strategy_for(field_factory(5, field_type=FieldType.CUSTOM_DROPDOWN))
        == FillStrategy.CUSTOM_DROPDOWN
    )
    assert strategy_for(field_factory(6, field_type=FieldType.FILE)) == FillStrategy.FILE


def test_plan_entry_rejects_empty_zero_confidence(field_factory):
    field = field_factory(1)
    assert make_plan_entry(field, "", confidence=0.0) is None
    with pytest.raises(ValueError):
        FillPlanEntry(field, "", FillStrategy.TEXT, confidence=0.0)


def test_plan_entry_allows_empty_factual_slot(field_factory):
    entry = make_plan_entry(field_factory(1), "", confidence=0.0, factual=True)
    assert entry is not None and entry.factual


def _client(size, status=200):
    def handler(request):
        return httpx.Response(
            status, content=b"%" * size, headers={"content-type": "application/pdf"}
        )

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


async def test_small_resume_is_not_attached(page, fast_config):
    async with _client(500) as client:
        executor = FillExecutor(page, fast_config, http_client=client)
        executor.attach_file = AsyncMock()

        outcome = await executor.upload_resume("https://files.example.com/cv.pdf")

    assert outcome == UploadOutcome(False, size=500, reason="file too small")
    executor.attach_file.assert_not_awaited()


async def test_large_resume_proceeds_to_attachment(page, fast_config):
    handle = MagicMock()
    handle.set_input_files = AsyncMock()
    page.evaluate = AsyncMock(return_value=["7"])
    page.query_selector = AsyncMock(return_value=handle)

    async with _client(5000) as client:
        executor = FillExecutor(page, fast_config, http_client=client)
        outcome = await executor.upload_resume("https://files.example.com/cv.pdf", "cv.pdf")

    assert outcome.attached
    assert outcome.method == "file_input"
    assert outcome.size == 5000
    payload = handle.set_input_files.await_args.args[0]
    assert payload["name"] == "cv.pdf"
    assert payload["mimeType"] == "application/pdf"
    assert len(payload["buffer"]) == 5000


async def test_failed_fetch_is_not_attached(page, fast_config):
    async with _client(5000, status=404) as client:
        executor = FillExecutor(page, fast_config, http_client=client)
        outcome = await executor.upload_resume("https://files.example.com/cv.pdf")
    assert not outcome.attached
    assert outcome.reason == "fetch failed"


async def test_missing_resume_url(page, fast_config):
    outcome = await FillExecutor(page, fast_config).upload_resume("")
    assert outcome == UploadOutcome(False, reason="no resume url")


async def test_attach_falls_back_to_dropzone(page, fast_config):
    handle = MagicMock()
    handle.set_input_files = AsyncMock(side_effect=RuntimeError("not accepted"))
    page.evaluate = AsyncMock(side_effect=[["3"], "dropzone-area"])
    page.query_selector = AsyncMock(return_value=handle)

    outcome = await FillExecutor(page, fast_config).attach_file(ResumeBlob(b"x" * 2048))

    assert outcome.attached and outcome.method == "dropzone"


async def test_autocomplete_low_confidence_pick(page, fast_config, no_sleep, caplog):
    page.evaluate = AsyncMock(
        side_effect=[
            True,  # focus
            True,  # clear
            "Austin",  # insert
            [{"uid": "s1", "text": "Dallas, TX"}, {"uid": "s2", "text": "Houston, TX"}],
            True,  # click first suggestion
        ]
    )

    with caplog.at_level("WARNING"):
        assert await FillExecutor(page, fast_config).fill_autocomplete("9", "Austin")

    assert page.evaluate.await_args_list[-1].args[1] == {"uid": "s1"}
    assert "low-confidence pick" in caplog.text


async def test_autocomplete_without_suggestions_tabs_out(page, fast_config, no_sleep):
    page.evaluate = AsyncMock(side_effect=[True, True, "Austin", [], True])

    assert await FillExecutor(page, fast_config).fill_autocomplete("9", "Austin")
    assert page.evaluate.await_count == 5


async def test_execute_swallows_page_errors(page, fast_config, field_factory):
    page.evaluate = AsyncMock(side_effect=RuntimeError("Target closed"))
    entry = FillPlanEntry(field_factory(1), "Jane", FillStrategy.TEXT)

    assert await FillExecutor(page, fast_config).execute(entry) is False


async def test_execute_radio_checks_matching_option(page, fast_config, field_factory):
    page.evaluate = AsyncMock(return_value=True)
    radio = field_factory(
        "g",
        field_type=FieldType.RADIO,
        input_type="radio",
        options=["Yes", "No"],
        option_uids=["r1", "r2"],
    )
    entry = FillPlanEntry(radio, "No", FillStrategy.CHECKBOX)

    assert await FillExecutor(page, fast_config).execute(entry)
    assert page.evaluate.await_args.args[1] == {"uid": "r2", "checked": True}


async def test_fill_date_month_input(page, fast_config, no_sleep):
    page.evaluate = AsyncMock(side_effect=[True, "2024-03", "2024-03"])

    assert await FillExecutor(page, fast_config).fill_date("5", "2024-03-05", "month")
    assert page.evaluate.await_args.args[1] == {"uid": "5", "value": "2024-03"}


async def test_resume_text_is_capped(monkeypatch):
    monkeypatch.setattr(resume, "extract_pdf_text", lambda data: "Nurse " * 1000)
    async with _client(5000) as client:
        text = await resume.extract_resume_text("https://f/cv.pdf", cap=100, client=client)
    assert len(text) == 100


async def test_unreadable_resume_yields_empty_text():
    async with _client(5000) as client:
        assert await resume.extract_resume_text("https://f/cv.pdf", client=client) == ""


@pytest.fixture
def select_locator(monkeypatch):
    locator = MagicMock()
    locator.select_option = AsyncMock(return_value=["picked"])
    monkeypatch.setattr(fill_executor, "locate_uid", lambda page, uid: locator)
    return locator


async def test_select_option_by_label(page, fast_config, select_locator):
    assert await FillExecutor(page, fast_config).select_option("4", "Texas")
    select_locator.select_option.assert_awaited_once_with(
        label="Texas", timeout=SELECT_TIMEOUT_MS
    )


async def test_select_option_falls_back_to_value(page, fast_config, select_locator):
    select_locator.select_option.side_effect = [TimeoutError("no label"), ["TX"]]

    assert await FillExecutor(page, fast_config).select_option("4", "TX")
    assert [c.kwargs for c in select_locator.select_option.await_args_list] == [
        {"label": "TX", "timeout": SELECT_TIMEOUT_MS},
        {"value": "TX", "timeout": SELECT_TIMEOUT_MS},
    ]


async def test_select_option_falls_back_to_partial_label(page, fast_config, select_locator):
    select_locator.select_option.side_effect = [
        TimeoutError("no label"),
        TimeoutError("no value"),
        ["night"],
    ]
    options = ["Day shift", "Night shift (7p-7a)"]

    assert await FillExecutor(page, fast_config).select_option("4", "Night shift", options)
    assert select_locator.select_option.await_args.kwargs == {
        "label": "Night shift (7p-7a)",
        "timeout": SELECT_TIMEOUT_MS,
    }
    assert select_locator.select_option.await_count == 3


async def test_select_option_without_match(page, fast_config, select_locator):
    select_locator.select_option.side_effect = TimeoutError("no option")

    assert not await FillExecutor(page, fast_config).select_option("4", "Evening", ["Day", "Night"])
    assert select_locator.select_option.await_count == 2


async def test_resume_text_extraction_runs_off_the_event_loop(monkeypatch):
    loop_thread = threading.get_ident()
    seen = []

    def extract(data):
        seen.append(threading.get_ident())
        return "Registered Nurse"

    monkeypatch.setattr(resume, "extract_pdf_text", extract)
    async with _client(5000) as client:
        text = await resume.extract_resume_text("https://f/cv.pdf", client=client)

    assert text == "Registered Nurse"
    assert seen and seen[0] != loop_thread


async def test_check_by_label_passes_inclusive_proximity(page, fast_config):
    page.evaluate = AsyncMock(return_value="proximity")

    assert await FillExecutor(page, fast_config).check_by_label("I currently work here")

    script, args = page.evaluate.await_args.args
    assert args == {"text": "I currently work here", "proximity": 30}
    assert "<= args.proximity" in script


async def test_check_by_label_reports_missing_checkbox(page, fast_config):
    page.evaluate = AsyncMock(return_value=None)
    assert not await FillExecutor(page, fast_config).check_by_label("Night shifts")
