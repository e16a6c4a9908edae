# autofill/tests/conftest.py
# Shared fixtures: field factories, mocked pages and zero-delay config.

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from autofill.field_detector import DetectedField, FieldDescriptor, FieldType, Rect
from autofill.profile import CandidateProfile
from config.settings import EngineConfig


def make_field(
    uid,
    y=0.0,
    x=0.0,
    label="",
    placeholder="",
    field_type=FieldType.TEXT,
    tag="input",
    input_type="text",
    options=None,
    attributes=None,
    value="",
    option_uids=None,
):
    attributes = dict(attributes or {})
    return DetectedField(
        uid=str(uid),
        tag=tag,
        input_type=input_type,
        descriptor=FieldDescriptor(
            label=label,
            placeholder=placeholder,
            attributes=attributes,
            field_type=field_type,
            options=list(options or []),
        ),
        rect=Rect(x=x, y=y, width=200, height=30),
        value=value,
        identifier=(
            attributes.get("data-automation-id")
            or attributes.get("id")
            or attributes.get("name")
            or ""
        ),
        option_uids=list(option_uids or []),
    )


@pytest.fixture
def field_factory():
    return make_field


@pytest.fixture
def fast_config():
    return EngineConfig(
        settle_delay_ms=0,
        step_delay_ms=0,
        typing_delay_ms=0,
        max_suggestion_wait_ms=700,
        row_threshold_px=20,
        proximity_px=30,
        min_resume_bytes=1024,
        classify_batch_cap=40,
        resume_text_cap=4000,
        job_description_cap=1000,
        expand_sections=False,
    )


@pytest.fixture
def no_sleep(monkeypatch):
    sleeper = AsyncMock(return_value=None)
    monkeypatch.setattr(asyncio, "sleep", sleeper)
    return sleeper


@pytest.fixture
def page():
    mock_page = MagicMock()
    mock_page.url = "https://example.com/apply"
    mock_page.evaluate = AsyncMock(return_value=None)
    mock_page.query_selector = AsyncMock(return_value=None)
    mock_page.keyboard.press = AsyncMock()
    return mock_page


@pytest.fixture
def profile():
    return CandidateProfile.from_record(
        {
            "personal": {
                "firstName": "Jane",
                "lastName": "Doe",
                "email": "jane.doe@example.com",
                "phone": "555-0100",
                "linkedinUrl": "https://linkedin.com/in/janedoe",
            },
            "address": {"city": "Austin", "state": "TX", "zip": "73301"},
            "professional": {
                "headline": "Psychiatric Nurse Practitioner",
                "yearsExperience": "6",
            },
            "eeo": {"gender": "Female"},
            "preferences": {"workAuthorized": True, "requiresSponsorship": False},
            "workExperience": [
                {
                    "jobTitle": "Nurse Practitioner",
                    "employerName": "Mind Clinic",
                    "employerCity": "Austin",
                    "employerState": "TX",
                    "startDate": "2021-04",
                    "endDate": "",
                    "description": "Outpatient psychiatric care",
                    "isCurrent": True,
                },
                {
                    "jobTitle": "Registered Nurse",
                    "employerName": "City Hospital",
                    "startDate": "2017-06",
                    "endDate": "2021-03",
                    "isCurrent": False,
                },
            ],
            "education": [
                {
                    "schoolName": "State University",
                    "degreeType": "MSN",
                    "fieldOfStudy": "Psychiatric Nursing",
                    "graduationDate": "2021-01",
                },
            ],
        }
    )
