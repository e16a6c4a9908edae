# autofill/tests/test_classifier.py
# Local matching, response parsing and the three classification outcomes.

import json
from unittest.mock import MagicMock

import pytest

import integrations.llm_interface as llm_interface
from autofill.classifier import (
    NO_PROFILE_CONTEXT,
    ClassificationOk,
    ClassificationRequest,
    ClassificationRequestError,
    ClassifiedField,
    FieldClassifier,
    ParseFailure,
    UpstreamFailure,
    build_classify_prompt,
    build_profile_context,
    cluster_fields,
    enforce_options,
    match_locally,
    parse_classification,
)
from autofill.field_detector import FieldDescriptor, FieldType
from autofill.profile import CandidateProfile
from autofill.resume import extract_resume_text
from config.settings import APIConfig
from integrations.llm_interface import LLMInterface, LLMUnavailableError

WORK_AUTH = FieldDescriptor(
    label="Are you legally authorized to work in the United States?",
    field_type=FieldType.SELECT,
    options=["Yes", "No"],
)
WHY_US = FieldDescriptor(
    label="Why do you want to work here?", field_type=FieldType.TEXTAREA
)
SHIFT = FieldDescriptor(
    label="Preferred shift", field_type=FieldType.SELECT, options=["Day", "Night"]
)


def _llm_returning(payload, model="gpt-test"):
    llm = MagicMock(spec=LLMInterface)
    raw = payload if isinstance(payload, str) else json.dumps(payload)
    llm.chat_json.return_value = (raw, model)
    return llm


def test_parse_returns_one_entry_per_field():
    fields = [WHY_US, SHIFT, FieldDescriptor(label="Notes")]
    raw = json.dumps(
        {
            "fields": [
                {"index": 1, "value": "Day", "confidence": 0.8},
                {"index": 1, "value": "Night", "confidence": 0.9},
                {"index": 7, "value": "stray", "confidence": 0.9},
                {"index": 0, "value": "Mission fit", "confidence": 0.7, "isQuestion": True},
            ]
        }
    )
    result = parse_classification(raw, fields, model="m")
    assert isinstance(result, ClassificationOk)
    assert [f.index for f in result.fields] == [0, 1, 2]
    assert result.fields[1].value == "Day"
    assert result.fields[0].is_question
    assert result.fields[2].confidence == 0.0 and result.fields[2].value == ""


def test_parse_enforces_exact_options():
    raw = json.dumps(
        {
            "fields": [
                {"index": 0, "value": "yes", "confidence": 0.9},
                {"index": 1, "value": "Evenings", "confidence": 0.8},
            ]
        }
    )
    result = parse_classification(raw, [WORK_AUTH, SHIFT])
    assert result.fields[0].value == "Yes"
    assert result.fields[1].value == "" and result.fields[1].confidence == 0.0
    for classified, descriptor in zip(result.fields, [WORK_AUTH, SHIFT]):
        if classified.confidence > 0:
            assert classified.value in descriptor.options


def test_enforce_options_ignores_free_text():
    classified = ClassifiedField(0, "why", None, "Because", 0.8, True)
    assert enforce_options(classified, WHY_US) is classified


@pytest.mark.parametrize(
    "raw,reason",
    [
        ("not json", "invalid JSON"),
        ('{"answers": []}', "missing fields array"),
        ("[]", "missing fields array"),
        ("", "invalid JSON"),
    ],
)
def test_parse_failures(raw, reason):
    result = parse_classification(raw, [WHY_US])
    assert isinstance(result, ParseFailure)
    assert result.reason == reason


def test_cluster_fields_keeps_every_index():
    fields = [
        FieldDescriptor(label="Gender"),
        FieldDescriptor(label="Do you require visa sponsorship?"),
        FieldDescriptor(label="Years of experience"),
        FieldDescriptor(label="Favourite colour"),
        FieldDescriptor(label="Why this role?"),
    ]
    clusters = cluster_fields(fields)
    assert clusters == {
        "eeo": [0],
        "work_authorization": [1],
        "experience": [2],
        "screening": [4],
        "uncategorized": [3],
    }
    assert sorted(i for indices in clusters.values() for i in indices) == list(range(5))


def test_empty_profile_context():
    assert build_profile_context(CandidateProfile()) == NO_PROFILE_CONTEXT
    assert build_profile_context(None) == NO_PROFILE_CONTEXT


def test_prompt_warns_on_option_fields(profile):
    prompt = build_classify_prompt(
        [SHIFT], build_profile_context(profile), job_title="PMHNP"
    )
    assert "VALUE MUST EXACTLY MATCH" in prompt
    assert "**Position:** PMHNP" in prompt
    assert "Jane Doe" in prompt


def test_local_match_first_name(profile):
    descriptor = FieldDescriptor(label="First Name", attributes={"name": "fname"})
    classified = match_locally(descriptor, profile, index=3)
    assert classified.index == 3
    assert classified.profile_key == "first_name"
    assert classified.value == "Jane"


def test_local_match_skips_unknown_sponsorship():
    descriptor = FieldDescriptor(
        label="Will you require sponsorship?",
        field_type=FieldType.RADIO,
        options=["Yes", "No"],
    )
    assert match_locally(descriptor, CandidateProfile()) is None


def test_local_match_authorization_without_sponsorship_wording():
    descriptor = FieldDescriptor(
        label="Are you legally authorized to work in the United States without sponsorship?",
        field_type=FieldType.SELECT,
        options=["Yes", "No"],
    )
    profile = CandidateProfile.from_record(
        {"workAuthorized": True, "requiresSponsorship": False}
    )

    classified = match_locally(descriptor, profile)

    assert classified.profile_key == "work_authorized"
    assert classified.value == "Yes"


def test_local_match_sponsorship_question_still_maps_to_sponsorship():
    descriptor = FieldDescriptor(
        label="Will you now or in the future require visa sponsorship?",
        field_type=FieldType.RADIO,
        options=["Yes", "No"],
    )
    profile = CandidateProfile.from_record(
        {"workAuthorized": True, "requiresSponsorship": False}
    )

    classified = match_locally(descriptor, profile)

    assert classified.profile_key == "requires_sponsorship"
    assert classified.value == "No"


def test_local_match_long_label_is_not_a_name(profile):
    descriptor = FieldDescriptor(
        label="Please provide the name of the person who referred you to this position"
    )
    assert match_locally(descriptor, profile) is None


async def test_work_authorization_scenario():
    profile = CandidateProfile.from_record({"workAuthorized": True})
    llm = _llm_returning({"fields": []})
    classifier = FieldClassifier(llm=llm)

    result = await classifier.classify(ClassificationRequest(fields=[WORK_AUTH]), profile)

    assert isinstance(result, ClassificationOk)
    [field] = result.fields
    assert field.value == "Yes"
    assert field.confidence >= 0.9
    assert field.is_question is False
    llm.chat_json.assert_not_called()


async def test_no_resume_scenario(profile):
    assert await extract_resume_text("") == ""
    assert profile.resume_url == ""
    llm = _llm_returning(
        {"fields": [{"index": 0, "value": "I value your mission.", "confidence": 0.8, "isQuestion": True}]}
    )
    classifier = FieldClassifier(llm=llm)

    result = await classifier.classify(ClassificationRequest(fields=[WHY_US]), profile)

    assert isinstance(result, ClassificationOk)
    assert result.resume_used is False
    assert result.fields[0].value == "I value your mission."
    llm.chat_json.assert_called_once()


async def test_mixed_batch_keeps_original_indices(profile):
    email = FieldDescriptor(label="Email", attributes={"name": "email"})
    llm = _llm_returning(
        {
            "fields": [
                {"index": 0, "value": "Night", "confidence": 0.6},
                {"index": 1, "value": "I value your mission.", "confidence": 0.8},
            ]
        }
    )
    classifier = FieldClassifier(llm=llm)

    result = await classifier.classify(
        ClassificationRequest(fields=[email, SHIFT, WHY_US]), profile
    )

    assert [f.index for f in result.fields] == [0, 1, 2]
    assert result.fields[0].value == "jane.doe@example.com"
    assert result.fields[1].value == "Night"
    assert result.fields[2].value == "I value your mission."


async def test_empty_batch_rejected_before_remote_call():
    llm = _llm_returning({"fields": []})
    with pytest.raises(ClassificationRequestError):
        await FieldClassifier(llm=llm).classify(
            ClassificationRequest(fields=[]), CandidateProfile()
        )
    llm.chat_json.assert_not_called()


async def test_parse_failure_keeps_local_matches(profile):
    email = FieldDescriptor(label="Email", attributes={"name": "email"})
    classifier = FieldClassifier(llm=_llm_returning("sorry, no JSON today"))

    result = await classifier.classify(ClassificationRequest(fields=[email, WHY_US]), profile)

    assert isinstance(result, ParseFailure)
    assert [f.profile_key for f in result.local_fields] == ["email"]


async def test_missing_credentials_is_upstream_failure(profile):
    llm = LLMInterface(APIConfig(openai_api_key=""))
    classifier = FieldClassifier(llm=llm)

    result = await classifier.classify(ClassificationRequest(fields=[WHY_US]), profile)

    assert isinstance(result, UpstreamFailure)
    assert result.status == 503
    assert result.body == "AI service not configured"


async def test_provider_error_is_upstream_failure(profile, monkeypatch):
    class RateLimited(Exception):
        status_code = 429
        message = "rate limited " + "x" * 500

    def boom(**kwargs):
        raise RateLimited()

    monkeypatch.setattr(llm_interface.litellm, "completion", boom)
    llm = LLMInterface(APIConfig(openai_api_key="sk-test"))
    classifier = FieldClassifier(llm=llm)

    result = await classifier.classify(ClassificationRequest(fields=[WHY_US]), profile)

    assert isinstance(result, UpstreamFailure)
    assert result.status == 429
    assert len(result.body) <= 200


def test_unavailable_error_truncates_body():
    error = LLMUnavailableError(502, "b" * 1000)
    assert len(error.body) == 200


def test_connection_reports_missing_key():
    status = LLMInterface(APIConfig(openai_api_key="")).test_connection()
    assert status["reachable"] is False
    assert "AI service not configured" in status["error"]


def test_connection_pings_provider(monkeypatch):
    calls = []
    monkeypatch.setattr(
        llm_interface.litellm, "completion", lambda **kwargs: calls.append(kwargs)
    )
    status = LLMInterface(APIConfig(openai_api_key="sk-test")).test_connection()
    assert status["reachable"] is True
    assert calls[0]["max_tokens"] == 1
