"""
Field classifier: map unlabeled form fields onto candidate-profile values.

Two layers, cheapest first:

  **Local heuristics** (``match_locally``):
    Regex rules over label / placeholder / name / id map the obvious fields
    (names, email, phone, address parts, LinkedIn, work authorisation and
    sponsorship) straight onto profile values at confidence 0.95.

  **Remote LLM** (``FieldClassifier.classify``):
    Remaining fields are batched (at most ``classify_batch_cap``) with the
    profile context, resume text and job context into a single JSON-mode
    chat completion.

The result is a tagged union that every caller must handle:
``ClassificationOk`` | ``ParseFailure`` | ``UpstreamFailure``.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from dataclasses import dataclass, field, replace
from typing import Any, Optional, Sequence, Union

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from autofill.field_detector import FieldDescriptor, FieldType
from autofill.profile import CandidateProfile
from autofill.resume import extract_resume_text
from config.settings import EngineConfig, engine_config
from integrations.llm_interface import LLMInterface, LLMUnavailableError

logger = logging.getLogger(__name__)

__all__ = [
    "ClassificationRequest",
    "ClassificationRequestError",
    "ClassifiedField",
    "ClassificationOk",
    "ParseFailure",
    "UpstreamFailure",
    "ClassificationResult",
    "FieldClassifier",
    "cluster_fields",
    "build_profile_context",
    "extract_key_values",
    "system_prompt",
    "build_classify_prompt",
    "match_locally",
    "enforce_options",
    "parse_classification",
]

NO_PROFILE_CONTEXT = "No profile data available."
LOCAL_CONFIDENCE = 0.95
LABEL_PREVIEW_CHARS = 120
DESCRIPTION_PREVIEW_CHARS = 200
SHORT_LABEL_CHARS = 40
PROMPT_ATTRIBUTES: tuple[str, ...] = ("name", "id", "aria-label", "data-automation-id")


# ═══════════════════════════════════════════════════════════════════════════
# Request / result types
# ═══════════════════════════════════════════════════════════════════════════


class ClassificationRequestError(ValueError):
    """Raised for malformed classification requests, before any remote call."""


@dataclass
class ClassificationRequest:
    """A batch of fields plus the job context they belong to."""

    fields: list[FieldDescriptor]
    job_title: str = ""
    job_description: str = ""
    employer_name: str = ""

    def validate(self) -> None:
        if not self.fields:
            raise ClassificationRequestError("fields array is required")


@dataclass(frozen=True)
class ClassifiedField:
    """Classifier verdict for one field of the request batch.

    Attributes:
        index: Position of the field in the request batch.
        identifier: Short machine identifier for the field.
        profile_key: Matching candidate-profile attribute, if any.
        value: Value to fill; exact option text for option fields.
        confidence: 0.0–1.0. Zero means "do not fill".
        is_question: True for open-ended questions answered with prose.
    """

    index: int
    identifier: str
    profile_key: Optional[str]
    value: str
    confidence: float
    is_question: bool = False


@dataclass(frozen=True)
class ClassificationOk:
    fields: list[ClassifiedField]
    resume_used: bool
    model: str


@dataclass(frozen=True)
class ParseFailure:
    """The LLM answered but the payload was unusable.

    ``local_fields`` carries the heuristic matches made before the remote
    call, so callers can still fill those.
    """

    reason: str
    raw: str
    local_fields: list[ClassifiedField] = field(default_factory=list)


@dataclass(frozen=True)
class UpstreamFailure:
    """The LLM could not be reached (missing credentials or non-2xx)."""

    status: int
    body: str
    local_fields: list[ClassifiedField] = field(default_factory=list)


ClassificationResult = Union[ClassificationOk, ParseFailure, UpstreamFailure]


# ═══════════════════════════════════════════════════════════════════════════
# Clusters
# ═══════════════════════════════════════════════════════════════════════════

CLUSTER_TITLES: dict[str, str] = {
    "eeo": "EEO / Self-identification",
    "work_authorization": "Work authorization",
    "experience": "Experience & qualifications",
    "screening": "Screening questions",
    "uncategorized": "Other fields",
}

CLUSTER_PATTERNS: list[tuple[str, re.Pattern[str]]] = [
    (
        "eeo",
        re.compile(
            r"gender|race|ethnic|hispanic|latino|veteran|disab|sexual orientation"
            r"|pronoun|self[-_\s]?identif|eeo",
            re.I,
        ),
    ),
    (
        "work_authorization",
        re.compile(
            r"authori[sz]|sponsor|visa|citizen|right to work|eligible to work"
            r"|work[-_\s]?permit|immigration",
            re.I,
        ),
    ),
    (
        "experience",
        re.compile(
            r"experience|years|licen[cs]e|certif|degree|education|school"
            r"|npi|dea|specialt|board",
            re.I,
        ),
    ),
    (
        "screening",
        re.compile(
            r"\?|why|describe|explain|tell us|salary|relocat|start date"
            r"|notice|hear about|refer",
            re.I,
        ),
    ),
]


def _haystack(descriptor: FieldDescriptor) -> str:
    attrs = descriptor.attributes
    return " ".join(
        [
            descriptor.label,
            descriptor.placeholder,
            attrs.get("name", ""),
            attrs.get("id", ""),
        ]
    )


def cluster_fields(fields: Sequence[FieldDescriptor]) -> dict[str, list[int]]:
    """Group field indices by semantic cluster.

    Every index lands in exactly one cluster; order within a cluster is the
    original order. Empty clusters are omitted.
    """
    clusters: dict[str, list[int]] = {}
    for index, descriptor in enumerate(fields):
        text = _haystack(descriptor)
        name = next(
            (n for n, pattern in CLUSTER_PATTERNS if pattern.search(text)),
            "uncategorized",
        )
        clusters.setdefault(name, []).append(index)
    return {name: clusters[name] for name in CLUSTER_TITLES if name in clusters}


# ═══════════════════════════════════════════════════════════════════════════
# Profile context
# ═══════════════════════════════════════════════════════════════════════════


def build_profile_context(profile: Optional[CandidateProfile]) -> str:
    """Render the populated profile attributes as ``Key: value`` lines.

    Missing attributes are omitted entirely; an empty profile yields
    ``"No profile data available."``.
    """
    if profile is None:
        return NO_PROFILE_CONTEXT
    parts: list[str] = []

    if profile.full_name:
        parts.append(f"Name: {profile.full_name}")
    if profile.email:
        parts.append(f"Email: {profile.email}")
    if profile.phone:
        parts.append(f"Phone: {profile.phone}")
    if profile.linkedin_url:
        parts.append(f"LinkedIn: {profile.linkedin_url}")

    address = [
        p
        for p in (
            profile.address_line1,
            profile.address_line2,
            profile.city,
            profile.state,
            profile.zip,
            profile.country,
        )
        if p
    ]
    if address:
        parts.append(f"Address: {', '.join(address)}")
    if profile.city:
        parts.append(f"City: {profile.city}")
    if profile.state:
        parts.append(f"State: {profile.state}")
    if profile.zip:
        parts.append(f"Zip: {profile.zip}")

    if profile.headline:
        parts.append(f"Headline: {profile.headline}")
    if profile.npi_number:
        parts.append(f"NPI: {profile.npi_number}")
    if profile.dea_number:
        parts.append(f"DEA: {profile.dea_number}")
    if profile.years_experience:
        parts.append(f"Years of Experience: {profile.years_experience}")
    if profile.specialties:
        parts.append(f"Specialties: {', '.join(profile.specialties)}")

    if profile.licenses:
        parts.append(
            "Licenses: "
            + ", ".join(
                f"{lic.license_type} #{lic.license_number} ({lic.license_state})"
                for lic in profile.licenses
            )
        )
        states = [lic.license_state for lic in profile.licenses if lic.license_state]
        if states:
            parts.append(f"Licensed States: {', '.join(states)}")

    if profile.certifications:
        parts.append(
            "Certifications: "
            + ", ".join(f"{c.name} #{c.number}" for c in profile.certifications)
        )

    if profile.education:
        parts.append(
            "Education: "
            + "; ".join(
                f"{e.degree_type} in {e.field_of_study or 'N/A'} from {e.school_name}"
                for e in profile.sorted_education()
            )
        )

    experience = profile.sorted_experience()
    if experience:
        rendered = []
        for w in experience:
            line = f"{w.job_title} at {w.employer_name}"
            if w.is_current:
                line += " (current)"
            if w.description:
                line += ": " + w.description[:DESCRIPTION_PREVIEW_CHARS]
            rendered.append(line)
        parts.append("Experience: " + "; ".join(rendered))

    if profile.gender:
        parts.append(f"Gender: {profile.gender}")
    if profile.race_ethnicity:
        parts.append(f"Race/Ethnicity: {profile.race_ethnicity}")
    if profile.veteran_status:
        parts.append(f"Veteran Status: {profile.veteran_status}")
    if profile.disability_status:
        parts.append(f"Disability Status: {profile.disability_status}")
    if profile.work_authorized is not None:
        parts.append(
            f"Work Authorized in US: {'Yes' if profile.work_authorized else 'No'}"
        )
    if profile.requires_sponsorship is not None:
        parts.append(
            f"Requires Sponsorship: {'Yes' if profile.requires_sponsorship else 'No'}"
        )
    if profile.desired_salary:
        parts.append(f"Desired Salary: {profile.desired_salary}")
    if profile.willing_to_relocate:
        parts.append("Willing to relocate: Yes")

    return "\n".join(parts) if parts else NO_PROFILE_CONTEXT


_CONTEXT_KEYS: dict[str, str] = {
    "name": "full_name",
    "email": "email",
    "phone": "phone",
    "city": "city",
    "state": "state",
    "linkedin": "linkedin",
}


def extract_key_values(context: str) -> dict[str, str]:
    """Re-derive a flat key/value subset from a profile context string.

    Returns:
        Dict with any of ``full_name``, ``email``, ``phone``, ``city``,
        ``state``, ``location`` and ``linkedin``.
    """
    values: dict[str, str] = {}
    for line in context.splitlines():
        key, sep, value = line.partition(":")
        if not sep:
            continue
        mapped = _CONTEXT_KEYS.get(key.strip().lower())
        if mapped and value.strip():
            values[mapped] = value.strip()
    location = ", ".join(v for v in (values.get("city"), values.get("state")) if v)
    if location:
        values["location"] = location
    return values


# ═══════════════════════════════════════════════════════════════════════════
# Prompts
# ═══════════════════════════════════════════════════════════════════════════


def system_prompt() -> str:
    return """You are an expert assistant for healthcare job applications.

Your task is to classify unknown form fields AND provide the best answer/value based on the candidate's profile and resume.

You MUST respond with valid JSON in this format:
{
  "fields": [
    {
      "index": 0,
      "identifier": "field_identifier",
      "profileKey": "matching_profile_field_or_null",
      "value": "the answer or value to fill",
      "confidence": 0.9,
      "isQuestion": true
    }
  ]
}

CRITICAL RULES:
1. For select/dropdown/radio fields that have an options list: your value MUST be an EXACT match of one of the provided options. Never paraphrase, abbreviate, or invent a value. Copy the option string exactly.
2. When matching profile data to dropdown options, find the option that best represents the candidate's actual data. For example, if the candidate's state is "TX" and the options are ["Texas","California",...], return "Texas".
3. For EEO self-identification fields (race, gender, veteran, disability): ALWAYS use the candidate's actual profile data to pick the correct option. Never default to "Decline to self-identify" unless the candidate's profile is blank for that field.
4. For factual fields (name, email, phone, location, company, license numbers), extract the exact value from the profile/resume. Never leave a factual field empty when the profile has the data.
5. For questions (describe, explain, why), generate a professional first-person answer.
6. For yes/no questions, provide "Yes" or "No" based on the profile.
7. Set confidence between 0.0 and 1.0 based on how certain you are.
8. Set isQuestion=true for open-ended questions requiring generated text.
9. If you truly cannot determine what a field is asking, set confidence to 0 and value to empty string.
10. Use clinical terminology appropriate to the candidate's specialty when relevant.
11. Keep generated answers concise and professional.
12. Return exactly one entry per field, using the [index] shown for that field."""


def render_field(index: int, descriptor: FieldDescriptor) -> str:
    """Render one field as a single prompt line."""
    line = f'[{index}] Label: "{(descriptor.label or "no label")[:LABEL_PREVIEW_CHARS]}"'
    if descriptor.placeholder:
        line += f' | Placeholder: "{descriptor.placeholder}"'
    line += f" | Type: {descriptor.field_type.value}"
    if descriptor.options:
        line += f" | Options: [{' | '.join(descriptor.options)}]"
        if descriptor.field_type.has_options:
            line += " ⚠️ VALUE MUST EXACTLY MATCH one of these options"
    attrs = " ".join(
        f'{k}="{v}"'
        for k, v in descriptor.attributes.items()
        if k in PROMPT_ATTRIBUTES
    )
    if attrs:
        line += f" | Attrs: {attrs}"
    return line


def build_classify_prompt(
    fields: Sequence[FieldDescriptor],
    profile_context: str,
    resume_text: str = "",
    job_title: str = "",
    employer_name: str = "",
    job_description: str = "",
    description_cap: Optional[int] = None,
) -> str:
    """Assemble the user prompt for one classification batch.

    Fields are presented grouped by cluster; the ``[index]`` of each line is
    its position in ``fields``.
    """
    cap = engine_config.job_description_cap if description_cap is None else description_cap
    prompt = "Classify and provide values for these unrecognized form fields from a job application.\n\n"

    if job_title:
        prompt += f"**Position:** {job_title}\n"
    if employer_name:
        prompt += f"**Employer:** {employer_name}\n"
    if job_description:
        prompt += f"**Job Description:** {job_description[:cap]}\n\n"

    prompt += f"**Candidate Profile:**\n{profile_context}\n\n"

    key_values = extract_key_values(profile_context)
    if key_values:
        prompt += "**Key Facts:**\n"
        prompt += "\n".join(f"{k}: {v}" for k, v in key_values.items())
        prompt += "\n\n"

    if resume_text:
        prompt += f"**Resume Content:**\n{resume_text}\n\n"

    prompt += "**Fields to classify:**\n"
    for cluster, indices in cluster_fields(fields).items():
        prompt += f"\n-- {CLUSTER_TITLES[cluster]} --"
        for index in indices:
            prompt += "\n" + render_field(index, fields[index])

    prompt += '\n\nRespond with JSON containing the "fields" array with one entry per field above.'
    return prompt


# ═══════════════════════════════════════════════════════════════════════════
# Local heuristics
# ═══════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class _LocalRule:
    profile_key: str
    pattern: re.Pattern[str]
    long_labels: bool = False


LOCAL_RULES: list[_LocalRule] = [
    _LocalRule(
        "work_authorized",
        re.compile(
            r"authori[sz]ed\s+to\s+work|work[-_\s]?auth|eligible\s+to\s+work"
            r"|right\s+to\s+work",
            re.I,
        ),
        long_labels=True,
    ),
    _LocalRule("requires_sponsorship", re.compile(r"sponsor", re.I), long_labels=True),
    _LocalRule("first_name", re.compile(r"first[-_\s]?name|given[-_\s]?name|\bfname\b", re.I)),
    _LocalRule("last_name", re.compile(r"last[-_\s]?name|family[-_\s]?name|surname|\blname\b", re.I)),
    _LocalRule("full_name", re.compile(r"full[-_\s]?name|your\s+name|legal\s+name|^name\s*\*?$", re.I)),
    _LocalRule("email", re.compile(r"e-?mail", re.I)),
    _LocalRule("phone", re.compile(r"phone|mobile|\btel\b", re.I)),
    _LocalRule("linkedin_url", re.compile(r"linked[-_\s]?in", re.I)),
    _LocalRule("zip", re.compile(r"\bzip\b|postal", re.I)),
    _LocalRule("city", re.compile(r"\bcity\b", re.I)),
    _LocalRule("state", re.compile(r"\bstate\b|province", re.I)),
]

_BOOLEAN_KEYS = frozenset({"work_authorized", "requires_sponsorship"})
_LOCAL_TYPES = frozenset(
    {FieldType.TEXT, FieldType.SELECT, FieldType.RADIO, FieldType.CUSTOM_DROPDOWN}
)


def _match_option(options: Sequence[str], value: str) -> Optional[str]:
    """Return the option equal to ``value``, ignoring case and whitespace."""
    wanted = value.strip().lower()
    for option in options:
        if option.strip().lower() == wanted:
            return option
    return None


def _yes_no_option(options: Sequence[str], answer: str) -> Optional[str]:
    exact = _match_option(options, answer)
    if exact is not None:
        return exact
    prefix = answer.lower()
    for option in options:
        if option.strip().lower().startswith(prefix):
            return option
    return None


def match_locally(
    descriptor: FieldDescriptor, profile: CandidateProfile, index: int = 0
) -> Optional[ClassifiedField]:
    """Resolve an obvious field against the profile without the LLM.

    Identifier-like text (name, id, placeholder) always participates; the
    label only when it is short, or for rules that target yes/no questions.

    Returns:
        A ``ClassifiedField`` at confidence 0.95, or ``None`` when no rule
        matches, the profile lacks the value, or no option fits it.
    """
    if descriptor.field_type not in _LOCAL_TYPES:
        return None
    attrs = descriptor.attributes
    ident_parts = [
        part.strip()
        for part in (
            descriptor.placeholder,
            attrs.get("name", ""),
            attrs.get("id", ""),
            attrs.get("data-automation-id", ""),
            attrs.get("autocomplete", ""),
        )
        if part.strip()
    ]
    label = descriptor.label.strip()
    short_label = label if len(label) <= SHORT_LABEL_CHARS else ""

    for rule in LOCAL_RULES:
        parts = [label if rule.long_labels else short_label, *ident_parts]
        if not any(part and rule.pattern.search(part) for part in parts):
            continue
        value = profile.value_for(rule.profile_key)
        if rule.profile_key in _BOOLEAN_KEYS and getattr(profile, rule.profile_key) is None:
            value = ""
        if not value:
            return None
        if descriptor.options:
            if rule.profile_key in _BOOLEAN_KEYS:
                option = _yes_no_option(descriptor.options, value)
            else:
                option = _match_option(descriptor.options, value)
            if option is None:
                return None
            value = option
        return ClassifiedField(
            index=index,
            identifier=attrs.get("name") or attrs.get("id") or rule.profile_key,
            profile_key=rule.profile_key,
            value=value,
            confidence=LOCAL_CONFIDENCE,
            is_question=False,
        )
    return None


# ═══════════════════════════════════════════════════════════════════════════
# Response parsing
# ═══════════════════════════════════════════════════════════════════════════


class _RawClassifiedField(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    index: int
    identifier: str = ""
    profile_key: Optional[str] = Field(default=None, alias="profileKey")
    value: Any = ""
    confidence: float = 0.0
    is_question: bool = Field(default=False, alias="isQuestion")


def enforce_options(
    classified: ClassifiedField, descriptor: FieldDescriptor
) -> ClassifiedField:
    """Constrain an option-field value to the field's exact option strings.

    Near misses (case-insensitive equal) are canonicalised to the option;
    any other value with confidence above zero is demoted to an empty
    value with confidence 0.
    """
    if not (descriptor.options and descriptor.field_type.has_options):
        return classified
    if classified.confidence <= 0 or classified.value in descriptor.options:
        return classified
    option = _match_option(descriptor.options, classified.value)
    if option is not None:
        return replace(classified, value=option)
    logger.debug(
        "enforce_options: %r not in options for %r, demoted",
        classified.value,
        descriptor.label,
    )
    return replace(classified, value="", confidence=0.0)


def _fallback_identifier(descriptor: FieldDescriptor, index: int) -> str:
    attrs = descriptor.attributes
    return attrs.get("name") or attrs.get("id") or f"field_{index}"


def parse_classification(
    raw: str,
    fields: Sequence[FieldDescriptor],
    model: str = "",
    resume_used: bool = False,
) -> Union[ClassificationOk, ParseFailure]:
    """Parse and normalise the classifier's JSON payload.

    Guarantees on ``ClassificationOk``: exactly ``len(fields)`` entries,
    sorted by index, each index once; duplicates and out-of-range indices
    are dropped and missing ones filled at confidence 0; option fields pass
    through ``enforce_options``.
    """
    try:
        payload = json.loads(raw or "")
    except (TypeError, ValueError):
        return ParseFailure(reason="invalid JSON", raw=(raw or "")[:500])
    if not isinstance(payload, dict) or not isinstance(payload.get("fields"), list):
        return ParseFailure(reason="missing fields array", raw=(raw or "")[:500])

    by_index: dict[int, ClassifiedField] = {}
    for item in payload["fields"]:
        try:
            parsed = _RawClassifiedField.model_validate(item)
        except ValidationError as exc:
            logger.debug("parse_classification: skipping entry: %s", exc)
            continue
        if not 0 <= parsed.index < len(fields) or parsed.index in by_index:
            logger.debug("parse_classification: dropping index %d", parsed.index)
            continue
        value = "" if parsed.value is None else str(parsed.value)
        classified = ClassifiedField(
            index=parsed.index,
            identifier=parsed.identifier
            or _fallback_identifier(fields[parsed.index], parsed.index),
            profile_key=parsed.profile_key or None,
            value=value,
            confidence=min(max(parsed.confidence, 0.0), 1.0),
            is_question=parsed.is_question,
        )
        by_index[parsed.index] = enforce_options(classified, fields[parsed.index])

    result: list[ClassifiedField] = []
    for index, descriptor in enumerate(fields):
        result.append(
            by_index.get(index)
            or ClassifiedField(
                index=index,
                identifier=_fallback_identifier(descriptor, index),
                profile_key=None,
                value="",
                confidence=0.0,
            )
        )
    return ClassificationOk(fields=result, resume_used=resume_used, model=model)


# ═══════════════════════════════════════════════════════════════════════════
# FieldClassifier
# ═══════════════════════════════════════════════════════════════════════════


class FieldClassifier:
    """Batch classifier combining local heuristics and one LLM call.

    Usage::

        classifier = FieldClassifier()
        result = await classifier.classify(request, profile)
        match result:
            case ClassificationOk(fields=fields): ...
            case ParseFailure() | UpstreamFailure(): ...
    """

    def __init__(
        self,
        llm: Optional[LLMInterface] = None,
        config: Optional[EngineConfig] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.llm = llm or LLMInterface()
        self.config = config or engine_config
        self.http_client = http_client
        self.logger = logging.getLogger(self.__class__.__name__)

    async def classify(
        self, request: ClassificationRequest, profile: CandidateProfile
    ) -> ClassificationResult:
        """Classify one batch of fields.

        Raises:
            ClassificationRequestError: Empty batch. Raised before any
                remote call.
        """
        request.validate()
        cap = self.config.classify_batch_cap
        fields = list(request.fields[:cap])
        if len(request.fields) > cap:
            self.logger.warning(
                "classify: %d fields over cap, dropping %d",
                len(request.fields),
                len(request.fields) - cap,
            )

        local: dict[int, ClassifiedField] = {}
        for index, descriptor in enumerate(fields):
            match = match_locally(descriptor, profile, index)
            if match is not None:
                local[index] = match
        remaining = [i for i in range(len(fields)) if i not in local]
        local_fields = [local[i] for i in sorted(local)]
        self.logger.info(
            "classify: %d field(s), %d matched locally, %d for the LLM",
            len(fields),
            len(local),
            len(remaining),
        )
        if not remaining:
            return ClassificationOk(fields=local_fields, resume_used=False, model="local")

        try:
            profile_context = build_profile_context(profile)
        except Exception as exc:  # noqa: BLE001
            self.logger.error("classify: profile context failed: %s", exc)
            profile_context = NO_PROFILE_CONTEXT
        resume_text = await extract_resume_text(
            profile.resume_url,
            cap=self.config.resume_text_cap,
            client=self.http_client,
        )

        batch = [fields[i] for i in remaining]
        prompt = build_classify_prompt(
            batch,
            profile_context,
            resume_text,
            job_title=request.job_title,
            employer_name=request.employer_name,
            job_description=request.job_description,
            description_cap=self.config.job_description_cap,
        )
        self.logger.info(
            "classify: prompt %d chars, %d field(s)", len(prompt), len(batch)
        )
        messages = [
            {"role": "system", "content": system_prompt()},
            {"role": "user", "content": prompt},
        ]
        try:
            raw, model = await asyncio.to_thread(self.llm.chat_json, messages)
        except LLMUnavailableError as exc:
            self.logger.warning("classify: upstream failure %d", exc.status)
            return UpstreamFailure(exc.status, exc.body, local_fields)

        parsed = parse_classification(raw, batch, model, bool(resume_text))
        if isinstance(parsed, ParseFailure):
            self.logger.warning("classify: %s", parsed.reason)
            return replace(parsed, local_fields=local_fields)

        merged = dict(local)
        for classified in parsed.fields:
            original = remaining[classified.index]
            merged[original] = replace(classified, index=original)
        return ClassificationOk(
            fields=[merged[i] for i in range(len(fields))],
            resume_used=parsed.resume_used,
            model=parsed.model,
        )
