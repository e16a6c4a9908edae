"""
Structured work history and education extracted from the candidate's resume.

Used when the profile lists no entries for a repeating section but a resume
is on file: the resume text goes to the LLM in one JSON-mode call and the
returned arrays are turned into ``WorkExperienceEntry`` / ``EducationEntry``
records for the section expander.

Every failure (no resume, unreadable PDF, provider unavailable, unusable
JSON) degrades to empty lists; the section step then skips as before.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field, replace
from typing import Any, Optional, Sequence

import httpx
from pydantic import BaseModel, ConfigDict, ValidationError

from autofill.profile import CandidateProfile, EducationEntry, WorkExperienceEntry
from autofill.resume import extract_resume_text
from config.settings import EngineConfig, engine_config
from integrations.llm_interface import LLMInterface, LLMUnavailableError

logger = logging.getLogger(__name__)

__all__ = [
    "SECTION_NAMES",
    "ResumeSections",
    "extraction_system_prompt",
    "build_extraction_prompt",
    "parse_resume_sections",
    "extract_resume_sections",
    "complete_profile_sections",
]

SECTION_NAMES: tuple[str, ...] = ("experience", "education")
EXTRACTION_TEMPERATURE = 0.1
EXTRACTION_MAX_TOKENS = 3000


@dataclass
class ResumeSections:
    """Entries recovered from the resume, empty when extraction failed."""

    experience: list[WorkExperienceEntry] = field(default_factory=list)
    education: list[EducationEntry] = field(default_factory=list)
    model: str = ""

    @property
    def is_empty(self) -> bool:
        return not self.experience and not self.education


# ---------------------------------------------------------------------------
# Prompt
# ---------------------------------------------------------------------------


def extraction_system_prompt() -> str:
    return (
        "You are a data extraction assistant for healthcare professional resumes.\n"
        "Extract STRUCTURED data from the resume text and return it as valid JSON.\n"
        "Copy school names, degree types, dates, job titles and employer names "
        "exactly as written. Do not make up data; only return what is in the resume.\n"
        'Dates use YYYY-MM format (e.g. "2019-05"); a bare year becomes YYYY-01.\n'
        "Degree types use standard abbreviations: MSN, BSN, DNP, PhD, ADN.\n"
        "Use null for anything the resume does not state."
    )


def build_extraction_prompt(resume_text: str, sections: Sequence[str]) -> str:
    """Build the user prompt asking for the requested ``sections`` only."""
    prompt = "Extract structured data from this resume.\n\n"
    prompt += f"**Resume Content:**\n{resume_text}\n\n"
    prompt += "Return JSON with these sections:\n\n"
    if "education" in sections:
        prompt += (
            '"education": Array of education entries, each with:\n'
            '- "schoolName": string (exact institution name)\n'
            '- "degreeType": string (MSN, BSN, DNP, PhD, ADN, etc.)\n'
            '- "fieldOfStudy": string or null\n'
            '- "graduationDate": string or null (YYYY-MM)\n'
            '- "description": string or null\n'
            "Order by graduation date descending.\n\n"
        )
    if "experience" in sections:
        prompt += (
            '"experience": Array of work experience entries, each with:\n'
            '- "jobTitle": string\n'
            '- "employerName": string\n'
            '- "employerCity": string or null\n'
            '- "employerState": string or null (2-letter abbreviation)\n'
            '- "startDate": string (YYYY-MM)\n'
            '- "endDate": string or null (YYYY-MM, null if current)\n'
            '- "isCurrent": boolean\n'
            '- "description": string or null\n'
            "Order by start date descending.\n\n"
        )
    prompt += "Respond with valid JSON containing the requested arrays. Extract ALL entries found."
    return prompt


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


class _RawSections(BaseModel):
    model_config = ConfigDict(extra="ignore")

    experience: list[dict[str, Any]] = []
    education: list[dict[str, Any]] = []


def parse_resume_sections(
    raw: str, sections: Sequence[str] = SECTION_NAMES, model: str = ""
) -> ResumeSections:
    """Turn the LLM payload into section entries; unusable JSON yields none.

    Entries without a title/employer (experience) or school (education)
    are dropped, and only the requested ``sections`` are kept.
    """
    try:
        payload = _RawSections.model_validate(json.loads(raw or "{}"))
    except (json.JSONDecodeError, ValidationError) as exc:
        logger.warning("parse_resume_sections: unusable response: %s", exc)
        return ResumeSections(model=model)

    result = ResumeSections(model=model)
    if "experience" in sections:
        result.experience = [
            entry
            for entry in map(WorkExperienceEntry.from_record, payload.experience)
            if entry.job_title or entry.employer_name
        ]
    if "education" in sections:
        result.education = [
            entry
            for entry in map(EducationEntry.from_record, payload.education)
            if entry.school_name
        ]
    return result


# ---------------------------------------------------------------------------
# Extraction
# ---------------------------------------------------------------------------


async def extract_resume_sections(
    resume_url: str,
    sections: Sequence[str] = SECTION_NAMES,
    llm: Optional[LLMInterface] = None,
    config: Optional[EngineConfig] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> ResumeSections:
    """Extract the requested repeating sections from the resume at ``resume_url``.

    Never raises: a missing resume, unreadable text or provider failure is
    logged and returns an empty ``ResumeSections``.
    """
    wanted = [s for s in sections if s in SECTION_NAMES]
    if not resume_url or not wanted:
        return ResumeSections()
    config = config or engine_config
    resume_text = await extract_resume_text(
        resume_url, cap=config.resume_text_cap, client=http_client
    )
    if not resume_text:
        logger.info("extract_resume_sections: no resume text, skipping")
        return ResumeSections()

    llm = llm or LLMInterface()
    messages = [
        {"role": "system", "content": extraction_system_prompt()},
        {"role": "user", "content": build_extraction_prompt(resume_text, wanted)},
    ]
    try:
        raw, model = await asyncio.to_thread(
            llm.chat_json,
            messages,
            temperature=EXTRACTION_TEMPERATURE,
            max_tokens=EXTRACTION_MAX_TOKENS,
        )
    except LLMUnavailableError as exc:
        logger.warning(
            "extract_resume_sections: upstream failure %d (%s)", exc.status, exc.body
        )
        return ResumeSections()

    result = parse_resume_sections(raw, wanted, model)
    logger.info(
        "extract_resume_sections: %d experience, %d education entr(ies) via %s",
        len(result.experience),
        len(result.education),
        model,
    )
    return result


async def complete_profile_sections(
    profile: CandidateProfile,
    llm: Optional[LLMInterface] = None,
    config: Optional[EngineConfig] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> CandidateProfile:
    """Return ``profile`` with empty sections filled from the resume.

    Sections the profile already lists are never replaced. The input
    profile is not modified.
    """
    missing = []
    if not profile.work_experience:
        missing.append("experience")
    if not profile.education:
        missing.append("education")
    if not missing or not profile.resume_url:
        return profile

    logger.info("complete_profile_sections: missing %s, reading resume", missing)
    extracted = await extract_resume_sections(
        profile.resume_url, missing, llm=llm, config=config, http_client=http_client
    )
    if extracted.is_empty:
        return profile
    return replace(
        profile,
        work_experience=profile.work_experience or extracted.experience,
        education=profile.education or extracted.education,
    )
