"""Candidate profile model consumed by the classifier and section filler.

The profile collaborator hands the engine a nested record (camelCase keys,
optionally grouped under ``personal`` / ``eeo`` / ``meta`` / ``documents``).
``CandidateProfile.from_record`` flattens it into typed dataclasses; missing
values stay empty and are never replaced by placeholders.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Optional

from autofill.fill_executor import format_date_iso

__all__ = [
    "License",
    "Certification",
    "EducationEntry",
    "WorkExperienceEntry",
    "CandidateProfile",
]

MAX_CONTEXT_EXPERIENCE = 5

_CAMEL_RE = re.compile(r"(?<!^)(?=[A-Z])")


def _snake(key: str) -> str:
    return _CAMEL_RE.sub("_", key).lower()


def _normalise(record: Optional[dict[str, Any]]) -> dict[str, Any]:
    """Return ``record`` with camelCase keys converted to snake_case."""
    return {_snake(str(k)): v for k, v in (record or {}).items()}


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _date_key(value: str) -> str:
    """Sortable ``YYYY-MM-DD`` for a profile date; unparseable dates sort last."""
    return format_date_iso(value) or ""


def _flag(value: Any) -> Optional[bool]:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("true", "yes", "1", "y")


@dataclass
class License:
    license_type: str = ""
    license_state: str = ""
    license_number: str = ""


@dataclass
class Certification:
    name: str = ""
    number: str = ""


@dataclass
class EducationEntry:
    school_name: str = ""
    degree_type: str = ""
    field_of_study: str = ""
    location: str = ""
    start_date: str = ""
    graduation_date: str = ""
    description: str = ""
    is_currently_attending: bool = False

    @property
    def summary(self) -> str:
        """One-line "Degree in Field at School" description."""
        if self.degree_type and self.field_of_study:
            head = f"{self.degree_type} in {self.field_of_study}"
        else:
            head = self.degree_type or self.field_of_study
        parts = [head, f"at {self.school_name}" if self.school_name else ""]
        return " ".join(p for p in parts if p)

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "EducationEntry":
        data = _normalise(record)
        return cls(
            school_name=_text(data.get("school_name")),
            degree_type=_text(data.get("degree_type")),
            field_of_study=_text(data.get("field_of_study")),
            location=_text(data.get("location")),
            start_date=_text(data.get("start_date")),
            graduation_date=_text(data.get("graduation_date") or data.get("end_date")),
            description=_text(data.get("description")),
            is_currently_attending=bool(_flag(data.get("is_currently_attending"))),
        )


@dataclass
class WorkExperienceEntry:
    job_title: str = ""
    employer_name: str = ""
    employer_city: str = ""
    employer_state: str = ""
    start_date: str = ""
    end_date: str = ""
    description: str = ""
    is_current: bool = False

    @property
    def location(self) -> str:
        return ", ".join(p for p in (self.employer_city, self.employer_state) if p)

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "WorkExperienceEntry":
        data = _normalise(record)
        return cls(
            job_title=_text(data.get("job_title")),
            employer_name=_text(data.get("employer_name")),
            employer_city=_text(data.get("employer_city")),
            employer_state=_text(data.get("employer_state")),
            start_date=_text(data.get("start_date")),
            end_date=_text(data.get("end_date")),
            description=_text(data.get("description")),
            is_current=bool(_flag(data.get("is_current"))),
        )


@dataclass
class CandidateProfile:
    """Flat candidate attributes plus licence, education and work history.

    ``work_authorized`` and ``requires_sponsorship`` are tri-state: ``None``
    means the candidate never answered.
    """

    first_name: str = ""
    last_name: str = ""
    email: str = ""
    phone: str = ""
    linkedin_url: str = ""
    address_line1: str = ""
    address_line2: str = ""
    city: str = ""
    state: str = ""
    zip: str = ""
    country: str = ""
    headline: str = ""
    npi_number: str = ""
    dea_number: str = ""
    years_experience: str = ""
    specialties: list[str] = field(default_factory=list)
    licenses: list[License] = field(default_factory=list)
    certifications: list[Certification] = field(default_factory=list)
    education: list[EducationEntry] = field(default_factory=list)
    work_experience: list[WorkExperienceEntry] = field(default_factory=list)
    gender: str = ""
    race_ethnicity: str = ""
    veteran_status: str = ""
    disability_status: str = ""
    work_authorized: Optional[bool] = None
    requires_sponsorship: Optional[bool] = None
    desired_salary: str = ""
    willing_to_relocate: bool = False
    resume_url: str = ""
    resume_file_name: str = "resume.pdf"

    # ------------------------------------------------------------------
    # Derived values
    # ------------------------------------------------------------------

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def location(self) -> str:
        return ", ".join(p for p in (self.city, self.state) if p)

    @property
    def current_employer(self) -> str:
        current = self.sorted_experience(limit=1)
        return current[0].employer_name if current else ""

    @property
    def current_title(self) -> str:
        current = self.sorted_experience(limit=1)
        return current[0].job_title if current else ""

    @property
    def is_empty(self) -> bool:
        return self == CandidateProfile()

    def sorted_education(self) -> list[EducationEntry]:
        """Education entries, most recent graduation first."""
        return sorted(
            self.education, key=lambda e: _date_key(e.graduation_date), reverse=True
        )

    def sorted_experience(
        self, limit: Optional[int] = MAX_CONTEXT_EXPERIENCE
    ) -> list[WorkExperienceEntry]:
        """Work history with current roles first, then by start date desc."""
        ordered = sorted(
            self.work_experience,
            key=lambda w: (w.is_current, _date_key(w.start_date)),
            reverse=True,
        )
        return ordered if limit is None else ordered[:limit]

    def value_for(self, key: str) -> str:
        """Return the profile value for a profile key, or ``""``.

        Keys are the snake_case attribute names plus the derived
        ``full_name``, ``location``, ``current_employer`` and
        ``current_title``; yes/no attributes render as ``"Yes"`` / ``"No"``.
        """
        if key in ("full_name", "location", "current_employer", "current_title"):
            return getattr(self, key)
        value = getattr(self, key, None)
        if isinstance(value, bool):
            return "Yes" if value else "No"
        if value is None or isinstance(value, list):
            return ""
        return str(value)

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def from_record(cls, record: Optional[dict[str, Any]]) -> "CandidateProfile":
        """Build a profile from the profile collaborator's nested record.

        Accepts top-level keys as well as the ``personal``, ``contact``,
        ``address``, ``professional``, ``eeo`` and ``preferences`` groups;
        the resume URL may live at ``resumeUrl``, ``meta.resumeUrl``,
        ``documents.resume.url`` or ``documents.resumeUrl``.
        """
        raw = dict(record or {})
        flat: dict[str, Any] = {}
        for group in ("personal", "contact", "address", "professional", "eeo", "preferences"):
            if isinstance(raw.get(group), dict):
                flat.update(_normalise(raw[group]))
        flat.update(
            {k: v for k, v in _normalise(raw).items() if not isinstance(v, dict)}
        )

        meta = _normalise(raw.get("meta") if isinstance(raw.get("meta"), dict) else {})
        docs = raw.get("documents") if isinstance(raw.get("documents"), dict) else {}
        resume_doc = docs.get("resume") if isinstance(docs.get("resume"), dict) else {}
        resume_url = (
            _text(flat.get("resume_url"))
            or _text(meta.get("resume_url"))
            or _text(resume_doc.get("url"))
            or _text(docs.get("resumeUrl"))
        )
        resume_file_name = (
            _text(resume_doc.get("fileName"))
            or _text(meta.get("resume_file_name"))
            or "resume.pdf"
        )

        specialties = flat.get("specialties") or []
        if isinstance(specialties, str):
            specialties = [s.strip() for s in specialties.split(",") if s.strip()]

        licenses = [
            License(
                license_type=_text(lic.get("license_type")),
                license_state=_text(lic.get("license_state")),
                license_number=_text(lic.get("license_number")),
            )
            for lic in map(_normalise, flat.get("licenses") or [])
        ]
        certifications = [
            Certification(
                name=_text(c.get("certification_name") or c.get("name")),
                number=_text(c.get("certification_number") or c.get("number")),
            )
            for c in map(
                _normalise,
                flat.get("certification_records") or flat.get("certifications") or [],
            )
        ]

        return cls(
            first_name=_text(flat.get("first_name")),
            last_name=_text(flat.get("last_name")),
            email=_text(flat.get("email")),
            phone=_text(flat.get("phone")),
            linkedin_url=_text(flat.get("linkedin_url") or flat.get("linked_in_url")),
            address_line1=_text(flat.get("address_line1") or flat.get("address_line_1")),
            address_line2=_text(flat.get("address_line2") or flat.get("address_line_2")),
            city=_text(flat.get("city")),
            state=_text(flat.get("state")),
            zip=_text(flat.get("zip") or flat.get("postal_code")),
            country=_text(flat.get("country")),
            headline=_text(flat.get("headline")),
            npi_number=_text(flat.get("npi_number")),
            dea_number=_text(flat.get("dea_number")),
            years_experience=_text(flat.get("years_experience")),
            specialties=[str(s) for s in specialties],
            licenses=licenses,
            certifications=certifications,
            education=[EducationEntry.from_record(e) for e in flat.get("education") or []],
            work_experience=[
                WorkExperienceEntry.from_record(w)
                for w in flat.get("work_experience") or []
            ],
            gender=_text(flat.get("gender")),
            race_ethnicity=_text(flat.get("race_ethnicity")),
            veteran_status=_text(flat.get("veteran_status")),
            disability_status=_text(flat.get("disability_status")),
            work_authorized=_flag(flat.get("work_authorized")),
            requires_sponsorship=_flag(flat.get("requires_sponsorship")),
            desired_salary=_text(flat.get("desired_salary")),
            willing_to_relocate=bool(_flag(flat.get("willing_to_relocate"))),
            resume_url=resume_url,
            resume_file_name=resume_file_name,
        )
