"""
Autofill orchestrator.

Runs one fill session on an already-open application page:

  0. detect fields; identifier-mapped fields take profile values, the
     rest go to the classifier in batches; fill the resulting plan
  1. add one "experience" entry per work-history record
  2. add one "education" entry per education record
     (either list is read from the resume when the profile has none)
  3. write a short cover note into the "Message" textarea
  4. attach the resume

Steps run strictly in order because each one mutates the DOM the next
one reads. A step that fails is logged and recorded in the report; the
remaining steps still run.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Optional, Sequence

import httpx
from playwright.async_api import Page

from autofill.ats_detector import ATSDetector
from autofill.classifier import (
    ClassificationOk,
    ClassificationRequest,
    ClassifiedField,
    FieldClassifier,
    ParseFailure,
    UpstreamFailure,
)
from autofill.field_detector import DetectedField, FieldDetector, FieldType
from autofill.fill_executor import FillExecutor, FillPlanEntry, UploadOutcome, make_plan_entry
from autofill.platforms.base_platform import BaseATSAdapter
from autofill.profile import CandidateProfile
from autofill.resume_sections import complete_profile_sections
from autofill.section_expander import SectionExpander, SectionResult
from config.settings import EngineConfig, engine_config

logger = logging.getLogger(__name__)

__all__ = ["JobContext", "FillReport", "Orchestrator", "build_cover_message"]

MESSAGE_ANCHOR = "Message"
MESSAGE_MAX_DISTANCE_PX = 300
MESSAGE_MIN_WIDTH_PX = 100


# ---------------------------------------------------------------------------
# Data Classes
# ---------------------------------------------------------------------------


@dataclass
class JobContext:
    """The posting being applied to, passed through to the classifier."""

    title: str = ""
    description: str = ""
    employer_name: str = ""


@dataclass
class FillReport:
    """Outcome of one ``Orchestrator.run`` call.

    Attributes:
        adapter: Name of the adapter that drove the session.
        fields_detected: Fields found by the initial detection pass.
        fields_filled: Plan entries the adapter reported as filled.
        fields_skipped: Fields left alone (already filled, no value, or
            zero confidence).
        fields_failed: Plan entries whose fill did not stick.
        classification: ``not_run``, ``local``, ``ok``, ``parse_failure``
            or ``upstream_failure`` (the worst status over all batches).
        sections: One result per attempted section entry.
        message_filled: Whether the cover note was written.
        resume: Upload outcome, ``None`` when the step did not run.
        steps: Log of completed step names.
        errors: ``"<step>: <error>"`` for every step that raised.
    """

    adapter: str
    fields_detected: int = 0
    fields_filled: int = 0
    fields_skipped: int = 0
    fields_failed: int = 0
    classification: str = "not_run"
    sections: list[SectionResult] = field(default_factory=list)
    message_filled: bool = False
    resume: Optional[UploadOutcome] = None
    steps: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def sections_filled(self) -> int:
        return sum(1 for s in self.sections if s.ok and s.filled)

    @property
    def resume_attached(self) -> bool:
        return self.resume is not None and self.resume.attached

    def to_dict(self) -> dict[str, Any]:
        return {
            "adapter": self.adapter,
            "fields_detected": self.fields_detected,
            "fields_filled": self.fields_filled,
            "fields_skipped": self.fields_skipped,
            "fields_failed": self.fields_failed,
            "classification": self.classification,
            "sections_filled": self.sections_filled,
            "message_filled": self.message_filled,
            "resume_attached": self.resume_attached,
            "steps": list(self.steps),
            "errors": list(self.errors),
        }


_STATUS_RANK = {"not_run": 0, "local": 1, "ok": 2, "parse_failure": 3, "upstream_failure": 4}


def build_cover_message(profile: CandidateProfile, job: Optional[JobContext] = None) -> str:
    """Compose the short first-person note for the "Message" textarea."""
    where = f" at {job.employer_name}" if job and job.employer_name else ""
    position = job.title if job and job.title else "this position"
    if profile.headline:
        background = f"As a {profile.headline}, I am confident"
    else:
        background = "With my background and experience, I am confident"
    return (
        f"I am writing to express my strong interest in {position}{where}. "
        f"{background} I can make a meaningful contribution to your team. "
        "I look forward to discussing how my skills and experience align with "
        f"your needs.\n\nBest regards,\n{profile.full_name}"
    ).rstrip()


# ═══════════════════════════════════════════════════════════════════════════
# Orchestrator
# ═══════════════════════════════════════════════════════════════════════════


class Orchestrator:
    """Drive a complete fill session on one page.

    Usage::

        orchestrator = Orchestrator(page)
        report = await orchestrator.run(profile, JobContext(title="RN"))

    Constructor Args:
        page: Live Playwright async page, already on the application form.
        adapter: Adapter to use; selected through ``registry`` when omitted.
        registry: Adapter registry (default ``ATSDetector()``).
        classifier: Field classifier (default ``FieldClassifier()``).
        config: Engine timing/threshold configuration.
        http_client: Optional shared ``httpx.AsyncClient`` for resume
            fetches.
    """

    def __init__(
        self,
        page: Page,
        adapter: Optional[BaseATSAdapter] = None,
        registry: Optional[ATSDetector] = None,
        classifier: Optional[FieldClassifier] = None,
        config: Optional[EngineConfig] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.page = page
        self.config = config or engine_config
        self.registry = registry or ATSDetector()
        self.classifier = classifier or FieldClassifier(
            config=self.config, http_client=http_client
        )
        self.executor = adapter.executor if adapter else FillExecutor(
            page, self.config, http_client
        )
        self.detector = adapter.detector if adapter else FieldDetector(page)
        self.adapter = adapter
        self.http_client = http_client
        self.logger = logging.getLogger(self.__class__.__name__)

    # ------------------------------------------------------------------
    # Public interface
    # ------------------------------------------------------------------

    async def run(
        self, profile: CandidateProfile, job: Optional[JobContext] = None
    ) -> FillReport:
        """Run every step in order and return the report. Never raises."""
        job = job or JobContext()
        if self.adapter is None:
            self.adapter = await self.registry.create(
                self.page, executor=self.executor, detector=self.detector, config=self.config
            )
        adapter = self.adapter
        report = FillReport(adapter=adapter.NAME)
        self.logger.info("run: adapter=%s url=%s", adapter.NAME, self.page.url)

        await self._step(report, "fields", self.fill_fields(adapter, profile, job, report))

        if adapter.SUPPORTS_SECTIONS or self.config.expand_sections:
            profile = await self.complete_sections(profile)
            await self._step(
                report,
                "experience",
                self.fill_section(adapter, "experience", profile.work_experience, report),
            )
            await self._step(
                report,
                "education",
                self.fill_section(adapter, "education", profile.education, report),
            )
        else:
            self.logger.info("run: %s has no repeating sections, skipping", adapter.NAME)

        await self._step(report, "message", self.fill_message(profile, job, report))
        await self._step(report, "resume", self.upload_resume(adapter, profile, report))

        self.logger.info("run: done %s", report.to_dict())
        return report

    async def _step(self, report: FillReport, name: str, work: Awaitable[None]) -> None:
        try:
            await work
            report.steps.append(name)
        except Exception as exc:  # noqa: BLE001
            self.logger.warning("step %s failed: %s", name, exc)
            report.errors.append(f"{name}: {exc}")

    # ------------------------------------------------------------------
    # Step 0: detected fields
    # ------------------------------------------------------------------

    async def fill_fields(
        self,
        adapter: BaseATSAdapter,
        profile: CandidateProfile,
        job: JobContext,
        report: FillReport,
    ) -> None:
        fields = await adapter.detect_fields()
        report.fields_detected = len(fields)

        plan: list[FillPlanEntry] = []
        unknown: list[DetectedField] = []
        for detected in fields:
            if detected.field_type == FieldType.FILE or not detected.is_empty:
                report.fields_skipped += 1
                continue
            key = adapter.profile_key_for(detected)
            if key is None:
                unknown.append(detected)
                continue
            value = profile.value_for(key)
            if not value:
                self.logger.info("fields: %s -> %s has no profile value", detected.identifier, key)
                report.fields_skipped += 1
                continue
            plan.append(
                FillPlanEntry(
                    field=detected,
                    target_value=value,
                    strategy=adapter.strategy_for(detected),
                    factual=True,
                    source="profile",
                )
            )
        self.logger.info(
            "fields: %d detected, %d mapped, %d for the classifier",
            len(fields),
            len(plan),
            len(unknown),
        )

        plan.extend(await self.classify_fields(adapter, unknown, profile, job, report))

        for entry in plan:
            if await adapter.fill_field(entry):
                report.fields_filled += 1
            else:
                report.fields_failed += 1
                self.logger.info(
                    "fields: %r not filled (%s, %s)",
                    entry.field.label,
                    entry.strategy.value,
                    entry.source,
                )

    async def classify_fields(
        self,
        adapter: BaseATSAdapter,
        fields: Sequence[DetectedField],
        profile: CandidateProfile,
        job: JobContext,
        report: FillReport,
    ) -> list[FillPlanEntry]:
        """Classify ``fields`` in sequential batches and return plan entries."""
        plan: list[FillPlanEntry] = []
        cap = self.config.classify_batch_cap
        for start in range(0, len(fields), cap):
            batch = list(fields[start:start + cap])
            request = ClassificationRequest(
                fields=[f.descriptor for f in batch],
                job_title=job.title,
                job_description=job.description,
                employer_name=job.employer_name,
            )
            result = await self.classifier.classify(request, profile)
            if isinstance(result, ClassificationOk):
                status = "local" if result.model == "local" else "ok"
                classified: list[ClassifiedField] = result.fields
            elif isinstance(result, ParseFailure):
                status = "parse_failure"
                classified = result.local_fields
                self.logger.warning(
                    "classify: unusable response (%s); %d local match(es) kept",
                    result.reason,
                    len(classified),
                )
            elif isinstance(result, UpstreamFailure):
                status = "upstream_failure"
                classified = result.local_fields
                self.logger.warning(
                    "classify: upstream %d (%s); %d local match(es) kept",
                    result.status,
                    result.body,
                    len(classified),
                )
            else:
                raise TypeError(f"unexpected classification result {result!r}")

            if _STATUS_RANK[status] > _STATUS_RANK[report.classification]:
                report.classification = status

            answered = {c.index for c in classified}
            report.fields_skipped += len(batch) - len(answered)
            for item in classified:
                target = batch[item.index]
                entry = make_plan_entry(
                    target,
                    item.value,
                    confidence=item.confidence,
                    strategy=adapter.strategy_for(target),
                    source="classifier",
                )
                if entry is None or not item.value:
                    report.fields_skipped += 1
                    continue
                plan.append(entry)
        return plan

    # ------------------------------------------------------------------
    # Steps 1-2: repeating sections
    # ------------------------------------------------------------------

    async def complete_sections(self, profile: CandidateProfile) -> CandidateProfile:
        """Fill empty work-history/education lists from the resume, if any."""
        try:
            return await complete_profile_sections(
                profile,
                llm=self.classifier.llm,
                config=self.config,
                http_client=self.http_client,
            )
        except Exception as exc:  # noqa: BLE001
            self.logger.warning("sections: resume extraction failed: %s", exc)
            return profile

    async def fill_section(
        self,
        adapter: BaseATSAdapter,
        name: str,
        entries: Sequence[Any],
        report: FillReport,
    ) -> None:
        if not entries:
            self.logger.info("%s: no profile entries, skipping section", name)
            return
        removed = await adapter.prepare_section(name)
        if removed:
            await asyncio.sleep(self.config.settle_seconds)

        expander = SectionExpander(
            self.page,
            adapter.executor,
            detector=adapter.detector,
            locator=adapter.control_locator(),
            config=self.config,
        )
        for number, entry in enumerate(entries, start=1):
            self.logger.info("%s: entry %d/%d", name, number, len(entries))
            try:
                result = await expander.expand(name, entry)
            except Exception as exc:  # noqa: BLE001
                self.logger.warning("%s: entry %d failed: %s", name, number, exc)
                result = SectionResult(section=name, aborted=str(exc))
            report.sections.append(result)
            await asyncio.sleep(self.config.step_seconds)
            if result.aborted in ("no heading", "no add control"):
                break

    # ------------------------------------------------------------------
    # Step 3: message textarea
    # ------------------------------------------------------------------

    async def fill_message(
        self, profile: CandidateProfile, job: JobContext, report: FillReport
    ) -> None:
        uid = await self.executor.find_textarea_below(
            MESSAGE_ANCHOR, MESSAGE_MAX_DISTANCE_PX, MESSAGE_MIN_WIDTH_PX
        )
        if uid is None:
            self.logger.info("message: no textarea below %r", MESSAGE_ANCHOR)
            return
        if not profile.full_name:
            self.logger.info("message: no candidate name, skipping")
            return
        report.message_filled = await self.executor.fill_text(
            uid, build_cover_message(profile, job)
        )
        self.logger.info("message: filled=%s", report.message_filled)

    # ------------------------------------------------------------------
    # Step 4: resume
    # ------------------------------------------------------------------

    async def upload_resume(
        self, adapter: BaseATSAdapter, profile: CandidateProfile, report: FillReport
    ) -> None:
        report.resume = await adapter.handle_file_upload(
            None, profile.resume_url, profile.resume_file_name
        )
        self.logger.info(
            "resume: attached=%s method=%s size=%d %s",
            report.resume.attached,
            report.resume.method,
            report.resume.size,
            report.resume.reason,
        )
