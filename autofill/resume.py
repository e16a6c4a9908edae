"""Resume collaborator client: fetch the resume blob and extract its text.

``fetch_resume`` is used by the file-upload strategy (the raw bytes are
attached to the page); ``extract_resume_text`` feeds the classifier prompt.
Both degrade to an empty result instead of raising.
"""

from __future__ import annotations

import asyncio
import io
import logging
from dataclasses import dataclass
from typing import Optional

import httpx
import PyPDF2

from config.settings import engine_config

logger = logging.getLogger(__name__)

__all__ = ["ResumeBlob", "fetch_resume", "extract_pdf_text", "extract_resume_text"]

DEFAULT_TIMEOUT = 60.0


@dataclass(frozen=True)
class ResumeBlob:
    """Downloaded resume document.

    Attributes:
        content: Raw bytes as served.
        content_type: MIME type from the response, ``application/pdf`` when
            the server does not send one.
        file_name: Name to give the attached file.
    """

    content: bytes
    content_type: str = "application/pdf"
    file_name: str = "resume.pdf"

    @property
    def size(self) -> int:
        return len(self.content)


async def fetch_resume(
    url: str,
    file_name: str = "resume.pdf",
    client: Optional[httpx.AsyncClient] = None,
) -> Optional[ResumeBlob]:
    """Download the resume at ``url``.

    Args:
        url: Resume location from the candidate profile.
        file_name: Name for the attached file.
        client: Optional shared ``httpx.AsyncClient``; a short-lived client
            is created when omitted.

    Returns:
        The ``ResumeBlob``, or ``None`` when the URL is empty, the request
        fails or the response status is not 2xx.
    """
    if not url:
        return None
    try:
        if client is None:
            async with httpx.AsyncClient(
                timeout=DEFAULT_TIMEOUT, follow_redirects=True
            ) as own_client:
                response = await own_client.get(url)
        else:
            response = await client.get(url)
        response.raise_for_status()
    except httpx.HTTPStatusError as exc:
        logger.warning(
            "fetch_resume: HTTP %d for %s", exc.response.status_code, url
        )
        return None
    except httpx.HTTPError as exc:
        logger.warning("fetch_resume: request failed for %s: %s", url, exc)
        return None

    content_type = response.headers.get("content-type", "").split(";")[0].strip()
    blob = ResumeBlob(
        content=response.content,
        content_type=content_type or "application/pdf",
        file_name=file_name or "resume.pdf",
    )
    logger.info("fetch_resume: %d bytes, type=%s", blob.size, blob.content_type)
    return blob


def extract_pdf_text(data: bytes) -> str:
    """Return the concatenated text of every page of a PDF document."""
    reader = PyPDF2.PdfReader(io.BytesIO(data))
    text_list: list[str] = []
    for page in reader.pages:
        try:
            text = page.extract_text() or ""
        except Exception:  # noqa: BLE001
            text = ""
        if text.strip():
            text_list.append(text)
    return "\n".join(text_list).strip()


async def extract_resume_text(
    url: str,
    cap: Optional[int] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> str:
    """Fetch the resume and return at most ``cap`` characters of its text.

    Any failure (missing URL, HTTP error, unreadable PDF) yields ``""``.
    """
    limit = engine_config.resume_text_cap if cap is None else cap
    blob = await fetch_resume(url, client=client)
    if blob is None:
        return ""
    try:
        text = await asyncio.to_thread(extract_pdf_text, blob.content)
    except Exception as exc:  # noqa: BLE001
        logger.warning("extract_resume_text: PDF extract failed: %s", exc)
        return ""
    return text[:limit]
