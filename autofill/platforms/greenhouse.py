"""Greenhouse adapter.

Greenhouse boards (``boards.greenhouse.io`` and the newer
``job-boards.greenhouse.io``) give the standard contact inputs plain ids
(``#first_name``, ``#email``, ...). Employer-defined questions are
``#question_<digits>`` and go to the classifier, except LinkedIn questions
which map straight onto the profile URL. The country input is a
React-Select typeahead.
"""

from __future__ import annotations

import logging
from typing import Optional

from autofill.field_detector import DetectedField
from autofill.fill_executor import FillStrategy
from autofill.platforms.base_platform import BaseATSAdapter

logger = logging.getLogger(__name__)

__all__ = ["GreenhouseAdapter"]

QUESTION_PREFIX = "question_"


class GreenhouseAdapter(BaseATSAdapter):
    """Adapter for Greenhouse-hosted application forms."""

    NAME = "greenhouse"
    URL_PATTERNS = ("boards.greenhouse.io", "job-boards.greenhouse.io")
    IDENTIFIER_ATTRIBUTE = "id"
    IDENTIFIER_MAP = {
        "first_name": "first_name",
        "last_name": "last_name",
        "preferred_name": "first_name",
        "email": "email",
        "phone": "phone",
        "country": "country",
        "location": "city",
    }
    STRATEGY_OVERRIDES = {"country": FillStrategy.AUTOCOMPLETE}

    def profile_key_for(self, field: DetectedField) -> Optional[str]:
        identifier = field.identifier.lower()
        if identifier.startswith(QUESTION_PREFIX):
            if "linkedin" in field.label.lower():
                return "linkedin_url"
            return None
        return self.IDENTIFIER_MAP.get(identifier)
