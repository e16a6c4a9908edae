"""Lever adapter.

Lever forms (``jobs.lever.co/<company>/<id>/apply``) name every standard
input: ``name`` takes the full name, ``org`` the current employer and
``urls[LinkedIn]`` the profile URL. The location input is a Places-style
typeahead without a combobox role, so it is forced onto the autocomplete
strategy. EEO questions are plain selects.
"""

from __future__ import annotations

import logging

from autofill.fill_executor import FillPlanEntry, FillStrategy
from autofill.platforms.base_platform import BaseATSAdapter

logger = logging.getLogger(__name__)

__all__ = ["LeverAdapter"]


class LeverAdapter(BaseATSAdapter):
    """Adapter for ``jobs.lever.co`` application forms."""

    NAME = "lever"
    URL_PATTERNS = ("jobs.lever.co", "lever.co/apply")
    IDENTIFIER_ATTRIBUTE = "name"
    IDENTIFIER_MAP = {
        "name": "full_name",
        "email": "email",
        "phone": "phone",
        "org": "current_employer",
        "location": "location",
        "urls[LinkedIn]": "linkedin_url",
        "eeo[gender]": "gender",
        "eeo[race]": "race_ethnicity",
        "eeo[veteran]": "veteran_status",
    }
    STRATEGY_OVERRIDES = {"location": FillStrategy.AUTOCOMPLETE}

    async def fill_field(self, entry: FillPlanEntry) -> bool:
        """Fill a field; the location typeahead is retried with the city
        alone when the full "City, State" text is not accepted."""
        filled = await super().fill_field(entry)
        if filled or entry.field.identifier != "location":
            return filled
        city = entry.target_value.split(",")[0].strip()
        if not city or city == entry.target_value:
            return False
        self.logger.info("location: retrying with city only (%r)", city)
        return await self.executor.fill_autocomplete(entry.field.uid, city)
