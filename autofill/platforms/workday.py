"""Workday adapter.

Workday tags every form control with ``data-automation-id``; the standard
contact section uses fixed ids (``legalNameSection_firstName`` and so on),
often with a numeric or section prefix, so identifiers are matched by
substring. Its custom dropdowns list ``promptOption`` items.
"""

from __future__ import annotations

import logging
from typing import Optional

from autofill.field_detector import DetectedField
from autofill.platforms.base_platform import BaseATSAdapter

logger = logging.getLogger(__name__)

__all__ = ["WorkdayAdapter"]


class WorkdayAdapter(BaseATSAdapter):
    """Adapter for ``myworkdayjobs.com`` / ``myworkday.com`` tenants.

    Resume upload uses the generic file-input then drop-zone path.
    """

    NAME = "workday"
    URL_PATTERNS = ("myworkdayjobs.com", "myworkday.com", "workday.com")
    IDENTIFIER_ATTRIBUTE = "data-automation-id"
    IDENTIFIER_MAP = {
        "legalNameSection_firstName": "first_name",
        "legalNameSection_lastName": "last_name",
        "addressSection_addressLine1": "address_line1",
        "addressSection_city": "city",
        "addressSection_countryRegion": "state",
        "addressSection_postalCode": "zip",
        "phone-number": "phone",
        "email": "email",
    }
    OPTION_SELECTOR = '[data-automation-id*="promptOption"], [role="option"]'

    def profile_key_for(self, field: DetectedField) -> Optional[str]:
        for automation_id, key in self.IDENTIFIER_MAP.items():
            if automation_id in field.identifier:
                return key
        return None
