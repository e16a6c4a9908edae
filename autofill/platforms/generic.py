"""Fallback adapter for pages no platform adapter recognises."""

from __future__ import annotations

import logging

from autofill.platforms.base_platform import BaseATSAdapter

logger = logging.getLogger(__name__)

__all__ = ["GenericAdapter"]


class GenericAdapter(BaseATSAdapter):
    """Shared detector and executor behaviour with no identifier map.

    Every field goes through the classifier. ``detect`` always answers
    True, so the adapter also works when placed last in a registry.
    """

    NAME = "generic"

    @classmethod
    def detect(cls, url: str) -> bool:
        return True
