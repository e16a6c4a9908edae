"""Platform adapters for the autofill engine."""

from autofill.platforms.base_platform import BaseATSAdapter
from autofill.platforms.generic import GenericAdapter
from autofill.platforms.greenhouse import GreenhouseAdapter
from autofill.platforms.lever import LeverAdapter
from autofill.platforms.smartrecruiters import SmartRecruitersAdapter
from autofill.platforms.workday import WorkdayAdapter

__all__ = [
    "BaseATSAdapter",
    "GenericAdapter",
    "GreenhouseAdapter",
    "LeverAdapter",
    "SmartRecruitersAdapter",
    "WorkdayAdapter",
]
