"""
Domain layer - Pure value objects and rules without external dependencies.
"""

from .eligibility import ELIGIBLE_TIERS, filter_eligible, is_eligible
from .exceptions import ConfigurationError, InventoryAPIError, SlotSniperError
from .models import AvailabilityWindow, Candidate, ClaimTicket, Provider, SubSlot

__all__ = [
    "AvailabilityWindow",
    "Candidate",
    "ClaimTicket",
    "Provider",
    "SubSlot",
    "ELIGIBLE_TIERS",
    "filter_eligible",
    "is_eligible",
    "SlotSniperError",
    "InventoryAPIError",
    "ConfigurationError",
]
