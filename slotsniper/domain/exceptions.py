"""
Domain-specific exception hierarchy for the slotsniper application.
"""


class SlotSniperError(Exception):
    """Base class for all application-level errors."""


class InventoryAPIError(SlotSniperError):
    """Raised when the portal cannot be reached, answers with an unexpected shape, or rejects a request."""


class ConfigurationError(SlotSniperError):
    """Raised when the startup configuration cannot be loaded or validated."""
