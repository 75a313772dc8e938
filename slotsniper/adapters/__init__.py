"""
Adapters layer - External integrations (registration portal).
"""

from .inventory_client import InventoryClient
from .mock_inventory_client import MockInventoryClient

__all__ = ["InventoryClient", "MockInventoryClient"]
