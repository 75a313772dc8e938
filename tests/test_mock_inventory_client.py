"""
Tests for the offline mock portal.
"""

import pytest

from slotsniper.adapters.mock_inventory_client import MockInventoryClient
from slotsniper.domain.exceptions import InventoryAPIError
from slotsniper.domain.models import Candidate


def _candidate(client: MockInventoryClient, slot_id: str) -> Candidate:
    provider = client.list_providers()[0]
    window = client.list_availability(provider)[0]
    sub_slot = next(s for s in client.list_sub_slots(window) if s.slot_id == slot_id)
    return Candidate(provider=provider, window=window, sub_slot=sub_slot)


class TestMockInventoryClient:
    """Tests for MockInventoryClient."""

    def test_booked_period_is_rejected(self):
        client = MockInventoryClient()

        with pytest.raises(InventoryAPIError, match="fully booked"):
            client.claim(_candidate(client, "D2"))

    def test_claimable_period_confirms_with_sequential_ids(self):
        client = MockInventoryClient()
        candidate = _candidate(client, "D1")

        assert client.confirm(client.claim(candidate)) == "880001"
        assert client.confirm(client.claim(candidate)) == "880002"

    def test_repeated_claims_keep_no_history(self):
        client = MockInventoryClient()
        candidate = _candidate(client, "D1")

        for _ in range(100):
            client.claim(candidate)

        assert not hasattr(client, "claims")

    def test_unknown_doctor_fails_availability(self):
        client = MockInventoryClient()
        provider = client.list_providers()[0]

        with pytest.raises(InventoryAPIError, match="unknown doctor"):
            client.list_availability(type(provider)(provider_id=9, name="x", department_id=1, tier=""))
