"""
Mock portal client for running the engine without a live session.
"""

import itertools
import json
from contextlib import nullcontext
from pathlib import Path
from typing import Any, Dict, List

from ..domain.exceptions import InventoryAPIError
from ..domain.models import AvailabilityWindow, Candidate, ClaimTicket, Provider, SubSlot


class MockInventoryClient:
    """
    Mock client that simulates the registration portal.

    Doctors, schedules and periods are loaded from mock_inventory_data.json.
    Periods listed under ``claimable`` accept an order; every other claim is
    rejected, which is what the portal does once a slot is gone.
    """

    def __init__(self, data_file: Path | None = None):
        """
        Initialize the mock client.

        Args:
            data_file: Optional alternative fixture file
        """
        self.data_file = data_file or Path(__file__).parent / "mock_inventory_data.json"
        self._load_inventory_data()
        self._order_ids = itertools.count(int(self.data.get("first_order_id", 1000)))

    def _load_inventory_data(self):
        """Load mock inventory data from JSON file."""
        if self.data_file.exists():
            with open(self.data_file, "r", encoding="utf-8") as f:
                self.data: Dict[str, Any] = json.load(f)
        else:
            # Fallback to empty if file doesn't exist
            self.data = {}

    def pinned(self):
        return nullcontext()

    def list_providers(self) -> List[Provider]:
        return [
            Provider(
                provider_id=int(row["doctorId"]),
                name=row["doctorName"],
                department_id=int(row["depId"]),
                tier=row.get("zcid", ""),
            )
            for row in self.data.get("doctors", [])
        ]

    def list_availability(self, provider: Provider) -> List[AvailabilityWindow]:
        schedules = self.data.get("schedules", {}).get(str(provider.provider_id))
        if schedules is None:
            raise InventoryAPIError(f"Fetching schedules failed: unknown doctor {provider.provider_id}")
        return [
            AvailabilityWindow(
                provider=provider,
                date=item["to_date"],
                schedule_id=item["schedule_id"],
                time_type=item.get("time_type", ""),
                time_type_label=item.get("time_type_desc", ""),
                remaining=str(item.get("left_num", "")),
                is_open=str(item.get("y_state")) == "1",
            )
            for item in schedules
        ]

    def list_sub_slots(self, window: AvailabilityWindow) -> List[SubSlot]:
        periods = self.data.get("periods", {}).get(window.schedule_id, [])
        return [
            SubSlot(
                slot_id=item["detl_id"],
                begin_time=item["begin_time"],
                end_time=item["end_time"],
                label=item.get("detl_time_desc", ""),
                remaining=int(item.get("yuyue_num", 0)),
            )
            for item in periods
        ]

    def claim(self, candidate: Candidate) -> ClaimTicket:
        slot_id = candidate.sub_slot.slot_id
        if slot_id not in self.data.get("claimable", []):
            raise InventoryAPIError(f"Submitting order failed: period {slot_id} is fully booked")
        return ClaimTicket(token=f"mock-{slot_id}", candidate=candidate)

    def confirm(self, ticket: ClaimTicket) -> str:
        return str(next(self._order_ids))

    def check_certificate(self) -> bool:
        return True

    def check_bill_pay(self) -> bool:
        return True

    def check_order_config(self, provider: Provider) -> bool:
        return True

    def check_member(self, provider: Provider) -> bool:
        return True

    def check_rise_amount(self, provider: Provider) -> bool:
        return True
