"""
Domain models for providers, availability windows and claimable candidates.

Every model is an immutable value object. A refresh cycle builds fresh
instances and the next cycle discards them wholesale.
"""

from dataclasses import dataclass

import pendulum
from pendulum import DateTime

DEFAULT_TIMEZONE = "Asia/Shanghai"


@dataclass(frozen=True)
class Provider:
    """
    A doctor offering bookable schedules.

    The portal reports names as ``"<name>-<suffix>"``; only the first part is
    meant for humans.
    """
    provider_id: int
    name: str
    department_id: int
    tier: str

    @property
    def display_name(self) -> str:
        return self.name.split("-")[0]

    def __str__(self) -> str:
        return f"{self.display_name} ({self.tier})"


@dataclass(frozen=True)
class AvailabilityWindow:
    """
    A coarse schedule block (date plus morning/afternoon bucket) of one provider.

    ``remaining`` is advisory only; the portal decides at claim time.
    """
    provider: Provider
    date: str
    schedule_id: str
    time_type: str
    time_type_label: str
    remaining: str
    is_open: bool
    timezone: str = DEFAULT_TIMEZONE

    def __str__(self) -> str:
        return f"{self.provider.display_name} {self.date} {self.time_type_label} ({self.remaining} left)"


@dataclass(frozen=True)
class SubSlot:
    """A precise period inside an availability window."""
    slot_id: str
    begin_time: str
    end_time: str
    label: str
    remaining: int = 0


@dataclass(frozen=True)
class Candidate:
    """
    The unit of acquisition: provider, window and sub-slot denormalized together.
    """
    provider: Provider
    window: AvailabilityWindow
    sub_slot: SubSlot

    @property
    def starts_at(self) -> DateTime:
        return self._at(self.sub_slot.begin_time)

    @property
    def ends_at(self) -> DateTime:
        return self._at(self.sub_slot.end_time)

    def _at(self, clock: str) -> DateTime:
        # Periods are sometimes delivered as full timestamps, sometimes as HH:mm.
        if len(clock) > 8:
            return pendulum.parse(clock, tz=self.window.timezone)
        return pendulum.parse(f"{self.window.date} {clock}", tz=self.window.timezone)

    def format_display(self) -> str:
        """
        Format the candidate for logs and tables.
        Format: Name (Tier) | YYYY-MM-DD HH:mm-HH:mm [slot]
        """
        try:
            when = f"{self.starts_at.format('YYYY-MM-DD HH:mm')}-{self.ends_at.format('HH:mm')}"
        except ValueError:
            when = f"{self.window.date} {self.sub_slot.label}"
        return f"{self.provider} | {when} [{self.sub_slot.slot_id}]"

    def __str__(self) -> str:
        return self.format_display()


@dataclass(frozen=True)
class ClaimTicket:
    """Opaque token returned by the claim phase and consumed by the confirm phase."""
    token: str
    candidate: Candidate
