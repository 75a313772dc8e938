"""
Refresh pipeline: provider discovery, availability lookup and sub-slot expansion.

Discovery runs on a slow cadence because rosters rarely change. Every
discovery cascades straight into an availability refresh with the providers
it just found, so the cache never waits a full discovery interval to catch up.
Scheduled availability ticks in between reuse the last discovered set.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, ContextManager, List, Optional, Protocol, Sequence, Tuple

from ..domain.eligibility import filter_eligible
from ..domain.exceptions import InventoryAPIError
from ..domain.models import AvailabilityWindow, Candidate, ClaimTicket, Provider, SubSlot
from .candidate_cache import CandidateCache

logger = logging.getLogger(__name__)


class InventoryClientProtocol(Protocol):
    """Protocol describing the portal operations the engine relies on."""

    def pinned(self) -> ContextManager[object]:
        """Keep one configuration snapshot for every call made inside the block."""

    def list_providers(self) -> List[Provider]:
        """Return every provider of the configured department."""

    def list_availability(self, provider: Provider) -> List[AvailabilityWindow]:
        """Return the availability windows of one provider."""

    def list_sub_slots(self, window: AvailabilityWindow) -> List[SubSlot]:
        """Return the sub-slots of one open window."""

    def claim(self, candidate: Candidate) -> ClaimTicket:
        """Submit a claim and return its ticket."""

    def confirm(self, ticket: ClaimTicket) -> str:
        """Confirm a claim and return the order id."""


class RefreshPipeline:
    """
    Rebuilds the candidate cache from the portal.

    Two entry points: ``refresh_providers`` (discovery, always cascading into
    availability) and ``refresh_availability`` (scheduled on its own).
    """

    def __init__(
        self,
        client: InventoryClientProtocol,
        cache: CandidateCache,
        request_delay_seconds: float = 0.2,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._client = client
        self._cache = cache
        self._request_delay_seconds = request_delay_seconds
        self._sleep = sleep
        self._providers: Tuple[Provider, ...] = ()
        self._refresh_lock = threading.Lock()

    @property
    def providers(self) -> Tuple[Provider, ...]:
        """Providers found by the most recent discovery."""
        return self._providers

    def refresh_providers(self) -> List[Provider]:
        """
        Discover eligible providers, then refresh availability for them.

        Returns:
            The eligible providers, possibly empty
        """
        with self._client.pinned():
            return self._refresh_providers()

    def _refresh_providers(self) -> List[Provider]:
        providers: List[Provider] = []
        try:
            listed = self._client.list_providers()
        except InventoryAPIError as e:
            logger.warning("Fetching providers failed: %s", e)
        else:
            logger.info(">>> Fetched %d providers", len(listed))
            providers = filter_eligible(listed)
            for provider in providers:
                logger.info("-- selected %s", provider)

        if not providers:
            logger.info(">>> No eligible providers found")

        self._providers = tuple(providers)
        self.refresh_availability(providers)
        return providers

    def refresh_availability(self, providers: Optional[Sequence[Provider]] = None) -> Tuple[Candidate, ...]:
        """
        Expand open windows of the given (or last discovered) providers into candidates.

        Providers are queried one at a time with a pause after each. A failure
        for one provider drops all of that provider's candidates for this cycle.
        The cache is replaced even when the result is empty.
        """
        with self._refresh_lock, self._client.pinned():
            targets = self._providers if providers is None else tuple(providers)

            candidates: List[Candidate] = []
            for provider in targets:
                try:
                    candidates.extend(self._expand_provider(provider))
                except InventoryAPIError as e:
                    logger.warning("Refreshing %s failed: %s", provider, e)
                self._sleep(self._request_delay_seconds)

            if not candidates:
                logger.info(">>> No claimable candidates found")

            self._cache.replace(candidates)
            logger.debug("Candidate cache now holds %d entries", len(candidates))
            return tuple(candidates)

    def _expand_provider(self, provider: Provider) -> List[Candidate]:
        candidates: List[Candidate] = []
        for window in self._client.list_availability(provider):
            if not window.is_open:
                continue
            logger.info("%s", window)
            for sub_slot in self._client.list_sub_slots(window):
                logger.info("-- %s (%d left)", sub_slot.label or sub_slot.slot_id, sub_slot.remaining)
                candidates.append(Candidate(provider=provider, window=window, sub_slot=sub_slot))
        return candidates
