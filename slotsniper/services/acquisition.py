"""
Acquisition executor: races the two-phase claim/confirm transaction over the cached candidates.
"""

from __future__ import annotations

import logging
from typing import Optional

from ..domain.exceptions import InventoryAPIError
from .candidate_cache import CandidateCache
from .refresh_pipeline import InventoryClientProtocol
from .scheduler import TerminationSignal

logger = logging.getLogger(__name__)


class AcquisitionExecutor:
    """
    Tries every cached candidate until one reservation goes through.

    Candidates are attempted newest first. Nothing in the portal ranks them;
    the order simply mirrors how they were expanded.
    """

    def __init__(
        self,
        client: InventoryClientProtocol,
        cache: CandidateCache,
        termination: TerminationSignal,
    ) -> None:
        self._client = client
        self._cache = cache
        self._termination = termination

    def execute(self) -> Optional[str]:
        """
        Run one acquisition tick.

        Returns:
            The order id of the reservation made by this tick, or None
        """
        if self._termination.is_set():
            return None

        # Holding the lock keeps refreshes from replacing the list mid-iteration.
        with self._client.pinned(), self._cache.exclusive() as candidates:
            for candidate in reversed(candidates):
                logger.info(">>> Claiming %s", candidate)
                try:
                    ticket = self._client.claim(candidate)
                    order_id = self._client.confirm(ticket)
                except InventoryAPIError as e:
                    logger.info("Claim for %s failed: %s", candidate, e)
                    continue

                logger.info(">>> Reservation confirmed! Order id: %s", order_id)
                self._termination.fire(order_id)
                return order_id

        return None
