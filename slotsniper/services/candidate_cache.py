"""
Shared candidate cache guarded by a single exclusive lock.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Iterable, Iterator, Tuple

from ..domain.models import Candidate


class CandidateCache:
    """
    Holds the current generation of claimable candidates.

    The sequence is only ever replaced as a whole, so readers see either the
    previous or the current generation and never a mix of both.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._candidates: Tuple[Candidate, ...] = ()

    def replace(self, candidates: Iterable[Candidate]) -> None:
        """Atomically swap in a new generation."""
        new_generation = tuple(candidates)
        with self._lock:
            self._candidates = new_generation

    def snapshot(self) -> Tuple[Candidate, ...]:
        """Return the current generation by value."""
        with self._lock:
            return self._candidates

    @contextmanager
    def exclusive(self) -> Iterator[Tuple[Candidate, ...]]:
        """
        Hold the cache lock for the whole block and yield the current generation.

        No replacement can happen until the block exits.
        """
        with self._lock:
            yield self._candidates

    def __len__(self) -> int:
        return len(self.snapshot())
