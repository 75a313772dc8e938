"""
Service layer orchestrating the portal adapter, the candidate cache and the schedule.
"""

from .acquisition import AcquisitionExecutor
from .candidate_cache import CandidateCache
from .refresh_pipeline import InventoryClientProtocol, RefreshPipeline
from .scheduler import PeriodicTask, Scheduler, TerminationSignal

__all__ = [
    "AcquisitionExecutor",
    "CandidateCache",
    "InventoryClientProtocol",
    "RefreshPipeline",
    "PeriodicTask",
    "Scheduler",
    "TerminationSignal",
]
