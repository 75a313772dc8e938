"""
Periodic task scheduler with a one-shot termination signal.

Each task runs on its own thread so a slow refresh never delays the
acquisition cadence by more than the shared cache lock does.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)


class TerminationSignal:
    """
    Single-shot, single-slot notification that a reservation succeeded.

    Only the first ``fire`` is recorded; later calls are ignored.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._order_id: Optional[str] = None

    def fire(self, order_id: str) -> bool:
        """Record the order id and wake waiters. Returns False if already fired."""
        with self._lock:
            if self._event.is_set():
                return False
            self._order_id = order_id
            self._event.set()
            return True

    def is_set(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        return self._event.wait(timeout)

    @property
    def order_id(self) -> Optional[str]:
        return self._order_id


@dataclass(frozen=True)
class PeriodicTask:
    """An action dispatched every ``interval_seconds``."""
    name: str
    interval_seconds: float
    action: Callable[[], object]


class Scheduler:
    """
    Drives independent periodic tasks until termination fires or ``stop`` is called.

    Every thread waits one interval before its first dispatch and checks both
    the termination signal and the stop flag before each dispatch.
    """

    def __init__(self, termination: TerminationSignal) -> None:
        self._termination = termination
        self._stop = threading.Event()
        self._tasks: List[PeriodicTask] = []
        self._threads: List[threading.Thread] = []

    @property
    def running(self) -> bool:
        return any(thread.is_alive() for thread in self._threads)

    def add_task(self, task: PeriodicTask) -> None:
        if self._threads:
            raise RuntimeError("Cannot add tasks to a started scheduler")
        self._tasks.append(task)

    def start(self) -> None:
        """Start one daemon thread per task."""
        if self._threads:
            raise RuntimeError("Scheduler already started")
        for task in self._tasks:
            thread = threading.Thread(
                target=self._run_task,
                args=(task,),
                name=f"slotsniper-{task.name}",
                daemon=True,
            )
            self._threads.append(thread)
            thread.start()
        logger.debug("Scheduler started with %d tasks", len(self._tasks))

    def _should_dispatch(self) -> bool:
        return not (self._stop.is_set() or self._termination.is_set())

    def _run_task(self, task: PeriodicTask) -> None:
        while not self._stop.wait(task.interval_seconds):
            if not self._should_dispatch():
                break
            try:
                task.action()
            except Exception:
                logger.exception("Task %s failed", task.name)
        logger.debug("Task %s stopped", task.name)

    def stop(self, timeout: Optional[float] = None) -> None:
        """Stop dispatching and wait for in-flight actions to finish."""
        self._stop.set()
        current = threading.current_thread()
        for thread in self._threads:
            if thread is not current:
                thread.join(timeout)

    def run_until_terminated(self, poll_interval: float = 0.5) -> Optional[str]:
        """
        Block until termination fires, then stop cleanly.

        Returns:
            The order id carried by the termination signal
        """
        try:
            while not self._termination.wait(poll_interval):
                if self._stop.is_set():
                    break
        finally:
            self.stop()
        return self._termination.order_id
