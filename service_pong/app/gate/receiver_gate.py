"""
Single-permit admission gate for the Pong service.
"""

import asyncio
import threading
from enum import Enum
from typing import Optional

from shared.logging import get_logger
from shared.metrics import MetricsCollector


class GateDecision(str, Enum):
    """Outcome of one admission attempt."""

    ADMITTED = "admitted"
    REJECTED = "rejected"


class ReceiverGate:
    """Admit one unit of work at a time and reject the rest without queueing.

    Acquisition is always non-blocking so the server keeps accepting
    connections while the permit is held.
    """

    def __init__(
        self,
        work_seconds: float = 1.0,
        permits: int = 1,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.work_seconds = work_seconds
        self.permits = permits
        self.metrics = metrics
        self._semaphore = threading.BoundedSemaphore(permits)
        self._held = 0
        self._held_lock = threading.Lock()
        self.logger = get_logger("pong.gate")

    @property
    def in_use(self) -> int:
        """Number of permits currently held."""
        return self._held

    def try_acquire(self) -> bool:
        if not self._semaphore.acquire(blocking=False):
            return False
        self._track(1)
        return True

    def release(self) -> None:
        # BoundedSemaphore raises on an unpaired release before the count moves
        self._semaphore.release()
        self._track(-1)

    def _track(self, delta: int) -> None:
        with self._held_lock:
            self._held += delta
            held = self._held
        if self.metrics:
            self.metrics.set_gauge("gate_permits_in_use", held)

    async def admit(self) -> GateDecision:
        """Hold a permit for the simulated work, or reject immediately."""
        if not self.try_acquire():
            self.logger.info("Gate busy, rejecting request", permits=self.permits)
            return GateDecision.REJECTED

        try:
            await asyncio.sleep(self.work_seconds)
        finally:
            self.release()

        return GateDecision.ADMITTED
