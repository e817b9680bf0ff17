"""
Phase-offset periodic trigger for the Ping service.

When every instance of a fleet fires on the same second boundary they all hit
the single-permit Pong service together and most of them get 429s. Instead the
period is cut into ``total_machines`` equal windows and each machine fires at
the start of its own window, every period, for as long as it runs.
"""

import asyncio
import inspect
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from shared.errors import ValidationError
from shared.logging import get_logger


@dataclass(frozen=True)
class ScheduleAssignment:
    """Fixed slot of one machine within the fleet's period."""
    machine_id: int
    total_machines: int
    period_ms: int = 1000
    window_size_ms: int = field(init=False)
    start_offset_ms: int = field(init=False)

    def __post_init__(self):
        if self.total_machines < 1:
            raise ValidationError(
                "total_machines must be at least 1",
                details={"total_machines": self.total_machines}
            )
        if not 1 <= self.machine_id <= self.total_machines:
            raise ValidationError(
                "machine_id must be within [1, total_machines]",
                details={"machine_id": self.machine_id, "total_machines": self.total_machines}
            )
        if self.period_ms < 1:
            raise ValidationError("period_ms must be positive", details={"period_ms": self.period_ms})

        window_size_ms = self.period_ms // self.total_machines
        object.__setattr__(self, "window_size_ms", window_size_ms)
        object.__setattr__(self, "start_offset_ms", (self.machine_id - 1) * window_size_ms)

    def to_dict(self) -> dict:
        return {
            "machine_id": self.machine_id,
            "total_machines": self.total_machines,
            "period_ms": self.period_ms,
            "window_size_ms": self.window_size_ms,
            "start_offset_ms": self.start_offset_ms,
        }


class WindowScheduler:
    """Fire ``callback`` at the assignment's offset and then once per period.

    Ticks are fixed-rate against the start instant. A tick that overruns its
    slot skips the slots it missed instead of firing them back to back.
    """

    def __init__(
        self,
        assignment: ScheduleAssignment,
        callback: Callable[[], Any],
        name: Optional[str] = None,
    ):
        self.assignment = assignment
        self.callback = callback
        self.name = name or f"PingScheduler-Machine-{assignment.machine_id}"
        self.logger = get_logger("ping.scheduler")
        self.ticks = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start firing. Must be called from a running event loop."""
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name=self.name)
        self.logger.info("Scheduler started", scheduler=self.name, **self.assignment.to_dict())

    async def stop(self) -> None:
        """Stop firing. Safe to call repeatedly or before start."""
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        self.logger.info("Scheduler stopped", scheduler=self.name, ticks=self.ticks)

    async def _run(self) -> None:
        loop = asyncio.get_running_loop()
        period = self.assignment.period_ms / 1000.0
        first_fire = loop.time() + self.assignment.start_offset_ms / 1000.0
        slot = 0

        while True:
            delay = first_fire + slot * period - loop.time()
            if delay > 0:
                await asyncio.sleep(delay)
            await self._fire()
            slot = max(slot + 1, int((loop.time() - first_fire) // period) + 1)

    async def _fire(self) -> None:
        self.ticks += 1
        try:
            result = self.callback()
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            self.logger.error("Scheduled tick failed", scheduler=self.name, error=str(e), exc_info=True)
