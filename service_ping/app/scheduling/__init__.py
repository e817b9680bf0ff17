"""
Scheduling package for the Ping service.

Spreads a fleet's once-per-second ticks evenly across the second so that
instances never fire at the same instant.
"""

from .window_scheduler import ScheduleAssignment, WindowScheduler

__all__ = [
    "ScheduleAssignment",
    "WindowScheduler",
]
