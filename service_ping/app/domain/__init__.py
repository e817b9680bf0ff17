"""
Domain logic for the Ping Service.
"""

from .caller import AttemptOutcome, AttemptRecord, PingCaller

__all__ = [
    "AttemptOutcome",
    "AttemptRecord",
    "PingCaller",
]
