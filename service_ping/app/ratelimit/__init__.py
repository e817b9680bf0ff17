"""
Rate limiting package for the Ping service.

Holds the file-backed limiter shared by every ping process on a host.
"""

from .file_limiter import PersistedRateLimiter, RateRecord

__all__ = [
    "PersistedRateLimiter",
    "RateRecord",
]
