"""
Adapters package for the Ping Service.

Contains the HTTP client wrapper for the Pong service. Adapters map
transport errors onto shared errors and never retry.
"""

from .pong_client import PongClient

__all__ = [
    "PongClient",
]
