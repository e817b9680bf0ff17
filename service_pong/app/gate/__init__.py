"""
Admission control for the Pong service.
"""

from .receiver_gate import GateDecision, ReceiverGate

__all__ = [
    "GateDecision",
    "ReceiverGate",
]
