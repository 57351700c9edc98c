"""
Live transport backends.
"""

from live_orb.backends.base import (
    AudioPayload,
    GroundingLink,
    LiveConnection,
    LiveEvent,
    LiveTransport,
    TransportError,
)

__all__ = [
    "AudioPayload",
    "GroundingLink",
    "LiveConnection",
    "LiveEvent",
    "LiveTransport",
    "TransportError",
]
