"""
Live session: lifecycle, event classification, playback scheduling and capture.
"""

from live_orb.session.state import (
    ChatEntry,
    GroundingLinkRing,
    HistoryLog,
    SessionSignals,
    TurnAccumulator,
    UserProfile,
)

__all__ = [
    "ChatEntry",
    "GroundingLinkRing",
    "HistoryLog",
    "SessionSignals",
    "TurnAccumulator",
    "UserProfile",
]
