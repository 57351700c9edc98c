"""
Event classifier: routes each inbound LiveEvent into session state.

One event may carry several concerns; every applicable branch runs, in a
fixed order, and events are applied in the order the transport delivers
them.
"""

import logging
from typing import Callable, Iterable, Optional

from live_orb.backends.base import LiveEvent
from live_orb.config import DEFAULT_MOODS
from live_orb.session.mood import MoodMarkerParser
from live_orb.session.playback import PlaybackScheduler
from live_orb.session.state import (
    NEUTRAL,
    GroundingLinkRing,
    HistoryLog,
    SessionSignals,
    TurnAccumulator,
)

logger = logging.getLogger(__name__)


class EventClassifier:
    """Dispatch inbound events to transcript, grounding, mood and playback state."""

    def __init__(
        self,
        turn: TurnAccumulator,
        history: HistoryLog,
        links: GroundingLinkRing,
        signals: SessionSignals,
        scheduler: PlaybackScheduler,
        on_transport_lost: Optional[Callable[[LiveEvent], None]] = None,
        moods: Iterable[str] = DEFAULT_MOODS,
    ):
        self.turn = turn
        self.history = history
        self.links = links
        self.signals = signals
        self.scheduler = scheduler
        self._on_transport_lost = on_transport_lost
        self._mood_parser = MoodMarkerParser(on_mood=self._set_mood, vocabulary=moods)

    def dispatch(self, event: LiveEvent) -> None:
        """Apply one event. Never raises on event shape."""
        if event.is_transport_loss:
            if self._on_transport_lost is not None:
                self._on_transport_lost(event)
            else:
                logger.warning("Transport lost with no handler: %s", event.error or event.close_reason)
            return

        if event.tool_call:
            self.signals.update(searching=True, status="Searching...")

        if event.grounding_links:
            added = self.links.extend(event.grounding_links)
            if added:
                logger.debug("Grounding links +%d (%d kept)", added, len(self.links))

        if event.input_transcription:
            self.turn.append_user(event.input_transcription)

        if event.output_transcription:
            visible = self._mood_parser.feed(event.output_transcription)
            if visible:
                self.turn.append_assistant(visible)
            self.signals.update(searching=False)

        if event.turn_complete:
            self.archive_turn()
            self.signals.update(assistant_speaking=False, searching=False, mood=NEUTRAL)

        for payload in event.audio:
            if not payload.data:
                continue
            self.scheduler.submit(payload.data, payload.sample_rate)

        if event.interrupted:
            logger.debug("Server interruption")
            self.scheduler.interrupt(before_drain=self.archive_turn)
            self.signals.update(searching=False, mood=NEUTRAL)

    def _set_mood(self, mood: str) -> None:
        self.turn.set_mood(mood)
        self.signals.update(mood=mood)

    def archive_turn(self) -> None:
        held = self._mood_parser.flush()
        if held:
            self.turn.append_assistant(held)
        archived = self.turn.archive(self.history)
        for entry in archived:
            logger.debug("Archived %s turn (%d chars)", entry.role, len(entry.text))

    def reset(self) -> None:
        """Drop the turn in progress without archiving it."""
        self._mood_parser.reset()
        self.turn.clear()
        self.links.clear()
        self.signals.update(mood=NEUTRAL, searching=False)
