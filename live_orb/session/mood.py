"""Strip [MOOD:TAG] markers from the streamed assistant transcript."""

import logging
import re
from typing import Callable, Iterable

from live_orb.config import DEFAULT_MOODS

logger = logging.getLogger(__name__)

# A complete marker plus the whitespace that follows it
MOOD_MARKER = re.compile(r"\[MOOD:(\w+)\]\s*", re.IGNORECASE)

# A trailing, possibly incomplete marker ("[", "[MO", "[MOOD:SA", ...)
_PARTIAL_MARKER = re.compile(r"\[(?:M(?:O(?:O(?:D(?::\w*)?)?)?)?)?$", re.IGNORECASE)

# Longer tails cannot be a marker in progress
_MAX_MARKER_LEN = 32


def strip_mood_markers(text: str) -> str:
    """Remove every complete mood marker from ``text``."""
    return MOOD_MARKER.sub("", text)


class MoodMarkerParser:
    """Parse streaming transcript fragments for mood markers.

    Returns the visible text for each fragment and calls on_mood(tag) for
    every marker whose tag is in the vocabulary. A marker split across
    fragments is held back until it completes (or until flush()).
    """

    def __init__(
        self,
        on_mood: Callable[[str], None],
        vocabulary: Iterable[str] = DEFAULT_MOODS,
    ):
        self._on_mood = on_mood
        self._vocabulary = {m.lower() for m in vocabulary}
        self._held = ""

    def feed(self, fragment: str) -> str:
        """Feed one fragment; returns the text safe to display now."""
        text = self._held + fragment
        self._held = ""

        partial = _PARTIAL_MARKER.search(text)
        if partial and len(text) - partial.start() <= _MAX_MARKER_LEN:
            self._held = text[partial.start():]
            text = text[: partial.start()]

        return MOOD_MARKER.sub(self._dispatch_marker, text)

    def flush(self) -> str:
        """Release held text (end of turn); an unfinished marker is plain text."""
        held, self._held = self._held, ""
        return held

    def reset(self) -> None:
        self._held = ""

    def _dispatch_marker(self, match: re.Match) -> str:
        tag = match.group(1).lower()
        if tag in self._vocabulary:
            self._on_mood(tag)
        else:
            logger.debug("Ignoring unknown mood tag: %s", tag)
        return ""
