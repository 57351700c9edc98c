"""
Conversation state shared by the session components.

- TurnAccumulator: transcript buffers and mood of the turn in progress
- HistoryLog: append-only archive of finished turns
- GroundingLinkRing: most recent citations, bounded
- SessionSignals: derived flags exported to UI/visual consumers
"""

import logging
import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Iterable, Iterator, Literal, Optional

from live_orb.backends.base import GroundingLink

logger = logging.getLogger(__name__)

NEUTRAL = "neutral"

Role = Literal["user", "assistant", "system"]


@dataclass(frozen=True)
class UserProfile:
    """Identity collected by onboarding."""

    name: str
    subject: str


@dataclass(frozen=True)
class ChatEntry:
    """One archived utterance."""

    role: Role
    text: str
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "role": self.role,
            "text": self.text,
            "timestamp": self.timestamp.isoformat(timespec="seconds"),
        }


class HistoryLog:
    """Ordered, append-only log of archived turns."""

    def __init__(self):
        self._entries: list[ChatEntry] = []
        self._lock = threading.Lock()
        self._listeners: list[Callable[[ChatEntry], None]] = []

    def append(self, role: Role, text: str, timestamp: Optional[datetime] = None) -> Optional[ChatEntry]:
        """Append an entry. Blank text is never archived; returns None then."""
        text = text.strip()
        if not text:
            return None

        entry = ChatEntry(role=role, text=text, timestamp=timestamp or datetime.now())
        with self._lock:
            self._entries.append(entry)
            listeners = list(self._listeners)

        for listener in listeners:
            try:
                listener(entry)
            except Exception as e:
                logger.error("History listener error: %s", e)
        return entry

    def subscribe(self, listener: Callable[[ChatEntry], None]) -> None:
        with self._lock:
            self._listeners.append(listener)

    def unsubscribe(self, listener: Callable[[ChatEntry], None]) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    @property
    def entries(self) -> tuple[ChatEntry, ...]:
        with self._lock:
            return tuple(self._entries)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __iter__(self) -> Iterator[ChatEntry]:
        return iter(self.entries)


class GroundingLinkRing:
    """Most recent grounding links, oldest evicted first."""

    def __init__(self, cap: int = 5):
        if cap < 1:
            raise ValueError("cap must be at least 1")
        self.cap = cap
        self._links: deque[GroundingLink] = deque(maxlen=cap)
        self._lock = threading.Lock()

    def extend(self, links: Iterable[GroundingLink]) -> int:
        """Append links with a non-empty uri; returns how many were added."""
        added = 0
        with self._lock:
            for link in links:
                if link.uri:
                    self._links.append(link)
                    added += 1
        return added

    def clear(self) -> None:
        with self._lock:
            self._links.clear()

    @property
    def links(self) -> tuple[GroundingLink, ...]:
        with self._lock:
            return tuple(self._links)

    def __len__(self) -> int:
        with self._lock:
            return len(self._links)


class TurnAccumulator:
    """Transcript fragments of the current turn plus its mood tag."""

    def __init__(self):
        self.user_text = ""
        self.assistant_text = ""
        self.mood = NEUTRAL
        self._lock = threading.Lock()

    def append_user(self, fragment: str) -> None:
        with self._lock:
            self.user_text += fragment

    def append_assistant(self, fragment: str) -> None:
        with self._lock:
            self.assistant_text += fragment

    def set_mood(self, mood: str) -> None:
        with self._lock:
            self.mood = mood

    def archive(self, history: HistoryLog) -> list[ChatEntry]:
        """
        Move the turn into the history and start a fresh one.

        User and assistant text are archived independently; empty buffers
        contribute nothing.
        """
        with self._lock:
            user_text, assistant_text = self.user_text, self.assistant_text
            self.user_text = ""
            self.assistant_text = ""
            self.mood = NEUTRAL

        now = datetime.now()
        archived = []
        for role, text in (("user", user_text), ("assistant", assistant_text)):
            entry = history.append(role, text, timestamp=now)
            if entry is not None:
                archived.append(entry)
        return archived

    def clear(self) -> None:
        with self._lock:
            self.user_text = ""
            self.assistant_text = ""
            self.mood = NEUTRAL


# Signal names exported to observers
SIGNAL_DEFAULTS: dict[str, Any] = {
    "searching": False,
    "assistant_speaking": False,
    "reconnecting": False,
    "analyzing": False,
    "mood": NEUTRAL,
    "status": "",
    "error": "",
}


class SessionSignals:
    """
    Observable scalar/boolean state for UI and visual collaborators.

    Listeners are called with (name, old, new) only when a value changes.
    """

    def __init__(self):
        self._values = dict(SIGNAL_DEFAULTS)
        self._lock = threading.Lock()
        self._listeners: list[Callable[[str, Any, Any], None]] = []

    def subscribe(self, listener: Callable[[str, Any, Any], None]) -> None:
        with self._lock:
            self._listeners.append(listener)

    def unsubscribe(self, listener: Callable[[str, Any, Any], None]) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def update(self, **changes: Any) -> None:
        """Set one or more signals and notify listeners of real changes."""
        changed = []
        with self._lock:
            for name, value in changes.items():
                if name not in self._values:
                    raise KeyError(f"Unknown signal: {name}")
                old = self._values[name]
                if old != value:
                    self._values[name] = value
                    changed.append((name, old, value))
            listeners = list(self._listeners)

        for name, old, new in changed:
            for listener in listeners:
                try:
                    listener(name, old, new)
                except Exception as e:
                    logger.error("Signal listener error (%s): %s", name, e)

    def get(self, name: str) -> Any:
        with self._lock:
            return self._values[name]

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_") or name not in SIGNAL_DEFAULTS:
            raise AttributeError(name)
        return self.get(name)

    @property
    def activity(self) -> bool:
        """Whether the assistant is busy in the background (drives visual intensity)."""
        with self._lock:
            return bool(self._values["searching"] or self._values["analyzing"] or self._values["reconnecting"])

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            values = dict(self._values)
        values["activity"] = bool(values["searching"] or values["analyzing"] or values["reconnecting"])
        return values
