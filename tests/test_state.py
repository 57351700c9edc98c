"""
Tests for conversation state: history, grounding links, turn buffers, signals.
"""

import pytest

from live_orb.backends.base import GroundingLink
from live_orb.session.state import (
    GroundingLinkRing,
    HistoryLog,
    SessionSignals,
    TurnAccumulator,
)


class TestHistoryLog:
    """Test the append-only history."""

    def test_append_and_order(self):
        history = HistoryLog()
        history.append("user", "hi")
        history.append("assistant", "hello")
        assert [(e.role, e.text) for e in history] == [("user", "hi"), ("assistant", "hello")]

    def test_blank_text_not_archived(self):
        history = HistoryLog()
        assert history.append("user", "   ") is None
        assert len(history) == 0

    def test_listener_notified(self):
        history = HistoryLog()
        seen = []
        history.subscribe(seen.append)
        entry = history.append("system", "Uploaded: notes.md")
        assert seen == [entry]

    def test_listener_errors_are_contained(self):
        history = HistoryLog()

        def broken(entry):
            raise RuntimeError("boom")

        history.subscribe(broken)
        assert history.append("user", "still archived") is not None
        assert len(history) == 1

    def test_entry_serializes(self):
        entry = HistoryLog().append("assistant", "Hello")
        data = entry.to_dict()
        assert data["role"] == "assistant"
        assert data["text"] == "Hello"
        assert "T" in data["timestamp"]


class TestGroundingLinkRing:
    """Test the bounded FIFO of citations."""

    def test_oldest_evicted_first(self):
        ring = GroundingLinkRing(cap=5)
        ring.extend(GroundingLink(f"https://x/{i}", f"t{i}") for i in range(7))
        assert [link.uri for link in ring.links] == [f"https://x/{i}" for i in range(2, 7)]

    def test_empty_uri_skipped(self):
        ring = GroundingLinkRing()
        added = ring.extend([GroundingLink("", "nothing"), GroundingLink("https://a", "A")])
        assert added == 1
        assert len(ring) == 1

    def test_invalid_cap(self):
        with pytest.raises(ValueError):
            GroundingLinkRing(cap=0)


class TestTurnAccumulator:
    """Test archiving of the current turn."""

    def test_archive_moves_both_roles(self):
        turn, history = TurnAccumulator(), HistoryLog()
        turn.append_user("What is ")
        turn.append_user("a quasar?")
        turn.append_assistant("A bright nucleus.")
        turn.set_mood("mystical")

        archived = turn.archive(history)

        assert [(e.role, e.text) for e in archived] == [
            ("user", "What is a quasar?"),
            ("assistant", "A bright nucleus."),
        ]
        assert turn.user_text == ""
        assert turn.assistant_text == ""
        assert turn.mood == "neutral"

    def test_empty_turn_archives_nothing(self):
        turn, history = TurnAccumulator(), HistoryLog()
        assert turn.archive(history) == []
        assert len(history) == 0

    def test_only_assistant_text(self):
        turn, history = TurnAccumulator(), HistoryLog()
        turn.append_assistant("Hello")
        turn.archive(history)
        assert [(e.role, e.text) for e in history] == [("assistant", "Hello")]


class TestSessionSignals:
    """Test observable signals."""

    def test_defaults(self):
        signals = SessionSignals()
        assert signals.mood == "neutral"
        assert signals.searching is False
        assert signals.activity is False

    def test_listeners_see_only_changes(self):
        signals = SessionSignals()
        seen = []
        signals.subscribe(lambda name, old, new: seen.append((name, old, new)))

        signals.update(searching=True)
        signals.update(searching=True)
        signals.update(mood="sad", searching=False)

        assert seen == [
            ("searching", False, True),
            ("mood", "neutral", "sad"),
            ("searching", True, False),
        ]

    def test_unknown_signal_rejected(self):
        with pytest.raises(KeyError):
            SessionSignals().update(volume=3)

    def test_activity_tracks_background_work(self):
        signals = SessionSignals()
        signals.update(analyzing=True)
        assert signals.activity is True
        assert signals.snapshot()["activity"] is True
        signals.update(analyzing=False, reconnecting=True)
        assert signals.activity is True

    def test_unsubscribe(self):
        signals = SessionSignals()
        seen = []
        listener = lambda name, old, new: seen.append(name)
        signals.subscribe(listener)
        signals.unsubscribe(listener)
        signals.update(mood="good")
        assert seen == []
