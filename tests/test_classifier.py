"""
Tests for inbound event classification.
"""

import asyncio

from live_orb.backends.base import AudioPayload, GroundingLink, LiveEvent
from live_orb.core.epoch import InterruptionEpoch
from live_orb.session.classifier import EventClassifier
from live_orb.session.playback import PlaybackScheduler
from live_orb.session.state import GroundingLinkRing, HistoryLog, SessionSignals, TurnAccumulator

from fakes import FakeOutput, GatedDecoder


class Harness:
    def __init__(self):
        self.output = FakeOutput()
        self.decoder = GatedDecoder()
        self.signals = SessionSignals()
        self.history = HistoryLog()
        self.links = GroundingLinkRing(cap=5)
        self.turn = TurnAccumulator()
        self.scheduler = PlaybackScheduler(
            self.output, InterruptionEpoch(), self.signals, decoder=self.decoder
        )
        self.lost = []
        self.classifier = EventClassifier(
            self.turn, self.history, self.links, self.signals, self.scheduler,
            on_transport_lost=self.lost.append,
        )

    def dispatch(self, **fields):
        self.classifier.dispatch(LiveEvent(**fields))

    def entries(self):
        return [(e.role, e.text) for e in self.history]


class TestTranscripts:
    """Transcription fragments accumulate and archive on turn complete."""

    def test_turn_complete_archives_both_roles(self):
        h = Harness()
        h.dispatch(input_transcription="Tell me ")
        h.dispatch(input_transcription="a joke")
        h.dispatch(output_transcription="Why did ")
        h.dispatch(output_transcription="the chicken...")
        h.dispatch(turn_complete=True)

        assert h.entries() == [("user", "Tell me a joke"), ("assistant", "Why did the chicken...")]
        assert h.turn.user_text == ""
        assert h.turn.assistant_text == ""

    def test_single_fragment_turn(self):
        h = Harness()
        h.dispatch(output_transcription="Hello")
        h.dispatch(turn_complete=True)
        assert h.entries() == [("assistant", "Hello")]

    def test_empty_turn_complete_adds_nothing(self):
        h = Harness()
        h.dispatch(turn_complete=True)
        assert h.entries() == []

    def test_transcript_and_turn_complete_in_one_event(self):
        h = Harness()
        h.dispatch(output_transcription="Done.", turn_complete=True)
        assert h.entries() == [("assistant", "Done.")]

    def test_empty_event_is_ignored(self):
        h = Harness()
        h.dispatch()
        assert h.entries() == []
        assert h.signals.snapshot()["status"] == ""


class TestMood:
    """Mood markers drive the mood signal and never reach the transcript."""

    def test_marker_stripped_and_mood_set(self):
        h = Harness()
        h.dispatch(output_transcription="A [MOOD:SAD] B")
        assert h.turn.assistant_text == "A B"
        assert h.signals.mood == "sad"

        h.dispatch(turn_complete=True)
        assert h.entries() == [("assistant", "A B")]
        assert h.signals.mood == "neutral"

    def test_unknown_marker_keeps_mood(self):
        h = Harness()
        h.dispatch(output_transcription="[MOOD:GOOD] yes [MOOD:BORED] no")
        assert h.signals.mood == "good"
        assert h.turn.assistant_text == "yes no"

    def test_held_partial_marker_released_on_turn_complete(self):
        h = Harness()
        h.dispatch(output_transcription="list[")
        h.dispatch(turn_complete=True)
        assert h.entries() == [("assistant", "list[")]


class TestSearchAndGrounding:
    def test_tool_call_sets_searching(self):
        h = Harness()
        h.dispatch(tool_call=True)
        assert h.signals.searching is True
        assert h.signals.status == "Searching..."
        assert h.signals.activity is True

    def test_transcript_clears_searching(self):
        h = Harness()
        h.dispatch(tool_call=True)
        h.dispatch(output_transcription="Found it.")
        assert h.signals.searching is False

    def test_grounding_links_capped(self):
        h = Harness()
        for i in range(4):
            h.dispatch(grounding_links=[
                GroundingLink(f"https://a/{i}", "a"),
                GroundingLink("", "skipped"),
                GroundingLink(f"https://b/{i}", "b"),
            ])
        uris = [link.uri for link in h.links.links]
        assert uris == ["https://b/1", "https://a/2", "https://b/2", "https://a/3", "https://b/3"]


class TestAudioAndInterruption:
    def test_audio_payloads_scheduled(self):
        async def scenario():
            h = Harness()
            h.dispatch(audio=[AudioPayload(b"a"), AudioPayload(b""), AudioPayload(b"b", 24000)])
            await h.scheduler.wait_idle()
            return h

        h = asyncio.run(scenario())
        assert len(h.output.handles) == 2
        assert h.signals.assistant_speaking is True

    def test_interruption_archives_and_drains(self):
        async def scenario():
            h = Harness()
            h.dispatch(input_transcription="Stop")
            h.dispatch(output_transcription="[MOOD:ANGRY] Once upon", audio=[AudioPayload(b"a")])
            await h.scheduler.wait_idle()

            h.decoder.hold(b"late")
            h.dispatch(audio=[AudioPayload(b"late")])
            h.dispatch(interrupted=True)
            h.decoder.release(b"late")
            await h.scheduler.wait_idle()
            return h

        h = asyncio.run(scenario())
        assert h.entries() == [("user", "Stop"), ("assistant", "Once upon")]
        assert len(h.output.handles) == 1
        assert h.output.handles[0].stopped
        assert h.scheduler.epoch.current() == 1
        assert h.signals.assistant_speaking is False
        assert h.signals.mood == "neutral"

    def test_interruption_without_audio(self):
        h = Harness()
        h.dispatch(interrupted=True)
        assert h.scheduler.epoch.current() == 1
        assert h.entries() == []


class TestTransportLoss:
    def test_error_forwarded_and_nothing_else(self):
        h = Harness()
        event = LiveEvent(error=ConnectionError("reset"), output_transcription="ignored")
        h.classifier.dispatch(event)
        assert h.lost == [event]
        assert h.turn.assistant_text == ""

    def test_close_forwarded(self):
        h = Harness()
        h.classifier.dispatch(LiveEvent.transport_closed("bye"))
        assert len(h.lost) == 1
        assert h.lost[0].close_reason == "bye"


class TestReset:
    def test_reset_drops_turn_and_links(self):
        h = Harness()
        h.dispatch(input_transcription="half a question", grounding_links=[GroundingLink("https://a", "a")])
        h.dispatch(output_transcription="[MOOD:SAD] hmm")
        h.classifier.reset()

        assert h.turn.user_text == ""
        assert h.turn.assistant_text == ""
        assert h.links.links == ()
        assert h.signals.mood == "neutral"
        h.dispatch(turn_complete=True)
        assert h.entries() == []
