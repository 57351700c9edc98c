"""
Tests for the Gemini Live backend (no network).
"""

import asyncio
from contextlib import AsyncExitStack
from types import SimpleNamespace

import pytest

from live_orb.backends.base import TransportError
from live_orb.backends.gemini import (
    GeminiConnection,
    GeminiSummarizer,
    build_live_config,
    normalize_message,
)
from live_orb.config import ModelConfig


def server_message(**content):
    return SimpleNamespace(tool_call=None, server_content=SimpleNamespace(**content))


class TestBuildLiveConfig:
    def test_audio_with_transcriptions(self):
        config = build_live_config(ModelConfig(api_key="k", voice="Kore"), "be nice")
        assert config["response_modalities"] == ["AUDIO"]
        assert "input_audio_transcription" in config
        assert "output_audio_transcription" in config
        assert config["speech_config"]["voice_config"]["prebuilt_voice_config"]["voice_name"] == "Kore"
        assert config["system_instruction"] == "be nice"
        assert config["tools"] == [{"google_search": {}}]

    def test_search_disabled(self):
        config = build_live_config(ModelConfig(api_key="k", enable_search=False), "x")
        assert "tools" not in config


class TestNormalizeMessage:
    """Wire messages map onto the event taxonomy; anything odd is absent."""

    def test_none_message(self):
        event = normalize_message(None)
        assert not event.tool_call
        assert event.audio == []

    def test_tool_call_only(self):
        event = normalize_message(SimpleNamespace(tool_call=SimpleNamespace(function_calls=[]), server_content=None))
        assert event.tool_call is True
        assert event.output_transcription is None

    def test_transcriptions_and_flags(self):
        event = normalize_message(server_message(
            input_transcription=SimpleNamespace(text="hello"),
            output_transcription=SimpleNamespace(text="hi there"),
            turn_complete=True,
            interrupted=None,
        ))
        assert event.input_transcription == "hello"
        assert event.output_transcription == "hi there"
        assert event.turn_complete is True
        assert event.interrupted is False

    def test_audio_parts_with_rate(self):
        part = SimpleNamespace(inline_data=SimpleNamespace(data=b"\x00\x01", mime_type="audio/pcm;rate=24000"))
        text_part = SimpleNamespace(inline_data=None, text="thought")
        event = normalize_message(server_message(model_turn=SimpleNamespace(parts=[part, text_part])))
        assert len(event.audio) == 1
        assert event.audio[0].data == b"\x00\x01"
        assert event.audio[0].sample_rate == 24000

    def test_grounding_links(self):
        chunks = [
            SimpleNamespace(web=SimpleNamespace(uri="https://a.example", title="A")),
            SimpleNamespace(web=SimpleNamespace(uri="", title="empty")),
            SimpleNamespace(web=None),
            SimpleNamespace(web=SimpleNamespace(uri="https://b.example", title=None)),
        ]
        event = normalize_message(server_message(
            grounding_metadata=SimpleNamespace(grounding_chunks=chunks),
        ))
        assert [(link.uri, link.title) for link in event.grounding_links] == [
            ("https://a.example", "A"),
            ("https://b.example", "https://b.example"),
        ]

    def test_malformed_fields_are_absent(self):
        event = normalize_message(server_message(
            input_transcription=SimpleNamespace(text=42),
            output_transcription="not an object",
            turn_complete="yes",
            model_turn=SimpleNamespace(parts=None),
            grounding_metadata=SimpleNamespace(grounding_chunks=None),
        ))
        assert event.input_transcription is None
        assert event.output_transcription is None
        assert event.turn_complete is False
        assert event.audio == []
        assert event.grounding_links == []


class FakeSession:
    """Mimics AsyncSession.receive(): each call yields one turn."""

    def __init__(self, turns, error=None):
        self._turns = list(turns)
        self._error = error
        self.realtime = []

    async def receive(self):
        if self._turns:
            for message in self._turns.pop(0):
                yield message
        elif self._error is not None:
            raise self._error

    async def send_realtime_input(self, **kwargs):
        self.realtime.append(kwargs)


class TestGeminiConnection:
    def test_receive_spans_turns_until_empty(self):
        turn1 = [server_message(output_transcription=SimpleNamespace(text="one"), turn_complete=True)]
        turn2 = [server_message(output_transcription=SimpleNamespace(text="two"), turn_complete=True)]

        async def scenario():
            connection = GeminiConnection(AsyncExitStack(), FakeSession([turn1, turn2]))
            return [event.output_transcription async for event in connection.receive()]

        assert asyncio.run(scenario()) == ["one", "two"]

    def test_receive_failure_becomes_transport_error(self):
        async def scenario():
            connection = GeminiConnection(AsyncExitStack(), FakeSession([], error=OSError("socket closed")))
            async for _ in connection.receive():
                pass

        with pytest.raises(TransportError):
            asyncio.run(scenario())

    def test_send_text(self):
        async def scenario():
            session = FakeSession([])
            connection = GeminiConnection(AsyncExitStack(), session)
            await connection.send_text("hello")
            return session.realtime

        assert asyncio.run(scenario()) == [{"text": "hello"}]

    def test_close_is_idempotent(self):
        closed = []

        async def on_close():
            closed.append(1)

        async def scenario():
            stack = AsyncExitStack()
            stack.push_async_callback(on_close)
            connection = GeminiConnection(stack, FakeSession([]))
            await connection.close()
            await connection.close()

        asyncio.run(scenario())
        assert closed == [1]


class FakeModels:
    def __init__(self, text):
        self.text = text
        self.calls = []

    async def generate_content(self, model, contents):
        self.calls.append((model, contents))
        return SimpleNamespace(text=self.text)


class TestGeminiSummarizer:
    def test_summarize_prompt_and_result(self):
        models = FakeModels("  A short summary.  ")
        client = SimpleNamespace(aio=SimpleNamespace(models=models))
        summarizer = GeminiSummarizer(ModelConfig(api_key="k", summary_model="summary-test"), client=client)

        summary = asyncio.run(summarizer.summarize("notes.md", "body text", user_name="Ada"))

        assert summary == "A short summary."
        model, prompt = models.calls[0]
        assert model == "summary-test"
        assert 'document "notes.md" uploaded by Ada' in prompt
        assert "body text" in prompt

    def test_empty_response(self):
        client = SimpleNamespace(aio=SimpleNamespace(models=FakeModels(None)))
        summarizer = GeminiSummarizer(ModelConfig(api_key="k"), client=client)
        assert asyncio.run(summarizer.summarize("a.txt", "x")) == ""
