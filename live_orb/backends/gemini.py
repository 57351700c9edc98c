"""Gemini Live backend: native-audio duplex sessions via google-genai."""

import logging
from contextlib import AsyncExitStack
from typing import Any, AsyncIterator, Optional

from live_orb.backends.base import (
    AudioPayload,
    GroundingLink,
    LiveConnection,
    LiveEvent,
    LiveTransport,
    TransportError,
)
from live_orb.config import ModelConfig
from live_orb.core.audio import parse_sample_rate, pcm_mime_type

logger = logging.getLogger(__name__)


def _build_client(config: ModelConfig):
    from google import genai

    if config.api_key:
        return genai.Client(api_key=config.api_key)
    # Falls back to GOOGLE_API_KEY / Vertex settings in the environment
    return genai.Client()


def build_live_config(config: ModelConfig, system_instruction: str) -> dict[str, Any]:
    """Live session config: audio out, both transcriptions, optional search."""
    live_config: dict[str, Any] = {
        "response_modalities": ["AUDIO"],
        "input_audio_transcription": {},
        "output_audio_transcription": {},
        "speech_config": {
            "voice_config": {"prebuilt_voice_config": {"voice_name": config.voice}},
        },
        "system_instruction": system_instruction,
    }
    if config.enable_search:
        live_config["tools"] = [{"google_search": {}}]
    return live_config


def normalize_message(message: Any) -> LiveEvent:
    """
    Map a LiveServerMessage onto a LiveEvent.

    Every field is read defensively; anything missing or of the wrong
    shape is treated as absent.
    """
    event = LiveEvent()
    if message is None:
        return event

    event.tool_call = getattr(message, "tool_call", None) is not None

    content = getattr(message, "server_content", None)
    if content is None:
        return event

    grounding = getattr(content, "grounding_metadata", None)
    for chunk in getattr(grounding, "grounding_chunks", None) or []:
        web = getattr(chunk, "web", None)
        uri = getattr(web, "uri", None)
        if isinstance(uri, str) and uri:
            title = getattr(web, "title", None)
            event.grounding_links.append(GroundingLink(uri=uri, title=title if isinstance(title, str) and title else uri))

    text = getattr(getattr(content, "input_transcription", None), "text", None)
    if isinstance(text, str) and text:
        event.input_transcription = text

    text = getattr(getattr(content, "output_transcription", None), "text", None)
    if isinstance(text, str) and text:
        event.output_transcription = text

    event.turn_complete = getattr(content, "turn_complete", None) is True
    event.interrupted = getattr(content, "interrupted", None) is True

    model_turn = getattr(content, "model_turn", None)
    for part in getattr(model_turn, "parts", None) or []:
        inline = getattr(part, "inline_data", None)
        data = getattr(inline, "data", None)
        if isinstance(data, (bytes, str)) and data:
            rate = parse_sample_rate(getattr(inline, "mime_type", None))
            event.audio.append(AudioPayload(data=data, sample_rate=rate))

    return event


class GeminiConnection(LiveConnection):
    """One open Gemini Live session."""

    def __init__(self, stack: AsyncExitStack, session):
        self._stack = stack
        self._session = session
        self._closed = False

    async def send_audio(self, frame: bytes, sample_rate: int) -> None:
        from google.genai import types

        await self._session.send_realtime_input(
            audio=types.Blob(data=frame, mime_type=pcm_mime_type(sample_rate))
        )

    async def send_text(self, text: str) -> None:
        await self._session.send_realtime_input(text=text)

    async def receive(self) -> AsyncIterator[LiveEvent]:
        # session.receive() stops after each turn_complete; keep reading
        # until a pass yields nothing, which means the socket is done.
        while not self._closed:
            received = False
            try:
                async for message in self._session.receive():
                    received = True
                    if getattr(message, "go_away", None) is not None:
                        logger.info("Service announced disconnect: %s", message.go_away)
                    yield normalize_message(message)
            except Exception as e:
                if self._closed:
                    return
                raise TransportError(f"Live session failed: {e}") from e
            if not received:
                return

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._stack.aclose()


class GeminiLiveTransport(LiveTransport):
    """Opens Gemini Live sessions with the configured model and voice."""

    name = "gemini"

    def __init__(self, config: Optional[ModelConfig] = None):
        self.config = config or ModelConfig()
        self._client = None

    @property
    def client(self):
        if self._client is None:
            self._client = _build_client(self.config)
        return self._client

    async def connect(self, system_instruction: str) -> LiveConnection:
        stack = AsyncExitStack()
        try:
            session = await stack.enter_async_context(
                self.client.aio.live.connect(
                    model=self.config.model,
                    config=build_live_config(self.config, system_instruction),
                )
            )
        except Exception as e:
            await stack.aclose()
            raise TransportError(f"Could not open live session: {e}") from e

        logger.info("Live session open (model=%s, voice=%s)", self.config.model, self.config.voice)
        return GeminiConnection(stack, session)

    def get_info(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "model": self.config.model,
            "voice": self.config.voice,
            "search": self.config.enable_search,
        }


class GeminiSummarizer:
    """One-shot document summarizer (independent of the live session)."""

    def __init__(self, config: Optional[ModelConfig] = None, client=None):
        self.config = config or ModelConfig()
        self._client = client

    async def summarize(self, name: str, text: str, user_name: str = "") -> str:
        if self._client is None:
            self._client = _build_client(self.config)

        owner = f" uploaded by {user_name}" if user_name else ""
        prompt = (
            f'Analyze the document "{name}"{owner}.\n'
            "Briefly summarize its intent and provide key insights.\n"
            f"Content: {text}"
        )
        response = await self._client.aio.models.generate_content(
            model=self.config.summary_model,
            contents=prompt,
        )
        return (response.text or "").strip()
