"""
Abstract transport interface for the remote live model service.

The session manager only sees the normalized LiveEvent taxonomy below;
each backend maps its own wire messages onto it.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Optional


class TransportError(ConnectionError):
    """The live transport failed; recoverable by reconnecting."""


@dataclass(frozen=True)
class GroundingLink:
    """A citation returned by a retrieval/tool-use step."""

    uri: str
    title: str

    def to_dict(self) -> dict[str, str]:
        return {"uri": self.uri, "title": self.title}


@dataclass(frozen=True)
class AudioPayload:
    """Encoded audio carried by a server event."""

    data: bytes | str
    sample_rate: Optional[int] = None  # None = service default


@dataclass
class LiveEvent:
    """
    One inbound server event.

    Several concerns can be present at once; absent fields mean
    "not present". Transport failures are reported through ``error`` or
    ``closed`` by the receive loop, never by the service itself.
    """

    tool_call: bool = False
    grounding_links: list[GroundingLink] = field(default_factory=list)
    input_transcription: Optional[str] = None  # user speech-to-text
    output_transcription: Optional[str] = None  # assistant speech transcript
    turn_complete: bool = False
    interrupted: bool = False
    audio: list[AudioPayload] = field(default_factory=list)

    error: Optional[BaseException] = None
    closed: bool = False
    close_reason: Optional[str] = None

    @property
    def is_transport_loss(self) -> bool:
        return self.error is not None or self.closed

    @classmethod
    def transport_error(cls, error: BaseException) -> "LiveEvent":
        return cls(error=error)

    @classmethod
    def transport_closed(cls, reason: Optional[str] = None) -> "LiveEvent":
        return cls(closed=True, close_reason=reason)


class LiveConnection(ABC):
    """An open duplex session with the remote service."""

    @abstractmethod
    async def send_audio(self, frame: bytes, sample_rate: int) -> None:
        """Send one wire-format PCM frame."""
        pass

    @abstractmethod
    async def send_text(self, text: str) -> None:
        """Inject a text request (greeting, system notification)."""
        pass

    @abstractmethod
    def receive(self) -> AsyncIterator[LiveEvent]:
        """
        Iterate inbound events in delivery order.

        Ends when the service closes the session; raises on transport
        failure.
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        """Close the session. Must be safe to call more than once."""
        pass


class LiveTransport(ABC):
    """Factory for live connections."""

    name: str = "base"

    @abstractmethod
    async def connect(self, system_instruction: str) -> LiveConnection:
        """
        Open a new session.

        Raises:
            TransportError: If the session cannot be established
        """
        pass

    def get_info(self) -> dict[str, Any]:
        """Get transport information."""
        return {"name": self.name}
