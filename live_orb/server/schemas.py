"""
Pydantic schemas for API requests and responses.
"""

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    version: str
    session_state: str
    model: str | None = None


class SignalsResponse(BaseModel):
    """Observable session signals."""

    state: str
    searching: bool = False
    assistant_speaking: bool = False
    reconnecting: bool = False
    analyzing: bool = False
    activity: bool = False
    mood: str = "neutral"
    status: str = ""
    error: str = ""
    capturing: bool = False
    dropped_frames: int = 0
    dropped_chunks: int = 0


class HistoryEntry(BaseModel):
    """One archived utterance."""

    role: str
    text: str
    timestamp: str


class HistoryResponse(BaseModel):
    entries: list[HistoryEntry] = Field(default_factory=list)


class LinkInfo(BaseModel):
    uri: str
    title: str = ""


class LinksResponse(BaseModel):
    links: list[LinkInfo] = Field(default_factory=list)


class ResetResponse(BaseModel):
    success: bool
    state: str


class CaptureResponse(BaseModel):
    success: bool
    capturing: bool


class DocumentRequest(BaseModel):
    """Request to summarize a document into the session."""

    path: str = Field(..., min_length=1)


class DocumentResponse(BaseModel):
    success: bool
    name: str
    summary: str | None = None
    error: str | None = None
