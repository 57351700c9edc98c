"""
FastAPI application exporting the live session's signals.

The visual and UI collaborators read mood, activity, history and grounding
links from here; the session itself runs in the same event loop.
"""

import logging
from pathlib import Path

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware

from live_orb import __version__
from live_orb.server.schemas import (
    CaptureResponse,
    DocumentRequest,
    DocumentResponse,
    HealthResponse,
    HistoryEntry,
    HistoryResponse,
    LinkInfo,
    LinksResponse,
    ResetResponse,
    SignalsResponse,
)
from live_orb.session.documents import PARSE_FAILED

logger = logging.getLogger(__name__)


def get_manager(request: Request):
    """Get the session manager the app was created for."""
    return request.app.state.manager


def signals_payload(manager) -> dict:
    """Snapshot of every exported signal plus lifecycle state and counters."""
    payload = manager.signals.snapshot()
    payload["state"] = manager.state.value
    payload["capturing"] = manager.capturing
    payload["dropped_frames"] = manager.dropped_frames
    payload["dropped_chunks"] = manager.scheduler.dropped_chunks
    return payload


def create_app(manager, ingestor=None, cors_origins: list[str] | None = None) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        manager: The LiveSessionManager to expose
        ingestor: Optional DocumentIngestor for POST /documents
        cors_origins: CORS allowed origins (default: from config)

    Returns:
        FastAPI application
    """
    app = FastAPI(
        title="Live Orb API",
        description="Signals and history of a live voice session",
        version=__version__,
    )
    app.state.manager = manager
    app.state.ingestor = ingestor

    origins = cors_origins or manager.config.server.cors_origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    from live_orb.server.websocket import router as ws_router

    app.include_router(ws_router, tags=["WebSocket"])

    @app.get("/health", response_model=HealthResponse)
    async def health_check(request: Request) -> HealthResponse:
        """Health check endpoint."""
        manager = get_manager(request)
        return HealthResponse(
            status="ok",
            version=__version__,
            session_state=manager.state.value,
            model=manager.transport.get_info().get("model"),
        )

    @app.get("/state", response_model=SignalsResponse)
    async def get_state(request: Request) -> SignalsResponse:
        return SignalsResponse(**signals_payload(get_manager(request)))

    @app.get("/history", response_model=HistoryResponse)
    async def get_history(request: Request) -> HistoryResponse:
        manager = get_manager(request)
        return HistoryResponse(
            entries=[HistoryEntry(**entry.to_dict()) for entry in manager.history.entries]
        )

    @app.get("/links", response_model=LinksResponse)
    async def get_links(request: Request) -> LinksResponse:
        manager = get_manager(request)
        return LinksResponse(links=[LinkInfo(**link.to_dict()) for link in manager.links.links])

    @app.post("/reset", response_model=ResetResponse)
    async def reset_session(request: Request) -> ResetResponse:
        """Restart the live session. History is kept."""
        manager = get_manager(request)
        await manager.reset()
        return ResetResponse(success=True, state=manager.state.value)

    @app.post("/capture/pause", response_model=CaptureResponse)
    async def pause_capture(request: Request) -> CaptureResponse:
        """Stop sending microphone audio without closing the session."""
        manager = get_manager(request)
        success = manager.pause_capture()
        return CaptureResponse(success=success, capturing=manager.capturing)

    @app.post("/capture/resume", response_model=CaptureResponse)
    async def resume_capture(request: Request) -> CaptureResponse:
        manager = get_manager(request)
        success = manager.resume_capture()
        return CaptureResponse(success=success, capturing=manager.capturing)

    @app.post("/documents", response_model=DocumentResponse)
    async def upload_document(body: DocumentRequest, request: Request) -> DocumentResponse:
        """Summarize a local document into the session."""
        ingestor = request.app.state.ingestor
        if ingestor is None:
            raise HTTPException(status_code=503, detail="Document ingestion not configured")

        path = Path(body.path).expanduser()
        if not path.is_file():
            raise HTTPException(status_code=404, detail=f"File not found: {body.path}")

        summary = await ingestor.ingest(path)
        if summary is None:
            return DocumentResponse(success=False, name=path.name, error=PARSE_FAILED)
        return DocumentResponse(success=True, name=path.name, summary=summary)

    return app
