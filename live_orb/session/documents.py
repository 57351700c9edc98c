"""
Document ingestion collaborator.

Extracts a document's text, asks the summary model for a short analysis and
injects the result into the live session as a system notification. Runs
independently of the live session; a failure here is reported through the
error signal and never affects the session itself.
"""

import asyncio
import logging
from pathlib import Path
from typing import Optional, Protocol

from live_orb.core.text import clip_text, extract_text
from live_orb.session.prompts import build_document_notification

logger = logging.getLogger(__name__)

PARSE_FAILED = "Failed to parse document."


class Summarizer(Protocol):
    async def summarize(self, name: str, text: str, user_name: str = "") -> str: ...


class DocumentIngestor:
    """Summarize uploaded documents into the running session."""

    def __init__(self, manager, summarizer: Summarizer, char_limit: Optional[int] = None):
        self.manager = manager
        self.summarizer = summarizer
        self.char_limit = char_limit or manager.config.session.document_char_limit

    async def ingest(self, path: str | Path) -> Optional[str]:
        """
        Ingest one document.

        Args:
            path: Document path (.txt, .md, .pdf and source files)

        Returns:
            The summary, or None if ingestion failed
        """
        path = Path(path)
        signals = self.manager.signals
        signals.update(analyzing=True, error="", status=f"Analyzing {path.name}...")

        try:
            text = await asyncio.to_thread(extract_text, path)
            self.manager.note(f"Uploaded: {path.name}")

            summary = await self.summarizer.summarize(
                path.name,
                clip_text(text, self.char_limit),
                user_name=self.manager.profile.name,
            )
            if not summary:
                summary = "No summary available."

            await self.manager.inject_text(build_document_notification(path.name, summary))
            logger.info("Document %s summarized (%d chars in, %d out)", path.name, len(text), len(summary))
            signals.update(status="Document analyzed.")
            return summary
        except Exception as e:
            logger.error("Document ingestion failed for %s: %s", path.name, e)
            signals.update(error=PARSE_FAILED, status="")
            return None
        finally:
            signals.update(analyzing=False)
