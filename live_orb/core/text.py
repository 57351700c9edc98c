"""
Text extraction utilities for document ingestion.

Supports plain text and source files, Markdown and PDF.
"""

import re
from pathlib import Path

# File types accepted for ingestion
SUPPORTED_SUFFIXES = (
    ".txt", ".md", ".pdf", ".json",
    ".py", ".js", ".ts", ".cpp", ".java",
)


def extract_text(filepath: str | Path) -> str:
    """
    Extract text from a document.

    Args:
        filepath: Path to the file

    Returns:
        Extracted text content

    Raises:
        FileNotFoundError: If file doesn't exist
        ValueError: If the file type is not supported
    """
    path = Path(filepath)

    if not path.exists():
        raise FileNotFoundError(f"File not found: {filepath}")

    ext = path.suffix.lower()
    if ext not in SUPPORTED_SUFFIXES:
        raise ValueError(f"Unsupported document type: {ext or path.name}")

    if ext == ".pdf":
        return _extract_pdf(path)

    if ext == ".md":
        return _extract_markdown(path)

    return path.read_text(encoding="utf-8", errors="replace")


def _extract_pdf(path: Path) -> str:
    """Extract text from PDF file."""
    from pypdf import PdfReader

    reader = PdfReader(str(path))
    text_parts = []

    for page in reader.pages:
        page_text = page.extract_text()
        if page_text:
            text_parts.append(page_text)

    return "\n".join(text_parts)


def _extract_markdown(path: Path) -> str:
    """Extract text from Markdown file, removing formatting."""
    text = path.read_text(encoding="utf-8")

    # Remove code blocks first so their contents survive untouched elsewhere
    text = re.sub(r"```[\s\S]*?```", "", text)

    # Remove images
    text = re.sub(r"!\[.*?\]\(.*?\)", "", text)

    # Remove headers
    text = re.sub(r"#{1,6}\s*", "", text)

    # Remove bold / italic
    text = re.sub(r"\*\*(.+?)\*\*", r"\1", text)
    text = re.sub(r"\*(.+?)\*", r"\1", text)

    # Remove inline code
    text = re.sub(r"`(.+?)`", r"\1", text)

    # Remove links, keep text
    text = re.sub(r"\[(.+?)\]\(.+?\)", r"\1", text)

    return text


def clip_text(text: str, limit: int) -> str:
    """Truncate text to at most ``limit`` characters."""
    return text if len(text) <= limit else text[:limit]
