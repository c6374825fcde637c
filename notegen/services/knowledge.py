"""
Knowledge base loading and excerpt selection.

Reference documents (``.docx`` schemes of work, curriculum guides) live in a
flat directory on disk.  They are re-read on every prompt build so that a
teacher can drop a new file in place without restarting the service.

Public API
----------
load_docx_from_dir(directory)                  -> List[LoadedDocument]
pick_relevant_excerpt(docs, query, max_chars)  -> ExcerptResult
"""
from __future__ import annotations

import asyncio
import io
import logging
import os
import re
from dataclasses import dataclass, field
from typing import List

import aiofiles
from docx import Document as DocxDocument
from docx.table import Table

from notegen.config import settings

logger = logging.getLogger(__name__)

SOURCE_HEADER = "# Source: {filename}\n\n"
PIECE_SEPARATOR = "\n\n---\n\n"


# ---------------------------------------------------------------------------
# Data structures
# ---------------------------------------------------------------------------

@dataclass
class LoadedDocument:
    """Plain text of one reference document."""

    filename: str   # basename, unique within the knowledge directory
    text: str       # normalized text (no \r, at most one blank line in a row)


@dataclass
class ExcerptResult:
    """Concatenated document slices selected for a prompt."""

    combined: str = ""
    sources: List[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------

def normalize_document_text(text: str) -> str:
    """Drop carriage returns, collapse 3+ newlines to a single blank line, trim."""
    text = text.replace("\r", "")
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def extract_docx_text(content: bytes) -> str:
    """
    Extract raw text from DOCX bytes in body order.

    Paragraphs are separated by a blank line; each table row becomes one line
    with its cells separated by tabs.
    """
    doc = DocxDocument(io.BytesIO(content))
    parts: List[str] = []
    for block in doc.iter_inner_content():
        if isinstance(block, Table):
            for row in block.rows:
                cells = [cell.text.strip() for cell in row.cells]
                if any(cells):
                    parts.append("\t".join(cells))
        else:
            parts.append(block.text)
    return "\n\n".join(parts)


async def load_docx_from_dir(directory: str) -> List[LoadedDocument]:
    """
    Load every reference document in *directory*.

    A missing or unreadable directory yields an empty list.  A file that fails
    to parse is logged and skipped; the remaining files still load.
    """
    try:
        entries = list(os.scandir(directory))
    except OSError as exc:
        logger.debug("Knowledge directory %s unavailable: %s", directory, exc)
        return []

    extension = settings.KNOWLEDGE_FILE_EXTENSION.lower()
    paths = [
        entry.path
        for entry in entries
        if entry.is_file() and entry.name.lower().endswith(extension)
    ]

    results: List[LoadedDocument] = []
    for path in paths:
        try:
            async with aiofiles.open(path, "rb") as fh:
                content = await fh.read()
            raw_text = await asyncio.to_thread(extract_docx_text, content)
        except Exception as exc:
            logger.warning("Failed reading knowledge file %s: %s", path, exc)
            continue
        results.append(
            LoadedDocument(
                filename=os.path.basename(path),
                text=normalize_document_text(raw_text),
            )
        )

    logger.info("Loaded %d knowledge document(s) from %s", len(results), directory)
    return results


# ---------------------------------------------------------------------------
# Excerpt selection
# ---------------------------------------------------------------------------

def score_document(doc: LoadedDocument, tokens: List[str]) -> int:
    """Count query tokens present anywhere in the document (repeats count again)."""
    haystack = doc.text.lower()
    return sum(1 for token in tokens if token in haystack)


def pick_relevant_excerpt(
    docs: List[LoadedDocument],
    query: str,
    max_chars: int = 6000,
) -> ExcerptResult:
    """
    Rank *docs* by naive token overlap with *query* and pack their text into
    at most *max_chars* characters.

    Every piece is ``# Source: <filename>`` followed by a prefix of the
    document text; pieces are joined by a horizontal-rule separator.  Headers
    and separators are charged against the same budget as the text, so the
    combined excerpt never exceeds *max_chars*.
    """
    if not docs:
        return ExcerptResult()

    tokens = query.lower().split()
    # sorted() is stable, so equal scores keep directory order
    ranked = sorted(docs, key=lambda d: score_document(d, tokens), reverse=True)

    pieces: List[str] = []
    sources: List[str] = []
    total = 0

    for doc in ranked:
        if total >= max_chars:
            break
        if not doc.text:
            continue

        header = SOURCE_HEADER.format(filename=doc.filename)
        overhead = len(header) + (len(PIECE_SEPARATOR) if pieces else 0)
        remaining = max_chars - total - overhead
        if remaining <= 0:
            break

        text_slice = doc.text[:remaining]
        pieces.append(header + text_slice)
        sources.append(doc.filename)
        total += overhead + len(text_slice)

    return ExcerptResult(combined=PIECE_SEPARATOR.join(pieces), sources=sources)
