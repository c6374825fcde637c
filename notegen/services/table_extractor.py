"""
Heuristic table extraction from PDF schemes of work.

Each page's words are regrouped into visual lines; a wide horizontal gap
between two words becomes a column gap (two or more spaces).  A run of
consecutive lines that contain a column gap is a table, and only tables with
more than one row are kept.
"""
from __future__ import annotations

import logging
import re
from typing import Dict, List, Tuple

import fitz  # PyMuPDF

logger = logging.getLogger(__name__)

Table = List[List[str]]

_TABLE_ROW_RE = re.compile(r"(.+?)\s{2,}(.+)")
_CELL_SPLIT_RE = re.compile(r"\s{2,}")

# Horizontal gap (points) treated as a column boundary
COLUMN_GAP = 12.0
# Words whose vertical centres are this close (points) share a line
LINE_TOLERANCE = 3.0


def detect_tables(text: str) -> List[Table]:
    """Find runs of lines whose cells are separated by two or more spaces."""
    tables: List[Table] = []
    current: Table = []

    for line in text.split("\n"):
        if _TABLE_ROW_RE.search(line):
            current.append([cell.strip() for cell in _CELL_SPLIT_RE.split(line.strip())])
            continue
        if len(current) > 1:
            tables.append(current)
        current = []

    if len(current) > 1:
        tables.append(current)
    return tables


def page_lines(page: "fitz.Page") -> List[str]:
    """Rebuild visual lines from word boxes, marking wide gaps with two spaces."""
    words = page.get_text("words")
    rows: Dict[float, List[Tuple[float, float, str]]] = {}

    for x0, y0, x1, y1, word, *_ in words:
        centre = (y0 + y1) / 2
        key = next((k for k in rows if abs(k - centre) <= LINE_TOLERANCE), centre)
        rows.setdefault(key, []).append((x0, x1, word))

    lines: List[str] = []
    for key in sorted(rows):
        parts: List[str] = []
        prev_x1 = None
        for x0, x1, word in sorted(rows[key]):
            if prev_x1 is not None:
                parts.append("  " if x0 - prev_x1 >= COLUMN_GAP else " ")
            parts.append(word)
            prev_x1 = x1
        lines.append("".join(parts))
    return lines


def extract_tables_from_pdf(content: bytes) -> List[Table]:
    """
    Extract tables from every page of a PDF.

    Raises:
        RuntimeError: the PDF cannot be opened or is password-protected.
    """
    try:
        doc = fitz.open(stream=content, filetype="pdf")
    except Exception as exc:
        raise RuntimeError(f"Cannot open PDF file: {exc}") from exc

    try:
        if doc.needs_pass:
            raise RuntimeError("PDF is password-protected. Please provide an unlocked copy.")

        tables: List[Table] = []
        for page in doc:
            tables.extend(detect_tables("\n".join(page_lines(page))))
    finally:
        doc.close()

    logger.info("Extracted %d table(s) from %d-byte PDF", len(tables), len(content))
    return tables
