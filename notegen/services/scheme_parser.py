"""
Scheme-of-work spreadsheet parsing.

A scheme of work lists one topic per row; the row position (relative to the
first used row) is the week number.  Only one column is read, chosen by the
client with a 1-based index.
"""
from __future__ import annotations

import csv
import io
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, List, Optional

import xlrd
from openpyxl import load_workbook

logger = logging.getLogger(__name__)

PLACEHOLDER = "-"

ZIP_SIGNATURE = b"PK\x03\x04"
OLE_SIGNATURE = b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1"
MEDIA_TYPE_FORMATS = {
    "text/csv": ".csv",
    "application/csv": ".csv",
    "text/plain": ".csv",
    "application/vnd.ms-excel": ".xls",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet": ".xlsx",
}


class SpreadsheetParseError(Exception):
    """The uploaded bytes could not be read as a workbook."""


class EmptyColumnError(Exception):
    """The selected column has no qualifying topic cells."""

    def __init__(self, column: int) -> None:
        self.column = column
        super().__init__(f"No topics found in column {column} of the uploaded file.")


@dataclass
class WeekTopic:
    week: int
    topic: str


def _cell_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def detect_format(data: bytes, filename: str = "", media_type: Optional[str] = None) -> str:
    """
    Pick the reader for an upload: ``.xlsx``, ``.xls`` or ``.csv``.

    The filename extension wins; without one the file signature decides, and
    the declared media type is the last resort.
    """
    ext = Path(filename or "").suffix.lower()
    if ext in (".xlsx", ".xls", ".csv"):
        return ext
    if data.startswith(ZIP_SIGNATURE):
        return ".xlsx"
    if data.startswith(OLE_SIGNATURE):
        return ".xls"
    return MEDIA_TYPE_FORMATS.get((media_type or "").split(";")[0].strip().lower(), ".csv")


def _read_column(data: bytes, ext: str, col_index: int) -> List[str]:
    """Return the raw text of every cell in the first sheet's used row range."""
    if ext == ".csv":
        text = data.decode("utf-8-sig")
        rows = list(csv.reader(io.StringIO(text)))
        return [_cell_text(row[col_index]) if col_index < len(row) else "" for row in rows]

    if ext == ".xls":
        book = xlrd.open_workbook(file_contents=data)
        sheet = book.sheet_by_index(0)
        return [
            _cell_text(sheet.cell_value(r, col_index)) if col_index < sheet.ncols else ""
            for r in range(sheet.nrows)
        ]

    wb = load_workbook(io.BytesIO(data), data_only=True)
    try:
        ws = wb.worksheets[0]
        min_row = ws.min_row or 1
        max_row = ws.max_row or 0
        values: List[str] = []
        for row in ws.iter_rows(
            min_row=min_row,
            max_row=max_row,
            min_col=col_index + 1,
            max_col=col_index + 1,
            values_only=True,
        ):
            values.append(_cell_text(row[0] if row else None))
        return values
    finally:
        wb.close()


def parse_week_topics(
    data: bytes,
    filename: str = "",
    column: Optional[int] = 1,
    media_type: Optional[str] = None,
) -> List[WeekTopic]:
    """
    Read week topics from one column of an uploaded scheme of work.

    Args:
        data:       Raw workbook bytes (xlsx, xls or csv).
        filename:   Original filename; its extension selects the reader.
        column:     1-based column index; values below 1 mean column 1.
        media_type: Declared MIME type, used when neither the extension nor
                    the file signature identifies the format.

    Returns:
        WeekTopic list in ascending week order, blank and ``-`` rows skipped.

    Raises:
        SpreadsheetParseError: the workbook cannot be read.
        EmptyColumnError:      no row in the column qualifies.
    """
    col_index = max(0, (column or 1) - 1)

    try:
        cells = _read_column(data, detect_format(data, filename, media_type), col_index)
    except Exception as exc:
        logger.error("Failed to parse uploaded spreadsheet %r: %s", filename, exc)
        raise SpreadsheetParseError(str(exc)) from exc

    topics = [
        WeekTopic(week=position, topic=text)
        for position, text in enumerate(cells, start=1)
        if text and text != PLACEHOLDER
    ]
    if not topics:
        raise EmptyColumnError(col_index + 1)

    logger.info(
        "Parsed %d week topic(s) from column %d of %r",
        len(topics),
        col_index + 1,
        filename,
    )
    return topics
