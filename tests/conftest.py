"""
Shared fixtures for lesson note generator tests.

The completion provider is replaced with a scripted fake through FastAPI's
dependency overrides, and the knowledge directory points at a per-test
temporary folder, so no network access or API key is needed.
"""
from __future__ import annotations

import io
from pathlib import Path
from typing import AsyncGenerator, Iterable, List, Optional

import pytest
import pytest_asyncio
import xlwt
from docx import Document
from httpx import ASGITransport, AsyncClient
from openpyxl import Workbook

from notegen.config import settings
from notegen.main import app
from notegen.services.completion import CompletionService, get_completion_service


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------

class FakeCompletionService(CompletionService):
    """Yields canned chunks and records every call."""

    provider = "fake"

    def __init__(
        self,
        chunks: Optional[List[str]] = None,
        error: Optional[Exception] = None,
        fail_after: Optional[int] = None,
    ) -> None:
        super().__init__(model="fake-model", timeout=5)
        self.chunks = chunks if chunks is not None else [
            "# Week 1 - Soil\n\n",
            "Good day class, in today's class we are going to learn about soil.",
        ]
        self.error = error
        self.fail_after = fail_after
        self.calls = []

    async def stream_completion(self, system_prompt, conversation):
        self.calls.append({"system_prompt": system_prompt, "conversation": conversation})
        for index, chunk in enumerate(self.chunks):
            if self.error is not None and self.fail_after == index:
                raise self.error
            yield chunk
        if self.error is not None and self.fail_after is None:
            raise self.error


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------

def make_docx(path: Path, paragraphs: Iterable[str], table: Optional[List[List[str]]] = None) -> Path:
    """Write a small .docx reference document."""
    doc = Document()
    for text in paragraphs:
        doc.add_paragraph(text)
    if table:
        grid = doc.add_table(rows=len(table), cols=len(table[0]))
        for r, row in enumerate(table):
            for c, value in enumerate(row):
                grid.cell(r, c).text = value
    doc.save(str(path))
    return path


def make_xlsx(columns: List[List[Optional[str]]]) -> bytes:
    """Build workbook bytes; ``columns[c][r]`` lands in row r+1 of column c+1."""
    wb = Workbook()
    ws = wb.active
    for c, values in enumerate(columns, start=1):
        for r, value in enumerate(values, start=1):
            if value is not None:
                ws.cell(row=r, column=c, value=value)
    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


def make_xls(columns: List[List[Optional[str]]]) -> bytes:
    """Legacy BIFF ``.xls`` bytes, laid out like ``make_xlsx``."""
    book = xlwt.Workbook()
    sheet = book.add_sheet("Scheme")
    for c, values in enumerate(columns):
        for r, value in enumerate(values):
            if value is not None:
                sheet.write(r, c, value)
    buffer = io.BytesIO()
    book.save(buffer)
    return buffer.getvalue()


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def knowledge_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Empty knowledge directory wired into settings for the test."""
    directory = tmp_path / "knowledge"
    directory.mkdir()
    monkeypatch.setattr(settings, "KNOWLEDGE_DIR", str(directory))
    return directory


@pytest.fixture
def fake_completion() -> FakeCompletionService:
    return FakeCompletionService()


@pytest_asyncio.fixture
async def client(
    knowledge_dir: Path,
    fake_completion: FakeCompletionService,
) -> AsyncGenerator[AsyncClient, None]:
    """
    httpx AsyncClient wired to the FastAPI app with the completion provider
    overridden by ``fake_completion``.
    """
    app.dependency_overrides[get_completion_service] = lambda: fake_completion

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


def user_message(text: str, message_id: str = "m1") -> dict:
    return {"id": message_id, "role": "user", "parts": [{"type": "text", "text": text}]}


def assistant_message(text: str, message_id: str = "a1") -> dict:
    return {"id": message_id, "role": "assistant", "parts": [{"type": "text", "text": text}]}
