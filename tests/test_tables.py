"""Tests for PDF table detection and POST /api/extract-tables."""
import fitz
import pytest
from httpx import AsyncClient

from notegen.services.table_extractor import detect_tables, extract_tables_from_pdf


def _scheme_pdf() -> bytes:
    """One page with a heading line and a three-row, two-column table."""
    doc = fitz.open()
    page = doc.new_page()
    page.insert_text((72, 60), "First term scheme of work", fontsize=11)
    rows = [("Week", "Topic"), ("1", "Number bases"), ("2", "Indices")]
    for i, (week, topic) in enumerate(rows):
        y = 100 + i * 20
        page.insert_text((72, y), week, fontsize=11)
        page.insert_text((200, y), topic, fontsize=11)
    data = doc.tobytes()
    doc.close()
    return data


# ---------------------------------------------------------------------------
# detect_tables
# ---------------------------------------------------------------------------

def test_detect_tables_groups_consecutive_rows():
    text = "Heading\nWeek  Topic\n1   Soil\n2  Water\nFooter line\n"
    assert detect_tables(text) == [[["Week", "Topic"], ["1", "Soil"], ["2", "Water"]]]


def test_single_row_is_not_a_table():
    assert detect_tables("Intro\nName  Value\nOutro") == []


def test_multiple_tables():
    text = "a  b\nc  d\n\ne  f\ng  h  i"
    assert detect_tables(text) == [[["a", "b"], ["c", "d"]], [["e", "f"], ["g", "h", "i"]]]


# ---------------------------------------------------------------------------
# extract_tables_from_pdf
# ---------------------------------------------------------------------------

def test_extract_tables_from_pdf():
    tables = extract_tables_from_pdf(_scheme_pdf())
    assert tables == [[["Week", "Topic"], ["1", "Number bases"], ["2", "Indices"]]]


def test_extract_rejects_garbage():
    with pytest.raises(RuntimeError):
        extract_tables_from_pdf(b"definitely not a pdf")


# ---------------------------------------------------------------------------
# Endpoint
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_extract_tables_endpoint(client: AsyncClient):
    resp = await client.post(
        "/api/extract-tables",
        files={"file": ("scheme.pdf", _scheme_pdf(), "application/pdf")},
    )
    assert resp.status_code == 200
    assert resp.json()["tables"][0][0] == ["Week", "Topic"]


@pytest.mark.asyncio
async def test_extract_tables_without_file(client: AsyncClient):
    resp = await client.post("/api/extract-tables", files={"other": ("x.txt", b"x", "text/plain")})
    assert resp.status_code == 400
    assert resp.json() == {"error": "No file uploaded."}


@pytest.mark.asyncio
async def test_extract_tables_wrong_type(client: AsyncClient):
    resp = await client.post(
        "/api/extract-tables",
        files={"file": ("scheme.docx", b"PK\x03\x04", "application/octet-stream")},
    )
    assert resp.status_code == 400
    assert "Unsupported file type" in resp.json()["error"]


@pytest.mark.asyncio
async def test_extract_tables_unreadable_pdf(client: AsyncClient):
    resp = await client.post(
        "/api/extract-tables",
        files={"file": ("scheme.pdf", b"garbage bytes", "application/pdf")},
    )
    assert resp.status_code == 500
    assert resp.json() == {"error": "Failed to process PDF."}
