"""
PDF table extraction endpoint.

POST /api/extract-tables — detect tables in an uploaded PDF scheme of work.
"""
import asyncio
import logging
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, File, HTTPException, UploadFile, status

from notegen.config import settings
from notegen.models.schemas import ExtractTablesResponse
from notegen.services.table_extractor import extract_tables_from_pdf

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/extract-tables", response_model=ExtractTablesResponse)
async def extract_tables(file: Optional[UploadFile] = File(None)) -> ExtractTablesResponse:
    """Return every multi-row table found in the uploaded PDF."""
    if file is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No file uploaded.")

    if Path(file.filename or "").suffix.lower() not in ("", ".pdf"):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unsupported file type '{Path(file.filename).suffix}'. Accepted: .pdf",
        )

    content = await file.read()
    if len(content) > settings.MAX_UPLOAD_SIZE:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"File exceeds the {settings.MAX_UPLOAD_SIZE // (1024 * 1024)} MB size limit.",
        )

    try:
        tables = await asyncio.to_thread(extract_tables_from_pdf, content)
    except RuntimeError as exc:
        logger.error("Table extraction failed for %r: %s", file.filename, exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to process PDF.",
        )

    return ExtractTablesResponse(tables=tables)
