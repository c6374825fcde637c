"""
Note export endpoint.

POST /api/export — render a Markdown note to DOCX, PDF or standalone HTML.
"""
import logging

from fastapi import APIRouter, HTTPException, status
from fastapi.responses import Response

from notegen.models.schemas import ExportRequest
from notegen.services.renderer import RenderError, render_export

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/export")
async def export_note(payload: ExportRequest) -> Response:
    """
    Export a note.  DOCX and PDF are returned as attachments
    (``notes.docx`` / ``notes.pdf``); HTML is returned inline.
    """
    try:
        result = await render_export(payload.content, payload.format)
    except RenderError as exc:
        logger.error("Export to %s failed: %s", payload.format, exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to export document.",
        )

    headers = {}
    if result.filename:
        headers["Content-Disposition"] = f'attachment; filename="{result.filename}"'

    logger.info("Exported %d-char note as %s", len(payload.content), payload.format)
    return Response(content=result.content, media_type=result.media_type, headers=headers)
