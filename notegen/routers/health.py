"""
Health check endpoint.
"""
from fastapi import APIRouter, Depends
from datetime import datetime
import logging

from notegen.config import settings
from notegen.models.schemas import HealthCheckResponse
from notegen.services.completion import CompletionService, get_completion_service
from notegen.services.knowledge import load_docx_from_dir

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/", response_model=HealthCheckResponse)
async def health_check(completion: CompletionService = Depends(get_completion_service)):
    """
    Health check endpoint to verify system status.

    Returns:
        HealthCheckResponse with knowledge base size and LLM configuration
    """
    docs = await load_docx_from_dir(settings.KNOWLEDGE_DIR)

    llm_configured = completion.configured
    if not llm_configured:
        logger.warning("Health check: %s provider is not configured", completion.provider)

    return HealthCheckResponse(
        status="healthy" if llm_configured else "degraded",
        knowledge_documents=len(docs),
        llm_provider=completion.provider,
        llm_configured=llm_configured,
        timestamp=datetime.utcnow(),
    )
