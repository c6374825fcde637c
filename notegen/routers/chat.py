"""
Note generation chat endpoint.

POST /api/chat — assemble the system prompt for the request mode, then stream
the model's Markdown note back as plain text.
"""
from __future__ import annotations

import logging
from typing import AsyncIterator
from urllib.parse import quote

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import StreamingResponse

from notegen.config import settings
from notegen.models.schemas import ChatRequest
from notegen.services.completion import (
    CompletionError,
    CompletionService,
    get_completion_service,
)
from notegen.services.prompt_builder import build_prompt
from notegen.services.scheme_parser import EmptyColumnError, SpreadsheetParseError

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/chat")
async def chat(
    request: ChatRequest,
    completion: CompletionService = Depends(get_completion_service),
) -> StreamingResponse:
    """
    Generate a lecture note.

    - ``weeklySelections`` present → custom mode (whole term, one H1 per week)
    - ``file`` present → spreadsheet mode (column ``selectedColumn``, 1-based)
    - otherwise → conversational mode on the latest user message

    ``model`` and ``webSearch`` are accepted for client compatibility; the
    configured model is always used.
    """
    if request.file is not None and len(request.file.data) > settings.MAX_UPLOAD_SIZE * 4 // 3 + 4:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=(
                f"Uploaded file exceeds the {settings.MAX_UPLOAD_SIZE // (1024 * 1024)} MB "
                "size limit."
            ),
        )

    try:
        prompt = await build_prompt(request)
    except SpreadsheetParseError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Failed to parse uploaded spreadsheet. Ensure it is a valid xls/xlsx/csv file.",
        )
    except EmptyColumnError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))

    if request.model:
        logger.debug("Requested model %r ignored; using %s", request.model, completion.model)

    stream = completion.stream_completion(prompt.system_prompt, prompt.conversation)

    # Pull the first chunk before committing to a 200 so that an unreachable
    # provider still produces a proper error response.
    try:
        first_chunk = await anext(stream)
    except StopAsyncIteration:
        first_chunk = ""
    except CompletionError as exc:
        logger.error("Completion failed before streaming (mode=%s): %s", prompt.mode.value, exc)
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Failed to generate notes.",
        )

    async def body() -> AsyncIterator[str]:
        if first_chunk:
            yield first_chunk
        try:
            async for chunk in stream:
                yield chunk
        except CompletionError as exc:
            logger.error("Completion stream interrupted (mode=%s): %s", prompt.mode.value, exc)
        finally:
            await stream.aclose()

    return StreamingResponse(
        body(),
        media_type="text/plain; charset=utf-8",
        headers={
            "X-Note-Mode": prompt.mode.value,
            "X-Knowledge-Sources": ",".join(quote(s) for s in prompt.sources),
        },
    )
