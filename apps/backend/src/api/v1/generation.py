"""Study-set generation endpoint (Server-Sent Events)."""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from functools import lru_cache
from typing import Annotated

from fastapi import APIRouter, Depends, Response
from fastapi.responses import StreamingResponse

from core.error_handler import domain_error_response, structured_logger
from schemas.api import ErrorResponse
from schemas.generation import GenerateRequest, is_terminal
from services.generation.exceptions import NoDocumentError, StudyGenerationError
from services.generation.handler import GenerationHandler, PreparedGeneration


__all__ = ["generate_study_set", "get_generation_handler"]


logger = logging.getLogger(__name__)

router = APIRouter(tags=["generation"])

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "X-Accel-Buffering": "no",
}


@lru_cache
def get_generation_handler() -> GenerationHandler:
    """FastAPI DI provider; the handler holds no per-request state."""
    return GenerationHandler()


async def build_generation_stream(
    handler: GenerationHandler, prepared: PreparedGeneration
) -> AsyncGenerator[str, None]:
    """Serialize handler events to SSE lines, stopping after the terminal one."""
    async for event in handler.stream(prepared):
        yield event.to_sse()
        if is_terminal(event):
            break


@router.post(
    "/generate",
    summary="Stream a generated study set for an uploaded PDF",
    responses={
        200: {"content": {"text/event-stream": {}}},
        400: {"model": ErrorResponse},
        413: {"model": ErrorResponse},
    },
)
async def generate_study_set(
    request: GenerateRequest,
    handler: Annotated[GenerationHandler, Depends(get_generation_handler)],
) -> Response:
    """Generate a study set of four items for the requested mode.

    Only ``files[0]`` is used. Precondition failures are answered with a JSON
    error body before any streaming starts. Otherwise the response is an SSE
    stream whose ``data:`` lines are JSON events:

      event: partial | done | error
      mode: the study mode
      items: settled items so far (partial) or the full set (done)
      progress: fraction 0.0-1.0
      error_code / error: only on error events
    """
    try:
        if not request.files:
            raise NoDocumentError()
        prepared = handler.prepare(request.files[0], request.mode)
    except StudyGenerationError as exc:
        structured_logger.info(
            "Generation request rejected",
            error_type=exc.error_code.value,
            mode=request.mode,
        )
        return domain_error_response(exc)

    if len(request.files) > 1:
        logger.debug("Ignoring %d extra file(s)", len(request.files) - 1)
    structured_logger.info(
        "Generation started",
        mode=prepared.config.mode.value,
        document_name=prepared.document.name,
        document_size=len(prepared.document.content),
    )
    return StreamingResponse(
        build_generation_stream(handler, prepared),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )
