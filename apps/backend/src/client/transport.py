"""HTTP transport for the generation endpoint.

`HttpGenerationTransport.stream` posts one document and mode to
``/api/v1/generate`` and yields the decoded SSE events. Error bodies returned
before streaming starts are folded into a single `ErrorEvent` so callers only
ever deal with events.
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator
from contextlib import AsyncExitStack
from typing import Protocol

import httpx
from pydantic import ValidationError

from schemas.generation import (
    DocumentFile,
    ErrorCode,
    ErrorEvent,
    GenerateRequest,
    GenerationEvent,
    StudyMode,
    generation_event_adapter,
)
from services.generation.exceptions import BackendFailureError


logger = logging.getLogger(__name__)

GENERATE_PATH = "/api/v1/generate"
SSE_DATA_PREFIX = "data:"


class GenerationTransport(Protocol):
    """Anything that can stream generation events for a document and mode."""

    def stream(
        self, document: DocumentFile, mode: StudyMode
    ) -> AsyncIterator[GenerationEvent]: ...


def parse_sse_line(line: str) -> GenerationEvent | None:
    """Decode one SSE line; returns None for blank, comment or non-data lines.

    Raises:
        BackendFailureError: the data line is not a valid generation event.
    """
    if not line.startswith(SSE_DATA_PREFIX):
        return None
    payload = line[len(SSE_DATA_PREFIX) :].strip()
    if not payload:
        return None
    try:
        return generation_event_adapter.validate_json(payload)
    except ValidationError as exc:
        raise BackendFailureError(f"Malformed event from server: {exc}") from exc


def error_event_from_response(
    status_code: int, body: bytes, mode: StudyMode
) -> ErrorEvent:
    """Map a non-streaming error response to a terminal error event."""
    error_code = ErrorCode.BACKEND_ERROR
    message = f"HTTP {status_code}"
    try:
        data = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        data = None
    if isinstance(data, dict):
        try:
            error_code = ErrorCode(data.get("type"))
        except ValueError:
            pass
        if isinstance(data.get("error"), str):
            message = data["error"]
    return ErrorEvent(mode=mode, error_code=error_code, error=message)


class HttpGenerationTransport:
    """Stream generation events from a DocQuiz server over HTTP."""

    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        client: httpx.AsyncClient | None = None,
        timeout: float = 90.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._client = client
        self._timeout = timeout

    async def stream(
        self, document: DocumentFile, mode: StudyMode
    ) -> AsyncIterator[GenerationEvent]:
        body = GenerateRequest(files=[document], mode=mode.value).model_dump(
            by_alias=True, exclude_none=True
        )
        async with AsyncExitStack() as stack:
            client = self._client
            if client is None:
                client = await stack.enter_async_context(
                    httpx.AsyncClient(timeout=self._timeout)
                )
            response = await stack.enter_async_context(
                client.stream("POST", f"{self.base_url}{GENERATE_PATH}", json=body)
            )
            if response.status_code != 200:
                error_body = await response.aread()
                logger.info(
                    "Generation request for %s rejected with HTTP %d",
                    mode.value,
                    response.status_code,
                )
                yield error_event_from_response(
                    response.status_code, error_body, mode
                )
                return

            async for line in response.aiter_lines():
                event = parse_sse_line(line)
                if event is not None:
                    yield event
