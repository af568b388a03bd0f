"""Streaming generation handler.

`GenerationHandler.generate` turns a document payload and a mode into an
ordered stream of events: zero or more `PartialEvent`s carrying a growing
prefix of the study set, then exactly one terminal `DoneEvent` or
`ErrorEvent`.

The backend is consumed on a single producer task that feeds an ordered
queue. Reading the queue with a deadline bounds total generation time without
cancelling scopes across tasks inside the backend's own stream.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel

from core.config import get_settings
from schemas.generation import (
    ITEMS_PER_SET,
    DocumentFile,
    DoneEvent,
    ErrorCode,
    ErrorEvent,
    GenerationEvent,
    PartialEvent,
    StudyMode,
    progress_for,
)
from services.documents import DecodedDocument, decode_document
from services.generation.backend import ModelBackendProtocol, PydanticAIBackend
from services.generation.exceptions import (
    GenerationTimeoutError,
    NoDocumentError,
    StudyGenerationError,
)
from services.generation.registry import ModeConfig, parse_mode, resolve


logger = logging.getLogger(__name__)


@dataclass(slots=True)
class _StreamEnd:
    error: BaseException | None = None


@dataclass(frozen=True, slots=True)
class PreparedGeneration:
    """A request that passed every precondition and is ready to stream."""

    config: ModeConfig
    document: DecodedDocument


def settled_prefix(config: ModeConfig, snapshot: list[Any]) -> list[dict[str, Any]]:
    """Items of a snapshot that can no longer change.

    An item is settled once the model has started the next one. Settled items
    are validated individually; the prefix stops at the first invalid item and
    never exceeds a full study set.
    """
    settled: list[dict[str, Any]] = []
    for raw in snapshot[: max(len(snapshot) - 1, 0)][:ITEMS_PER_SET]:
        try:
            item = config.validate_item(raw)
        except StudyGenerationError:
            break
        settled.append(item.model_dump())
    return settled


def _dump(items: list[BaseModel]) -> list[dict[str, Any]]:
    return [item.model_dump() for item in items]


class GenerationHandler:
    """Drive one backend invocation per request and validate its output."""

    def __init__(
        self,
        backend: ModelBackendProtocol | None = None,
        timeout_seconds: float | None = None,
        max_document_bytes: int | None = None,
    ) -> None:
        settings = get_settings()
        self._backend = backend or PydanticAIBackend()
        self._timeout = timeout_seconds or settings.GENERATION_TIMEOUT_SECONDS
        self._max_bytes = max_document_bytes or settings.MAX_DOCUMENT_BYTES

    def prepare(
        self, document: DocumentFile | None, mode: object
    ) -> PreparedGeneration:
        """Check preconditions and decode the document.

        Raises:
            NoDocumentError: no document was supplied.
            InvalidModeError: ``mode`` is not one of the study modes.
            UnsupportedDocumentTypeError, DocumentTooLargeError,
            MalformedDocumentError: the document payload is unusable.
        """
        if document is None:
            raise NoDocumentError()
        config = resolve(parse_mode(mode))
        return PreparedGeneration(
            config=config, document=decode_document(document, self._max_bytes)
        )

    async def generate(
        self, document: DocumentFile | None, mode: object
    ) -> AsyncIterator[GenerationEvent]:
        """Stream events for one generation attempt."""
        try:
            prepared = self.prepare(document, mode)
        except StudyGenerationError as exc:
            logger.info("Rejected generation request: %s", exc)
            study_mode = mode if isinstance(mode, StudyMode) else None
            yield ErrorEvent(
                mode=study_mode, error_code=exc.error_code, error=exc.message
            )
            return

        async for event in self.stream(prepared):
            yield event

    async def stream(
        self, prepared: PreparedGeneration
    ) -> AsyncIterator[GenerationEvent]:
        """Invoke the backend once and stream partial and terminal events."""
        config = prepared.config
        document = prepared.document
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._timeout
        queue: asyncio.Queue[list[Any] | _StreamEnd] = asyncio.Queue()

        async def produce() -> None:
            try:
                async for snapshot in self._backend.stream_items(config, document):
                    await queue.put(list(snapshot))
            except Exception as exc:  # noqa: BLE001 - forwarded to the consumer
                await queue.put(_StreamEnd(error=exc))
            else:
                await queue.put(_StreamEnd())

        producer = asyncio.create_task(produce())
        emitted: list[dict[str, Any]] = []
        last_snapshot: list[Any] = []
        try:
            while True:
                remaining = deadline - loop.time()
                try:
                    message = await asyncio.wait_for(
                        queue.get(), timeout=max(remaining, 0)
                    )
                except TimeoutError:
                    exc = GenerationTimeoutError(
                        f"Generation exceeded {self._timeout:g} seconds"
                    )
                    logger.warning("%s generation timed out", config.mode.value)
                    yield ErrorEvent(
                        mode=config.mode, error_code=exc.error_code, error=exc.message
                    )
                    return

                if isinstance(message, _StreamEnd):
                    if message.error is not None:
                        yield self._error_event(config.mode, message.error)
                        return
                    break

                last_snapshot = message
                settled = settled_prefix(config, message)
                if len(settled) <= len(emitted):
                    continue
                if settled[: len(emitted)] != emitted:
                    # A settled item was rewritten; partials must only extend
                    logger.debug(
                        "%s backend rewrote a settled item; skipping partial",
                        config.mode.value,
                    )
                    continue
                emitted = settled
                yield PartialEvent(
                    mode=config.mode,
                    items=settled,
                    progress=progress_for(len(emitted)),
                )
        finally:
            if not producer.done():
                producer.cancel()
            await asyncio.gather(producer, return_exceptions=True)

        try:
            items = config.validate_items(last_snapshot)
        except StudyGenerationError as exc:
            logger.warning(
                "%s generation failed validation with %d item(s)",
                config.mode.value,
                len(last_snapshot),
            )
            yield ErrorEvent(
                mode=config.mode, error_code=exc.error_code, error=exc.message
            )
            return

        logger.info("%s generation complete", config.mode.value)
        yield DoneEvent(mode=config.mode, items=_dump(items))

    @staticmethod
    def _error_event(mode: StudyMode, error: BaseException) -> ErrorEvent:
        if isinstance(error, StudyGenerationError):
            logger.warning("%s generation failed: %s", mode.value, error)
            return ErrorEvent(mode=mode, error_code=error.error_code, error=error.message)
        logger.error(
            "%s generation backend error: %s", mode.value, error, exc_info=error
        )
        return ErrorEvent(
            mode=mode,
            error_code=ErrorCode.BACKEND_ERROR,
            error=f"Generative backend failed: {error}",
        )
