"""Client-side generation session.

A `GenerationSession` caches one encoded document, tracks the active study
mode and drives one transport stream per mode activation. Every activation
gets a fresh id; events are applied through `apply`, which ignores anything
tagged with a superseded id, so a slow stream for an old mode can never
overwrite the state of the current one.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Literal

from pydantic import BaseModel

from client.transport import GenerationTransport
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
from services.documents import (
    INVALID_FILE_NOTICE,
    MAX_DOCUMENT_BYTES,
    RawFile,
    encode_document,
    select_single_file,
)
from services.generation.exceptions import StudyGenerationError
from services.generation.registry import parse_mode, resolve


logger = logging.getLogger(__name__)

FAILURE_NOTICE = "Failed to generate quiz. Please try again."
NO_DOCUMENT_NOTICE = "No files found. Please upload a PDF first."
INCOMPLETE_STREAM_ERROR = "Stream ended without a result"


class SessionStatus(str, Enum):
    IDLE = "idle"
    STREAMING = "streaming"
    COMPLETE = "complete"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class Notice:
    """User-facing toast message."""

    level: Literal["success", "error", "info"]
    message: str


class GenerationSession:
    """State machine behind the study UI."""

    def __init__(
        self,
        transport: GenerationTransport,
        initial_mode: StudyMode = StudyMode.NORMAL_QUIZ,
        abort_superseded: bool = False,
        max_document_bytes: int = MAX_DOCUMENT_BYTES,
        on_change: Callable[[GenerationSession], None] | None = None,
    ) -> None:
        self._transport = transport
        self._abort_superseded = abort_superseded
        self._max_bytes = max_document_bytes
        self._on_change = on_change
        self._activation_id = 0
        self._tasks: dict[int, asyncio.Task[None]] = {}

        self.document: DocumentFile | None = None
        self.active_mode: StudyMode = initial_mode
        self.items: list[BaseModel] = []
        self.status: SessionStatus = SessionStatus.IDLE
        self.error_code: ErrorCode | None = None
        self.error_detail: str | None = None
        self.notices: list[Notice] = []

    @property
    def activation_id(self) -> int:
        return self._activation_id

    @property
    def progress(self) -> float:
        return progress_for(len(self.items))

    @property
    def progress_label(self) -> str:
        if not self.items:
            return "Analyzing PDF content"
        count = min(len(self.items), ITEMS_PER_SET)
        return f"Generating question {count} of {ITEMS_PER_SET}"

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    def upload_document(self, raw_file: RawFile) -> DocumentFile:
        """Encode and cache a document for every later activation.

        On failure the session is left untouched, an error notice is queued
        and the encoding error is re-raised.
        """
        try:
            payload = encode_document(raw_file, self._max_bytes)
        except StudyGenerationError as exc:
            logger.info("Rejected upload %s: %s", raw_file.name, exc.message)
            self.notices.append(Notice("error", INVALID_FILE_NOTICE))
            raise
        self.document = payload
        self.notices.append(Notice("success", f"Uploaded {raw_file.name}"))
        return payload

    def upload_files(self, files: Iterable[RawFile]) -> DocumentFile | None:
        """Keep the first valid PDF from a multi-file pick and upload it."""
        selected, notices = select_single_file(files, self._max_bytes)
        for message in notices:
            level: Literal["error", "info"] = (
                "error" if message == INVALID_FILE_NOTICE else "info"
            )
            self.notices.append(Notice(level, message))
        if selected is None:
            return None
        return self.upload_document(selected)

    async def upload_path(self, path: str | Path) -> DocumentFile:
        raw_file = await asyncio.to_thread(RawFile.from_path, path)
        return self.upload_document(raw_file)

    # ------------------------------------------------------------------
    # Activations
    # ------------------------------------------------------------------

    def activate_mode(self, mode: StudyMode | str) -> asyncio.Task[None] | None:
        """Switch to ``mode`` and start generating for it.

        Re-activating the mode that is already streaming or complete is a
        no-op. Re-activating a failed mode retries. Returns the consumer task,
        or None when no request was issued.

        Raises:
            InvalidModeError: ``mode`` is not a study mode.
        """
        study_mode = parse_mode(mode)
        if study_mode == self.active_mode and self.status in (
            SessionStatus.STREAMING,
            SessionStatus.COMPLETE,
        ):
            return None
        return self._start(study_mode)

    def retry(self) -> asyncio.Task[None] | None:
        """Re-run the active mode unless it is still streaming."""
        if self.status is SessionStatus.STREAMING:
            return None
        return self._start(self.active_mode)

    def clear(self) -> None:
        """Drop the document and results; outstanding streams become stale."""
        self._supersede()
        self.document = None
        self.items = []
        self.status = SessionStatus.IDLE
        self.error_code = None
        self.error_detail = None
        self._notify()

    async def wait(self) -> None:
        """Wait for the current activation's stream to finish."""
        task = self._tasks.get(self._activation_id)
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    def drain_notices(self) -> list[Notice]:
        notices, self.notices = self.notices, []
        return notices

    def apply(self, activation_id: int, event: GenerationEvent) -> bool:
        """Reduce one event into the session state.

        Returns False when the event was ignored: it belongs to a superseded
        activation, or its activation already reached a terminal event.
        """
        if activation_id != self._activation_id:
            return False
        if self.status is not SessionStatus.STREAMING:
            return False

        config = resolve(self.active_mode)
        if isinstance(event, PartialEvent):
            try:
                self.items = [config.validate_item(item) for item in event.items]
            except StudyGenerationError as exc:
                self._fail(exc.error_code, exc.message)
        elif isinstance(event, DoneEvent):
            try:
                self.items = config.validate_items(event.items)
            except StudyGenerationError as exc:
                self._fail(exc.error_code, exc.message)
            else:
                self.status = SessionStatus.COMPLETE
                logger.info("%s study set complete", self.active_mode.value)
        elif isinstance(event, ErrorEvent):
            self._fail(event.error_code, event.error)

        self._notify()
        return True

    def _start(self, mode: StudyMode) -> asyncio.Task[None] | None:
        self._supersede()
        self.active_mode = mode
        self.items = []
        self.error_code = None
        self.error_detail = None

        if self.document is None:
            self._fail(ErrorCode.NO_DOCUMENT, "No files provided")
            self._notify()
            return None

        self.status = SessionStatus.STREAMING
        activation_id = self._activation_id
        task = asyncio.create_task(self._consume(activation_id, self.document, mode))
        self._tasks[activation_id] = task
        task.add_done_callback(lambda _: self._tasks.pop(activation_id, None))
        return task

    def _supersede(self) -> None:
        self._activation_id += 1
        if self._abort_superseded:
            for task in self._tasks.values():
                task.cancel()

    async def _consume(
        self, activation_id: int, document: DocumentFile, mode: StudyMode
    ) -> None:
        try:
            async for event in self._transport.stream(document, mode):
                self.apply(activation_id, event)
                if isinstance(event, DoneEvent | ErrorEvent):
                    return
        except StudyGenerationError as exc:
            logger.warning("%s stream failed: %s", mode.value, exc)
            self.apply(
                activation_id,
                ErrorEvent(mode=mode, error_code=exc.error_code, error=exc.message),
            )
            return
        except Exception as exc:  # noqa: BLE001 - surfaced as a failed state
            logger.warning("%s stream failed: %s", mode.value, exc)
            self.apply(
                activation_id,
                ErrorEvent(
                    mode=mode, error_code=ErrorCode.BACKEND_ERROR, error=str(exc)
                ),
            )
            return

        self.apply(
            activation_id,
            ErrorEvent(
                mode=mode,
                error_code=ErrorCode.BACKEND_ERROR,
                error=INCOMPLETE_STREAM_ERROR,
            ),
        )

    def _fail(self, error_code: ErrorCode, detail: str) -> None:
        self.status = SessionStatus.FAILED
        self.items = []
        self.error_code = error_code
        self.error_detail = detail
        message = (
            NO_DOCUMENT_NOTICE if error_code is ErrorCode.NO_DOCUMENT else FAILURE_NOTICE
        )
        self.notices.append(Notice("error", message))

    def _notify(self) -> None:
        if self._on_change is not None:
            self._on_change(self)
