"""Schemas for study-set generation: modes, item shapes, requests and events."""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


# Every complete study set holds exactly this many items.
ITEMS_PER_SET: int = 4

PDF_MIME_TYPE: str = "application/pdf"


class StudyMode(str, Enum):
    """Kind of study artifact generated from a document."""

    NORMAL_QUIZ = "normalQuiz"
    LEARN = "learn"
    FLASH_CARD = "flashCard"
    MATCH = "match"


class ErrorCode(str, Enum):
    """Stable machine-readable error codes shared by server and client."""

    NO_DOCUMENT = "no_document"
    INVALID_MODE = "invalid_mode"
    UNSUPPORTED_TYPE = "unsupported_type"
    TOO_LARGE = "too_large"
    MALFORMED_DOCUMENT = "malformed_document"
    SCHEMA_VALIDATION_FAILED = "schema_validation_failed"
    TIMEOUT = "timeout"
    BACKEND_ERROR = "backend_error"


NonEmptyStr = Annotated[str, Field(min_length=1)]


class QuizQuestion(BaseModel):
    """Multiple-choice question used by the normalQuiz and learn modes."""

    question: NonEmptyStr
    options: list[NonEmptyStr] = Field(
        ...,
        min_length=ITEMS_PER_SET,
        max_length=ITEMS_PER_SET,
        description=(
            "Four possible answers to the question. Only one should be correct. "
            "They should all be of equal lengths."
        ),
    )
    answer: Literal["A", "B", "C", "D"] = Field(
        ...,
        description=(
            "The correct answer, where A is the first option, B is the second, "
            "and so on."
        ),
    )

    model_config = ConfigDict(extra="forbid")


class Flashcard(BaseModel):
    """Two-sided flashcard with an optional hint."""

    front: NonEmptyStr = Field(
        ..., description="The question, term, or prompt on the front of the card."
    )
    back: NonEmptyStr = Field(
        ..., description="The answer or explanation on the back of the card."
    )
    hint: str | None = Field(
        default=None, description="A hint to help answer the flashcard."
    )

    model_config = ConfigDict(extra="forbid")


class MatchCard(BaseModel):
    """Question/answer pair for the matching game."""

    question: NonEmptyStr = Field(
        ..., description="A question or prompt that needs to be matched."
    )
    answer: NonEmptyStr = Field(
        ..., description="The corresponding correct answer to the question."
    )

    model_config = ConfigDict(extra="forbid")


StudyItem = QuizQuestion | Flashcard | MatchCard


class DocumentFile(BaseModel):
    """Transport-safe document payload.

    ``data`` is a data URL (``data:application/pdf;base64,...``) so the payload
    can be decoded back to bytes and MIME type without extra metadata.
    """

    name: str = Field(..., min_length=1)
    mime_type: str = Field(..., alias="type")
    data: str = Field(..., repr=False)

    model_config = ConfigDict(populate_by_name=True)


class GenerateRequest(BaseModel):
    """Body of ``POST /generate``.

    ``mode`` is left unvalidated so any unknown value, string or not, gets the
    documented ``Invalid mode`` error instead of a generic 422.
    """

    files: list[DocumentFile] | None = None
    mode: Any = None


def progress_for(item_count: int) -> float:
    """Fraction of the study set produced so far."""
    return min(item_count, ITEMS_PER_SET) / ITEMS_PER_SET


class _StreamEvent(BaseModel):
    model_config = ConfigDict(extra="forbid")

    def to_sse(self) -> str:
        """Serialize event to the Server-Sent Events wire format."""
        return f"data: {self.model_dump_json()}\n\n"


class PartialEvent(_StreamEvent):
    """Growing prefix of the study set, emitted before generation completes."""

    event: Literal["partial"] = "partial"
    mode: StudyMode
    items: list[dict[str, Any]] = Field(default_factory=list, max_length=ITEMS_PER_SET)
    progress: float = Field(0.0, ge=0.0, le=1.0)


class DoneEvent(_StreamEvent):
    """Terminal success event carrying the validated study set."""

    event: Literal["done"] = "done"
    mode: StudyMode
    items: list[dict[str, Any]] = Field(
        ..., min_length=ITEMS_PER_SET, max_length=ITEMS_PER_SET
    )
    progress: float = 1.0


class ErrorEvent(_StreamEvent):
    """Terminal failure event."""

    event: Literal["error"] = "error"
    mode: StudyMode | None = None
    error_code: ErrorCode
    error: str


GenerationEvent = Annotated[
    PartialEvent | DoneEvent | ErrorEvent, Field(discriminator="event")
]

generation_event_adapter: TypeAdapter[GenerationEvent] = TypeAdapter(GenerationEvent)


def is_terminal(event: GenerationEvent) -> bool:
    return isinstance(event, DoneEvent | ErrorEvent)
