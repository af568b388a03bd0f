"""Per-mode prompt and schema configuration.

The registry is the single place that knows, for each `StudyMode`, which item
shape the model must produce, how a complete study set is validated, and which
prompts drive the model.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Annotated, Any

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from schemas.generation import (
    ITEMS_PER_SET,
    Flashcard,
    MatchCard,
    QuizQuestion,
    StudyMode,
)
from services.generation.exceptions import (
    InvalidModeError,
    SchemaValidationFailedError,
)


QUIZ_SYSTEM_PROMPT = (
    "You are a teacher. Your job is to take a document, and create a multiple "
    f"choice test (with {ITEMS_PER_SET} questions) based on the content of the "
    "document. Each option should be roughly equal in length."
)
QUIZ_USER_PROMPT = "Create a multiple choice test based on this document."

FLASHCARD_SYSTEM_PROMPT = (
    f"You are a teacher. Your job is to take a document and create exactly "
    f"{ITEMS_PER_SET} flashcards based on its content, each with a question on "
    "the front, a clear and concise answer on the back, and a hint. Keep the "
    "questions concise and the answers clear."
)
FLASHCARD_USER_PROMPT = "Extract key facts and create flashcards from this document."

MATCH_SYSTEM_PROMPT = (
    "You are an AI that extracts question-answer pairs for a matching game. "
    f"Given a document, extract only {ITEMS_PER_SET} unique questions and their "
    "correct answers. Ensure the questions and answers are concise and "
    "logically paired."
)
MATCH_USER_PROMPT = "Generate a matching pairs game based on this document."


def format_validation_errors(exc: ValidationError) -> str:
    """Join pydantic validation messages into one newline-separated string."""
    messages = []
    for err in exc.errors():
        loc = ".".join(str(part) for part in err.get("loc", ()))
        messages.append(f"{loc}: {err['msg']}" if loc else err["msg"])
    return "\n".join(messages)


@dataclass(frozen=True, slots=True)
class ModeConfig:
    """Prompts plus item and array shapes for one study mode."""

    mode: StudyMode
    item_model: type[BaseModel]
    system_prompt: str
    user_prompt: str
    item_adapter: TypeAdapter[Any] = field(init=False, repr=False, compare=False)
    array_adapter: TypeAdapter[Any] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        # frozen dataclass: adapters are derived once from the item model
        object.__setattr__(self, "item_adapter", TypeAdapter(self.item_model))
        object.__setattr__(
            self,
            "array_adapter",
            TypeAdapter(
                Annotated[
                    list[self.item_model],  # type: ignore[name-defined]
                    Field(min_length=ITEMS_PER_SET, max_length=ITEMS_PER_SET),
                ]
            ),
        )

    def validate_item(self, raw: Any) -> BaseModel:
        """Validate one item; raises SchemaValidationFailedError."""
        try:
            return self.item_adapter.validate_python(_as_plain(raw))
        except ValidationError as exc:
            raise SchemaValidationFailedError(format_validation_errors(exc)) from exc

    def validate_items(self, raw_items: Any) -> list[BaseModel]:
        """Validate a complete study set against the array shape."""
        if isinstance(raw_items, Sequence) and not isinstance(raw_items, str):
            raw_items = [_as_plain(item) for item in raw_items]
        try:
            return list(self.array_adapter.validate_python(raw_items))
        except ValidationError as exc:
            raise SchemaValidationFailedError(format_validation_errors(exc)) from exc


def _as_plain(raw: Any) -> Any:
    if isinstance(raw, BaseModel):
        return raw.model_dump()
    return raw


_QUIZ_LEARN = ModeConfig(
    mode=StudyMode.LEARN,
    item_model=QuizQuestion,
    system_prompt=QUIZ_SYSTEM_PROMPT,
    user_prompt=QUIZ_USER_PROMPT,
)
_QUIZ_NORMAL = ModeConfig(
    mode=StudyMode.NORMAL_QUIZ,
    item_model=QuizQuestion,
    system_prompt=QUIZ_SYSTEM_PROMPT,
    user_prompt=QUIZ_USER_PROMPT,
)
_FLASHCARDS = ModeConfig(
    mode=StudyMode.FLASH_CARD,
    item_model=Flashcard,
    system_prompt=FLASHCARD_SYSTEM_PROMPT,
    user_prompt=FLASHCARD_USER_PROMPT,
)
_MATCH = ModeConfig(
    mode=StudyMode.MATCH,
    item_model=MatchCard,
    system_prompt=MATCH_SYSTEM_PROMPT,
    user_prompt=MATCH_USER_PROMPT,
)


def parse_mode(value: object) -> StudyMode:
    """Convert a raw boundary value into a StudyMode or raise InvalidModeError."""
    if isinstance(value, StudyMode):
        return value
    if isinstance(value, str):
        try:
            return StudyMode(value)
        except ValueError:
            pass
    raise InvalidModeError()


def resolve(mode: StudyMode) -> ModeConfig:
    """Return the configuration for `mode`."""
    match mode:
        case StudyMode.NORMAL_QUIZ:
            return _QUIZ_NORMAL
        case StudyMode.LEARN:
            return _QUIZ_LEARN
        case StudyMode.FLASH_CARD:
            return _FLASHCARDS
        case StudyMode.MATCH:
            return _MATCH
        case _:
            raise InvalidModeError()
