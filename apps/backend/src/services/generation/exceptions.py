"""Domain exceptions for document encoding and study-set generation.

Each exception carries a stable `error_code` (an `ErrorCode` value) so the API
layer and the streaming handler can map it to an HTTP status or a terminal
error event without string matching.
"""

from __future__ import annotations

from dataclasses import dataclass

from schemas.generation import ErrorCode


@dataclass(slots=True, eq=False)
class StudyGenerationError(Exception):
    """Base class for generation domain errors."""

    message: str
    error_code: ErrorCode

    def __str__(self) -> str:
        return f"{self.error_code.value}: {self.message}"


class UnsupportedDocumentTypeError(StudyGenerationError):
    def __init__(self, message: str = "Only PDF files are supported") -> None:
        super().__init__(message=message, error_code=ErrorCode.UNSUPPORTED_TYPE)


class DocumentTooLargeError(StudyGenerationError):
    def __init__(self, message: str = "File exceeds the 5MB limit") -> None:
        super().__init__(message=message, error_code=ErrorCode.TOO_LARGE)


class MalformedDocumentError(StudyGenerationError):
    def __init__(self, message: str = "Document data could not be decoded") -> None:
        super().__init__(message=message, error_code=ErrorCode.MALFORMED_DOCUMENT)


class NoDocumentError(StudyGenerationError):
    def __init__(self, message: str = "No files provided") -> None:
        super().__init__(message=message, error_code=ErrorCode.NO_DOCUMENT)


class InvalidModeError(StudyGenerationError):
    def __init__(self, message: str = "Invalid mode") -> None:
        super().__init__(message=message, error_code=ErrorCode.INVALID_MODE)


class SchemaValidationFailedError(StudyGenerationError):
    def __init__(
        self, message: str = "Generated items did not match the expected shape"
    ) -> None:
        super().__init__(
            message=message, error_code=ErrorCode.SCHEMA_VALIDATION_FAILED
        )


class GenerationTimeoutError(StudyGenerationError):
    def __init__(self, message: str = "Generation timed out") -> None:
        super().__init__(message=message, error_code=ErrorCode.TIMEOUT)


class BackendFailureError(StudyGenerationError):
    def __init__(self, message: str = "Generative backend failed") -> None:
        super().__init__(message=message, error_code=ErrorCode.BACKEND_ERROR)
