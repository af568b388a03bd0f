"""Document encoding for transport and decoding on the server.

Uploaded files travel as self-describing data URLs
(``data:application/pdf;base64,<payload>``) so a payload can be turned back
into the original bytes and MIME type without any side-channel metadata.
"""

from __future__ import annotations

import base64
import binascii
import logging
import mimetypes
import re
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

from schemas.generation import PDF_MIME_TYPE, DocumentFile
from services.generation.exceptions import (
    DocumentTooLargeError,
    MalformedDocumentError,
    StudyGenerationError,
    UnsupportedDocumentTypeError,
)


logger = logging.getLogger(__name__)

MAX_DOCUMENT_BYTES: int = 5 * 1024 * 1024

INVALID_FILE_NOTICE = "Only PDF files under 5MB are allowed."
EXTRA_FILES_NOTICE = (
    "Only one PDF can be used per generation; additional files were ignored."
)

_DATA_URL_RE = re.compile(
    r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)?(?P<params>(;[\w.+-]+=[^;,]*)*)"
    r"(?P<b64>;base64)?,(?P<payload>.*)$",
    re.DOTALL,
)


@dataclass(frozen=True, slots=True)
class RawFile:
    """A file picked by the user, before encoding."""

    name: str
    mime_type: str
    content: bytes

    @property
    def size(self) -> int:
        return len(self.content)

    @classmethod
    def from_path(cls, path: str | Path) -> RawFile:
        """Read a file from disk, guessing its MIME type from the extension."""
        p = Path(path)
        mime_type, _ = mimetypes.guess_type(p.name)
        return cls(
            name=p.name,
            mime_type=mime_type or "application/octet-stream",
            content=p.read_bytes(),
        )


@dataclass(frozen=True, slots=True)
class DecodedDocument:
    """Server-side view of a document payload."""

    name: str
    mime_type: str
    content: bytes


def check_document(
    mime_type: str, size: int, max_bytes: int = MAX_DOCUMENT_BYTES
) -> None:
    """Apply the upload constraints; type is checked before size."""
    if mime_type != PDF_MIME_TYPE:
        raise UnsupportedDocumentTypeError(
            f"Only PDF files are supported (got {mime_type or 'unknown type'})"
        )
    if size > max_bytes:
        raise DocumentTooLargeError(
            f"File is {size} bytes; the limit is {max_bytes} bytes"
        )


def encode_document(
    raw_file: RawFile, max_bytes: int = MAX_DOCUMENT_BYTES
) -> DocumentFile:
    """Encode a raw file into a transport-safe payload.

    Raises:
        UnsupportedDocumentTypeError: the file is not a PDF.
        DocumentTooLargeError: the file exceeds ``max_bytes``.
    """
    check_document(raw_file.mime_type, raw_file.size, max_bytes)
    encoded = base64.b64encode(raw_file.content).decode("ascii")
    return DocumentFile(
        name=raw_file.name,
        mime_type=raw_file.mime_type,
        data=f"data:{raw_file.mime_type};base64,{encoded}",
    )


def decode_document(
    payload: DocumentFile, max_bytes: int = MAX_DOCUMENT_BYTES
) -> DecodedDocument:
    """Decode a payload back into bytes and MIME type.

    Bare base64 (no ``data:`` prefix) is accepted and takes its MIME type from
    the payload's ``type`` field.
    """
    mime_type = payload.mime_type
    data = payload.data.strip()
    if data.startswith("data:"):
        match = _DATA_URL_RE.match(data)
        if match is None or not match.group("b64"):
            raise MalformedDocumentError("Document data is not a base64 data URL")
        mime_type = match.group("mime") or mime_type
        data = match.group("payload")
        if payload.mime_type and mime_type != payload.mime_type:
            raise UnsupportedDocumentTypeError(
                f"Declared type {payload.mime_type} does not match data URL "
                f"type {mime_type}"
            )

    if mime_type != PDF_MIME_TYPE:
        raise UnsupportedDocumentTypeError(
            f"Only PDF files are supported (got {mime_type or 'unknown type'})"
        )
    try:
        content = base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise MalformedDocumentError("Document data is not valid base64") from exc
    if not content:
        raise MalformedDocumentError("Document is empty")

    check_document(mime_type, len(content), max_bytes)
    return DecodedDocument(name=payload.name, mime_type=mime_type, content=content)


def select_single_file(
    files: Iterable[RawFile], max_bytes: int = MAX_DOCUMENT_BYTES
) -> tuple[RawFile | None, list[str]]:
    """Pick the one file used for generation.

    Invalid files (non-PDF or too large) are dropped, as are any valid files
    after the first. Returns the chosen file (if any) and the user-facing
    notices describing what was dropped.
    """
    valid: list[RawFile] = []
    rejected = 0
    for raw in files:
        try:
            check_document(raw.mime_type, raw.size, max_bytes)
        except StudyGenerationError as exc:
            logger.debug("Rejected file %s: %s", raw.name, exc.message)
            rejected += 1
            continue
        valid.append(raw)

    notices: list[str] = []
    if rejected:
        notices.append(INVALID_FILE_NOTICE)
    if len(valid) > 1:
        notices.append(EXTRA_FILES_NOTICE)
    return (valid[0] if valid else None), notices
