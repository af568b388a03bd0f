"""Tests for the client-side generation session state machine."""

from __future__ import annotations

import asyncio

import httpx
import pytest

from client.session import (
    FAILURE_NOTICE,
    NO_DOCUMENT_NOTICE,
    GenerationSession,
    SessionStatus,
)
from schemas.generation import (
    DoneEvent,
    ErrorCode,
    ErrorEvent,
    Flashcard,
    MatchCard,
    PartialEvent,
    StudyMode,
)
from services.documents import EXTRA_FILES_NOTICE, INVALID_FILE_NOTICE, RawFile
from services.generation.exceptions import (
    InvalidModeError,
    UnsupportedDocumentTypeError,
)

from tests.fixtures.generation_fixtures import (
    PDF_BYTES,
    FakeTransport,
    match_items,
    pdf_raw_file,
    quiz_items,
)


async def until(predicate, attempts: int = 100) -> None:
    for _ in range(attempts):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition never became true")


def make_session(transport: FakeTransport | None = None, **kwargs) -> GenerationSession:
    session = GenerationSession(transport or FakeTransport(), **kwargs)
    session.upload_document(pdf_raw_file())
    session.drain_notices()
    return session


@pytest.mark.asyncio
async def test_activation_without_document_fails_without_request():
    transport = FakeTransport()
    session = GenerationSession(transport)

    task = session.activate_mode(StudyMode.MATCH)

    assert task is None
    assert transport.calls == []
    assert session.status is SessionStatus.FAILED
    assert session.error_code is ErrorCode.NO_DOCUMENT
    assert [n.message for n in session.drain_notices()] == [NO_DOCUMENT_NOTICE]


@pytest.mark.asyncio
async def test_flashcard_generation_completes_with_four_cards():
    session = make_session()

    session.activate_mode(StudyMode.FLASH_CARD)
    assert session.status is SessionStatus.STREAMING
    await session.wait()

    assert session.status is SessionStatus.COMPLETE
    assert len(session.items) == 4
    assert all(isinstance(card, Flashcard) for card in session.items)
    assert all(card.front and card.back for card in session.items)
    assert session.progress == 1.0


@pytest.mark.asyncio
async def test_reactivating_complete_mode_is_a_no_op():
    transport = FakeTransport()
    session = make_session(transport)
    session.activate_mode(StudyMode.LEARN)
    await session.wait()
    items = list(session.items)

    assert session.activate_mode(StudyMode.LEARN) is None
    assert session.activate_mode("learn") is None

    assert len(transport.calls) == 1
    assert session.items == items
    assert session.status is SessionStatus.COMPLETE


@pytest.mark.asyncio
async def test_reactivating_streaming_mode_is_a_no_op():
    gate = asyncio.Event()
    transport = FakeTransport({StudyMode.LEARN: [gate]})
    session = make_session(transport)

    first = session.activate_mode(StudyMode.LEARN)
    await asyncio.sleep(0)
    assert session.activate_mode(StudyMode.LEARN) is None

    assert len(transport.calls) == 1
    first.cancel()
    await asyncio.gather(first, return_exceptions=True)


@pytest.mark.asyncio
async def test_switching_modes_mid_stream_ignores_the_old_stream():
    learn_gate = asyncio.Event()
    learn_items = quiz_items()
    transport = FakeTransport(
        {
            StudyMode.LEARN: [
                PartialEvent(mode=StudyMode.LEARN, items=learn_items[:1], progress=0.25),
                learn_gate,
                DoneEvent(mode=StudyMode.LEARN, items=learn_items),
            ]
        }
    )
    session = make_session(transport)

    learn_task = session.activate_mode(StudyMode.LEARN)
    await until(lambda: len(session.items) == 1)
    assert session.progress_label == "Generating question 1 of 4"

    session.activate_mode(StudyMode.MATCH)
    assert session.items == []
    assert session.progress_label == "Analyzing PDF content"
    await session.wait()

    learn_gate.set()
    await learn_task

    assert session.active_mode is StudyMode.MATCH
    assert session.status is SessionStatus.COMPLETE
    assert all(isinstance(card, MatchCard) for card in session.items)
    assert [card.model_dump() for card in session.items] == match_items()
    # Same cached document for both requests
    assert transport.calls[0][1] == transport.calls[1][1]


@pytest.mark.asyncio
async def test_abort_superseded_cancels_old_stream():
    gate = asyncio.Event()
    transport = FakeTransport({StudyMode.LEARN: [gate]})
    session = make_session(transport, abort_superseded=True)

    learn_task = session.activate_mode(StudyMode.LEARN)
    await asyncio.sleep(0)
    session.activate_mode(StudyMode.NORMAL_QUIZ)
    await session.wait()
    await asyncio.gather(learn_task, return_exceptions=True)

    assert learn_task.cancelled()
    assert session.status is SessionStatus.COMPLETE


@pytest.mark.asyncio
async def test_error_event_fails_and_reactivation_retries():
    transport = FakeTransport(
        {
            StudyMode.NORMAL_QUIZ: [
                ErrorEvent(
                    mode=StudyMode.NORMAL_QUIZ,
                    error_code=ErrorCode.BACKEND_ERROR,
                    error="quota exceeded",
                )
            ]
        }
    )
    session = make_session(transport)

    session.activate_mode(StudyMode.NORMAL_QUIZ)
    await session.wait()

    assert session.status is SessionStatus.FAILED
    assert session.items == []
    assert session.error_detail == "quota exceeded"
    assert session.document is not None
    assert [n.message for n in session.drain_notices()] == [FAILURE_NOTICE]

    transport.scripts.clear()
    assert session.activate_mode(StudyMode.NORMAL_QUIZ) is not None
    await session.wait()

    assert session.status is SessionStatus.COMPLETE
    assert len(transport.calls) == 2


@pytest.mark.asyncio
async def test_retry_reruns_active_mode():
    transport = FakeTransport({StudyMode.MATCH: [httpx.ConnectError("refused")]})
    session = make_session(transport)
    session.activate_mode(StudyMode.MATCH)
    await session.wait()
    assert session.error_code is ErrorCode.BACKEND_ERROR
    assert "refused" in session.error_detail

    transport.scripts.clear()
    session.retry()
    await session.wait()

    assert session.status is SessionStatus.COMPLETE
    assert session.error_code is None


@pytest.mark.asyncio
async def test_stream_without_terminal_event_fails():
    transport = FakeTransport(
        {
            StudyMode.LEARN: [
                PartialEvent(mode=StudyMode.LEARN, items=quiz_items()[:2], progress=0.5)
            ]
        }
    )
    session = make_session(transport)

    session.activate_mode(StudyMode.LEARN)
    await session.wait()

    assert session.status is SessionStatus.FAILED
    assert session.error_code is ErrorCode.BACKEND_ERROR
    assert session.items == []


@pytest.mark.asyncio
async def test_done_with_wrong_shape_fails_validation():
    transport = FakeTransport(
        {StudyMode.NORMAL_QUIZ: [DoneEvent(mode=StudyMode.NORMAL_QUIZ, items=match_items())]}
    )
    session = make_session(transport)

    session.activate_mode(StudyMode.NORMAL_QUIZ)
    await session.wait()

    assert session.status is SessionStatus.FAILED
    assert session.error_code is ErrorCode.SCHEMA_VALIDATION_FAILED


@pytest.mark.asyncio
async def test_events_after_terminal_are_ignored():
    session = make_session()
    session.activate_mode(StudyMode.LEARN)
    await session.wait()
    activation = session.activation_id

    applied = session.apply(
        activation,
        ErrorEvent(mode=StudyMode.LEARN, error_code=ErrorCode.TIMEOUT, error="late"),
    )

    assert applied is False
    assert session.status is SessionStatus.COMPLETE


@pytest.mark.asyncio
async def test_clear_resets_and_makes_streams_stale():
    gate = asyncio.Event()
    transport = FakeTransport({StudyMode.LEARN: [gate]})
    session = make_session(transport)
    task = session.activate_mode(StudyMode.LEARN)
    stale_id = session.activation_id

    session.clear()

    assert session.document is None
    assert session.items == []
    assert session.status is SessionStatus.IDLE
    assert session.apply(
        stale_id, PartialEvent(mode=StudyMode.LEARN, items=quiz_items()[:1])
    ) is False

    gate.set()
    await task
    assert session.status is SessionStatus.IDLE

    session.activate_mode(StudyMode.LEARN)
    assert session.error_code is ErrorCode.NO_DOCUMENT


def test_invalid_mode_raises():
    session = GenerationSession(FakeTransport())
    with pytest.raises(InvalidModeError):
        session.activate_mode("essay")


def test_failed_upload_leaves_session_unchanged():
    session = make_session()
    document = session.document

    with pytest.raises(UnsupportedDocumentTypeError):
        session.upload_document(
            RawFile(name="notes.txt", mime_type="text/plain", content=b"hi")
        )

    assert session.document == document
    assert [n.message for n in session.drain_notices()] == [INVALID_FILE_NOTICE]


def test_upload_files_keeps_first_valid_pdf():
    session = GenerationSession(FakeTransport())
    files = [
        RawFile(name="notes.txt", mime_type="text/plain", content=b"hi"),
        pdf_raw_file("first.pdf"),
        pdf_raw_file("second.pdf"),
    ]

    document = session.upload_files(files)

    assert document is not None
    assert document.name == "first.pdf"
    messages = [n.message for n in session.drain_notices()]
    assert INVALID_FILE_NOTICE in messages
    assert EXTRA_FILES_NOTICE in messages


@pytest.mark.asyncio
async def test_upload_path_reads_from_disk(tmp_path):
    path = tmp_path / "lecture.pdf"
    path.write_bytes(PDF_BYTES)
    session = GenerationSession(FakeTransport())

    document = await session.upload_path(path)

    assert document.name == "lecture.pdf"
    assert session.document == document


@pytest.mark.asyncio
async def test_on_change_sees_every_applied_event():
    labels: list[str] = []
    session = make_session(on_change=lambda s: labels.append(s.progress_label))

    session.activate_mode(StudyMode.NORMAL_QUIZ)
    await session.wait()

    assert labels == [
        "Generating question 1 of 4",
        "Generating question 2 of 4",
        "Generating question 3 of 4",
        "Generating question 4 of 4",
    ]


def test_on_change_sees_failed_activation_without_document():
    transport = FakeTransport()
    statuses: list[SessionStatus] = []
    session = GenerationSession(
        transport, on_change=lambda s: statuses.append(s.status)
    )

    assert session.activate_mode(StudyMode.MATCH) is None

    assert statuses == [SessionStatus.FAILED]
    assert session.error_code is ErrorCode.NO_DOCUMENT
    assert transport.calls == []


@pytest.mark.asyncio
async def test_on_change_sees_clear():
    statuses: list[SessionStatus] = []
    session = make_session(on_change=lambda s: statuses.append(s.status))
    session.activate_mode(StudyMode.NORMAL_QUIZ)
    await session.wait()
    statuses.clear()

    session.clear()

    assert statuses == [SessionStatus.IDLE]
    assert session.document is None
