#!/usr/bin/env python3
"""Generate study sets for a PDF against a running DocQuiz API.

Usage:
    # Default multiple-choice quiz
    uv run python scripts/generate_study_set.py notes.pdf

    # Several modes in order, reusing the uploaded document
    uv run python scripts/generate_study_set.py notes.pdf --mode flashCard --mode match

    # Against a deployed server
    uv run python scripts/generate_study_set.py notes.pdf --base-url https://docquiz.example.com
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys

from client.session import GenerationSession, SessionStatus
from client.transport import HttpGenerationTransport
from schemas.generation import StudyMode
from services.generation.exceptions import StudyGenerationError


logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
)
logger = logging.getLogger(__name__)


def _create_parser() -> argparse.ArgumentParser:
    """Create argument parser for the generation script."""
    parser = argparse.ArgumentParser(
        description="Generate quizzes, flashcards or matching games from a PDF"
    )
    parser.add_argument("path", help="PDF file to upload (at most 5MB)")
    parser.add_argument(
        "--mode",
        dest="modes",
        action="append",
        choices=[mode.value for mode in StudyMode],
        help="Study mode to generate; repeat for several (default: normalQuiz)",
    )
    parser.add_argument(
        "--base-url",
        default="http://localhost:8000",
        help="DocQuiz API base URL (default: http://localhost:8000)",
    )
    return parser


def _report_progress(session: GenerationSession) -> None:
    if session.status is SessionStatus.STREAMING:
        logger.info("[%s] %s", session.active_mode.value, session.progress_label)


async def main() -> int:
    """Main entry point for the generation script."""
    args = _create_parser().parse_args()
    modes = [StudyMode(mode) for mode in args.modes or [StudyMode.NORMAL_QUIZ.value]]

    session = GenerationSession(
        HttpGenerationTransport(base_url=args.base_url),
        on_change=_report_progress,
    )
    try:
        await session.upload_path(args.path)
    except (OSError, StudyGenerationError) as exc:
        logger.error("Could not upload %s: %s", args.path, exc)
        return 1

    failed = False
    for mode in modes:
        session.activate_mode(mode)
        await session.wait()
        for notice in session.drain_notices():
            logger.info("%s: %s", notice.level, notice.message)

        if session.status is SessionStatus.COMPLETE:
            items = [item.model_dump() for item in session.items]
            print(json.dumps({"mode": mode.value, "items": items}, indent=2))
        else:
            failed = True
            logger.error(
                "%s failed (%s): %s",
                mode.value,
                session.error_code.value if session.error_code else "unknown",
                session.error_detail,
            )

    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
