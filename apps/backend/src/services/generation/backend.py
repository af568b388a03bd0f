"""Generative model backend for study-set generation.

The handler only depends on `ModelBackendProtocol`; `PydanticAIBackend` is the
production implementation that streams structured output from Gemini.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from typing import Any, Protocol

from pydantic import ValidationError
from pydantic_ai import Agent
from pydantic_ai.exceptions import AgentRunError, UnexpectedModelBehavior
from pydantic_ai.messages import BinaryContent
from pydantic_ai.models import Model

from schemas.generation import StudyMode
from services.documents import DecodedDocument
from services.generation.exceptions import (
    BackendFailureError,
    SchemaValidationFailedError,
)
from services.generation.model_factory import get_generation_model
from services.generation.registry import ModeConfig, format_validation_errors


logger = logging.getLogger(__name__)


class ModelBackendProtocol(Protocol):
    """Protocol for generative backends."""

    def stream_items(
        self, config: ModeConfig, document: DecodedDocument
    ) -> AsyncIterator[list[Any]]:
        """Stream growing snapshots of the generated item array.

        Each snapshot is a list of items (models or plain mappings). The last
        snapshot yielded is the complete output. Implementations raise
        `SchemaValidationFailedError` when the model output cannot be parsed
        into the item shape and `BackendFailureError` for any other failure.
        """
        ...


class PydanticAIBackend(ModelBackendProtocol):
    """Backend streaming structured output through a pydantic-ai Agent."""

    def __init__(self, model: Model | str | None = None) -> None:
        # Lazy model creation avoids requiring GEMINI_API_KEY at import time.
        self._model = model
        self._agents: dict[StudyMode, Agent[None, Any]] = {}

    def _agent_for(self, config: ModeConfig) -> Agent[None, Any]:
        agent = self._agents.get(config.mode)
        if agent is None:
            if self._model is None:
                self._model = get_generation_model()
            agent = Agent(
                self._model,
                output_type=list[config.item_model],  # type: ignore[name-defined]
                system_prompt=config.system_prompt,
                retries=0,
            )
            self._agents[config.mode] = agent
        return agent

    async def stream_items(
        self, config: ModeConfig, document: DecodedDocument
    ) -> AsyncIterator[list[Any]]:
        agent = self._agent_for(config)
        prompt: list[str | BinaryContent] = [
            config.user_prompt,
            BinaryContent(data=document.content, media_type=document.mime_type),
        ]
        logger.debug(
            "Starting %s generation for %s (%d bytes)",
            config.mode.value,
            document.name,
            len(document.content),
        )
        try:
            async with agent.run_stream(prompt) as result:
                async for partial in result.stream_output(debounce_by=None):
                    yield list(partial)
                final = await result.get_output()
        except ValidationError as exc:
            raise SchemaValidationFailedError(format_validation_errors(exc)) from exc
        except UnexpectedModelBehavior as exc:
            raise SchemaValidationFailedError(exc.message) from exc
        except AgentRunError as exc:
            raise BackendFailureError(f"Model request failed: {exc.message}") from exc
        yield list(final)
