"""Model factory for study-set generation.

Usage:
    from services.generation.model_factory import get_generation_model

    model = get_generation_model()  # Returns a pydantic-ai Model
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, cast

from pydantic_ai.models import Model
from pydantic_ai.models.google import GoogleModel
from pydantic_ai.providers.google import GoogleProvider

from core.config import get_settings


if TYPE_CHECKING:
    from httpx import AsyncClient

logger = logging.getLogger(__name__)


def _validate_gemini_credentials() -> bool:
    """Validate that Gemini API key is configured."""
    settings = get_settings()
    if not settings.GEMINI_API_KEY:
        logger.warning("Gemini API key not configured")
        return False
    return True


def get_generation_model(http_client: AsyncClient | None = None) -> Model:
    """Get the multimodal model that reads PDFs and writes study sets.

    Args:
        http_client: Optional HTTP client for custom retry or proxy settings.

    Raises:
        ValueError: no Gemini credentials are configured.
    """
    settings = get_settings()
    if not _validate_gemini_credentials():
        raise ValueError(
            "No LLM provider configured. Set GEMINI_API_KEY to enable generation."
        )

    logger.info(f"Using Gemini generation model: {settings.GENERATION_MODEL}")
    provider = GoogleProvider(
        api_key=settings.GEMINI_API_KEY,
        http_client=http_client,
    )
    return cast(Model, GoogleModel(settings.GENERATION_MODEL, provider=provider))
