"""Shared test fixtures for pytest.

ENVIRONMENT is forced to ``test`` before the app is imported so settings never
read a local ``.env`` file, and the generation handler dependency is
overridden with a scripted fake backend so no model request ever leaves the
process.
"""

import os
from collections.abc import AsyncGenerator, Generator

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from httpx import ASGITransport, AsyncClient
from pydantic_ai import models


os.environ["ENVIRONMENT"] = "test"

# Block any real model requests in tests
models.ALLOW_MODEL_REQUESTS = False

from api.v1.generation import get_generation_handler
from main import app
from services.generation.handler import GenerationHandler

from tests.fixtures.generation_fixtures import FakeBackend, growing_snapshots, quiz_items


@pytest.fixture
def fake_backend() -> FakeBackend:
    """Backend that streams four valid quiz questions one at a time."""
    return FakeBackend(growing_snapshots(quiz_items()))


@pytest.fixture
def generation_handler(fake_backend: FakeBackend) -> GenerationHandler:
    return GenerationHandler(backend=fake_backend, timeout_seconds=5.0)


@pytest.fixture
def client(
    generation_handler: GenerationHandler,
) -> Generator[TestClient, None, None]:
    """
    Create a test client for the FastAPI application.
    """
    app.dependency_overrides[get_generation_handler] = lambda: generation_handler
    with TestClient(app) as client:
        yield client
    app.dependency_overrides.pop(get_generation_handler, None)


@pytest_asyncio.fixture
async def async_client(
    generation_handler: GenerationHandler,
) -> AsyncGenerator[AsyncClient, None]:
    """Async client with the generation handler overridden."""
    app.dependency_overrides[get_generation_handler] = lambda: generation_handler
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client
    app.dependency_overrides.pop(get_generation_handler, None)
