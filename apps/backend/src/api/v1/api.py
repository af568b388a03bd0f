from fastapi import APIRouter

from .generation import router as generation_router
from .health import router as health_router


# Public API router; DocQuiz has no accounts so every route is unauthenticated
api_router = APIRouter()

api_router.include_router(health_router, tags=["health"])
api_router.include_router(generation_router)
