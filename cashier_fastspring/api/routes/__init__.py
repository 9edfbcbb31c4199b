"""API Routes."""

from fastapi import APIRouter

from .health import router as health_router
from .webhook import router as webhook_router

# Create main API router
api_router = APIRouter()

api_router.include_router(health_router, tags=["Health"])
api_router.include_router(webhook_router)

__all__ = ["api_router"]
