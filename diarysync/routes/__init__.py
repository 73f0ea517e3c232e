"""API routes."""

from .diaries import router as diaries_router

__all__ = [
    "diaries_router",
]
