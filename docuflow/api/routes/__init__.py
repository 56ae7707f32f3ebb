"""API Routes module"""
from fastapi import APIRouter

from .submissions import router as submissions_router

# Main API router
api_router = APIRouter()

api_router.include_router(submissions_router, prefix="/submissions", tags=["Submissions"])

__all__ = ["api_router"]
