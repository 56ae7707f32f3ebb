"""
Submission Routes Module

- crud.py: Create, list, get, edit and clone submissions, history and audit
- actions.py: Submit, verification, approve and reject

All routes are combined into a single router for inclusion in the API.
"""

from fastapi import APIRouter

from .crud import router as crud_router
from .actions import router as actions_router

router = APIRouter()

# crud_router registers /pending before /{submission_id}
router.include_router(crud_router)
router.include_router(actions_router)

__all__ = ["router"]
