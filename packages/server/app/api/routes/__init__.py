"""
API Router

Every endpoint except the health checks requires a bearer token.
"""

from fastapi import APIRouter

from orgchat_shared.schemas.common import ApiErrorResponse
from . import auth, organizations, sessions

ERROR_RESPONSES = {
    400: {"model": ApiErrorResponse, "description": "Invalid input"},
    401: {"model": ApiErrorResponse, "description": "Missing or invalid token"},
    500: {"model": ApiErrorResponse, "description": "Persistence failure"},
}

router = APIRouter(responses=ERROR_RESPONSES)

router.include_router(auth.router, prefix="/auth", tags=["Authentication"])
router.include_router(organizations.router, prefix="/organization", tags=["Organizations"])
router.include_router(sessions.router, prefix="/sessions", tags=["Sessions"])
