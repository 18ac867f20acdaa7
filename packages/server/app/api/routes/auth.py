"""
Authentication check endpoint.

GET /auth/test — Succeeds only with a valid bearer token
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from app.core.auth import Identity, get_identity
from orgchat_shared.schemas.common import AuthTestResponse

router = APIRouter()


@router.get("/test", response_model=AuthTestResponse)
async def auth_test(identity: Identity = Depends(get_identity)):
    """Round-trip check for clients holding a token."""
    return AuthTestResponse(Success="Path Worked")
