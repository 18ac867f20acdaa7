"""
Bearer-token authentication for OrgChat.

Tokens are issued by the hosted identity provider (HS256, `aud=authenticated`,
`sub` = user id). The server only verifies them; it never stores credentials.
The verified `Identity` doubles as the request-scoped credential handed to
the persistence gateway.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import jwt
import structlog
from fastapi import Depends
from fastapi.security import APIKeyHeader

from app.core.config import get_settings
from app.core.errors import AuthError

log = structlog.get_logger()

authorization_header = APIKeyHeader(name="Authorization", auto_error=False)


@dataclass(frozen=True)
class Identity:
    """The authenticated caller: user id plus the raw token and its claims."""

    user_id: uuid.UUID
    token: str
    claims: dict[str, Any] = field(default_factory=dict, compare=False)


# ---------------------------------------------------------------------------
# Token handling
# ---------------------------------------------------------------------------

def extract_bearer_token(header: Optional[str]) -> str:
    """Return the token from an `Authorization: Bearer <token>` header."""
    if not header:
        raise AuthError("Unauthorized")
    parts = header.split(" ")
    if len(parts) != 2 or parts[0].lower() != "bearer" or not parts[1]:
        raise AuthError("Unauthorized")
    return parts[1]


def create_access_token(
    user_id: uuid.UUID,
    *,
    expires_delta: timedelta | None = None,
    extra_claims: dict[str, Any] | None = None,
) -> str:
    """Mint a token shaped like the identity provider's (dev tooling and tests)."""
    settings = get_settings()
    now = datetime.now(timezone.utc)
    payload: dict[str, Any] = {
        "sub": str(user_id),
        "aud": settings.jwt_audience,
        "role": settings.db_role,
        "iat": now,
        "exp": now + (expires_delta or timedelta(hours=1)),
    }
    if extra_claims:
        payload.update(extra_claims)
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def verify_access_token(token: str) -> Identity:
    """Verify signature, expiry and audience. Raises AuthError on any failure."""
    settings = get_settings()
    try:
        claims = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            audience=settings.jwt_audience,
            options={"require": ["sub", "exp"]},
        )
    except jwt.PyJWTError as exc:
        log.info("auth.token_rejected", reason=str(exc))
        raise AuthError("Invalid or expired token")

    try:
        user_id = uuid.UUID(str(claims["sub"]))
    except ValueError:
        log.info("auth.token_rejected", reason="subject is not a user id")
        raise AuthError("Invalid or expired token")

    return Identity(user_id=user_id, token=token, claims=claims)


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------

async def get_identity(
    authorization: Optional[str] = Depends(authorization_header),
) -> Identity:
    """Resolve the caller's identity or fail with 401."""
    token = extract_bearer_token(authorization)
    identity = verify_access_token(token)
    structlog.contextvars.bind_contextvars(user_id=str(identity.user_id))
    return identity
