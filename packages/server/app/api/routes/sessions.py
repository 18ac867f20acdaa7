"""
Message session API endpoints.

POST /sessions               — Create a session and add its members
GET  /sessions               — List the caller's sessions
POST /sessions/message       — Post a message to a session
GET  /sessions/{sessionId}   — Message history, oldest first
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends

from app.core.database import PersistenceGateway, get_gateway
from app.core.errors import PersistenceError, ValidationError
from app.core.validation import normalize_user_ids, require_id, require_text
from app.services import messaging as messaging_service
from orgchat_shared.schemas.common import ApiErrorResponse
from orgchat_shared.schemas.messaging import (
    CreateMessageRequest,
    CreateSessionRequest,
    Message,
    MessageSession,
    MessageSessionUser,
)

router = APIRouter()
log = structlog.get_logger()


@router.post("", response_model=MessageSession, tags=["Sessions"])
async def create_session(
    body: CreateSessionRequest,
    gateway: PersistenceGateway = Depends(get_gateway),
):
    """Create a session. The caller is always a member, listed or not."""
    organization_id = require_id(body.organizationId, "organizationId")
    title = require_text(body.title, "title")
    member_ids = normalize_user_ids(body.users, always_include=gateway.user_id)

    try:
        async with gateway.session() as session:
            message_session = await messaging_service.create_session(
                organization_id, title, session
            )
    except PersistenceError as exc:
        raise ValidationError("Failed to create session", field="organizationId") from exc

    await messaging_service.add_members(member_ids, message_session.id, gateway)
    log.info(
        "session.members_added",
        session_id=str(message_session.id),
        members=len(member_ids),
    )
    return messaging_service.shape_session(message_session)


@router.get("", response_model=list[MessageSessionUser], tags=["Sessions"])
async def list_sessions(
    gateway: PersistenceGateway = Depends(get_gateway),
):
    """List every session the caller belongs to."""
    async with gateway.session() as session:
        return await messaging_service.list_sessions_for_user(gateway.user_id, session)


@router.post(
    "/message",
    response_model=Message,
    response_model_exclude_none=True,
    responses={403: {"model": ApiErrorResponse, "description": "Caller is not a session member"}},
    tags=["Sessions"],
)
async def create_message(
    body: CreateMessageRequest,
    gateway: PersistenceGateway = Depends(get_gateway),
):
    """Post a message as the caller; updates the session's last message."""
    session_id = require_id(body.sessionId, "sessionId")
    content = require_text(body.content, "content")

    async with gateway.session() as session:
        return await messaging_service.create_message(
            session_id, gateway.user_id, content, session
        )


@router.get(
    "/{sessionId}",
    response_model=list[Message],
    response_model_exclude_none=True,
    tags=["Sessions"],
)
async def list_messages(
    sessionId: str,
    gateway: PersistenceGateway = Depends(get_gateway),
):
    """Full message history of a session in chronological order."""
    session_id = require_id(sessionId, "sessionId")

    async with gateway.session() as session:
        return await messaging_service.list_messages(session_id, session)
