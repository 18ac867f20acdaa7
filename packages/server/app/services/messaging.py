"""
Messaging service — chat sessions, session membership, and messages.
"""

from __future__ import annotations

import asyncio
import uuid
from typing import Any, Iterable, Optional

import structlog
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.database import PersistenceGateway, build_upsert
from app.core.errors import PermissionDeniedError, PersistenceError
from app.core.validation import require_id, require_text
from app.models.base import utcnow
from app.models.message import Message
from app.models.message_session import MessageSession, SessionMember
from app.models.profile import Profile
from orgchat_shared.schemas.messaging import (
    Message as MessageOut,
    MessageSession as MessageSessionOut,
    MessageSessionUser,
)

log = structlog.get_logger()


# ---------------------------------------------------------------------------
# Response shaping
# ---------------------------------------------------------------------------

def shape_session(message_session: MessageSession) -> MessageSessionOut:
    return MessageSessionOut.model_validate(message_session)


def shape_session_membership(
    member: SessionMember, message_session: Optional[MessageSession]
) -> MessageSessionUser:
    """Public membership shape: the storage-internal `role` is dropped."""
    return MessageSessionUser(
        user_id=member.user_id,
        message_session=shape_session(message_session) if message_session is not None else None,
        created_at=member.created_at,
    )


def shape_message(message: Message, profile: Optional[Profile] = None) -> MessageOut:
    """Public message shape with the author's profile spliced in when known."""
    out = MessageOut(
        id=message.id,
        message_session_id=message.message_session_id,
        user_id=message.user_id,
        message=message.message,
        timestamp=message.timestamp,
        created_at=message.created_at,
        updated_at=message.updated_at,
    )
    if profile is not None:
        if profile.id:
            out.profile_id = profile.id
        if profile.full_name:
            out.profile_full_name = profile.full_name
    return out


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------

async def create_session(
    organization_id: Any, title: Any, session: AsyncSession
) -> MessageSession:
    organization_id = require_id(organization_id, "organizationId")
    title = require_text(title, "title")

    message_session = MessageSession(organization_id=organization_id, title=title)
    session.add(message_session)
    await session.flush()

    log.info(
        "session.created",
        session_id=str(message_session.id),
        organization_id=str(organization_id),
    )
    return message_session


async def add_member(
    user_id: uuid.UUID, session_id: uuid.UUID, session: AsyncSession
) -> None:
    """Insert-or-no-op on (user_id, message_session)."""
    stmt = build_upsert(
        session,
        SessionMember,
        {"user_id": user_id, "message_session": session_id},
        conflict_columns=("user_id", "message_session"),
    )
    await session.execute(stmt)
    log.debug("session.member_added", session_id=str(session_id), user_id=str(user_id))


async def add_members(
    user_ids: Iterable[uuid.UUID], session_id: uuid.UUID, gateway: PersistenceGateway
) -> None:
    """Add members concurrently, one transaction each.

    Waits for every insert before re-raising the first failure, so a failed
    call can leave the session with only some of its members.
    """

    async def _add(user_id: uuid.UUID) -> None:
        async with gateway.session() as session:
            await add_member(user_id, session_id, session)

    results = await asyncio.gather(
        *(_add(user_id) for user_id in user_ids), return_exceptions=True
    )
    failures = [result for result in results if isinstance(result, BaseException)]
    if failures:
        log.warning(
            "session.members_partially_added",
            session_id=str(session_id),
            failed=len(failures),
            total=len(results),
        )
        raise failures[0]


async def is_member(
    user_id: uuid.UUID, session_id: uuid.UUID, session: AsyncSession
) -> bool:
    result = await session.execute(
        select(SessionMember.user_id).where(
            SessionMember.user_id == user_id,
            SessionMember.message_session == session_id,
        )
    )
    return result.first() is not None


async def list_sessions_for_user(
    user_id: uuid.UUID, session: AsyncSession
) -> list[MessageSessionUser]:
    result = await session.execute(
        select(SessionMember, MessageSession)
        .outerjoin(MessageSession, MessageSession.id == SessionMember.message_session)
        .where(SessionMember.user_id == user_id)
    )
    return [shape_session_membership(member, ms) for member, ms in result.all()]


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------

async def create_message(
    session_id: Any, user_id: uuid.UUID, content: Any, session: AsyncSession
) -> MessageOut:
    """Append a message and overwrite the session's `last_message_sent`.

    Only members of the session may post. The message is rolled back with
    the transaction if the session row cannot be updated.
    """
    session_id = require_id(session_id, "sessionId")
    content = require_text(content, "content")

    if not await is_member(user_id, session_id, session):
        raise PermissionDeniedError("You are not a member of this session")

    message = Message(
        message_session_id=session_id,
        user_id=user_id,
        message=content,
        timestamp=utcnow(),
    )
    session.add(message)
    await session.flush()

    result = await session.execute(
        update(MessageSession)
        .where(MessageSession.id == session_id)
        .values(last_message_sent=content, updated_at=utcnow())
    )
    if result.rowcount != 1:
        raise PersistenceError(
            detail=f"last_message_sent update matched {result.rowcount} rows for session {session_id}"
        )

    log.info("message.created", session_id=str(session_id), message_id=str(message.id))
    return shape_message(message)


async def list_messages(session_id: Any, session: AsyncSession) -> list[MessageOut]:
    """Messages of a session, oldest first."""
    session_id = require_id(session_id, "sessionId")
    result = await session.execute(
        select(Message, Profile)
        .outerjoin(Profile, Profile.id == Message.user_id)
        .where(Message.message_session_id == session_id)
        .order_by(Message.timestamp.asc(), Message.created_at.asc(), Message.id.asc())
    )
    return [shape_message(message, profile) for message, profile in result.all()]
