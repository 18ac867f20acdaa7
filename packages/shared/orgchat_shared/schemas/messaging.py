"""Message session and message schemas."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

class CreateSessionRequest(BaseModel):
    organizationId: Optional[Any] = None
    users: Optional[Any] = Field(None, description="User ids to add besides the caller")
    title: Optional[str] = None


class CreateMessageRequest(BaseModel):
    sessionId: Optional[Any] = None
    content: Optional[str] = None


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------

class MessageSession(BaseModel):
    id: uuid.UUID
    organization_id: uuid.UUID
    title: str
    last_message_sent: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class MessageSessionUser(BaseModel):
    """A session membership row with the session embedded. Never carries a role."""

    user_id: uuid.UUID
    message_session: Optional[MessageSession] = None
    created_at: Optional[datetime] = None


class Message(BaseModel):
    id: uuid.UUID
    message_session_id: uuid.UUID
    user_id: uuid.UUID
    message: str
    timestamp: datetime
    profile_id: Optional[uuid.UUID] = None
    profile_full_name: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
