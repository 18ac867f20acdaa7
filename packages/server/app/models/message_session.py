"""Message session and session membership models (RLS-scoped)."""

from typing import Optional
import uuid

from sqlmodel import Field, SQLModel

from .base import CreatedAtMixin, TimestampMixin, UUIDMixin


class MessageSession(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "message_session"

    organization_id: uuid.UUID = Field(foreign_key="organization.id", nullable=False, index=True)
    title: str = Field(nullable=False)
    # Body of the most recent message; last write wins.
    last_message_sent: Optional[str] = None


class SessionMember(CreatedAtMixin, SQLModel, table=True):
    __tablename__ = "message_session_users"

    user_id: uuid.UUID = Field(primary_key=True, index=True)
    message_session: uuid.UUID = Field(foreign_key="message_session.id", primary_key=True)
    role: Optional[str] = None  # storage-internal, never returned
