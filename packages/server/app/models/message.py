"""Message model (append-only, RLS-scoped)."""

from datetime import datetime
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin, utcnow


class Message(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "message"
    __table_args__ = (
        sa.Index("ix_message_session_timestamp", "message_session_id", "timestamp"),
    )

    message_session_id: uuid.UUID = Field(foreign_key="message_session.id", nullable=False)
    user_id: uuid.UUID = Field(nullable=False, index=True)
    message: str = Field(nullable=False)
    timestamp: datetime = Field(
        default_factory=utcnow,
        nullable=False,
        sa_type=sa.DateTime(timezone=True),
    )
