"""User profile (one row per identity-provider user, maintained outside this service)."""

from typing import Optional
import uuid

from sqlmodel import Field, SQLModel

from .base import CreatedAtMixin


class Profile(CreatedAtMixin, SQLModel, table=True):
    __tablename__ = "profiles"

    id: uuid.UUID = Field(primary_key=True)
    full_name: Optional[str] = None
