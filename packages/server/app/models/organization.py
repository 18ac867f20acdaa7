"""Organization model."""

from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin


class Organization(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "organization"

    name: str = Field(nullable=False, index=True)
    description: str = Field(default="", nullable=False)
