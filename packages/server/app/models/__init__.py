# Table models; importing this package populates SQLModel.metadata for Alembic and init_db.
from .base import CreatedAtMixin, TimestampMixin, UUIDMixin  # noqa: F401
from .organization import Organization  # noqa: F401
from .organization_member import OrganizationMember  # noqa: F401
from .profile import Profile  # noqa: F401
from .message_session import MessageSession, SessionMember  # noqa: F401
from .message import Message  # noqa: F401
