"""
Input validation helpers shared by the services.

All helpers raise `ValidationError` with a field-specific message and run
before any persistence call.
"""

from __future__ import annotations

import uuid
from typing import Any, Iterable, Optional

from app.core.errors import ValidationError
from orgchat_shared.schemas.common import MembershipRole


def require_text(value: Any, field: str) -> str:
    """Return the trimmed string, or raise if it is missing or blank."""
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} is required", field=field)
    return value.strip()


def require_id(value: Any, field: str) -> uuid.UUID:
    """Parse an opaque identifier (UUID-shaped string)."""
    if isinstance(value, uuid.UUID):
        return value
    text = require_text(value, field)
    try:
        return uuid.UUID(text)
    except ValueError:
        raise ValidationError(f"{field} must be a valid id", field=field)


def normalize_user_ids(
    values: Any, always_include: Optional[uuid.UUID] = None, field: str = "users"
) -> set[uuid.UUID]:
    """Deduplicate a client-supplied list of user ids.

    Non-string and blank entries are dropped; malformed ids are rejected.
    `always_include` is added whether or not the client listed it.
    """
    if values is None:
        values = []
    if not isinstance(values, (list, tuple)):
        raise ValidationError(f"{field} must be a list of user ids", field=field)

    user_ids: set[uuid.UUID] = set()
    for value in _non_blank_strings(values):
        try:
            user_ids.add(uuid.UUID(value.strip()))
        except ValueError:
            raise ValidationError(f"{field} must contain valid user ids", field=field)
    if always_include is not None:
        user_ids.add(always_include)
    return user_ids


def optional_role(value: Any, default: MembershipRole = MembershipRole.MEMBER) -> MembershipRole:
    if value is None:
        return default
    try:
        return MembershipRole(value)
    except ValueError:
        allowed = ", ".join(role.value for role in MembershipRole)
        raise ValidationError(f"role must be one of: {allowed}", field="role")


def _non_blank_strings(values: Iterable[Any]) -> Iterable[str]:
    for value in values:
        if isinstance(value, str) and value.strip():
            yield value
