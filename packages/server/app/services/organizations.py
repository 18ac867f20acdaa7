"""
Organization service — business logic for organizations and memberships.
"""

from __future__ import annotations

import uuid
from typing import Any, Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.database import build_upsert
from app.core.errors import PersistenceError
from app.core.validation import require_id, require_text
from app.models.organization import Organization
from app.models.organization_member import OrganizationMember
from app.models.profile import Profile
from orgchat_shared.schemas.common import MembershipRole
from orgchat_shared.schemas.organizations import (
    OrganizationMemberRecord,
    OrganizationMembership,
    OrganizationSummary,
    OrganizationUser,
)

log = structlog.get_logger()


async def create_organization(
    name: Any, description: Any, session: AsyncSession
) -> Organization:
    """Insert an organization. The caller is responsible for assigning an owner."""
    name = require_text(name, "Organization name")
    description = description.strip() if isinstance(description, str) else ""

    org = Organization(name=name, description=description)
    session.add(org)
    await session.flush()

    log.info("organization.created", organization_id=str(org.id))
    return org


async def join_organization(
    organization_id: Any,
    user_id: uuid.UUID,
    role: MembershipRole,
    session: AsyncSession,
) -> Optional[OrganizationMemberRecord]:
    """Upsert a membership; re-joining updates the role instead of duplicating.

    Returns None when the store does not hand the row back (hidden by RLS).
    """
    organization_id = require_id(organization_id, "organizationId")
    role = MembershipRole(role)

    stmt = build_upsert(
        session,
        OrganizationMember,
        {"organization_id": organization_id, "user_id": user_id, "role": role.value},
        conflict_columns=("organization_id", "user_id"),
        update_columns=("role",),
    ).returning(
        OrganizationMember.organization_id,
        OrganizationMember.user_id,
        OrganizationMember.role,
    )
    result = await session.execute(stmt)
    row = result.mappings().one_or_none()

    log.info(
        "organization.member_joined",
        organization_id=str(organization_id),
        user_id=str(user_id),
        role=role.value,
    )
    if row is None:
        return None
    return OrganizationMemberRecord(**row)


async def create_organization_with_owner(
    name: Any, description: Any, owner_id: uuid.UUID, session: AsyncSession
) -> Organization:
    """Create an organization and make `owner_id` its owner in the same transaction."""
    org = await create_organization(name, description, session)
    membership = await join_organization(org.id, owner_id, MembershipRole.OWNER, session)
    if membership is None:
        raise PersistenceError(detail=f"owner membership for {org.id} was not returned")
    return org


async def list_organizations_for_user(
    user_id: uuid.UUID, session: AsyncSession
) -> list[OrganizationMembership]:
    """All memberships of a user, each with its organization's name and description."""
    result = await session.execute(
        select(OrganizationMember, Organization)
        .outerjoin(Organization, Organization.id == OrganizationMember.organization_id)
        .where(OrganizationMember.user_id == user_id)
    )
    return [
        OrganizationMembership(
            organization_id=membership.organization_id,
            role=membership.role,
            organization=(
                OrganizationSummary(name=org.name, description=org.description)
                if org is not None
                else None
            ),
        )
        for membership, org in result.all()
    ]


def shape_organization_user(
    membership: OrganizationMember, profile: Optional[Profile]
) -> OrganizationUser:
    """Public member shape; profile fields are set only when the profile provides them."""
    user = OrganizationUser(user_id=membership.user_id, role=membership.role)
    if profile is not None:
        if profile.id:
            user.profile_id = profile.id
        if profile.full_name:
            user.profile_full_name = profile.full_name
    return user


async def list_members(
    organization_id: Any, session: AsyncSession
) -> list[OrganizationUser]:
    """Members of an organization; members without a profile are still listed."""
    organization_id = require_id(organization_id, "organizationId")
    result = await session.execute(
        select(OrganizationMember, Profile)
        .outerjoin(Profile, Profile.id == OrganizationMember.user_id)
        .where(OrganizationMember.organization_id == organization_id)
    )
    return [shape_organization_user(membership, profile) for membership, profile in result.all()]
