"""
Organization API endpoints.

POST /organization                            — Create an org; the caller becomes owner
POST /organization/member                     — Join an org (upsert)
GET  /organization                            — List the caller's memberships
GET  /organization/{organizationId}/users     — List members of an org
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends

from app.core.database import PersistenceGateway, get_gateway
from app.core.errors import ValidationError
from app.core.validation import optional_role, require_id, require_text
from app.services import organizations as org_service
from orgchat_shared.schemas.common import MembershipRole
from orgchat_shared.schemas.organizations import (
    CreateOrganizationRequest,
    CreateOrganizationResponse,
    GetOrganizationsResponse,
    JoinOrganizationRequest,
    OrganizationMemberRecord,
    OrganizationUser,
)

router = APIRouter()


@router.post("", response_model=CreateOrganizationResponse, tags=["Organizations"])
async def create_organization(
    body: CreateOrganizationRequest,
    gateway: PersistenceGateway = Depends(get_gateway),
):
    """Create an organization. The creator is made owner in the same transaction."""
    name = require_text(body.name, "Organization name")

    async with gateway.session() as session:
        org = await org_service.create_organization_with_owner(
            name, body.description, gateway.user_id, session
        )
    return CreateOrganizationResponse(id=org.id)


@router.post(
    "/member",
    response_model=Optional[OrganizationMemberRecord],
    tags=["Organizations"],
)
async def join_organization(
    body: JoinOrganizationRequest,
    gateway: PersistenceGateway = Depends(get_gateway),
):
    """Join an organization as member (default) or admin. Re-joining updates the role."""
    organization_id = require_id(body.organizationId, "organizationId")
    role = optional_role(body.role)
    if role == MembershipRole.OWNER:
        raise ValidationError("owner role is only granted when creating an organization", field="role")

    async with gateway.session() as session:
        return await org_service.join_organization(
            organization_id, gateway.user_id, role, session
        )


@router.get("", response_model=GetOrganizationsResponse, tags=["Organizations"])
async def list_organizations(
    gateway: PersistenceGateway = Depends(get_gateway),
):
    """List the organizations the caller belongs to, with their role."""
    async with gateway.session() as session:
        items = await org_service.list_organizations_for_user(gateway.user_id, session)
    return GetOrganizationsResponse(organizations=items)


@router.get(
    "/{organizationId}/users",
    response_model=list[OrganizationUser],
    response_model_exclude_none=True,
    tags=["Organizations"],
)
async def list_organization_users(
    organizationId: str,
    gateway: PersistenceGateway = Depends(get_gateway),
):
    """List the members of an organization with their profile names."""
    organization_id = require_id(organizationId, "organizationId")

    async with gateway.session() as session:
        return await org_service.list_members(organization_id, session)
