"""
Organization-related Pydantic schemas shared between the server and its clients.

Covers: organization creation, joining, the caller's membership list,
and the member roster of a single organization.
"""

from __future__ import annotations

import uuid
from typing import Any, Optional

from pydantic import BaseModel, Field

from .common import MembershipRole


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

# Request fields accept loose JSON; the services raise the field-specific 400s.

class CreateOrganizationRequest(BaseModel):
    name: Optional[str] = Field(None, description="Organization display name")
    description: Optional[str] = Field(None, description="Free-form description")


class JoinOrganizationRequest(BaseModel):
    organizationId: Optional[Any] = Field(None, description="Organization to join")
    role: Optional[str] = Field(None, description="Requested role (defaults to member)")


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------

class CreateOrganizationResponse(BaseModel):
    id: uuid.UUID


class OrganizationMemberRecord(BaseModel):
    organization_id: uuid.UUID
    user_id: uuid.UUID
    role: MembershipRole


class OrganizationSummary(BaseModel):
    name: str
    description: Optional[str] = None


class OrganizationMembership(BaseModel):
    organization_id: uuid.UUID
    role: MembershipRole
    organization: Optional[OrganizationSummary] = None


class GetOrganizationsResponse(BaseModel):
    organizations: list[OrganizationMembership]


class OrganizationUser(BaseModel):
    """A member of an organization, enriched with profile data when available."""

    user_id: uuid.UUID
    role: MembershipRole
    profile_id: Optional[uuid.UUID] = None
    profile_full_name: Optional[str] = None
