from enum import Enum
from pydantic import BaseModel


class MembershipRole(str, Enum):
    OWNER = "owner"
    ADMIN = "admin"
    MEMBER = "member"


class ApiErrorResponse(BaseModel):
    error: str


class AuthTestResponse(BaseModel):
    Success: str
