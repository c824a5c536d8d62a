"""
Auth, profile and organization schemas
"""
from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime
from uuid import UUID


class RegisterRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., min_length=1)
    full_name: Optional[str] = None


class LoginRequest(BaseModel):
    email: str
    password: str


class RefreshRequest(BaseModel):
    refresh_token: str


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class OrganizationBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    code: str = Field(..., min_length=1, max_length=50)
    description: Optional[str] = None
    table_prefix: str = Field(default="", max_length=50, description="Empty = unprefixed base tables")
    email_domain: Optional[str] = Field(None, description="Users with this email domain are provisioned here")


class OrganizationCreate(OrganizationBase):
    pass


class OrganizationResponse(OrganizationBase):
    id: UUID
    is_active: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ProfileResponse(BaseModel):
    id: UUID
    email: str
    full_name: Optional[str] = None
    employee_id: Optional[str] = None
    organization_id: Optional[UUID] = None
    is_approved: bool
    role_names: List[str] = []
    is_admin: bool = False

    class Config:
        from_attributes = True


class MeResponse(BaseModel):
    profile: ProfileResponse
    organization: Optional[OrganizationResponse] = None


class SwitchOrganizationRequest(BaseModel):
    organization_id: UUID


class RoleUpdate(BaseModel):
    role: str = Field(..., description="admin | user")


class ApprovalUpdate(BaseModel):
    is_approved: bool
