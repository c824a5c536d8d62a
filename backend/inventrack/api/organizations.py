"""
Organizations, organization switching and role management (settings page).
"""
import logging
from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from inventrack.database import get_db
from inventrack.dependencies import OrgContext, get_current_profile, require_admin
from inventrack.models import Profile
from inventrack.schemas.user import (
    ApprovalUpdate,
    OrganizationCreate,
    OrganizationResponse,
    ProfileResponse,
    RoleUpdate,
    SwitchOrganizationRequest,
)
from inventrack.services import organization_service as orgs

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("", response_model=List[OrganizationResponse])
def list_organizations(
    profile: Profile = Depends(get_current_profile),
    db: Session = Depends(get_db),
):
    """Active organizations. Non-admins only see their own."""
    if not profile.is_admin:
        return [profile.organization] if profile.organization else []
    return orgs.list_organizations(db)


@router.post("", response_model=OrganizationResponse, status_code=status.HTTP_201_CREATED)
def create_organization(body: OrganizationCreate, ctx: OrgContext = Depends(require_admin)):
    try:
        return orgs.create_organization(
            ctx.db,
            name=body.name,
            code=body.code,
            table_prefix=body.table_prefix,
            email_domain=body.email_domain,
            description=body.description,
        )
    except orgs.DuplicateOrganizationError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.post("/switch", response_model=ProfileResponse)
def switch_organization(body: SwitchOrganizationRequest, ctx: OrgContext = Depends(require_admin)):
    """Move the signed-in admin to another organization."""
    try:
        return orgs.switch_organization(ctx.db, ctx.profile, body.organization_id)
    except orgs.OrganizationNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


@router.get("/users", response_model=List[ProfileResponse])
def list_users(ctx: OrgContext = Depends(require_admin)):
    return orgs.list_profiles(ctx.db, ctx.organization.id)


@router.put("/users/{profile_id}/role", response_model=ProfileResponse)
def update_role(profile_id: UUID, body: RoleUpdate, ctx: OrgContext = Depends(require_admin)):
    try:
        return orgs.set_role(ctx.db, profile_id, ctx.organization.id, body.role)
    except orgs.ProfileNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.put("/users/{profile_id}/approval", response_model=ProfileResponse)
def update_approval(profile_id: UUID, body: ApprovalUpdate, ctx: OrgContext = Depends(require_admin)):
    try:
        return orgs.set_approval(ctx.db, profile_id, ctx.organization.id, body.is_approved)
    except orgs.ProfileNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
