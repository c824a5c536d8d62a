"""
Auth and organization dependencies.

Every inventory route runs inside an organization context: the signed-in
profile, its organization, and the organization's inventory tables
(resolved through the organization's table prefix). Routes never pick tables
themselves.
"""
import logging
from typing import Optional
from uuid import UUID

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from inventrack.database import get_db
from inventrack.models import Organization, Profile, TenantTables, get_tenant_tables
from inventrack.utils.auth_internal import CLAIM_SUB, CLAIM_TYPE, TYPE_ACCESS, decode_internal_token

logger = logging.getLogger(__name__)


class OrgContext:
    """Per-request view of who is calling and which tables they may touch."""

    __slots__ = ("profile", "organization", "tables", "db")

    def __init__(self, profile: Profile, organization: Organization, tables: TenantTables, db: Session):
        self.profile = profile
        self.organization = organization
        self.tables = tables
        self.db = db

    @property
    def user_id(self):
        return self.profile.id

    @property
    def is_admin(self) -> bool:
        return self.profile.is_admin


def _bearer_token(request: Request) -> Optional[str]:
    auth = request.headers.get("Authorization")
    return (auth[7:].strip() if auth and auth.startswith("Bearer ") else None) or None


def get_current_profile(
    request: Request,
    db: Session = Depends(get_db),
) -> Profile:
    """Require a valid access token; return the signed-in profile. 401 otherwise."""
    token = _bearer_token(request)
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    payload = decode_internal_token(token)
    if not payload or payload.get(CLAIM_TYPE) != TYPE_ACCESS:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        sub = UUID(str(payload[CLAIM_SUB]))
    except (ValueError, TypeError):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    profile = db.query(Profile).filter(Profile.id == sub).first()
    if not profile:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return profile


def get_org_context(
    profile: Profile = Depends(get_current_profile),
    db: Session = Depends(get_db),
) -> OrgContext:
    """
    Resolve the caller's organization and its inventory tables.
    403 when the profile is not approved or has no active organization.
    """
    if not profile.is_approved:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Your account is pending approval.",
        )
    organization = profile.organization
    if organization is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="No organization assigned to this account.",
        )
    if not organization.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Organization is inactive.",
        )
    return OrgContext(profile, organization, get_tenant_tables(organization), db)


def require_admin(ctx: OrgContext = Depends(get_org_context)) -> OrgContext:
    """Only admins may manage roles, organizations and bulk data."""
    if not ctx.is_admin:
        logger.info("Admin-only route refused for %s", ctx.profile.email)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin privileges required.",
        )
    return ctx
