"""
Organizations, profiles and roles.

Profiles are provisioned by email domain: the first registration from
``someone@<organization.email_domain>`` creates an approved profile in that
organization. Unknown domains are refused.
"""
import logging
from typing import List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from inventrack.config import settings
from inventrack.models import (
    ROLE_ADMIN,
    ROLE_USER,
    VALID_ROLES,
    Organization,
    Profile,
    UserRole,
    ensure_tenant_schema,
)
from inventrack.models.tenant_tables import normalize_prefix
from inventrack.utils.auth_internal import hash_password, validate_new_password, verify_password

logger = logging.getLogger(__name__)


class DuplicateEmailError(ValueError):
    pass


class UnknownEmailDomainError(ValueError):
    pass


class OrganizationNotFoundError(ValueError):
    pass


class ProfileNotFoundError(ValueError):
    pass


class DuplicateOrganizationError(ValueError):
    pass


def email_domain(email: str) -> str:
    email = (email or "").strip().lower()
    return email.rsplit("@", 1)[1] if "@" in email else ""


def find_organization_for_email(db: Session, email: str) -> Optional[Organization]:
    domain = email_domain(email)
    if not domain:
        return None
    return (
        db.query(Organization)
        .filter(Organization.email_domain == domain, Organization.is_active.is_(True))
        .first()
    )


def get_organization(db: Session, organization_id: UUID) -> Organization:
    org = db.query(Organization).filter(Organization.id == organization_id).first()
    if not org:
        raise OrganizationNotFoundError("Organization not found")
    return org


def list_organizations(db: Session, active_only: bool = True) -> List[Organization]:
    q = db.query(Organization)
    if active_only:
        q = q.filter(Organization.is_active.is_(True))
    return q.order_by(Organization.name).all()


def create_organization(
    db: Session,
    name: str,
    code: str,
    table_prefix: str = "",
    email_domain: Optional[str] = None,
    description: Optional[str] = None,
) -> Organization:
    """Create the organization row and its inventory tables."""
    code = (code or "").strip().upper()
    if not code or not (name or "").strip():
        raise ValueError("Organization name and code are required")
    prefix = normalize_prefix(table_prefix)
    if db.query(Organization).filter(Organization.code == code).first():
        raise DuplicateOrganizationError(f"Organization code '{code}' already exists")
    domain = (email_domain or "").strip().lower().lstrip("@") or None
    if domain and db.query(Organization).filter(Organization.email_domain == domain).first():
        raise DuplicateOrganizationError(f"Email domain '{domain}' is already assigned")

    org = Organization(
        name=name.strip(),
        code=code,
        table_prefix=prefix,
        email_domain=domain,
        description=description,
        is_active=True,
    )
    db.add(org)
    db.commit()
    db.refresh(org)
    ensure_tenant_schema(db.get_bind(), org)
    logger.info("Created organization %s (prefix=%r)", code, prefix)
    return org


def ensure_all_tenant_schemas(db: Session) -> int:
    """Create missing inventory tables for every active organization. Returns count."""
    bind = db.get_bind()
    ensure_tenant_schema(bind, None)
    prefixes = {""}
    for org in list_organizations(db):
        if org.table_prefix not in prefixes:
            ensure_tenant_schema(bind, org)
            prefixes.add(org.table_prefix)
    return len(prefixes)


def register_profile(db: Session, email: str, password: str, full_name: Optional[str] = None) -> Profile:
    """
    Create a profile for a known email domain.

    The profile is approved, gets ``AUTO_PROVISION_ROLE`` and a temporary
    employee id derived from its id.
    """
    email = (email or "").strip().lower()
    if not email or "@" not in email:
        raise ValueError("A valid email is required")
    if db.query(Profile).filter(Profile.email == email).first():
        raise DuplicateEmailError("An account with this email already exists")
    error = validate_new_password(password)
    if error:
        raise ValueError(error)
    org = find_organization_for_email(db, email)
    if org is None:
        raise UnknownEmailDomainError("Email domain is not recognized for any organization")

    role = settings.AUTO_PROVISION_ROLE if settings.AUTO_PROVISION_ROLE in VALID_ROLES else ROLE_USER
    profile = Profile(
        email=email,
        full_name=(full_name or "").strip() or "Admin User",
        organization_id=org.id,
        is_approved=True,
        password_hash=hash_password(password),
    )
    db.add(profile)
    db.flush()
    profile.employee_id = f"TEMP_{str(profile.id)[:8]}"
    profile.roles.append(UserRole(role=role))
    db.commit()
    db.refresh(profile)
    logger.info("Provisioned profile %s in %s as %s", email, org.code, role)
    return profile


def authenticate(db: Session, email: str, password: str) -> Optional[Profile]:
    profile = db.query(Profile).filter(Profile.email == (email or "").strip().lower()).first()
    if not profile or not verify_password(password, profile.password_hash):
        return None
    return profile


def switch_organization(db: Session, profile: Profile, organization_id: UUID) -> Profile:
    org = get_organization(db, organization_id)
    if not org.is_active:
        raise OrganizationNotFoundError("Organization is inactive")
    profile.organization_id = org.id
    db.commit()
    db.refresh(profile)
    logger.info("Profile %s switched to organization %s", profile.email, org.code)
    return profile


def list_profiles(db: Session, organization_id: UUID) -> List[Profile]:
    return (
        db.query(Profile)
        .filter(Profile.organization_id == organization_id)
        .order_by(Profile.email)
        .all()
    )


def _get_profile_in_org(db: Session, profile_id: UUID, organization_id: UUID) -> Profile:
    profile = (
        db.query(Profile)
        .filter(Profile.id == profile_id, Profile.organization_id == organization_id)
        .first()
    )
    if not profile:
        raise ProfileNotFoundError("User not found")
    return profile


def set_role(db: Session, profile_id: UUID, organization_id: UUID, role: str) -> Profile:
    """Replace the profile's role with ``role``."""
    if role not in VALID_ROLES:
        raise ValueError(f"Role must be one of: {', '.join(VALID_ROLES)}")
    profile = _get_profile_in_org(db, profile_id, organization_id)
    if role != ROLE_ADMIN and profile.is_admin and count_admins(db, organization_id) <= 1:
        raise ValueError("Cannot remove the last admin of the organization")
    profile.roles.clear()
    db.flush()
    profile.roles.append(UserRole(role=role))
    db.commit()
    db.refresh(profile)
    return profile


def set_approval(db: Session, profile_id: UUID, organization_id: UUID, approved: bool) -> Profile:
    profile = _get_profile_in_org(db, profile_id, organization_id)
    profile.is_approved = approved
    db.commit()
    db.refresh(profile)
    return profile


def count_admins(db: Session, organization_id: UUID) -> int:
    return (
        db.query(UserRole)
        .join(Profile, Profile.id == UserRole.user_id)
        .filter(Profile.organization_id == organization_id, UserRole.role == ROLE_ADMIN)
        .count()
    )
