"""
Authentication API

Email/password login with internal JWT. Registration is open only to email
domains that belong to an organization; such profiles are provisioned on the
spot (see organization_service.register_profile).
"""
import logging
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from inventrack.database import get_db
from inventrack.dependencies import get_current_profile
from inventrack.models import Profile
from inventrack.schemas.user import (
    LoginRequest,
    MeResponse,
    OrganizationResponse,
    ProfileResponse,
    RefreshRequest,
    RegisterRequest,
    TokenResponse,
)
from inventrack.services import organization_service as orgs
from inventrack.utils.auth_internal import (
    CLAIM_SUB,
    CLAIM_TYPE,
    TYPE_REFRESH,
    decode_internal_token,
    issue_token_pair,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def _tokens_for(profile: Profile) -> TokenResponse:
    org_code = profile.organization.code if profile.organization else None
    access_token, refresh_token = issue_token_pair(profile.id, profile.email, org_code)
    return TokenResponse(access_token=access_token, refresh_token=refresh_token)


@router.post("/register", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
def register(body: RegisterRequest, db: Session = Depends(get_db)):
    """Create a profile for a recognized email domain and sign it in."""
    try:
        profile = orgs.register_profile(db, body.email, body.password, body.full_name)
    except orgs.DuplicateEmailError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except orgs.UnknownEmailDomainError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return _tokens_for(profile)


@router.post("/login", response_model=TokenResponse)
def login(body: LoginRequest, db: Session = Depends(get_db)):
    profile = orgs.authenticate(db, body.email, body.password)
    if not profile:
        logger.info("Failed login for %s", body.email)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return _tokens_for(profile)


@router.post("/refresh", response_model=TokenResponse)
def refresh(body: RefreshRequest, db: Session = Depends(get_db)):
    payload = decode_internal_token(body.refresh_token)
    if not payload or payload.get(CLAIM_TYPE) != TYPE_REFRESH:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid refresh token")
    profile = db.query(Profile).filter(Profile.id == _uuid_or_401(payload[CLAIM_SUB])).first()
    if not profile:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")
    return _tokens_for(profile)


def _uuid_or_401(value):
    try:
        return UUID(str(value))
    except (TypeError, ValueError):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid refresh token")


@router.get("/me", response_model=MeResponse)
def me(profile: Profile = Depends(get_current_profile)):
    return MeResponse(
        profile=ProfileResponse.model_validate(profile),
        organization=OrganizationResponse.model_validate(profile.organization) if profile.organization else None,
    )
