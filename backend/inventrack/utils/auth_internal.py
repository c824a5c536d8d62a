"""
Profile authentication helpers: bcrypt password hashes and signed JWTs.

Every token names the profile (``sub``) and the organization it was issued
for (``org``). Access and refresh tokens differ only in ``type`` and
lifetime; the refresh endpoint rejects anything that is not a refresh token.
"""
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple
from uuid import uuid4

import bcrypt
from jose import JWTError, jwt

from inventrack.config import settings

# bcrypt ignores input past 72 bytes and newer releases raise on it
_BCRYPT_LIMIT = 72
MIN_PASSWORD_LENGTH = 8

CLAIM_SUB = "sub"
CLAIM_EMAIL = "email"
CLAIM_ORG = "org"
CLAIM_TYPE = "type"

TYPE_ACCESS = "access"
TYPE_REFRESH = "refresh"
TOKEN_ISSUER = "inventrack"


def _secret(password: str) -> bytes:
    return password.encode("utf-8")[:_BCRYPT_LIMIT]


def hash_password(password: str) -> str:
    return bcrypt.hashpw(_secret(password), bcrypt.gensalt()).decode("ascii")


def verify_password(password: str, password_hash: Optional[str]) -> bool:
    """False for profiles without a stored hash or with a malformed one."""
    if not password_hash:
        return False
    try:
        return bcrypt.checkpw(_secret(password), password_hash.encode("ascii"))
    except ValueError:
        return False


def validate_new_password(password: str) -> Optional[str]:
    """Error message for a password that is too weak, else None."""
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        return f"Password must be at least {MIN_PASSWORD_LENGTH} characters."
    if not any(c.isalpha() for c in password) or not any(c.isdigit() for c in password):
        return "Password must contain at least one letter and one digit."
    return None


def _sign(profile_id, email: str, organization_code: Optional[str], token_type: str, lifetime: timedelta) -> str:
    issued = datetime.now(timezone.utc)
    claims = {
        CLAIM_SUB: str(profile_id),
        CLAIM_EMAIL: email,
        CLAIM_ORG: organization_code,
        CLAIM_TYPE: token_type,
        "jti": uuid4().hex,
        "iss": TOKEN_ISSUER,
        "iat": issued,
        "exp": issued + lifetime,
    }
    return jwt.encode(claims, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def issue_token_pair(profile_id, email: str, organization_code: Optional[str] = None) -> Tuple[str, str]:
    """Return ``(access_token, refresh_token)`` for a signed-in profile."""
    access = _sign(
        profile_id, email, organization_code, TYPE_ACCESS,
        timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
    )
    refresh = _sign(
        profile_id, email, organization_code, TYPE_REFRESH,
        timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS),
    )
    return access, refresh


def decode_internal_token(token: str) -> Optional[dict]:
    """Claims of a valid, unexpired token from this service; None otherwise."""
    try:
        claims = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM], issuer=TOKEN_ISSUER)
    except JWTError:
        return None
    return claims if claims.get(CLAIM_SUB) else None
