"""
Password hashing, access tokens and role permissions.

Access tokens are issued by the platform's identity service; AgencyHub
only verifies them. ``create_access_token`` exists for operators and tests.
"""
from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import UUID

from jose import JWTError, jwt
from passlib.context import CryptContext

from agencyhub.config import settings

# Tenant admin passwords are hashed before they reach the tenant database
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

ROLE_SUPER_ADMIN = "super_admin"
ROLE_AGENCY_ADMIN = "agency_admin"
ROLE_AGENCY_USER = "agency_user"


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def create_access_token(
    subject: str,
    role: str,
    agency_id: UUID | str | None = None,
    expires_delta: timedelta | None = None,
) -> str:
    """Sign a token asserting ``subject`` acts with ``role``.

    Agency roles carry the agency the principal belongs to; super admin
    tokens usually have none.
    """
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    claims: dict[str, Any] = {"sub": subject, "role": role, "exp": expire}
    if agency_id is not None:
        claims["agency_id"] = str(agency_id)

    return jwt.encode(claims, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str) -> dict[str, Any] | None:
    """Return the token claims, or None if the signature or expiry is invalid."""
    try:
        return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except JWTError:
        return None


PERMISSIONS: dict[str, frozenset[str]] = {
    ROLE_SUPER_ADMIN: frozenset({
        "agency:read", "agency:deactivate",
        "catalog:read", "catalog:write",
        "module_request:create", "module_request:read", "module_request:review",
        "system:read",
    }),
    ROLE_AGENCY_ADMIN: frozenset({
        "catalog:read",
        "module_request:create", "module_request:read",
    }),
    ROLE_AGENCY_USER: frozenset({
        "catalog:read",
    }),
}


def check_permission(role: str, permission: str) -> bool:
    return permission in PERMISSIONS.get(role, frozenset())
