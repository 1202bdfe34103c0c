"""
FastAPI dependencies for authentication, database and services.
"""
from dataclasses import dataclass
from typing import Annotated
from uuid import UUID

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from agencyhub.core.exceptions import ForbiddenError, UnauthorizedError
from agencyhub.core.security import ROLE_SUPER_ADMIN, check_permission, decode_token
from agencyhub.database import AsyncSessionLocal, get_db
from agencyhub.services.provisioning import ProvisioningEngine, get_provisioning_engine
from agencyhub.services.tenant_connections import (
    TenantConnectionManager,
    get_connection_manager,
)

security = HTTPBearer()


@dataclass
class Principal:
    """The authenticated caller, as asserted by the access token."""
    subject: str
    role: str
    agency_id: UUID | None = None

    @property
    def is_super_admin(self) -> bool:
        return self.role == ROLE_SUPER_ADMIN


async def get_current_principal(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
) -> Principal:
    """Get the current caller from the JWT bearer token."""
    credentials_exception = UnauthorizedError("Could not validate credentials")

    payload = decode_token(credentials.credentials)
    if payload is None:
        raise credentials_exception

    subject = payload.get("sub")
    role = payload.get("role")
    if subject is None or role is None:
        raise credentials_exception

    agency_id = payload.get("agency_id")
    try:
        agency_uuid = UUID(agency_id) if agency_id else None
    except ValueError:
        raise credentials_exception

    return Principal(subject=subject, role=role, agency_id=agency_uuid)


def require_permission(permission: str):
    """Dependency factory for permission checking."""

    async def permission_checker(
        principal: Annotated[Principal, Depends(get_current_principal)],
    ) -> Principal:
        if not check_permission(principal.role, permission):
            raise ForbiddenError(f"Permission denied: {permission}")
        return principal

    return permission_checker


def require_roles(*roles: str):
    """Dependency factory for role checking."""

    async def role_checker(
        principal: Annotated[Principal, Depends(get_current_principal)],
    ) -> Principal:
        if principal.role not in roles:
            raise ForbiddenError(f"Role required: {', '.join(roles)}")
        return principal

    return role_checker


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Session factory for services that manage their own transactions."""
    return AsyncSessionLocal


# Common dependencies
CurrentPrincipal = Annotated[Principal, Depends(get_current_principal)]
SuperAdmin = Annotated[Principal, Depends(require_roles(ROLE_SUPER_ADMIN))]
DbSession = Annotated[AsyncSession, Depends(get_db)]
SessionFactory = Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)]
Provisioning = Annotated[ProvisioningEngine, Depends(get_provisioning_engine)]
ConnectionManager = Annotated[TenantConnectionManager, Depends(get_connection_manager)]
