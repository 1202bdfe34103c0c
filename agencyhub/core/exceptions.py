"""
HTTP exceptions and domain errors for AgencyHub.
"""
from enum import Enum

from fastapi import HTTPException, status


class NotFoundError(HTTPException):
    """Resource not found exception."""

    def __init__(self, resource: str = "Resource"):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"{resource} not found"
        )


class ForbiddenError(HTTPException):
    """Access denied exception."""

    def __init__(self, detail: str = "Access denied"):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=detail
        )


class BadRequestError(HTTPException):
    """Bad request exception."""

    def __init__(self, detail: str | dict):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=detail
        )


class ConflictError(HTTPException):
    """Conflict exception (e.g., duplicate resource)."""

    def __init__(self, detail: str | dict):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=detail
        )


class UnauthorizedError(HTTPException):
    """Unauthorized exception."""

    def __init__(self, detail: str = "Invalid credentials"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"},
        )


class ServiceUnavailableError(HTTPException):
    """Infrastructure failure the caller may retry."""

    def __init__(self, detail: str | dict = "Service temporarily unavailable, please try again"):
        super().__init__(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=detail,
        )


# ============================================================================
# Domain errors
# ============================================================================

class ErrorCode(str, Enum):
    DOMAIN_TAKEN = "DOMAIN_TAKEN"
    DATABASE_CREATE_FAILED = "DATABASE_CREATE_FAILED"
    SCHEMA_MIGRATION_FAILED = "SCHEMA_MIGRATION_FAILED"
    SEED_FAILED = "SEED_FAILED"
    TENANT_NOT_READY = "TENANT_NOT_READY"
    INVALID_PROFILE = "INVALID_PROFILE"
    MODULE_REQUEST_CONFLICT = "MODULE_REQUEST_CONFLICT"
    MODULE_REQUEST_NOT_FOUND = "MODULE_REQUEST_NOT_FOUND"
    POOL_EXHAUSTED = "POOL_EXHAUSTED"
    UNKNOWN_MODULE = "UNKNOWN_MODULE"
    INVALID_DOMAIN = "INVALID_DOMAIN"
    INVALID_DATABASE_NAME = "INVALID_DATABASE_NAME"
    CATALOG_ENTRY_LOCKED = "CATALOG_ENTRY_LOCKED"


class AgencyHubError(Exception):
    """Base class for errors raised by AgencyHub services."""

    code: ErrorCode

    def __init__(self, message: str, code: ErrorCode | None = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code

    def to_dict(self) -> dict:
        return {"code": self.code.value, "message": self.message}


class DomainTakenError(AgencyHubError):
    code = ErrorCode.DOMAIN_TAKEN

    def __init__(self, domain: str):
        super().__init__(f"Domain '{domain}' is already taken")
        self.domain = domain


class InvalidDomainError(AgencyHubError):
    code = ErrorCode.INVALID_DOMAIN


class InvalidProfileError(AgencyHubError):
    code = ErrorCode.INVALID_PROFILE


class InvalidDatabaseNameError(AgencyHubError):
    code = ErrorCode.INVALID_DATABASE_NAME


class ProvisioningStepError(AgencyHubError):
    """A provisioning step failed; ``code`` names the step's reason code."""

    def __init__(self, code: ErrorCode, message: str):
        super().__init__(message, code)


class TenantNotReadyError(AgencyHubError):
    code = ErrorCode.TENANT_NOT_READY

    def __init__(self, agency_id, state: str | None = None):
        detail = f" (state: {state})" if state else ""
        super().__init__(f"Agency {agency_id} is not ready{detail}")
        self.agency_id = agency_id
        self.state = state


class PoolExhaustedError(AgencyHubError):
    code = ErrorCode.POOL_EXHAUSTED


class ModuleRequestConflictError(AgencyHubError):
    code = ErrorCode.MODULE_REQUEST_CONFLICT


class ModuleRequestNotFoundError(AgencyHubError):
    code = ErrorCode.MODULE_REQUEST_NOT_FOUND


class UnknownModuleError(AgencyHubError):
    code = ErrorCode.UNKNOWN_MODULE

    def __init__(self, module_ids):
        ids = ", ".join(str(m) for m in module_ids)
        super().__init__(f"Unknown module(s): {ids}")
        self.module_ids = list(module_ids)


class CatalogEntryLockedError(AgencyHubError):
    code = ErrorCode.CATALOG_ENTRY_LOCKED


def to_http_exception(error: AgencyHubError) -> HTTPException:
    """Translate a domain error into the matching HTTP exception."""
    detail = error.to_dict()
    if isinstance(error, (DomainTakenError, ModuleRequestConflictError, CatalogEntryLockedError)):
        return ConflictError(detail)
    if isinstance(error, ModuleRequestNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=detail)
    if isinstance(error, (TenantNotReadyError, PoolExhaustedError, ProvisioningStepError)):
        return ServiceUnavailableError(detail)
    return BadRequestError(detail)
