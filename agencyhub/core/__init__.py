"""
Core building blocks shared by services and endpoints: the domain error
taxonomy, identifier rules and credential handling.
"""
from agencyhub.core.exceptions import (
    AgencyHubError,
    DomainTakenError,
    ErrorCode,
    PoolExhaustedError,
    ProvisioningStepError,
    TenantNotReadyError,
)
from agencyhub.core.identifiers import full_domain, generate_database_name, normalize_domain

__all__ = [
    "AgencyHubError",
    "DomainTakenError",
    "ErrorCode",
    "PoolExhaustedError",
    "ProvisioningStepError",
    "TenantNotReadyError",
    "full_domain",
    "generate_database_name",
    "normalize_domain",
]
