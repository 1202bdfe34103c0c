"""
Pydantic schemas for the AgencyHub API.
"""
from agencyhub.schemas.common import (
    BaseSchema,
    IDSchema,
    TimestampSchema,
    PaginatedResponse,
)
from agencyhub.schemas.agency import (
    AdminAccount,
    AgencyCreate,
    AgencyResponse,
    AgencyDetailResponse,
    AgencyModulesResponse,
    AssignmentResponse,
    DomainAvailabilityResponse,
    ModuleAssignmentCreate,
    ProvisioningResponse,
)
from agencyhub.schemas.catalog import (
    ModuleCreate,
    ModuleUpdate,
    ModuleResponse,
    RuleCreate,
    RuleResponse,
)
from agencyhub.schemas.module_request import (
    ModuleRequestCreate,
    ModuleRequestApprove,
    ModuleRequestReject,
    ModuleRequestResponse,
)
from agencyhub.schemas.selection import (
    BusinessProfileSchema,
    ModuleRecommendationResponse,
    RecommendationResponse,
    SelectionRequest,
    QuoteRequest,
    QuoteResponse,
    PricingQuoteResponse,
)

__all__ = [
    "BaseSchema",
    "IDSchema",
    "TimestampSchema",
    "PaginatedResponse",
    "AdminAccount",
    "AgencyCreate",
    "AgencyResponse",
    "AgencyDetailResponse",
    "AgencyModulesResponse",
    "AssignmentResponse",
    "DomainAvailabilityResponse",
    "ModuleAssignmentCreate",
    "ProvisioningResponse",
    "ModuleCreate",
    "ModuleUpdate",
    "ModuleResponse",
    "RuleCreate",
    "RuleResponse",
    "ModuleRequestCreate",
    "ModuleRequestApprove",
    "ModuleRequestReject",
    "ModuleRequestResponse",
    "BusinessProfileSchema",
    "ModuleRecommendationResponse",
    "RecommendationResponse",
    "SelectionRequest",
    "QuoteRequest",
    "QuoteResponse",
    "PricingQuoteResponse",
]
