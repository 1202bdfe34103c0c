"""
SQLAlchemy models for the AgencyHub central registry.
"""
from agencyhub.models.base import Base, BaseModel
from agencyhub.models.agency import (
    Agency,
    DomainReservation,
    ProvisioningStatus,
    ProvisioningStep,
    SubscriptionPlan,
)
from agencyhub.models.catalog import (
    ModuleCatalogEntry,
    ModuleCategory,
    RecommendationRule,
    RuleWeight,
)
from agencyhub.models.assignment import (
    AgencyModuleAssignment,
    AgencyModuleRequest,
    ModuleRequestStatus,
)

__all__ = [
    "Base",
    "BaseModel",
    "Agency",
    "DomainReservation",
    "ProvisioningStatus",
    "ProvisioningStep",
    "SubscriptionPlan",
    "ModuleCatalogEntry",
    "ModuleCategory",
    "RecommendationRule",
    "RuleWeight",
    "AgencyModuleAssignment",
    "AgencyModuleRequest",
    "ModuleRequestStatus",
]
