"""
Agency schemas.
"""
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import EmailStr, Field

from agencyhub.models.agency import ProvisioningStatus, ProvisioningStep
from agencyhub.schemas.common import BaseSchema, IDSchema, Money, TimestampSchema
from agencyhub.schemas.selection import BusinessProfileSchema, SelectionRequest


class AdminAccount(BaseSchema):
    """Initial administrator of the agency's own database."""

    email: EmailStr
    full_name: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=8, max_length=128)
    phone: str | None = Field(default=None, max_length=50)


class AgencyCreate(BaseSchema):
    """Create (provision) agency request."""

    name: str = Field(min_length=2, max_length=255)
    domain: str = Field(min_length=2, max_length=255)
    subscription_plan: str = Field(default="professional", pattern=r"^(starter|professional|enterprise)$")
    profile: BusinessProfileSchema
    selection: SelectionRequest = Field(default_factory=SelectionRequest)
    admin: AdminAccount


class DomainAvailabilityResponse(BaseSchema):
    domain: str
    available: bool


class AgencyResponse(IDSchema, TimestampSchema):
    """Agency response."""

    name: str
    domain: str
    database_name: str | None = None
    subscription_plan: str
    max_users: int
    is_active: bool
    provisioning_status: ProvisioningStatus
    provisioning_step: ProvisioningStep
    failure_reason: str | None = None
    cleanup_pending: bool = False
    industry: str | None = None
    company_size: str | None = None
    primary_focus: str | None = None
    business_goals: list[str] | None = None
    admin_email: str | None = None
    activated_at: datetime | None = None


class AgencyDetailResponse(AgencyResponse):
    """Agency response for operators, including failure detail."""

    failure_detail: str | None = None
    owner_user_id: UUID | None = None
    status_changed_at: datetime | None = None


class ProvisioningResponse(BaseSchema):
    """Outcome of a provisioning request."""

    status: ProvisioningStatus
    agency_id: UUID | None = None
    domain: str | None = None
    step: ProvisioningStep | None = None
    failure_reason: str | None = None
    message: str


class AssignmentResponse(BaseSchema):
    module_id: UUID
    path: str
    title: str
    category: str
    base_cost: Decimal
    cost_override: Decimal | None = None
    effective_cost: Decimal
    assigned_by: str | None = None
    assigned_at: datetime


class AgencyModulesResponse(BaseSchema):
    """Modules enabled for an agency and what they cost per month."""

    modules: list[AssignmentResponse]
    total_modules: int
    total_cost: Decimal


class ModuleAssignmentCreate(BaseSchema):
    """Operator assignment of modules, optionally at agency-specific prices."""

    module_ids: list[UUID] = Field(min_length=1)
    cost_overrides: dict[UUID, Money] = Field(default_factory=dict)
