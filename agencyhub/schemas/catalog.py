"""
Module catalog schemas.
"""
from decimal import Decimal
from uuid import UUID

from pydantic import Field

from agencyhub.models.catalog import ModuleCategory, RuleWeight
from agencyhub.schemas.common import BaseSchema, IDSchema, Money, TimestampSchema


class ModuleCreate(BaseSchema):
    """Create catalog module request."""

    path: str = Field(min_length=1, max_length=255, pattern=r"^/[a-z0-9/_-]*$")
    title: str = Field(min_length=1, max_length=255)
    description: str | None = None
    icon: str | None = Field(default=None, max_length=100)
    category: ModuleCategory
    base_cost: Money = Decimal("0")
    requires_approval: bool = False
    is_active: bool = True


class ModuleUpdate(BaseSchema):
    """Update catalog module request.

    Only ``base_cost`` and ``is_active`` may change once any agency has
    the module assigned.
    """

    title: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    icon: str | None = Field(default=None, max_length=100)
    category: ModuleCategory | None = None
    base_cost: Money | None = None
    requires_approval: bool | None = None
    is_active: bool | None = None


class ModuleResponse(IDSchema, TimestampSchema):
    """Catalog module response."""

    path: str
    title: str
    description: str | None = None
    icon: str | None = None
    category: ModuleCategory
    base_cost: Decimal
    requires_approval: bool
    is_active: bool
    sort_order: int


class RuleCreate(BaseSchema):
    """Create recommendation rule request."""

    industry: list[str] = Field(default_factory=list)
    company_size: list[str] = Field(default_factory=list)
    primary_focus: list[str] = Field(default_factory=list)
    business_goals: list[str] = Field(default_factory=list)
    weight: RuleWeight = RuleWeight.RECOMMENDED
    priority: int = Field(default=5, ge=1, le=10)
    justification: str | None = None


class RuleResponse(IDSchema):
    """Recommendation rule response."""

    module_id: UUID
    industry: list[str] | None = None
    company_size: list[str] | None = None
    primary_focus: list[str] | None = None
    business_goals: list[str] | None = None
    weight: RuleWeight
    priority: int
    justification: str | None = None
