"""
Recommendation, selection and pricing schemas.
"""
from decimal import Decimal
from uuid import UUID

from pydantic import Field

from agencyhub.models.catalog import RuleWeight
from agencyhub.schemas.common import BaseSchema
from agencyhub.services.recommendation_engine import BusinessProfile
from agencyhub.services.selection import SelectionTemplate


class BusinessProfileSchema(BaseSchema):
    """Agency business profile used to categorize modules."""

    industry: str = Field(default="", max_length=100)
    company_size: str = Field(default="", max_length=50)
    primary_focus: str = Field(default="", max_length=100)
    business_goals: list[str] = Field(default_factory=list)

    def to_profile(self) -> BusinessProfile:
        return BusinessProfile(
            industry=self.industry,
            company_size=self.company_size,
            primary_focus=self.primary_focus,
            business_goals=list(self.business_goals),
        )


class ModuleRecommendationResponse(BaseSchema):
    module_id: UUID
    path: str
    title: str
    description: str | None = None
    icon: str | None = None
    category: str
    base_cost: Decimal
    requires_approval: bool
    recommendation: RuleWeight
    score: float
    reasoning: list[str] = []


class RecommendationSummary(BaseSchema):
    total: int
    required: int
    recommended: int
    optional: int


class RecommendationResponse(BaseSchema):
    """Categorized modules for a business profile."""

    required: list[ModuleRecommendationResponse]
    recommended: list[ModuleRecommendationResponse]
    optional: list[ModuleRecommendationResponse]
    all: list[ModuleRecommendationResponse]
    summary: RecommendationSummary
    insufficient_profile: bool = False
    code: str | None = None


class SelectionRequest(BaseSchema):
    """Template plus (for ``custom``) an explicit module list.

    Prices always come from the catalog; per-agency cost overrides are set
    only by an operator after provisioning.
    """

    template: SelectionTemplate = SelectionTemplate.STANDARD
    module_ids: list[UUID] = Field(default_factory=list)


class QuoteRequest(BaseSchema):
    profile: BusinessProfileSchema
    selection: SelectionRequest = Field(default_factory=SelectionRequest)
    subscription_plan: str = "professional"


class PricingQuoteResponse(BaseSchema):
    plan: str
    plan_price: Decimal
    max_users: int
    modules_cost: Decimal
    monthly_total: Decimal
    annual_total: Decimal
    annual_savings: Decimal
    module_count: int


class QuoteResponse(BaseSchema):
    template: SelectionTemplate
    modules: list[ModuleRecommendationResponse]
    pricing: PricingQuoteResponse
