"""
Page selection templates and pricing.
"""
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Iterable
from uuid import UUID

from agencyhub.config import settings
from agencyhub.core.exceptions import UnknownModuleError
from agencyhub.models.agency import SubscriptionPlan
from agencyhub.services.recommendation_engine import ModuleRecommendation, Recommendation

CENTS = Decimal("0.01")


class SelectionTemplate(str, Enum):
    MINIMAL = "minimal"
    STANDARD = "standard"
    RECOMMENDED = "recommended"  # alias of standard
    FULL = "full"
    CUSTOM = "custom"


@dataclass
class PlanTerms:
    price: Decimal
    max_users: int


PLANS = {
    SubscriptionPlan.STARTER.value: PlanTerms(
        price=Decimal(str(settings.PLAN_PRICE_STARTER)).quantize(CENTS),
        max_users=settings.PLAN_MAX_USERS_STARTER,
    ),
    SubscriptionPlan.PROFESSIONAL.value: PlanTerms(
        price=Decimal(str(settings.PLAN_PRICE_PROFESSIONAL)).quantize(CENTS),
        max_users=settings.PLAN_MAX_USERS_PROFESSIONAL,
    ),
    SubscriptionPlan.ENTERPRISE.value: PlanTerms(
        price=Decimal(str(settings.PLAN_PRICE_ENTERPRISE)).quantize(CENTS),
        max_users=settings.PLAN_MAX_USERS_ENTERPRISE,
    ),
}


def get_plan_terms(plan: str | None) -> PlanTerms:
    """Terms for a plan; unknown plans fall back to professional."""
    return PLANS.get((plan or "").lower(), PLANS[SubscriptionPlan.PROFESSIONAL.value])


@dataclass
class SelectedModules:
    """An ordered module selection derived from a recommendation."""
    modules: list[ModuleRecommendation] = field(default_factory=list)
    template: SelectionTemplate = SelectionTemplate.STANDARD

    @property
    def module_ids(self) -> list[UUID]:
        return [m.module_id for m in self.modules]

    def __contains__(self, module_id: UUID) -> bool:
        return module_id in set(self.module_ids)

    def __len__(self) -> int:
        return len(self.modules)

    def select_category(self, category: str, recommendation: Recommendation) -> "SelectedModules":
        """Add every module of a catalog category."""
        wanted = set(self.module_ids) | {
            m.module_id for m in recommendation.all if m.category == category
        }
        return SelectedModules(
            modules=[m for m in recommendation.all if m.module_id in wanted],
            template=SelectionTemplate.CUSTOM,
        )

    def deselect_category(self, category: str) -> "SelectedModules":
        """Remove a catalog category, keeping its required modules."""
        return SelectedModules(
            modules=[
                m for m in self.modules
                if m.category != category or m.is_required
            ],
            template=SelectionTemplate.CUSTOM,
        )


@dataclass
class PricingQuote:
    plan: str
    plan_price: Decimal
    max_users: int
    modules_cost: Decimal
    monthly_total: Decimal
    annual_total: Decimal
    annual_savings: Decimal
    module_count: int


def apply_template(
    template: SelectionTemplate | str,
    recommendation: Recommendation,
    module_ids: Iterable[UUID] | None = None,
) -> SelectedModules:
    """Resolve a selection template against a recommendation.

    Required modules are part of every result; a custom set that omits
    them gets them added back.
    """
    template = SelectionTemplate(template)

    if template == SelectionTemplate.MINIMAL:
        wanted = recommendation.required_ids
    elif template in (SelectionTemplate.STANDARD, SelectionTemplate.RECOMMENDED):
        wanted = recommendation.required_ids | {m.module_id for m in recommendation.recommended}
    elif template == SelectionTemplate.FULL:
        wanted = {m.module_id for m in recommendation.all}
    else:
        requested = {UUID(str(m)) for m in (module_ids or [])}
        known = set(recommendation.by_id())
        unknown = requested - known
        if unknown:
            raise UnknownModuleError(sorted(unknown, key=str))
        wanted = requested | recommendation.required_ids

    return SelectedModules(
        modules=[m for m in recommendation.all if m.module_id in wanted],
        template=template,
    )


def resolve_cost(base_cost, cost_override=None) -> Decimal:
    """The override when one is set, otherwise the catalog base cost."""
    return Decimal(str(base_cost if cost_override is None else cost_override))


def effective_cost(module: ModuleRecommendation, overrides: dict[UUID, Decimal] | None = None) -> Decimal:
    return resolve_cost(module.base_cost, (overrides or {}).get(module.module_id))


def compute_cost(
    selected: SelectedModules,
    plan_base_price: Decimal,
    cost_overrides: dict[UUID, Decimal] | None = None,
) -> Decimal:
    """Monthly cost: plan price plus each module's effective cost."""
    total = Decimal(str(plan_base_price))
    for module in selected.modules:
        total += effective_cost(module, cost_overrides)
    return total.quantize(CENTS, rounding=ROUND_HALF_UP)


def quote(
    selected: SelectedModules,
    plan: str,
    cost_overrides: dict[UUID, Decimal] | None = None,
) -> PricingQuote:
    plan = (plan or "").lower()
    terms = get_plan_terms(plan)
    monthly = compute_cost(selected, terms.price, cost_overrides)
    modules_cost = (monthly - terms.price).quantize(CENTS)

    yearly = monthly * 12
    discount = Decimal(str(settings.ANNUAL_DISCOUNT_RATE))
    annual_total = (yearly * (1 - discount)).quantize(CENTS, rounding=ROUND_HALF_UP)

    return PricingQuote(
        plan=plan if plan in PLANS else SubscriptionPlan.PROFESSIONAL.value,
        plan_price=terms.price,
        max_users=terms.max_users,
        modules_cost=modules_cost,
        monthly_total=monthly,
        annual_total=annual_total,
        annual_savings=(yearly - annual_total).quantize(CENTS),
        module_count=len(selected),
    )
