"""
Module Recommendation Engine

Maps an agency business profile onto the module catalog and sorts every
active module into exactly one of three buckets:
- required: always enabled, can never be deselected
- recommended: pre-selected by the "standard" template
- optional: available on request

The engine is a pure function of (profile, catalog snapshot). It never
touches the database, so previews and provisioning see identical results
for the same snapshot.
"""
from dataclasses import dataclass, field
from decimal import Decimal
from uuid import UUID

from agencyhub.core.exceptions import ErrorCode
from agencyhub.models.catalog import RuleWeight

# Higher wins when several rules match the same module
WEIGHT_RANK = {
    RuleWeight.OPTIONAL: 0,
    RuleWeight.RECOMMENDED: 1,
    RuleWeight.REQUIRED: 2,
}

SCORE_INDUSTRY = 10
SCORE_COMPANY_SIZE = 5
SCORE_PRIMARY_FOCUS = 8
SCORE_PER_GOAL = 6
SCORE_REQUIRED = 20
DEFAULT_PRIORITY = 5


def _norm(value: str | None) -> str:
    return (value or "").strip().lower()


def _norm_list(values) -> tuple[str, ...]:
    return tuple(_norm(v) for v in (values or []) if _norm(v))


@dataclass(frozen=True)
class CatalogModule:
    """Immutable view of a catalog entry."""
    id: UUID
    path: str
    title: str
    category: str
    base_cost: Decimal
    description: str | None = None
    icon: str | None = None
    requires_approval: bool = False
    sort_order: int = 0


@dataclass(frozen=True)
class Rule:
    """Immutable view of a recommendation rule."""
    module_id: UUID
    weight: RuleWeight
    industry: tuple[str, ...] = ()
    company_size: tuple[str, ...] = ()
    primary_focus: tuple[str, ...] = ()
    business_goals: tuple[str, ...] = ()
    priority: int = DEFAULT_PRIORITY
    justification: str | None = None

    @classmethod
    def build(cls, module_id: UUID, weight: RuleWeight, **attributes) -> "Rule":
        return cls(
            module_id=module_id,
            weight=RuleWeight(weight),
            industry=_norm_list(attributes.get("industry")),
            company_size=_norm_list(attributes.get("company_size")),
            primary_focus=_norm_list(attributes.get("primary_focus")),
            business_goals=_norm_list(attributes.get("business_goals")),
            priority=attributes.get("priority") or DEFAULT_PRIORITY,
            justification=attributes.get("justification"),
        )


@dataclass(frozen=True)
class CatalogSnapshot:
    """Active catalog modules (in catalog order) plus all their rules."""
    modules: tuple[CatalogModule, ...]
    rules: tuple[Rule, ...] = ()

    def rules_for(self, module_id: UUID) -> list[Rule]:
        return [r for r in self.rules if r.module_id == module_id]

    def get(self, module_id: UUID) -> CatalogModule | None:
        for module in self.modules:
            if module.id == module_id:
                return module
        return None


@dataclass
class BusinessProfile:
    industry: str = ""
    company_size: str = ""
    primary_focus: str = ""
    business_goals: list[str] = field(default_factory=list)

    def is_complete(self) -> bool:
        return bool(_norm(self.industry) and _norm(self.company_size) and _norm(self.primary_focus))


@dataclass
class ModuleRecommendation:
    """A catalog module with its category for one profile."""
    module: CatalogModule
    recommendation: RuleWeight
    score: float = 0.0
    reasoning: list[str] = field(default_factory=list)

    @property
    def module_id(self) -> UUID:
        return self.module.id

    @property
    def path(self) -> str:
        return self.module.path

    @property
    def title(self) -> str:
        return self.module.title

    @property
    def description(self) -> str | None:
        return self.module.description

    @property
    def icon(self) -> str | None:
        return self.module.icon

    @property
    def category(self) -> str:
        return self.module.category

    @property
    def base_cost(self) -> Decimal:
        return self.module.base_cost

    @property
    def requires_approval(self) -> bool:
        return self.module.requires_approval

    @property
    def is_required(self) -> bool:
        return self.recommendation == RuleWeight.REQUIRED


@dataclass
class Recommendation:
    """Categorized module list. Each list is in catalog order."""
    required: list[ModuleRecommendation] = field(default_factory=list)
    recommended: list[ModuleRecommendation] = field(default_factory=list)
    optional: list[ModuleRecommendation] = field(default_factory=list)
    all: list[ModuleRecommendation] = field(default_factory=list)
    insufficient_profile: bool = False

    @property
    def code(self) -> ErrorCode | None:
        return ErrorCode.INVALID_PROFILE if self.insufficient_profile else None

    @property
    def summary(self) -> dict[str, int]:
        return {
            "total": len(self.all),
            "required": len(self.required),
            "recommended": len(self.recommended),
            "optional": len(self.optional),
        }

    @property
    def required_ids(self) -> set[UUID]:
        return {m.module_id for m in self.required}

    def by_id(self) -> dict[UUID, ModuleRecommendation]:
        return {m.module_id: m for m in self.all}


def rule_matches(rule: Rule, profile: BusinessProfile) -> bool:
    """A rule matches when every attribute it constrains matches the profile."""
    if rule.industry and _norm(profile.industry) not in rule.industry:
        return False
    if rule.company_size and _norm(profile.company_size) not in rule.company_size:
        return False
    if rule.primary_focus and _norm(profile.primary_focus) not in rule.primary_focus:
        return False
    if rule.business_goals:
        goals = set(_norm_list(profile.business_goals))
        if not goals.intersection(rule.business_goals):
            return False
    return True


def score_rule(rule: Rule, profile: BusinessProfile) -> float:
    score = 0
    if rule.industry and _norm(profile.industry) in rule.industry:
        score += SCORE_INDUSTRY
    if rule.company_size and _norm(profile.company_size) in rule.company_size:
        score += SCORE_COMPANY_SIZE
    if rule.primary_focus and _norm(profile.primary_focus) in rule.primary_focus:
        score += SCORE_PRIMARY_FOCUS
    if rule.business_goals:
        matching = [g for g in _norm_list(profile.business_goals) if g in rule.business_goals]
        score += len(matching) * SCORE_PER_GOAL
    if rule.weight == RuleWeight.REQUIRED:
        score += SCORE_REQUIRED

    return round(score * (rule.priority or DEFAULT_PRIORITY) / 10, 2)


def _reasons(rule: Rule, profile: BusinessProfile) -> list[str]:
    reasons = []
    if rule.justification:
        reasons.append(rule.justification)
    if rule.weight == RuleWeight.REQUIRED:
        reasons.append("Required for your agency type")
    if rule.industry:
        reasons.append(f"Recommended for {profile.industry} industry")
    if rule.company_size:
        reasons.append(f"Recommended for {profile.company_size} companies")
    if rule.primary_focus:
        reasons.append(f"Matches your primary focus: {profile.primary_focus}")
    if rule.business_goals:
        matching = [g for g in profile.business_goals if _norm(g) in rule.business_goals]
        if matching:
            reasons.append(f"Supports your goals: {', '.join(matching)}")
    return reasons


def recommend(profile: BusinessProfile, snapshot: CatalogSnapshot) -> Recommendation:
    """Categorize every active catalog module for a business profile.

    A module takes the highest weight among its matching rules; a module
    with no matching rule is optional. An incomplete profile yields empty
    categories with ``insufficient_profile`` set, never an exception.
    """
    if not profile.is_complete():
        return Recommendation(
            all=[
                ModuleRecommendation(module=m, recommendation=RuleWeight.OPTIONAL)
                for m in snapshot.modules
            ],
            insufficient_profile=True,
        )

    result = Recommendation()
    buckets = {
        RuleWeight.REQUIRED: result.required,
        RuleWeight.RECOMMENDED: result.recommended,
        RuleWeight.OPTIONAL: result.optional,
    }

    for module in snapshot.modules:
        weight = RuleWeight.OPTIONAL
        score = 0.0
        reasoning: list[str] = []

        for rule in snapshot.rules_for(module.id):
            if not rule_matches(rule, profile):
                continue
            if WEIGHT_RANK[rule.weight] > WEIGHT_RANK[weight]:
                weight = rule.weight
            score = max(score, score_rule(rule, profile))
            for reason in _reasons(rule, profile):
                if reason not in reasoning:
                    reasoning.append(reason)

        entry = ModuleRecommendation(
            module=module,
            recommendation=weight,
            score=score,
            reasoning=reasoning,
        )
        buckets[weight].append(entry)
        result.all.append(entry)

    return result
