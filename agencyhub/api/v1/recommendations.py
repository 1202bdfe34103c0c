"""
Module recommendation and pricing endpoints used by the onboarding flow.
"""
from fastapi import APIRouter, Query

from agencyhub.core.deps import DbSession
from agencyhub.core.exceptions import AgencyHubError, to_http_exception
from agencyhub.schemas.selection import (
    BusinessProfileSchema,
    ModuleRecommendationResponse,
    PricingQuoteResponse,
    QuoteRequest,
    QuoteResponse,
    RecommendationResponse,
    RecommendationSummary,
)
from agencyhub.services.catalog_service import CatalogService
from agencyhub.services.recommendation_engine import Recommendation, recommend
from agencyhub.services.selection import apply_template, quote

router = APIRouter(tags=["Recommendations"])


def _to_response(recommendation: Recommendation) -> RecommendationResponse:
    def convert(items):
        return [ModuleRecommendationResponse.model_validate(m) for m in items]

    code = recommendation.code
    return RecommendationResponse(
        required=convert(recommendation.required),
        recommended=convert(recommendation.recommended),
        optional=convert(recommendation.optional),
        all=convert(recommendation.all),
        summary=RecommendationSummary(**recommendation.summary),
        insufficient_profile=recommendation.insufficient_profile,
        code=code.value if code else None,
    )


async def _recommend(db, profile: BusinessProfileSchema) -> Recommendation:
    snapshot = await CatalogService(db).load_snapshot()
    return recommend(profile.to_profile(), snapshot)


@router.get("/recommendations/preview", response_model=RecommendationResponse)
async def preview_recommendations(
    db: DbSession,
    industry: str = Query(default="", max_length=100),
    company_size: str = Query(default="", max_length=50),
    primary_focus: str = Query(default="", max_length=100),
    business_goals: list[str] = Query(default=[]),
):
    """Preview module categories for a profile given as query parameters."""
    profile = BusinessProfileSchema(
        industry=industry,
        company_size=company_size,
        primary_focus=primary_focus,
        business_goals=business_goals,
    )
    return _to_response(await _recommend(db, profile))


@router.post("/recommendations", response_model=RecommendationResponse)
async def get_recommendations(
    profile: BusinessProfileSchema,
    db: DbSession,
):
    """Categorize the active catalog for a business profile.

    An incomplete profile is not an error: every module comes back as
    optional with ``insufficient_profile`` set.
    """
    return _to_response(await _recommend(db, profile))


@router.post("/selection/quote", response_model=QuoteResponse)
async def quote_selection(
    data: QuoteRequest,
    db: DbSession,
):
    """Resolve a selection template and price it for a plan."""
    recommendation = await _recommend(db, data.profile)

    try:
        selected = apply_template(
            data.selection.template,
            recommendation,
            data.selection.module_ids,
        )
    except AgencyHubError as e:
        raise to_http_exception(e)

    pricing = quote(selected, data.subscription_plan)

    return QuoteResponse(
        template=selected.template,
        modules=[ModuleRecommendationResponse.model_validate(m) for m in selected.modules],
        pricing=PricingQuoteResponse.model_validate(pricing),
    )
