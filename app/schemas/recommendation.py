"""
app/schemas/recommendation.py

Response contract for POST /api/recommend and the builder that maps a
PipelineResult onto it.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import asdict
from typing import Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from catalog.loader import find_plan
from catalog.models import CatalogPlan
from pipeline.state import PipelineError, PipelineResult
from pricing.calculations import CostCalculationError, PlanRates, calculate_true_annual_savings
from validation.schemas import ScoredPlan, StageInput

logger = logging.getLogger(__name__)

NO_EXPLANATION = "No explanation available"


class _ResponseModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class TrueSavingsResponse(_ResponseModel):
    current_annual_cost: float
    recommended_annual_cost: float
    energy_cost: float
    service_fees: float
    early_termination_fee: float
    amortized_termination_fee: float
    first_year_savings: float
    amortized_annual_savings: float


class RecommendationItem(_ResponseModel):
    plan_id: str
    supplier: str
    plan_name: str
    score: int
    estimated_annual_cost: float
    estimated_savings: float
    reasoning: Optional[str] = None
    rationale: str
    fallback: bool = False
    true_savings: Optional[TrueSavingsResponse] = None


class UsageSummaryResponse(_ResponseModel):
    average_monthly_usage: float = 0
    peak_usage_month: str = "Unknown"
    total_annual_usage: float = 0
    usage_pattern: str = "Unknown"
    annual_cost: float = 0
    fallback: bool = False


class RecommendationMetadata(_ResponseModel):
    execution_time: float
    timestamp: str
    request_id: str
    errors: list[PipelineError] = []
    stage_status: dict[str, str] = {}


class RecommendationData(_ResponseModel):
    recommendations: list[RecommendationItem]
    usage_summary: UsageSummaryResponse
    metadata: RecommendationMetadata


class RecommendationResponse(_ResponseModel):
    data: RecommendationData


def _true_savings(
    stage_input: StageInput,
    catalog_plan: Optional[CatalogPlan],
    annual_kwh: float,
) -> Optional[TrueSavingsResponse]:
    current = stage_input.current_plan
    if current.rate is None or catalog_plan is None:
        return None
    try:
        breakdown = calculate_true_annual_savings(
            PlanRates(
                base_rate=current.rate,
                monthly_fee=current.monthly_fee or 0.0,
                early_termination_fee=current.early_termination_fee or 0.0,
            ),
            PlanRates(
                base_rate=catalog_plan.base_rate,
                monthly_fee=catalog_plan.monthly_fee,
                contract_term_months=catalog_plan.contract_term_months,
                early_termination_fee=catalog_plan.early_termination_fee,
            ),
            annual_kwh,
        )
    except CostCalculationError as exc:
        logger.warning("True savings unavailable for plan %s: %s", catalog_plan.id, exc)
        return None
    return TrueSavingsResponse(**asdict(breakdown))


def build_recommendation_response(
    result: PipelineResult,
    stage_input: StageInput,
    catalog: Sequence[CatalogPlan],
    request_id: str,
) -> RecommendationResponse:
    """
    Merge scored plans with their narrative rationales.

    Every scored plan is returned; plans outside the narrated top three get
    the "No explanation available" placeholder. An item is flagged
    ``fallback`` when its score or its rationale came from a fallback.
    """

    rationales: dict[str, str] = {}
    narrative_fallback = False
    if result.narrative is not None:
        rationales = {
            item.plan_id: item.rationale for item in result.narrative.top_recommendations
        }
        narrative_fallback = result.narrative.fallback

    annual_kwh = (
        result.usage_summary.total_annual_usage
        if result.usage_summary is not None
        else stage_input.energy_usage_data.total_usage
    )

    scored_plans: list[ScoredPlan] = []
    scoring_fallback = False
    if result.plan_scoring is not None:
        scored_plans = result.plan_scoring.scored_plans
        scoring_fallback = result.plan_scoring.fallback

    recommendations = [
        RecommendationItem(
            **plan.model_dump(),
            rationale=rationales.get(plan.plan_id) or NO_EXPLANATION,
            fallback=scoring_fallback or (narrative_fallback and plan.plan_id in rationales),
            true_savings=_true_savings(stage_input, find_plan(catalog, plan.plan_id), annual_kwh),
        )
        for plan in scored_plans
    ]

    usage_summary = (
        UsageSummaryResponse(**result.usage_summary.model_dump())
        if result.usage_summary is not None
        else UsageSummaryResponse()
    )

    return RecommendationResponse(
        data=RecommendationData(
            recommendations=recommendations,
            usage_summary=usage_summary,
            metadata=RecommendationMetadata(
                execution_time=result.execution_time,
                timestamp=result.timestamp,
                request_id=request_id,
                errors=result.errors,
                stage_status={stage: status.value for stage, status in result.stage_status.items()},
            ),
        )
    )
