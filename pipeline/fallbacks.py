"""Deterministic stage outputs used when inference fails.

Every generator works from the raw request and catalog alone, so a
degraded-but-valid result exists whenever the input itself is valid.
"""

from __future__ import annotations

import logging
import statistics
from collections.abc import Sequence

from catalog.models import CatalogPlan
from pricing.calculations import calculate_multiple_plan_costs
from validation.schemas import (
    MonthlyUsage,
    NarrativeOutput,
    NarrativeRecommendation,
    PlanScoringOutput,
    ScoredPlan,
    UsageSummaryOutput,
)

logger = logging.getLogger(__name__)

HIGH_VARIANCE_CV = 0.3
SEASONAL_CV = 0.2
NEUTRAL_SCORE = 50
DEFAULT_FALLBACK_USAGE_KWH = 10_000.0
DEFAULT_FALLBACK_PLAN_LIMIT = 10

_FALLBACK_REASONING = "Scored with a neutral default because automated scoring was unavailable."


def classify_usage_pattern(usages: Sequence[float]) -> str:
    """Classify by coefficient of variation (population standard deviation)."""
    mean = statistics.fmean(usages)
    if mean <= 0:
        return "consistent"
    variation = statistics.pstdev(usages) / mean
    if variation > HIGH_VARIANCE_CV:
        return "high-variance"
    if variation > SEASONAL_CV:
        return "seasonal"
    return "consistent"


def generate_usage_fallback(monthly_data: Sequence[MonthlyUsage]) -> UsageSummaryOutput:
    """Summarize usage straight from the monthly records.

    Raises:
        ValueError: If ``monthly_data`` is empty.
    """
    if not monthly_data:
        raise ValueError("Monthly usage data is required for the usage fallback")

    usages = [entry.usage for entry in monthly_data]
    total = sum(usages)
    peak = max(monthly_data, key=lambda entry: entry.usage)

    summary = UsageSummaryOutput(
        average_monthly_usage=max(1, round(total / len(usages))),
        peak_usage_month=peak.month,
        total_annual_usage=round(total, 2),
        usage_pattern=classify_usage_pattern(usages),
        annual_cost=round(sum(entry.cost for entry in monthly_data), 2),
        fallback=True,
    )
    logger.info("Generated usage summary fallback (pattern=%s)", summary.usage_pattern)
    return summary


def generate_plan_scoring_fallback(
    plans: Sequence[CatalogPlan],
    total_annual_usage: float | None = None,
    current_annual_cost: float | None = None,
    limit: int = DEFAULT_FALLBACK_PLAN_LIMIT,
) -> PlanScoringOutput:
    """Give up to ``limit`` plans a neutral score with real cost figures.

    Costs come from the cost engine. Without known usage a 10,000 kWh year
    is assumed; without a known current cost, savings are reported as zero.

    Raises:
        ValueError: If there are no plans to score.
    """
    selected = list(plans[:limit])
    if not selected:
        raise ValueError("At least one catalog plan is required for the scoring fallback")

    usage = total_annual_usage if total_annual_usage and total_annual_usage > 0 else DEFAULT_FALLBACK_USAGE_KWH
    current_cost = current_annual_cost if current_annual_cost and current_annual_cost > 0 else 0.0
    costs = calculate_multiple_plan_costs(selected, current_cost, usage)

    scored = [
        ScoredPlan(
            plan_id=plan.id,
            supplier=plan.supplier,
            plan_name=plan.plan_name,
            score=NEUTRAL_SCORE,
            estimated_annual_cost=costs[plan.id].estimated_annual_cost,
            estimated_savings=costs[plan.id].estimated_savings if current_cost else 0.0,
            reasoning=_FALLBACK_REASONING,
        )
        for plan in selected
    ]
    logger.info("Generated plan scoring fallback for %d plans", len(scored))
    return PlanScoringOutput(
        scored_plans=scored,
        total_plans_scored=len(scored),
        fallback=True,
    )


def _fallback_rationale(plan: ScoredPlan) -> str:
    rationale = (
        f"{plan.plan_name} from {plan.supplier} has an estimated annual cost of "
        f"${plan.estimated_annual_cost:,.2f}"
    )
    if plan.estimated_savings > 0:
        rationale += f", about ${plan.estimated_savings:,.2f} less than you pay today"
    return rationale + ". Review the contract terms and fees before switching."


def generate_narrative_fallback(scored_plans: Sequence[ScoredPlan]) -> NarrativeOutput:
    """Templated explanations for the top three plans.

    Raises:
        ValueError: If there is no scored plan to explain.
    """
    top_plans = list(scored_plans[:3])
    if not top_plans:
        raise ValueError("At least one scored plan is required for the narrative fallback")

    recommendations = [
        NarrativeRecommendation(plan_id=plan.plan_id, rationale=_fallback_rationale(plan))
        for plan in top_plans
    ]
    explanation = (
        "We could not generate a personalized explanation right now. Based on your "
        "usage, these plans offer the best estimated value. Compare the annual cost "
        "of each plan below with what you pay today."
    )
    logger.info("Generated narrative fallback for %d plans", len(recommendations))
    return NarrativeOutput(
        explanation=explanation,
        top_recommendations=recommendations,
        fallback=True,
    )
