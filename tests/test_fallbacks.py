from __future__ import annotations

from conftest import MONTHS
from pipeline.fallbacks import (
    DEFAULT_FALLBACK_USAGE_KWH,
    classify_usage_pattern,
    generate_narrative_fallback,
    generate_plan_scoring_fallback,
    generate_usage_fallback,
)
from validation.schemas import MonthlyUsage


def _months(usages: list[float], cost: float = 125.0) -> list[MonthlyUsage]:
    return [MonthlyUsage(month=month, usage=usage, cost=cost) for month, usage in zip(MONTHS, usages)]


def test_constant_usage_scenario() -> None:
    summary = generate_usage_fallback(_months([1000.0] * 12))

    assert summary.usage_pattern == "consistent"
    assert summary.total_annual_usage == 12000
    assert summary.annual_cost == 1500
    assert summary.average_monthly_usage == 1000
    assert summary.peak_usage_month == "January"
    assert summary.fallback is True


def test_peak_month_is_highest_usage() -> None:
    usages = [800.0] * 12
    usages[7] = 1400.0
    assert generate_usage_fallback(_months(usages)).peak_usage_month == "August"


def test_pattern_thresholds() -> None:
    assert classify_usage_pattern([100.0, 100.0, 100.0, 100.0]) == "consistent"
    assert classify_usage_pattern([75.0, 125.0, 75.0, 125.0]) == "seasonal"
    assert classify_usage_pattern([50.0, 150.0, 50.0, 150.0]) == "high-variance"


def test_scoring_fallback_prices_every_plan(catalog) -> None:
    output = generate_plan_scoring_fallback(catalog, total_annual_usage=12_000, current_annual_cost=1500)

    assert output.fallback is True
    assert len(output.scored_plans) == 10
    for plan in output.scored_plans:
        assert plan.score == 50
        assert plan.estimated_annual_cost > 0


def test_scoring_fallback_without_usage_assumes_default(catalog) -> None:
    output = generate_plan_scoring_fallback(catalog[:2])

    eco = catalog[0]
    expected = round(eco.base_rate * DEFAULT_FALLBACK_USAGE_KWH + eco.monthly_fee * 12, 2)
    assert output.scored_plans[0].estimated_annual_cost == expected
    assert all(plan.estimated_savings == 0 for plan in output.scored_plans)


def test_scoring_fallback_respects_limit(catalog) -> None:
    output = generate_plan_scoring_fallback(catalog, 12_000, 1500, limit=3)
    assert output.total_plans_scored == 3


def test_narrative_fallback_covers_top_three(catalog) -> None:
    scoring = generate_plan_scoring_fallback(catalog, 12_000, 1500)
    narrative = generate_narrative_fallback(scoring.scored_plans)

    assert narrative.fallback is True
    assert [item.plan_id for item in narrative.top_recommendations] == [
        plan.plan_id for plan in scoring.scored_plans[:3]
    ]
    assert all(item.rationale for item in narrative.top_recommendations)
