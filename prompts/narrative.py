"""Stage 3 prompts: consumer-facing explanations of the top plans."""

from __future__ import annotations

import json
from collections.abc import Sequence

from catalog.loader import find_plan
from catalog.models import CatalogPlan
from validation.schemas import PlanScoringOutput, ScoredPlan, UsageSummaryOutput

SECTION_SEPARATOR = "---"

_SYSTEM_INSTRUCTIONS = """\
You are a friendly energy advisor helping a customer understand their plan \
recommendations. Create clear, approachable explanations for why we are \
recommending specific energy plans.
"""

_STYLE_RULES = """\
TONE & STYLE:
- Friendly, conversational tone without technical jargon
- Short paragraphs (2-4 sentences)
- Be positive but honest about trade-offs
- Use ONLY the plan facts provided. Do not invent rates, fees or features.
"""

_SECTION_LAYOUT = """\
[Supplier] - [Plan Name] (Score: [score]/100)

[2-4 sentences explaining why this plan is recommended, highlighting key \
benefits and estimated savings]

Key Benefits:
- [Benefit 1]
- [Benefit 2]
- [Benefit 3]

Important to Know:
[1-2 sentences about contract terms, fees, or other considerations]

Estimated Annual Savings: $[amount]
"""


def _customer_context(usage_summary: UsageSummaryOutput) -> str:
    return (
        f"CUSTOMER CONTEXT:\n"
        f"- Current Annual Cost: ${usage_summary.annual_cost:.2f}\n"
        f"- Average Monthly Usage: {usage_summary.average_monthly_usage} kWh\n"
        f"- Usage Pattern: {usage_summary.usage_pattern}\n"
        f"- Peak Usage: {usage_summary.peak_usage_month}\n"
    )


def enrich_plan(scored_plan: ScoredPlan, catalog_plan: CatalogPlan | None) -> dict:
    """Merge a scored plan with its complete catalog record."""
    facts = {
        "supplier": scored_plan.supplier,
        "planName": scored_plan.plan_name,
        "score": scored_plan.score,
        "estimatedAnnualCost": round(scored_plan.estimated_annual_cost, 2),
        "estimatedSavings": round(scored_plan.estimated_savings, 2),
    }
    if catalog_plan is not None:
        facts.update(
            {
                "baseRate": catalog_plan.base_rate,
                "monthlyFee": catalog_plan.monthly_fee,
                "contractTermMonths": catalog_plan.contract_term_months,
                "earlyTerminationFee": catalog_plan.early_termination_fee,
                "renewablePercent": catalog_plan.renewable_percent,
                "reliabilityScore": catalog_plan.ratings.reliability_score,
                "customerServiceScore": catalog_plan.ratings.customer_service_score,
                "features": list(catalog_plan.features),
            }
        )
    return facts


def build_narrative_prompt(
    plan_scoring: PlanScoringOutput,
    usage_summary: UsageSummaryOutput,
    catalog: Sequence[CatalogPlan],
) -> str:
    """Build one prompt explaining the top three scored plans.

    Raises:
        ValueError: If there is no scored plan or no usage summary.
    """
    if plan_scoring is None or not plan_scoring.scored_plans:
        raise ValueError("Plan scoring output required with at least one plan")
    if usage_summary is None:
        raise ValueError("Usage summary is required for narrative generation")

    top_plans = plan_scoring.top_plans
    enriched = [enrich_plan(plan, find_plan(catalog, plan.plan_id)) for plan in top_plans]
    count = len(enriched)

    return (
        f"{_SYSTEM_INSTRUCTIONS}\n"
        f"{_customer_context(usage_summary)}\n"
        f"TOP RECOMMENDED PLANS (verified catalog facts):\n"
        f"{json.dumps(enriched, indent=2)}\n\n"
        f"TASK:\n"
        f"Write an explanation for each of the {count} plans above, in the order given. "
        f"For each plan explain why we recommend it, its advantages for this usage "
        f"pattern, important considerations and the estimated savings.\n\n"
        f"{_STYLE_RULES}\n"
        f"OUTPUT FORMAT:\n"
        f"Plain text only. Write exactly {count} sections using this layout and put a "
        f"line containing only {SECTION_SEPARATOR} after each section:\n\n"
        f"{_SECTION_LAYOUT}\n{SECTION_SEPARATOR}\n\n"
        f"Now provide explanations for the {count} recommended plans:"
    )


def build_plan_narrative_prompt(
    scored_plan: ScoredPlan,
    catalog_plan: CatalogPlan | None,
    usage_summary: UsageSummaryOutput,
) -> str:
    """Build a prompt explaining a single plan, for the parallel fan-out path."""
    facts = json.dumps(enrich_plan(scored_plan, catalog_plan), indent=2)
    return (
        f"{_SYSTEM_INSTRUCTIONS}\n"
        f"{_customer_context(usage_summary)}\n"
        f"RECOMMENDED PLAN (verified catalog facts):\n{facts}\n\n"
        f"{_STYLE_RULES}\n"
        f"OUTPUT FORMAT:\n"
        f"Plain text only, using this layout:\n\n{_SECTION_LAYOUT}\n"
        f"Now explain this plan:"
    )
