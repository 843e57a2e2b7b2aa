"""Stage 2 prompt: score catalog plans by position index.

The model never sees plan ids and is told to answer with indices only. The
returned ``indexed_plans`` lets the parser resolve every index back to the
real catalog record, so a fabricated plan cannot reach the response.
"""

from __future__ import annotations

import json
from collections.abc import Sequence
from dataclasses import dataclass

from catalog.loader import filter_by_contract_length
from catalog.models import CatalogPlan, IndexedPlan
from validation.schemas import StageInput, UsageSummaryOutput

DEFAULT_MAX_PROMPT_PLANS = 20
DEFAULT_MAX_CONTRACT_MONTHS = 12

_SYSTEM_INSTRUCTIONS = """\
You are an energy plan comparison expert. Score the following supplier plans \
based on the user's usage pattern and preferences.

CRITICAL CONSTRAINT - READ THIS FIRST:
- Every plan is identified ONLY by its "index" in the AVAILABLE PLANS list.
- Reference plans by index. Do NOT copy plan names, supplier names or ids.
- Do NOT invent plans. Only indices from the list below are valid.
"""

_OUTPUT_RULES = """\
OUTPUT FORMAT - CRITICAL:
Return ONLY valid JSON. No markdown code blocks, no comments, no extra text.
Start your response with [ and end with ]
Return between 5 and 10 entries, sorted by score descending:
[
  {
    "index": <index from AVAILABLE PLANS>,
    "score": <integer 0-100>,
    "estimatedAnnualCost": <number>,
    "estimatedSavings": <number>,
    "reasoning": "<brief 1-2 sentence explanation>"
  }
]
"""

_SCORING_CRITERIA = """\
SCORING CRITERIA:
- Base score: 50 points
- Up to +30 for significant savings (>15% = +30, 10-15% = +20, 5-10% = +10)
- Up to +20 for renewable percentage if the user prefers renewable (100% = +20, 50% = +10)
- Up to +10 for shorter contracts (3mo = +10, 6mo = +7, 12mo = +5)
- Up to +10 for low monthly fees
- All plans shown already meet the user's maximum contract length
"""

_EXAMPLE_OUTPUT = json.dumps(
    [
        {
            "index": 0,
            "score": 92,
            "estimatedAnnualCost": 1214.50,
            "estimatedSavings": 214.00,
            "reasoning": "15% savings with 100% renewable energy and a 12-month contract.",
        }
    ],
    indent=2,
)


@dataclass(frozen=True)
class ScoringPrompt:
    prompt: str
    indexed_plans: tuple[IndexedPlan, ...]


def index_plans(
    catalog: Sequence[CatalogPlan],
    max_contract_months: int,
    max_plans: int = DEFAULT_MAX_PROMPT_PLANS,
) -> tuple[IndexedPlan, ...]:
    """Filter by contract length, keep the first ``max_plans`` and number them 0..N-1."""
    eligible = filter_by_contract_length(catalog, max_contract_months)[:max_plans]
    return tuple(IndexedPlan(index=position, plan=plan) for position, plan in enumerate(eligible))


def _describe(indexed: IndexedPlan) -> dict:
    plan = indexed.plan
    return {
        "index": indexed.index,
        "supplier": plan.supplier,
        "planName": plan.plan_name,
        "baseRate": round(plan.base_rate, 4),
        "monthlyFee": round(plan.monthly_fee, 2),
        "contractTermMonths": plan.contract_term_months,
        "earlyTerminationFee": round(plan.early_termination_fee, 2),
        "renewablePercent": plan.renewable_percent,
        "features": list(plan.features[:5]),
    }


def build_plan_scoring_prompt(
    usage_summary: UsageSummaryOutput,
    catalog: Sequence[CatalogPlan],
    stage_input: StageInput,
    max_plans: int = DEFAULT_MAX_PROMPT_PLANS,
    default_max_contract_months: int = DEFAULT_MAX_CONTRACT_MONTHS,
) -> ScoringPrompt:
    """Build the scoring prompt and the index table used to parse its answer.

    Args:
        usage_summary: Validated stage 1 output.
        catalog: Full read-only plan catalog.
        stage_input: Original request; supplies preferences.
        max_plans: Upper bound on plans shown to the model.
        default_max_contract_months: Contract ceiling when the consumer gave none.

    Returns:
        The prompt text and the ``IndexedPlan`` table it references.

    Raises:
        ValueError: If the summary is missing, the catalog is empty, or no
            plan satisfies the contract length preference.
    """
    if usage_summary is None:
        raise ValueError("Usage summary is required for plan scoring")
    if not catalog:
        raise ValueError("At least one supplier plan required for scoring")

    preferences = stage_input.preferences
    max_contract_months = preferences.max_contract_months or default_max_contract_months
    indexed_plans = index_plans(catalog, max_contract_months, max_plans)
    if not indexed_plans:
        raise ValueError(
            f"No catalog plans have a contract of {max_contract_months} months or less"
        )

    preference_lines = [
        f"- Prioritize Savings: {'Yes' if preferences.prioritize_savings else 'No'}",
        f"- Prefer Renewable: {'Yes' if preferences.prefer_renewable else 'No'}",
        f"- Accept Variable Rates: {'Yes' if preferences.accept_variable_rates else 'No'}",
        f"- Max Contract Length: {max_contract_months} months",
    ]
    if preferences.max_monthly_budget:
        preference_lines.append(f"- Max Monthly Budget: ${preferences.max_monthly_budget:.2f}")

    available = json.dumps([_describe(indexed) for indexed in indexed_plans], indent=2)
    last_index = len(indexed_plans) - 1

    prompt = (
        f"{_SYSTEM_INSTRUCTIONS}\n"
        f"USAGE SUMMARY:\n"
        f"- Average Monthly Usage: {usage_summary.average_monthly_usage} kWh\n"
        f"- Peak Usage Month: {usage_summary.peak_usage_month}\n"
        f"- Total Annual Usage: {usage_summary.total_annual_usage} kWh\n"
        f"- Usage Pattern: {usage_summary.usage_pattern}\n"
        f"- Current Annual Cost: ${usage_summary.annual_cost:.2f}\n\n"
        f"USER PREFERENCES:\n" + "\n".join(preference_lines) + "\n\n"
        f"AVAILABLE PLANS (indices 0-{last_index}):\n{available}\n\n"
        f"TASK:\n"
        f"Score each plan on a 0-100 scale. For each plan estimate:\n"
        f"- Estimated annual cost = (baseRate * totalAnnualUsage) + (monthlyFee * 12)\n"
        f"- Estimated savings = currentAnnualCost - estimatedAnnualCost\n\n"
        f"{_SCORING_CRITERIA}\n"
        f"{_OUTPUT_RULES}\n"
        f"Every \"index\" MUST be an integer between 0 and {last_index}.\n\n"
        f"EXAMPLE OUTPUT:\n{_EXAMPLE_OUTPUT}\n\n"
        f"Provide ONLY the JSON array now:"
    )
    return ScoringPrompt(prompt=prompt, indexed_plans=indexed_plans)
