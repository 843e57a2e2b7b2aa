"""Stage 1 prompt: summarize twelve months of usage."""

from __future__ import annotations

import json

from validation.schemas import MONTHS_REQUIRED, StageInput

_EXAMPLE_OUTPUT = json.dumps(
    {
        "averageMonthlyUsage": 850,
        "peakUsageMonth": "August",
        "totalAnnualUsage": 10200,
        "usagePattern": "seasonal",
        "annualCost": 1428.50,
    },
    indent=2,
)

_OUTPUT_FORMAT = json.dumps(
    {
        "averageMonthlyUsage": "<number>",
        "peakUsageMonth": "<month name>",
        "totalAnnualUsage": "<number>",
        "usagePattern": "<consistent|seasonal|high-variance>",
        "annualCost": "<number>",
    },
    indent=2,
)

_SYSTEM_INSTRUCTIONS = """\
You are an energy usage analyst. Analyze the following 12 months of \
electricity usage data and provide a structured summary.
"""

_PATTERN_DEFINITIONS = """\
- "consistent": Monthly usage varies by less than 20% from average
- "seasonal": Clear summer or winter peaks (>30% above average)
- "high-variance": Irregular usage with no clear pattern
"""


def build_usage_summary_prompt(stage_input: StageInput) -> str:
    """Build the usage-summary prompt.

    Raises:
        ValueError: If the input does not hold exactly twelve months.
    """
    monthly_data = stage_input.energy_usage_data.monthly_data
    if len(monthly_data) != MONTHS_REQUIRED:
        raise ValueError(
            f"Usage data must contain exactly {MONTHS_REQUIRED} months, got {len(monthly_data)}"
        )

    usage_rows = [
        {
            "month": entry.month or f"Month {position + 1}",
            "usage": round(entry.usage, 2),
            "cost": round(entry.cost or 0.0, 2),
        }
        for position, entry in enumerate(monthly_data)
    ]
    plan = stage_input.current_plan

    return (
        f"{_SYSTEM_INSTRUCTIONS}\n"
        f"USAGE DATA:\n{json.dumps(usage_rows, indent=2)}\n\n"
        f"CURRENT PLAN:\n"
        f"Supplier: {plan.supplier or 'Unknown'}\n"
        f"Plan: {plan.plan_name or 'Unknown'}\n"
        f"Rate Structure: {plan.rate_structure or 'Unknown'}\n\n"
        f"TASK:\n"
        f"Analyze this usage data and identify key patterns. Calculate:\n"
        f"1. Average monthly usage (kWh)\n"
        f"2. Peak usage month\n"
        f"3. Total annual usage\n"
        f"4. Usage pattern classification\n"
        f"5. Total annual cost\n\n"
        f"OUTPUT FORMAT:\n"
        f"Respond with ONLY a valid JSON object in this exact format:\n"
        f"{_OUTPUT_FORMAT}\n\n"
        f"PATTERN DEFINITIONS:\n{_PATTERN_DEFINITIONS}\n"
        f"EXAMPLE OUTPUT:\n{_EXAMPLE_OUTPUT}\n\n"
        f"Provide your analysis now:"
    )
