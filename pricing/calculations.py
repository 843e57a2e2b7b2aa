"""
pricing/calculations.py

Deterministic cost and savings arithmetic for electricity plans.

Every number shown to a consumer is produced here, never by the model.
All functions are pure: identical inputs always give identical outputs.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Protocol

logger = logging.getLogger(__name__)

MONTHS_PER_YEAR = 12
_CENT = Decimal("0.01")


class CostCalculationError(ValueError):
    """Raised when plan pricing inputs cannot produce a meaningful cost."""


class RatedPlan(Protocol):
    base_rate: float
    monthly_fee: float


@dataclass(frozen=True)
class PlanRates:
    """Minimal pricing description of a plan, catalog or consumer-supplied."""

    base_rate: float
    monthly_fee: float
    contract_term_months: int = 12
    early_termination_fee: float = 0.0


@dataclass(frozen=True)
class PlanCostCalculation:
    estimated_annual_cost: float
    estimated_savings: float
    savings_percent: float


@dataclass(frozen=True)
class SavingsResult:
    amount: float
    percent: float


@dataclass(frozen=True)
class TrueSavingsBreakdown:
    """Full switching-cost breakdown shown next to a recommendation.

    Attributes:
        current_annual_cost: Annual cost of staying on the current plan.
        recommended_annual_cost: Annual cost of the recommended plan.
        energy_cost: Energy portion of the recommended plan's annual cost.
        service_fees: Twelve months of the recommended plan's monthly fee.
        early_termination_fee: Fee paid once to leave the current contract.
        amortized_termination_fee: ETF spread over the recommended term in years.
        first_year_savings: Savings with the full ETF deducted once.
        amortized_annual_savings: Savings with the amortized ETF deducted,
            used to compare plans with different contract lengths.
    """

    current_annual_cost: float
    recommended_annual_cost: float
    energy_cost: float
    service_fees: float
    early_termination_fee: float
    amortized_termination_fee: float
    first_year_savings: float
    amortized_annual_savings: float


def round_currency(value: float) -> float:
    """Round half-up to whole cents."""
    return float(Decimal(repr(value)).quantize(_CENT, rounding=ROUND_HALF_UP))


def _require_non_negative(name: str, value: float) -> None:
    if value is None or value < 0:
        raise CostCalculationError(f"Invalid {name}: {value}. Must be a non-negative number.")


def _require_positive(name: str, value: float) -> None:
    if value is None or value <= 0:
        raise CostCalculationError(f"Invalid {name}: {value}. Must be a positive number.")


def calculate_annual_cost(base_rate: float, monthly_fee: float, usage_kwh: float) -> float:
    """Annual cost = base_rate * usage + monthly_fee * 12, rounded to cents.

    >>> calculate_annual_cost(0.108, 9.95, 11000)
    1307.4
    """
    _require_non_negative("baseRate", base_rate)
    _require_non_negative("monthlyFee", monthly_fee)
    _require_positive("totalAnnualUsage", usage_kwh)

    return round_currency(base_rate * usage_kwh + monthly_fee * MONTHS_PER_YEAR)


def calculate_savings(current_annual_cost: float, new_annual_cost: float) -> SavingsResult:
    """Savings of a new cost against the current one; percent is 0 when current is 0."""
    _require_non_negative("currentAnnualCost", current_annual_cost)
    _require_non_negative("newAnnualCost", new_annual_cost)

    amount = current_annual_cost - new_annual_cost
    percent = (amount / current_annual_cost) * 100 if current_annual_cost > 0 else 0.0
    return SavingsResult(amount=round_currency(amount), percent=round_currency(percent))


def calculate_plan_costs(
    plan: RatedPlan,
    current_annual_cost: float,
    total_annual_usage: float,
) -> PlanCostCalculation:
    """Estimate annual cost and savings of one plan for a consumer.

    Args:
        plan: Anything exposing ``base_rate`` ($/kWh) and ``monthly_fee`` ($).
        current_annual_cost: The consumer's current annual spend in dollars.
        total_annual_usage: The consumer's annual consumption in kWh.

    Returns:
        Cost, savings and savings percent, each rounded to cents.

    Raises:
        CostCalculationError: For negative rates, fees or current cost, or
            non-positive usage.
    """
    _require_non_negative("baseRate", plan.base_rate)
    _require_non_negative("monthlyFee", plan.monthly_fee)
    _require_non_negative("currentAnnualCost", current_annual_cost)
    _require_positive("totalAnnualUsage", total_annual_usage)

    estimated_annual_cost = (
        plan.base_rate * total_annual_usage + plan.monthly_fee * MONTHS_PER_YEAR
    )
    estimated_savings = current_annual_cost - estimated_annual_cost
    savings_percent = (
        (estimated_savings / current_annual_cost) * 100 if current_annual_cost > 0 else 0.0
    )

    return PlanCostCalculation(
        estimated_annual_cost=round_currency(estimated_annual_cost),
        estimated_savings=round_currency(estimated_savings),
        savings_percent=round_currency(savings_percent),
    )


def calculate_multiple_plan_costs(
    plans: Iterable[RatedPlan],
    current_annual_cost: float,
    total_annual_usage: float,
) -> dict[str, PlanCostCalculation]:
    """Cost every plan, isolating per-plan failures.

    A plan whose inputs are invalid gets a zero-savings entry priced at the
    current annual cost instead of aborting the whole batch.
    """
    costs: dict[str, PlanCostCalculation] = {}
    for plan in plans:
        plan_id = str(getattr(plan, "id", ""))
        try:
            costs[plan_id] = calculate_plan_costs(plan, current_annual_cost, total_annual_usage)
        except CostCalculationError as exc:
            logger.error("Error calculating costs for plan %s: %s", plan_id, exc)
            costs[plan_id] = PlanCostCalculation(
                estimated_annual_cost=round_currency(max(current_annual_cost, 0.0)),
                estimated_savings=0.0,
                savings_percent=0.0,
            )
    return costs


def calculate_true_annual_savings(
    current_plan: PlanRates,
    recommended_plan: PlanRates,
    annual_kwh: float,
) -> TrueSavingsBreakdown:
    """Savings of switching plans once the termination fee is accounted for.

    The current contract's early-termination fee is deducted in full from
    first-year savings. For comparing plans of different lengths it is also
    amortized over the recommended plan's term in years
    (``fee / (contract_term_months / 12)``).
    """
    _require_non_negative("currentRate", current_plan.base_rate)
    _require_non_negative("currentMonthlyFee", current_plan.monthly_fee)
    _require_non_negative("earlyTerminationFee", current_plan.early_termination_fee)
    _require_positive("contractTermMonths", recommended_plan.contract_term_months)

    current_cost = calculate_annual_cost(
        current_plan.base_rate, current_plan.monthly_fee, annual_kwh
    )
    recommended_cost = calculate_annual_cost(
        recommended_plan.base_rate, recommended_plan.monthly_fee, annual_kwh
    )

    termination_fee = current_plan.early_termination_fee
    term_years = recommended_plan.contract_term_months / MONTHS_PER_YEAR
    amortized_fee = termination_fee / term_years
    annual_savings = current_cost - recommended_cost

    return TrueSavingsBreakdown(
        current_annual_cost=current_cost,
        recommended_annual_cost=recommended_cost,
        energy_cost=round_currency(recommended_plan.base_rate * annual_kwh),
        service_fees=round_currency(recommended_plan.monthly_fee * MONTHS_PER_YEAR),
        early_termination_fee=round_currency(termination_fee),
        amortized_termination_fee=round_currency(amortized_fee),
        first_year_savings=round_currency(annual_savings - termination_fee),
        amortized_annual_savings=round_currency(annual_savings - amortized_fee),
    )
