"""Structural contracts for pipeline input and every stage's output.

Attributes are snake_case; JSON uses the camelCase names the prompts ask
the model for (``averageMonthlyUsage``, ``scoredPlans``, ...).
"""

from __future__ import annotations

from typing import Any, Literal, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from validation.errors import ValidationError

MONTHS_REQUIRED = 12

USAGE_SUMMARY_STAGE = "usage-summary"
PLAN_SCORING_STAGE = "plan-scoring"
NARRATIVE_STAGE = "narrative"
STAGES = (USAGE_SUMMARY_STAGE, PLAN_SCORING_STAGE, NARRATIVE_STAGE)

UsagePattern = Literal["consistent", "seasonal", "high-variance"]

_ModelT = TypeVar("_ModelT", bound=BaseModel)


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )


class _FrozenCamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
        frozen=True,
    )


def _format_pydantic_errors(exc: PydanticValidationError) -> list[str]:
    return [
        f"{'.'.join(str(loc) for loc in e['loc']) or '<root>'}: {e['msg']}"
        for e in exc.errors()
    ]


# ---------------------------------------------------------------------------
# Pipeline input
# ---------------------------------------------------------------------------


class InputValidationError(ValueError):
    """Raised before any inference call when the request payload is unusable."""

    def __init__(self, message: str, errors: list[str] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.errors = errors or []


class MonthlyUsage(_CamelModel):
    month: str = Field(min_length=1)
    usage: float = Field(ge=0, le=10_000)
    cost: float = Field(default=0.0, ge=0)


class EnergyUsageData(_CamelModel):
    monthly_data: list[MonthlyUsage]

    @field_validator("monthly_data")
    @classmethod
    def _twelve_months(cls, value: list[MonthlyUsage]) -> list[MonthlyUsage]:
        if len(value) != MONTHS_REQUIRED:
            raise ValueError(
                f"Usage data must contain exactly {MONTHS_REQUIRED} months, got {len(value)}"
            )
        if sum(month.usage for month in value) < 1:
            raise ValueError("Total annual usage must be at least 1 kWh")
        return value

    @property
    def total_usage(self) -> float:
        return sum(month.usage for month in self.monthly_data)

    @property
    def total_cost(self) -> float:
        return sum(month.cost for month in self.monthly_data)


class CurrentPlan(_CamelModel):
    supplier: str = "Unknown"
    plan_name: str = "Unknown"
    rate_structure: str = "Unknown"
    rate: Optional[float] = Field(default=None, ge=0)
    monthly_fee: Optional[float] = Field(default=None, ge=0)
    early_termination_fee: Optional[float] = Field(default=None, ge=0)


class Preferences(_CamelModel):
    prioritize_savings: bool = False
    prefer_renewable: bool = False
    accept_variable_rates: bool = False
    max_monthly_budget: Optional[float] = Field(default=None, ge=0)
    max_contract_months: Optional[int] = Field(default=None, ge=1, le=60)


class StageInput(_CamelModel):
    """Everything the pipeline knows about one consumer."""

    energy_usage_data: EnergyUsageData
    current_plan: CurrentPlan
    preferences: Preferences = Field(default_factory=Preferences)

    @classmethod
    def from_payload(cls, payload: Any) -> "StageInput":
        """Validate a raw request payload.

        Raises:
            InputValidationError: With one entry per offending field.
        """
        try:
            return cls.model_validate(payload)
        except PydanticValidationError as exc:
            errors = _format_pydantic_errors(exc)
            raise InputValidationError(
                "Invalid pipeline input: " + "; ".join(errors), errors
            ) from exc

    @property
    def monthly_data(self) -> list[MonthlyUsage]:
        return self.energy_usage_data.monthly_data


# ---------------------------------------------------------------------------
# Stage outputs
# ---------------------------------------------------------------------------


class UsageSummaryOutput(_FrozenCamelModel):
    """Stage 1 contract."""

    average_monthly_usage: float = Field(ge=1, le=10_000)
    peak_usage_month: str = Field(min_length=1)
    total_annual_usage: float = Field(ge=1, le=120_000)
    usage_pattern: UsagePattern
    annual_cost: float = Field(ge=0)
    fallback: bool = False


class ScoredPlan(_FrozenCamelModel):
    plan_id: str = Field(min_length=1)
    supplier: str = Field(min_length=1)
    plan_name: str = Field(min_length=1)
    score: int = Field(ge=0, le=100)
    estimated_annual_cost: float = Field(ge=0)
    estimated_savings: float
    reasoning: Optional[str] = Field(default=None, min_length=1, max_length=500)


class PlanScoringOutput(_FrozenCamelModel):
    """Stage 2 contract."""

    scored_plans: list[ScoredPlan] = Field(min_length=1, max_length=20)
    total_plans_scored: int = Field(ge=1)
    fallback: bool = False

    @property
    def top_plans(self) -> list[ScoredPlan]:
        return self.scored_plans[:3]


class NarrativeRecommendation(_FrozenCamelModel):
    plan_id: str = Field(min_length=1)
    rationale: str = Field(min_length=1, max_length=2000)


class NarrativeOutput(_FrozenCamelModel):
    """Stage 3 contract."""

    explanation: str = Field(min_length=50, max_length=5000)
    top_recommendations: list[NarrativeRecommendation] = Field(min_length=1, max_length=3)
    fallback: bool = False


def validate_model(model: type[_ModelT], raw: Any, stage: str) -> _ModelT:
    """Check ``raw`` against ``model`` and return the typed result.

    Raises:
        ValidationError: Carrying the dotted path of every offending field.
    """
    try:
        return model.model_validate(raw)
    except PydanticValidationError as exc:
        errors = _format_pydantic_errors(exc)
        raise ValidationError(
            f"Schema validation failed: {', '.join(errors)}", stage, errors
        ) from exc
