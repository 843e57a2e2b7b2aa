"""Read-only supplier plan catalog records."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class PlanRatings(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )

    reliability_score: float = Field(ge=1, le=5)
    customer_service_score: float = Field(ge=1, le=5)


class CatalogPlan(BaseModel):
    """One real supplier plan. Ground truth for every scoring response."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        str_strip_whitespace=True,
    )

    id: str = Field(min_length=1)
    supplier: str = Field(min_length=1)
    plan_name: str = Field(min_length=1)
    base_rate: float = Field(ge=0)
    monthly_fee: float = Field(ge=0)
    contract_term_months: int = Field(ge=1, le=60)
    early_termination_fee: float = Field(ge=0)
    renewable_percent: float = Field(ge=0, le=100)
    ratings: PlanRatings
    features: tuple[str, ...] = ()
    available_in_states: tuple[str, ...] = ()


class IndexedPlan(BaseModel):
    """A catalog plan shown to the model under a synthetic position index."""

    model_config = ConfigDict(frozen=True)

    index: int = Field(ge=0)
    plan: CatalogPlan
