"""
pipeline/state.py

LangGraph state schema and result types for the recommendation pipeline.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from typing_extensions import TypedDict

from validation.schemas import (
    NarrativeOutput,
    PlanScoringOutput,
    StageInput,
    UsageSummaryOutput,
)


class StageStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    DEGRADED = "degraded"
    FATAL = "fatal"
    SKIPPED = "skipped"


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


class PipelineError(BaseModel):
    """One recorded stage failure."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    stage: str
    message: str
    timestamp: str = Field(default_factory=utc_timestamp)


class PipelineResult(BaseModel):
    """Terminal output of one pipeline run.

    Any subset of the three stage outputs may be present; ``errors`` holds
    one entry per degraded, fatal or skipped stage.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    usage_summary: Optional[UsageSummaryOutput] = None
    plan_scoring: Optional[PlanScoringOutput] = None
    narrative: Optional[NarrativeOutput] = None
    execution_time: float = 0.0
    timestamp: str = Field(default_factory=utc_timestamp)
    errors: list[PipelineError] = Field(default_factory=list)
    stage_status: dict[str, StageStatus] = Field(default_factory=dict)

    @property
    def is_fatal(self) -> bool:
        return self.usage_summary is None and self.plan_scoring is None and self.narrative is None


class PipelineState(TypedDict):
    """Shared state passed between the stage nodes of the graph."""

    stage_input: StageInput
    usage_summary: Optional[UsageSummaryOutput]
    plan_scoring: Optional[PlanScoringOutput]
    narrative: Optional[NarrativeOutput]
    errors: list[PipelineError]
    stage_status: dict[str, StageStatus]
