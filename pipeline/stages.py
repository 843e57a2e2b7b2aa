"""
pipeline/stages.py

Per-stage execution: prompt, bounded inference with retry, parsing, and
degradation to the deterministic fallback when any of those fail.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Callable, Optional

from app.config import PipelineSettings
from app.logging_utils import log_event, payload_size
from catalog.loader import filter_by_contract_length, find_plan
from catalog.models import CatalogPlan
from inference.adapter import BaseLLMAdapter, StageTimeoutError
from inference.retry import RetryPolicy, with_retry
from pipeline.fallbacks import (
    generate_narrative_fallback,
    generate_plan_scoring_fallback,
    generate_usage_fallback,
)
from pipeline.state import StageStatus
from pricing.calculations import (
    CostCalculationError,
    calculate_annual_cost,
    calculate_multiple_plan_costs,
)
from prompts import (
    build_narrative_prompt,
    build_plan_narrative_prompt,
    build_plan_scoring_prompt,
    build_usage_summary_prompt,
)
from validation.parsers import (
    MAX_EXPLANATION_LENGTH,
    parse_narrative,
    parse_plan_rationale,
    parse_plan_scoring,
    parse_usage_summary,
)
from validation.sanitizers import truncate_text
from validation.schemas import (
    NARRATIVE_STAGE,
    PLAN_SCORING_STAGE,
    USAGE_SUMMARY_STAGE,
    NarrativeOutput,
    NarrativeRecommendation,
    PlanScoringOutput,
    ScoredPlan,
    StageInput,
    UsageSummaryOutput,
    validate_model,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StageOutcome:
    """What one stage produced and how it got there."""

    status: StageStatus
    output: Any = None
    error: Optional[str] = None


def recalculate_plan_costs(
    plan_scoring: PlanScoringOutput,
    catalog: Sequence[CatalogPlan],
    total_annual_usage: float,
    current_annual_cost: float,
) -> PlanScoringOutput:
    """Replace model-estimated costs with cost-engine figures.

    Scores and order are unchanged; only ``estimated_annual_cost`` and
    ``estimated_savings`` are overwritten for plans found in ``catalog``.
    Savings are 0 when the current annual cost is unknown.
    """
    cost_known = bool(current_annual_cost and current_annual_cost > 0)
    plans = [find_plan(catalog, scored.plan_id) for scored in plan_scoring.scored_plans]
    costs = calculate_multiple_plan_costs(
        [plan for plan in plans if plan is not None],
        current_annual_cost if cost_known else 0.0,
        total_annual_usage,
    )

    updated: list[ScoredPlan] = []
    for scored in plan_scoring.scored_plans:
        calculation = costs.get(scored.plan_id)
        if calculation is None:
            updated.append(scored)
            continue
        updated.append(
            scored.model_copy(
                update={
                    "estimated_annual_cost": calculation.estimated_annual_cost,
                    "estimated_savings": calculation.estimated_savings if cost_known else 0.0,
                }
            )
        )
    return plan_scoring.model_copy(update={"scored_plans": updated})


def resolve_current_annual_cost(
    stage_input: StageInput,
    usage_summary: UsageSummaryOutput,
) -> float:
    """Best known annual spend on the current plan, or 0 when unknown.

    Prefers the summarized cost, then the billed monthly costs, then the
    current plan's rate and fee priced at the summarized usage.
    """
    cost = usage_summary.annual_cost or stage_input.energy_usage_data.total_cost
    if cost:
        return cost

    current_plan = stage_input.current_plan
    if current_plan.rate is None or usage_summary.total_annual_usage <= 0:
        return 0.0
    try:
        return calculate_annual_cost(
            current_plan.rate,
            current_plan.monthly_fee or 0.0,
            usage_summary.total_annual_usage,
        )
    except CostCalculationError as exc:
        logger.warning("Current plan cost unavailable: %s", exc)
        return 0.0


class StageRunner:
    """Runs each pipeline stage against one adapter and catalog.

    Holds no per-request state, so a single runner can serve concurrent
    pipeline runs.
    """

    def __init__(
        self,
        adapter: BaseLLMAdapter,
        catalog: Sequence[CatalogPlan],
        settings: PipelineSettings,
        sleep: Callable[[float], Any] = asyncio.sleep,
    ) -> None:
        self._adapter = adapter
        self._catalog = tuple(catalog)
        self._settings = settings
        self._sleep = sleep
        self._policy = RetryPolicy(
            max_attempts=settings.max_attempts,
            backoff_ms=settings.backoff_ms,
            backoff_multiplier=settings.backoff_multiplier,
        )

    async def _call_once(self, prompt: str, stage: str) -> str:
        timeout = self._settings.stage_timeout_seconds
        try:
            return await asyncio.wait_for(self._adapter.generate(prompt), timeout=timeout)
        except asyncio.TimeoutError as exc:
            raise StageTimeoutError(stage, timeout) from exc

    async def _infer(self, prompt: str, stage: str) -> str:
        return await with_retry(
            lambda: self._call_once(prompt, stage),
            self._policy,
            stage,
            sleep=self._sleep,
        )

    def _degrade(self, stage: str, exc: Exception, fallback: Callable[[], Any]) -> StageOutcome:
        message = f"{type(exc).__name__}: {exc}"
        logger.warning(
            "Stage %s failed, using fallback: %s",
            stage,
            message,
            extra={"stage_name": stage, "error_type": type(exc).__name__},
        )
        try:
            output = fallback()
        except Exception as fallback_exc:
            logger.error(
                "Stage %s fallback failed: %s",
                stage,
                fallback_exc,
                extra={"stage_name": stage, "error_type": type(fallback_exc).__name__},
            )
            return StageOutcome(
                status=StageStatus.FATAL,
                error=f"{message}; fallback failed: {fallback_exc}",
            )
        log_event(logger, logging.INFO, "stage_fallback", stage=stage)
        return StageOutcome(status=StageStatus.DEGRADED, output=output, error=message)

    async def run_usage_summary(self, stage_input: StageInput) -> StageOutcome:
        stage = USAGE_SUMMARY_STAGE
        started = time.perf_counter()
        try:
            prompt = build_usage_summary_prompt(stage_input)
            raw = await self._infer(prompt, stage)
            output = parse_usage_summary(raw, stage)
        except Exception as exc:
            return self._degrade(stage, exc, lambda: generate_usage_fallback(stage_input.monthly_data))

        log_event(
            logger,
            logging.INFO,
            "stage_complete",
            stage=stage,
            duration_ms=round((time.perf_counter() - started) * 1000, 1),
            payload_bytes=payload_size(output),
        )
        return StageOutcome(status=StageStatus.SUCCEEDED, output=output)

    def _max_contract_months(self, stage_input: StageInput) -> int:
        return (
            stage_input.preferences.max_contract_months
            or self._settings.default_max_contract_months
        )

    def _scoring_fallback(
        self,
        stage_input: StageInput,
        total_annual_usage: float | None,
        current_annual_cost: float | None,
    ) -> PlanScoringOutput:
        eligible = filter_by_contract_length(self._catalog, self._max_contract_months(stage_input))
        return generate_plan_scoring_fallback(
            eligible or self._catalog,
            total_annual_usage=total_annual_usage,
            current_annual_cost=current_annual_cost,
            limit=self._settings.fallback_plan_limit,
        )

    async def run_plan_scoring(
        self,
        stage_input: StageInput,
        usage_summary: UsageSummaryOutput,
    ) -> StageOutcome:
        stage = PLAN_SCORING_STAGE
        started = time.perf_counter()
        total_usage = usage_summary.total_annual_usage
        current_cost = resolve_current_annual_cost(stage_input, usage_summary)
        try:
            scoring_prompt = build_plan_scoring_prompt(
                usage_summary,
                self._catalog,
                stage_input,
                max_plans=self._settings.max_prompt_plans,
                default_max_contract_months=self._settings.default_max_contract_months,
            )
            raw = await self._infer(scoring_prompt.prompt, stage)
            output = parse_plan_scoring(
                raw,
                scoring_prompt.indexed_plans,
                stage,
                invalid_threshold=self._settings.invalid_index_threshold,
                min_plans_warning=self._settings.min_plans_warning,
                total_annual_usage=total_usage,
                current_annual_cost=current_cost,
            )
        except Exception as exc:
            return self._degrade(
                stage,
                exc,
                lambda: self._scoring_fallback(stage_input, total_usage, current_cost),
            )

        if self._settings.recalculate_costs:
            output = recalculate_plan_costs(output, self._catalog, total_usage, current_cost)

        log_event(
            logger,
            logging.INFO,
            "stage_complete",
            stage=stage,
            plans=output.total_plans_scored,
            duration_ms=round((time.perf_counter() - started) * 1000, 1),
        )
        return StageOutcome(status=StageStatus.SUCCEEDED, output=output)

    async def _explain_plan(
        self,
        scored_plan: ScoredPlan,
        usage_summary: UsageSummaryOutput,
    ) -> NarrativeRecommendation:
        prompt = build_plan_narrative_prompt(
            scored_plan,
            find_plan(self._catalog, scored_plan.plan_id),
            usage_summary,
        )
        raw = await self._infer(prompt, NARRATIVE_STAGE)
        return parse_plan_rationale(raw, scored_plan.plan_id, NARRATIVE_STAGE)

    async def _narrative_fan_out(
        self,
        plan_scoring: PlanScoringOutput,
        usage_summary: UsageSummaryOutput,
    ) -> NarrativeOutput:
        """Explain each top plan with its own concurrent inference call.

        A plan whose call fails gets a templated rationale. If every call
        fails the first error is raised so the stage degrades as a whole.
        """
        top_plans = plan_scoring.top_plans
        results = await asyncio.gather(
            *(self._explain_plan(plan, usage_summary) for plan in top_plans),
            return_exceptions=True,
        )

        failures = [result for result in results if isinstance(result, BaseException)]
        if len(failures) == len(results):
            raise failures[0]

        recommendations: list[NarrativeRecommendation] = []
        for plan, result in zip(top_plans, results):
            if isinstance(result, BaseException):
                logger.warning("Narrative for plan %s failed: %s", plan.plan_id, result)
                result = generate_narrative_fallback([plan]).top_recommendations[0]
            recommendations.append(result)

        explanation = "\n\n".join(recommendation.rationale for recommendation in recommendations)
        return validate_model(
            NarrativeOutput,
            {
                "explanation": truncate_text(explanation, MAX_EXPLANATION_LENGTH),
                "top_recommendations": recommendations,
            },
            NARRATIVE_STAGE,
        )

    async def run_narrative(
        self,
        plan_scoring: PlanScoringOutput,
        usage_summary: UsageSummaryOutput,
    ) -> StageOutcome:
        stage = NARRATIVE_STAGE
        started = time.perf_counter()
        try:
            if self._settings.narrative_fan_out:
                output = await self._narrative_fan_out(plan_scoring, usage_summary)
            else:
                prompt = build_narrative_prompt(plan_scoring, usage_summary, self._catalog)
                raw = await self._infer(prompt, stage)
                output = parse_narrative(
                    raw,
                    [plan.plan_id for plan in plan_scoring.top_plans],
                    stage,
                )
        except Exception as exc:
            return self._degrade(
                stage,
                exc,
                lambda: generate_narrative_fallback(plan_scoring.scored_plans),
            )

        log_event(
            logger,
            logging.INFO,
            "stage_complete",
            stage=stage,
            recommendations=len(output.top_recommendations),
            duration_ms=round((time.perf_counter() - started) * 1000, 1),
        )
        return StageOutcome(status=StageStatus.SUCCEEDED, output=output)
