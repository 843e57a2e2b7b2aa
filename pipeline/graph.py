"""
pipeline/graph.py

LangGraph workflow assembly for the three-stage recommendation pipeline.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Sequence
from typing import Any, Callable, Optional

from langchain_core.runnables import RunnableConfig
from langgraph.graph import END, START, StateGraph

from app.config import (
    LLMSettings,
    PipelineSettings,
    get_llm_settings,
    get_pipeline_settings,
)
from catalog.loader import get_default_catalog
from catalog.models import CatalogPlan
from inference.adapter import BaseLLMAdapter, MockLLMAdapter, OpenAILLMAdapter
from pipeline.stages import StageOutcome, StageRunner
from pipeline.state import PipelineError, PipelineResult, PipelineState, StageStatus
from validation.schemas import (
    NARRATIVE_STAGE,
    PLAN_SCORING_STAGE,
    STAGES,
    USAGE_SUMMARY_STAGE,
    StageInput,
)

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str, str, Any], None]

SKIPPED_MESSAGE = "Skipped due to previous stage failure"

_STAGE_KEYS = {
    USAGE_SUMMARY_STAGE: "usage_summary",
    PLAN_SCORING_STAGE: "plan_scoring",
    NARRATIVE_STAGE: "narrative",
}


def build_adapter(settings: Optional[LLMSettings] = None) -> BaseLLMAdapter:
    """Instantiate the adapter selected by the LLM_ADAPTER env var.

    LLM_ADAPTER=mock   -> MockLLMAdapter  (local runs, no API key required)
    LLM_ADAPTER=openai -> OpenAILLMAdapter (default)
    """
    settings = settings or get_llm_settings()
    if settings.adapter == "mock":
        return MockLLMAdapter()

    return OpenAILLMAdapter(
        model=settings.model,
        max_tokens=settings.max_tokens,
        api_key=settings.api_key,
        base_url=settings.base_url,
    )


def _notify(
    callback: Optional[ProgressCallback],
    stage: str,
    status: str,
    output: Any,
) -> None:
    """Invoke a progress callback, logging instead of propagating its errors."""
    if callback is None:
        return
    try:
        callback(stage, status, output)
    except Exception:
        logger.exception("Error in progress callback for stage %s", stage)


def _progress_callback(config: Optional[RunnableConfig]) -> Optional[ProgressCallback]:
    configurable = (config or {}).get("configurable") or {}
    return configurable.get("progress_callback")


class RecommendationPipeline:
    """Runs usage summary, plan scoring and narrative in sequence.

    A stage that fails degrades to its fallback and the run continues; only
    a stage whose fallback also fails stops the graph, after which the
    remaining stages are marked skipped.
    """

    def __init__(
        self,
        adapter: BaseLLMAdapter,
        catalog: Sequence[CatalogPlan],
        settings: Optional[PipelineSettings] = None,
        sleep: Optional[Callable[[float], Any]] = None,
    ) -> None:
        self._settings = settings or get_pipeline_settings()
        runner_kwargs = {"sleep": sleep} if sleep is not None else {}
        self._runner = StageRunner(adapter, catalog, self._settings, **runner_kwargs)
        self._graph = self._build_graph()

    def _build_graph(self):
        graph = StateGraph(PipelineState)

        for stage in STAGES:
            graph.add_node(f"start_{_STAGE_KEYS[stage]}", self._start_node(stage))
        graph.add_node("usage_summary", self._usage_summary_node)
        graph.add_node("plan_scoring", self._plan_scoring_node)
        graph.add_node("narrative", self._narrative_node)
        graph.add_node("skip_remaining", self._skip_remaining_node)

        graph.add_edge(START, "start_usage_summary")
        for stage in STAGES:
            graph.add_edge(f"start_{_STAGE_KEYS[stage]}", _STAGE_KEYS[stage])
        graph.add_conditional_edges(
            "usage_summary",
            self._route_after(USAGE_SUMMARY_STAGE),
            {"continue": "start_plan_scoring", "stop": "skip_remaining"},
        )
        graph.add_conditional_edges(
            "plan_scoring",
            self._route_after(PLAN_SCORING_STAGE),
            {"continue": "start_narrative", "stop": "skip_remaining"},
        )
        graph.add_edge("narrative", END)
        graph.add_edge("skip_remaining", END)

        return graph.compile()

    @staticmethod
    def _route_after(stage: str) -> Callable[[PipelineState], str]:
        def route(state: PipelineState) -> str:
            if state["stage_status"].get(stage) == StageStatus.FATAL:
                return "stop"
            return "continue"

        return route

    @staticmethod
    def _record(
        state: PipelineState,
        stage: str,
        outcome: StageOutcome,
        config: Optional[RunnableConfig],
    ) -> dict[str, Any]:
        errors = list(state["errors"])
        if outcome.error:
            errors.append(PipelineError(stage=stage, message=outcome.error))

        stage_status = dict(state["stage_status"])
        stage_status[stage] = outcome.status

        progress = "complete" if outcome.status == StageStatus.SUCCEEDED else "error"
        _notify(_progress_callback(config), stage, progress, outcome.output)

        return {
            _STAGE_KEYS[stage]: outcome.output,
            "errors": errors,
            "stage_status": stage_status,
        }

    @staticmethod
    def _start_node(stage: str) -> Callable[..., dict[str, Any]]:
        def start(state: PipelineState, config: RunnableConfig) -> dict[str, Any]:
            logger.info("Stage %s running", stage)
            _notify(_progress_callback(config), stage, "running", None)
            stage_status = dict(state["stage_status"])
            stage_status[stage] = StageStatus.RUNNING
            return {"stage_status": stage_status}

        return start

    async def _usage_summary_node(
        self,
        state: PipelineState,
        config: RunnableConfig,
    ) -> dict[str, Any]:
        outcome = await self._runner.run_usage_summary(state["stage_input"])
        return self._record(state, USAGE_SUMMARY_STAGE, outcome, config)

    async def _plan_scoring_node(
        self,
        state: PipelineState,
        config: RunnableConfig,
    ) -> dict[str, Any]:
        outcome = await self._runner.run_plan_scoring(
            state["stage_input"],
            state["usage_summary"],
        )
        return self._record(state, PLAN_SCORING_STAGE, outcome, config)

    async def _narrative_node(
        self,
        state: PipelineState,
        config: RunnableConfig,
    ) -> dict[str, Any]:
        outcome = await self._runner.run_narrative(
            state["plan_scoring"],
            state["usage_summary"],
        )
        return self._record(state, NARRATIVE_STAGE, outcome, config)

    @staticmethod
    def _skip_remaining_node(state: PipelineState) -> dict[str, Any]:
        errors = list(state["errors"])
        stage_status = dict(state["stage_status"])
        for stage in STAGES:
            if stage_status.get(stage) == StageStatus.PENDING:
                stage_status[stage] = StageStatus.SKIPPED
                errors.append(PipelineError(stage=stage, message=SKIPPED_MESSAGE))
        logger.error(
            "Pipeline stopped after fatal stage failure",
            extra={"stage_status": {k: v.value for k, v in stage_status.items()}},
        )
        return {"errors": errors, "stage_status": stage_status}

    @property
    def graph(self):
        """The compiled StateGraph, for streaming intermediate states."""
        return self._graph

    @staticmethod
    def initial_state(stage_input: StageInput) -> PipelineState:
        return {
            "stage_input": stage_input,
            "usage_summary": None,
            "plan_scoring": None,
            "narrative": None,
            "errors": [],
            "stage_status": {stage: StageStatus.PENDING for stage in STAGES},
        }

    async def run(
        self,
        stage_input: StageInput,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> PipelineResult:
        """Execute all three stages for one consumer.

        Args:
            stage_input: Validated request.
            progress_callback: Optional ``(stage, status, output)`` hook,
                called with ``running`` then ``complete`` or ``error``.

        Returns:
            Whatever subset of stage outputs was produced, with one error
            entry per degraded, fatal or skipped stage.
        """
        started = time.perf_counter()
        final = await self._graph.ainvoke(
            self.initial_state(stage_input),
            config={"configurable": {"progress_callback": progress_callback}},
        )

        result = PipelineResult(
            usage_summary=final.get("usage_summary"),
            plan_scoring=final.get("plan_scoring"),
            narrative=final.get("narrative"),
            execution_time=round((time.perf_counter() - started) * 1000, 2),
            errors=final.get("errors", []),
            stage_status=final.get("stage_status", {}),
        )
        logger.info(
            "Pipeline finished in %.1fms with %d error(s)",
            result.execution_time,
            len(result.errors),
            extra={"stage_status": {k: v.value for k, v in result.stage_status.items()}},
        )
        return result


async def run_pipeline(
    stage_input: StageInput | dict[str, Any],
    adapter: Optional[BaseLLMAdapter] = None,
    catalog: Optional[Sequence[CatalogPlan]] = None,
    settings: Optional[PipelineSettings] = None,
    progress_callback: Optional[ProgressCallback] = None,
) -> PipelineResult:
    """Validate ``stage_input`` and run the pipeline with default collaborators.

    Raises:
        InputValidationError: If a raw payload fails input validation.
    """
    if not isinstance(stage_input, StageInput):
        stage_input = StageInput.from_payload(stage_input)

    pipeline = RecommendationPipeline(
        adapter or build_adapter(),
        catalog if catalog is not None else get_default_catalog(),
        settings,
    )
    return await pipeline.run(stage_input, progress_callback)
