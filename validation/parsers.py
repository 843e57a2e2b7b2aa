"""Parsing and validation of raw model output, one parser per stage.

Each parser sanitizes the raw text, parses it (JSON for stages 1-2, text
sections for stage 3), checks the stage schema and, for scoring,
cross-validates against catalog data.
"""

from __future__ import annotations

import json
import logging
import math
import re
from collections.abc import Sequence
from typing import Any

from catalog.models import CatalogPlan, IndexedPlan
from pricing.calculations import CostCalculationError, calculate_plan_costs
from validation.catalog_checks import catalog_by_id, identity_mismatches, resolve_index
from validation.errors import MappingError, MismatchError, ParseError, ValidationError
from validation.sanitizers import (
    sanitize_ai_response,
    sanitize_array,
    sanitize_number,
    sanitize_text,
    strip_markdown_fences,
    truncate_text,
)
from validation.schemas import (
    NARRATIVE_STAGE,
    PLAN_SCORING_STAGE,
    USAGE_SUMMARY_STAGE,
    NarrativeOutput,
    NarrativeRecommendation,
    PlanScoringOutput,
    ScoredPlan,
    UsageSummaryOutput,
    validate_model,
)

logger = logging.getLogger(__name__)

DEFAULT_INVALID_THRESHOLD = 0.5
DEFAULT_MIN_PLANS_WARNING = 5
MAX_SCORED_PLANS = 20
MAX_RATIONALE_LENGTH = 2000
MAX_EXPLANATION_LENGTH = 5000
MAX_REASONING_LENGTH = 500
MIN_NARRATIVE_LENGTH = 200
MIN_SECTION_LENGTH = 50

_SECTION_SPLIT_RE = re.compile(r"\s*-{3,}\s*")


def _load_json(raw_response: str, stage: str) -> Any:
    logger.debug("[%s] raw response (first 500 chars): %s", stage, (raw_response or "")[:500])
    sanitized = sanitize_ai_response(raw_response)
    try:
        return json.loads(sanitized)
    except (json.JSONDecodeError, TypeError) as exc:
        raise ParseError(
            f"Failed to parse JSON response: {exc}",
            stage,
            (raw_response or "")[:500],
        ) from exc


def parse_usage_summary(raw_response: str, stage: str = USAGE_SUMMARY_STAGE) -> UsageSummaryOutput:
    """Parse the stage 1 response.

    Raises:
        ParseError: If no JSON object can be parsed.
        ValidationError: If the object violates the usage summary ranges.
    """
    parsed = _load_json(raw_response, stage)
    if not isinstance(parsed, dict):
        raise ValidationError("Usage summary response must be a JSON object", stage, ["<root>: not an object"])

    parsed.pop("fallback", None)
    summary = validate_model(UsageSummaryOutput, parsed, stage)
    logger.info("[%s] usage summary validated", stage)
    return summary


# ---------------------------------------------------------------------------
# Plan scoring
# ---------------------------------------------------------------------------


def _scoring_entries(parsed: Any, stage: str) -> list[Any]:
    if isinstance(parsed, list):
        entries = parsed
    elif isinstance(parsed, dict) and isinstance(parsed.get("scoredPlans"), list):
        entries = parsed["scoredPlans"]
    else:
        raise ValidationError(
            "Plan scoring response must be a JSON array or an object with scoredPlans",
            stage,
            ["scoredPlans: missing or not an array"],
        )

    entries = sanitize_array(entries)
    if not entries:
        raise ValidationError("Plan scoring response contains no plans", stage, ["scoredPlans: empty"])
    return entries


def _check_invalid_fraction(
    invalid: list[str],
    total: int,
    threshold: float,
    stage: str,
    label: str,
) -> None:
    if invalid:
        logger.warning("[%s] dropped %d of %d entries: %s", stage, len(invalid), total, "; ".join(invalid))
    if invalid and len(invalid) / total > threshold:
        raise ValidationError(
            f"Too many invalid {label}: {len(invalid)} of {total} exceed the "
            f"{threshold:.0%} tolerance",
            stage,
            invalid,
        )


def _score_entry(
    entry: dict[str, Any],
    plan: CatalogPlan,
    total_annual_usage: float | None,
    current_annual_cost: float | None,
) -> ScoredPlan:
    """Combine catalog identity with the model's numeric judgement.

    Identity always comes from ``plan``. Only score, costs and reasoning are
    taken from the model; missing or negative costs are recomputed when the
    consumer's usage is known.
    """
    score = int(round(sanitize_number(entry.get("score"), default=50.0)))
    score = min(100, max(0, score))

    model_cost = sanitize_number(entry.get("estimatedAnnualCost"), default=-1.0)
    model_savings = entry.get("estimatedSavings")
    computed = None
    if total_annual_usage and (model_cost < 0 or model_savings is None):
        try:
            computed = calculate_plan_costs(plan, current_annual_cost or 0.0, total_annual_usage)
        except CostCalculationError as exc:
            logger.warning("Could not compute fallback cost for plan %s: %s", plan.id, exc)

    if model_cost < 0:
        model_cost = computed.estimated_annual_cost if computed else 0.0
    if model_savings is None:
        savings = computed.estimated_savings if computed and current_annual_cost else 0.0
    else:
        savings = sanitize_number(model_savings)

    reasoning = truncate_text(sanitize_text(str(entry.get("reasoning") or "")), MAX_REASONING_LENGTH)

    return ScoredPlan(
        plan_id=plan.id,
        supplier=plan.supplier,
        plan_name=plan.plan_name,
        score=score,
        estimated_annual_cost=round(model_cost, 2),
        estimated_savings=round(savings, 2),
        reasoning=reasoning or None,
    )


def _finalize_scoring(
    scored: list[ScoredPlan],
    stage: str,
    min_plans_warning: int,
) -> PlanScoringOutput:
    if not scored:
        raise ValidationError("No valid plans remained after validation", stage, ["scoredPlans: empty"])

    ranked = sorted(scored, key=lambda plan: plan.score, reverse=True)[:MAX_SCORED_PLANS]
    if len(ranked) < min_plans_warning:
        logger.warning(
            "[%s] insufficient plans returned: got %d, expected at least %d",
            stage,
            len(ranked),
            min_plans_warning,
        )

    output = validate_model(
        PlanScoringOutput,
        {"scored_plans": ranked, "total_plans_scored": len(ranked)},
        stage,
    )
    logger.info("[%s] validated %d scored plans", stage, len(ranked))
    return output


def parse_plan_scoring(
    raw_response: str,
    indexed_plans: Sequence[IndexedPlan],
    stage: str = PLAN_SCORING_STAGE,
    *,
    invalid_threshold: float = DEFAULT_INVALID_THRESHOLD,
    min_plans_warning: int = DEFAULT_MIN_PLANS_WARNING,
    total_annual_usage: float | None = None,
    current_annual_cost: float | None = None,
) -> PlanScoringOutput:
    """Parse an index-based scoring response.

    Each entry's ``index`` is resolved against ``indexed_plans``; entries with
    a non-numeric or out-of-range index are dropped. The model's own
    ``planId``/``supplier``/``planName`` are ignored, so only real catalog
    plans can appear in the output.

    Args:
        raw_response: Raw model text (bare array or ``{scoredPlans, ...}``).
        indexed_plans: The index table produced with the scoring prompt.
        stage: Stage name for errors and logs.
        invalid_threshold: Fraction of invalid entries above which the whole
            response is rejected.
        min_plans_warning: Fewer surviving plans than this logs a warning.
        total_annual_usage: Consumer usage, used to price entries whose
            model-supplied costs are unusable.
        current_annual_cost: Consumer's current annual spend.

    Raises:
        ParseError: If the response is not JSON.
        ValidationError: If the shape is wrong, too many indices are invalid,
            or nothing valid remains.
    """
    entries = _scoring_entries(_load_json(raw_response, stage), stage)
    size = len(indexed_plans)

    invalid: list[str] = []
    seen: set[int] = set()
    scored: list[ScoredPlan] = []
    for position, entry in enumerate(entries):
        raw_index = entry.get("index") if isinstance(entry, dict) else None
        index = resolve_index(raw_index, size)
        if index is None:
            invalid.append(f"scoredPlans.{position}.index: invalid index {raw_index!r} (expected 0-{size - 1})")
            continue
        if index in seen:
            logger.debug("[%s] duplicate index %d ignored", stage, index)
            continue
        seen.add(index)
        scored.append(
            _score_entry(
                entry,
                indexed_plans[index].plan,
                total_annual_usage,
                current_annual_cost,
            )
        )

    _check_invalid_fraction(invalid, len(entries), invalid_threshold, stage, "plan indices")
    return _finalize_scoring(scored, stage, min_plans_warning)


def parse_plan_scoring_strict(
    raw_response: str,
    catalog: Sequence[CatalogPlan],
    stage: str = PLAN_SCORING_STAGE,
    *,
    invalid_threshold: float = DEFAULT_INVALID_THRESHOLD,
    min_plans_warning: int = DEFAULT_MIN_PLANS_WARNING,
    total_annual_usage: float | None = None,
    current_annual_cost: float | None = None,
) -> PlanScoringOutput:
    """Parse a scoring response that references plans by ``planId``.

    Unknown ids are dropped (rejecting the whole response past
    ``invalid_threshold``). A known id echoed with a different supplier or
    plan name is rejected outright, except where names differ only by an
    embedded contract length.

    Raises:
        ParseError: If the response is not JSON.
        ValidationError: On shape errors or too many unknown plan ids.
        MismatchError: If a known id carries another plan's identity.
    """
    entries = _scoring_entries(_load_json(raw_response, stage), stage)
    plans_by_id = catalog_by_id(catalog)

    invalid: list[str] = []
    mismatches: list[str] = []
    mismatched_ids: list[str] = []
    matched: list[tuple[dict[str, Any], CatalogPlan]] = []
    seen: set[str] = set()
    for position, entry in enumerate(entries):
        plan_id = str(entry.get("planId") or "").strip() if isinstance(entry, dict) else ""
        plan = plans_by_id.get(plan_id)
        if plan is None:
            invalid.append(f"scoredPlans.{position}.planId: '{plan_id}' not found in catalog")
            continue
        problems = identity_mismatches(entry, plan)
        if problems:
            mismatches.extend(problems)
            mismatched_ids.append(plan_id)
            continue
        if plan_id in seen:
            continue
        seen.add(plan_id)
        matched.append((entry, plan))

    _check_invalid_fraction(invalid, len(entries), invalid_threshold, stage, "plan IDs")
    if mismatches:
        raise MismatchError(
            "Catalog identity mismatch: " + "; ".join(mismatches),
            stage,
            mismatched_ids,
        )

    scored = [
        _score_entry(entry, plan, total_annual_usage, current_annual_cost)
        for entry, plan in matched
    ]
    return _finalize_scoring(scored, stage, min_plans_warning)


# ---------------------------------------------------------------------------
# Narrative
# ---------------------------------------------------------------------------


def _character_windows(text: str, count: int) -> list[str]:
    """Split ``text`` into ``count`` equal-length windows.

    Boundaries may fall mid-word; callers accept that for malformed output.
    """
    window = math.ceil(len(text) / count)
    chunks = []
    for position in range(count):
        chunk = text[position * window : (position + 1) * window].strip()
        chunks.append(chunk or text[:MAX_RATIONALE_LENGTH].strip())
    return chunks


def parse_narrative(
    raw_response: str,
    top_plan_ids: Sequence[str],
    stage: str = NARRATIVE_STAGE,
) -> NarrativeOutput:
    """Map plain-text narrative sections onto the top plan ids.

    Sections are separated by ``---``. With at least as many sections as
    plans they map 1:1 in order; otherwise the whole text is cut into equal
    character windows so every plan still gets a non-empty rationale.

    Raises:
        MappingError: If there are no plan ids to explain.
        ValidationError: If the sanitized text is shorter than 200 characters.
    """
    logger.debug("[%s] raw response (first 500 chars): %s", stage, (raw_response or "")[:500])
    plan_ids = [plan_id for plan_id in top_plan_ids if plan_id][:3]
    if not plan_ids:
        raise MappingError("No plan ids supplied for narrative mapping", stage, "top_plan_ids is empty")

    text = sanitize_text(strip_markdown_fences(raw_response or ""))
    if len(text) < MIN_NARRATIVE_LENGTH:
        raise ValidationError(
            f"Response too short: {len(text)} chars, expected at least {MIN_NARRATIVE_LENGTH}",
            stage,
            [f"explanation: {len(text)} chars"],
        )
    if len(text) > MAX_EXPLANATION_LENGTH:
        logger.warning("[%s] response too long (%d chars), truncating", stage, len(text))

    sections = [
        section.strip()
        for section in _SECTION_SPLIT_RE.split(text)
        if len(section.strip()) >= MIN_SECTION_LENGTH
    ]
    if len(sections) >= len(plan_ids):
        rationales = sections[: len(plan_ids)]
    else:
        logger.warning(
            "[%s] found %d sections for %d plans, splitting by character windows",
            stage,
            len(sections),
            len(plan_ids),
        )
        rationales = _character_windows(text, len(plan_ids))

    recommendations = [
        NarrativeRecommendation(plan_id=plan_id, rationale=truncate_text(rationale, MAX_RATIONALE_LENGTH))
        for plan_id, rationale in zip(plan_ids, rationales)
    ]
    return validate_model(
        NarrativeOutput,
        {
            "explanation": truncate_text(text, MAX_EXPLANATION_LENGTH),
            "top_recommendations": recommendations,
        },
        stage,
    )


def parse_plan_rationale(
    raw_response: str,
    plan_id: str,
    stage: str = NARRATIVE_STAGE,
) -> NarrativeRecommendation:
    """Parse a single-plan narrative response from the fan-out path.

    Raises:
        ValidationError: If the text is shorter than 50 characters.
    """
    text = sanitize_text(strip_markdown_fences(raw_response or ""))
    text = _SECTION_SPLIT_RE.sub(" ", text).strip()
    if len(text) < MIN_SECTION_LENGTH:
        raise ValidationError(
            f"Plan narrative too short: {len(text)} chars, expected at least {MIN_SECTION_LENGTH}",
            stage,
            [f"rationale[{plan_id}]: {len(text)} chars"],
        )
    return NarrativeRecommendation(plan_id=plan_id, rationale=truncate_text(text, MAX_RATIONALE_LENGTH))
