from __future__ import annotations

import pytest

from conftest import request_payload
from pipeline.fallbacks import generate_plan_scoring_fallback, generate_usage_fallback
from prompts import (
    build_narrative_prompt,
    build_plan_narrative_prompt,
    build_plan_scoring_prompt,
    build_usage_summary_prompt,
)
from validation.schemas import StageInput


@pytest.fixture()
def usage_summary(stage_input):
    return generate_usage_fallback(stage_input.monthly_data)


def test_usage_prompt_lists_every_month(stage_input) -> None:
    prompt = build_usage_summary_prompt(stage_input)
    assert '"month": "January"' in prompt
    assert '"month": "December"' in prompt
    assert "Legacy Power" in prompt


def test_usage_prompt_requires_twelve_months(stage_input) -> None:
    short = stage_input.model_copy(
        update={
            "energy_usage_data": stage_input.energy_usage_data.model_copy(
                update={"monthly_data": stage_input.monthly_data[:11]}
            )
        }
    )
    with pytest.raises(ValueError, match="exactly 12 months"):
        build_usage_summary_prompt(short)


def test_scoring_prompt_filters_by_contract_length(catalog, stage_input, usage_summary) -> None:
    scoring_prompt = build_plan_scoring_prompt(usage_summary, catalog, stage_input)

    terms = [indexed.plan.contract_term_months for indexed in scoring_prompt.indexed_plans]
    assert terms and max(terms) <= 12
    assert [indexed.index for indexed in scoring_prompt.indexed_plans] == list(range(len(terms)))
    assert f"indices 0-{len(terms) - 1}" in scoring_prompt.prompt


def test_scoring_prompt_hides_plan_ids(catalog, stage_input, usage_summary) -> None:
    scoring_prompt = build_plan_scoring_prompt(usage_summary, catalog, stage_input)
    for indexed in scoring_prompt.indexed_plans:
        assert indexed.plan.id not in scoring_prompt.prompt


def test_scoring_prompt_caps_plan_count(catalog, usage_summary) -> None:
    stage_input = StageInput.from_payload(request_payload(preferences={"maxContractMonths": 60}))
    scoring_prompt = build_plan_scoring_prompt(usage_summary, catalog, stage_input, max_plans=4)
    assert len(scoring_prompt.indexed_plans) == 4


def test_scoring_prompt_without_eligible_plans(catalog, usage_summary) -> None:
    stage_input = StageInput.from_payload(request_payload(preferences={"maxContractMonths": 1}))
    with pytest.raises(ValueError, match="No catalog plans"):
        build_plan_scoring_prompt(usage_summary, catalog, stage_input)


def test_scoring_prompt_requires_catalog(stage_input, usage_summary) -> None:
    with pytest.raises(ValueError):
        build_plan_scoring_prompt(usage_summary, (), stage_input)


def test_narrative_prompt_enriches_top_three(catalog, usage_summary) -> None:
    scoring = generate_plan_scoring_fallback(catalog, 12_000, 1500)
    prompt = build_narrative_prompt(scoring, usage_summary, catalog)

    first = catalog[0]
    assert f'"baseRate": {first.base_rate}' in prompt
    assert "Write exactly 3 sections" in prompt
    assert "---" in prompt
    assert scoring.scored_plans[3].plan_name not in prompt


def test_plan_narrative_prompt_single_plan(catalog, usage_summary) -> None:
    scoring = generate_plan_scoring_fallback(catalog, 12_000, 1500)
    plan = scoring.scored_plans[0]
    prompt = build_plan_narrative_prompt(plan, catalog[0], usage_summary)
    assert plan.plan_name in prompt
    assert "RECOMMENDED PLAN" in prompt
