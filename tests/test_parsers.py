"""
tests/test_parsers.py

Pytest unit tests for the stage response parsers.

Coverage
--------
- Usage summary parsing and range checks
- Index-based scoring: catalog identity, index safety, cost backfill
- Strict scoring: unknown ids, identity mismatch, contract-length fuzzy match
- Narrative mapping: well-formed, missing and excessive separators
"""

from __future__ import annotations

import json

import pytest

from conftest import narrative_text, scoring_json, usage_summary_json
from prompts.plan_scoring import index_plans
from validation.catalog_checks import names_match, resolve_index
from validation.errors import MappingError, MismatchError, ParseError, ValidationError
from validation.parsers import (
    parse_narrative,
    parse_plan_rationale,
    parse_plan_scoring,
    parse_plan_scoring_strict,
    parse_usage_summary,
)


@pytest.fixture()
def indexed_plans(catalog):
    return index_plans(catalog, max_contract_months=12)


# ---------------------------------------------------------------------------
# Usage summary
# ---------------------------------------------------------------------------


class TestUsageSummary:
    def test_parses_fenced_json(self) -> None:
        summary = parse_usage_summary(f"```json\n{usage_summary_json()}\n```")
        assert summary.total_annual_usage == 12000
        assert summary.usage_pattern == "consistent"
        assert summary.fallback is False

    def test_out_of_range_usage_rejected(self) -> None:
        with pytest.raises(ValidationError) as excinfo:
            parse_usage_summary(usage_summary_json(averageMonthlyUsage=20_000))
        assert excinfo.value.errors
        assert excinfo.value.stage == "usage-summary"

    def test_unknown_pattern_rejected(self) -> None:
        with pytest.raises(ValidationError):
            parse_usage_summary(usage_summary_json(usagePattern="spiky"))

    def test_non_json_raises_parse_error(self) -> None:
        with pytest.raises(ParseError) as excinfo:
            parse_usage_summary("I could not analyze this data.")
        assert excinfo.value.raw_response.startswith("I could not")


# ---------------------------------------------------------------------------
# Index-based scoring
# ---------------------------------------------------------------------------


class TestIndexedScoring:
    def test_identity_always_comes_from_catalog(self, indexed_plans) -> None:
        raw = json.dumps(
            [
                {
                    "index": 6,
                    "planId": "plan-made-up",
                    "supplier": "Imaginary Power",
                    "planName": "Too Good To Be True",
                    "score": 88,
                }
            ]
        )
        output = parse_plan_scoring(raw, indexed_plans)

        plan = output.scored_plans[0]
        assert plan.plan_id == "plan-value-001"
        assert plan.supplier == "TexEnergy"
        assert plan.plan_name == "Value Saver"
        assert plan.score == 88

    def test_sorted_descending_and_out_of_range_dropped(self, indexed_plans) -> None:
        raw = json.dumps(
            [
                {"index": 0, "score": 40},
                {"index": 1, "score": 95},
                {"index": 99, "score": 100},
                {"index": 2, "score": 70},
            ]
        )
        output = parse_plan_scoring(raw, indexed_plans)

        assert [plan.score for plan in output.scored_plans] == [95, 70, 40]
        assert output.total_plans_scored == 3

    def test_majority_invalid_indices_rejected(self, indexed_plans) -> None:
        raw = json.dumps(
            [{"index": 0, "score": 80}, {"index": -1}, {"index": "abc"}, {"index": 42}]
        )
        with pytest.raises(ValidationError, match="Too many invalid plan indices"):
            parse_plan_scoring(raw, indexed_plans)

    def test_exactly_half_invalid_is_tolerated(self, indexed_plans) -> None:
        raw = json.dumps([{"index": 0, "score": 80}, {"index": 50, "score": 60}])
        output = parse_plan_scoring(raw, indexed_plans)
        assert [plan.plan_id for plan in output.scored_plans] == ["plan-eco-001"]

    def test_threshold_is_configurable(self, indexed_plans) -> None:
        raw = json.dumps([{"index": 0, "score": 80}, {"index": 50, "score": 60}])
        with pytest.raises(ValidationError):
            parse_plan_scoring(raw, indexed_plans, invalid_threshold=0.25)

    def test_scored_plans_object_shape_accepted(self, indexed_plans) -> None:
        raw = json.dumps({"scoredPlans": json.loads(scoring_json([3, 4])), "totalPlansScored": 2})
        output = parse_plan_scoring(raw, indexed_plans)
        assert [plan.plan_id for plan in output.scored_plans] == ["plan-gme-012", "plan-frontier-006"]

    def test_empty_array_rejected(self, indexed_plans) -> None:
        with pytest.raises(ValidationError):
            parse_plan_scoring("[]", indexed_plans)

    def test_missing_costs_filled_by_cost_engine(self, indexed_plans) -> None:
        raw = json.dumps([{"index": 6, "score": 75}])
        output = parse_plan_scoring(
            raw,
            indexed_plans,
            total_annual_usage=11_000,
            current_annual_cost=1549.0,
        )
        plan = output.scored_plans[0]
        assert plan.estimated_annual_cost == 1307.40
        assert plan.estimated_savings == 241.60

    def test_score_clamped_and_reasoning_sanitized(self, indexed_plans) -> None:
        raw = json.dumps([{"index": 0, "score": 150, "reasoning": "<b>Great</b>   value"}])
        plan = parse_plan_scoring(raw, indexed_plans).scored_plans[0]
        assert plan.score == 100
        assert plan.reasoning == "Great value"

    def test_duplicate_indices_keep_first(self, indexed_plans) -> None:
        raw = json.dumps([{"index": 1, "score": 90}, {"index": 1, "score": 10}])
        output = parse_plan_scoring(raw, indexed_plans)
        assert [plan.score for plan in output.scored_plans] == [90]


# ---------------------------------------------------------------------------
# Strict scoring (raw plan ids)
# ---------------------------------------------------------------------------


class TestStrictScoring:
    def test_unknown_ids_dropped_below_threshold(self, catalog) -> None:
        raw = json.dumps(
            [
                {"planId": "plan-eco-001", "supplier": "Green Energy Co", "planName": "Eco Max", "score": 80},
                {"planId": "plan-value-001", "supplier": "TexEnergy", "planName": "Value Saver", "score": 90},
                {"planId": "plan-ghost-999", "supplier": "Ghost", "planName": "Ghost", "score": 99},
            ]
        )
        output = parse_plan_scoring_strict(raw, catalog)
        assert [plan.plan_id for plan in output.scored_plans] == ["plan-value-001", "plan-eco-001"]

    def test_unknown_ids_over_threshold_rejected(self, catalog) -> None:
        raw = json.dumps(
            [
                {"planId": "plan-ghost-1", "supplier": "X", "planName": "Y"},
                {"planId": "plan-ghost-2", "supplier": "X", "planName": "Y"},
                {"planId": "plan-eco-001", "supplier": "Green Energy Co", "planName": "Eco Max"},
            ]
        )
        with pytest.raises(ValidationError, match="Too many invalid plan IDs"):
            parse_plan_scoring_strict(raw, catalog)

    def test_plan_name_mismatch_rejected(self, catalog) -> None:
        raw = json.dumps(
            [{"planId": "plan-eco-001", "supplier": "Green Energy Co", "planName": "Eco Max Plus"}]
        )
        with pytest.raises(MismatchError, match="planName mismatch") as excinfo:
            parse_plan_scoring_strict(raw, catalog)
        assert excinfo.value.invalid_plan_ids == ["plan-eco-001"]

    def test_supplier_mismatch_rejected(self, catalog) -> None:
        raw = json.dumps([{"planId": "plan-value-001", "supplier": "Other Co", "planName": "Value Saver"}])
        with pytest.raises(MismatchError, match="supplier mismatch"):
            parse_plan_scoring_strict(raw, catalog)

    def test_contract_length_variant_accepted(self, catalog) -> None:
        raw = json.dumps(
            [
                {
                    "planId": "plan-frontier-006",
                    "supplier": "Frontier Utilities",
                    "planName": "Frontier Power Saver 12",
                    "score": 81,
                }
            ]
        )
        plan = parse_plan_scoring_strict(raw, catalog).scored_plans[0]
        assert plan.plan_name == "Frontier Power Saver 6"

    def test_names_match_rules(self) -> None:
        assert names_match("Pollution Free e-Plus 24 Choice", "Pollution Free e-Plus 12 Choice")
        assert not names_match("Eco Max Plus", "Eco Max")
        assert not names_match("Saver 7", "Saver 6")


def test_resolve_index() -> None:
    assert resolve_index(2, 3) == 2
    assert resolve_index(2.0, 3) == 2
    assert resolve_index("1", 3) == 1
    assert resolve_index(3, 3) is None
    assert resolve_index(True, 3) is None
    assert resolve_index(1.5, 3) is None


# ---------------------------------------------------------------------------
# Narrative
# ---------------------------------------------------------------------------


class TestNarrative:
    def test_sections_map_in_order(self) -> None:
        output = parse_narrative(narrative_text(3), ["a", "b", "c"])
        assert [item.plan_id for item in output.top_recommendations] == ["a", "b", "c"]
        assert output.top_recommendations[0].rationale.startswith("Plan 1:")
        assert output.top_recommendations[2].rationale.startswith("Plan 3:")

    def test_missing_separators_fall_back_to_windows(self) -> None:
        text = narrative_text(3).replace("---", "")
        output = parse_narrative(text, ["a", "b", "c"])
        assert len(output.top_recommendations) == 3
        assert all(item.rationale for item in output.top_recommendations)

    def test_excess_sections_truncated_to_plan_count(self) -> None:
        output = parse_narrative(narrative_text(5), ["a", "b"])
        assert [item.plan_id for item in output.top_recommendations] == ["a", "b"]

    def test_short_fragments_ignored(self) -> None:
        text = "Intro\n---\n" + narrative_text(2)
        output = parse_narrative(text, ["a", "b"])
        assert output.top_recommendations[0].rationale.startswith("Plan 1:")

    def test_short_response_rejected(self) -> None:
        with pytest.raises(ValidationError, match="too short"):
            parse_narrative("Too short.", ["a"])

    def test_empty_plan_ids_rejected(self) -> None:
        with pytest.raises(MappingError):
            parse_narrative(narrative_text(3), [])

    def test_long_rationale_truncated(self) -> None:
        output = parse_narrative("word " * 1000, ["a"])
        assert len(output.top_recommendations[0].rationale) <= 2000
        assert len(output.explanation) <= 5000

    def test_single_plan_rationale(self) -> None:
        item = parse_plan_rationale(narrative_text(1), "plan-x")
        assert item.plan_id == "plan-x"
        with pytest.raises(ValidationError):
            parse_plan_rationale("Nope.", "plan-x")
