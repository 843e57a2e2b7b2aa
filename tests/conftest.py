"""
tests/conftest.py

Shared fixtures: the bundled catalog, a twelve-month consumer request,
fast pipeline settings and a scripted inference adapter.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest

from app.config import PipelineSettings
from catalog.loader import Catalog, load_catalog
from inference.adapter import BaseLLMAdapter
from validation.schemas import StageInput

CATALOG_PATH = Path(__file__).resolve().parents[1] / "catalog" / "data" / "supplier_plans.json"

MONTHS = [
    "January",
    "February",
    "March",
    "April",
    "May",
    "June",
    "July",
    "August",
    "September",
    "October",
    "November",
    "December",
]


class ScriptedLLMAdapter(BaseLLMAdapter):
    """Replays queued responses in order; queued exceptions are raised."""

    def __init__(self, *responses: Any) -> None:
        self._responses = list(responses)
        self.prompts: list[str] = []

    async def generate(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if not self._responses:
            raise AssertionError("ScriptedLLMAdapter ran out of responses")
        response = self._responses.pop(0)
        if isinstance(response, BaseException):
            raise response
        return response


def monthly_payload(usage: float = 1000.0, cost: float = 125.0) -> list[dict]:
    return [{"month": month, "usage": usage, "cost": cost} for month in MONTHS]


def request_payload(**overrides: Any) -> dict:
    payload = {
        "energyUsageData": {"monthlyData": monthly_payload()},
        "currentPlan": {
            "supplier": "Legacy Power",
            "planName": "Standard Fixed",
            "rateStructure": "fixed",
        },
        "preferences": {"prioritizeSavings": True, "maxContractMonths": 12},
    }
    payload.update(overrides)
    return payload


def usage_summary_json(**overrides: Any) -> str:
    payload = {
        "averageMonthlyUsage": 1000,
        "peakUsageMonth": "January",
        "totalAnnualUsage": 12000,
        "usagePattern": "consistent",
        "annualCost": 1500,
    }
    payload.update(overrides)
    return json.dumps(payload)


def scoring_json(indices: list[int]) -> str:
    return json.dumps(
        [
            {
                "index": index,
                "score": 90 - position,
                "estimatedAnnualCost": 1300,
                "estimatedSavings": 200,
                "reasoning": "Good fit for steady usage.",
            }
            for position, index in enumerate(indices)
        ]
    )


def narrative_text(sections: int = 3) -> str:
    body = (
        "This plan keeps your bill predictable and lowers your yearly cost "
        "compared with what you pay today, with clear contract terms."
    )
    return "\n---\n".join(f"Plan {number}: {body}" for number in range(1, sections + 1))


@pytest.fixture()
def catalog() -> Catalog:
    return load_catalog(CATALOG_PATH)


@pytest.fixture()
def stage_input() -> StageInput:
    return StageInput.from_payload(request_payload())


@pytest.fixture()
def settings() -> PipelineSettings:
    return PipelineSettings(backoff_ms=0, stage_timeout_seconds=5.0, catalog_path=str(CATALOG_PATH))


@pytest.fixture()
def no_sleep():
    async def _sleep(_: float) -> None:
        return None

    return _sleep
