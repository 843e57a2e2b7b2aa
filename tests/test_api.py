from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from app.api.dependencies import get_adapter, get_pipeline
from app.config import get_llm_settings
from app.main import create_app
from app.schemas.recommendation import NO_EXPLANATION
from conftest import (
    ScriptedLLMAdapter,
    request_payload,
    scoring_json,
    usage_summary_json,
)
from inference.adapter import MockLLMAdapter
from pipeline.state import PipelineResult


@pytest.fixture()
def client(monkeypatch):
    monkeypatch.setenv("LLM_ADAPTER", "mock")
    get_llm_settings.cache_clear()
    application = create_app()
    application.dependency_overrides[get_adapter] = MockLLMAdapter
    with TestClient(application) as test_client:
        yield test_client
    get_llm_settings.cache_clear()


def test_health(client) -> None:
    response = client.get("/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["adapter"] == "mock"
    assert body["catalog_plans"] == 12


def test_recommend_returns_camel_case_recommendations(client) -> None:
    response = client.post("/api/recommend", json=request_payload())

    assert response.status_code == 200
    data = response.json()["data"]
    recommendations = data["recommendations"]
    assert len(recommendations) == 9
    assert {"planId", "supplier", "planName", "score", "estimatedAnnualCost", "rationale"} <= set(
        recommendations[0]
    )
    assert all(item["rationale"] != NO_EXPLANATION for item in recommendations[:3])
    assert all(item["rationale"] == NO_EXPLANATION for item in recommendations[3:])
    assert recommendations[0]["trueSavings"] is None
    assert data["usageSummary"]["totalAnnualUsage"] == 12000
    assert data["metadata"]["errors"] == []
    assert data["metadata"]["requestId"]


def test_recommend_includes_true_savings_with_known_rate(client) -> None:
    payload = request_payload(
        currentPlan={
            "supplier": "Legacy Power",
            "planName": "Standard Fixed",
            "rateStructure": "fixed",
            "rate": 0.14,
            "monthlyFee": 10,
            "earlyTerminationFee": 120,
        }
    )
    response = client.post("/api/recommend", json=payload)

    true_savings = response.json()["data"]["recommendations"][0]["trueSavings"]
    assert true_savings["currentAnnualCost"] == 1800.0
    assert true_savings["earlyTerminationFee"] == 120.0
    assert true_savings["firstYearSavings"] < true_savings["amortizedAnnualSavings"] + 120.0


def test_recommend_rejects_wrong_month_count(client) -> None:
    payload = request_payload()
    payload["energyUsageData"]["monthlyData"] = payload["energyUsageData"]["monthlyData"][:11]

    response = client.post("/api/recommend", json=payload)

    assert response.status_code == 400
    detail = response.json()["detail"]
    assert detail["code"] == "INVALID_INPUT"
    assert "exactly 12 months" in detail["message"]


def test_recommend_flags_narrative_fallback(client) -> None:
    adapter = ScriptedLLMAdapter(usage_summary_json(), scoring_json([0, 1, 2, 3]), "Too short.")
    client.app.dependency_overrides[get_adapter] = lambda: adapter

    response = client.post("/api/recommend", json=request_payload())

    assert response.status_code == 200
    data = response.json()["data"]
    recommendations = data["recommendations"]
    assert [item["fallback"] for item in recommendations] == [True, True, True, False]
    assert all(item["rationale"] != NO_EXPLANATION for item in recommendations[:3])
    assert [error["stage"] for error in data["metadata"]["errors"]] == ["narrative"]
    assert data["metadata"]["stageStatus"]["plan-scoring"] == "succeeded"


def test_recommend_all_stages_failed(client) -> None:
    class _NoOutputPipeline:
        async def run(self, stage_input, progress_callback=None) -> PipelineResult:
            return PipelineResult()

    client.app.dependency_overrides[get_pipeline] = lambda: _NoOutputPipeline()

    response = client.post("/api/recommend", json=request_payload())

    assert response.status_code == 500
    assert response.json()["detail"]["code"] == "PIPELINE_COMPLETE_FAILURE"


def test_pipeline_compiled_once_per_adapter_and_catalog(catalog) -> None:
    adapter = MockLLMAdapter()

    pipeline = get_pipeline(adapter, catalog)

    assert get_pipeline(adapter, catalog) is pipeline
    assert get_pipeline(MockLLMAdapter(), catalog) is not pipeline


def test_adapter_shared_across_requests(monkeypatch) -> None:
    monkeypatch.setenv("LLM_ADAPTER", "mock")
    get_llm_settings.cache_clear()
    try:
        assert get_adapter() is get_adapter()
    finally:
        get_llm_settings.cache_clear()
