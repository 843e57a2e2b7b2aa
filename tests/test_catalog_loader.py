from __future__ import annotations

import json

import pytest

from catalog.loader import (
    CatalogLoadError,
    build_catalog,
    filter_by_contract_length,
    find_plan,
    load_catalog,
)


def _record(plan_id: str = "plan-a", **overrides) -> dict:
    record = {
        "id": plan_id,
        "supplier": "Test Supplier",
        "planName": "Test Plan",
        "baseRate": 0.11,
        "monthlyFee": 5,
        "contractTermMonths": 12,
        "earlyTerminationFee": 0,
        "renewablePercent": 50,
        "ratings": {"reliabilityScore": 4, "customerServiceScore": 4},
        "features": ["Online Portal"],
    }
    record.update(overrides)
    return record


def test_bundled_catalog_loads(catalog) -> None:
    assert len(catalog) == 12
    assert isinstance(catalog, tuple)
    assert len({plan.id for plan in catalog}) == len(catalog)


def test_catalog_plans_are_immutable(catalog) -> None:
    with pytest.raises(Exception):
        catalog[0].base_rate = 0.0  # type: ignore[misc]


def test_duplicate_ids_rejected() -> None:
    with pytest.raises(CatalogLoadError, match="duplicate plan id 'plan-a'"):
        build_catalog([_record(), _record()])


def test_out_of_range_fields_rejected() -> None:
    with pytest.raises(CatalogLoadError, match="record 0"):
        build_catalog([_record(renewablePercent=150)])


def test_empty_catalog_rejected() -> None:
    with pytest.raises(CatalogLoadError):
        build_catalog([])


def test_load_catalog_from_file(tmp_path) -> None:
    path = tmp_path / "plans.json"
    path.write_text(json.dumps([_record("plan-a"), _record("plan-b", contractTermMonths=24)]))

    catalog = load_catalog(path)

    assert find_plan(catalog, "plan-b").contract_term_months == 24
    assert find_plan(catalog, "plan-z") is None
    assert [plan.id for plan in filter_by_contract_length(catalog, 12)] == ["plan-a"]


def test_load_catalog_rejects_non_array(tmp_path) -> None:
    path = tmp_path / "plans.json"
    path.write_text(json.dumps({"plans": []}))
    with pytest.raises(CatalogLoadError, match="JSON array"):
        load_catalog(path)


def test_missing_catalog_file(tmp_path) -> None:
    with pytest.raises(CatalogLoadError, match="not found"):
        load_catalog(tmp_path / "missing.json")
