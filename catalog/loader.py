"""
catalog/loader.py

Loads and validates the static supplier plan catalog.

The catalog is consumed as an immutable tuple and injected into prompt
builders, parsers and the pipeline; nothing here is mutated at runtime.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Sequence
from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from catalog.models import CatalogPlan

logger = logging.getLogger(__name__)

Catalog = tuple[CatalogPlan, ...]


class CatalogLoadError(RuntimeError):
    """Raised when the catalog file is missing, malformed or inconsistent."""


def build_catalog(records: Iterable[Any]) -> Catalog:
    """
    Validate raw catalog records and return them as an immutable tuple.

    Rejects any invalid record and duplicate plan ids; a partially valid
    catalog would let scoring reference plans that cannot be priced.
    """

    plans: list[CatalogPlan] = []
    errors: list[str] = []
    for position, record in enumerate(records):
        if isinstance(record, CatalogPlan):
            plans.append(record)
            continue
        try:
            plans.append(CatalogPlan.model_validate(record))
        except ValidationError as exc:
            details = "; ".join(
                f"{'.'.join(str(loc) for loc in e['loc'])}: {e['msg']}" for e in exc.errors()
            )
            errors.append(f"record {position}: {details}")

    seen: set[str] = set()
    for plan in plans:
        if plan.id in seen:
            errors.append(f"duplicate plan id '{plan.id}'")
        seen.add(plan.id)

    if errors:
        raise CatalogLoadError("Supplier catalog validation failed: " + " | ".join(errors))
    if not plans:
        raise CatalogLoadError("Supplier catalog is empty.")

    return tuple(plans)


def load_catalog(path: str | Path) -> Catalog:
    """
    Read a JSON array of plans from ``path`` and validate it.
    """

    catalog_path = Path(path)
    if not catalog_path.exists():
        raise CatalogLoadError(f"Supplier catalog not found at {catalog_path}.")

    try:
        records = json.loads(catalog_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise CatalogLoadError(f"Supplier catalog at {catalog_path} is not valid JSON: {exc}") from exc

    if not isinstance(records, list):
        raise CatalogLoadError("Supplier catalog must be a JSON array of plans.")

    catalog = build_catalog(records)
    logger.info("Loaded %d supplier plans from %s", len(catalog), catalog_path)
    return catalog


@lru_cache(maxsize=1)
def get_default_catalog() -> Catalog:
    """
    Return the catalog configured by CATALOG_PATH, loaded once per process.
    """

    from app.config import get_pipeline_settings

    return load_catalog(get_pipeline_settings().catalog_path)


def find_plan(catalog: Sequence[CatalogPlan], plan_id: str) -> CatalogPlan | None:
    for plan in catalog:
        if plan.id == plan_id:
            return plan
    return None


def filter_by_contract_length(
    catalog: Sequence[CatalogPlan],
    max_contract_months: int,
) -> list[CatalogPlan]:
    return [plan for plan in catalog if plan.contract_term_months <= max_contract_months]
