"""
validation/catalog_checks.py

Cross-validation of model-returned plan references against the catalog.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from typing import Any

from catalog.models import CatalogPlan

# Term lengths suppliers embed in plan names ("Saver 12", "e-Plus 24 Choice").
CONTRACT_LENGTH_TOKENS = (3, 6, 9, 12, 15, 18, 19, 24, 32, 36, 60)

_CONTRACT_LENGTH_RE = re.compile(
    r"\b(?:" + "|".join(str(token) for token in CONTRACT_LENGTH_TOKENS) + r")\b"
)
_WHITESPACE_RE = re.compile(r"\s+")


def normalize_plan_name(name: str) -> str:
    """Drop contract-length digits and whitespace differences for comparison."""
    without_terms = _CONTRACT_LENGTH_RE.sub(" ", name)
    return _WHITESPACE_RE.sub(" ", without_terms).strip().casefold()


def names_match(returned: str, expected: str) -> bool:
    """Exact match, or equal once contract-length digits are ignored.

    >>> names_match("Frontier Power Saver 12", "Frontier Power Saver 6")
    True
    >>> names_match("Eco Max Plus", "Eco Max")
    False
    """
    if returned.strip() == expected.strip():
        return True
    return normalize_plan_name(returned) == normalize_plan_name(expected)


def resolve_index(value: Any, size: int) -> int | None:
    """Return ``value`` as an index into a list of ``size`` plans, or None.

    Accepts integers, integral floats and digit strings. Booleans, fractions
    and anything outside ``[0, size)`` are rejected.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        index = value
    elif isinstance(value, float) and value.is_integer():
        index = int(value)
    elif isinstance(value, str) and value.strip().isdigit():
        index = int(value.strip())
    else:
        return None
    if 0 <= index < size:
        return index
    return None


def identity_mismatches(entry: dict[str, Any], plan: CatalogPlan) -> list[str]:
    """Describe every identity field in ``entry`` that disagrees with ``plan``."""
    problems: list[str] = []
    supplier = str(entry.get("supplier") or "")
    plan_name = str(entry.get("planName") or "")

    if not names_match(supplier, plan.supplier):
        problems.append(
            f"{plan.id}: supplier mismatch (expected '{plan.supplier}', got '{supplier}')"
        )
    if not names_match(plan_name, plan.plan_name):
        problems.append(
            f"{plan.id}: planName mismatch (expected '{plan.plan_name}', got '{plan_name}')"
        )
    return problems


def catalog_by_id(catalog: Sequence[CatalogPlan]) -> dict[str, CatalogPlan]:
    return {plan.id: plan for plan in catalog}
