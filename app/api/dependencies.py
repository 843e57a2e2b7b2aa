"""
app/api/dependencies.py

Shared FastAPI dependencies for the recommendation endpoint.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Any

from fastapi import Body, Depends, HTTPException, status

from app.config import LLMSettings, get_llm_settings
from catalog.loader import Catalog, get_default_catalog
from inference.adapter import BaseLLMAdapter
from pipeline.graph import RecommendationPipeline, build_adapter
from validation.schemas import InputValidationError, StageInput


def get_catalog() -> Catalog:
    """
    Return the shared read-only plan catalog.
    """

    return get_default_catalog()


@lru_cache(maxsize=4)
def _adapter_for(settings: LLMSettings) -> BaseLLMAdapter:
    return build_adapter(settings)


def get_adapter() -> BaseLLMAdapter:
    """
    Return the inference adapter selected by LLM settings.

    One adapter (and its HTTP client) is shared per settings value.
    """

    return _adapter_for(get_llm_settings())


@lru_cache(maxsize=8)
def _pipeline_for(adapter: BaseLLMAdapter, catalog: Catalog) -> RecommendationPipeline:
    return RecommendationPipeline(adapter, catalog)


def get_pipeline(
    adapter: BaseLLMAdapter = Depends(get_adapter),
    catalog: Catalog = Depends(get_catalog),
) -> RecommendationPipeline:
    """
    Return a compiled pipeline, built once per adapter and catalog.
    """

    return _pipeline_for(adapter, catalog)


def get_stage_input(payload: Any = Body(...)) -> StageInput:
    """
    Validate the request body into a StageInput, mapping failures to 400.
    """

    try:
        return StageInput.from_payload(payload)
    except InputValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "code": "INVALID_INPUT",
                "message": exc.message,
                "errors": exc.errors,
            },
        ) from exc
