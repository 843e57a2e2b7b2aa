from __future__ import annotations

import logging
import os

from fastapi import FastAPI
from pydantic import BaseModel

from app.config import get_llm_settings, get_pipeline_settings


class HealthResponse(BaseModel):
    status: str
    adapter: str
    catalog_plans: int


def _validate_env() -> None:
    """
    Validate environment-driven settings at startup.

    Raises RuntimeError listing every problem so the operator can fix all
    of them in one restart cycle.

    Rules:
    - LLM_ADAPTER must be one of the supported adapters.
    - An LLM API key is required unless LLM_ADAPTER=mock.
    - The catalog file must exist.
    """

    errors: list[str] = []

    try:
        llm_settings = get_llm_settings()
    except RuntimeError as exc:
        errors.append(str(exc))
        llm_settings = None

    if llm_settings is not None and llm_settings.adapter != "mock" and not llm_settings.api_key:
        errors.append(
            "LLM API key is not set. Provide LLM_API_KEY or OPENAI_API_KEY. "
            "Empty strings are not permitted."
        )

    catalog_path = get_pipeline_settings().catalog_path
    if not os.path.isfile(catalog_path):
        errors.append(f"CATALOG_PATH '{catalog_path}' does not exist.")

    if errors:
        raise RuntimeError(
            "Startup validation failed, missing or invalid environment variables:\n"
            + "\n".join(f"  - {e}" for e in errors)
        )


def _configure_logging() -> None:
    """
    Configure root logging once for the API process.
    """

    log_level = os.getenv("LOG_LEVEL", "INFO").strip().upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.
    """

    _validate_env()
    _configure_logging()

    application = FastAPI(
        title="Energy Plan Recommendation API",
        version="1.0.0",
    )

    from app.api.routers import recommend_router
    from catalog.loader import get_default_catalog

    application.include_router(recommend_router)

    @application.get("/health")
    def healthcheck() -> HealthResponse:
        return HealthResponse(
            status="healthy",
            adapter=get_llm_settings().adapter,
            catalog_plans=len(get_default_catalog()),
        )

    return application
