"""
app/config.py

Application-level configuration helpers.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

_PROJECT_ROOT = Path(__file__).resolve().parents[1]
_DEFAULT_CATALOG_PATH = _PROJECT_ROOT / "catalog" / "data" / "supplier_plans.json"
_ALLOWED_ADAPTERS = {"openai", "mock"}


def load_env_files() -> None:
    """
    Load simple KEY=VALUE pairs from `.env` and `.env.local` (if present).
    Existing process environment variables are not overwritten.
    """

    for filename in (".env", ".env.local"):
        env_path = _PROJECT_ROOT / filename
        if not env_path.exists():
            continue

        for raw_line in env_path.read_text(encoding="utf-8").splitlines():
            line = raw_line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue

            key, value = line.split("=", 1)
            key = key.strip()
            value = value.strip().strip('"').strip("'")
            if key and key not in os.environ:
                os.environ[key] = value


@lru_cache(maxsize=1)
def _load_env_once() -> None:
    """
    Ensure project `.env` files are loaded once before reading app settings.
    """

    load_env_files()


def _get_bool_env(name: str, default: bool) -> bool:
    """
    Read a boolean from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    return raw_value.strip().lower() in {"1", "true", "yes", "on"}


def _get_int_env(name: str, default: int) -> int:
    """
    Read an integer from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return int(raw_value)
    except ValueError:
        return default


def _get_float_env(name: str, default: float) -> float:
    """
    Read a float from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return float(raw_value)
    except ValueError:
        return default


def _get_str_env(name: str, default: str) -> str:
    """
    Read a string from environment variables with fallback.
    """

    _load_env_once()
    value = os.getenv(name)
    if value is None:
        return default
    stripped = value.strip()
    return stripped if stripped else default


def _get_optional_str_env(name: str) -> str | None:
    """
    Read an optional string value from environment variables.
    """

    _load_env_once()
    value = os.getenv(name)
    if value is None:
        return None
    stripped = value.strip()
    return stripped if stripped else None


@dataclass(frozen=True)
class LLMSettings:
    """
    Inference backend selection and model parameters.
    """

    adapter: str = "openai"
    model: str = "gpt-4o-mini"
    max_tokens: int = 1024
    api_key: str | None = None
    base_url: str | None = None


@dataclass(frozen=True)
class PipelineSettings:
    """
    Runtime settings for the three-stage recommendation pipeline.

    ``invalid_index_threshold`` and ``min_plans_warning`` are heuristics;
    they are kept configurable rather than treated as fixed contract values.
    """

    max_attempts: int = 2
    backoff_ms: int = 100
    backoff_multiplier: float = 1.0
    stage_timeout_seconds: float = 30.0
    invalid_index_threshold: float = 0.5
    min_plans_warning: int = 5
    max_prompt_plans: int = 20
    fallback_plan_limit: int = 10
    default_max_contract_months: int = 12
    recalculate_costs: bool = True
    narrative_fan_out: bool = False
    catalog_path: str = str(_DEFAULT_CATALOG_PATH)


@lru_cache(maxsize=1)
def get_llm_settings() -> LLMSettings:
    """
    Return cached inference backend settings from environment variables.
    """

    adapter = _get_str_env("LLM_ADAPTER", "openai").lower()
    if adapter not in _ALLOWED_ADAPTERS:
        raise RuntimeError(
            f"LLM_ADAPTER '{adapter}' is not valid. "
            f"Allowed values: {sorted(_ALLOWED_ADAPTERS)}."
        )

    return LLMSettings(
        adapter=adapter,
        model=_get_str_env("LLM_MODEL", "gpt-4o-mini"),
        max_tokens=max(64, _get_int_env("LLM_MAX_TOKENS", 1024)),
        api_key=_get_optional_str_env("LLM_API_KEY") or _get_optional_str_env("OPENAI_API_KEY"),
        base_url=_get_optional_str_env("LLM_BASE_URL"),
    )


@lru_cache(maxsize=1)
def get_pipeline_settings() -> PipelineSettings:
    """
    Return cached pipeline settings from environment variables.
    """

    return PipelineSettings(
        max_attempts=max(1, _get_int_env("PIPELINE_MAX_ATTEMPTS", 2)),
        backoff_ms=max(0, _get_int_env("PIPELINE_BACKOFF_MS", 100)),
        backoff_multiplier=max(1.0, _get_float_env("PIPELINE_BACKOFF_MULTIPLIER", 1.0)),
        stage_timeout_seconds=max(1.0, _get_float_env("PIPELINE_STAGE_TIMEOUT_SECONDS", 30.0)),
        invalid_index_threshold=min(
            1.0, max(0.0, _get_float_env("PIPELINE_INVALID_INDEX_THRESHOLD", 0.5))
        ),
        min_plans_warning=max(0, _get_int_env("PIPELINE_MIN_PLANS_WARNING", 5)),
        max_prompt_plans=min(20, max(1, _get_int_env("PIPELINE_MAX_PROMPT_PLANS", 20))),
        fallback_plan_limit=min(20, max(1, _get_int_env("PIPELINE_FALLBACK_PLAN_LIMIT", 10))),
        default_max_contract_months=max(
            1, _get_int_env("PIPELINE_DEFAULT_MAX_CONTRACT_MONTHS", 12)
        ),
        recalculate_costs=_get_bool_env("PIPELINE_RECALCULATE_COSTS", True),
        narrative_fan_out=_get_bool_env("NARRATIVE_FAN_OUT", False),
        catalog_path=_get_str_env("CATALOG_PATH", str(_DEFAULT_CATALOG_PATH)),
    )
