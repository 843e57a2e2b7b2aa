"""Inference backend adapters.

Provides a base interface and concrete adapters for OpenAI-compatible
APIs and a deterministic mock for local runs and CI.
"""

import json
import os
import re
from abc import ABC, abstractmethod
from typing import Optional


class InferenceError(RuntimeError):
    """Raised when the inference backend cannot produce a response.

    Messages name the failure class ("network", "timed out", "HTTP 503",
    "rate limit") so the retry classifier can decide whether to try again.
    """


class StageTimeoutError(InferenceError):
    """Raised when one inference call outlives the stage timeout."""

    def __init__(self, stage: str, timeout_seconds: float) -> None:
        self.stage = stage
        self.timeout_seconds = timeout_seconds
        super().__init__(f"Stage {stage} exceeded {timeout_seconds:g}s timeout")


class BaseLLMAdapter(ABC):
    """Abstract base for all inference adapters."""

    @abstractmethod
    async def generate(self, prompt: str) -> str:
        """Send a prompt to the model and return the raw response text.

        Args:
            prompt: The fully formatted prompt string.

        Returns:
            Raw string response from the model.
        """


class OpenAILLMAdapter(BaseLLMAdapter):
    """Adapter for OpenAI-compatible chat completion APIs.

    Configured for deterministic, non-streaming output with
    zero temperature.
    """

    def __init__(
        self,
        model: str = "gpt-4o-mini",
        max_tokens: int = 1024,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
    ) -> None:
        """Initialise the OpenAI adapter.

        Args:
            model: Model identifier.
            max_tokens: Maximum tokens in the completion.
            api_key: OpenAI API key. Falls back to OPENAI_API_KEY env var.
            base_url: Optional base URL for OpenAI-compatible endpoints.
        """
        from openai import AsyncOpenAI

        resolved_key = api_key or os.environ.get("OPENAI_API_KEY", "")
        client_kwargs: dict = {"api_key": resolved_key}
        if base_url:
            client_kwargs["base_url"] = base_url

        self._client = AsyncOpenAI(**client_kwargs)
        self._model = model
        self._max_tokens = max_tokens

    async def generate(self, prompt: str) -> str:
        """Call the chat completion API.

        Raises:
            InferenceError: On transport, timeout or HTTP status failures.
        """
        import openai

        try:
            response = await self._client.chat.completions.create(
                model=self._model,
                messages=[{"role": "user", "content": prompt}],
                temperature=0,
                top_p=1,
                max_tokens=self._max_tokens,
                stream=False,
            )
        except openai.APITimeoutError as exc:
            raise InferenceError(f"Inference request timed out: {exc}") from exc
        except openai.APIConnectionError as exc:
            raise InferenceError(f"Inference network error: {exc}") from exc
        except openai.RateLimitError as exc:
            raise InferenceError(f"Inference rate limit (HTTP 429): {exc}") from exc
        except openai.APIStatusError as exc:
            raise InferenceError(
                f"Inference request failed with HTTP {exc.status_code}: {exc}"
            ) from exc
        return response.choices[0].message.content or ""


# ---------------------------------------------------------------------------
# Deterministic responses used by the mock adapter.
# ---------------------------------------------------------------------------
_USAGE_DATA_RE = re.compile(r"USAGE DATA:\n(\[.*?\])\n\n", re.DOTALL)
_PLAN_RANGE_RE = re.compile(r"AVAILABLE PLANS \(indices 0-(\d+)\)")
_SECTION_COUNT_RE = re.compile(r"Write exactly (\d+) sections")
_PLAN_FACTS_RE = re.compile(r'"supplier": "([^"]*)",\s*"planName": "([^"]*)"')

_MOCK_SECTION = (
    "{supplier} - {plan_name}\n\n"
    "This plan fits a household with your usage profile and keeps the "
    "monthly bill predictable. The rate and fees shown come straight from "
    "the supplier catalog, so the savings estimate is based on real figures.\n\n"
    "Important to Know:\nReview the contract length and early termination "
    "fee before switching."
)


def _mock_usage_summary(prompt: str) -> str:
    match = _USAGE_DATA_RE.search(prompt)
    rows = json.loads(match.group(1)) if match else []
    usages = [float(row.get("usage", 0)) for row in rows] or [1000.0]
    costs = [float(row.get("cost", 0)) for row in rows]
    peak = max(range(len(usages)), key=lambda position: usages[position])
    peak_month = rows[peak]["month"] if rows else "January"
    total = sum(usages)
    return json.dumps(
        {
            "averageMonthlyUsage": max(1, round(total / len(usages))),
            "peakUsageMonth": peak_month,
            "totalAnnualUsage": max(1, round(total)),
            "usagePattern": "consistent",
            "annualCost": round(sum(costs), 2),
        }
    )


def _mock_plan_scoring(prompt: str) -> str:
    match = _PLAN_RANGE_RE.search(prompt)
    count = int(match.group(1)) + 1 if match else 1
    return json.dumps(
        [
            {
                "index": index,
                "score": max(0, 90 - index * 5),
                "reasoning": "Deterministic mock score based on catalog order.",
            }
            for index in range(min(count, 10))
        ]
    )


def _mock_narrative(prompt: str) -> str:
    plans = _PLAN_FACTS_RE.findall(prompt)
    match = _SECTION_COUNT_RE.search(prompt)
    count = int(match.group(1)) if match else max(1, len(plans))
    sections = []
    for position in range(count):
        supplier, plan_name = plans[position] if position < len(plans) else ("Supplier", "Plan")
        sections.append(_MOCK_SECTION.format(supplier=supplier, plan_name=plan_name))
    return "\n\n---\n\n".join(sections)


class MockLLMAdapter(BaseLLMAdapter):
    """Deterministic adapter that answers each stage's prompt shape.

    Used for local runs and CI pipelines where no inference API is
    available. The stage is recognised from the prompt's section headings.
    """

    async def generate(self, prompt: str) -> str:
        if "AVAILABLE PLANS" in prompt:
            return _mock_plan_scoring(prompt)
        if "RECOMMENDED PLAN" in prompt:
            return _mock_narrative(prompt)
        return _mock_usage_summary(prompt)
