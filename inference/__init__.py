"""
inference package marker.
"""

from inference.adapter import (
    BaseLLMAdapter,
    InferenceError,
    MockLLMAdapter,
    OpenAILLMAdapter,
    StageTimeoutError,
)
from inference.retry import RetryExhaustedError, RetryPolicy, is_retriable_error, with_retry

__all__ = [
    "BaseLLMAdapter",
    "InferenceError",
    "MockLLMAdapter",
    "OpenAILLMAdapter",
    "RetryExhaustedError",
    "RetryPolicy",
    "StageTimeoutError",
    "is_retriable_error",
    "with_retry",
]
