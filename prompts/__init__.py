"""
prompts package marker.
"""

from prompts.narrative import build_narrative_prompt, build_plan_narrative_prompt
from prompts.plan_scoring import ScoringPrompt, build_plan_scoring_prompt
from prompts.usage_summary import build_usage_summary_prompt

__all__ = [
    "ScoringPrompt",
    "build_narrative_prompt",
    "build_plan_narrative_prompt",
    "build_plan_scoring_prompt",
    "build_usage_summary_prompt",
]
