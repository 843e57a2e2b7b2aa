"""
app/schemas package marker.
"""

from app.schemas.recommendation import (
    RecommendationItem,
    RecommendationResponse,
    UsageSummaryResponse,
    build_recommendation_response,
)

__all__ = [
    "RecommendationItem",
    "RecommendationResponse",
    "UsageSummaryResponse",
    "build_recommendation_response",
]
