"""
app/api/routers package marker.
"""

from app.api.routers.recommend_router import router as recommend_router

__all__ = [
    "recommend_router",
]
