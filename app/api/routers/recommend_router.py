"""
app/api/routers/recommend_router.py

Recommendation endpoint.

Runs the three-stage pipeline for one consumer:
    usage summary → plan scoring → narrative

Degraded stages are reported in ``metadata.errors`` with a 200 response;
only a run where no stage produced output maps to a 500.
"""

from __future__ import annotations

import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException, status

from app.api.dependencies import get_catalog, get_pipeline, get_stage_input
from app.schemas.recommendation import RecommendationResponse, build_recommendation_response
from catalog.loader import Catalog
from pipeline.graph import RecommendationPipeline
from validation.schemas import StageInput

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["recommend"])


@router.post(
    "/recommend",
    response_model=RecommendationResponse,
    response_model_by_alias=True,
    status_code=status.HTTP_200_OK,
)
async def recommend(
    stage_input: StageInput = Depends(get_stage_input),
    pipeline: RecommendationPipeline = Depends(get_pipeline),
    catalog: Catalog = Depends(get_catalog),
) -> RecommendationResponse:
    """
    Produce plan recommendations for one consumer.
    """

    request_id = uuid.uuid4().hex
    result = await pipeline.run(stage_input)

    if result.is_fatal:
        logger.error(
            "Pipeline produced no output request_id=%s",
            request_id,
            extra={"request_id": request_id, "errors": [e.message for e in result.errors]},
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={
                "code": "PIPELINE_COMPLETE_FAILURE",
                "message": "Pipeline failed: no stages completed successfully",
            },
        )

    return build_recommendation_response(result, stage_input, catalog, request_id)
