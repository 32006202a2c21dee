"""API routes for governance evaluations and human feedback."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Response, status

from driftgate.core.config import settings
from driftgate.dependencies import get_pipeline_service
from driftgate.schemas.governance import (
    EvaluationRequest,
    EvaluationResponse,
    FeedbackRequest,
    FeedbackResponse,
)
from driftgate.services.pipeline import PipelineService


router = APIRouter(prefix=settings.api_v1_prefix, tags=["governance"])


@router.post("/evaluations", response_model=EvaluationResponse)
async def create_evaluation(
    payload: EvaluationRequest,
    pipeline: PipelineService = Depends(get_pipeline_service),
) -> EvaluationResponse:
    outcome = await pipeline.evaluate(
        payload.artifacts_dir,
        payload.policy_path,
        change_id=payload.change_id,
        issue_receipt=payload.write_receipt,
    )
    return EvaluationResponse(
        **outcome.decision.model_dump(),
        change_id=outcome.change_id,
        receipt=outcome.receipt,
    )


@router.post("/feedback", response_model=FeedbackResponse)
def submit_feedback(
    payload: FeedbackRequest,
    response: Response,
    pipeline: PipelineService = Depends(get_pipeline_service),
) -> FeedbackResponse:
    result = pipeline.record_feedback(payload)
    if not result.ok:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return FeedbackResponse(ok=False, change_id=result.change_id, error=result.error)
    return FeedbackResponse(
        change_id=result.change_id,
        final_ruling=result.entry.final_ruling,
        receipt=result.receipt,
    )
