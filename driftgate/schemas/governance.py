"""API request and response bodies."""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, Field

from driftgate.models.governance import (
    AuthorizationReceipt,
    Decision,
    HumanFeedback,
    RiskLevel,
    Ruling,
)


class EvaluationRequest(BaseModel):
    """Request body for POST /v1/evaluations."""

    artifacts_dir: Optional[str] = None
    policy_path: Optional[str] = None
    change_id: Optional[str] = None
    write_receipt: bool = True


class EvaluationResponse(Decision):
    change_id: str
    receipt: Optional[AuthorizationReceipt] = None


class GovernorVerdict(BaseModel):
    decision: Ruling
    risk_level: RiskLevel
    reasoning: list[str] = Field(default_factory=list)


class FeedbackRequest(BaseModel):
    """Request body for POST /v1/feedback."""

    change_id: str = Field(..., min_length=1)
    governor: GovernorVerdict
    human: HumanFeedback
    drift: Optional[dict[str, Any]] = None
    artifacts_dir: Optional[str] = None


class FeedbackResponse(BaseModel):
    ok: bool = True
    change_id: str
    final_ruling: Optional[Ruling] = None
    receipt: Optional[AuthorizationReceipt] = None
    error: Optional[str] = None


class VerifyReceiptRequest(BaseModel):
    """Request body for POST /v1/receipts/verify."""

    receipt: Optional[dict[str, Any]] = None
    require_approval: bool = True
    ignore_expiry: bool = False


class ImpactRequest(BaseModel):
    """Request body for POST /v1/impact."""

    node_id: str
    max_depth: int = Field(3, ge=0)
    artifacts_dir: Optional[str] = None
