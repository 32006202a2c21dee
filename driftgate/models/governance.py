"""Decision, precedent memory and receipt models."""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class Ruling(str, Enum):
    """Possible outcomes of a governance decision."""

    APPROVE = "approve"
    BLOCK = "block"
    ESCALATE = "escalate"


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class DriftChangeType(str, Enum):
    ADDED = "added"
    MODIFIED = "modified"
    REMOVED = "removed"


class DriftVector(BaseModel):
    """Normalized summary of one entity change, used for precedent matching."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    entity: str
    breaking: bool
    change_type: DriftChangeType = Field(..., alias="changeType")


class PrecedentMatch(BaseModel):
    """Reference to the stored decision that authorized a change."""

    change_id: str
    timestamp: str
    similarity: float


class Decision(BaseModel):
    """Outcome produced by the governor for one change."""

    decision: Ruling
    risk_level: RiskLevel
    reasoning: list[str] = Field(default_factory=list)
    conditions: list[str] = Field(default_factory=list)
    thinking: Optional[str] = None
    auto_authorized: Optional[bool] = None
    precedent_match: Optional[PrecedentMatch] = None

    @classmethod
    def fail_closed(cls, reasoning: list[str], conditions: list[str] | None = None, thinking: str | None = None) -> "Decision":
        return cls(
            decision=Ruling.ESCALATE,
            risk_level=RiskLevel.HIGH,
            reasoning=reasoning,
            conditions=conditions or [],
            thinking=thinking,
        )


class FeedbackOutcome(str, Enum):
    ACCEPTED = "accepted"
    OVERRIDDEN = "overridden"
    MODIFIED = "modified"


class HumanFeedback(BaseModel):
    outcome: FeedbackOutcome
    override_decision: Optional[Ruling] = None
    notes: Optional[str] = None


class StoredDecision(BaseModel):
    """An entry of the append-only precedent memory."""

    timestamp: str
    change_id: str
    decision: Ruling
    risk_level: RiskLevel
    reasoning: list[str] = Field(default_factory=list)
    drift_vectors: Optional[list[DriftVector]] = None
    human_feedback: HumanFeedback

    @property
    def final_ruling(self) -> Ruling:
        if self.human_feedback.outcome == FeedbackOutcome.OVERRIDDEN and self.human_feedback.override_decision:
            return self.human_feedback.override_decision
        return self.decision

    @property
    def is_approval(self) -> bool:
        feedback = self.human_feedback
        if feedback.outcome == FeedbackOutcome.ACCEPTED:
            return self.decision == Ruling.APPROVE
        if feedback.outcome == FeedbackOutcome.OVERRIDDEN:
            return feedback.override_decision == Ruling.APPROVE
        return False


class DecisionHistory(BaseModel):
    decisions: list[StoredDecision] = Field(default_factory=list)


class ReceiptAlgorithm(str, Enum):
    HMAC_SHA256 = "hmac-sha256"
    ED25519 = "ed25519"


class AuthorizationReceipt(BaseModel):
    """Signed, expiring record of a governance ruling."""

    model_config = ConfigDict(frozen=True)

    version: str
    issuer: str
    algorithm: ReceiptAlgorithm
    issued_at: str
    expires_at: Optional[str] = None
    change_id: str
    ruling: Ruling
    risk_level: RiskLevel
    auto_authorized: bool = False
    precedent_match: Optional[PrecedentMatch] = None
    artifacts_hash: str
    signature: str

    def payload(self) -> dict:
        """The signed portion of the receipt, as it was serialized when signing."""

        return self.model_dump(mode="json", exclude={"signature"})


class VerificationReason(str, Enum):
    VERIFIED = "verified"
    NO_RECEIPT = "no_receipt"
    MALFORMED_RECEIPT = "malformed_receipt"
    INVALID_SIGNATURE = "invalid_signature"
    EXPIRED = "expired"
    NOT_APPROVED = "not_approved"


class VerificationResult(BaseModel):
    valid: bool
    reason: VerificationReason
    message: str
    receipt: Optional[dict] = None
    warnings: list[str] = Field(default_factory=list)
