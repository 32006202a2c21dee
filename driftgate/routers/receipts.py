"""API routes for receipt verification."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from driftgate.core.config import settings
from driftgate.dependencies import get_event_sink
from driftgate.models.governance import VerificationResult
from driftgate.schemas.governance import VerifyReceiptRequest
from driftgate.services.receipts import (
    is_legacy_receipt,
    receipt_expired,
    upgrade_legacy_receipt,
    verify_receipt,
)
from driftgate.telemetry import EventSink, record_verification

_logger = logging.getLogger(__name__)

router = APIRouter(prefix=f"{settings.api_v1_prefix}/receipts", tags=["receipts"])


@router.post("/verify", response_model=VerificationResult)
def verify(
    payload: VerifyReceiptRequest,
    sink: EventSink = Depends(get_event_sink),
) -> VerificationResult:
    receipt = payload.receipt
    if receipt is not None and is_legacy_receipt(receipt):
        receipt = upgrade_legacy_receipt(receipt)
    result = verify_receipt(
        receipt,
        require_approval=payload.require_approval,
        ignore_expiry=payload.ignore_expiry,
    )
    expiry_bypassed = bool(payload.ignore_expiry and receipt is not None and receipt_expired(receipt))
    if expiry_bypassed:
        warning = f"Receipt expired at {receipt.get('expires_at')} but ignore_expiry was set"
        _logger.warning(warning)
        result = result.model_copy(update={"warnings": [*result.warnings, warning]})
    record_verification(result.reason.value)
    sink.publish(
        {
            "event_type": "receipt_verified",
            "change_id": (receipt or {}).get("change_id"),
            "reason": result.reason.value,
            "ignore_expiry": payload.ignore_expiry,
            "expiry_bypassed": expiry_bypassed,
        }
    )
    return result
