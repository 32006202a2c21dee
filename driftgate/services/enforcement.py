"""Deployment gate: turns a receipt on disk into a stable exit code."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from enum import IntEnum
from pathlib import Path
from typing import Optional

from driftgate.core.errors import ReceiptLoadError
from driftgate.models.governance import Ruling, VerificationReason, VerificationResult
from driftgate.services.receipts import is_legacy_receipt, upgrade_legacy_receipt, verify_receipt

_logger = logging.getLogger(__name__)

RECEIPT_FILENAME = "authorization-receipt.json"


class ExitCode(IntEnum):
    AUTHORIZED = 0
    BLOCKED = 1
    FAILED = 2


@dataclass
class EnforcementOutcome:
    exit_code: ExitCode
    result: VerificationResult
    path: Path
    warnings: list[str] = field(default_factory=list)

    @property
    def receipt(self) -> Optional[dict]:
        return self.result.receipt

    def to_dict(self) -> dict:
        payload = self.result.model_dump(mode="json", exclude_none=True)
        payload["path"] = str(self.path)
        payload["exit_code"] = int(self.exit_code)
        if self.warnings:
            payload["warnings"] = list(self.warnings)
        return payload


def resolve_receipt_path(receipt: str | Path | None = None, artifacts_dir: str | Path | None = None) -> Path:
    if receipt:
        return Path(receipt).resolve()
    return (Path(artifacts_dir or "artifacts") / RECEIPT_FILENAME).resolve()


def load_receipt_document(path: str | Path) -> dict:
    """Read a receipt, upgrading the legacy shape when needed."""

    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ReceiptLoadError(str(exc)) from exc
    if not isinstance(data, dict):
        raise ReceiptLoadError("receipt document is not a JSON object")
    if is_legacy_receipt(data):
        _logger.info("Upgrading legacy receipt at %s", path)
        return upgrade_legacy_receipt(data)
    return data


def exit_code_for(result: VerificationResult) -> ExitCode:
    if result.valid:
        return ExitCode.AUTHORIZED
    if result.reason == VerificationReason.NOT_APPROVED:
        return ExitCode.BLOCKED
    return ExitCode.FAILED


def enforce(path: str | Path, allow_expired: bool = False, *, key: str | None = None) -> EnforcementOutcome:
    receipt_path = Path(path)
    try:
        receipt = load_receipt_document(receipt_path)
    except ReceiptLoadError as exc:
        result = VerificationResult(
            valid=False,
            reason=VerificationReason.NO_RECEIPT,
            message=f"Failed to load receipt: {exc}",
        )
        return EnforcementOutcome(exit_code=ExitCode.FAILED, result=result, path=receipt_path)

    result = verify_receipt(receipt, require_approval=True, key=key)
    warnings: list[str] = []
    if result.reason == VerificationReason.EXPIRED and allow_expired:
        bypass = verify_receipt(receipt, require_approval=True, ignore_expiry=True, key=key)
        if bypass.valid:
            warning = f"Receipt expired at {receipt.get('expires_at')} but --allow-expired was set"
            _logger.warning(warning)
            warnings.append(warning)
            result = bypass.model_copy(
                update={"message": "Receipt verified (expiry bypassed). Deployment authorized.", "warnings": [warning]}
            )
    return EnforcementOutcome(exit_code=exit_code_for(result), result=result, path=receipt_path, warnings=warnings)


def describe_failure(outcome: EnforcementOutcome) -> list[str]:
    """Operator guidance for a failed gate."""

    result = outcome.result
    receipt = result.receipt or {}
    if result.reason == VerificationReason.NO_RECEIPT:
        return ["No deployment without authorization.", "Run governance and obtain human approval first."]
    if result.reason == VerificationReason.INVALID_SIGNATURE:
        return ["The receipt has been tampered with or is corrupted.", "Re-run governance to obtain a valid receipt."]
    if result.reason == VerificationReason.EXPIRED:
        return [f"Receipt expired at: {receipt.get('expires_at')}", "Re-run governance to obtain a fresh receipt."]
    if result.reason == VerificationReason.NOT_APPROVED:
        lines = [f"Ruling: {str(receipt.get('ruling')).upper()}", f"Change: {receipt.get('change_id')}"]
        if receipt.get("ruling") == Ruling.ESCALATE.value:
            lines.append("Human review is required before deployment.")
        else:
            lines.append("This change has been rejected. Deployment is not permitted.")
        return lines
    return [result.message]
