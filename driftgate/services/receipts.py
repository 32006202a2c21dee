"""Authorization receipts: issuing, signing and verification."""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping, Optional

from nacl.exceptions import BadSignatureError
from nacl.signing import SigningKey, VerifyKey
from pydantic import BaseModel

from driftgate.core.config import DEVELOPMENT_SIGNING_KEY, settings
from driftgate.core.errors import ConfigurationError
from driftgate.models.governance import (
    AuthorizationReceipt,
    PrecedentMatch,
    ReceiptAlgorithm,
    RiskLevel,
    Ruling,
    VerificationReason,
    VerificationResult,
)

_logger = logging.getLogger(__name__)

RECEIPT_VERSION = "1.1"
LEGACY_VERSIONS = {None, "", "1.0"}
REQUIRED_FIELDS = ("version", "issued_at", "change_id", "ruling", "artifacts_hash", "signature")


def canonical_json(value: Any) -> bytes:
    return json.dumps(value, sort_keys=True, separators=(",", ":")).encode("utf-8")


def _jsonable(value: Any) -> Any:
    if hasattr(value, "to_payload"):
        return value.to_payload()
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", by_alias=True)
    return value


def compute_artifacts_hash(artifacts: Any) -> str:
    """SHA-256 over the canonical serialization of the artifacts."""

    return hashlib.sha256(canonical_json(_jsonable(artifacts))).hexdigest()


def parse_timestamp(value: str) -> datetime:
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def resolve_signing_key(key: str | None = None) -> str:
    """Configured signing secret, or the development key outside production."""

    if key:
        return key
    if settings.signing_key:
        return settings.signing_key
    if settings.is_production:
        raise ConfigurationError("DRIFTGATE_SIGNING_KEY must be set in production")
    _logger.warning("DRIFTGATE_SIGNING_KEY is not set; using the development signing key")
    return DEVELOPMENT_SIGNING_KEY


def _ed25519_signing_key(secret: str) -> SigningKey:
    try:
        seed = base64.b64decode(secret, validate=True)
    except (binascii.Error, ValueError):
        seed = b""
    if len(seed) != 32:
        # Non-seed secrets (such as the development key) are stretched into a seed.
        seed = hashlib.sha256(secret.encode("utf-8")).digest()
    return SigningKey(seed)


def _ed25519_verify_key(secret: str | None) -> VerifyKey:
    if secret is None and settings.receipt_verify_key:
        return VerifyKey(base64.b64decode(settings.receipt_verify_key))
    return _ed25519_signing_key(resolve_signing_key(secret)).verify_key


def sign_payload(
    payload: Mapping[str, Any],
    *,
    key: str | None = None,
    algorithm: ReceiptAlgorithm | str = ReceiptAlgorithm.HMAC_SHA256,
) -> str:
    message = canonical_json(dict(payload))
    secret = resolve_signing_key(key)
    if ReceiptAlgorithm(algorithm) == ReceiptAlgorithm.ED25519:
        signature = _ed25519_signing_key(secret).sign(message).signature
        return base64.b64encode(signature).decode()
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def verify_signature(receipt: Mapping[str, Any], *, key: str | None = None) -> bool:
    """Recompute the signature over every field but ``signature``."""

    signature = receipt.get("signature")
    if not isinstance(signature, str):
        return False
    payload = {name: value for name, value in receipt.items() if name != "signature"}
    try:
        algorithm = ReceiptAlgorithm(payload.get("algorithm") or ReceiptAlgorithm.HMAC_SHA256)
    except ValueError:
        return False

    if algorithm == ReceiptAlgorithm.ED25519:
        try:
            _ed25519_verify_key(key).verify(canonical_json(payload), base64.b64decode(signature))
        except (BadSignatureError, ValueError, binascii.Error):
            return False
        return True

    expected = sign_payload(payload, key=key, algorithm=algorithm)
    return hmac.compare_digest(signature.encode("utf-8"), expected.encode("utf-8"))


def create_receipt(
    change_id: str,
    ruling: Ruling | str,
    risk_level: RiskLevel | str,
    auto_authorized: bool,
    artifacts: Any,
    precedent_match: PrecedentMatch | None = None,
    expiry_hours: float | None = 24,
    *,
    issuer: str | None = None,
    key: str | None = None,
    algorithm: ReceiptAlgorithm | str | None = None,
    now: datetime | None = None,
) -> AuthorizationReceipt:
    """Issue a signed receipt. ``expiry_hours=None`` (or 0) means it never expires."""

    issued = now or datetime.now(timezone.utc)
    algo = ReceiptAlgorithm(algorithm or settings.signing_algorithm)
    payload = {
        "version": RECEIPT_VERSION,
        "issuer": issuer or settings.receipt_issuer,
        "algorithm": algo.value,
        "issued_at": issued.isoformat(),
        "expires_at": (issued + timedelta(hours=expiry_hours)).isoformat() if expiry_hours else None,
        "change_id": change_id,
        "ruling": Ruling(ruling).value,
        "risk_level": RiskLevel(risk_level).value,
        "auto_authorized": bool(auto_authorized),
        "precedent_match": precedent_match.model_dump(mode="json") if precedent_match else None,
        "artifacts_hash": compute_artifacts_hash(artifacts),
    }
    signature = sign_payload(payload, key=key, algorithm=algo)
    return AuthorizationReceipt(**payload, signature=signature)


def _result(reason: VerificationReason, message: str, receipt: Optional[dict] = None) -> VerificationResult:
    return VerificationResult(valid=reason == VerificationReason.VERIFIED, reason=reason, message=message, receipt=receipt)


def verify_receipt(
    receipt: AuthorizationReceipt | Mapping[str, Any] | None,
    require_approval: bool = True,
    ignore_expiry: bool = False,
    *,
    key: str | None = None,
    now: datetime | None = None,
) -> VerificationResult:
    """Check, in order: presence, shape, signature, expiry, ruling.

    The first failing check decides the reason. Verification works on the raw
    mapping so a corrupted value is reported as a signature mismatch instead
    of a parsing error.
    """

    if receipt is None:
        return _result(
            VerificationReason.NO_RECEIPT,
            "Receipt is required. No production state change without authorization.",
        )
    if isinstance(receipt, AuthorizationReceipt):
        receipt = receipt.model_dump(mode="json")
    if not isinstance(receipt, Mapping):
        return _result(VerificationReason.MALFORMED_RECEIPT, "Receipt is not a JSON object")
    data = dict(receipt)

    for name in REQUIRED_FIELDS:
        if data.get(name) is None:
            return _result(VerificationReason.MALFORMED_RECEIPT, f"Receipt is missing required field: {name}")

    try:
        signature_ok = verify_signature(data, key=key)
    except ConfigurationError as exc:
        _logger.error("Cannot verify receipt for %s: %s", data.get("change_id"), exc)
        return _result(
            VerificationReason.INVALID_SIGNATURE,
            f"Receipt signing key is not configured, so the signature cannot be checked: {exc}",
        )
    if not signature_ok:
        return _result(
            VerificationReason.INVALID_SIGNATURE,
            "Receipt signature does not match. Authorization cannot be verified.",
        )

    expires_at = data.get("expires_at")
    if expires_at is not None and not ignore_expiry:
        try:
            expiry = parse_timestamp(str(expires_at))
        except ValueError:
            return _result(VerificationReason.MALFORMED_RECEIPT, f"Receipt has an unreadable expires_at: {expires_at}")
        if (now or datetime.now(timezone.utc)) > expiry:
            return _result(
                VerificationReason.EXPIRED,
                f"Receipt expired at {expires_at}. Re-run governance to obtain a new receipt.",
                data,
            )

    if require_approval and data["ruling"] != Ruling.APPROVE.value:
        return _result(
            VerificationReason.NOT_APPROVED,
            f"Receipt ruling is '{data['ruling']}', not 'approve'. Deployment blocked.",
            data,
        )
    return _result(VerificationReason.VERIFIED, "Receipt verified. Deployment authorized.", data)


def receipt_expired(receipt: Mapping[str, Any], *, now: datetime | None = None) -> bool:
    """True when ``expires_at`` is set, readable and in the past."""

    expires_at = receipt.get("expires_at")
    if expires_at is None:
        return False
    try:
        return (now or datetime.now(timezone.utc)) > parse_timestamp(str(expires_at))
    except ValueError:
        return False


def is_legacy_receipt(data: Mapping[str, Any]) -> bool:
    return data.get("version") in LEGACY_VERSIONS


def upgrade_legacy_receipt(legacy: Mapping[str, Any], *, now: datetime | None = None) -> dict:
    """Map a version-less or ``1.0`` receipt onto the current shape.

    Legacy receipts never expire. The signature is carried over untouched; it
    still has to verify against the upgraded fields.
    """

    upgraded = {
        "version": RECEIPT_VERSION,
        "issuer": legacy.get("issuer") or settings.receipt_issuer,
        "algorithm": legacy.get("algorithm") or ReceiptAlgorithm.HMAC_SHA256.value,
        "issued_at": legacy.get("timestamp") or legacy.get("issued_at") or (now or datetime.now(timezone.utc)).isoformat(),
        "expires_at": None,
        "change_id": legacy.get("change_id"),
        "ruling": legacy.get("ruling"),
        "risk_level": legacy.get("risk_level"),
        "auto_authorized": bool(legacy.get("auto_authorized", False)),
        "precedent_match": legacy.get("precedent_match"),
        "artifacts_hash": legacy.get("artifacts_hash"),
        "signature": legacy.get("signature"),
    }
    return upgraded


def format_receipt_for_display(receipt: AuthorizationReceipt | Mapping[str, Any]) -> str:
    data = receipt.model_dump(mode="json") if isinstance(receipt, AuthorizationReceipt) else dict(receipt)
    ruling = str(data.get("ruling") or "")
    lines = [
        f"Version:        {data.get('version')}",
        f"Issuer:         {data.get('issuer')}",
        f"Algorithm:      {data.get('algorithm')}",
        f"Issued:         {data.get('issued_at')}",
        f"Expires:        {data.get('expires_at') or 'Never'}",
        "",
        f"Change ID:      {data.get('change_id')}",
        f"Ruling:         {ruling.upper()}",
        f"Risk Level:     {data.get('risk_level')}",
        f"Auto-Auth:      {'Yes (via precedent)' if data.get('auto_authorized') else 'No'}",
    ]
    precedent = data.get("precedent_match")
    if precedent:
        lines.append(f"Precedent:      {precedent['change_id']} ({round(precedent['similarity'] * 100)}% match)")
    lines.extend(
        [
            "",
            f"Artifacts Hash: {str(data.get('artifacts_hash') or '')[:16]}...",
            f"Signature:      {str(data.get('signature') or '')[:16]}...",
        ]
    )
    return "\n".join(lines)
