import json
from datetime import datetime, timedelta, timezone

from driftgate.core.config import Settings
from driftgate.models.governance import Ruling, VerificationReason
from driftgate.services.enforcement import ExitCode, describe_failure, enforce, load_receipt_document
from driftgate.services.receipts import create_receipt

KEY = "enforcement-key"


def _write(tmp_path, ruling=Ruling.APPROVE, **kwargs):
    receipt = create_receipt("chg_1", ruling, "low", False, {"graph": {}}, key=KEY, **kwargs)
    path = tmp_path / "authorization-receipt.json"
    path.write_text(json.dumps(receipt.model_dump(mode="json")), encoding="utf-8")
    return path


def test_missing_receipt_is_a_hard_failure(tmp_path):
    outcome = enforce(tmp_path / "authorization-receipt.json", key=KEY)

    assert outcome.exit_code == ExitCode.FAILED == 2
    assert outcome.result.reason == VerificationReason.NO_RECEIPT


def test_blocked_receipt_exits_one(tmp_path):
    outcome = enforce(_write(tmp_path, Ruling.BLOCK), key=KEY)

    assert outcome.exit_code == ExitCode.BLOCKED == 1
    assert "rejected" in " ".join(describe_failure(outcome))


def test_escalated_receipt_exits_one_with_review_message(tmp_path):
    outcome = enforce(_write(tmp_path, Ruling.ESCALATE), key=KEY)

    assert outcome.exit_code == ExitCode.BLOCKED
    assert "Human review is required" in " ".join(describe_failure(outcome))


def test_approved_receipt_exits_zero(tmp_path):
    outcome = enforce(_write(tmp_path), key=KEY)

    assert outcome.exit_code == ExitCode.AUTHORIZED == 0
    assert outcome.to_dict()["reason"] == "verified"


def test_tampered_receipt_exits_two(tmp_path):
    path = _write(tmp_path, Ruling.BLOCK)
    data = json.loads(path.read_text(encoding="utf-8"))
    data["ruling"] = "approve"
    path.write_text(json.dumps(data), encoding="utf-8")

    outcome = enforce(path, key=KEY)

    assert outcome.exit_code == ExitCode.FAILED
    assert outcome.result.reason == VerificationReason.INVALID_SIGNATURE


def test_unreadable_receipt_exits_two(tmp_path):
    path = tmp_path / "authorization-receipt.json"
    path.write_text("{not json", encoding="utf-8")

    assert enforce(path, key=KEY).exit_code == ExitCode.FAILED


def test_allow_expired_passes_with_warning(tmp_path):
    path = _write(tmp_path, now=datetime.now(timezone.utc) - timedelta(days=2))

    strict = enforce(path, key=KEY)
    relaxed = enforce(path, allow_expired=True, key=KEY)

    assert strict.exit_code == ExitCode.FAILED
    assert strict.result.reason == VerificationReason.EXPIRED
    assert relaxed.exit_code == ExitCode.AUTHORIZED
    assert relaxed.warnings and "--allow-expired" in relaxed.warnings[0]
    assert "expiry bypassed" in relaxed.result.message


def test_allow_expired_does_not_rescue_a_block(tmp_path):
    path = _write(tmp_path, Ruling.BLOCK, now=datetime.now(timezone.utc) - timedelta(days=2))

    outcome = enforce(path, allow_expired=True, key=KEY)

    assert outcome.exit_code == ExitCode.FAILED
    assert outcome.warnings == []


def test_legacy_receipt_is_upgraded_on_load(tmp_path):
    path = tmp_path / "legacy.json"
    path.write_text(json.dumps({"version": "1.0", "change_id": "c", "ruling": "approve", "risk_level": "low", "artifacts_hash": "h", "signature": "s"}))

    data = load_receipt_document(path)

    assert data["version"] == "1.1"
    assert data["expires_at"] is None


def test_receipt_that_is_not_utf8_exits_two(tmp_path):
    path = tmp_path / "authorization-receipt.json"
    path.write_bytes(b'{"version": "1.1", "ruling": "\xff\xfe"}')

    outcome = enforce(path, key=KEY)

    assert outcome.exit_code == ExitCode.FAILED
    assert outcome.result.reason == VerificationReason.NO_RECEIPT


def test_receipt_path_that_is_a_directory_exits_two(tmp_path):
    path = tmp_path / "authorization-receipt.json"
    path.mkdir()

    assert enforce(path, key=KEY).exit_code == ExitCode.FAILED


def test_production_without_signing_key_exits_two(tmp_path, monkeypatch):
    path = _write(tmp_path)
    monkeypatch.setattr(
        "driftgate.services.receipts.settings",
        Settings(environment="production", signing_key=None, receipt_verify_key=None),
    )

    outcome = enforce(path)

    assert outcome.exit_code == ExitCode.FAILED
    assert outcome.result.reason == VerificationReason.INVALID_SIGNATURE
    assert "not configured" in outcome.result.message


def test_expiry_bypass_warning_is_on_the_result(tmp_path):
    path = _write(tmp_path, now=datetime.now(timezone.utc) - timedelta(days=2))

    outcome = enforce(path, allow_expired=True, key=KEY)

    assert outcome.result.warnings == outcome.warnings
    assert outcome.to_dict()["warnings"] == outcome.warnings
