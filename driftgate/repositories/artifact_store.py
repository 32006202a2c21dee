"""Filesystem persistence for artifact documents, receipts and policy."""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any

from driftgate.core.errors import ArtifactError
from driftgate.models.governance import AuthorizationReceipt
from driftgate.schemas.artifacts import (
    Artifacts,
    DriftDocument,
    GraphDocument,
    ImpactDocument,
    IntentDocument,
    decode_document,
)

ARTIFACT_FILES = {
    "graph": ("graph.json", GraphDocument),
    "drift": ("drift.json", DriftDocument),
    "impact": ("impact.json", ImpactDocument),
    "intent": ("intent.json", IntentDocument),
}
RECEIPT_FILENAME = "authorization-receipt.json"


def read_json(path: str | Path, name: str | None = None) -> Any:
    label = name or Path(path).name
    try:
        return json.loads(Path(path).read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise ArtifactError(label, f"file not found: {path}") from exc
    except UnicodeDecodeError as exc:
        raise ArtifactError(label, f"not UTF-8 text: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise ArtifactError(label, f"invalid JSON: {exc}") from exc
    except OSError as exc:
        raise ArtifactError(label, str(exc)) from exc


def write_json(path: str | Path, payload: Any) -> Path:
    """Write ``payload`` atomically (temp file in the same directory, then replace)."""

    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{target.name}.", dir=target.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            json.dump(payload, handle, indent=2)
            handle.write("\n")
        os.replace(tmp_name, target)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise
    return target


def load_artifacts(artifacts_dir: str | Path) -> Artifacts:
    base = Path(artifacts_dir)
    documents = {}
    for name, (filename, model) in ARTIFACT_FILES.items():
        documents[name] = decode_document(name, model, read_json(base / filename, name))
    return Artifacts(**documents)


def write_artifacts(artifacts_dir: str | Path, artifacts: Artifacts) -> dict[str, Path]:
    base = Path(artifacts_dir)
    payload = artifacts.to_payload()
    return {name: write_json(base / filename, payload[name]) for name, (filename, _) in ARTIFACT_FILES.items()}


def write_receipt(artifacts_dir: str | Path, receipt: AuthorizationReceipt) -> Path:
    return write_json(Path(artifacts_dir) / RECEIPT_FILENAME, receipt.model_dump(mode="json"))


def load_policy(path: str | Path) -> Any:
    """The policy document is passed through to the reasoning call uninterpreted."""

    return read_json(path, "policy")
