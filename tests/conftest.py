from __future__ import annotations

from pathlib import Path

import pytest

from driftgate.repositories.artifact_store import write_artifacts
from driftgate.services.pipeline import scan
from tests.factories import payment_graph, write_json


@pytest.fixture
def artifacts_dir(tmp_path: Path) -> Path:
    """An artifacts directory for the Payment amount number -> string change."""

    directory = tmp_path / "artifacts"
    artifacts = scan(payment_graph("number"), payment_graph("string"), change_id="chg_payment")
    write_artifacts(directory, artifacts)
    return directory


@pytest.fixture
def policy_path(tmp_path: Path) -> Path:
    return write_json(tmp_path / "policy" / "rules.json", {"rules": [{"id": "no-silent-type-change"}]})
