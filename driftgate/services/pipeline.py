"""Orchestration of the governance pipeline for the CLI and the API."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional

from driftgate.core.config import settings
from driftgate.core.errors import ArtifactError, ConfigurationError
from driftgate.core.identifiers import new_change_id
from driftgate.models.governance import (
    AuthorizationReceipt,
    Decision,
    Ruling,
    StoredDecision,
)
from driftgate.repositories.artifact_store import load_artifacts, load_policy, write_receipt
from driftgate.repositories.history_store import DecisionHistoryStore
from driftgate.schemas.artifacts import Artifacts, GraphDocument, decode_document
from driftgate.schemas.governance import FeedbackRequest
from driftgate.services.differ import SchemaDiffer, build_drift_document
from driftgate.services.governance import GovernanceService
from driftgate.services.graph import GraphStore
from driftgate.services.impact import ImpactAnalyzer
from driftgate.services.intent import IntentDriftDetector, build_intent_document, extract_intents
from driftgate.services.precedent import extract_drift_vectors
from driftgate.services.receipts import create_receipt, resolve_signing_key
from driftgate.telemetry import EventSink, NullEventSink, record_decision, record_evaluation_duration

_logger = logging.getLogger(__name__)

RULING_EXIT_CODES = {Ruling.APPROVE: 0, Ruling.BLOCK: 1, Ruling.ESCALATE: 2}


def ruling_exit_code(decision: Decision) -> int:
    return RULING_EXIT_CODES[decision.decision]


def scan(
    baseline: GraphDocument | Mapping[str, Any],
    current: GraphDocument | Mapping[str, Any],
    intent_sources: Iterable[str] = (),
    *,
    change_id: str | None = None,
    max_depth: int | None = None,
) -> Artifacts:
    """Produce the four artifact documents from two graph snapshots."""

    before = baseline if isinstance(baseline, GraphDocument) else decode_document("baseline", GraphDocument, baseline)
    after = current if isinstance(current, GraphDocument) else decode_document("graph", GraphDocument, current)
    before_nodes, after_nodes = before.node_map(), after.node_map()

    diffs = SchemaDiffer().diff_many(before_nodes, after_nodes)
    impact = ImpactAnalyzer(GraphStore.from_document(after)).analyze_diffs(diffs, max_depth)

    intents: list[str] = []
    for text in intent_sources:
        intents.extend(extract_intents(text))
    for diff in diffs:
        node = after_nodes.get(diff.node_id)
        if node is not None and node.intent:
            intents.append(node.intent)
    intents = list(dict.fromkeys(intents))
    drift = IntentDriftDetector().detect_batch(before_nodes, after_nodes)

    return Artifacts(
        graph=after,
        drift=build_drift_document(diffs),
        impact=impact,
        intent=build_intent_document(intents, diffs, change_id=change_id, drift=drift),
    )


@dataclass
class EvaluationOutcome:
    change_id: str
    decision: Decision
    receipt: Optional[AuthorizationReceipt] = None

    @property
    def exit_code(self) -> int:
        return ruling_exit_code(self.decision)


@dataclass
class FeedbackResult:
    change_id: str
    entry: Optional[StoredDecision] = None
    receipt: Optional[AuthorizationReceipt] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class PipelineService:
    """Runs the governor over an artifacts directory and keeps the history current."""

    def __init__(
        self,
        governance: GovernanceService,
        history: DecisionHistoryStore,
        sink: EventSink | None = None,
    ) -> None:
        self._governance = governance
        self._history = history
        self._sink = sink or NullEventSink()

    async def evaluate(
        self,
        artifacts_dir: str | Path | None = None,
        policy_path: str | Path | None = None,
        *,
        change_id: str | None = None,
        issue_receipt: bool = True,
    ) -> EvaluationOutcome:
        directory = Path(artifacts_dir or settings.artifacts_dir)
        change_id = change_id or new_change_id()
        started = time.perf_counter()
        try:
            artifacts = load_artifacts(directory)
            policy = load_policy(policy_path or settings.policy_path)
            history = self._history.load()
        except ArtifactError as exc:
            _logger.error("Could not load governance inputs: %s", exc)
            decision = Decision.fail_closed(
                ["Failed to load artifacts.", str(exc)],
                ["Re-run the scan to regenerate artifacts before requesting a decision."],
            )
            record_decision(decision.decision.value)
            return EvaluationOutcome(change_id=change_id, decision=decision)

        decision = await self._governance.evaluate(artifacts, policy, history, change_id=change_id)
        record_evaluation_duration(time.perf_counter() - started)
        record_decision(decision.decision.value, bool(decision.auto_authorized))

        receipt = None
        if issue_receipt:
            try:
                receipt = self.issue_receipt(directory, change_id, decision, artifacts)
            except (ConfigurationError, OSError) as exc:
                _logger.error("Could not issue receipt for %s: %s", change_id, exc)
                decision = Decision.fail_closed(
                    [f"Governor ruled '{decision.decision.value}' but no receipt could be signed or written.", str(exc)],
                    ["Configure DRIFTGATE_SIGNING_KEY, make sure the artifacts directory is writable, and re-run governance."],
                    thinking=decision.thinking,
                )
        return EvaluationOutcome(change_id=change_id, decision=decision, receipt=receipt)

    def issue_receipt(
        self,
        artifacts_dir: str | Path,
        change_id: str,
        decision: Decision,
        artifacts: Artifacts,
        *,
        key: str | None = None,
    ) -> AuthorizationReceipt:
        receipt = create_receipt(
            change_id,
            decision.decision,
            decision.risk_level,
            bool(decision.auto_authorized),
            artifacts,
            precedent_match=decision.precedent_match,
            expiry_hours=settings.receipt_expiry_hours,
            key=key,
        )
        path = write_receipt(artifacts_dir, receipt)
        _logger.info("Wrote %s receipt for %s to %s", receipt.ruling.value, change_id, path)
        self._publish(
            {
                "event_type": "receipt_issued",
                "change_id": change_id,
                "ruling": receipt.ruling.value,
                "expires_at": receipt.expires_at,
                "artifacts_hash": receipt.artifacts_hash,
            }
        )
        return receipt

    def record_feedback(self, request: FeedbackRequest) -> FeedbackResult:
        """Append the human verdict to history and reissue the receipt with the final ruling.

        Nothing is appended when no receipt could be signed for the final
        ruling, so the history never disagrees with the receipt on disk.
        """

        directory = Path(request.artifacts_dir or settings.artifacts_dir)
        vectors = []
        if request.drift:
            try:
                vectors = extract_drift_vectors(request.drift)
            except ArtifactError as exc:
                _logger.warning("Ignoring drift supplied with feedback on %s: %s", request.change_id, exc)
        artifacts: Optional[Artifacts] = None
        try:
            artifacts = load_artifacts(directory)
        except ArtifactError as exc:
            _logger.warning("Artifacts unavailable for feedback on %s: %s", request.change_id, exc)
        if not vectors and artifacts is not None:
            vectors = extract_drift_vectors(artifacts.drift)

        signing_key = None
        if artifacts is not None:
            try:
                signing_key = resolve_signing_key()
            except ConfigurationError as exc:
                _logger.error("Not recording feedback on %s: %s", request.change_id, exc)
                return FeedbackResult(
                    request.change_id,
                    error=f"Feedback not recorded; the receipt cannot be reissued: {exc}",
                )

        entry = StoredDecision(
            timestamp=datetime.now(timezone.utc).isoformat(),
            change_id=request.change_id,
            decision=request.governor.decision,
            risk_level=request.governor.risk_level,
            reasoning=request.governor.reasoning,
            drift_vectors=vectors or None,
            human_feedback=request.human,
        )
        try:
            self._history.append(entry)
        except ArtifactError as exc:
            _logger.error("Could not append feedback on %s: %s", request.change_id, exc)
            return FeedbackResult(request.change_id, error=f"Feedback not recorded: {exc}")
        self._publish(
            {
                "event_type": "human_feedback",
                "change_id": request.change_id,
                "outcome": request.human.outcome.value,
                "final_ruling": entry.final_ruling.value,
            }
        )

        if artifacts is None:
            return FeedbackResult(request.change_id, entry=entry)
        final = Decision(
            decision=entry.final_ruling,
            risk_level=request.governor.risk_level,
            reasoning=request.governor.reasoning,
            conditions=[],
            auto_authorized=False,
        )
        receipt = self.issue_receipt(directory, request.change_id, final, artifacts, key=signing_key)
        return FeedbackResult(request.change_id, entry=entry, receipt=receipt)

    def _publish(self, event: dict) -> None:
        try:
            self._sink.publish(event)
        except Exception:  # pragma: no cover - telemetry should not break decision flow
            _logger.warning("Failed to publish %s event", event.get("event_type"), exc_info=True)
