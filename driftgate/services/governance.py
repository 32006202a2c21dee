"""Governor: precedent auto-authorization with a reasoning-service fallback."""

from __future__ import annotations

import asyncio
import json
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from driftgate.core.config import settings
from driftgate.core.errors import RateLimitError, ReasoningTransportError
from driftgate.models.governance import Decision, DecisionHistory, RiskLevel, Ruling
from driftgate.reasoning import GeminiReasoningTransport, ReasoningTransport
from driftgate.schemas.artifacts import Artifacts
from driftgate.services.precedent import extract_drift_vectors, find_precedent
from driftgate.telemetry import EventSink, NullEventSink, increment_reasoning_retries

_logger = logging.getLogger(__name__)

REASONING_PATTERN = re.compile(r"<reasoning>(.*?)</reasoning>", re.IGNORECASE | re.DOTALL)
THINKING_PATTERN = re.compile(r"<thinking>(.*?)</thinking>", re.IGNORECASE | re.DOTALL)
DECISION_PATTERN = re.compile(r"<decision>(.*?)</decision>", re.IGNORECASE | re.DOTALL)
CODE_FENCE_PATTERN = re.compile(r"^```(?:json)?[ \t]*$|^```|```$", re.MULTILINE)

RAW_OUTPUT_LIMIT = 2000

PROMPT_TEMPLATE = """You are the change-control governor for a set of interface and schema definitions.

Deterministic tooling has already analyzed the code. Do not re-analyze it. Your job is
the judgment that fixed rules cannot make.

Inputs (JSON below):
- graph: dependency graph of schemas, APIs, DTOs and services
- drift: structural diff between the baseline and the proposed change
- impact: blast radius of each changed entity
- intent: the developer's declared intent and how well it covers the breaking changes
- policy: governance rules
- memory: past decisions and human feedback

Weigh conflicting policies, similar past decisions, whether the declared intent
discloses every breaking change, and blast radius against delivery pressure.

Rulings:
- approve: consistent with policy, acceptable risk, clear precedent
- block: policy violation, unacceptable risk, or clear counter-precedent
- escalate: policy conflict, ambiguous precedent, unclear intent, or anything needing a human

Respond with exactly two sections:

<reasoning>
Free-text analysis: changes, policies, precedent, risk, intent, judgment and uncertainty.
</reasoning>

<decision>
{{"decision": "approve|block|escalate", "risk_level": "low|medium|high", "reasoning": ["..."], "conditions": ["..."]}}
</decision>

INPUTS:
{inputs}
"""


class RetryAction(str, Enum):
    ROTATE = "rotate"
    BACKOFF = "backoff"
    GIVE_UP = "give_up"


@dataclass
class RetryState:
    """Attempt counter, credential index and accumulated backoff for one evaluation.

    A rate-limit rejection moves to the next credential without consuming an
    attempt; any other failure (or a rate limit on the last credential)
    consumes one and backs off ``base_delay * 2 ** n``.
    """

    credentials: list[str]
    max_retries: int
    base_delay: float
    attempt: int = 0
    credential_index: int = 0
    total_backoff: float = 0.0
    rotations: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def credential(self) -> str:
        return self.credentials[self.credential_index]

    @property
    def last_error(self) -> Optional[str]:
        return self.errors[-1] if self.errors else None

    def can_rotate(self) -> bool:
        return self.credential_index + 1 < len(self.credentials)

    def next_action(self, error: Exception) -> tuple[RetryAction, float]:
        self.errors.append(f"{type(error).__name__}: {error}")
        if isinstance(error, RateLimitError) and self.can_rotate():
            self.credential_index += 1
            self.rotations += 1
            return RetryAction.ROTATE, 0.0
        if self.attempt >= self.max_retries:
            return RetryAction.GIVE_UP, 0.0
        delay = self.base_delay * (2 ** self.attempt)
        self.attempt += 1
        self.total_backoff += delay
        return RetryAction.BACKOFF, delay


def _coerce_decision(obj: Any) -> Optional[Decision]:
    """Accept only the exact decision shape; anything else is rejected, not repaired."""

    if not isinstance(obj, dict):
        return None
    ruling = obj.get("decision")
    risk = obj.get("risk_level")
    reasoning = obj.get("reasoning")
    conditions = obj.get("conditions")
    if ruling not in {item.value for item in Ruling}:
        return None
    if risk not in {item.value for item in RiskLevel}:
        return None
    if not isinstance(reasoning, list) or not all(isinstance(item, str) for item in reasoning):
        return None
    if not isinstance(conditions, list) or not all(isinstance(item, str) for item in conditions):
        return None
    return Decision(decision=Ruling(ruling), risk_level=RiskLevel(risk), reasoning=reasoning, conditions=conditions)


def parse_reasoning_output(text: str) -> Decision:
    """Turn raw model text into a decision, failing closed on any malformation."""

    reasoning_match = REASONING_PATTERN.search(text) or THINKING_PATTERN.search(text)
    decision_match = DECISION_PATTERN.search(text)
    thinking = reasoning_match.group(1).strip() if reasoning_match else None
    decision_text = decision_match.group(1).strip() if decision_match else text
    raw = text[:RAW_OUTPUT_LIMIT]

    cleaned = CODE_FENCE_PATTERN.sub("", decision_text).strip()
    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError:
        return Decision.fail_closed(
            ["Reasoning service response was not valid JSON and cannot be consumed by CI/CD safely."],
            ["Ensure the model is configured to output strict JSON only.", f"Raw output: {raw}"],
            thinking=thinking,
        )

    decision = _coerce_decision(parsed)
    if decision is None:
        return Decision.fail_closed(
            ["Reasoning service returned JSON that does not match the required decision schema."],
            ["Fix the governor prompt or model settings to match the required schema exactly.", f"Raw JSON: {raw}"],
            thinking=thinking,
        )
    decision.thinking = thinking
    return decision


def build_prompt(artifacts: Artifacts, policy: Any, history: DecisionHistory, context: dict | None = None) -> str:
    inputs = {
        "artifacts": artifacts.to_payload(),
        "policy": policy,
        "memory": history.model_dump(mode="json", by_alias=True, exclude_none=True),
        "context": context or {},
    }
    return PROMPT_TEMPLATE.format(inputs=json.dumps(inputs, indent=2, sort_keys=True))


class GovernanceService:
    """Produces a decision for every evaluation, whatever fails along the way."""

    def __init__(
        self,
        transport: ReasoningTransport | None = None,
        *,
        credentials: list[str] | None = None,
        sink: EventSink | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        timeout: float | None = None,
        max_retries: int | None = None,
        backoff_base: float | None = None,
        similarity_threshold: float | None = None,
    ) -> None:
        self._transport = transport
        self._credentials = settings.reasoning_credentials() if credentials is None else list(credentials)
        self._sink = sink or NullEventSink()
        self._sleep = sleep
        self._timeout = settings.reasoning_timeout_seconds if timeout is None else timeout
        self._max_retries = settings.reasoning_max_retries if max_retries is None else max_retries
        self._backoff_base = settings.reasoning_backoff_base_seconds if backoff_base is None else backoff_base
        self._threshold = (
            settings.precedent_similarity_threshold if similarity_threshold is None else similarity_threshold
        )

    async def evaluate(
        self,
        artifacts: Artifacts,
        policy: Any,
        history: DecisionHistory,
        *,
        change_id: str | None = None,
    ) -> Decision:
        decision = self.match_precedent(artifacts, history)
        if decision is None:
            decision = await self.reason(artifacts, policy, history, change_id=change_id)
        self._publish(change_id, decision)
        return decision

    def match_precedent(self, artifacts: Artifacts, history: DecisionHistory) -> Optional[Decision]:
        vectors = extract_drift_vectors(artifacts.drift)
        match = find_precedent(vectors, history, self._threshold)
        if match is None:
            return None
        _logger.info("Auto-authorized via precedent %s (similarity %.2f)", match.change_id, match.similarity)
        return Decision(
            decision=Ruling.APPROVE,
            risk_level=RiskLevel.LOW,
            reasoning=[
                f"Matched approved precedent {match.change_id} with similarity {match.similarity:.2f}.",
                "Change pattern was previously ratified by a human reviewer.",
            ],
            conditions=[],
            auto_authorized=True,
            precedent_match=match,
        )

    async def reason(
        self,
        artifacts: Artifacts,
        policy: Any,
        history: DecisionHistory,
        *,
        change_id: str | None = None,
    ) -> Decision:
        if not self._credentials:
            return Decision.fail_closed(
                [
                    "No reasoning-service credential is configured, so policy and precedent reasoning cannot run.",
                    "No approved precedent matched this change.",
                ],
                ["Set DRIFTGATE_REASONING_API_KEY (or DRIFTGATE_REASONING_API_KEYS) to enable reasoning."],
            )

        context = {"change_id": change_id}
        if artifacts.intent.alignment is not None:
            context["intent_alignment"] = artifacts.intent.alignment.status.value
        prompt = build_prompt(artifacts, policy, history, context)

        if self._transport is not None:
            return await self._call_with_retries(self._transport, prompt)
        async with GeminiReasoningTransport(
            settings.reasoning_base_url,
            settings.reasoning_model,
            timeout=self._timeout,
        ) as transport:
            return await self._call_with_retries(transport, prompt)

    async def _call_with_retries(self, transport: ReasoningTransport, prompt: str) -> Decision:
        state = RetryState(
            credentials=self._credentials,
            max_retries=max(self._max_retries, 0),
            base_delay=self._backoff_base,
        )
        while True:
            try:
                text = await asyncio.wait_for(transport.generate(prompt, api_key=state.credential), self._timeout)
            except (asyncio.TimeoutError, ReasoningTransportError, OSError) as exc:
                error = exc if str(exc) else ReasoningTransportError(f"request timed out after {self._timeout}s")
                action, delay = state.next_action(error)
                if action == RetryAction.ROTATE:
                    _logger.warning("Reasoning credential rate limited; rotating to credential #%d", state.credential_index + 1)
                    continue
                if action == RetryAction.GIVE_UP:
                    break
                increment_reasoning_retries()
                _logger.warning("Reasoning call failed (%s); retrying in %.2fs", state.last_error, delay)
                await self._sleep(delay)
                continue
            return parse_reasoning_output(text)

        return Decision.fail_closed(
            [
                "Reasoning request failed and could not be completed within the configured retry/timeout budget.",
                f"attempts={state.attempt + 1} credentials_tried={state.credential_index + 1}/{len(state.credentials)}",
                f"error={state.last_error}",
            ],
            [
                "Retry the pipeline when network connectivity is stable.",
                "If this persists, raise DRIFTGATE_REASONING_TIMEOUT_SECONDS or DRIFTGATE_REASONING_MAX_RETRIES.",
            ],
        )

    def _publish(self, change_id: str | None, decision: Decision) -> None:
        try:
            self._sink.publish(
                {
                    "event_type": "governance_decision",
                    "change_id": change_id,
                    "decision": decision.decision.value,
                    "risk_level": decision.risk_level.value,
                    "auto_authorized": bool(decision.auto_authorized),
                }
            )
        except Exception:  # pragma: no cover - telemetry should not break decision flow
            _logger.warning("Failed to publish governance decision event", exc_info=True)
