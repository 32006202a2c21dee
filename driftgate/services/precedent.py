"""Drift vectors and precedent matching against the decision history."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Mapping, Optional, Sequence

from driftgate.core.config import settings
from driftgate.models.domain import EntityChangeType
from driftgate.models.governance import (
    DecisionHistory,
    DriftChangeType,
    DriftVector,
    PrecedentMatch,
    StoredDecision,
)
from driftgate.schemas.artifacts import DriftDocument, decode_document

ENTITY_SUFFIXES = (
    "Request",
    "Response",
    "DTO",
    "Dto",
    "Schema",
    "Metadata",
    "Amount",
    "Method",
    "Config",
    "Settings",
)

ENTITY_WEIGHT = 0.5
BREAKING_WEIGHT = 0.25
CHANGE_TYPE_WEIGHT = 0.25


def normalize_entity_name(name: str) -> str:
    """Strip well-known suffixes so ``PaymentRequest`` and ``PaymentDTO`` compare equal."""

    base = name.rsplit(":", 1)[-1].strip()
    stripped = True
    while stripped:
        stripped = False
        for suffix in ENTITY_SUFFIXES:
            if base.endswith(suffix) and len(base) > len(suffix):
                base = base[: -len(suffix)]
                stripped = True
                break
    return base.lower()


def extract_drift_vectors(drift: DriftDocument | Mapping) -> list[DriftVector]:
    document = drift if isinstance(drift, DriftDocument) else decode_document("drift", DriftDocument, drift)
    vectors: list[DriftVector] = []
    for diff in document.diffs:
        if diff.change_type == EntityChangeType.UNCHANGED:
            continue
        vectors.append(
            DriftVector(
                entity=normalize_entity_name(diff.name),
                breaking=diff.breaking,
                change_type=DriftChangeType(diff.change_type.value),
            )
        )
    return vectors


def vector_similarity(a: DriftVector, b: DriftVector) -> float:
    score = 0.0
    if a.entity == b.entity:
        score += ENTITY_WEIGHT
    if a.breaking == b.breaking:
        score += BREAKING_WEIGHT
    if a.change_type == b.change_type:
        score += CHANGE_TYPE_WEIGHT
    return score


def set_similarity(current: Sequence[DriftVector], candidate: Sequence[DriftVector]) -> float:
    """Average, over ``current``, of each vector's best match in ``candidate``."""

    if not current or not candidate:
        return 0.0
    total = sum(max(vector_similarity(vector, other) for other in candidate) for vector in current)
    return total / len(current)


def approved_precedents(history: DecisionHistory | Iterable[StoredDecision]) -> list[StoredDecision]:
    """Human-ratified approvals that carry drift vectors."""

    decisions = history.decisions if isinstance(history, DecisionHistory) else list(history)
    return [entry for entry in decisions if entry.is_approval and entry.drift_vectors]


@dataclass(frozen=True)
class PrecedentCandidate:
    entry: StoredDecision
    similarity: float


def rank_precedents(current: Sequence[DriftVector], history: DecisionHistory) -> list[PrecedentCandidate]:
    ranked = [
        PrecedentCandidate(entry=entry, similarity=set_similarity(current, entry.drift_vectors or []))
        for entry in approved_precedents(history)
    ]
    return sorted(ranked, key=lambda candidate: candidate.similarity, reverse=True)


def find_precedent(
    current: Sequence[DriftVector],
    history: DecisionHistory,
    threshold: float | None = None,
) -> Optional[PrecedentMatch]:
    """Best approved precedent scoring at or above ``threshold``, if any."""

    limit = settings.precedent_similarity_threshold if threshold is None else threshold
    ranked = rank_precedents(current, history)
    if not ranked or ranked[0].similarity < limit:
        return None
    best = ranked[0]
    return PrecedentMatch(
        change_id=best.entry.change_id,
        timestamp=best.entry.timestamp,
        similarity=round(best.similarity, 4),
    )
