"""Declared-intent extraction, alignment and drift scoring."""

from __future__ import annotations

import math
import re
from collections import Counter
from datetime import datetime, timezone
from typing import Iterable, Mapping, Optional

from driftgate.models.domain import (
    ChangeKind,
    DriftSeverity,
    GraphNode,
    IntentAlignment,
    IntentAlignmentResult,
    IntentDrift,
    SchemaChange,
    SchemaDiff,
)
from driftgate.schemas.artifacts import IntentDocument

INTENT_PATTERN = re.compile(r"(?://|#|/?\*)[ \t]*@intent[ \t]+(.+?)[ \t]*(?:\*/|\r|\n|$)", re.IGNORECASE | re.MULTILINE)
_TOKEN_SPLIT = re.compile(r"[^\w\s]")


def extract_intents(text: str) -> list[str]:
    """Return ``@intent`` annotations from line or block comments, in source order."""

    intents: list[str] = []
    for match in INTENT_PATTERN.finditer(text):
        intent = match.group(1).strip()
        if intent:
            intents.append(intent)
    return intents


def intent_covers_change(intents: Iterable[str], change: SchemaChange) -> bool:
    intent_text = " ".join(intents).lower()
    field = (change.field or change.old_field or "").lower()
    old = (change.old_field if change.kind == ChangeKind.FIELD_RENAMED else change.old_type) or ""
    new = (change.new_field if change.kind == ChangeKind.FIELD_RENAMED else change.new_type) or ""

    if field and field in intent_text:
        return True
    if old and old.lower() in intent_text:
        return True
    if new and new.lower() in intent_text:
        return True
    if change.kind in (ChangeKind.FIELD_REMOVED, ChangeKind.FIELD_ADDED, ChangeKind.FIELD_RENAMED):
        if "rename" in intent_text:
            return True
    if change.kind == ChangeKind.FIELD_TYPE_CHANGED:
        if "type" in intent_text or "change" in intent_text:
            return True
    return False


def _label(change: SchemaChange) -> str:
    return change.field or change.old_field or change.kind.value


def analyze_alignment(intents: list[str], changes: Iterable[SchemaChange]) -> IntentAlignmentResult:
    """Classify whether the declared intents cover the breaking changes.

    A keyword heuristic: the joined intent text must mention the field, the
    old/new name or type, or a generic word for the kind of change.
    """

    breaking = [change for change in changes if change.breaking]
    if not intents:
        return IntentAlignmentResult(
            status=IntentAlignment.UNCLEAR,
            uncovered_changes=[_label(change) for change in breaking],
        )

    covered: list[str] = []
    uncovered: list[str] = []
    for change in breaking:
        (covered if intent_covers_change(intents, change) else uncovered).append(_label(change))

    if covered and not uncovered:
        status = IntentAlignment.ALIGNED
    elif covered:
        status = IntentAlignment.PARTIAL
    else:
        status = IntentAlignment.UNCLEAR
    return IntentAlignmentResult(status=status, covered_changes=covered, uncovered_changes=uncovered)


def changes_from_diffs(diffs: Iterable[SchemaDiff]) -> list[SchemaChange]:
    return [change for diff in diffs for change in diff.changes]


class IntentDriftDetector:
    """Scores how far an entity's ``@intent`` annotation moved between snapshots."""

    jaccard_weight = 0.4
    cosine_weight = 0.4
    levenshtein_weight = 0.2

    def detect(self, old: Optional[GraphNode], new: Optional[GraphNode]) -> Optional[IntentDrift]:
        if old is None and new is None:
            return None
        node_id = (new or old).id  # type: ignore[union-attr]
        old_intent = old.intent if old else None
        new_intent = new.intent if new else None
        if old_intent == new_intent:
            return None

        a, b = old_intent or "", new_intent or ""
        jaccard = self.jaccard(a, b)
        cosine = self.cosine(a, b)
        levenshtein = self.levenshtein(a, b)
        similarity = (
            jaccard * self.jaccard_weight + cosine * self.cosine_weight + levenshtein * self.levenshtein_weight
        )
        if similarity >= 0.7:
            severity = DriftSeverity.LOW
        elif similarity >= 0.4:
            severity = DriftSeverity.MEDIUM
        else:
            severity = DriftSeverity.HIGH
        return IntentDrift(
            node_id=node_id,
            old_intent=old_intent,
            new_intent=new_intent,
            similarity=similarity,
            severity=severity,
            analysis={"jaccard": jaccard, "cosine": cosine, "levenshtein": levenshtein},
        )

    def detect_batch(self, baseline: Mapping[str, GraphNode], current: Mapping[str, GraphNode]) -> list[IntentDrift]:
        drifts = []
        for node_id in dict.fromkeys([*baseline.keys(), *current.keys()]):
            drift = self.detect(baseline.get(node_id), current.get(node_id))
            if drift is not None:
                drifts.append(drift)
        return sorted(drifts, key=lambda drift: drift.similarity)

    @staticmethod
    def tokenize(text: str) -> list[str]:
        return [token for token in _TOKEN_SPLIT.sub(" ", text.lower()).split() if token]

    def jaccard(self, a: str, b: str) -> float:
        if not a and not b:
            return 1.0
        if not a or not b:
            return 0.0
        set_a, set_b = set(self.tokenize(a)), set(self.tokenize(b))
        union = set_a | set_b
        if not union:
            return 1.0
        return len(set_a & set_b) / len(union)

    def cosine(self, a: str, b: str) -> float:
        if not a and not b:
            return 1.0
        if not a or not b:
            return 0.0
        freq_a, freq_b = Counter(self.tokenize(a)), Counter(self.tokenize(b))
        dot = sum(freq_a[token] * freq_b[token] for token in freq_a.keys() & freq_b.keys())
        norm_a = math.sqrt(sum(count * count for count in freq_a.values()))
        norm_b = math.sqrt(sum(count * count for count in freq_b.values()))
        if not norm_a or not norm_b:
            return 0.0
        return dot / (norm_a * norm_b)

    @staticmethod
    def levenshtein(a: str, b: str) -> float:
        if not a and not b:
            return 1.0
        if not a or not b:
            return 0.0
        a, b = a.lower(), b.lower()
        previous = list(range(len(b) + 1))
        for i, char_a in enumerate(a, start=1):
            row = [i]
            for j, char_b in enumerate(b, start=1):
                cost = 0 if char_a == char_b else 1
                row.append(min(previous[j] + 1, row[j - 1] + 1, previous[j - 1] + cost))
            previous = row
        return 1 - previous[-1] / max(len(a), len(b))


def build_intent_document(
    intents: list[str],
    diffs: list[SchemaDiff],
    *,
    change_id: str | None = None,
    drift: list[IntentDrift] | None = None,
) -> IntentDocument:
    return IntentDocument(
        timestamp=datetime.now(timezone.utc).isoformat(),
        change_id=change_id,
        intents=intents,
        summary="; ".join(intents) or None,
        alignment=analyze_alignment(intents, changes_from_diffs(diffs)),
        drift=drift or [],
    )
