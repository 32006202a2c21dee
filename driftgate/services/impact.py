"""Impact (blast radius) analysis over the graph store."""

from __future__ import annotations

from datetime import datetime, timezone
import logging

from driftgate.core.config import settings
from driftgate.core.errors import NodeNotFoundError
from driftgate.models.domain import EntityChangeType, ImpactedNode, ImpactResult, SchemaDiff
from driftgate.schemas.artifacts import ImpactAnalysisEntry, ImpactDocument, ImpactSummary
from driftgate.services.graph import GraphStore

_logger = logging.getLogger(__name__)


def decayed_confidence(distance: int, *, decay: float, floor: float) -> float:
    return max(floor, 1.0 - decay * distance)


class ImpactAnalyzer:
    """Answers "if this entity breaks, who is affected and how likely does it matter".

    Confidence decays linearly per hop down to a floor. It is advisory, not a
    calibrated probability.
    """

    def __init__(
        self,
        graph: GraphStore,
        *,
        decay: float | None = None,
        floor: float | None = None,
    ) -> None:
        self._graph = graph
        self._decay = settings.impact_confidence_decay if decay is None else decay
        self._floor = settings.impact_confidence_floor if floor is None else floor

    def analyze(self, node_id: str, max_depth: int = 3) -> ImpactResult:
        if not self._graph.has_node(node_id):
            raise NodeNotFoundError(node_id)
        downstream = self._graph.get_downstream(node_id, max_depth)
        return ImpactResult(
            node_id=node_id,
            depth=max_depth,
            impacted=[
                ImpactedNode(
                    node_id=item.node_id,
                    distance=item.distance,
                    path=item.path,
                    confidence=decayed_confidence(item.distance, decay=self._decay, floor=self._floor),
                )
                for item in downstream
            ],
        )

    def analyze_diffs(self, diffs: list[SchemaDiff], max_depth: int | None = None) -> ImpactDocument:
        """Build the ``impact`` document for every changed entity still in the graph."""

        depth = settings.impact_max_depth if max_depth is None else max_depth
        analyses: list[ImpactAnalysisEntry] = []
        for diff in diffs:
            if diff.change_type == EntityChangeType.UNCHANGED:
                continue
            try:
                result = self.analyze(diff.node_id, depth)
            except NodeNotFoundError:
                _logger.debug("Skipping impact for %s: not in current graph", diff.node_id)
                continue
            analyses.append(
                ImpactAnalysisEntry(
                    source_node_id=diff.node_id,
                    source_name=diff.name,
                    change_type=diff.change_type,
                    breaking=diff.breaking,
                    downstream=result.impacted,
                )
            )

        impacted_ids = {item.node_id for entry in analyses for item in entry.downstream}
        return ImpactDocument(
            timestamp=datetime.now(timezone.utc).isoformat(),
            analyses=analyses,
            summary=ImpactSummary(
                total_changes=len(diffs),
                breaking_changes=sum(1 for diff in diffs if diff.breaking),
                total_impacted_nodes=len(impacted_ids),
            ),
        )

    def format_impact_report(self, result: ImpactResult) -> str:
        node = self._graph.get_node(result.node_id)
        if node is None:
            return "Node not found"

        lines = [f"Impact Analysis for: {node.name}", f"  Type: {node.type.value}", f"  File: {node.file_path}", ""]
        if not result.impacted:
            lines.append("No downstream dependencies found")
            return "\n".join(lines)

        lines.append(f"{len(result.impacted)} downstream dependent(s):")
        for distance in sorted({item.distance for item in result.impacted}):
            lines.append(f"  Distance {distance}:")
            for item in result.impacted:
                if item.distance != distance:
                    continue
                dependent = self._graph.get_node(item.node_id)
                label = f"{dependent.name} ({dependent.type.value})" if dependent else item.node_id
                lines.append(f"    - {label} [confidence: {item.confidence * 100:.0f}%]")
        return "\n".join(lines)
