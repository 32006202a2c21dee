"""Artifact documents exchanged between pipeline stages.

Every document read from disk goes through one of these models, so a shape
mismatch surfaces as an ``ArtifactError`` naming the document instead of a
``KeyError`` deep inside a stage.
"""

from __future__ import annotations

from typing import Any, Optional, TypeVar

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from driftgate.core.errors import ArtifactError
from driftgate.models.domain import (
    EntityChangeType,
    GraphEdge,
    GraphNode,
    ImpactedNode,
    IntentAlignmentResult,
    IntentDrift,
    SchemaDiff,
)

ModelT = TypeVar("ModelT", bound=BaseModel)


class GraphDocument(BaseModel):
    """``graph.json``: nodes and edges, keyed by id or as plain lists."""

    model_config = ConfigDict(populate_by_name=True)

    nodes: dict[str, GraphNode] | list[GraphNode] = Field(default_factory=dict)
    edges: dict[str, GraphEdge] | list[GraphEdge] = Field(default_factory=dict)
    version: str = "1.1.0"
    last_crawl: Optional[str] = Field(None, alias="lastCrawl")

    def node_list(self) -> list[GraphNode]:
        return list(self.nodes.values()) if isinstance(self.nodes, dict) else list(self.nodes)

    def edge_list(self) -> list[GraphEdge]:
        return list(self.edges.values()) if isinstance(self.edges, dict) else list(self.edges)

    def node_map(self) -> dict[str, GraphNode]:
        return {node.id: node for node in self.node_list()}


class DriftSummary(BaseModel):
    total_changes: int = Field(0, validation_alias=AliasChoices("total_changes", "totalChanges"))
    breaking_changes: int = Field(0, validation_alias=AliasChoices("breaking_changes", "breakingChanges"))
    non_breaking_changes: int = Field(
        0, validation_alias=AliasChoices("non_breaking_changes", "nonBreakingChanges")
    )


class DriftDocument(BaseModel):
    """``drift.json``: per-entity diffs between the baseline and current graph."""

    timestamp: Optional[str] = None
    diffs: list[SchemaDiff] = Field(default_factory=list)
    summary: Optional[DriftSummary] = None

    def changed(self) -> list[SchemaDiff]:
        return [diff for diff in self.diffs if diff.change_type != EntityChangeType.UNCHANGED]


class ImpactAnalysisEntry(BaseModel):
    source_node_id: str = Field(..., validation_alias=AliasChoices("source_node_id", "sourceNodeId"))
    source_name: str = Field(..., validation_alias=AliasChoices("source_name", "sourceName"))
    change_type: EntityChangeType = Field(..., validation_alias=AliasChoices("change_type", "changeType"))
    breaking: bool
    downstream: list[ImpactedNode] = Field(default_factory=list)


class ImpactSummary(BaseModel):
    total_changes: int = Field(0, validation_alias=AliasChoices("total_changes", "totalChanges"))
    breaking_changes: int = Field(0, validation_alias=AliasChoices("breaking_changes", "breakingChanges"))
    total_impacted_nodes: int = Field(
        0, validation_alias=AliasChoices("total_impacted_nodes", "totalImpactedNodes")
    )


class ImpactDocument(BaseModel):
    """``impact.json``: downstream analyses per changed entity plus counts."""

    timestamp: Optional[str] = None
    analyses: list[ImpactAnalysisEntry] = Field(default_factory=list)
    summary: ImpactSummary = Field(default_factory=ImpactSummary)


class IntentDocument(BaseModel):
    """``intent.json``: declared intents and the optional intent-drift summary."""

    timestamp: Optional[str] = None
    change_id: Optional[str] = None
    intents: list[str] = Field(default_factory=list)
    description: Optional[str] = None
    summary: Optional[str] = None
    alignment: Optional[IntentAlignmentResult] = None
    drift: list[IntentDrift] = Field(default_factory=list)

    def declared(self) -> list[str]:
        declared = list(self.intents)
        if not declared and self.description:
            declared.append(self.description)
        return declared


class Artifacts(BaseModel):
    """The four documents one evaluation consumes."""

    graph: GraphDocument
    drift: DriftDocument
    impact: ImpactDocument
    intent: IntentDocument

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


def decode_document(name: str, model: type[ModelT], data: Any) -> ModelT:
    """Validate ``data`` against ``model``, raising ``ArtifactError`` on mismatch."""

    if not isinstance(data, dict):
        raise ArtifactError(name, f"expected a JSON object, got {type(data).__name__}")
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise ArtifactError(name, f"{exc.error_count()} validation error(s): {exc.errors()[0]['msg']}") from exc
