"""Domain data models for the dependency graph and its drift."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class NodeType(str, Enum):
    """Kinds of typed entities tracked in the dependency graph."""

    SCHEMA = "schema"
    DTO = "dto"
    API = "api"
    ENUM = "enum"
    SERVICE = "service"


class EdgeType(str, Enum):
    """Relation kinds between graph nodes."""

    USES = "uses"
    DEFINES = "defines"
    CALLS = "calls"
    EXTENDS = "extends"
    IMPLEMENTS = "implements"


class FieldInfo(BaseModel):
    """One declared property of an entity."""

    name: str
    type: str
    required: bool = True
    description: Optional[str] = None


class GraphNode(BaseModel):
    """A typed entity (schema, DTO, API, enum) from a graph snapshot."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., description="File-path qualified identifier, e.g. schemas/Payment.ts:Payment.")
    type: NodeType
    name: str
    file_path: str = Field(..., alias="filePath")
    file_hash: str = Field("", alias="fileHash")
    properties: list[FieldInfo] = Field(default_factory=list)
    intent: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    last_modified: Optional[datetime] = Field(None, alias="lastModified")

    @property
    def enum_values(self) -> list[str]:
        values = self.metadata.get("values") or []
        return [str(value) for value in values]


class GraphEdge(BaseModel):
    """Directed relation meaning ``target`` uses ``source``."""

    id: str
    source: str
    target: str
    type: EdgeType = EdgeType.USES
    confidence: float = Field(1.0, ge=0.0, le=1.0)
    metadata: dict[str, Any] = Field(default_factory=dict)


class ChangeKind(str, Enum):
    """Atomic change categories inside a single entity."""

    FIELD_ADDED = "field_added"
    FIELD_REMOVED = "field_removed"
    FIELD_TYPE_CHANGED = "field_type_changed"
    FIELD_MADE_REQUIRED = "field_made_required"
    FIELD_MADE_OPTIONAL = "field_made_optional"
    FIELD_RENAMED = "field_renamed"
    INTENT_CHANGED = "intent_changed"
    ENUM_VALUE_CHANGED = "enum_value_changed"
    ENTITY_ADDED = "entity_added"
    ENTITY_REMOVED = "entity_removed"


class EntityChangeType(str, Enum):
    """How a whole entity changed between two snapshots."""

    ADDED = "added"
    REMOVED = "removed"
    MODIFIED = "modified"
    UNCHANGED = "unchanged"


class SchemaChange(BaseModel):
    """One atomic difference inside a single entity."""

    kind: ChangeKind = Field(..., validation_alias=AliasChoices("kind", "type"))
    field: Optional[str] = Field(None, validation_alias=AliasChoices("field", "path"))
    old_field: Optional[str] = Field(None, validation_alias=AliasChoices("old_field", "oldField"))
    new_field: Optional[str] = Field(None, validation_alias=AliasChoices("new_field", "newField"))
    old_type: Optional[str] = Field(None, validation_alias=AliasChoices("old_type", "oldType"))
    new_type: Optional[str] = Field(None, validation_alias=AliasChoices("new_type", "newType"))
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    breaking: bool
    description: str = ""


class SchemaDiff(BaseModel):
    """All changes for one entity id."""

    node_id: str = Field(..., validation_alias=AliasChoices("node_id", "nodeId"))
    name: str
    type: NodeType
    change_type: EntityChangeType = Field(..., validation_alias=AliasChoices("change_type", "changeType"))
    breaking: bool
    changes: list[SchemaChange] = Field(default_factory=list)
    file: Optional[str] = None


class DownstreamNode(BaseModel):
    """A node reached by the downstream walk."""

    node_id: str
    distance: int
    path: list[str]


class ImpactedNode(DownstreamNode):
    """A downstream node annotated with a decayed confidence score."""

    confidence: float


class ImpactResult(BaseModel):
    """Blast radius of a change to ``node_id``."""

    node_id: str
    depth: int
    impacted: list[ImpactedNode] = Field(default_factory=list)


class ProvenanceLink(BaseModel):
    """An upstream source of a node."""

    node_id: str
    relationship: EdgeType
    confidence: float = 0.9


class IntentAlignment(str, Enum):
    """Coverage of breaking changes by declared intent."""

    ALIGNED = "ALIGNED"
    PARTIAL = "PARTIAL"
    UNCLEAR = "UNCLEAR"


class IntentAlignmentResult(BaseModel):
    status: IntentAlignment
    covered_changes: list[str] = Field(default_factory=list)
    uncovered_changes: list[str] = Field(default_factory=list)


class DriftSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class IntentDrift(BaseModel):
    """Difference between the old and new intent annotation of one entity."""

    node_id: str
    old_intent: Optional[str] = None
    new_intent: Optional[str] = None
    similarity: float
    severity: DriftSeverity
    analysis: dict[str, float] = Field(default_factory=dict)
