"""Structural differ and breaking-change classifier for graph entities."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Mapping, Optional

from driftgate.models.domain import (
    ChangeKind,
    EntityChangeType,
    FieldInfo,
    GraphNode,
    NodeType,
    SchemaChange,
    SchemaDiff,
)
from driftgate.schemas.artifacts import DriftDocument, DriftSummary

# Rename detection tie-break: a removed field is paired with the first added
# field, in declaration order, whose type string is identical and which no
# earlier removed field has claimed. Fields sharing a type can be mis-paired.
FIRST_UNCLAIMED_SAME_TYPE = "first_unclaimed_same_type"


def _now() -> datetime:
    return datetime.now(timezone.utc)


class SchemaDiffer:
    """Computes per-entity diffs between a baseline and a current snapshot."""

    rename_policy = FIRST_UNCLAIMED_SAME_TYPE

    def diff(self, old: Optional[GraphNode], new: Optional[GraphNode]) -> SchemaDiff:
        if old is None and new is None:
            raise ValueError("At least one node version must be provided")

        subject: GraphNode = new if new is not None else old  # type: ignore[assignment]

        if old is None:
            return SchemaDiff(
                node_id=subject.id,
                name=subject.name,
                type=subject.type,
                change_type=EntityChangeType.ADDED,
                breaking=False,
                changes=[
                    SchemaChange(
                        kind=ChangeKind.ENTITY_ADDED,
                        breaking=False,
                        description=f'{subject.type.value.capitalize()} "{subject.name}" was added',
                    )
                ],
                file=subject.file_path,
            )
        if new is None:
            return SchemaDiff(
                node_id=subject.id,
                name=subject.name,
                type=subject.type,
                change_type=EntityChangeType.REMOVED,
                breaking=True,
                changes=[
                    SchemaChange(
                        kind=ChangeKind.ENTITY_REMOVED,
                        breaking=True,
                        description=f'{subject.type.value.capitalize()} "{subject.name}" was removed',
                    )
                ],
                file=subject.file_path,
            )

        changes = self.compare_properties(old.properties, new.properties)
        if (old.intent or None) != (new.intent or None):
            changes.append(
                SchemaChange(
                    kind=ChangeKind.INTENT_CHANGED,
                    field="@intent",
                    old_value=old.intent,
                    new_value=new.intent,
                    breaking=False,
                    description=f'Intent changed from "{old.intent or "none"}" to "{new.intent or "none"}"',
                )
            )
        if new.type == NodeType.ENUM or old.type == NodeType.ENUM:
            changes.extend(self.compare_enum_values(old.enum_values, new.enum_values))

        return SchemaDiff(
            node_id=subject.id,
            name=subject.name,
            type=subject.type,
            change_type=EntityChangeType.MODIFIED if changes else EntityChangeType.UNCHANGED,
            breaking=any(change.breaking for change in changes),
            changes=changes,
            file=new.file_path,
        )

    def compare_properties(self, old_props: list[FieldInfo], new_props: list[FieldInfo]) -> list[SchemaChange]:
        changes: list[SchemaChange] = []
        old_map = {prop.name: prop for prop in old_props}
        new_map = {prop.name: prop for prop in new_props}
        added = [prop for prop in new_props if prop.name not in old_map]
        claimed: set[str] = set()

        for prop in old_props:
            if prop.name in new_map:
                continue
            candidate = self._rename_candidate(prop, added, claimed)
            if candidate is not None:
                claimed.add(candidate.name)
                changes.append(
                    SchemaChange(
                        kind=ChangeKind.FIELD_RENAMED,
                        field=prop.name,
                        old_field=prop.name,
                        new_field=candidate.name,
                        old_type=prop.type,
                        new_type=candidate.type,
                        breaking=True,
                        description=f'Field "{prop.name}" renamed to "{candidate.name}"',
                    )
                )
            else:
                changes.append(
                    SchemaChange(
                        kind=ChangeKind.FIELD_REMOVED,
                        field=prop.name,
                        old_type=prop.type,
                        breaking=True,
                        description=f'Field "{prop.name}" was removed',
                    )
                )

        for prop in added:
            if prop.name in claimed:
                continue
            qualifier = "required" if prop.required else "optional"
            changes.append(
                SchemaChange(
                    kind=ChangeKind.FIELD_ADDED,
                    field=prop.name,
                    new_type=prop.type,
                    breaking=prop.required,
                    description=f'Field "{prop.name}" was added ({qualifier})',
                )
            )

        for prop in old_props:
            current = new_map.get(prop.name)
            if current is None:
                continue
            if prop.type != current.type:
                changes.append(
                    SchemaChange(
                        kind=ChangeKind.FIELD_TYPE_CHANGED,
                        field=prop.name,
                        old_type=prop.type,
                        new_type=current.type,
                        breaking=True,
                        description=f'Field "{prop.name}" type changed from "{prop.type}" to "{current.type}"',
                    )
                )
            if prop.required != current.required:
                if current.required:
                    changes.append(
                        SchemaChange(
                            kind=ChangeKind.FIELD_MADE_REQUIRED,
                            field=prop.name,
                            breaking=True,
                            description=f'Field "{prop.name}" changed from optional to required',
                        )
                    )
                else:
                    changes.append(
                        SchemaChange(
                            kind=ChangeKind.FIELD_MADE_OPTIONAL,
                            field=prop.name,
                            breaking=False,
                            description=f'Field "{prop.name}" changed from required to optional',
                        )
                    )
        return changes

    @staticmethod
    def _rename_candidate(removed: FieldInfo, added: list[FieldInfo], claimed: set[str]) -> Optional[FieldInfo]:
        for prop in added:
            if prop.name not in claimed and prop.type == removed.type:
                return prop
        return None

    @staticmethod
    def compare_enum_values(old_values: list[str], new_values: list[str]) -> list[SchemaChange]:
        changes: list[SchemaChange] = []
        old_set = set(old_values)
        new_set = set(new_values)
        for value in old_values:
            if value not in new_set:
                changes.append(
                    SchemaChange(
                        kind=ChangeKind.ENUM_VALUE_CHANGED,
                        field=f"values.{value}",
                        old_value=value,
                        breaking=True,
                        description=f'Enum value "{value}" was removed (breaking)',
                    )
                )
        for value in new_values:
            if value not in old_set:
                changes.append(
                    SchemaChange(
                        kind=ChangeKind.ENUM_VALUE_CHANGED,
                        field=f"values.{value}",
                        new_value=value,
                        breaking=False,
                        description=f'Enum value "{value}" was added',
                    )
                )
        return changes

    def diff_many(self, baseline: Mapping[str, GraphNode], current: Mapping[str, GraphNode]) -> list[SchemaDiff]:
        """Diff every entity; removals first, then additions, then modifications.

        Entities without any structural change are left out.
        """

        diffs: list[SchemaDiff] = []
        for node_id, node in baseline.items():
            if node_id not in current:
                diffs.append(self.diff(node, None))
        for node_id, node in current.items():
            if node_id not in baseline:
                diffs.append(self.diff(None, node))
        for node_id, node in baseline.items():
            if node_id in current:
                diff = self.diff(node, current[node_id])
                if diff.change_type != EntityChangeType.UNCHANGED:
                    diffs.append(diff)
        return diffs


def build_drift_document(diffs: list[SchemaDiff]) -> DriftDocument:
    breaking = sum(1 for diff in diffs if diff.breaking)
    return DriftDocument(
        timestamp=_now().isoformat(),
        diffs=diffs,
        summary=DriftSummary(
            total_changes=len(diffs),
            breaking_changes=breaking,
            non_breaking_changes=len(diffs) - breaking,
        ),
    )


def format_diff_report(diffs: list[SchemaDiff]) -> str:
    if not diffs:
        return "No schema changes detected"

    lines = ["Schema Diff Report", ""]
    breaking = [diff for diff in diffs if diff.breaking]
    non_breaking = [diff for diff in diffs if not diff.breaking]
    if breaking:
        lines.append(f"{len(breaking)} breaking change(s):")
        for diff in breaking:
            lines.append(f"  - {diff.name} ({diff.change_type.value})")
            lines.extend(f"      * {change.description}" for change in diff.changes if change.breaking)
        lines.append("")
    if non_breaking:
        lines.append(f"{len(non_breaking)} non-breaking change(s):")
        for diff in non_breaking:
            lines.append(f"  - {diff.name} ({diff.change_type.value})")
            lines.extend(f"      * {change.description}" for change in diff.changes)
    return "\n".join(lines).rstrip()
