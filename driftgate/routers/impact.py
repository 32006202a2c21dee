"""API routes for blast-radius queries against the stored graph."""

from __future__ import annotations

from pathlib import Path

from fastapi import APIRouter, HTTPException, status

from driftgate.core.config import settings
from driftgate.core.errors import ArtifactError, NodeNotFoundError
from driftgate.models.domain import ImpactResult
from driftgate.repositories.artifact_store import read_json
from driftgate.schemas.governance import ImpactRequest
from driftgate.services.graph import GraphStore
from driftgate.services.impact import ImpactAnalyzer


router = APIRouter(prefix=settings.api_v1_prefix, tags=["impact"])


@router.post("/impact", response_model=ImpactResult)
def analyze_impact(payload: ImpactRequest) -> ImpactResult:
    graph_path = Path(payload.artifacts_dir or settings.artifacts_dir) / "graph.json"
    try:
        graph = GraphStore.from_document(read_json(graph_path, "graph"))
    except ArtifactError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    try:
        return ImpactAnalyzer(graph).analyze(payload.node_id, payload.max_depth)
    except NodeNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
