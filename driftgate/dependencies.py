"""Application dependency wiring."""

from __future__ import annotations

from functools import lru_cache

from driftgate.repositories.history_store import DecisionHistoryStore, history_store_from_settings
from driftgate.services.governance import GovernanceService
from driftgate.services.pipeline import PipelineService
from driftgate.telemetry import EventSink, sink_from_settings


@lru_cache
def get_event_sink() -> EventSink:
    return sink_from_settings()


@lru_cache
def get_history_store() -> DecisionHistoryStore:
    return history_store_from_settings()


@lru_cache
def get_governance_service() -> GovernanceService:
    return GovernanceService(sink=get_event_sink())


@lru_cache
def get_pipeline_service() -> PipelineService:
    return PipelineService(get_governance_service(), get_history_store(), sink=get_event_sink())
