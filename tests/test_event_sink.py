import json
from pathlib import Path

import pytest

from driftgate.core.config import Settings
from driftgate.telemetry import FileEventSink, MemoryEventSink, NullEventSink, sink_from_settings


def test_file_event_sink_writes_jsonl(tmp_path: Path):
    sink_path = tmp_path / "events" / "governance.jsonl"
    sink = FileEventSink(sink_path)

    sink.publish({"event_type": "governance_decision", "change_id": "chg_1", "decision": "approve"})
    sink.publish({"event_type": "receipt_issued", "change_id": "chg_1", "expires_at": None})

    lines = sink_path.read_text(encoding="utf-8").splitlines()
    assert len(lines) == 2
    first = json.loads(lines[0])
    assert first["event_type"] == "governance_decision"
    assert json.loads(lines[1])["expires_at"] is None


def test_memory_event_sink_copies_events():
    sink = MemoryEventSink()
    event = {"event_type": "human_feedback"}

    sink.publish(event)
    event["event_type"] = "mutated"

    assert sink.events == [{"event_type": "human_feedback"}]


@pytest.mark.parametrize(
    "backend, expected",
    [("file", FileEventSink), ("memory", MemoryEventSink), ("off", NullEventSink), ("OFF ", NullEventSink)],
)
def test_sink_from_settings(tmp_path, monkeypatch, backend, expected):
    monkeypatch.setattr(
        "driftgate.telemetry.event_sink.settings",
        Settings(events_backend=backend, events_path=str(tmp_path / "events.jsonl")),
    )

    assert isinstance(sink_from_settings(), expected)


def test_unknown_sink_backend_is_rejected(monkeypatch):
    monkeypatch.setattr("driftgate.telemetry.event_sink.settings", Settings(events_backend="kafka"))

    with pytest.raises(ValueError):
        sink_from_settings()
