"""Event sinks for governance decisions and receipt activity."""

from __future__ import annotations

import json
import threading
from pathlib import Path
from typing import Protocol

from driftgate.core.config import settings


class EventSink(Protocol):
    """Receives governance and receipt events as flat dicts."""

    def publish(self, event: dict) -> None:  # pragma: no cover - interface
        ...

    def close(self) -> None:  # pragma: no cover - interface
        ...


class NullEventSink:
    """Drops every event (``events_backend=off``)."""

    def publish(self, event: dict) -> None:
        return None

    def close(self) -> None:
        return None


class FileEventSink:
    """Appends events as newline-delimited JSON."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def publish(self, event: dict) -> None:
        payload = json.dumps(event, separators=(",", ":"), sort_keys=True, default=str)
        with self._lock, self.path.open("a", encoding="utf-8") as handle:
            handle.write(payload)
            handle.write("\n")

    def close(self) -> None:
        return None


class MemoryEventSink:
    """Keeps events in memory."""

    def __init__(self) -> None:
        self.events: list[dict] = []
        self._lock = threading.Lock()

    def publish(self, event: dict) -> None:
        with self._lock:
            self.events.append(dict(event))

    def close(self) -> None:
        return None


def sink_from_settings() -> EventSink:
    backend = settings.events_backend.lower().strip()
    if backend == "file":
        return FileEventSink(settings.events_path)
    if backend == "memory":
        return MemoryEventSink()
    if backend in {"off", "none", "disabled"}:
        return NullEventSink()
    raise ValueError(f"Unsupported events backend: {settings.events_backend}")
