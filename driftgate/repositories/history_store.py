"""Append-only decision history (precedent memory)."""

from __future__ import annotations

import json
import threading
from pathlib import Path
from typing import Protocol

from pydantic import ValidationError
from redis import Redis
from redis.exceptions import RedisError

from driftgate.core.config import settings
from driftgate.core.errors import ArtifactError
from driftgate.models.governance import DecisionHistory, StoredDecision
from driftgate.repositories.artifact_store import write_json

_path_locks: dict[str, threading.Lock] = {}
_path_locks_guard = threading.Lock()


def _lock_for(path: Path) -> threading.Lock:
    key = str(path.resolve())
    with _path_locks_guard:
        lock = _path_locks.get(key)
        if lock is None:
            lock = _path_locks[key] = threading.Lock()
        return lock


class DecisionHistoryStore(Protocol):
    def load(self) -> DecisionHistory:  # pragma: no cover - interface
        ...

    def append(self, entry: StoredDecision) -> None:  # pragma: no cover - interface
        ...


class FileDecisionHistoryStore:
    """``decisions.json`` on local disk.

    Appends are a read-modify-write under a lock shared by every store
    instance pointing at the same file, so concurrent feedback in one process
    cannot drop records. Other processes are not coordinated.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def load(self) -> DecisionHistory:
        with _lock_for(self.path):
            return self._read()

    def append(self, entry: StoredDecision) -> None:
        with _lock_for(self.path):
            history = self._read()
            history.decisions.append(entry)
            try:
                write_json(self.path, history.model_dump(mode="json", by_alias=True, exclude_none=True))
            except OSError as exc:
                raise ArtifactError("decisions", f"could not write decision history to {self.path}: {exc}") from exc

    def _read(self) -> DecisionHistory:
        if not self.path.exists():
            return DecisionHistory()
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8") or "{}")
            return DecisionHistory.model_validate(raw)
        except (OSError, UnicodeDecodeError, json.JSONDecodeError, ValidationError) as exc:
            raise ArtifactError("decisions", f"unreadable decision history at {self.path}: {exc}") from exc


class RedisDecisionHistoryStore:
    """Decision history kept in a Redis list; ``RPUSH`` makes appends atomic."""

    def __init__(self, client: Redis, key: str | None = None) -> None:
        self._client = client
        self._key = key or settings.history_redis_key

    def load(self) -> DecisionHistory:
        try:
            entries = self._client.lrange(self._key, 0, -1)
        except RedisError as exc:
            raise ArtifactError("decisions", f"decision history unavailable in redis: {exc}") from exc
        try:
            return DecisionHistory(decisions=[StoredDecision.model_validate_json(entry) for entry in entries])
        except ValidationError as exc:
            raise ArtifactError("decisions", f"unreadable decision history in redis key {self._key}: {exc}") from exc

    def append(self, entry: StoredDecision) -> None:
        try:
            self._client.rpush(self._key, entry.model_dump_json(by_alias=True, exclude_none=True))
        except RedisError as exc:
            raise ArtifactError("decisions", f"could not append to redis key {self._key}: {exc}") from exc


def history_store_from_settings(path: str | Path | None = None) -> DecisionHistoryStore:
    backend = settings.history_backend.lower().strip()
    if backend == "redis":
        return RedisDecisionHistoryStore(Redis.from_url(settings.redis_url, decode_responses=True))
    if backend == "file":
        return FileDecisionHistoryStore(path or settings.history_path)
    raise ValueError(f"Unsupported history backend: {settings.history_backend}")
