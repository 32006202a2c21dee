from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict

import httpx


@dataclass
class FeedbackPayload:
    """Convenience wrapper for POST /feedback payloads."""

    change_id: str
    governor: Dict[str, Any]
    human: Dict[str, Any]
    drift: Dict[str, Any] | None = None
    artifacts_dir: str | None = None

    def to_json(self) -> Dict[str, Any]:
        payload = asdict(self)
        return {key: value for key, value in payload.items() if value is not None}


class DriftGateClient:
    """Lightweight synchronous client for the driftgate API."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 60.0,
        headers: Dict[str, str] | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        normalized_base = base_url.rstrip("/") + "/"
        self._client = httpx.Client(
            base_url=normalized_base,
            timeout=timeout,
            headers=headers,
            transport=transport,
        )

    def __enter__(self) -> "DriftGateClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()

    def evaluate(
        self,
        *,
        artifacts_dir: str | None = None,
        policy_path: str | None = None,
        change_id: str | None = None,
        write_receipt: bool = True,
    ) -> dict:
        payload: Dict[str, Any] = {"write_receipt": write_receipt}
        if artifacts_dir:
            payload["artifacts_dir"] = artifacts_dir
        if policy_path:
            payload["policy_path"] = policy_path
        if change_id:
            payload["change_id"] = change_id
        response = self._client.post("evaluations", json=payload)
        response.raise_for_status()
        return response.json()

    def submit_feedback(self, feedback: FeedbackPayload) -> dict:
        response = self._client.post("feedback", json=feedback.to_json())
        response.raise_for_status()
        return response.json()

    def verify_receipt(self, receipt: dict | None, *, require_approval: bool = True, ignore_expiry: bool = False) -> dict:
        response = self._client.post(
            "receipts/verify",
            json={"receipt": receipt, "require_approval": require_approval, "ignore_expiry": ignore_expiry},
        )
        response.raise_for_status()
        return response.json()

    def get_impact(self, node_id: str, *, max_depth: int = 3, artifacts_dir: str | None = None) -> dict:
        payload: Dict[str, Any] = {"node_id": node_id, "max_depth": max_depth}
        if artifacts_dir:
            payload["artifacts_dir"] = artifacts_dir
        response = self._client.post("impact", json=payload)
        response.raise_for_status()
        return response.json()

    def healthcheck(self) -> dict:
        response = self._client.get("/healthz")
        response.raise_for_status()
        return response.json()
