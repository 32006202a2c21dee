"""Exception hierarchy shared by the pipeline stages."""

from __future__ import annotations


class DriftGateError(Exception):
    """Base class for errors raised by driftgate."""


class NodeNotFoundError(DriftGateError, KeyError):
    """Raised when a graph operation references an unknown node id."""

    def __init__(self, node_id: str) -> None:
        super().__init__(node_id)
        self.node_id = node_id

    def __str__(self) -> str:
        return f"Node not found: {self.node_id}"


class ArtifactError(DriftGateError):
    """An artifact document is missing or does not match its expected shape."""

    def __init__(self, name: str, detail: str) -> None:
        super().__init__(f"{name}: {detail}")
        self.name = name
        self.detail = detail


class ConfigurationError(DriftGateError):
    """Required configuration is missing or invalid."""


class ReasoningTransportError(DriftGateError):
    """The reasoning service could not be reached or returned an error."""


class RateLimitError(ReasoningTransportError):
    """The reasoning service rejected the credential for rate limiting."""


class ReceiptLoadError(DriftGateError):
    """The receipt file is absent or is not a JSON object."""
