"""Python SDK for the driftgate API."""

from .client import DriftGateClient, FeedbackPayload

__all__ = ["DriftGateClient", "FeedbackPayload"]
