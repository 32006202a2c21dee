"""Transports for the external reasoning service."""

from .client import GeminiReasoningTransport, ReasoningTransport

__all__ = ["GeminiReasoningTransport", "ReasoningTransport"]
