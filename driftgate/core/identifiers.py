"""Utilities for generating identifiers used across the service."""

from __future__ import annotations

import uuid


def new_change_id() -> str:
    return f"chg_{uuid.uuid4().hex}"
