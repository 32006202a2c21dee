"""Change-control governance for schema and interface drift."""

__version__ = "0.1.0"
