"""Deterministic short keys for arbitrary strings."""

__version__ = "1.0.0"
