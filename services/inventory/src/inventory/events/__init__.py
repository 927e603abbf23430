"""Append-only store of inbound lifecycle notifications."""

from .store import EventStore

__all__ = ["EventStore"]
