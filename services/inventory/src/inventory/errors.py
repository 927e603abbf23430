"""Exception taxonomy for the inventory service."""

from __future__ import annotations

from typing import Optional


class InventoryError(Exception):
    """Base error for inventory processing."""


class SignatureError(InventoryError):
    """Webhook signature header missing or invalid."""


class DuplicateEvent(InventoryError):
    """An event with the same event id has already been stored."""

    def __init__(self, event_id: str) -> None:
        super().__init__(f"Event {event_id} already stored")
        self.event_id = event_id


class AssetNotFound(InventoryError):
    """No asset matches the given identifiers for the owner."""


class CategoryNotFound(InventoryError):
    """No tag or room with that id belongs to the owner."""


class CategoryConflict(InventoryError):
    """The owner already has a tag or room with that name."""


class ExtractionServiceError(InventoryError):
    """An external extraction service failed after exhausting retries."""

    def __init__(self, message: str, *, attempts: Optional[int] = None) -> None:
        super().__init__(message)
        self.attempts = attempts


class TranscriptionFailed(ExtractionServiceError):
    """Speech-to-text service could not produce a transcript."""


class ModelCallFailed(ExtractionServiceError):
    """Language model call failed."""


class VideoHostError(ExtractionServiceError):
    """Video host API call failed or is not configured."""


class StructuredOutputError(InventoryError):
    """A model response could not be coerced into items by a recovery step."""


__all__ = [
    "AssetNotFound",
    "CategoryConflict",
    "CategoryNotFound",
    "DuplicateEvent",
    "ExtractionServiceError",
    "InventoryError",
    "ModelCallFailed",
    "SignatureError",
    "StructuredOutputError",
    "TranscriptionFailed",
    "VideoHostError",
]
