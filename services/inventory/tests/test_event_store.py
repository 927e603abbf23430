from __future__ import annotations

import pytest

from inventory.errors import DuplicateEvent
from inventory.events.store import EventStore
from inventory.schemas import WebhookEnvelope


def _envelope(event_id: str, event_type: str = "video.asset.ready", **data) -> WebhookEnvelope:
    return WebhookEnvelope.model_validate({"type": event_type, "id": event_id, "data": data})


@pytest.fixture
def store(session_factory):
    return EventStore(session_factory)


def test_append_stores_identifiers(store):
    envelope = _envelope("evt-1", id="asset-1", upload_id="up-1", passthrough="corr-1")
    record = store.append(envelope, {"raw": True})

    assert record.event_id == "evt-1"
    assert record.external_asset_id == "asset-1"
    assert record.upload_id == "up-1"
    assert record.correlation_id == "corr-1"
    assert record.payload == {"raw": True}
    assert record.processed is False


def test_upload_event_identifiers(store):
    envelope = _envelope("evt-2", "video.upload.asset_created", id="up-9", asset_id="asset-9")
    record = store.append(envelope)

    assert record.upload_id == "up-9"
    assert record.external_asset_id == "asset-9"
    assert record.payload["type"] == "video.upload.asset_created"


def test_duplicate_event_id_rejected(store):
    store.append(_envelope("evt-1", id="asset-1"))
    with pytest.raises(DuplicateEvent) as excinfo:
        store.append(_envelope("evt-1", id="asset-1"))
    assert excinfo.value.event_id == "evt-1"
    assert len(store.pending()) == 1


def test_mark_processed_removes_from_pending(store):
    store.append(_envelope("evt-1", id="asset-1"))
    store.append(_envelope("evt-2", id="asset-2"))

    store.mark_processed("evt-1", "local-asset")

    pending = store.pending()
    assert [event.event_id for event in pending] == ["evt-2"]
    processed = store.get("evt-1")
    assert processed.processed is True
    assert processed.asset_id == "local-asset"
    assert processed.processed_at is not None
    assert processed.attempts == 1


def test_mark_failed_keeps_event_pending(store):
    store.append(_envelope("evt-1", id="asset-1"))

    store.mark_failed("evt-1", "unresolved: no matching asset")
    store.mark_failed("evt-1", "unresolved: no matching asset")

    event = store.get("evt-1")
    assert event.processed is False
    assert event.attempts == 2
    assert event.processing_error == "unresolved: no matching asset"


def test_pending_is_oldest_first_and_limited(store):
    for index in range(5):
        store.append(_envelope(f"evt-{index}", id=f"asset-{index}"))

    pending = store.pending(limit=3)
    assert [event.event_id for event in pending] == ["evt-0", "evt-1", "evt-2"]


def test_pending_puts_least_attempted_first(store):
    for index in range(4):
        store.append(_envelope(f"evt-{index}", id=f"asset-{index}"))
    store.mark_failed("evt-0", "unresolved: no matching asset")
    store.mark_failed("evt-1", "unresolved: no matching asset")

    pending = store.pending(limit=3)
    assert [event.event_id for event in pending] == ["evt-2", "evt-3", "evt-0"]


def test_pending_skips_events_at_attempt_cap(store):
    store.append(_envelope("evt-1", id="asset-1"))
    store.append(_envelope("evt-2", id="asset-2"))
    for _ in range(3):
        store.mark_failed("evt-1", "unresolved: no matching asset")

    assert [event.event_id for event in store.pending(max_attempts=3)] == ["evt-2"]
    assert [event.event_id for event in store.pending()] == ["evt-2", "evt-1"]
    assert store.get("evt-1").processing_error == "unresolved: no matching asset"
