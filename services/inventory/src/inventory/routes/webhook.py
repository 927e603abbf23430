# noqa: D401
"""Video host webhook receiver and reconciliation trigger."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from common.config import settings

from ..dependencies import get_event_store, get_reconciler, get_task_runner
from ..errors import DuplicateEvent, SignatureError
from ..events.store import EventStore
from ..jobs import schedule_follow_ups, schedule_sweep_follow_ups
from ..reconciler import AssetReconciler
from ..schemas import ReconcileSummary, WebhookAck, WebhookEnvelope
from ..signing import verify_webhook_signature
from ..tasks import TaskRunner

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/mux", tags=["mux"])

SIGNATURE_HEADER = "mux-signature"


def _check_signature(raw_body: bytes, header: Optional[str]) -> None:
    if settings.skip_webhook_signature:
        logger.warning("Webhook signature verification skipped (SKIP_WEBHOOK_SIGNATURE)")
        return
    if not settings.mux_webhook_secret:
        logger.error("MUX_WEBHOOK_SECRET is not configured")
        raise HTTPException(status_code=401, detail="Webhook signature cannot be verified")
    if not header:
        raise HTTPException(status_code=401, detail="Missing signature header")
    try:
        valid = verify_webhook_signature(
            raw_body,
            header,
            settings.mux_webhook_secret,
            tolerance_seconds=settings.webhook_tolerance_seconds,
        )
    except SignatureError as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc
    if not valid:
        raise HTTPException(status_code=401, detail="Invalid signature")


@router.post("/webhook", response_model=WebhookAck)
async def receive_webhook(
    request: Request,
    store: EventStore = Depends(get_event_store),
    reconciler: AssetReconciler = Depends(get_reconciler),
    runner: TaskRunner = Depends(get_task_runner),
) -> WebhookAck:
    """Store the event, then try to apply it.

    Once stored the response is always 200: processing failures are left for
    the reconciliation sweep instead of triggering a re-delivery.
    """
    raw_body = await request.body()
    _check_signature(raw_body, request.headers.get(SIGNATURE_HEADER))

    try:
        payload = json.loads(raw_body)
        envelope = WebhookEnvelope.model_validate(payload)
    except (ValueError, ValidationError) as exc:
        raise HTTPException(status_code=400, detail="Malformed webhook body") from exc

    try:
        await asyncio.to_thread(store.append, envelope, payload)
    except DuplicateEvent:
        return WebhookAck(type=envelope.type, duplicate=True)

    try:
        result = await asyncio.to_thread(reconciler.apply, envelope)
        schedule_follow_ups(runner, result)
    except Exception as exc:  # noqa: BLE001
        logger.exception("Processing failed for stored event %s", envelope.id)
        await _record_failure(store, envelope.id, exc)
    return WebhookAck(type=envelope.type)


async def _record_failure(store: EventStore, event_id: str, exc: Exception) -> None:
    try:
        await asyncio.to_thread(store.mark_failed, event_id, f"{type(exc).__name__}: {exc}")
    except SQLAlchemyError:
        logger.exception("Could not record failure for event %s", event_id)


@router.post("/reconcile", response_model=ReconcileSummary)
async def reconcile_pending(
    limit: Optional[int] = Query(default=None, gt=0, le=1000),
    reconciler: AssetReconciler = Depends(get_reconciler),
    runner: TaskRunner = Depends(get_task_runner),
) -> ReconcileSummary:
    sweep = await asyncio.to_thread(reconciler.reconcile_pending, limit)
    schedule_sweep_follow_ups(runner, sweep)
    return ReconcileSummary(processed=sweep.processed, unresolved=sweep.unresolved, failed=sweep.failed)


__all__ = ["router"]
