# noqa: D401
"""Persist webhook events before any processing is attempted."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from common.db import SessionLocal
from common.db.models import WebhookEvent
from common.logging import get_logger

from ..errors import DuplicateEvent
from ..schemas import WebhookEnvelope

LOGGER = get_logger(__name__)


class EventStore:
    """Append-only event log keyed by the sender's event id.

    Rows are never deleted; ``processed`` flips to true only after the matching
    asset has been updated, so unprocessed rows are the replay set.
    """

    def __init__(self, session_factory=SessionLocal) -> None:
        self._session_factory = session_factory

    def append(self, envelope: WebhookEnvelope, payload: Optional[dict] = None) -> WebhookEvent:
        """Store an event. Raises :class:`DuplicateEvent` if the id was seen before."""

        session: Session = self._session_factory()
        try:
            record = WebhookEvent(
                event_type=envelope.type,
                event_id=envelope.id,
                payload=payload if payload is not None else envelope.model_dump(mode="json"),
                external_asset_id=envelope.permanent_asset_id,
                upload_id=envelope.upload_id,
                correlation_id=envelope.correlation_id,
            )
            session.add(record)
            session.commit()
            session.refresh(record)
            LOGGER.info("webhook event stored", event_id=envelope.id, event_type=envelope.type)
            return record
        except IntegrityError as exc:
            session.rollback()
            LOGGER.info("duplicate webhook event ignored", event_id=envelope.id)
            raise DuplicateEvent(envelope.id) from exc
        finally:
            session.close()

    def get(self, event_id: str) -> Optional[WebhookEvent]:
        session: Session = self._session_factory()
        try:
            return session.execute(
                select(WebhookEvent).where(WebhookEvent.event_id == event_id)
            ).scalar_one_or_none()
        finally:
            session.close()

    def mark_processed(self, event_id: str, asset_id: Optional[str]) -> None:
        session: Session = self._session_factory()
        try:
            session.execute(
                update(WebhookEvent)
                .where(WebhookEvent.event_id == event_id)
                .values(
                    processed=True,
                    processed_at=datetime.utcnow(),
                    asset_id=asset_id,
                    processing_error=None,
                    attempts=WebhookEvent.attempts + 1,
                )
            )
            session.commit()
        finally:
            session.close()

    def mark_failed(self, event_id: str, error: str) -> None:
        """Record a processing attempt that did not resolve; the event stays pending."""

        session: Session = self._session_factory()
        try:
            session.execute(
                update(WebhookEvent)
                .where(WebhookEvent.event_id == event_id)
                .values(processing_error=error[:2000], attempts=WebhookEvent.attempts + 1)
            )
            session.commit()
        finally:
            session.close()

    def pending(self, limit: int = 100, max_attempts: Optional[int] = None) -> List[WebhookEvent]:
        """Unprocessed events, least-attempted first, then oldest first.

        Every sweep bumps ``attempts`` on the events it cannot resolve, so a
        backlog of orphans rotates behind newer events instead of filling each
        batch. Events at ``max_attempts`` or beyond are left out (they stay
        stored, with their last ``processing_error``).
        """
        session: Session = self._session_factory()
        try:
            stmt = select(WebhookEvent).where(WebhookEvent.processed.is_(False))
            if max_attempts:
                stmt = stmt.where(WebhookEvent.attempts < max_attempts)
            stmt = stmt.order_by(
                WebhookEvent.attempts.asc(), WebhookEvent.created_at.asc(), WebhookEvent.event_id.asc()
            ).limit(limit)
            return list(session.execute(stmt).scalars().all())
        finally:
            session.close()


__all__ = ["EventStore"]
