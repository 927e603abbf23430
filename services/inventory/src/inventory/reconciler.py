"""
Asset reconciler.

Applies stored video host events to the video asset they describe. Lifecycle
for a video asset::

    preparing --static_renditions.ready--> processing --asset.ready--> ready
    (any) --asset.errored--> errored        (terminal)

Events arrive at least once and in any order, so every transition is a plain
field-set keyed on the asset and a status never moves backwards.

The asset is located with an ordered chain of equality lookups: permanent
asset id, then upload id, then client correlation id. The first hit wins. An
event that matches nothing stays unprocessed and is retried by the sweep.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, List, Optional, Tuple

from pydantic import ValidationError
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from common.config import settings
from common.db import SessionLocal
from common.db.models import Asset, ExtractionStatus, MediaStatus, MediaType, TranscriptStatus
from common.logging import get_logger

from .events.store import EventStore
from .schemas import WebhookEnvelope

LOGGER = get_logger(__name__)

ASSET_CREATED = "video.asset.created"
ASSET_READY = "video.asset.ready"
ASSET_ERRORED = "video.asset.errored"
STATIC_RENDITIONS_READY = "video.asset.static_renditions.ready"
UPLOAD_ASSET_CREATED = "video.upload.asset_created"

LOOKUP_PERMANENT_ID = "permanent_id"
LOOKUP_UPLOAD_ID = "upload_id"
LOOKUP_CORRELATION_ID = "correlation_id"


@dataclass(frozen=True)
class TranscriptJob:
    """Follow-up work: transcribe a video and merge its items."""

    asset_id: str
    user_id: str
    external_media_ref: Optional[str]
    playback_id: Optional[str] = None


@dataclass
class ReconcileResult:
    event_id: str
    event_type: str
    asset_id: Optional[str] = None
    user_id: Optional[str] = None
    lookup: Optional[str] = None
    action: str = "none"
    follow_up: Optional[TranscriptJob] = None

    @property
    def unresolved(self) -> bool:
        return self.asset_id is None

    @property
    def became_ready(self) -> bool:
        return self.action == "ready"


@dataclass
class SweepResult:
    processed: int = 0
    unresolved: int = 0
    failed: int = 0
    jobs: List[TranscriptJob] = field(default_factory=list)
    ready_assets: List[Tuple[str, str]] = field(default_factory=list)


def lookup_chain(envelope: WebhookEnvelope) -> List[Tuple[str, Any]]:
    """Ordered (strategy, predicate) pairs for the identifiers the event carries."""

    chain: List[Tuple[str, Any]] = []
    if envelope.permanent_asset_id:
        chain.append((LOOKUP_PERMANENT_ID, Asset.external_media_ref == envelope.permanent_asset_id))
    if envelope.upload_id:
        chain.append((LOOKUP_UPLOAD_ID, Asset.external_media_ref == envelope.upload_id))
    if envelope.correlation_id:
        chain.append((LOOKUP_CORRELATION_ID, Asset.correlation_id == envelope.correlation_id))
    return chain


def stream_url(playback_id: str) -> str:
    return f"{settings.mux_stream_base.rstrip('/')}/{playback_id}.m3u8"


class AssetReconciler:
    def __init__(self, session_factory=SessionLocal, event_store: Optional[EventStore] = None) -> None:
        self._session_factory = session_factory
        self.events = event_store or EventStore(session_factory)

    def find_asset(
        self, session: Session, envelope: WebhookEnvelope
    ) -> Tuple[Optional[Asset], Optional[str]]:
        for strategy, predicate in lookup_chain(envelope):
            asset = session.execute(
                select(Asset)
                .where(Asset.media_type == MediaType.video, predicate)
                .order_by(Asset.created_at.asc())
                .limit(1)
            ).scalar_one_or_none()
            if asset is not None:
                return asset, strategy
        return None, None

    # -- transitions -------------------------------------------------------

    @staticmethod
    def _promote_reference(asset: Asset, envelope: WebhookEnvelope) -> None:
        permanent = envelope.permanent_asset_id
        if not permanent:
            return
        if not asset.media_ref_permanent:
            LOGGER.info(
                "external reference promoted",
                asset_id=asset.id,
                previous=asset.external_media_ref,
                permanent=permanent,
            )
            asset.external_media_ref = permanent
            asset.media_ref_permanent = True
        elif asset.external_media_ref != permanent:
            LOGGER.warning(
                "event carries a different permanent id, keeping the first",
                asset_id=asset.id,
                current=asset.external_media_ref,
                received=permanent,
            )

    @staticmethod
    def _store_media_metadata(asset: Asset, envelope: WebhookEnvelope) -> None:
        data = envelope.data
        if envelope.playback_id:
            asset.playback_id = envelope.playback_id
            asset.media_url = stream_url(envelope.playback_id)
        if data.duration is not None:
            asset.duration = data.duration
        if data.aspect_ratio:
            asset.aspect_ratio = data.aspect_ratio
        if data.max_stored_resolution:
            asset.max_resolution = data.max_stored_resolution

    def _on_ready(self, asset: Asset, envelope: WebhookEnvelope) -> str:
        self._promote_reference(asset, envelope)
        self._store_media_metadata(asset, envelope)
        asset.processing_status = MediaStatus.ready
        asset.processing_error = None
        return "ready"

    @staticmethod
    def _claim_transcription(session: Session, asset: Asset) -> bool:
        """Move the asset into transcription with one guarded UPDATE.

        Only one concurrent delivery can match the guard, so only one gets a
        rowcount of 1 and schedules the job.
        """
        claimed = session.execute(
            update(Asset)
            .where(
                Asset.id == asset.id,
                Asset.transcript_processing_status.notin_(
                    (TranscriptStatus.processing, TranscriptStatus.completed)
                ),
                Asset.extraction_status.notin_((ExtractionStatus.completed, ExtractionStatus.failed)),
            )
            .values(
                transcript_processing_status=TranscriptStatus.processing,
                transcript_error=None,
                extraction_status=ExtractionStatus.processing,
            )
            .execution_options(synchronize_session=False)
        ).rowcount
        return claimed == 1

    def _on_static_renditions(
        self, session: Session, asset: Asset, envelope: WebhookEnvelope
    ) -> Tuple[str, Optional[TranscriptJob]]:
        self._promote_reference(asset, envelope)
        self._store_media_metadata(asset, envelope)
        if asset.processing_status in (None, MediaStatus.preparing):
            asset.processing_status = MediaStatus.processing
        session.flush()

        if not self._claim_transcription(session, asset):
            session.refresh(asset, ["transcript_processing_status", "extraction_status"])
            if asset.transcript_processing_status in (TranscriptStatus.processing, TranscriptStatus.completed):
                return "transcription_already_started", None
            return "extraction_already_finished", None

        job = TranscriptJob(
            asset_id=asset.id,
            user_id=asset.user_id,
            external_media_ref=asset.external_media_ref,
            playback_id=asset.playback_id,
        )
        return "transcription_scheduled", job

    @staticmethod
    def _on_errored(asset: Asset, envelope: WebhookEnvelope) -> str:
        asset.processing_status = MediaStatus.errored
        asset.processing_error = envelope.error_message or "Video processing failed"
        if asset.extraction_status != ExtractionStatus.completed:
            asset.extraction_status = ExtractionStatus.failed
        return "errored"

    def _transition(
        self, session: Session, asset: Asset, envelope: WebhookEnvelope
    ) -> Tuple[str, Optional[TranscriptJob]]:
        if envelope.type == ASSET_ERRORED:
            return self._on_errored(asset, envelope), None
        if asset.processing_status == MediaStatus.errored:
            return "ignored_terminal", None
        if envelope.type == ASSET_READY:
            return self._on_ready(asset, envelope), None
        if envelope.type == STATIC_RENDITIONS_READY:
            return self._on_static_renditions(session, asset, envelope)
        if envelope.type in (UPLOAD_ASSET_CREATED, ASSET_CREATED):
            self._promote_reference(asset, envelope)
            return "reference_updated", None
        return "ignored", None

    # -- entry points --------------------------------------------------------

    def apply(self, envelope: WebhookEnvelope) -> ReconcileResult:
        """Apply one stored event. Unresolved events are left for the sweep."""

        result = ReconcileResult(event_id=envelope.id, event_type=envelope.type)
        session: Session = self._session_factory()
        try:
            asset, strategy = self.find_asset(session, envelope)
            if asset is None:
                LOGGER.info(
                    "event not yet resolvable",
                    event_id=envelope.id,
                    event_type=envelope.type,
                    permanent_id=envelope.permanent_asset_id,
                    upload_id=envelope.upload_id,
                    correlation_id=envelope.correlation_id,
                )
                self.events.mark_failed(envelope.id, "unresolved: no matching asset")
                return result

            action, job = self._transition(session, asset, envelope)
            session.commit()
            result.asset_id = asset.id
            result.user_id = asset.user_id
            result.lookup = strategy
            result.action = action
            result.follow_up = job
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

        self.events.mark_processed(envelope.id, result.asset_id)
        LOGGER.info(
            "event reconciled",
            event_id=envelope.id,
            event_type=envelope.type,
            asset_id=result.asset_id,
            lookup=result.lookup,
            action=result.action,
        )
        return result

    def reconcile_pending(self, limit: Optional[int] = None) -> SweepResult:
        """Re-apply unprocessed events, least-attempted first."""

        sweep = SweepResult()
        batch = self.events.pending(
            limit or settings.reconcile_batch_size, max_attempts=settings.reconcile_max_attempts
        )
        for event in batch:
            try:
                envelope = WebhookEnvelope.model_validate(event.payload)
                result = self.apply(envelope)
            except (ValidationError, SQLAlchemyError) as exc:
                sweep.failed += 1
                LOGGER.error("failed to reconcile stored event", event_id=event.event_id, error=str(exc))
                self.events.mark_failed(event.event_id, str(exc))
                continue

            if result.unresolved:
                sweep.unresolved += 1
                continue
            sweep.processed += 1
            if result.follow_up is not None:
                sweep.jobs.append(result.follow_up)
            if result.became_ready:
                sweep.ready_assets.append((result.asset_id, result.user_id))

        LOGGER.info(
            "reconciliation sweep finished",
            processed=sweep.processed,
            unresolved=sweep.unresolved,
            failed=sweep.failed,
        )
        return sweep


__all__ = [
    "ASSET_ERRORED",
    "ASSET_READY",
    "AssetReconciler",
    "ReconcileResult",
    "STATIC_RENDITIONS_READY",
    "SweepResult",
    "TranscriptJob",
    "UPLOAD_ASSET_CREATED",
    "lookup_chain",
]
