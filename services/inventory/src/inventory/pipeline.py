"""
Merge pipeline: transcript + scratch items -> inventory item assets.

``merge_for_asset`` is idempotent per video: items previously extracted from
the same source video are replaced, never duplicated.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from common.config import settings
from common.db import SessionLocal
from common.db.models import (
    Asset,
    ExtractionStatus,
    ItemRoom,
    ItemTag,
    MediaType,
    ScratchItem,
    TranscriptStatus,
)
from common.logging import get_logger

from .adapters.mux import MuxClient
from .adapters.transcription import TranscriptionClient, extract_paragraph_text, extract_words
from .categories.resolver import CategoryResolver, assign_room, link_tags
from .errors import AssetNotFound, InventoryError
from .extraction.candidates import CandidateExtractor
from .merge.engine import MergedItemDraft, MergeEngine, ScratchCandidate
from .reconciler import TranscriptJob
from .schemas import MergedItemOut

LOGGER = get_logger(__name__)

STRATEGY_VISION_ONLY = "vision_only"


@dataclass
class MergeResult:
    asset_id: str
    items: List[MergedItemOut] = field(default_factory=list)
    strategy: str = STRATEGY_VISION_ONLY
    degraded: bool = False
    scratch_items_deleted: int = 0

    @property
    def message(self) -> str:
        if self.degraded:
            return f"Created {len(self.items)} items from video frames only; transcript extraction failed"
        if self.strategy == STRATEGY_VISION_ONLY:
            return f"Created {len(self.items)} items from video frames"
        return f"Created {len(self.items)} items from transcript and video frames"


class InventoryPipeline:
    def __init__(
        self,
        extractor: CandidateExtractor,
        engine: MergeEngine,
        resolver: CategoryResolver,
        transcriber: Optional[TranscriptionClient] = None,
        mux: Optional[MuxClient] = None,
        session_factory=SessionLocal,
        delete_scratch_after_merge: Optional[bool] = None,
    ) -> None:
        self.extractor = extractor
        self.engine = engine
        self.resolver = resolver
        self.transcriber = transcriber
        self.mux = mux or MuxClient()
        self._session_factory = session_factory
        self.delete_scratch_after_merge = (
            settings.delete_scratch_items_after_merge
            if delete_scratch_after_merge is None
            else delete_scratch_after_merge
        )

    # -- lookups -------------------------------------------------------------

    def _load_video(
        self,
        session: Session,
        user_id: str,
        asset_id: Optional[str] = None,
        external_media_ref: Optional[str] = None,
    ) -> Asset:
        if not (asset_id or external_media_ref):
            raise ValueError("asset_id or external_media_ref is required")
        stmt = select(Asset).where(Asset.user_id == user_id, Asset.media_type == MediaType.video)
        if asset_id:
            stmt = stmt.where(Asset.id == asset_id)
        else:
            stmt = stmt.where(Asset.external_media_ref == external_media_ref)
        asset = session.execute(stmt.limit(1)).scalar_one_or_none()
        if asset is None:
            raise AssetNotFound(f"Video {asset_id or external_media_ref} not found for user")
        return asset

    def _scratch_rows(self, session: Session, user_id: str, external_media_ref: Optional[str]) -> List[ScratchItem]:
        if not external_media_ref:
            return []
        stmt = (
            select(ScratchItem)
            .where(ScratchItem.user_id == user_id, ScratchItem.external_media_ref == external_media_ref)
            .order_by(ScratchItem.video_timestamp.asc(), ScratchItem.created_at.asc())
        )
        return list(session.execute(stmt).scalars().all())

    # -- writes --------------------------------------------------------------

    def _resolve_categories(self, user_id: str, drafts: Sequence[MergedItemDraft]) -> Dict[str, Dict[str, str]]:
        tag_ids: Dict[str, str] = {}
        room_ids: Dict[str, str] = {}
        for draft in drafts:
            for tag in draft.tags:
                if tag not in tag_ids:
                    tag_ids[tag] = self.resolver.resolve_tag(user_id, tag).id
            if draft.room and draft.room not in room_ids:
                room_ids[draft.room] = self.resolver.resolve_room(user_id, draft.room).id
        return {"tags": tag_ids, "rooms": room_ids}

    def _item_media_url(self, video: Asset, timestamp: float) -> str:
        if not video.playback_id:
            return video.media_url or ""
        return self.mux.thumbnail_url(video.playback_id, timestamp, signed=False)

    def _write_items(
        self,
        session: Session,
        video: Asset,
        drafts: Sequence[MergedItemDraft],
        categories: Dict[str, Dict[str, str]],
        used_transcript: bool,
    ) -> List[MergedItemOut]:
        previous = session.execute(
            select(Asset.id).where(Asset.source_video_id == video.id, Asset.media_type == MediaType.item)
        ).scalars().all()
        if previous:
            session.execute(delete(ItemTag).where(ItemTag.item_id.in_(previous)))
            session.execute(delete(ItemRoom).where(ItemRoom.item_id.in_(previous)))
            session.execute(delete(Asset).where(Asset.id.in_(previous)))
            LOGGER.info("replacing previously extracted items", asset_id=video.id, count=len(previous))

        out: List[MergedItemOut] = []
        for draft in drafts:
            item = Asset(
                user_id=video.user_id,
                media_type=MediaType.item,
                name=draft.name,
                description=draft.description,
                media_url=self._item_media_url(video, draft.timestamp),
                source_video_id=video.id,
                item_timestamp=draft.timestamp,
                estimated_value=draft.estimated_value,
                inferred_room_name=draft.room,
                brand=draft.brand,
                model=draft.model,
                condition=draft.condition,
                serial_number=draft.serial_number,
                purchase_date=draft.purchase_date,
                playback_id=video.playback_id,
                external_media_ref=video.external_media_ref,
                is_processed=True,
            )
            session.add(item)
            session.flush()

            link_tags(session, item.id, [categories["tags"][tag] for tag in draft.tags])
            if draft.room:
                assign_room(session, item.id, categories["rooms"][draft.room])

            out.append(
                MergedItemOut(
                    id=item.id,
                    name=draft.name,
                    description=draft.description,
                    timestamp=draft.timestamp,
                    estimated_value=draft.estimated_value,
                    room=draft.room,
                    tags=list(draft.tags),
                    sources=list(draft.sources),
                )
            )

        video.is_source_video = True
        video.is_processed = True
        video.extraction_status = ExtractionStatus.completed
        if used_transcript:
            video.transcript_processing_status = TranscriptStatus.completed
        return out

    def _delete_scratch(self, user_id: str, external_media_ref: Optional[str]) -> int:
        if not external_media_ref:
            return 0
        session: Session = self._session_factory()
        try:
            result = session.execute(
                delete(ScratchItem).where(
                    ScratchItem.user_id == user_id,
                    ScratchItem.external_media_ref == external_media_ref,
                )
            )
            session.commit()
            return result.rowcount or 0
        finally:
            session.close()

    # -- operations ----------------------------------------------------------

    async def merge_for_asset(
        self,
        user_id: str,
        asset_id: Optional[str] = None,
        external_media_ref: Optional[str] = None,
        transcript: Optional[str] = None,
        words: Optional[Sequence[Dict[str, Any]]] = None,
    ) -> MergeResult:
        """Build and store the inventory for one video."""

        session: Session = self._session_factory()
        try:
            video = self._load_video(session, user_id, asset_id, external_media_ref)
            scratch = [ScratchCandidate.from_row(row) for row in self._scratch_rows(session, user_id, video.external_media_ref)]
            transcript_text = (transcript or video.transcript_text or "").strip()
            if words is None and video.transcript:
                words = extract_words(video.transcript)
            video_id, video_ref = video.id, video.external_media_ref
        finally:
            session.close()

        owner_tags = [tag.name for tag in self.resolver.list_tags(user_id)]
        owner_rooms = [room.name for room in self.resolver.list_rooms(user_id)]

        result = MergeResult(asset_id=video_id)
        if transcript_text:
            outcome = await self.extractor.extract(transcript_text, owner_tags, owner_rooms, words)
            result.strategy = outcome.strategy
            if outcome.degraded:
                result.degraded = True
                drafts = self.engine.passthrough(scratch)
            else:
                drafts = self.engine.merge(outcome.items, scratch, owner_tags, owner_rooms)
        else:
            LOGGER.info("no transcript available, merging vision items only", asset_id=video_id)
            drafts = self.engine.merge([], scratch, owner_tags, owner_rooms)

        categories = self._resolve_categories(user_id, drafts)

        session = self._session_factory()
        try:
            video = session.get(Asset, video_id)
            if video is None:
                raise AssetNotFound(f"Video {video_id} was deleted during merge")
            result.items = self._write_items(session, video, drafts, categories, bool(transcript_text))
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

        if self.delete_scratch_after_merge:
            result.scratch_items_deleted = self._delete_scratch(user_id, video_ref)

        LOGGER.info(
            "inventory merged",
            asset_id=video_id,
            items=len(result.items),
            strategy=result.strategy,
            degraded=result.degraded,
            scratch_items_deleted=result.scratch_items_deleted,
        )
        return result

    def _update_video(self, asset_id: str, **values: Any) -> None:
        session: Session = self._session_factory()
        try:
            asset = session.get(Asset, asset_id)
            if asset is None:
                raise AssetNotFound(f"Video {asset_id} not found")
            for key, value in values.items():
                setattr(asset, key, value)
            session.commit()
        finally:
            session.close()

    async def _resolve_playback_id(self, job: TranscriptJob) -> str:
        if job.playback_id:
            return job.playback_id
        if not job.external_media_ref:
            raise AssetNotFound(f"Video {job.asset_id} has no external reference")
        data = await self.mux.get_asset(job.external_media_ref)
        playback_ids = data.get("playback_ids") or []
        if not playback_ids:
            raise AssetNotFound(f"Video {job.asset_id} has no playback id")
        return playback_ids[0]["id"]

    async def process_transcript(self, job: TranscriptJob) -> Optional[MergeResult]:
        """Transcribe a ready video and merge its inventory.

        Every failure is recorded on the video (transcript status ``error``,
        extraction status ``failed``). Service errors then yield ``None``;
        anything unexpected is re-raised to the task runner after recording.
        """
        if self.transcriber is None:
            raise RuntimeError("InventoryPipeline was built without a transcription client")

        try:
            playback_id = await self._resolve_playback_id(job)
            audio_url = self.mux.static_rendition_url(playback_id)
            LOGGER.info("transcribing video", asset_id=job.asset_id, playback_id=playback_id)
            raw = await self.transcriber.transcribe(audio_url)
            text = extract_paragraph_text(raw)
            self._update_video(
                job.asset_id,
                transcript=raw,
                transcript_text=text,
                transcript_error=None,
                transcript_processing_status=TranscriptStatus.completed,
            )
            return await self.merge_for_asset(
                job.user_id, asset_id=job.asset_id, transcript=text, words=extract_words(raw)
            )
        except InventoryError as exc:
            LOGGER.error("transcript processing failed", asset_id=job.asset_id, error=str(exc), exc_info=True)
            self._record_failure(job.asset_id, str(exc))
            return None
        except Exception as exc:
            LOGGER.exception("unexpected error processing transcript", asset_id=job.asset_id)
            self._record_failure(job.asset_id, f"{type(exc).__name__}: {exc}")
            raise

    def _record_failure(self, asset_id: str, error: str) -> None:
        self._update_video(
            asset_id,
            transcript_processing_status=TranscriptStatus.error,
            extraction_status=ExtractionStatus.failed,
            transcript_error=error[:2000],
        )


__all__ = ["InventoryPipeline", "MergeResult", "STRATEGY_VISION_ONLY"]
