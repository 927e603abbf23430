"""Vision-derived scratch items from sampled video frames."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from common.config import settings
from common.db import SessionLocal
from common.db.models import Asset, MediaType, ScratchItem
from common.logging import get_logger

from ..adapters.mux import MuxClient
from ..adapters.vision import VisionAdapter
from ..errors import AssetNotFound, ExtractionServiceError
from ..parsing.recovery import coerce_positive_value

LOGGER = get_logger(__name__)


def sample_timestamps(duration: Optional[float], interval: float) -> List[float]:
    """Frame times from zero up to ``duration``, one-decimal precision."""

    if interval <= 0:
        raise ValueError("interval must be positive")
    if not duration or duration <= 0:
        return [0.0]
    count = int(duration // interval) + 1
    return [round(i * interval, 1) for i in range(count) if i * interval < duration]


class FrameSampler:
    """Runs frames through the vision adapter and stores detections as scratch items."""

    def __init__(
        self,
        vision: VisionAdapter,
        mux: MuxClient,
        session_factory=SessionLocal,
        interval_seconds: Optional[float] = None,
    ) -> None:
        self.vision = vision
        self.mux = mux
        self._session_factory = session_factory
        self.interval_seconds = interval_seconds or settings.frame_sample_interval_seconds

    async def analyze_frame(
        self, user_id: str, external_media_ref: str, image_url: str, timestamp: float
    ) -> List[str]:
        """Analyze one frame and append its detections. Returns the new scratch item ids."""

        detections = await self.vision.analyze_frame(image_url)
        if not detections:
            return []

        session: Session = self._session_factory()
        try:
            rows = [
                ScratchItem(
                    user_id=user_id,
                    external_media_ref=external_media_ref,
                    name=detection.name.strip(),
                    description=detection.description,
                    video_timestamp=round(max(timestamp, 0.0), 1),
                    estimated_value=coerce_positive_value(detection.estimated_value),
                    image_url=image_url,
                )
                for detection in detections
            ]
            session.add_all(rows)
            session.commit()
            ids = [row.id for row in rows]
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

        LOGGER.info(
            "scratch items stored",
            external_media_ref=external_media_ref,
            timestamp=round(timestamp, 1),
            count=len(ids),
        )
        return ids

    def _load_video(self, user_id: str, asset_id: str) -> Asset:
        session: Session = self._session_factory()
        try:
            asset = session.execute(
                select(Asset).where(
                    Asset.id == asset_id,
                    Asset.user_id == user_id,
                    Asset.media_type == MediaType.video,
                )
            ).scalar_one_or_none()
        finally:
            session.close()
        if asset is None:
            raise AssetNotFound(f"Video {asset_id} not found")
        return asset

    async def sample_video(
        self, user_id: str, asset_id: str, interval_seconds: Optional[float] = None
    ) -> Dict[str, Any]:
        """Sample an uploaded video at a fixed cadence.

        A frame whose analysis fails is skipped; the run only fails when every
        frame failed.
        """
        asset = self._load_video(user_id, asset_id)
        if not asset.playback_id or not asset.media_ref_permanent:
            raise AssetNotFound(f"Video {asset_id} has no playback id yet")

        interval = interval_seconds or self.interval_seconds
        timestamps = sample_timestamps(asset.duration, interval)
        stored = 0
        failed = 0
        for timestamp in timestamps:
            image_url = self.mux.thumbnail_url(asset.playback_id, timestamp)
            try:
                ids = await self.analyze_frame(user_id, asset.external_media_ref, image_url, timestamp)
            except ExtractionServiceError as exc:
                failed += 1
                LOGGER.warning("frame analysis failed", asset_id=asset_id, timestamp=timestamp, error=str(exc))
                continue
            stored += len(ids)

        if failed and failed == len(timestamps):
            raise ExtractionServiceError(f"All {failed} frames failed for video {asset_id}")

        summary = {"frames": len(timestamps), "failed_frames": failed, "scratch_items": stored}
        LOGGER.info("video sampled", asset_id=asset_id, **summary)
        return summary


__all__ = ["FrameSampler", "sample_timestamps"]
