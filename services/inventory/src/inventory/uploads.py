"""
Direct video uploads.

An upload creates the placeholder video row before any bytes reach the video
host. The row starts in ``preparing`` with the upload id as its (temporary)
external reference and the correlation id the host echoes back in every
webhook, so the reconciler can find it whichever event arrives first.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from common.db import SessionLocal
from common.db.models import Asset, MediaStatus, MediaType
from common.logging import get_logger

from .adapters.mux import MuxClient

LOGGER = get_logger(__name__)


@dataclass(frozen=True)
class UploadTicket:
    asset_id: str
    upload_id: str
    upload_url: str
    correlation_id: str


class UploadService:
    def __init__(self, mux: Optional[MuxClient] = None, session_factory=SessionLocal) -> None:
        self.mux = mux or MuxClient()
        self._session_factory = session_factory

    async def create_upload(
        self,
        user_id: str,
        name: str,
        description: Optional[str] = None,
        estimated_value: Optional[float] = None,
        correlation_id: Optional[str] = None,
    ) -> UploadTicket:
        """Open an upload with the host, then insert the placeholder video.

        Raises :class:`~inventory.errors.VideoHostError` when the host refuses;
        no row is written in that case.
        """
        upload = await self.mux.create_upload(correlation_id)
        asset_id = await asyncio.to_thread(
            self._insert_placeholder,
            user_id,
            name,
            description,
            estimated_value,
            upload["upload_id"],
            upload["correlation_id"],
        )
        LOGGER.info(
            "placeholder video created",
            asset_id=asset_id,
            upload_id=upload["upload_id"],
            correlation_id=upload["correlation_id"],
        )
        return UploadTicket(
            asset_id=asset_id,
            upload_id=upload["upload_id"],
            upload_url=upload["upload_url"],
            correlation_id=upload["correlation_id"],
        )

    def _insert_placeholder(
        self,
        user_id: str,
        name: str,
        description: Optional[str],
        estimated_value: Optional[float],
        upload_id: str,
        correlation_id: str,
    ) -> str:
        session: Session = self._session_factory()
        try:
            asset = Asset(
                user_id=user_id,
                media_type=MediaType.video,
                name=name.strip(),
                description=description,
                estimated_value=estimated_value,
                media_url="",
                processing_status=MediaStatus.preparing,
                external_media_ref=upload_id,
                media_ref_permanent=False,
                correlation_id=correlation_id,
            )
            session.add(asset)
            session.commit()
            return asset.id
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()


__all__ = ["UploadService", "UploadTicket"]
