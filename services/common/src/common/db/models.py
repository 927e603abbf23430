"""SQLAlchemy models reflecting the shared inventory data model."""

from __future__ import annotations

import enum
from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

JSONType = JSON().with_variant(JSONB(), "postgresql")


def _uuid() -> str:
    return str(uuid4())


class Base(DeclarativeBase):
    pass


class MediaType(enum.Enum):
    video = "video"
    image = "image"
    item = "item"


class MediaStatus(enum.Enum):
    """Lifecycle reported by the video host."""

    preparing = "preparing"
    processing = "processing"
    ready = "ready"
    errored = "errored"


class ExtractionStatus(enum.Enum):
    """Item extraction pipeline status for a source video."""

    pending = "pending"
    processing = "processing"
    completed = "completed"
    failed = "failed"


class TranscriptStatus(enum.Enum):
    pending = "pending"
    processing = "processing"
    completed = "completed"
    error = "error"


class Asset(Base):
    __tablename__ = "assets"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    media_type: Mapped[MediaType] = mapped_column(Enum(MediaType), nullable=False)
    name: Mapped[Optional[str]] = mapped_column(String(255))
    description: Mapped[Optional[str]] = mapped_column(Text)
    media_url: Mapped[str] = mapped_column(Text, default="")

    # Video lifecycle
    processing_status: Mapped[Optional[MediaStatus]] = mapped_column(Enum(MediaStatus))
    processing_error: Mapped[Optional[str]] = mapped_column(Text)
    extraction_status: Mapped[ExtractionStatus] = mapped_column(
        Enum(ExtractionStatus), default=ExtractionStatus.pending, nullable=False
    )
    transcript_processing_status: Mapped[TranscriptStatus] = mapped_column(
        Enum(TranscriptStatus), default=TranscriptStatus.pending, nullable=False
    )
    transcript: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSONType)
    transcript_text: Mapped[Optional[str]] = mapped_column(Text)
    transcript_error: Mapped[Optional[str]] = mapped_column(Text)
    is_source_video: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_processed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # External correlation
    external_media_ref: Mapped[Optional[str]] = mapped_column(String(255), index=True)
    media_ref_permanent: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    correlation_id: Mapped[Optional[str]] = mapped_column(String(255), index=True)
    playback_id: Mapped[Optional[str]] = mapped_column(String(255))
    duration: Mapped[Optional[float]] = mapped_column(Float)
    aspect_ratio: Mapped[Optional[str]] = mapped_column(String(32))
    max_resolution: Mapped[Optional[str]] = mapped_column(String(32))

    # Derived item fields
    source_video_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("assets.id", ondelete="SET NULL"), index=True
    )
    item_timestamp: Mapped[Optional[float]] = mapped_column(Float)
    estimated_value: Mapped[Optional[float]] = mapped_column(Float)
    inferred_room_name: Mapped[Optional[str]] = mapped_column(String(120))
    brand: Mapped[Optional[str]] = mapped_column(String(120))
    model: Mapped[Optional[str]] = mapped_column(String(120))
    condition: Mapped[Optional[str]] = mapped_column(String(120))
    serial_number: Mapped[Optional[str]] = mapped_column(String(120))
    purchase_date: Mapped[Optional[str]] = mapped_column(String(32))
    notes: Mapped[Optional[str]] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    tags: Mapped[List["Tag"]] = relationship(secondary="item_tags", viewonly=True)
    room_link: Mapped[Optional["ItemRoom"]] = relationship(
        back_populates="item", uselist=False, cascade="all, delete-orphan"
    )


class WebhookEvent(Base):
    __tablename__ = "webhook_events"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    event_type: Mapped[str] = mapped_column(String(120), nullable=False)
    event_id: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    payload: Mapped[Dict[str, Any]] = mapped_column(JSONType, nullable=False)
    processed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False, index=True)
    processed_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    asset_id: Mapped[Optional[str]] = mapped_column(String(36))
    external_asset_id: Mapped[Optional[str]] = mapped_column(String(255), index=True)
    upload_id: Mapped[Optional[str]] = mapped_column(String(255), index=True)
    correlation_id: Mapped[Optional[str]] = mapped_column(String(255))
    processing_error: Mapped[Optional[str]] = mapped_column(Text)
    attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


class ScratchItem(Base):
    __tablename__ = "scratch_items"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    external_media_ref: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    video_timestamp: Mapped[Optional[float]] = mapped_column(Float)
    estimated_value: Mapped[Optional[float]] = mapped_column(Float)
    image_url: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


class Tag(Base):
    __tablename__ = "tags"
    __table_args__ = (UniqueConstraint("user_id", "name", name="uq_tags_user_name"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


class Room(Base):
    __tablename__ = "rooms"
    __table_args__ = (UniqueConstraint("user_id", "name", name="uq_rooms_user_name"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


class ItemTag(Base):
    __tablename__ = "item_tags"

    item_id: Mapped[str] = mapped_column(
        ForeignKey("assets.id", ondelete="CASCADE"), primary_key=True
    )
    tag_id: Mapped[str] = mapped_column(ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


class ItemRoom(Base):
    __tablename__ = "item_rooms"

    item_id: Mapped[str] = mapped_column(
        ForeignKey("assets.id", ondelete="CASCADE"), primary_key=True
    )
    room_id: Mapped[str] = mapped_column(ForeignKey("rooms.id", ondelete="CASCADE"), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    item: Mapped[Asset] = relationship(back_populates="room_link")
    room: Mapped[Room] = relationship()


__all__ = [
    "Asset",
    "Base",
    "ExtractionStatus",
    "ItemRoom",
    "ItemTag",
    "MediaStatus",
    "MediaType",
    "Room",
    "ScratchItem",
    "Tag",
    "TranscriptStatus",
    "WebhookEvent",
]
