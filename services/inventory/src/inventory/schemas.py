"""Pydantic models for webhook payloads, model output and API requests."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


# ---------------------------------------------------------------------------
# Video host webhook payloads
# ---------------------------------------------------------------------------


class PlaybackId(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    policy: Optional[str] = None


class RenditionFile(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: str
    ext: Optional[str] = None
    status: Optional[str] = None


class StaticRenditions(BaseModel):
    model_config = ConfigDict(extra="allow")

    status: Optional[str] = None
    files: List[RenditionFile] = Field(default_factory=list)


class WebhookData(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None
    asset_id: Optional[str] = None
    upload_id: Optional[str] = None
    status: Optional[str] = None
    playback_ids: List[PlaybackId] = Field(default_factory=list)
    duration: Optional[float] = None
    aspect_ratio: Optional[str] = None
    max_stored_resolution: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    passthrough: Optional[str] = None
    static_renditions: Optional[StaticRenditions] = None
    errors: Optional[Dict[str, Any]] = None


class WebhookEnvelope(BaseModel):
    """Lifecycle notification delivered by the video host."""

    model_config = ConfigDict(extra="allow")

    type: str
    id: str
    data: WebhookData = Field(default_factory=WebhookData)
    created_at: Optional[str] = None

    @property
    def is_upload_event(self) -> bool:
        return self.type.startswith("video.upload.")

    @property
    def permanent_asset_id(self) -> Optional[str]:
        if self.is_upload_event:
            return self.data.asset_id
        return self.data.id or self.data.asset_id

    @property
    def upload_id(self) -> Optional[str]:
        if self.is_upload_event:
            return self.data.id
        return self.data.upload_id

    @property
    def correlation_id(self) -> Optional[str]:
        value = self.data.metadata.get("correlation_id") or self.data.passthrough
        return str(value) if value else None

    @property
    def playback_id(self) -> Optional[str]:
        if self.data.playback_ids:
            return self.data.playback_ids[0].id
        return None

    @property
    def error_message(self) -> Optional[str]:
        errors = self.data.errors or {}
        messages = errors.get("messages") or []
        if messages:
            return "; ".join(str(message) for message in messages)
        if errors.get("type"):
            return str(errors["type"])
        return None


# ---------------------------------------------------------------------------
# Language model output
# ---------------------------------------------------------------------------


class CandidateItem(BaseModel):
    """Transcript-derived inventory suggestion."""

    model_config = ConfigDict(extra="ignore", protected_namespaces=())

    name: str = Field(min_length=1)
    timestamp: float = Field(ge=0)
    description: Optional[str] = None
    estimated_value: Optional[float] = None
    inferred_room_name: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    brand: Optional[str] = None
    model: Optional[str] = None
    condition: Optional[str] = None
    serial_number: Optional[str] = None
    purchase_date: Optional[str] = None

    @field_validator("name")
    @classmethod
    def _name_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("name must not be blank")
        return value

    @field_validator("timestamp")
    @classmethod
    def _one_decimal(cls, value: float) -> float:
        if round(value, 1) != value:
            raise ValueError("timestamp must have at most one decimal place")
        return value


class ExtractionResponse(BaseModel):
    items: List[CandidateItem]


class VisionDetection(BaseModel):
    """One object detected in a sampled frame."""

    model_config = ConfigDict(extra="ignore")

    name: str = Field(min_length=1)
    description: Optional[str] = None
    estimated_value: Optional[float] = None


class VisionResponse(BaseModel):
    items: List[VisionDetection]


# ---------------------------------------------------------------------------
# HTTP API
# ---------------------------------------------------------------------------


class WebhookAck(BaseModel):
    received: bool = True
    type: str
    duplicate: bool = False


class ReconcileSummary(BaseModel):
    processed: int = 0
    unresolved: int = 0
    failed: int = 0


class MergeRequest(BaseModel):
    user_id: str
    asset_id: Optional[str] = None
    mux_asset_id: Optional[str] = None
    transcript: Optional[str] = None

    @model_validator(mode="after")
    def _require_asset_reference(self) -> "MergeRequest":
        if not (self.asset_id or self.mux_asset_id):
            raise ValueError("Either asset_id or mux_asset_id is required")
        return self


class MergedItemOut(BaseModel):
    id: Optional[str] = None
    name: str
    description: str = ""
    timestamp: float
    estimated_value: float
    room: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    sources: List[str] = Field(default_factory=list)


class MergeResponse(BaseModel):
    success: bool
    items: List[MergedItemOut]
    message: str


class FrameSubmission(BaseModel):
    user_id: str
    mux_asset_id: str
    image_url: str
    timestamp: float = Field(ge=0)


class SampleRequest(BaseModel):
    user_id: str
    asset_id: str
    interval_seconds: Optional[float] = Field(default=None, gt=0)


class TaskAccepted(BaseModel):
    task_id: str
    status: str


class TaskStatusResponse(BaseModel):
    task_id: str
    task_type: str
    status: str
    retry_count: int
    error: Optional[str] = None
    result: Optional[Dict[str, Any]] = None


class CategoryCreate(BaseModel):
    user_id: str
    name: str = Field(min_length=1)


class CategoryOut(BaseModel):
    id: str
    name: str


class CategoryRename(BaseModel):
    user_id: str
    name: str = Field(min_length=1)


class ItemTagRequest(BaseModel):
    user_id: str
    tag_id: str


class ItemRoomRequest(BaseModel):
    user_id: str
    room_id: str


class ItemTagResult(BaseModel):
    item_id: str
    tag_id: str
    added: bool


class UploadRequest(BaseModel):
    """Create a placeholder video and a direct upload URL for it."""

    user_id: str
    name: str = Field(min_length=1)
    description: Optional[str] = None
    estimated_value: Optional[float] = None
    correlation_id: Optional[str] = None


class UploadResponse(BaseModel):
    asset_id: str
    upload_id: str
    upload_url: str
    correlation_id: str


class CredentialCheck(BaseModel):
    status: str
    message: str
    assets_count: int = 0


__all__ = [
    "CandidateItem",
    "CategoryCreate",
    "CategoryOut",
    "CategoryRename",
    "CredentialCheck",
    "ExtractionResponse",
    "FrameSubmission",
    "ItemRoomRequest",
    "ItemTagRequest",
    "ItemTagResult",
    "MergeRequest",
    "MergeResponse",
    "MergedItemOut",
    "PlaybackId",
    "ReconcileSummary",
    "SampleRequest",
    "TaskAccepted",
    "TaskStatusResponse",
    "UploadRequest",
    "UploadResponse",
    "VisionDetection",
    "VisionResponse",
    "WebhookAck",
    "WebhookData",
    "WebhookEnvelope",
]
