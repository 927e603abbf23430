# noqa: D401
"""Direct upload creation and video host credential check."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException

from ..adapters.mux import MuxClient
from ..dependencies import get_mux_client, get_upload_service
from ..errors import VideoHostError
from ..schemas import CredentialCheck, UploadRequest, UploadResponse
from ..uploads import UploadService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/mux", tags=["mux"])


@router.post("/upload", response_model=UploadResponse, status_code=201)
async def create_upload(
    body: UploadRequest,
    uploads: UploadService = Depends(get_upload_service),
) -> UploadResponse:
    try:
        ticket = await uploads.create_upload(
            body.user_id,
            body.name,
            description=body.description,
            estimated_value=body.estimated_value,
            correlation_id=body.correlation_id,
        )
    except VideoHostError as exc:
        logger.error("Upload creation failed for user %s: %s", body.user_id, exc)
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    return UploadResponse(
        asset_id=ticket.asset_id,
        upload_id=ticket.upload_id,
        upload_url=ticket.upload_url,
        correlation_id=ticket.correlation_id,
    )


@router.get("/check", response_model=CredentialCheck)
async def check_credentials(mux: MuxClient = Depends(get_mux_client)) -> CredentialCheck:
    try:
        count = await mux.check_credentials()
    except VideoHostError as exc:
        logger.warning("Video host credential check failed: %s", exc)
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    return CredentialCheck(status="ok", message="Video host credentials are valid", assets_count=count)


__all__ = ["router"]
