# noqa: D401
"""Merge transcript and frame detections into inventory items."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException

from ..dependencies import get_pipeline
from ..errors import AssetNotFound, InventoryError
from ..pipeline import InventoryPipeline
from ..schemas import MergeRequest, MergeResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/inventory", tags=["inventory"])


@router.post("/merge", response_model=MergeResponse)
async def merge_inventory(
    body: MergeRequest,
    pipeline: InventoryPipeline = Depends(get_pipeline),
) -> MergeResponse:
    try:
        result = await pipeline.merge_for_asset(
            body.user_id,
            asset_id=body.asset_id,
            external_media_ref=body.mux_asset_id,
            transcript=body.transcript,
        )
    except AssetNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except InventoryError as exc:
        logger.exception("Merge failed for %s", body.asset_id or body.mux_asset_id)
        raise HTTPException(status_code=500, detail=f"Merge failed: {exc}") from exc

    return MergeResponse(success=True, items=result.items, message=result.message)


__all__ = ["router"]
