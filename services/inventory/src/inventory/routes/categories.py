# noqa: D401
"""Owner-scoped tag and room endpoints.

Handlers are plain functions; FastAPI runs them in its threadpool so the
synchronous database work never blocks the event loop.
"""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, Response

from ..categories.resolver import CategoryResolver
from ..dependencies import get_category_resolver
from ..errors import AssetNotFound, CategoryConflict, CategoryNotFound
from ..schemas import (
    CategoryCreate,
    CategoryOut,
    CategoryRename,
    ItemRoomRequest,
    ItemTagRequest,
    ItemTagResult,
)

router = APIRouter(prefix="/api", tags=["categories"])


def _http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, (CategoryNotFound, AssetNotFound)):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, CategoryConflict):
        return HTTPException(status_code=409, detail=str(exc))
    return HTTPException(status_code=400, detail=str(exc))


# -- tags ----------------------------------------------------------------------


@router.get("/tags", response_model=List[CategoryOut])
def list_tags(
    user_id: str = Query(..., min_length=1),
    resolver: CategoryResolver = Depends(get_category_resolver),
) -> List[CategoryOut]:
    return [CategoryOut(id=tag.id, name=tag.name) for tag in resolver.list_tags(user_id)]


@router.post("/tags", response_model=CategoryOut)
def create_tag(
    body: CategoryCreate,
    resolver: CategoryResolver = Depends(get_category_resolver),
) -> CategoryOut:
    try:
        tag = resolver.resolve_tag(body.user_id, body.name)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return CategoryOut(id=tag.id, name=tag.name)


@router.put("/tags/{tag_id}", response_model=CategoryOut)
def rename_tag(
    tag_id: str,
    body: CategoryRename,
    resolver: CategoryResolver = Depends(get_category_resolver),
) -> CategoryOut:
    try:
        tag = resolver.rename_tag(body.user_id, tag_id, body.name)
    except (CategoryNotFound, CategoryConflict, ValueError) as exc:
        raise _http_error(exc) from exc
    return CategoryOut(id=tag.id, name=tag.name)


@router.delete("/tags/{tag_id}", status_code=204)
def delete_tag(
    tag_id: str,
    user_id: str = Query(..., min_length=1),
    resolver: CategoryResolver = Depends(get_category_resolver),
) -> Response:
    try:
        resolver.delete_tag(user_id, tag_id)
    except CategoryNotFound as exc:
        raise _http_error(exc) from exc
    return Response(status_code=204)


# -- rooms ---------------------------------------------------------------------


@router.get("/rooms", response_model=List[CategoryOut])
def list_rooms(
    user_id: str = Query(..., min_length=1),
    resolver: CategoryResolver = Depends(get_category_resolver),
) -> List[CategoryOut]:
    return [CategoryOut(id=room.id, name=room.name) for room in resolver.list_rooms(user_id)]


@router.post("/rooms", response_model=CategoryOut)
def create_room(
    body: CategoryCreate,
    resolver: CategoryResolver = Depends(get_category_resolver),
) -> CategoryOut:
    try:
        room = resolver.resolve_room(body.user_id, body.name)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return CategoryOut(id=room.id, name=room.name)


@router.put("/rooms/{room_id}", response_model=CategoryOut)
def rename_room(
    room_id: str,
    body: CategoryRename,
    resolver: CategoryResolver = Depends(get_category_resolver),
) -> CategoryOut:
    try:
        room = resolver.rename_room(body.user_id, room_id, body.name)
    except (CategoryNotFound, CategoryConflict, ValueError) as exc:
        raise _http_error(exc) from exc
    return CategoryOut(id=room.id, name=room.name)


@router.delete("/rooms/{room_id}", status_code=204)
def delete_room(
    room_id: str,
    user_id: str = Query(..., min_length=1),
    resolver: CategoryResolver = Depends(get_category_resolver),
) -> Response:
    try:
        resolver.delete_room(user_id, room_id)
    except CategoryNotFound as exc:
        raise _http_error(exc) from exc
    return Response(status_code=204)


# -- per-item assignment -------------------------------------------------------


@router.post("/assets/{asset_id}/tags", response_model=ItemTagResult)
def tag_item(
    asset_id: str,
    body: ItemTagRequest,
    response: Response,
    resolver: CategoryResolver = Depends(get_category_resolver),
) -> ItemTagResult:
    """Attach a tag. 201 when the link is new, 200 when it already existed."""
    try:
        added = resolver.tag_item(body.user_id, asset_id, body.tag_id)
    except (AssetNotFound, CategoryNotFound) as exc:
        raise _http_error(exc) from exc
    response.status_code = 201 if added else 200
    return ItemTagResult(item_id=asset_id, tag_id=body.tag_id, added=added)


@router.delete("/assets/{asset_id}/tags/{tag_id}", status_code=204)
def untag_item(
    asset_id: str,
    tag_id: str,
    user_id: str = Query(..., min_length=1),
    resolver: CategoryResolver = Depends(get_category_resolver),
) -> Response:
    try:
        resolver.untag_item(user_id, asset_id, tag_id)
    except AssetNotFound as exc:
        raise _http_error(exc) from exc
    return Response(status_code=204)


@router.put("/assets/{asset_id}/room", response_model=CategoryOut)
def set_item_room(
    asset_id: str,
    body: ItemRoomRequest,
    resolver: CategoryResolver = Depends(get_category_resolver),
) -> CategoryOut:
    try:
        room = resolver.set_item_room(body.user_id, asset_id, body.room_id)
    except (AssetNotFound, CategoryNotFound) as exc:
        raise _http_error(exc) from exc
    return CategoryOut(id=room.id, name=room.name)


@router.delete("/assets/{asset_id}/room", status_code=204)
def clear_item_room(
    asset_id: str,
    user_id: str = Query(..., min_length=1),
    resolver: CategoryResolver = Depends(get_category_resolver),
) -> Response:
    try:
        resolver.clear_item_room(user_id, asset_id)
    except AssetNotFound as exc:
        raise _http_error(exc) from exc
    return Response(status_code=204)


__all__ = ["router"]
