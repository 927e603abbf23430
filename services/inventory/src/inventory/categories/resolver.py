# noqa: D401
"""Owner-scoped tag and room management."""

from __future__ import annotations

from typing import Iterable, List, Type, TypeVar, Union

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from common.db import SessionLocal
from common.db.models import Asset, ItemRoom, ItemTag, Room, Tag
from common.logging import get_logger

from ..errors import AssetNotFound, CategoryConflict, CategoryNotFound

LOGGER = get_logger(__name__)

CategoryModel = TypeVar("CategoryModel", Tag, Room)


def _clean_name(model: type, name: str) -> str:
    clean = (name or "").strip()
    if not clean:
        raise ValueError(f"{model.__name__} name must not be empty")
    return clean


class CategoryResolver:
    """Resolve tag and room names to rows, creating them on first use.

    Creation is insert-or-fetch: when two callers race on the same
    (owner, name), the loser's insert hits the unique constraint and it reads
    back the winner's row instead of failing.

    Every other operation checks that the tag, room and item belong to the
    owner; rows of another owner are reported as not found.
    """

    def __init__(self, session_factory=SessionLocal) -> None:
        self._session_factory = session_factory

    def resolve_tag(self, owner_id: str, name: str) -> Tag:
        return self._find_or_create(Tag, owner_id, name)

    def resolve_room(self, owner_id: str, name: str) -> Room:
        return self._find_or_create(Room, owner_id, name)

    def list_tags(self, owner_id: str) -> List[Tag]:
        return self._list(Tag, owner_id)

    def list_rooms(self, owner_id: str) -> List[Room]:
        return self._list(Room, owner_id)

    def rename_tag(self, owner_id: str, tag_id: str, name: str) -> Tag:
        return self._rename(Tag, owner_id, tag_id, name)

    def rename_room(self, owner_id: str, room_id: str, name: str) -> Room:
        return self._rename(Room, owner_id, room_id, name)

    def delete_tag(self, owner_id: str, tag_id: str) -> None:
        self._delete(Tag, ItemTag, ItemTag.tag_id, owner_id, tag_id)

    def delete_room(self, owner_id: str, room_id: str) -> None:
        self._delete(Room, ItemRoom, ItemRoom.room_id, owner_id, room_id)

    # -- per-item assignment ---------------------------------------------------

    def tag_item(self, owner_id: str, item_id: str, tag_id: str) -> bool:
        """Attach a tag to an item. Returns False when the link already existed."""

        session: Session = self._session_factory()
        try:
            self._owned_item(session, owner_id, item_id)
            tag = self._owned(session, Tag, owner_id, tag_id)
            added = link_tags(session, item_id, [tag.id]) == 1
            session.commit()
            return added
        finally:
            session.close()

    def untag_item(self, owner_id: str, item_id: str, tag_id: str) -> None:
        session: Session = self._session_factory()
        try:
            self._owned_item(session, owner_id, item_id)
            session.execute(delete(ItemTag).where(ItemTag.item_id == item_id, ItemTag.tag_id == tag_id))
            session.commit()
        finally:
            session.close()

    def set_item_room(self, owner_id: str, item_id: str, room_id: str) -> Room:
        session: Session = self._session_factory()
        try:
            self._owned_item(session, owner_id, item_id)
            room = self._owned(session, Room, owner_id, room_id)
            assign_room(session, item_id, room)
            session.commit()
            return room
        finally:
            session.close()

    def clear_item_room(self, owner_id: str, item_id: str) -> None:
        session: Session = self._session_factory()
        try:
            self._owned_item(session, owner_id, item_id)
            session.execute(delete(ItemRoom).where(ItemRoom.item_id == item_id))
            session.commit()
        finally:
            session.close()

    # -- helpers ---------------------------------------------------------------

    @staticmethod
    def _owned(session: Session, model: Type[CategoryModel], owner_id: str, row_id: str) -> CategoryModel:
        row = session.get(model, row_id)
        if row is None or row.user_id != owner_id:
            raise CategoryNotFound(f"{model.__name__} {row_id} not found")
        return row

    @staticmethod
    def _owned_item(session: Session, owner_id: str, item_id: str) -> Asset:
        item = session.get(Asset, item_id)
        if item is None or item.user_id != owner_id:
            raise AssetNotFound(f"Asset {item_id} not found for user")
        return item

    def _list(self, model: Type[CategoryModel], owner_id: str) -> List[CategoryModel]:
        session: Session = self._session_factory()
        try:
            stmt = select(model).where(model.user_id == owner_id).order_by(model.name.asc())
            return list(session.execute(stmt).scalars().all())
        finally:
            session.close()

    def _find_or_create(self, model: Type[CategoryModel], owner_id: str, name: str) -> CategoryModel:
        clean = _clean_name(model, name)

        lookup = select(model).where(model.user_id == owner_id, model.name == clean)
        session: Session = self._session_factory()
        try:
            existing = session.execute(lookup).scalar_one_or_none()
            if existing is not None:
                return existing

            row = model(user_id=owner_id, name=clean)
            session.add(row)
            try:
                session.commit()
            except IntegrityError:
                session.rollback()
                LOGGER.info(
                    "category created concurrently, using existing row",
                    kind=model.__tablename__,
                    owner_id=owner_id,
                    name=clean,
                )
                return session.execute(lookup).scalar_one()
            session.refresh(row)
            LOGGER.info("category created", kind=model.__tablename__, owner_id=owner_id, name=clean)
            return row
        finally:
            session.close()

    def _rename(self, model: Type[CategoryModel], owner_id: str, row_id: str, name: str) -> CategoryModel:
        clean = _clean_name(model, name)
        session: Session = self._session_factory()
        try:
            row = self._owned(session, model, owner_id, row_id)
            if row.name == clean:
                return row

            clash = session.execute(
                select(model.id).where(model.user_id == owner_id, model.name == clean, model.id != row_id)
            ).first()
            if clash is not None:
                raise CategoryConflict(f"A {model.__name__.lower()} named {clean!r} already exists")

            previous, row.name = row.name, clean
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise CategoryConflict(f"A {model.__name__.lower()} named {clean!r} already exists") from exc
            LOGGER.info("category renamed", kind=model.__tablename__, owner_id=owner_id, previous=previous, name=clean)
            return row
        finally:
            session.close()

    def _delete(
        self, model: Type[CategoryModel], link_model: type, link_column, owner_id: str, row_id: str
    ) -> None:
        session: Session = self._session_factory()
        try:
            row = self._owned(session, model, owner_id, row_id)
            name = row.name
            unlinked = session.execute(delete(link_model).where(link_column == row_id)).rowcount
            session.delete(row)
            session.commit()
            LOGGER.info("category deleted", kind=model.__tablename__, owner_id=owner_id, name=name, unlinked=unlinked)
        finally:
            session.close()


def link_tags(session: Session, item_id: str, tags: Iterable[Union[Tag, str]]) -> int:
    """Attach tags to an item, skipping links that already exist."""

    added = 0
    tag_ids = [tag if isinstance(tag, str) else tag.id for tag in tags]
    for tag_id in dict.fromkeys(tag_ids):
        if session.get(ItemTag, (item_id, tag_id)) is None:
            session.add(ItemTag(item_id=item_id, tag_id=tag_id))
            added += 1
    return added


def assign_room(session: Session, item_id: str, room: Union[Room, str]) -> None:
    """Set the single room of an item, replacing any previous assignment."""

    room_id = room if isinstance(room, str) else room.id
    link = session.get(ItemRoom, item_id)
    if link is None:
        session.add(ItemRoom(item_id=item_id, room_id=room_id))
    else:
        link.room_id = room_id


__all__ = ["CategoryResolver", "assign_room", "link_tags"]
