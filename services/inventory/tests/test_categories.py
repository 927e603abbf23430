from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from sqlalchemy import func, select

from common.db.models import Asset, ItemRoom, ItemTag, MediaType, Room, Tag
from inventory.categories import heuristics as heuristics_module
from inventory.categories.heuristics import HeuristicTables, KeywordClass, load_heuristics
from inventory.categories.resolver import CategoryResolver, assign_room, link_tags
from inventory.errors import AssetNotFound, CategoryConflict, CategoryNotFound


@pytest.fixture(autouse=True)
def _reset_heuristics_cache(monkeypatch):
    monkeypatch.setattr(heuristics_module, "_tables", None)


@pytest.fixture
def resolver(session_factory):
    return CategoryResolver(session_factory)


def _count(session_factory, model) -> int:
    session = session_factory()
    try:
        return session.execute(select(func.count()).select_from(model)).scalar_one()
    finally:
        session.close()


def test_resolve_tag_creates_once(resolver, session_factory):
    first = resolver.resolve_tag("user-1", " Electronics ")
    second = resolver.resolve_tag("user-1", "Electronics")

    assert first.id == second.id
    assert first.name == "Electronics"
    assert _count(session_factory, Tag) == 1


def test_categories_are_scoped_per_owner(resolver):
    mine = resolver.resolve_room("user-1", "Kitchen")
    theirs = resolver.resolve_room("user-2", "Kitchen")

    assert mine.id != theirs.id
    assert [room.name for room in resolver.list_rooms("user-1")] == ["Kitchen"]


def test_empty_name_rejected(resolver):
    with pytest.raises(ValueError):
        resolver.resolve_tag("user-1", "   ")


def test_concurrent_create_returns_existing_row(session_factory):
    calls = {"count": 0}

    def racing_factory():
        session = session_factory()
        original = session.execute

        def execute(statement, *args, **kwargs):
            calls["count"] += 1
            if calls["count"] == 1:
                # Another writer inserts the same tag between our lookup and insert.
                other = session_factory()
                other.add(Tag(user_id="user-1", name="Furniture"))
                other.commit()
                other.close()
                return MagicMock(scalar_one_or_none=lambda: None)
            return original(statement, *args, **kwargs)

        session.execute = execute
        return session

    tag = CategoryResolver(racing_factory).resolve_tag("user-1", "Furniture")

    assert tag.name == "Furniture"
    assert _count(session_factory, Tag) == 1
    assert [t.id for t in CategoryResolver(session_factory).list_tags("user-1")] == [tag.id]


def test_link_tags_skips_duplicates_and_assign_room_replaces(resolver, session_factory):
    tag = resolver.resolve_tag("user-1", "Electronics")
    office = resolver.resolve_room("user-1", "Office")
    den = resolver.resolve_room("user-1", "Den")

    session = session_factory()
    item = Asset(user_id="user-1", media_type=MediaType.item, name="Gaming Laptop")
    session.add(item)
    session.flush()
    assert link_tags(session, item.id, [tag, tag.id]) == 1
    session.commit()
    assert link_tags(session, item.id, [tag]) == 0
    assign_room(session, item.id, office)
    session.commit()
    assign_room(session, item.id, den.id)
    session.commit()
    session.close()

    assert _count(session_factory, ItemTag) == 1
    assert _count(session_factory, ItemRoom) == 1
    session = session_factory()
    assert session.get(ItemRoom, item.id).room_id == den.id
    session.close()
    assert _count(session_factory, Room) == 2


def _item(session_factory, user_id="user-1") -> str:
    session = session_factory()
    try:
        item = Asset(user_id=user_id, media_type=MediaType.item, name="Desk Lamp")
        session.add(item)
        session.commit()
        return item.id
    finally:
        session.close()


def test_rename_checks_owner_and_uniqueness(resolver):
    kitchen = resolver.resolve_room("user-1", "Kitchen")
    resolver.resolve_room("user-1", "Pantry")

    assert resolver.rename_room("user-1", kitchen.id, " Galley ").name == "Galley"
    assert resolver.rename_room("user-1", kitchen.id, "Galley").name == "Galley"
    with pytest.raises(CategoryConflict):
        resolver.rename_room("user-1", kitchen.id, "Pantry")
    with pytest.raises(CategoryNotFound):
        resolver.rename_room("user-2", kitchen.id, "Stolen")
    with pytest.raises(ValueError):
        resolver.rename_room("user-1", kitchen.id, " ")
    assert [room.name for room in resolver.list_rooms("user-1")] == ["Galley", "Pantry"]


def test_rename_conflict_from_concurrent_writer(resolver, session_factory):
    tag = resolver.resolve_tag("user-1", "Tools")
    raced = {"done": False}

    def racing_factory():
        session = session_factory()
        real_execute = session.execute

        def execute(statement, *args, **kwargs):
            result = real_execute(statement, *args, **kwargs)
            descriptions = getattr(statement, "column_descriptions", None) or [{}]
            if not raced["done"] and descriptions[0].get("name") == "id":
                raced["done"] = True
                # Another writer takes the name after our uniqueness check.
                other = session_factory()
                other.add(Tag(user_id="user-1", name="Hardware"))
                other.commit()
                other.close()
            return result

        session.execute = execute
        return session

    with pytest.raises(CategoryConflict):
        CategoryResolver(racing_factory).rename_tag("user-1", tag.id, "Hardware")
    assert sorted(t.name for t in resolver.list_tags("user-1")) == ["Hardware", "Tools"]


def test_delete_tag_removes_links(resolver, session_factory):
    tag = resolver.resolve_tag("user-1", "Electronics")
    item_id = _item(session_factory)
    assert resolver.tag_item("user-1", item_id, tag.id) is True

    with pytest.raises(CategoryNotFound):
        resolver.delete_tag("user-2", tag.id)
    resolver.delete_tag("user-1", tag.id)

    assert _count(session_factory, Tag) == 0
    assert _count(session_factory, ItemTag) == 0
    assert _count(session_factory, Asset) == 1


def test_delete_room_clears_assignments(resolver, session_factory):
    room = resolver.resolve_room("user-1", "Garage")
    item_id = _item(session_factory)
    resolver.set_item_room("user-1", item_id, room.id)

    resolver.delete_room("user-1", room.id)

    assert _count(session_factory, Room) == 0
    assert _count(session_factory, ItemRoom) == 0


def test_per_item_tagging_is_idempotent_and_owner_scoped(resolver, session_factory):
    tag = resolver.resolve_tag("user-1", "Lighting")
    foreign = resolver.resolve_tag("user-2", "Lighting")
    item_id = _item(session_factory)

    assert resolver.tag_item("user-1", item_id, tag.id) is True
    assert resolver.tag_item("user-1", item_id, tag.id) is False
    with pytest.raises(CategoryNotFound):
        resolver.tag_item("user-1", item_id, foreign.id)
    with pytest.raises(AssetNotFound):
        resolver.tag_item("user-2", item_id, foreign.id)
    assert _count(session_factory, ItemTag) == 1

    resolver.untag_item("user-1", item_id, tag.id)
    resolver.untag_item("user-1", item_id, tag.id)
    assert _count(session_factory, ItemTag) == 0


def test_per_item_room_replaces_and_clears(resolver, session_factory):
    office = resolver.resolve_room("user-1", "Office")
    den = resolver.resolve_room("user-1", "Den")
    item_id = _item(session_factory)

    resolver.set_item_room("user-1", item_id, office.id)
    assert resolver.set_item_room("user-1", item_id, den.id).name == "Den"

    session = session_factory()
    assert session.get(ItemRoom, item_id).room_id == den.id
    session.close()

    with pytest.raises(AssetNotFound):
        resolver.clear_item_room("user-2", item_id)
    resolver.clear_item_room("user-1", item_id)
    assert _count(session_factory, ItemRoom) == 0


# Heuristics


@pytest.mark.parametrize(
    "name, description, expected",
    [
        ("iPhone 13", None, 500.0),
        ("MacBook Air", None, 800.0),
        ("Leather Sofa", None, 300.0),
        ("Oil Painting", None, 250.0),
        ("Big screen", "a 65 inch tv", 600.0),
        ("Blender", None, 50.0),
    ],
)
def test_estimate_value(name, description, expected):
    assert HeuristicTables().estimate_value(name, description) == expected


def test_suggestions_restricted_to_vocabulary():
    tables = HeuristicTables(tag_vocabulary=("Furniture",), room_vocabulary=("Bedroom",))

    laptop = tables.suggest_categories("Laptop")
    sofa = tables.suggest_categories("Sofa", owner_rooms=["living room"])

    assert laptop.tags == []
    assert laptop.room is None
    assert sofa.tags == ["Furniture"]
    assert sofa.room == "living room"


def test_non_positive_values_rejected():
    with pytest.raises(ValueError):
        HeuristicTables(classes=(KeywordClass(name="bad", keywords=("x",), value=0),))


def test_load_heuristics_from_yaml(tmp_path):
    path = tmp_path / "heuristics.yaml"
    path.write_text(
        "classes:\n"
        "  - name: instrument\n"
        "    keywords: [Guitar, piano]\n"
        "    value: 700\n"
        "    tag: Music\n"
        "    room: Studio\n"
        "    qualifier: Acoustic\n"
        "default:\n"
        "  value: 25\n"
        "tag_vocabulary: [Music]\n"
        "room_vocabulary: [Studio]\n"
    )

    tables = load_heuristics(str(path))

    assert tables.estimate_value("Electric Guitar") == 700.0
    assert tables.estimate_value("Toaster") == 25.0
    assert tables.qualifier("Piano") == "Acoustic"
    suggestion = tables.suggest_categories("Guitar")
    assert suggestion.tags == ["Music"]
    assert suggestion.room == "Studio"


def test_load_heuristics_falls_back_on_bad_file(tmp_path):
    path = tmp_path / "broken.yaml"
    path.write_text("classes:\n  - name: broken\n    value: -1\n")

    tables = load_heuristics(str(path))

    assert tables.estimate_value("Laptop") == 800.0


def test_load_heuristics_missing_file_uses_defaults(tmp_path):
    tables = load_heuristics(str(tmp_path / "missing.yaml"))
    assert tables.estimate_value("Blender") == 50.0
