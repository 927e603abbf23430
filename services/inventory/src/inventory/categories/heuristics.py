"""
Keyword heuristic tables.

Display-quality fallbacks used when neither extraction source supplies a
positive value or any categorisation:

- coarse keyword classes (phone-like, computer-like, seating, television,
  artwork, default) map to flat placeholder values (not an appraisal)
- the same classes suggest a tag and a room, restricted to a fixed vocabulary
  plus whatever the owner already has

Tables are plain data and can be overridden from a YAML file.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import yaml

from common.logging import get_logger

from ..text import significant_tokens

LOGGER = get_logger(__name__)


@dataclass(frozen=True)
class KeywordClass:
    """One row of the heuristic table."""

    name: str
    keywords: Tuple[str, ...]
    value: float
    tag: Optional[str] = None
    room: Optional[str] = None
    qualifier: str = "Household"


@dataclass(frozen=True)
class CategorySuggestion:
    tags: List[str] = field(default_factory=list)
    room: Optional[str] = None


DEFAULT_CLASSES: Tuple[KeywordClass, ...] = (
    KeywordClass(
        name="phone",
        keywords=("phone", "smartphone", "iphone", "cellphone", "android", "galaxy", "pixel"),
        value=500.0,
        tag="Electronics",
        qualifier="Mobile",
    ),
    KeywordClass(
        name="computer",
        keywords=(
            "laptop", "computer", "macbook", "desktop", "notebook", "pc",
            "chromebook", "imac", "monitor", "tablet", "ipad",
        ),
        value=800.0,
        tag="Electronics",
        room="Office",
        qualifier="Personal",
    ),
    KeywordClass(
        name="television",
        keywords=("tv", "television", "oled", "qled", "projector"),
        value=600.0,
        tag="Electronics",
        room="Living Room",
        qualifier="Flat-Screen",
    ),
    KeywordClass(
        name="seating",
        keywords=(
            "sofa", "couch", "chair", "armchair", "recliner", "loveseat",
            "sectional", "stool", "bench", "ottoman", "settee",
        ),
        value=300.0,
        tag="Furniture",
        room="Living Room",
        qualifier="Upholstered",
    ),
    KeywordClass(
        name="artwork",
        keywords=("painting", "artwork", "art", "sculpture", "canvas", "poster", "portrait", "print"),
        value=250.0,
        tag="Art",
        room="Living Room",
        qualifier="Framed",
    ),
)

DEFAULT_FALLBACK = KeywordClass(name="default", keywords=(), value=50.0, qualifier="Household")

DEFAULT_TAG_VOCABULARY: Tuple[str, ...] = (
    "Electronics", "Furniture", "Art", "Appliances", "Jewelry", "Decor", "Kitchenware",
)
DEFAULT_ROOM_VOCABULARY: Tuple[str, ...] = (
    "Living Room", "Bedroom", "Kitchen", "Office", "Bathroom", "Dining Room", "Garage",
)


def _match_vocabulary(candidate: Optional[str], allowed: Iterable[str]) -> Optional[str]:
    """Return the allowed spelling of ``candidate`` (case-insensitive) or None."""

    if not candidate:
        return None
    lowered = candidate.strip().lower()
    for name in allowed:
        if name.lower() == lowered:
            return name
    return None


class HeuristicTables:
    """Keyword class lookups for values, categories and naming qualifiers."""

    def __init__(
        self,
        classes: Sequence[KeywordClass] = DEFAULT_CLASSES,
        fallback: KeywordClass = DEFAULT_FALLBACK,
        tag_vocabulary: Sequence[str] = DEFAULT_TAG_VOCABULARY,
        room_vocabulary: Sequence[str] = DEFAULT_ROOM_VOCABULARY,
    ) -> None:
        if fallback.value <= 0 or any(cls.value <= 0 for cls in classes):
            raise ValueError("Heuristic values must be positive")
        self.classes = tuple(classes)
        self.fallback = fallback
        self.tag_vocabulary = tuple(tag_vocabulary)
        self.room_vocabulary = tuple(room_vocabulary)

    def classify(self, name: Optional[str], description: Optional[str] = None) -> KeywordClass:
        """First class whose keyword appears in the name, then in the description."""

        for text in (name, description):
            words = set(significant_tokens(text))
            if not words:
                continue
            for keyword_class in self.classes:
                if words.intersection(keyword_class.keywords):
                    return keyword_class
        return self.fallback

    def estimate_value(self, name: Optional[str], description: Optional[str] = None) -> float:
        return self.classify(name, description).value

    def qualifier(self, name: Optional[str], description: Optional[str] = None) -> str:
        return self.classify(name, description).qualifier

    def suggest_categories(
        self,
        name: Optional[str],
        description: Optional[str] = None,
        owner_tags: Iterable[str] = (),
        owner_rooms: Iterable[str] = (),
    ) -> CategorySuggestion:
        keyword_class = self.classify(name, description)
        allowed_tags = list(owner_tags) + list(self.tag_vocabulary)
        allowed_rooms = list(owner_rooms) + list(self.room_vocabulary)
        tag = _match_vocabulary(keyword_class.tag, allowed_tags)
        room = _match_vocabulary(keyword_class.room, allowed_rooms)
        return CategorySuggestion(tags=[tag] if tag else [], room=room)

    @classmethod
    def from_mapping(cls, data: Dict[str, Any]) -> "HeuristicTables":
        classes = tuple(
            KeywordClass(
                name=str(row["name"]),
                keywords=tuple(str(k).lower() for k in row.get("keywords", ())),
                value=float(row["value"]),
                tag=row.get("tag"),
                room=row.get("room"),
                qualifier=row.get("qualifier", "Household"),
            )
            for row in data.get("classes", [])
        ) or DEFAULT_CLASSES
        fallback_row = data.get("default") or {}
        fallback = KeywordClass(
            name="default",
            keywords=(),
            value=float(fallback_row.get("value", DEFAULT_FALLBACK.value)),
            qualifier=fallback_row.get("qualifier", DEFAULT_FALLBACK.qualifier),
        )
        return cls(
            classes=classes,
            fallback=fallback,
            tag_vocabulary=tuple(data.get("tag_vocabulary") or DEFAULT_TAG_VOCABULARY),
            room_vocabulary=tuple(data.get("room_vocabulary") or DEFAULT_ROOM_VOCABULARY),
        )


_tables: Optional[HeuristicTables] = None


def load_heuristics(path: Optional[str] = None) -> HeuristicTables:
    """
    Load heuristic tables, optionally overridden by a YAML file.

    Falls back to the built-in tables if the file is missing or unreadable.
    """
    global _tables

    if path is None and _tables is not None:
        return _tables

    tables = HeuristicTables()
    if path:
        config_path = Path(path)
        if config_path.exists():
            try:
                with open(config_path, "r") as f:
                    tables = HeuristicTables.from_mapping(yaml.safe_load(f) or {})
                LOGGER.info("loaded heuristic tables", path=str(config_path))
            except (OSError, yaml.YAMLError, KeyError, ValueError) as e:
                LOGGER.warning("failed to load heuristic tables, using defaults", path=str(config_path), error=str(e))
        else:
            LOGGER.warning("heuristic table file not found, using defaults", path=str(config_path))

    _tables = tables
    return tables


__all__ = [
    "CategorySuggestion",
    "DEFAULT_CLASSES",
    "DEFAULT_FALLBACK",
    "HeuristicTables",
    "KeywordClass",
    "load_heuristics",
]
