"""Tag/room resolution and keyword heuristics."""

from .heuristics import CategorySuggestion, HeuristicTables, KeywordClass, load_heuristics
from .resolver import CategoryResolver, assign_room, link_tags

__all__ = [
    "CategoryResolver",
    "CategorySuggestion",
    "HeuristicTables",
    "KeywordClass",
    "assign_room",
    "link_tags",
    "load_heuristics",
]
