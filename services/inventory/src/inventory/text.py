"""Small text helpers shared by the heuristics and the merge engine."""

from __future__ import annotations

import re
from typing import Iterable, List, Optional

_WORD_RE = re.compile(r"[a-z0-9]+(?:[-'][a-z0-9]+)*")

STOPWORDS = frozenset(
    {
        "a", "an", "and", "the", "of", "with", "for", "in", "on", "at", "to", "by",
        "from", "set", "pair", "piece", "some", "my", "our", "this", "that", "is",
        "it", "its", "or", "inch", "x",
    }
)

# Adjectives that describe an object without naming what it is.
DESCRIPTORS = frozenset(
    {
        "black", "white", "brown", "grey", "gray", "red", "blue", "green", "yellow",
        "silver", "gold", "beige", "pink", "purple", "orange", "dark",
        "small", "large", "big", "tall", "short", "mini", "old", "new", "antique",
        "vintage", "modern", "portable", "wooden", "wood", "leather", "metal", "glass",
        "plastic", "fabric", "velvet", "oak", "walnut", "pro", "plus", "max", "smart",
        "wireless", "electric", "decorative", "framed", "used", "round", "square",
    }
)

GENERIC_NAMES = frozenset({"item", "thing", "object", "stuff", "unknown", "unnamed", "misc"})


def normalize(text: Optional[str]) -> str:
    """Lowercase, strip punctuation and collapse whitespace."""

    return " ".join(_WORD_RE.findall((text or "").lower()))


def tokens(text: Optional[str]) -> List[str]:
    return _WORD_RE.findall((text or "").lower())


def singular(token: str) -> str:
    if len(token) > 4 and token.endswith("ies"):
        return token[:-3] + "y"
    if len(token) > 3 and token.endswith("s") and not token.endswith(("ss", "us", "is", "as")):
        return token[:-1]
    return token


def significant_tokens(text: Optional[str]) -> List[str]:
    """Singular, non-stopword tokens in order of appearance."""

    return [singular(tok) for tok in tokens(text) if tok not in STOPWORDS and not tok.isdigit()]


def head_noun(text: Optional[str]) -> Optional[str]:
    """Last token that names the object rather than describing it."""

    candidates = [tok for tok in significant_tokens(text) if tok not in DESCRIPTORS]
    return candidates[-1] if candidates else None


def title_case(text: str) -> str:
    """Capitalise each word, leaving words with inner capitals (``iPhone``, ``TV``) alone."""

    words = []
    for word in text.split():
        if any(ch.isupper() for ch in word[1:]):
            words.append(word)
        else:
            words.append(word[:1].upper() + word[1:])
    return " ".join(words)


def word_count(text: Optional[str]) -> int:
    return len((text or "").split())


def contains_any(haystack: Iterable[str], needles: Iterable[str]) -> bool:
    bag = set(haystack)
    return any(needle in bag for needle in needles)


__all__ = [
    "DESCRIPTORS",
    "GENERIC_NAMES",
    "STOPWORDS",
    "contains_any",
    "head_noun",
    "normalize",
    "significant_tokens",
    "singular",
    "title_case",
    "tokens",
    "word_count",
]
