"""Lexical relatedness between item names."""

from __future__ import annotations

from typing import Dict, Iterable, Optional, Sequence, Set, Tuple

from ..text import GENERIC_NAMES, head_noun, normalize, significant_tokens, singular


class SynonymTable:
    """Maps a word to the ids of the synonym groups that contain it."""

    def __init__(self, groups: Iterable[Sequence[str]] = ()) -> None:
        self._index: Dict[str, Set[int]] = {}
        for group_id, group in enumerate(groups):
            for word in group:
                self._index.setdefault(singular(word.lower()), set()).add(group_id)

    def groups(self, word: Optional[str]) -> Set[int]:
        if not word:
            return set()
        return self._index.get(singular(word.lower()), set())

    def overlap(self, a: Optional[str], b: Optional[str]) -> bool:
        return bool(self.groups(a) & self.groups(b))


def subject(name: Optional[str], description: Optional[str] = None) -> Optional[str]:
    """What the item is: the name's head noun, or the description's when the name is generic."""

    head = head_noun(name)
    if head is None or head in GENERIC_NAMES:
        return head_noun(description) or head
    return head


def _contains(outer: str, inner: str) -> bool:
    return bool(inner) and f" {inner} " in f" {outer} "


def is_related(
    a_name: str,
    b_name: str,
    synonyms: Optional[SynonymTable] = None,
    a_description: Optional[str] = None,
    b_description: Optional[str] = None,
) -> bool:
    """
    Two names refer to the same kind of object.

    True when one normalised name contains the other on word boundaries, when
    both share a head noun, or when the head nouns fall in a common synonym
    group.
    """
    a_norm, b_norm = normalize(a_name), normalize(b_name)
    if not a_norm or not b_norm:
        return False
    if _contains(a_norm, b_norm) or _contains(b_norm, a_norm):
        return True

    a_subject = subject(a_name, a_description)
    b_subject = subject(b_name, b_description)
    if a_subject is None or b_subject is None:
        return False
    if a_subject == b_subject and a_subject not in GENERIC_NAMES:
        return True
    return synonyms is not None and synonyms.overlap(a_subject, b_subject)


def specificity(name: Optional[str]) -> Tuple[int, int]:
    """Sort key for how specific a name is: significant words, then length."""

    return (len(significant_tokens(name)), len((name or "").strip()))


def most_specific(names: Iterable[str]) -> str:
    """Most specific name; ties go to the alphabetically first."""

    ranked = sorted(names, key=lambda n: (-specificity(n)[0], -specificity(n)[1], n.lower()))
    return ranked[0]


__all__ = ["SynonymTable", "is_related", "most_specific", "specificity", "subject"]
