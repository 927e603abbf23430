"""
Combine transcript candidates and vision scratch items into inventory drafts.

Transcript items are authoritative for name, description and room; vision
items only fill gaps. Clustering and matching are greedy and single pass,
over inputs sorted by (timestamp, name) so results do not depend on input
order. A merge needs both temporal and lexical closeness.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence

from common.config import settings
from common.logging import get_logger

from ..categories.heuristics import HeuristicTables, load_heuristics
from ..parsing.recovery import coerce_positive_value
from ..schemas import CandidateItem
from ..text import DESCRIPTORS, GENERIC_NAMES, normalize, title_case, tokens, word_count
from .similarity import SynonymTable, is_related, most_specific, subject

LOGGER = get_logger(__name__)

SOURCE_TRANSCRIPT = "transcript"
SOURCE_VISION = "vision"


@dataclass
class ScratchCandidate:
    """Vision-derived item as seen by the engine."""

    name: str
    timestamp: float = 0.0
    description: Optional[str] = None
    estimated_value: Optional[float] = None
    ids: List[str] = field(default_factory=list)

    @classmethod
    def from_row(cls, row) -> "ScratchCandidate":
        return cls(
            name=row.name,
            timestamp=float(row.video_timestamp or 0.0),
            description=row.description,
            estimated_value=row.estimated_value,
            ids=[row.id] if getattr(row, "id", None) else [],
        )


@dataclass
class ScratchCluster:
    members: List[ScratchCandidate]
    name: str
    description: Optional[str]
    timestamp: float
    estimated_value: Optional[float]

    @property
    def ids(self) -> List[str]:
        return [item_id for member in self.members for item_id in member.ids]


@dataclass
class MergedItemDraft:
    name: str
    description: str
    timestamp: float
    estimated_value: float
    room: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    sources: List[str] = field(default_factory=list)
    brand: Optional[str] = None
    model: Optional[str] = None
    condition: Optional[str] = None
    serial_number: Optional[str] = None
    purchase_date: Optional[str] = None
    scratch_ids: List[str] = field(default_factory=list)


def _sort_key(name: str, timestamp: float):
    return (timestamp, normalize(name))


def _round_ts(value: Optional[float]) -> float:
    return round(max(float(value or 0.0), 0.0), 1)


def _longest(texts: Iterable[Optional[str]]) -> Optional[str]:
    present = [t.strip() for t in texts if t and t.strip()]
    if not present:
        return None
    return sorted(present, key=lambda t: (-len(t), t))[0]


def _build_cluster(members: List[ScratchCandidate]) -> ScratchCluster:
    name = most_specific(m.name for m in members)
    representative = next(m for m in members if m.name == name)
    value = coerce_positive_value(representative.estimated_value)
    if value is None:
        values = [v for v in (coerce_positive_value(m.estimated_value) for m in members) if v]
        value = max(values) if values else None
    return ScratchCluster(
        members=members,
        name=name,
        description=_longest(m.description for m in members),
        timestamp=min(m.timestamp for m in members),
        estimated_value=value,
    )


def cluster_scratch_items(
    items: Sequence[ScratchCandidate],
    window: float,
    synonyms: Optional[SynonymTable] = None,
) -> List[ScratchCluster]:
    """
    Group scratch items that are close in time and name the same kind of thing.

    An item joins the first cluster holding a member within ``window`` seconds
    that it is related to; otherwise it starts a new cluster.
    """
    ordered = sorted(items, key=lambda i: _sort_key(i.name, i.timestamp))
    groups: List[List[ScratchCandidate]] = []
    for item in ordered:
        for group in groups:
            if any(
                abs(item.timestamp - member.timestamp) <= window
                and is_related(item.name, member.name, synonyms, item.description, member.description)
                for member in group
            ):
                group.append(item)
                break
        else:
            groups.append([item])

    clusters = [_build_cluster(group) for group in groups]
    if len(clusters) != len(items):
        LOGGER.info("clustered scratch items", items=len(items), clusters=len(clusters))
    return clusters


def enforce_naming_policy(
    name: str,
    description: Optional[str] = None,
    brand: Optional[str] = None,
    heuristics: Optional[HeuristicTables] = None,
) -> str:
    """
    Title-cased name of at least two words naming the kind of object.

    A one-word name gets a qualifier: the brand, else a descriptor word from
    the description, else the keyword class qualifier ("Phone" -> "Mobile Phone").
    """
    heuristics = heuristics or load_heuristics()
    clean = " ".join((name or "").split())
    if not clean or normalize(clean) in GENERIC_NAMES:
        described = subject(None, description)
        clean = described.title() if described else "Item"

    if word_count(clean) < 2:
        qualifier = None
        if brand and brand.strip() and normalize(brand) not in normalize(clean):
            qualifier = brand.strip()
        if qualifier is None:
            qualifier = next(
                (word.title() for word in tokens(description) if word in DESCRIPTORS), None
            )
        if qualifier is None:
            qualifier = heuristics.qualifier(clean, description)
        clean = f"{qualifier} {clean}"

    return title_case(clean)


class MergeEngine:
    """Produce the final inventory list for one video."""

    def __init__(
        self,
        heuristics: Optional[HeuristicTables] = None,
        cluster_window: Optional[float] = None,
        cross_source_window: Optional[float] = None,
        synonym_groups: Optional[Iterable[Sequence[str]]] = None,
    ) -> None:
        self.heuristics = heuristics or load_heuristics(settings.heuristics_path)
        self.cluster_window = (
            settings.merge_cluster_window_seconds if cluster_window is None else cluster_window
        )
        self.cross_source_window = (
            settings.merge_cross_source_window_seconds
            if cross_source_window is None
            else cross_source_window
        )
        self.synonyms = SynonymTable(
            settings.merge_synonym_groups if synonym_groups is None else synonym_groups
        )

    def _value(self, *values: Optional[float], name: str, description: Optional[str]) -> float:
        for value in values:
            positive = coerce_positive_value(value)
            if positive is not None:
                return positive
        return self.heuristics.estimate_value(name, description)

    def _match(
        self, candidate: CandidateItem, clusters: List[ScratchCluster]
    ) -> Optional[ScratchCluster]:
        best: Optional[ScratchCluster] = None
        best_gap = 0.0
        for cluster in clusters:
            gap = abs(candidate.timestamp - cluster.timestamp)
            if self.cross_source_window is not None and gap > self.cross_source_window:
                continue
            related = any(
                is_related(
                    candidate.name, member.name, self.synonyms, candidate.description, member.description
                )
                for member in cluster.members
            )
            if related and (best is None or gap < best_gap):
                best, best_gap = cluster, gap
        return best

    def _transcript_draft(
        self,
        candidate: CandidateItem,
        cluster: Optional[ScratchCluster],
        owner_tags: Sequence[str],
        owner_rooms: Sequence[str],
    ) -> MergedItemDraft:
        description = candidate.description or (cluster.description if cluster else None) or ""
        timestamp = candidate.timestamp if cluster is None else min(candidate.timestamp, cluster.timestamp)
        value = self._value(
            candidate.estimated_value,
            cluster.estimated_value if cluster else None,
            name=candidate.name,
            description=description,
        )

        tags = list(candidate.tags)
        room = candidate.inferred_room_name
        if not tags and not room:
            suggestion = self.heuristics.suggest_categories(
                candidate.name, description, owner_tags, owner_rooms
            )
            tags, room = suggestion.tags, suggestion.room

        return MergedItemDraft(
            name=enforce_naming_policy(candidate.name, description, candidate.brand, self.heuristics),
            description=description,
            timestamp=_round_ts(timestamp),
            estimated_value=value,
            room=room,
            tags=tags,
            sources=[SOURCE_TRANSCRIPT, SOURCE_VISION] if cluster else [SOURCE_TRANSCRIPT],
            brand=candidate.brand,
            model=candidate.model,
            condition=candidate.condition,
            serial_number=candidate.serial_number,
            purchase_date=candidate.purchase_date,
            scratch_ids=cluster.ids if cluster else [],
        )

    def _vision_draft(self, cluster: ScratchCluster, owner_tags: Sequence[str]) -> MergedItemDraft:
        description = cluster.description or ""
        suggestion = self.heuristics.suggest_categories(cluster.name, description, owner_tags, ())
        return MergedItemDraft(
            name=enforce_naming_policy(cluster.name, description, None, self.heuristics),
            description=description,
            timestamp=_round_ts(cluster.timestamp),
            estimated_value=self._value(cluster.estimated_value, name=cluster.name, description=description),
            room=None,
            tags=suggestion.tags,
            sources=[SOURCE_VISION],
            scratch_ids=cluster.ids,
        )

    def merge(
        self,
        candidates: Sequence[CandidateItem],
        scratch_items: Sequence[ScratchCandidate],
        owner_tags: Sequence[str] = (),
        owner_rooms: Sequence[str] = (),
    ) -> List[MergedItemDraft]:
        clusters = cluster_scratch_items(scratch_items, self.cluster_window, self.synonyms)
        unmatched = list(clusters)
        drafts: List[MergedItemDraft] = []

        for candidate in sorted(candidates, key=lambda c: _sort_key(c.name, c.timestamp)):
            cluster = self._match(candidate, unmatched)
            if cluster is not None:
                unmatched.remove(cluster)
                LOGGER.debug("matched transcript item to vision cluster", name=candidate.name, vision=cluster.name)
            drafts.append(self._transcript_draft(candidate, cluster, owner_tags, owner_rooms))

        drafts.extend(self._vision_draft(cluster, owner_tags) for cluster in unmatched)
        drafts.sort(key=lambda d: _sort_key(d.name, d.timestamp))

        LOGGER.info(
            "merged inventory",
            transcript_items=len(candidates),
            scratch_items=len(scratch_items),
            clusters=len(clusters),
            matched=len(clusters) - len(unmatched),
            output=len(drafts),
        )
        return drafts

    def passthrough(self, scratch_items: Sequence[ScratchCandidate]) -> List[MergedItemDraft]:
        """One draft per scratch item, names and timestamps unchanged."""

        drafts = [
            MergedItemDraft(
                name=item.name,
                description=item.description or "",
                timestamp=_round_ts(item.timestamp),
                estimated_value=self._value(item.estimated_value, name=item.name, description=item.description),
                sources=[SOURCE_VISION],
                scratch_ids=list(item.ids),
            )
            for item in sorted(scratch_items, key=lambda i: _sort_key(i.name, i.timestamp))
        ]
        LOGGER.info("vision-only passthrough", output=len(drafts))
        return drafts


__all__ = [
    "MergeEngine",
    "MergedItemDraft",
    "ScratchCandidate",
    "ScratchCluster",
    "cluster_scratch_items",
    "enforce_naming_policy",
]
