"""Merge and deduplication of extracted inventory items."""

from .engine import (
    MergeEngine,
    MergedItemDraft,
    ScratchCandidate,
    ScratchCluster,
    cluster_scratch_items,
    enforce_naming_policy,
)
from .similarity import SynonymTable, is_related, most_specific, specificity

__all__ = [
    "MergeEngine",
    "MergedItemDraft",
    "ScratchCandidate",
    "ScratchCluster",
    "SynonymTable",
    "cluster_scratch_items",
    "enforce_naming_policy",
    "is_related",
    "most_specific",
    "specificity",
]
