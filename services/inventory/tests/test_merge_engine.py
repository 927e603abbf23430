from __future__ import annotations

import pytest

from common.config import DEFAULT_SYNONYM_GROUPS
from inventory.categories.heuristics import HeuristicTables
from inventory.merge.engine import (
    SOURCE_TRANSCRIPT,
    SOURCE_VISION,
    MergeEngine,
    ScratchCandidate,
    cluster_scratch_items,
    enforce_naming_policy,
)
from inventory.merge.similarity import SynonymTable, is_related, most_specific, subject
from inventory.schemas import CandidateItem


@pytest.fixture
def heuristics():
    return HeuristicTables()


@pytest.fixture
def engine(heuristics):
    return MergeEngine(
        heuristics=heuristics,
        cluster_window=3.0,
        cross_source_window=15.0,
        synonym_groups=DEFAULT_SYNONYM_GROUPS,
    )


def _scratch(name, timestamp, description=None, value=None, item_id=None):
    return ScratchCandidate(
        name=name,
        timestamp=timestamp,
        description=description,
        estimated_value=value,
        ids=[item_id] if item_id else [],
    )


# Similarity


def test_subject_uses_description_for_generic_names():
    assert subject("Black Portable Speaker") == "speaker"
    assert subject("Item", "a wooden rocking chair") == "chair"


def test_related_by_containment_and_synonyms():
    synonyms = SynonymTable(DEFAULT_SYNONYM_GROUPS)
    assert is_related("Lamp", "Brass Desk Lamp")
    assert is_related("Leather Sofa", "Brown Couch", synonyms)
    assert not is_related("Leather Sofa", "Brown Couch")
    assert not is_related("Desk Lamp", "Office Chair", synonyms)


def test_containment_respects_word_boundaries():
    assert not is_related("Pan", "Panasonic Television")


def test_most_specific_prefers_more_words_then_alphabetical():
    assert most_specific(["Black Portable Speaker", "Bose Pro Plus Speaker"]) == "Bose Pro Plus Speaker"
    assert most_specific(["Blue Vase", "Aqua Vase"]) == "Aqua Vase"


# Clustering


def test_speaker_variants_collapse_to_one_item(engine):
    scratch = [
        _scratch("Bose Pro Plus Speaker", 4.0, "bose speaker on the shelf", item_id="s2"),
        _scratch("Black Portable Speaker", 2.0, "black speaker", item_id="s1"),
    ]

    drafts = engine.merge([], scratch)

    assert len(drafts) == 1
    assert drafts[0].name == "Bose Pro Plus Speaker"
    assert drafts[0].timestamp == 2.0
    assert drafts[0].sources == [SOURCE_VISION]
    assert sorted(drafts[0].scratch_ids) == ["s1", "s2"]


def test_clustering_requires_temporal_proximity():
    clusters = cluster_scratch_items(
        [_scratch("Desk Lamp", 1.0), _scratch("Desk Lamp", 30.0)], window=3.0
    )
    assert len(clusters) == 2


def test_clustering_requires_lexical_relation():
    clusters = cluster_scratch_items([_scratch("Desk Lamp", 1.0), _scratch("Office Chair", 1.5)], window=3.0)
    assert len(clusters) == 2


def test_clustering_is_independent_of_input_order():
    items = [
        _scratch("Floor Lamp", 5.0),
        _scratch("Lamp", 6.0, value=40),
        _scratch("Area Rug", 5.5),
        _scratch("Wool Rug", 7.0, value=150),
    ]
    forward = cluster_scratch_items(items, window=3.0)
    backward = cluster_scratch_items(list(reversed(items)), window=3.0)

    summary = lambda clusters: sorted((c.name, c.timestamp, c.estimated_value) for c in clusters)
    assert summary(forward) == summary(backward)


def test_cluster_value_falls_back_to_highest_member():
    clusters = cluster_scratch_items(
        [_scratch("Walnut Coffee Table", 1.0), _scratch("Coffee Table", 2.0, value=180), _scratch("Table", 2.5, value=90)],
        window=3.0,
    )
    assert len(clusters) == 1
    assert clusters[0].name == "Walnut Coffee Table"
    assert clusters[0].estimated_value == 180


# Cross-source merge


def test_transcript_item_takes_priority_over_matching_vision_item(engine):
    candidate = CandidateItem(name="Leather Sofa", timestamp=10.0)
    scratch = [_scratch("Brown Couch", 11.0, value=600, item_id="s1")]

    drafts = engine.merge([candidate], scratch)

    assert len(drafts) == 1
    draft = drafts[0]
    assert draft.name == "Leather Sofa"
    assert draft.timestamp == 10.0
    assert draft.estimated_value == 600
    assert draft.sources == [SOURCE_TRANSCRIPT, SOURCE_VISION]
    assert draft.scratch_ids == ["s1"]


def test_match_outside_cross_source_window_is_kept_separate(engine):
    candidate = CandidateItem(name="Leather Sofa", timestamp=10.0)
    drafts = engine.merge([candidate], [_scratch("Brown Couch", 40.0, value=600)])

    assert sorted(d.name for d in drafts) == ["Brown Couch", "Leather Sofa"]


def test_transcript_value_wins_over_vision(engine):
    candidate = CandidateItem(name="Samsung Television", timestamp=5.0, estimated_value=1100)
    drafts = engine.merge([candidate], [_scratch("Flat TV", 6.0, value=400)])

    assert [(d.name, d.estimated_value) for d in drafts] == [("Samsung Television", 1100)]


def test_transcript_categories_are_kept(engine):
    candidate = CandidateItem(
        name="Reading Chair", timestamp=1.0, tags=["Furniture"], inferred_room_name="Bedroom"
    )
    draft = engine.merge([candidate], [])[0]
    assert draft.tags == ["Furniture"]
    assert draft.room == "Bedroom"


def test_vision_only_items_get_tags_but_no_room(engine):
    draft = engine.merge([], [_scratch("Gaming Laptop", 3.0)])[0]

    assert draft.tags == ["Electronics"]
    assert draft.room is None


def test_every_output_value_is_positive(engine):
    candidates = [
        CandidateItem(name="Mystery Box", timestamp=1.0, estimated_value=0),
        CandidateItem(name="Phone", timestamp=2.0, estimated_value=-10),
        CandidateItem(name="Oil Painting", timestamp=30.0),
    ]
    scratch = [
        _scratch("Ceramic Vase", 50.0, value=0),
        _scratch("Desk Lamp", 60.0, value=None),
        _scratch("Smartphone", 2.5, value=-3),
    ]

    drafts = engine.merge(candidates, scratch)

    assert drafts
    assert all(draft.estimated_value > 0 for draft in drafts)


def test_merge_output_is_deterministic(engine):
    candidates = [CandidateItem(name="Floor Lamp", timestamp=4.0), CandidateItem(name="Armchair", timestamp=9.0)]
    scratch = [_scratch("Lamp", 4.5), _scratch("Recliner", 9.5), _scratch("Bookshelf", 20.0)]

    first = engine.merge(candidates, scratch)
    second = engine.merge(list(reversed(candidates)), list(reversed(scratch)))

    assert [(d.name, d.timestamp) for d in first] == [(d.name, d.timestamp) for d in second]


# Naming policy


@pytest.mark.parametrize(
    "name, description, brand, expected",
    [
        ("Phone", None, None, "Mobile Phone"),
        ("Phone", None, "Apple", "Apple Phone"),
        ("Couch", "a grey three seat couch", None, "Grey Couch"),
        ("Item", "a vintage record player", None, "Vintage Player"),
        ("samsung television", None, None, "Samsung Television"),
        ("Lamp", None, None, "Household Lamp"),
    ],
)
def test_naming_policy(heuristics, name, description, brand, expected):
    assert enforce_naming_policy(name, description, brand, heuristics) == expected


# Degraded path


def test_passthrough_keeps_vision_items_verbatim(engine):
    scratch = [
        _scratch("black portable speaker", 2.0, value=80, item_id="s1"),
        _scratch("Bose Pro Plus Speaker", 4.0, item_id="s2"),
        _scratch("Desk Lamp", 4.0, item_id="s3"),
    ]

    drafts = engine.passthrough(scratch)

    assert len(drafts) == len(scratch)
    assert {d.name for d in drafts} == {"black portable speaker", "Bose Pro Plus Speaker", "Desk Lamp"}
    assert {d.timestamp for d in drafts} == {2.0, 4.0}
    assert all(d.estimated_value > 0 for d in drafts)
    assert [d.scratch_ids for d in drafts if d.name == "black portable speaker"] == [["s1"]]
