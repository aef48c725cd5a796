"""Tests for daytrace.matching same-place rules."""

import pytest

from daytrace.geo import encode_geohash
from daytrace.matching import (
    MatchReason,
    is_meaningful_label,
    is_same_block_location,
    is_same_place,
    match_blocks,
    match_segments,
)
from daytrace.models import InferredPlace
from dataclasses import replace
from helpers import HOME, OFFICE, at, make_block, make_segment, north_of


# ─────────────────────────────────────────────────────────────────────────────
# Segment Matching
# ─────────────────────────────────────────────────────────────────────────────


class TestMatchSegments:
    """First deciding rule wins: commute, place ID, proximity, label."""

    def test_both_commute_match(self):
        a = make_segment(at(8), at(8, 20), commute=True, point=HOME)
        b = make_segment(at(8, 20), at(8, 40), commute=True, point=OFFICE)
        assert match_segments(a, b) is MatchReason.BOTH_COMMUTE
        assert is_same_place(a, b)

    def test_one_commute_never_matches(self):
        """A commute never matches a stay, even at the same spot with the same label."""
        a = make_segment(at(8), at(8, 20), label="Home", commute=True, point=HOME)
        b = make_segment(at(8, 20), at(9), label="Home", point=HOME)
        assert match_segments(a, b) is MatchReason.COMMUTE_MISMATCH
        assert not is_same_place(a, b)

    def test_place_id(self):
        a = make_segment(at(8), at(9), place_id="p1", point=HOME)
        b = make_segment(at(9), at(10), place_id="p1", point=OFFICE)
        assert match_segments(a, b) is MatchReason.PLACE_ID

    def test_same_named_place_150m_apart_merges(self):
        a = make_segment(at(8), at(9), label="Cafe", point=HOME)
        b = make_segment(at(9), at(10), label="Cafe", point=north_of(HOME, 150))
        assert match_segments(a, b) is MatchReason.PROXIMITY
        assert is_same_place(a, b)

    def test_different_labels_300m_apart_do_not_merge(self):
        a = make_segment(at(8), at(9), label="Cafe", point=HOME)
        b = make_segment(at(9), at(10), label="Library", point=north_of(HOME, 300))
        assert match_segments(a, b) is MatchReason.NO_MATCH
        assert not is_same_place(a, b)

    def test_label_match_when_far_apart(self):
        a = make_segment(at(8), at(9), label="Gym", point=HOME)
        b = make_segment(at(9), at(10), label="  gym ", point=OFFICE)
        assert match_segments(a, b) is MatchReason.LABEL

    @pytest.mark.parametrize("label", ["Unknown Location", "location", "UNKNOWN", "", None])
    def test_placeholder_labels_never_match(self, label):
        a = make_segment(at(8), at(9), label=label)
        b = make_segment(at(9), at(10), label=label)
        assert not is_same_place(a, b)

    def test_custom_distance(self):
        a = make_segment(at(8), at(9), point=HOME)
        b = make_segment(at(9), at(10), point=north_of(HOME, 150))
        assert not is_same_place(a, b, max_distance_m=100)


class TestMeaningfulLabel:
    @pytest.mark.parametrize("label,expected", [
        ("Home", True),
        (" Unknown Location ", False),
        ("Location", False),
        (None, False),
    ])
    def test_is_meaningful_label(self, label, expected):
        assert is_meaningful_label(label) is expected


# ─────────────────────────────────────────────────────────────────────────────
# Block Matching
# ─────────────────────────────────────────────────────────────────────────────


class TestMatchBlocks:
    """Block rules: journey, place ID, geohash, proximity, label."""

    def test_travel_blocks_are_separate_journeys(self):
        a = make_block(at(8), at(8, 30), label="In Transit", travel=True)
        b = make_block(at(8, 30), at(9), label="In Transit", travel=True)
        assert match_blocks(a, b) is MatchReason.SEPARATE_JOURNEYS
        assert not is_same_block_location(a, b)

    def test_travel_vs_stationary(self):
        a = make_block(at(8), at(8, 30), label="Walking → Home", travel=True)
        b = make_block(at(8, 30), at(9), label="Home")
        assert match_blocks(a, b) is MatchReason.COMMUTE_MISMATCH

    def test_geohash(self):
        gh = encode_geohash(*HOME)
        a = make_block(at(8), at(9), label="Home", geohash7=gh)
        b = make_block(at(9), at(10), label="Unknown Location", geohash7=gh)
        assert match_blocks(a, b) is MatchReason.GEOHASH

    def test_inferred_place_acts_as_place_id(self):
        place = InferredPlace(geohash7="u173zx0", inferred_type="work", suggested_label="Work",
                              confidence=0.8, reasoning="")
        a = replace(make_block(at(8), at(9), label="Work"), inferred_place=place)
        b = replace(make_block(at(9), at(10), label="Office HQ"), inferred_place=place)
        assert match_blocks(a, b) is MatchReason.PLACE_ID

    def test_proximity(self):
        a = make_block(at(8), at(9), label="Home", point=HOME)
        b = make_block(at(9), at(10), label="Unknown Location", point=north_of(HOME, 120))
        assert match_blocks(a, b) is MatchReason.PROXIMITY

    def test_no_match(self):
        a = make_block(at(8), at(9), label="Home", point=HOME)
        b = make_block(at(9), at(10), label="Office", point=OFFICE)
        assert match_blocks(a, b) is MatchReason.NO_MATCH
