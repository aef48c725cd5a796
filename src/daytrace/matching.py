"""Same-place decisions for segments and blocks.

Each rule is a pure predicate that either decides (returns a MatchReason) or
passes (returns None). The first rule that decides wins; if none does, the
answer is NO_MATCH. Identity signals come before geometry, geometry before
free-text labels.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Sequence

from .geo import haversine_m
from .models import ActivitySegment, LocationBlock

SAME_PLACE_DISTANCE_M = 200.0

# Labels that carry no place identity
PLACEHOLDER_LABELS = frozenset({'unknown location', 'location', 'unknown'})


class MatchReason(Enum):
    BOTH_COMMUTE = 'both_commute'
    COMMUTE_MISMATCH = 'commute_mismatch'
    SEPARATE_JOURNEYS = 'separate_journeys'
    PLACE_ID = 'place_id'
    GEOHASH = 'geohash'
    PROXIMITY = 'proximity'
    LABEL = 'label'
    NO_MATCH = 'no_match'

    @property
    def is_match(self) -> bool:
        return self in _MATCHING_REASONS


_MATCHING_REASONS = frozenset({
    MatchReason.BOTH_COMMUTE,
    MatchReason.PLACE_ID,
    MatchReason.GEOHASH,
    MatchReason.PROXIMITY,
    MatchReason.LABEL,
})


@dataclass(frozen=True, slots=True)
class PlaceView:
    """The fields the matching rules look at, common to segments and blocks."""

    is_moving: bool
    place_id: Optional[str]
    geohash7: Optional[str]
    latitude: Optional[float]
    longitude: Optional[float]
    label: Optional[str]


Rule = Callable[[PlaceView, PlaceView, float], Optional[MatchReason]]


def is_meaningful_label(label: Optional[str]) -> bool:
    normalized = (label or '').strip().lower()
    return bool(normalized) and normalized not in PLACEHOLDER_LABELS


# ----------------------------------------------------------------------
# Rules
# ----------------------------------------------------------------------

def commute_rule(a: PlaceView, b: PlaceView, max_distance_m: float) -> Optional[MatchReason]:
    if a.is_moving and b.is_moving:
        return MatchReason.BOTH_COMMUTE
    if a.is_moving or b.is_moving:
        return MatchReason.COMMUTE_MISMATCH
    return None


def journey_rule(a: PlaceView, b: PlaceView, max_distance_m: float) -> Optional[MatchReason]:
    """Travel blocks are each a distinct journey."""
    if a.is_moving and b.is_moving:
        return MatchReason.SEPARATE_JOURNEYS
    if a.is_moving or b.is_moving:
        return MatchReason.COMMUTE_MISMATCH
    return None


def place_id_rule(a: PlaceView, b: PlaceView, max_distance_m: float) -> Optional[MatchReason]:
    if a.place_id and b.place_id and a.place_id == b.place_id:
        return MatchReason.PLACE_ID
    return None


def geohash_rule(a: PlaceView, b: PlaceView, max_distance_m: float) -> Optional[MatchReason]:
    if a.geohash7 and b.geohash7 and a.geohash7 == b.geohash7:
        return MatchReason.GEOHASH
    return None


def proximity_rule(a: PlaceView, b: PlaceView, max_distance_m: float) -> Optional[MatchReason]:
    if a.latitude is None or a.longitude is None or b.latitude is None or b.longitude is None:
        return None
    if haversine_m(a.latitude, a.longitude, b.latitude, b.longitude) < max_distance_m:
        return MatchReason.PROXIMITY
    return None


def label_rule(a: PlaceView, b: PlaceView, max_distance_m: float) -> Optional[MatchReason]:
    if not is_meaningful_label(a.label) or not is_meaningful_label(b.label):
        return None
    if a.label.strip().lower() == b.label.strip().lower():
        return MatchReason.LABEL
    return None


SEGMENT_RULES: Sequence[Rule] = (commute_rule, place_id_rule, proximity_rule, label_rule)
BLOCK_RULES: Sequence[Rule] = (journey_rule, place_id_rule, geohash_rule, proximity_rule, label_rule)


def evaluate(rules: Sequence[Rule], a: PlaceView, b: PlaceView,
             max_distance_m: float = SAME_PLACE_DISTANCE_M) -> MatchReason:
    for rule in rules:
        reason = rule(a, b, max_distance_m)
        if reason is not None:
            return reason
    return MatchReason.NO_MATCH


# ----------------------------------------------------------------------
# Segments and blocks
# ----------------------------------------------------------------------

def segment_view(segment: ActivitySegment) -> PlaceView:
    return PlaceView(
        is_moving=segment.is_commute,
        place_id=segment.place_id,
        geohash7=None,
        latitude=segment.latitude,
        longitude=segment.longitude,
        label=segment.place_label,
    )


def block_view(block: LocationBlock) -> PlaceView:
    place_id = block.place_id
    if place_id is None and block.inferred_place is not None:
        place_id = f"inferred:{block.inferred_place.geohash7}"
    return PlaceView(
        is_moving=block.is_travel,
        place_id=place_id,
        geohash7=block.geohash7,
        latitude=block.latitude,
        longitude=block.longitude,
        label=block.location_label,
    )


def match_segments(a: ActivitySegment, b: ActivitySegment,
                   max_distance_m: float = SAME_PLACE_DISTANCE_M) -> MatchReason:
    return evaluate(SEGMENT_RULES, segment_view(a), segment_view(b), max_distance_m)


def is_same_place(a: ActivitySegment, b: ActivitySegment,
                  max_distance_m: float = SAME_PLACE_DISTANCE_M) -> bool:
    """True if two segments are at the same place (or both in transit)."""
    return match_segments(a, b, max_distance_m).is_match


def match_blocks(a: LocationBlock, b: LocationBlock,
                 max_distance_m: float = SAME_PLACE_DISTANCE_M) -> MatchReason:
    return evaluate(BLOCK_RULES, block_view(a), block_view(b), max_distance_m)


def is_same_block_location(a: LocationBlock, b: LocationBlock,
                           max_distance_m: float = SAME_PLACE_DISTANCE_M) -> bool:
    """True if two stationary blocks resolve to the same place."""
    return match_blocks(a, b, max_distance_m).is_match
