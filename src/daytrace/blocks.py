"""Grouping of segments (or hourly summaries) into LocationBlocks."""

from dataclasses import replace
from datetime import datetime
from functools import reduce
from typing import Dict, List, Optional, Sequence, Tuple

from .geo import encode_geohash
from .logging_config import get_logger
from .matching import SAME_PLACE_DISTANCE_M, is_meaningful_label, is_same_place
from .models import (
    CYCLING,
    DRIVING,
    STATIONARY,
    TRAVEL,
    UNKNOWN,
    UNKNOWN_LOCATION,
    WALKING,
    ActivitySegment,
    AppSession,
    BlockAppUsage,
    HourlySummary,
    InferredPlace,
    LocationBlock,
)

MOVEMENT_VERBS = {
    WALKING: 'Walking',
    CYCLING: 'Cycling',
    DRIVING: 'Driving',
}

TRAVEL_KEY = '__travel__'
UNKNOWN_KEY_PREFIX = 'unknown:'


# ----------------------------------------------------------------------
# App usage folds
# ----------------------------------------------------------------------

def add_app_usage(
    apps: Dict[str, BlockAppUsage],
    usage: BlockAppUsage,
) -> Dict[str, BlockAppUsage]:
    """Return a new app map with ``usage`` summed into its app's entry."""
    existing = apps.get(usage.app_id)
    if existing is None:
        merged = usage
    else:
        merged = replace(
            existing,
            total_minutes=existing.total_minutes + usage.total_minutes,
            sessions=existing.sessions + usage.sessions,
        )
    return {**apps, usage.app_id: merged}


def sorted_apps(apps: Dict[str, BlockAppUsage]) -> Tuple[BlockAppUsage, ...]:
    return tuple(sorted(apps.values(), key=lambda a: a.total_minutes, reverse=True))


def merge_app_usage(
    first: Sequence[BlockAppUsage],
    second: Sequence[BlockAppUsage],
) -> Tuple[BlockAppUsage, ...]:
    """Sum two app lists per app ID, concatenating their sessions."""
    return sorted_apps(reduce(add_app_usage, list(first) + list(second), {}))


def apps_from_summaries(summaries: Sequence[HourlySummary]) -> Dict[str, BlockAppUsage]:
    """App map from hourly summaries; apps under one minute are skipped."""
    usages = [
        BlockAppUsage(
            app_id=app.app_id,
            display_name=app.display_name,
            category=app.category,
            total_minutes=app.minutes,
        )
        for summary in summaries
        for app in summary.app_breakdown
        if app.minutes >= 1
    ]
    return reduce(add_app_usage, usages, {})


def apps_from_segments(segments: Sequence[ActivitySegment]) -> Dict[str, BlockAppUsage]:
    usages = [
        BlockAppUsage(
            app_id=app.app_id,
            display_name=app.display_name,
            category=app.category,
            total_minutes=app.seconds / 60,
        )
        for segment in segments
        for app in segment.top_apps
        if app.seconds >= 60
    ]
    return reduce(add_app_usage, usages, {})


def attach_sessions(
    apps: Dict[str, BlockAppUsage],
    segments: Sequence[ActivitySegment],
    block_start: datetime,
    block_end: datetime,
) -> Dict[str, BlockAppUsage]:
    """Add per-segment sessions, clipped to the block, to apps already in the map."""
    for segment in segments:
        for app in segment.top_apps:
            if app.seconds < 60 or app.app_id not in apps:
                continue
            start = max(segment.started_at, block_start)
            end = min(segment.ended_at, block_end)
            if end <= start:
                continue
            session = AppSession(start_time=start, end_time=end, minutes=round(app.seconds / 60))
            entry = apps[app.app_id]
            apps = {**apps, app.app_id: replace(entry, sessions=entry.sessions + (session,))}
    return apps


# ----------------------------------------------------------------------
# Labels and weights
# ----------------------------------------------------------------------

def travel_label(movement_type: Optional[str], destination: Optional[str]) -> str:
    """Destination-aware label for a travel block, e.g. 'Walking → Home'."""
    verb = MOVEMENT_VERBS.get(movement_type, 'Travel')
    if destination and is_meaningful_label(destination):
        return f"{verb} → {destination}"
    if movement_type and movement_type != UNKNOWN:
        return verb
    return 'In Transit'


def weighted_mode(weights: Sequence[Tuple[Optional[str], float]]) -> Optional[str]:
    totals: Dict[str, float] = {}
    for key, weight in weights:
        if key:
            totals[key] = totals.get(key, 0.0) + weight
    best = None
    best_weight = 0.0
    for key, weight in totals.items():
        if weight > best_weight:
            best = key
            best_weight = weight
    return best


def _first_movement(segments: Sequence[ActivitySegment]) -> Optional[str]:
    for segment in segments:
        if segment.movement_type and segment.movement_type != UNKNOWN:
            return segment.movement_type
    return segments[0].movement_type if segments else None


def _travel_distance(segments: Sequence[ActivitySegment]) -> Optional[float]:
    total = sum(s.distance_m or 0.0 for s in segments)
    return total if total > 0 else None


def _unplaced(segment: ActivitySegment) -> bool:
    """Screen-only segments: no place, no coordinates, not moving."""
    return (
        not segment.is_commute
        and segment.place_id is None
        and segment.latitude is None
        and not is_meaningful_label(segment.place_label)
    )


def _overlapping(summaries: Sequence[HourlySummary], start: datetime, end: datetime) -> List[HourlySummary]:
    return [s for s in summaries if s.hour_start < end and s.hour_end > start]


class BlockBuilder:
    """Builds LocationBlocks from a day of segments or hourly summaries."""

    def __init__(self, same_place_m: float = SAME_PLACE_DISTANCE_M, logger=None):
        self.same_place_m = same_place_m
        self.log = logger or get_logger(__name__)

    # ------------------------------------------------------------------
    # Segment path
    # ------------------------------------------------------------------

    def group_segments_into_blocks(
        self,
        segments: Sequence[ActivitySegment],
        summaries: Sequence[HourlySummary] = (),
        inferred_places: Optional[Dict[str, InferredPlace]] = None,
    ) -> List[LocationBlock]:
        """Group consecutive same-place segments into one block each.

        Args:
            segments: Segments for the day, any order
            summaries: Hourly summaries supplying app usage and feedback state
            inferred_places: Inferred places keyed by geohash7

        Returns:
            Blocks ordered by start time
        """
        if not segments:
            return []

        ordered = sorted(segments, key=lambda s: s.started_at)
        groups: List[List[ActivitySegment]] = [[ordered[0]]]
        for segment in ordered[1:]:
            prev = groups[-1][-1]
            if is_same_place(prev, segment, self.same_place_m) or (_unplaced(prev) and _unplaced(segment)):
                groups[-1].append(segment)
            else:
                groups.append([segment])

        blocks = [self.build_block_from_segments(g, summaries, inferred_places or {}) for g in groups]
        self.log.debug("blocks_built", source="segments", segments=len(ordered), blocks=len(blocks))
        return blocks

    def build_block_from_segments(
        self,
        segments: Sequence[ActivitySegment],
        summaries: Sequence[HourlySummary] = (),
        inferred_places: Optional[Dict[str, InferredPlace]] = None,
    ) -> LocationBlock:
        first, last = segments[0], segments[-1]
        start = min(s.started_at for s in segments)
        end = max(s.ended_at for s in segments)
        is_travel = first.is_commute

        overlapping = _overlapping(summaries, start, end)

        movement_type = distance = None
        if is_travel:
            movement_type = _first_movement(segments)
            distance = _travel_distance(segments)
            label = travel_label(movement_type, last.place_label)
        else:
            label = first.place_label or UNKNOWN_LOCATION

        # Apps: hourly summaries when they cover the block, else the segments' own top apps
        apps = apps_from_summaries(overlapping) if overlapping else apps_from_segments(segments)
        apps = attach_sessions(apps, segments, start, end)

        weights = [(s.inferred_activity, s.duration_seconds) for s in segments]
        total_seconds = sum(w for _, w in weights)
        confidence = (
            sum(s.activity_confidence * s.duration_seconds for s in segments) / total_seconds
            if total_seconds > 0 else 0.0
        )

        geohash7 = next((s.geohash7 for s in overlapping if s.geohash7), None)
        if geohash7 is None and first.latitude is not None and first.longitude is not None:
            geohash7 = encode_geohash(first.latitude, first.longitude)

        inferred_place = None
        if not is_travel:
            inferred_place = overlapping[0].inferred_place if overlapping else None
            if inferred_place is None and geohash7 and inferred_places:
                inferred_place = inferred_places.get(geohash7)
            if label == UNKNOWN_LOCATION and inferred_place is not None:
                label = inferred_place.suggested_label

        return LocationBlock(
            id=first.id,
            type=TRAVEL if is_travel else STATIONARY,
            location_label=label,
            start_time=start,
            end_time=end,
            location_category=first.place_category,
            inferred_place=inferred_place,
            is_place_inferred=not first.place_id and inferred_place is not None,
            place_id=first.place_id,
            geohash7=None if is_travel else geohash7,
            latitude=first.latitude,
            longitude=first.longitude,
            apps=sorted_apps(apps),
            total_screen_minutes=round(sum(s.total_screen_seconds for s in segments) / 60),
            dominant_activity=weighted_mode(weights),
            confidence_score=confidence,
            total_location_samples=sum(s.location_samples for s in segments),
            movement_type=movement_type,
            distance_m=distance,
            segments=tuple(segments),
            summaries=tuple(overlapping),
            summary_ids=tuple(s.id for s in overlapping),
            has_user_feedback=any(s.user_feedback for s in overlapping),
            is_locked=any(s.locked_at for s in overlapping),
        )

    # ------------------------------------------------------------------
    # Hourly summary fallback
    # ------------------------------------------------------------------

    @staticmethod
    def location_key(summary: HourlySummary) -> str:
        """Grouping key: travel, geohash, meaningful label, else a per-hour unknown."""
        if summary.is_commute:
            return TRAVEL_KEY
        if summary.geohash7:
            return f"geo:{summary.geohash7}"
        if is_meaningful_label(summary.primary_place_label):
            return f"label:{summary.primary_place_label}"
        return f"{UNKNOWN_KEY_PREFIX}{summary.hour_start.isoformat()}"

    @staticmethod
    def should_merge(key1: str, key2: str) -> bool:
        if key1 == key2:
            return True
        return key1.startswith(UNKNOWN_KEY_PREFIX) and key2.startswith(UNKNOWN_KEY_PREFIX)

    def group_summaries_into_blocks(self, summaries: Sequence[HourlySummary]) -> List[LocationBlock]:
        """Group consecutive hourly summaries sharing a location key."""
        if not summaries:
            return []

        ordered = sorted(summaries, key=lambda s: s.hour_start)
        groups: List[List[HourlySummary]] = [[ordered[0]]]
        current_key = self.location_key(ordered[0])
        for summary in ordered[1:]:
            key = self.location_key(summary)
            if self.should_merge(current_key, key):
                groups[-1].append(summary)
                if not key.startswith(UNKNOWN_KEY_PREFIX):
                    current_key = key
            else:
                groups.append([summary])
                current_key = key

        blocks = [self.build_block_from_summaries(g) for g in groups]
        self.log.debug("blocks_built", source="summaries", summaries=len(ordered), blocks=len(blocks))
        return blocks

    def build_block_from_summaries(self, group: Sequence[HourlySummary]) -> LocationBlock:
        first, last = group[0], group[-1]
        segments = sorted(
            (seg for s in group for seg in s.segments),
            key=lambda seg: seg.started_at,
        )
        if segments:
            start = min(s.started_at for s in segments)
            end = max(s.ended_at for s in segments)
        else:
            start, end = first.hour_start, last.hour_end

        is_travel = first.is_commute
        movement_type = distance = None
        label = first.primary_place_label or UNKNOWN_LOCATION
        if is_travel:
            commutes = [s for s in segments if s.is_commute]
            movement_type = _first_movement(commutes)
            distance = _travel_distance(commutes)
            destination = segments[-1].place_label if segments else last.primary_place_label
            label = travel_label(movement_type, destination)
        elif not is_meaningful_label(label) and first.inferred_place is not None:
            label = first.inferred_place.suggested_label

        apps = attach_sessions(apps_from_summaries(group), segments, start, end)
        confidence = sum(s.confidence_score for s in group) / len(group)

        return LocationBlock(
            id=first.id,
            type=TRAVEL if is_travel else STATIONARY,
            location_label=label,
            start_time=start,
            end_time=end,
            location_category=first.inferred_place.inferred_type if first.inferred_place else None,
            inferred_place=first.inferred_place,
            is_place_inferred=not first.primary_place_id and first.inferred_place is not None,
            place_id=first.primary_place_id,
            geohash7=first.geohash7,
            latitude=first.latitude,
            longitude=first.longitude,
            apps=sorted_apps(apps),
            total_screen_minutes=sum(s.total_screen_minutes for s in group),
            dominant_activity=weighted_mode([(s.primary_activity, 60) for s in group]),
            confidence_score=confidence,
            total_location_samples=sum(s.location_samples for s in group),
            movement_type=movement_type,
            distance_m=distance,
            segments=tuple(segments),
            summaries=tuple(group),
            summary_ids=tuple(s.id for s in group),
            has_user_feedback=any(s.user_feedback for s in group),
            is_locked=any(s.locked_at for s in group),
        )

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def build_blocks(
        self,
        segments: Sequence[ActivitySegment],
        summaries: Sequence[HourlySummary] = (),
        inferred_places: Optional[Dict[str, InferredPlace]] = None,
    ) -> List[LocationBlock]:
        """Segment-driven blocks, falling back to hourly summaries when there are no segments."""
        if segments:
            return self.group_segments_into_blocks(segments, summaries, inferred_places)
        return self.group_summaries_into_blocks(summaries)


__all__ = [
    'BlockBuilder',
    'merge_app_usage',
    'travel_label',
    'weighted_mode',
]
