"""Activity segment generation from raw location fixes.

Phones report irregularly: dense bursts while moving, long silences while
parked. This module folds a day of fixes into contiguous segments:

- Stay detection: consecutive fixes within a radius of the run's first fix
- Commute detection: the path between stays, classified walking/cycling/driving
  from reported speed or path length over time
- Place identity: dominant user place (70%+ of fixes), else inferred place by
  geohash
- Enrichment: app usage, inferred activity and confidence per segment
- Screen-only hours: phone use with no location segment still gets a segment
"""

from dataclasses import replace
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from .activity import (
    HealthContext,
    calculate_app_breakdown,
    calculate_confidence_score,
    category_consensus,
    infer_activity_type,
    location_confidence,
    normalize_app_key,
)
from .geo import centroid, encode_geohash, haversine_m, path_distance_m
from .logging_config import get_logger
from .matching import SAME_PLACE_DISTANCE_M, is_meaningful_label, is_same_place
from .models import (
    COMMUTE,
    CYCLING,
    DRIVING,
    UNKNOWN,
    WALKING,
    ActivitySegment,
    AppUsage,
    InferredPlace,
    ScreenTimeSession,
    UserPlace,
    Workout,
)
from .samples import normalize_samples

# Movement classification thresholds (km/h)
SPEED_WALKING = 7.0
SPEED_CYCLING = 25.0

MAX_TOP_APPS = 5

Interval = Tuple[datetime, datetime]


class SegmentGenerator:
    """Turns one day of samples and screen-time into ActivitySegments."""

    def __init__(
        self,
        stay_radius_m: float = 150.0,
        max_sample_gap_minutes: float = 30.0,
        min_segment_minutes: float = 5.0,
        min_commute_distance_m: float = 200.0,
        walking_kmh: float = SPEED_WALKING,
        cycling_kmh: float = SPEED_CYCLING,
        default_place_radius_m: float = 150.0,
        place_match_threshold: float = 0.7,
        max_merge_gap_minutes: float = 5.0,
        same_place_m: float = SAME_PLACE_DISTANCE_M,
        app_overrides: Optional[Dict[str, str]] = None,
        logger=None,
    ):
        self.stay_radius_m = stay_radius_m
        self.max_sample_gap = timedelta(minutes=max_sample_gap_minutes)
        self.min_segment = timedelta(minutes=min_segment_minutes)
        self.min_commute_distance_m = min_commute_distance_m
        self.walking_kmh = walking_kmh
        self.cycling_kmh = cycling_kmh
        self.default_place_radius_m = default_place_radius_m
        self.place_match_threshold = place_match_threshold
        self.max_merge_gap = timedelta(minutes=max_merge_gap_minutes)
        self.same_place_m = same_place_m
        self.app_overrides = {
            normalize_app_key(app): str(category) for app, category in (app_overrides or {}).items()
        }
        self.log = logger or get_logger(__name__)

    # ------------------------------------------------------------------
    # Movement classification
    # ------------------------------------------------------------------

    def classify_movement(
        self,
        dist_meters: float,
        duration_seconds: float,
        reported_speeds_mps: Sequence[float] = (),
        point_count: int = 0,
    ) -> Tuple[str, float]:
        """Classify movement type from reported speed or distance over time.

        Reported speeds are used when at least half the fixes carry one.

        Returns:
            (movement_type, speed_kmh)
        """
        speeds = [s for s in reported_speeds_mps if s is not None and not np.isnan(s)]
        if speeds and len(speeds) * 2 >= max(point_count, 1):
            speed_kmh = float(np.mean(speeds)) * 3.6
        elif duration_seconds > 0:
            speed_kmh = (dist_meters / 1000) / (duration_seconds / 3600)
        else:
            return UNKNOWN, 0.0

        if speed_kmh <= self.walking_kmh:
            return WALKING, speed_kmh
        if speed_kmh <= self.cycling_kmh:
            return CYCLING, speed_kmh
        return DRIVING, speed_kmh

    # ------------------------------------------------------------------
    # Stay detection
    # ------------------------------------------------------------------

    def find_stays(self, df: pd.DataFrame) -> List[Tuple[int, int]]:
        """Find runs of fixes that stay within ``stay_radius_m`` of the run's first fix.

        A run breaks on a fix outside the radius or on a silence longer than
        ``max_sample_gap``. Runs shorter than ``min_segment`` are not stays.

        Returns:
            List of (first_index, last_index) pairs, inclusive
        """
        n = len(df)
        if n < 2:
            return []

        times = df['recorded_at'].tolist()
        lats = df['latitude'].to_numpy()
        lons = df['longitude'].to_numpy()

        stays: List[Tuple[int, int]] = []
        i = 0
        while i < n:
            j = i + 1
            while j < n:
                if times[j] - times[j - 1] > self.max_sample_gap:
                    break
                if haversine_m(lats[i], lons[i], lats[j], lons[j]) > self.stay_radius_m:
                    break
                j += 1

            if times[j - 1] - times[i] >= self.min_segment:
                stays.append((i, j - 1))
                i = j
            else:
                i += 1

        return stays

    # ------------------------------------------------------------------
    # Place matching
    # ------------------------------------------------------------------

    def match_user_place(self, lat: float, lon: float, places: Sequence[UserPlace]) -> Optional[UserPlace]:
        """Nearest user place whose radius contains the point."""
        best = None
        best_dist = float('inf')
        for place in places:
            radius = place.radius_m or self.default_place_radius_m
            dist = haversine_m(lat, lon, place.latitude, place.longitude)
            if dist <= radius and dist < best_dist:
                best = place
                best_dist = dist
        return best

    def dominant_place(
        self,
        points: Sequence[Tuple[float, float]],
        places: Sequence[UserPlace],
    ) -> Tuple[Optional[UserPlace], float]:
        """Most-matched user place among the points and its match ratio.

        Unmatched points count towards an implicit "no place" bucket. The
        place is only returned when its ratio reaches the match threshold.
        """
        if not points:
            return None, 0.0

        counts: Dict[Optional[str], int] = {None: 0}
        by_id: Dict[str, UserPlace] = {}
        for lat, lon in points:
            match = self.match_user_place(lat, lon, places)
            key = match.id if match else None
            if match:
                by_id[match.id] = match
            counts[key] = counts.get(key, 0) + 1

        dominant_key = max(counts, key=lambda k: counts[k])
        ratio = counts[dominant_key] / len(points)
        if dominant_key is not None and ratio >= self.place_match_threshold:
            return by_id[dominant_key], ratio
        return None, ratio

    # ------------------------------------------------------------------
    # Segment building
    # ------------------------------------------------------------------

    def _stay_segment(
        self,
        df: pd.DataFrame,
        first: int,
        last: int,
        places: Sequence[UserPlace],
        inferred_places: Dict[str, InferredPlace],
        window_start: datetime,
        window_end: datetime,
    ) -> Optional[ActivitySegment]:
        run = df.iloc[first:last + 1]
        start = max(run['recorded_at'].iloc[0].to_pydatetime(), window_start)
        end = min(run['recorded_at'].iloc[-1].to_pydatetime(), window_end)
        if end <= start:
            return None

        points = list(zip(run['latitude'], run['longitude']))
        lat, lon = centroid(points)
        place, ratio = self.dominant_place(points, places)

        place_id = label = category = None
        if place is not None:
            place_id, label, category = place.id, place.label, place.category
        else:
            inferred = inferred_places.get(encode_geohash(lat, lon))
            if inferred is not None:
                label = inferred.existing_place_label or inferred.suggested_label
                category = inferred.inferred_type

        source_id = (
            f"location:{_ms(window_start)}:{place_id or 'unknown'}:{_ms(start)}"
        )
        return ActivitySegment(
            id=source_id,
            started_at=start,
            ended_at=end,
            inferred_activity=UNKNOWN,
            place_id=place_id,
            place_label=label,
            place_category=category,
            latitude=lat,
            longitude=lon,
            activity_confidence=location_confidence(len(points), ratio, self.place_match_threshold),
            location_samples=len(points),
            source_ids=(source_id,),
        )

    def _commute_segments(
        self,
        df: pd.DataFrame,
        first: int,
        last: int,
        destination: Optional[ActivitySegment],
        window_start: datetime,
        window_end: datetime,
    ) -> List[ActivitySegment]:
        """Commute segments for fixes ``first..last``, split at long silences."""
        if last <= first:
            return []

        times = df['recorded_at'].tolist()
        chains: List[Tuple[int, int]] = []
        chain_start = first
        for k in range(first + 1, last + 1):
            if times[k] - times[k - 1] > self.max_sample_gap:
                chains.append((chain_start, k - 1))
                chain_start = k
        chains.append((chain_start, last))

        segments = []
        for lo, hi in chains:
            if hi <= lo:
                continue
            run = df.iloc[lo:hi + 1]
            start = max(times[lo].to_pydatetime(), window_start)
            end = min(times[hi].to_pydatetime(), window_end)
            if end - start < self.min_segment:
                continue

            points = list(zip(run['latitude'], run['longitude']))
            dist = path_distance_m(points)
            if dist < self.min_commute_distance_m:
                continue

            movement, speed = self.classify_movement(
                dist,
                (times[hi] - times[lo]).total_seconds(),
                run['speed_mps'].tolist(),
                len(run),
            )
            # The destination is only known when the chain reaches the next stay
            arrives = destination is not None and hi == last
            lat, lon = centroid(points)
            source_id = f"commute:{_ms(window_start)}:{_ms(start)}"
            segments.append(ActivitySegment(
                id=source_id,
                started_at=start,
                ended_at=end,
                inferred_activity=COMMUTE,
                place_label=destination.place_label if arrives else None,
                place_category=COMMUTE,
                latitude=lat,
                longitude=lon,
                movement_type=movement,
                distance_m=dist,
                activity_confidence=location_confidence(len(points), 0.0, self.place_match_threshold),
                location_samples=len(points),
                source_ids=(source_id,),
            ))
            self.log.debug(
                "commute_detected",
                start=start.isoformat(),
                movement=movement,
                speed_kmh=round(speed, 1),
                distance_m=round(dist),
            )
        return segments

    def build_location_segments(
        self,
        df: pd.DataFrame,
        places: Sequence[UserPlace] = (),
        inferred_places: Optional[Dict[str, InferredPlace]] = None,
        window_start: Optional[datetime] = None,
        window_end: Optional[datetime] = None,
    ) -> List[ActivitySegment]:
        """Stationary and commute segments from a normalized sample frame."""
        if df.empty or len(df) < 2:
            return []

        df = df.sort_values('recorded_at').reset_index(drop=True)
        inferred_places = inferred_places or {}
        window_start = window_start or df['recorded_at'].iloc[0].to_pydatetime()
        window_end = window_end or df['recorded_at'].iloc[-1].to_pydatetime()

        stays = self.find_stays(df)
        segments: List[ActivitySegment] = []
        prev_last = 0

        for first, last in stays:
            stay = self._stay_segment(df, first, last, places, inferred_places, window_start, window_end)
            segments.extend(self._commute_segments(df, prev_last, first, stay, window_start, window_end))
            if stay is not None:
                segments.append(stay)
            prev_last = last

        segments.extend(self._commute_segments(df, prev_last, len(df) - 1, None, window_start, window_end))
        segments.sort(key=lambda s: s.started_at)
        return segments

    # ------------------------------------------------------------------
    # Merging
    # ------------------------------------------------------------------

    def merge_adjacent_segments(self, segments: Sequence[ActivitySegment]) -> List[ActivitySegment]:
        """Merge neighbouring segments at the same place separated by a short gap."""
        ordered = sorted(segments, key=lambda s: s.started_at)
        merged: List[ActivitySegment] = []
        for segment in ordered:
            if merged:
                current = merged[-1]
                gap = segment.started_at - current.ended_at
                if gap <= self.max_merge_gap and is_same_place(current, segment, self.same_place_m):
                    merged[-1] = merge_segments(current, segment)
                    continue
            merged.append(segment)
        return merged

    # ------------------------------------------------------------------
    # Enrichment
    # ------------------------------------------------------------------

    @staticmethod
    def health_context(
        workouts: Sequence[Workout],
        sleep_periods: Sequence[Interval],
        start: datetime,
        end: datetime,
    ) -> Optional[HealthContext]:
        """Health signals overlapping [start, end), or None if there are none."""
        workout = next(
            (w for w in workouts if w.started_at < end and w.ended_at > start),
            None,
        )
        sleeping = any(s < end and e > start for s, e in sleep_periods)
        if workout is None and not sleeping:
            return None
        return HealthContext(
            has_workout=workout is not None,
            workout_type=workout.activity_type if workout else None,
            is_sleeping=sleeping,
        )

    def enrich_segment(
        self,
        segment: ActivitySegment,
        sessions: Sequence[ScreenTimeSession],
        workouts: Sequence[Workout] = (),
        sleep_periods: Sequence[Interval] = (),
    ) -> ActivitySegment:
        """Attach app usage, inferred activity and confidence to a segment.

        The segment's incoming ``activity_confidence`` is its location
        confidence and feeds the final score as the place match ratio.
        """
        start, end = segment.started_at, segment.ended_at
        overlapping = [s for s in sessions if s.started_at < end and s.ended_at > start]
        breakdown = calculate_app_breakdown(overlapping, start, end, self.app_overrides)
        health = self.health_context(workouts, sleep_periods, start, end)
        place_category = COMMUTE if segment.is_commute else segment.place_category

        activity = infer_activity_type(place_category, breakdown, start, health)
        confidence = calculate_confidence_score(
            segment.location_samples,
            len(overlapping),
            segment.activity_confidence,
            category_consensus(breakdown),
        )
        return replace(
            segment,
            inferred_activity=activity,
            activity_confidence=confidence,
            top_apps=tuple(breakdown[:MAX_TOP_APPS]),
            total_screen_seconds=sum(app.seconds for app in breakdown),
            screen_sessions=len(overlapping),
            has_health_data=health is not None,
            source_ids=segment.source_ids + tuple(s.id for s in overlapping),
        )

    def screen_only_segments(
        self,
        segments: Sequence[ActivitySegment],
        sessions: Sequence[ScreenTimeSession],
        window_start: datetime,
        window_end: datetime,
        workouts: Sequence[Workout] = (),
        sleep_periods: Sequence[Interval] = (),
    ) -> List[ActivitySegment]:
        """One segment per hour that has phone use but no location segment."""
        if not sessions:
            return []

        result = []
        hour = window_start.replace(minute=0, second=0, microsecond=0)
        while hour < window_end:
            h_start = max(hour, window_start)
            h_end = min(hour + timedelta(hours=1), window_end)
            hour += timedelta(hours=1)
            if h_end <= h_start:
                continue
            if any(s.started_at < h_end and s.ended_at > h_start for s in segments):
                continue

            hour_sessions = [s for s in sessions if s.started_at < h_end and s.ended_at > h_start]
            breakdown = calculate_app_breakdown(hour_sessions, h_start, h_end, self.app_overrides)
            if not breakdown:
                continue

            health = self.health_context(workouts, sleep_periods, h_start, h_end)
            result.append(ActivitySegment(
                id=f"screen:{_ms(h_start)}",
                started_at=h_start,
                ended_at=h_end,
                inferred_activity=infer_activity_type(None, breakdown, h_start, health),
                top_apps=tuple(breakdown[:MAX_TOP_APPS]),
                total_screen_seconds=sum(app.seconds for app in breakdown),
                activity_confidence=calculate_confidence_score(
                    0, len(hour_sessions), 0.0, category_consensus(breakdown)
                ),
                screen_sessions=len(hour_sessions),
                has_health_data=health is not None,
                source_ids=tuple(s.id for s in hour_sessions),
            ))
        return result

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def generate(
        self,
        samples: Union[pd.DataFrame, Iterable],
        places: Sequence[UserPlace] = (),
        inferred_places: Optional[Dict[str, InferredPlace]] = None,
        sessions: Sequence[ScreenTimeSession] = (),
        workouts: Sequence[Workout] = (),
        sleep_periods: Sequence[Interval] = (),
        window_start: Optional[datetime] = None,
        window_end: Optional[datetime] = None,
    ) -> List[ActivitySegment]:
        """Run segmentation, merging and enrichment for one day.

        Args:
            samples: Normalized sample frame, or raw samples to normalize
            places: User-labelled places
            inferred_places: Inferred places keyed by geohash7
            sessions: Screen-time sessions
            workouts: Health workouts
            sleep_periods: (start, end) intervals the user was asleep
            window_start: Start of the day window; defaults to the first datum
            window_end: End of the day window; defaults to the last datum

        Returns:
            Chronologically ordered segments, each with ended_at > started_at
        """
        df = samples if isinstance(samples, pd.DataFrame) else normalize_samples(samples)
        sessions = [s for s in sessions if s.ended_at > s.started_at]

        bounds = _data_bounds(df, sessions)
        if bounds is None:
            return []
        window_start = window_start or bounds[0]
        window_end = window_end or bounds[1]

        location_segments = self.build_location_segments(
            df, places, inferred_places, window_start, window_end
        )
        merged = self.merge_adjacent_segments(location_segments)
        enriched = [self.enrich_segment(s, sessions, workouts, sleep_periods) for s in merged]
        screen_only = self.screen_only_segments(
            enriched, sessions, window_start, window_end, workouts, sleep_periods
        )

        segments = sorted(enriched + screen_only, key=lambda s: s.started_at)
        segments = [s for s in segments if s.ended_at > s.started_at]
        self.log.debug(
            "segments_generated",
            location=len(merged),
            screen_only=len(screen_only),
            total=len(segments),
        )
        return segments


def merge_segments(a: ActivitySegment, b: ActivitySegment) -> ActivitySegment:
    """Combine two segments at the same place into one spanning both."""
    dur_a, dur_b = a.duration_seconds, b.duration_seconds
    total = dur_a + dur_b
    if total > 0:
        confidence = (a.activity_confidence * dur_a + b.activity_confidence * dur_b) / total
    else:
        confidence = max(a.activity_confidence, b.activity_confidence)

    # Commutes take the later destination; stays keep the first meaningful label
    take_b = is_meaningful_label(b.place_label) and (
        a.is_commute or not is_meaningful_label(a.place_label)
    )
    place = b if take_b else a

    movement = a.movement_type
    if movement in (None, UNKNOWN):
        movement = b.movement_type
    distance = None
    if a.distance_m is not None or b.distance_m is not None:
        distance = (a.distance_m or 0.0) + (b.distance_m or 0.0)

    return replace(
        a,
        started_at=min(a.started_at, b.started_at),
        ended_at=max(a.ended_at, b.ended_at),
        place_id=place.place_id,
        place_label=place.place_label,
        place_category=place.place_category,
        inferred_activity=a.inferred_activity if dur_a >= dur_b else b.inferred_activity,
        movement_type=movement,
        distance_m=distance,
        top_apps=tuple(_sum_app_usage(a.top_apps, b.top_apps)[:MAX_TOP_APPS]),
        total_screen_seconds=a.total_screen_seconds + b.total_screen_seconds,
        activity_confidence=confidence,
        location_samples=a.location_samples + b.location_samples,
        screen_sessions=a.screen_sessions + b.screen_sessions,
        has_health_data=a.has_health_data or b.has_health_data,
        source_ids=a.source_ids + tuple(s for s in b.source_ids if s not in a.source_ids),
    )


def _sum_app_usage(first: Sequence[AppUsage], second: Sequence[AppUsage]) -> List[AppUsage]:
    totals: Dict[str, AppUsage] = {}
    for app in list(first) + list(second):
        existing = totals.get(app.app_id)
        totals[app.app_id] = app if existing is None else replace(existing, seconds=existing.seconds + app.seconds)
    return sorted(totals.values(), key=lambda a: a.seconds, reverse=True)


def _data_bounds(df: pd.DataFrame, sessions: Sequence[ScreenTimeSession]) -> Optional[Interval]:
    starts: List[datetime] = []
    ends: List[datetime] = []
    if not df.empty:
        starts.append(df['recorded_at'].min().to_pydatetime())
        ends.append(df['recorded_at'].max().to_pydatetime())
    if sessions:
        starts.append(min(s.started_at for s in sessions))
        ends.append(max(s.ended_at for s in sessions))
    if not starts:
        return None
    return min(starts), max(ends)


def _ms(moment: datetime) -> int:
    return int(moment.timestamp() * 1000)
