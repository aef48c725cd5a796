"""Builders for test data.

All times are UTC on Monday 2 March 2026 unless a test says otherwise.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple

from daytrace.models import (
    COMMUTE,
    STATIONARY,
    TRAVEL,
    ActivitySegment,
    AppUsage,
    BlockAppUsage,
    HourlySummary,
    LocationBlock,
    ScheduledEvent,
    ScreenTimeSession,
    SummaryAppUsage,
    Workout,
)

BASE = datetime(2026, 3, 2, tzinfo=timezone.utc)

HOME = (52.3600, 4.8800)
OFFICE = (52.3780, 4.9000)

# Degrees of latitude per meter, close enough for offsets under a kilometre
DEG_PER_M = 1 / 111_195


def at(hours: float = 0, minutes: float = 0) -> datetime:
    return BASE + timedelta(hours=hours, minutes=minutes)


def north_of(point: Tuple[float, float], meters: float) -> Tuple[float, float]:
    return point[0] + meters * DEG_PER_M, point[1]


def make_segment(
    start: datetime,
    end: datetime,
    label: Optional[str] = None,
    place_id: Optional[str] = None,
    point: Optional[Tuple[float, float]] = None,
    commute: bool = False,
    movement: Optional[str] = None,
    distance: Optional[float] = None,
    activity: Optional[str] = None,
    confidence: float = 0.5,
    samples: int = 10,
    top_apps: Sequence[AppUsage] = (),
    id: Optional[str] = None,
) -> ActivitySegment:
    lat, lon = point if point else (None, None)
    return ActivitySegment(
        id=id or f"seg:{int(start.timestamp())}",
        started_at=start,
        ended_at=end,
        inferred_activity=activity or (COMMUTE if commute else 'mixed_activity'),
        place_id=place_id,
        place_label=label,
        place_category=COMMUTE if commute else None,
        latitude=lat,
        longitude=lon,
        movement_type=movement,
        distance_m=distance,
        top_apps=tuple(top_apps),
        total_screen_seconds=sum(a.seconds for a in top_apps),
        activity_confidence=confidence,
        location_samples=samples,
    )


def make_block(
    start: datetime,
    end: datetime,
    label: str = 'Home',
    travel: bool = False,
    place_id: Optional[str] = None,
    point: Optional[Tuple[float, float]] = None,
    geohash7: Optional[str] = None,
    confidence: float = 0.8,
    apps: Sequence[BlockAppUsage] = (),
    carried: bool = False,
    id: Optional[str] = None,
) -> LocationBlock:
    lat, lon = point if point else (None, None)
    return LocationBlock(
        id=id or f"block:{label}:{int(start.timestamp())}",
        type=TRAVEL if travel else STATIONARY,
        location_label=label,
        start_time=start,
        end_time=end,
        place_id=place_id,
        geohash7=geohash7,
        latitude=lat,
        longitude=lon,
        apps=tuple(apps),
        total_screen_minutes=sum(a.total_minutes for a in apps),
        confidence_score=confidence,
        total_location_samples=0 if carried else 12,
        is_carried_forward=carried,
    )


def make_session(
    app_id: str,
    start: datetime,
    end: datetime,
    display_name: Optional[str] = None,
    pickups: int = 0,
    id: Optional[str] = None,
) -> ScreenTimeSession:
    return ScreenTimeSession(
        id=id or f"{app_id}:{int(start.timestamp())}",
        app_id=app_id,
        started_at=start,
        ended_at=end,
        display_name=display_name,
        duration_seconds=(end - start).total_seconds(),
        pickups=pickups,
    )


def make_workout(start: datetime, end: datetime, activity_type: Optional[str] = 'Running',
                 id: str = 'w1') -> Workout:
    return Workout(
        id=id,
        started_at=start,
        ended_at=end,
        activity_type=activity_type,
        duration_seconds=(end - start).total_seconds(),
    )


def make_event(
    id: str,
    start_minutes: int,
    duration: int,
    category: str = 'unknown',
    title: str = '',
    description: str = '',
) -> ScheduledEvent:
    return ScheduledEvent(
        id=id,
        title=title,
        start_minutes=start_minutes,
        duration=duration,
        category=category,
        description=description,
    )


def make_summary(
    hour: int,
    label: Optional[str] = None,
    geohash7: Optional[str] = None,
    activity: Optional[str] = None,
    apps: Sequence[Tuple[str, float]] = (),
    confidence: float = 0.6,
    feedback: Optional[str] = None,
) -> HourlySummary:
    return HourlySummary(
        id=f"sum:{hour}",
        hour_start=at(hours=hour),
        primary_place_label=label,
        primary_activity=activity,
        app_breakdown=tuple(
            SummaryAppUsage(app_id=app, display_name=app.title(), category='utility', minutes=m)
            for app, m in apps
        ),
        total_screen_minutes=sum(m for _, m in apps),
        confidence_score=confidence,
        geohash7=geohash7,
        user_feedback=feedback,
    )


def stay_samples(point: Tuple[float, float], start: datetime, end: datetime,
                 every_minutes: int = 5) -> List[Dict[str, Any]]:
    """Fixes at one spot from start to end inclusive."""
    samples = []
    t = start
    while t <= end:
        samples.append({
            'recorded_at': t.isoformat(),
            'latitude': point[0],
            'longitude': point[1],
            'accuracy_m': 10,
        })
        t += timedelta(minutes=every_minutes)
    return samples


def track_samples(
    origin: Tuple[float, float],
    destination: Tuple[float, float],
    start: datetime,
    end: datetime,
    every_minutes: int = 2,
    speed_mps: Optional[float] = None,
) -> List[Dict[str, Any]]:
    """Fixes on a straight line from origin to destination, both ends excluded."""
    total = (end - start).total_seconds() / 60
    steps = int(total // every_minutes)
    samples = []
    for k in range(1, steps):
        f = k / steps
        samples.append({
            'recorded_at': (start + timedelta(minutes=k * every_minutes)).isoformat(),
            'latitude': origin[0] + (destination[0] - origin[0]) * f,
            'longitude': origin[1] + (destination[1] - origin[1]) * f,
            'accuracy_m': 10,
            'speed_mps': speed_mps,
        })
    return samples
