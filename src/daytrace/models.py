"""Data types flowing through the day pipeline.

Everything is a frozen slotted dataclass: segments and blocks are rebuilt
with ``dataclasses.replace`` rather than mutated. Collections are tuples.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Optional, Tuple

# Segment / block kinds
STATIONARY = 'stationary'
TRAVEL = 'travel'
COMMUTE = 'commute'

# Movement types
WALKING = 'walking'
CYCLING = 'cycling'
DRIVING = 'driving'
UNKNOWN = 'unknown'

UNKNOWN_LOCATION = 'Unknown Location'


@dataclass(frozen=True, slots=True)
class LocationSample:
    """A single GPS fix."""

    recorded_at: datetime
    latitude: float
    longitude: float
    accuracy_m: Optional[float] = None
    speed_mps: Optional[float] = None
    heading_deg: Optional[float] = None

    @property
    def dedupe_key(self) -> str:
        ts_ms = int(self.recorded_at.timestamp() * 1000)
        acc = 'na' if self.accuracy_m is None else str(round(self.accuracy_m))
        return f"{ts_ms}:{self.latitude:.5f}:{self.longitude:.5f}:{acc}"


@dataclass(frozen=True, slots=True)
class UserPlace:
    """A place the user has labelled themselves."""

    id: str
    label: str
    latitude: float
    longitude: float
    category: Optional[str] = None
    radius_m: Optional[float] = None


@dataclass(frozen=True, slots=True)
class ScreenTimeSession:
    id: str
    app_id: str
    started_at: datetime
    ended_at: datetime
    display_name: Optional[str] = None
    duration_seconds: float = 0.0
    pickups: int = 0


@dataclass(frozen=True, slots=True)
class Workout:
    id: str
    started_at: datetime
    ended_at: datetime
    activity_type: Optional[str] = None
    duration_seconds: float = 0.0


@dataclass(frozen=True, slots=True)
class AppUsage:
    """Seconds spent in one app inside a segment."""

    app_id: str
    display_name: str
    category: str
    seconds: float


@dataclass(frozen=True, slots=True)
class ActivitySegment:
    """A contiguous interval spent at one place or in transit."""

    id: str
    started_at: datetime
    ended_at: datetime
    inferred_activity: str
    place_id: Optional[str] = None
    place_label: Optional[str] = None
    place_category: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    movement_type: Optional[str] = None
    distance_m: Optional[float] = None
    top_apps: Tuple[AppUsage, ...] = ()
    total_screen_seconds: float = 0.0
    activity_confidence: float = 0.0
    location_samples: int = 0
    screen_sessions: int = 0
    has_health_data: bool = False
    source_ids: Tuple[str, ...] = ()

    @property
    def is_commute(self) -> bool:
        return self.inferred_activity == COMMUTE or self.place_category == COMMUTE

    @property
    def duration_seconds(self) -> float:
        return (self.ended_at - self.started_at).total_seconds()


@dataclass(frozen=True, slots=True)
class SummaryAppUsage:
    """Minutes spent in one app during an hourly summary."""

    app_id: str
    display_name: str
    category: str
    minutes: float


@dataclass(frozen=True, slots=True)
class InferredPlace:
    """A place identity derived from several days of hourly location rows."""

    geohash7: str
    inferred_type: str  # 'home', 'work', 'frequent', 'unknown'
    suggested_label: str
    confidence: float
    reasoning: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    existing_place_label: Optional[str] = None
    total_hours: int = 0
    overnight_hours: int = 0
    work_hours: int = 0
    distinct_days: int = 0


@dataclass(frozen=True, slots=True)
class HourlySummary:
    """A previously computed per-hour rollup, used when no segments exist."""

    id: str
    hour_start: datetime
    primary_place_id: Optional[str] = None
    primary_place_label: Optional[str] = None
    primary_activity: Optional[str] = None
    app_breakdown: Tuple[SummaryAppUsage, ...] = ()
    total_screen_minutes: float = 0.0
    confidence_score: float = 0.0
    location_samples: int = 0
    geohash7: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    inferred_place: Optional[InferredPlace] = None
    user_feedback: Optional[str] = None
    locked_at: Optional[datetime] = None
    segments: Tuple[ActivitySegment, ...] = ()

    @property
    def hour_end(self) -> datetime:
        return self.hour_start + timedelta(hours=1)

    @property
    def is_commute(self) -> bool:
        return self.primary_activity == COMMUTE


@dataclass(frozen=True, slots=True)
class AppSession:
    start_time: datetime
    end_time: datetime
    minutes: int


@dataclass(frozen=True, slots=True)
class BlockAppUsage:
    app_id: str
    display_name: str
    category: str
    total_minutes: float
    sessions: Tuple[AppSession, ...] = ()


@dataclass(frozen=True, slots=True)
class LocationBlock:
    """The user-facing unit: one place, or one journey, over a time range."""

    id: str
    type: str  # STATIONARY or TRAVEL
    location_label: str
    start_time: datetime
    end_time: datetime
    location_category: Optional[str] = None
    inferred_place: Optional[InferredPlace] = None
    is_place_inferred: bool = False
    place_id: Optional[str] = None
    geohash7: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    apps: Tuple[BlockAppUsage, ...] = ()
    total_screen_minutes: float = 0.0
    dominant_activity: Optional[str] = None
    confidence_score: float = 0.0
    total_location_samples: int = 0
    movement_type: Optional[str] = None
    distance_m: Optional[float] = None
    segments: Tuple[ActivitySegment, ...] = ()
    summaries: Tuple[HourlySummary, ...] = ()
    summary_ids: Tuple[str, ...] = ()
    has_user_feedback: bool = False
    is_locked: bool = False
    is_carried_forward: bool = False

    @property
    def duration_minutes(self) -> int:
        return round((self.end_time - self.start_time).total_seconds() / 60)

    @property
    def is_travel(self) -> bool:
        return self.type == TRAVEL


@dataclass(frozen=True, slots=True)
class ScheduledEvent:
    """A calendar event the user entered, positioned in minutes from local midnight."""

    id: str
    title: str
    start_minutes: int
    duration: int
    category: str = 'unknown'
    description: str = ''
    meta: Optional[Dict[str, Any]] = None


@dataclass(frozen=True, slots=True)
class TimeBlock:
    """A row on the review screen."""

    id: str
    source_id: str
    source: str  # 'location', 'screen_time', 'workout', 'unknown'
    title: str
    description: str
    duration: int
    start_minutes: int
    start_time: str
    end_time: str
    activity_detected: Optional[str] = None
    location: Optional[str] = None
    event_id: Optional[str] = None
