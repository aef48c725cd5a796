"""Day analysis engine.

Loads a per-day export, runs it through segmentation, block building, gap
filling and review reconciliation, and returns everything the report needs.
"""

import json
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import pandas as pd

from .blocks import BlockBuilder
from .config import load_config
from .errors import ExportError
from .gaps import GapFiller
from .logging_config import get_logger
from .models import (
    ActivitySegment,
    HourlySummary,
    InferredPlace,
    LocationBlock,
    ScheduledEvent,
    ScreenTimeSession,
    SummaryAppUsage,
    TimeBlock,
    UserPlace,
    Workout,
)
from .places import PlaceInferrer, infer_places
from .review import ReviewBuilder, parse_meta
from .samples import as_float, normalize_samples, to_datetime
from .segmenter import SegmentGenerator

Interval = Tuple[datetime, datetime]


@dataclass(slots=True)
class DayExport:
    """Everything exported for one day, parsed into model objects."""

    day: date
    timezone: Optional[str] = None
    samples: List[Dict[str, Any]] = field(default_factory=list)
    sessions: List[ScreenTimeSession] = field(default_factory=list)
    workouts: List[Workout] = field(default_factory=list)
    sleep_periods: List[Interval] = field(default_factory=list)
    places: List[UserPlace] = field(default_factory=list)
    events: List[ScheduledEvent] = field(default_factory=list)
    summaries: List[HourlySummary] = field(default_factory=list)
    location_hourly: List[Dict[str, Any]] = field(default_factory=list)
    skipped: int = 0


@dataclass(slots=True)
class DayTimeline:
    """Result of analyzing one day."""

    day: date
    segments: List[ActivitySegment] = field(default_factory=list)
    blocks: List[LocationBlock] = field(default_factory=list)
    review_blocks: List[TimeBlock] = field(default_factory=list)
    inferred_places: Dict[str, InferredPlace] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not self.segments and not self.blocks and not self.review_blocks


# ----------------------------------------------------------------------
# Export parsing
# ----------------------------------------------------------------------

def _number(value: Any, default: float = 0.0) -> float:
    number = as_float(value)
    return default if number is None else number


def _parse_session(record: Dict[str, Any], tz: Optional[str]) -> Optional[ScreenTimeSession]:
    started = to_datetime(record.get('started_at'), tz)
    ended = to_datetime(record.get('ended_at'), tz)
    app_id = record.get('app_id')
    if started is None or ended is None or not app_id:
        return None
    duration = _number(record.get('duration_seconds'), (ended - started).total_seconds())
    return ScreenTimeSession(
        id=str(record.get('id') or f"{app_id}:{started.isoformat()}"),
        app_id=str(app_id),
        started_at=started,
        ended_at=ended,
        display_name=record.get('display_name'),
        duration_seconds=max(0.0, duration),
        pickups=int(_number(record.get('pickups'))),
    )


def _parse_workout(record: Dict[str, Any], tz: Optional[str]) -> Optional[Workout]:
    started = to_datetime(record.get('started_at'), tz)
    ended = to_datetime(record.get('ended_at'), tz)
    if started is None or ended is None or ended <= started:
        return None
    return Workout(
        id=str(record.get('id') or started.isoformat()),
        started_at=started,
        ended_at=ended,
        activity_type=record.get('activity_type'),
        duration_seconds=_number(record.get('duration_seconds'), (ended - started).total_seconds()),
    )


def _parse_sleep(record: Dict[str, Any], tz: Optional[str]) -> Optional[Interval]:
    start = to_datetime(record.get('start', record.get('started_at')), tz)
    end = to_datetime(record.get('end', record.get('ended_at')), tz)
    if start is None or end is None or end <= start:
        return None
    return start, end


def _parse_place(record: Dict[str, Any], tz: Optional[str]) -> Optional[UserPlace]:
    lat = as_float(record.get('latitude', record.get('lat')))
    lon = as_float(record.get('longitude', record.get('lng', record.get('lon'))))
    if lat is None or lon is None or not record.get('id') or not record.get('label'):
        return None
    return UserPlace(
        id=str(record['id']),
        label=str(record['label']),
        latitude=lat,
        longitude=lon,
        category=record.get('category'),
        radius_m=as_float(record.get('radius_m')),
    )


def _parse_event(record: Dict[str, Any], tz: Optional[str]) -> Optional[ScheduledEvent]:
    start_minutes = as_float(record.get('start_minutes'))
    if not record.get('id') or start_minutes is None:
        return None
    return ScheduledEvent(
        id=str(record['id']),
        title=record.get('title') or '',
        start_minutes=int(start_minutes),
        duration=int(_number(record.get('duration'))),
        category=record.get('category') or 'unknown',
        description=record.get('description') or '',
        meta=parse_meta(record.get('meta')),
    )


def _parse_summary(record: Dict[str, Any], tz: Optional[str]) -> Optional[HourlySummary]:
    hour_start = to_datetime(record.get('hour_start'), tz)
    if hour_start is None or not record.get('id'):
        return None
    apps = tuple(
        SummaryAppUsage(
            app_id=str(app['app_id']),
            display_name=app.get('display_name') or str(app['app_id']),
            category=app.get('category') or 'utility',
            minutes=_number(app.get('minutes')),
        )
        for app in record.get('app_breakdown') or ()
        if isinstance(app, dict) and app.get('app_id')
    )
    return HourlySummary(
        id=str(record['id']),
        hour_start=hour_start,
        primary_place_id=record.get('primary_place_id'),
        primary_place_label=record.get('primary_place_label'),
        primary_activity=record.get('primary_activity'),
        app_breakdown=apps,
        total_screen_minutes=_number(record.get('total_screen_minutes')),
        confidence_score=_number(record.get('confidence_score')),
        location_samples=int(_number(record.get('location_samples'))),
        geohash7=record.get('geohash7'),
        latitude=as_float(record.get('latitude')),
        longitude=as_float(record.get('longitude')),
        user_feedback=record.get('user_feedback'),
        locked_at=to_datetime(record.get('locked_at'), tz),
    )


_RECORD_PARSERS = {
    'screen_sessions': _parse_session,
    'workouts': _parse_workout,
    'sleep': _parse_sleep,
    'places': _parse_place,
    'events': _parse_event,
    'summaries': _parse_summary,
}


def load_day_export(file_path: Union[str, Path], timezone: Optional[str] = None) -> DayExport:
    """Load a per-day JSON export.

    Args:
        file_path: Path to the export file
        timezone: Timezone for timestamps when the export does not name one

    Returns:
        Parsed DayExport. Malformed records are skipped and counted.

    Raises:
        ExportError: If the file is missing, not JSON, or has no valid ``date``
    """
    file_path = Path(file_path)
    try:
        with open(file_path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except FileNotFoundError as e:
        raise ExportError(f"Export not found: {file_path}") from e
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ExportError(f"Invalid JSON in {file_path.name}: {e}") from e

    if not isinstance(data, dict):
        raise ExportError(f"{file_path.name}: expected a JSON object")
    try:
        day = date.fromisoformat(str(data.get('date')))
    except ValueError as e:
        raise ExportError(f"{file_path.name}: missing or invalid 'date'") from e

    tz = data.get('timezone') or timezone
    export = DayExport(day=day, timezone=tz)
    parsed: Dict[str, list] = {}
    for key, parser in _RECORD_PARSERS.items():
        items = []
        for record in data.get(key) or ():
            item = parser(record, tz) if isinstance(record, dict) else None
            if item is None:
                export.skipped += 1
            else:
                items.append(item)
        parsed[key] = items

    export.sessions = parsed['screen_sessions']
    export.workouts = parsed['workouts']
    export.sleep_periods = parsed['sleep']
    export.places = parsed['places']
    export.events = parsed['events']
    export.summaries = parsed['summaries']
    export.samples = [s for s in data.get('samples') or () if isinstance(s, dict)]
    export.location_hourly = [r for r in data.get('location_hourly') or () if isinstance(r, dict)]
    return export


# ----------------------------------------------------------------------
# Analyzer
# ----------------------------------------------------------------------

class TimelineAnalyzer:
    """Runs the day pipeline with components configured from YAML."""

    def __init__(self, config_path: Optional[Union[str, Path]] = "config.yaml", logger=None):
        """Initialize analyzer with configuration.

        Args:
            config_path: Path to YAML configuration file
            logger: Optional structlog logger shared by all components
        """
        self.config = load_config(config_path)
        self.log = logger or get_logger(__name__)
        self.timezone: str = self.config['timezone']

        seg_cfg = self.config['segmentation']
        same_place_m = self.config['matching']['same_place_meters']
        self.generator = SegmentGenerator(
            stay_radius_m=seg_cfg['stay_radius_meters'],
            max_sample_gap_minutes=seg_cfg['max_sample_gap_minutes'],
            min_segment_minutes=seg_cfg['min_segment_minutes'],
            min_commute_distance_m=seg_cfg['min_commute_distance_meters'],
            walking_kmh=seg_cfg['speed_bands']['walking'],
            cycling_kmh=seg_cfg['speed_bands']['cycling'],
            default_place_radius_m=seg_cfg['default_place_radius_meters'],
            place_match_threshold=seg_cfg['place_match_threshold'],
            max_merge_gap_minutes=seg_cfg['max_merge_gap_minutes'],
            same_place_m=same_place_m,
            app_overrides=seg_cfg['app_overrides'],
            logger=self.log,
        )
        self.builder = BlockBuilder(same_place_m=same_place_m, logger=self.log)

        gap_cfg = self.config['gap_filling']
        self.gap_filler = GapFiller(
            min_gap_minutes=gap_cfg['min_gap_minutes'],
            max_carry_forward_hours=gap_cfg['max_carry_forward_hours'],
            travel_buffer_minutes=gap_cfg['travel_buffer_minutes'],
            confidence_decay=gap_cfg['confidence_decay'],
            confidence_floor=gap_cfg['confidence_floor'],
            same_place_m=same_place_m,
            logger=self.log,
        )

        inf_cfg = self.config['place_inference']
        self.place_inferrer = PlaceInferrer(
            overnight_start=inf_cfg['overnight_hours']['start'],
            overnight_end=inf_cfg['overnight_hours']['end'],
            work_start=inf_cfg['work_hours']['start'],
            work_end=inf_cfg['work_hours']['end'],
            min_overnight_hours=inf_cfg['min_overnight_hours'],
            min_work_hours=inf_cfg['min_work_hours'],
            min_frequent_days=inf_cfg['min_frequent_days'],
            timezone=self.timezone,
            logger=self.log,
        )

    def day_window(self, day: date, timezone: Optional[str] = None) -> Interval:
        start = pd.Timestamp(day.year, day.month, day.day).tz_localize(timezone or self.timezone)
        return start.to_pydatetime(), (start + timedelta(days=1)).to_pydatetime()

    def analyze_day(
        self,
        day: date,
        samples: Sequence[Any] = (),
        sessions: Sequence[ScreenTimeSession] = (),
        workouts: Sequence[Workout] = (),
        places: Sequence[UserPlace] = (),
        events: Sequence[ScheduledEvent] = (),
        summaries: Sequence[HourlySummary] = (),
        location_hourly: Sequence[Dict[str, Any]] = (),
        sleep_periods: Sequence[Interval] = (),
        inferred_places: Optional[Dict[str, InferredPlace]] = None,
        timezone: Optional[str] = None,
    ) -> DayTimeline:
        """Run the full pipeline for one day.

        Args:
            day: Local calendar day
            samples: Raw location samples (dicts or LocationSample)
            sessions: Screen-time sessions
            workouts: Health workouts
            places: User-labelled places
            events: The user's actual events for the day
            summaries: Hourly summaries (fallback when there are no segments)
            location_hourly: Multi-day hourly rows for place inference
            sleep_periods: (start, end) intervals the user was asleep
            inferred_places: Precomputed inferred places; skips inference
            timezone: Overrides the configured timezone

        Returns:
            DayTimeline; empty lists when there is no data
        """
        tz = timezone or self.timezone
        window_start, window_end = self.day_window(day, tz)

        df = normalize_samples(
            samples,
            tz=tz,
            max_accuracy_m=self.config['segmentation']['max_accuracy_meters'],
            logger=self.log,
        )
        if not df.empty:
            in_day = (df['recorded_at'] >= window_start) & (df['recorded_at'] < window_end)
            df = df[in_day].reset_index(drop=True)

        if inferred_places is None:
            inferred_places = infer_places(location_hourly, self.place_inferrer)
        summaries = [
            replace(s, inferred_place=inferred_places[s.geohash7])
            if s.inferred_place is None and s.geohash7 in inferred_places else s
            for s in summaries
        ]

        segments = self.generator.generate(
            df,
            places=places,
            inferred_places=inferred_places,
            sessions=sessions,
            workouts=workouts,
            sleep_periods=sleep_periods,
            window_start=window_start,
            window_end=window_end,
        )
        blocks = self.builder.build_blocks(segments, summaries, inferred_places)
        blocks = self.gap_filler.fill_location_gaps(blocks, summaries)

        reviewer = ReviewBuilder(
            session_gap_minutes=self.config['review']['session_gap_minutes'],
            timezone=tz,
            logger=self.log,
        )
        review_blocks = reviewer.build(day, blocks, sessions, workouts, events)

        self.log.info(
            "day_analyzed",
            day=day.isoformat(),
            samples=len(df),
            segments=len(segments),
            blocks=len(blocks),
            review_blocks=len(review_blocks),
        )
        return DayTimeline(
            day=day,
            segments=segments,
            blocks=blocks,
            review_blocks=review_blocks,
            inferred_places=inferred_places,
        )

    def analyze_export(self, export: DayExport) -> DayTimeline:
        return self.analyze_day(
            export.day,
            samples=export.samples,
            sessions=export.sessions,
            workouts=export.workouts,
            places=export.places,
            events=export.events,
            summaries=export.summaries,
            location_hourly=export.location_hourly,
            sleep_periods=export.sleep_periods,
            timezone=export.timezone,
        )

    def run_analysis(self, data_path: Path) -> List[DayTimeline]:
        """Analyze every ``*.json`` export in a directory.

        Args:
            data_path: Directory containing per-day exports

        Returns:
            One DayTimeline per export that loaded, ordered by day
        """
        print("=" * 60)
        print("Daytrace - Day Timeline Analysis")
        print("=" * 60)
        print()

        timelines: List[DayTimeline] = []
        for file_path in sorted(Path(data_path).glob("*.json")):
            print(f"Loading {file_path.name}...")
            try:
                export = load_day_export(file_path, self.timezone)
            except ExportError as e:
                print(f"  Error loading {file_path.name}: {e}")
                continue
            if export.skipped:
                print(f"  Skipped {export.skipped} malformed records")

            timeline = self.analyze_export(export)
            print(f"  {export.day}: {len(timeline.segments)} segments, "
                  f"{len(timeline.blocks)} blocks, {len(timeline.review_blocks)} review blocks")
            timelines.append(timeline)

        timelines.sort(key=lambda t: t.day)
        print()
        print(f"Analyzed {len(timelines)} day(s)")
        return timelines


__all__ = ['DayExport', 'DayTimeline', 'TimelineAnalyzer', 'load_day_export']
