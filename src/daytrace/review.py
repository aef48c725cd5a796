"""Review-screen time blocks: generated evidence reconciled with user events.

Candidates come from three sources (location blocks, coalesced screen-time
sessions and workouts). The user's own "actual" events always win: an
overlapping categorized event hides the candidate, an overlapping
``unknown`` event is attached to it, and unmatched ``unknown`` events are
shown on their own.
"""

import json
import math
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Sequence

import pandas as pd

from .logging_config import get_logger
from .models import LocationBlock, ScheduledEvent, ScreenTimeSession, TimeBlock, Workout

MINUTES_PER_DAY = 24 * 60
MIN_SESSION_GAP_MINUTES = 15
UNKNOWN_CATEGORY = 'unknown'

# Block place category -> calendar event category
EVENT_CATEGORIES = {
    'travel': 'travel',
    'home': 'routine',
    'office': 'work',
    'coworking': 'work',
    'school': 'work',
    'university': 'work',
    'gym': 'health',
    'fitness': 'health',
    'park': 'health',
    'recreation': 'health',
    'restaurant': 'meal',
    'cafe': 'meal',
    'bar': 'meal',
    'church': 'routine',
    'temple': 'routine',
    'mosque': 'routine',
    'store': 'free',
    'shopping': 'free',
}


def format_minutes_to_time(total_minutes: int) -> str:
    """Minutes from midnight as ``h:MM AM/PM``. 1440 wraps to 12:00 AM."""
    hours24 = (total_minutes // 60) % 24
    minutes = total_minutes % 60
    period = 'PM' if hours24 >= 12 else 'AM'
    hours12 = hours24 % 12 or 12
    return f"{hours12}:{minutes:02d} {period}"


def parse_meta(value: Any) -> Dict[str, Any]:
    """Decode an event ``meta`` blob. Anything unusable becomes ``{}``."""
    if isinstance(value, dict):
        return value
    if not isinstance(value, (str, bytes)) or not value:
        return {}
    try:
        decoded = json.loads(value)
    except (json.JSONDecodeError, UnicodeDecodeError):
        return {}
    return decoded if isinstance(decoded, dict) else {}


def block_event_category(block: LocationBlock) -> str:
    """Calendar category a location block would be filed under."""
    if block.is_travel:
        return 'travel'
    category = (block.location_category or '').lower()
    if not category and block.inferred_place is not None:
        category = block.inferred_place.inferred_type
    return EVENT_CATEGORIES.get(category, UNKNOWN_CATEGORY)


class ReviewBuilder:
    """Builds the review time blocks for one day."""

    def __init__(self, session_gap_minutes: float = MIN_SESSION_GAP_MINUTES,
                 timezone: Optional[str] = None, logger=None):
        self.session_gap_minutes = session_gap_minutes
        self.timezone = timezone
        self.log = logger or get_logger(__name__)

    def day_start(self, day: date) -> pd.Timestamp:
        return pd.Timestamp(day.year, day.month, day.day).tz_localize(self.timezone or 'UTC')

    @staticmethod
    def _offset_minutes(moment: datetime, day_start: pd.Timestamp) -> float:
        ts = pd.Timestamp(moment)
        if ts.tzinfo is None:
            ts = ts.tz_localize('UTC')
        return (ts - day_start).total_seconds() / 60

    def _clipped_range(self, start: datetime, end: datetime, day_start: pd.Timestamp):
        """(start, end) minutes clipped to the day, or None when outside it."""
        start_min = math.floor(self._offset_minutes(start, day_start))
        end_min = math.ceil(self._offset_minutes(end, day_start))
        if end_min <= 0 or start_min >= MINUTES_PER_DAY:
            return None
        return max(0, start_min), min(MINUTES_PER_DAY, end_min)

    # ------------------------------------------------------------------
    # Candidate sources
    # ------------------------------------------------------------------

    def location_candidates(self, day_start: pd.Timestamp,
                            blocks: Sequence[LocationBlock]) -> List[TimeBlock]:
        candidates = []
        for block in blocks:
            span = self._clipped_range(block.start_time, block.end_time, day_start)
            if span is None or span[1] <= span[0]:
                continue
            start, end = span
            candidates.append(TimeBlock(
                id=f"loc_{block.id}",
                source_id=f"location:{block.id}",
                source='location',
                title=block.location_label,
                description=block.location_category or '',
                duration=end - start,
                start_minutes=start,
                start_time=format_minutes_to_time(start),
                end_time=format_minutes_to_time(end),
                activity_detected=block.dominant_activity,
                location=block.location_label,
            ))
        return candidates

    def screen_time_candidates(self, day_start: pd.Timestamp,
                               sessions: Sequence[ScreenTimeSession]) -> List[TimeBlock]:
        """Coalesce sessions separated by less than the inactivity gap."""
        candidates: List[TimeBlock] = []
        window: Optional[Dict[str, Any]] = None

        def flush(w: Dict[str, Any]) -> None:
            if w['end'] <= w['start']:
                return
            usage = w['usage']
            top_app = max(usage, key=usage.get) if usage and max(usage.values()) > 0 else None
            if w['pickups'] > 0:
                detected = f"Phone unlocked {w['pickups']} times"
            else:
                detected = f"Screen time: {top_app}" if top_app else "Screen time"
            candidates.append(TimeBlock(
                id=f"screen_{w['start']}_{w['end']}",
                source_id=f"screen:{w['start']}:{w['end']}",
                source='screen_time',
                title='Screen Time',
                description=f"Top app: {top_app}" if top_app else '',
                duration=w['end'] - w['start'],
                start_minutes=w['start'],
                start_time=format_minutes_to_time(w['start']),
                end_time=format_minutes_to_time(w['end']),
                activity_detected=detected,
            ))

        for session in sorted(sessions, key=lambda s: s.started_at):
            span = self._clipped_range(session.started_at, session.ended_at, day_start)
            if span is None:
                continue
            start, end = span

            if window is not None and start - window['end'] > self.session_gap_minutes:
                flush(window)
                window = None
            if window is None:
                window = {'start': start, 'end': end, 'pickups': 0, 'usage': {}}
            else:
                window['end'] = max(window['end'], end)

            window['pickups'] += session.pickups or 0
            name = session.display_name or session.app_id
            window['usage'][name] = window['usage'].get(name, 0.0) + session.duration_seconds / 60

        if window is not None:
            flush(window)
        return candidates

    def workout_candidates(self, day_start: pd.Timestamp,
                           workouts: Sequence[Workout]) -> List[TimeBlock]:
        candidates = []
        for workout in workouts:
            span = self._clipped_range(workout.started_at, workout.ended_at, day_start)
            if span is None:
                continue
            start, end = span
            activity = workout.activity_type or 'Workout'
            candidates.append(TimeBlock(
                id=f"workout_{workout.id}",
                source_id=f"workout:{workout.id}",
                source='workout',
                title=activity,
                description=f"{round(workout.duration_seconds / 60)} min",
                duration=max(1, end - start),
                start_minutes=start,
                start_time=format_minutes_to_time(start),
                end_time=format_minutes_to_time(end),
                activity_detected=activity,
            ))
        return candidates

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------

    @staticmethod
    def find_overlapping_events(block: TimeBlock,
                                events: Sequence[ScheduledEvent]) -> List[ScheduledEvent]:
        """Every event sharing at least one minute with ``block``, in list order."""
        block_end = block.start_minutes + block.duration
        return [
            event for event in events
            if min(block_end, event.start_minutes + event.duration) > max(block.start_minutes, event.start_minutes)
        ]

    def build(
        self,
        day: date,
        location_blocks: Sequence[LocationBlock] = (),
        screen_sessions: Sequence[ScreenTimeSession] = (),
        workouts: Sequence[Workout] = (),
        actual_events: Sequence[ScheduledEvent] = (),
    ) -> List[TimeBlock]:
        day_start = self.day_start(day)
        candidates = (
            self.location_candidates(day_start, location_blocks)
            + self.screen_time_candidates(day_start, screen_sessions)
            + self.workout_candidates(day_start, workouts)
        )

        remaining_unknown = {e.id: e for e in actual_events if e.category == UNKNOWN_CATEGORY}
        result: List[TimeBlock] = []
        suppressed = 0

        for candidate in candidates:
            overlapping = self.find_overlapping_events(candidate, actual_events)
            if not overlapping:
                result.append(candidate)
                continue
            if any(e.category != UNKNOWN_CATEGORY for e in overlapping):
                suppressed += 1
                continue
            event = overlapping[0]
            remaining_unknown.pop(event.id, None)
            result.append(TimeBlock(
                id=candidate.id,
                source_id=candidate.source_id,
                source=candidate.source,
                title=event.title or candidate.title,
                description=event.description or candidate.description,
                duration=candidate.duration,
                start_minutes=candidate.start_minutes,
                start_time=candidate.start_time,
                end_time=candidate.end_time,
                activity_detected=candidate.activity_detected,
                location=candidate.location,
                event_id=event.id,
            ))

        for event in remaining_unknown.values():
            result.append(TimeBlock(
                id=f"unknown_{event.id}",
                source_id=f"unknown:{event.id}",
                source='unknown',
                title=event.title or 'Unknown',
                description=event.description or '',
                duration=event.duration,
                start_minutes=event.start_minutes,
                start_time=format_minutes_to_time(event.start_minutes),
                end_time=format_minutes_to_time(event.start_minutes + event.duration),
                activity_detected='No activity detected',
                event_id=event.id,
            ))

        self.log.debug(
            "review_blocks_built",
            day=day.isoformat(),
            candidates=len(candidates),
            suppressed=suppressed,
            blocks=len(result),
        )
        return sorted(result, key=lambda b: b.start_minutes)


def build_review_time_blocks(
    day: date,
    location_blocks: Sequence[LocationBlock] = (),
    screen_sessions: Sequence[ScreenTimeSession] = (),
    workouts: Sequence[Workout] = (),
    actual_events: Sequence[ScheduledEvent] = (),
    timezone: Optional[str] = None,
) -> List[TimeBlock]:
    """Reconcile generated evidence with the user's actual events for ``day``.

    Args:
        day: Local calendar day
        location_blocks: Gap-filled, merged location blocks
        screen_sessions: Raw screen-time sessions
        workouts: Health workouts
        actual_events: The user's own events, minutes from local midnight
        timezone: Timezone that defines local midnight (UTC when omitted)

    Returns:
        Time blocks sorted by start minute
    """
    return ReviewBuilder(timezone=timezone).build(
        day, location_blocks, screen_sessions, workouts, actual_events,
    )


__all__ = [
    'ReviewBuilder',
    'block_event_category',
    'build_review_time_blocks',
    'format_minutes_to_time',
    'parse_meta',
]
