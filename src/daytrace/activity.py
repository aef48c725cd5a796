"""App categories, activity inference and segment confidence.

Pure rule-based classification of what the user was doing during a segment,
from the apps they used, where they were and whether a workout overlapped.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence

from .models import AppUsage, ScreenTimeSession

# App categories
WORK = 'work'
SOCIAL = 'social'
ENTERTAINMENT = 'entertainment'
COMMS = 'comms'
UTILITY = 'utility'
IGNORE = 'ignore'

# Keys are normalized app names (lowercase, trimmed)
DEFAULT_APP_CATEGORIES: Dict[str, str] = {
    # Work
    'slack': WORK,
    'google docs': WORK,
    'gmail': WORK,
    'google meet': WORK,
    'zoom': WORK,
    'calendar': WORK,
    'google calendar': WORK,
    'figma': WORK,
    'notion': WORK,
    'linear': WORK,
    'vs code': WORK,
    'visual studio code': WORK,
    'xcode': WORK,
    'android studio': WORK,
    'teams': WORK,
    'microsoft teams': WORK,
    'outlook': WORK,
    'google sheets': WORK,
    'excel': WORK,
    'word': WORK,
    'powerpoint': WORK,
    'keynote': WORK,
    'jira': WORK,
    'asana': WORK,
    'trello': WORK,
    'confluence': WORK,
    'github': WORK,
    'gitlab': WORK,
    'terminal': WORK,
    'miro': WORK,
    'google drive': WORK,
    'dropbox': WORK,
    'obsidian': WORK,
    'evernote': WORK,
    'airtable': WORK,
    'loom': WORK,
    # Social
    'instagram': SOCIAL,
    'tiktok': SOCIAL,
    'twitter': SOCIAL,
    'reddit': SOCIAL,
    'facebook': SOCIAL,
    'snapchat': SOCIAL,
    'linkedin': SOCIAL,
    'threads': SOCIAL,
    'mastodon': SOCIAL,
    'bluesky': SOCIAL,
    'pinterest': SOCIAL,
    'tumblr': SOCIAL,
    'discord': SOCIAL,
    'strava': SOCIAL,
    'goodreads': SOCIAL,
    # Entertainment
    'youtube': ENTERTAINMENT,
    'netflix': ENTERTAINMENT,
    'spotify': ENTERTAINMENT,
    'apple music': ENTERTAINMENT,
    'twitch': ENTERTAINMENT,
    'disney+': ENTERTAINMENT,
    'podcasts': ENTERTAINMENT,
    'hulu': ENTERTAINMENT,
    'hbo max': ENTERTAINMENT,
    'prime video': ENTERTAINMENT,
    'apple tv': ENTERTAINMENT,
    'plex': ENTERTAINMENT,
    'audible': ENTERTAINMENT,
    'kindle': ENTERTAINMENT,
    'apple news': ENTERTAINMENT,
    'google news': ENTERTAINMENT,
    'soundcloud': ENTERTAINMENT,
    'candy crush': ENTERTAINMENT,
    'roblox': ENTERTAINMENT,
    'minecraft': ENTERTAINMENT,
    'pokemon go': ENTERTAINMENT,
    'steam': ENTERTAINMENT,
    # Comms
    'messages': COMMS,
    'imessage': COMMS,
    'whatsapp': COMMS,
    'telegram': COMMS,
    'signal': COMMS,
    'phone': COMMS,
    'facetime': COMMS,
    'skype': COMMS,
    'viber': COMMS,
    'wechat': COMMS,
    'messenger': COMMS,
    'mail': COMMS,
    'apple mail': COMMS,
    'spark': COMMS,
    'proton mail': COMMS,
    'contacts': COMMS,
    # Utility
    'maps': UTILITY,
    'google maps': UTILITY,
    'waze': UTILITY,
    'photos': UTILITY,
    'weather': UTILITY,
    'calculator': UTILITY,
    'settings': UTILITY,
    'files': UTILITY,
    'notes': UTILITY,
    'reminders': UTILITY,
    'wallet': UTILITY,
    'health': UTILITY,
    'clock': UTILITY,
    'translate': UTILITY,
    'app store': UTILITY,
    'safari': UTILITY,
    'chrome': UTILITY,
    'firefox': UTILITY,
    '1password': UTILITY,
    'uber': UTILITY,
    'amazon': UTILITY,
    # System processes, never counted
    'springboard': IGNORE,
    'siri': IGNORE,
    'screen time': IGNORE,
    'control center': IGNORE,
    'notification center': IGNORE,
    'app switcher': IGNORE,
    'system settings': IGNORE,
    'spotlight': IGNORE,
    'launchpad': IGNORE,
    'login window': IGNORE,
    'software update': IGNORE,
}

# Inferred activity types
WORKOUT = 'workout'
SLEEP = 'sleep'
COMMUTE = 'commute'
DEEP_WORK = 'deep_work'
COLLABORATIVE_WORK = 'collaborative_work'
MEETING = 'meeting'
DISTRACTED_TIME = 'distracted_time'
LEISURE = 'leisure'
EXTENDED_SOCIAL = 'extended_social'
SOCIAL_BREAK = 'social_break'
PERSONAL_TIME = 'personal_time'
AWAY_FROM_DESK = 'away_from_desk'
OFFLINE_ACTIVITY = 'offline_activity'
MIXED_ACTIVITY = 'mixed_activity'

# Work hours for distraction detection (weekdays, local time)
WORK_HOURS_START = 9
WORK_HOURS_END = 18


@dataclass(frozen=True, slots=True)
class HealthContext:
    """Health signals overlapping a segment."""

    has_workout: bool = False
    workout_type: Optional[str] = None
    is_sleeping: bool = False


def normalize_app_key(app_id: Optional[str]) -> str:
    return (app_id or '').strip().lower()


def get_app_category(app_id: str, overrides: Optional[Dict[str, str]] = None) -> str:
    """Category for an app, checking user overrides first.

    Lookup order: user override, exact default, partial default match in either
    direction. Unknown apps are ``utility``.
    """
    key = normalize_app_key(app_id)
    if not key:
        return UTILITY

    if overrides:
        override = overrides.get(key)
        if override:
            return override

    category = DEFAULT_APP_CATEGORIES.get(key)
    if category:
        return category

    for known, category in DEFAULT_APP_CATEGORIES.items():
        if known in key or key in known:
            return category

    return UTILITY


def _overlap_seconds(start: datetime, end: datetime, range_start: datetime, range_end: datetime) -> int:
    overlap = (min(end, range_end) - max(start, range_start)).total_seconds()
    return round(overlap) if overlap > 0 else 0


def calculate_app_breakdown(
    sessions: Iterable[ScreenTimeSession],
    range_start: datetime,
    range_end: datetime,
    overrides: Optional[Dict[str, str]] = None,
) -> List[AppUsage]:
    """Seconds per app for the part of each session inside the range.

    Ignored apps are skipped. Sorted by seconds, longest first.
    """
    usage: Dict[str, AppUsage] = {}
    for session in sessions:
        seconds = _overlap_seconds(session.started_at, session.ended_at, range_start, range_end)
        if seconds <= 0:
            continue
        category = get_app_category(session.app_id, overrides)
        if category == IGNORE:
            continue
        existing = usage.get(session.app_id)
        if existing is None:
            usage[session.app_id] = AppUsage(
                app_id=session.app_id,
                display_name=session.display_name or session.app_id,
                category=category,
                seconds=seconds,
            )
        else:
            usage[session.app_id] = AppUsage(
                app_id=existing.app_id,
                display_name=existing.display_name,
                category=existing.category,
                seconds=existing.seconds + seconds,
            )
    return sorted(usage.values(), key=lambda a: a.seconds, reverse=True)


def _category_seconds(breakdown: Sequence[AppUsage]) -> Dict[str, float]:
    totals: Dict[str, float] = {}
    for app in breakdown:
        totals[app.category] = totals.get(app.category, 0) + app.seconds
    return totals


def dominant_app_category(breakdown: Sequence[AppUsage]) -> Optional[str]:
    totals = _category_seconds(breakdown)
    dominant = None
    best = 0.0
    for category, seconds in totals.items():
        if seconds > best:
            best = seconds
            dominant = category
    return dominant


def category_share(breakdown: Sequence[AppUsage], category: str) -> float:
    total = sum(app.seconds for app in breakdown)
    if total == 0:
        return 0.0
    return sum(app.seconds for app in breakdown if app.category == category) / total


def category_consensus(breakdown: Sequence[AppUsage]) -> float:
    """Share of screen time held by the dominant category (0-1)."""
    total = sum(app.seconds for app in breakdown)
    if total == 0:
        return 0.0
    return max(_category_seconds(breakdown).values()) / total


def is_work_hours(moment: datetime) -> bool:
    if moment.weekday() >= 5:
        return False
    return WORK_HOURS_START <= moment.hour < WORK_HOURS_END


def infer_activity_type(
    place_category: Optional[str],
    breakdown: Sequence[AppUsage],
    moment: datetime,
    health: Optional[HealthContext] = None,
) -> str:
    """Infer what the user was doing.

    Priority: health data (workout, sleep), then commute, then app usage,
    then low screen time at a known place.

    Args:
        place_category: Category of the matched place, or 'commute'
        breakdown: App usage inside the segment
        moment: Segment start in local time
        health: Overlapping health signals

    Returns:
        One of the inferred activity type constants
    """
    if health is not None and health.has_workout:
        return WORKOUT
    if health is not None and health.is_sleeping:
        return SLEEP

    if place_category == COMMUTE:
        return COMMUTE

    dominant = dominant_app_category(breakdown)
    screen_minutes = round(sum(app.seconds for app in breakdown) / 60)

    if dominant == WORK and screen_minutes > 30:
        if category_share(breakdown, COMMS) > 0.4:
            return COLLABORATIVE_WORK
        return DEEP_WORK

    if dominant == COMMS and screen_minutes > 20:
        return MEETING

    if dominant == ENTERTAINMENT:
        return DISTRACTED_TIME if is_work_hours(moment) else LEISURE

    if dominant == SOCIAL:
        return EXTENDED_SOCIAL if screen_minutes > 30 else SOCIAL_BREAK

    if screen_minutes < 5:
        if place_category == 'home':
            return PERSONAL_TIME
        if place_category == 'work':
            return AWAY_FROM_DESK
        return OFFLINE_ACTIVITY

    return MIXED_ACTIVITY


def calculate_confidence_score(
    location_samples: int,
    screen_sessions: int,
    place_match_ratio: float,
    app_consensus: float,
) -> float:
    """Segment confidence in [0, 1].

    Location evidence contributes up to 0.4, session count up to 0.3 and
    app category agreement up to 0.3.
    """
    score = 0.0
    if location_samples >= 10:
        score += 0.4 * min(1.0, place_match_ratio)
    elif location_samples >= 5:
        score += 0.2 * min(1.0, place_match_ratio)

    if screen_sessions >= 5:
        score += 0.3
    elif screen_sessions >= 2:
        score += 0.15

    score += 0.3 * app_consensus
    return min(1.0, max(0.0, score))


def location_confidence(sample_count: int, match_ratio: float, match_threshold: float = 0.7) -> float:
    """Confidence of a location segment from its sample count and place match."""
    count_confidence = min(0.6, 0.3 + (sample_count / 10) * 0.3)
    bonus = 0.0
    if match_ratio >= match_threshold:
        bonus = min(0.4, 0.1 + (match_ratio - match_threshold) / 0.3 * 0.3)
    return min(1.0, count_confidence + bonus)
