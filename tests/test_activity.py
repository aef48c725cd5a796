"""Tests for daytrace.activity app categories, activity inference and confidence."""

import pytest

from daytrace.activity import (
    COLLABORATIVE_WORK,
    COMMS,
    COMMUTE,
    DEEP_WORK,
    DISTRACTED_TIME,
    ENTERTAINMENT,
    EXTENDED_SOCIAL,
    LEISURE,
    MEETING,
    OFFLINE_ACTIVITY,
    PERSONAL_TIME,
    AWAY_FROM_DESK,
    SLEEP,
    SOCIAL,
    SOCIAL_BREAK,
    UTILITY,
    WORK,
    WORKOUT,
    HealthContext,
    calculate_app_breakdown,
    calculate_confidence_score,
    category_consensus,
    get_app_category,
    infer_activity_type,
    location_confidence,
)
from daytrace.models import AppUsage
from helpers import at, make_session


def usage(app_id, minutes, category):
    return AppUsage(app_id=app_id, display_name=app_id, category=category, seconds=minutes * 60)


# ─────────────────────────────────────────────────────────────────────────────
# App Categories
# ─────────────────────────────────────────────────────────────────────────────


class TestGetAppCategory:
    """Lookup order: override, exact, partial, utility."""

    @pytest.mark.parametrize("app_id,expected", [
        ("Slack", WORK),
        ("Instagram", SOCIAL),
        ("Netflix", ENTERTAINMENT),
        ("WhatsApp", COMMS),
        ("Google Maps", UTILITY),
    ])
    def test_exact_match(self, app_id, expected):
        assert get_app_category(app_id) == expected

    def test_partial_match_on_bundle_id(self):
        assert get_app_category("com.slack") == WORK

    def test_unknown_is_utility(self):
        assert get_app_category("xyzzy") == UTILITY

    def test_empty_is_utility(self):
        assert get_app_category("") == UTILITY

    def test_override_wins(self):
        assert get_app_category("YouTube", {"youtube": WORK}) == WORK


class TestAppBreakdown:
    """Per-app seconds clipped to the range."""

    def test_clipped_to_range(self):
        sessions = [make_session("Slack", at(8, 50), at(9, 20))]
        breakdown = calculate_app_breakdown(sessions, at(9), at(10))
        assert breakdown[0].seconds == 20 * 60

    def test_same_app_summed_and_sorted(self):
        sessions = [
            make_session("Slack", at(9), at(9, 10)),
            make_session("Netflix", at(9, 10), at(9, 40)),
            make_session("Slack", at(9, 40), at(9, 45)),
        ]
        breakdown = calculate_app_breakdown(sessions, at(9), at(10))
        assert [a.app_id for a in breakdown] == ["Netflix", "Slack"]
        assert breakdown[1].seconds == 15 * 60

    def test_ignored_apps_skipped(self):
        sessions = [make_session("SpringBoard", at(9), at(9, 30))]
        assert calculate_app_breakdown(sessions, at(9), at(10)) == []

    def test_outside_range_skipped(self):
        sessions = [make_session("Slack", at(7), at(8))]
        assert calculate_app_breakdown(sessions, at(9), at(10)) == []

    def test_consensus(self):
        breakdown = [usage("Slack", 30, WORK), usage("Netflix", 10, ENTERTAINMENT)]
        assert category_consensus(breakdown) == pytest.approx(0.75)
        assert category_consensus([]) == 0.0


# ─────────────────────────────────────────────────────────────────────────────
# Activity Inference
# ─────────────────────────────────────────────────────────────────────────────


class TestInferActivityType:
    """Priority: health, commute, apps, place."""

    def test_workout_beats_everything(self):
        health = HealthContext(has_workout=True, workout_type="Running")
        assert infer_activity_type(COMMUTE, [usage("Slack", 60, WORK)], at(10), health) == WORKOUT

    def test_sleep(self):
        assert infer_activity_type("home", [], at(2), HealthContext(is_sleeping=True)) == SLEEP

    def test_commute(self):
        assert infer_activity_type(COMMUTE, [usage("Netflix", 20, ENTERTAINMENT)], at(8)) == COMMUTE

    def test_deep_work(self):
        assert infer_activity_type(None, [usage("Slack", 40, WORK)], at(10)) == DEEP_WORK

    def test_collaborative_work(self):
        breakdown = [usage("Slack", 50, WORK), usage("WhatsApp", 45, COMMS)]
        assert infer_activity_type(None, breakdown, at(10)) == COLLABORATIVE_WORK

    def test_meeting(self):
        assert infer_activity_type(None, [usage("WhatsApp", 25, COMMS)], at(10)) == MEETING

    @pytest.mark.parametrize("hour,expected", [(10, DISTRACTED_TIME), (20, LEISURE)])
    def test_entertainment_depends_on_work_hours(self, hour, expected):
        assert infer_activity_type(None, [usage("Netflix", 15, ENTERTAINMENT)], at(hour)) == expected

    def test_weekend_entertainment_is_leisure(self):
        saturday = at(hours=5 * 24 + 10)
        assert infer_activity_type(None, [usage("Netflix", 15, ENTERTAINMENT)], saturday) == LEISURE

    @pytest.mark.parametrize("minutes,expected", [(40, EXTENDED_SOCIAL), (10, SOCIAL_BREAK)])
    def test_social(self, minutes, expected):
        assert infer_activity_type(None, [usage("Instagram", minutes, SOCIAL)], at(12)) == expected

    @pytest.mark.parametrize("category,expected", [
        ("home", PERSONAL_TIME),
        ("work", AWAY_FROM_DESK),
        (None, OFFLINE_ACTIVITY),
    ])
    def test_low_screen_time_by_place(self, category, expected):
        assert infer_activity_type(category, [], at(12)) == expected


# ─────────────────────────────────────────────────────────────────────────────
# Confidence
# ─────────────────────────────────────────────────────────────────────────────


class TestConfidence:
    """Segment and location confidence scores."""

    def test_full_evidence_caps_at_one(self):
        assert calculate_confidence_score(20, 6, 1.0, 1.0) == pytest.approx(1.0)

    def test_no_evidence_is_zero(self):
        assert calculate_confidence_score(0, 0, 0.0, 0.0) == 0.0

    def test_few_samples_count_half(self):
        assert calculate_confidence_score(6, 0, 1.0, 0.0) == pytest.approx(0.2)

    def test_location_confidence_with_place_match(self):
        assert location_confidence(10, 1.0) == pytest.approx(1.0)

    def test_location_confidence_without_match(self):
        assert location_confidence(0, 0.0) == pytest.approx(0.3)
        assert location_confidence(20, 0.5) == pytest.approx(0.6)
