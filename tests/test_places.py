"""Tests for daytrace.places home / work / frequent place inference."""

import pytest

from daytrace.places import FREQUENT, HOME, UNKNOWN, WORK, PlaceInferrer, infer_places
from helpers import at

HOME_GH = "u173z5c"
OFFICE_GH = "u173zx0"
CAFE_GH = "u173zh1"


def row(day, hour, geohash7, **extra):
    """One location-hourly row; ``day`` counts from Monday 2 March 2026."""
    data = {'hour_start': at(hours=day * 24 + hour).isoformat(), 'geohash7': geohash7,
            'latitude': 52.36, 'longitude': 4.88}
    data.update(extra)
    return data


@pytest.fixture
def week_rows():
    """Three weekdays: nights and evenings at home, 9-17 at the office, one cafe."""
    rows = []
    for day in range(3):
        rows += [row(day, h, HOME_GH) for h in range(0, 6)]
        rows += [row(day, h, HOME_GH) for h in range(19, 22)]
        rows += [row(day, h, OFFICE_GH, google_place_name="Canal Office") for h in range(9, 17)]
    rows += [row(0, 18, CAFE_GH), row(2, 18, CAFE_GH)]
    rows.append(row(1, 20, "u173aaa"))
    return rows


# ─────────────────────────────────────────────────────────────────────────────
# Clusters
# ─────────────────────────────────────────────────────────────────────────────


class TestBuildClusters:
    def test_counts(self, inferrer, week_rows):
        clusters = inferrer.build_clusters(inferrer.rows_to_frame(week_rows))
        home = clusters[clusters['geohash7'] == HOME_GH].iloc[0]
        assert home['total_hours'] == 27
        assert home['overnight_hours'] == 18
        assert home['work_hours'] == 0
        assert home['distinct_days'] == 3

        office = clusters[clusters['geohash7'] == OFFICE_GH].iloc[0]
        assert office['work_hours'] == 24
        assert office['google_place_name'] == "Canal Office"

    def test_sorted_by_total_hours(self, inferrer, week_rows):
        clusters = inferrer.build_clusters(inferrer.rows_to_frame(week_rows))
        assert list(clusters['geohash7'])[:2] == [HOME_GH, OFFICE_GH]

    def test_weekend_hours_are_not_work(self, inferrer):
        saturday = [row(5, h, OFFICE_GH) for h in range(9, 17)]
        clusters = inferrer.build_clusters(inferrer.rows_to_frame(saturday))
        assert clusters.iloc[0]['work_hours'] == 0
        assert clusters.iloc[0]['weekend_hours'] == 8

    def test_hours_taken_in_timezone(self):
        """21:00 UTC is 22:00 in Amsterdam, so it counts as overnight there."""
        rows = [row(0, 21, HOME_GH)]
        utc = PlaceInferrer(timezone="UTC")
        amsterdam = PlaceInferrer(timezone="Europe/Amsterdam")
        assert utc.build_clusters(utc.rows_to_frame(rows)).iloc[0]['overnight_hours'] == 0
        assert amsterdam.build_clusters(amsterdam.rows_to_frame(rows)).iloc[0]['overnight_hours'] == 1

    def test_centroid_object(self, inferrer):
        rows = [{'hour_start': at(3).isoformat(), 'geohash7': HOME_GH,
                 'centroid': {'type': 'Point', 'coordinates': [4.88, 52.36]}}]
        df = inferrer.rows_to_frame(rows)
        assert df.iloc[0]['latitude'] == pytest.approx(52.36)
        assert df.iloc[0]['longitude'] == pytest.approx(4.88)

    def test_unusable_rows_dropped(self, inferrer):
        rows = [{'hour_start': 'not a time', 'geohash7': HOME_GH}, {'hour_start': at(3).isoformat()}]
        assert inferrer.rows_to_frame(rows).empty


# ─────────────────────────────────────────────────────────────────────────────
# Classification
# ─────────────────────────────────────────────────────────────────────────────


class TestClassify:
    """Home, work, frequent and unknown places with their confidence formulas."""

    def test_empty(self, inferrer):
        assert inferrer.infer([]) == []

    def test_home(self, inferrer, week_rows):
        place = infer_places(week_rows, inferrer)[HOME_GH]
        assert place.inferred_type == HOME
        assert place.suggested_label == "Home"
        assert place.confidence == pytest.approx(0.6 + (18 / 27) * 0.35)
        assert place.reasoning.startswith("Dominant overnight location: 18h overnight (67%")

    def test_work(self, inferrer, week_rows):
        place = infer_places(week_rows, inferrer)[OFFICE_GH]
        assert place.inferred_type == WORK
        assert place.suggested_label == "Canal Office"
        assert place.confidence == pytest.approx(0.9)
        assert place.reasoning == "Dominant work-hours location: 24h during 9:00-17:00 weekdays"

    def test_work_reasoning_uses_configured_hours(self, week_rows):
        inferrer = PlaceInferrer(work_start=8, work_end=18, timezone="UTC")
        assert "8:00-18:00" in infer_places(week_rows, inferrer)[OFFICE_GH].reasoning

    def test_frequent(self, inferrer, week_rows):
        place = infer_places(week_rows, inferrer)[CAFE_GH]
        assert place.inferred_type == FREQUENT
        assert place.suggested_label == "Frequent Location"
        assert place.confidence == pytest.approx(0.55)
        assert place.reasoning == "Visited 2 different days, 2h total"

    def test_unknown(self, inferrer, week_rows):
        place = infer_places(week_rows, inferrer)["u173aaa"]
        assert place.inferred_type == UNKNOWN
        assert place.suggested_label == "Location"
        assert place.confidence == pytest.approx(0.25)
        assert place.reasoning == "1h total, 1 day(s)"

    def test_sorted_by_confidence(self, inferrer, week_rows):
        places = inferrer.infer(week_rows)
        assert [p.geohash7 for p in places] == [OFFICE_GH, HOME_GH, CAFE_GH, "u173aaa"]

    def test_existing_label_wins(self, inferrer, week_rows):
        week_rows.append(row(1, 18, CAFE_GH, place_label="Coffee Club"))
        place = infer_places(week_rows, inferrer)[CAFE_GH]
        assert place.inferred_type == UNKNOWN
        assert place.suggested_label == "Coffee Club"
        assert place.existing_place_label == "Coffee Club"
        assert place.confidence == 1.0
        assert place.reasoning == "User-defined place"

    def test_home_assigned_once(self, inferrer):
        """The cluster seen first gets home; the dominant overnight spot falls back to unknown."""
        rows = [row(5, h, OFFICE_GH) for h in range(12, 24)]
        rows += [row(6, h, HOME_GH) for h in range(0, 3)]
        places = infer_places(rows, inferrer)

        first = places[OFFICE_GH]
        assert first.inferred_type == HOME
        assert first.confidence == pytest.approx(0.5 + (2 / 12) * 0.35)
        assert first.reasoning == "2h overnight across 1 days"

        second = places[HOME_GH]
        assert second.inferred_type == UNKNOWN
        assert second.confidence == pytest.approx(0.35)
        assert second.reasoning == "3h total, 1 day(s) · 3h overnight"

    def test_work_assigned_once(self, inferrer):
        rows = [row(0, h, CAFE_GH) for h in range(9, 12)] + [row(5, h, CAFE_GH) for h in range(10, 22)]
        rows += [row(1, h, OFFICE_GH) for h in range(9, 14)]
        places = infer_places(rows, inferrer)

        first = places[CAFE_GH]
        assert first.inferred_type == WORK
        assert first.suggested_label == "Work"
        assert first.confidence == pytest.approx(0.48)
        assert first.reasoning == "3h during work hours across 2 days"

        second = places[OFFICE_GH]
        assert second.inferred_type == UNKNOWN
        assert second.confidence == pytest.approx(0.45)
        assert second.reasoning == "5h total, 1 day(s) · 5h work hours"

    def test_coordinates_carried(self, inferrer, week_rows):
        place = infer_places(week_rows, inferrer)[HOME_GH]
        assert place.latitude == pytest.approx(52.36)
        assert place.total_hours == 27
        assert place.distinct_days == 3
