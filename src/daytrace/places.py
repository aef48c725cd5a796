"""Place inference from multi-day location-hourly rows.

Each row says "during this hour the phone was mostly in geohash X". Grouping
the rows by geohash7 gives clusters with overnight, work-hour and distinct-day
counts, from which home, work and frequently visited places are guessed.
"""

from typing import Any, Dict, Iterable, List, Optional

import pandas as pd

from .logging_config import get_logger
from .models import InferredPlace
from .samples import as_float, parse_timestamp

HOME = 'home'
WORK = 'work'
FREQUENT = 'frequent'
UNKNOWN = 'unknown'

MIN_HOURS_FOR_INFERENCE = 1


def _centroid_coords(row: Dict[str, Any]):
    """Pull (lat, lon) from a row, accepting flat keys or a centroid object."""
    lat = row.get('latitude', row.get('lat'))
    lon = row.get('longitude', row.get('lng', row.get('lon')))
    centroid = row.get('centroid')
    if (lat is None or lon is None) and isinstance(centroid, dict):
        coords = centroid.get('coordinates')
        if isinstance(coords, (list, tuple)) and len(coords) >= 2:
            # GeoJSON order
            lon, lat = coords[0], coords[1]
        else:
            lat = centroid.get('latitude', centroid.get('lat'))
            lon = centroid.get('longitude', centroid.get('lng', centroid.get('lon')))
    lat, lon = as_float(lat), as_float(lon)
    if lat is None or lon is None:
        return None, None
    return lat, lon


def _text(value: Any) -> Optional[str]:
    return value if isinstance(value, str) and value else None


class PlaceInferrer:
    """Infers home / work / frequent places from hourly geohash rows."""

    def __init__(
        self,
        overnight_start: int = 22,
        overnight_end: int = 6,
        work_start: int = 9,
        work_end: int = 17,
        min_overnight_hours: int = 2,
        min_work_hours: int = 3,
        min_frequent_days: int = 2,
        timezone: Optional[str] = None,
        logger=None,
    ):
        self.overnight_start = overnight_start
        self.overnight_end = overnight_end
        self.work_start = work_start
        self.work_end = work_end
        self.min_overnight_hours = min_overnight_hours
        self.min_work_hours = min_work_hours
        self.min_frequent_days = min_frequent_days
        self.timezone = timezone
        self.log = logger or get_logger(__name__)

    def rows_to_frame(self, rows: Iterable[Dict[str, Any]]) -> pd.DataFrame:
        """Normalize raw hourly rows into a DataFrame, dropping unusable ones."""
        records = []
        for row in rows:
            geohash7 = _text(row.get('geohash7'))
            hour_start = parse_timestamp(row.get('hour_start'), self.timezone)
            if geohash7 is None or hour_start is None:
                continue
            lat, lon = _centroid_coords(row)
            records.append({
                'geohash7': geohash7,
                'hour_start': hour_start,
                'latitude': lat,
                'longitude': lon,
                'place_label': _text(row.get('place_label')),
                'google_place_name': _text(row.get('google_place_name')),
            })
        df = pd.DataFrame(records, columns=[
            'geohash7', 'hour_start', 'latitude', 'longitude', 'place_label', 'google_place_name',
        ])
        df['latitude'] = df['latitude'].astype(float)
        df['longitude'] = df['longitude'].astype(float)
        return df

    def build_clusters(self, df: pd.DataFrame) -> pd.DataFrame:
        """Aggregate hourly rows into one row per geohash7."""
        hours = df['hour_start'].map(lambda ts: ts.hour)
        weekday = df['hour_start'].map(lambda ts: ts.dayofweek)
        is_weekend = weekday >= 5

        df = df.assign(
            day=df['hour_start'].map(lambda ts: ts.tz_convert('UTC').date()),
            overnight=(hours >= self.overnight_start) | (hours < self.overnight_end),
            work=(~is_weekend) & (hours >= self.work_start) & (hours < self.work_end),
            weekend=is_weekend,
        )

        def _last_text(series: pd.Series) -> Optional[str]:
            values = series.dropna()
            return values.iloc[-1] if len(values) else None

        grouped = df.sort_values('hour_start').groupby('geohash7', sort=False)
        clusters = grouped.agg(
            total_hours=('hour_start', 'size'),
            overnight_hours=('overnight', 'sum'),
            work_hours=('work', 'sum'),
            weekend_hours=('weekend', 'sum'),
            distinct_days=('day', 'nunique'),
            latitude=('latitude', 'mean'),
            longitude=('longitude', 'mean'),
            existing_place_label=('place_label', _last_text),
            google_place_name=('google_place_name', _last_text),
        ).reset_index()

        for col in ('total_hours', 'overnight_hours', 'work_hours', 'weekend_hours', 'distinct_days'):
            clusters[col] = clusters[col].astype(int)
        return clusters.sort_values('total_hours', ascending=False, kind='stable').reset_index(drop=True)

    def classify(self, clusters: pd.DataFrame) -> List[InferredPlace]:
        """Assign a place type to each cluster.

        Home and work are each assigned at most once, preferring the cluster
        with the most overnight (resp. work) hours.

        Returns:
            Places sorted by confidence, then total hours, descending
        """
        if clusters.empty:
            return []

        overnight = clusters[clusters['overnight_hours'] > 0]
        dominant_overnight = (
            overnight.sort_values('overnight_hours', ascending=False, kind='stable').iloc[0]['geohash7']
            if len(overnight) else None
        )
        working = clusters[clusters['work_hours'] > 0]
        dominant_work = (
            working.sort_values('work_hours', ascending=False, kind='stable').iloc[0]['geohash7']
            if len(working) else None
        )

        home_assigned = False
        work_assigned = False
        places: List[InferredPlace] = []

        for _, c in clusters.iterrows():
            total = int(c['total_hours'])
            if total < MIN_HOURS_FOR_INFERENCE:
                continue
            night = int(c['overnight_hours'])
            work = int(c['work_hours'])
            days = int(c['distinct_days'])
            google_name = _text(c['google_place_name'])
            existing = _text(c['existing_place_label'])

            if existing:
                kind, confidence, label = UNKNOWN, 1.0, existing
                reasoning = "User-defined place"
            elif not home_assigned and night >= self.min_overnight_hours:
                ratio = night / max(1, total)
                kind, label = HOME, 'Home'
                if c['geohash7'] == dominant_overnight:
                    confidence = min(0.95, 0.6 + ratio * 0.35)
                    reasoning = (f"Dominant overnight location: {night}h overnight "
                                 f"({round(ratio * 100)}% of time here)")
                else:
                    confidence = min(0.85, 0.5 + ratio * 0.35)
                    reasoning = f"{night}h overnight across {days} days"
                home_assigned = True
            elif not work_assigned and work >= self.min_work_hours:
                ratio = work / max(1, total)
                kind, label = WORK, google_name or 'Work'
                if c['geohash7'] == dominant_work:
                    confidence = min(0.90, 0.5 + ratio * 0.4)
                    reasoning = (f"Dominant work-hours location: {work}h during "
                                 f"{self.work_start}:00-{self.work_end}:00 weekdays")
                else:
                    confidence = min(0.80, 0.4 + ratio * 0.4)
                    reasoning = f"{work}h during work hours across {days} days"
                work_assigned = True
            elif days >= self.min_frequent_days:
                kind, label = FREQUENT, google_name or 'Frequent Location'
                confidence = min(0.75, 0.35 + days * 0.1)
                reasoning = f"Visited {days} different days, {total}h total"
            else:
                kind, label = UNKNOWN, google_name or 'Location'
                confidence = min(0.5, 0.2 + total * 0.05)
                reasoning = f"{total}h total, {days} day(s)"
                if night:
                    reasoning += f" · {night}h overnight"
                if work:
                    reasoning += f" · {work}h work hours"

            places.append(InferredPlace(
                geohash7=c['geohash7'],
                inferred_type=kind,
                suggested_label=label,
                confidence=confidence,
                reasoning=reasoning,
                latitude=None if pd.isna(c['latitude']) else float(c['latitude']),
                longitude=None if pd.isna(c['longitude']) else float(c['longitude']),
                existing_place_label=existing,
                total_hours=total,
                overnight_hours=night,
                work_hours=work,
                distinct_days=days,
            ))

        places.sort(key=lambda p: (p.confidence, p.total_hours), reverse=True)
        return places

    def infer(self, rows: Iterable[Dict[str, Any]]) -> List[InferredPlace]:
        df = self.rows_to_frame(rows)
        if df.empty:
            return []
        places = self.classify(self.build_clusters(df))
        self.log.debug(
            "places_inferred",
            hours=len(df),
            geohashes=df['geohash7'].nunique(),
            places=len(places),
        )
        return places


def infer_places(
    rows: Iterable[Dict[str, Any]],
    inferrer: Optional[PlaceInferrer] = None,
) -> Dict[str, InferredPlace]:
    """Infer places and index them by geohash7.

    Args:
        rows: Location-hourly rows (``hour_start``, ``geohash7``, optional
            ``latitude``/``longitude`` or ``centroid``, ``place_label``,
            ``google_place_name``)
        inferrer: Configured inferrer; defaults are used when omitted

    Returns:
        Mapping of geohash7 to InferredPlace
    """
    inferrer = inferrer or PlaceInferrer()
    return {place.geohash7: place for place in inferrer.infer(rows)}


__all__ = ['PlaceInferrer', 'infer_places', 'HOME', 'WORK', 'FREQUENT', 'UNKNOWN']
