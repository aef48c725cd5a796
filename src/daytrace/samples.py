"""Location sample normalization.

Raw fixes arrive as dicts (from exports) or ``LocationSample`` objects, with
the usual problems: unparseable timestamps, coordinates out of range, negative
accuracy from some Android builds, duplicate uploads. ``normalize_samples``
turns them into one clean, time-sorted DataFrame.
"""

import math
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Union

import pandas as pd

from .logging_config import get_logger
from .models import LocationSample

SAMPLE_COLUMNS = ['recorded_at', 'latitude', 'longitude', 'accuracy_m', 'speed_mps', 'heading_deg']

SampleLike = Union[LocationSample, Dict[str, Any]]


def parse_timestamp(value: Any, tz: Optional[str] = None) -> Optional[pd.Timestamp]:
    """Parse a timestamp into an aware ``pd.Timestamp``.

    Naive values are taken as UTC. The result is converted to ``tz`` (UTC
    when not given). Returns None for anything unparseable.
    """
    if value is None or value == '':
        return None
    try:
        ts = pd.Timestamp(value)
    except (ValueError, TypeError, OverflowError):
        return None
    if pd.isna(ts):
        return None
    if ts.tzinfo is None:
        ts = ts.tz_localize('UTC')
    return ts.tz_convert(tz or 'UTC')


def as_float(value: Any) -> Optional[float]:
    """Finite float from ``value``, or None for missing, boolean, NaN or infinite input."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _as_row(sample: SampleLike) -> Dict[str, Any]:
    if isinstance(sample, LocationSample):
        return {
            'recorded_at': sample.recorded_at,
            'latitude': sample.latitude,
            'longitude': sample.longitude,
            'accuracy_m': sample.accuracy_m,
            'speed_mps': sample.speed_mps,
            'heading_deg': sample.heading_deg,
        }
    return {
        'recorded_at': sample.get('recorded_at'),
        'latitude': sample.get('latitude', sample.get('lat')),
        'longitude': sample.get('longitude', sample.get('lng', sample.get('lon'))),
        'accuracy_m': sample.get('accuracy_m', sample.get('accuracy')),
        'speed_mps': sample.get('speed_mps', sample.get('speed')),
        'heading_deg': sample.get('heading_deg', sample.get('heading')),
    }


def _dedupe_key(row) -> str:
    ts_ms = int(row.recorded_at.timestamp() * 1000)
    acc = 'na' if pd.isna(row.accuracy_m) else str(round(row.accuracy_m))
    return f"{ts_ms}:{row.latitude:.5f}:{row.longitude:.5f}:{acc}"


def normalize_samples(
    samples: Iterable[SampleLike],
    tz: Optional[str] = None,
    max_accuracy_m: Optional[float] = None,
    logger=None,
) -> pd.DataFrame:
    """Clean, deduplicate and sort location samples.

    Args:
        samples: Raw samples (dicts or LocationSample)
        tz: Timezone the ``recorded_at`` column is converted to
        max_accuracy_m: Drop fixes with a worse reported accuracy
        logger: Optional structlog logger

    Returns:
        DataFrame with SAMPLE_COLUMNS, sorted by recorded_at. Absent optional
        values are NaN.
    """
    log = logger or get_logger(__name__)
    rows: List[Dict[str, Any]] = []
    dropped = 0

    for sample in samples:
        row = _as_row(sample)
        ts = parse_timestamp(row['recorded_at'], tz)
        lat = as_float(row['latitude'])
        lon = as_float(row['longitude'])
        if ts is None or lat is None or lon is None:
            dropped += 1
            continue
        if not (-90 <= lat <= 90) or not (-180 <= lon <= 180):
            dropped += 1
            continue

        accuracy = as_float(row['accuracy_m'])
        if accuracy is not None and accuracy < 0:
            accuracy = None
        if max_accuracy_m is not None and accuracy is not None and accuracy > max_accuracy_m:
            dropped += 1
            continue

        speed = as_float(row['speed_mps'])
        if speed is not None and speed < 0:
            speed = None

        heading = as_float(row['heading_deg'])
        if heading is not None:
            heading = heading % 360

        rows.append({
            'recorded_at': ts,
            'latitude': lat,
            'longitude': lon,
            'accuracy_m': accuracy,
            'speed_mps': speed,
            'heading_deg': heading,
        })

    if not rows:
        if dropped:
            log.debug("samples_dropped", dropped=dropped, kept=0)
        return pd.DataFrame(columns=SAMPLE_COLUMNS)

    df = pd.DataFrame(rows, columns=SAMPLE_COLUMNS)
    for col in ('accuracy_m', 'speed_mps', 'heading_deg'):
        df[col] = df[col].astype(float)

    df['_key'] = [_dedupe_key(row) for row in df.itertuples(index=False)]
    before = len(df)
    df = df.drop_duplicates(subset='_key').drop(columns=['_key'])
    duplicates = before - len(df)

    df = df.sort_values('recorded_at', kind='stable').reset_index(drop=True)

    if dropped or duplicates:
        log.debug("samples_dropped", dropped=dropped, duplicates=duplicates, kept=len(df))
    return df


def to_datetime(value: Any, tz: Optional[str] = None) -> Optional[datetime]:
    """Like ``parse_timestamp`` but returns a plain ``datetime``."""
    ts = parse_timestamp(value, tz)
    return None if ts is None else ts.to_pydatetime()


__all__ = [
    'SAMPLE_COLUMNS',
    'as_float',
    'normalize_samples',
    'parse_timestamp',
    'to_datetime',
]
