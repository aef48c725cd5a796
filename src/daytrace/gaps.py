"""Carry-forward gap filling and consecutive-block merging.

Phones go quiet when parked: overnight at home, all afternoon at the office.
Left alone those silences show up as holes or "Unknown Location" blocks. The
gap filler carries the last known stationary place forward across them, with
reduced confidence, and the final merge folds the resulting runs of blocks at
one place into a single block.
"""

from dataclasses import replace
from datetime import datetime, timedelta
from typing import List, Optional, Sequence, Tuple, TypeVar

from .blocks import apps_from_summaries, merge_app_usage, sorted_apps, weighted_mode
from .logging_config import get_logger
from .matching import SAME_PLACE_DISTANCE_M, is_same_block_location
from .models import HourlySummary, LocationBlock

# Labels never carried forward (compared lowercased)
MEANINGLESS_LABELS = frozenset({'unknown location', 'unknown', 'location', 'in transit'})

T = TypeVar('T')


def has_meaningful_location(block: LocationBlock) -> bool:
    normalized = (block.location_label or '').strip().lower()
    return bool(normalized) and normalized not in MEANINGLESS_LABELS


def _label_key(block: LocationBlock) -> str:
    return (block.location_label or '').strip().lower()


def _concat_unique(first: Tuple[T, ...], second: Tuple[T, ...], key) -> Tuple[T, ...]:
    seen = {key(item) for item in first}
    return first + tuple(item for item in second if key(item) not in seen)


def _ms(moment: datetime) -> int:
    return int(moment.timestamp() * 1000)


def merge_blocks(a: LocationBlock, b: LocationBlock) -> LocationBlock:
    """Fold ``b`` into ``a``: extended range, summed usage, duration-weighted confidence."""
    dur_a, dur_b = a.duration_minutes, b.duration_minutes
    if dur_a + dur_b > 0:
        confidence = (a.confidence_score * dur_a + b.confidence_score * dur_b) / (dur_a + dur_b)
    else:
        confidence = (a.confidence_score + b.confidence_score) / 2

    place = a if has_meaningful_location(a) or not has_meaningful_location(b) else b
    return replace(
        a,
        location_label=place.location_label,
        location_category=place.location_category,
        inferred_place=place.inferred_place,
        is_place_inferred=place.is_place_inferred,
        start_time=min(a.start_time, b.start_time),
        end_time=max(a.end_time, b.end_time),
        apps=merge_app_usage(a.apps, b.apps),
        total_screen_minutes=a.total_screen_minutes + b.total_screen_minutes,
        total_location_samples=a.total_location_samples + b.total_location_samples,
        confidence_score=confidence,
        segments=_concat_unique(a.segments, b.segments, key=lambda s: s.id),
        summaries=_concat_unique(a.summaries, b.summaries, key=lambda s: s.id),
        summary_ids=_concat_unique(a.summary_ids, b.summary_ids, key=lambda s: s),
        has_user_feedback=a.has_user_feedback or b.has_user_feedback,
        is_locked=a.is_locked or b.is_locked,
        is_carried_forward=a.is_carried_forward and b.is_carried_forward,
    )


class GapFiller:
    """Fills data gaps by carrying the previous stationary place forward."""

    def __init__(
        self,
        min_gap_minutes: float = 30.0,
        max_carry_forward_hours: float = 16.0,
        travel_buffer_minutes: float = 30.0,
        confidence_decay: float = 0.6,
        confidence_floor: float = 0.3,
        same_place_m: float = SAME_PLACE_DISTANCE_M,
        logger=None,
    ):
        self.min_gap = timedelta(minutes=min_gap_minutes)
        self.max_carry_forward = timedelta(hours=max_carry_forward_hours)
        self.travel_buffer = timedelta(minutes=travel_buffer_minutes)
        self.confidence_decay = confidence_decay
        self.confidence_floor = confidence_floor
        self.same_place_m = same_place_m
        self.log = logger or get_logger(__name__)

    def decayed_confidence(self, confidence: float) -> float:
        return max(self.confidence_floor, confidence * self.confidence_decay)

    # ------------------------------------------------------------------
    # Carried-forward blocks
    # ------------------------------------------------------------------

    def carry_forward(
        self,
        source: LocationBlock,
        start: datetime,
        end: datetime,
        summaries: Sequence[HourlySummary] = (),
    ) -> Optional[LocationBlock]:
        """Synthetic block at ``source``'s place covering [start, end).

        App usage comes from the hourly summaries overlapping the range. There
        is no location evidence, so samples and segments are empty.
        """
        if end <= start or end - start > self.max_carry_forward:
            return None

        overlapping = tuple(s for s in summaries if s.hour_start < end and s.hour_end > start)
        return replace(
            source,
            id=f"{source.id}-carried-{_ms(start)}",
            start_time=start,
            end_time=end,
            apps=sorted_apps(apps_from_summaries(overlapping)),
            total_screen_minutes=sum(s.total_screen_minutes for s in overlapping),
            dominant_activity=weighted_mode([(s.primary_activity, 60) for s in overlapping]),
            confidence_score=self.decayed_confidence(source.confidence_score),
            total_location_samples=0,
            segments=(),
            summaries=overlapping,
            summary_ids=tuple(s.id for s in overlapping),
            has_user_feedback=False,
            is_locked=False,
            is_carried_forward=True,
        )

    def replace_unknown(self, block: LocationBlock, source: LocationBlock) -> Optional[LocationBlock]:
        """Relabel a placeholder stationary block with the previous known place.

        The block keeps its own time range and evidence. Returns None when the
        block is too long, or too far after the source, to assume the user
        stayed put.
        """
        if block.end_time - block.start_time > self.max_carry_forward:
            return None
        if block.start_time - source.end_time > self.max_carry_forward:
            return None
        return replace(
            block,
            location_label=source.location_label,
            location_category=source.location_category,
            inferred_place=source.inferred_place,
            is_place_inferred=source.is_place_inferred,
            place_id=source.place_id,
            geohash7=source.geohash7,
            latitude=source.latitude,
            longitude=source.longitude,
            confidence_score=self.decayed_confidence(source.confidence_score),
            is_carried_forward=True,
        )

    def _fill_between(
        self,
        current: LocationBlock,
        nxt: LocationBlock,
        summaries: Sequence[HourlySummary],
    ) -> Optional[LocationBlock]:
        if current.is_travel or not has_meaningful_location(current):
            return None

        gap_start = current.end_time
        gap_end = nxt.start_time
        gap = gap_end - gap_start
        if gap < self.min_gap or gap > self.max_carry_forward:
            return None

        if (not nxt.is_travel and has_meaningful_location(nxt)
                and _label_key(nxt) != _label_key(current)):
            self.log.debug(
                "gap_skipped",
                reason="location_changed",
                previous=current.location_label,
                next=nxt.location_label,
            )
            return None

        if nxt.is_travel:
            gap_end = gap_end - self.travel_buffer
            if gap_end - gap_start < self.min_gap:
                self.log.debug(
                    "gap_skipped",
                    reason="too_small_before_travel",
                    minutes=round((gap_end - gap_start).total_seconds() / 60),
                )
                return None

        filler = self.carry_forward(current, gap_start, gap_end, summaries)
        if filler is not None:
            self.log.debug(
                "gap_filled",
                label=current.location_label,
                start=gap_start.isoformat(),
                minutes=filler.duration_minutes,
            )
        return filler

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def fill_location_gaps(
        self,
        blocks: Sequence[LocationBlock],
        summaries: Sequence[HourlySummary] = (),
    ) -> List[LocationBlock]:
        """Replace placeholder blocks and fill gaps, then merge same-place runs.

        Args:
            blocks: Blocks for one day
            summaries: Hourly summaries, for app usage inside filled gaps

        Returns:
            Chronologically ordered, merged blocks
        """
        if not blocks:
            return []

        ordered = sorted(blocks, key=lambda b: b.start_time)
        result: List[LocationBlock] = []
        last_known: Optional[LocationBlock] = None

        for i, block in enumerate(ordered):
            current = block
            if block.is_travel:
                last_known = None
            elif not has_meaningful_location(block) and last_known is not None:
                replacement = self.replace_unknown(block, last_known)
                if replacement is not None:
                    self.log.debug(
                        "unknown_replaced",
                        block_id=block.id,
                        label=last_known.location_label,
                    )
                    current = replacement

            result.append(current)
            if not current.is_travel and has_meaningful_location(current):
                last_known = current

            if i + 1 < len(ordered):
                filler = self._fill_between(current, ordered[i + 1], summaries)
                if filler is not None:
                    result.append(filler)

        result.sort(key=lambda b: b.start_time)
        return self.merge_consecutive_blocks(result)

    def merge_consecutive_blocks(self, blocks: Sequence[LocationBlock]) -> List[LocationBlock]:
        """Merge neighbouring blocks that resolve to the same place.

        Blocks further apart than the carry-forward limit are never merged.
        """
        ordered = sorted(blocks, key=lambda b: b.start_time)
        merged: List[LocationBlock] = []
        for block in ordered:
            if merged:
                prev = merged[-1]
                close = block.start_time - prev.end_time <= self.max_carry_forward
                if close and is_same_block_location(prev, block, self.same_place_m):
                    merged[-1] = merge_blocks(prev, block)
                    continue
            merged.append(block)

        if len(merged) < len(ordered):
            self.log.debug("blocks_merged", before=len(ordered), after=len(merged))
        return merged
