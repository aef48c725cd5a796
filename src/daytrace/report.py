"""Plain-text day report.

One report per analyzed day with:
- Summary counts (segments, blocks, carried-forward time)
- The block timeline, travel legs marked with their movement
- Time per place and top apps for the day
- Review blocks as they would appear on the review screen
- Inferred places used for labelling
"""

from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

import pandas as pd

from .analyzer import DayTimeline
from .models import LocationBlock
from .review import block_event_category


def _clock(moment: datetime) -> str:
    return moment.strftime('%H:%M')


def _minutes(total: float) -> str:
    total = int(round(total))
    hours, minutes = divmod(total, 60)
    return f"{hours}h {minutes:02d}m" if hours else f"{minutes}m"


class TimelineReportGenerator:
    """Generates text reports for analyzed days."""

    def __init__(self, config: Dict[str, Any]):
        """Initialize report generator.

        Args:
            config: Configuration dictionary
        """
        self.config = config

    def generate_report(self, timeline: DayTimeline, output_file: Optional[Path] = None) -> str:
        """Generate the day report.

        Args:
            timeline: Analyzed day
            output_file: Where to write the report; not written when None

        Returns:
            Report text
        """
        report: List[str] = []

        # Header
        report.append("=" * 80)
        report.append(f"DAY TIMELINE - {timeline.day.isoformat()}")
        report.append("=" * 80)
        report.append(f"Report Generated: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
        report.append(f"Timezone: {self.config.get('timezone', 'UTC')}")
        report.append("")

        if timeline.is_empty:
            report.append("No location or screen-time data for this day.")
            report.append("")
            report.append("=" * 80)
            return self._save(report, output_file)

        # Summary
        carried = sum(b.duration_minutes for b in timeline.blocks if b.is_carried_forward)
        travel = sum(b.duration_minutes for b in timeline.blocks if b.is_travel)
        report.append("SUMMARY")
        report.append("-" * 80)
        report.append(f"  Segments: {len(timeline.segments)}")
        report.append(f"  Location blocks: {len(timeline.blocks)}")
        report.append(f"  Review blocks: {len(timeline.review_blocks)}")
        report.append(f"  Time in transit: {_minutes(travel)}")
        report.append(f"  Carried-forward time: {_minutes(carried)}")
        report.append("")

        # Timeline
        report.append("TIMELINE")
        report.append("-" * 80)
        for block in timeline.blocks:
            report.append(self._block_line(block))
            if block.apps:
                top = ", ".join(f"{a.display_name} ({_minutes(a.total_minutes)})" for a in block.apps[:3])
                report.append(f"      apps: {top}")
        report.append("")

        # Time by place
        by_place = self._time_by_place(timeline.blocks)
        if not by_place.empty:
            report.append("TIME BY PLACE")
            report.append("-" * 80)
            for label, row in by_place.iterrows():
                report.append(f"  {label:<40} {_minutes(row['minutes']):>10}  ({int(row['blocks'])} block(s))")
            report.append("")

        # Top apps
        top_apps = self._top_apps(timeline.blocks)
        if not top_apps.empty:
            report.append("TOP APPS")
            report.append("-" * 80)
            for name, minutes in top_apps.items():
                report.append(f"  {name:<40} {_minutes(minutes):>10}")
            report.append("")

        # Review blocks
        if timeline.review_blocks:
            report.append("REVIEW")
            report.append("-" * 80)
            for tb in timeline.review_blocks:
                linked = " [linked to event]" if tb.event_id else ""
                report.append(f"  {tb.start_time:>8} - {tb.end_time:<8} {tb.source:<12} {tb.title}{linked}")
                if tb.activity_detected:
                    report.append(f"      {tb.activity_detected}")
            report.append("")

        # Inferred places
        if timeline.inferred_places:
            report.append("INFERRED PLACES")
            report.append("-" * 80)
            for place in timeline.inferred_places.values():
                report.append(
                    f"  {place.suggested_label} ({place.inferred_type}, "
                    f"{place.confidence:.0%}) - {place.reasoning}"
                )
            report.append("")

        report.append("=" * 80)
        return self._save(report, output_file)

    def _save(self, report: List[str], output_file: Optional[Path]) -> str:
        report_text = '\n'.join(report)
        if output_file is not None:
            with open(output_file, 'w', encoding='utf-8') as f:
                f.write(report_text)
            print(f"Report saved to {output_file}")
        return report_text

    def _block_line(self, block: LocationBlock) -> str:
        flags = []
        if block.is_carried_forward:
            flags.append("carried forward")
        if block.is_place_inferred:
            flags.append("inferred")
        if block.is_travel and block.distance_m:
            flags.append(f"{block.distance_m / 1000:.1f} km")
        suffix = f" [{', '.join(flags)}]" if flags else ""
        return (
            f"  {_clock(block.start_time)}-{_clock(block.end_time)}  "
            f"{block.location_label:<32} {_minutes(block.duration_minutes):>8}  "
            f"{block_event_category(block):<8} {block.confidence_score:.0%}{suffix}"
        )

    def _time_by_place(self, blocks: List[LocationBlock]) -> pd.DataFrame:
        """Minutes and block count per stationary place label."""
        rows = [
            {'label': b.location_label, 'minutes': b.duration_minutes}
            for b in blocks if not b.is_travel
        ]
        if not rows:
            return pd.DataFrame(columns=['minutes', 'blocks'])
        df = pd.DataFrame(rows)
        summary = df.groupby('label').agg(minutes=('minutes', 'sum'), blocks=('minutes', 'size'))
        return summary.sort_values('minutes', ascending=False)

    def _top_apps(self, blocks: List[LocationBlock], limit: int = 5) -> pd.Series:
        rows = [
            {'app': app.display_name, 'minutes': app.total_minutes}
            for b in blocks for app in b.apps
        ]
        if not rows:
            return pd.Series(dtype=float)
        df = pd.DataFrame(rows)
        return df.groupby('app')['minutes'].sum().sort_values(ascending=False).head(limit)


__all__ = ['TimelineReportGenerator']
