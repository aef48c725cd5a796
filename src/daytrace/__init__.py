"""Daytrace - day timeline segmentation and review."""

__version__ = "2.0.0"

from .analyzer import DayTimeline, TimelineAnalyzer, load_day_export
from .blocks import BlockBuilder
from .errors import ConfigError, DaytraceError, ExportError
from .gaps import GapFiller
from .matching import MatchReason, is_same_block_location, is_same_place
from .places import PlaceInferrer, infer_places
from .report import TimelineReportGenerator
from .review import build_review_time_blocks
from .segmenter import SegmentGenerator

__all__ = [
    "BlockBuilder",
    "ConfigError",
    "DayTimeline",
    "DaytraceError",
    "ExportError",
    "GapFiller",
    "MatchReason",
    "PlaceInferrer",
    "SegmentGenerator",
    "TimelineAnalyzer",
    "TimelineReportGenerator",
    "build_review_time_blocks",
    "infer_places",
    "is_same_block_location",
    "is_same_place",
    "load_day_export",
]
