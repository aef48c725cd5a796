"""
Shared fixtures for daytrace tests.

Provides:
- Pipeline components with default settings
- A user place set (home)
- Config and export files in a temporary directory
"""

import json
from pathlib import Path

import pytest

from daytrace.blocks import BlockBuilder
from daytrace.gaps import GapFiller
from daytrace.models import UserPlace
from daytrace.places import PlaceInferrer
from daytrace.review import ReviewBuilder
from daytrace.segmenter import SegmentGenerator
from helpers import HOME


# ─────────────────────────────────────────────────────────────────────────────
# Path Constants
# ─────────────────────────────────────────────────────────────────────────────

PROJECT_ROOT = Path(__file__).parent.parent
EXAMPLE_EXPORT = PROJECT_ROOT / "data" / "example_day.json"


# ─────────────────────────────────────────────────────────────────────────────
# Component Fixtures
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def generator() -> SegmentGenerator:
    return SegmentGenerator()


@pytest.fixture
def builder() -> BlockBuilder:
    return BlockBuilder()


@pytest.fixture
def gap_filler() -> GapFiller:
    return GapFiller()


@pytest.fixture
def reviewer() -> ReviewBuilder:
    return ReviewBuilder(timezone="UTC")


@pytest.fixture
def inferrer() -> PlaceInferrer:
    return PlaceInferrer(timezone="UTC")


# ─────────────────────────────────────────────────────────────────────────────
# Data Fixtures
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def home_place() -> UserPlace:
    return UserPlace(id="p-home", label="Home", latitude=HOME[0], longitude=HOME[1], category="home")


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    """A config file overriding only the timezone and the carry-forward limit."""
    path = tmp_path / "config.yaml"
    path.write_text(
        "timezone: UTC\n"
        "gap_filling:\n"
        "  max_carry_forward_hours: 12\n"
        "unknown_section:\n"
        "  ignored: true\n",
        encoding="utf-8",
    )
    return path


@pytest.fixture
def write_export(tmp_path: Path):
    """Write a day export dict to a JSON file and return its path."""

    def _write(data, name: str = "day.json") -> Path:
        path = tmp_path / name
        path.write_text(json.dumps(data), encoding="utf-8")
        return path

    return _write
