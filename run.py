#!/usr/bin/env python3
"""Main entry point for day timeline analysis.

Runs the complete pipeline for every export in data/: segmentation → blocks →
gap filling → review reconciliation → text report.
"""

import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent / "src"))

from daytrace.analyzer import TimelineAnalyzer
from daytrace.logging_config import setup_logging
from daytrace.report import TimelineReportGenerator


def main():
    """Run complete analysis pipeline."""
    print("Daytrace Day Timeline Analysis")
    print("=" * 60)
    print()

    config_path = Path(__file__).parent / "config.yaml"
    if not config_path.exists():
        print(f"Note: Config file not found at {config_path}, using defaults.")

    analyzer = TimelineAnalyzer(config_path)
    log_cfg = analyzer.config['logging']
    setup_logging(level=log_cfg['level'], json_output=log_cfg['json'])

    data_path = Path(__file__).parent / "data"
    if not data_path.exists():
        print(f"Error: Data directory not found at {data_path}")
        print("Please create data/ directory and add day exports (*.json).")
        return 1

    timelines = analyzer.run_analysis(data_path)
    if not timelines:
        print("\nNo days analyzed. Please check data files.")
        return 1

    output_path = Path(__file__).parent / analyzer.config['output']['directory']
    output_path.mkdir(parents=True, exist_ok=True)

    print("\nGenerating reports...")
    report_gen = TimelineReportGenerator(analyzer.config)
    for timeline in timelines:
        report_gen.generate_report(timeline, output_path / f"day_{timeline.day.isoformat()}.txt")

    print("\n" + "=" * 60)
    print("ANALYSIS COMPLETE")
    print("=" * 60)
    print()
    for timeline in timelines:
        carried = sum(1 for b in timeline.blocks if b.is_carried_forward)
        print(f"  {timeline.day}: {len(timeline.blocks)} blocks "
              f"({carried} carried forward), {len(timeline.review_blocks)} review blocks")
    print()
    print(f"All outputs saved to: {output_path}")
    print()

    return 0


if __name__ == "__main__":
    sys.exit(main())
