#!/usr/bin/env python3
"""
Spatial Deck Pipeline Runner
============================
Main entry point for computing the tables and figures behind the slides.

Usage:
    # Run all stages with default config
    python -m spatial_deck.run_pipeline

    # Run with custom config
    python -m spatial_deck.run_pipeline --config path/to/config.yaml

    # Run one walkthrough scenario only
    python -m spatial_deck.run_pipeline --stages walkthrough --scenario spatial

    # Show current config
    python -m spatial_deck.run_pipeline --show-config

Available stages:
    1. walkthrough: Simulated scenarios (OLS, SEM, SLM, Moran's I)
    2. monte_carlo: Coverage, null and power studies
    3. tracts: Real-data variant (skipped unless tract_data is configured)
"""

import argparse
import sys
from datetime import datetime
from typing import List, Optional

from .config import PipelineConfig, load_config


def run_walkthrough_stage(config: PipelineConfig, scenario: Optional[str] = None):
    """Run walkthrough stage"""
    print("\n" + "=" * 60)
    print("STAGE 1: WALKTHROUGH SCENARIOS")
    print("=" * 60)

    from .analysis import run_all_walkthroughs

    names = [scenario] if scenario else list(config.scenarios)
    if not names:
        print("\n⚠ No scenarios configured; skipping")
        return
    for i, name in enumerate(names, 1):
        print(f"\n[1.{i}] Scenario '{name}'...")
        run_all_walkthroughs(config, [name])


def run_monte_carlo_stage(config: PipelineConfig, scenario: Optional[str] = None):
    """Run Monte Carlo stage"""
    print("\n" + "=" * 60)
    print("STAGE 2: MONTE CARLO STUDIES")
    print("=" * 60)

    from .analysis import run_monte_carlo

    print("\n[2.1] Coverage, null distribution and power...")
    run_monte_carlo(config)


def run_tracts_stage(config: PipelineConfig, scenario: Optional[str] = None):
    """Run tract-data stage"""
    print("\n" + "=" * 60)
    print("STAGE 3: TRACT DATA")
    print("=" * 60)

    if not config.tract_data.enabled:
        print("\n⚠ tract_data not configured; skipping")
        return

    from .analysis import run_tract_analysis

    print("\n[3.1] Contiguity weights and models...")
    run_tract_analysis(config)


STAGES = {
    'walkthrough': run_walkthrough_stage,
    'monte_carlo': run_monte_carlo_stage,
    'tracts': run_tracts_stage,
}

STAGE_ORDER = ['walkthrough', 'monte_carlo', 'tracts']


def run_pipeline(
    config_path: Optional[str] = None,
    stages: Optional[List[str]] = None,
    scenario: Optional[str] = None,
):
    """
    Run the spatial-deck pipeline.

    Args:
        config_path: Path to config file. If None, uses default.
        stages: List of stages to run. If None, runs all.
        scenario: Restrict the walkthrough stage to one scenario.
    """
    # Load config
    config = load_config(config_path)

    # Print header
    print("=" * 70)
    print("SPATIAL DECK - SPATIAL REGRESSION PIPELINE")
    print("=" * 70)
    print(f"Execution started: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    print("-" * 70)

    # Determine stages to run
    if stages is None:
        stages = STAGE_ORDER
    else:
        # Validate stages
        for stage in stages:
            if stage not in STAGES:
                print(f"Error: Unknown stage '{stage}'")
                print(f"Available stages: {', '.join(STAGE_ORDER)}")
                sys.exit(1)

    if scenario is not None and scenario not in config.scenarios:
        print(f"Error: Unknown scenario '{scenario}'")
        print(f"Available scenarios: {', '.join(config.scenarios)}")
        sys.exit(1)

    print(f"Stages to run: {', '.join(stages)}")

    # Run stages
    for stage in stages:
        try:
            STAGES[stage](config, scenario)
        except Exception as e:
            print(f"\n✗ ERROR in stage '{stage}': {e}")
            import traceback
            traceback.print_exc()
            sys.exit(1)

    # Final summary
    print("\n" + "=" * 70)
    print("PIPELINE COMPLETED SUCCESSFULLY")
    print("=" * 70)
    print(f"Execution finished: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    print(f"\nOutput locations:")
    print(f"  Results: {config.paths.results}")
    print(f"  Assets: {config.paths.assets}")


def main(argv: Optional[List[str]] = None):
    """CLI entry point"""
    parser = argparse.ArgumentParser(
        description="Spatial Deck Pipeline Runner",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run all stages
  python -m spatial_deck.run_pipeline

  # Run with custom config
  python -m spatial_deck.run_pipeline --config config/pipeline.yaml

  # Run one scenario
  python -m spatial_deck.run_pipeline --stages walkthrough --scenario treatment

  # Show current config
  python -m spatial_deck.run_pipeline --show-config
"""
    )

    parser.add_argument(
        '--config', '-c',
        help='Path to configuration YAML file'
    )

    parser.add_argument(
        '--stages', '-s',
        nargs='+',
        choices=STAGE_ORDER,
        help='Stages to run (default: all)'
    )

    parser.add_argument(
        '--scenario',
        help='Run the walkthrough for this scenario only'
    )

    parser.add_argument(
        '--show-config',
        action='store_true',
        help='Show current configuration and exit'
    )

    parser.add_argument(
        '--list-stages',
        action='store_true',
        help='List available stages and exit'
    )

    args = parser.parse_args(argv)

    # Handle info flags
    if args.list_stages:
        print("Available pipeline stages:")
        for i, stage in enumerate(STAGE_ORDER, 1):
            print(f"  {i}. {stage}")
        sys.exit(0)

    if args.show_config:
        config = load_config(args.config)
        print(config.summary())
        sys.exit(0)

    # Run pipeline
    run_pipeline(
        config_path=args.config,
        stages=args.stages,
        scenario=args.scenario,
    )


if __name__ == "__main__":
    main()
