#!/usr/bin/env python3
"""
StackPlace CLI

Command-line interface for the 3D-stacked IC floorplanner.

Usage:
    stackplace run <design.yaml> [options]
    stackplace validate <design.yaml>
    stackplace thermal <design.yaml>
"""

import argparse
import json
import signal
import sys
import threading
from pathlib import Path
from typing import Optional


def load_design_or_report(path: str, profile: Optional[str] = None):
    """Load a design file, printing diagnostics instead of raising.

    A given profile replaces the one named in the file's search section.
    """
    from .design.abstraction import InvalidDesignError
    from .design.loader import load_design

    try:
        return load_design(path, profile=profile)
    except FileNotFoundError as e:
        print(f"Error: {e}")
    except InvalidDesignError as e:
        print(f"Invalid design {path}:")
        for error in e.errors:
            print(f"  - {error}")
    return None, None


def cmd_run(args):
    """Run the floorplanner."""
    from .diagnostics import Diagnostics
    from .placement.annealing import AnnealingPlacer
    from .placement.signals import REFERENCE_SIGNALS

    diagnostics = Diagnostics.from_verbosity(args.verbose, trace=args.trace)
    diagnostics.configure_logging(args.log_file)

    design, config = load_design_or_report(args.design, args.profile)
    if design is None:
        return 1

    if args.seed is not None:
        config.seed = args.seed
    if args.levels is not None:
        config.max_levels = args.levels
    if args.time_limit is not None:
        config.time_limit = args.time_limit
    if args.cluster_tsvs:
        config.cluster_signal_tsvs = True
    if args.profile and args.verbose:
        print(f"Using search profile: {args.profile}")

    signals = {name: REFERENCE_SIGNALS[name](design) for name in args.signal or []}

    # Ctrl-C ends the search early and still reports the best layout
    stop = threading.Event()
    previous = signal.signal(signal.SIGINT, lambda signum, frame: stop.set())
    try:
        placer = AnnealingPlacer(design, config, signals=signals, diagnostics=diagnostics)
        result = placer.run(stop=stop)
    finally:
        signal.signal(signal.SIGINT, previous)

    print("\n" + "=" * 60)
    print(f"Design: {design.name}")
    print(result.summary())

    if args.output:
        output_path = Path(args.output)
        output_path.write_text(json.dumps(result.to_dict(include_maps=args.maps), indent=2))
        print(f"\nLayout saved to: {output_path}")

    return 0 if result.fits_outline else 2


def cmd_validate(args):
    """Validate a design file."""
    design, config = load_design_or_report(args.design)
    if design is None:
        return 1

    print(f"Design '{design.name}' is valid:")
    print(f"  Dies: {design.dies}, outline {design.outline_width:g} x {design.outline_height:g}")
    print(f"  Blocks: {len(design.blocks)} ({sum(1 for b in design.blocks if b.soft)} soft)")
    print(f"  Nets: {len(design.nets)}, terminals: {len(design.terminals)}")
    strict = sum(1 for a in design.alignments if a.is_strict)
    print(f"  Alignments: {len(design.alignments)} ({strict} strict)")
    print(f"  Total power: {design.total_power():.4g} W")

    block_area = sum(b.area for b in design.blocks)
    capacity = design.dies * design.outline_width * design.outline_height
    utilization = block_area / capacity
    print(f"  Stack utilization: {utilization:.1%}")
    if utilization > 1.0:
        print("Warning: blocks exceed the stack's total area; no layout can fit the outline")
    return 0


def cmd_thermal(args):
    """Estimate temperatures for the design's initial layout."""
    from .placement.layout import LayoutOrchestrator
    from .thermal.analyzer import ThermalAnalyzer

    design, config = load_design_or_report(args.design)
    if design is None:
        return 1

    orchestrator = LayoutOrchestrator(design)
    layout = orchestrator.decode(orchestrator.initial_floorplan(power_aware=args.power_aware))
    analyzer = ThermalAnalyzer.for_design(design, workers=args.workers)
    result = analyzer.analyze(layout, design)

    print(f"Thermal estimate for '{design.name}' (initial layout):")
    print(f"  Total power: {result.total_power:.4g} W")
    print(f"  Peak: {result.peak:.2f} K, mean: {result.mean:.2f} K, variance: {result.variance:.3g}")
    print(f"  Max gradient: {result.max_gradient:.3g} K/bin, hotspot bins: {result.hotspots}")
    for die, peak in enumerate(analyzer.layer_temperatures(result)):
        print(f"  Die {die}: peak {peak:.2f} K")

    if args.output:
        Path(args.output).write_text(json.dumps(result.to_dict(include_maps=True), indent=2))
        print(f"\nThermal map saved to: {args.output}")
    return 0


def main(argv=None):
    """Main entry point."""
    from .config.profiles import list_profiles
    from .placement.signals import REFERENCE_SIGNALS

    parser = argparse.ArgumentParser(
        description="StackPlace - 3D-stacked IC floorplanning",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  stackplace validate design.yaml
  stackplace run design.yaml -o layout.json
  stackplace run design.yaml --profile thorough --seed 7 -v
  stackplace thermal design.yaml --workers 4
        """,
    )

    parser.add_argument('--version', action='version', version='stackplace 0.1.0')

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    # Run command
    run_parser = subparsers.add_parser('run', help='Run floorplanning')
    run_parser.add_argument('design', help='Path to design YAML file')
    run_parser.add_argument('-o', '--output', help='Write the result as JSON')
    run_parser.add_argument('--profile', choices=list_profiles(),
                            help='Search profile; overrides the design file (default: balanced)')
    run_parser.add_argument('--seed', type=int, help='Random seed')
    run_parser.add_argument('--levels', type=int, help='Max temperature levels')
    run_parser.add_argument('--time-limit', type=float, help='Wall-clock limit in seconds')
    run_parser.add_argument('--signal', action='append', choices=sorted(REFERENCE_SIGNALS),
                            help='Add a reference cost signal (repeatable)')
    run_parser.add_argument('--cluster-tsvs', action='store_true',
                            help='Cluster signal TSVs into hotspot-aware islands')
    run_parser.add_argument('--maps', action='store_true', help='Include thermal maps in JSON output')
    run_parser.add_argument('-v', '--verbose', action='count', default=0,
                            help='Verbose output (-vv for more)')
    run_parser.add_argument('--trace', action='store_true', help='Trace every operation (debug log)')
    run_parser.add_argument('--log-file', help='Write log output to a file')

    # Validate command
    validate_parser = subparsers.add_parser('validate', help='Validate a design file')
    validate_parser.add_argument('design', help='Path to design YAML file')

    # Thermal command
    thermal_parser = subparsers.add_parser('thermal', help='Thermal estimate of the initial layout')
    thermal_parser.add_argument('design', help='Path to design YAML file')
    thermal_parser.add_argument('-o', '--output', help='Write maps as JSON')
    thermal_parser.add_argument('--workers', type=int, default=1, help='Convolution threads')
    thermal_parser.add_argument('--power-aware', action='store_true',
                                help='Deal high-power blocks to the lowest dies')

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    # Dispatch command
    commands = {
        'run': cmd_run,
        'validate': cmd_validate,
        'thermal': cmd_thermal,
    }

    return commands[args.command](args)


if __name__ == '__main__':
    sys.exit(main())
