#!/usr/bin/env python3
"""
BeamPlace CLI

Command-line interface for the optical table layout optimizer.

Usage:
    beamplace optimize <layout.yaml> [options]
    beamplace score <layout.yaml> [options]
    beamplace trace <layout.yaml>
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional


def _configure_logging(verbose: bool):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )


def _load(path: str):
    """Load a layout, printing a one-line error instead of a traceback."""
    from .layout.loader import load_layout

    try:
        layout = load_layout(path)
    except (FileNotFoundError, ValueError) as e:
        print(f"Error: {e}")
        return None
    print(f"Loaded {path}")
    print(f"  Components: {len(layout.components)}")
    print(f"  Beams: {len(layout.beam_path)}")
    return layout


def _weights_from_args(args):
    from .placement.cost import CostWeights

    weights = CostWeights()
    if args.com_weight is not None:
        weights.com = args.com_weight
    if args.footprint_weight is not None:
        weights.footprint = args.footprint_weight
    if args.path_weight is not None:
        weights.path_length = args.path_weight
    return weights


def _print_breakdown(breakdown, indent: str = "  "):
    for name, value in breakdown.as_dict().items():
        print(f"{indent}{name:<15} {value:12.3f}")


def cmd_optimize(args):
    """Run simulated annealing on a layout and save the result."""
    from .layout.loader import save_layout
    from .placement.annealer import BeamLayoutOptimizer, OptimizerConfig, get_adaptive_params
    from .placement.moves import MoveConfig

    layout = _load(args.layout)
    if layout is None:
        return 1

    params = None
    if args.iterations:
        params = get_adaptive_params(len(layout.movable_ids))
        params.max_iterations = args.iterations

    moves = MoveConfig()
    if args.grid is not None:
        moves.grid_size = args.grid

    config = OptimizerConfig(moves=moves, params=params, seed=args.seed)
    optimizer = BeamLayoutOptimizer(config)

    if not args.quiet:
        def report(progress):
            print(f"  iter {progress.iteration:5d}/{progress.max_iterations}"
                  f"  T={progress.temperature:8.3f}"
                  f"  best={progress.best_cost:10.3f}"
                  f"  accept={progress.accept_rate:5.1f}%")
        optimizer.on_progress = report

    print("\nOptimizing...")
    optimizer.initialize(layout, _weights_from_args(args))
    summary = optimizer.run()
    if summary is None:
        print("Error: optimization did not finish")
        return 1

    print(f"\nFinished ({summary.reason.value}) after {summary.iterations} iterations")
    print(f"  Initial cost: {summary.initial_cost:.3f}")
    print(f"  Best cost:    {summary.best_cost:.3f}")
    print(f"  Improvement:  {summary.improvement_percent:.1f}%")
    _print_breakdown(summary.cost_breakdown)

    if args.dry_run:
        print("\nDry run - not saving")
        return 0

    output = Path(args.output) if args.output else _default_output(Path(args.layout))
    try:
        save_layout(layout, output)
    except (OSError, ValueError) as e:
        print(f"Error: could not save {output}: {e}")
        return 1
    print(f"\nSaved to: {output}")
    return 0


def _default_output(path: Path) -> Path:
    return path.with_name(f"{path.stem}.optimized{path.suffix}")


def cmd_score(args):
    """Print the cost breakdown of a layout without changing it."""
    from .placement.cost import evaluate

    layout = _load(args.layout)
    if layout is None:
        return 1

    breakdown = evaluate(layout, _weights_from_args(args))
    print("\nCost breakdown:")
    _print_breakdown(breakdown)
    return 0


def cmd_trace(args):
    """Report each beam segment's realized vs expected direction."""
    from .placement.cost import trace_beam_alignment

    layout = _load(args.layout)
    if layout is None:
        return 1

    alignments = trace_beam_alignment(layout, tolerance=args.tolerance)
    if not alignments:
        print("\nNo traceable beams (need a source with outgoing beams)")
        return 0

    print(f"\n{'segment':<12} {'from':<10} {'to':<10} {'actual':>8} {'expected':>9} {'dev':>7}")
    misaligned = 0
    for a in alignments:
        flag = "" if a.is_valid else "  <-- misaligned"
        if not a.is_valid:
            misaligned += 1
        print(f"{a.segment_id:<12} {a.source_id:<10} {a.target_id:<10} "
              f"{a.beam_angle:8.2f} {a.expected_angle:9.2f} {a.deviation:7.2f}{flag}")

    print(f"\n{len(alignments) - misaligned}/{len(alignments)} segments aligned")
    return 0 if misaligned == 0 else 2


def _add_weight_args(parser):
    parser.add_argument('--com-weight', type=float, help='Centre-of-mass weight (default: 0.5)')
    parser.add_argument('--footprint-weight', type=float, help='Footprint weight (default: 0.25)')
    parser.add_argument('--path-weight', type=float, help='Beam path length weight (default: 0.25)')


def main(argv: Optional[List[str]] = None):
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="BeamPlace - optical table layout optimizer",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  beamplace score michelson.yaml
  beamplace trace michelson.yaml
  beamplace optimize michelson.yaml --seed 7 -o michelson.best.yaml
  beamplace optimize setup.json --iterations 2000 --grid 12.5 --dry-run
        """,
    )

    parser.add_argument('--version', action='version', version='beamplace 0.1.0')
    parser.add_argument('-v', '--verbose', action='store_true', help='Debug logging')

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    # Optimize command
    optimize_parser = subparsers.add_parser('optimize', help='Run layout optimization')
    optimize_parser.add_argument('layout', help='Path to layout file (.yaml, .yml or .json)')
    optimize_parser.add_argument('-o', '--output', help='Output file path')
    optimize_parser.add_argument('--iterations', type=int, help='Max iterations (default: adaptive)')
    optimize_parser.add_argument('--grid', type=float, help='Grid size for snapping (default: 25)')
    optimize_parser.add_argument('--seed', type=int, help='Random seed for reproducible runs')
    optimize_parser.add_argument('-q', '--quiet', action='store_true', help='No progress output')
    optimize_parser.add_argument('--dry-run', action='store_true', help="Don't save changes")
    _add_weight_args(optimize_parser)

    # Score command
    score_parser = subparsers.add_parser('score', help='Print the cost breakdown')
    score_parser.add_argument('layout', help='Path to layout file')
    _add_weight_args(score_parser)

    # Trace command
    trace_parser = subparsers.add_parser('trace', help='Check beam alignment')
    trace_parser.add_argument('layout', help='Path to layout file')
    trace_parser.add_argument('--tolerance', type=float, default=0.5,
                              help='Allowed deviation in degrees (default: 0.5)')

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    _configure_logging(args.verbose)

    commands = {
        'optimize': cmd_optimize,
        'score': cmd_score,
        'trace': cmd_trace,
    }

    return commands[args.command](args)


if __name__ == '__main__':
    sys.exit(main())
