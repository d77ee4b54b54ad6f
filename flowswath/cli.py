#!/usr/bin/env python3
"""
FLOWSWATH Command Line Interface
================================

Command-line interface for FLOWSWATH stream and swath extraction.
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Tuple

import pandas as pd

from . import __version__
from .config import load_config
from .core import StreamExtractionPipeline
from .exceptions import FlowSwathError
from .grid import ElevationGrid
from .swath import SwathExtractor


def setup_logging(verbose: bool = False) -> None:
    """Setup logging configuration."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


def parse_point(text: str) -> Tuple[float, float]:
    """Parse an 'x,y' pair."""
    try:
        x, y = (float(v) for v in text.split(","))
    except ValueError:
        raise argparse.ArgumentTypeError(f"Expected a point as x,y, got {text!r}")
    return x, y


def streams_command(args) -> None:
    """Execute stream extraction command."""
    try:
        if not Path(args.dem).exists():
            print(f"DEM file not found: {args.dem}", file=sys.stderr)
            sys.exit(1)

        config = load_config(args.config)
        pipeline = StreamExtractionPipeline(config)

        print(f"Loading DEM: {args.dem}")
        dem, _, accumulation, streams = pipeline.run(
            args.dem,
            args.threshold_area,
            file_name=args.output,
            no_data_exp=args.no_data_exp,
            min_flat_area=args.min_flat_area,
            resample_grid=args.resample or None,
            new_cellsize=args.cellsize,
        )

        print("\nStream extraction completed successfully!")
        print(f"  Grid: {dem.nrows}x{dem.ncols} cells at {dem.cellsize:g}")
        print(f"  Stream cells: {len(streams)}")
        print(f"  Maximum Strahler order: {streams.max_order}")
        print(f"  Outlets: {len(streams.outlets())}")
        if args.output:
            print(f"Results saved with base name: {args.output}")

    except FlowSwathError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    except KeyboardInterrupt:
        print("\nOperation cancelled by user", file=sys.stderr)
        sys.exit(1)
    except Exception as e:
        print(f"Unexpected error: {e}", file=sys.stderr)
        sys.exit(1)


def swath_command(args) -> None:
    """Execute swath extraction command."""
    try:
        if not Path(args.dem).exists():
            print(f"DEM file not found: {args.dem}", file=sys.stderr)
            sys.exit(1)

        config = load_config(args.config)
        dem = ElevationGrid.from_file(args.dem)

        if args.no_data_exp:
            from .conditioning import DemConditioner

            dem = DemConditioner(
                args.no_data_exp, config["streams"]["min_flat_area"]
            ).condition(dem)

        extractor = SwathExtractor(config)
        result = extractor.extract(
            dem,
            args.points,
            args.width,
            sample=args.sample,
            smooth=args.smooth,
            vex=args.vex,
            plot_as_points=args.as_points,
            plot_as_heatmap=args.as_heatmap,
            plot_figure=bool(args.plot),
        )

        matrix = result.swath_matrix
        print("\nSwath extraction completed successfully!")
        print(f"  Stations: {matrix.shape[0]}")
        print(f"  Length: {matrix[-1, 0]:.1f}")
        print(f"  Bends at: {', '.join(f'{b:.1f}' for b in result.bends)}")

        if args.output:
            frame = pd.DataFrame(matrix, columns=["distance", "min", "mean", "max"])
            frame["x"] = result.xypoints[:, 0]
            frame["y"] = result.xypoints[:, 1]
            frame.to_csv(args.output, index=False)
            print(f"Swath saved to: {args.output}")

        if args.plot:
            result.figure.savefig(args.plot, dpi=150, bbox_inches="tight")
            print(f"Plot saved to: {args.plot}")

    except FlowSwathError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    except KeyboardInterrupt:
        print("\nOperation cancelled by user", file=sys.stderr)
        sys.exit(1)
    except Exception as e:
        print(f"Unexpected error: {e}", file=sys.stderr)
        sys.exit(1)


def info_command(args) -> None:
    """Execute DEM information command."""
    try:
        info = ElevationGrid.from_file(args.dem).summary()

        print(f"DEM Information: {args.dem}")
        print(f"  Size: {info['cols']}x{info['rows']} pixels")
        print(f"  Cellsize: {info['cellsize']:g}")
        print(f"  CRS: {info['crs']}")
        print(f"  Bounds: {info['bounds']}")
        total = info["rows"] * info["cols"]
        print(
            f"  Valid pixels: {info['valid_cells']}/{total} "
            f"({info['valid_cells'] / total * 100:.1f}%)"
        )
        if info["valid_cells"]:
            print(
                f"  Elevation range: {info['min_elevation']:.1f} - "
                f"{info['max_elevation']:.1f}"
            )
            print(f"  Mean elevation: {info['mean_elevation']:.1f}")

    except FlowSwathError as e:
        print(f"Error reading DEM: {e}", file=sys.stderr)
        sys.exit(1)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="flowswath",
        description="FLOWSWATH - Stream Network and Topographic Swath Tool",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Extract streams draining at least 1 km2 and save them
  flowswath streams --dem dem.tif --threshold-area 1e6 --output AreaFiles

  # Swath profile 5 km wide with a bend, drawn as a heatmap
  flowswath swath --dem dem.tif --points 0,0 5000,0 5000,8000 --width 5000 \\
      --as-heatmap --plot swath.png --output swath.csv

  # Get DEM information
  flowswath info --dem dem.tif
        """
    )

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    # Streams command
    streams_parser = subparsers.add_parser(
        'streams',
        help='Extract flow routing and a stream network'
    )
    streams_parser.add_argument('--dem', required=True, help='Path to DEM file')
    streams_parser.add_argument('--threshold-area', type=float, required=True,
                                help='Minimum drainage area for streams (map units squared)')
    streams_parser.add_argument('--output', help='Base name for .mat and .shp outputs')
    streams_parser.add_argument('--no-data-exp',
                                help="'auto' or an expression such as 'DEM<=-100 | DEM>10000'")
    streams_parser.add_argument('--min-flat-area', type=float,
                                help='Minimum flat area for the auto no-data policy')
    streams_parser.add_argument('--resample', action='store_true', help='Resample the DEM first')
    streams_parser.add_argument('--cellsize', type=float, help='Target cellsize when resampling')
    streams_parser.add_argument('--config', help='Configuration file (YAML)')
    streams_parser.add_argument('--verbose', '-v', action='store_true', help='Verbose output')

    # Swath command
    swath_parser = subparsers.add_parser(
        'swath',
        help='Extract a topographic swath profile'
    )
    swath_parser.add_argument('--dem', required=True, help='Path to DEM file')
    swath_parser.add_argument('--points', type=parse_point, nargs='+', required=True,
                              help='Path vertices as x,y (start, bends, end)')
    swath_parser.add_argument('--width', type=float, required=True, help='Swath width')
    swath_parser.add_argument('--sample', type=float, help='Sample spacing (default cellsize)')
    swath_parser.add_argument('--smooth', type=float, help='Smoothing distance')
    swath_parser.add_argument('--vex', type=float, help='Vertical exaggeration')
    display = swath_parser.add_mutually_exclusive_group()
    display.add_argument('--as-points', action='store_true', help='Plot as a point cloud')
    display.add_argument('--as-heatmap', action='store_true', help='Plot as a heatmap')
    swath_parser.add_argument('--plot', help='Save the swath figure to this file')
    swath_parser.add_argument('--output', help='Save the swath envelope as CSV')
    swath_parser.add_argument('--no-data-exp', help='No-data condition applied before sampling')
    swath_parser.add_argument('--config', help='Configuration file (YAML)')
    swath_parser.add_argument('--verbose', '-v', action='store_true', help='Verbose output')

    # Info command
    info_parser = subparsers.add_parser(
        'info',
        help='Display DEM information'
    )
    info_parser.add_argument('--dem', required=True, help='Path to DEM file')

    # Global options
    parser.add_argument('--version', action='version', version=f'FLOWSWATH {__version__}')

    return parser


def main(argv: List[str] = None):
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    # Setup logging
    setup_logging(args.verbose if hasattr(args, 'verbose') else False)

    # Execute command
    if args.command == 'streams':
        streams_command(args)
    elif args.command == 'swath':
        swath_command(args)
    elif args.command == 'info':
        info_command(args)
    else:
        print(f"Unknown command: {args.command}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
