# src/gridblend/cli.py

import argparse
import sys
import logging
from typing import List, Optional

from rasterio.enums import Resampling

from gridblend.blend import (
    BlendConfig,
    CombinationPolicy,
    OutputMode,
    SignFilter,
    blend,
    parse_clobber,
    read_blend_file,
    entries_from_files
)
from gridblend.exceptions import GridBlendError
from gridblend.raster.io import is_grid_file

def setup_logging(level: int = logging.INFO) -> None:
    """
    Configures the standard logging format and level for the command-line interface.

    Args:
        level (int): The logging threshold level.
    """
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

def build_parser() -> argparse.ArgumentParser:
    """
    Declares every option of the gridblend command.
    """
    parser = argparse.ArgumentParser(
        prog="gridblend",
        description="Blend several partially overlapping grids into a single grid"
    )
    parser.add_argument(
        "inputs",
        nargs="*",
        help="A blend file (records 'file [w/e/s/n|-] [weight]'), '-' to read it from stdin, "
             "or two or more grid files."
    )
    parser.add_argument(
        "-G", "--output",
        required=True,
        help="Output grid file."
    )
    parser.add_argument(
        "-R", "--region",
        help="Output region w/e/s/n. Defaults to the union of the input grids."
    )
    parser.add_argument(
        "-I", "--increment",
        help="Output increment dx[/dy]. Required if the grids have different increments."
    )
    parser.add_argument(
        "-r", "--pixel",
        action="store_true",
        help="Pixel registered output. Without it the inputs' common registration is used."
    )
    parser.add_argument(
        "-C", "--clobber",
        metavar="f|l|o|u[+n|+p]",
        help="Clobber instead of blending: f(irst), l(ower), o(verwrite = last) or u(pper). "
             "Append +n or +p to only let negative or positive values replace the current one."
    )
    parser.add_argument(
        "-W", "--weights",
        nargs="?",
        const="w",
        choices=["w", "z"],
        help="Write the summed weights instead of values; '-W z' writes the weighted sum of values."
    )
    parser.add_argument(
        "-Z", "--scale",
        type=float,
        default=1.0,
        help="Multiply the blended values by this factor."
    )
    parser.add_argument(
        "-Q", "--raw",
        action="store_true",
        help="Write a headerless native float32 file."
    )
    parser.add_argument(
        "-N", "--nodata",
        type=float,
        default=float("nan"),
        help="Value for cells no grid covers. Defaults to NaN."
    )
    parser.add_argument(
        "-f", "--geographic",
        action="store_true",
        default=None,
        help="Treat x as periodic longitudes (detected from the CRS when omitted)."
    )
    parser.add_argument(
        "-n", "--resampling",
        choices=[r.name for r in (Resampling.nearest, Resampling.bilinear, Resampling.cubic, Resampling.cubic_spline)],
        default="bilinear",
        help="Interpolation used when a grid must be resampled."
    )
    parser.add_argument(
        "--tmp-dir",
        help="Directory for temporary resampled grids."
    )
    parser.add_argument(
        "-V", "--verbose",
        action="store_true",
        help="Report progress at debug level."
    )
    return parser

def resolve_inputs(inputs: List[str]):
    """
    Turns the positional inputs into blend entries.

    Raises:
        GridBlendError: If only one grid is given.
    """
    if not inputs or inputs == ["-"]:
        return read_blend_file(sys.stdin)

    if len(inputs) == 1:
        if is_grid_file(inputs[0]):
            raise GridBlendError("Only a single grid found; no blending will take place", inputs[0])
        return read_blend_file(inputs[0])

    return entries_from_files(inputs)

def config_from_args(args: argparse.Namespace) -> BlendConfig:
    """Maps parsed options onto a BlendConfig."""
    policy, sign = CombinationPolicy.BLEND, SignFilter.ANY
    if args.clobber:
        policy, sign = parse_clobber(args.clobber)

    mode = OutputMode.VALUE
    if args.weights == "w":
        mode = OutputMode.WEIGHT
    elif args.weights == "z":
        mode = OutputMode.WEIGHT_TIMES_VALUE

    return BlendConfig(
        policy=policy,
        sign=sign,
        output_mode=mode,
        scale=args.scale,
        nodata=args.nodata,
        region=args.region,
        increment=args.increment,
        registration="pixel" if args.pixel else None,
        geographic=args.geographic,
        raw=args.raw,
        resampling=args.resampling,
        tmp_dir=args.tmp_dir
    )

def main(argv: Optional[List[str]] = None) -> None:
    """
    Parses command-line arguments and runs the blend.
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(logging.DEBUG if args.verbose else logging.INFO)

    try:
        config = config_from_args(args)
        entries = resolve_inputs(args.inputs)
        result = blend(entries, output=args.output, config=config)
    except (GridBlendError, ValueError, MemoryError) as e:
        logging.error(f"Blend failed: {e}")
        sys.exit(1)

    stats = result.statistics
    logging.info(f"Wrote {result.path} ({stats.n_filled} of {stats.n_total} nodes filled)")

if __name__ == "__main__":
    main()
