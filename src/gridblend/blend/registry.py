# src/gridblend/blend/registry.py

"""
This module builds the set of tiles that take part in a blend.

It reads blend specification files, inspects every tile header, works out
the output lattice when it is not given, and then aligns and places every
tile on that lattice so the row scan can start.

Blend file records have the form

    file [ -Rw/e/s/n | w/e/s/n | - ] [ weight ]

where the optional region is the tile's inner (full weight) region ('-' or
absent means the whole tile) and the optional weight defaults to 1. A
negative weight inverts the taper. Blank lines and lines starting with '#'
are ignored.
"""

import logging
import math
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Union, Optional, List, Tuple, Iterable, TextIO

from gridblend.exceptions import (
    BlendFileError,
    DegenerateGeometryError,
    InputNotFoundError,
    RasterValidationError,
    RegionMismatchError
)
from gridblend.raster.io import read_header
from gridblend.raster.layer import Raster
from gridblend.raster.region import Region, Registration, parse_region, is_whole_multiple
from gridblend.raster.resample import Resampler, Reformatter, RasterioResampler
from .alignment import AlignmentPlanner, increments_differ
from .config import BlendConfig
from .geometry import compute_geometry
from .tile import TileSource, TileState

log = logging.getLogger(__name__)

__all__ = [
    "BlendEntry",
    "read_blend_file",
    "entries_from_files",
    "SourceRegistry",
    "TileSource",
    "TileState"
]

_SPAN_TOLERANCE = 1e-6

@dataclass(frozen=True)
class BlendEntry:
    """
    One tile of a blend job.

    Args:
        source: Grid file or in-memory Raster.
        inner: Inner region (west, east, south, north); None means the whole tile.
        weight: Relative weight; negative inverts the taper.
    """
    source: Union[str, Path, Raster]
    inner: Optional[Tuple[float, float, float, float]] = None
    weight: float = 1.0

def _is_region_token(token: str) -> bool:
    return token.count("/") == 3

def _parse_record(line: str, line_no: int, origin: str) -> BlendEntry:
    tokens = line.split()
    if len(tokens) > 3:
        raise BlendFileError(f"Line {line_no}: expected 'file [region] [weight]', got '{line}'", origin)

    name = tokens[0]
    inner = None
    weight = 1.0

    try:
        if len(tokens) >= 2:
            second = tokens[1]
            if _is_region_token(second):
                inner = parse_region(second)
            elif second != "-":
                if len(tokens) == 3:
                    raise BlendFileError(f"Line {line_no}: '{second}' is not a region", origin)
                weight = float(second)
        if len(tokens) == 3:
            weight = float(tokens[2])
    except BlendFileError:
        raise
    except RasterValidationError as e:
        raise BlendFileError(f"Line {line_no}: {e}", origin) from e
    except ValueError as e:
        raise BlendFileError(f"Line {line_no}: bad weight in '{line}'", origin) from e

    return BlendEntry(name, inner, weight)

def read_blend_file(source: Union[str, Path, TextIO]) -> List[BlendEntry]:
    """
    Parses a blend specification.

    Relative tile names in a blend file are looked up next to the blend
    file first and then relative to the working directory.

    Args:
        source: Path of the blend file or an open text stream.

    Returns:
        List[BlendEntry]: One entry per record, in file order.

    Raises:
        InputNotFoundError: If the blend file does not exist.
        BlendFileError: If a record cannot be decoded or the file is empty.
    """
    if isinstance(source, (str, Path)):
        path = Path(source)
        if not path.exists():
            raise InputNotFoundError("Blend file not found", path)
        with open(path, "r") as fh:
            lines = fh.readlines()
        origin, base = str(path), path.parent
    else:
        lines = source.readlines()
        origin, base = getattr(source, "name", "<stream>"), None

    entries = []
    for line_no, raw in enumerate(lines, start=1):
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        entry = _parse_record(line, line_no, origin)
        if base is not None and not Path(entry.source).is_absolute():
            candidate = base / entry.source
            if candidate.exists():
                entry = replace(entry, source=candidate)
        entries.append(entry)

    if not entries:
        raise BlendFileError("Blend file holds no records", origin)

    log.debug(f"Read {len(entries)} blend records from {origin}")
    return entries

def entries_from_files(sources: Iterable[Union[str, Path, Raster]]) -> List[BlendEntry]:
    """Entries with weight 1 and inner = outer for a bare list of grids."""
    return [BlendEntry(source) for source in sources]

class SourceRegistry:
    """
    Turns blend entries into tiles placed on the output lattice.

    Args:
        entries: Tiles to blend, in priority order.
        config: Engine configuration (explicit output lattice, CRS, ...).
        resampler: Collaborator for increment or phase mismatches.
            Default=RasterioResampler.
        reformatter: Collaborator for formats that cannot stream rows.
            Default=the resampler if it can reformat, else RasterioResampler.
    """
    def __init__(
        self,
        entries: List[BlendEntry],
        config: Optional[BlendConfig] = None,
        resampler: Optional[Resampler] = None,
        reformatter: Optional[Reformatter] = None
    ):
        self.entries = list(entries)
        self.config = config or BlendConfig()

        default = RasterioResampler(self.config.resampling, self.config.tmp_dir)
        self.resampler = resampler or default
        if reformatter is None:
            reformatter = self.resampler if hasattr(self.resampler, "reformat") else default
        self.reformatter = reformatter

        self.tiles: List[TileSource] = []
        self.output: Optional[Region] = None
        self.geographic = False
        self.crs = None

    def _open_headers(self):
        """Header-only open of every tile."""
        for index, entry in enumerate(self.entries):
            if isinstance(entry.source, Raster):
                raster = entry.source
                outer, driver, crs = raster.region, None, raster.crs
            else:
                header = read_header(entry.source)
                outer, driver, crs = header.region, header.driver, header.crs
                entry = replace(entry, source=header.path)

            inner = outer.with_bounds(*entry.inner) if entry.inner is not None else None
            tile = TileSource(entry.source, outer, inner, entry.weight, index)
            tile.driver = driver
            tile.crs = crs
            self.tiles.append(tile)

    def _common_lattice(self) -> Tuple[Tuple[float, float], Registration]:
        cfg, first = self.config, self.tiles[0].outer

        increment = cfg.increment
        if increment is None:
            if any(increments_differ(t.outer.increment, first.increment) for t in self.tiles[1:]):
                raise RegionMismatchError("Must specify an increment if input grids have different increments")
            increment = first.increment

        registration = cfg.registration
        if registration is None:
            if any(t.outer.registration is not first.registration for t in self.tiles[1:]):
                raise RegionMismatchError("Must specify a registration if input grids have different registrations")
            registration = first.registration

        return increment, registration

    def _output_region(self) -> Region:
        """Explicit output region, or the union of the tile footprints."""
        (dx, dy), registration = self._common_lattice()

        if self.config.region is not None:
            west, east, south, north = self.config.region
            for span, inc, label in ((east - west, dx, "x"), (north - south, dy, "y")):
                if not is_whole_multiple(span, inc):
                    log.warning(f"Output {label}-range is not a whole multiple of the increment; extending it")
            east = west + math.ceil((east - west) / dx - _SPAN_TOLERANCE) * dx
            north = south + math.ceil((north - south) / dy - _SPAN_TOLERANCE) * dy
            return Region(west, east, south, north, dx, dy, registration)

        footprint = self.tiles[0].outer
        for tile in self.tiles[1:]:
            footprint = footprint.union(tile.outer)
        west, east, south, north = footprint.bounds

        east = west + math.ceil((east - west) / dx - _SPAN_TOLERANCE) * dx
        north = south + math.ceil((north - south) / dy - _SPAN_TOLERANCE) * dy
        region = Region(west, east, south, north, dx, dy, registration)
        log.info(f"We determined the region {region.format_bounds()} from the given grids")
        return region

    def _place(self, tile: TileSource):
        """Computes the geometry of an aligned tile; degenerate tiles are ignored."""
        try:
            geometry = compute_geometry(tile.outer, tile.inner, self.output)
        except DegenerateGeometryError as e:
            log.error(f"File {tile.name} has a degenerate taper and is ignored: {e}")
            tile.ignore(str(e))
            return

        n_rows, n_columns = tile.outer.shape
        tile.geometry = geometry
        tile.skip_rows = max(0, -geometry.out_row0)

        sense = "inverse" if tile.invert else "normal"
        log.info(
            f"Blend file {tile.name} in {tile.inner.format_bounds()} with {sense} weight "
            f"{tile.weight:g} [{geometry.out_row0}-{geometry.out_row1}]"
        )
        log.debug(
            f"Grid {tile.name}: out: {geometry.out_col0}/{geometry.out_col1}/{geometry.out_row1}/{geometry.out_row0} "
            f"in: {geometry.in_col0}/{geometry.in_col1}/{geometry.in_row1}/{geometry.in_row0} "
            f"skip: {tile.skip_rows} size: {n_columns}x{n_rows}"
        )

    def build(self) -> Tuple[List[TileSource], Region]:
        """
        Inspects, aligns and places every tile.

        Returns:
            Tuple[List[TileSource], Region]: Tiles in input order (ignored ones
            included, in state IGNORED) and the output lattice.

        Raises:
            InputNotFoundError: If a tile does not exist.
            RegionMismatchError: If the output lattice is ambiguous.
            ResampleError: If a tile cannot be rebuilt.
        """
        if not self.entries:
            raise RegionMismatchError("No grids to blend")

        try:
            self._open_headers()
            self.output = self._output_region()

            first = self.tiles[0]
            if self.config.geographic is not None:
                self.geographic = bool(self.config.geographic)
            else:
                self.geographic = bool(first.crs is not None and first.crs.is_geographic)
            self.crs = self.config.crs or first.crs

            planner = AlignmentPlanner(self.output, self.resampler, self.reformatter, self.geographic)
            for tile in self.tiles:
                if planner.align(tile):
                    self._place(tile)
        except Exception:
            self.release_all()
            raise

        active = sum(1 for t in self.tiles if not t.is_ignored)
        log.info(f"Output grid {self.output}: {active} of {len(self.tiles)} tiles participate")
        return self.tiles, self.output

    def release_all(self):
        """Releases every tile built so far (temporary files included)."""
        for tile in self.tiles:
            tile.release()
