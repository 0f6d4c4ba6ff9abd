# src/gridblend/blend/geometry.py

"""
This module places a tile on the output lattice.

compute_geometry converts a tile's outer and inner regions into integer
column/row bounds in output index space, plus one cosine taper coefficient
per edge. Rows count down from the output's north edge, columns count east
from its west edge. The inner bounds are pushed one cell outwards so that
the node lying exactly on an inner edge still receives full weight; when an
edge has no taper zone its inner bound therefore sits one cell outside the
outer bound and the taper for that edge is never evaluated.
"""

import logging
import math
from dataclasses import dataclass
from typing import Union

import numpy as np

from gridblend.exceptions import DegenerateGeometryError
from gridblend.raster.region import Region, Registration

log = logging.getLogger(__name__)

__all__ = [
    "TileGeometry",
    "compute_geometry",
    "taper_weight",
    "row_taper",
    "column_tapers"
]

# Relative size (in cells) below which an inner/outer gap counts as zero
_GAP_TOLERANCE = 1e-6

@dataclass(frozen=True)
class TileGeometry:
    """
    Index bounds and taper coefficients of one tile in output index space.

    Args:
        out_col0, out_col1: First and last output column covered by the tile.
        in_col0, in_col1: Columns at or inside which the x-weight is 1.
        out_row0, out_row1: First and last output row covered by the tile.
        in_row0, in_row1: Rows at or inside which the y-weight is 1.
        wxl, wxr, wyu, wyd: Taper coefficients for the west, east, north and
            south edges (0.0 where the edge has no taper zone).
    """
    out_col0: int
    out_col1: int
    in_col0: int
    in_col1: int
    out_row0: int
    out_row1: int
    in_row0: int
    in_row1: int
    wxl: float
    wxr: float
    wyu: float
    wyd: float

    @property
    def n_columns(self) -> int:
        return self.out_col1 - self.out_col0 + 1

    @property
    def n_rows(self) -> int:
        return self.out_row1 - self.out_row0 + 1

    def covers_row(self, row: int) -> bool:
        return self.out_row0 <= row <= self.out_row1

def _index(value: float) -> int:
    return int(np.rint(value))

def _coefficient(edge: str, gap: float, increment: float, zone_empty: bool) -> float:
    """Taper coefficient for one edge, rejecting gaps that cannot taper."""
    if gap < -_GAP_TOLERANCE * increment:
        raise DegenerateGeometryError(f"Inner region extends beyond the outer region on the {edge} edge")
    if gap <= _GAP_TOLERANCE * increment:
        if not zone_empty:
            raise DegenerateGeometryError(f"Zero-width taper on the {edge} edge")
        return 0.0
    return math.pi * increment / gap

def compute_geometry(outer: Region, inner: Region, output: Region) -> TileGeometry:
    """
    Computes the index bounds and taper coefficients of a tile.

    Args:
        outer: Full footprint of the tile (on the tile's lattice).
        inner: Sub-footprint inside which the tile has full weight.
        output: Output lattice.

    Returns:
        TileGeometry: Bounds in output column/row indices.

    Raises:
        DegenerateGeometryError: If the tile collapses on the output lattice
            or an edge has a taper zone but no room to taper in.
    """
    dx, dy = output.dx, output.dy
    one_or_zero = 1 if output.registration is Registration.NODE else 0
    treg = 0 if outer.registration is Registration.NODE else 1

    out_col0 = _index((outer.west - output.west) / dx)
    in_col0 = _index((inner.west - output.west) / dx) - 1
    in_col1 = _index((inner.east - output.west) / dx) + one_or_zero
    out_col1 = _index((outer.east - output.west) / dx) - treg

    out_row0 = _index((output.north - outer.north) / dy)
    in_row0 = _index((output.north - inner.north) / dy) - 1
    in_row1 = _index((output.north - inner.south) / dy) + one_or_zero
    out_row1 = _index((output.north - outer.south) / dy) - treg

    # A tile never reaches past its own last column or row
    out_col1 = min(out_col1, out_col0 + outer.n_columns - 1)
    out_row1 = min(out_row1, out_row0 + outer.n_rows - 1)

    if out_col1 < out_col0 or out_row1 < out_row0:
        raise DegenerateGeometryError(
            f"Tile collapses on the output lattice (columns {out_col0}-{out_col1}, rows {out_row0}-{out_row1})"
        )

    wxl = _coefficient("west", inner.west - outer.west, dx, in_col0 < out_col0)
    wxr = _coefficient("east", outer.east - inner.east, dx, in_col1 > out_col1)
    wyu = _coefficient("north", outer.north - inner.north, dy, in_row0 < out_row0)
    wyd = _coefficient("south", inner.south - outer.south, dy, in_row1 > out_row1)

    return TileGeometry(
        out_col0=out_col0,
        out_col1=out_col1,
        in_col0=in_col0,
        in_col1=in_col1,
        out_row0=out_row0,
        out_row1=out_row1,
        in_row0=in_row0,
        in_row1=in_row1,
        wxl=wxl,
        wxr=wxr,
        wyu=wyu,
        wyd=wyd
    )

def taper_weight(
    distance: Union[float, np.ndarray],
    coefficient: float
) -> Union[float, np.ndarray]:
    """Cosine taper 0.5 * (1 - cos(distance * coefficient))."""
    return 0.5 * (1.0 - np.cos(distance * coefficient))

def row_taper(geometry: TileGeometry, row: int, half: float) -> float:
    """
    Y-direction taper of a tile on one output row (before the tile weight).

    Args:
        geometry: Tile placement.
        row: Output row index.
        half: Output cell-centre offset (Region.xy_offset).
    """
    if row <= geometry.in_row0:
        return float(taper_weight(row - geometry.out_row0 + half, geometry.wyu))
    if row >= geometry.in_row1:
        return float(taper_weight(geometry.out_row1 - row + half, geometry.wyd))
    return 1.0

def column_tapers(geometry: TileGeometry, columns: np.ndarray, half: float) -> np.ndarray:
    """
    X-direction taper of a tile for an array of (tile-local, unfolded) output columns.
    """
    columns = np.asarray(columns, dtype=np.float64)
    weights = np.ones(columns.shape, dtype=np.float64)

    west = columns <= geometry.in_col0
    east = ~west & (columns >= geometry.in_col1)
    weights[west] = taper_weight(columns[west] - geometry.out_col0 + half, geometry.wxl)
    weights[east] = taper_weight(geometry.out_col1 - columns[east] + half, geometry.wxr)
    return weights
