# src/gridblend/blend/compositor.py

"""
This module combines the active tile rows into one output row.

Every tile's output-column to tile-column map and its x-direction taper are
computed once, so compositing a row is a handful of vectorised numpy
operations per active tile. Tiles are visited in input order, which
decides the FIRST and LAST policies and which value seeds a sign filter.
"""

import logging
from dataclasses import dataclass
from typing import List, Tuple

import numpy as np

from gridblend.raster.region import Region
from .config import BlendConfig, CombinationPolicy, SignFilter, OutputMode
from .geometry import column_tapers
from .tile import TileSource

log = logging.getLogger(__name__)

__all__ = [
    "ColumnMap",
    "build_column_map",
    "Compositor"
]

@dataclass(frozen=True)
class ColumnMap:
    """
    Where a tile lands on the output row.

    Args:
        out_index: Output columns the tile covers.
        tile_index: Matching columns in the tile's row buffer.
        weights: X-direction taper for each covered column.
    """
    out_index: np.ndarray
    tile_index: np.ndarray
    weights: np.ndarray

def build_column_map(tile: TileSource, output: Region, periodic: bool) -> ColumnMap:
    """
    Maps every output column onto the tile.

    For periodic (longitude) outputs an output column is folded by whole
    turns of 360 degrees until it falls at or west of the tile's east
    column; columns still west of the tile do not touch it.

    Args:
        tile: A placed tile.
        output: Output lattice.
        periodic: Fold columns by 360 degrees.
    """
    g = tile.geometry
    columns = np.arange(output.n_columns, dtype=np.int64)

    if periodic:
        nx_360 = int(round(360.0 / output.dx))
        pcol = columns + nx_360
        excess = pcol - g.out_col1
        turns = np.where(excess > 0, -(-excess // nx_360), 0)
        pcol = pcol - turns * nx_360
        valid = pcol >= g.out_col0
    else:
        pcol = columns
        valid = (pcol >= g.out_col0) & (pcol <= g.out_col1)

    tile_index = pcol - g.out_col0
    valid &= tile_index < tile.outer.n_columns

    return ColumnMap(
        out_index=columns[valid],
        tile_index=tile_index[valid],
        weights=column_tapers(g, pcol[valid], output.xy_offset)
    )

class Compositor:
    """
    Applies the combination policy to one output row at a time.

    Args:
        tiles: Placed tiles in input order (ignored tiles are skipped).
        output: Output lattice.
        config: Engine configuration (policy, sign filter, output mode, scale, nodata).
        periodic: Fold columns by 360 degrees (geographic outputs).
    """
    def __init__(
        self,
        tiles: List[TileSource],
        output: Region,
        config: BlendConfig,
        periodic: bool = False
    ):
        self.tiles = tiles
        self.output = output
        self.config = config
        self.periodic = periodic
        self.width = output.n_columns

        self.column_maps = {
            tile.index: build_column_map(tile, output, periodic)
            for tile in tiles if not tile.is_ignored
        }
        for tile in tiles:
            if not tile.is_ignored and self.column_maps[tile.index].out_index.size == 0:
                log.warning(f"File {tile.name} does not cover any output column")

    def _candidates(self, tile: TileSource) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """Covered output columns, non-NaN tile values and their x-weights for one tile."""
        cmap = self.column_maps[tile.index]
        values = tile.row[cmap.tile_index].astype(np.float64)
        ok = ~np.isnan(values)
        return cmap.out_index[ok], values[ok], cmap.weights[ok]

    def _blend(self, tiles: List[TileSource]) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        z = np.zeros(self.width, dtype=np.float64)
        w = np.zeros(self.width, dtype=np.float64)
        m = np.zeros(self.width, dtype=np.int64)

        for tile in tiles:
            idx, values, wx = self._candidates(tile)
            wt = wx * tile.row_weight
            if tile.invert:
                wt = tile.weight - wt
            z[idx] += wt * values
            w[idx] += wt
            m[idx] += 1
        return z, w, m

    def _clobber(self, tiles: List[TileSource]) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        policy, sign = self.config.policy, self.config.sign
        z = np.zeros(self.width, dtype=np.float64)
        w = np.zeros(self.width, dtype=np.float64)
        m = np.zeros(self.width, dtype=np.int64)
        seeded = np.zeros(self.width, dtype=bool)
        not_nan = np.zeros(self.width, dtype=bool)

        for tile in tiles:
            idx, values, _ = self._candidates(tile)
            not_nan[idx] = True

            is_set = m[idx] > 0
            if policy is CombinationPolicy.FIRST:
                skip = is_set
            elif policy is CombinationPolicy.UPPER:
                skip = is_set & (values <= z[idx])
            elif policy is CombinationPolicy.LOWER:
                skip = is_set & (values >= z[idx])
            else:
                skip = np.zeros(idx.size, dtype=bool)
            idx, values = idx[~skip], values[~skip]

            if sign is not SignFilter.ANY:
                # The first value seen on a column only seeds it
                seed = ~seeded[idx]
                z[idx[seed]] = values[seed]
                seeded[idx[seed]] = True
                idx, values = idx[~seed], values[~seed]
                allowed = values <= 0.0 if sign is SignFilter.NEGATIVE else values >= 0.0
                idx, values = idx[allowed], values[allowed]

            z[idx] = values
            w[idx] = 1.0
            m[idx] = 1

        if sign is not SignFilter.ANY:
            fallback = (m == 0) & not_nan
            m[fallback] = 1
            w[fallback] = 1.0
        return z, w, m

    def composite(self) -> Tuple[np.ndarray, np.ndarray]:
        """
        Combines the rows currently held by the OPEN tiles.

        Returns:
            Tuple[np.ndarray, np.ndarray]: The float32 output row and a boolean
            mask of the cells at least one tile contributed to.
        """
        active = [t for t in self.tiles if t.is_open]
        if self.config.is_clobber:
            z, w, m = self._clobber(active)
        else:
            z, w, m = self._blend(active)

        filled = m > 0
        mode = self.config.output_mode
        if mode is OutputMode.VALUE:
            with np.errstate(divide="ignore", invalid="ignore"):
                out = np.where(w == 0.0, 0.0, z / w)
            if self.config.scale != 1.0:
                out = out * self.config.scale
        elif mode is OutputMode.WEIGHT:
            out = w
        else:
            out = z

        row = np.where(filled, out, self.config.nodata).astype(np.float32)
        return row, filled
