# src/gridblend/blend/sync.py

"""
This module keeps every tile's cursor in step with the output scan line.

For each output row the synchronizer opens tiles lazily the first time the
row enters them, reads exactly one row from every active tile, and releases
a tile (handle, buffer and temporary file) as soon as the scan leaves it.
"""

import logging
from pathlib import Path
from typing import Callable, List

import numpy as np

from gridblend.exceptions import GeometryMismatchError
from gridblend.raster.io import GridReader, RasterioGridReader
from gridblend.raster.region import Region
from .geometry import row_taper
from .tile import TileSource, TileState

log = logging.getLogger(__name__)

__all__ = [
    "ReaderFactory",
    "RowSynchronizer"
]

ReaderFactory = Callable[[Path], GridReader]

class RowSynchronizer:
    """
    Advances every tile to the current output row.

    Args:
        tiles: Tiles built by SourceRegistry (ignored tiles are skipped).
        region: Output lattice.
        reader_factory: Builds a GridReader for a tile file. Default=RasterioGridReader.
    """
    def __init__(
        self,
        tiles: List[TileSource],
        region: Region,
        reader_factory: ReaderFactory = RasterioGridReader
    ):
        self.tiles = tiles
        self.region = region
        self.reader_factory = reader_factory
        self.half = region.xy_offset

    def _activate(self, tile: TileSource, row: int):
        """Opens a tile and positions its reader on the row matching the output row."""
        if not tile.memory:
            reader = self.reader_factory(tile.path)
            reader.open()
            tile.reader = reader
            file_row = tile.skip_rows if tile.first_activation else row - tile.geometry.out_row0
            if file_row > 0:
                reader.seek(file_row)
        tile.transition(TileState.OPEN)
        log.debug(f"Opened {tile.name} at output row {row} (activation {tile.open_count})")

    def _deactivate(self, tile: TileSource, row: int):
        tile.release()
        tile.transition(TileState.OUT_OF_RANGE)
        log.debug(f"Closed {tile.name} at output row {row}")

    @staticmethod
    def _memory_row(tile: TileSource, file_row: int) -> np.ndarray:
        raster = tile.raster
        values = raster.data[0, file_row].astype(np.float32)
        if raster.nodata is not None and not np.isnan(raster.nodata):
            values[values == np.float32(raster.nodata)] = np.nan
        return values

    def sync(self, row: int):
        """
        Brings every tile to output row `row`.

        After the call, every OPEN tile holds that row in `tile.row` and its
        y-taper times weight in `tile.row_weight`.

        Raises:
            SeekError, ReadError: If a tile file cannot be positioned or read.
            GeometryMismatchError: If a tile row does not match the tile header.
        """
        for tile in self.tiles:
            if tile.is_ignored:
                continue

            geometry = tile.geometry
            if not geometry.covers_row(row):
                if tile.is_open:
                    self._deactivate(tile, row)
                else:
                    tile.transition(TileState.OUT_OF_RANGE)
                continue

            tile.row_weight = row_taper(geometry, row, self.half) * tile.weight

            if not tile.is_open:
                self._activate(tile, row)

            if tile.memory:
                tile.row = self._memory_row(tile, row - geometry.out_row0)
            else:
                tile.row = tile.reader.read_row()

            if tile.row.shape[0] != tile.outer.n_columns:
                raise GeometryMismatchError(
                    f"Row {row} of {tile.name} has {tile.row.shape[0]} values, expected {tile.outer.n_columns}",
                    tile.path
                )

    def close_all(self):
        """Releases every tile; used at the end of the scan and on abort."""
        for tile in self.tiles:
            if tile.is_ignored:
                continue
            tile.release()
            if tile.is_open:
                tile.transition(TileState.CLOSED)
