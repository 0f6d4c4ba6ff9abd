# src/gridblend/blend/tile.py

"""
This module defines the descriptor of one input tile and its lifecycle.

A tile moves between four states while the output is scanned:

    CLOSED       -> OPEN          first output row inside the tile
    OPEN         -> OUT_OF_RANGE  first output row past the tile
    OUT_OF_RANGE -> OPEN          tile starting further south reached
    any          -> IGNORED       tile can never contribute

IGNORED is terminal: such a tile is never opened.
"""

import logging
from enum import Enum
from pathlib import Path
from typing import Union, Optional

import numpy as np
from rasterio.crs import CRS

from gridblend.raster.io import GridReader
from gridblend.raster.layer import Raster
from gridblend.raster.region import Region
from gridblend.raster.utils import remove_file
from .geometry import TileGeometry

log = logging.getLogger(__name__)

__all__ = [
    "TileState",
    "TileSource"
]

class TileState(Enum):
    """Lifecycle of a tile during the row scan.

    Options:
        CLOSED: Not opened yet.
        OPEN: Reader (or memory slice) active for the current row.
        OUT_OF_RANGE: Current row lies outside the tile; handle released.
        IGNORED: Tile never contributes (outside the output or unusable).
    """
    CLOSED = "closed"
    OPEN = "open"
    OUT_OF_RANGE = "out_of_range"
    IGNORED = "ignored"

_TRANSITIONS = {
    TileState.CLOSED: {TileState.OPEN, TileState.OUT_OF_RANGE, TileState.IGNORED},
    TileState.OPEN: {TileState.OUT_OF_RANGE, TileState.CLOSED, TileState.IGNORED},
    TileState.OUT_OF_RANGE: {TileState.OPEN, TileState.CLOSED, TileState.IGNORED},
    TileState.IGNORED: set()
}

class TileSource:
    """
    One input tile and everything the row scan needs to know about it.

    Args:
        source: Original tile, a file path or an in-memory Raster.
        outer: Full footprint of the tile.
        inner: Full-weight sub-footprint (defaults to outer).
        weight: Relative weight. A negative weight is stored as its absolute
                value with invert set.
        index: Position of the tile in the input list.

    Attributes:
        path (Path | None): File currently read (a temporary copy after resampling).
        raster (Raster | None): Backing grid of a memory tile.
        driver (str | None): GDAL driver of path.
        crs (CRS | None): CRS of the tile.
        geometry (TileGeometry | None): Placement on the output lattice.
        skip_rows (int): File rows above the output north edge.
        delete_on_close (bool): True if path is a temporary file owned by the tile.
        row (np.ndarray | None): Scratch buffer with the tile's current row.
        row_weight (float): Y-taper times weight for the current row.
        open_count (int): Number of CLOSED/OUT_OF_RANGE -> OPEN transitions.
        reason (str | None): Why the tile was ignored.
    """
    def __init__(
        self,
        source: Union[str, Path, Raster],
        outer: Region,
        inner: Optional[Region] = None,
        weight: float = 1.0,
        index: int = 0
    ):
        self.source = source
        self.index = index
        self.outer = outer
        self.inner = inner if inner is not None else outer

        self.invert = weight < 0
        self.weight = abs(float(weight))

        if isinstance(source, Raster):
            self.raster: Optional[Raster] = source
            self.path: Optional[Path] = None
        else:
            self.raster = None
            self.path = Path(source)

        self.driver: Optional[str] = None
        self.crs: Optional[CRS] = None
        self.geometry: Optional[TileGeometry] = None
        self.skip_rows = 0
        self.delete_on_close = False

        self.reader: Optional[GridReader] = None
        self.row: Optional[np.ndarray] = None
        self.row_weight = 0.0
        self.open_count = 0
        self.reason: Optional[str] = None

        self._state = TileState.CLOSED
        self._activated = False
        self._released = False

    @property
    def name(self) -> str:
        if isinstance(self.source, Raster):
            return f"<memory tile {self.index}>"
        return Path(self.source).name

    @property
    def memory(self) -> bool:
        """True if rows come from an in-memory grid instead of a file."""
        return self.raster is not None

    @property
    def state(self) -> TileState:
        return self._state

    @property
    def is_ignored(self) -> bool:
        return self._state is TileState.IGNORED

    @property
    def is_open(self) -> bool:
        return self._state is TileState.OPEN

    @property
    def first_activation(self) -> bool:
        """True until the tile has been opened once."""
        return not self._activated

    def transition(self, new_state: TileState):
        """
        Moves the tile to new_state.

        Raises:
            RuntimeError: If the transition is not allowed (e.g. IGNORED -> OPEN).
        """
        if new_state is self._state:
            return
        if new_state not in _TRANSITIONS[self._state]:
            raise RuntimeError(
                f"Illegal tile transition {self._state.value} -> {new_state.value} for {self.name}"
            )
        if new_state is TileState.OPEN:
            self.open_count += 1
            self._activated = True
        self._state = new_state

    def ignore(self, reason: str):
        """Marks the tile IGNORED for good and releases its resources."""
        self.reason = reason
        self.release()
        self.transition(TileState.IGNORED)

    def use_temporary(self, path: Path, region: Region, driver: str, crs: Optional[CRS]):
        """Replaces the tile's data with a temporary grid that the tile now owns."""
        if self.delete_on_close and self.path is not None and self.path != path:
            remove_file(self.path)
        self.path = Path(path)
        self.raster = None
        self.outer = region
        self.driver = driver
        self.crs = crs if crs is not None else self.crs
        self.delete_on_close = True
        self._released = False

    def close_handle(self):
        """Releases the reader and the scratch buffer, keeping any temporary file."""
        if self.reader is not None:
            self.reader.close()
            self.reader = None
        self.row = None

    def release(self):
        """
        Closes the reader, drops the buffer and deletes the temporary file.

        Safe to call any number of times; the temporary file is deleted once.
        """
        self.close_handle()
        if self._released:
            return
        self._released = True
        if self.delete_on_close and self.path is not None:
            remove_file(self.path)

    def __repr__(self) -> str:
        sense = "inverse" if self.invert else "normal"
        return (f"<TileSource {self.name} state={self._state.value} "
                f"weight={self.weight:g} ({sense})>")
