# src/gridblend/blend/writer.py

"""
This module emits finished output rows and tracks the output statistics.

StreamWriter picks the grid writer for the requested output (row-writable
grid format, headerless raw floats, or an in-memory Raster), enforces the
strictly increasing row order, and finalizes the header statistics once the
last row is in. Formats that cannot be written row by row are streamed to a
temporary GeoTIFF first and converted at the end.
"""

import logging
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Union, Optional

import numpy as np
from rasterio.crs import CRS

from gridblend.exceptions import WriteError
from gridblend.raster.io import (
    GridWriter,
    RasterioGridWriter,
    RawGridWriter,
    MemoryGridWriter,
    translate
)
from gridblend.raster.layer import Raster
from gridblend.raster.region import Region
from gridblend.raster.utils import driver_for_path, is_streamable_driver, make_temp_path, remove_file
from .config import BlendConfig

log = logging.getLogger(__name__)

__all__ = [
    "BlendStatistics",
    "StreamWriter"
]

@dataclass
class BlendStatistics:
    """
    Running statistics of the output grid.

    Attributes:
        z_min: Smallest value written to a filled cell (inf while empty).
        z_max: Largest value written to a filled cell (-inf while empty).
        n_filled: Number of cells at least one tile contributed to.
        n_total: Number of cells written so far.
    """
    z_min: float = math.inf
    z_max: float = -math.inf
    n_filled: int = 0
    n_total: int = 0

    @property
    def n_empty(self) -> int:
        return self.n_total - self.n_filled

    def update(self, values: np.ndarray, filled: np.ndarray):
        """Adds one row: values are the written cells, filled flags the covered ones."""
        self.n_total += values.size
        n = int(np.count_nonzero(filled))
        if n == 0:
            return
        self.n_filled += n
        covered = values[filled]
        self.z_min = min(self.z_min, float(np.nanmin(covered)))
        self.z_max = max(self.z_max, float(np.nanmax(covered)))

    def summary(self, nodata: float) -> str:
        if self.n_empty == 0:
            return "All nodes assigned values"
        return f"{self.n_filled} nodes assigned values, {self.n_empty} set to {nodata:g}"

class StreamWriter:
    """
    Row-ordered sink for the output grid.

    Args:
        path: Output file. If None the grid is built in memory.
        region: Output lattice.
        config: Engine configuration (nodata value, raw output flag).
        crs: CRS written to the output.

    Raises:
        WriteError: If the output cannot be created.
        MemoryError: If an in-memory output does not fit in RAM.
    """
    def __init__(
        self,
        path: Optional[Union[str, Path]],
        region: Region,
        config: Optional[BlendConfig] = None,
        crs: Optional[CRS] = None
    ):
        self.path = Path(path) if path is not None else None
        self.region = region
        self.config = config or BlendConfig()
        self.statistics = BlendStatistics()

        self._next_row = 0
        self._finished = False
        self._staging: Optional[Path] = None
        self._driver: Optional[str] = None

        nodata = self.config.nodata
        if self.path is None:
            self._writer: GridWriter = MemoryGridWriter(region, crs=crs, nodata=nodata)
        elif self.config.raw:
            self._writer = RawGridWriter(self.path, region)
        else:
            self._driver = driver_for_path(self.path)
            target = self.path
            if not is_streamable_driver(self._driver):
                self._staging = make_temp_path("gridblend_output", ".tif", self.config.tmp_dir)
                target = self._staging
                log.info(f"{self._driver} cannot be written row by row; staging output in {target.name}")
            self._writer = RasterioGridWriter(
                target, region, crs=crs, nodata=nodata,
                driver="GTiff" if self._staging else self._driver
            )

        log.debug(f"Output writer {type(self._writer).__name__} for {region}")

    def write_row(self, index: int, values: np.ndarray, filled: np.ndarray):
        """
        Writes output row `index`.

        Raises:
            WriteError: If rows arrive out of order or the row has the wrong width.
        """
        if self._finished:
            raise WriteError("Output already finalized", self.path)
        if index != self._next_row:
            raise WriteError(f"Rows must be written in order: expected {self._next_row}, got {index}", self.path)
        if values.shape != (self.region.n_columns,):
            raise WriteError(f"Row {index} has shape {values.shape}, expected ({self.region.n_columns},)", self.path)

        self._writer.write_row(index, values.astype(np.float32, copy=False))
        self.statistics.update(values, filled)
        self._next_row += 1

    def finalize(self) -> Optional[Raster]:
        """
        Writes the header statistics and closes the output.

        Returns:
            Optional[Raster]: The output grid for in-memory outputs, else None.

        Raises:
            WriteError: If rows are missing or the output cannot be completed.
        """
        if self._next_row != self.region.n_rows:
            raise WriteError(
                f"Only {self._next_row} of {self.region.n_rows} rows were written", self.path
            )

        stats = self.statistics
        try:
            result = self._writer.finalize(stats.z_min, stats.z_max, stats.n_filled)
            if self._staging is not None:
                translate(self._staging, self.path, self._driver)
        except Exception:
            self.abort()
            raise
        finally:
            if self._staging is not None:
                remove_file(self._staging)
                self._staging = None
        self._finished = True

        log.info(stats.summary(self.config.nodata))
        if stats.n_filled:
            log.info(f"Output range {stats.z_min:.12g} to {stats.z_max:.12g}")
        return result

    def abort(self):
        """Closes the writer and removes any partial output."""
        if self._finished:
            return
        self._finished = True
        self._writer.close()
        if self._staging is not None:
            remove_file(self._staging)
            self._staging = None
        if self.path is not None and self.path.exists():
            log.warning(f"Removing incomplete output {self.path}")
            remove_file(self.path)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        if not self._finished:
            self.abort()
