# src/gridblend/raster/io.py

"""
This module handles all disk-based operations for grids.

Readers and writers here only ever move one row at a time so that the blend
engine can stream grids far larger than memory. NaN is the in-memory marker
for missing values: readers map a file's nodata value to NaN, writers store
whatever nodata value the caller asks for.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Union, Optional, BinaryIO, Protocol

import numpy as np
import rasterio
import rasterio.shutil
from rasterio.crs import CRS
from rasterio.windows import Window

from gridblend.exceptions import (
    InputNotFoundError,
    FormatUnsupportedError,
    RasterIOError,
    ReadError,
    SeekError,
    WriteError
)
from .layer import Raster
from .region import Region, Registration
from .resources import estimate_array_memory
from .utils import resolve_envi_path, is_streamable_driver

log = logging.getLogger(__name__)

__all__ = [
    "GridHeader",
    "read_header",
    "is_grid_file",
    "GridReader",
    "RasterioGridReader",
    "GridWriter",
    "RasterioGridWriter",
    "RawGridWriter",
    "MemoryGridWriter",
    "translate"
]

@dataclass(frozen=True)
class GridHeader:
    """
    Header-only view of a grid file.

    Args:
        path: Resolved path of the grid.
        region: Lattice of the grid.
        driver: GDAL driver name.
        crs: Coordinate Reference System (None if the file has none).
        nodata: Nodata value declared by the file.
        width: Number of columns stored in the file.
        height: Number of rows stored in the file.
        streamable: True if rows can be read one at a time.
    """
    path: Path
    region: Region
    driver: str
    crs: Optional[CRS]
    nodata: Optional[float]
    width: int
    height: int
    streamable: bool

def _registration_from_tags(src: rasterio.DatasetReader) -> Registration:
    point = src.tags().get("AREA_OR_POINT", "").lower() == "point"
    return Registration.NODE if point else Registration.PIXEL

def read_header(
    path: Union[str, Path],
    registration: Optional[Registration] = None
) -> GridHeader:
    """
    Inspect a grid without reading any values.

    Args:
        path: Path to the grid file.
        registration: Force a registration. If None, 'AREA_OR_POINT=Point'
                      selects NODE and anything else PIXEL.

    Returns:
        GridHeader: Lattice, driver and nodata of the grid.

    Raises:
        InputNotFoundError: If the file does not exist.
        RasterIOError: If the file exists but cannot be opened as a grid.
    """
    path = resolve_envi_path(Path(path))
    if not path.exists():
        raise InputNotFoundError("Grid file not found", path)

    try:
        with rasterio.open(path) as src:
            reg = registration or _registration_from_tags(src)
            region = Region.from_transform(src.transform, src.width, src.height, reg)
            return GridHeader(
                path=path,
                region=region,
                driver=src.driver,
                crs=src.crs,
                nodata=src.nodata,
                width=src.width,
                height=src.height,
                streamable=is_streamable_driver(src.driver)
            )
    except rasterio.RasterioIOError as e:
        raise RasterIOError(f"Failed to read grid header: {e}", path) from e

def is_grid_file(path: Union[str, Path]) -> bool:
    """True if GDAL recognises the file as a raster."""
    path = Path(path)
    if not path.is_file():
        return False
    try:
        with rasterio.open(path):
            return True
    except rasterio.RasterioIOError:
        return False

class GridReader(Protocol):
    """Row-by-row access to one grid file."""

    def open(self) -> None: ...

    def seek(self, row: int) -> None: ...

    def read_row(self) -> np.ndarray: ...

    def close(self) -> None: ...

class RasterioGridReader:
    """
    Sequential row reader backed by a rasterio dataset.

    The dataset is only opened by open(); seek() positions the cursor on a
    file row and every read_row() returns that row as float32 (nodata
    replaced by NaN) and advances the cursor by one.

    Args:
        path: Grid file to read.
        band: 1-based band index. Default=1.
    """
    def __init__(self, path: Union[str, Path], band: int = 1):
        self.path = Path(path)
        self.band = band
        self._src = None
        self._row = 0

    @property
    def is_open(self) -> bool:
        return self._src is not None

    def open(self):
        if self._src is not None:
            return
        if not self.path.exists():
            raise InputNotFoundError("Grid file disappeared before it could be read", self.path)
        try:
            self._src = rasterio.open(self.path)
        except rasterio.RasterioIOError as e:
            raise RasterIOError(f"Failed to open grid: {e}", self.path) from e
        if not is_streamable_driver(self._src.driver):
            driver = self._src.driver
            self.close()
            raise FormatUnsupportedError(f"{driver} grids cannot be read row by row", self.path)
        self._row = 0
        log.debug(f"Opened {self.path.name} ({self._src.width}x{self._src.height})")

    def seek(self, row: int):
        if self._src is None:
            raise SeekError("Cannot seek in a closed grid", self.path)
        if row < 0 or row >= self._src.height:
            raise SeekError(f"Row {row} outside grid with {self._src.height} rows", self.path)
        self._row = row

    def read_row(self) -> np.ndarray:
        if self._src is None:
            raise ReadError("Cannot read from a closed grid", self.path)
        if self._row >= self._src.height:
            raise ReadError(f"Read past last row ({self._src.height})", self.path)

        window = Window(0, self._row, self._src.width, 1)
        try:
            values = self._src.read(self.band, window=window, masked=True)
        except rasterio.RasterioIOError as e:
            raise ReadError(f"Failed to read row {self._row}: {e}", self.path) from e

        self._row += 1
        return np.ma.filled(values[0].astype(np.float32), np.nan)

    def close(self):
        if self._src is not None:
            self._src.close()
            self._src = None
            log.debug(f"Closed {self.path.name}")

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

class GridWriter(Protocol):
    """Row-by-row sink for the output grid."""

    def write_row(self, index: int, values: np.ndarray) -> None: ...

    def finalize(self, z_min: float, z_max: float, n_filled: int) -> Optional[Raster]: ...

    def close(self) -> None: ...

class RasterioGridWriter:
    """
    Writes a single band grid through rasterio, one row window at a time.

    GeoTIFF outputs are striped (not tiled) so rows are appended without
    rewriting blocks. Node registered outputs are tagged AREA_OR_POINT=Point.

    Args:
        path: Output file.
        region: Output lattice.
        crs: Coordinate Reference System of the output.
        nodata: Value stored for empty cells.
        driver: GDAL driver name. Default='GTiff'.
    """
    def __init__(
        self,
        path: Union[str, Path],
        region: Region,
        crs: Optional[CRS] = None,
        nodata: float = np.nan,
        driver: str = "GTiff"
    ):
        self.path = Path(path)
        self.region = region
        self.path.parent.mkdir(parents=True, exist_ok=True)

        profile = {
            'driver': driver,
            'dtype': 'float32',
            'count': 1,
            'width': region.n_columns,
            'height': region.n_rows,
            'crs': crs,
            'transform': region.transform,
            'nodata': nodata
        }
        if driver == "GTiff":
            profile['tiled'] = False

        try:
            self._dst = rasterio.open(self.path, 'w', **profile)
            if region.registration is Registration.NODE:
                self._dst.update_tags(AREA_OR_POINT="Point")
        except Exception as e:
            raise WriteError(f"Failed to create output grid: {e}", self.path) from e

    def write_row(self, index: int, values: np.ndarray):
        window = Window(0, index, self.region.n_columns, 1)
        try:
            self._dst.write(values[np.newaxis, :], 1, window=window)
        except Exception as e:
            raise WriteError(f"Failed to write row {index}: {e}", self.path) from e

    def finalize(self, z_min: float, z_max: float, n_filled: int) -> None:
        try:
            if n_filled:
                self._dst.update_tags(1, STATISTICS_MINIMUM=f"{z_min:.12g}", STATISTICS_MAXIMUM=f"{z_max:.12g}")
            self._dst.update_tags(1, N_FILLED=str(n_filled))
        finally:
            self.close()

    def close(self):
        if self._dst is not None and not self._dst.closed:
            self._dst.close()

class RawGridWriter:
    """
    Headerless native float32 output: rows are appended to a flat binary file.
    """
    def __init__(self, path: Union[str, Path], region: Region):
        self.path = Path(path)
        self.region = region
        self.path.parent.mkdir(parents=True, exist_ok=True)
        try:
            self._fh: Optional[BinaryIO] = open(self.path, "wb")
        except OSError as e:
            raise WriteError(f"Failed to create raw output: {e}", self.path) from e

    def write_row(self, index: int, values: np.ndarray):
        try:
            self._fh.write(values.astype(np.float32).tobytes())
        except (OSError, ValueError) as e:
            raise WriteError(f"Failed to write row {index}: {e}", self.path) from e

    def finalize(self, z_min: float, z_max: float, n_filled: int) -> None:
        self.close()

    def close(self):
        if self._fh is not None:
            self._fh.close()
            self._fh = None

class MemoryGridWriter:
    """
    Collects the output rows into an in-memory Raster.

    Raises:
        MemoryError: If the whole output grid does not fit in available RAM.
    """
    def __init__(self, region: Region, crs: Optional[CRS] = None, nodata: float = np.nan):
        estimate = estimate_array_memory(region.n_columns, region.n_rows, "float32", safety_factor=1.5)
        if not estimate.is_safe:
            raise MemoryError(f"Output grid {region.shape} does not fit in memory. {estimate.reason}")
        log.debug(f"In-memory output grid: {estimate.reason}")

        self.region = region
        self.crs = crs
        self.nodata = nodata
        self._data = np.empty(region.shape, dtype=np.float32)

    def write_row(self, index: int, values: np.ndarray):
        self._data[index] = values

    def finalize(self, z_min: float, z_max: float, n_filled: int) -> Raster:
        return Raster.from_region(self._data, self.region, crs=self.crs, nodata=self.nodata)

    def close(self):
        pass

def translate(
    src_path: Union[str, Path],
    dst_path: Union[str, Path],
    driver: str
) -> Path:
    """
    Convert a finished grid into a format that cannot be written row by row.

    Raises:
        WriteError: If GDAL cannot create the destination.
    """
    dst_path = Path(dst_path)
    log.info(f"Reformat {Path(src_path).name} -> {dst_path.name} ({driver})")
    try:
        rasterio.shutil.copy(str(src_path), str(dst_path), driver=driver)
    except Exception as e:
        raise WriteError(f"Failed to convert output to {driver}: {e}", dst_path) from e
    return dst_path
