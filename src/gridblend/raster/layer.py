# src/gridblend/raster/layer.py

import logging
from pathlib import Path
from typing import Union, Optional, Dict, Any, Tuple

import numpy as np
import rasterio
from rasterio.transform import Affine
from rasterio.crs import CRS

from gridblend.exceptions import InputNotFoundError, RasterIOError, RasterValidationError
from .region import Region, Registration
from .resources import estimate_raster_memory
from .utils import resolve_envi_path

log = logging.getLogger(__name__)

__all__ = ["Raster"]

class Raster:
    """
    An in-memory grid.

    A Raster synchronizes a NumPy array of values with the geospatial context
    needed to place it on a lattice (transform, CRS, registration). Rasters
    can be handed to the blend engine directly as memory-resident tiles, and
    the engine returns one when no output file is requested.

    Attributes:
        data (np.ndarray): The value array in (Bands, Height, Width) format.
        transform (Affine): The affine transform of the stored array.
        crs (CRS | None): The Coordinate Reference System.
        nodata (float | int | None): The value representing missing data.
        registration (Registration): Node or pixel registration of the values.
    """

    def __init__(
        self,
        data: np.ndarray,
        transform: Affine,
        crs: Optional[CRS] = None,
        nodata: Optional[Union[float, int]] = None,
        registration: Registration = Registration.PIXEL
    ):
        """
        Initialize a Raster object.

        Args:
            data: Input array. Must be 2D (Height, Width) or 3D (Bands, Height, Width).
                  2D arrays are automatically promoted to 3D (1, Height, Width).
            transform: Geospatial transform (maps pixel corners to coordinates).
            crs: Coordinate Reference System.
            nodata: Value indicating no data.
            registration: Registration of the values (PIXEL for ordinary rasters).

        Raises:
            RasterValidationError: If dimensions mismatch or types are incorrect.
        """
        self.validate_inputs(data, transform)

        if data.ndim == 2:
            data = data[np.newaxis, :, :]

        self._data = data
        self.transform = transform
        self.crs = crs
        self.nodata = nodata
        self.registration = Registration(registration)

    def validate_inputs(self, data: np.ndarray, transform: Affine):
        """Internal validation logic."""
        if not isinstance(data, np.ndarray):
            raise TypeError(f"Data must be numpy.ndarray, got {type(data)}")

        if data.ndim not in (2, 3):
            raise RasterValidationError(f"Data must be 2D or 3D, got shape {data.shape}")

        if not isinstance(transform, Affine):
            raise TypeError(f"Transform must be rasterio.Affine, got {type(transform)}")

    @classmethod
    def from_region(
        cls,
        data: np.ndarray,
        region: Region,
        crs: Optional[CRS] = None,
        nodata: Optional[Union[float, int]] = None
    ) -> 'Raster':
        """
        Wrap an array whose shape matches a Region lattice.

        Raises:
            RasterValidationError: If the array shape does not match the region.
        """
        shape = data.shape[-2:]
        if shape != region.shape:
            raise RasterValidationError(
                f"Array shape {shape} does not match region {region} (expected {region.shape})"
            )
        return cls(data, region.transform, crs=crs, nodata=nodata, registration=region.registration)

    @classmethod
    def from_file(
        cls,
        path: Union[str, Path],
        band: int = 1,
        registration: Optional[Registration] = None,
        check_memory: bool = True
    ) -> 'Raster':
        """
        Load one band of a grid file into memory.

        Args:
            path: Path to the grid file.
            band: 1-based band index to load.
            registration: Force a registration. If None, 'AREA_OR_POINT=Point'
                          selects NODE and anything else PIXEL.
            check_memory: If True (default), estimates required RAM before loading.

        Returns:
            Raster: A new Raster instance.

        Raises:
            InputNotFoundError: If the file does not exist.
            MemoryError: If check_memory is True and the file is too large.
            RasterIOError: If the file cannot be read.
        """
        path = resolve_envi_path(Path(path))

        if not path.exists():
            raise InputNotFoundError("Grid file not found", path)

        if check_memory:
            estimate = estimate_raster_memory(path)
            if not estimate.is_safe:
                log.error(estimate.reason)
                raise MemoryError(f"{path.name} does not fit in memory. {estimate.reason}")
            log.debug(estimate.reason)

        log.debug(f"Loading Raster from: {path.name}")

        try:
            with rasterio.open(path) as src:
                data = src.read(band)
                if registration is None:
                    point = src.tags().get("AREA_OR_POINT", "").lower() == "point"
                    registration = Registration.NODE if point else Registration.PIXEL
                return cls(
                    data=data,
                    transform=src.transform,
                    crs=src.crs,
                    nodata=src.nodata,
                    registration=registration
                )
        except rasterio.RasterioIOError as e:
            raise RasterIOError(f"Failed to read grid: {e}", path) from e

    @property
    def data(self) -> np.ndarray:
        """Access the raw pixel data."""
        return self._data

    @property
    def width(self) -> int:
        return self._data.shape[2]

    @property
    def height(self) -> int:
        return self._data.shape[1]

    @property
    def count(self) -> int:
        return self._data.shape[0]

    @property
    def shape(self) -> Tuple[int, int, int]:
        """Returns (Bands, Height, Width)."""
        return self._data.shape

    @property
    def region(self) -> Region:
        """The lattice this raster occupies."""
        return Region.from_transform(self.transform, self.width, self.height, self.registration)

    @property
    def profile(self) -> Dict[str, Any]:
        """
        Rasterio-compliant profile of the current state. Written grids are
        striped so they can be streamed row by row when read back.
        """
        return {
            'driver': 'GTiff',
            'dtype': self._data.dtype,
            'nodata': self.nodata,
            'width': self.width,
            'height': self.height,
            'count': self.count,
            'crs': self.crs,
            'transform': self.transform,
            'tiled': False
        }

    def as_float(self, band: int = 1) -> np.ndarray:
        """
        One band as float32 with nodata values replaced by NaN.
        """
        values = self._data[band - 1].astype(np.float32)
        if self.nodata is not None and not np.isnan(self.nodata):
            values[values == np.float32(self.nodata)] = np.nan
        return values

    def save(self, path: Union[str, Path], **kwargs):
        """
        Write the Raster to disk.

        Args:
            path: Output file path.
            **kwargs: Overrides for rasterio profile (e.g. compress='deflate').
        """
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        out_profile = self.profile.copy()
        out_profile.update(kwargs)

        log.info(f"Saving Raster ({self.shape}) to {path}")

        try:
            with rasterio.open(path, 'w', **out_profile) as dst:
                if self.registration is Registration.NODE:
                    dst.update_tags(AREA_OR_POINT="Point")
                dst.write(self._data)
        except Exception as e:
            raise RasterIOError(f"Failed to save grid: {e}", path) from e

    def __repr__(self) -> str:
        return (f"<Raster shape={self.shape} dtype={self._data.dtype} "
                f"crs={self.crs} registration={self.registration.value}>")

    def __eq__(self, other: object) -> bool:
        """Checks equality based on metadata and pixel data."""
        if not isinstance(other, Raster):
            return NotImplemented

        meta_eq = (
            self.transform == other.transform and
            self.crs == other.crs and
            self.registration == other.registration and
            self.shape == other.shape
        )
        if not meta_eq:
            return False

        return np.array_equal(self._data, other.data, equal_nan=True)
