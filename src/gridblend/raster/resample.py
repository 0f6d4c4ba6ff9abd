# src/gridblend/raster/resample.py

"""
This module provides the collaborators that make a tile streamable on the
output lattice.

The blend engine only depends on the Resampler and Reformatter protocols;
RasterioResampler implements both with GDAL warping so the engine never
spawns external processes. Results are written to temporary striped
GeoTIFFs that the caller owns and must delete.
"""

import logging
from contextlib import ExitStack
from pathlib import Path
from typing import Union, Optional, Tuple, Protocol

import numpy as np
import rasterio
from rasterio.crs import CRS
from rasterio.enums import Resampling
from rasterio.io import MemoryFile
from rasterio.vrt import WarpedVRT
from rasterio.windows import Window

from gridblend.exceptions import ResampleError
from .layer import Raster
from .region import Region, Registration
from .utils import make_temp_path, remove_file, resolve_envi_path

log = logging.getLogger(__name__)

__all__ = [
    "Resampler",
    "Reformatter",
    "RasterioResampler"
]

# Grids without a CRS are warped between identical placeholder systems so
# GDAL only applies the affine lattice change.
_PLACEHOLDER_CRS = CRS.from_epsg(3857)

# Rows copied per block while writing temporary grids
_BLOCK_ROWS = 256

GridSource = Union[str, Path, Raster]

class Resampler(Protocol):
    """Regrids a tile onto a lattice that is phase-aligned with the output."""

    def resample(
        self,
        source: GridSource,
        increment: Tuple[float, float],
        region: Tuple[float, float, float, float],
        registration: Registration
    ) -> Path: ...

class Reformatter(Protocol):
    """Converts a tile to a row-streamable format without resampling."""

    def reformat(
        self,
        source: GridSource,
        region: Tuple[float, float, float, float]
    ) -> Path: ...

class RasterioResampler:
    """
    Resampler and Reformatter backed by rasterio.

    Args:
        resampling: Interpolation used when regridding. Default=bilinear.
                    Use Resampling.nearest for categorical data.
        tmp_dir: Directory for the temporary grids (system default if None).
    """
    def __init__(
        self,
        resampling: Resampling = Resampling.bilinear,
        tmp_dir: Optional[Union[str, Path]] = None
    ):
        self.resampling = resampling
        self.tmp_dir = tmp_dir

    def _open(self, stack: ExitStack, source: GridSource) -> rasterio.DatasetReader:
        """Open a file or an in-memory Raster as a rasterio dataset."""
        if isinstance(source, Raster):
            memfile = stack.enter_context(MemoryFile())
            with memfile.open(**source.profile) as dst:
                if source.registration is Registration.NODE:
                    dst.update_tags(AREA_OR_POINT="Point")
                dst.write(source.data)
            return stack.enter_context(memfile.open())
        return stack.enter_context(rasterio.open(resolve_envi_path(Path(source))))

    def _write(
        self,
        src: rasterio.io.DatasetReaderBase,
        target: Region,
        crs: Optional[CRS],
        prefix: str,
        col_off: int = 0,
        row_off: int = 0
    ) -> Path:
        """Copy band 1 of src (from the given offset) into a temporary striped GeoTIFF."""
        out_path = make_temp_path(prefix, ".tif", self.tmp_dir)
        width, height = target.n_columns, target.n_rows
        profile = {
            'driver': 'GTiff',
            'dtype': 'float32',
            'count': 1,
            'width': width,
            'height': height,
            'crs': crs,
            'transform': target.transform,
            'nodata': np.nan,
            'tiled': False
        }
        try:
            with rasterio.open(out_path, 'w', **profile) as dst:
                if target.registration is Registration.NODE:
                    dst.update_tags(AREA_OR_POINT="Point")
                for start in range(0, height, _BLOCK_ROWS):
                    rows = min(_BLOCK_ROWS, height - start)
                    window = Window(col_off, row_off + start, width, rows)
                    block = src.read(1, window=window, masked=True)
                    dst.write(
                        np.ma.filled(block.astype(np.float32), np.nan)[np.newaxis],
                        window=Window(0, start, width, rows)
                    )
        except Exception:
            remove_file(out_path)
            raise
        return out_path

    def resample(
        self,
        source: GridSource,
        increment: Tuple[float, float],
        region: Tuple[float, float, float, float],
        registration: Registration
    ) -> Path:
        """
        Regrid a tile onto the requested lattice, clipped to region.

        Args:
            source: Tile file or in-memory Raster.
            increment: Target (dx, dy).
            region: Target (west, east, south, north) in the target registration.
            registration: Target registration.

        Returns:
            Path: Temporary GeoTIFF on the requested lattice.

        Raises:
            ResampleError: If GDAL fails to warp or write the tile.
        """
        name = source if not isinstance(source, Raster) else "<memory grid>"
        try:
            target = Region(*region, *increment, registration)
            with ExitStack() as stack:
                src = self._open(stack, source)
                crs = src.crs or _PLACEHOLDER_CRS
                vrt = stack.enter_context(WarpedVRT(
                    src,
                    src_crs=crs,
                    crs=crs,
                    transform=target.transform,
                    width=target.n_columns,
                    height=target.n_rows,
                    resampling=self.resampling,
                    src_nodata=src.nodata,
                    nodata=np.nan,
                    dtype='float32'
                ))
                out_path = self._write(vrt, target, src.crs, "gridblend_resampled")
        except Exception as e:
            raise ResampleError(f"Unable to resample grid onto {_target_text(region, increment)}: {e}", name) from e

        log.info(f"Resampled {name} -> {out_path.name} ({target})")
        return out_path

    def reformat(
        self,
        source: GridSource,
        region: Tuple[float, float, float, float]
    ) -> Path:
        """
        Copy the part of a tile inside region into a streamable GeoTIFF.

        Args:
            source: Tile file or in-memory Raster.
            region: (west, east, south, north) on the tile's own lattice.

        Returns:
            Path: Temporary GeoTIFF holding the clipped tile.

        Raises:
            ResampleError: If the tile cannot be read or written.
        """
        name = source if not isinstance(source, Raster) else "<memory grid>"
        try:
            with ExitStack() as stack:
                src = self._open(stack, source)
                point = src.tags().get("AREA_OR_POINT", "").lower() == "point"
                own = Region.from_transform(
                    src.transform, src.width, src.height,
                    Registration.NODE if point else Registration.PIXEL
                )
                target = own.with_bounds(*region)
                col_off = int(round((target.west - own.west) / own.dx))
                row_off = int(round((own.north - target.north) / own.dy))
                out_path = self._write(src, target, src.crs, "gridblend_reformatted", col_off, row_off)
        except Exception as e:
            raise ResampleError(f"Unable to reformat grid: {e}", name) from e

        log.info(f"Reformatted {name} -> {out_path.name}")
        return out_path

def _target_text(region: Tuple[float, float, float, float], increment: Tuple[float, float]) -> str:
    w, e, s, n = region
    return f"{w:.12g}/{e:.12g}/{s:.12g}/{n:.12g} inc {increment[0]:.12g}/{increment[1]:.12g}"
