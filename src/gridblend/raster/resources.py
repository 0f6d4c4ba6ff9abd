# src/gridblend/raster/resources.py

"""
This module performs static memory analysis before grids are materialised.

Two situations matter for the blend engine:
- Holding a whole grid in RAM (in-memory tiles or an in-memory output)
- The streaming footprint of a blend job (one row per tile plus the output row)
"""

import logging
import psutil
from pathlib import Path
from typing import Union, Iterable
from dataclasses import dataclass

import numpy as np
import rasterio

from .utils import resolve_envi_path

log = logging.getLogger(__name__)

__all__ = [
    "MemoryEstimate",
    "estimate_array_memory",
    "estimate_raster_memory",
    "estimate_stream_memory"
]

DEFAULT_SAFETY_FACTOR = 3.0
MIN_FREE_GB = 2.0

@dataclass(frozen=True)
class MemoryEstimate:
    """
    Estimation of memory requirements and safety for holding a grid in RAM.

    Args:
        total_required_bytes: Total bytes required (with overhead)
        available_system_bytes: Currently available system memory in bytes
        is_safe: Boolean indicating if allocation is considered safe
        reason: Explanation for the safety assessment (e.g. "Req: 10GB, Avail: 4GB")
    """
    total_required_bytes: int
    available_system_bytes: int
    is_safe: bool
    reason: str

def estimate_array_memory(
    width: int,
    height: int,
    dtype: Union[str, np.dtype] = "float32",
    count: int = 1,
    safety_factor: float = DEFAULT_SAFETY_FACTOR,
    min_free_gb: float = MIN_FREE_GB
) -> MemoryEstimate:
    """
    Checks if an array of the given shape fits in RAM safely.

    Args:
        width: Number of columns.
        height: Number of rows.
        dtype: Element type of the array.
        count: Number of bands.
        safety_factor: Multiplier to account for overhead (default 3.0)
        min_free_gb: Minimum free GB to leave available after allocation (default 2.0)

    Returns:
        MemoryEstimate: Contains total required bytes, available bytes, safety boolean, and reason.
    """
    raw_bytes = int(width) * int(height) * int(count) * np.dtype(dtype).itemsize
    total_required = int(raw_bytes * safety_factor)

    mem = psutil.virtual_memory()
    min_free_bytes = int(min_free_gb * (1024**3))
    is_safe = (total_required + min_free_bytes) <= mem.available

    reason = f"Req: {total_required/1e9:.2f}GB, Avail: {mem.available/1e9:.2f}GB"

    return MemoryEstimate(total_required, mem.available, is_safe, reason)

def estimate_raster_memory(
    raster_path: Union[str, Path],
    safety_factor: float = DEFAULT_SAFETY_FACTOR
) -> MemoryEstimate:
    """
    Runs estimate_array_memory on the header of a raster file (no pixels are read).
    """
    path = resolve_envi_path(Path(raster_path))
    with rasterio.open(path) as src:
        return estimate_array_memory(
            src.width, src.height, src.dtypes[0], count=src.count, safety_factor=safety_factor
        )

def estimate_stream_memory(
    tile_widths: Iterable[int],
    output_width: int,
    itemsize: int = 4
) -> int:
    """
    Bytes held by a streaming blend: one scratch row per tile, the per-tile
    column maps (output column, tile column and x-taper weight), the output
    row and the float64 accumulators (two sums and a contributor count).

    Args:
        tile_widths: Column count of every participating tile.
        output_width: Column count of the output grid.
        itemsize: Bytes per stored grid value.

    Returns:
        int: Approximate resident bytes, independent of the number of output rows.
    """
    widths = [int(w) for w in tile_widths]
    rows = sum(widths) * itemsize
    column_maps = len(widths) * output_width * 3 * 8
    accumulators = output_width * (itemsize + 3 * 8)
    return rows + column_maps + accumulators
