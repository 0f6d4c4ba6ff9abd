# src/gridblend/raster/__init__.py
#
# Copyright (c) The gridblend project contributors
# This software is distributed under the Apache-2.0 license.
# See the NOTICE file for more information

"""
The raster subpackage provides the grid primitives used by the blend engine,
including lattice descriptions, in-memory grids, row-by-row I/O, resampling
collaborators and resource management.
"""
# Lattice description
from .region import (
    Registration,
    Region,
    parse_region,
    parse_increment,
    wrap_into_overlap,
    is_whole_multiple
)

# Core data structure
from .layer import (
    Raster
)

# I/O operations
from .io import (
    GridHeader,
    read_header,
    is_grid_file,
    GridReader,
    RasterioGridReader,
    GridWriter,
    RasterioGridWriter,
    RawGridWriter,
    MemoryGridWriter,
    translate
)

# Resampling collaborators
from .resample import (
    Resampler,
    Reformatter,
    RasterioResampler
)

# Resource management
from .resources import (
    MemoryEstimate,
    estimate_array_memory,
    estimate_raster_memory,
    estimate_stream_memory
)

# Shared utilities
from .utils import (
    resolve_envi_path,
    driver_for_path,
    is_streamable_driver,
    make_temp_path,
    remove_file
)

__all__ = [
    # Region
    "Registration",
    "Region",
    "parse_region",
    "parse_increment",
    "wrap_into_overlap",
    "is_whole_multiple",

    # Layer
    "Raster",

    # I/O
    "GridHeader",
    "read_header",
    "is_grid_file",
    "GridReader",
    "RasterioGridReader",
    "GridWriter",
    "RasterioGridWriter",
    "RawGridWriter",
    "MemoryGridWriter",
    "translate",

    # Resampling
    "Resampler",
    "Reformatter",
    "RasterioResampler",

    # Resources
    "MemoryEstimate",
    "estimate_array_memory",
    "estimate_raster_memory",
    "estimate_stream_memory",

    # Utils
    "resolve_envi_path",
    "driver_for_path",
    "is_streamable_driver",
    "make_temp_path",
    "remove_file"
]
