# src/gridblend/__init__.py
#
# Copyright (c) The gridblend project contributors
# This software is distributed under the Apache-2.0 license.
# See the NOTICE file for more information

"""
gridblend blends overlapping raster tiles into one grid, row by row, with
cosine tapered weights across tile edges.
"""
from .exceptions import GridBlendError
from .raster import Raster, Region, Registration
from .blend import (
    BlendConfig,
    BlendEntry,
    BlendResult,
    CombinationPolicy,
    OutputMode,
    SignFilter,
    blend,
    read_blend_file
)

__version__ = "0.1.0"

__all__ = [
    "GridBlendError",
    "Raster",
    "Region",
    "Registration",
    "BlendConfig",
    "BlendEntry",
    "BlendResult",
    "CombinationPolicy",
    "OutputMode",
    "SignFilter",
    "blend",
    "read_blend_file"
]
