# src/gridblend/blend/__init__.py
#
# Copyright (c) The gridblend project contributors
# This software is distributed under the Apache-2.0 license.
# See the NOTICE file for more information

"""
The blend subpackage provides the streaming blend engine: configuration,
tile placement and alignment, the row synchronizer, the compositor and the
output writer.
"""
# Configuration
from .config import (
    CombinationPolicy,
    SignFilter,
    OutputMode,
    BlendConfig,
    parse_clobber
)

# Geometry
from .geometry import (
    TileGeometry,
    compute_geometry,
    taper_weight
)

# Tiles
from .tile import (
    TileState,
    TileSource
)

# Alignment
from .alignment import (
    INCREMENT_TOLERANCE,
    PHASE_TOLERANCE,
    AlignmentReason,
    AlignmentPlan,
    AlignmentPlanner,
    out_of_phase
)

# Registry
from .registry import (
    BlendEntry,
    read_blend_file,
    entries_from_files,
    SourceRegistry
)

# Row scan
from .sync import (
    RowSynchronizer
)
from .compositor import (
    Compositor
)
from .writer import (
    BlendStatistics,
    StreamWriter
)

# Engine
from .engine import (
    BlendResult,
    blend
)

__all__ = [
    # Config
    "CombinationPolicy",
    "SignFilter",
    "OutputMode",
    "BlendConfig",
    "parse_clobber",

    # Geometry
    "TileGeometry",
    "compute_geometry",
    "taper_weight",

    # Tiles
    "TileState",
    "TileSource",

    # Alignment
    "INCREMENT_TOLERANCE",
    "PHASE_TOLERANCE",
    "AlignmentReason",
    "AlignmentPlan",
    "AlignmentPlanner",
    "out_of_phase",

    # Registry
    "BlendEntry",
    "read_blend_file",
    "entries_from_files",
    "SourceRegistry",

    # Row scan
    "RowSynchronizer",
    "Compositor",
    "BlendStatistics",
    "StreamWriter",

    # Engine
    "BlendResult",
    "blend"
]
