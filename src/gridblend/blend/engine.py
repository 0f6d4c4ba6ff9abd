# src/gridblend/blend/engine.py

"""
This module drives a blend job from the tile list to the finished grid.

The tiles are inspected and placed once up front; the output is then
produced in a single north-to-south pass in which every row goes through
RowSynchronizer, Compositor and StreamWriter in that order.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Union, Optional, List, Sequence, TextIO

from gridblend.raster.io import RasterioGridReader, is_grid_file
from gridblend.raster.layer import Raster
from gridblend.raster.region import Region
from gridblend.raster.resample import Resampler, Reformatter
from gridblend.raster.resources import estimate_stream_memory
from .compositor import Compositor
from .config import BlendConfig
from .registry import BlendEntry, SourceRegistry, read_blend_file, entries_from_files
from .sync import RowSynchronizer, ReaderFactory
from .tile import TileSource
from .writer import BlendStatistics, StreamWriter

log = logging.getLogger(__name__)

__all__ = [
    "BlendResult",
    "resolve_entries",
    "blend"
]

BlendSource = Union[str, Path, Raster, BlendEntry]

@dataclass(frozen=True)
class BlendResult:
    """
    Outcome of a blend job.

    Args:
        path: Output file (None for in-memory outputs).
        raster: Output grid for in-memory outputs, else None.
        region: Output lattice.
        statistics: Output statistics.
        tiles: Every tile in input order, including ignored ones.
    """
    path: Optional[Path]
    raster: Optional[Raster]
    region: Region
    statistics: BlendStatistics
    tiles: List[TileSource]

def resolve_entries(sources: Union[BlendSource, TextIO, Sequence[BlendSource]]) -> List[BlendEntry]:
    """
    Normalises the accepted source forms into blend entries.

    A single path is read as a grid if GDAL recognises it and as a blend
    file otherwise; an open text stream is always a blend file.
    """
    if isinstance(sources, BlendEntry):
        return [sources]
    if isinstance(sources, Raster):
        return entries_from_files([sources])
    if isinstance(sources, (str, Path)):
        if is_grid_file(sources):
            return entries_from_files([sources])
        return read_blend_file(sources)
    if hasattr(sources, "readlines"):
        return read_blend_file(sources)

    return [s if isinstance(s, BlendEntry) else BlendEntry(s) for s in sources]

def blend(
    sources: Union[BlendSource, TextIO, Sequence[BlendSource]],
    output: Optional[Union[str, Path]] = None,
    config: Optional[BlendConfig] = None,
    resampler: Optional[Resampler] = None,
    reformatter: Optional[Reformatter] = None,
    reader_factory: Optional[ReaderFactory] = None
) -> BlendResult:
    """
    Blends a set of tiles into one grid.

    Args:
        sources: A blend file (path or stream), grid paths, in-memory Rasters
                 or BlendEntry records.
        output: Output file. If None the output is returned as a Raster.
        config: Engine configuration. Default=BlendConfig().
        resampler: Collaborator for tiles off the output lattice.
        reformatter: Collaborator for tiles that cannot stream rows.
        reader_factory: Builds row readers for tile files (for testing).

    Returns:
        BlendResult: Output location or grid plus statistics and tiles.

    Raises:
        GridBlendError: Any fatal error; temporary files and partial output
            are removed before it propagates.
    """
    config = config or BlendConfig()
    if output is None and config.raw:
        raise ValueError("Raw output needs an output file")

    entries = resolve_entries(sources)
    registry = SourceRegistry(entries, config, resampler, reformatter)
    tiles, region = registry.build()

    active = [t for t in tiles if not t.is_ignored]
    if len(active) == 1:
        log.warning("Only 1 grid found; no blending will take place")
    elif not active:
        log.warning("No grid overlaps the output region; output will hold no data")

    footprint = estimate_stream_memory((t.outer.n_columns for t in active), region.n_columns)
    log.debug(f"Streaming {region.n_rows} rows x {region.n_columns} columns, ~{footprint / 1e6:.1f}MB resident")

    synchronizer = RowSynchronizer(tiles, region, reader_factory or RasterioGridReader)
    try:
        compositor = Compositor(tiles, region, config, periodic=registry.geographic)
        with StreamWriter(output, region, config, registry.crs) as writer:
            for row in range(region.n_rows):
                synchronizer.sync(row)
                values, filled = compositor.composite()
                writer.write_row(row, values, filled)
                if row % config.progress_interval == 0:
                    log.debug(f"Processed row {row} of {region.n_rows}")
            raster = writer.finalize()
    finally:
        synchronizer.close_all()

    return BlendResult(
        path=Path(output) if output is not None else None,
        raster=raster,
        region=region,
        statistics=writer.statistics,
        tiles=tiles
    )
