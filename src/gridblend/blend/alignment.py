# src/gridblend/blend/alignment.py

"""
This module decides whether a tile can be streamed onto the output lattice
as it is, and rebuilds it through the resample/reformat collaborators when
it cannot.

A tile is rebuilt when its format cannot be read one row at a time, when
its increments differ from the output's, or when its nodes are not an
integer number of output increments away from the output nodes. The
rebuilt grid is a temporary file owned by the tile.
"""

import logging
import math
from dataclasses import dataclass
from enum import Flag
from typing import Optional, Tuple

from gridblend.exceptions import GridBlendError, ResampleError
from gridblend.raster.io import read_header
from gridblend.raster.region import Region, Registration, wrap_into_overlap
from gridblend.raster.resample import Resampler, Reformatter
from gridblend.raster.utils import is_streamable_driver
from .tile import TileSource

log = logging.getLogger(__name__)

__all__ = [
    "INCREMENT_TOLERANCE",
    "PHASE_TOLERANCE",
    "AlignmentReason",
    "AlignmentPlan",
    "out_of_phase",
    "increments_differ",
    "AlignmentPlanner"
]

# Relative increment tolerance, and phase tolerance in output cells.
INCREMENT_TOLERANCE = 0.002
PHASE_TOLERANCE = 1e-8

class AlignmentReason(Flag):
    """Why a tile must be rebuilt before streaming (reasons combine).

    Options:
        NONE: Tile is usable as it is.
        REFORMAT: Format cannot be read one row at a time.
        INCREMENT: Increments differ from the output increments.
        PHASE: Nodes are shifted with respect to the output nodes.
    """
    NONE = 0
    REFORMAT = 1
    INCREMENT = 2
    PHASE = 4

@dataclass(frozen=True)
class AlignmentPlan:
    """
    What to do with one tile.

    Args:
        reasons: Combined AlignmentReason flags.
        region: Target (west, east, south, north). For a resample it is given
                in the output registration; for a reformat in the tile's own.
        increment: Target (dx, dy).
        registration: Registration of the rebuilt grid.
    """
    reasons: AlignmentReason
    region: Optional[Tuple[float, float, float, float]] = None
    increment: Optional[Tuple[float, float]] = None
    registration: Optional[Registration] = None

    @property
    def needs_resample(self) -> bool:
        return bool(self.reasons & (AlignmentReason.INCREMENT | AlignmentReason.PHASE))

    @property
    def needs_reformat(self) -> bool:
        return bool(self.reasons & AlignmentReason.REFORMAT) and not self.needs_resample

    @property
    def is_noop(self) -> bool:
        return self.reasons == AlignmentReason.NONE

def increments_differ(a: Tuple[float, float], b: Tuple[float, float]) -> bool:
    """True if either increment of a differs from b by more than the relative tolerance."""
    return (abs((a[0] - b[0]) / b[0]) > INCREMENT_TOLERANCE or
            abs((a[1] - b[1]) / b[1]) > INCREMENT_TOLERANCE)

def out_of_phase(tile: Region, output: Region) -> bool:
    """
    Looks for phase shifts between a tile and the output on all four sides.

    Each side is compared on cell-centre positions (the bound plus the
    registration offset); the difference must be an integer number of output
    increments within PHASE_TOLERANCE.
    """
    sides = (
        (tile.west, output.west, tile.dx, output.dx),
        (tile.east, output.east, tile.dx, output.dx),
        (tile.south, output.south, tile.dy, output.dy),
        (tile.north, output.north, tile.dy, output.dy)
    )
    for t_side, h_side, t_inc, h_inc in sides:
        shift = (t_side + tile.xy_offset * t_inc) - (h_side + output.xy_offset * h_inc)
        a = math.fmod(abs(shift / h_inc), 1.0)
        if a < PHASE_TOLERANCE or 1.0 - a < PHASE_TOLERANCE:
            continue
        return True
    return False

def _outside(lo: float, hi: float, ref_lo: float, ref_hi: float, registration: Registration) -> bool:
    if registration is Registration.NODE:
        return ref_lo > hi or ref_hi < lo
    return ref_lo >= hi or ref_hi <= lo

def _snap_inside(lo: float, hi: float, origin: float, inc: float) -> Tuple[float, float]:
    """Innermost lattice positions origin + k*inc lying inside [lo, hi]."""
    k0 = math.ceil((lo - origin) / inc - 1e-6)
    k1 = math.floor((hi - origin) / inc + 1e-6)
    return origin + k0 * inc, origin + k1 * inc

def _clip(inner: Region, outer: Region) -> Optional[Region]:
    """Inner region cut down to a rebuilt outer region, or None if nothing is left."""
    west, east = max(inner.west, outer.west), min(inner.east, outer.east)
    south, north = max(inner.south, outer.south), min(inner.north, outer.north)
    if west >= east or south >= north:
        return None
    return outer.with_bounds(west, east, south, north)

class AlignmentPlanner:
    """
    Checks tiles against the output lattice and rebuilds them when needed.

    Args:
        output: Output lattice.
        resampler: Collaborator used for increment or phase mismatches.
        reformatter: Collaborator used for formats that cannot stream rows.
        geographic: Treat longitudes as periodic.
    """
    def __init__(
        self,
        output: Region,
        resampler: Resampler,
        reformatter: Reformatter,
        geographic: bool = False
    ):
        self.output = output
        self.resampler = resampler
        self.reformatter = reformatter
        self.geographic = geographic

    def _wrap(self, tile: TileSource, inner: bool) -> bool:
        """Shifts the tile's outer (or inner) longitudes onto the output; False if impossible."""
        which = "inner grid" if inner else "grid"
        region = tile.inner if inner else tile.outer
        shifted = wrap_into_overlap(region, self.output)
        if shifted is None:
            log.warning(f"File {tile.name} entirely outside longitude range of final grid region (skipped)")
            tile.ignore("outside longitude range")
            return False
        if shifted is not region:
            if inner:
                tile.inner = shifted
            else:
                tile.outer = shifted
            log.info(f"File {tile.name} {which} region needed longitude adjustment to fit final grid region")
        return True

    def check_overlap(self, tile: TileSource) -> bool:
        """
        Skips tiles that cannot touch the output and fixes 360 degree offsets.

        Returns:
            bool: False if the tile was marked IGNORED.
        """
        h, inner = self.output, tile.inner

        if _outside(inner.south, inner.north, h.south, h.north, h.registration):
            log.warning(f"File {tile.name} entirely outside y-range of final grid region (skipped)")
            tile.ignore("outside y-range")
            return False

        if self.geographic:
            return self._wrap(tile, inner=False) and self._wrap(tile, inner=True)

        if _outside(inner.west, inner.east, h.west, h.east, h.registration):
            log.warning(f"File {tile.name} entirely outside x-range of final grid region (skipped)")
            tile.ignore("outside x-range")
            return False
        return True

    def _centre_window(self, tile: Region) -> Optional[Tuple[float, float, float, float]]:
        """
        Output node positions (cell centres) that lie inside the tile's own
        cell-centre extent, as (west, east, south, north), or None if there are none.
        """
        h = self.output
        t_w = tile.west + tile.xy_offset * tile.dx
        t_e = tile.east - tile.xy_offset * tile.dx
        t_s = tile.south + tile.xy_offset * tile.dy
        t_n = tile.north - tile.xy_offset * tile.dy

        h_w = h.west + h.xy_offset * h.dx
        h_e = h.east - h.xy_offset * h.dx
        h_s = h.south + h.xy_offset * h.dy
        h_n = h.north - h.xy_offset * h.dy

        west, east = _snap_inside(max(t_w, h_w), min(t_e, h_e), h_w, h.dx)
        south, north = _snap_inside(max(t_s, h_s), min(t_n, h_n), h_s, h.dy)
        if west > east or south > north:
            return None
        return west, east, south, north

    def plan(self, tile: TileSource) -> AlignmentPlan:
        """
        Decides whether a tile must be reformatted or resampled.

        The PHASE and INCREMENT target regions are sub-regions of the output
        lattice clamped inside both the tile and the output. A reformat keeps
        the tile's own lattice and only clips it to the output.

        Returns:
            AlignmentPlan: The reasons plus the target lattice (if any).
        """
        t, h = tile.outer, self.output
        reasons = AlignmentReason.NONE

        if not tile.memory and tile.driver is not None and not is_streamable_driver(tile.driver):
            log.info(f"File {tile.name} not supported via row-by-row read - must reformat first")
            reasons |= AlignmentReason.REFORMAT

        if increments_differ(t.increment, h.increment):
            log.info(
                f"File {tile.name} has different increments ({t.dx:.12g}/{t.dy:.12g}) than the "
                f"output grid ({h.dx:.12g}/{h.dy:.12g}) - must resample"
            )
            reasons |= AlignmentReason.INCREMENT

        if out_of_phase(t, h):
            log.info(f"File {tile.name} coordinates are phase-shifted w.r.t. the output grid - must resample")
            reasons |= AlignmentReason.PHASE

        if reasons == AlignmentReason.NONE:
            return AlignmentPlan(reasons)

        centres = self._centre_window(t)
        if centres is None:
            return AlignmentPlan(reasons)

        west, east, south, north = centres
        if reasons & (AlignmentReason.INCREMENT | AlignmentReason.PHASE):
            off_x, off_y = h.xy_offset * h.dx, h.xy_offset * h.dy
            region = (west - off_x, east + off_x, south - off_y, north + off_y)
            log.debug(f"File {tile.name} is sampled using region {region}")
            return AlignmentPlan(reasons, region, h.increment, h.registration)

        off_x, off_y = t.xy_offset * t.dx, t.xy_offset * t.dy
        region = (west - off_x, east + off_x, south - off_y, north + off_y)
        return AlignmentPlan(reasons, region, t.increment, t.registration)

    def apply(self, tile: TileSource, plan: AlignmentPlan) -> bool:
        """
        Rebuilds a tile according to plan and swaps in the temporary grid.

        Returns:
            bool: False if the tile was marked IGNORED (no usable sub-region,
            or the rebuilt grid falls outside the output longitudes).

        Raises:
            ResampleError: If the collaborator fails.
        """
        if plan.is_noop:
            return True

        if plan.region is None:
            log.warning(f"File {tile.name} has no output nodes inside its footprint (skipped)")
            tile.ignore("no output nodes inside the tile")
            return False

        w, e, s, n = plan.region
        if not (w < e and s < n):
            log.warning(f"File {tile.name} resample region {plan.region} is empty (skipped)")
            tile.ignore("empty resample region")
            return False

        source = tile.raster if tile.memory else tile.path
        try:
            if plan.needs_resample:
                log.info(f"Resample {tile.name} onto {w:.12g}/{e:.12g}/{s:.12g}/{n:.12g}")
                path = self.resampler.resample(source, plan.increment, plan.region, plan.registration)
            else:
                log.info(f"Reformat {tile.name} to a row-streamable grid")
                path = self.reformatter.reformat(source, plan.region)
        except ResampleError:
            raise
        except Exception as e:
            raise ResampleError(f"Unable to rebuild tile: {e}", tile.path) from e

        try:
            header = read_header(path, registration=plan.registration)
        except GridBlendError as e:
            tile.use_temporary(path, tile.outer, "GTiff", None)
            raise ResampleError(f"Rebuilt tile is unreadable: {e}", tile.path) from e

        inner = tile.inner
        tile.use_temporary(header.path, header.region, header.driver, header.crs)

        if self.geographic and not self._wrap(tile, inner=False):
            return False

        clipped = _clip(inner, tile.outer)
        if clipped is None:
            log.warning(f"File {tile.name} inner region lies outside the rebuilt grid (skipped)")
            tile.ignore("inner region outside rebuilt grid")
            return False
        tile.inner = clipped
        return True

    def align(self, tile: TileSource) -> bool:
        """Runs check_overlap, plan and apply. Returns False if the tile was ignored."""
        if not self.check_overlap(tile):
            return False
        return self.apply(tile, self.plan(tile))
