# src/gridblend/raster/region.py

"""
This module defines the grid lattice description shared by every component.

A Region couples the four bounds of a grid with its increments and its
registration. Node registered bounds are the coordinates of the outermost
grid nodes; pixel registered bounds are the outer cell edges. Conversions
to and from rasterio affine transforms keep node registered grids readable
by any GDAL tool: the nodes sit at the pixel centres of the stored raster.
"""

import logging
import math
from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional, Tuple

from rasterio.transform import Affine

from gridblend.exceptions import RasterValidationError

log = logging.getLogger(__name__)

__all__ = [
    "Registration",
    "Region",
    "parse_region",
    "parse_increment",
    "wrap_into_overlap",
    "is_whole_multiple"
]

GLOBAL_TOLERANCE = 1e-6

_HEMISPHERE_SIGN = {"W": -1.0, "S": -1.0, "E": 1.0, "N": 1.0}

class Registration(Enum):
    """
    Where a grid value lives relative to its cell.

    Options:
        NODE: Values sit on grid line intersections (bounds are node coordinates).
        PIXEL: Values represent whole cells (bounds are cell edges).
    """
    NODE = "node"
    PIXEL = "pixel"

    @property
    def offset(self) -> float:
        """Cell-centre offset in units of the increment (0.5 for pixel, 0 for node)."""
        return 0.5 if self is Registration.PIXEL else 0.0

@dataclass(frozen=True)
class Region:
    """
    Bounds, increments and registration of a grid lattice.

    Args:
        west, east, south, north: Grid bounds (see module docstring).
        dx, dy: Positive grid increments.
        registration: Registration of the lattice. Default=NODE.

    Raises:
        RasterValidationError: If bounds are inverted or increments are not positive.
    """
    west: float
    east: float
    south: float
    north: float
    dx: float
    dy: float
    registration: Registration = Registration.NODE

    def __post_init__(self):
        if not (self.dx > 0 and self.dy > 0):
            raise RasterValidationError(f"Increments must be positive, got {self.dx}/{self.dy}")
        if not (self.west < self.east and self.south < self.north):
            raise RasterValidationError(
                f"Invalid region {self.west}/{self.east}/{self.south}/{self.north}: "
                "west must be < east and south must be < north"
            )

    @classmethod
    def from_transform(
        cls,
        transform: Affine,
        width: int,
        height: int,
        registration: Registration = Registration.PIXEL
    ) -> 'Region':
        """
        Builds a Region from a north-up rasterio transform and raster shape.

        Raises:
            RasterValidationError: If the transform is rotated or south-up.
        """
        if transform.b != 0 or transform.d != 0:
            raise RasterValidationError("Rotated grids are not supported")
        dx, dy = transform.a, -transform.e
        if dx <= 0 or dy <= 0:
            raise RasterValidationError(f"Grid must be north-up with positive increments, got {transform}")

        left, top = transform.c, transform.f
        right, bottom = left + width * dx, top - height * dy

        if registration is Registration.NODE:
            half_x, half_y = 0.5 * dx, 0.5 * dy
            return cls(left + half_x, right - half_x, bottom + half_y, top - half_y, dx, dy, registration)
        return cls(left, right, bottom, top, dx, dy, registration)

    @property
    def xy_offset(self) -> float:
        return self.registration.offset

    @property
    def n_columns(self) -> int:
        extra = 1 if self.registration is Registration.NODE else 0
        return int(round((self.east - self.west) / self.dx)) + extra

    @property
    def n_rows(self) -> int:
        extra = 1 if self.registration is Registration.NODE else 0
        return int(round((self.north - self.south) / self.dy)) + extra

    @property
    def shape(self) -> Tuple[int, int]:
        """Returns (rows, columns)."""
        return self.n_rows, self.n_columns

    @property
    def bounds(self) -> Tuple[float, float, float, float]:
        """Returns (west, east, south, north)."""
        return self.west, self.east, self.south, self.north

    @property
    def increment(self) -> Tuple[float, float]:
        return self.dx, self.dy

    @property
    def is_global(self) -> bool:
        """True if the longitude span covers the full 360 degrees."""
        return (self.east - self.west) >= 360.0 - GLOBAL_TOLERANCE

    @property
    def transform(self) -> Affine:
        """Affine transform of the stored raster (top-left pixel corner origin)."""
        if self.registration is Registration.NODE:
            origin_x = self.west - 0.5 * self.dx
            origin_y = self.north + 0.5 * self.dy
        else:
            origin_x, origin_y = self.west, self.north
        return Affine.translation(origin_x, origin_y) * Affine.scale(self.dx, -self.dy)

    def with_bounds(self, west: float, east: float, south: float, north: float) -> 'Region':
        """Returns a copy on the same lattice with new bounds."""
        return replace(self, west=west, east=east, south=south, north=north)

    def shifted(self, dlon: float) -> 'Region':
        """Returns a copy with longitudes shifted by dlon."""
        return replace(self, west=self.west + dlon, east=self.east + dlon)

    def union(self, other: 'Region') -> 'Region':
        """Coordinate-wise union of the bounds, keeping this lattice."""
        return self.with_bounds(
            min(self.west, other.west),
            max(self.east, other.east),
            min(self.south, other.south),
            max(self.north, other.north)
        )

    def format_bounds(self) -> str:
        return f"{self.west:.12g}/{self.east:.12g}/{self.south:.12g}/{self.north:.12g}"

    def __str__(self) -> str:
        return (f"{self.format_bounds()} inc {self.dx:.12g}/{self.dy:.12g} "
                f"({self.registration.value})")

def _parse_coordinate(text: str) -> float:
    """
    Decodes one coordinate: plain float, dd:mm[:ss] and an optional W/E/S/N suffix.
    """
    token = text.strip()
    sign = 1.0
    if token and token[-1].upper() in _HEMISPHERE_SIGN:
        sign = _HEMISPHERE_SIGN[token[-1].upper()]
        token = token[:-1]

    if ":" in token:
        parts = token.split(":")
        if len(parts) > 3:
            raise ValueError(f"Bad sexagesimal coordinate '{text}'")
        negative = parts[0].strip().startswith("-")
        degrees = abs(float(parts[0]))
        for k, part in enumerate(parts[1:], start=1):
            degrees += float(part) / (60.0 ** k)
        value = -degrees if negative else degrees
    else:
        value = float(token)

    return sign * value

def parse_region(text: str) -> Tuple[float, float, float, float]:
    """
    Decodes a 'w/e/s/n' region string (an optional leading '-R' is accepted).

    Args:
        text: Region string, e.g. "-R-10/10/30:30/40N".

    Returns:
        Tuple[float, float, float, float]: (west, east, south, north).

    Raises:
        RasterValidationError: If the string does not hold four valid coordinates.
    """
    body = text.strip()
    if body.startswith("-R"):
        body = body[2:]

    parts = body.split("/")
    if len(parts) != 4:
        raise RasterValidationError(f"Region '{text}' must have the form w/e/s/n")

    try:
        west, east, south, north = (_parse_coordinate(p) for p in parts)
    except ValueError as e:
        raise RasterValidationError(f"Could not decode region '{text}': {e}") from e

    if not (west < east and south < north):
        raise RasterValidationError(f"Region '{text}' must satisfy w < e and s < n")

    return west, east, south, north

def parse_increment(text: str) -> Tuple[float, float]:
    """Decodes 'dx' or 'dx/dy' into a pair of positive increments."""
    parts = text.strip().split("/")
    if len(parts) not in (1, 2):
        raise RasterValidationError(f"Increment '{text}' must have the form dx[/dy]")
    try:
        values = [float(p) for p in parts]
    except ValueError as e:
        raise RasterValidationError(f"Could not decode increment '{text}': {e}") from e
    dx, dy = values[0], values[-1]
    if dx <= 0 or dy <= 0:
        raise RasterValidationError(f"Increments must be positive, got '{text}'")
    return dx, dy

def wrap_into_overlap(region: Region, reference: Region) -> Optional[Region]:
    """
    Shifts a longitude range by multiples of 360 so that it overlaps a reference.

    Starting two full turns west of the region, the range is moved east one
    turn at a time until its east bound reaches the reference's west bound.
    If the shifted range then starts beyond the reference's east bound the
    two can never overlap.

    Args:
        region: The longitude range to place (any lattice).
        reference: The range to overlap; its registration decides whether
            touching the east bound counts as overlap.

    Returns:
        Optional[Region]: The (possibly unchanged) region, or None if no
        360 degree shift makes it overlap the reference.
    """
    if region.is_global or reference.is_global:
        return region

    turns = -2
    while region.east + 360.0 * turns < reference.west:
        turns += 1
    shift = 360.0 * turns
    west = region.west + shift

    if reference.registration is Registration.NODE:
        outside = west > reference.east
    else:
        outside = west >= reference.east
    if outside:
        return None

    if shift == 0.0:
        return region
    return region.shifted(shift)

def is_whole_multiple(span: float, increment: float, tolerance: float = GLOBAL_TOLERANCE) -> bool:
    """True if span / increment is an integer within tolerance."""
    ratio = span / increment
    return math.isclose(ratio, round(ratio), abs_tol=tolerance)
