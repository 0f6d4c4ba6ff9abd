# src/gridblend/exceptions.py

"""
Exception hierarchy shared by the raster primitives and the blend engine.

Every error raised on purpose by gridblend derives from GridBlendError and
carries the offending file (when there is one) so that a failed run can be
traced back to a single tile.
"""

from pathlib import Path
from typing import Optional, Union

__all__ = [
    "GridBlendError",
    "InputNotFoundError",
    "BlendFileError",
    "RasterValidationError",
    "FormatUnsupportedError",
    "GeometryMismatchError",
    "DegenerateGeometryError",
    "RegionMismatchError",
    "ResampleError",
    "RasterIOError",
    "SeekError",
    "ReadError",
    "WriteError"
]

class GridBlendError(Exception):
    """
    Base class for all gridblend errors.

    Args:
        message: Human readable description of the failure.
        path: Optional file the failure relates to. It is appended to the message.
    """
    def __init__(self, message: str, path: Optional[Union[str, Path]] = None):
        self.path = Path(path) if path is not None else None
        if self.path is not None:
            message = f"{message} [{self.path}]"
        super().__init__(message)

class InputNotFoundError(GridBlendError, FileNotFoundError):
    """A tile or blend file does not exist."""

class BlendFileError(GridBlendError, ValueError):
    """A blend specification record could not be decoded."""

class RasterValidationError(GridBlendError, ValueError):
    """A region, increment or array has an impossible shape or value."""

class FormatUnsupportedError(GridBlendError):
    """The grid format cannot be streamed row by row and must be reformatted."""

class GeometryMismatchError(GridBlendError):
    """The grid lattice does not line up with the output lattice."""

class DegenerateGeometryError(GridBlendError):
    """A tile's inner/outer regions give an unusable taper."""

class RegionMismatchError(GridBlendError):
    """The output lattice cannot be derived from the tiles without explicit parameters."""

class ResampleError(GridBlendError):
    """Resampling or reformatting a tile failed."""

class RasterIOError(GridBlendError, IOError):
    """Low level grid I/O failure."""

class SeekError(RasterIOError):
    """Positioning a reader on its first row failed."""

class ReadError(RasterIOError):
    """Reading a row failed."""

class WriteError(RasterIOError):
    """Writing a row or finalizing the output failed."""
