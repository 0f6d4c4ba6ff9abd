# src/gridblend/raster/utils.py

"""
This module provides shared utility functions for grid files.

Functions include path resolution for ENVI files, driver detection from
file names, streamability checks and temporary file handling.
"""
import logging
import os
import tempfile
from pathlib import Path
from typing import Union, Optional

log = logging.getLogger(__name__)

__all__ = [
    "resolve_envi_path",
    "driver_for_path",
    "is_streamable_driver",
    "make_temp_path",
    "remove_file",
    "ROW_UNSUPPORTED_DRIVERS"
]

# Drivers that cannot hand out (or accept) a single row without decoding or
# encoding the whole image.
ROW_UNSUPPORTED_DRIVERS = frozenset({
    "JP2OpenJPEG",
    "JPEG2000",
    "JP2ECW",
    "JP2KAK",
    "JPEG",
    "PNG",
    "GIF",
    "WEBP",
    "AAIGrid",
    "XYZ",
    "GSAG"
})

_EXTENSION_DRIVERS = {
    ".tif": "GTiff",
    ".tiff": "GTiff",
    ".gtiff": "GTiff",
    ".nc": "netCDF",
    ".grd": "netCDF",
    ".img": "HFA",
    ".vrt": "VRT",
    ".bil": "EHdr",
    ".flt": "EHdr",
    ".envi": "ENVI",
    ".jp2": "JP2OpenJPEG",
    ".png": "PNG",
    ".jpg": "JPEG",
    ".jpeg": "JPEG",
    ".gif": "GIF",
    ".webp": "WEBP",
    ".asc": "AAIGrid",
    ".xyz": "XYZ"
}

def resolve_envi_path(path: Union[str, Path]) -> Path:
    """
    Resolve ENVI header/binary file confusion.
    If 'image.hdr' is passed, redirects to 'image' (binary).
    """
    path = Path(path)
    if path.suffix.lower() == '.hdr':
        binary_path = path.with_suffix('')
        if binary_path.exists():
            return binary_path
    return path

def driver_for_path(path: Union[str, Path], default: str = "GTiff") -> str:
    """
    Guess the GDAL driver used to write a grid from its file extension.
    """
    return _EXTENSION_DRIVERS.get(Path(path).suffix.lower(), default)

def is_streamable_driver(driver: str) -> bool:
    """True if rows of this format can be read or written one at a time."""
    return driver not in ROW_UNSUPPORTED_DRIVERS

def make_temp_path(
    prefix: str,
    suffix: str = ".tif",
    tmp_dir: Optional[Union[str, Path]] = None
) -> Path:
    """
    Reserve a unique temporary file name.

    The file is created empty so the name cannot be claimed twice; writers
    simply overwrite it.
    """
    fd, name = tempfile.mkstemp(prefix=f"{prefix}_", suffix=suffix, dir=tmp_dir)
    os.close(fd)
    return Path(name)

def remove_file(path: Union[str, Path]) -> bool:
    """
    Delete a file, logging instead of raising when it fails.

    Returns:
        bool: True if the file is gone afterwards.
    """
    path = Path(path)
    try:
        path.unlink()
    except FileNotFoundError:
        return True
    except OSError as e:
        log.error(f"Failed to delete file {path}: {e}")
        return False
    log.debug(f"Deleted temporary file {path.name}")
    return True
