# tests/helpers.py

import numpy as np
from gridblend.raster.layer import Raster

def read_band(path) -> np.ndarray:
    """Load band 1 of a grid as float32 with nodata mapped to NaN."""
    return Raster.from_file(path, check_memory=False).as_float()

def assert_values_match(current: np.ndarray, reference: np.ndarray, tolerance: float = 1e-6):
    """Check two grids agree cell by cell, NaN matching NaN."""
    assert current.shape == reference.shape, \
        f"Shape mismatch: {current.shape} != {reference.shape}"
    assert np.allclose(current, reference, atol=tolerance, equal_nan=True), \
        f"Max difference {np.nanmax(np.abs(current - reference)):.6g} (Tol: {tolerance})"

def assert_grid_match(r1: Raster, r2: Raster):
    """Strictly verify two rasters share the exact same grid."""
    assert r1.crs == r2.crs, \
        f"CRS mismatch: {r1.crs} != {r2.crs}"

    assert r1.shape == r2.shape, \
        f"Shape mismatch: {r1.shape} != {r2.shape}"

    assert np.allclose(np.array(r1.transform), np.array(r2.transform), atol=1e-9), \
        "Transform mismatch (Pixel alignment error)"
