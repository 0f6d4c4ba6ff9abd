# tests/conftest.py

import pytest
import numpy as np
import rasterio
from rasterio.crs import CRS

from gridblend.raster.layer import Raster
from gridblend.raster.region import Region, Registration

@pytest.fixture
def node_region():
    """The 4x4 node registered output used by the end-to-end examples."""
    return Region(0.0, 3.0, 0.0, 3.0, 1.0, 1.0, Registration.NODE)

@pytest.fixture
def grid_factory(tmp_path):
    """
    Fixture: Writes synthetic single band GeoTIFF tiles into a temp dir.

    values may be None (a ramp 0..n-1), a scalar (constant grid) or an array
    matching region.shape.
    """
    def _make(name, region, values=None, nodata=None, crs=CRS.from_epsg(32619)):
        rows, cols = region.shape
        if values is None:
            data = np.arange(rows * cols, dtype='float32').reshape(rows, cols)
        elif np.isscalar(values):
            data = np.full((rows, cols), values, dtype='float32')
        else:
            data = np.asarray(values, dtype='float32')

        path = tmp_path / name
        Raster.from_region(data, region, crs=crs, nodata=nodata).save(path)
        return path

    return _make

@pytest.fixture
def blend_file(tmp_path):
    """Fixture: Writes blend specification text to a file and returns its path."""
    def _make(text, name="tiles.blend"):
        path = tmp_path / name
        path.write_text(text)
        return path
    return _make

@pytest.fixture
def scratch_dir(tmp_path):
    """Directory for temporary grids so tests can check it is emptied."""
    path = tmp_path / "scratch"
    path.mkdir()
    return path

@pytest.fixture
def source_envi_path(tmp_path):
    """
    Fixture: Creates a synthetic ENVI file (.hdr + binary) in a temp dir.
    Returns the .hdr path to exercise the resolve_envi_path logic.
    """
    p = tmp_path / "synthetic_raw"
    region = Region(0.0, 10.0, 0.0, 10.0, 1.0, 1.0, Registration.PIXEL)

    profile = {
        'driver': 'ENVI',
        'height': region.n_rows,
        'width': region.n_columns,
        'count': 1,
        'dtype': 'float32',
        'crs': CRS.from_epsg(32619),
        'transform': region.transform
    }

    with rasterio.open(p, 'w', **profile) as dst:
        dst.write(np.full((1, 10, 10), 0.5, dtype='float32'))

    return p.with_suffix(".hdr")
