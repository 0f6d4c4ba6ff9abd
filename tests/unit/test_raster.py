# tests/unit/test_raster.py

import numpy as np
import pytest
import rasterio

from gridblend.exceptions import (
    InputNotFoundError,
    FormatUnsupportedError,
    RasterValidationError,
    ReadError,
    SeekError
)
from gridblend.raster.io import RasterioGridReader, read_header, is_grid_file
from gridblend.raster.layer import Raster
from gridblend.raster.region import Region, Registration
from gridblend.raster.resources import estimate_array_memory, estimate_stream_memory
from gridblend.raster.utils import (
    driver_for_path,
    is_streamable_driver,
    make_temp_path,
    remove_file,
    resolve_envi_path
)

def test_raster_promotes_2d_data(node_region):
    raster = Raster.from_region(np.zeros((4, 4), dtype='float32'), node_region)

    assert raster.shape == (1, 4, 4)
    assert raster.registration is Registration.NODE
    assert raster.region == node_region

def test_raster_rejects_mismatched_shape(node_region):
    with pytest.raises(RasterValidationError):
        Raster.from_region(np.zeros((3, 4), dtype='float32'), node_region)

def test_as_float_masks_nodata(node_region):
    data = np.array([[1, -9999, 3, 4]] * 4, dtype='float32')
    raster = Raster.from_region(data, node_region, nodata=-9999)

    values = raster.as_float()
    assert np.isnan(values[0, 1])
    assert values[0, 0] == 1.0

def test_save_round_trip_keeps_registration(node_region, tmp_path):
    raster = Raster.from_region(np.arange(16, dtype='float32').reshape(4, 4), node_region)
    path = tmp_path / "grid.tif"
    raster.save(path)

    loaded = Raster.from_file(path)
    assert loaded == raster

    with rasterio.open(path) as src:
        assert src.tags()["AREA_OR_POINT"] == "Point"
        assert src.profile.get("tiled", False) is False

def test_read_header_reads_lattice_only(grid_factory):
    region = Region(10, 20, -5, 5, 2, 2, Registration.PIXEL)
    path = grid_factory("pixel.tif", region)

    header = read_header(path)
    assert header.region == region
    assert header.driver == "GTiff"
    assert header.streamable
    assert header.crs.to_epsg() == 32619

def test_read_header_forced_registration(grid_factory, node_region):
    path = grid_factory("node.tif", node_region)

    header = read_header(path, registration=Registration.PIXEL)
    assert header.region.registration is Registration.PIXEL
    assert header.region.bounds == (-0.5, 3.5, -0.5, 3.5)

def test_read_header_missing_file(tmp_path):
    with pytest.raises(InputNotFoundError):
        read_header(tmp_path / "nope.tif")

def test_is_grid_file(grid_factory, node_region, blend_file):
    assert is_grid_file(grid_factory("a.tif", node_region))
    assert not is_grid_file(blend_file("a.tif\n"))

def test_reader_streams_rows(grid_factory, node_region):
    path = grid_factory("ramp.tif", node_region, nodata=5.0)

    with RasterioGridReader(path) as reader:
        first = reader.read_row()
        reader.seek(3)
        last = reader.read_row()
        with pytest.raises(ReadError):
            reader.read_row()
        with pytest.raises(SeekError):
            reader.seek(4)

    assert first.tolist() == [0.0, 1.0, 2.0, 3.0]
    assert np.isnan(first).sum() == 0
    assert last[:2].tolist() == [12.0, 13.0]

    with RasterioGridReader(path) as reader:
        reader.seek(1)
        row = reader.read_row()
    assert np.isnan(row[1])

def test_reader_requires_open(grid_factory, node_region):
    reader = RasterioGridReader(grid_factory("a.tif", node_region))
    with pytest.raises(ReadError):
        reader.read_row()

def test_envi_header_resolves_to_binary(source_envi_path):
    assert resolve_envi_path(source_envi_path) == source_envi_path.with_suffix("")

    header = read_header(source_envi_path)
    assert header.driver == "ENVI"
    assert header.region.shape == (10, 10)

def test_driver_detection():
    assert driver_for_path("out.tif") == "GTiff"
    assert driver_for_path("out.nc") == "netCDF"
    assert driver_for_path("out.unknown") == "GTiff"
    assert not is_streamable_driver("JP2OpenJPEG")
    assert is_streamable_driver("GTiff")

def test_temp_files(tmp_path):
    path = make_temp_path("gridblend_test", ".tif", tmp_path)
    assert path.exists()
    assert path.parent == tmp_path

    assert remove_file(path)
    assert remove_file(path)
    assert not path.exists()

def test_memory_estimates():
    small = estimate_array_memory(10, 10)
    assert small.total_required_bytes == int(10 * 10 * 4 * 3.0)

    huge = estimate_array_memory(10**7, 10**7)
    assert not huge.is_safe

    assert estimate_stream_memory([4, 4], 8) == 32 + 2 * 8 * 24 + 8 * 28

def test_reader_refuses_formats_without_row_access(tmp_path):
    path = tmp_path / "picture.png"
    with rasterio.open(path, 'w', driver='PNG', width=4, height=4, count=1, dtype='uint8') as dst:
        dst.write(np.zeros((1, 4, 4), dtype='uint8'))

    reader = RasterioGridReader(path)
    with pytest.raises(FormatUnsupportedError):
        reader.open()
    assert not reader.is_open
