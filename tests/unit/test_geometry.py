# tests/unit/test_geometry.py

import math

import numpy as np
import pytest

from gridblend.exceptions import DegenerateGeometryError
from gridblend.raster.region import Region, Registration
from gridblend.blend.geometry import (
    compute_geometry,
    taper_weight,
    row_taper,
    column_tapers
)

def test_tile_identical_to_output_has_no_taper(node_region):
    g = compute_geometry(node_region, node_region, node_region)

    assert (g.out_col0, g.out_col1, g.out_row0, g.out_row1) == (0, 3, 0, 3)
    assert (g.in_col0, g.in_col1, g.in_row0, g.in_row1) == (-1, 4, -1, 4)
    assert (g.wxl, g.wxr, g.wyu, g.wyd) == (0.0, 0.0, 0.0, 0.0)

    for row in range(4):
        assert row_taper(g, row, node_region.xy_offset) == 1.0
    assert np.array_equal(column_tapers(g, np.arange(4), 0.0), np.ones(4))

def test_pixel_registered_tile_indices():
    output = Region(0, 4, 0, 4, 1, 1, Registration.PIXEL)
    g = compute_geometry(output, output, output)

    assert (g.out_col0, g.out_col1) == (0, 3)
    assert (g.out_row0, g.out_row1) == (0, 3)
    assert g.in_col1 == 4

def test_node_tile_on_pixel_centres_is_not_degenerate():
    output = Region(0, 4, 0, 4, 1, 1, Registration.PIXEL)
    tile = Region(0.5, 3.5, 0.5, 3.5, 1, 1, Registration.NODE)
    g = compute_geometry(tile, tile, output)

    assert (g.out_col0, g.out_col1) == (0, 3)
    assert (g.out_row0, g.out_row1) == (0, 3)
    assert (g.wxl, g.wxr, g.wyu, g.wyd) == (0.0, 0.0, 0.0, 0.0)
    assert np.array_equal(column_tapers(g, np.arange(4), output.xy_offset), np.ones(4))

def test_inner_region_tapers_towards_outer_edges():
    output = Region(0, 10, 0, 10, 1, 1, Registration.NODE)
    inner = output.with_bounds(2, 8, 2, 8)
    g = compute_geometry(output, inner, output)

    assert (g.in_col0, g.in_col1) == (1, 9)
    assert g.wxl == pytest.approx(math.pi / 2)
    assert g.wyd == pytest.approx(math.pi / 2)

    weights = column_tapers(g, np.arange(11), 0.0)
    assert weights[0] == pytest.approx(0.0)
    assert weights[1] == pytest.approx(0.5)
    assert np.all(weights[2:9] == 1.0)
    assert weights[9] == pytest.approx(0.5)
    assert weights[10] == pytest.approx(0.0)

    assert row_taper(g, 0, 0.0) == pytest.approx(0.0)
    assert row_taper(g, 1, 0.0) == pytest.approx(0.5)
    assert row_taper(g, 5, 0.0) == 1.0

def test_tile_indices_offset_into_output():
    output = Region(0, 10, 0, 10, 1, 1)
    tile = Region(4, 6, 1, 3, 1, 1)
    g = compute_geometry(tile, tile, output)

    assert (g.out_col0, g.out_col1) == (4, 6)
    assert (g.out_row0, g.out_row1) == (7, 9)

def test_tile_north_of_output_has_negative_first_row():
    output = Region(0, 3, 0, 3, 1, 1)
    tile = Region(0, 3, 1, 5, 1, 1)
    g = compute_geometry(tile, tile, output)

    assert g.out_row0 == -2
    assert g.out_row1 == 2

def test_inner_outside_outer_is_degenerate():
    outer = Region(0, 10, 0, 10, 1, 1)
    inner = outer.with_bounds(-1, 8, 0, 10)
    with pytest.raises(DegenerateGeometryError):
        compute_geometry(outer, inner, outer)

def test_taper_weight_is_cosine():
    assert taper_weight(0.0, 1.0) == pytest.approx(0.0)
    assert taper_weight(math.pi, 1.0) == pytest.approx(1.0)
    assert np.allclose(taper_weight(np.array([0.0, math.pi / 2]), 1.0), [0.0, 0.5])
