# tests/unit/test_compositor.py

import numpy as np
import pytest

from gridblend.raster.layer import Raster
from gridblend.raster.region import Region
from gridblend.blend.compositor import build_column_map
from gridblend.blend.config import BlendConfig, CombinationPolicy, SignFilter, OutputMode
from gridblend.blend.engine import blend
from gridblend.blend.geometry import compute_geometry
from gridblend.blend.registry import BlendEntry
from gridblend.blend.tile import TileSource

def constant(region, value):
    return Raster.from_region(np.full(region.shape, value, dtype='float32'), region)

def blended(sources, **kwargs):
    result = blend(sources, config=BlendConfig(**kwargs))
    return result.raster.data[0]

def test_column_map_cartesian():
    output = Region(0, 10, 0, 10, 1, 1)
    tile = TileSource("a.tif", Region(4, 6, 1, 3, 1, 1))
    tile.geometry = compute_geometry(tile.outer, tile.inner, output)

    cmap = build_column_map(tile, output, periodic=False)
    assert cmap.out_index.tolist() == [4, 5, 6]
    assert cmap.tile_index.tolist() == [0, 1, 2]
    assert np.all(cmap.weights == 1.0)

def test_column_map_folds_longitudes():
    output = Region(90, 270, -10, 10, 45, 10)
    tile = TileSource("a.tif", Region(180, 270, -10, 10, 45, 10))
    tile.geometry = compute_geometry(tile.outer, tile.inner, output)

    cmap = build_column_map(tile, output, periodic=True)
    assert cmap.out_index.tolist() == [2, 3, 4]
    assert cmap.tile_index.tolist() == [0, 1, 2]

def test_first_skips_missing_values(node_region):
    a = constant(node_region, 1.0)
    a.data[0, :, 0] = np.nan
    b = constant(node_region, 2.0)

    out = blended([a, b], policy=CombinationPolicy.FIRST)
    assert np.all(out[:, 0] == 2.0)
    assert np.all(out[:, 1:] == 1.0)

def test_last_keeps_final_tile(node_region):
    out = blended([constant(node_region, 1.0), constant(node_region, 2.0)], policy="last")
    assert np.all(out == 2.0)

@pytest.mark.parametrize("policy, expected", [
    (CombinationPolicy.UPPER, 3.0),
    (CombinationPolicy.LOWER, 1.0)
])
def test_upper_and_lower(node_region, policy, expected):
    out = blended([constant(node_region, 1.0), constant(node_region, 3.0)], policy=policy)
    assert np.all(out == expected)

def test_equal_values_are_kept(node_region):
    out = blended([constant(node_region, 2.0), constant(node_region, 2.0)], policy=CombinationPolicy.UPPER)
    assert np.all(out == 2.0)

@pytest.mark.parametrize("policy, sign, a, b, expected", [
    (CombinationPolicy.UPPER, SignFilter.POSITIVE, -1.0, -2.0, -1.0),
    (CombinationPolicy.UPPER, SignFilter.POSITIVE, -1.0, 2.0, 2.0),
    (CombinationPolicy.UPPER, SignFilter.POSITIVE, 3.0, -2.0, 3.0),
    (CombinationPolicy.LOWER, SignFilter.NEGATIVE, 3.0, -2.0, -2.0),
    (CombinationPolicy.LOWER, SignFilter.NEGATIVE, 3.0, 1.0, 3.0)
])
def test_sign_filter_seeds_with_first_value(node_region, policy, sign, a, b, expected):
    out = blended([constant(node_region, a), constant(node_region, b)], policy=policy, sign=sign)
    assert np.all(out == expected)

def test_blend_averages_overlap(node_region):
    out = blended([constant(node_region, 1.0), constant(node_region, 3.0)])
    assert np.allclose(out, 2.0)

def test_blend_uses_relative_weights(node_region):
    entries = [BlendEntry(constant(node_region, 1.0)), BlendEntry(constant(node_region, 3.0), weight=3.0)]
    out = blended(entries)
    assert np.allclose(out, 2.5)

@pytest.mark.parametrize("mode, scale, expected", [
    (OutputMode.VALUE, 2.0, 4.0),
    (OutputMode.WEIGHT, 1.0, 2.0),
    (OutputMode.WEIGHT_TIMES_VALUE, 1.0, 4.0)
])
def test_output_modes(node_region, mode, scale, expected):
    out = blended(
        [constant(node_region, 1.0), constant(node_region, 3.0)],
        output_mode=mode,
        scale=scale
    )
    assert np.allclose(out, expected)

def test_tapered_tile_is_zero_where_weight_vanishes():
    region = Region(0, 10, 0, 10, 1, 1)
    entry = BlendEntry(constant(region, 5.0), inner=(2, 8, 2, 8))

    out = blended([entry])
    assert out[5, 0] == 0.0
    assert out[0, 5] == 0.0
    assert out[5, 1] == pytest.approx(5.0)
    assert out[5, 5] == pytest.approx(5.0)

def test_negative_weight_inverts_taper():
    region = Region(0, 10, 0, 10, 1, 1)
    entries = [
        BlendEntry(constant(region, 1.0)),
        BlendEntry(constant(region, 3.0), inner=(2, 8, 2, 8), weight=-1.0)
    ]

    out = blended(entries)
    assert out[5, 5] == pytest.approx(1.0)
    assert out[5, 0] == pytest.approx(2.0)
