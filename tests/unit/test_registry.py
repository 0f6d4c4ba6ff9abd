# tests/unit/test_registry.py

import io

import pytest

from gridblend.exceptions import BlendFileError, InputNotFoundError, RegionMismatchError
from gridblend.raster.region import Region, Registration
from gridblend.blend.config import BlendConfig
from gridblend.blend.registry import (
    BlendEntry,
    SourceRegistry,
    entries_from_files,
    read_blend_file
)
from gridblend.blend.tile import TileState

def test_read_blend_file_records(blend_file):
    path = blend_file(
        "# tiles for the test\n"
        "\n"
        "a.tif\n"
        "b.tif -R1/2/1/2 0.5\n"
        "c.tif 1/2/1/2\n"
        "d.tif - -2\n"
        "e.tif 3\n"
        "f.tif -\n"
    )
    entries = read_blend_file(path)

    assert [str(e.source) for e in entries] == ["a.tif", "b.tif", "c.tif", "d.tif", "e.tif", "f.tif"]
    assert [e.weight for e in entries] == [1.0, 0.5, 1.0, -2.0, 3.0, 1.0]
    assert entries[0].inner is None
    assert entries[1].inner == (1.0, 2.0, 1.0, 2.0)
    assert entries[2].inner == (1.0, 2.0, 1.0, 2.0)
    assert entries[3].inner is None

def test_read_blend_file_resolves_names_next_to_the_file(blend_file, grid_factory, node_region):
    tile = grid_factory("near.tif", node_region)
    entries = read_blend_file(blend_file("near.tif\n"))

    assert entries[0].source == tile

def test_read_blend_file_from_stream():
    entries = read_blend_file(io.StringIO("x.tif 0/1/0/1 2\n"))
    assert entries == [BlendEntry("x.tif", (0.0, 1.0, 0.0, 1.0), 2.0)]

@pytest.mark.parametrize("record", [
    "a.tif nonsense 2",
    "a.tif heavy",
    "a.tif 1/2/1 2",
    "a.tif 2/1/1/2",
    "a.tif - 1 extra"
])
def test_read_blend_file_rejects_bad_records(blend_file, record):
    with pytest.raises(BlendFileError):
        read_blend_file(blend_file(record + "\n"))

def test_read_blend_file_errors():
    with pytest.raises(InputNotFoundError):
        read_blend_file("does_not_exist.blend")
    with pytest.raises(BlendFileError):
        read_blend_file(io.StringIO("# only a comment\n"))

def test_missing_tile_raises(tmp_path):
    registry = SourceRegistry(entries_from_files([tmp_path / "missing.tif"]))
    with pytest.raises(InputNotFoundError):
        registry.build()

def test_output_region_is_union_of_tiles(grid_factory):
    a = grid_factory("a.tif", Region(0, 3, 0, 1, 1, 1))
    b = grid_factory("b.tif", Region(2, 6, 2, 4, 1, 1))

    tiles, output = SourceRegistry(entries_from_files([a, b])).build()

    assert output.bounds == (0, 6, 0, 4)
    assert output.registration is Registration.NODE
    assert output.shape == (5, 7)
    assert all(t.state is TileState.CLOSED for t in tiles)

def test_different_increments_need_explicit_increment(grid_factory):
    a = grid_factory("a.tif", Region(0, 4, 0, 4, 1, 1))
    b = grid_factory("b.tif", Region(0, 4, 0, 4, 0.5, 0.5))

    with pytest.raises(RegionMismatchError):
        SourceRegistry(entries_from_files([a, b])).build()

def test_different_registrations_need_explicit_registration(grid_factory):
    a = grid_factory("a.tif", Region(0, 4, 0, 4, 1, 1, Registration.NODE))
    b = grid_factory("b.tif", Region(0, 4, 0, 4, 1, 1, Registration.PIXEL))

    with pytest.raises(RegionMismatchError):
        SourceRegistry(entries_from_files([a, b])).build()

def test_explicit_region_is_extended_to_whole_increments(grid_factory, node_region):
    a = grid_factory("a.tif", node_region)
    config = BlendConfig(region=(0, 3, 0, 2.5))

    _, output = SourceRegistry(entries_from_files([a]), config).build()
    assert output.bounds == (0, 3, 0, 3)

def test_negative_weight_inverts_taper(grid_factory, node_region):
    a = grid_factory("a.tif", node_region)

    tiles, _ = SourceRegistry([BlendEntry(a, weight=-2.0)]).build()
    assert tiles[0].invert
    assert tiles[0].weight == 2.0

def test_tile_above_output_records_skipped_rows(grid_factory):
    a = grid_factory("a.tif", Region(0, 3, 0, 5, 1, 1))
    config = BlendConfig(region=(0, 3, 0, 3))

    tiles, _ = SourceRegistry(entries_from_files([a]), config).build()
    assert tiles[0].geometry.out_row0 == -2
    assert tiles[0].skip_rows == 2

def test_degenerate_tile_is_ignored(grid_factory, node_region):
    a = grid_factory("a.tif", node_region)
    b = grid_factory("b.tif", node_region)
    entries = [BlendEntry(a), BlendEntry(b, inner=(-1, 3, 0, 3))]

    tiles, _ = SourceRegistry(entries).build()
    assert tiles[0].state is TileState.CLOSED
    assert tiles[1].state is TileState.IGNORED
    assert "west" in tiles[1].reason
