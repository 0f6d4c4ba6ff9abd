# tests/unit/test_alignment.py

import pytest

from gridblend.exceptions import ResampleError
from gridblend.raster.region import Region, Registration
from gridblend.blend.alignment import (
    AlignmentPlanner,
    AlignmentReason,
    increments_differ,
    out_of_phase
)
from gridblend.blend.tile import TileSource, TileState

class RecordingResampler:
    """Fake collaborator that records calls and hands back a prepared grid."""
    def __init__(self, result_path=None, fail=False):
        self.result_path = result_path
        self.fail = fail
        self.calls = []

    def resample(self, source, increment, region, registration):
        self.calls.append(("resample", source, increment, region, registration))
        if self.fail:
            raise RuntimeError("gdal exploded")
        return self.result_path

    def reformat(self, source, region):
        self.calls.append(("reformat", source, region))
        return self.result_path

@pytest.fixture
def output():
    return Region(0, 10, 0, 10, 1, 1, Registration.NODE)

def test_out_of_phase_detects_half_cell_shift(output):
    shifted = Region(0.5, 3.5, 0, 3, 1, 1, Registration.NODE)
    aligned = Region(2, 5, 1, 4, 1, 1, Registration.NODE)

    assert out_of_phase(shifted, output)
    assert not out_of_phase(aligned, output)

def test_pixel_tile_with_centres_on_output_nodes_is_in_phase(output):
    pixel = Region(-0.5, 3.5, -0.5, 3.5, 1, 1, Registration.PIXEL)
    assert not out_of_phase(pixel, output)

def test_increment_tolerance():
    assert not increments_differ((1.001, 1.0), (1.0, 1.0))
    assert increments_differ((1.01, 1.0), (1.0, 1.0))
    assert increments_differ((1.0, 0.5), (1.0, 1.0))

def test_plan_is_noop_for_aligned_tile(output):
    tile = TileSource("a.tif", Region(2, 5, 1, 4, 1, 1))
    tile.driver = "GTiff"
    planner = AlignmentPlanner(output, RecordingResampler(), RecordingResampler())

    plan = planner.plan(tile)
    assert plan.is_noop
    assert planner.apply(tile, plan)

def test_plan_reasons_combine(output):
    tile = TileSource("a.jp2", Region(0.25, 5.25, 0, 5, 0.5, 0.5))
    tile.driver = "JP2OpenJPEG"
    planner = AlignmentPlanner(output, RecordingResampler(), RecordingResampler())

    plan = planner.plan(tile)
    assert plan.reasons == AlignmentReason.REFORMAT | AlignmentReason.INCREMENT | AlignmentReason.PHASE
    assert plan.needs_resample
    assert not plan.needs_reformat

def test_phase_target_is_on_output_lattice_inside_tile(output):
    tile = TileSource("a.tif", Region(0.5, 3.5, 0.5, 3.5, 1, 1))
    tile.driver = "GTiff"
    planner = AlignmentPlanner(output, RecordingResampler(), RecordingResampler())

    plan = planner.plan(tile)
    assert plan.reasons == AlignmentReason.PHASE
    assert plan.region == pytest.approx((1, 3, 1, 3))
    assert plan.increment == (1, 1)
    assert plan.registration is Registration.NODE

def test_reformat_only_keeps_tile_lattice(output):
    tile = TileSource("a.jp2", Region(-2, 4, 2, 12, 1, 1))
    tile.driver = "JP2OpenJPEG"
    planner = AlignmentPlanner(output, RecordingResampler(), RecordingResampler())

    plan = planner.plan(tile)
    assert plan.reasons == AlignmentReason.REFORMAT
    assert plan.needs_reformat
    assert plan.region == pytest.approx((0, 4, 2, 10))

def test_check_overlap_ignores_tile_south_of_output(output):
    tile = TileSource("a.tif", Region(0, 5, -20, -12, 1, 1))
    planner = AlignmentPlanner(output, RecordingResampler(), RecordingResampler())

    assert not planner.check_overlap(tile)
    assert tile.state is TileState.IGNORED
    assert tile.reason == "outside y-range"

def test_check_overlap_ignores_tile_east_of_cartesian_output(output):
    tile = TileSource("a.tif", Region(20, 25, 0, 5, 1, 1))
    planner = AlignmentPlanner(output, RecordingResampler(), RecordingResampler())

    assert not planner.check_overlap(tile)
    assert tile.is_ignored

def test_check_overlap_wraps_geographic_tile():
    output = Region(90, 270, -10, 10, 45, 10)
    tile = TileSource("a.tif", Region(-180, -90, -10, 10, 45, 10))
    planner = AlignmentPlanner(output, RecordingResampler(), RecordingResampler(), geographic=True)

    assert planner.check_overlap(tile)
    assert tile.outer.bounds == (180, 270, -10, 10)
    assert tile.inner.bounds == (180, 270, -10, 10)

def test_apply_swaps_in_temporary_grid(output, grid_factory):
    rebuilt = grid_factory("rebuilt.tif", Region(1, 3, 1, 3, 1, 1))
    fake = RecordingResampler(result_path=rebuilt)
    tile = TileSource("a.tif", Region(0.5, 3.5, 0.5, 3.5, 1, 1))
    tile.driver = "GTiff"
    planner = AlignmentPlanner(output, fake, fake)

    assert planner.apply(tile, planner.plan(tile))
    assert fake.calls[0][0] == "resample"
    assert tile.path == rebuilt
    assert tile.delete_on_close
    assert tile.outer.bounds == pytest.approx((1, 3, 1, 3))
    assert tile.inner.bounds == pytest.approx((1, 3, 1, 3))

    tile.release()
    assert not rebuilt.exists()

def test_apply_wraps_collaborator_failure(output):
    fake = RecordingResampler(fail=True)
    tile = TileSource("a.tif", Region(0.5, 3.5, 0.5, 3.5, 1, 1))
    tile.driver = "GTiff"
    planner = AlignmentPlanner(output, fake, fake)

    with pytest.raises(ResampleError):
        planner.apply(tile, planner.plan(tile))
