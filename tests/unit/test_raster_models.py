"""Tests for the GridSpec, Raster and Mask models.

Covers:
- Grid construction from bounds and pixel-centre rasterisation
- Raster immutability, validity bookkeeping and pixel algebra
- Mask combination and re-alignment across grids
- Resampling (area average when coarser)
"""

from __future__ import annotations

import numpy as np
import pytest
from shapely.geometry import Polygon, box

from suhi_pipeline.core.exceptions import PipelineError
from suhi_pipeline.models.raster import GridSpec, Mask, ModelValidationError, Raster

WORK_CRS = "EPSG:32618"


class TestGridSpec:
    """Grid construction and geometry helpers."""

    def test_from_bounds_rounds_up_partial_pixels(self) -> None:
        g = GridSpec.from_bounds((0.0, 0.0, 100.0, 65.0), 30.0, WORK_CRS)
        assert g.shape == (3, 4)
        assert g.pixel_size == 30.0

    def test_bounds_cover_requested_extent(self) -> None:
        g = GridSpec.from_bounds((0.0, 0.0, 90.0, 60.0), 30.0, WORK_CRS)
        assert g.bounds == pytest.approx((0.0, 0.0, 90.0, 60.0))

    def test_non_positive_scale_rejected(self) -> None:
        with pytest.raises(ModelValidationError, match="scale"):
            GridSpec.from_bounds((0.0, 0.0, 10.0, 10.0), 0.0, WORK_CRS)

    def test_inside_uses_pixel_centres(self, grid: GridSpec) -> None:
        minx, miny, _, maxy = grid.bounds
        left_half = box(minx, miny, minx + 150, maxy)
        inside = grid.inside(left_half)
        assert inside.sum() == 50
        assert inside[:, :5].all()
        assert not inside[:, 5:].any()

    def test_inside_empty_geometry(self, grid: GridSpec) -> None:
        assert not grid.inside(Polygon()).any()

    def test_same_as(self, make_grid) -> None:
        assert make_grid().same_as(make_grid())
        assert not make_grid().same_as(make_grid(scale=60.0))


class TestRaster:
    """Raster validity and algebra."""

    def test_values_are_read_only(self, make_raster) -> None:
        r = make_raster(1.0)
        with pytest.raises(ValueError):
            r.values[0, 0] = 5.0

    def test_non_finite_values_are_invalid(self, grid: GridSpec) -> None:
        values = np.ones(grid.shape)
        values[0, 0] = np.nan
        values[0, 1] = np.inf
        r = Raster(values=values, valid=np.ones(grid.shape, dtype=bool), grid=grid)
        assert r.valid_count == 98

    def test_from_array_nodata(self, grid: GridSpec) -> None:
        values = np.full(grid.shape, 3.0)
        values[1, 1] = -9999.0
        r = Raster.from_array(values, grid, nodata=-9999.0)
        assert r.valid_count == 99
        assert not r.valid[1, 1]

    def test_shape_mismatch_is_model_error(self, grid: GridSpec) -> None:
        with pytest.raises(ModelValidationError) as exc_info:
            Raster(values=np.zeros((3, 3)), valid=np.ones((3, 3), dtype=bool), grid=grid)
        assert isinstance(exc_info.value, PipelineError)
        assert exc_info.value.code == "MODEL_VALIDATION_FAILED"

    def test_scale_and_offset_return_new_rasters(self, make_raster) -> None:
        r = make_raster(15000.0)
        k = r.scale(0.02)
        c = k.offset(-273.15)
        assert r.values[0, 0] == 15000.0
        assert k.values[0, 0] == pytest.approx(300.0)
        assert c.values[0, 0] == pytest.approx(26.85)

    def test_map_invalidates_non_finite_results(self, make_raster) -> None:
        r = make_raster(np.arange(100, dtype=float).reshape(10, 10))
        logged = r.map(np.log)
        assert not logged.valid[0, 0]
        assert logged.valid_count == 99

    def test_combine_intersects_validity(self, make_raster) -> None:
        a_values = np.ones((10, 10))
        a_values[0, 0] = np.nan
        b_values = np.full((10, 10), 2.0)
        b_values[9, 9] = np.nan
        combined = make_raster(a_values).combine(make_raster(b_values), lambda a, b: a + b)
        assert combined.valid_count == 98
        assert combined.values[5, 5] == pytest.approx(3.0)

    def test_clip(self, make_raster, grid: GridSpec) -> None:
        minx, miny, _, maxy = grid.bounds
        r = make_raster(1.0).clip(box(minx, miny, minx + 150, maxy))
        assert r.valid_count == 50

    def test_update_mask(self, make_raster, grid: GridSpec) -> None:
        keep = np.ones(grid.shape, dtype=bool)
        keep[:2] = False
        r = make_raster(1.0).update_mask(Mask(values=keep, grid=grid))
        assert r.valid_count == 80

    def test_filled(self, make_raster) -> None:
        values = np.ones((10, 10))
        values[0, 0] = np.nan
        filled = make_raster(values).filled(-9999.0)
        assert filled[0, 0] == -9999.0
        assert filled[1, 1] == 1.0

    def test_resample_coarser_averages(self, make_raster) -> None:
        values = np.zeros((10, 10))
        values[:, 1::2] = 10.0
        coarse = make_raster(values).resample(60.0)
        assert coarse.grid.shape == (5, 5)
        assert coarse.values[coarse.valid] == pytest.approx(np.full(25, 5.0))

    def test_resample_same_scale_is_identity(self, make_raster) -> None:
        r = make_raster(1.0)
        assert r.resample(30.0) is r


class TestMask:
    """Mask combination and alignment."""

    def test_from_raster_excludes_invalid(self, make_raster) -> None:
        values = np.full((10, 10), 5.0)
        values[0, 0] = np.nan
        mask = Mask.from_raster(make_raster(values), lambda v: v > 1)
        assert mask.keep_count == 99

    def test_and_combines_masks(self, grid: GridSpec) -> None:
        a = np.ones(grid.shape, dtype=bool)
        a[0] = False
        b = np.ones(grid.shape, dtype=bool)
        b[:, 0] = False
        combined = Mask(values=a, grid=grid, name="a") & Mask(values=b, grid=grid, name="b")
        assert combined.keep_count == 81
        assert combined.name == "a & b"

    def test_invert(self, grid: GridSpec) -> None:
        keep = np.zeros(grid.shape, dtype=bool)
        keep[0, 0] = True
        assert (~Mask(values=keep, grid=grid)).keep_count == 99

    def test_align_to_finer_grid(self, make_grid) -> None:
        coarse = make_grid(width=5, height=5, scale=60.0)
        keep = np.ones(coarse.shape, dtype=bool)
        keep[0, 0] = False
        aligned = Mask(values=keep, grid=coarse).align_to(make_grid())
        assert aligned.grid.shape == (10, 10)
        assert aligned.keep_count == 96
        assert not aligned.values[:2, :2].any()

    def test_align_to_uncovered_pixels_take_fill(self, make_grid) -> None:
        small = make_grid(width=5, height=10)
        mask = Mask(values=np.ones(small.shape, dtype=bool), grid=small)
        assert mask.align_to(make_grid()).keep_count == 50
        assert mask.align_to(make_grid(), fill=True).keep_count == 100
