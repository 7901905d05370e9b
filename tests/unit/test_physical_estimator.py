"""Tests for the physical (NDVI emissivity) LST estimator.

Covers the pure steps (cloud masking, NDVI, fractional vegetation,
emissivity, Planck inversion) and the estimator wired to a catalog.
"""

from __future__ import annotations

import math
from datetime import date

import numpy as np
import pytest

from suhi_pipeline.activities.region import grid_for
from suhi_pipeline.core import constants
from suhi_pipeline.core.exceptions import DataUnavailable, EmptyInputCollection, NumericDomainError
from suhi_pipeline.estimators.physical import (
    PhysicalEstimator,
    brightness_temperature,
    cloud_mask_scene,
    emissivity,
    fractional_vegetation,
    invert_lst,
    ndvi,
    physical_lst,
)
from suhi_pipeline.models.collection import Collection, Scene
from suhi_pipeline.models.feature import Feature
from suhi_pipeline.models.raster import Mask, Raster
from suhi_pipeline.models.statistics import MinMax


def _planck(tb: float, ep: float) -> float:
    return tb / (1 + (0.001145 * tb / 1.438) * math.log(ep)) - 273.15


def _thermal_scene(make_raster, acquired: date, tb: float | np.ndarray, score: float | np.ndarray) -> Scene:
    return Scene(
        acquired=acquired,
        bands={
            constants.THERMAL_BAND: make_raster(tb),
            constants.CLOUD_SCORE_BAND: make_raster(score),
        },
    )


def _column_gradient(grid) -> np.ndarray:
    return np.tile(np.linspace(0.2, 0.6, grid.width), (grid.height, 1))


class TestCloudMask:
    """Scores above the threshold are removed; the threshold itself is kept."""

    @pytest.mark.parametrize(("score", "kept"), [(9.0, True), (10.0, True), (11.0, False)])
    def test_threshold(self, make_raster, score: float, kept: bool) -> None:
        scene = cloud_mask_scene(_thermal_scene(make_raster, date(2019, 7, 4), 300.0, score), 10.0)
        assert bool(scene.band(constants.THERMAL_BAND).valid.all()) is kept

    def test_median_brightness_temperature(self, make_raster) -> None:
        scores = np.zeros((10, 10))
        scores[0, 0] = 50.0
        thermal = Collection(
            "toa",
            (
                _thermal_scene(make_raster, date(2019, 7, 1), 300.0, scores),
                _thermal_scene(make_raster, date(2019, 7, 17), 302.0, 0.0),
                _thermal_scene(make_raster, date(2019, 8, 2), 310.0, 0.0),
            ),
        )
        tb = brightness_temperature(thermal, 10.0)
        assert tb.name == "Tb"
        assert tb.values[5, 5] == pytest.approx(302.0)
        assert tb.values[0, 0] == pytest.approx(306.0)


class TestNdvi:
    """Normalised difference vegetation index."""

    def test_formula(self, make_raster) -> None:
        scene = Scene(
            acquired=date(2019, 7, 4),
            bands={constants.RED_BAND: make_raster(0.1), constants.NIR_BAND: make_raster(0.5)},
        )
        assert ndvi(scene).values[0, 0] == pytest.approx(0.4 / 0.6)

    def test_zero_denominator_invalid(self, make_raster) -> None:
        scene = Scene(
            acquired=date(2019, 7, 4),
            bands={constants.RED_BAND: make_raster(0.0), constants.NIR_BAND: make_raster(0.0)},
        )
        assert ndvi(scene).valid_count == 0


class TestFractionalVegetation:
    """Linear rescaling of NDVI between its AOI minimum and maximum."""

    def test_endpoints(self, make_raster) -> None:
        values = np.full((10, 10), 0.4)
        values[0, 0] = 0.1
        values[9, 9] = 0.7
        fv = fractional_vegetation(make_raster(values), 0.1, 0.7)
        assert fv.values[0, 0] == pytest.approx(0.0)
        assert fv.values[9, 9] == pytest.approx(1.0)
        assert fv.values[5, 5] == pytest.approx(0.5)

    def test_values_not_clamped(self, make_raster) -> None:
        fv = fractional_vegetation(make_raster(0.9), 0.1, 0.7)
        assert fv.values[0, 0] > 1.0

    @pytest.mark.parametrize(("lo", "hi"), [(0.5, 0.5), (0.6, 0.2)])
    def test_degenerate_range(self, make_raster, lo: float, hi: float) -> None:
        with pytest.raises(NumericDomainError):
            fractional_vegetation(make_raster(0.5), lo, hi)


class TestEmissivity:
    """``Ep = 0.004 * FV + 0.986``."""

    def test_range(self, make_raster) -> None:
        assert emissivity(make_raster(0.0)).values[0, 0] == pytest.approx(0.986)
        assert emissivity(make_raster(1.0)).values[0, 0] == pytest.approx(0.990)


class TestInvertLst:
    """Planck-approximation inversion."""

    def test_formula(self, make_raster) -> None:
        lst = invert_lst(make_raster(300.0), make_raster(0.99))
        assert lst.values[0, 0] == pytest.approx(_planck(300.0, 0.99))

    def test_unit_emissivity_is_brightness_temperature(self, make_raster) -> None:
        lst = invert_lst(make_raster(300.0), make_raster(1.0))
        assert lst.values[0, 0] == pytest.approx(26.85)

    def test_non_positive_emissivity_raises(self, make_raster) -> None:
        ep = np.full((10, 10), 0.99)
        ep[3, 3] = 0.0
        with pytest.raises(NumericDomainError, match="Emissivity"):
            invert_lst(make_raster(300.0), make_raster(ep))

    def test_invalid_emissivity_pixels_ignored(self, make_raster) -> None:
        ep = np.full((10, 10), 0.99)
        ep[3, 3] = np.nan
        lst = invert_lst(make_raster(300.0), make_raster(ep))
        assert lst.valid_count == 99

    def test_physical_lst_applies_water_mask(self, make_raster, grid) -> None:
        values = np.tile(np.linspace(0.1, 0.7, 10), (10, 1))
        keep = np.ones(grid.shape, dtype=bool)
        keep[0] = False
        lst = physical_lst(
            make_raster(300.0), make_raster(values), (0.1, 0.7), water=Mask(values=keep, grid=grid)
        )
        assert lst.name == "lst_physical"
        assert lst.valid_count == 90
        assert lst.values[5, 0] == pytest.approx(_planck(300.0, 0.986))
        assert lst.values[5, 9] == pytest.approx(_planck(300.0, 0.990))


class TestPhysicalEstimator:
    """Estimator wired to an in-memory catalog."""

    @pytest.fixture()
    def catalog(self, fake_catalog):
        return fake_catalog(
            collections={
                constants.LANDSAT_TOA_COLLECTION: [
                    (date(2019, 7, 4), {constants.THERMAL_BAND: 300.0, constants.CLOUD_SCORE_BAND: 0.0}),
                    (date(2019, 7, 20), {constants.THERMAL_BAND: 300.0, constants.CLOUD_SCORE_BAND: 80.0}),
                ],
                constants.LANDSAT_SR_COLLECTION: [
                    (date(2019, 7, 4), {constants.RED_BAND: 0.1, constants.NIR_BAND: _column_gradient}),
                ],
            }
        )

    @pytest.fixture()
    def region(self, square_aoi) -> Feature:
        return Feature(name="region", geometry=square_aoi.geometry.buffer(600), crs=square_aoi.crs)

    @pytest.fixture()
    def keep_all(self, region, small_config) -> Mask:
        grid = grid_for(region, small_config.landsat_scale_m)
        return Mask(values=np.ones(grid.shape, dtype=bool), grid=grid)

    def test_estimate(self, catalog, small_config, square_aoi, region, keep_all) -> None:
        estimator = PhysicalEstimator(catalog, small_config)
        lst = estimator.estimate(square_aoi, region, keep_all)

        assert estimator.scale_m == 60.0
        assert lst.name == "lst_physical"
        assert lst.valid_count > 0
        inside = lst.valid & lst.grid.inside(square_aoi.geometry)
        assert inside.any()
        assert lst.values[inside].min() >= _planck(300.0, 0.990) - 1e-6
        assert lst.values[inside].max() <= _planck(300.0, 0.986) + 1e-6

    def test_ndvi_min_max_over_aoi(self, catalog, small_config, square_aoi, region, keep_all) -> None:
        estimator = PhysicalEstimator(catalog, small_config)
        bounds = estimator.ndvi_min_max(estimator.ndvi(region, keep_all), square_aoi)
        lo, hi = bounds.require()
        assert lo < hi
        assert bounds.scale_m == 30.0

    def test_missing_ndvi_range_raises(self, make_raster, small_config, fake_catalog) -> None:
        estimator = PhysicalEstimator(fake_catalog(), small_config)
        empty = MinMax(min=None, max=None, name="ndvi_aoi")
        with pytest.raises(DataUnavailable):
            estimator.lst(make_raster(300.0), make_raster(0.5), empty, _keep(make_raster(1.0)))

    def test_no_summer_scenes(self, fake_catalog, small_config, region) -> None:
        catalog = fake_catalog(
            collections={
                constants.LANDSAT_TOA_COLLECTION: [
                    (date(2019, 1, 4), {constants.THERMAL_BAND: 300.0, constants.CLOUD_SCORE_BAND: 0.0}),
                ],
            }
        )
        with pytest.raises(EmptyInputCollection) as exc_info:
            PhysicalEstimator(catalog, small_config).brightness_temperature(region)
        assert exc_info.value.stage == "brightness_temperature"


def _keep(raster: Raster) -> Mask:
    return Mask(values=np.ones(raster.grid.shape, dtype=bool), grid=raster.grid)
