"""Tests for Scene and Collection (filters and temporal reducers)."""

from __future__ import annotations

from datetime import date, datetime

import numpy as np
import pytest

from suhi_pipeline.core.exceptions import DataUnavailable, EmptyInputCollection
from suhi_pipeline.models.collection import Collection, Reducer, Scene
from suhi_pipeline.models.raster import ModelValidationError


def _scene(make_raster, acquired: date, value: float | np.ndarray) -> Scene:
    return Scene(acquired=acquired, bands={"LST": make_raster(value, name="LST")}, scene_id=str(acquired))


class TestScene:
    """Single acquisitions."""

    def test_datetime_truncated_to_date(self, make_raster) -> None:
        scene = _scene(make_raster, datetime(2019, 7, 4, 15, 30), 1.0)
        assert scene.acquired == date(2019, 7, 4)

    def test_day_of_year(self, make_raster) -> None:
        assert _scene(make_raster, date(2019, 6, 1), 1.0).day_of_year == 152
        assert _scene(make_raster, date(2020, 6, 1), 1.0).day_of_year == 153

    def test_missing_band(self, make_raster) -> None:
        with pytest.raises(ModelValidationError, match="LST"):
            _scene(make_raster, date(2019, 7, 4), 1.0).band("B10")

    def test_with_bands_keeps_existing(self, make_raster) -> None:
        scene = _scene(make_raster, date(2019, 7, 4), 1.0).with_bands(NDVI=make_raster(0.5))
        assert set(scene.bands) == {"LST", "NDVI"}


class TestFilters:
    """Date and day-of-year filters are inclusive on both ends."""

    @pytest.fixture()
    def collection(self, make_raster) -> Collection:
        dates = [date(2019, 5, 31), date(2019, 6, 1), date(2019, 7, 15), date(2019, 8, 31), date(2019, 9, 1)]
        return Collection("test", tuple(_scene(make_raster, d, 1.0) for d in reversed(dates)))

    def test_scenes_sorted_by_date(self, collection: Collection) -> None:
        acquired = [s.acquired for s in collection]
        assert acquired == sorted(acquired)

    def test_filter_date_inclusive(self, collection: Collection) -> None:
        kept = collection.filter_date(date(2019, 6, 1), date(2019, 8, 31))
        assert [s.acquired for s in kept] == [date(2019, 6, 1), date(2019, 7, 15), date(2019, 8, 31)]

    def test_filter_day_of_year_inclusive(self, collection: Collection) -> None:
        kept = collection.filter_day_of_year(152, 243)
        assert len(kept) == 3
        assert kept.name == "test"

    def test_filter_to_nothing(self, collection: Collection) -> None:
        assert collection.filter_date(date(2000, 1, 1), date(2000, 12, 31)).is_empty


class TestReduce:
    """Per-pixel temporal reducers."""

    def test_mean_ignores_invalid_pixels(self, make_raster) -> None:
        holey = np.full((10, 10), 30.0)
        holey[0, 0] = np.nan
        collection = Collection(
            "test",
            (_scene(make_raster, date(2019, 7, 1), 10.0), _scene(make_raster, date(2019, 7, 9), holey)),
        )
        result = collection.mean("LST")
        assert result.values[0, 0] == pytest.approx(10.0)
        assert result.values[5, 5] == pytest.approx(20.0)
        assert result.valid_count == 100

    def test_pixel_invalid_everywhere_stays_invalid(self, make_raster) -> None:
        holey = np.full((10, 10), 30.0)
        holey[0, 0] = np.nan
        collection = Collection("test", (_scene(make_raster, date(2019, 7, 1), holey),))
        assert not collection.mean("LST").valid[0, 0]

    def test_median(self, make_raster) -> None:
        collection = Collection(
            "test",
            tuple(_scene(make_raster, date(2019, 7, d), v) for d, v in ((1, 1.0), (2, 2.0), (3, 9.0))),
        )
        assert collection.median("LST").values[0, 0] == pytest.approx(2.0)
        assert collection.reduce("LST", Reducer.MAX).values[0, 0] == pytest.approx(9.0)

    def test_empty_collection_raises(self) -> None:
        with pytest.raises(EmptyInputCollection) as exc_info:
            Collection("modis-lst-8day").mean("LST_Day_1km")
        assert isinstance(exc_info.value, DataUnavailable)
        assert "modis-lst-8day" in str(exc_info.value)
