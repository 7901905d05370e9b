"""Tests for the S-UHI compositor and the rural "no data" policy."""

from __future__ import annotations

import logging

import numpy as np
import pytest

from suhi_pipeline.activities.compose_suhi import (
    RuralFallback,
    SuhiValue,
    resolve_rural,
    suhi_raster,
    suhi_scalar,
)
from suhi_pipeline.core.exceptions import DataUnavailable
from suhi_pipeline.models.raster import Mask
from suhi_pipeline.models.statistics import ZonalStatistic

URBAN = ZonalStatistic(value=36.85, pixel_count=10, scale_m=1000.0, name="urban")
RURAL = ZonalStatistic(value=26.85, pixel_count=20, scale_m=1000.0, name="rural")
NO_DATA = ZonalStatistic(value=None, pixel_count=0, scale_m=1000.0, name="rural_fixed")


class TestSuhiScalar:
    """``SUHI = urban - rural``."""

    def test_difference(self) -> None:
        result = suhi_scalar(URBAN, RURAL, name="lst_composite_fixed")
        assert result.value == pytest.approx(10.0)
        assert result.urban == pytest.approx(36.85)
        assert result.rural == pytest.approx(26.85)
        assert not result.rural_fallback_applied

    def test_missing_rural_fails_by_default(self) -> None:
        with pytest.raises(DataUnavailable, match="rural_fixed") as exc_info:
            suhi_scalar(URBAN, NO_DATA)
        assert exc_info.value.stage == "compose_suhi"

    def test_zero_fallback(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.WARNING, logger="suhi_pipeline.activities.compose_suhi"):
            result = suhi_scalar(URBAN, NO_DATA, RuralFallback.ZERO)
        assert result.value == pytest.approx(36.85)
        assert result.rural == 0.0
        assert result.rural_fallback_applied
        assert "Rural fallback applied" in caplog.text

    @pytest.mark.parametrize("policy", list(RuralFallback))
    def test_missing_urban_always_fails(self, policy: RuralFallback) -> None:
        missing = ZonalStatistic(value=None, name="urban")
        with pytest.raises(DataUnavailable, match="urban"):
            suhi_scalar(missing, RURAL, policy)

    def test_to_dict(self) -> None:
        value = SuhiValue(value=1.5, urban=30.0, rural=28.5, name="x")
        assert value.to_dict() == {
            "value": 1.5,
            "urban": 30.0,
            "rural": 28.5,
            "rural_fallback_applied": False,
        }

    def test_policy_from_config_string(self) -> None:
        assert RuralFallback("zero") is RuralFallback.ZERO
        assert resolve_rural(RURAL, RuralFallback("fail")) == (26.85, False)


class TestSuhiRaster:
    """Per-pixel S-UHI over urban pixels."""

    def test_urban_pixels_offset(self, make_raster, grid) -> None:
        keep = np.zeros(grid.shape, dtype=bool)
        keep[:, :3] = True
        result = suhi_raster(make_raster(30.0, name="lst_composite"), Mask(values=keep, grid=grid), RURAL)
        assert result.name == "lst_composite_suhi"
        assert result.valid_count == 30
        assert np.allclose(result.values[result.valid], 30.0 - 26.85)

    def test_missing_rural(self, make_raster, grid) -> None:
        urban = Mask(values=np.ones(grid.shape, dtype=bool), grid=grid)
        with pytest.raises(DataUnavailable):
            suhi_raster(make_raster(30.0), urban, NO_DATA)
        zeroed = suhi_raster(make_raster(30.0), urban, NO_DATA, RuralFallback.ZERO)
        assert zeroed.name == "suhi"
        assert np.allclose(zeroed.values, 30.0)
