"""Tests for pipeline configuration.

Covers:
- Default values match the New York City analysis
- Loading from ``SUHI_*`` environment variables
- Type coercion (string env vars to numeric and boolean fields)
- Fail-fast range validation
- CLI-style overrides through ``replace``
"""

from __future__ import annotations

import os
from datetime import date
from unittest.mock import patch

import pytest

from suhi_pipeline.core.config import ConfigValidationError, PipelineConfig


class TestPipelineConfigDefaults:
    """Verify default configuration values."""

    def test_default_window(self) -> None:
        cfg = PipelineConfig()
        assert cfg.start == date(2015, 1, 1)
        assert cfg.end == date(2020, 12, 31)
        assert (cfg.doy_first, cfg.doy_last) == (152, 243)

    def test_default_buffers(self) -> None:
        cfg = PipelineConfig()
        assert cfg.fixed_buffer_m == 2000.0
        assert cfg.buffer_step_m == 30.0
        assert cfg.buffer_count == 100

    def test_default_scales(self) -> None:
        cfg = PipelineConfig()
        assert cfg.modis_scale_m == 1000.0
        assert cfg.landsat_scale_m == 30.0

    def test_default_policies(self) -> None:
        cfg = PipelineConfig()
        assert cfg.cloud_score_threshold == 10.0
        assert cfg.rural_fallback == "fail"
        assert cfg.best_effort is False
        assert cfg.use_toolbox is False

    def test_default_catalog(self) -> None:
        cfg = PipelineConfig()
        assert cfg.catalog == "local"
        assert cfg.work_crs == "EPSG:32618"

    def test_date_range(self) -> None:
        assert PipelineConfig().date_range == "2015-01-01/2020-12-31"


class TestPipelineConfigFromEnv:
    """Verify loading from environment variables."""

    def test_loads_from_environment(self) -> None:
        """All env vars are read and coerced to correct types."""
        env = {
            "SUHI_START_DATE": "2018-01-01",
            "SUHI_END_DATE": "2018-12-31",
            "SUHI_DOY_FIRST": "160",
            "SUHI_DOY_LAST": "230",
            "SUHI_CLOUD_SCORE_THRESHOLD": "20",
            "SUHI_FIXED_BUFFER_M": "1500",
            "SUHI_BUFFER_STEP_M": "60",
            "SUHI_BUFFER_COUNT": "50",
            "SUHI_MODIS_SCALE_M": "926.6",
            "SUHI_LANDSAT_SCALE_M": "30",
            "SUHI_MAX_PIXELS": "1e8",
            "SUHI_BEST_EFFORT": "true",
            "SUHI_RURAL_FALLBACK": "ZERO",
            "SUHI_WORK_CRS": "auto",
            "SUHI_CATALOG": "planetary_computer",
            "SUHI_CATALOG_ROOT": "https://example.test/stac",
            "SUHI_OUTPUT_DIR": "/tmp/suhi",
            "SUHI_MAX_WORKERS": "8",
            "SUHI_USE_TOOLBOX": "1",
        }
        with patch.dict(os.environ, env, clear=True):
            cfg = PipelineConfig.from_env()

        assert cfg.start == date(2018, 1, 1)
        assert cfg.doy_first == 160
        assert cfg.cloud_score_threshold == 20.0
        assert cfg.buffer_count == 50
        assert cfg.modis_scale_m == pytest.approx(926.6)
        assert cfg.max_pixels == 100_000_000
        assert cfg.best_effort is True
        assert cfg.rural_fallback == "zero"
        assert cfg.work_crs == "auto"
        assert cfg.catalog == "planetary_computer"
        assert cfg.max_workers == 8
        assert cfg.use_toolbox is True

    def test_defaults_when_env_empty(self) -> None:
        with patch.dict(os.environ, {}, clear=True):
            cfg = PipelineConfig.from_env()
        assert cfg == PipelineConfig()

    def test_catalog_params(self) -> None:
        env = {
            "SUHI_CATALOG": "planetary_computer",
            "SUHI_CATALOG_PARAMS": "landsat_toa_collection=landsat-c2-toa-bt, landcover_asset = lcpri,",
        }
        with patch.dict(os.environ, env, clear=True):
            cfg = PipelineConfig.from_env()
        assert cfg.catalog_extra_params == {"landsat_toa_collection": "landsat-c2-toa-bt", "landcover_asset": "lcpri"}
        assert PipelineConfig().catalog_extra_params == {}

    def test_unparseable_number(self) -> None:
        with patch.dict(os.environ, {"SUHI_BUFFER_COUNT": "many"}, clear=True), pytest.raises(ValueError):
            PipelineConfig.from_env()


class TestPipelineConfigValidation:
    """Fail-fast range validation."""

    @pytest.mark.parametrize(
        ("env", "key"),
        [
            ({"SUHI_START_DATE": "2019-13-01"}, "SUHI_START_DATE"),
            ({"SUHI_START_DATE": "2021-01-01"}, "SUHI_START_DATE"),
            ({"SUHI_DOY_FIRST": "0"}, "SUHI_DOY_FIRST"),
            ({"SUHI_DOY_FIRST": "250"}, "SUHI_DOY_FIRST"),
            ({"SUHI_CLOUD_SCORE_THRESHOLD": "101"}, "SUHI_CLOUD_SCORE_THRESHOLD"),
            ({"SUHI_FIXED_BUFFER_M": "0"}, "SUHI_FIXED_BUFFER_M"),
            ({"SUHI_BUFFER_COUNT": "-1"}, "SUHI_BUFFER_COUNT"),
            ({"SUHI_MAX_PIXELS": "0"}, "SUHI_MAX_PIXELS"),
            ({"SUHI_MAX_WORKERS": "0"}, "SUHI_MAX_WORKERS"),
            ({"SUHI_RURAL_FALLBACK": "ignore"}, "SUHI_RURAL_FALLBACK"),
            ({"SUHI_CATALOG": ""}, "SUHI_CATALOG"),
            ({"SUHI_CATALOG_PARAMS": "landsat_toa_collection"}, "SUHI_CATALOG_PARAMS"),
        ],
    )
    def test_out_of_range(self, env: dict[str, str], key: str) -> None:
        with patch.dict(os.environ, env, clear=True), pytest.raises(ConfigValidationError) as exc_info:
            PipelineConfig.from_env()
        assert exc_info.value.key == key
        assert exc_info.value.code == "CONFIG_VALIDATION_FAILED"

    def test_boundary_values_accepted(self) -> None:
        env = {"SUHI_DOY_FIRST": "1", "SUHI_DOY_LAST": "366", "SUHI_CLOUD_SCORE_THRESHOLD": "0"}
        with patch.dict(os.environ, env, clear=True):
            cfg = PipelineConfig.from_env()
        assert (cfg.doy_first, cfg.doy_last) == (1, 366)


class TestPipelineConfigReplace:
    """Overrides layered on top of a loaded configuration."""

    def test_none_values_ignored(self) -> None:
        cfg = PipelineConfig().replace(fixed_buffer_m=None, buffer_count=20)
        assert cfg.fixed_buffer_m == 2000.0
        assert cfg.buffer_count == 20

    def test_overrides_validated(self) -> None:
        with pytest.raises(ConfigValidationError):
            PipelineConfig().replace(doy_first=300, doy_last=200)

    def test_immutable(self) -> None:
        cfg = PipelineConfig()
        with pytest.raises(AttributeError):
            cfg.catalog = "other"  # type: ignore[misc]
