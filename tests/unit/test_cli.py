"""Tests for the command-line entry point."""

from __future__ import annotations

import json
import os
from unittest.mock import patch

import pytest

from suhi_pipeline import cli
from suhi_pipeline.activities.compose_suhi import SuhiValue
from suhi_pipeline.activities.render import LogSink, PngSink
from suhi_pipeline.core.exceptions import DataUnavailable

MODULE = "suhi_pipeline.cli"


def _report(feature) -> dict:
    return {
        "feature": feature.name,
        "sources": {
            "lst_composite": {
                "suhi_fixed": SuhiValue(value=4.5, urban=33.0, rural=28.5),
                "suhi_matched": SuhiValue(value=5.0, urban=33.0, rural=28.0),
            }
        },
    }


class TestMain:
    """Exit codes and configuration layering."""

    def test_invalid_configuration(self, tmp_path) -> None:
        with patch.dict(os.environ, {"SUHI_DOY_FIRST": "400"}, clear=True):
            assert cli.main([str(tmp_path / "aoi.geojson")]) == 2

    def test_invalid_flag_combination(self, tmp_path) -> None:
        with patch.dict(os.environ, {}, clear=True):
            assert cli.main([str(tmp_path / "aoi.geojson"), "--start", "2020-01-01", "--end", "2019-01-01"]) == 2

    def test_success(self, tmp_path, square_aoi, capsys: pytest.CaptureFixture[str]) -> None:
        with (
            patch.dict(os.environ, {"SUHI_CATALOG": "local"}, clear=True),
            patch(f"{MODULE}.load_aoi", return_value=square_aoi) as load,
            patch(f"{MODULE}.run_suhi_pipeline", return_value=_report(square_aoi)) as run,
        ):
            code = cli.main(
                [
                    str(tmp_path / "aoi.geojson"),
                    "--start",
                    "2019-01-01",
                    "--end",
                    "2019-12-31",
                    "--fixed-buffer",
                    "1500",
                    "--output",
                    str(tmp_path / "out"),
                    "--png",
                ]
            )

        assert code == 0
        config = run.call_args.args[0]
        assert config.date_range == "2019-01-01/2019-12-31"
        assert config.fixed_buffer_m == 1500.0
        assert config.doy_first == 152
        assert load.call_args.kwargs["work_crs"] == "EPSG:32618"
        sinks = run.call_args.kwargs["sinks"]
        assert isinstance(sinks[0], LogSink)
        assert isinstance(sinks[1], PngSink)
        assert run.call_args.kwargs["export"] is True

        printed = json.loads(capsys.readouterr().out)
        assert printed["feature"] == "Test City"
        assert printed["sources"]["lst_composite"]["suhi_fixed"]["value"] == 4.5

    def test_pipeline_error(self, tmp_path, square_aoi) -> None:
        with (
            patch.dict(os.environ, {}, clear=True),
            patch(f"{MODULE}.load_aoi", return_value=square_aoi),
            patch(f"{MODULE}.run_suhi_pipeline", side_effect=DataUnavailable("no rural pixels", stage="rural_fixed")),
        ):
            assert cli.main([str(tmp_path / "aoi.geojson"), "--no-export"]) == 1

    def test_environment_then_flags(self, tmp_path, square_aoi) -> None:
        env = {"SUHI_FIXED_BUFFER_M": "2500", "SUHI_RURAL_FALLBACK": "zero"}
        with (
            patch.dict(os.environ, env, clear=True),
            patch(f"{MODULE}.load_aoi", return_value=square_aoi),
            patch(f"{MODULE}.run_suhi_pipeline", return_value=_report(square_aoi)) as run,
        ):
            cli.main([str(tmp_path / "aoi.geojson"), "--buffer-count", "20", "--no-export"])

        config = run.call_args.args[0]
        assert config.fixed_buffer_m == 2500.0
        assert config.rural_fallback == "zero"
        assert config.buffer_count == 20
        assert run.call_args.kwargs["export"] is False
