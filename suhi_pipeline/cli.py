"""Command-line entry point.

Usage::

    suhi-pipeline data/nyc_boundary.geojson --catalog local --catalog-root data \\
        --start 2015-01-01 --end 2020-12-31 --output output --png

Configuration is read from ``SUHI_*`` environment variables first
(``PipelineConfig.from_env``); flags given on the command line override
them.  Exit status is 0 on success, 1 on an attributed pipeline error and
2 on invalid configuration.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
import uuid
from pathlib import Path
from typing import TYPE_CHECKING

from suhi_pipeline import __version__
from suhi_pipeline.activities.region import load_aoi
from suhi_pipeline.activities.render import LogSink, PngSink
from suhi_pipeline.core.config import ConfigValidationError, PipelineConfig
from suhi_pipeline.core.exceptions import PipelineError
from suhi_pipeline.orchestrators.suhi_pipeline import run_suhi_pipeline

if TYPE_CHECKING:
    from collections.abc import Sequence

    from suhi_pipeline.activities.render import Sink

logger = logging.getLogger("suhi_pipeline.cli")

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s | %(message)s"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="suhi-pipeline",
        description="Surface urban heat island intensity for an urban AOI.",
    )
    parser.add_argument("aoi", type=Path, help="Vector file holding the AOI polygon(s)")
    parser.add_argument("--name", default="", help="Feature name (default: file stem)")
    parser.add_argument("--start", dest="start_date", help="First acquisition date (YYYY-MM-DD)")
    parser.add_argument("--end", dest="end_date", help="Last acquisition date (YYYY-MM-DD)")
    parser.add_argument("--doy-first", type=int, help="First day-of-year of the seasonal window")
    parser.add_argument("--doy-last", type=int, help="Last day-of-year of the seasonal window")
    parser.add_argument("--cloud-threshold", dest="cloud_score_threshold", type=float)
    parser.add_argument("--fixed-buffer", dest="fixed_buffer_m", type=float, help="Fixed ring width (m)")
    parser.add_argument("--buffer-step", dest="buffer_step_m", type=float, help="Search step (m)")
    parser.add_argument("--buffer-count", type=int, help="Number of search widths")
    parser.add_argument("--max-pixels", type=int, help="Pixel ceiling per zonal reduction")
    parser.add_argument(
        "--best-effort",
        action="store_true",
        default=None,
        help="Coarsen the reduction scale instead of failing at the pixel ceiling",
    )
    parser.add_argument("--rural-fallback", choices=("fail", "zero"))
    parser.add_argument("--work-crs", help='Metric CRS, or "auto" for the UTM zone of the AOI')
    parser.add_argument("--catalog", help='Scene catalog ("local" or "planetary_computer")')
    parser.add_argument("--catalog-root", help="Root directory (local) or STAC URL")
    parser.add_argument("--output", dest="output_dir", help="Output directory")
    parser.add_argument("--workers", dest="max_workers", type=int)
    parser.add_argument("--toolbox", dest="use_toolbox", action="store_true", default=None)
    parser.add_argument("--no-export", action="store_true", help="Skip writing artefacts")
    parser.add_argument("--png", action="store_true", help="Render PNG previews into the output directory")
    parser.add_argument("--log-level", default="INFO", choices=("DEBUG", "INFO", "WARNING", "ERROR"))
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=args.log_level, format=LOG_FORMAT)

    overrides = {
        key: getattr(args, key)
        for key in (
            "start_date",
            "end_date",
            "doy_first",
            "doy_last",
            "cloud_score_threshold",
            "fixed_buffer_m",
            "buffer_step_m",
            "buffer_count",
            "max_pixels",
            "best_effort",
            "rural_fallback",
            "work_crs",
            "catalog",
            "catalog_root",
            "output_dir",
            "max_workers",
            "use_toolbox",
        )
    }
    try:
        config = PipelineConfig.from_env().replace(**overrides)
    except (ConfigValidationError, ValueError) as exc:
        logger.error("Invalid configuration | error=%s", exc)
        return 2

    run_id = uuid.uuid4().hex
    sinks: list[Sink] = [LogSink()]
    if args.png:
        sinks.append(PngSink(Path(config.output_dir) / "png"))

    try:
        aoi = load_aoi(args.aoi, work_crs=config.work_crs, name=args.name)
        report = run_suhi_pipeline(
            config,
            aoi,
            sinks=sinks,
            export=not args.no_export,
            run_id=run_id,
        )
    except PipelineError as exc:
        logger.error("Pipeline failed | run_id=%s | error=%s", run_id, json.dumps(exc.to_error_dict()))
        return 1

    summary = {
        name: {"suhi_fixed": r["suhi_fixed"].to_dict(), "suhi_matched": r["suhi_matched"].to_dict()}
        for name, r in report["sources"].items()
    }
    print(json.dumps({"run_id": run_id, "feature": report["feature"], "sources": summary}, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
