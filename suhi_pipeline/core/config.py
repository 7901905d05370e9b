"""Pipeline configuration loaded from environment variables.

All configuration values have defaults matching the New York City
analysis. Environment variables use the ``SUHI_`` prefix; the CLI layers
its flags on top of ``from_env()``.

Fail-fast validation:
    ``from_env()`` raises ``ConfigValidationError`` if any value is out
    of its valid range.  This catches bad configuration at startup rather
    than half-way through a long reduction.
"""

from __future__ import annotations

import dataclasses
import os
from dataclasses import dataclass
from datetime import date

from suhi_pipeline.core import constants
from suhi_pipeline.core.exceptions import PipelineError

RURAL_FALLBACK_FAIL = "fail"
RURAL_FALLBACK_ZERO = "zero"
_RURAL_FALLBACKS = (RURAL_FALLBACK_FAIL, RURAL_FALLBACK_ZERO)


class ConfigValidationError(PipelineError):
    """Raised when configuration values are out of valid range.

    Attributes:
        key: The configuration key that failed validation.
        value: The invalid value.
        message: Human-readable description of the valid range.
    """

    default_stage = "config"
    default_code = "CONFIG_VALIDATION_FAILED"

    def __init__(self, key: str, value: object, message: str) -> None:
        self.key = key
        self.value = value
        super().__init__(f"Invalid configuration {key}={value!r}: {message}")


@dataclass(frozen=True, slots=True)
class PipelineConfig:
    """Immutable pipeline configuration.

    Attributes:
        start_date: First acquisition date considered (ISO, inclusive).
        end_date: Last acquisition date considered (ISO, inclusive).
        doy_first: First day-of-year of the seasonal window (inclusive).
        doy_last: Last day-of-year of the seasonal window (inclusive).
        cloud_score_threshold: Cloud scores above this are masked (0-100).
        fixed_buffer_m: Width of the fixed rural annulus in metres.
        buffer_step_m: Step of the area-matched buffer search in metres.
        buffer_count: Number of candidate widths in the search.
        modis_scale_m: Reduction scale for the composite-product LST.
        landsat_scale_m: Reduction scale for the physical LST.
        max_pixels: Pixel ceiling for any single zonal reduction.
        best_effort: Coarsen the scale instead of failing at the ceiling.
        rural_fallback: ``"fail"`` or ``"zero"`` when the rural mean is missing.
        work_crs: Metric CRS for geometry and rasters (``"auto"`` = UTM of AOI).
        catalog: Scene catalog name (``"local"`` or ``"planetary_computer"``).
        catalog_root: Root directory for the local catalog.
        catalog_params: Catalog ``extra_params`` as ``key=value`` pairs separated by commas.
        output_dir: Directory for exported rasters, features and metadata.
        max_workers: Thread pool size for independent pipeline branches.
        use_toolbox: Also run the toolbox-based LST estimator.
    """

    start_date: str = constants.DEFAULT_START_DATE
    end_date: str = constants.DEFAULT_END_DATE
    doy_first: int = constants.SUMMER_DOY_FIRST
    doy_last: int = constants.SUMMER_DOY_LAST
    cloud_score_threshold: float = constants.CLOUD_SCORE_THRESHOLD
    fixed_buffer_m: float = constants.FIXED_BUFFER_M
    buffer_step_m: float = constants.BUFFER_SEARCH_STEP_M
    buffer_count: int = constants.BUFFER_SEARCH_COUNT
    modis_scale_m: float = constants.MODIS_SCALE_M
    landsat_scale_m: float = constants.LANDSAT_SCALE_M
    max_pixels: int = constants.DEFAULT_MAX_PIXELS
    best_effort: bool = False
    rural_fallback: str = RURAL_FALLBACK_FAIL
    work_crs: str = constants.DEFAULT_WORK_CRS
    catalog: str = "local"
    catalog_root: str = "data"
    catalog_params: str = ""
    output_dir: str = "output"
    max_workers: int = 4
    use_toolbox: bool = False

    @property
    def date_range(self) -> str:
        """The configured date range as ``"start/end"``."""
        return f"{self.start_date}/{self.end_date}"

    @property
    def catalog_extra_params(self) -> dict[str, str]:
        """``catalog_params`` parsed into the catalog's ``extra_params``."""
        return parse_catalog_params(self.catalog_params)

    @property
    def start(self) -> date:
        return date.fromisoformat(self.start_date)

    @property
    def end(self) -> date:
        return date.fromisoformat(self.end_date)

    def replace(self, **overrides: object) -> PipelineConfig:
        """Return a validated copy with *overrides* applied (``None`` values ignored)."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        config = dataclasses.replace(self, **changes)
        _validate(config)
        return config

    @classmethod
    def from_env(cls) -> PipelineConfig:
        """Load and validate configuration from environment variables.

        Raises:
            ConfigValidationError: If a value is out of range or a
                required string value is empty.
            ValueError: If a numeric environment variable cannot be
                parsed (e.g. ``SUHI_MAX_PIXELS=abc``).
        """
        config = cls(
            start_date=os.getenv("SUHI_START_DATE", constants.DEFAULT_START_DATE),
            end_date=os.getenv("SUHI_END_DATE", constants.DEFAULT_END_DATE),
            doy_first=int(os.getenv("SUHI_DOY_FIRST", str(constants.SUMMER_DOY_FIRST))),
            doy_last=int(os.getenv("SUHI_DOY_LAST", str(constants.SUMMER_DOY_LAST))),
            cloud_score_threshold=float(
                os.getenv("SUHI_CLOUD_SCORE_THRESHOLD", str(constants.CLOUD_SCORE_THRESHOLD))
            ),
            fixed_buffer_m=float(os.getenv("SUHI_FIXED_BUFFER_M", str(constants.FIXED_BUFFER_M))),
            buffer_step_m=float(
                os.getenv("SUHI_BUFFER_STEP_M", str(constants.BUFFER_SEARCH_STEP_M))
            ),
            buffer_count=int(os.getenv("SUHI_BUFFER_COUNT", str(constants.BUFFER_SEARCH_COUNT))),
            modis_scale_m=float(os.getenv("SUHI_MODIS_SCALE_M", str(constants.MODIS_SCALE_M))),
            landsat_scale_m=float(
                os.getenv("SUHI_LANDSAT_SCALE_M", str(constants.LANDSAT_SCALE_M))
            ),
            max_pixels=int(float(os.getenv("SUHI_MAX_PIXELS", str(constants.DEFAULT_MAX_PIXELS)))),
            best_effort=_env_flag("SUHI_BEST_EFFORT"),
            rural_fallback=os.getenv("SUHI_RURAL_FALLBACK", RURAL_FALLBACK_FAIL).lower(),
            work_crs=os.getenv("SUHI_WORK_CRS", constants.DEFAULT_WORK_CRS),
            catalog=os.getenv("SUHI_CATALOG", "local"),
            catalog_root=os.getenv("SUHI_CATALOG_ROOT", "data"),
            catalog_params=os.getenv("SUHI_CATALOG_PARAMS", ""),
            output_dir=os.getenv("SUHI_OUTPUT_DIR", "output"),
            max_workers=int(os.getenv("SUHI_MAX_WORKERS", "4")),
            use_toolbox=_env_flag("SUHI_USE_TOOLBOX"),
        )
        _validate(config)
        return config


def parse_catalog_params(raw: str) -> dict[str, str]:
    """Parse ``"a=1,b=2"`` into ``{"a": "1", "b": "2"}``.

    Raises:
        ConfigValidationError: If a pair has no ``=`` or an empty key.
    """
    params: dict[str, str] = {}
    for pair in filter(None, (p.strip() for p in raw.split(","))):
        key, sep, value = pair.partition("=")
        if not sep or not key.strip():
            raise ConfigValidationError("SUHI_CATALOG_PARAMS", raw, "must be key=value pairs separated by commas")
        params[key.strip()] = value.strip()
    return params


def _env_flag(key: str) -> bool:
    return os.getenv(key, "").strip().lower() in {"1", "true", "yes", "on"}


def _validate(config: PipelineConfig) -> None:
    """Validate configuration ranges.  Raises ``ConfigValidationError``."""
    for key, value in (("SUHI_START_DATE", config.start_date), ("SUHI_END_DATE", config.end_date)):
        try:
            date.fromisoformat(value)
        except ValueError:
            raise ConfigValidationError(key, value, "must be an ISO date (YYYY-MM-DD)") from None

    if config.start > config.end:
        raise ConfigValidationError(
            "SUHI_START_DATE",
            config.start_date,
            f"must be <= SUHI_END_DATE ({config.end_date})",
        )

    for key, value in (("SUHI_DOY_FIRST", config.doy_first), ("SUHI_DOY_LAST", config.doy_last)):
        if not 1 <= value <= 366:
            raise ConfigValidationError(key, value, "must be between 1 and 366 (day of year)")

    if config.doy_first > config.doy_last:
        raise ConfigValidationError(
            "SUHI_DOY_FIRST",
            config.doy_first,
            f"must be <= SUHI_DOY_LAST ({config.doy_last})",
        )

    if not 0.0 <= config.cloud_score_threshold <= 100.0:
        raise ConfigValidationError(
            "SUHI_CLOUD_SCORE_THRESHOLD",
            config.cloud_score_threshold,
            "must be between 0 and 100 (cloud score)",
        )

    positive = (
        ("SUHI_FIXED_BUFFER_M", config.fixed_buffer_m, "metres"),
        ("SUHI_BUFFER_STEP_M", config.buffer_step_m, "metres"),
        ("SUHI_BUFFER_COUNT", config.buffer_count, "candidates"),
        ("SUHI_MODIS_SCALE_M", config.modis_scale_m, "metres"),
        ("SUHI_LANDSAT_SCALE_M", config.landsat_scale_m, "metres"),
        ("SUHI_MAX_PIXELS", config.max_pixels, "pixels"),
        ("SUHI_MAX_WORKERS", config.max_workers, "threads"),
    )
    for key, value, unit in positive:
        if value <= 0:
            raise ConfigValidationError(key, value, f"must be > 0 ({unit})")

    parse_catalog_params(config.catalog_params)

    if config.rural_fallback not in _RURAL_FALLBACKS:
        raise ConfigValidationError(
            "SUHI_RURAL_FALLBACK",
            config.rural_fallback,
            f"must be one of {', '.join(_RURAL_FALLBACKS)}",
        )

    for key, value in (
        ("SUHI_WORK_CRS", config.work_crs),
        ("SUHI_CATALOG", config.catalog),
        ("SUHI_OUTPUT_DIR", config.output_dir),
    ):
        if not value:
            raise ConfigValidationError(key, value, "must not be empty")
