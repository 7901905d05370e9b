"""Shared pipeline constants: single source of truth.

Centralises collection identifiers, band names, land-cover class codes,
unit conversions and model coefficients that are shared between the
estimators, the reducer and the orchestrator.
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Logical collection identifiers (mapped to real catalogs by each provider)
# ---------------------------------------------------------------------------

MODIS_LST_COLLECTION: str = "modis-lst-8day"
"""8-day composite daytime LST product (MOD11A2-style, scaled Kelvin x 50)."""

MODIS_LST_BAND: str = "LST_Day_1km"

LANDSAT_TOA_COLLECTION: str = "landsat-toa"
"""Top-of-atmosphere thermal scenes carrying brightness temperature (K)."""

LANDSAT_SR_COLLECTION: str = "landsat-sr"
"""Surface-reflectance scenes used for NDVI."""

THERMAL_BAND: str = "B10"
CLOUD_SCORE_BAND: str = "cloud_score"
RED_BAND: str = "red"
NIR_BAND: str = "nir"

LANDCOVER_COLLECTION: str = "nlcd"
LANDCOVER_BAND: str = "landcover"

WATER_COLLECTION: str = "gsw"
WATER_OCCURRENCE_BAND: str = "occurrence"

TOOLBOX_LST_BAND: str = "LST"
"""Band produced by an LST toolbox collection (Kelvin)."""

# ---------------------------------------------------------------------------
# Land-cover legend (NLCD class codes)
# ---------------------------------------------------------------------------

URBAN_CLASSES: frozenset[int] = frozenset({23, 24})
"""Developed, medium and high intensity."""

NON_URBAN_CLASSES: frozenset[int] = frozenset({41, 42, 43, 51, 52, 71, 72, 73, 74, 81, 82})
"""Forest, shrub, grassland and cultivated categories."""

# ---------------------------------------------------------------------------
# Units and scale factors
# ---------------------------------------------------------------------------

KELVIN_OFFSET: float = 273.15
MODIS_LST_SCALE: float = 0.02

MODIS_SCALE_M: float = 1000.0
LANDSAT_SCALE_M: float = 30.0
NDVI_MINMAX_SCALE_M: float = 30.0

DEFAULT_MAX_PIXELS: int = 1_000_000_000

# ---------------------------------------------------------------------------
# Temporal window (June 1 - Aug 31 proxy)
# ---------------------------------------------------------------------------

DEFAULT_START_DATE: str = "2015-01-01"
DEFAULT_END_DATE: str = "2020-12-31"
SUMMER_DOY_FIRST: int = 152
SUMMER_DOY_LAST: int = 243

# ---------------------------------------------------------------------------
# Physical LST model
# ---------------------------------------------------------------------------

CLOUD_SCORE_THRESHOLD: float = 10.0
"""Pixels with a cloud score above this (0-100 scale) are masked."""

EMISSIVITY_SLOPE: float = 0.004
EMISSIVITY_INTERCEPT: float = 0.986

EMITTED_WAVELENGTH: float = 0.001145
"""Effective band wavelength term of the Planck inversion."""

PLANCK_RHO: float = 1.438
"""h*c/sigma term of the Planck inversion."""

# ---------------------------------------------------------------------------
# Reference geometry
# ---------------------------------------------------------------------------

FIXED_BUFFER_M: float = 2000.0
BUFFER_SEARCH_STEP_M: float = 30.0
BUFFER_SEARCH_COUNT: int = 100

# ---------------------------------------------------------------------------
# Export
# ---------------------------------------------------------------------------

EXPORT_NODATA: float = -9999.0

DEFAULT_WORK_CRS: str = "EPSG:32618"
"""UTM zone 18N, metric CRS covering New York City."""
