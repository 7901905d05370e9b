"""Region & mask provider activity.

Supplies the area of interest (AOI) polygon, the analysis region that
covers the AOI and its rural references, the water mask and the
land-cover classification masks.

The AOI is read with ``fiona`` from any OGR vector source, dissolved to
a single (multi)polygon and projected to a metric work CRS with
``pyproj``; buffer arithmetic is never done in degrees.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from pathlib import Path
from typing import TYPE_CHECKING

import fiona
import numpy as np
from fiona.errors import FionaError
from pyproj import CRS, Transformer
from shapely.geometry import MultiPolygon, Polygon, shape
from shapely.ops import transform, unary_union

from suhi_pipeline.core import constants
from suhi_pipeline.core.exceptions import InvalidGeometry, PipelineError
from suhi_pipeline.models.feature import Feature
from suhi_pipeline.models.raster import GridSpec, Mask

if TYPE_CHECKING:
    from shapely.geometry.base import BaseGeometry

    from suhi_pipeline.models.raster import Raster
    from suhi_pipeline.providers.base import SceneCatalog

logger = logging.getLogger("suhi_pipeline.activities.region")

AUTO_CRS = "auto"


class AoiReadError(PipelineError):
    """Raised when the AOI vector source cannot be read."""

    default_stage = "load_aoi"
    default_code = "AOI_READ_FAILED"


# ---------------------------------------------------------------------------
# AOI
# ---------------------------------------------------------------------------


def load_aoi(
    path: str | Path,
    *,
    work_crs: str = constants.DEFAULT_WORK_CRS,
    name: str = "",
) -> Feature:
    """Read a vector file and return its dissolved polygon in *work_crs*.

    Args:
        path: Any vector source readable by fiona (GeoJSON, Shapefile, GPKG).
        work_crs: Target metric CRS, or ``"auto"`` for the UTM zone of the
            AOI centroid.
        name: Feature name; defaults to the file stem.

    Raises:
        AoiReadError: If the source cannot be opened.
        InvalidGeometry: If the source holds no polygonal, valid geometry.
    """
    try:
        with fiona.open(path) as src:
            source_crs = CRS.from_user_input(src.crs_wkt) if src.crs_wkt else CRS.from_epsg(4326)
            geometries = [shape(record["geometry"]) for record in src if record["geometry"] is not None]
    except (OSError, FionaError) as exc:
        msg = f"Failed to read AOI from {path}: {exc}"
        raise AoiReadError(msg) from exc

    dissolved = unary_union([g for g in geometries if isinstance(g, (Polygon, MultiPolygon))])
    if dissolved.is_empty:
        msg = f"No polygon geometry found in {path}"
        raise InvalidGeometry(msg, stage="load_aoi")

    if work_crs == AUTO_CRS:
        to_wgs = Transformer.from_crs(source_crs, "EPSG:4326", always_xy=True)
        centroid = transform(to_wgs.transform, dissolved).centroid
        work_crs = utm_crs_for(centroid.x, centroid.y)

    to_work = Transformer.from_crs(source_crs, work_crs, always_xy=True)
    projected = transform(to_work.transform, dissolved)
    feature_name = name or Path(path).stem
    require_valid(projected, f"AOI '{feature_name}'")

    logger.info(
        "AOI loaded | feature=%s | parts=%d | area=%.1f km2 | crs=%s | source=%s",
        feature_name,
        len(geometries),
        projected.area / 1e6,
        work_crs,
        path,
    )
    return Feature(name=feature_name, geometry=projected, crs=work_crs)


def utm_crs_for(lon: float, lat: float) -> str:
    """Determine the UTM CRS for a given WGS 84 coordinate.

    Returns an EPSG code like ``"EPSG:32618"`` (UTM zone 18N).
    """
    zone_number = int((lon + 180) / 6) + 1
    zone_number = max(1, min(60, zone_number))
    if lat >= 0:
        return f"EPSG:{32600 + zone_number}"
    return f"EPSG:{32700 + zone_number}"


def require_valid(geometry: BaseGeometry, context: str) -> None:
    """Raise ``InvalidGeometry`` unless *geometry* is a valid, non-empty polygon."""
    if geometry.is_empty:
        msg = f"{context}: geometry is empty"
        raise InvalidGeometry(msg)
    if not isinstance(geometry, (Polygon, MultiPolygon)):
        msg = f"{context}: expected a polygon, got {geometry.geom_type}"
        raise InvalidGeometry(msg)
    if not geometry.is_valid:
        msg = f"{context}: geometry is not valid (self-intersecting or malformed)"
        raise InvalidGeometry(msg)


def analysis_region(aoi: Feature, margin_m: float) -> Feature:
    """Return the AOI grown by *margin_m*: the extent every raster is clipped to.

    Rural references lie outside the AOI, so rasters are clipped to this
    region rather than the bare AOI.
    """
    if margin_m <= 0:
        msg = f"Analysis region margin must be > 0, got {margin_m}"
        raise InvalidGeometry(msg, stage="analysis_region", feature=aoi.name)
    region = aoi.geometry.buffer(margin_m)
    require_valid(region, f"analysis region of '{aoi.name}'")
    return Feature(name=f"{aoi.name} region", geometry=region, crs=aoi.crs)


def grid_for(feature: Feature, scale: float) -> GridSpec:
    """North-up grid covering *feature* with pixels of *scale* metres."""
    return GridSpec.from_bounds(feature.geometry.bounds, scale, feature.crs)


# ---------------------------------------------------------------------------
# Masks
# ---------------------------------------------------------------------------


def water_mask(occurrence: Raster) -> Mask:
    """Keep pixels with no recorded water occurrence.

    Any non-zero occurrence excludes the pixel, independent of any
    occurrence threshold.  Pixels where occurrence is missing are kept.
    """
    water = occurrence.valid & (np.nan_to_num(occurrence.values) > 0)
    return Mask(values=~water, grid=occurrence.grid, name="water")


def class_mask(landcover: Raster, classes: Iterable[int], name: str = "") -> Mask:
    """Keep pixels whose land-cover code is in *classes*."""
    codes = np.array(sorted(classes), dtype=np.float64)
    return Mask.from_raster(landcover, lambda v: np.isin(v, codes), name=name)


def urban_mask(landcover: Raster) -> Mask:
    """Developed, medium/high intensity pixels."""
    return class_mask(landcover, constants.URBAN_CLASSES, name="urban")


def non_urban_mask(landcover: Raster) -> Mask:
    """Forest, shrub, grassland and cultivated pixels."""
    return class_mask(landcover, constants.NON_URBAN_CLASSES, name="non_urban")


class RegionProvider:
    """Loads the static land-cover and water-occurrence rasters from a catalog."""

    def __init__(self, catalog: SceneCatalog) -> None:
        self._catalog = catalog

    def landcover(self, grid: GridSpec) -> Raster:
        raster = self._catalog.image(constants.LANDCOVER_COLLECTION, constants.LANDCOVER_BAND, grid)
        logger.info("Land cover loaded | valid=%d | catalog=%s", raster.valid_count, self._catalog.name)
        return raster

    def water_occurrence(self, grid: GridSpec) -> Raster:
        raster = self._catalog.image(constants.WATER_COLLECTION, constants.WATER_OCCURRENCE_BAND, grid)
        logger.info("Water occurrence loaded | valid=%d | catalog=%s", raster.valid_count, self._catalog.name)
        return raster
