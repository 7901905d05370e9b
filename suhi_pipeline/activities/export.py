"""Export activity: materialise rasters, features and run metadata.

Artefacts:
- one GeoTIFF per LST / S-UHI raster (float32, masked pixels = -9999),
- one GeoJSON FeatureCollection per reference-geometry set, each
  feature carrying its numeric summary properties,
- one run metadata JSON document.

Writes are idempotent: existing files at the same path are overwritten.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

import fiona
import numpy as np
import rasterio
from fiona.errors import FionaError
from rasterio.errors import RasterioError
from shapely.geometry import MultiPolygon, Polygon, mapping

from suhi_pipeline.core import constants
from suhi_pipeline.core.exceptions import PipelineError

if TYPE_CHECKING:
    from collections.abc import Sequence

    from suhi_pipeline.models.feature import Feature
    from suhi_pipeline.models.metadata import SuhiRunRecord
    from suhi_pipeline.models.raster import Raster

logger = logging.getLogger("suhi_pipeline.activities.export")

GEOJSON_DRIVER = "GeoJSON"
GTIFF_DRIVER = "GTiff"


class ExportError(PipelineError):
    """Raised when an artefact cannot be written."""

    default_stage = "export"
    default_code = "EXPORT_FAILED"


def write_geotiff(raster: Raster, path: str | Path, *, nodata: float = constants.EXPORT_NODATA) -> Path:
    """Write *raster* as a single-band float32 GeoTIFF.

    Invalid pixels are written as *nodata* and declared as such.

    Raises:
        ExportError: If the file cannot be written.
    """
    target = Path(path)
    grid = raster.grid
    data = raster.filled(nodata).astype(np.float32)

    profile = {
        "driver": GTIFF_DRIVER,
        "height": grid.height,
        "width": grid.width,
        "count": 1,
        "dtype": "float32",
        "crs": grid.crs,
        "transform": grid.transform,
        "nodata": nodata,
        "compress": "deflate",
    }
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        with rasterio.open(target, "w", **profile) as dst:
            dst.write(data, 1)
            if raster.name:
                dst.set_band_description(1, raster.name)
    except (OSError, RasterioError) as exc:
        msg = f"Failed to write GeoTIFF {target}: {exc}"
        raise ExportError(msg) from exc

    logger.info(
        "GeoTIFF written | raster=%s | path=%s | valid=%d/%d",
        raster.name or "unnamed",
        target,
        raster.valid_count,
        data.size,
    )
    return target


def write_features(features: Sequence[Feature], path: str | Path) -> Path:
    """Write *features* as a GeoJSON FeatureCollection.

    Polygons are promoted to MultiPolygons when the set mixes both.
    Numeric properties are written as floats, everything else as strings.

    Raises:
        ExportError: If *features* is empty or the file cannot be written.
    """
    if not features:
        msg = f"No features to write to {path}"
        raise ExportError(msg)

    target = Path(path)
    multi = any(isinstance(f.geometry, MultiPolygon) for f in features)
    schema = {
        "geometry": "MultiPolygon" if multi else "Polygon",
        "properties": _property_schema(features),
    }

    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        with fiona.open(target, "w", driver=GEOJSON_DRIVER, schema=schema, crs=features[0].crs) as dst:
            for feature in features:
                geometry = feature.geometry
                if multi and isinstance(geometry, Polygon):
                    geometry = MultiPolygon([geometry])
                dst.write(
                    {
                        "geometry": mapping(geometry),
                        "properties": _record_properties(feature, schema["properties"]),
                    }
                )
    except (OSError, FionaError) as exc:
        msg = f"Failed to write features to {target}: {exc}"
        raise ExportError(msg) from exc

    logger.info("Features written | count=%d | path=%s", len(features), target)
    return target


def write_metadata(record: SuhiRunRecord, path: str | Path) -> Path:
    """Write the run metadata JSON document.

    Raises:
        ExportError: If the file cannot be written.
    """
    target = Path(path)
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(record.to_json(), encoding="utf-8")
    except OSError as exc:
        msg = f"Failed to write metadata to {target}: {exc}"
        raise ExportError(msg) from exc

    logger.info(
        "Metadata written | feature=%s | path=%s | status=%s",
        record.feature_name,
        target,
        record.processing.status,
    )
    return target


def _property_schema(features: Sequence[Feature]) -> dict[str, str]:
    schema: dict[str, str] = {"name": "str"}
    for feature in features:
        for key, value in feature.properties.items():
            numeric = isinstance(value, (int, float, np.number)) and not isinstance(value, bool)
            kind = "float" if numeric else "str"
            # a key seen as both numeric and text is written as text
            schema[key] = "str" if schema.get(key, kind) != kind else kind
    return schema


def _record_properties(feature: Feature, schema: dict[str, str]) -> dict[str, object]:
    properties: dict[str, object] = {"name": feature.name}
    for key, kind in schema.items():
        if key == "name":
            continue
        value = feature.properties.get(key)
        if value is None:
            properties[key] = None
        elif kind == "float":
            properties[key] = float(value)
        else:
            properties[key] = str(value)
    return properties
