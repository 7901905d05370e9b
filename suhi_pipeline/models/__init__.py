"""Domain models: rasters, masks, collections, features and statistics."""

from suhi_pipeline.models.catalog import BandSource, CatalogConfig
from suhi_pipeline.models.collection import Collection, Reducer, Scene
from suhi_pipeline.models.feature import Feature
from suhi_pipeline.models.raster import GridSpec, Mask, ModelValidationError, Raster
from suhi_pipeline.models.statistics import MinMax, ZonalStatistic

__all__ = [
    "BandSource",
    "CatalogConfig",
    "Collection",
    "Feature",
    "GridSpec",
    "Mask",
    "MinMax",
    "ModelValidationError",
    "Raster",
    "Reducer",
    "Scene",
    "ZonalStatistic",
]
