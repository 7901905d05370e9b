"""Scene catalog adapters.

Implements the catalog-agnostic adapter pattern (Strategy pattern):
- SceneCatalog: Abstract base class defining the interface
- LocalCatalog: Directory of downloaded GeoTIFF scenes
- PlanetaryComputerCatalog: Microsoft Planetary Computer (STAC)

The active catalog is selected via configuration.
"""

from suhi_pipeline.providers.base import (
    CatalogError,
    CatalogReadError,
    CatalogSearchError,
    SceneCatalog,
)
from suhi_pipeline.providers.factory import (
    LOCAL,
    PLANETARY_COMPUTER,
    get_catalog,
    list_catalogs,
    register_catalog,
)

__all__ = [
    "LOCAL",
    "PLANETARY_COMPUTER",
    "CatalogError",
    "CatalogReadError",
    "CatalogSearchError",
    "SceneCatalog",
    "get_catalog",
    "list_catalogs",
    "register_catalog",
]
