"""SceneCatalog abstract base class.

Defines the contract every scene catalog adapter must implement.  The
estimators and the region provider interact exclusively with this
interface; they never know which concrete catalog is behind it.

Contract:
    ``collection(collection_id, bands, grid, start, end)``: timestamped
        scenes whose requested bands are warped onto ``grid``.
    ``image(collection_id, band, grid)``: a single static raster
        (land cover, water occurrence) warped onto ``grid``.

Each concrete adapter (``LocalCatalog``, ``PlanetaryComputerCatalog``)
implements these methods per the catalog's storage specifics.
"""

from __future__ import annotations

import abc
from typing import TYPE_CHECKING

from suhi_pipeline.core.exceptions import PipelineError

if TYPE_CHECKING:
    from collections.abc import Sequence
    from datetime import date

    from suhi_pipeline.models.catalog import CatalogConfig
    from suhi_pipeline.models.collection import Collection
    from suhi_pipeline.models.raster import GridSpec, Raster


class SceneCatalog(abc.ABC):
    """Abstract base class for scene catalog adapters.

    Example usage::

        catalog = get_catalog("local", CatalogConfig(name="local", root="data"))
        scenes = catalog.collection("modis-lst-8day", ["LST_Day_1km"], grid, start, end)
        landcover = catalog.image("nlcd", "landcover", grid)
    """

    def __init__(self, config: CatalogConfig) -> None:
        self._config = config

    @property
    def name(self) -> str:
        """Return the catalog name from configuration."""
        return self._config.name

    @property
    def config(self) -> CatalogConfig:
        """Return the catalog configuration (read-only)."""
        return self._config

    # ------------------------------------------------------------------
    # Abstract methods: every adapter must implement these
    # ------------------------------------------------------------------

    @abc.abstractmethod
    def collection(
        self,
        collection_id: str,
        bands: Sequence[str],
        grid: GridSpec,
        start: date,
        end: date,
    ) -> Collection:
        """Return scenes of *collection_id* acquired within ``[start, end]``.

        Args:
            collection_id: Logical collection identifier.
            bands: Logical band names to load for every scene.
            grid: Target grid every band is warped onto.
            start: First acquisition date (inclusive).
            end: Last acquisition date (inclusive).

        Returns:
            A ``Collection``, possibly empty.

        Raises:
            CatalogError: On unknown collections or read failures.
        """

    @abc.abstractmethod
    def image(self, collection_id: str, band: str, grid: GridSpec) -> Raster:
        """Return a single static raster of *collection_id* on *grid*.

        Raises:
            CatalogError: On unknown collections or read failures.
        """


# ---------------------------------------------------------------------------
# Catalog exceptions
# ---------------------------------------------------------------------------


class CatalogError(PipelineError):
    """Base exception for catalog adapter errors.

    Attributes:
        catalog: Name of the catalog that raised the error.
        message: Human-readable error description.
        retryable: Whether the caller should retry the operation.
    """

    default_stage = "catalog"
    default_code = "CATALOG_ERROR"

    def __init__(
        self,
        catalog: str,
        message: str,
        *,
        retryable: bool = False,
    ) -> None:
        self.catalog = catalog
        super().__init__(message, retryable=retryable)

    def __str__(self) -> str:
        return f"[{self.catalog}] {self.message}"


class CatalogSearchError(CatalogError):
    """Unknown collection or failed scene search."""

    default_code = "CATALOG_SEARCH_FAILED"


class CatalogReadError(CatalogError):
    """Failed to read a scene or image."""

    default_code = "CATALOG_READ_FAILED"
