"""Typed models for the scene catalog layer.

- ``CatalogConfig``: Configuration for a specific scene catalog.
- ``BandSource``: How a logical band is read from a catalog asset.

Design notes:
- All models are frozen dataclasses for immutability.
- Logical collection and band names (see ``core.constants``) are the
  only identifiers the estimators see; each catalog maps them onto its
  own assets.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from suhi_pipeline.models.raster import ModelValidationError


@dataclass(frozen=True, slots=True)
class CatalogConfig:
    """Configuration for a specific scene catalog.

    Attributes:
        name: Catalog identifier (must match the factory registry key).
        root: Root directory (local catalog) or API base URL (STAC catalogs).
        extra_params: Catalog-specific configuration parameters.
    """

    name: str
    root: str = ""
    extra_params: dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.name or not self.name.strip():
            raise ModelValidationError("CatalogConfig", "name", self.name, "must be non-empty")


@dataclass(frozen=True, slots=True)
class BandSource:
    """Mapping of a logical band onto a catalog asset.

    Attributes:
        asset: Asset key (STAC) or band description (GeoTIFF).
        scale: Multiplicative factor applied after reading.
        offset: Additive offset applied after scaling.
        categorical: Read with nearest-neighbour resampling (class codes, QA bits).
    """

    asset: str
    scale: float = 1.0
    offset: float = 0.0
    categorical: bool = False
