"""Microsoft Planetary Computer catalog (STAC API).

Concrete ``SceneCatalog`` implementation using the Planetary Computer
STAC API.  Items are searched with ``pystac-client``, asset hrefs are
signed with ``planetary_computer.sign_inplace``, and every band is read
as a windowed COG read warped straight onto the requested grid.

Logical collections are mapped onto STAC collections and assets in
``_COLLECTIONS``.

Landsat top-of-atmosphere thermal data has no default mapping.  The
hosted Collection 2 Level-2 ``lwir11`` asset is surface temperature,
already emissivity-corrected, so feeding it to the physical or toolbox
estimators would apply emissivity twice.  With the defaults this catalog
serves the MODIS composite path only.  To run the Landsat estimators set
``extra_params["landsat_toa_collection"]`` to a STAC collection whose
thermal asset (``landsat_toa_thermal_asset``, default ``lwir11``) holds
at-sensor brightness temperature in kelvin after the optional
``landsat_toa_thermal_scale`` / ``landsat_toa_thermal_offset``.  The
cloud score is derived from its ``qa_pixel`` cloud / dilated-cloud /
shadow bits (100 when any is set, 0 otherwise).

Land cover has no default mapping either: set
``extra_params["landcover_collection"]`` and
``extra_params["landcover_asset"]`` to a STAC product coded with the
NLCD legend.

Configuration:
    The STAC catalogue URL defaults to
    ``https://planetarycomputer.microsoft.com/api/stac/v1``.
    Override via ``CatalogConfig.root`` if needed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import numpy as np
import planetary_computer
import pystac_client
from rasterio.warp import transform_bounds

from suhi_pipeline.core import constants
from suhi_pipeline.models.catalog import BandSource
from suhi_pipeline.models.collection import Collection, Scene
from suhi_pipeline.models.raster import Raster
from suhi_pipeline.providers.base import CatalogReadError, CatalogSearchError, SceneCatalog
from suhi_pipeline.utils.raster_io import RasterReadError, read_band

if TYPE_CHECKING:
    from collections.abc import Sequence
    from datetime import date

    import pystac

    from suhi_pipeline.models.catalog import CatalogConfig
    from suhi_pipeline.models.raster import GridSpec

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_DEFAULT_STAC_URL = "https://planetarycomputer.microsoft.com/api/stac/v1"

_MAX_ITEMS = 500

# qa_pixel bits: 1 dilated cloud, 3 cloud, 4 cloud shadow
_QA_CLOUD_BITS = (1 << 1) | (1 << 3) | (1 << 4)
_QA_ASSET = "qa_pixel"

_LANDSAT_SR_SCALE = 0.0000275
_LANDSAT_SR_OFFSET = -0.2


@dataclass(frozen=True, slots=True)
class _StacCollection:
    stac_id: str
    bands: dict[str, BandSource]
    query: dict[str, Any] = field(default_factory=dict)


_COLLECTIONS: dict[str, _StacCollection] = {
    constants.MODIS_LST_COLLECTION: _StacCollection(
        stac_id="modis-11A2-061",
        bands={constants.MODIS_LST_BAND: BandSource("LST_Day_1km")},
    ),
    constants.LANDSAT_SR_COLLECTION: _StacCollection(
        stac_id="landsat-c2-l2",
        bands={
            constants.RED_BAND: BandSource("red", _LANDSAT_SR_SCALE, _LANDSAT_SR_OFFSET),
            constants.NIR_BAND: BandSource("nir08", _LANDSAT_SR_SCALE, _LANDSAT_SR_OFFSET),
        },
        query={"platform": {"in": ["landsat-8", "landsat-9"]}},
    ),
    constants.WATER_COLLECTION: _StacCollection(
        stac_id="jrc-gsw",
        bands={constants.WATER_OCCURRENCE_BAND: BandSource("occurrence", categorical=True)},
    ),
}


class PlanetaryComputerCatalog(SceneCatalog):
    """Planetary Computer STAC catalog.

    Uses ``pystac-client`` for catalogue search and ``rasterio`` for
    windowed reads of the signed Cloud-Optimised GeoTIFF assets.
    """

    def __init__(self, config: CatalogConfig) -> None:
        super().__init__(config)
        self._stac_url = config.root or _DEFAULT_STAC_URL
        self._collections = dict(_COLLECTIONS)
        toa_id = config.extra_params.get("landsat_toa_collection", "")
        if toa_id:
            thermal = BandSource(
                config.extra_params.get("landsat_toa_thermal_asset", "lwir11"),
                float(config.extra_params.get("landsat_toa_thermal_scale", "1.0")),
                float(config.extra_params.get("landsat_toa_thermal_offset", "0.0")),
            )
            self._collections[constants.LANDSAT_TOA_COLLECTION] = _StacCollection(
                stac_id=toa_id,
                bands={
                    constants.THERMAL_BAND: thermal,
                    constants.CLOUD_SCORE_BAND: BandSource(_QA_ASSET, categorical=True),
                },
            )
        landcover_id = config.extra_params.get("landcover_collection", "")
        if landcover_id:
            asset = config.extra_params.get("landcover_asset", "landcover")
            self._collections[constants.LANDCOVER_COLLECTION] = _StacCollection(
                stac_id=landcover_id,
                bands={constants.LANDCOVER_BAND: BandSource(asset, categorical=True)},
            )

    # ------------------------------------------------------------------
    # collection
    # ------------------------------------------------------------------

    def collection(
        self,
        collection_id: str,
        bands: Sequence[str],
        grid: GridSpec,
        start: date,
        end: date,
    ) -> Collection:
        """Search and read every item of *collection_id* within ``[start, end]``.

        Raises:
            CatalogSearchError: On unknown collections or STAC API errors.
            CatalogReadError: If an asset cannot be read.
        """
        mapping = self._mapping(collection_id)
        date_range = f"{start.isoformat()}/{end.isoformat()}"
        items = self._search(mapping, grid, datetime=date_range)

        scenes: list[Scene] = []
        for item in items:
            if item.datetime is None:
                logger.warning("Skipping STAC item without datetime: %s", item.id)
                continue
            scene_bands = {band: self._read(item, mapping, band, grid) for band in bands}
            scenes.append(Scene(acquired=item.datetime, bands=scene_bands, scene_id=item.id))

        logger.info(
            "Planetary Computer collection loaded | collection=%s | stac=%s | scenes=%d | range=%s",
            collection_id,
            mapping.stac_id,
            len(scenes),
            date_range,
        )
        return Collection(collection_id, tuple(scenes))

    # ------------------------------------------------------------------
    # image
    # ------------------------------------------------------------------

    def image(self, collection_id: str, band: str, grid: GridSpec) -> Raster:
        """Mosaic every item of *collection_id* that intersects *grid*.

        Raises:
            CatalogSearchError: On unknown collections, STAC errors or no items.
            CatalogReadError: If an asset cannot be read.
        """
        mapping = self._mapping(collection_id)
        items = self._search(mapping, grid)
        if not items:
            msg = f"No STAC items in {mapping.stac_id} intersect the requested grid"
            raise CatalogSearchError(catalog=self.name, message=msg)

        mosaic = self._read(items[0], mapping, band, grid)
        for item in items[1:]:
            tile = self._read(item, mapping, band, grid)
            values = np.where(mosaic.valid, mosaic.values, tile.values)
            mosaic = Raster(values=values, valid=mosaic.valid | tile.valid, grid=grid, name=band)
        return mosaic

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _mapping(self, collection_id: str) -> _StacCollection:
        mapping = self._collections.get(collection_id)
        if mapping is None and collection_id == constants.LANDSAT_TOA_COLLECTION:
            msg = (
                "Landsat TOA brightness temperature is not mapped; the hosted Level-2 lwir11 asset is "
                "surface temperature. Set extra_params['landsat_toa_collection'] or use the composite estimator"
            )
            raise CatalogSearchError(catalog=self.name, message=msg)
        if mapping is None:
            available = ", ".join(sorted(self._collections))
            msg = f"Collection {collection_id!r} is not mapped to a STAC collection. Available: {available}"
            raise CatalogSearchError(catalog=self.name, message=msg)
        return mapping

    def _search(
        self,
        mapping: _StacCollection,
        grid: GridSpec,
        *,
        datetime: str | None = None,
    ) -> list[pystac.Item]:
        bbox = transform_bounds(grid.crs, "EPSG:4326", *grid.bounds)
        try:
            catalogue = pystac_client.Client.open(
                self._stac_url,
                modifier=planetary_computer.sign_inplace,
            )
            search = catalogue.search(
                collections=[mapping.stac_id],
                bbox=bbox,
                datetime=datetime,
                query=mapping.query or None,
                max_items=_MAX_ITEMS,
            )
            items = list(search.items())
        except Exception as exc:
            msg = f"STAC search failed for {mapping.stac_id}: {exc}"
            raise CatalogSearchError(catalog=self.name, message=msg, retryable=True) from exc

        logger.debug("STAC search | collection=%s | bbox=%s | items=%d", mapping.stac_id, bbox, len(items))
        return items

    def _read(self, item: pystac.Item, mapping: _StacCollection, band: str, grid: GridSpec) -> Raster:
        source = mapping.bands.get(band)
        if source is None:
            msg = f"Band {band!r} is not mapped for STAC collection {mapping.stac_id}"
            raise CatalogSearchError(catalog=self.name, message=msg)

        asset = item.assets.get(source.asset)
        if asset is None:
            msg = f"STAC item {item.id} has no asset {source.asset!r}"
            raise CatalogReadError(catalog=self.name, message=msg)

        try:
            raster = read_band(
                asset.href,
                1,
                grid,
                scale=source.scale,
                offset=source.offset,
                categorical=source.categorical,
                name=band,
            )
        except RasterReadError as exc:
            raise CatalogReadError(catalog=self.name, message=exc.message, retryable=True) from exc

        if source.asset == _QA_ASSET:
            return qa_to_cloud_score(raster).rename(band)
        return raster


def qa_to_cloud_score(qa: Raster) -> Raster:
    """Convert Landsat ``qa_pixel`` flags into a 0/100 cloud score."""
    return qa.map(lambda v: np.where((np.nan_to_num(v).astype(np.int64) & _QA_CLOUD_BITS) != 0, 100.0, 0.0))
