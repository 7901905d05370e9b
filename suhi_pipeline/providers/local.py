"""Local GeoTIFF catalog.

Serves collections from a directory tree of downloaded scenes::

    <root>/
        modis-lst-8day/2019-07-04.tif
        modis-lst-8day/2019-07-12.tif
        landsat-toa/LC08_014032_2019-07-08.tif   (bands described "B10", "cloud_score")
        landsat-sr/LC08_014032_2019-07-08.tif    (bands described "red", "nir")
        nlcd.tif                                  (static image)
        gsw/occurrence_70W_40N.tif                (static image, tiles are mosaicked)

Scene dates are parsed from the first ``YYYY-MM-DD`` or ``YYYYMMDD``
token in the file stem.  Bands are matched against the GeoTIFF band
descriptions; single-band files serve any band name.  Values are read
as stored; scale factors belong to the estimators.
"""

from __future__ import annotations

import logging
import re
from datetime import date
from pathlib import Path
from typing import TYPE_CHECKING

import numpy as np

from suhi_pipeline.core import constants
from suhi_pipeline.models.collection import Collection, Scene
from suhi_pipeline.models.raster import Raster
from suhi_pipeline.providers.base import CatalogReadError, CatalogSearchError, SceneCatalog
from suhi_pipeline.utils.raster_io import RasterReadError, read_band

if TYPE_CHECKING:
    from collections.abc import Sequence

    from suhi_pipeline.models.catalog import CatalogConfig
    from suhi_pipeline.models.raster import GridSpec

logger = logging.getLogger(__name__)

_DATE_PATTERN = re.compile(r"(\d{4})-?(\d{2})-?(\d{2})")
_RASTER_SUFFIXES = (".tif", ".tiff")

#: Logical bands holding class codes, flags or occurrence (nearest-neighbour reads).
_CATEGORICAL_BANDS = frozenset(
    {constants.LANDCOVER_BAND, constants.CLOUD_SCORE_BAND, constants.WATER_OCCURRENCE_BAND}
)


class LocalCatalog(SceneCatalog):
    """Directory-backed scene catalog."""

    def __init__(self, config: CatalogConfig) -> None:
        super().__init__(config)
        self._root = Path(config.root or ".")

    @property
    def root(self) -> Path:
        return self._root

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
        """Load every dated scene of *collection_id* within ``[start, end]``.

        Raises:
            CatalogSearchError: If the collection directory does not exist.
            CatalogReadError: If a scene cannot be read.
        """
        directory = self._root / collection_id
        if not directory.is_dir():
            msg = f"Collection directory not found: {directory}"
            raise CatalogSearchError(catalog=self.name, message=msg)

        scenes: list[Scene] = []
        for path in _raster_files(directory):
            acquired = parse_scene_date(path.stem)
            if acquired is None:
                logger.warning("Skipping undated scene file | collection=%s | file=%s", collection_id, path.name)
                continue
            if not start <= acquired <= end:
                continue
            scene_bands = {band: self._read(path, band, grid) for band in bands}
            scenes.append(Scene(acquired=acquired, bands=scene_bands, scene_id=path.stem))

        logger.info(
            "Local collection loaded | collection=%s | scenes=%d | range=%s/%s",
            collection_id,
            len(scenes),
            start.isoformat(),
            end.isoformat(),
        )
        return Collection(collection_id, tuple(scenes))

    # ------------------------------------------------------------------
    # image
    # ------------------------------------------------------------------

    def image(self, collection_id: str, band: str, grid: GridSpec) -> Raster:
        """Load a static image, mosaicking tiles in file-name order.

        ``<root>/<collection_id>.tif`` is used when present; otherwise every
        raster in ``<root>/<collection_id>/`` is mosaicked, earlier files
        taking precedence where tiles overlap.

        Raises:
            CatalogSearchError: If no file backs the collection.
            CatalogReadError: If a tile cannot be read.
        """
        single = next(
            (self._root / f"{collection_id}{suffix}" for suffix in _RASTER_SUFFIXES
             if (self._root / f"{collection_id}{suffix}").is_file()),
            None,
        )
        paths = [single] if single is not None else _raster_files(self._root / collection_id)
        if not paths:
            msg = f"No raster found for image collection {collection_id!r} under {self._root}"
            raise CatalogSearchError(catalog=self.name, message=msg)

        mosaic = self._read(paths[0], band, grid)
        for path in paths[1:]:
            tile = self._read(path, band, grid)
            values = np.where(mosaic.valid, mosaic.values, tile.values)
            mosaic = Raster(values=values, valid=mosaic.valid | tile.valid, grid=grid, name=band)
        return mosaic

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _read(self, path: Path, band: str, grid: GridSpec) -> Raster:
        try:
            return read_band(path, band, grid, categorical=band in _CATEGORICAL_BANDS, name=band)
        except RasterReadError as exc:
            raise CatalogReadError(catalog=self.name, message=exc.message) from exc


def parse_scene_date(stem: str) -> date | None:
    """Extract the acquisition date from a file stem, or ``None``."""
    for match in _DATE_PATTERN.finditer(stem):
        year, month, day = (int(part) for part in match.groups())
        try:
            return date(year, month, day)
        except ValueError:
            continue
    return None


def _raster_files(directory: Path) -> list[Path]:
    if not directory.is_dir():
        return []
    return sorted(p for p in directory.iterdir() if p.suffix.lower() in _RASTER_SUFFIXES)
