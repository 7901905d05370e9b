"""Toolbox-based LST estimator.

An ``LstToolbox`` is an injected strategy returning a collection of
per-scene LST rasters (band ``"LST"``, Kelvin) for a satellite, date
range and geometry.  ``ToolboxEstimator`` takes the seasonal mean of that
collection, converts it to Celsius, clips it and applies the water mask.

``EmissivityToolbox`` is the bundled implementation: it runs the NDVI
emissivity model scene by scene against the configured scene catalog.
Third-party toolboxes plug in by subclassing ``LstToolbox``.
"""

from __future__ import annotations

import abc
import logging
from typing import TYPE_CHECKING

import numpy as np

from suhi_pipeline.activities.region import grid_for
from suhi_pipeline.activities.zonal_stats import reduce_min_max
from suhi_pipeline.core import constants
from suhi_pipeline.estimators.base import LstEstimator, kelvin_to_celsius, seasonal
from suhi_pipeline.estimators.physical import (
    cloud_mask_scene,
    emissivity,
    fractional_vegetation,
    invert_lst,
    ndvi,
)
from suhi_pipeline.models.collection import Collection, Scene

if TYPE_CHECKING:
    from datetime import date

    from suhi_pipeline.core.config import PipelineConfig
    from suhi_pipeline.models.feature import Feature
    from suhi_pipeline.models.raster import Mask, Raster
    from suhi_pipeline.providers.base import SceneCatalog

logger = logging.getLogger("suhi_pipeline.estimators.toolbox")

STAGE = "lst_toolbox"
DEFAULT_SATELLITE = "L8"

#: Emissivity used when NDVI is switched off (midpoint of the model range).
UNIFORM_EMISSIVITY = constants.EMISSIVITY_INTERCEPT + constants.EMISSIVITY_SLOPE / 2


class LstToolbox(abc.ABC):
    """Strategy producing per-scene LST in Kelvin."""

    @abc.abstractmethod
    def collection(
        self,
        satellite: str,
        start: date,
        end: date,
        geometry: Feature,
        use_ndvi: bool,
    ) -> Collection:
        """Return scenes carrying an ``"LST"`` band in Kelvin.

        Args:
            satellite: Sensor identifier (e.g. ``"L8"``).
            start: First acquisition date (inclusive).
            end: Last acquisition date (inclusive).
            geometry: Region the scenes must cover.
            use_ndvi: Derive emissivity from NDVI instead of a constant.
        """


class EmissivityToolbox(LstToolbox):
    """Per-scene NDVI emissivity model over a ``SceneCatalog``.

    Thermal scenes are paired with the reflectance scene acquired on the
    same date; thermal scenes without a partner are skipped when
    ``use_ndvi`` is set.
    """

    def __init__(
        self,
        catalog: SceneCatalog,
        *,
        scale_m: float = constants.LANDSAT_SCALE_M,
        cloud_score_threshold: float = constants.CLOUD_SCORE_THRESHOLD,
        max_pixels: int = constants.DEFAULT_MAX_PIXELS,
    ) -> None:
        self._catalog = catalog
        self._scale_m = scale_m
        self._cloud_score_threshold = cloud_score_threshold
        self._max_pixels = max_pixels

    def collection(
        self,
        satellite: str,
        start: date,
        end: date,
        geometry: Feature,
        use_ndvi: bool,
    ) -> Collection:
        grid = grid_for(geometry, self._scale_m)
        thermal = self._catalog.collection(
            constants.LANDSAT_TOA_COLLECTION,
            [constants.THERMAL_BAND, constants.CLOUD_SCORE_BAND],
            grid,
            start,
            end,
        )
        partners: dict[date, Scene] = {}
        if use_ndvi:
            reflectance = self._catalog.collection(
                constants.LANDSAT_SR_COLLECTION,
                [constants.RED_BAND, constants.NIR_BAND],
                grid,
                start,
                end,
            )
            partners = {scene.acquired: scene for scene in reflectance}

        scenes: list[Scene] = []
        for scene in thermal:
            masked = cloud_mask_scene(scene, self._cloud_score_threshold)
            tb = masked.band(constants.THERMAL_BAND)
            if use_ndvi:
                partner = partners.get(scene.acquired)
                if partner is None:
                    logger.debug("Toolbox skip | scene=%s | reason=no reflectance scene", scene.scene_id)
                    continue
                ep = self._scene_emissivity(partner, geometry)
                if ep is None:
                    logger.debug("Toolbox skip | scene=%s | reason=degenerate NDVI", scene.scene_id)
                    continue
            else:
                ep = tb.map(lambda v: np.full_like(v, UNIFORM_EMISSIVITY), name="EM")
            lst = _invert_kelvin(tb, ep)
            scenes.append(
                Scene(acquired=scene.acquired, bands={constants.TOOLBOX_LST_BAND: lst}, scene_id=scene.scene_id)
            )

        logger.info(
            "Toolbox collection built | satellite=%s | scenes=%d/%d | use_ndvi=%s | range=%s/%s",
            satellite,
            len(scenes),
            len(thermal),
            use_ndvi,
            start.isoformat(),
            end.isoformat(),
        )
        return Collection(STAGE, tuple(scenes))

    def _scene_emissivity(self, scene: Scene, geometry: Feature) -> Raster | None:
        scene_ndvi = ndvi(scene)
        bounds = reduce_min_max(
            scene_ndvi,
            geometry.geometry,
            constants.NDVI_MINMAX_SCALE_M,
            max_pixels=self._max_pixels,
            best_effort=True,
            name=f"ndvi_{scene.scene_id or scene.acquired}",
        )
        if bounds.is_no_data or not bounds.max > bounds.min:
            return None
        return emissivity(fractional_vegetation(scene_ndvi, bounds.min, bounds.max))


def _invert_kelvin(tb: Raster, ep: Raster) -> Raster:
    """Planck inversion kept in Kelvin, the toolbox output unit."""
    return invert_lst(tb, ep).offset(constants.KELVIN_OFFSET).rename(constants.TOOLBOX_LST_BAND)


class ToolboxEstimator(LstEstimator):
    """Seasonal mean of a toolbox LST collection, in Celsius."""

    stage = STAGE

    def __init__(
        self,
        catalog: SceneCatalog,
        config: PipelineConfig,
        toolbox: LstToolbox | None = None,
        *,
        satellite: str = DEFAULT_SATELLITE,
        use_ndvi: bool = True,
    ) -> None:
        super().__init__(catalog, config)
        self._toolbox = toolbox or EmissivityToolbox(
            catalog,
            scale_m=config.landsat_scale_m,
            cloud_score_threshold=config.cloud_score_threshold,
            max_pixels=config.max_pixels,
        )
        self._satellite = satellite
        self._use_ndvi = use_ndvi

    @property
    def scale_m(self) -> float:
        return self.config.landsat_scale_m

    @property
    def toolbox(self) -> LstToolbox:
        return self._toolbox

    def estimate(self, aoi: Feature, region: Feature, water: Mask) -> Raster:
        config = self.config
        collection = self._toolbox.collection(self._satellite, config.start, config.end, region, self._use_ndvi)
        filtered = seasonal(
            collection,
            start=config.start,
            end=config.end,
            doy_first=config.doy_first,
            doy_last=config.doy_last,
            stage=STAGE,
        )
        lst = kelvin_to_celsius(filtered.mean(constants.TOOLBOX_LST_BAND))
        lst = lst.clip(region.geometry).update_mask(water).rename(STAGE)
        logger.info(
            "Toolbox LST estimated | feature=%s | satellite=%s | scenes=%d | valid=%d",
            aoi.name,
            self._satellite,
            len(filtered),
            lst.valid_count,
        )
        return lst
