"""Physical LST estimator (NDVI emissivity model).

Derives LST from raw thermal brightness temperature corrected by an
NDVI-based emissivity:

1. Cloud-mask each thermal scene (score > threshold removed), median -> ``Tb`` (K).
2. NDVI per reflectance scene, median, clip, water mask.
3. NDVI minimum and maximum over the AOI at 30 m (single pass).
4. ``FV = (NDVI - min) / (max - min)``
5. ``Ep = FV * 0.004 + 0.986``
6. ``LST = Tb / (1 + (0.001145 * Tb / 1.438) * ln(Ep)) - 273.15``
7. Water mask.

Each step is a pure function so the orchestrator can schedule them as
separate graph nodes; ``PhysicalEstimator.estimate`` chains them.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import numpy as np

from suhi_pipeline.activities.region import grid_for
from suhi_pipeline.activities.zonal_stats import reduce_min_max
from suhi_pipeline.core import constants
from suhi_pipeline.core.exceptions import NumericDomainError
from suhi_pipeline.estimators.base import LstEstimator, kelvin_to_celsius, seasonal
from suhi_pipeline.models.raster import Mask

if TYPE_CHECKING:
    from shapely.geometry.base import BaseGeometry

    from suhi_pipeline.activities.zonal_stats import CancelToken
    from suhi_pipeline.models.collection import Collection, Scene
    from suhi_pipeline.models.feature import Feature
    from suhi_pipeline.models.raster import Raster
    from suhi_pipeline.models.statistics import MinMax

logger = logging.getLogger("suhi_pipeline.estimators.physical")

STAGE = "lst_physical"
NDVI_BAND = "NDVI"


# ---------------------------------------------------------------------------
# Pure steps
# ---------------------------------------------------------------------------


def cloud_mask_scene(
    scene: Scene,
    threshold: float = constants.CLOUD_SCORE_THRESHOLD,
    *,
    band: str = constants.THERMAL_BAND,
    score_band: str = constants.CLOUD_SCORE_BAND,
) -> Scene:
    """Mask *band* where the cloud score exceeds *threshold* (``<=`` is kept)."""
    clear = Mask.from_raster(scene.band(score_band), lambda v: v <= threshold, name="clear")
    return scene.with_bands(**{band: scene.band(band).update_mask(clear)})


def brightness_temperature(
    thermal: Collection,
    threshold: float = constants.CLOUD_SCORE_THRESHOLD,
    *,
    band: str = constants.THERMAL_BAND,
) -> Raster:
    """Median cloud-free brightness temperature (Kelvin)."""
    masked = thermal.map(lambda scene: cloud_mask_scene(scene, threshold, band=band))
    return masked.median(band).rename("Tb")


def ndvi(scene: Scene, *, red: str = constants.RED_BAND, nir: str = constants.NIR_BAND) -> Raster:
    """``(NIR - Red) / (NIR + Red)``; a zero denominator leaves the pixel invalid."""
    return scene.band(nir).combine(scene.band(red), lambda n, r: (n - r) / (n + r), name=NDVI_BAND)


def ndvi_composite(
    reflectance: Collection,
    *,
    clip_geometry: BaseGeometry | None = None,
    water: Mask | None = None,
) -> Raster:
    """Median NDVI, clipped and water-masked."""
    with_ndvi = reflectance.map(lambda scene: scene.with_bands(**{NDVI_BAND: ndvi(scene)}))
    result = with_ndvi.median(NDVI_BAND)
    if clip_geometry is not None:
        result = result.clip(clip_geometry)
    if water is not None:
        result = result.update_mask(water)
    return result


def fractional_vegetation(ndvi_raster: Raster, ndvi_min: float, ndvi_max: float) -> Raster:
    """Linear rescaling of NDVI so that ``FV(min) = 0`` and ``FV(max) = 1``.

    Values are not clamped.

    Raises:
        NumericDomainError: If ``ndvi_max <= ndvi_min``.
    """
    if not ndvi_max > ndvi_min:
        msg = f"NDVI range is degenerate (min={ndvi_min}, max={ndvi_max}); fractional vegetation undefined"
        raise NumericDomainError(msg, stage="fractional_vegetation")
    span = ndvi_max - ndvi_min
    return ndvi_raster.map(lambda v: (v - ndvi_min) / span, name="FV")


def emissivity(fv: Raster) -> Raster:
    return fv.map(
        lambda v: v * constants.EMISSIVITY_SLOPE + constants.EMISSIVITY_INTERCEPT,
        name="EM",
    )


def invert_lst(tb: Raster, ep: Raster) -> Raster:
    """Planck-approximation inversion of brightness temperature to LST (Celsius).

    Raises:
        NumericDomainError: If any valid emissivity pixel is ``<= 0``.
    """
    bad = ep.valid & (ep.values <= 0)
    if bad.any():
        msg = f"Emissivity <= 0 at {int(bad.sum())} pixels (min {float(ep.values[bad].min()):g})"
        raise NumericDomainError(msg, stage="invert_lst")

    wavelength = constants.EMITTED_WAVELENGTH
    rho = constants.PLANCK_RHO
    kelvin = tb.combine(ep, lambda t, e: t / (1 + (wavelength * t / rho) * np.log(e)))
    return kelvin_to_celsius(kelvin)


def physical_lst(
    tb: Raster,
    ndvi_raster: Raster,
    ndvi_range: tuple[float, float],
    *,
    water: Mask | None = None,
) -> Raster:
    """Steps 4-7: FV, emissivity, inversion and water mask."""
    ep = emissivity(fractional_vegetation(ndvi_raster, *ndvi_range))
    lst = invert_lst(tb, ep)
    if water is not None:
        lst = lst.update_mask(water)
    return lst.rename(STAGE)


# ---------------------------------------------------------------------------
# Estimator
# ---------------------------------------------------------------------------


class PhysicalEstimator(LstEstimator):
    """LST from thermal scenes and an NDVI emissivity model."""

    stage = STAGE

    @property
    def scale_m(self) -> float:
        return self.config.landsat_scale_m

    def brightness_temperature(self, region: Feature) -> Raster:
        config = self.config
        thermal = self.catalog.collection(
            constants.LANDSAT_TOA_COLLECTION,
            [constants.THERMAL_BAND, constants.CLOUD_SCORE_BAND],
            grid_for(region, self.scale_m),
            config.start,
            config.end,
        )
        thermal = seasonal(
            thermal,
            start=config.start,
            end=config.end,
            doy_first=config.doy_first,
            doy_last=config.doy_last,
            stage="brightness_temperature",
        )
        tb = brightness_temperature(thermal, config.cloud_score_threshold)
        logger.info(
            "Brightness temperature composited | scenes=%d | valid=%d | cloud_threshold=%g",
            len(thermal),
            tb.valid_count,
            config.cloud_score_threshold,
        )
        return tb

    def ndvi(self, region: Feature, water: Mask) -> Raster:
        config = self.config
        reflectance = self.catalog.collection(
            constants.LANDSAT_SR_COLLECTION,
            [constants.RED_BAND, constants.NIR_BAND],
            grid_for(region, self.scale_m),
            config.start,
            config.end,
        )
        reflectance = seasonal(
            reflectance,
            start=config.start,
            end=config.end,
            doy_first=config.doy_first,
            doy_last=config.doy_last,
            stage="ndvi",
        )
        result = ndvi_composite(reflectance, clip_geometry=region.geometry, water=water)
        logger.info("NDVI composited | scenes=%d | valid=%d", len(reflectance), result.valid_count)
        return result

    def ndvi_min_max(self, ndvi_raster: Raster, aoi: Feature, *, cancel: CancelToken | None = None) -> MinMax:
        return reduce_min_max(
            ndvi_raster,
            aoi.geometry,
            constants.NDVI_MINMAX_SCALE_M,
            max_pixels=self.config.max_pixels,
            best_effort=self.config.best_effort,
            cancel=cancel,
            name="ndvi_aoi",
        )

    def lst(self, tb: Raster, ndvi_raster: Raster, ndvi_range: MinMax, water: Mask) -> Raster:
        lst = physical_lst(tb, ndvi_raster, ndvi_range.require(), water=water)
        logger.info(
            "Physical LST estimated | valid=%d | ndvi_min=%.4f | ndvi_max=%.4f | scale=%g m",
            lst.valid_count,
            ndvi_range.min,
            ndvi_range.max,
            self.scale_m,
        )
        return lst

    def estimate(self, aoi: Feature, region: Feature, water: Mask) -> Raster:
        tb = self.brightness_temperature(region)
        ndvi_raster = self.ndvi(region, water)
        return self.lst(tb, ndvi_raster, self.ndvi_min_max(ndvi_raster, aoi), water)
