"""Composite-product LST estimator.

Derives LST from a precomputed 8-day daytime temperature product stored
as scaled integer Kelvin (x 50):

    seasonal filter -> temporal mean -> x 0.02 -> - 273.15 -> clip -> water mask

An empty seasonal selection raises ``EmptyInputCollection``; a zero
raster is never produced.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from suhi_pipeline.activities.region import grid_for
from suhi_pipeline.core import constants
from suhi_pipeline.estimators.base import LstEstimator, kelvin_to_celsius, seasonal

if TYPE_CHECKING:
    from datetime import date

    from shapely.geometry.base import BaseGeometry

    from suhi_pipeline.models.collection import Collection
    from suhi_pipeline.models.feature import Feature
    from suhi_pipeline.models.raster import Mask, Raster

logger = logging.getLogger("suhi_pipeline.estimators.composite")

STAGE = "lst_composite"


def composite_lst(
    collection: Collection,
    *,
    start: date,
    end: date,
    doy_first: int = constants.SUMMER_DOY_FIRST,
    doy_last: int = constants.SUMMER_DOY_LAST,
    clip_geometry: BaseGeometry | None = None,
    water: Mask | None = None,
    band: str = constants.MODIS_LST_BAND,
    scale_factor: float = constants.MODIS_LST_SCALE,
) -> Raster:
    """Seasonal mean LST in degrees Celsius from a scaled-Kelvin collection.

    Raises:
        EmptyInputCollection: If no scene survives the seasonal filter.
    """
    filtered = seasonal(
        collection, start=start, end=end, doy_first=doy_first, doy_last=doy_last, stage=STAGE
    )
    lst = kelvin_to_celsius(filtered.mean(band).scale(scale_factor))
    if clip_geometry is not None:
        lst = lst.clip(clip_geometry)
    if water is not None:
        lst = lst.update_mask(water)
    return lst.rename(STAGE)


class CompositeProductEstimator(LstEstimator):
    """LST from the 8-day composite product."""

    stage = STAGE

    @property
    def scale_m(self) -> float:
        return self.config.modis_scale_m

    def estimate(self, aoi: Feature, region: Feature, water: Mask) -> Raster:
        config = self.config
        grid = grid_for(region, self.scale_m)
        collection = self.catalog.collection(
            constants.MODIS_LST_COLLECTION,
            [constants.MODIS_LST_BAND],
            grid,
            config.start,
            config.end,
        )
        lst = composite_lst(
            collection,
            start=config.start,
            end=config.end,
            doy_first=config.doy_first,
            doy_last=config.doy_last,
            clip_geometry=region.geometry,
            water=water,
        )
        logger.info(
            "Composite LST estimated | feature=%s | valid=%d | scale=%g m | range=%s",
            aoi.name,
            lst.valid_count,
            self.scale_m,
            config.date_range,
        )
        return lst
