"""LstEstimator abstract base class.

Every LST source (composite product, physical model, toolbox) turns a
scene catalog into a Celsius ``Raster`` clipped to the analysis region
and water-masked.  The orchestrator talks to this interface only.
"""

from __future__ import annotations

import abc
import logging
from typing import TYPE_CHECKING, ClassVar

from suhi_pipeline.core import constants
from suhi_pipeline.core.exceptions import EmptyInputCollection

if TYPE_CHECKING:
    from datetime import date

    from suhi_pipeline.core.config import PipelineConfig
    from suhi_pipeline.models.collection import Collection
    from suhi_pipeline.models.feature import Feature
    from suhi_pipeline.models.raster import Mask, Raster
    from suhi_pipeline.providers.base import SceneCatalog

logger = logging.getLogger("suhi_pipeline.estimators.base")


class LstEstimator(abc.ABC):
    """Abstract LST estimator.

    Attributes:
        stage: Stage name used for logging and error attribution.
        scale_m: Native reduction scale of the estimator's output.
    """

    stage: ClassVar[str] = "lst"

    def __init__(self, catalog: SceneCatalog, config: PipelineConfig) -> None:
        self._catalog = catalog
        self._config = config

    @property
    def catalog(self) -> SceneCatalog:
        return self._catalog

    @property
    def config(self) -> PipelineConfig:
        return self._config

    @property
    @abc.abstractmethod
    def scale_m(self) -> float:
        """Pixel size the estimator produces and is reduced at."""

    @abc.abstractmethod
    def estimate(self, aoi: Feature, region: Feature, water: Mask) -> Raster:
        """Return the LST raster in degrees Celsius.

        Args:
            aoi: Urban area of interest.
            region: Analysis region (AOI plus its rural surroundings);
                the output is clipped to it.
            water: Keep-mask excluding water pixels.

        Raises:
            EmptyInputCollection: If no scene survives the seasonal filter.
        """


def seasonal(
    collection: Collection,
    *,
    start: date,
    end: date,
    doy_first: int,
    doy_last: int,
    stage: str = "",
) -> Collection:
    """Filter *collection* to ``[start, end]`` and the day-of-year window.

    Raises:
        EmptyInputCollection: If no scene remains.
    """
    filtered = collection.filter_date(start, end).filter_day_of_year(doy_first, doy_last)
    date_range = f"{start.isoformat()}/{end.isoformat()}"
    if filtered.is_empty:
        msg = (
            f"No '{collection.name}' scenes between {date_range} within day-of-year "
            f"{doy_first}-{doy_last} ({len(collection)} before filtering)"
        )
        raise EmptyInputCollection(msg, stage=stage, date_range=date_range)

    logger.info(
        "Seasonal filter | collection=%s | scenes=%d/%d | range=%s | doy=%d-%d",
        collection.name,
        len(filtered),
        len(collection),
        date_range,
        doy_first,
        doy_last,
    )
    return filtered


def kelvin_to_celsius(raster: Raster) -> Raster:
    return raster.offset(-constants.KELVIN_OFFSET)
