"""S-UHI compositor activity.

``SUHI = LST_urban - LST_rural``, either as a scalar (urban zonal mean
minus rural zonal mean) or as a raster where every urban pixel is offset
by the rural scalar.

Rural "no data" policy:
    ``RuralFallback.FAIL`` (default) raises ``DataUnavailable``.
    ``RuralFallback.ZERO`` substitutes ``0`` for the rural value, logs a
    warning and flags the result with ``rural_fallback_applied``.

A missing urban value always raises ``DataUnavailable``.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from suhi_pipeline.core.exceptions import DataUnavailable

if TYPE_CHECKING:
    from suhi_pipeline.models.raster import Mask, Raster
    from suhi_pipeline.models.statistics import ZonalStatistic

logger = logging.getLogger("suhi_pipeline.activities.compose_suhi")


class RuralFallback(enum.Enum):
    """What to do when the rural reference mean is "no data"."""

    FAIL = "fail"
    ZERO = "zero"


@dataclass(frozen=True, slots=True)
class SuhiValue:
    """Scalar S-UHI intensity with its inputs.

    Attributes:
        value: ``urban - rural`` in degrees Celsius.
        urban: Urban zonal mean.
        rural: Rural zonal mean actually used (``0`` after a fallback).
        rural_fallback_applied: ``True`` when the rural value was substituted.
        name: Label (e.g. ``"lst_composite_fixed"``).
    """

    value: float
    urban: float
    rural: float
    rural_fallback_applied: bool = False
    name: str = ""

    def to_dict(self) -> dict[str, object]:
        return {
            "value": self.value,
            "urban": self.urban,
            "rural": self.rural,
            "rural_fallback_applied": self.rural_fallback_applied,
        }


def resolve_rural(
    rural: ZonalStatistic,
    policy: RuralFallback = RuralFallback.FAIL,
) -> tuple[float, bool]:
    """Return ``(rural value, fallback applied)`` under *policy*.

    Raises:
        DataUnavailable: If the rural value is missing and *policy* is ``FAIL``.
    """
    if rural.value is not None:
        return rural.value, False
    if policy is RuralFallback.FAIL:
        msg = (
            f"Rural reference '{rural.name or 'unnamed'}' has no valid pixels at {rural.scale_m:g} m; "
            "set rural_fallback='zero' to substitute 0"
        )
        raise DataUnavailable(msg, stage="compose_suhi")
    logger.warning(
        "Rural fallback applied | zone=%s | substituted=0 | scale=%g m",
        rural.name or "unnamed",
        rural.scale_m,
    )
    return 0.0, True


def suhi_scalar(
    urban: ZonalStatistic,
    rural: ZonalStatistic,
    policy: RuralFallback = RuralFallback.FAIL,
    *,
    name: str = "",
) -> SuhiValue:
    """Urban zonal mean minus rural zonal mean.

    Raises:
        DataUnavailable: If the urban value is missing, or the rural value
            is missing under ``RuralFallback.FAIL``.
    """
    urban_value = urban.require()
    rural_value, fallback = resolve_rural(rural, policy)
    result = SuhiValue(
        value=urban_value - rural_value,
        urban=urban_value,
        rural=rural_value,
        rural_fallback_applied=fallback,
        name=name,
    )
    logger.info(
        "S-UHI computed | name=%s | suhi=%.3f | urban=%.3f | rural=%.3f | fallback=%s",
        name or "unnamed",
        result.value,
        urban_value,
        rural_value,
        fallback,
    )
    return result


def suhi_raster(
    lst: Raster,
    urban: Mask,
    rural: ZonalStatistic,
    policy: RuralFallback = RuralFallback.FAIL,
) -> Raster:
    """Per-pixel S-UHI: urban pixels of *lst* minus the rural scalar.

    Raises:
        DataUnavailable: If the rural value is missing under ``RuralFallback.FAIL``.
    """
    rural_value, _ = resolve_rural(rural, policy)
    return lst.update_mask(urban).offset(-rural_value).rename(f"{lst.name}_suhi" if lst.name else "suhi")
