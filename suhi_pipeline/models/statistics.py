"""Zonal reduction results.

"No data" is a first-class state (``value is None``), never ``0``:
a reduction over a polygon/mask pair with no valid pixels returns a
``ZonalStatistic`` whose ``value`` is ``None``.
"""

from __future__ import annotations

from dataclasses import dataclass

from suhi_pipeline.core.exceptions import DataUnavailable


@dataclass(frozen=True, slots=True)
class ZonalStatistic:
    """Mean of a raster over a polygon at a given scale.

    Attributes:
        value: Mean pixel value, or ``None`` when no valid pixel intersected.
        pixel_count: Number of pixels that contributed.
        scale_m: Pixel size the reduction ran at (may be coarser than
            requested when best-effort coarsening kicked in).
        name: Label for logging (e.g. ``"modis_urban"``).
    """

    value: float | None
    pixel_count: int = 0
    scale_m: float = 0.0
    name: str = ""

    @property
    def is_no_data(self) -> bool:
        return self.value is None

    def require(self) -> float:
        """Return the value or raise ``DataUnavailable``."""
        if self.value is None:
            msg = f"Zonal statistic '{self.name or 'unnamed'}' has no valid pixels at {self.scale_m:g} m"
            raise DataUnavailable(msg)
        return self.value


@dataclass(frozen=True, slots=True)
class MinMax:
    """Combined single-pass min/max of a raster over a polygon."""

    min: float | None
    max: float | None
    pixel_count: int = 0
    scale_m: float = 0.0
    name: str = ""

    @property
    def is_no_data(self) -> bool:
        return self.min is None or self.max is None

    def require(self) -> tuple[float, float]:
        """Return ``(min, max)`` or raise ``DataUnavailable``."""
        if self.min is None or self.max is None:
            msg = f"Min/max '{self.name or 'unnamed'}' has no valid pixels at {self.scale_m:g} m"
            raise DataUnavailable(msg)
        return (self.min, self.max)
