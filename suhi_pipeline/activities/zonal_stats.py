"""Zonal reducer activity.

Reduces a ``Raster`` over a polygon to a scalar at a given scale:

- ``reduce_mean``: mean of the valid pixels whose centres fall inside
  the polygon.
- ``reduce_min_max``: combined single-pass minimum and maximum.

An optional ``Mask`` is ANDed with the raster's own validity at native
resolution before the raster is resampled to the reduction scale
(area-averaged when coarser, nearest neighbour when finer).  An empty
intersection yields "no data" (``value is None``), never ``0``.

Cost guards:
    ``max_pixels`` bounds the number of pixels the polygon footprint may
    cover at the reduction scale.  Only that window of the raster is
    resampled, so the ceiling also bounds the work done.  Past the
    ceiling the reduction fails with ``PixelLimitExceeded`` unless
    ``best_effort`` is set, in which case the scale is doubled until the
    footprint fits.

    A ``CancelToken`` is checked between row blocks; once cancelled the
    reduction stops and raises ``ReductionCancelled``.
"""

from __future__ import annotations

import logging
import math
import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np
from rasterio.transform import from_origin

from suhi_pipeline.core import constants
from suhi_pipeline.core.exceptions import PixelLimitExceeded, ReductionCancelled
from suhi_pipeline.models.raster import GridSpec
from suhi_pipeline.models.statistics import MinMax, ZonalStatistic

if TYPE_CHECKING:
    from shapely.geometry.base import BaseGeometry

    from suhi_pipeline.models.raster import Mask, Raster

logger = logging.getLogger("suhi_pipeline.activities.zonal_stats")

#: Rows accumulated between two cancellation checks.
ROW_BLOCK = 256

#: Upper bound on best-effort coarsening steps (2**32 x the requested scale).
_MAX_COARSENING_STEPS = 32


# ---------------------------------------------------------------------------
# Cancellation
# ---------------------------------------------------------------------------


class CancelToken:
    """Thread-safe cancellation flag shared by concurrent reductions."""

    def __init__(self) -> None:
        self._event = threading.Event()
        self._reason = ""

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str:
        return self._reason

    def cancel(self, reason: str = "") -> None:
        """Request cancellation; the first reason given is kept."""
        if not self._event.is_set():
            self._reason = reason
            self._event.set()

    def raise_if_cancelled(self, stage: str = "") -> None:
        """Raise ``ReductionCancelled`` if cancellation was requested."""
        if self._event.is_set():
            msg = f"Reduction cancelled: {self._reason or 'no reason given'}"
            raise ReductionCancelled(msg, stage=stage)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def reduce_mean(
    raster: Raster,
    polygon: BaseGeometry,
    scale: float,
    mask: Mask | None = None,
    *,
    max_pixels: int = constants.DEFAULT_MAX_PIXELS,
    best_effort: bool = False,
    cancel: CancelToken | None = None,
    name: str = "",
) -> ZonalStatistic:
    """Mean of *raster* over *polygon* at *scale*.

    Args:
        raster: Source raster.
        polygon: Zone, in the raster's CRS.
        scale: Reduction pixel size in CRS units.
        mask: Optional keep-mask ANDed with the raster validity.
        max_pixels: Pixel ceiling for the polygon footprint at *scale*.
        best_effort: Coarsen the scale instead of failing at the ceiling.
        cancel: Optional cancellation token.
        name: Label for logging and the result.

    Returns:
        A ``ZonalStatistic``; ``value`` is ``None`` when no valid pixel
        centre falls inside *polygon*.

    Raises:
        PixelLimitExceeded: Footprint above *max_pixels* without best effort.
        ReductionCancelled: If *cancel* fires during the reduction.
    """
    zone = _Zone.prepare(raster, polygon, scale, mask, max_pixels, best_effort, name)
    acc = zone.accumulate(cancel)
    value = acc.total / acc.count if acc.count else None

    logger.info(
        "Zonal mean | zone=%s | value=%s | pixels=%d | scale=%g m",
        name or "unnamed",
        "no data" if value is None else f"{value:.4f}",
        acc.count,
        zone.scale,
    )
    return ZonalStatistic(value=value, pixel_count=acc.count, scale_m=zone.scale, name=name)


def reduce_min_max(
    raster: Raster,
    polygon: BaseGeometry,
    scale: float,
    mask: Mask | None = None,
    *,
    max_pixels: int = constants.DEFAULT_MAX_PIXELS,
    best_effort: bool = False,
    cancel: CancelToken | None = None,
    name: str = "",
) -> MinMax:
    """Combined minimum and maximum of *raster* over *polygon* in one pass.

    Same masking, scale, ceiling and cancellation semantics as
    ``reduce_mean``.
    """
    zone = _Zone.prepare(raster, polygon, scale, mask, max_pixels, best_effort, name)
    acc = zone.accumulate(cancel)
    lo = acc.lo if acc.count else None
    hi = acc.hi if acc.count else None

    logger.info(
        "Zonal min/max | zone=%s | min=%s | max=%s | pixels=%d | scale=%g m",
        name or "unnamed",
        "no data" if lo is None else f"{lo:.4f}",
        "no data" if hi is None else f"{hi:.4f}",
        acc.count,
        zone.scale,
    )
    return MinMax(min=lo, max=hi, pixel_count=acc.count, scale_m=zone.scale, name=name)


def zone_window(
    polygon: BaseGeometry,
    grid_bounds: tuple[float, float, float, float],
    scale: float,
) -> tuple[int, int, int, int] | None:
    """``(row0, row1, col0, col1)`` of the *scale* pixels covering the polygon's bounding box.

    Pixels are counted on a grid anchored at the top-left corner of
    *grid_bounds* and clipped to it.  ``None`` when nothing overlaps.
    """
    if polygon.is_empty:
        return None
    minx, miny, maxx, maxy = polygon.bounds
    gminx, gminy, gmaxx, gmaxy = grid_bounds
    cols = math.ceil((gmaxx - gminx) / scale - 1e-9)
    rows = math.ceil((gmaxy - gminy) / scale - 1e-9)
    col0 = max(0, math.floor((minx - gminx) / scale + 1e-9))
    col1 = min(cols, math.ceil((maxx - gminx) / scale - 1e-9))
    row0 = max(0, math.floor((gmaxy - maxy) / scale + 1e-9))
    row1 = min(rows, math.ceil((gmaxy - miny) / scale - 1e-9))
    if col1 <= col0 or row1 <= row0:
        return None
    return row0, row1, col0, col1


def footprint_pixels(
    polygon: BaseGeometry,
    grid_bounds: tuple[float, float, float, float],
    scale: float,
) -> int:
    """Pixels of size *scale* a reduction over *polygon* evaluates."""
    window = zone_window(polygon, grid_bounds, scale)
    if window is None:
        return 0
    row0, row1, col0, col1 = window
    return (row1 - row0) * (col1 - col0)


def zone_grid(polygon: BaseGeometry, grid: GridSpec, scale: float) -> GridSpec | None:
    """Reduction grid of *scale* pixels over the polygon's window of *grid*."""
    window = zone_window(polygon, grid.bounds, scale)
    if window is None:
        return None
    row0, row1, col0, col1 = window
    gminx, _, _, gmaxy = grid.bounds
    return GridSpec(
        crs=grid.crs,
        transform=from_origin(gminx + col0 * scale, gmaxy - row0 * scale, scale, scale),
        width=col1 - col0,
        height=row1 - row0,
    )


def effective_scale(
    polygon: BaseGeometry,
    grid_bounds: tuple[float, float, float, float],
    scale: float,
    *,
    max_pixels: int,
    best_effort: bool,
    name: str = "",
) -> float:
    """Return the scale a reduction runs at under the pixel ceiling.

    Raises:
        PixelLimitExceeded: Footprint above *max_pixels* and no best effort.
    """
    pixels = footprint_pixels(polygon, grid_bounds, scale)
    if pixels <= max_pixels:
        return scale
    if not best_effort:
        msg = (
            f"Zone '{name or 'unnamed'}' covers {pixels} pixels at {scale:g} m, "
            f"above the ceiling of {max_pixels}"
        )
        raise PixelLimitExceeded(msg, stage="zonal_stats")

    coarse = scale
    for _ in range(_MAX_COARSENING_STEPS):
        coarse *= 2
        if footprint_pixels(polygon, grid_bounds, coarse) <= max_pixels:
            logger.warning(
                "Best-effort coarsening | zone=%s | pixels=%d | scale=%g m -> %g m | max_pixels=%d",
                name or "unnamed",
                pixels,
                scale,
                coarse,
                max_pixels,
            )
            return coarse
    msg = f"Zone '{name or 'unnamed'}' cannot be brought under {max_pixels} pixels by coarsening"
    raise PixelLimitExceeded(msg, stage="zonal_stats")


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class _Accumulator:
    count: int = 0
    total: float = 0.0
    lo: float = math.inf
    hi: float = -math.inf


@dataclass(frozen=True, slots=True)
class _Zone:
    """Selected pixels of a raster at the reduction scale."""

    values: np.ndarray
    selected: np.ndarray
    scale: float
    name: str

    @classmethod
    def prepare(
        cls,
        raster: Raster,
        polygon: BaseGeometry,
        scale: float,
        mask: Mask | None,
        max_pixels: int,
        best_effort: bool,
        name: str,
    ) -> _Zone:
        run_scale = effective_scale(
            polygon, raster.grid.bounds, scale, max_pixels=max_pixels, best_effort=best_effort, name=name
        )
        target = zone_grid(polygon, raster.grid, run_scale)
        if target is None:
            return cls(values=np.empty((0, 0)), selected=np.empty((0, 0), dtype=bool), scale=run_scale, name=name)
        source = raster.update_mask(mask) if mask is not None else raster
        resampled = source.align_to(target)
        selected = resampled.valid & resampled.grid.inside(polygon)
        return cls(values=resampled.values, selected=selected, scale=run_scale, name=name)

    def accumulate(self, cancel: CancelToken | None) -> _Accumulator:
        acc = _Accumulator()
        rows = self.values.shape[0]
        for start in range(0, rows, ROW_BLOCK):
            if cancel is not None:
                cancel.raise_if_cancelled(stage=self.name or "zonal_stats")
            block = self.values[start : start + ROW_BLOCK][self.selected[start : start + ROW_BLOCK]]
            if block.size == 0:
                continue
            acc.count += int(block.size)
            acc.total += float(block.sum())
            acc.lo = min(acc.lo, float(block.min()))
            acc.hi = max(acc.hi, float(block.max()))
        return acc
