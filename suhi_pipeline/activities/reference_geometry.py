"""Reference geometry activity: rural rings around the urban AOI.

Two builders, both ``Feature -> Feature``:

- ``fixed_buffer``: the annulus ``buffer(polygon, d) - polygon`` for a
  fixed width (2000 m by default).
- ``area_matched_buffer``: a linear search over widths
  ``step, 2*step, ..., count*step`` choosing the annulus whose area is
  closest to the AOI area.  Every candidate is evaluated (no early
  exit), concurrently; the winner is picked by a stable fold in
  ascending-width order, so the lowest width wins ties.

Widths are in work-CRS units (metres).  Buffer arithmetic is never done
in degrees.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import TYPE_CHECKING

from suhi_pipeline.activities.region import require_valid
from suhi_pipeline.core import constants
from suhi_pipeline.core.exceptions import InvalidGeometry

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from shapely.geometry.base import BaseGeometry

    from suhi_pipeline.models.feature import Feature

logger = logging.getLogger("suhi_pipeline.activities.reference_geometry")

# Output property names of the area-matched search
BUFFER_WIDTH = "Buffer_width"
BUFFER_AREA = "Buffer_area"
BUFFER_DIFF = "Buffer_diff"
URBAN_AREA = "Urban_Area"


@dataclass(frozen=True, slots=True)
class BufferCandidate:
    """One evaluated width of the area-matched search."""

    width: float
    ring: BaseGeometry
    area: float
    score: float


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def ring(polygon: BaseGeometry, width: float) -> BaseGeometry:
    """``buffer(polygon, width) - polygon``.

    Raises:
        InvalidGeometry: If *width* is not positive or the ring is
            empty or invalid.
    """
    if not width > 0:
        msg = f"Buffer width must be > 0, got {width}"
        raise InvalidGeometry(msg, stage="reference_geometry")
    annulus = polygon.buffer(width).difference(polygon)
    require_valid(annulus, f"ring of width {width:g}")
    return annulus


def fixed_buffer(feature: Feature, distance: float = constants.FIXED_BUFFER_M) -> Feature:
    """Rural annulus of fixed width around *feature*.

    Raises:
        InvalidGeometry: On a non-positive distance or unusable input/result.
    """
    _require_feature(feature)
    try:
        annulus = ring(feature.geometry, distance)
    except InvalidGeometry as exc:
        exc.attribute(stage="rural_fixed", feature=feature.name)
        raise

    logger.info(
        "Fixed buffer built | feature=%s | width=%g m | area=%.1f km2",
        feature.name,
        distance,
        annulus.area / 1e6,
    )
    return feature.with_geometry(annulus).set(**{BUFFER_WIDTH: distance, BUFFER_AREA: annulus.area})


def candidate_widths(
    step: float = constants.BUFFER_SEARCH_STEP_M,
    count: int = constants.BUFFER_SEARCH_COUNT,
) -> list[float]:
    """``[step, 2*step, ..., count*step]`` in ascending order."""
    if not step > 0 or count < 1:
        msg = f"Buffer search needs step > 0 and count >= 1, got step={step}, count={count}"
        raise InvalidGeometry(msg, stage="rural_matched")
    return [step * i for i in range(1, count + 1)]


def evaluate_candidate(polygon: BaseGeometry, width: float, target_area: float) -> BufferCandidate:
    annulus = ring(polygon, width)
    area = float(annulus.area)
    return BufferCandidate(width=width, ring=annulus, area=area, score=abs(area - target_area))


def select_best(candidates: Iterable[BufferCandidate]) -> BufferCandidate:
    """Minimum score; the first candidate in iteration order wins ties."""
    best: BufferCandidate | None = None
    for candidate in candidates:
        if best is None or candidate.score < best.score:
            best = candidate
    if best is None:
        msg = "Buffer search evaluated no candidates"
        raise InvalidGeometry(msg, stage="rural_matched")
    return best


def area_matched_buffer(
    feature: Feature,
    step: float = constants.BUFFER_SEARCH_STEP_M,
    count: int = constants.BUFFER_SEARCH_COUNT,
    *,
    max_workers: int = 4,
) -> Feature:
    """Rural annulus whose area best matches the area of *feature*.

    Returns a Feature carrying the winning ring and the properties
    ``Buffer_width``, ``Buffer_area``, ``Buffer_diff`` and ``Urban_Area``.

    Raises:
        InvalidGeometry: On bad search parameters or unusable geometry.
    """
    _require_feature(feature)
    widths = candidate_widths(step, count)
    target = feature.area

    try:
        with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="buffer-search") as pool:
            # map preserves input order, so the fold sees ascending widths
            candidates = list(pool.map(lambda w: evaluate_candidate(feature.geometry, w, target), widths))
    except InvalidGeometry as exc:
        exc.attribute(stage="rural_matched", feature=feature.name)
        raise

    for candidate in candidates:
        logger.debug(
            "Buffer candidate | feature=%s | width=%g | area=%.1f | diff=%.1f",
            feature.name,
            candidate.width,
            candidate.area,
            candidate.score,
        )

    best = select_best(candidates)
    logger.info(
        "Area-matched buffer selected | feature=%s | width=%g m | area=%.1f km2 | "
        "urban_area=%.1f km2 | diff=%.3f km2 | candidates=%d",
        feature.name,
        best.width,
        best.area / 1e6,
        target / 1e6,
        best.score / 1e6,
        len(candidates),
    )
    return feature.with_geometry(best.ring).set(
        **{
            BUFFER_WIDTH: best.width,
            BUFFER_AREA: best.area,
            BUFFER_DIFF: best.score,
            URBAN_AREA: target,
        }
    )


def map_features(
    features: Iterable[Feature],
    transform: Callable[[Feature], Feature],
    *,
    max_workers: int = 4,
) -> list[Feature]:
    """Apply a ``Feature -> Feature`` transform to every feature, preserving order."""
    with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="feature-map") as pool:
        return list(pool.map(transform, features))


def _require_feature(feature: Feature) -> None:
    try:
        require_valid(feature.geometry, f"feature '{feature.name}'")
    except InvalidGeometry as exc:
        exc.attribute(stage="reference_geometry", feature=feature.name)
        raise
