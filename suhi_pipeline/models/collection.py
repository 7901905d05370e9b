"""Scene and Collection models.

A ``Collection`` is an ordered sequence of timestamped ``Scene`` objects,
each carrying one or more named bands as ``Raster`` values.  Collections
support temporal filtering (date range, day-of-year window) and temporal
reducers that collapse one band to a single ``Raster``.

Reducing an empty collection raises ``EmptyInputCollection``: a
temporal mean over nothing is undefined and must never become a zero
raster.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import TYPE_CHECKING

import numpy as np

from suhi_pipeline.core.exceptions import EmptyInputCollection
from suhi_pipeline.models.raster import ModelValidationError, Raster

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator, Mapping


class Reducer(enum.Enum):
    """Per-pixel temporal reducer."""

    MEAN = "mean"
    MEDIAN = "median"
    MIN = "min"
    MAX = "max"


_REDUCERS: dict[Reducer, Callable[[np.ma.MaskedArray], np.ma.MaskedArray]] = {
    Reducer.MEAN: lambda stack: np.ma.mean(stack, axis=0),
    Reducer.MEDIAN: lambda stack: np.ma.median(stack, axis=0),
    Reducer.MIN: lambda stack: np.ma.min(stack, axis=0),
    Reducer.MAX: lambda stack: np.ma.max(stack, axis=0),
}


@dataclass(frozen=True, slots=True)
class Scene:
    """A single acquisition.

    Attributes:
        acquired: Acquisition date (datetimes are truncated to their date).
        bands: Band name to ``Raster`` mapping.
        scene_id: Provider-specific identifier.
    """

    acquired: date
    bands: Mapping[str, Raster] = field(default_factory=dict)
    scene_id: str = ""

    def __post_init__(self) -> None:
        if isinstance(self.acquired, datetime):
            object.__setattr__(self, "acquired", self.acquired.date())
        object.__setattr__(self, "bands", dict(self.bands))

    @property
    def day_of_year(self) -> int:
        return self.acquired.timetuple().tm_yday

    def band(self, name: str) -> Raster:
        """Return band *name*.

        Raises:
            ModelValidationError: If the scene has no such band.
        """
        try:
            return self.bands[name]
        except KeyError:
            available = ", ".join(sorted(self.bands)) or "none"
            raise ModelValidationError(
                "Scene", "bands", name, f"band not found in {self.scene_id or self.acquired} (available: {available})"
            ) from None

    def with_bands(self, **bands: Raster) -> Scene:
        """Return a copy with *bands* added or replaced."""
        merged = dict(self.bands)
        merged.update(bands)
        return Scene(acquired=self.acquired, bands=merged, scene_id=self.scene_id)


@dataclass(frozen=True, slots=True)
class Collection:
    """Time-ordered scenes sharing logical bands.

    Attributes:
        name: Logical collection identifier (e.g. ``"modis-lst-8day"``).
        scenes: Scenes, kept in acquisition order.
    """

    name: str
    scenes: tuple[Scene, ...] = ()

    def __post_init__(self) -> None:
        ordered = tuple(sorted(self.scenes, key=lambda s: s.acquired))
        object.__setattr__(self, "scenes", ordered)

    def __len__(self) -> int:
        return len(self.scenes)

    def __iter__(self) -> Iterator[Scene]:
        return iter(self.scenes)

    @property
    def is_empty(self) -> bool:
        return not self.scenes

    # ------------------------------------------------------------------
    # Filtering
    # ------------------------------------------------------------------

    def filter_date(self, start: date, end: date) -> Collection:
        """Keep scenes acquired within ``[start, end]`` (both inclusive)."""
        return Collection(self.name, tuple(s for s in self.scenes if start <= s.acquired <= end))

    def filter_day_of_year(self, first: int, last: int) -> Collection:
        """Keep scenes whose day-of-year lies within ``[first, last]``."""
        return Collection(self.name, tuple(s for s in self.scenes if first <= s.day_of_year <= last))

    def map(self, fn: Callable[[Scene], Scene]) -> Collection:
        return Collection(self.name, tuple(fn(s) for s in self.scenes))

    # ------------------------------------------------------------------
    # Temporal reduction
    # ------------------------------------------------------------------

    def reduce(self, band: str, reducer: Reducer = Reducer.MEAN) -> Raster:
        """Collapse *band* over time to one raster.

        Each output pixel reduces only the scenes in which it is valid;
        pixels invalid in every scene stay invalid.  Rasters are aligned
        to the first scene's grid.

        Raises:
            EmptyInputCollection: If the collection has no scenes.
        """
        if self.is_empty:
            msg = f"Cannot compute temporal {reducer.value} of '{band}': collection '{self.name}' is empty"
            raise EmptyInputCollection(msg)

        rasters = [scene.band(band) for scene in self.scenes]
        grid = rasters[0].grid
        aligned = [r.align_to(grid) for r in rasters]
        stack = np.ma.MaskedArray(
            np.stack([r.values for r in aligned]),
            mask=np.stack([~r.valid for r in aligned]),
        )
        result = _REDUCERS[reducer](stack)
        valid = ~np.ma.getmaskarray(result)
        values = np.ma.filled(result.astype(np.float64), np.nan)
        return Raster(values=values, valid=valid, grid=grid, name=band)

    def mean(self, band: str) -> Raster:
        return self.reduce(band, Reducer.MEAN)

    def median(self, band: str) -> Raster:
        return self.reduce(band, Reducer.MEDIAN)
