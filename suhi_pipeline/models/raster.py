"""Grid, Raster and Mask models.

A ``Raster`` is an immutable 2-D grid of float values with a validity
array and a ``GridSpec`` (CRS, affine transform, shape).  Invalid pixels
are "masked out" and excluded from every reduction.  Every transform
returns a new ``Raster``; the underlying numpy arrays are read-only.

A ``Mask`` is a boolean grid (``True`` = keep).  Masks combine with
logical AND; a mask on a different grid is warped onto the target grid
with nearest-neighbour resampling before it is applied.

Design notes:
- Frozen dataclasses, explicit units: pixel sizes are in CRS units
  (metres for the projected work CRS).
- Warping and rasterisation are delegated to ``rasterio``.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np
from rasterio.crs import CRS
from rasterio.features import geometry_mask
from rasterio.transform import Affine, array_bounds, from_origin
from rasterio.warp import Resampling, reproject

from suhi_pipeline.core.exceptions import PipelineError

if TYPE_CHECKING:
    from collections.abc import Callable

    from shapely.geometry.base import BaseGeometry


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class ModelValidationError(ValueError, PipelineError):
    """Raised when a domain model is constructed with invalid field values.

    Attributes:
        model: Name of the model class that failed validation.
        field_name: The field that violated the invariant.
        value: The invalid value.
    """

    default_stage = "model_validation"
    default_code = "MODEL_VALIDATION_FAILED"

    def __init__(self, model: str, field_name: str, value: object, message: str) -> None:
        self.model = model
        self.field_name = field_name
        self.value = value
        formatted = f"{model}.{field_name}={value!r}: {message}"
        PipelineError.__init__(self, formatted)


# ---------------------------------------------------------------------------
# Grid
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class GridSpec:
    """Georeferencing of a raster grid.

    Attributes:
        crs: CRS as a user-input string (e.g. ``"EPSG:32618"``).
        transform: Affine transform of the top-left pixel corner.
        width: Number of columns.
        height: Number of rows.
    """

    crs: str
    transform: Affine
    width: int
    height: int

    def __post_init__(self) -> None:
        if self.width <= 0 or self.height <= 0:
            raise ModelValidationError(
                "GridSpec", "shape", (self.height, self.width), "must be positive"
            )

    @classmethod
    def from_bounds(
        cls,
        bounds: tuple[float, float, float, float],
        scale: float,
        crs: str,
    ) -> GridSpec:
        """Build a north-up grid covering *bounds* with square pixels of *scale*.

        Args:
            bounds: ``(minx, miny, maxx, maxy)`` in CRS units.
            scale: Pixel size in CRS units.
            crs: CRS string.
        """
        if scale <= 0:
            raise ModelValidationError("GridSpec", "scale", scale, "must be > 0")
        minx, miny, maxx, maxy = bounds
        width = max(1, math.ceil((maxx - minx) / scale - 1e-9))
        height = max(1, math.ceil((maxy - miny) / scale - 1e-9))
        return cls(crs=crs, transform=from_origin(minx, maxy, scale, scale), width=width, height=height)

    @property
    def shape(self) -> tuple[int, int]:
        """``(rows, cols)``."""
        return (self.height, self.width)

    @property
    def pixel_size(self) -> float:
        return abs(self.transform.a)

    @property
    def bounds(self) -> tuple[float, float, float, float]:
        """``(minx, miny, maxx, maxy)`` of the grid footprint."""
        west, south, east, north = array_bounds(self.height, self.width, self.transform)
        return (west, south, east, north)

    def same_as(self, other: GridSpec) -> bool:
        """Whether *other* describes exactly the same pixels."""
        return (
            self.shape == other.shape
            and self.transform.almost_equals(other.transform)
            and same_crs(self.crs, other.crs)
        )

    def inside(self, geometry: BaseGeometry) -> np.ndarray:
        """Boolean array of pixels whose centres fall inside *geometry*."""
        if geometry.is_empty:
            return np.zeros(self.shape, dtype=bool)
        return geometry_mask(
            [geometry],
            out_shape=self.shape,
            transform=self.transform,
            invert=True,
            all_touched=False,
        )


def same_crs(a: str, b: str) -> bool:
    """Compare two CRS strings semantically."""
    if a == b:
        return True
    return CRS.from_user_input(a) == CRS.from_user_input(b)


def _warp(
    source: np.ndarray,
    src_grid: GridSpec,
    dst_grid: GridSpec,
    *,
    resampling: Resampling,
    nodata: float,
) -> np.ndarray:
    destination = np.full(dst_grid.shape, nodata, dtype=source.dtype)
    reproject(
        source=source,
        destination=destination,
        src_transform=src_grid.transform,
        src_crs=src_grid.crs,
        dst_transform=dst_grid.transform,
        dst_crs=dst_grid.crs,
        src_nodata=nodata,
        dst_nodata=nodata,
        resampling=resampling,
    )
    return destination


# ---------------------------------------------------------------------------
# Mask
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True, eq=False)
class Mask:
    """Boolean keep-mask aligned to a grid.

    Attributes:
        values: ``True`` where a pixel is kept.
        grid: Grid the mask is aligned to.
        name: Optional label for logging.
    """

    values: np.ndarray
    grid: GridSpec
    name: str = ""

    def __post_init__(self) -> None:
        values = np.array(self.values, dtype=bool)
        if values.shape != self.grid.shape:
            raise ModelValidationError(
                "Mask", "values", values.shape, f"must match grid shape {self.grid.shape}"
            )
        values.setflags(write=False)
        object.__setattr__(self, "values", values)

    @classmethod
    def from_raster(cls, raster: Raster, predicate: Callable[[np.ndarray], np.ndarray], name: str = "") -> Mask:
        """Keep valid pixels of *raster* for which *predicate* holds."""
        with np.errstate(invalid="ignore"):
            keep = raster.valid & np.asarray(predicate(raster.values), dtype=bool)
        return cls(values=keep, grid=raster.grid, name=name or raster.name)

    @property
    def keep_count(self) -> int:
        return int(self.values.sum())

    def align_to(self, grid: GridSpec, *, fill: bool = False) -> Mask:
        """Warp onto *grid* (nearest neighbour); uncovered pixels take *fill*."""
        if self.grid.same_as(grid):
            return self
        uncovered = 255
        warped = _warp(
            self.values.astype(np.uint8),
            self.grid,
            grid,
            resampling=Resampling.nearest,
            nodata=uncovered,
        )
        values = np.where(warped == uncovered, fill, warped.astype(bool))
        return Mask(values=values, grid=grid, name=self.name)

    def __and__(self, other: Mask) -> Mask:
        aligned = other.align_to(self.grid)
        name = " & ".join(n for n in (self.name, other.name) if n)
        return Mask(values=self.values & aligned.values, grid=self.grid, name=name)

    def __invert__(self) -> Mask:
        return Mask(values=~self.values, grid=self.grid, name=f"~{self.name}" if self.name else "")


# ---------------------------------------------------------------------------
# Raster
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True, eq=False)
class Raster:
    """Immutable single-band raster with a validity mask.

    Attributes:
        values: Pixel values (float64). Values at invalid pixels are undefined.
        valid: ``True`` where the pixel takes part in reductions.
        grid: Georeferencing of the pixels.
        name: Optional label (band or product name) for logging and export.
    """

    values: np.ndarray
    valid: np.ndarray
    grid: GridSpec
    name: str = ""

    def __post_init__(self) -> None:
        values = np.array(self.values, dtype=np.float64)
        if values.shape != self.grid.shape:
            raise ModelValidationError(
                "Raster", "values", values.shape, f"must match grid shape {self.grid.shape}"
            )
        valid = np.array(self.valid, dtype=bool)
        if valid.shape != values.shape:
            raise ModelValidationError(
                "Raster", "valid", valid.shape, f"must match values shape {values.shape}"
            )
        valid &= np.isfinite(values)
        values.setflags(write=False)
        valid.setflags(write=False)
        object.__setattr__(self, "values", values)
        object.__setattr__(self, "valid", valid)

    @classmethod
    def from_array(
        cls,
        values: np.ndarray,
        grid: GridSpec,
        *,
        nodata: float | None = None,
        name: str = "",
    ) -> Raster:
        """Build a raster whose invalid pixels are non-finite or equal *nodata*."""
        array = np.asarray(values, dtype=np.float64)
        valid = np.isfinite(array)
        if nodata is not None and not math.isnan(nodata):
            valid &= array != nodata
        return cls(values=array, valid=valid, grid=grid, name=name)

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def masked(self) -> np.ma.MaskedArray:
        """Values as a numpy masked array (mask = invalid)."""
        return np.ma.MaskedArray(self.values, mask=~self.valid)

    @property
    def valid_count(self) -> int:
        return int(self.valid.sum())

    @property
    def pixel_size(self) -> float:
        return self.grid.pixel_size

    def filled(self, fill: float = np.nan) -> np.ndarray:
        """Copy of the values with invalid pixels set to *fill*."""
        return np.where(self.valid, self.values, fill)

    # ------------------------------------------------------------------
    # Pixel algebra
    # ------------------------------------------------------------------

    def rename(self, name: str) -> Raster:
        return Raster(values=self.values, valid=self.valid, grid=self.grid, name=name)

    def map(self, fn: Callable[[np.ndarray], np.ndarray], *, name: str | None = None) -> Raster:
        """Apply *fn* to the values; results that are not finite become invalid."""
        with np.errstate(all="ignore"):
            values = fn(self.values)
        return Raster(
            values=values,
            valid=self.valid,
            grid=self.grid,
            name=self.name if name is None else name,
        )

    def scale(self, factor: float) -> Raster:
        return self.map(lambda v: v * factor)

    def offset(self, delta: float) -> Raster:
        return self.map(lambda v: v + delta)

    def combine(
        self,
        other: Raster,
        fn: Callable[[np.ndarray, np.ndarray], np.ndarray],
        *,
        name: str | None = None,
    ) -> Raster:
        """Pixel-wise binary operation; *other* is aligned to this grid first."""
        aligned = other.align_to(self.grid)
        with np.errstate(all="ignore"):
            values = fn(self.values, aligned.values)
        return Raster(
            values=values,
            valid=self.valid & aligned.valid,
            grid=self.grid,
            name=self.name if name is None else name,
        )

    # ------------------------------------------------------------------
    # Masking
    # ------------------------------------------------------------------

    def update_mask(self, mask: Mask) -> Raster:
        """AND *mask* into the validity array."""
        aligned = mask.align_to(self.grid)
        return Raster(
            values=self.values,
            valid=self.valid & aligned.values,
            grid=self.grid,
            name=self.name,
        )

    def clip(self, geometry: BaseGeometry) -> Raster:
        """Mask out pixels whose centres fall outside *geometry*."""
        return Raster(
            values=self.values,
            valid=self.valid & self.grid.inside(geometry),
            grid=self.grid,
            name=self.name,
        )

    # ------------------------------------------------------------------
    # Resampling
    # ------------------------------------------------------------------

    def align_to(self, grid: GridSpec, *, resampling: Resampling | None = None) -> Raster:
        """Warp onto *grid*.

        Coarser targets are area-averaged; equal or finer targets use
        nearest neighbour unless *resampling* says otherwise.
        """
        if self.grid.same_as(grid):
            return self
        if resampling is None:
            coarser = grid.pixel_size > self.grid.pixel_size * (1 + 1e-9)
            resampling = Resampling.average if coarser else Resampling.nearest
        warped = _warp(
            self.filled(np.nan),
            self.grid,
            grid,
            resampling=resampling,
            nodata=np.nan,
        )
        return Raster(values=warped, valid=np.isfinite(warped), grid=grid, name=self.name)

    def resample(self, scale: float) -> Raster:
        """Resample to square pixels of *scale* over the same footprint."""
        if math.isclose(scale, self.pixel_size, rel_tol=1e-9):
            return self
        grid = GridSpec.from_bounds(self.grid.bounds, scale, self.grid.crs)
        return self.align_to(grid)
