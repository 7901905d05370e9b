"""Shared pytest fixtures for the S-UHI pipeline test suite."""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from datetime import date

import numpy as np
import pytest
from shapely.geometry import box

from suhi_pipeline.core.config import PipelineConfig
from suhi_pipeline.models.catalog import CatalogConfig
from suhi_pipeline.models.collection import Collection, Scene
from suhi_pipeline.models.feature import Feature
from suhi_pipeline.models.raster import GridSpec, Raster
from suhi_pipeline.providers.base import CatalogSearchError, SceneCatalog

WORK_CRS = "EPSG:32618"
ORIGIN_X = 580_000.0
ORIGIN_Y = 4_510_000.0

#: A band value is a constant or a function of the requested grid.
BandValue = float | Callable[[GridSpec], np.ndarray]


# ---------------------------------------------------------------------------
# In-memory scene catalog
# ---------------------------------------------------------------------------


class FakeCatalog(SceneCatalog):
    """Scene catalog that synthesises every band on the requested grid.

    ``collections`` maps a collection id to ``(date, {band: value})`` pairs;
    ``images`` maps an image collection id to ``{band: value}``.
    """

    def __init__(
        self,
        collections: Mapping[str, Sequence[tuple[date, Mapping[str, BandValue]]]] | None = None,
        images: Mapping[str, Mapping[str, BandValue]] | None = None,
    ) -> None:
        super().__init__(CatalogConfig(name="fake"))
        self._collections = dict(collections or {})
        self._images = dict(images or {})
        self.requests: list[tuple[str, tuple[str, ...]]] = []

    def collection(self, collection_id, bands, grid, start, end) -> Collection:
        self.requests.append((collection_id, tuple(bands)))
        if collection_id not in self._collections:
            raise CatalogSearchError(catalog=self.name, message=f"unknown collection {collection_id}")
        scenes = [
            Scene(
                acquired=acquired,
                bands={band: _materialise(values[band], grid, band) for band in bands},
                scene_id=f"{collection_id}_{acquired.isoformat()}",
            )
            for acquired, values in self._collections[collection_id]
            if start <= acquired <= end
        ]
        return Collection(collection_id, tuple(scenes))

    def image(self, collection_id, band, grid) -> Raster:
        self.requests.append((collection_id, (band,)))
        if collection_id not in self._images:
            raise CatalogSearchError(catalog=self.name, message=f"unknown image {collection_id}")
        return _materialise(self._images[collection_id][band], grid, band)


def _materialise(value: BandValue, grid: GridSpec, name: str) -> Raster:
    array = value(grid) if callable(value) else np.full(grid.shape, float(value))
    return Raster.from_array(array, grid, name=name)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def make_grid() -> Callable[..., GridSpec]:
    """Factory for north-up grids whose top-left corner is ``(ORIGIN_X, ORIGIN_Y + rows*scale)``."""

    def _make(width: int = 10, height: int = 10, scale: float = 30.0) -> GridSpec:
        bounds = (ORIGIN_X, ORIGIN_Y, ORIGIN_X + width * scale, ORIGIN_Y + height * scale)
        return GridSpec.from_bounds(bounds, scale, WORK_CRS)

    return _make


@pytest.fixture()
def grid(make_grid: Callable[..., GridSpec]) -> GridSpec:
    """A 10 x 10 grid of 30 m pixels."""
    return make_grid()


@pytest.fixture()
def make_raster(grid: GridSpec) -> Callable[..., Raster]:
    """Factory for rasters on the default grid (or a given one)."""

    def _make(values: float | np.ndarray, *, on: GridSpec | None = None, name: str = "") -> Raster:
        target = on or grid
        array = np.full(target.shape, float(values)) if np.isscalar(values) else np.asarray(values, dtype=float)
        return Raster.from_array(array, target, name=name)

    return _make


@pytest.fixture()
def square_aoi() -> Feature:
    """A 3 km x 3 km urban square."""
    return Feature(
        name="Test City",
        geometry=box(ORIGIN_X + 3000, ORIGIN_Y + 3000, ORIGIN_X + 6000, ORIGIN_Y + 6000),
        crs=WORK_CRS,
    )


@pytest.fixture()
def fake_catalog() -> type[FakeCatalog]:
    """The in-memory catalog class."""
    return FakeCatalog


@pytest.fixture()
def small_config(tmp_path) -> PipelineConfig:
    """Configuration sized for synthetic rasters."""
    return PipelineConfig(
        start_date="2019-01-01",
        end_date="2019-12-31",
        fixed_buffer_m=600.0,
        buffer_step_m=300.0,
        buffer_count=10,
        modis_scale_m=300.0,
        landsat_scale_m=60.0,
        output_dir=str(tmp_path / "output"),
        max_workers=4,
    )
