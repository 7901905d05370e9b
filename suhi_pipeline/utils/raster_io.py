"""Raster I/O helpers shared by the catalogs and the exporter.

Reads a band from any GDAL-readable source (local GeoTIFF path or a
remote COG href) directly onto a target ``GridSpec`` using
``rasterio.warp.reproject`` so only the source windows that cover the
grid are read.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

import numpy as np
import rasterio
from rasterio.errors import RasterioError
from rasterio.warp import Resampling, reproject

from suhi_pipeline.core.exceptions import PipelineError
from suhi_pipeline.models.raster import Raster

if TYPE_CHECKING:
    from suhi_pipeline.models.raster import GridSpec

logger = logging.getLogger("suhi_pipeline.utils.raster_io")


class RasterReadError(PipelineError):
    """Raised when a raster source cannot be opened or a band is missing."""

    default_stage = "raster_io"
    default_code = "RASTER_READ_FAILED"


def read_band(
    source: str | Path,
    band: str | int,
    grid: GridSpec,
    *,
    scale: float = 1.0,
    offset: float = 0.0,
    categorical: bool = False,
    nodata: float | None = None,
    name: str = "",
) -> Raster:
    """Read one band of *source* warped onto *grid*.

    Args:
        source: File path or URL understood by GDAL.
        band: 1-based band index, or a band description to look up.
        grid: Target grid.
        scale: Multiplicative factor applied to valid pixels.
        offset: Additive offset applied after scaling.
        categorical: Use nearest-neighbour resampling (class codes, bit flags).
            Continuous bands are bilinearly resampled.
        nodata: Override the source's declared nodata value.
        name: Name for the resulting raster (defaults to the band).

    Returns:
        A ``Raster`` on *grid*; pixels not covered by *source* are invalid.

    Raises:
        RasterReadError: If the source cannot be read or the band is missing.
    """
    resampling = Resampling.nearest if categorical else Resampling.bilinear
    destination = np.full(grid.shape, np.nan, dtype=np.float64)
    try:
        with rasterio.open(source) as src:
            index = _band_index(src, band, source)
            src_nodata = nodata if nodata is not None else src.nodata
            reproject(
                source=rasterio.band(src, index),
                destination=destination,
                src_transform=src.transform,
                src_crs=src.crs,
                src_nodata=src_nodata,
                dst_transform=grid.transform,
                dst_crs=grid.crs,
                dst_nodata=np.nan,
                resampling=resampling,
            )
    except RasterReadError:
        raise
    except (OSError, RasterioError) as exc:
        msg = f"Failed to read band {band!r} from {source}: {exc}"
        raise RasterReadError(msg, retryable=True) from exc

    raster = Raster.from_array(destination, grid, name=name or str(band))
    if scale != 1.0 or offset != 0.0:
        raster = raster.map(lambda v: v * scale + offset)

    logger.debug(
        "Band read | source=%s | band=%s | valid=%d/%d",
        source,
        band,
        raster.valid_count,
        destination.size,
    )
    return raster


def _band_index(src: rasterio.DatasetReader, band: str | int, source: str | Path) -> int:
    """Resolve *band* to a 1-based index in *src*."""
    if isinstance(band, int):
        if not 1 <= band <= src.count:
            msg = f"Band index {band} out of range 1..{src.count} in {source}"
            raise RasterReadError(msg)
        return band

    descriptions = tuple(src.descriptions or ())
    if band in descriptions:
        return descriptions.index(band) + 1
    if src.count == 1:
        return 1
    msg = f"Band {band!r} not found in {source} (descriptions: {descriptions})"
    raise RasterReadError(msg)
