"""Render sinks for inspecting pipeline outputs.

A sink accepts a ``Raster``, a ``Feature`` or a scalar together with a
display style ``{"min": ..., "max": ..., "palette": ...}`` and shows it
somewhere.  Two sinks are bundled:

- ``LogSink``: summary statistics to the logger.
- ``PngSink``: colour-mapped PNG files rendered with matplotlib
  (headless ``Agg`` backend).  Features and scalars are logged only.
"""

from __future__ import annotations

import abc
import logging
import re
from pathlib import Path
from typing import TYPE_CHECKING, Any

import numpy as np

from suhi_pipeline.models.feature import Feature
from suhi_pipeline.models.raster import Raster

if TYPE_CHECKING:
    from collections.abc import Mapping

logger = logging.getLogger("suhi_pipeline.activities.render")

DEFAULT_PALETTE = "inferno"

#: Default styles, mirroring the NYC LST and S-UHI maps.
LST_STYLE: dict[str, Any] = {"min": 20.0, "max": 45.0, "palette": "inferno"}
SUHI_STYLE: dict[str, Any] = {"min": -5.0, "max": 10.0, "palette": "RdYlBu_r"}

_SLUG_PATTERN = re.compile(r"[^A-Za-z0-9_.-]+")


class Sink(abc.ABC):
    """Accepts a value and a display style."""

    @abc.abstractmethod
    def show(self, name: str, value: Raster | Feature | float, style: Mapping[str, Any] | None = None) -> None:
        """Display *value* under *name*."""


class LogSink(Sink):
    """Logs a short summary of every value."""

    def __init__(self, level: int = logging.INFO) -> None:
        self._level = level

    def show(self, name: str, value: Raster | Feature | float, style: Mapping[str, Any] | None = None) -> None:
        if isinstance(value, Raster):
            if value.valid_count:
                data = value.values[value.valid]
                logger.log(
                    self._level,
                    "Raster | name=%s | valid=%d/%d | min=%.3f | mean=%.3f | max=%.3f",
                    name,
                    value.valid_count,
                    value.values.size,
                    float(data.min()),
                    float(data.mean()),
                    float(data.max()),
                )
            else:
                logger.log(self._level, "Raster | name=%s | valid=0/%d | no data", name, value.values.size)
        elif isinstance(value, Feature):
            logger.log(
                self._level,
                "Feature | name=%s | area=%.1f km2 | properties=%s",
                name,
                value.area / 1e6,
                value.properties,
            )
        else:
            logger.log(self._level, "Value | name=%s | value=%s", name, value)


class PngSink(Sink):
    """Writes rasters as colour-mapped PNGs into *directory*."""

    def __init__(self, directory: str | Path, *, dpi: int = 150) -> None:
        self._directory = Path(directory)
        self._dpi = dpi
        self._fallback = LogSink()
        self.written: list[Path] = []

    def show(self, name: str, value: Raster | Feature | float, style: Mapping[str, Any] | None = None) -> None:
        if not isinstance(value, Raster):
            self._fallback.show(name, value, style)
            return
        self.written.append(self.render(name, value, style or {}))

    def render(self, name: str, raster: Raster, style: Mapping[str, Any]) -> Path:
        """Render *raster* to ``<directory>/<name>.png`` and return the path."""
        import matplotlib

        matplotlib.use("Agg")
        import matplotlib.pyplot as plt

        data = raster.filled(np.nan)
        vmin, vmax = _limits(data, style)
        height, width = data.shape

        self._directory.mkdir(parents=True, exist_ok=True)
        target = self._directory / f"{_SLUG_PATTERN.sub('_', name) or 'raster'}.png"

        fig, ax = plt.subplots(figsize=(max(width, 200) / self._dpi * 4, max(height, 200) / self._dpi * 4))
        try:
            image = ax.imshow(
                data,
                vmin=vmin,
                vmax=vmax,
                cmap=style.get("palette", DEFAULT_PALETTE),
                interpolation="nearest",
            )
            colorbar = fig.colorbar(image, ax=ax)
            colorbar.set_label(style.get("label", name))
            ax.set_axis_off()
            fig.tight_layout(pad=0)
            fig.savefig(target, dpi=self._dpi, bbox_inches="tight", pad_inches=0)
        finally:
            plt.close(fig)

        logger.info("PNG rendered | name=%s | path=%s | range=%.2f..%.2f", name, target, vmin, vmax)
        return target


def _limits(data: np.ndarray, style: Mapping[str, Any]) -> tuple[float, float]:
    """Style limits, or the 2-98 percentile range of the finite pixels."""
    if "min" in style and "max" in style:
        return float(style["min"]), float(style["max"])
    finite = data[np.isfinite(data)]
    if finite.size == 0:
        return 0.0, 1.0
    lo, hi = np.percentile(finite, (2, 98))
    return float(style.get("min", lo)), float(style.get("max", hi))
