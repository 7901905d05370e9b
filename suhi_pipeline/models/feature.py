"""Data model for a polygon feature.

A Feature is a polygon geometry in the projected work CRS plus a mapping
of named scalar properties.  Transform stages never mutate a Feature;
``set()`` returns a new one (later stages may overwrite keys).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from shapely.geometry import mapping, shape

from suhi_pipeline.core import constants

if TYPE_CHECKING:
    from shapely.geometry.base import BaseGeometry


@dataclass(frozen=True, slots=True)
class Feature:
    """A single polygon feature.

    Attributes:
        name: Feature name (e.g. ``"New York City"``).
        geometry: Shapely ``Polygon`` or ``MultiPolygon``.
        properties: Named scalar properties attached by transform stages.
        crs: CRS of the geometry coordinates.
    """

    name: str
    geometry: BaseGeometry
    properties: dict[str, Any] = field(default_factory=dict)
    crs: str = constants.DEFAULT_WORK_CRS

    def set(self, **properties: Any) -> Feature:
        """Return a copy with *properties* merged in."""
        merged = dict(self.properties)
        merged.update(properties)
        return Feature(name=self.name, geometry=self.geometry, properties=merged, crs=self.crs)

    def with_geometry(self, geometry: BaseGeometry) -> Feature:
        """Return a copy carrying *geometry* and the same properties."""
        return Feature(name=self.name, geometry=geometry, properties=dict(self.properties), crs=self.crs)

    @property
    def area(self) -> float:
        """Planar area in CRS units squared (m² in the work CRS)."""
        return float(self.geometry.area)

    def to_dict(self) -> dict[str, object]:
        """Serialise to a GeoJSON-style Feature dict."""
        return {
            "type": "Feature",
            "id": self.name,
            "geometry": mapping(self.geometry),
            "properties": {"name": self.name, **self.properties},
            "crs": self.crs,
        }

    @classmethod
    def from_dict(cls, data: dict[str, object]) -> Feature:
        """Deserialise from a GeoJSON-style Feature dict.

        Raises:
            TypeError: If field values have unexpected types.
        """
        geometry_raw = data.get("geometry")
        if not isinstance(geometry_raw, dict):
            msg = f"geometry must be a dict, got {type(geometry_raw).__name__}"
            raise TypeError(msg)

        properties_raw = data.get("properties", {})
        if not isinstance(properties_raw, dict):
            msg = f"properties must be a dict, got {type(properties_raw).__name__}"
            raise TypeError(msg)
        properties = dict(properties_raw)
        name = str(properties.pop("name", data.get("id", "")))

        return cls(
            name=name,
            geometry=shape(geometry_raw),
            properties=properties,
            crs=str(data.get("crs", constants.DEFAULT_WORK_CRS)),
        )
