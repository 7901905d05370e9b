"""Catalog factory: selects the active scene catalog by name.

Catalogs are registered as ``"module:Class"`` import paths and imported
on first use, so the STAC stack (``pystac-client``, ``planetary-computer``)
is only loaded when the Planetary Computer catalog is requested.

Usage::

    from suhi_pipeline.providers.factory import get_catalog

    catalog = get_catalog("local", CatalogConfig(name="local", root="data"))

The catalog name is read from the ``SUHI_CATALOG`` environment variable
via ``PipelineConfig.catalog``.
"""

from __future__ import annotations

import importlib
import logging

from suhi_pipeline.models.catalog import CatalogConfig
from suhi_pipeline.providers.base import CatalogError, SceneCatalog

logger = logging.getLogger(__name__)

LOCAL = "local"
PLANETARY_COMPUTER = "planetary_computer"

#: Catalog name -> adapter class, or its ``"module:Class"`` path until first use.
_CATALOGS: dict[str, type[SceneCatalog] | str] = {
    LOCAL: "suhi_pipeline.providers.local:LocalCatalog",
    PLANETARY_COMPUTER: "suhi_pipeline.providers.planetary_computer:PlanetaryComputerCatalog",
}


def register_catalog(name: str, adapter: type[SceneCatalog] | str) -> None:
    """Register a catalog adapter under *name*.

    Args:
        name: Catalog name (e.g. ``"my_archive"``).
        adapter: The adapter class, or a ``"module:Class"`` path imported
            when the catalog is first requested.

    Raises:
        ValueError: If the name is empty or the path has no ``":"``.
    """
    if not name:
        msg = "Catalog name must be non-empty"
        raise ValueError(msg)
    if isinstance(adapter, str) and ":" not in adapter:
        msg = f"Catalog path {adapter!r} must have the form 'module:Class'"
        raise ValueError(msg)
    _CATALOGS[name] = adapter
    logger.debug("Registered catalog adapter | name=%s", name)


def get_catalog(name: str, config: CatalogConfig | None = None) -> SceneCatalog:
    """Create the scene catalog registered as *name*.

    A missing *config* defaults to ``CatalogConfig(name=name)``.

    Raises:
        CatalogError: If *name* is not registered, its adapter cannot be
            imported, or *config* names a different catalog.
    """
    if name not in _CATALOGS:
        msg = f"Unknown scene catalog: {name!r}. Available: {', '.join(list_catalogs())}"
        raise CatalogError(catalog=name, message=msg)

    if config is None:
        config = CatalogConfig(name=name)
    elif config.name != name:
        msg = f"CatalogConfig.name {config.name!r} does not match requested catalog {name!r}"
        raise CatalogError(catalog=name, message=msg)

    adapter = _resolve(name)
    logger.info("Creating scene catalog | name=%s | adapter=%s", name, adapter.__name__)
    return adapter(config)


def list_catalogs() -> list[str]:
    """Return the names of all registered catalog adapters."""
    return sorted(_CATALOGS)


def _resolve(name: str) -> type[SceneCatalog]:
    adapter = _CATALOGS[name]
    if not isinstance(adapter, str):
        return adapter
    module_name, _, class_name = adapter.partition(":")
    try:
        resolved = getattr(importlib.import_module(module_name), class_name)
    except (ImportError, AttributeError) as exc:
        msg = f"Cannot import adapter {adapter!r} for catalog {name!r}: {exc}"
        raise CatalogError(catalog=name, message=msg) from exc
    _CATALOGS[name] = resolved
    return resolved
