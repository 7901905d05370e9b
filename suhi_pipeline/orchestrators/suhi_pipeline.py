"""S-UHI pipeline orchestrator.

Wires every stage into a ``Graph`` and evaluates it:

1. Region: analysis region, Landsat-scale grid, water mask, land-cover masks
2. Reference geometry: fixed ring and area-matched ring (independent)
3. LST: composite product, physical model (Tb, NDVI, NDVI min/max,
   LST as separate nodes) and, optionally, the toolbox estimator
4. Zonal means: urban AOI and both rural rings, per LST source
5. S-UHI: scalar per source and rural ring, plus a per-pixel raster
   against the fixed ring

Independent branches (the LST sources, the two rings, the per-source
reductions) run concurrently.  The water mask is computed once and
shared by every estimator.  The run either completes with every output
or fails with one ``PipelineError`` attributed to its stage, feature and
date range.
"""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import TYPE_CHECKING, TypedDict

from suhi_pipeline.activities import reference_geometry, region
from suhi_pipeline.activities.compose_suhi import RuralFallback, suhi_raster, suhi_scalar
from suhi_pipeline.activities.export import write_features, write_geotiff, write_metadata
from suhi_pipeline.activities.render import LST_STYLE, SUHI_STYLE
from suhi_pipeline.activities.zonal_stats import CancelToken, reduce_mean
from suhi_pipeline.core.exceptions import PipelineError
from suhi_pipeline.estimators.composite import CompositeProductEstimator
from suhi_pipeline.estimators.physical import PhysicalEstimator
from suhi_pipeline.estimators.toolbox import ToolboxEstimator
from suhi_pipeline.models.catalog import CatalogConfig
from suhi_pipeline.models.metadata import SuhiRunRecord
from suhi_pipeline.orchestrators.dag import Graph
from suhi_pipeline.providers.factory import get_catalog

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from suhi_pipeline.activities.compose_suhi import SuhiValue
    from suhi_pipeline.activities.render import Sink
    from suhi_pipeline.core.config import PipelineConfig
    from suhi_pipeline.estimators.base import LstEstimator
    from suhi_pipeline.estimators.toolbox import LstToolbox
    from suhi_pipeline.models.feature import Feature
    from suhi_pipeline.models.raster import Mask, Raster
    from suhi_pipeline.models.statistics import ZonalStatistic
    from suhi_pipeline.providers.base import SceneCatalog

logger = logging.getLogger("suhi_pipeline.orchestrators.suhi_pipeline")

COMPOSITE = "lst_composite"
PHYSICAL = "lst_physical"
TOOLBOX = "lst_toolbox"

FIXED = "fixed"
MATCHED = "matched"


# ---------------------------------------------------------------------------
# Result contracts
# ---------------------------------------------------------------------------


class SourceResult(TypedDict):
    """Measurements of one LST source."""

    scale_m: float
    urban: ZonalStatistic
    rural_fixed: ZonalStatistic
    rural_matched: ZonalStatistic
    suhi_fixed: SuhiValue
    suhi_matched: SuhiValue


class SuhiReport(TypedDict):
    """Output contract of a pipeline run."""

    feature: str
    date_range: str
    sources: dict[str, SourceResult]
    references: dict[str, Feature]
    rasters: dict[str, Raster]
    outputs: dict[str, str]
    duration_s: float


# ---------------------------------------------------------------------------
# Graph construction
# ---------------------------------------------------------------------------


def analysis_margin(config: PipelineConfig) -> float:
    """Distance the analysis region extends beyond the AOI: the widest rural ring."""
    return max(config.fixed_buffer_m, config.buffer_step_m * config.buffer_count)


def build_suhi_graph(
    config: PipelineConfig,
    catalog: SceneCatalog,
    aoi: Feature,
    *,
    toolbox: LstToolbox | None = None,
    cancel: CancelToken | None = None,
) -> Graph:
    """Build the pipeline graph for one AOI.

    The toolbox branch is added when *toolbox* is given or
    ``config.use_toolbox`` is set (the bundled ``EmissivityToolbox`` is
    used in the latter case).
    """
    cancel = cancel or CancelToken()
    graph = Graph(feature=aoi.name, date_range=config.date_range, cancel=cancel)
    provider = region.RegionProvider(catalog)
    policy = RuralFallback(config.rural_fallback)

    # -- Region and masks ------------------------------------------------
    graph.add("aoi", lambda: aoi)
    graph.add("region", lambda a: region.analysis_region(a, analysis_margin(config)), "aoi")
    graph.add("grid", lambda r: region.grid_for(r, config.landsat_scale_m), "region")
    graph.add("water", lambda g: region.water_mask(provider.water_occurrence(g)), "grid")
    graph.add("landcover", provider.landcover, "grid")
    graph.add("urban_mask", region.urban_mask, "landcover")
    graph.add("non_urban_mask", region.non_urban_mask, "landcover")

    # -- Reference geometry ----------------------------------------------
    graph.add(
        "rural_fixed",
        lambda a: reference_geometry.fixed_buffer(a, config.fixed_buffer_m),
        "aoi",
    )
    graph.add(
        "rural_matched",
        lambda a: reference_geometry.area_matched_buffer(
            a, config.buffer_step_m, config.buffer_count, max_workers=config.max_workers
        ),
        "aoi",
    )

    # -- LST sources -------------------------------------------------------
    composite = CompositeProductEstimator(catalog, config)
    graph.add(COMPOSITE, composite.estimate, "aoi", "region", "water")

    physical = PhysicalEstimator(catalog, config)
    graph.add("tb", physical.brightness_temperature, "region")
    graph.add("ndvi", physical.ndvi, "region", "water")
    graph.add("ndvi_min_max", lambda n, a: physical.ndvi_min_max(n, a, cancel=cancel), "ndvi", "aoi")
    graph.add(PHYSICAL, physical.lst, "tb", "ndvi", "ndvi_min_max", "water")

    estimators: dict[str, LstEstimator] = {COMPOSITE: composite, PHYSICAL: physical}
    if toolbox is not None or config.use_toolbox:
        tool = ToolboxEstimator(catalog, config, toolbox)
        graph.add(TOOLBOX, tool.estimate, "aoi", "region", "water")
        estimators[TOOLBOX] = tool

    # -- Zonal means and S-UHI per source --------------------------------
    for source, estimator in estimators.items():
        _add_source_nodes(graph, source, estimator.scale_m, config, policy, cancel)

    logger.info(
        "Pipeline graph built | feature=%s | nodes=%d | sources=%s | range=%s",
        aoi.name,
        len(graph.names),
        ",".join(estimators),
        config.date_range,
    )
    return graph


def _add_source_nodes(
    graph: Graph,
    source: str,
    scale: float,
    config: PipelineConfig,
    policy: RuralFallback,
    cancel: CancelToken,
) -> None:
    def reducer(name: str) -> Callable[[Raster, Feature, Mask], ZonalStatistic]:
        def reduce(lst: Raster, zone: Feature, mask: Mask) -> ZonalStatistic:
            return reduce_mean(
                lst,
                zone.geometry,
                scale,
                mask,
                max_pixels=config.max_pixels,
                best_effort=config.best_effort,
                cancel=cancel,
                name=name,
            )

        return reduce

    def composer(name: str) -> Callable[[ZonalStatistic, ZonalStatistic], SuhiValue]:
        return lambda urban, rural: suhi_scalar(urban, rural, policy, name=name)

    graph.add(f"{source}_urban", reducer(f"{source}_urban"), source, "aoi", "urban_mask")
    for ring in (FIXED, MATCHED):
        rural = f"{source}_rural_{ring}"
        graph.add(rural, reducer(rural), source, f"rural_{ring}", "non_urban_mask")
        graph.add(
            f"{source}_suhi_{ring}",
            composer(f"{source}_suhi_{ring}"),
            f"{source}_urban",
            rural,
        )
    graph.add(
        f"{source}_suhi_raster",
        lambda lst, mask, rural: suhi_raster(lst, mask, rural, policy),
        source,
        "urban_mask",
        f"{source}_rural_{FIXED}",
    )


# ---------------------------------------------------------------------------
# Run
# ---------------------------------------------------------------------------


def run_suhi_pipeline(
    config: PipelineConfig,
    aoi: Feature,
    *,
    catalog: SceneCatalog | None = None,
    toolbox: LstToolbox | None = None,
    sinks: Sequence[Sink] = (),
    export: bool = True,
    run_id: str = "",
) -> SuhiReport:
    """Evaluate the pipeline for *aoi* and return its report.

    Args:
        config: Validated pipeline configuration.
        aoi: Urban AOI in the work CRS.
        catalog: Scene catalog; defaults to ``get_catalog(config.catalog)``.
        toolbox: Optional LST toolbox strategy.
        sinks: Render sinks receiving every LST and S-UHI raster and value.
        export: Write GeoTIFFs, GeoJSON and the run metadata to
            ``config.output_dir``.
        run_id: Identifier recorded in the run metadata.

    Raises:
        PipelineError: The attributed error of the first failing stage.
    """
    if catalog is None:
        catalog_config = CatalogConfig(
            name=config.catalog, root=config.catalog_root, extra_params=config.catalog_extra_params
        )
        catalog = get_catalog(config.catalog, catalog_config)

    started = time.monotonic()
    graph = build_suhi_graph(config, catalog, aoi, toolbox=toolbox)
    logger.info(
        "Pipeline started | feature=%s | catalog=%s | range=%s | run_id=%s",
        aoi.name,
        catalog.name,
        config.date_range,
        run_id,
    )
    try:
        results = graph.run(max_workers=config.max_workers)
    except PipelineError as exc:
        if export:
            record = SuhiRunRecord.failed(
                exc.to_error_dict(),
                config,
                feature_name=aoi.name,
                run_id=run_id,
                duration_s=time.monotonic() - started,
            )
            write_metadata(record, Path(config.output_dir) / f"{_slug(aoi.name)}_metadata.json")
        raise

    sources = [name for name in (COMPOSITE, PHYSICAL, TOOLBOX) if name in graph]
    report: SuhiReport = {
        "feature": aoi.name,
        "date_range": config.date_range,
        "sources": {
            name: {
                "scale_m": results[f"{name}_urban"].scale_m,
                "urban": results[f"{name}_urban"],
                "rural_fixed": results[f"{name}_rural_{FIXED}"],
                "rural_matched": results[f"{name}_rural_{MATCHED}"],
                "suhi_fixed": results[f"{name}_suhi_{FIXED}"],
                "suhi_matched": results[f"{name}_suhi_{MATCHED}"],
            }
            for name in sources
        },
        "references": {FIXED: results["rural_fixed"], MATCHED: results["rural_matched"]},
        "rasters": {
            **{name: results[name] for name in sources},
            **{f"{name}_suhi": results[f"{name}_suhi_raster"] for name in sources},
        },
        "outputs": {},
        "duration_s": 0.0,
    }

    for sink in sinks:
        for name, raster in report["rasters"].items():
            sink.show(name, raster, SUHI_STYLE if name.endswith("_suhi") else LST_STYLE)
        for name, feature in report["references"].items():
            sink.show(f"rural_{name}", feature)
        for name, result in report["sources"].items():
            sink.show(f"{name}_suhi_{FIXED}", result["suhi_fixed"].value)
            sink.show(f"{name}_suhi_{MATCHED}", result["suhi_matched"].value)

    report["duration_s"] = time.monotonic() - started
    if export:
        report["outputs"] = export_report(report, config, run_id=run_id)

    logger.info(
        "Pipeline completed | feature=%s | sources=%d | duration=%.2fs | %s",
        aoi.name,
        len(sources),
        report["duration_s"],
        " | ".join(
            f"{name}: fixed={r['suhi_fixed'].value:.2f} matched={r['suhi_matched'].value:.2f}"
            for name, r in report["sources"].items()
        ),
    )
    return report


def export_report(report: SuhiReport, config: PipelineConfig, *, run_id: str = "") -> dict[str, str]:
    """Write every raster, both reference sets and the run metadata.

    Returns:
        Artefact name to path mapping (also recorded in the metadata).
    """
    out = Path(config.output_dir)
    stem = _slug(report["feature"])
    outputs: dict[str, str] = {}

    for name, raster in report["rasters"].items():
        outputs[name] = str(write_geotiff(raster, out / f"{stem}_{name}.tif"))
    for name, feature in report["references"].items():
        outputs[f"rural_{name}"] = str(write_features([feature], out / f"{stem}_rural_{name}.geojson"))

    metadata_path = out / f"{stem}_metadata.json"
    outputs["metadata"] = str(metadata_path)
    record = SuhiRunRecord.from_report({**report, "outputs": outputs}, config, run_id=run_id)
    write_metadata(record, metadata_path)
    return outputs


def _slug(name: str) -> str:
    return "".join(c if c.isalnum() or c in "-_" else "_" for c in name).strip("_").lower() or "aoi"
