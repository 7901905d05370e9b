"""Pydantic run-metadata model.

The run record is the audit trail of one pipeline execution: which
configuration was used, what each LST source measured, which rural
references were built and where the artefacts were written.

The schema is split into nested sections:
- **config**: date range, seasonal window, buffers, scales, fallback policy
- **sources**: per-LST-source zonal means and S-UHI values
- **references**: rural reference geometry summaries
- **processing**: timing, status and attributed errors
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field

if TYPE_CHECKING:
    from suhi_pipeline.core.config import PipelineConfig
    from suhi_pipeline.orchestrators.suhi_pipeline import SuhiReport

SCHEMA_VERSION = "suhi-run-v1"


class ConfigMetadata(BaseModel):
    """Configuration the run was executed with.

    Attributes:
        date_range: ``"start/end"`` ISO dates (inclusive).
        doy_window: ``[first, last]`` day-of-year window (inclusive).
        cloud_score_threshold: Cloud scores above this were masked.
        fixed_buffer_m: Width of the fixed rural ring in metres.
        buffer_step_m: Step of the area-matched search in metres.
        buffer_count: Number of evaluated widths.
        rural_fallback: ``"fail"`` or ``"zero"``.
        work_crs: CRS of every geometry and raster.
        catalog: Scene catalog name.
    """

    date_range: str = ""
    doy_window: list[int] = Field(default_factory=list)
    cloud_score_threshold: float = 0.0
    fixed_buffer_m: float = 0.0
    buffer_step_m: float = 0.0
    buffer_count: int = 0
    rural_fallback: str = ""
    work_crs: str = ""
    catalog: str = ""

    @classmethod
    def from_config(cls, config: PipelineConfig) -> ConfigMetadata:
        return cls(
            date_range=config.date_range,
            doy_window=[config.doy_first, config.doy_last],
            cloud_score_threshold=config.cloud_score_threshold,
            fixed_buffer_m=config.fixed_buffer_m,
            buffer_step_m=config.buffer_step_m,
            buffer_count=config.buffer_count,
            rural_fallback=config.rural_fallback,
            work_crs=config.work_crs,
            catalog=config.catalog,
        )


class SourceMetadata(BaseModel):
    """Measurements of one LST source.  Temperatures in degrees Celsius.

    ``None`` marks "no data"; it is never written as ``0``.
    """

    name: str
    scale_m: float = 0.0
    urban_mean: float | None = None
    urban_pixels: int = 0
    rural_fixed_mean: float | None = None
    rural_matched_mean: float | None = None
    suhi_fixed: float | None = None
    suhi_matched: float | None = None
    rural_fallback_applied: bool = False


class ReferenceMetadata(BaseModel):
    """Summary of one rural reference geometry."""

    name: str
    area_km2: float = 0.0
    properties: dict[str, Any] = Field(default_factory=dict)


class ProcessingMetadata(BaseModel):
    """Execution details.

    Attributes:
        timestamp: Run timestamp (ISO 8601).
        duration_s: Wall-clock duration in seconds.
        status: ``"success"`` or ``"failed"``.
        errors: ``PipelineError.to_error_dict()`` payloads.
    """

    timestamp: str = ""
    duration_s: float = 0.0
    status: str = "pending"
    errors: list[dict[str, Any]] = Field(default_factory=list)


class SuhiRunRecord(BaseModel):
    """Top-level run metadata document."""

    schema_version: str = Field(default=SCHEMA_VERSION, alias="$schema")
    run_id: str = ""
    feature_name: str = ""
    config: ConfigMetadata = Field(default_factory=ConfigMetadata)
    sources: list[SourceMetadata] = Field(default_factory=list)
    references: list[ReferenceMetadata] = Field(default_factory=list)
    outputs: dict[str, str] = Field(default_factory=dict)
    processing: ProcessingMetadata = Field(default_factory=ProcessingMetadata)

    model_config = {"populate_by_name": True}

    @classmethod
    def from_report(
        cls,
        report: SuhiReport,
        config: PipelineConfig,
        *,
        run_id: str = "",
        timestamp: str = "",
    ) -> SuhiRunRecord:
        """Construct a record from a completed pipeline report."""
        if not timestamp:
            timestamp = datetime.now(UTC).isoformat()

        sources = [
            SourceMetadata(
                name=name,
                scale_m=result["scale_m"],
                urban_mean=result["urban"].value,
                urban_pixels=result["urban"].pixel_count,
                rural_fixed_mean=result["rural_fixed"].value,
                rural_matched_mean=result["rural_matched"].value,
                suhi_fixed=result["suhi_fixed"].value,
                suhi_matched=result["suhi_matched"].value,
                rural_fallback_applied=(
                    result["suhi_fixed"].rural_fallback_applied or result["suhi_matched"].rural_fallback_applied
                ),
            )
            for name, result in report["sources"].items()
        ]
        references = [
            ReferenceMetadata(name=name, area_km2=feature.area / 1e6, properties=dict(feature.properties))
            for name, feature in report["references"].items()
        ]
        return cls(
            run_id=run_id,
            feature_name=report["feature"],
            config=ConfigMetadata.from_config(config),
            sources=sources,
            references=references,
            outputs=dict(report["outputs"]),
            processing=ProcessingMetadata(
                timestamp=timestamp,
                duration_s=report["duration_s"],
                status="success",
            ),
        )

    @classmethod
    def failed(
        cls,
        error_dict: dict[str, Any],
        config: PipelineConfig,
        *,
        feature_name: str = "",
        run_id: str = "",
        duration_s: float = 0.0,
    ) -> SuhiRunRecord:
        """Record for a run that stopped with an attributed error."""
        return cls(
            run_id=run_id,
            feature_name=feature_name,
            config=ConfigMetadata.from_config(config),
            processing=ProcessingMetadata(
                timestamp=datetime.now(UTC).isoformat(),
                duration_s=duration_s,
                status="failed",
                errors=[error_dict],
            ),
        )

    def to_json(self, *, indent: int = 2) -> str:
        """Serialise to a JSON string using the ``$schema`` alias."""
        return self.model_dump_json(indent=indent, by_alias=True)

    def to_dict(self) -> dict[str, object]:
        return self.model_dump(by_alias=True)  # type: ignore[return-value]
