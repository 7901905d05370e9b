"""Pipeline activities.

Each activity performs a single unit of work within the pipeline graph:
- region: AOI loading, analysis region, water and land-cover masks
- reference_geometry: fixed and area-matched rural rings
- zonal_stats: mean and min/max reductions with pixel ceiling and cancellation
- compose_suhi: scalar and per-pixel S-UHI with the rural fallback policy
- export: GeoTIFF, GeoJSON and metadata artefacts
- render: log and PNG inspection sinks
"""
