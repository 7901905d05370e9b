"""Surface Urban Heat Island (S-UHI) pipeline.

Derives Land Surface Temperature from satellite imagery, builds rural
reference geometries around an urban area of interest, and reduces the
temperature rasters over urban and rural zones to an S-UHI intensity.
"""

__version__ = "0.1.0"
