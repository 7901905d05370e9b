"""Shared helpers (raster I/O)."""
