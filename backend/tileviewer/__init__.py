"""Tileviewer package: tile ingestion and visualization backend.

This package contains the FastAPI service behind a web map that composites
raster tile pyramids and 3D tilesets. It analyzes uploaded ``{z}/{x}/{y}``
tile directories, keeps the layer and basemap registries, and runs the tile
pipeline that picks a rendering strategy per layer, tracks each layer's
load status, and frames the camera on the first layer that loads.

- Tile structure analysis with Web-Mercator bounds from the lowest zoom
- Layer and basemap registries in memory or PostgreSQL
- Per-layer load tracking and one-shot auto-zoom driven by tile callbacks
- Local tile serving for ingested uploads

See README and module sub-docstrings for details on architecture and usage.
"""
