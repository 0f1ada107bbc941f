"""Tile pyramid structure analysis and Web-Mercator tile math.

This module recognizes the ``{z}/{x}/{y}.{ext}`` naming convention in a
flat collection of file paths (for example the relative paths of a
directory upload), groups the tiles by zoom level, and derives the
geographic bounding box of the pyramid from its lowest zoom level using
the inverse Web-Mercator projection.

Only the standard XYZ scheme is supported: 256 pixel tiles, a 2^z by 2^z
grid per zoom level, and row 0 at the northern edge. TMS pyramids (row 0
in the south) will report mirrored latitudes.

Example:
    Analyze the relative paths of an uploaded tile directory:
        >>> from tileviewer.services.tile_analyzer import analyze_tile_files
        >>> analysis = analyze_tile_files([
        ...     "ortho/2/1/1.png",
        ...     "ortho/2/2/1.png",
        ...     "ortho/3/2/2.png",
        ...     "ortho/tilemapresource.xml",
        ... ])
        >>> analysis.zoom_levels
        (2, 3)
        >>> analysis.bounds  # (west, south, east, north)
        (-90.0, 0.0, 90.0, 66.51326044311186)
"""

from __future__ import annotations

import math
import os
import re
from typing import TYPE_CHECKING, NamedTuple

from tileviewer.core.logging import get_logger
from tileviewer.db import models as db_models

if TYPE_CHECKING:
    import pathlib
    from collections.abc import Iterable

logger = get_logger(__name__)

TILE_PATTERN = re.compile(
    r"(?:^|/)(\d+)/(\d+)/(\d+)\.(png|jpg|jpeg)$", re.IGNORECASE,
)
METADATA_PATTERN = re.compile(r"\.(xml|tilesxml)$", re.IGNORECASE)

# Grid indices stop being meaningful well before this; it also keeps 2**z small.
MAX_TILE_ZOOM = 30

_EDGE_EPSILON = 1e-9


class TileStructureError(ValueError):
    """Raised when a file collection contains no recognizable tile pyramid.

    Callers decide whether this is fatal: an upload form may reject the
    directory, while a bulk import may skip it and continue.
    """


class TileIndex(NamedTuple):
    """Position of one tile file in the pyramid."""

    z: int
    x: int
    y: int
    extension: str
    path: str


class TileRange(NamedTuple):
    """Inclusive tile index range at a single zoom level."""

    zoom: int
    min_x: int
    max_x: int
    min_y: int
    max_y: int


def _normalize_path(path: str | os.PathLike[str]) -> str:
    return os.fspath(path).replace("\\", "/")


def parse_tile_path(path: str | os.PathLike[str]) -> TileIndex | None:
    """Parse a ``{z}/{x}/{y}.{ext}`` file path into a tile index.

    Leading directories are allowed, so both ``3/4/2.png`` and
    ``upload/ortho/3/4/2.png`` are recognized. Indices outside the grid
    of their zoom level are treated as malformed and rejected.

    Args:
        path: Relative or absolute file path, either separator style.

    Returns:
        TileIndex if the path names a valid tile, None otherwise.
    """
    normalized = _normalize_path(path)
    match = TILE_PATTERN.search(normalized)
    if match is None:
        return None

    z, x, y = (int(group) for group in match.groups()[:3])
    if z > MAX_TILE_ZOOM:
        logger.debug("Skipping tile with unsupported zoom", extra={"path": normalized})
        return None

    n = 2**z
    if x >= n or y >= n:
        logger.debug("Skipping tile outside its zoom grid", extra={"path": normalized})
        return None

    return TileIndex(z, x, y, match.group(4).lower(), normalized)


def is_metadata_file(path: str | os.PathLike[str]) -> bool:
    """Return True for ``*.xml``/``*.tilesxml`` pyramid metadata files."""
    return METADATA_PATTERN.search(_normalize_path(path)) is not None


def tile_x_to_lon(x: float, zoom: int) -> float:
    """Longitude of the western edge of tile column ``x``."""
    return x / 2**zoom * 360.0 - 180.0


def tile_y_to_lat(y: float, zoom: int) -> float:
    """Latitude of the northern edge of tile row ``y``."""
    n = 2**zoom
    return math.degrees(math.atan(math.sinh(math.pi * (1 - 2 * y / n))))


def lon_to_tile_x(lon: float, zoom: int) -> float:
    """Fractional tile column containing longitude ``lon``."""
    return (lon + 180.0) / 360.0 * 2**zoom


def lat_to_tile_y(lat: float, zoom: int) -> float:
    """Fractional tile row containing latitude ``lat``."""
    lat_rad = math.radians(lat)
    return (1.0 - math.asinh(math.tan(lat_rad)) / math.pi) / 2.0 * 2**zoom


def tile_bounds(
    min_x: int,
    max_x: int,
    min_y: int,
    max_y: int,
    zoom: int,
) -> db_models.BBox:
    """Geographic extent of an inclusive tile index range.

    Args:
        min_x: Westernmost tile column.
        max_x: Easternmost tile column.
        min_y: Northernmost tile row.
        max_y: Southernmost tile row.
        zoom: Zoom level of the indices.

    Returns:
        Bounding box as (west, south, east, north) in degrees.
    """
    return (
        tile_x_to_lon(min_x, zoom),
        tile_y_to_lat(max_y + 1, zoom),
        tile_x_to_lon(max_x + 1, zoom),
        tile_y_to_lat(min_y, zoom),
    )


def bounds_to_tile_range(bounds: db_models.BBox, zoom: int) -> TileRange:
    """Tile index range covering a bounding box at ``zoom``.

    This is the inverse of tile_bounds(): feeding it the bounds of a tile
    range returns that same range. Edges that fall exactly on a tile
    boundary do not pull in the neighbouring tile.

    Args:
        bounds: (west, south, east, north) in degrees.
        zoom: Zoom level to compute indices for.

    Returns:
        Inclusive TileRange clamped to the zoom grid.
    """
    west, south, east, north = bounds
    last = 2**zoom - 1

    min_x = math.floor(lon_to_tile_x(west, zoom) + _EDGE_EPSILON)
    max_x = math.ceil(lon_to_tile_x(east, zoom) - _EDGE_EPSILON) - 1
    min_y = math.floor(lat_to_tile_y(north, zoom) + _EDGE_EPSILON)
    max_y = math.ceil(lat_to_tile_y(south, zoom) - _EDGE_EPSILON) - 1

    def clamp(value: int) -> int:
        return max(0, min(last, value))

    return TileRange(
        zoom=zoom,
        min_x=clamp(min_x),
        max_x=clamp(max(max_x, min_x)),
        min_y=clamp(min_y),
        max_y=clamp(max(max_y, min_y)),
    )


def analyze_tile_files(
    paths: Iterable[str | os.PathLike[str]],
) -> db_models.TileSetAnalysis:
    """Derive zoom levels and bounds from a collection of tile file paths.

    Paths matching ``{z}/{x}/{y}.(png|jpg|jpeg)`` (case-insensitive) are
    counted as tiles, ``*.xml``/``*.tilesxml`` as metadata files, anything
    else is ignored. The bounding box comes from the tiles at the lowest
    zoom level present, since that level covers the pyramid's full extent
    with the fewest tiles.

    Args:
        paths: File paths, typically relative to the upload root.

    Returns:
        TileSetAnalysis with file count, ascending zoom levels and bounds.

    Raises:
        TileStructureError: If no path matches the tile naming convention.
    """
    tiles: list[TileIndex] = []
    metadata_count = 0

    for path in paths:
        if is_metadata_file(path):
            metadata_count += 1
            continue

        tile = parse_tile_path(path)
        if tile is not None:
            tiles.append(tile)

    if not tiles:
        raise TileStructureError("No recognizable {z}/{x}/{y} tile structure")

    zoom_levels = tuple(sorted({tile.z for tile in tiles}))
    min_zoom = zoom_levels[0]
    lowest = [tile for tile in tiles if tile.z == min_zoom]

    bounds = tile_bounds(
        min(tile.x for tile in lowest),
        max(tile.x for tile in lowest),
        min(tile.y for tile in lowest),
        max(tile.y for tile in lowest),
        min_zoom,
    )

    analysis = db_models.TileSetAnalysis(
        file_count=len(tiles),
        zoom_levels=zoom_levels,
        bounds=bounds,
        structure="tiled",
        metadata_file_count=metadata_count,
        formats=tuple(sorted({tile.extension for tile in tiles})),
    )
    logger.info(
        "Analyzed tile structure",
        extra={
            "tiles": analysis.file_count,
            "zoom_range": f"{analysis.min_zoom}-{analysis.max_zoom}",
        },
    )
    return analysis


def scan_tile_directory(root: pathlib.Path) -> db_models.TileSetAnalysis:
    """Analyze every file below ``root`` by its path relative to ``root``.

    Raises:
        TileStructureError: If the directory holds no tile pyramid.
    """
    return analyze_tile_files(
        path.relative_to(root).as_posix()
        for path in root.rglob("*")
        if path.is_file()
    )
