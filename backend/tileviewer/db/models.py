"""Data models for tile layers, basemaps and analyzed tile sets.

This module defines the core data structures used throughout the application
to represent map tile sources. A LayerDescriptor describes one tile source
the map can composite (a raster pyramid or a 3D tileset), a
BasemapDescriptor describes a background map the user can activate, and a
TileSetAnalysis captures what was derived from a directory of
``{z}/{x}/{y}`` image files. All bounds are geographic (EPSG:4326) and
ordered ``(west, south, east, north)``.

Example:
    Creating a descriptor for a remote orthophoto pyramid:
        >>> from tileviewer.db.models import LayerDescriptor
        >>> layer = LayerDescriptor(
        ...     id="ortho-1",
        ...     name="City orthophoto 2024",
        ...     kind="orthophoto-2d",
        ...     source="https://tiles.example.com/ortho/{z}/{x}/{y}.png",
        ...     bounds=(15.90, 45.75, 16.10, 45.85),
        ... )

    Creating a descriptor for a 3D tileset:
        >>> mesh = LayerDescriptor(
        ...     id="mesh-1",
        ...     name="City mesh",
        ...     kind="orthophoto-3d",
        ...     source="https://tiles.example.com/mesh/tileset.json",
        ... )
"""

from __future__ import annotations

import dataclasses
import datetime
from typing import Literal

BBox = tuple[float, float, float, float]
LayerKind = Literal["background", "orthophoto-2d", "orthophoto-3d"]
SourceType = Literal["url", "local"]
BasemapType = Literal[
    "satellite", "street", "terrain", "dark", "light", "custom"
]

RASTER_KINDS: frozenset[str] = frozenset({"background", "orthophoto-2d"})
TILESET_KINDS: frozenset[str] = frozenset({"orthophoto-3d"})
LAYER_KINDS: frozenset[str] = RASTER_KINDS | TILESET_KINDS

# Kind names written by earlier versions of the layer store.
KIND_ALIASES: dict[str, str] = {
    "orthophoto": "orthophoto-2d",
    "2d-orthophoto": "orthophoto-2d",
    "3d-orthophoto": "orthophoto-3d",
}


def canonical_kind(kind: str) -> str:
    """Map legacy kind names to their current spelling."""
    return KIND_ALIASES.get(kind, kind)


@dataclasses.dataclass
class LayerExtraMetadata:
    """Descriptive metadata attached to imagery layers."""

    resolution: str | None = None
    capture_date: str | None = None
    provider: str | None = None


@dataclasses.dataclass
class LayerDescriptor:
    """A tile source the map can render as one layer.

    The pipeline treats descriptors as read-only input for each render
    cycle; load status is derived alongside them and never written back.
    ``kind`` is a plain string so descriptors written by newer producers
    with kinds this version does not know still load (they are skipped at
    dispatch instead of failing validation of the whole list).

    Attributes:
        id: Unique identifier for the layer.
        name: Human-readable layer name.
        kind: "background", "orthophoto-2d" or "orthophoto-3d".
        source: URL template with ``{z}/{x}/{y}`` for raster kinds, or a
            tileset manifest URL for "orthophoto-3d".
        visible: Whether the layer is rendered.
        opacity: Layer opacity between 0 and 1.
        min_zoom: Lowest zoom level tiles are requested for.
        max_zoom: Highest zoom level tiles are requested for.
        bounds: Optional extent as (west, south, east, north) in degrees.
        source_type: "url" for remote sources, "local" for uploaded tiles.
        tile_size: Tile edge in pixels for raster kinds.
        attribution: Optional attribution text.
        metadata: Optional resolution/capture date/provider details.
        created_at: Timestamp when the layer was registered.
    """

    id: str
    name: str
    kind: str
    source: str
    visible: bool = True
    opacity: float = 1.0
    min_zoom: int = 0
    max_zoom: int = 22
    bounds: BBox | None = None
    source_type: SourceType = "url"
    tile_size: int = 256
    attribution: str | None = None
    metadata: LayerExtraMetadata | None = None
    created_at: datetime.datetime = dataclasses.field(
        default_factory=lambda: datetime.datetime.now(tz=datetime.UTC),
    )

    @property
    def is_raster(self) -> bool:
        return canonical_kind(self.kind) in RASTER_KINDS

    @property
    def is_tileset(self) -> bool:
        return canonical_kind(self.kind) in TILESET_KINDS


BASEMAP_LAYER_PREFIX = "basemap-"


@dataclasses.dataclass
class BasemapDescriptor:
    """A background map stored separately from data layers.

    Basemaps are composited underneath data layers as "background" raster
    layers; ``is_active`` maps to the layer's visibility. Their layer ids carry
    BASEMAP_LAYER_PREFIX so they never collide with data layer ids.
    """

    id: str
    name: str
    type: BasemapType = "custom"
    url: str | None = None
    tiles: str | None = None
    attribution: str | None = None
    is_active: bool = False

    def to_layer(self, max_zoom: int = 19) -> LayerDescriptor:
        """Convert the basemap into a background layer descriptor."""
        return LayerDescriptor(
            id=f"{BASEMAP_LAYER_PREFIX}{self.id}",
            name=self.name,
            kind="background",
            source=self.url or self.tiles or "",
            visible=self.is_active,
            opacity=1.0,
            min_zoom=0,
            max_zoom=max_zoom,
            source_type="url" if self.url else "local",
            attribution=self.attribution,
        )


@dataclasses.dataclass(frozen=True)
class TileSetAnalysis:
    """Result of analyzing a set of ``{z}/{x}/{y}`` tile files.

    Created once per locally-derived source at ingestion time and never
    modified afterwards.

    Attributes:
        file_count: Number of recognized tile image files.
        zoom_levels: Distinct zoom levels present, ascending, non-empty.
        bounds: Extent computed from the lowest zoom level's tiles.
        structure: Structure tag, always "tiled" for pyramids.
        metadata_file_count: Number of ``*.xml``/``*.tilesxml`` files seen.
        formats: Lower-case image extensions present.
    """

    file_count: int
    zoom_levels: tuple[int, ...]
    bounds: BBox
    structure: str = "tiled"
    metadata_file_count: int = 0
    formats: tuple[str, ...] = ()

    @property
    def min_zoom(self) -> int:
        return self.zoom_levels[0]

    @property
    def max_zoom(self) -> int:
        return self.zoom_levels[-1]
