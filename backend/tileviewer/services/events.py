"""Load events emitted by rendering strategies.

Tile and tileset callbacks from the rendering client are turned into these
plain event objects and fed to TilePipeline.handle_event(), which applies
them to the load-status tracker and the auto-zoom scheduler. Events carry
only the layer id; whether a TileLoaded counts as a layer's first success
depends on the layer's strategy (first raster tile vs. tileset manifest).
"""

from __future__ import annotations

import dataclasses


@dataclasses.dataclass(frozen=True)
class TileLoaded:
    """One tile (raster image or tileset content tile) resolved successfully."""

    layer_id: str


@dataclasses.dataclass(frozen=True)
class TileFailed:
    """One tile or tileset request failed."""

    layer_id: str
    message: str = "Failed to load tile"


@dataclasses.dataclass(frozen=True)
class ViewportLoaded:
    """Every raster tile of the current viewport batch has resolved."""

    layer_id: str
    tile_count: int


@dataclasses.dataclass(frozen=True)
class TilesetLoaded:
    """The tileset manifest of a 3D layer was loaded."""

    layer_id: str


LoadEvent = TileLoaded | TileFailed | ViewportLoaded | TilesetLoaded
