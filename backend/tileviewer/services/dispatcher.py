"""Rendering strategy selection per layer kind.

Each visible layer gets one strategy chosen purely from its ``kind``:

* ``background`` and ``orthophoto-2d`` use RasterTileStrategy. The source
  is an XYZ URL template; the rendering client requests tiles lazily for
  the current viewport and reports every resolved tile back. Payloads that
  are not usable image handles are dropped with a warning and are not
  counted as loaded.
* ``orthophoto-3d`` uses TilesetStrategy. The source is a tileset manifest
  URL; the client loads the manifest and then refines tiles on its own.
* Any other kind is skipped with a log line and produces no strategy.

Strategies never touch load status directly. Their callbacks translate
client notifications into events from tileviewer.services.events and hand
them to a LoadEventSink together with the strategy itself, which lets the
sink drop completions from a strategy that has since been replaced.

Example:
    >>> strategy = create_strategy(layer, pipeline)
    >>> primitive = strategy.build()
    >>> primitive.on_tile_load(RasterTile(x=1, y=1, z=2, content=image))
"""

from __future__ import annotations

import dataclasses
from typing import TYPE_CHECKING, Any, Protocol

from tileviewer.core.logging import get_logger
from tileviewer.db import models as db_models
from tileviewer.services import events
from tileviewer.services import layer_validation
from tileviewer.services import tile_analyzer
from tileviewer.utils import image_helpers

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from tileviewer.core import config

logger = get_logger(__name__)

DEFAULT_TILESET_POINT_SIZE = 2


class LoadEventSink(Protocol):
    """Receiver of strategy events (implemented by TilePipeline)."""

    def emit(self, strategy: RenderStrategy, event: events.LoadEvent) -> bool: ...


@dataclasses.dataclass(frozen=True)
class RasterTile:
    """A raster tile resolved by the rendering client."""

    x: int
    y: int
    z: int
    content: Any = None

    @property
    def bounding_box(self) -> db_models.BBox:
        return tile_analyzer.tile_bounds(self.x, self.x, self.y, self.y, self.z)


@dataclasses.dataclass(frozen=True)
class BitmapTile:
    """One composited raster tile image."""

    id: str
    image: image_helpers.TileImage
    bounds: db_models.BBox
    opacity: float


@dataclasses.dataclass(frozen=True)
class RasterTileLayer:
    """Render primitive for an XYZ raster pyramid."""

    id: str
    layer_id: str
    url_template: str
    min_zoom: int
    max_zoom: int
    tile_size: int
    opacity: float
    on_tile_load: Callable[[RasterTile], bool]
    on_tile_error: Callable[[object], bool]
    on_viewport_load: Callable[[Sequence[RasterTile]], bool]
    render_sub_layer: Callable[[RasterTile], BitmapTile | None]
    type: str = "raster-tile"

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "layer_id": self.layer_id,
            "data": self.url_template,
            "min_zoom": self.min_zoom,
            "max_zoom": self.max_zoom,
            "tile_size": self.tile_size,
            "opacity": self.opacity,
        }


@dataclasses.dataclass(frozen=True)
class Tile3DLayer:
    """Render primitive for a hierarchical 3D tileset."""

    id: str
    layer_id: str
    manifest_url: str
    opacity: float
    point_size: int
    on_tileset_load: Callable[..., bool]
    on_tile_load: Callable[..., bool]
    on_tile_error: Callable[..., bool]
    type: str = "tile-3d"

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "layer_id": self.layer_id,
            "data": self.manifest_url,
            "opacity": self.opacity,
            "point_size": self.point_size,
        }


RenderPrimitive = RasterTileLayer | Tile3DLayer


def _error_message(error: object, default: str) -> str:
    message = getattr(error, "message", None) or str(error or "")
    return message or default


class RasterTileStrategy:
    """Strategy for background and 2D orthophoto raster pyramids."""

    kind = "raster"

    def __init__(
        self,
        layer: db_models.LayerDescriptor,
        sink: LoadEventSink,
        default_tile_size: int = 256,
    ) -> None:
        self.layer = layer
        self.layer_id = layer.id
        self._sink = sink
        self._tile_size = layer.tile_size or default_tile_size

    @property
    def primitive_id(self) -> str:
        return f"layer-{self.layer_id}"

    def handle_tile_load(self, tile: RasterTile) -> bool:
        """Count a resolved tile if its payload is a usable image."""
        if image_helpers.coerce_tile_image(tile.content) is None:
            logger.warning(
                "Invalid tile content dropped",
                extra={
                    "layer_id": self.layer_id,
                    "tile": f"{tile.z}/{tile.x}/{tile.y}",
                    "content_type": type(tile.content).__name__,
                },
            )
            return False
        return self._sink.emit(self, events.TileLoaded(self.layer_id))

    def handle_tile_error(self, error: object) -> bool:
        message = _error_message(error, "Failed to load tile")
        logger.warning(
            "Tile error",
            extra={"layer_id": self.layer_id, "error": message},
        )
        return self._sink.emit(self, events.TileFailed(self.layer_id, message))

    def handle_viewport_load(self, tiles: Sequence[RasterTile]) -> bool:
        logger.debug(
            "Viewport loaded",
            extra={"layer_id": self.layer_id, "tiles": len(tiles)},
        )
        return self._sink.emit(
            self, events.ViewportLoaded(self.layer_id, len(tiles)),
        )

    def render_sub_layer(self, tile: RasterTile) -> BitmapTile | None:
        """Bitmap for one tile, or None when its payload is unusable."""
        image = image_helpers.coerce_tile_image(tile.content)
        if image is None:
            return None
        return BitmapTile(
            id=f"{self.primitive_id}-bitmap-{tile.z}-{tile.x}-{tile.y}",
            image=image,
            bounds=tile.bounding_box,
            opacity=self.layer.opacity,
        )

    def build(self) -> RasterTileLayer:
        return RasterTileLayer(
            id=self.primitive_id,
            layer_id=self.layer_id,
            url_template=self.layer.source,
            min_zoom=self.layer.min_zoom,
            max_zoom=self.layer.max_zoom,
            tile_size=self._tile_size,
            opacity=self.layer.opacity,
            on_tile_load=self.handle_tile_load,
            on_tile_error=self.handle_tile_error,
            on_viewport_load=self.handle_viewport_load,
            render_sub_layer=self.render_sub_layer,
        )


class TilesetStrategy:
    """Strategy for hierarchical 3D tilesets."""

    kind = "tileset"

    def __init__(
        self,
        layer: db_models.LayerDescriptor,
        sink: LoadEventSink,
        point_size: int = DEFAULT_TILESET_POINT_SIZE,
    ) -> None:
        self.layer = layer
        self.layer_id = layer.id
        self._sink = sink
        self._point_size = point_size

    @property
    def primitive_id(self) -> str:
        return f"layer-{self.layer_id}"

    def handle_tileset_load(self, tileset: object = None) -> bool:
        logger.debug("Tileset manifest loaded", extra={"layer_id": self.layer_id})
        return self._sink.emit(self, events.TilesetLoaded(self.layer_id))

    def handle_tile_load(self, tile_header: object = None) -> bool:
        return self._sink.emit(self, events.TileLoaded(self.layer_id))

    def handle_tile_error(
        self,
        tile_header: object = None,
        url: str | None = None,
        message: str | None = None,
    ) -> bool:
        message = message or "Failed to load 3D tile"
        logger.warning(
            "3D tile error",
            extra={"layer_id": self.layer_id, "url": url, "error": message},
        )
        return self._sink.emit(self, events.TileFailed(self.layer_id, message))

    def build(self) -> Tile3DLayer:
        return Tile3DLayer(
            id=self.primitive_id,
            layer_id=self.layer_id,
            manifest_url=self.layer.source,
            opacity=self.layer.opacity,
            point_size=self._point_size,
            on_tileset_load=self.handle_tileset_load,
            on_tile_load=self.handle_tile_load,
            on_tile_error=self.handle_tile_error,
        )


RenderStrategy = RasterTileStrategy | TilesetStrategy


def create_strategy(
    layer: db_models.LayerDescriptor,
    sink: LoadEventSink,
    settings: config.Settings | None = None,
) -> RenderStrategy | None:
    """Select the rendering strategy for a layer from its kind.

    Args:
        layer: Descriptor of a visible layer.
        sink: Receiver of the strategy's load events.
        settings: Optional settings providing tile size and point size.

    Returns:
        A strategy instance, or None if the kind is unsupported or the
        source cannot be dispatched.
    """
    if layer.is_raster:
        ok, message = layer_validation.validate_url_template(layer.source)
        if not ok:
            logger.warning(
                "Raster layer skipped",
                extra={"layer_id": layer.id, "reason": message},
            )
            return None
        tile_size = settings.default_tile_size if settings else 256
        return RasterTileStrategy(layer, sink, default_tile_size=tile_size)

    if layer.is_tileset:
        point_size = (
            settings.tileset_point_size if settings else DEFAULT_TILESET_POINT_SIZE
        )
        return TilesetStrategy(layer, sink, point_size=point_size)

    logger.info(
        "Unsupported layer kind skipped",
        extra={"layer_id": layer.id, "kind": layer.kind},
    )
    return None
