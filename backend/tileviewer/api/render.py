"""Render state API endpoints.

GET /api/render synchronises the tile pipeline with the stored basemaps and
layers and returns the render primitives a map client should draw, along
with the camera and every active layer's load status. The client reports
tile outcomes back through POST /api/render/events; each report is routed
to the layer's current rendering strategy, exactly as an in-process
client's callbacks would be.

Example:
    Report a resolved raster tile:
        >>> client.post("/api/render/events", json={
        ...     "type": "tile-load",
        ...     "layer_id": "ortho-1",
        ...     "tile": {"x": 1, "y": 1, "z": 2},
        ...     "content": "blob:https://viewer.example.com/6c1b",
        ... })
        >>> # Returns: {"applied": true, "status": {"state": "loading", ...}}
"""

from __future__ import annotations

import base64
import binascii
import dataclasses
from typing import Any, Literal

import fastapi
import pydantic

from tileviewer.api import dependencies
from tileviewer.db import database
from tileviewer.services import dispatcher
from tileviewer.services import load_status
from tileviewer.services import pipeline as pipeline_service

router = fastapi.APIRouter(prefix="/api/render", tags=["render"])


class TilePayload(pydantic.BaseModel):
    x: int
    y: int
    z: int


class RenderEventRequest(pydantic.BaseModel):
    """A tile outcome reported by the map client.

    Attributes:
        type: Which callback fired.
        layer_id: Layer the callback belongs to.
        tile: Tile index for raster tile-load and tile-error events.
        tiles: Resolved tiles for a raster viewport-load event.
        content: Image handle (object URL, data URL) of a loaded tile.
        content_base64: Encoded image bytes of a loaded tile.
        url: Failing URL of a 3D tile error.
        message: Error message of a tile-error event.
    """

    type: Literal["tile-load", "tile-error", "viewport-load", "tileset-load"]
    layer_id: str
    tile: TilePayload | None = None
    tiles: list[TilePayload] = []
    content: str | None = None
    content_base64: str | None = None
    url: str | None = None
    message: str | None = None


def _tile_content(payload: RenderEventRequest) -> object:
    if payload.content_base64 is not None:
        try:
            return base64.b64decode(payload.content_base64, validate=True)
        except binascii.Error as exc:
            raise fastapi.HTTPException(
                status_code=400,
                detail="content_base64 is not valid base64",
            ) from exc
    return payload.content


def _raster_tile(tile: TilePayload | None, content: object = None) -> dispatcher.RasterTile:
    if tile is None:
        return dispatcher.RasterTile(x=0, y=0, z=0, content=content)
    return dispatcher.RasterTile(x=tile.x, y=tile.y, z=tile.z, content=content)


def _route_raster(
    strategy: dispatcher.RasterTileStrategy,
    payload: RenderEventRequest,
) -> bool:
    if payload.type == "tile-load":
        return strategy.handle_tile_load(
            _raster_tile(payload.tile, _tile_content(payload)),
        )
    if payload.type == "tile-error":
        return strategy.handle_tile_error(payload.message)
    if payload.type == "viewport-load":
        return strategy.handle_viewport_load(
            [_raster_tile(tile) for tile in payload.tiles],
        )
    raise fastapi.HTTPException(
        status_code=400,
        detail=f"Event '{payload.type}' does not apply to raster layers",
    )


def _route_tileset(
    strategy: dispatcher.TilesetStrategy,
    payload: RenderEventRequest,
) -> bool:
    if payload.type == "tileset-load":
        return strategy.handle_tileset_load()
    if payload.type == "tile-load":
        return strategy.handle_tile_load()
    if payload.type == "tile-error":
        return strategy.handle_tile_error(None, payload.url, payload.message)
    raise fastapi.HTTPException(
        status_code=400,
        detail=f"Event '{payload.type}' does not apply to 3D tilesets",
    )


@router.get("")
async def get_render_state(
    pipeline: pipeline_service.TilePipeline = fastapi.Depends(  # noqa: B008
        dependencies.get_pipeline,
    ),
    layer_repo: database.LayerRepositoryProtocol = fastapi.Depends(  # noqa: B008
        dependencies.get_layer_repo,
    ),
    basemap_repo: database.BasemapRepositoryProtocol = fastapi.Depends(  # noqa: B008
        dependencies.get_basemap_repo,
    ),
) -> dict[str, Any]:
    """Render primitives in draw order, plus camera and load statuses."""
    primitives = pipeline_service.render_from_repositories(
        pipeline, layer_repo, basemap_repo,
    )
    return {
        "layers": [primitive.to_dict() for primitive in primitives],
        "viewport": dataclasses.asdict(pipeline.viewport.state),
        "statuses": {
            layer_id: status.to_dict()
            for layer_id, status in pipeline.statuses().items()
        },
        "pending_auto_zoom": (
            pipeline.pending_auto_zoom.layer_id
            if pipeline.pending_auto_zoom else None
        ),
    }


@router.post("/events")
async def post_render_event(
    payload: RenderEventRequest,
    pipeline: pipeline_service.TilePipeline = fastapi.Depends(  # noqa: B008
        dependencies.get_pipeline,
    ),
) -> dict[str, Any]:
    """Feed one client callback into the layer's current strategy.

    Raises:
        HTTPException: 404 if the layer is not being rendered, 400 if the
            event type does not fit the layer's strategy.
    """
    strategy = pipeline.strategy(payload.layer_id)
    if strategy is None:
        raise fastapi.HTTPException(
            status_code=404,
            detail="Layer is not being rendered",
        )

    if isinstance(strategy, dispatcher.RasterTileStrategy):
        applied = _route_raster(strategy, payload)
    else:
        applied = _route_tileset(strategy, payload)

    status = pipeline.status(payload.layer_id) or load_status.LoadStatus()
    return {
        "applied": applied,
        "status": status.to_dict(),
        "viewport": dataclasses.asdict(pipeline.viewport.state),
    }
