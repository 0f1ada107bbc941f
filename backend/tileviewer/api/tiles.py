"""XYZ tile serving endpoint for locally ingested tile sets.

Layers registered through the ingest endpoint point their URL template at
this router. Tiles are served straight from ``tiles_dir/<layer id>/`` as
stored at upload time; the request carries no extension, so whichever of
png/jpg/jpeg was uploaded for that index is returned.

Example:
    Request a tile:
        >>> response = client.get("/tiles/local/abc-123/2/1/1")
        >>> # Returns the stored image with Content-Type image/png
"""

from __future__ import annotations

import fastapi
from fastapi import responses

from tileviewer.api import dependencies
from tileviewer.core import config
from tileviewer.db import database

router = fastapi.APIRouter(prefix="/tiles", tags=["tiles"])

MEDIA_TYPES = {
    "png": "image/png",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
}


@router.get("/local/{layer_id}/{z}/{x}/{y}")
async def local_tile(
    layer_id: str,
    z: int,
    x: int,
    y: int,
    settings: config.Settings = fastapi.Depends(config.get_settings),  # noqa: B008
    repo: database.LayerRepositoryProtocol = fastapi.Depends(  # noqa: B008
        dependencies.get_layer_repo,
    ),
) -> responses.FileResponse:
    """Serve one stored tile of a local layer.

    Args:
        layer_id: Unique identifier of a layer with source_type "local".
        z: Zoom level.
        x: Tile X coordinate.
        y: Tile Y coordinate.
        settings: Application settings (injected via FastAPI Depends).
        repo: Layer repository (injected via FastAPI Depends).

    Returns:
        The tile image file.

    Raises:
        HTTPException: 404 if the layer is unknown, is not local, or has no
            tile at this index.
    """
    layer = repo.get(layer_id)
    if layer is None or layer.source_type != "local":
        raise fastapi.HTTPException(
            status_code=404,
            detail="Local layer not found",
        )

    tile_dir = settings.tiles_dir / layer.id / str(z) / str(x)
    for extension, media_type in MEDIA_TYPES.items():
        path = tile_dir / f"{y}.{extension}"
        if path.is_file():
            return responses.FileResponse(path, media_type=media_type)

    raise fastapi.HTTPException(
        status_code=404,
        detail="Tile not found",
    )
