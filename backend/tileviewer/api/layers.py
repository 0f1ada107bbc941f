"""Layer registry API endpoints.

This module provides REST API endpoints for managing the layers the map
composites: listing, registering, toggling visibility and opacity, and
removing layers, plus per-layer views derived by the tile pipeline (load
status and the camera that frames the layer). All bounding boxes are
geographic degrees ordered (west, south, east, north).

Example:
    Register a remote orthophoto pyramid:
        >>> response = client.post("/api/layers", json={
        ...     "name": "City orthophoto 2024",
        ...     "kind": "orthophoto-2d",
        ...     "source": "https://tiles.example.com/ortho/{z}/{x}/{y}.png",
        ...     "bounds": [15.90, 45.75, 16.10, 45.85],
        ... })
        >>> layer_id = response.json()["id"]

    Hide it again:
        >>> client.patch(f"/api/layers/{layer_id}", json={"visible": False})

    Get the camera framing a layer:
        >>> client.get(f"/api/layers/{layer_id}/camera").json()
        >>> # Returns: {"longitude": 16.0, "latitude": 45.8,
        >>> #           "zoom": 12.32..., "bearing": 0.0, "pitch": 0.0}
"""

from __future__ import annotations

import dataclasses
import uuid
from typing import Any

import fastapi
import pydantic

from tileviewer.api import dependencies
from tileviewer.core import config
from tileviewer.db import database
from tileviewer.db import models as db_models
from tileviewer.services import layer_validation
from tileviewer.services import load_status
from tileviewer.services import notifications
from tileviewer.services import pipeline as pipeline_service
from tileviewer.services import viewport as viewport_service

router = fastapi.APIRouter(prefix="/api/layers", tags=["layers"])


class LayerMetadataPayload(pydantic.BaseModel):
    resolution: str | None = None
    capture_date: str | None = None
    provider: str | None = None


class LayerCreateRequest(pydantic.BaseModel):
    """Body of POST /api/layers."""

    id: str | None = None
    name: str
    kind: db_models.LayerKind
    source: str
    visible: bool = True
    opacity: float = 1.0
    min_zoom: int = 0
    max_zoom: int = 22
    bounds: tuple[float, float, float, float] | None = None
    source_type: db_models.SourceType = "url"
    tile_size: int = 256
    attribution: str | None = None
    metadata: LayerMetadataPayload | None = None


class LayerUpdateRequest(pydantic.BaseModel):
    """Body of PATCH /api/layers/{layer_id}; omitted fields are kept."""

    name: str | None = None
    visible: bool | None = None
    opacity: float | None = None


def layer_to_dict(layer: db_models.LayerDescriptor) -> dict[str, Any]:
    """Convert a layer descriptor to a JSON-friendly dictionary."""
    result = dataclasses.asdict(layer)
    result["created_at"] = layer.created_at.isoformat()
    if layer.bounds is not None:
        result["bounds"] = list(layer.bounds)
    return result


def _require_layer(
    repo: database.LayerRepositoryProtocol,
    layer_id: str,
) -> db_models.LayerDescriptor:
    layer = repo.get(layer_id)
    if layer is None:
        raise fastapi.HTTPException(
            status_code=404,
            detail="Layer not found",
        )
    return layer


def _validated(layer: db_models.LayerDescriptor) -> db_models.LayerDescriptor:
    try:
        return layer_validation.validate_layer(layer)
    except layer_validation.LayerValidationError as exc:
        raise fastapi.HTTPException(status_code=400, detail=exc.errors) from exc


@router.get("")
async def list_layers(
    repo: database.LayerRepositoryProtocol = fastapi.Depends(  # noqa: B008
        dependencies.get_layer_repo,
    ),
) -> list[dict[str, Any]]:
    """List all registered layers in render order."""
    return [layer_to_dict(layer) for layer in repo.all()]


@router.post("", status_code=201)
async def create_layer(
    payload: LayerCreateRequest,
    repo: database.LayerRepositoryProtocol = fastapi.Depends(  # noqa: B008
        dependencies.get_layer_repo,
    ),
    basemap_repo: database.BasemapRepositoryProtocol = fastapi.Depends(  # noqa: B008
        dependencies.get_basemap_repo,
    ),
    notifier: notifications.Notifier = fastapi.Depends(  # noqa: B008
        dependencies.get_notifier,
    ),
) -> dict[str, Any]:
    """Register a new layer.

    The descriptor is checked before admission: zoom range, opacity, bounds
    ordering, and the source format for the layer's kind (an XYZ template
    with ``{z}``, ``{x}`` and ``{y}`` for raster kinds, a single manifest
    URL for 3D tilesets).

    Raises:
        HTTPException: 409 if the id is already registered, 400 with the
            list of failed checks if validation fails.
    """
    layer_id = payload.id or str(uuid.uuid4())
    if repo.get(layer_id) is not None:
        raise fastapi.HTTPException(
            status_code=409,
            detail="Layer already exists",
        )

    metadata = None
    if payload.metadata is not None:
        metadata = db_models.LayerExtraMetadata(**payload.metadata.model_dump())

    layer = _validated(
        db_models.LayerDescriptor(
            id=layer_id,
            name=payload.name,
            kind=payload.kind,
            source=payload.source,
            visible=payload.visible,
            opacity=payload.opacity,
            min_zoom=payload.min_zoom,
            max_zoom=payload.max_zoom,
            bounds=payload.bounds,
            source_type=payload.source_type,
            tile_size=payload.tile_size,
            attribution=payload.attribution,
            metadata=metadata,
        ),
    )
    repo.add(layer)
    dependencies.publish_change(
        notifier, notifications.LAYERS_CHANGED, repo, basemap_repo,
    )
    return layer_to_dict(layer)


@router.get("/{layer_id}")
async def get_layer(
    layer_id: str,
    repo: database.LayerRepositoryProtocol = fastapi.Depends(  # noqa: B008
        dependencies.get_layer_repo,
    ),
) -> dict[str, Any]:
    return layer_to_dict(_require_layer(repo, layer_id))


@router.patch("/{layer_id}")
async def update_layer(
    layer_id: str,
    payload: LayerUpdateRequest,
    repo: database.LayerRepositoryProtocol = fastapi.Depends(  # noqa: B008
        dependencies.get_layer_repo,
    ),
    basemap_repo: database.BasemapRepositoryProtocol = fastapi.Depends(  # noqa: B008
        dependencies.get_basemap_repo,
    ),
    notifier: notifications.Notifier = fastapi.Depends(  # noqa: B008
        dependencies.get_notifier,
    ),
) -> dict[str, Any]:
    """Change a layer's name, visibility or opacity.

    Toggling a layer off and on again starts a fresh load cycle for it.
    """
    layer = _require_layer(repo, layer_id)
    changes = payload.model_dump(exclude_none=True)
    updated = _validated(dataclasses.replace(layer, **changes))
    repo.add(updated)
    dependencies.publish_change(
        notifier, notifications.LAYERS_CHANGED, repo, basemap_repo,
    )
    return layer_to_dict(updated)


@router.delete("/{layer_id}", status_code=204)
async def delete_layer(
    layer_id: str,
    repo: database.LayerRepositoryProtocol = fastapi.Depends(  # noqa: B008
        dependencies.get_layer_repo,
    ),
    basemap_repo: database.BasemapRepositoryProtocol = fastapi.Depends(  # noqa: B008
        dependencies.get_basemap_repo,
    ),
    notifier: notifications.Notifier = fastapi.Depends(  # noqa: B008
        dependencies.get_notifier,
    ),
) -> fastapi.Response:
    if not repo.remove(layer_id):
        raise fastapi.HTTPException(
            status_code=404,
            detail="Layer not found",
        )
    dependencies.publish_change(
        notifier, notifications.LAYERS_CHANGED, repo, basemap_repo,
    )
    return fastapi.Response(status_code=204)


@router.get("/{layer_id}/bbox")
async def get_layer_bbox(
    layer_id: str,
    repo: database.LayerRepositoryProtocol = fastapi.Depends(  # noqa: B008
        dependencies.get_layer_repo,
    ),
) -> dict[str, db_models.BBox | None]:
    """Get the bounding box for a registered layer.

    Args:
        layer_id: Unique identifier for the layer.
        repo: Layer repository (injected via FastAPI Depends).

    Returns:
        Dictionary containing the bounding box as [west, south, east, north]
        in degrees, or None if the layer declares no bounds.

    Raises:
        HTTPException: If the layer is not found (404 status code).
    """
    layer = _require_layer(repo, layer_id)
    return {"bbox": layer.bounds}


@router.get("/{layer_id}/status")
async def get_layer_status(
    layer_id: str,
    repo: database.LayerRepositoryProtocol = fastapi.Depends(  # noqa: B008
        dependencies.get_layer_repo,
    ),
    pipeline: pipeline_service.TilePipeline = fastapi.Depends(  # noqa: B008
        dependencies.get_pipeline,
    ),
) -> dict[str, Any]:
    """Current load status of a layer.

    Layers that are hidden or not rendered yet report the idle state.
    """
    _require_layer(repo, layer_id)
    status = pipeline.status(layer_id) or load_status.LoadStatus()
    return {"layer_id": layer_id, **status.to_dict()}


@router.get("/{layer_id}/camera")
async def get_layer_camera(
    layer_id: str,
    repo: database.LayerRepositoryProtocol = fastapi.Depends(  # noqa: B008
        dependencies.get_layer_repo,
    ),
    pipeline: pipeline_service.TilePipeline = fastapi.Depends(  # noqa: B008
        dependencies.get_pipeline,
    ),
    settings: config.Settings = fastapi.Depends(config.get_settings),  # noqa: B008
) -> dict[str, float]:
    """Camera that frames the layer's bounds, keeping bearing and pitch.

    Raises:
        HTTPException: 404 if the layer is unknown or declares no bounds.
    """
    layer = _require_layer(repo, layer_id)
    if layer.bounds is None:
        raise fastapi.HTTPException(
            status_code=404,
            detail="Layer has no bounds",
        )

    current = pipeline.viewport.state
    target = viewport_service.bounds_to_viewport(
        layer.bounds,
        current.bearing,
        current.pitch,
        base_zoom=settings.auto_zoom_base_zoom,
        min_zoom=settings.auto_zoom_min_zoom,
        max_zoom=settings.auto_zoom_max_zoom,
    )
    return dataclasses.asdict(target)
