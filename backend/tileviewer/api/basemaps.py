"""Basemap API endpoints.

Basemaps are background raster maps stored apart from data layers and drawn
underneath them. Exactly one basemap is active at a time when any exist; a
fresh store holds OpenStreetMap (active) and a satellite basemap.

Example:
    Switch to the satellite basemap:
        >>> client.patch("/api/basemaps/satellite")
        >>> [b["id"] for b in client.get("/api/basemaps").json()
        ...  if b["is_active"]]
        >>> # Returns: ["satellite"]
"""

from __future__ import annotations

import dataclasses
import uuid
from typing import Any

import fastapi
import pydantic

from tileviewer.api import dependencies
from tileviewer.db import database
from tileviewer.db import models as db_models
from tileviewer.services import layer_validation
from tileviewer.services import notifications

router = fastapi.APIRouter(prefix="/api/basemaps", tags=["basemaps"])


class BasemapCreateRequest(pydantic.BaseModel):
    name: str
    url: str
    type: db_models.BasemapType = "custom"
    attribution: str | None = None


def _set_active(
    repo: database.BasemapRepositoryProtocol,
    basemap_id: str | None,
) -> None:
    for basemap in repo.load():
        is_active = basemap.id == basemap_id
        if basemap.is_active != is_active:
            repo.add(dataclasses.replace(basemap, is_active=is_active))


@router.get("")
async def list_basemaps(
    repo: database.BasemapRepositoryProtocol = fastapi.Depends(  # noqa: B008
        dependencies.get_basemap_repo,
    ),
) -> list[dict[str, Any]]:
    return [dataclasses.asdict(basemap) for basemap in repo.all()]


@router.post("", status_code=201)
async def create_basemap(
    payload: BasemapCreateRequest,
    repo: database.BasemapRepositoryProtocol = fastapi.Depends(  # noqa: B008
        dependencies.get_basemap_repo,
    ),
    layer_repo: database.LayerRepositoryProtocol = fastapi.Depends(  # noqa: B008
        dependencies.get_layer_repo,
    ),
    notifier: notifications.Notifier = fastapi.Depends(  # noqa: B008
        dependencies.get_notifier,
    ),
) -> dict[str, Any]:
    """Add a custom basemap; it starts inactive.

    Raises:
        HTTPException: 400 if the URL is not an XYZ template.
    """
    ok, message = layer_validation.validate_url_template(payload.url)
    if not ok:
        raise fastapi.HTTPException(status_code=400, detail=message)

    basemap = repo.add(
        db_models.BasemapDescriptor(
            id=f"custom-{uuid.uuid4().hex[:12]}",
            name=payload.name,
            type=payload.type,
            url=payload.url,
            attribution=payload.attribution,
            is_active=False,
        ),
    )
    dependencies.publish_change(
        notifier, notifications.BASEMAPS_CHANGED, layer_repo, repo,
    )
    return dataclasses.asdict(basemap)


@router.patch("/{basemap_id}")
async def activate_basemap(
    basemap_id: str,
    repo: database.BasemapRepositoryProtocol = fastapi.Depends(  # noqa: B008
        dependencies.get_basemap_repo,
    ),
    layer_repo: database.LayerRepositoryProtocol = fastapi.Depends(  # noqa: B008
        dependencies.get_layer_repo,
    ),
    notifier: notifications.Notifier = fastapi.Depends(  # noqa: B008
        dependencies.get_notifier,
    ),
) -> dict[str, Any]:
    """Make ``basemap_id`` the only active basemap."""
    if repo.get(basemap_id) is None:
        raise fastapi.HTTPException(
            status_code=404,
            detail="Basemap not found",
        )

    _set_active(repo, basemap_id)
    dependencies.publish_change(
        notifier, notifications.BASEMAPS_CHANGED, layer_repo, repo,
    )
    return dataclasses.asdict(repo.get(basemap_id))


@router.delete("/{basemap_id}", status_code=204)
async def delete_basemap(
    basemap_id: str,
    repo: database.BasemapRepositoryProtocol = fastapi.Depends(  # noqa: B008
        dependencies.get_basemap_repo,
    ),
    layer_repo: database.LayerRepositoryProtocol = fastapi.Depends(  # noqa: B008
        dependencies.get_layer_repo,
    ),
    notifier: notifications.Notifier = fastapi.Depends(  # noqa: B008
        dependencies.get_notifier,
    ),
) -> fastapi.Response:
    """Remove a basemap; if it was active the first remaining one takes over."""
    basemap = repo.get(basemap_id)
    if basemap is None or not repo.remove(basemap_id):
        raise fastapi.HTTPException(
            status_code=404,
            detail="Basemap not found",
        )

    remaining = repo.load()
    if basemap.is_active and remaining:
        _set_active(repo, remaining[0].id)

    dependencies.publish_change(
        notifier, notifications.BASEMAPS_CHANGED, layer_repo, repo,
    )
    return fastapi.Response(status_code=204)
