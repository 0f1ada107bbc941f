"""Viewport (camera) API endpoints.

The viewport has a single writer model with last-write-wins semantics: a
PUT from the user and a move issued by auto-zoom both replace the whole
state, whichever lands last is what GET returns.
"""

from __future__ import annotations

import dataclasses

import fastapi
import pydantic

from tileviewer.api import dependencies
from tileviewer.services import pipeline as pipeline_service
from tileviewer.services import viewport as viewport_service

router = fastapi.APIRouter(prefix="/api/viewport", tags=["viewport"])


class ViewportPayload(pydantic.BaseModel):
    longitude: float = pydantic.Field(ge=-180.0, le=180.0)
    latitude: float = pydantic.Field(ge=-90.0, le=90.0)
    zoom: float = pydantic.Field(ge=0.0)
    bearing: float = 0.0
    pitch: float = 0.0


@router.get("")
async def get_viewport(
    pipeline: pipeline_service.TilePipeline = fastapi.Depends(  # noqa: B008
        dependencies.get_pipeline,
    ),
) -> dict[str, float]:
    return dataclasses.asdict(pipeline.viewport.state)


@router.put("")
async def set_viewport(
    payload: ViewportPayload,
    pipeline: pipeline_service.TilePipeline = fastapi.Depends(  # noqa: B008
        dependencies.get_pipeline,
    ),
) -> dict[str, float]:
    """Replace the camera state with a user-driven one."""
    state = pipeline.set_viewport(
        viewport_service.ViewportState(**payload.model_dump()),
    )
    return dataclasses.asdict(state)
