"""Local tile set upload and ingestion API endpoints.

This module provides REST API endpoints for turning a directory of
``{z}/{x}/{y}.(png|jpg|jpeg)`` image files into a layer. The analyze
endpoint inspects a list of relative paths without storing anything. The
upload endpoint accepts the directory as a multipart upload (one part per
file, the part's filename holding the path relative to the directory root),
analyzes it and stores the recognized tiles. The ingest endpoint moves an
upload into the served tiles directory and registers it as a raster layer
with the analyzed bounds and zoom range.

Example:
    Upload and ingest a tile directory:
        >>> files = [
        ...     ("files", ("ortho/2/1/1.png", png_bytes, "image/png")),
        ...     ("files", ("ortho/2/2/1.png", png_bytes, "image/png")),
        ...     ("files", ("ortho/tilemapresource.xml", xml, "text/xml")),
        ... ]
        >>> response = client.post("/api/tiles/upload", files=files)
        >>> upload_id = response.json()["upload_id"]

        >>> response = client.post(
        ...     f"/api/tiles/ingest/{upload_id}",
        ...     params={"name": "Ortho"},
        ... )
        >>> response.json()["source"]
        >>> # Returns: "/tiles/local/<layer id>/{z}/{x}/{y}"
"""

from __future__ import annotations

import dataclasses
import shutil
import tempfile
import uuid
from typing import TYPE_CHECKING, Any, Literal

from typing_extensions import TypedDict

import fastapi
import pydantic

from tileviewer.api import dependencies
from tileviewer.api import layers as api_layers
from tileviewer.core import config
from tileviewer.core.logging import get_logger
from tileviewer.db import database
from tileviewer.db import models as db_models
from tileviewer.services import layer_validation
from tileviewer.services import notifications
from tileviewer.services import tile_analyzer

if TYPE_CHECKING:
    import pathlib

logger = get_logger(__name__)

router = fastapi.APIRouter(prefix="/api/tiles", tags=["tiles"])


@dataclasses.dataclass(frozen=True)
class PendingUpload:
    directory: pathlib.Path
    analysis: db_models.TileSetAnalysis


_upload_cache: dict[str, PendingUpload] = {}


class AnalyzeRequest(pydantic.BaseModel):
    paths: list[str]


class UploadResponse(TypedDict):
    upload_id: str
    stored_files: int
    analysis: dict[str, Any]


def analysis_to_dict(analysis: db_models.TileSetAnalysis) -> dict[str, Any]:
    """Convert a TileSetAnalysis to a JSON-friendly dictionary."""
    result = dataclasses.asdict(analysis)
    result["zoom_levels"] = list(analysis.zoom_levels)
    result["bounds"] = list(analysis.bounds)
    result["formats"] = list(analysis.formats)
    result["min_zoom"] = analysis.min_zoom
    result["max_zoom"] = analysis.max_zoom
    return result


def _analyze(paths: list[str]) -> db_models.TileSetAnalysis:
    try:
        return tile_analyzer.analyze_tile_files(paths)
    except tile_analyzer.TileStructureError as exc:
        raise fastapi.HTTPException(status_code=400, detail=str(exc)) from exc


def _save_tile(
    file: fastapi.UploadFile,
    tile: tile_analyzer.TileIndex,
    upload_dir: pathlib.Path,
    max_size: int,
) -> pathlib.Path:
    """Persist one uploaded tile as ``upload_dir/z/x/y.ext``.

    The target path is rebuilt from the parsed tile indices, never from the
    client-supplied filename.

    Raises:
        HTTPException: If the file exceeds the maximum size limit.
    """
    target_dir = upload_dir / str(tile.z) / str(tile.x)
    target_dir.mkdir(parents=True, exist_ok=True)
    target_path = target_dir / f"{tile.y}.{tile.extension}"
    with tempfile.NamedTemporaryFile(delete=False, dir=upload_dir) as tmp:
        size = 0
        for chunk in iter(lambda: file.file.read(1024 * 1024), b""):
            size += len(chunk)
            if size > max_size:
                raise fastapi.HTTPException(
                    status_code=413,
                    detail="Upload too large",
                )

            tmp.write(chunk)

        tmp.flush()

    shutil.move(tmp.name, target_path)

    return target_path


@router.post("/analyze")
async def analyze_tiles(payload: AnalyzeRequest) -> dict[str, Any]:
    """Analyze a list of relative file paths as a tile pyramid.

    Raises:
        HTTPException: 400 if no path follows the ``{z}/{x}/{y}`` layout.
    """
    return analysis_to_dict(_analyze(payload.paths))


@router.post("/upload")
async def upload_tiles(
    files: list[fastapi.UploadFile],
    settings: config.Settings = fastapi.Depends(config.get_settings),  # noqa: B008
) -> UploadResponse:
    """Accept a tile directory as a multipart upload and store its tiles.

    Every part's filename is analyzed as a path; only files recognized as
    tiles are stored, metadata files are counted, anything else is ignored.
    The returned upload_id is used to ingest the tiles as a layer.

    Raises:
        HTTPException: 400 if the upload holds no tile pyramid, 413 if a
            file exceeds the maximum upload size.
    """
    analysis = _analyze([file.filename or "" for file in files])

    upload_id = str(uuid.uuid4())
    upload_dir = settings.storage_dir / upload_id
    upload_dir.mkdir(parents=True, exist_ok=True)

    stored = 0
    try:
        for file in files:
            tile = tile_analyzer.parse_tile_path(file.filename or "")
            if tile is None:
                continue
            _save_tile(file, tile, upload_dir, settings.max_upload_size_bytes)
            stored += 1
    except fastapi.HTTPException:
        shutil.rmtree(upload_dir, ignore_errors=True)
        raise

    _upload_cache[upload_id] = PendingUpload(upload_dir, analysis)
    logger.info(
        "Tile upload stored",
        extra={"upload_id": upload_id, "tiles": stored},
    )

    return UploadResponse(
        upload_id=upload_id,
        stored_files=stored,
        analysis=analysis_to_dict(analysis),
    )


@router.post("/ingest/{upload_id}", status_code=201)
async def ingest_tiles(
    upload_id: str,
    name: str,
    kind: Literal["orthophoto-2d", "background"] = "orthophoto-2d",
    settings: config.Settings = fastapi.Depends(config.get_settings),  # noqa: B008
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
    """Register a previously uploaded tile set as a local raster layer.

    The tiles move to ``tiles_dir/<layer id>/`` and the layer's source is
    the local tile endpoint's template. Bounds and zoom range come from the
    upload's analysis.

    Args:
        upload_id: ID returned from the upload endpoint.
        name: Display name of the new layer.
        kind: Raster kind to register the tiles as.
        settings: Application settings (injected via FastAPI Depends).
        repo: Layer repository (injected via FastAPI Depends).
        basemap_repo: Basemap repository (injected via FastAPI Depends).
        notifier: Registry change notifier (injected via FastAPI Depends).

    Returns:
        The registered layer's descriptor.

    Raises:
        HTTPException: 404 if upload_id is unknown, 400 if the layer fails
            validation.
    """
    pending = _upload_cache.get(upload_id)
    if pending is None:
        raise fastapi.HTTPException(
            status_code=404,
            detail="Upload not found",
        )

    layer_id = str(uuid.uuid4())
    analysis = pending.analysis
    prefix = settings.local_tiles_url_prefix.rstrip("/")
    layer = db_models.LayerDescriptor(
        id=layer_id,
        name=name,
        kind=kind,
        source=f"{prefix}/{layer_id}/{{z}}/{{x}}/{{y}}",
        min_zoom=analysis.min_zoom,
        max_zoom=analysis.max_zoom,
        bounds=analysis.bounds,
        source_type="local",
        tile_size=settings.default_tile_size,
    )
    try:
        layer_validation.validate_layer(layer)
    except layer_validation.LayerValidationError as exc:
        raise fastapi.HTTPException(status_code=400, detail=exc.errors) from exc

    settings.tiles_dir.mkdir(parents=True, exist_ok=True)
    shutil.move(str(pending.directory), str(settings.tiles_dir / layer_id))
    del _upload_cache[upload_id]

    repo.add(layer)
    dependencies.publish_change(
        notifier, notifications.LAYERS_CHANGED, repo, basemap_repo,
    )
    logger.info(
        "Local tile layer registered",
        extra={"layer_id": layer_id, "tiles": analysis.file_count},
    )
    return api_layers.layer_to_dict(layer)
