"""Integration and unit tests for local tile set analysis and ingestion.

This test module verifies:
    - The analyze endpoint's contract for recognized and unrecognized
      directory listings,
    - Multipart upload of a tile directory, storage of the recognized tiles
      and the upload size limit,
    - Registration of an upload as a local raster layer with the analyzed
      bounds and zoom range.

Settings point at temporary directories and repositories are injected via
dependency overrides.

See Also:
    - backend/tileviewer/api/ingest.py for implementation,
    - test_tile_analyzer.py for the analysis itself.
"""

from __future__ import annotations

import io
from typing import TYPE_CHECKING

import pytest
from fastapi import testclient
from PIL import Image

from tileviewer import main
from tileviewer.api import dependencies
from tileviewer.api import ingest as api_ingest
from tileviewer.core import config
from tileviewer.db import database

if TYPE_CHECKING:
    import pathlib


def _test_settings(tmp_path: pathlib.Path, **kwargs: object) -> config.Settings:
    settings = config.Settings(
        storage_dir=tmp_path / "uploads",
        tiles_dir=tmp_path / "tiles",
        allow_origins=["*"],
        **kwargs,  # type: ignore[arg-type]
    )
    settings.ensure_directories()
    return settings


def _client(
    settings: config.Settings,
) -> tuple[testclient.TestClient, database.InMemoryLayerRepository]:
    repo = database.InMemoryLayerRepository()
    basemaps = database.InMemoryBasemapRepository()
    app = main.create_app()
    app.dependency_overrides[config.get_settings] = lambda: settings
    app.dependency_overrides[dependencies.get_layer_repo] = lambda: repo
    app.dependency_overrides[dependencies.get_basemap_repo] = lambda: basemaps
    return testclient.TestClient(app), repo


def _png() -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (256, 256), color=(30, 90, 40)).save(buffer, format="PNG")
    return buffer.getvalue()


def _tile_files() -> list[tuple[str, tuple[str, bytes, str]]]:
    png = _png()
    return [
        ("files", ("ortho/2/1/1.png", png, "image/png")),
        ("files", ("ortho/2/2/1.png", png, "image/png")),
        ("files", ("ortho/3/3/3.png", png, "image/png")),
        ("files", ("ortho/tilemapresource.xml", b"<TileMap/>", "text/xml")),
        ("files", ("ortho/readme.txt", b"hello", "text/plain")),
    ]


def test_analyze_paths(tmp_path: pathlib.Path) -> None:
    client, _ = _client(_test_settings(tmp_path))
    response = client.post(
        "/api/tiles/analyze",
        json={"paths": ["2/1/1.png", "2/2/1.png", "3/2/2.jpg", "meta.xml"]},
    )
    assert response.status_code == 200
    body = response.json()
    assert body["zoom_levels"] == [2, 3]
    assert body["min_zoom"] == 2
    assert body["max_zoom"] == 3
    assert body["file_count"] == 3
    assert body["metadata_file_count"] == 1
    assert body["bounds"][0] == pytest.approx(-90.0)
    assert body["bounds"][2] == pytest.approx(90.0)


def test_analyze_without_structure(tmp_path: pathlib.Path) -> None:
    client, _ = _client(_test_settings(tmp_path))
    response = client.post("/api/tiles/analyze", json={"paths": ["a.txt"]})
    assert response.status_code == 400
    assert "tile structure" in response.json()["detail"]


def test_upload_stores_recognized_tiles(tmp_path: pathlib.Path) -> None:
    """Test only tile files are stored, rebuilt as z/x/y under the upload."""
    settings = _test_settings(tmp_path)
    client, _ = _client(settings)
    response = client.post("/api/tiles/upload", files=_tile_files())
    assert response.status_code == 200
    body = response.json()
    assert body["stored_files"] == 3
    assert body["analysis"]["zoom_levels"] == [2, 3]

    upload_dir = settings.storage_dir / body["upload_id"]
    assert (upload_dir / "2" / "1" / "1.png").is_file()
    assert (upload_dir / "3" / "3" / "3.png").is_file()
    assert not list(upload_dir.rglob("*.txt"))
    assert not list(upload_dir.rglob("*.xml"))


def test_upload_without_tiles(tmp_path: pathlib.Path) -> None:
    client, _ = _client(_test_settings(tmp_path))
    response = client.post(
        "/api/tiles/upload",
        files=[("files", ("notes.txt", b"hello", "text/plain"))],
    )
    assert response.status_code == 400


def test_upload_too_large(tmp_path: pathlib.Path) -> None:
    settings = _test_settings(tmp_path, max_upload_size_bytes=10)
    client, _ = _client(settings)
    response = client.post("/api/tiles/upload", files=_tile_files())
    assert response.status_code == 413
    assert list(settings.storage_dir.iterdir()) == []


def test_ingest_registers_local_layer(tmp_path: pathlib.Path) -> None:
    """Test ingestion moves tiles and registers a local layer."""
    settings = _test_settings(tmp_path)
    client, repo = _client(settings)
    upload_id = client.post("/api/tiles/upload", files=_tile_files()).json()["upload_id"]

    response = client.post(
        f"/api/tiles/ingest/{upload_id}", params={"name": "City ortho"},
    )
    assert response.status_code == 201
    layer = response.json()
    assert layer["name"] == "City ortho"
    assert layer["kind"] == "orthophoto-2d"
    assert layer["source_type"] == "local"
    assert layer["source"] == f"/tiles/local/{layer['id']}/{{z}}/{{x}}/{{y}}"
    assert (layer["min_zoom"], layer["max_zoom"]) == (2, 3)
    assert layer["bounds"][0] == pytest.approx(-90.0)

    assert repo.get(layer["id"]) is not None
    assert (settings.tiles_dir / layer["id"] / "2" / "1" / "1.png").is_file()
    assert not (settings.storage_dir / upload_id).exists()
    assert upload_id not in api_ingest._upload_cache


def test_ingest_unknown_upload(tmp_path: pathlib.Path) -> None:
    client, _ = _client(_test_settings(tmp_path))
    response = client.post("/api/tiles/ingest/missing", params={"name": "x"})
    assert response.status_code == 404
    assert response.json()["detail"] == "Upload not found"
