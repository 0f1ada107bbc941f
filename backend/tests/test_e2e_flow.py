"""End-to-end tests for tile ingestion, rendering and auto-zoom.

This module verifies the integrated flow of:
- Uploading a ``{z}/{x}/{y}`` tile directory and ingesting it as a layer,
- The layer showing up in the render primitives with a local URL template,
- Serving its tiles through the local tile endpoint,
- Reporting tile outcomes until the layer is loaded and the camera frames
  the layer's bounds exactly once,
- Hiding the layer again and seeing its status reset.

Settings point at temporary directories and repositories are injected via
dependency overrides, so the flow runs without a database.
"""

from __future__ import annotations

import io
from typing import TYPE_CHECKING

import pytest
from fastapi import testclient
from PIL import Image

from tileviewer import main
from tileviewer.api import dependencies
from tileviewer.core import config
from tileviewer.db import database

if TYPE_CHECKING:
    import pathlib


def _png(color: tuple[int, int, int]) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (256, 256), color=color).save(buffer, format="PNG")
    return buffer.getvalue()


def test_full_flow(tmp_path: pathlib.Path) -> None:
    """Test the full flow of uploading, ingesting, rendering and loading."""
    settings = config.Settings(
        storage_dir=tmp_path / "uploads", tiles_dir=tmp_path / "tiles",
    )
    settings.ensure_directories()
    repo = database.InMemoryLayerRepository()
    basemaps = database.InMemoryBasemapRepository()

    app = main.create_app()
    app.dependency_overrides[config.get_settings] = lambda: settings
    app.dependency_overrides[dependencies.get_layer_repo] = lambda: repo
    app.dependency_overrides[dependencies.get_basemap_repo] = lambda: basemaps
    client = testclient.TestClient(app)

    moves: list[str] = []
    app.state.pipeline.viewport.subscribe(lambda state, origin: moves.append(origin))

    files = [
        ("files", ("city/12/2200/1400.png", _png((200, 10, 10)), "image/png")),
        ("files", ("city/12/2201/1400.png", _png((10, 200, 10)), "image/png")),
        ("files", ("city/13/4400/2800.png", _png((10, 10, 200)), "image/png")),
        ("files", ("city/city.tilesxml", b"<Tiles/>", "text/xml")),
    ]
    upload = client.post("/api/tiles/upload", files=files)
    assert upload.status_code == 200
    assert upload.json()["analysis"]["zoom_levels"] == [12, 13]

    ingest = client.post(
        f"/api/tiles/ingest/{upload.json()['upload_id']}",
        params={"name": "City"},
    )
    assert ingest.status_code == 201
    layer = ingest.json()
    layer_id = layer["id"]
    west, south, east, north = layer["bounds"]
    assert west < east and south < north

    # Registration alone schedules the auto-zoom and starts loading.
    render = client.get("/api/render").json()
    assert [p["layer_id"] for p in render["layers"]] == ["basemap-osm", layer_id]
    assert render["layers"][1]["data"] == layer["source"]
    assert render["statuses"][layer_id]["state"] == "loading"
    assert render["pending_auto_zoom"] == layer_id

    tile_url = layer["source"].format(z=12, x=2200, y=1400)
    tile = client.get(tile_url)
    assert tile.status_code == 200
    assert tile.headers["content-type"] == "image/png"
    assert Image.open(io.BytesIO(tile.content)).getpixel((0, 0)) == (200, 10, 10)

    for x in (2200, 2201):
        client.post(
            "/api/render/events",
            json={
                "type": "tile-load",
                "layer_id": layer_id,
                "tile": {"x": x, "y": 1400, "z": 12},
                "content": f"blob:https://viewer.example.com/{x}",
            },
        )
    result = client.post(
        "/api/render/events",
        json={
            "type": "viewport-load",
            "layer_id": layer_id,
            "tiles": [{"x": 2200, "y": 1400, "z": 12}, {"x": 2201, "y": 1400, "z": 12}],
        },
    ).json()

    assert result["status"]["state"] == "loaded"
    assert result["status"]["loaded_tiles"] == 2
    assert moves == ["auto-zoom"]
    assert result["viewport"]["longitude"] == pytest.approx((west + east) / 2)
    assert result["viewport"]["latitude"] == pytest.approx((south + north) / 2)

    client.patch(f"/api/layers/{layer_id}", json={"visible": False})
    status = client.get(f"/api/layers/{layer_id}/status").json()
    assert status["state"] == "idle"

    client.patch(f"/api/layers/{layer_id}", json={"visible": True})
    status = client.get(f"/api/layers/{layer_id}/status").json()
    assert status["state"] == "loading"
    assert status["loaded_tiles"] == 0
    assert client.get("/api/render").json()["pending_auto_zoom"] == layer_id
    assert moves == ["auto-zoom"]
