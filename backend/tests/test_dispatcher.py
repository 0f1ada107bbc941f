"""Tests for per-kind rendering strategy selection and strategy callbacks.

A recording sink stands in for the pipeline so the events each callback
produces can be inspected directly.
"""

from __future__ import annotations

import logging

import pytest
from PIL import Image

from tileviewer.core import config
from tileviewer.db import models as db_models
from tileviewer.services import dispatcher
from tileviewer.services import events


class RecordingSink:
    def __init__(self) -> None:
        self.events: list[tuple[object, events.LoadEvent]] = []

    def emit(self, strategy: dispatcher.RenderStrategy, event: events.LoadEvent) -> bool:
        self.events.append((strategy, event))
        return True


def _layer(kind: str, source: str, **kwargs: object) -> db_models.LayerDescriptor:
    return db_models.LayerDescriptor(
        id=f"{kind}-1", name=kind, kind=kind, source=source, **kwargs,  # type: ignore[arg-type]
    )


RASTER_SOURCE = "https://tiles.example.com/ortho/{z}/{x}/{y}.png"
TILESET_SOURCE = "https://tiles.example.com/mesh/tileset.json"


@pytest.mark.parametrize("kind", ["background", "orthophoto-2d", "orthophoto", "2d-orthophoto"])
def test_raster_kinds_get_raster_strategy(kind: str) -> None:
    strategy = dispatcher.create_strategy(_layer(kind, RASTER_SOURCE), RecordingSink())
    assert isinstance(strategy, dispatcher.RasterTileStrategy)


@pytest.mark.parametrize("kind", ["orthophoto-3d", "3d-orthophoto"])
def test_tileset_kinds_get_tileset_strategy(kind: str) -> None:
    strategy = dispatcher.create_strategy(_layer(kind, TILESET_SOURCE), RecordingSink())
    assert isinstance(strategy, dispatcher.TilesetStrategy)


def test_unknown_kind_is_skipped(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.INFO, logger="tileviewer"):
        strategy = dispatcher.create_strategy(
            _layer("vector-tiles", "https://x/{z}/{x}/{y}.pbf"), RecordingSink(),
        )
    assert strategy is None
    assert any("Unsupported layer kind" in r.getMessage() for r in caplog.records)


def test_malformed_raster_template_is_skipped() -> None:
    strategy = dispatcher.create_strategy(
        _layer("orthophoto-2d", "https://tiles.example.com/static.png"),
        RecordingSink(),
    )
    assert strategy is None


def test_raster_primitive_fields() -> None:
    """Test the raster primitive carries the layer's template and limits."""
    layer = _layer(
        "orthophoto-2d", RASTER_SOURCE, opacity=0.6, min_zoom=3, max_zoom=19,
        tile_size=512,
    )
    strategy = dispatcher.create_strategy(layer, RecordingSink(), config.Settings())
    assert strategy is not None
    primitive = strategy.build()
    assert isinstance(primitive, dispatcher.RasterTileLayer)
    assert primitive.to_dict() == {
        "id": "layer-orthophoto-2d-1",
        "type": "raster-tile",
        "layer_id": "orthophoto-2d-1",
        "data": RASTER_SOURCE,
        "min_zoom": 3,
        "max_zoom": 19,
        "tile_size": 512,
        "opacity": 0.6,
    }


def test_tileset_primitive_fields() -> None:
    layer = _layer("orthophoto-3d", TILESET_SOURCE, opacity=0.8)
    strategy = dispatcher.create_strategy(
        layer, RecordingSink(), config.Settings(tileset_point_size=3),
    )
    assert strategy is not None
    primitive = strategy.build()
    assert isinstance(primitive, dispatcher.Tile3DLayer)
    assert primitive.manifest_url == TILESET_SOURCE
    assert primitive.point_size == 3
    assert primitive.to_dict()["type"] == "tile-3d"


def test_raster_valid_tile_emits_tile_loaded() -> None:
    sink = RecordingSink()
    strategy = dispatcher.RasterTileStrategy(_layer("orthophoto-2d", RASTER_SOURCE), sink)
    primitive = strategy.build()
    assert primitive.on_tile_load(
        dispatcher.RasterTile(x=1, y=1, z=2, content=Image.new("RGB", (256, 256))),
    )
    assert sink.events == [(strategy, events.TileLoaded("orthophoto-2d-1"))]


def test_raster_invalid_tile_is_dropped(caplog: pytest.LogCaptureFixture) -> None:
    """Test an unusable payload logs a warning and is not counted."""
    sink = RecordingSink()
    strategy = dispatcher.RasterTileStrategy(_layer("orthophoto-2d", RASTER_SOURCE), sink)
    with caplog.at_level(logging.WARNING, logger="tileviewer"):
        accepted = strategy.handle_tile_load(
            dispatcher.RasterTile(x=1, y=1, z=2, content={"error": "quota"}),
        )
    assert accepted is False
    assert sink.events == []
    assert any("Invalid tile content" in r.getMessage() for r in caplog.records)


def test_raster_error_and_viewport_events() -> None:
    sink = RecordingSink()
    strategy = dispatcher.RasterTileStrategy(_layer("orthophoto-2d", RASTER_SOURCE), sink)
    strategy.handle_tile_error(RuntimeError("503 Service Unavailable"))
    strategy.handle_tile_error(None)
    strategy.handle_viewport_load(
        [dispatcher.RasterTile(0, 0, 1), dispatcher.RasterTile(1, 0, 1)],
    )
    assert [event for _, event in sink.events] == [
        events.TileFailed("orthophoto-2d-1", "503 Service Unavailable"),
        events.TileFailed("orthophoto-2d-1", "Failed to load tile"),
        events.ViewportLoaded("orthophoto-2d-1", 2),
    ]


def test_render_sub_layer_bitmap() -> None:
    """Test a tile's bitmap covers the tile's geographic extent."""
    strategy = dispatcher.RasterTileStrategy(
        _layer("orthophoto-2d", RASTER_SOURCE, opacity=0.5), RecordingSink(),
    )
    image = Image.new("RGB", (256, 256))
    bitmap = strategy.render_sub_layer(dispatcher.RasterTile(x=0, y=0, z=0, content=image))
    assert bitmap is not None
    assert bitmap.image is image
    assert bitmap.opacity == 0.5
    assert bitmap.bounds[0] == -180.0
    assert bitmap.bounds[2] == 180.0
    assert strategy.render_sub_layer(dispatcher.RasterTile(0, 0, 0, content=None)) is None


def test_tileset_callbacks() -> None:
    sink = RecordingSink()
    strategy = dispatcher.TilesetStrategy(_layer("orthophoto-3d", TILESET_SOURCE), sink)
    primitive = strategy.build()
    primitive.on_tileset_load(object())
    primitive.on_tile_load(object())
    primitive.on_tile_error(object(), "https://tiles.example.com/mesh/0.b3dm", None)
    assert [event for _, event in sink.events] == [
        events.TilesetLoaded("orthophoto-3d-1"),
        events.TileLoaded("orthophoto-3d-1"),
        events.TileFailed("orthophoto-3d-1", "Failed to load 3D tile"),
    ]
