"""Tests for layer and basemap repositories.

This module contains unit tests for the repository abstractions:
- InMemoryLayerRepository and InMemoryBasemapRepository, used for tests and
  local development,
- PostgresLayerRepository row conversion helpers (no running database is
  needed; the connection-bound methods are not exercised here),
- the repository factory functions.

All tests are self-contained and do not require a running database.
"""

from __future__ import annotations

import datetime

import pytest

from tileviewer.core import config
from tileviewer.db import database
from tileviewer.db import models as db_models


def _layer(layer_id: str = "test-1", **kwargs: object) -> db_models.LayerDescriptor:
    fields: dict[str, object] = {
        "name": "test",
        "kind": "orthophoto-2d",
        "source": "https://tiles.example.com/{z}/{x}/{y}.png",
    }
    fields.update(kwargs)
    return db_models.LayerDescriptor(id=layer_id, **fields)  # type: ignore[arg-type]


def test_in_memory_repository_add() -> None:
    """Test adding a layer to in-memory repository."""
    repo = database.InMemoryLayerRepository()
    layer = _layer()
    result = repo.add(layer)
    assert result.id == "test-1"
    assert repo.get("test-1") == layer


def test_in_memory_repository_get_missing() -> None:
    repo = database.InMemoryLayerRepository()
    assert repo.get("nonexistent") is None


def test_in_memory_repository_keeps_insertion_order() -> None:
    """Test load() returns layers in the order they were registered."""
    repo = database.InMemoryLayerRepository()
    for layer_id in ("c", "a", "b"):
        repo.add(_layer(layer_id))
    assert [layer.id for layer in repo.load()] == ["c", "a", "b"]
    assert [layer.id for layer in repo.all()] == ["c", "a", "b"]


def test_in_memory_repository_replace_keeps_position() -> None:
    repo = database.InMemoryLayerRepository()
    repo.add(_layer("a"))
    repo.add(_layer("b"))
    repo.add(_layer("a", visible=False))
    layers = repo.load()
    assert [layer.id for layer in layers] == ["a", "b"]
    assert layers[0].visible is False


def test_in_memory_repository_remove() -> None:
    repo = database.InMemoryLayerRepository()
    repo.add(_layer())
    assert repo.remove("test-1") is True
    assert repo.remove("test-1") is False
    assert repo.load() == []


def test_in_memory_basemaps_seeded_with_defaults() -> None:
    """Test a fresh basemap store holds OSM (active) and satellite."""
    repo = database.InMemoryBasemapRepository()
    basemaps = repo.load()
    assert [basemap.id for basemap in basemaps] == ["osm", "satellite"]
    assert basemaps[0].is_active is True
    assert basemaps[1].is_active is False
    assert basemaps[0].url == "https://tile.openstreetmap.org/{z}/{x}/{y}.png"


def test_in_memory_basemaps_do_not_share_defaults() -> None:
    """Test mutating one store's basemap leaves the defaults untouched."""
    repo = database.InMemoryBasemapRepository()
    osm = repo.get("osm")
    assert osm is not None
    osm.is_active = False
    assert database.DEFAULT_BASEMAPS[0].is_active is True


def test_in_memory_basemaps_remove() -> None:
    repo = database.InMemoryBasemapRepository()
    assert repo.remove("satellite") is True
    assert repo.get("satellite") is None
    assert repo.remove("satellite") is False


def test_postgres_repository_to_row() -> None:
    """Test converting LayerDescriptor to database row format."""
    layer = _layer(
        "test-5",
        bounds=(-1.0, -2.0, 3.0, 4.0),
        metadata=db_models.LayerExtraMetadata(
            resolution="10cm", provider="City survey",
        ),
        created_at=datetime.datetime(2024, 1, 1, tzinfo=datetime.UTC),
    )
    row = database.PostgresLayerRepository._to_row(layer)
    assert row["id"] == "test-5"
    assert row["kind"] == "orthophoto-2d"
    assert row["bounds_west"] == -1.0
    assert row["bounds_north"] == 4.0
    assert row["resolution"] == "10cm"
    assert row["capture_date"] is None
    assert row["provider"] == "City survey"


def test_postgres_repository_to_row_none_bounds() -> None:
    """Test converting a LayerDescriptor without bounds to row."""
    row = database.PostgresLayerRepository._to_row(_layer("test-6"))
    assert row["bounds_west"] is None
    assert row["bounds_south"] is None
    assert row["bounds_east"] is None
    assert row["bounds_north"] is None
    assert row["resolution"] is None


def test_postgres_repository_from_row() -> None:
    """Test converting database row to LayerDescriptor."""
    row: dict[str, object] = {
        "id": "test-7",
        "name": "test",
        "kind": "orthophoto-3d",
        "source": "https://tiles.example.com/mesh/tileset.json",
        "visible": False,
        "opacity": 0.5,
        "min_zoom": 2,
        "max_zoom": 18,
        "bounds_west": -1.0,
        "bounds_south": -2.0,
        "bounds_east": 3.0,
        "bounds_north": 4.0,
        "source_type": "url",
        "tile_size": 512,
        "attribution": None,
        "resolution": None,
        "capture_date": "2024-05-01",
        "provider": None,
        "created_at": datetime.datetime(2024, 1, 1, tzinfo=datetime.UTC),
    }
    layer = database.PostgresLayerRepository._from_row(row)
    assert layer.id == "test-7"
    assert layer.is_tileset
    assert layer.visible is False
    assert layer.opacity == 0.5
    assert layer.bounds == (-1.0, -2.0, 3.0, 4.0)
    assert layer.tile_size == 512
    assert layer.metadata == db_models.LayerExtraMetadata(capture_date="2024-05-01")


def test_postgres_repository_from_row_none_bounds() -> None:
    """Test converting row with partial bounds to a LayerDescriptor."""
    row: dict[str, object] = {
        "id": "test-8",
        "name": "test",
        "kind": "background",
        "source": "https://tile.openstreetmap.org/{z}/{x}/{y}.png",
        "bounds_west": None,
        "bounds_south": 1.0,
        "bounds_east": None,
        "bounds_north": None,
        "created_at": None,
    }
    layer = database.PostgresLayerRepository._from_row(row)
    assert layer.bounds is None
    assert layer.metadata is None
    assert layer.source_type == "url"
    assert layer.created_at.tzinfo is not None


def test_postgres_basemap_from_row() -> None:
    row: dict[str, object] = {
        "id": "osm",
        "name": "OpenStreetMap",
        "type": "street",
        "url": "https://tile.openstreetmap.org/{z}/{x}/{y}.png",
        "tiles": None,
        "attribution": "© OpenStreetMap contributors",
        "is_active": True,
    }
    basemap = database.PostgresBasemapRepository._from_row(row)
    assert basemap == database.DEFAULT_BASEMAPS[0]


def test_get_layer_repository_memory_is_shared() -> None:
    """Test the memory backend returns one process-wide repository."""
    settings = config.Settings(storage_backend="memory")
    assert database.get_layer_repository(settings) is database.get_layer_repository(
        settings,
    )
    assert isinstance(
        database.get_basemap_repository(settings),
        database.InMemoryBasemapRepository,
    )


def test_get_layer_repository_postgres(monkeypatch: pytest.MonkeyPatch) -> None:
    """Test factory function returns PostgresLayerRepository."""

    class FakeRepo(database.PostgresLayerRepository):
        def __init__(self, settings: config.Settings):
            self.settings = settings

    monkeypatch.setattr(database, "PostgresLayerRepository", FakeRepo)
    settings = config.Settings(storage_backend="postgres")
    repo = database.get_layer_repository(settings)
    assert isinstance(repo, FakeRepo)
    assert repo.settings is settings


def test_get_basemap_repository_postgres(monkeypatch: pytest.MonkeyPatch) -> None:
    class FakeRepo(database.PostgresBasemapRepository):
        def __init__(self, settings: config.Settings):
            self.settings = settings

    monkeypatch.setattr(database, "PostgresBasemapRepository", FakeRepo)
    repo = database.get_basemap_repository(
        config.Settings(storage_backend="postgres"),
    )
    assert isinstance(repo, FakeRepo)
