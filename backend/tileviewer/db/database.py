"""Database helpers and repositories for layer and basemap records."""

from __future__ import annotations

import dataclasses
import datetime
import functools
from typing import TYPE_CHECKING, Protocol, TypeVar, cast

import psycopg2
import psycopg2.extensions
import psycopg2.extras

from tileviewer.db import models as db_models

if TYPE_CHECKING:
    from collections.abc import Iterable

    from tileviewer.core import config

DEFAULT_BASEMAPS: tuple[db_models.BasemapDescriptor, ...] = (
    db_models.BasemapDescriptor(
        id="osm",
        name="OpenStreetMap",
        type="street",
        url="https://tile.openstreetmap.org/{z}/{x}/{y}.png",
        attribution="© OpenStreetMap contributors",
        is_active=True,
    ),
    db_models.BasemapDescriptor(
        id="satellite",
        name="Satellite",
        type="satellite",
        url=(
            "https://api.mapbox.com/styles/v1/mapbox/satellite-v9/tiles/"
            "{z}/{x}/{y}?access_token=YOUR_TOKEN"
        ),
        attribution="© Mapbox © OpenStreetMap",
        is_active=False,
    ),
)


T = TypeVar("T")


def _cast(value: object, dtype: type[T]) -> T | None:  # type: ignore[misc]
    """Cast a value to a specific type, returning None if value is None."""
    if value is None:
        return None

    return cast(T, value)


class LayerRepositoryProtocol(Protocol):
    """Protocol interface for storing and retrieving layer descriptors.

    The render pipeline only ever calls load(); the other methods are used
    by the layer management endpoints.
    """

    def add(
        self,
        layer: db_models.LayerDescriptor,
    ) -> db_models.LayerDescriptor: ...

    def get(self, layer_id: str) -> db_models.LayerDescriptor | None: ...

    def all(self) -> Iterable[db_models.LayerDescriptor]: ...

    def remove(self, layer_id: str) -> bool: ...

    def load(self) -> list[db_models.LayerDescriptor]: ...


class BasemapRepositoryProtocol(Protocol):
    """Protocol interface for storing and retrieving basemap records."""

    def add(
        self,
        basemap: db_models.BasemapDescriptor,
    ) -> db_models.BasemapDescriptor: ...

    def get(self, basemap_id: str) -> db_models.BasemapDescriptor | None: ...

    def all(self) -> Iterable[db_models.BasemapDescriptor]: ...

    def remove(self, basemap_id: str) -> bool: ...

    def load(self) -> list[db_models.BasemapDescriptor]: ...


class InMemoryLayerRepository(LayerRepositoryProtocol):
    """Simple in-memory store for tests and local development.

    Stores layers in insertion order. Data is lost when the process exits.
    """

    def __init__(self) -> None:
        """Initialize an empty in-memory repository."""
        self._store: dict[str, db_models.LayerDescriptor] = {}

    def add(self, layer: db_models.LayerDescriptor) -> db_models.LayerDescriptor:
        """Add or replace a layer in the repository.

        Args:
            layer: Layer descriptor to store.

        Returns:
            The stored layer descriptor.
        """
        self._store[layer.id] = layer
        return layer

    def get(self, layer_id: str) -> db_models.LayerDescriptor | None:
        """Retrieve a layer by ID, or None if unknown."""
        return self._store.get(layer_id)

    def all(self) -> Iterable[db_models.LayerDescriptor]:
        return self._store.values()

    def remove(self, layer_id: str) -> bool:
        """Delete a layer; returns False if it did not exist."""
        return self._store.pop(layer_id, None) is not None

    def load(self) -> list[db_models.LayerDescriptor]:
        return list(self._store.values())


class InMemoryBasemapRepository(BasemapRepositoryProtocol):
    """In-memory basemap store seeded with the default basemaps."""

    def __init__(
        self,
        defaults: Iterable[db_models.BasemapDescriptor] = DEFAULT_BASEMAPS,
    ) -> None:
        self._store: dict[str, db_models.BasemapDescriptor] = {
            basemap.id: dataclasses.replace(basemap) for basemap in defaults
        }

    def add(
        self,
        basemap: db_models.BasemapDescriptor,
    ) -> db_models.BasemapDescriptor:
        self._store[basemap.id] = basemap
        return basemap

    def get(self, basemap_id: str) -> db_models.BasemapDescriptor | None:
        return self._store.get(basemap_id)

    def all(self) -> Iterable[db_models.BasemapDescriptor]:
        return self._store.values()

    def remove(self, basemap_id: str) -> bool:
        return self._store.pop(basemap_id, None) is not None

    def load(self) -> list[db_models.BasemapDescriptor]:
        return list(self._store.values())


class PostgresLayerRepository(LayerRepositoryProtocol):
    """PostgreSQL-backed repository for layer descriptors.

    Automatically creates the layers table on initialization.
    """

    CREATE_TABLE_SQL = """
    CREATE TABLE IF NOT EXISTS tile_layers (
      id TEXT PRIMARY KEY,
      name TEXT NOT NULL,
      kind TEXT NOT NULL,
      source TEXT NOT NULL,
      visible BOOLEAN NOT NULL DEFAULT TRUE,
      opacity DOUBLE PRECISION NOT NULL DEFAULT 1.0,
      min_zoom INTEGER NOT NULL DEFAULT 0,
      max_zoom INTEGER NOT NULL DEFAULT 22,
      bounds_west DOUBLE PRECISION,
      bounds_south DOUBLE PRECISION,
      bounds_east DOUBLE PRECISION,
      bounds_north DOUBLE PRECISION,
      source_type TEXT NOT NULL DEFAULT 'url',
      tile_size INTEGER NOT NULL DEFAULT 256,
      attribution TEXT,
      resolution TEXT,
      capture_date TEXT,
      provider TEXT,
      created_at TIMESTAMPTZ DEFAULT now()
    );
    """

    def __init__(self, settings: config.Settings) -> None:
        """Initialize repository with database settings.

        Args:
            settings: Application settings containing database connection URL.
        """
        self.settings = settings
        self._ensure_schema()

    def _connection(self) -> psycopg2.extensions.connection:
        return psycopg2.connect(
            self.settings.database_url,
            cursor_factory=psycopg2.extras.RealDictCursor,
        )

    def _ensure_schema(self) -> None:
        with self._connection() as conn, conn.cursor() as cur:
            cur.execute(self.CREATE_TABLE_SQL)
            conn.commit()

    def add(self, layer: db_models.LayerDescriptor) -> db_models.LayerDescriptor:
        with self._connection() as conn, conn.cursor() as cur:
            cur.execute(
                """
                INSERT INTO tile_layers (
                    id, name, kind, source, visible, opacity, min_zoom,
                    max_zoom, bounds_west, bounds_south, bounds_east,
                    bounds_north, source_type, tile_size, attribution,
                    resolution, capture_date, provider, created_at
                ) VALUES (%(id)s, %(name)s, %(kind)s, %(source)s,
                    %(visible)s, %(opacity)s, %(min_zoom)s, %(max_zoom)s,
                    %(bounds_west)s, %(bounds_south)s, %(bounds_east)s,
                    %(bounds_north)s, %(source_type)s, %(tile_size)s,
                    %(attribution)s, %(resolution)s, %(capture_date)s,
                    %(provider)s, %(created_at)s)
                ON CONFLICT (id) DO UPDATE SET
                    name = EXCLUDED.name,
                    kind = EXCLUDED.kind,
                    source = EXCLUDED.source,
                    visible = EXCLUDED.visible,
                    opacity = EXCLUDED.opacity,
                    min_zoom = EXCLUDED.min_zoom,
                    max_zoom = EXCLUDED.max_zoom,
                    bounds_west = EXCLUDED.bounds_west,
                    bounds_south = EXCLUDED.bounds_south,
                    bounds_east = EXCLUDED.bounds_east,
                    bounds_north = EXCLUDED.bounds_north,
                    source_type = EXCLUDED.source_type,
                    tile_size = EXCLUDED.tile_size,
                    attribution = EXCLUDED.attribution,
                    resolution = EXCLUDED.resolution,
                    capture_date = EXCLUDED.capture_date,
                    provider = EXCLUDED.provider;
                """,
                self._to_row(layer),
            )
            conn.commit()
        return layer

    def get(self, layer_id: str) -> db_models.LayerDescriptor | None:
        with self._connection() as conn, conn.cursor() as cur:
            cur.execute("SELECT * FROM tile_layers WHERE id = %s", (layer_id,))
            row = cur.fetchone()
            if row is None:
                return None
            else:
                return self._from_row(cast(dict[str, object], row))

    def all(self) -> Iterable[db_models.LayerDescriptor]:
        with self._connection() as conn, conn.cursor() as cur:
            cur.execute("SELECT * FROM tile_layers ORDER BY created_at ASC")
            for row in cur.fetchall():
                yield self._from_row(cast(dict[str, object], row))

    def remove(self, layer_id: str) -> bool:
        with self._connection() as conn, conn.cursor() as cur:
            cur.execute("DELETE FROM tile_layers WHERE id = %s", (layer_id,))
            deleted = cur.rowcount > 0
            conn.commit()
        return deleted

    def load(self) -> list[db_models.LayerDescriptor]:
        return list(self.all())

    @staticmethod
    def _to_row(layer: db_models.LayerDescriptor) -> dict[str, object]:
        """Convert a LayerDescriptor to a parameter dictionary for SQL."""
        bounds = layer.bounds or (None, None, None, None)
        metadata = layer.metadata or db_models.LayerExtraMetadata()
        return {
            "id": layer.id,
            "name": layer.name,
            "kind": layer.kind,
            "source": layer.source,
            "visible": layer.visible,
            "opacity": layer.opacity,
            "min_zoom": layer.min_zoom,
            "max_zoom": layer.max_zoom,
            "bounds_west": bounds[0],
            "bounds_south": bounds[1],
            "bounds_east": bounds[2],
            "bounds_north": bounds[3],
            "source_type": layer.source_type,
            "tile_size": layer.tile_size,
            "attribution": layer.attribution,
            "resolution": metadata.resolution,
            "capture_date": metadata.capture_date,
            "provider": metadata.provider,
            "created_at": layer.created_at,
        }

    @staticmethod
    def _from_row(row: dict[str, object]) -> db_models.LayerDescriptor:
        """Convert a database row dictionary to a LayerDescriptor."""
        bounds = (
            row.get("bounds_west"),
            row.get("bounds_south"),
            row.get("bounds_east"),
            row.get("bounds_north"),
        )
        if any(v is None for v in bounds):
            bounds_tuple = None
        else:
            bounds_tuple = tuple(float(cast(float, v)) for v in bounds)

        resolution = _cast(row.get("resolution"), str)
        capture_date = _cast(row.get("capture_date"), str)
        provider = _cast(row.get("provider"), str)
        metadata = None
        if resolution or capture_date or provider:
            metadata = db_models.LayerExtraMetadata(
                resolution=resolution,
                capture_date=capture_date,
                provider=provider,
            )

        created_at = _cast(
            row.get("created_at"), datetime.datetime
        ) or datetime.datetime.now(datetime.UTC)

        return db_models.LayerDescriptor(
            id=str(row["id"]),
            name=str(row["name"]),
            kind=str(row["kind"]),
            source=str(row["source"]),
            visible=bool(row.get("visible", True)),
            opacity=float(cast(float, row.get("opacity", 1.0))),
            min_zoom=int(cast(int, row.get("min_zoom", 0))),
            max_zoom=int(cast(int, row.get("max_zoom", 22))),
            bounds=bounds_tuple,  # type: ignore[arg-type]
            source_type=cast(
                db_models.SourceType, str(row.get("source_type") or "url"),
            ),
            tile_size=int(cast(int, row.get("tile_size") or 256)),
            attribution=_cast(row.get("attribution"), str),
            metadata=metadata,
            created_at=created_at,
        )


class PostgresBasemapRepository(BasemapRepositoryProtocol):
    """PostgreSQL-backed basemap store, seeded with defaults when empty."""

    CREATE_TABLE_SQL = """
    CREATE TABLE IF NOT EXISTS basemaps (
      id TEXT PRIMARY KEY,
      name TEXT NOT NULL,
      type TEXT NOT NULL DEFAULT 'custom',
      url TEXT,
      tiles TEXT,
      attribution TEXT,
      is_active BOOLEAN NOT NULL DEFAULT FALSE,
      position SERIAL
    );
    """

    UPSERT_SQL = """
    INSERT INTO basemaps (id, name, type, url, tiles, attribution, is_active)
    VALUES (%(id)s, %(name)s, %(type)s, %(url)s, %(tiles)s, %(attribution)s,
        %(is_active)s)
    ON CONFLICT (id) DO UPDATE SET
        name = EXCLUDED.name,
        type = EXCLUDED.type,
        url = EXCLUDED.url,
        tiles = EXCLUDED.tiles,
        attribution = EXCLUDED.attribution,
        is_active = EXCLUDED.is_active;
    """

    def __init__(self, settings: config.Settings) -> None:
        self.settings = settings
        self._ensure_schema()

    def _connection(self) -> psycopg2.extensions.connection:
        return psycopg2.connect(
            self.settings.database_url,
            cursor_factory=psycopg2.extras.RealDictCursor,
        )

    def _ensure_schema(self) -> None:
        with self._connection() as conn, conn.cursor() as cur:
            cur.execute(self.CREATE_TABLE_SQL)
            cur.execute("SELECT COUNT(*) AS count FROM basemaps")
            row = cur.fetchone()
            if row is not None and int(cast(int, row["count"])) == 0:
                for basemap in DEFAULT_BASEMAPS:
                    cur.execute(self.UPSERT_SQL, dataclasses.asdict(basemap))
            conn.commit()

    def add(
        self,
        basemap: db_models.BasemapDescriptor,
    ) -> db_models.BasemapDescriptor:
        with self._connection() as conn, conn.cursor() as cur:
            cur.execute(self.UPSERT_SQL, dataclasses.asdict(basemap))
            conn.commit()
        return basemap

    def get(self, basemap_id: str) -> db_models.BasemapDescriptor | None:
        with self._connection() as conn, conn.cursor() as cur:
            cur.execute("SELECT * FROM basemaps WHERE id = %s", (basemap_id,))
            row = cur.fetchone()
        return self._from_row(cast(dict[str, object], row)) if row else None

    def all(self) -> Iterable[db_models.BasemapDescriptor]:
        with self._connection() as conn, conn.cursor() as cur:
            cur.execute("SELECT * FROM basemaps ORDER BY position ASC")
            for row in cur.fetchall():
                yield self._from_row(cast(dict[str, object], row))

    def remove(self, basemap_id: str) -> bool:
        with self._connection() as conn, conn.cursor() as cur:
            cur.execute("DELETE FROM basemaps WHERE id = %s", (basemap_id,))
            deleted = cur.rowcount > 0
            conn.commit()
        return deleted

    def load(self) -> list[db_models.BasemapDescriptor]:
        return list(self.all())

    @staticmethod
    def _from_row(row: dict[str, object]) -> db_models.BasemapDescriptor:
        return db_models.BasemapDescriptor(
            id=str(row["id"]),
            name=str(row["name"]),
            type=cast(db_models.BasemapType, str(row.get("type") or "custom")),
            url=_cast(row.get("url"), str),
            tiles=_cast(row.get("tiles"), str),
            attribution=_cast(row.get("attribution"), str),
            is_active=bool(row.get("is_active", False)),
        )


@functools.lru_cache
def _memory_layer_repository() -> InMemoryLayerRepository:
    return InMemoryLayerRepository()


@functools.lru_cache
def _memory_basemap_repository() -> InMemoryBasemapRepository:
    return InMemoryBasemapRepository()


def get_layer_repository(settings: config.Settings) -> LayerRepositoryProtocol:
    """Factory function to create a layer repository.

    Args:
        settings: Application settings selecting the storage backend.

    Returns:
        The process-wide in-memory repository, or a PostgresLayerRepository
        when ``storage_backend`` is "postgres".
    """
    if settings.storage_backend == "postgres":
        return PostgresLayerRepository(settings)
    return _memory_layer_repository()


def get_basemap_repository(
    settings: config.Settings,
) -> BasemapRepositoryProtocol:
    """Factory function to create a basemap repository."""
    if settings.storage_backend == "postgres":
        return PostgresBasemapRepository(settings)
    return _memory_basemap_repository()
