"""Tile ingestion and visualization pipeline.

TilePipeline ties the dispatcher, the load-status tracker, the auto-zoom
scheduler and the viewport controller together. The rendering client calls
render_layers() with the full list of layer descriptors whenever the layer
set changes and draws the returned primitives; the primitives' callbacks
feed load events back into the pipeline.

Everything runs on a single control thread (the event loop serving the
API), so the per-layer status store and the pending auto-zoom target need
no locking. Completions can arrive late, after their layer was hidden,
removed, or re-added; such events are recognised because their strategy is
no longer the current one for the layer id, and are dropped silently.

Example:
    >>> pipeline = TilePipeline()
    >>> primitives = pipeline.render_layers([ortho, mesh])
    >>> primitives[0].on_tile_load(RasterTile(x=1, y=1, z=2, content=image))
    >>> pipeline.status("ortho-1").loaded_tiles
    1
    >>> pipeline.viewport.state.zoom  # moved by auto-zoom
    12.32...
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from tileviewer.core import config
from tileviewer.core.logging import get_logger
from tileviewer.db import models as db_models
from tileviewer.services import auto_zoom
from tileviewer.services import dispatcher
from tileviewer.services import events
from tileviewer.services import load_status
from tileviewer.services import notifications
from tileviewer.services import viewport as viewport_service

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Sequence

    from tileviewer.db import database

logger = get_logger(__name__)


def compose_layers(
    basemaps: Iterable[db_models.BasemapDescriptor],
    layers: Iterable[db_models.LayerDescriptor],
    basemap_max_zoom: int = 19,
) -> list[db_models.LayerDescriptor]:
    """Render order for the map: basemaps underneath, data layers on top."""
    return [
        *(basemap.to_layer(max_zoom=basemap_max_zoom) for basemap in basemaps),
        *layers,
    ]


def _same_source(
    a: db_models.LayerDescriptor,
    b: db_models.LayerDescriptor,
) -> bool:
    return (
        db_models.canonical_kind(a.kind) == db_models.canonical_kind(b.kind)
        and a.source == b.source
    )


class TilePipeline:
    """Per-layer rendering, load tracking and one-shot auto-zoom."""

    def __init__(
        self,
        settings: config.Settings | None = None,
        viewport: viewport_service.ViewportController | None = None,
    ) -> None:
        self.settings = settings
        self.viewport = viewport or viewport_service.ViewportController()
        self.tracker = load_status.LoadStatusTracker()
        self.scheduler = auto_zoom.AutoZoomScheduler(self.viewport, settings)
        self._strategies: dict[str, dispatcher.RenderStrategy] = {}
        self._pointer_handler: Callable[[Any], Any] | None = None

    @property
    def active_layer_ids(self) -> list[str]:
        """Ids of the layers currently rendered, in render order."""
        return list(self._strategies)

    @property
    def pending_auto_zoom(self) -> auto_zoom.AutoZoomTarget | None:
        return self.scheduler.pending

    def strategy(self, layer_id: str) -> dispatcher.RenderStrategy | None:
        """Current strategy of an active layer."""
        return self._strategies.get(layer_id)

    def status(self, layer_id: str) -> load_status.LoadStatus | None:
        return self.tracker.get(layer_id)

    def statuses(self) -> dict[str, load_status.LoadStatus]:
        return self.tracker.snapshot()

    def render_layers(
        self,
        layers: Sequence[db_models.LayerDescriptor],
    ) -> list[dispatcher.RenderPrimitive]:
        """Synchronise with the current layer list and build render primitives.

        Layers that became visible (or whose source changed) get a fresh
        strategy and a reset load status, and are offered to the auto-zoom
        scheduler as one batch in list order. Layers that disappeared or
        were hidden lose their status and any pending auto-zoom. Layers of
        unsupported kinds are neither rendered nor tracked.

        Args:
            layers: Every known layer descriptor, in render order.

        Returns:
            One primitive per visible, dispatchable layer.
        """
        previous = self._strategies
        current: dict[str, dispatcher.RenderStrategy] = {}
        newly_visible: list[db_models.LayerDescriptor] = []

        for layer in layers:
            if not layer.visible:
                continue
            if layer.id in current:
                logger.warning("Duplicate layer id ignored", extra={"layer_id": layer.id})
                continue

            existing = previous.get(layer.id)
            if existing is not None and _same_source(existing.layer, layer):
                existing.layer = layer
                current[layer.id] = existing
                continue

            strategy = dispatcher.create_strategy(layer, self, self.settings)
            if strategy is None:
                continue
            current[layer.id] = strategy
            newly_visible.append(layer)

        for layer_id, strategy in previous.items():
            if current.get(layer_id) is not strategy:
                self._deactivate(layer_id)

        self._strategies = current
        for layer in newly_visible:
            self.tracker.start(layer.id)
        if newly_visible:
            self.scheduler.schedule(newly_visible)

        return [strategy.build() for strategy in current.values()]

    def sync_registry(
        self,
        change: notifications.RegistryChange,
    ) -> list[dispatcher.RenderPrimitive]:
        """Re-render after a registry mutation; subscribed to both topics."""
        max_zoom = self.settings.default_max_zoom if self.settings else 19
        return self.render_layers(
            compose_layers(change.basemaps, change.layers, max_zoom),
        )

    def _deactivate(self, layer_id: str) -> None:
        self.tracker.discard(layer_id)
        if self.scheduler.abandon(layer_id):
            logger.info(
                "Pending auto-zoom dropped with its layer",
                extra={"layer_id": layer_id},
            )

    def emit(
        self,
        strategy: dispatcher.RenderStrategy,
        event: events.LoadEvent,
    ) -> bool:
        """Accept an event from a strategy, dropping it if the strategy is stale."""
        if self._strategies.get(event.layer_id) is not strategy:
            logger.debug(
                "Stale load event dropped",
                extra={"layer_id": event.layer_id, "event": type(event).__name__},
            )
            return False
        return self.handle_event(event)

    def handle_event(self, event: events.LoadEvent) -> bool:
        """Apply one load event to the status tracker and auto-zoom scheduler.

        Returns:
            True if the event was applied, False if its layer is not active.
        """
        strategy = self._strategies.get(event.layer_id)
        if strategy is None:
            return False

        if isinstance(event, events.TileLoaded):
            applied = self.tracker.record_tile_loaded(event.layer_id)
            if applied and strategy.kind == "raster":
                self.scheduler.notify_success(event.layer_id)
            return applied

        if isinstance(event, events.TileFailed):
            return self.tracker.record_tile_error(event.layer_id, event.message)

        if isinstance(event, events.ViewportLoaded):
            return self.tracker.record_viewport_loaded(
                event.layer_id, event.tile_count,
            )

        if isinstance(event, events.TilesetLoaded):
            applied = self.tracker.record_tileset_loaded(event.layer_id)
            if applied:
                self.scheduler.notify_success(event.layer_id)
            return applied

        raise TypeError(f"Unsupported load event: {type(event).__name__}")

    def set_viewport(
        self,
        state: viewport_service.ViewportState,
    ) -> viewport_service.ViewportState:
        """Apply a user-driven camera change (last write wins)."""
        return self.viewport.apply(state, origin="user")

    def set_pointer_handler(self, handler: Callable[[Any], Any] | None) -> None:
        self._pointer_handler = handler

    def forward_pointer_event(self, event: Any) -> Any:
        """Pass a click/hover event to the registered handler untouched."""
        if self._pointer_handler is None:
            return None
        return self._pointer_handler(event)


def render_from_repositories(
    pipeline: TilePipeline,
    layer_repo: database.LayerRepositoryProtocol,
    basemap_repo: database.BasemapRepositoryProtocol,
) -> list[dispatcher.RenderPrimitive]:
    """Render the persisted basemaps and layers through ``pipeline``."""
    return pipeline.sync_registry(
        notifications.RegistryChange(
            layers=layer_repo.load(),
            basemaps=basemap_repo.load(),
        ),
    )
