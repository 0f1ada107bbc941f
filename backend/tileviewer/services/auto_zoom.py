"""One-shot camera framing for newly shown layers.

When a batch of layers becomes visible, the first one (in batch order)
that declares bounds becomes the pending auto-zoom target, provided no
other target is already pending. On that layer's first successful load
(first raster tile, or the tileset manifest) the camera is moved to frame
its bounds and the target is cleared.

If the pending layer is hidden or removed before it loads, the target is
dropped without a camera move and no other layer from the same batch is
promoted in its place: auto-zoom is best effort, not a queue.

Callback arrival order across layers is not guaranteed, so success is
decided purely by comparing the reporting layer id with the pending one.
"""

from __future__ import annotations

import dataclasses
from typing import TYPE_CHECKING

from tileviewer.core.logging import get_logger
from tileviewer.services import viewport as viewport_service

if TYPE_CHECKING:
    from collections.abc import Iterable

    from tileviewer.core import config
    from tileviewer.db import models as db_models

logger = get_logger(__name__)


@dataclasses.dataclass(frozen=True)
class AutoZoomTarget:
    """The layer awaiting its first successful load."""

    layer_id: str
    name: str
    bounds: db_models.BBox


class AutoZoomScheduler:
    """Holds at most one pending AutoZoomTarget."""

    def __init__(
        self,
        controller: viewport_service.ViewportController,
        settings: config.Settings | None = None,
    ) -> None:
        self._controller = controller
        self._pending: AutoZoomTarget | None = None
        self._base_zoom = viewport_service.DEFAULT_BASE_ZOOM
        self._min_zoom = viewport_service.DEFAULT_MIN_ZOOM
        self._max_zoom = viewport_service.DEFAULT_MAX_ZOOM
        if settings is not None:
            self._base_zoom = settings.auto_zoom_base_zoom
            self._min_zoom = settings.auto_zoom_min_zoom
            self._max_zoom = settings.auto_zoom_max_zoom

    @property
    def pending(self) -> AutoZoomTarget | None:
        return self._pending

    def schedule(
        self,
        batch: Iterable[db_models.LayerDescriptor],
    ) -> AutoZoomTarget | None:
        """Pick a target from a batch of newly visible layers.

        Does nothing while another target is pending.

        Returns:
            The pending target after the call, which may be an older one.
        """
        if self._pending is not None:
            return self._pending

        for layer in batch:
            if layer.bounds:
                self._pending = AutoZoomTarget(layer.id, layer.name, layer.bounds)
                logger.debug("Auto-zoom pending", extra={"layer_id": layer.id})
                break

        return self._pending

    def notify_success(self, layer_id: str) -> viewport_service.ViewportState | None:
        """Handle a layer's first successful load signal.

        Returns:
            The applied camera state if this layer was the pending target,
            None otherwise.
        """
        target = self._pending
        if target is None or target.layer_id != layer_id:
            return None

        self._pending = None
        current = self._controller.state
        camera = viewport_service.bounds_to_viewport(
            target.bounds,
            bearing=current.bearing,
            pitch=current.pitch,
            base_zoom=self._base_zoom,
            min_zoom=self._min_zoom,
            max_zoom=self._max_zoom,
        )
        logger.info(
            "Auto-zoomed to layer",
            extra={"layer_id": target.layer_id, "layer": target.name},
        )
        return self._controller.apply(camera, origin="auto-zoom")

    def abandon(self, layer_id: str) -> bool:
        """Drop the pending target if it belongs to ``layer_id``.

        Returns:
            True if a pending target was cleared.
        """
        if self._pending is None or self._pending.layer_id != layer_id:
            return False

        logger.debug("Auto-zoom abandoned", extra={"layer_id": layer_id})
        self._pending = None
        return True
