"""Camera state, bounds framing and the shared viewport slot.

The map has exactly one camera. ViewportController holds it and accepts
writes from two places: user interaction (pan/zoom reported by the
rendering client) and the auto-zoom scheduler. Writes are last-write-wins;
nothing is merged or queued.

bounds_to_viewport() turns a layer extent into a camera target using a
heuristic carried over from the viewer's original behaviour:
``zoom = clamp(10 - log2(max(dlat, dlon)), 1, 18)``. Single-tile sized
boxes end up near the maximum zoom and continental boxes near the minimum.
It does not account for the viewport's pixel size or aspect ratio, so
callers that need an exact fit must adjust the result themselves.

Example:
    >>> from tileviewer.services.viewport import bounds_to_viewport
    >>> target = bounds_to_viewport((15.9, 45.75, 16.1, 45.85))
    >>> round(target.zoom, 2)
    12.32
"""

from __future__ import annotations

import dataclasses
import math
from typing import TYPE_CHECKING, Literal

from tileviewer.core.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Callable

    from tileviewer.db import models as db_models

logger = get_logger(__name__)

UpdateOrigin = Literal["user", "auto-zoom"]

DEFAULT_BASE_ZOOM = 10.0
DEFAULT_MIN_ZOOM = 1.0
DEFAULT_MAX_ZOOM = 18.0


@dataclasses.dataclass(frozen=True)
class ViewportState:
    """Camera position of the map.

    Attributes:
        longitude: Center longitude in degrees, -180..180.
        latitude: Center latitude in degrees, -90..90.
        zoom: Web-Mercator zoom level, >= 0.
        bearing: Map rotation in degrees.
        pitch: Camera tilt in degrees.
    """

    longitude: float = 0.0
    latitude: float = 0.0
    zoom: float = 1.0
    bearing: float = 0.0
    pitch: float = 0.0

    def __post_init__(self) -> None:
        if not -180.0 <= self.longitude <= 180.0:
            raise ValueError(f"longitude ({self.longitude}) must be between -180 and 180")
        if not -90.0 <= self.latitude <= 90.0:
            raise ValueError(f"latitude ({self.latitude}) must be between -90 and 90")
        if not self.zoom >= 0.0:
            raise ValueError(f"zoom ({self.zoom}) must be >= 0")


def zoom_for_extent(
    span: float,
    base_zoom: float = DEFAULT_BASE_ZOOM,
    min_zoom: float = DEFAULT_MIN_ZOOM,
    max_zoom: float = DEFAULT_MAX_ZOOM,
) -> float:
    """Heuristic zoom level for a box whose larger side spans ``span`` degrees.

    A zero or negative span (a point) maps to ``max_zoom``.
    """
    if span <= 0.0 or not math.isfinite(span):
        return max_zoom
    return max(min_zoom, min(max_zoom, base_zoom - math.log2(span)))


def bounds_to_viewport(
    bounds: db_models.BBox,
    bearing: float = 0.0,
    pitch: float = 0.0,
    *,
    base_zoom: float = DEFAULT_BASE_ZOOM,
    min_zoom: float = DEFAULT_MIN_ZOOM,
    max_zoom: float = DEFAULT_MAX_ZOOM,
) -> ViewportState:
    """Camera target framing a bounding box.

    The caller is responsible for passing a valid box; for any valid box
    the result is finite.

    Args:
        bounds: (west, south, east, north) in degrees.
        bearing: Current bearing to keep.
        pitch: Current pitch to keep.
        base_zoom: Constant of the zoom heuristic.
        min_zoom: Lower clamp of the resulting zoom.
        max_zoom: Upper clamp of the resulting zoom.

    Returns:
        ViewportState centered on the box centroid.
    """
    west, south, east, north = bounds
    span = max(north - south, east - west)
    return ViewportState(
        longitude=(west + east) / 2.0,
        latitude=(south + north) / 2.0,
        zoom=zoom_for_extent(span, base_zoom, min_zoom, max_zoom),
        bearing=bearing,
        pitch=pitch,
    )


class ViewportController:
    """Holds the single camera state and notifies listeners of changes."""

    def __init__(self, initial: ViewportState | None = None) -> None:
        self._state = initial or ViewportState()
        self._listeners: list[Callable[[ViewportState, UpdateOrigin], None]] = []

    @property
    def state(self) -> ViewportState:
        return self._state

    def apply(
        self,
        state: ViewportState,
        origin: UpdateOrigin = "user",
    ) -> ViewportState:
        """Replace the camera state; the latest write always wins."""
        self._state = state
        if origin == "auto-zoom":
            logger.info(
                "Viewport moved by auto-zoom",
                extra={
                    "longitude": round(state.longitude, 6),
                    "latitude": round(state.latitude, 6),
                    "zoom": round(state.zoom, 2),
                },
            )
        for listener in list(self._listeners):
            listener(state, origin)
        return state

    def subscribe(
        self,
        listener: Callable[[ViewportState, UpdateOrigin], None],
    ) -> Callable[[], None]:
        """Register a change listener; returns a function that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe
