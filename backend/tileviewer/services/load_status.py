"""Per-layer tile load progress and error tracking.

Each visible layer owns one LoadStatus in a LoadStatusTracker. The tracker
is an explicit keyed store: callbacks receive it by reference and every
mutation goes through LoadStatusTracker._update(), so the invariants below
are enforced in one place.

State machine per layer::

    idle -> loading -> loaded
                    -> errored

* start() enters ``loading`` with zeroed counters. It is called whenever a
  layer becomes visible, including after being hidden or removed.
* A raster tile error only records the message; the layer stays
  ``loading`` until its viewport batch resolves, so one bad tile does not
  hide the progress of its siblings.
* A tileset leaves ``loading`` when its manifest loads; tile errors after
  that move it to ``errored`` but never touch the loading flag themselves.
* Updates addressed to a layer without a status (hidden or removed since
  the request was issued) are ignored.
"""

from __future__ import annotations

import dataclasses
import enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Callable


class LoadState(enum.StrEnum):
    IDLE = "idle"
    LOADING = "loading"
    LOADED = "loaded"
    ERRORED = "errored"


@dataclasses.dataclass(frozen=True)
class LoadStatus:
    """Snapshot of one layer's load progress.

    Attributes:
        state: Current state machine position.
        loaded_tiles: Tiles resolved successfully since the last reset.
        total_tiles: Size of the last viewport batch, 0 while unknown.
        error: Message of the most recent tile failure, if any.
    """

    state: LoadState = LoadState.IDLE
    loaded_tiles: int = 0
    total_tiles: int = 0
    error: str | None = None

    @property
    def is_loading(self) -> bool:
        return self.state is LoadState.LOADING

    def to_dict(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "is_loading": self.is_loading,
            "loaded_tiles": self.loaded_tiles,
            "total_tiles": self.total_tiles,
            "error": self.error,
        }


def _settled_state(error: str | None) -> LoadState:
    return LoadState.ERRORED if error else LoadState.LOADED


class LoadStatusTracker:
    """Keyed store of LoadStatus values, one per active layer."""

    def __init__(self) -> None:
        self._statuses: dict[str, LoadStatus] = {}

    def __contains__(self, layer_id: object) -> bool:
        return layer_id in self._statuses

    def get(self, layer_id: str) -> LoadStatus | None:
        return self._statuses.get(layer_id)

    def snapshot(self) -> dict[str, LoadStatus]:
        """Copy of all statuses keyed by layer id."""
        return dict(self._statuses)

    def start(self, layer_id: str) -> LoadStatus:
        """Reset a layer to ``loading`` with zeroed counters."""
        status = LoadStatus(state=LoadState.LOADING)
        self._statuses[layer_id] = status
        return status

    def discard(self, layer_id: str) -> None:
        """Forget a layer's status (layer hidden or removed)."""
        self._statuses.pop(layer_id, None)

    def record_tile_loaded(self, layer_id: str) -> bool:
        return self._update(
            layer_id,
            lambda s: dataclasses.replace(s, loaded_tiles=s.loaded_tiles + 1),
        )

    def record_tile_error(self, layer_id: str, message: str) -> bool:
        def transition(status: LoadStatus) -> LoadStatus:
            if status.is_loading:
                return dataclasses.replace(status, error=message)
            return dataclasses.replace(
                status, error=message, state=LoadState.ERRORED,
            )

        return self._update(layer_id, transition)

    def record_viewport_loaded(self, layer_id: str, tile_count: int) -> bool:
        return self._update(
            layer_id,
            lambda s: dataclasses.replace(
                s,
                total_tiles=max(0, tile_count),
                state=_settled_state(s.error),
            ),
        )

    def record_tileset_loaded(self, layer_id: str) -> bool:
        return self._update(
            layer_id,
            lambda s: dataclasses.replace(s, state=_settled_state(s.error)),
        )

    def _update(
        self,
        layer_id: str,
        transition: Callable[[LoadStatus], LoadStatus],
    ) -> bool:
        """Apply a transition to one layer's status.

        Returns:
            False if the layer has no status (stale update), True otherwise.
        """
        current = self._statuses.get(layer_id)
        if current is None:
            return False
        self._statuses[layer_id] = transition(current)
        return True
