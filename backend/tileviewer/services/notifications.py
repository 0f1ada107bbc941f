"""Decoupled change notifications for the layer and basemap registries.

Whoever mutates the registries publishes a topic; any number of listeners
(possibly none) react. A failing listener is logged and does not stop the
others or the publisher.

Example:
    >>> notifier = Notifier()
    >>> unsubscribe = notifier.subscribe(LAYERS_CHANGED, print)
    >>> notifier.publish(LAYERS_CHANGED, ["ortho-1"])
    ['ortho-1']
"""

from __future__ import annotations

import collections
import dataclasses
from typing import TYPE_CHECKING, Any

from tileviewer.core.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Callable

    from tileviewer.db import models as db_models

logger = get_logger(__name__)

LAYERS_CHANGED = "layers-changed"
BASEMAPS_CHANGED = "basemaps-changed"


@dataclasses.dataclass(frozen=True)
class RegistryChange:
    """Registry contents after a mutation, published with both topics."""

    layers: list[db_models.LayerDescriptor]
    basemaps: list[db_models.BasemapDescriptor]


class Notifier:
    """Topic-based publish/subscribe without required subscribers."""

    def __init__(self) -> None:
        self._listeners: dict[str, list[Callable[[Any], None]]] = (
            collections.defaultdict(list)
        )

    def subscribe(
        self,
        topic: str,
        listener: Callable[[Any], None],
    ) -> Callable[[], None]:
        """Register a listener; returns a function that removes it."""
        self._listeners[topic].append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners[topic]:
                self._listeners[topic].remove(listener)

        return unsubscribe

    def publish(self, topic: str, payload: Any = None) -> int:
        """Deliver ``payload`` to every listener of ``topic``.

        Returns:
            Number of listeners that handled the payload without raising.
        """
        delivered = 0
        for listener in list(self._listeners.get(topic, ())):
            try:
                listener(payload)
            except Exception:
                logger.exception("Listener failed", extra={"topic": topic})
                continue
            delivered += 1
        return delivered
