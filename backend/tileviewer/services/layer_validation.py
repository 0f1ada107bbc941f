"""Admission checks for layer descriptors.

Structural problems (bad bounds, zoom ranges, raster templates without the
``{z}``/``{x}``/``{y}`` placeholders) are reported before a layer is
admitted to the registry, so the render pipeline only ever sees sources it
can request. Each check returns ``(is_valid, error_message)``;
validate_layer() collects every failure into one LayerValidationError.

Kinds this version does not know are not an admission error: their source
is not checked and the dispatcher skips them, which lets records written by
newer producers round-trip through the registry untouched.
"""

from __future__ import annotations

from typing import TYPE_CHECKING
from urllib import parse

from tileviewer.db import models as db_models

if TYPE_CHECKING:
    from collections.abc import Sequence

LON_MIN, LON_MAX = -180.0, 180.0
LAT_MIN, LAT_MAX = -90.0, 90.0
ZOOM_MIN, ZOOM_MAX = 0, 24

TEMPLATE_PLACEHOLDERS = ("{z}", "{x}", "{y}")


class LayerValidationError(ValueError):
    """Raised when a layer descriptor fails admission checks.

    Attributes:
        errors: One human-readable message per failed check.
    """

    def __init__(self, errors: Sequence[str]) -> None:
        self.errors = list(errors)
        super().__init__("; ".join(self.errors))


def validate_bounds_values(
    bounds: Sequence[float],
) -> tuple[bool, str | None]:
    """Validate a (west, south, east, north) bounding box."""
    if len(bounds) != 4:
        return False, (
            "bounds must have exactly 4 values [west, south, east, north], "
            f"got {len(bounds)}"
        )

    try:
        west, south, east, north = (float(value) for value in bounds)
    except (TypeError, ValueError):
        return False, "bounds values must be numbers"

    for label, value in (("west", west), ("east", east)):
        if not LON_MIN <= value <= LON_MAX:
            return False, f"{label} ({value}) must be between {LON_MIN} and {LON_MAX}"
    for label, value in (("south", south), ("north", north)):
        if not LAT_MIN <= value <= LAT_MAX:
            return False, f"{label} ({value}) must be between {LAT_MIN} and {LAT_MAX}"

    if west >= east:
        return False, f"west ({west}) must be less than east ({east})"
    if south >= north:
        return False, f"south ({south}) must be less than north ({north})"

    return True, None


def validate_zoom_range(min_zoom: int, max_zoom: int) -> tuple[bool, str | None]:
    """Validate a min/max zoom pair."""
    for label, value in (("min_zoom", min_zoom), ("max_zoom", max_zoom)):
        if not ZOOM_MIN <= value <= ZOOM_MAX:
            return False, f"{label} ({value}) must be between {ZOOM_MIN} and {ZOOM_MAX}"
    if min_zoom > max_zoom:
        return False, f"min_zoom ({min_zoom}) must not exceed max_zoom ({max_zoom})"
    return True, None


def validate_url_template(template: str) -> tuple[bool, str | None]:
    """Validate a raster ``{z}/{x}/{y}`` URL template."""
    if not template or not template.strip():
        return False, "raster source must be a non-empty URL template"

    missing = [p for p in TEMPLATE_PLACEHOLDERS if p not in template]
    if missing:
        return False, (
            f"raster source template is missing placeholders: {', '.join(missing)}"
        )
    return True, None


def validate_tileset_url(url: str) -> tuple[bool, str | None]:
    """Validate a 3D tileset manifest URL (absolute http(s) or a path)."""
    if not url or not url.strip():
        return False, "tileset source must be a non-empty manifest URL"

    parsed = parse.urlparse(url)
    if parsed.scheme and parsed.scheme not in {"http", "https"}:
        return False, f"tileset source scheme '{parsed.scheme}' is not supported"
    if any(p in url for p in TEMPLATE_PLACEHOLDERS):
        return False, "tileset source must be a single manifest URL, not a template"
    return True, None


def collect_layer_errors(layer: db_models.LayerDescriptor) -> list[str]:
    """Run every admission check and return the failure messages."""
    errors: list[str] = []

    if not layer.name or not layer.name.strip():
        errors.append("name must not be empty")

    if not 0.0 <= layer.opacity <= 1.0:
        errors.append(f"opacity ({layer.opacity}) must be between 0 and 1")

    checks = [validate_zoom_range(layer.min_zoom, layer.max_zoom)]
    if layer.bounds is not None:
        checks.append(validate_bounds_values(layer.bounds))
    if layer.is_raster:
        checks.append(validate_url_template(layer.source))
    elif layer.is_tileset:
        checks.append(validate_tileset_url(layer.source))

    errors.extend(message for ok, message in checks if not ok and message)
    return errors


def validate_layer(
    layer: db_models.LayerDescriptor,
) -> db_models.LayerDescriptor:
    """Check a descriptor before it is admitted to the registry.

    Returns:
        The same descriptor, unchanged.

    Raises:
        LayerValidationError: If any check fails.
    """
    errors = collect_layer_errors(layer)
    if errors:
        raise LayerValidationError(errors)
    return layer
