"""Web Mercator tile coordinate math (bounding box → XYZ tiles)."""

from __future__ import annotations

import math
from typing import TYPE_CHECKING

from domain.models import TileCoordinate

if TYPE_CHECKING:
    from collections.abc import Iterator

    from domain.models import BoundingBox

WORLD_LNG_SPAN_DEG = 360.0
WORLD_LNG_HALF_SPAN_DEG = 180.0
# Предел широты проекции Web Mercator
MERCATOR_MAX_LAT_DEG = 85.0511287798066


def _clamp_index(value: int, zoom: int) -> int:
    return min(max(value, 0), (1 << zoom) - 1)


def lon_to_tile_x(lng_deg: float, zoom: int) -> int:
    """Долгота -> индекс тайла X (без ограничения диапазона)."""
    return math.floor((lng_deg + WORLD_LNG_HALF_SPAN_DEG) / WORLD_LNG_SPAN_DEG * (1 << zoom))


def lat_to_tile_y(lat_deg: float, zoom: int) -> int:
    """Широта -> индекс тайла Y (без ограничения диапазона)."""
    lat_deg = min(max(lat_deg, -MERCATOR_MAX_LAT_DEG), MERCATOR_MAX_LAT_DEG)
    lat_rad = math.radians(lat_deg)
    merc = math.log(math.tan(lat_rad) + 1.0 / math.cos(lat_rad))
    return math.floor((1.0 - merc / math.pi) / 2.0 * (1 << zoom))


def tile_range(bbox: BoundingBox, zoom: int) -> tuple[int, int, int, int]:
    """Clamped (x_min, x_max, y_min, y_max) covering the box at the zoom.

    North maps to the smaller Y. An inverted box gives x_min > x_max (or
    y_min > y_max) and therefore an empty enumeration.
    """
    x_min = _clamp_index(lon_to_tile_x(bbox.west, zoom), zoom)
    x_max = _clamp_index(lon_to_tile_x(bbox.east, zoom), zoom)
    y_min = _clamp_index(lat_to_tile_y(bbox.north, zoom), zoom)
    y_max = _clamp_index(lat_to_tile_y(bbox.south, zoom), zoom)
    return x_min, x_max, y_min, y_max


def iter_tiles(bbox: BoundingBox, zoom: int) -> Iterator[TileCoordinate]:
    x_min, x_max, y_min, y_max = tile_range(bbox, zoom)
    for x in range(x_min, x_max + 1):
        for y in range(y_min, y_max + 1):
            yield TileCoordinate(zoom=zoom, x=x, y=y)


def tiles_for_bbox(bbox: BoundingBox, zoom: int) -> list[TileCoordinate]:
    return list(iter_tiles(bbox, zoom))


def tiles_for_zoom_range(
    bbox: BoundingBox, zoom_min: int, zoom_max: int
) -> list[TileCoordinate]:
    """All tiles of the box for every zoom in [zoom_min, zoom_max]."""
    tiles: list[TileCoordinate] = []
    for zoom in range(zoom_min, zoom_max + 1):
        tiles.extend(iter_tiles(bbox, zoom))
    return tiles


def count_tiles(bbox: BoundingBox, zoom_min: int, zoom_max: int) -> int:
    total = 0
    for zoom in range(zoom_min, zoom_max + 1):
        x_min, x_max, y_min, y_max = tile_range(bbox, zoom)
        total += max(0, x_max - x_min + 1) * max(0, y_max - y_min + 1)
    return total
