"""Tile math, style descriptors and the SQLite cache tiers.

This module provides:
- TierStore / CacheTier: named response stores in one SQLite database
- bound_tier_size: oldest-first trimming of a tier
- coords: Web-Mercator tile ranges for a bounding box
- style: style reference resolution and tile/sprite URL building
"""

from tiles.cache import CacheTier, TierStats, TierStore
from tiles.coords import count_tiles, iter_tiles, tiles_for_bbox, tiles_for_zoom_range
from tiles.eviction import bound_tier_size
from tiles.style import build_tile_url, mask_token, resolve_style_url

__all__ = [
    'CacheTier',
    'TierStats',
    'TierStore',
    'bound_tier_size',
    'build_tile_url',
    'count_tiles',
    'iter_tiles',
    'mask_token',
    'resolve_style_url',
    'tiles_for_bbox',
    'tiles_for_zoom_range',
]
