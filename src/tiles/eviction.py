"""Entry-count bounding of cache tiers.

Insertion order stands in for recency: tiles are almost always written once,
so the oldest insert is a good enough eviction candidate.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from tiles.cache import TierStore

logger = logging.getLogger(__name__)


def bound_tier_size(store: TierStore, tier_name: str, max_entries: int) -> int:
    """Delete the oldest entries until the tier holds at most max_entries.

    Returns:
        Number of entries deleted.
    """
    tier = store.open(tier_name)
    keys = tier.keys()
    excess = len(keys) - max(0, max_entries)
    if excess <= 0:
        return 0
    deleted = tier.delete_many(keys[:excess])
    logger.debug('Tier %s bounded to %d entries (%d evicted)', tier_name, max_entries, deleted)
    return deleted
