"""Multi-step lookup of a cached page for navigations made while offline."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING
from urllib.parse import urlsplit

from shared.constants import OFFLINE_FALLBACK_KEY, TierKind

if TYPE_CHECKING:
    from domain.config import CacheSettings
    from domain.models import CachedResponse, RequestIdentity
    from tiles.cache import TierStore

logger = logging.getLogger(__name__)

HTML_PATH_SUFFIXES = ('/', '.html', 'index.html')


def looks_like_page(url: str) -> bool:
    path = urlsplit(url).path or '/'
    return path.endswith(HTML_PATH_SUFFIXES)


class OfflineFallbackResolver:
    """Find the best cached document for a navigation request.

    Lookup order:
        1. exact identity in any tier
        2. URL string alone in any tier
        3. the page tier's fixed offline-fallback entry
        4. any entry of the page tier
        5. any tier entry whose URL path ends in '/', '.html' or 'index.html'
    """

    def __init__(self, store: TierStore, settings: CacheSettings) -> None:
        self.store = store
        self.settings = settings

    def resolve(self, request: RequestIdentity) -> CachedResponse | None:
        cached = self.store.match(request)
        if cached is not None:
            logger.debug('Offline [1] exact match for %s', request.url)
            return cached

        cached = self.store.match_url(request.url)
        if cached is not None:
            logger.debug('Offline [2] URL match for %s', request.url)
            return cached

        html_tier = self.store.open(self.settings.tier_name(TierKind.PAGE_HTML))
        cached = html_tier.match(OFFLINE_FALLBACK_KEY)
        if cached is not None:
            logger.debug('Offline [3] fallback entry used')
            return cached

        first = html_tier.first()
        if first is not None:
            key, cached = first
            logger.debug('Offline [4] page tier entry used: %s', key.url)
            return cached

        for name in self.store.names():
            tier = self.store.open(name)
            for key in tier.keys():
                if not looks_like_page(key.url):
                    continue
                cached = tier.match(key)
                if cached is not None:
                    logger.debug('Offline [5] page found in %s: %s', name, key.url)
                    return cached

        logger.info('No cached page available for %s', request.url)
        return None
