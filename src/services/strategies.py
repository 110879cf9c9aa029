"""Caching strategies.

Every strategy returns a response; transport failures are turned into cached
content or a synthetic response, never raised to the caller. Storage read
failures count as cache misses; storage write failures are logged and never
hide a good network response.
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from typing import TYPE_CHECKING

from domain.models import CachedResponse
from services.fallback import OfflineFallbackResolver
from shared.constants import OFFLINE_FALLBACK_KEY, TierKind
from shared.errors import NetworkError
from tiles.eviction import bound_tier_size
from tiles.style import mask_token

if TYPE_CHECKING:
    from domain.config import CacheSettings
    from domain.models import RequestIdentity
    from infrastructure.http.client import Fetcher
    from shared.tasks import BackgroundTasks
    from tiles.cache import TierStore

logger = logging.getLogger(__name__)

STORAGE_ERRORS = (sqlite3.Error, OSError)

OFFLINE_PAGE_HTML = """<!DOCTYPE html>
<html>
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>Offline - Delivery Map</title>
    <style>
        body {
            font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;
            display: flex;
            flex-direction: column;
            align-items: center;
            justify-content: center;
            min-height: 100vh;
            margin: 0;
            background: linear-gradient(135deg, #1e3a5f 0%, #0f172a 100%);
            color: white;
            text-align: center;
            padding: 20px;
        }
        p { font-size: 1.2rem; opacity: 0.8; max-width: 400px; }
        .info { font-size: 0.9rem; opacity: 0.6; margin-top: 1rem; }
        button {
            margin-top: 2rem;
            padding: 12px 24px;
            font-size: 1rem;
            background: #3b82f6;
            color: white;
            border: none;
            border-radius: 8px;
            cursor: pointer;
        }
    </style>
</head>
<body>
    <h2>You are offline</h2>
    <p>The application has to be loaded online at least once before it can work offline.</p>
    <p class="info">Connect to the internet and reload the page.</p>
    <button onclick="location.reload()">Try again</button>
</body>
</html>
"""


def offline_page() -> CachedResponse:
    return CachedResponse.html(OFFLINE_PAGE_HTML)


class CacheStrategies:
    """The caching strategies the router dispatches to."""

    def __init__(
        self,
        fetcher: Fetcher,
        store: TierStore,
        settings: CacheSettings,
        tasks: BackgroundTasks,
        resolver: OfflineFallbackResolver | None = None,
    ) -> None:
        self.fetcher = fetcher
        self.store = store
        self.settings = settings
        self.tasks = tasks
        self.resolver = resolver or OfflineFallbackResolver(store, settings)

    def _read(self, tier_name: str, request: RequestIdentity) -> CachedResponse | None:
        try:
            return self.store.open(tier_name).match(request)
        except STORAGE_ERRORS as e:
            logger.warning('Cache read failed (%s): %s', tier_name, e)
            return None

    def _write(self, tier_name: str, *keys: RequestIdentity | str, response: CachedResponse) -> bool:
        try:
            tier = self.store.open(tier_name)
            for key in keys:
                tier.put(key, response)
        except STORAGE_ERRORS as e:
            logger.warning('Cache write failed (%s): %s', tier_name, e)
            return False
        return True

    async def passthrough(self, request: RequestIdentity) -> CachedResponse:
        """Forward untouched; no tier is read or written."""
        try:
            return await self.fetcher.fetch(request)
        except NetworkError as e:
            logger.debug('Passthrough failed: %s', e)
            return CachedResponse.empty()

    async def network_first_navigation(self, request: RequestIdentity) -> CachedResponse:
        """Page loads: network, then any cached page, then the offline page."""
        html_tier = self.settings.tier_name(TierKind.PAGE_HTML)
        try:
            response = await self.fetcher.fetch(request)
        except NetworkError as e:
            logger.info('Offline navigation to %s: %s', request.url, e)
            try:
                cached = self.resolver.resolve(request)
            except STORAGE_ERRORS as se:
                logger.warning('Offline lookup failed: %s', se)
                cached = None
            return cached if cached is not None else offline_page()
        if response.ok and self._write(html_tier, request, OFFLINE_FALLBACK_KEY, response=response):
            logger.debug('Page cached: %s', request.url)
        return response

    async def stale_while_revalidate(
        self,
        request: RequestIdentity,
        tier_name: str,
        *,
        bound_size: bool = False,
    ) -> CachedResponse:
        """Serve the cached entry now and refresh it in the background.

        On a miss the caller waits for the refresh; a failed refresh gives a
        503 JSON error.
        """
        cached = self._read(tier_name, request)
        refresh = self.tasks.spawn(
            self._revalidate(request, tier_name, bound_size=bound_size),
            name=f'revalidate:{mask_token(request.url)}',
        )
        if cached is not None:
            return cached
        response = await asyncio.shield(refresh)
        return response if response is not None else CachedResponse.json_error()

    async def _revalidate(
        self,
        request: RequestIdentity,
        tier_name: str,
        *,
        bound_size: bool,
    ) -> CachedResponse | None:
        try:
            response = await self.fetcher.fetch(request)
        except NetworkError as e:
            logger.debug('Revalidation failed: %s', e)
            return None
        if response.ok and self._write(tier_name, request, response=response) and bound_size:
            try:
                bound_tier_size(self.store, tier_name, self.settings.max_tile_entries)
            except STORAGE_ERRORS as e:
                logger.warning('Cache bounding failed (%s): %s', tier_name, e)
        return response

    async def cache_first(self, request: RequestIdentity, tier_name: str) -> CachedResponse:
        cached = self._read(tier_name, request)
        if cached is not None:
            return cached
        try:
            response = await self.fetcher.fetch(request)
        except NetworkError as e:
            logger.debug('Static asset unavailable offline: %s', e)
            return CachedResponse.empty()
        if response.ok:
            self._write(tier_name, request, response=response)
        return response

    async def network_only(self, request: RequestIdentity) -> CachedResponse:
        """Backend API: never cached; offline gives a 503 JSON error."""
        try:
            return await self.fetcher.fetch(request)
        except NetworkError as e:
            logger.debug('API request failed offline: %s', e)
            return CachedResponse.json_error()

    async def network_first(self, request: RequestIdentity, tier_name: str) -> CachedResponse:
        """Network, caching successes; offline falls back to any tier."""
        try:
            response = await self.fetcher.fetch(request)
        except NetworkError as e:
            logger.debug('Network-first fallback for %s: %s', request.url, e)
            try:
                cached = self.store.match(request)
            except STORAGE_ERRORS as se:
                logger.warning('Cache read failed: %s', se)
                cached = None
            return cached if cached is not None else CachedResponse.empty()
        if response.ok:
            self._write(tier_name, request, response=response)
        return response
