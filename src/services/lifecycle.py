"""Install / activate steps of the cache layer and the current-page capture."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from domain.models import NAVIGATE_MODE, RequestIdentity
from services.strategies import STORAGE_ERRORS
from shared.constants import OFFLINE_FALLBACK_KEY, TierKind
from shared.errors import NetworkError
from tiles.style import mask_token

if TYPE_CHECKING:
    from domain.config import CacheSettings
    from infrastructure.http.client import Fetcher
    from tiles.cache import TierStore

logger = logging.getLogger(__name__)


@dataclass
class InstallReport:
    warmed: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    page_cached: bool = False


async def _warm_asset(
    url: str,
    fetcher: Fetcher,
    store: TierStore,
    tier_name: str,
) -> bool:
    try:
        response = await fetcher.fetch(RequestIdentity(url=url))
    except NetworkError as e:
        logger.warning('Static asset not cached %s: %s', mask_token(url), e)
        return False
    if not response.ok:
        logger.warning('Static asset not cached %s: HTTP %d', mask_token(url), response.status)
        return False
    try:
        store.open(tier_name).put(RequestIdentity(url=url), response)
    except STORAGE_ERRORS as e:
        logger.warning('Static asset not stored %s: %s', mask_token(url), e)
        return False
    return True


async def cache_current_page(
    fetcher: Fetcher,
    store: TierStore,
    settings: CacheSettings,
    url: str | None = None,
) -> bool:
    """Fetch the page and keep it as the offline fallback.

    The page is stored under its own URL, the scope's index.html and the
    fixed offline-fallback key. Returns False when nothing was stored.
    """
    page_url = url or settings.app_scope_url
    try:
        response = await fetcher.fetch(RequestIdentity(url=page_url, mode=NAVIGATE_MODE))
    except NetworkError as e:
        logger.warning('Page not cached %s: %s', page_url, e)
        return False
    if not response.ok:
        logger.warning('Page not cached %s: HTTP %d', page_url, response.status)
        return False
    keys = dict.fromkeys([page_url, settings.app_scope_url + 'index.html', OFFLINE_FALLBACK_KEY])
    try:
        tier = store.open(settings.tier_name(TierKind.PAGE_HTML))
        for key in keys:
            tier.put(key, response)
    except STORAGE_ERRORS as e:
        logger.warning('Page not stored %s: %s', page_url, e)
        return False
    logger.info('Page cached for offline use: %s', page_url)
    return True


async def install(fetcher: Fetcher, store: TierStore, settings: CacheSettings) -> InstallReport:
    """Warm the static assets and the app page.

    A failing asset is logged and skipped; install itself never fails on it.
    """
    report = InstallReport()
    tier_name = settings.tier_name(TierKind.STATIC_ASSETS)
    results = await asyncio.gather(
        *(_warm_asset(url, fetcher, store, tier_name) for url in settings.static_assets)
    )
    for url, ok in zip(settings.static_assets, results):
        (report.warmed if ok else report.skipped).append(url)
    report.page_cached = await cache_current_page(fetcher, store, settings)
    logger.info(
        'Install %s: %d assets cached, %d skipped, page %s',
        settings.cache_version,
        len(report.warmed),
        len(report.skipped),
        'cached' if report.page_cached else 'missing',
    )
    return report


def activate(store: TierStore, settings: CacheSettings) -> list[str]:
    """Delete every tier that is not part of the current version."""
    valid = settings.valid_tiers
    removed = []
    for name in store.names():
        if name not in valid:
            store.delete(name)
            removed.append(name)
            logger.info('Removed old cache tier: %s', name)
    return removed
