"""Cache router: classify each intercepted request and pick its strategy."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from domain.models import CachedResponse
from services.classifier import ClassifierChain, RequestKind
from services.strategies import CacheStrategies, offline_page
from shared.constants import TierKind
from shared.tasks import BackgroundTasks
from tiles.style import mask_token

if TYPE_CHECKING:
    from domain.config import CacheSettings
    from domain.models import RequestIdentity
    from infrastructure.http.client import Fetcher
    from services.classifier import RequestClassifier
    from tiles.cache import TierStore

logger = logging.getLogger(__name__)


class CacheRouter:
    """Entry point for every intercepted request.

    Usage:
        router = CacheRouter(fetcher, store, settings)
        response = await router.handle(RequestIdentity(url=...))
        await router.tasks.join()  # wait for background revalidation
    """

    def __init__(
        self,
        fetcher: Fetcher,
        store: TierStore,
        settings: CacheSettings,
        *,
        tasks: BackgroundTasks | None = None,
        classifier: RequestClassifier | None = None,
    ) -> None:
        self.settings = settings
        self.store = store
        self.tasks = tasks or BackgroundTasks()
        self.classifier = classifier or ClassifierChain.from_settings(settings)
        self.strategies = CacheStrategies(fetcher, store, settings, self.tasks)

    def classify(self, request: RequestIdentity) -> RequestKind:
        kind = self.classifier.classify(request)
        return kind if kind is not None else RequestKind.GENERIC

    async def handle(self, request: RequestIdentity) -> CachedResponse:
        kind = self.classify(request)
        logger.debug('%s %s -> %s', request.method, mask_token(request.url), kind.value)
        try:
            return await self._dispatch(kind, request)
        except Exception as e:
            logger.error('Unhandled error for %s: %s', mask_token(request.url), e, exc_info=True)
            if kind is RequestKind.NAVIGATE:
                return offline_page()
            if kind in (RequestKind.TILE, RequestKind.METADATA, RequestKind.API_ONLY):
                return CachedResponse.json_error()
            return CachedResponse.empty()

    async def _dispatch(self, kind: RequestKind, request: RequestIdentity) -> CachedResponse:
        s = self.strategies
        tier = self.settings.tier_name
        if kind is RequestKind.PASSTHROUGH:
            return await s.passthrough(request)
        if kind is RequestKind.NAVIGATE:
            return await s.network_first_navigation(request)
        if kind is RequestKind.TILE:
            return await s.stale_while_revalidate(
                request, tier(TierKind.TILE_DATA), bound_size=True
            )
        if kind is RequestKind.METADATA:
            return await s.stale_while_revalidate(request, tier(TierKind.MAP_METADATA))
        if kind is RequestKind.STATIC_ASSET:
            return await s.cache_first(request, tier(TierKind.STATIC_ASSETS))
        if kind is RequestKind.API_ONLY:
            return await s.network_only(request)
        return await s.network_first(request, tier(TierKind.STATIC_ASSETS))
