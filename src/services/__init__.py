"""Services package - request routing, caching strategies and prefetch."""

from services.classifier import ClassifierChain, RequestKind
from services.fallback import OfflineFallbackResolver
from services.strategies import CacheStrategies, offline_page
from services.router import CacheRouter
from services.prefetch import AreaPrefetchJob
from services.lifecycle import activate, cache_current_page, install
from services.commands import CommandDispatcher

__all__ = [
    'AreaPrefetchJob',
    'CacheRouter',
    'CacheStrategies',
    'ClassifierChain',
    'CommandDispatcher',
    'OfflineFallbackResolver',
    'RequestKind',
    'activate',
    'cache_current_page',
    'install',
    'offline_page',
]
