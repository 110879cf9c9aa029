"""Commands sent by the app: version query, page capture and area prefetch.

Messages are either a bare string ('skipWaiting', 'getVersion',
'cacheCurrentPage', 'sync-pending-data') or a mapping. A mapping with type
PREFETCH_AREA (or without a type but carrying the prefetch fields) starts a
prefetch job in the background; CANCEL_PREFETCH with an areaName stops a
running one. 'sync-pending-data' broadcasts SYNC_REQUEST to every observer.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from domain.models import ErrorEvent, PrefetchCommand, SyncRequestEvent, VersionEvent
from services.lifecycle import cache_current_page
from services.prefetch import AreaPrefetchJob

if TYPE_CHECKING:
    from collections.abc import Callable

    from domain.config import CacheSettings
    from domain.models import Event, PrefetchResult
    from infrastructure.http.client import Fetcher
    from shared.progress import ProgressChannel
    from shared.tasks import BackgroundTasks
    from tiles.cache import TierStore

logger = logging.getLogger(__name__)

SKIP_WAITING = 'skipWaiting'
GET_VERSION = 'getVersion'
CACHE_CURRENT_PAGE = 'cacheCurrentPage'
PREFETCH_AREA = 'PREFETCH_AREA'
CANCEL_PREFETCH = 'CANCEL_PREFETCH'
# Тег фоновой синхронизации приложения
SYNC_PENDING_DATA = 'sync-pending-data'

# Поля, по которым команда без type распознаётся как предзагрузка
_PREFETCH_FIELDS = frozenset({'areaName', 'bbox', 'styleUrl'})


class CommandDispatcher:
    def __init__(
        self,
        fetcher: Fetcher,
        store: TierStore,
        settings: CacheSettings,
        channel: ProgressChannel,
        tasks: BackgroundTasks,
    ) -> None:
        self.fetcher = fetcher
        self.store = store
        self.settings = settings
        self.channel = channel
        self.tasks = tasks
        self._cancel_tokens: dict[str, asyncio.Event] = {}

    @property
    def running_areas(self) -> list[str]:
        return list(self._cancel_tokens)

    async def dispatch(
        self,
        message: str | Mapping[str, Any],
        reply: Callable[[Event], None] | None = None,
    ) -> dict[str, Any]:
        """Handle one command and return an acknowledgement payload.

        Unknown commands are ignored (logged); invalid prefetch commands are
        reported as an ErrorEvent on the channel and in the reply.
        """
        if isinstance(message, str):
            kind = message
            payload: Mapping[str, Any] = {}
        elif isinstance(message, Mapping):
            payload = message
            kind = payload.get('type') or (
                PREFETCH_AREA if _PREFETCH_FIELDS <= payload.keys() else ''
            )
        else:
            kind = ''
            payload = {}

        if kind == SKIP_WAITING:
            # Один экземпляр прокси: ожидать нечего
            return {'ok': True}
        if kind == GET_VERSION:
            event = VersionEvent(version=self.settings.cache_version)
            if reply is not None:
                reply(event)
            return event.to_message()
        if kind == CACHE_CURRENT_PAGE:
            cached = await cache_current_page(self.fetcher, self.store, self.settings)
            return {'ok': cached}
        if kind == PREFETCH_AREA:
            return self._start_prefetch(payload, reply)
        if kind == CANCEL_PREFETCH:
            return {'ok': self.cancel(str(payload.get('areaName', '')))}
        if kind == SYNC_PENDING_DATA:
            self.channel.publish(SyncRequestEvent())
            return {'ok': True}

        logger.warning('Unknown command ignored: %r', kind or message)
        return {'ok': False, 'error': 'unknown command'}

    def _start_prefetch(
        self,
        payload: Mapping[str, Any],
        reply: Callable[[Event], None] | None,
    ) -> dict[str, Any]:
        try:
            command = PrefetchCommand.model_validate(
                {k: v for k, v in payload.items() if k != 'type'}
            )
        except ValidationError as e:
            area = payload.get('areaName')
            event = ErrorEvent(
                area_name=area if isinstance(area, str) else None,
                message=f'Invalid prefetch command: {e.error_count()} error(s)',
            )
            logger.warning('Invalid prefetch command: %s', e)
            self.channel.publish(event)
            if reply is not None:
                reply(event)
            return {'ok': False, 'error': event.message}

        cancel = asyncio.Event()
        self._cancel_tokens[command.area_name] = cancel
        self.tasks.spawn(
            self._run_prefetch(command, cancel, reply),
            name=f'prefetch:{command.area_name}',
        )
        return {'ok': True, 'areaName': command.area_name}

    async def _run_prefetch(
        self,
        command: PrefetchCommand,
        cancel: asyncio.Event,
        reply: Callable[[Event], None] | None,
    ) -> PrefetchResult:
        def forward(event: Event) -> None:
            if getattr(event, 'area_name', None) == command.area_name:
                reply(event)

        if reply is not None:
            self.channel.add_listener(forward)
        job = AreaPrefetchJob(
            command, self.fetcher, self.store, self.channel, self.settings, cancel=cancel
        )
        try:
            return await job.run()
        finally:
            if reply is not None:
                self.channel.remove_listener(forward)
            if self._cancel_tokens.get(command.area_name) is cancel:
                del self._cancel_tokens[command.area_name]

    def cancel(self, area_name: str) -> bool:
        token = self._cancel_tokens.get(area_name)
        if token is None:
            return False
        token.set()
        logger.info('Prefetch "%s" cancellation requested', area_name)
        return True
