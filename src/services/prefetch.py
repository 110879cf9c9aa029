"""Area prefetch: download everything needed to render an area offline.

The job resolves and fetches the style descriptor, expands its tile templates
over every tile of the bounding box for each zoom level, and pushes the
resulting URLs through a fixed-width pool of workers that share one queue.
Single URL failures are counted, not raised.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from typing import TYPE_CHECKING
from urllib.parse import urlsplit

from domain.models import (
    CompletionEvent,
    ErrorEvent,
    PrefetchResult,
    ProgressEvent,
    RequestIdentity,
)
from services.classifier import is_tile_path
from services.strategies import STORAGE_ERRORS
from shared.constants import TierKind
from shared.errors import (
    NetworkError,
    PrefetchError,
    StyleResolutionError,
)
from tiles.coords import count_tiles, iter_tiles
from tiles.style import (
    build_tile_url,
    mask_token,
    parse_descriptor,
    resolve_style_url,
    sprite_urls,
)

if TYPE_CHECKING:
    from domain.config import CacheSettings
    from domain.models import BoundingBox, CachedResponse, PrefetchCommand, StyleDescriptor
    from infrastructure.http.client import Fetcher
    from shared.progress import ProgressChannel
    from tiles.cache import TierStore

logger = logging.getLogger(__name__)


def _validate_bbox(bbox: BoundingBox) -> None:
    if not (bbox.west < bbox.east and bbox.south < bbox.north):
        msg = (
            f'Degenerate bounding box (west={bbox.west}, south={bbox.south}, '
            f'east={bbox.east}, north={bbox.north})'
        )
        raise PrefetchError(msg)


class AreaPrefetchJob:
    """One prefetch run for one area.

    Usage:
        job = AreaPrefetchJob(command, fetcher, store, channel, settings)
        result = await job.run()
    """

    def __init__(
        self,
        command: PrefetchCommand,
        fetcher: Fetcher,
        store: TierStore,
        channel: ProgressChannel,
        settings: CacheSettings,
        *,
        cancel: asyncio.Event | None = None,
    ) -> None:
        self.command = command
        self.fetcher = fetcher
        self.store = store
        self.channel = channel
        self.settings = settings
        self.cancel = cancel
        self.total = 0
        self.completed = 0
        self.cached = 0
        self.failed = 0

    @property
    def area_name(self) -> str:
        return self.command.area_name

    async def _fetch(self, url: str) -> CachedResponse:
        # Без cookies и в обход HTTP-кэшей
        return await self.fetcher.fetch(
            RequestIdentity(url=url),
            omit_credentials=True,
            bypass_cache=True,
            retries=self.settings.prefetch_retries,
        )

    async def _load_descriptor(self) -> StyleDescriptor:
        url = resolve_style_url(
            self.command.style_url,
            self.command.access_token,
            self.settings.provider_hosts,
        )
        if url is None:
            msg = f'Invalid style reference: {self.command.style_url}'
            raise StyleResolutionError(msg)
        try:
            response = await self._fetch(url)
        except NetworkError as e:
            msg = f'Style descriptor unavailable: {e}'
            raise PrefetchError(msg) from e
        if not response.ok:
            msg = f'Style descriptor request failed (HTTP {response.status}) for {mask_token(url)}'
            raise PrefetchError(msg)
        try:
            document = response.json()
        except ValueError as e:
            msg = f'Style descriptor is not valid JSON: {e}'
            raise PrefetchError(msg) from e
        if not isinstance(document, dict):
            msg = 'Style descriptor is not a JSON object'
            raise PrefetchError(msg)
        meta_tier = self.store.open(self.settings.tier_name(TierKind.MAP_METADATA))
        meta_tier.put(RequestIdentity(url=url), response)
        return parse_descriptor(url, document)

    def build_work_list(self, descriptor: StyleDescriptor) -> list[str]:
        """Tile URLs for every zoom, then the descriptor and sprite URLs."""
        bbox = self.command.bounding_box
        token = self.command.access_token
        hosts = self.settings.provider_hosts
        urls: list[str] = []
        for zoom in range(self.command.min_zoom, self.command.max_zoom + 1):
            for coord in iter_tiles(bbox, zoom):
                urls.extend(
                    build_tile_url(template, coord, token, hosts)
                    for template in descriptor.tile_templates
                )
        urls.append(descriptor.url)
        urls.extend(sprite_urls(descriptor.document, token, hosts))
        return list(dict.fromkeys(urls))

    def _tier_for(self, url: str) -> str:
        s = self.settings
        if is_tile_path(
            urlsplit(url).path, s.tile_path_markers, s.tile_extensions, s.metadata_path_markers
        ):
            return s.tier_name(TierKind.TILE_DATA)
        return s.tier_name(TierKind.MAP_METADATA)

    def _record(self, *, stored: bool) -> None:
        self.completed += 1
        if stored:
            self.cached += 1
        else:
            self.failed += 1
        if self.completed % self.settings.progress_every == 0 or self.completed == self.total:
            self.channel.publish(ProgressEvent(
                area_name=self.area_name,
                completed=self.completed,
                total=self.total,
                percent=self.completed * 100 // self.total,
            ))

    async def _worker(self, queue: deque[str]) -> None:
        while queue:
            if self.cancel is not None and self.cancel.is_set():
                return
            # popleft() не прерывается, поэтому очередь без блокировки
            url = queue.popleft()
            stored = False
            try:
                response = await self._fetch(url)
                if response.ok:
                    self.store.open(self._tier_for(url)).put(RequestIdentity(url=url), response)
                    stored = True
                else:
                    logger.debug('Prefetch HTTP %d for %s', response.status, mask_token(url))
            except (NetworkError, *STORAGE_ERRORS) as e:
                logger.debug('Prefetch failed for %s: %s', mask_token(url), e)
            self._record(stored=stored)

    async def run(self) -> PrefetchResult:
        """Run the job to completion (or until cancelled).

        Raises:
            PrefetchError: when the job fails before the download phase; an
                ErrorEvent has already been published at that point.
        """
        start = time.monotonic()
        cmd = self.command
        logger.info(
            'Prefetch "%s": bbox=%s zoom=%d..%d (%d tiles)',
            self.area_name,
            cmd.bbox,
            cmd.min_zoom,
            cmd.max_zoom,
            count_tiles(cmd.bounding_box, cmd.min_zoom, cmd.max_zoom),
        )
        try:
            _validate_bbox(cmd.bounding_box)
            descriptor = await self._load_descriptor()
            urls = self.build_work_list(descriptor)
        except Exception as e:
            logger.error('Prefetch "%s" aborted: %s', self.area_name, e)
            self.channel.publish(ErrorEvent(area_name=self.area_name, message=str(e)))
            if isinstance(e, PrefetchError):
                raise
            raise PrefetchError(str(e)) from e

        self.total = len(urls)
        queue = deque(urls)
        width = max(1, min(self.settings.prefetch_concurrency, self.total))
        await asyncio.gather(*(self._worker(queue) for _ in range(width)))

        cancelled = self.completed < self.total
        self.channel.publish(CompletionEvent(
            area_name=self.area_name,
            cached=self.cached,
            failed=self.failed,
            total=self.total,
            cancelled=cancelled,
        ))
        logger.info(
            'Prefetch "%s" %s: %d/%d cached, %d failed (%.1fs)',
            self.area_name,
            'cancelled' if cancelled else 'done',
            self.cached,
            self.total,
            self.failed,
            time.monotonic() - start,
        )
        return PrefetchResult(
            area_name=self.area_name,
            cached=self.cached,
            failed=self.failed,
            total=self.total,
            cancelled=cancelled,
        )
