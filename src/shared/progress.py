"""Progress broadcasting.

ProgressChannel is a publish/subscribe channel with at-most-once delivery:
every subscriber connected at publish time is offered each event once; a
subscriber that fails or lags is skipped, never retried, and never blocks the
publisher. ConsoleProgress renders prefetch progress on one console line.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import sys
import threading
import time
from typing import TYPE_CHECKING

from domain.models import CompletionEvent, ErrorEvent, ProgressEvent
from shared.constants import SUBSCRIBER_QUEUE_SIZE

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable

    from domain.models import Event

logger = logging.getLogger(__name__)


class SingleLineRenderer:
    """Потокобезопасный рендерер для вывода в одну строку."""

    def __init__(self, *, single_line: bool = True) -> None:
        self.single_line = single_line
        self._last_len = 0
        self._lock = threading.Lock()

    def clear_line(self) -> None:
        """Полностью очистить текущую строку прогресса."""
        with self._lock:
            if self.single_line and self._last_len > 0:
                sys.stdout.write('\r' + ' ' * self._last_len + '\r')
                sys.stdout.flush()
                self._last_len = 0

    def write_line(self, msg: str) -> None:
        """Перерисовать текущую строку прогресса."""
        with self._lock:
            if self.single_line:
                pad = max(0, self._last_len - len(msg))
                sys.stdout.write('\r' + msg + (' ' * pad))
            else:
                sys.stdout.write(msg + '\n')
            sys.stdout.flush()
            self._last_len = len(msg)


# Экземпляр по умолчанию (можно передать свой при создании классов)
DEFAULT_WRITER = SingleLineRenderer()


class Subscription:
    """Queue-backed subscription; iterate it to receive events."""

    def __init__(self, channel: ProgressChannel, maxsize: int) -> None:
        self._channel = channel
        self.queue: asyncio.Queue[Event] = asyncio.Queue(maxsize=maxsize)
        self.dropped = 0

    def offer(self, event: Event) -> None:
        try:
            self.queue.put_nowait(event)
        except asyncio.QueueFull:
            self.dropped += 1

    async def get(self) -> Event:
        return await self.queue.get()

    def close(self) -> None:
        self._channel.unsubscribe(self)

    async def __aiter__(self) -> AsyncIterator[Event]:
        while True:
            yield await self.queue.get()

    def __enter__(self) -> Subscription:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


class ProgressChannel:
    """Broadcast channel for prefetch and version events."""

    def __init__(self) -> None:
        self._callbacks: list[Callable[[Event], None]] = []
        self._subscriptions: list[Subscription] = []
        self.published: int = 0

    def add_listener(self, cb: Callable[[Event], None]) -> None:
        if cb not in self._callbacks:
            self._callbacks.append(cb)

    def remove_listener(self, cb: Callable[[Event], None]) -> None:
        if cb in self._callbacks:
            self._callbacks.remove(cb)

    def subscribe(self, maxsize: int = SUBSCRIBER_QUEUE_SIZE) -> Subscription:
        sub = Subscription(self, maxsize)
        self._subscriptions.append(sub)
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        if sub in self._subscriptions:
            self._subscriptions.remove(sub)

    @property
    def observer_count(self) -> int:
        return len(self._callbacks) + len(self._subscriptions)

    def publish(self, event: Event) -> None:
        """Offer the event once to every current observer."""
        self.published += 1
        for cb in list(self._callbacks):
            try:
                cb(event)
            except Exception as e:
                logger.debug('Progress listener failed on %s: %s', event.type, e)
        for sub in list(self._subscriptions):
            sub.offer(event)

    def close(self) -> None:
        self._callbacks.clear()
        self._subscriptions.clear()


class ConsoleProgress:
    """Прогресс-бар предзагрузки области; подписывается на канал событий."""

    def __init__(
        self,
        label: str = 'Prefetch',
        writer: SingleLineRenderer | None = None,
    ) -> None:
        self.label = label
        self.done = 0
        self.total = 0
        self.start = time.monotonic()
        self._writer = writer or DEFAULT_WRITER

    def _format_eta(self, remaining: float) -> str:
        if remaining == float('inf'):
            return '--:--'
        m, s = divmod(int(remaining), 60)
        h, m = divmod(m, 60)
        if h > 0:
            return f'{h:02d}:{m:02d}:{s:02d}'
        return f'{m:02d}:{s:02d}'

    def _render(self) -> None:
        total = max(1, self.total)
        elapsed = max(1e-6, time.monotonic() - self.start)
        rps = self.done / elapsed
        remaining = (total - self.done) / rps if rps > 0 else float('inf')
        bar_len = 30
        filled = int(bar_len * self.done / total)
        bar = '█' * filled + '░' * (bar_len - filled)
        msg = (
            f'{self.label}: [{bar}] {self.done}/{self.total} | {rps:4.1f}/s | ETA'
            f' {self._format_eta(remaining)}'
        )
        self._writer.write_line(msg)

    def __call__(self, event: Event) -> None:
        if isinstance(event, ProgressEvent):
            self.done = event.completed
            self.total = event.total
            self._render()
        elif isinstance(event, CompletionEvent):
            self._writer.write_line(
                f'{self.label}: {event.area_name} done, '
                f'{event.cached}/{event.total} cached ({event.failed} failed)'
            )
        elif isinstance(event, ErrorEvent):
            with contextlib.suppress(Exception):
                self._writer.clear_line()
            self._writer.write_line(f'{self.label}: error: {event.message}')
