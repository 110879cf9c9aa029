from __future__ import annotations

import asyncio
import logging
import ssl
from typing import TYPE_CHECKING, Protocol

import aiohttp
import certifi

from domain.models import CachedResponse
from shared.constants import (
    HTTP_5XX_MAX,
    HTTP_5XX_MIN,
    HTTP_BACKOFF_FACTOR,
    HTTP_TIMEOUT_DEFAULT,
    HTTP_TOO_MANY_REQUESTS,
)
from shared.errors import NetworkError
from tiles.style import mask_token

if TYPE_CHECKING:
    from domain.models import RequestIdentity

logger = logging.getLogger(__name__)

# Заголовки, которые не пересылаются и не сохраняются (hop-by-hop и длина тела)
HOP_BY_HOP_HEADERS = frozenset({
    'connection',
    'keep-alive',
    'proxy-authenticate',
    'proxy-authorization',
    'proxy-connection',
    'te',
    'trailer',
    'transfer-encoding',
    'upgrade',
    'host',
    'content-length',
    'content-encoding',
})

CREDENTIAL_HEADERS = frozenset({'cookie', 'authorization'})


class Fetcher(Protocol):
    """Anything that can put a request on the network."""

    async def fetch(
        self,
        request: RequestIdentity,
        *,
        omit_credentials: bool = False,
        bypass_cache: bool = False,
        retries: int = 1,
    ) -> CachedResponse: ...


def make_http_session() -> aiohttp.ClientSession:
    """Client session with certifi CA bundle and no cookie persistence."""
    ssl_context = ssl.create_default_context(cafile=certifi.where())
    connector = aiohttp.TCPConnector(ssl=ssl_context)
    return aiohttp.ClientSession(
        connector=connector,
        cookie_jar=aiohttp.DummyCookieJar(),
        auto_decompress=True,
    )


def _outgoing_headers(
    request: RequestIdentity,
    *,
    omit_credentials: bool,
    bypass_cache: bool,
) -> dict[str, str]:
    headers = {
        k: v
        for k, v in request.headers
        if k.lower() not in HOP_BY_HOP_HEADERS
        and not (omit_credentials and k.lower() in CREDENTIAL_HEADERS)
    }
    if bypass_cache:
        headers['Cache-Control'] = 'no-cache'
        headers['Pragma'] = 'no-cache'
    return headers


def _is_retryable(status: int) -> bool:
    return status == HTTP_TOO_MANY_REQUESTS or HTTP_5XX_MIN <= status < HTTP_5XX_MAX


class HttpFetcher:
    """Network transport returning CachedResponse values.

    Any HTTP status is a response; only transport failures (connection
    errors, timeouts) raise NetworkError. 429/5xx responses and transport
    failures are retried with exponential backoff when retries > 1.
    """

    def __init__(
        self,
        session: aiohttp.ClientSession,
        *,
        timeout_s: float = HTTP_TIMEOUT_DEFAULT,
        backoff: float = HTTP_BACKOFF_FACTOR,
    ) -> None:
        self._session = session
        self.timeout_s = timeout_s
        self.backoff = backoff

    async def _fetch_once(
        self,
        request: RequestIdentity,
        headers: dict[str, str],
    ) -> CachedResponse:
        timeout = aiohttp.ClientTimeout(total=self.timeout_s)
        try:
            async with self._session.request(
                request.method,
                request.url,
                headers=headers,
                data=request.body,
                timeout=timeout,
                allow_redirects=True,
            ) as resp:
                body = await resp.read()
                return CachedResponse(
                    status=resp.status,
                    headers={
                        k: v for k, v in resp.headers.items() if k.lower() not in HOP_BY_HOP_HEADERS
                    },
                    body=body,
                    url=str(resp.url),
                )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            detail = str(e) or type(e).__name__
            msg = f'{request.method} {mask_token(request.url)} failed: {detail}'
            raise NetworkError(msg) from e

    async def fetch(
        self,
        request: RequestIdentity,
        *,
        omit_credentials: bool = False,
        bypass_cache: bool = False,
        retries: int = 1,
    ) -> CachedResponse:
        headers = _outgoing_headers(
            request, omit_credentials=omit_credentials, bypass_cache=bypass_cache
        )
        attempts = max(1, retries)
        last_exc: NetworkError | None = None
        response: CachedResponse | None = None
        for attempt in range(attempts):
            try:
                response = await self._fetch_once(request, headers)
            except NetworkError as e:
                last_exc = e
                response = None
            else:
                if not _is_retryable(response.status):
                    return response
            if attempt + 1 < attempts:
                logger.debug(
                    'Retrying %s (attempt %d/%d)', mask_token(request.url), attempt + 2, attempts
                )
                await asyncio.sleep(self.backoff**attempt)
        if response is not None:
            return response
        assert last_exc is not None
        raise last_exc
