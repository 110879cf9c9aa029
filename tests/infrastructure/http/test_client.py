"""Tests for the aiohttp-based fetcher."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import aiohttp
import pytest

from domain.models import RequestIdentity
from infrastructure.http.client import HttpFetcher, make_http_session
from shared.errors import NetworkError

URL = 'https://api.mapbox.com/v4/mapbox.streets/1/0/0.pbf?access_token=pk.secret-token-value'


def _response(status=200, body=b'pbf', headers=None):
    resp = MagicMock()
    resp.status = status
    resp.headers = headers or {'Content-Type': 'application/x-protobuf'}
    resp.url = URL
    resp.read = AsyncMock(return_value=body)
    cm = MagicMock()
    cm.__aenter__.return_value = resp
    cm.__aexit__.return_value = False
    return cm


def _session(*outcomes):
    """Session whose request() yields the given responses/exceptions in turn."""
    session = MagicMock()
    effects = []
    for outcome in outcomes:
        if isinstance(outcome, BaseException):
            cm = MagicMock()
            cm.__aenter__.side_effect = outcome
            effects.append(cm)
        else:
            effects.append(outcome)
    session.request.side_effect = effects
    return session


@pytest.fixture
def no_sleep(monkeypatch):
    sleep = AsyncMock()
    monkeypatch.setattr('infrastructure.http.client.asyncio.sleep', sleep)
    return sleep


class TestHttpFetcher:
    @pytest.mark.asyncio
    async def test_success(self):
        headers = {'Content-Type': 'application/x-protobuf', 'Content-Length': '3', 'ETag': 'x'}
        fetcher = HttpFetcher(_session(_response(headers=headers)))
        response = await fetcher.fetch(RequestIdentity(url=URL))
        assert response.ok
        assert response.body == b'pbf'
        assert response.url == URL
        assert 'Content-Length' not in response.headers
        assert response.header('etag') == 'x'

    @pytest.mark.asyncio
    async def test_error_status_is_a_response(self):
        fetcher = HttpFetcher(_session(_response(status=404)))
        response = await fetcher.fetch(RequestIdentity(url=URL))
        assert response.status == 404

    @pytest.mark.asyncio
    async def test_transport_failure(self):
        fetcher = HttpFetcher(_session(aiohttp.ClientConnectionError('refused')))
        with pytest.raises(NetworkError) as exc_info:
            await fetcher.fetch(RequestIdentity(url=URL))
        assert 'secret-token-value' not in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_timeout(self):
        fetcher = HttpFetcher(_session(asyncio.TimeoutError()))
        with pytest.raises(NetworkError, match='TimeoutError'):
            await fetcher.fetch(RequestIdentity(url=URL))

    @pytest.mark.asyncio
    async def test_retries_5xx(self, no_sleep):
        session = _session(_response(status=503), _response(status=200))
        fetcher = HttpFetcher(session)
        response = await fetcher.fetch(RequestIdentity(url=URL), retries=2)
        assert response.status == 200
        assert session.request.call_count == 2
        no_sleep.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_retries_exhausted_returns_last_response(self, no_sleep):
        session = _session(_response(status=429), _response(status=502))
        response = await HttpFetcher(session).fetch(RequestIdentity(url=URL), retries=2)
        assert response.status == 502

    @pytest.mark.asyncio
    async def test_retries_transport_failure(self, no_sleep):
        session = _session(aiohttp.ClientConnectionError('reset'), _response())
        response = await HttpFetcher(session).fetch(RequestIdentity(url=URL), retries=3)
        assert response.ok
        assert session.request.call_count == 2

    @pytest.mark.asyncio
    async def test_no_retry_by_default(self):
        session = _session(_response(status=500))
        response = await HttpFetcher(session).fetch(RequestIdentity(url=URL))
        assert response.status == 500
        assert session.request.call_count == 1

    @pytest.mark.asyncio
    async def test_outgoing_headers(self):
        session = _session(_response())
        request = RequestIdentity(
            url=URL,
            headers=(('Cookie', 'a=1'), ('Authorization', 'Bearer x'), ('Host', 'h'), ('Accept', '*/*')),
        )
        await HttpFetcher(session).fetch(request, omit_credentials=True, bypass_cache=True)
        sent = session.request.call_args.kwargs['headers']
        assert sent == {'Accept': '*/*', 'Cache-Control': 'no-cache', 'Pragma': 'no-cache'}

    @pytest.mark.asyncio
    async def test_credentials_kept_by_default(self):
        session = _session(_response())
        request = RequestIdentity(url=URL, headers=(('Cookie', 'a=1'),))
        await HttpFetcher(session).fetch(request)
        assert session.request.call_args.kwargs['headers'] == {'Cookie': 'a=1'}


class TestMakeHttpSession:
    @pytest.mark.asyncio
    async def test_session_has_no_cookie_persistence(self):
        async with make_http_session() as session:
            assert isinstance(session.cookie_jar, aiohttp.DummyCookieJar)
        assert session.closed
