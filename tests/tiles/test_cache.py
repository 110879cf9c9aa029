"""Tests for TierStore / CacheTier."""

from __future__ import annotations

import tempfile
from pathlib import Path

import pytest

from domain.models import CachedResponse, RequestIdentity
from tiles.cache import DB_FILENAME, CacheTier, TierStats, TierStore


def _ok(body: bytes = b'data', **headers: str) -> CachedResponse:
    return CachedResponse(status=200, headers=dict(headers), body=body)


@pytest.fixture
def temp_cache_dir():
    """Create temporary directory for cache."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def store(temp_cache_dir):
    """Create TierStore instance."""
    s = TierStore(temp_cache_dir)
    yield s
    s.close()


class TestTierStore:
    """Tests for TierStore class."""

    def test_init_creates_directory(self, temp_cache_dir):
        cache_dir = temp_cache_dir / 'nested' / 'offline'
        s = TierStore(cache_dir)
        s.open('tier')
        assert cache_dir.exists()
        assert (cache_dir / DB_FILENAME).exists()
        s.close()

    def test_open_creates_tier(self, store):
        assert not store.has('tiles')
        tier = store.open('tiles')
        assert isinstance(tier, CacheTier)
        assert store.has('tiles')

    def test_names_in_creation_order(self, store):
        store.open('b')
        store.open('a')
        store.open('b')
        assert store.names() == ['b', 'a']

    def test_delete_tier_removes_entries(self, store):
        tier = store.open('old')
        tier.put('https://example.com/a', _ok())
        assert store.delete('old')
        assert not store.has('old')
        assert store.open('old').match('https://example.com/a') is None

    def test_delete_missing_tier(self, store):
        assert not store.delete('nope')

    def test_reopen_does_not_write(self, store):
        store.open('tiles')
        statements = []
        store.connection.set_trace_callback(statements.append)
        for _ in range(5):
            store.open('tiles').match('https://example.com/t.png')
        store.connection.set_trace_callback(None)
        assert statements
        assert not [s for s in statements if 'INSERT' in s or s.strip() == 'COMMIT']

    def test_reopen_after_delete_registers_again(self, store):
        store.open('old')
        store.delete('old')
        store.open('old')
        assert store.names() == ['old']

    def test_match_across_tiers(self, store):
        store.open('first')
        store.open('second').put('https://example.com/x', _ok(b'second'))
        cached = store.match(RequestIdentity(url='https://example.com/x'))
        assert cached is not None
        assert cached.body == b'second'

    def test_match_url_across_tiers(self, store):
        store.open('pages').put('https://example.com/', _ok(b'page'))
        assert store.match_url('https://example.com/').body == b'page'
        assert store.match_url('https://example.com/other') is None

    def test_persists_between_instances(self, temp_cache_dir):
        with TierStore(temp_cache_dir) as s:
            s.open('tiles').put('https://example.com/t.png', _ok(b'png'))
        with TierStore(temp_cache_dir) as s:
            assert s.open('tiles').match('https://example.com/t.png').body == b'png'

    def test_get_stats(self, store):
        store.open('a').put('https://example.com/1', _ok(b'12345'))
        store.open('b')
        stats = store.get_stats()
        assert [s.name for s in stats] == ['a', 'b']
        assert isinstance(stats[0], TierStats)
        assert stats[0].entries == 1
        assert stats[0].size_bytes == 5
        assert stats[1].entries == 0
        assert stats[1].oldest_entry is None


class TestCacheTier:
    """Tests for CacheTier class."""

    def test_put_and_match(self, store):
        tier = store.open('tiles')
        request = RequestIdentity(url='https://api.mapbox.com/v4/a/1/2/3.pbf')
        tier.put(request, _ok(b'tile', **{'Content-Type': 'application/x-protobuf'}))
        cached = tier.match(request)
        assert cached is not None
        assert cached.status == 200
        assert cached.body == b'tile'
        assert cached.content_type == 'application/x-protobuf'
        assert cached.url == request.url

    def test_match_missing(self, store):
        assert store.open('tiles').match('https://example.com/none') is None

    def test_mode_is_not_part_of_identity(self, store):
        tier = store.open('pages')
        tier.put(RequestIdentity(url='https://example.com/', mode='navigate'), _ok())
        assert tier.match(RequestIdentity(url='https://example.com/', mode='cors')) is not None

    def test_non_get_never_matches(self, store):
        tier = store.open('pages')
        tier.put('https://example.com/api', _ok())
        assert tier.match(RequestIdentity(url='https://example.com/api', method='POST')) is None

    def test_put_rejects_non_get(self, store):
        with pytest.raises(ValueError, match='GET'):
            store.open('t').put(RequestIdentity(url='https://example.com', method='POST'), _ok())

    def test_put_rejects_non_2xx(self, store):
        with pytest.raises(ValueError, match='non-2xx'):
            store.open('t').put('https://example.com', CachedResponse(status=404))

    def test_put_overwrites(self, store):
        tier = store.open('t')
        tier.put('https://example.com/a', _ok(b'old'))
        tier.put('https://example.com/a', _ok(b'new'))
        assert tier.match('https://example.com/a').body == b'new'
        assert len(tier) == 1

    def test_tiers_are_separate(self, store):
        store.open('a').put('https://example.com/x', _ok(b'a'))
        assert store.open('b').match('https://example.com/x') is None

    def test_keys_in_insertion_order(self, store):
        tier = store.open('t')
        for name in ('one', 'two', 'three'):
            tier.put(f'https://example.com/{name}', _ok())
        assert [k.url for k in tier.keys()] == [
            'https://example.com/one',
            'https://example.com/two',
            'https://example.com/three',
        ]

    def test_reput_moves_to_end(self, store):
        tier = store.open('t')
        tier.put('https://example.com/one', _ok())
        tier.put('https://example.com/two', _ok())
        tier.put('https://example.com/one', _ok(b'again'))
        assert [k.url for k in tier.keys()][-1] == 'https://example.com/one'

    def test_first_is_oldest(self, store):
        tier = store.open('t')
        tier.put('https://example.com/a', _ok(b'A'))
        tier.put('https://example.com/b', _ok(b'B'))
        key, response = tier.first()
        assert key.url == 'https://example.com/a'
        assert response.body == b'A'

    def test_first_empty(self, store):
        assert store.open('t').first() is None

    def test_delete(self, store):
        tier = store.open('t')
        tier.put('https://example.com/a', _ok())
        assert tier.delete('https://example.com/a')
        assert not tier.delete('https://example.com/a')
        assert len(tier) == 0

    def test_delete_many(self, store):
        tier = store.open('t')
        for i in range(5):
            tier.put(f'https://example.com/{i}', _ok())
        deleted = tier.delete_many(tier.keys()[:3])
        assert deleted == 3
        assert len(tier) == 2

    def test_delete_many_empty(self, store):
        assert store.open('t').delete_many([]) == 0
