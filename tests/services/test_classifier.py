"""Tests for request classification."""

import pytest

from domain.config import CacheSettings
from domain.models import RequestIdentity
from services.classifier import (
    ClassifierChain,
    HostClassifier,
    RequestKind,
    host_matches,
    is_tile_path,
)
from shared.constants import METADATA_PATH_MARKERS, TILE_EXTENSIONS, TILE_PATH_MARKERS


@pytest.fixture
def chain():
    return ClassifierChain.from_settings(CacheSettings())


def _get(url, **kwargs):
    return RequestIdentity(url=url, **kwargs)


class TestHostMatches:
    def test_exact_and_subdomain(self):
        assert host_matches('api.mapbox.com', ['api.mapbox.com'])
        assert host_matches('xyz.supabase.co', ['supabase.co'])
        assert host_matches('XYZ.Supabase.CO', ['supabase.co'])

    def test_suffix_without_dot_does_not_match(self):
        assert not host_matches('notsupabase.co', ['supabase.co'])


class TestIsTilePath:
    """Tests for is_tile_path()."""

    @pytest.mark.parametrize(
        'path',
        [
            '/v4/mapbox.satellite/10/300/400.jpg',
            '/styles/v1/acme/basic/tiles/256/10/1/2',
            '/data/10/1/2.pbf',
            '/data/10/1/2@2x.png',
            '/data/10/1/2.webp',
        ],
    )
    def test_tiles(self, path):
        assert is_tile_path(path, TILE_PATH_MARKERS, TILE_EXTENSIONS, METADATA_PATH_MARKERS)

    @pytest.mark.parametrize(
        'path',
        [
            '/styles/v1/acme/basic',
            '/styles/v1/acme/basic/sprite@2x.png',
            '/fonts/v1/acme/Open Sans Regular/0-255.pbf',
            '/data/style.json',
        ],
    )
    def test_not_tiles(self, path):
        assert not is_tile_path(path, TILE_PATH_MARKERS, TILE_EXTENSIONS, METADATA_PATH_MARKERS)


class TestClassifierChain:
    """Tests for the default classifier chain."""

    def test_non_get_is_passthrough(self, chain):
        req = _get('https://api.mapbox.com/v4/a/1/2/3.pbf', method='POST')
        assert chain.classify(req) is RequestKind.PASSTHROUGH

    def test_extension_scheme_is_passthrough(self, chain):
        assert chain.classify(_get('chrome-extension://abc/script.js')) is RequestKind.PASSTHROUGH

    def test_navigation(self, chain):
        assert chain.classify(_get('https://app.example.com/', mode='navigate')) is RequestKind.NAVIGATE

    def test_navigation_beats_provider(self, chain):
        req = _get('https://api.mapbox.com/styles/v1/a/b.html', mode='navigate')
        assert chain.classify(req) is RequestKind.NAVIGATE

    def test_provider_tile(self, chain):
        req = _get('https://api.mapbox.com/v4/mapbox.mapbox-streets-v8/14/6070/9300.vector.pbf')
        assert chain.classify(req) is RequestKind.TILE

    def test_provider_subdomain_tile(self, chain):
        assert chain.classify(_get('https://a.tiles.mapbox.com/x/1/2/3.png')) is RequestKind.TILE

    def test_provider_metadata(self, chain):
        req = _get('https://api.mapbox.com/styles/v1/acme/basic?access_token=T')
        assert chain.classify(req) is RequestKind.METADATA

    def test_provider_sprite_is_metadata(self, chain):
        req = _get('https://api.mapbox.com/styles/v1/acme/basic/sprite@2x.png')
        assert chain.classify(req) is RequestKind.METADATA

    def test_provider_path_marker_on_other_host(self, chain):
        assert chain.classify(_get('https://mirror.example.com/v4/a/1/2/3.png')) is RequestKind.TILE

    def test_cdn_static(self, chain):
        req = _get('https://cdn.jsdelivr.net/npm/mapbox-gl@3.4.0/dist/mapbox-gl.min.js')
        assert chain.classify(req) is RequestKind.STATIC_ASSET

    def test_backend_api(self, chain):
        assert chain.classify(_get('https://xyz.supabase.co/rest/v1/orders')) is RequestKind.API_ONLY

    def test_generic(self, chain):
        assert chain.classify(_get('https://app.example.com/app.js')) is RequestKind.GENERIC

    def test_custom_chain_and_default(self):
        chain = ClassifierChain(
            [HostClassifier(['static.example.com'], RequestKind.STATIC_ASSET)],
            default=RequestKind.PASSTHROUGH,
        )
        assert chain.classify(_get('https://static.example.com/a.css')) is RequestKind.STATIC_ASSET
        assert chain.classify(_get('https://other.example.com/')) is RequestKind.PASSTHROUGH
