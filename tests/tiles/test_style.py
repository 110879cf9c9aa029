"""Tests for style reference resolution and URL building."""

from domain.models import TileCoordinate
from tiles.style import (
    build_tile_url,
    mask_token,
    parse_descriptor,
    resolve_style_url,
    sprite_urls,
    tile_templates,
    with_token,
)


class TestResolveStyleUrl:
    """Tests for resolve_style_url()."""

    def test_mapbox_scheme(self):
        url = resolve_style_url('mapbox://styles/acme/basic', 'T')
        assert url == 'https://api.mapbox.com/styles/v1/acme/basic?access_token=T'
        assert '/styles/v1/acme/basic' in url
        assert 'access_token=T' in url

    def test_mapbox_scheme_without_token(self):
        url = resolve_style_url('mapbox://styles/acme/basic', None)
        assert url == 'https://api.mapbox.com/styles/v1/acme/basic'

    def test_malformed_scheme_reference(self):
        assert resolve_style_url('mapbox://styles/acme', 'T') is None
        assert resolve_style_url('mapbox://styles/acme/basic/extra', 'T') is None
        assert resolve_style_url('mapbox://tilesets/acme/basic', 'T') is None

    def test_empty_or_relative(self):
        assert resolve_style_url('', 'T') is None
        assert resolve_style_url('   ', 'T') is None
        assert resolve_style_url(None, 'T') is None
        assert resolve_style_url('styles/basic.json', 'T') is None

    def test_absolute_provider_url_gets_token(self):
        url = resolve_style_url('https://api.mapbox.com/styles/v1/acme/dark', 'T')
        assert url.endswith('?access_token=T')

    def test_existing_token_is_kept(self):
        src = 'https://api.mapbox.com/styles/v1/acme/dark?access_token=OLD'
        assert resolve_style_url(src, 'T') == src

    def test_foreign_host_untouched(self):
        src = 'https://maps.example.com/style.json'
        assert resolve_style_url(src, 'T') == src


class TestWithToken:
    """Tests for with_token()."""

    def test_appends_to_existing_query(self):
        url = with_token('https://api.mapbox.com/v4/a/1/2/3.png?fresh=true', 'T')
        assert url == 'https://api.mapbox.com/v4/a/1/2/3.png?fresh=true&access_token=T'

    def test_subdomain_of_provider(self):
        url = with_token('https://a.tiles.mapbox.com/v4/a/1/2/3.png', 'T')
        assert url.endswith('access_token=T')


class TestDescriptorParsing:
    """Tests for tile template and sprite extraction."""

    def test_tiles_lists_are_collected(self):
        doc = {
            'sources': {
                'a': {'type': 'vector', 'tiles': ['https://t.example.com/{z}/{x}/{y}.pbf']},
                'b': {'type': 'raster', 'tiles': ['https://t.example.com/{z}/{x}/{y}.pbf']},
            }
        }
        assert tile_templates(doc) == ['https://t.example.com/{z}/{x}/{y}.pbf']

    def test_mapbox_source_url_expands(self):
        doc = {'sources': {'streets': {'type': 'vector', 'url': 'mapbox://mapbox.mapbox-streets-v8'}}}
        assert tile_templates(doc) == [
            'https://api.mapbox.com/v4/mapbox.mapbox-streets-v8/{z}/{x}/{y}.vector.pbf'
        ]

    def test_no_sources(self):
        assert tile_templates({}) == []
        assert tile_templates({'sources': 'bogus'}) == []

    def test_sprite_urls_from_scheme(self):
        doc = {'sprite': 'mapbox://sprites/acme/basic'}
        urls = sprite_urls(doc, 'T')
        assert len(urls) == 4
        assert urls[0] == 'https://api.mapbox.com/styles/v1/acme/basic/sprite.json?access_token=T'
        assert any('/sprite@2x.png' in u for u in urls)

    def test_sprite_urls_from_list(self):
        doc = {'sprite': [{'id': 'default', 'url': 'https://s.example.com/sprite'}]}
        assert sprite_urls(doc, 'T')[0] == 'https://s.example.com/sprite.json'

    def test_no_sprite(self):
        assert sprite_urls({}, 'T') == []

    def test_parse_descriptor(self):
        doc = {
            'sprite': 'https://s.example.com/sprite',
            'sources': {'a': {'tiles': ['https://t.example.com/{z}/{x}/{y}.png']}},
        }
        descriptor = parse_descriptor('https://s.example.com/style.json', doc)
        assert descriptor.url == 'https://s.example.com/style.json'
        assert descriptor.tile_templates == ['https://t.example.com/{z}/{x}/{y}.png']
        assert descriptor.sprite == 'https://s.example.com/sprite'


class TestBuildTileUrl:
    """Tests for build_tile_url()."""

    def test_placeholders_replaced(self):
        url = build_tile_url(
            'https://api.mapbox.com/v4/acme.tiles/{z}/{x}/{y}{ratio}.png',
            TileCoordinate(3, 1, 2),
            'T',
        )
        assert url == 'https://api.mapbox.com/v4/acme.tiles/3/1/2.png?access_token=T'

    def test_template_token_wins(self):
        url = build_tile_url(
            'https://api.mapbox.com/v4/a/{z}/{x}/{y}.pbf?access_token=OWN',
            TileCoordinate(0, 0, 0),
            'T',
        )
        assert url.endswith('access_token=OWN')


class TestMaskToken:
    """Tests for mask_token()."""

    def test_token_hidden(self):
        masked = mask_token('https://api.mapbox.com/styles/v1/a/b?access_token=pk.secret-value')
        assert 'secret-value' not in masked
        assert masked.startswith('https://api.mapbox.com/styles/v1/a/b?access_token=pk.s')

    def test_url_without_query_unchanged(self):
        assert mask_token('https://example.com/a') == 'https://example.com/a'
