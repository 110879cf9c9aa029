"""Style descriptor resolution.

Turns a style reference (``mapbox://styles/{owner}/{style}`` or an absolute
URL) into a fetchable descriptor URL, and pulls tile URL templates and sprite
URLs out of the downloaded descriptor.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from domain.models import StyleDescriptor
from shared.constants import (
    MAP_PROVIDER_HOSTS,
    MAPBOX_SCHEME,
    MAPBOX_STYLES_BASE,
    MAPBOX_TILESETS_BASE,
    TOKEN_VISIBLE_PREFIX_LEN,
)

if TYPE_CHECKING:
    from collections.abc import Iterable

    from domain.models import TileCoordinate

logger = logging.getLogger(__name__)

TOKEN_PARAM = 'access_token'

# Расширение тайла по типу источника mapbox://
_TILESET_SUFFIX_BY_TYPE = {
    'vector': '.vector.pbf',
    'raster': '.png',
    'raster-dem': '.pngraw',
}

SPRITE_VARIANTS = ('.json', '.png', '@2x.json', '@2x.png')


def is_provider_host(host: str, provider_hosts: Iterable[str] = MAP_PROVIDER_HOSTS) -> bool:
    host = host.lower()
    return any(host == h or host.endswith('.' + h) for h in provider_hosts)


def mask_token(url: str) -> str:
    """URL with the access token shortened, for logs and error messages."""
    parts = urlsplit(url)
    if not parts.query:
        return url
    query = [
        (k, v[:TOKEN_VISIBLE_PREFIX_LEN] + '…' if k == TOKEN_PARAM and v else v)
        for k, v in parse_qsl(parts.query, keep_blank_values=True)
    ]
    return urlunsplit(parts._replace(query=urlencode(query, safe='…{}')))


def with_token(
    url: str,
    token: str | None,
    provider_hosts: Iterable[str] = MAP_PROVIDER_HOSTS,
) -> str:
    """Append the access token if the host needs one and none is present."""
    if not token:
        return url
    parts = urlsplit(url)
    if not is_provider_host(parts.hostname or '', provider_hosts):
        return url
    query = parse_qsl(parts.query, keep_blank_values=True)
    if any(k == TOKEN_PARAM for k, _ in query):
        return url
    sep = '&' if parts.query else ''
    new_query = parts.query + sep + urlencode({TOKEN_PARAM: token})
    return urlunsplit(parts._replace(query=new_query))


def _split_scheme_ref(ref: str, kind: str) -> list[str] | None:
    """`mapbox://{kind}/a/b` -> ['a', 'b']; None when the shape is wrong."""
    prefix = f'{MAPBOX_SCHEME}://{kind}/'
    if not ref.startswith(prefix):
        return None
    parts = ref[len(prefix):].split('?', 1)[0].strip('/').split('/')
    if len(parts) != 2 or not all(parts):
        return None
    return parts


def resolve_style_url(
    ref: str | None,
    token: str | None,
    provider_hosts: Iterable[str] = MAP_PROVIDER_HOSTS,
) -> str | None:
    """Fetchable descriptor URL for a style reference, or None if malformed.

    A None result is a hard stop for the caller, not a retryable condition.
    """
    if not ref or not ref.strip():
        return None
    ref = ref.strip()
    if ref.startswith(f'{MAPBOX_SCHEME}://'):
        parts = _split_scheme_ref(ref, 'styles')
        if parts is None:
            logger.warning('Malformed style reference: %s', ref)
            return None
        owner, style = parts
        url = f'{MAPBOX_STYLES_BASE}/{owner}/{style}'
        return with_token(url, token, provider_hosts)
    try:
        parts_url = urlsplit(ref)
    except ValueError:
        logger.warning('Unparseable style URL: %s', ref)
        return None
    if parts_url.scheme not in ('http', 'https') or not parts_url.hostname:
        logger.warning('Style URL is not absolute: %s', ref)
        return None
    return with_token(ref, token, provider_hosts)


def tile_templates(document: dict[str, Any]) -> list[str]:
    """Every tile URL template declared by the descriptor's sources."""
    templates: list[str] = []
    sources = document.get('sources') or {}
    if not isinstance(sources, dict):
        return templates
    for source in sources.values():
        if not isinstance(source, dict):
            continue
        tiles = source.get('tiles')
        if isinstance(tiles, list):
            templates.extend(t for t in tiles if isinstance(t, str))
            continue
        url = source.get('url')
        if isinstance(url, str) and url.startswith(f'{MAPBOX_SCHEME}://'):
            tilesets = url[len(f'{MAPBOX_SCHEME}://'):]
            suffix = _TILESET_SUFFIX_BY_TYPE.get(source.get('type', 'vector'), '.vector.pbf')
            templates.append(f'{MAPBOX_TILESETS_BASE}/{tilesets}/{{z}}/{{x}}/{{y}}{suffix}')
    return list(dict.fromkeys(templates))


def _sprite_bases(sprite: Any) -> list[str]:
    if isinstance(sprite, str):
        raw = [sprite]
    elif isinstance(sprite, list):
        # Style v8 sprite may also be [{"id": ..., "url": ...}]
        raw = [s['url'] for s in sprite if isinstance(s, dict) and isinstance(s.get('url'), str)]
    else:
        return []
    bases = []
    for base in raw:
        if base.startswith(f'{MAPBOX_SCHEME}://'):
            parts = _split_scheme_ref(base, 'sprites')
            if parts is None:
                logger.warning('Malformed sprite reference: %s', base)
                continue
            owner, style = parts
            base = f'{MAPBOX_STYLES_BASE}/{owner}/{style}/sprite'
        bases.append(base)
    return bases


def sprite_urls(
    document: dict[str, Any],
    token: str | None,
    provider_hosts: Iterable[str] = MAP_PROVIDER_HOSTS,
) -> list[str]:
    """Sprite JSON/PNG URLs at 1x and 2x; empty when no sprite is declared.

    Glyph ranges are deliberately not enumerated.
    """
    urls = []
    for base in _sprite_bases(document.get('sprite')):
        split = urlsplit(base)
        for variant in SPRITE_VARIANTS:
            url = urlunsplit(split._replace(path=split.path + variant))
            urls.append(with_token(url, token, provider_hosts))
    return urls


def build_tile_url(
    template: str,
    coord: TileCoordinate,
    token: str | None,
    provider_hosts: Iterable[str] = MAP_PROVIDER_HOSTS,
) -> str:
    url = (
        template.replace('{z}', str(coord.zoom))
        .replace('{x}', str(coord.x))
        .replace('{y}', str(coord.y))
        .replace('{ratio}', '')
    )
    return with_token(url, token, provider_hosts)


def parse_descriptor(url: str, document: dict[str, Any]) -> StyleDescriptor:
    sprite = document.get('sprite')
    return StyleDescriptor(
        url=url,
        document=document,
        tile_templates=tile_templates(document),
        sprite=sprite if isinstance(sprite, str) else None,
    )
