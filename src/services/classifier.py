"""Request classification.

Each classifier is a small predicate returning a RequestKind or None; the
ClassifierChain asks them in priority order and the first answer wins.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from domain.config import CacheSettings
    from domain.models import RequestIdentity

RETINA_SUFFIX = '@2x'


class RequestKind(str, Enum):
    PASSTHROUGH = 'passthrough'
    NAVIGATE = 'navigate'
    TILE = 'tile'
    METADATA = 'metadata'
    STATIC_ASSET = 'static_asset'
    API_ONLY = 'api_only'
    GENERIC = 'generic'


class RequestClassifier(Protocol):
    def classify(self, request: RequestIdentity) -> RequestKind | None: ...


def host_matches(host: str, hosts: Iterable[str]) -> bool:
    """Exact host or any subdomain of it."""
    host = host.lower()
    return any(host == h or host.endswith('.' + h) for h in hosts)


def is_tile_path(
    path: str,
    markers: Iterable[str],
    extensions: Iterable[str],
    metadata_markers: Iterable[str] = (),
) -> bool:
    """Tile when the path has a tile marker or ends in a tile extension.

    Sprite and glyph paths are metadata even with a .png/.pbf extension.
    """
    if any(marker in path for marker in metadata_markers):
        return False
    if any(marker in path for marker in markers):
        return True
    lowered = path.lower()
    stem, dot, ext = lowered.rpartition('.')
    if dot:
        lowered = stem.removesuffix(RETINA_SUFFIX) + '.' + ext
    return lowered.endswith(tuple(extensions))


class NonGetClassifier:
    def classify(self, request: RequestIdentity) -> RequestKind | None:
        return RequestKind.PASSTHROUGH if request.method.upper() != 'GET' else None


class ExtensionSchemeClassifier:
    def __init__(self, schemes: Iterable[str]) -> None:
        self.schemes = {s.lower().rstrip(':') for s in schemes}

    def classify(self, request: RequestIdentity) -> RequestKind | None:
        return RequestKind.PASSTHROUGH if request.scheme in self.schemes else None


class NavigationClassifier:
    def classify(self, request: RequestIdentity) -> RequestKind | None:
        return RequestKind.NAVIGATE if request.is_navigation else None


class MapProviderClassifier:
    """Tiles vs. style/sprite/glyph metadata of the map provider."""

    def __init__(
        self,
        hosts: Iterable[str],
        path_markers: Iterable[str],
        tile_markers: Iterable[str],
        tile_extensions: Iterable[str],
        metadata_markers: Iterable[str] = (),
    ) -> None:
        self.hosts = tuple(hosts)
        self.path_markers = tuple(path_markers)
        self.tile_markers = tuple(tile_markers)
        self.tile_extensions = tuple(tile_extensions)
        self.metadata_markers = tuple(metadata_markers)

    def classify(self, request: RequestIdentity) -> RequestKind | None:
        path = request.path
        if not (
            host_matches(request.host, self.hosts)
            or any(marker in path for marker in self.path_markers)
        ):
            return None
        if is_tile_path(path, self.tile_markers, self.tile_extensions, self.metadata_markers):
            return RequestKind.TILE
        return RequestKind.METADATA


class HostClassifier:
    """Fixed kind for a set of hosts (static CDN, backend API)."""

    def __init__(self, hosts: Iterable[str], kind: RequestKind) -> None:
        self.hosts = tuple(hosts)
        self.kind = kind

    def classify(self, request: RequestIdentity) -> RequestKind | None:
        return self.kind if host_matches(request.host, self.hosts) else None


class ClassifierChain:
    def __init__(
        self,
        classifiers: Sequence[RequestClassifier],
        default: RequestKind = RequestKind.GENERIC,
    ) -> None:
        self.classifiers = list(classifiers)
        self.default = default

    @classmethod
    def from_settings(cls, settings: CacheSettings) -> ClassifierChain:
        return cls([
            NonGetClassifier(),
            ExtensionSchemeClassifier(settings.extension_schemes),
            NavigationClassifier(),
            MapProviderClassifier(
                settings.provider_hosts,
                settings.provider_path_markers,
                settings.tile_path_markers,
                settings.tile_extensions,
                settings.metadata_path_markers,
            ),
            HostClassifier(settings.cdn_hosts, RequestKind.STATIC_ASSET),
            HostClassifier(settings.api_hosts, RequestKind.API_ONLY),
        ])

    def classify(self, request: RequestIdentity) -> RequestKind:
        for classifier in self.classifiers:
            kind = classifier.classify(request)
            if kind is not None:
                return kind
        return self.default
