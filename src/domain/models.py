"""Domain types: request identities, cached responses, tiles and events."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Literal
from urllib.parse import urlsplit

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from shared.constants import (
    HTTP_2XX_MAX,
    HTTP_2XX_MIN,
    HTTP_OK,
    HTTP_SERVICE_UNAVAILABLE,
)

NAVIGATE_MODE = 'navigate'


@dataclass(frozen=True)
class RequestIdentity:
    """Intercepted request: method, absolute URL and request mode.

    Only (method, url) take part in cache lookups; mode, headers and body are
    carried so the request can be replayed against the network.
    """

    url: str
    method: str = 'GET'
    mode: str = 'cors'
    headers: tuple[tuple[str, str], ...] = ()
    body: bytes | None = None

    @classmethod
    def for_key(cls, key: str) -> RequestIdentity:
        """Identity for a plain string key (e.g. the offline fallback key)."""
        return cls(url=key)

    @property
    def key(self) -> tuple[str, str]:
        return self.method.upper(), self.url

    @property
    def is_navigation(self) -> bool:
        return self.mode == NAVIGATE_MODE

    @property
    def scheme(self) -> str:
        return urlsplit(self.url).scheme.lower()

    @property
    def host(self) -> str:
        return (urlsplit(self.url).hostname or '').lower()

    @property
    def path(self) -> str:
        return urlsplit(self.url).path


@dataclass
class CachedResponse:
    """HTTP-like response stored in (and served from) a cache tier."""

    status: int
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b''
    url: str | None = None

    @property
    def ok(self) -> bool:
        return HTTP_2XX_MIN <= self.status < HTTP_2XX_MAX

    def header(self, name: str, default: str | None = None) -> str | None:
        lname = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lname:
                return value
        return default

    @property
    def content_type(self) -> str | None:
        return self.header('Content-Type')

    def text(self, encoding: str = 'utf-8') -> str:
        return self.body.decode(encoding, errors='replace')

    def json(self) -> Any:
        return json.loads(self.body)

    @classmethod
    def json_error(cls, status: int = HTTP_SERVICE_UNAVAILABLE) -> CachedResponse:
        """Synthetic `{"error":"offline"}` response."""
        return cls(
            status=status,
            headers={'Content-Type': 'application/json'},
            body=json.dumps({'error': 'offline'}, separators=(',', ':')).encode(),
        )

    @classmethod
    def empty(cls, status: int = HTTP_SERVICE_UNAVAILABLE) -> CachedResponse:
        return cls(status=status)

    @classmethod
    def html(cls, text: str, status: int = HTTP_OK) -> CachedResponse:
        return cls(
            status=status,
            headers={'Content-Type': 'text/html; charset=utf-8'},
            body=text.encode('utf-8'),
        )


@dataclass(frozen=True, order=True)
class TileCoordinate:
    zoom: int
    x: int
    y: int


@dataclass(frozen=True)
class BoundingBox:
    """Geographic box in degrees. west < east and south < north are assumed."""

    west: float
    south: float
    east: float
    north: float

    @classmethod
    def from_list(cls, values: list[float] | tuple[float, ...]) -> BoundingBox:
        west, south, east, north = (float(v) for v in values)
        return cls(west=west, south=south, east=east, north=north)


@dataclass
class StyleDescriptor:
    """Downloaded style document with its tile templates and sprite base."""

    url: str
    document: dict[str, Any]
    tile_templates: list[str] = field(default_factory=list)
    sprite: str | None = None


@dataclass
class PrefetchResult:
    area_name: str
    cached: int
    failed: int
    total: int
    cancelled: bool = False


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_message(self) -> dict[str, Any]:
        """Payload broadcast to observers (camelCase keys)."""
        return self.model_dump(by_alias=True)


class PrefetchCommand(_CamelModel):
    """Command that starts an area prefetch job."""

    area_name: str
    bbox: tuple[float, float, float, float]
    min_zoom: int = Field(ge=0, le=24)
    max_zoom: int = Field(ge=0, le=24)
    style_url: str
    access_token: str | None = None

    @field_validator('area_name', 'style_url')
    @classmethod
    def validate_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            msg = 'Value must not be empty'
            raise ValueError(msg)
        return v

    @model_validator(mode='after')
    def validate_zoom_order(self) -> PrefetchCommand:
        if self.min_zoom > self.max_zoom:
            msg = f'min_zoom ({self.min_zoom}) must not exceed max_zoom ({self.max_zoom})'
            raise ValueError(msg)
        return self

    @property
    def bounding_box(self) -> BoundingBox:
        return BoundingBox.from_list(self.bbox)


class ProgressEvent(_CamelModel):
    type: Literal['PREFETCH_PROGRESS'] = 'PREFETCH_PROGRESS'
    area_name: str
    completed: int
    total: int
    percent: int


class CompletionEvent(_CamelModel):
    type: Literal['PREFETCH_COMPLETE'] = 'PREFETCH_COMPLETE'
    area_name: str
    cached: int
    failed: int
    total: int
    cancelled: bool = False


class ErrorEvent(_CamelModel):
    type: Literal['PREFETCH_ERROR'] = 'PREFETCH_ERROR'
    area_name: str | None = None
    message: str


class VersionEvent(_CamelModel):
    type: Literal['VERSION'] = 'VERSION'
    version: str


class SyncRequestEvent(_CamelModel):
    """Asks connected clients to flush data queued while offline."""

    type: Literal['SYNC_REQUEST'] = 'SYNC_REQUEST'


Event = ProgressEvent | CompletionEvent | ErrorEvent | VersionEvent | SyncRequestEvent
