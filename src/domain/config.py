"""Runtime configuration of the offline cache layer.

Settings are a flat Pydantic model persisted as sectioned TOML
(see domain.toml_sections). Nothing here is module-global: the router, the
strategies and the prefetch job receive a CacheSettings instance explicitly.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

import tomlkit
from pydantic import BaseModel, field_validator

from domain.toml_sections import flat_to_sectioned, sectioned_to_flat
from shared.constants import (
    APP_SCOPE_URL,
    BACKEND_API_HOSTS,
    CACHE_DIR,
    CACHE_DIR_ENV_VAR,
    CACHE_VERSION,
    CDN_ASSETS,
    EXTENSION_SCHEMES,
    HTML_CACHE_NAME,
    HTTP_TIMEOUT_DEFAULT,
    MAP_PROVIDER_HOSTS,
    MAP_PROVIDER_PATH_MARKERS,
    MAX_TILE_CACHE_SIZE,
    METADATA_PATH_MARKERS,
    META_CACHE_NAME,
    PREFETCH_CONCURRENCY,
    PREFETCH_RETRIES,
    PROGRESS_EVERY,
    PROXY_HOST,
    PROXY_PORT,
    STATIC_CACHE_NAME,
    STATIC_CDN_HOSTS,
    TILE_CACHE_NAME,
    TILE_EXTENSIONS,
    TILE_PATH_MARKERS,
    TierKind,
)

logger = logging.getLogger(__name__)


class CacheSettings(BaseModel):
    """All tunables of the cache layer, with defaults from shared.constants."""

    model_config = {
        'extra': 'ignore',  # игнорировать устаревшие ключи из TOML
    }

    cache_version: str = CACHE_VERSION
    static_cache_name: str = STATIC_CACHE_NAME
    tile_cache_name: str = TILE_CACHE_NAME
    meta_cache_name: str = META_CACHE_NAME
    html_cache_name: str = HTML_CACHE_NAME

    provider_hosts: list[str] = list(MAP_PROVIDER_HOSTS)
    provider_path_markers: list[str] = list(MAP_PROVIDER_PATH_MARKERS)
    cdn_hosts: list[str] = list(STATIC_CDN_HOSTS)
    api_hosts: list[str] = list(BACKEND_API_HOSTS)
    extension_schemes: list[str] = list(EXTENSION_SCHEMES)

    tile_path_markers: list[str] = list(TILE_PATH_MARKERS)
    tile_extensions: list[str] = list(TILE_EXTENSIONS)
    metadata_path_markers: list[str] = list(METADATA_PATH_MARKERS)
    max_tile_entries: int = MAX_TILE_CACHE_SIZE

    prefetch_concurrency: int = PREFETCH_CONCURRENCY
    progress_every: int = PROGRESS_EVERY
    prefetch_retries: int = PREFETCH_RETRIES
    http_timeout_s: float = HTTP_TIMEOUT_DEFAULT

    proxy_host: str = PROXY_HOST
    proxy_port: int = PROXY_PORT

    app_scope_url: str = APP_SCOPE_URL
    static_assets: list[str] = list(CDN_ASSETS)
    cache_dir: str = CACHE_DIR

    @field_validator('max_tile_entries', 'prefetch_concurrency', 'progress_every')
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            msg = 'Value must be >= 1'
            raise ValueError(msg)
        return v

    @field_validator('app_scope_url')
    @classmethod
    def validate_scope(cls, v: str) -> str:
        return v if v.endswith('/') else v + '/'

    def tier_name(self, kind: TierKind) -> str:
        return {
            TierKind.STATIC_ASSETS: self.static_cache_name,
            TierKind.TILE_DATA: self.tile_cache_name,
            TierKind.MAP_METADATA: self.meta_cache_name,
            TierKind.PAGE_HTML: self.html_cache_name,
        }[kind]

    @property
    def valid_tiers(self) -> set[str]:
        return {self.tier_name(kind) for kind in TierKind}

    def resolved_cache_dir(self) -> Path:
        """Absolute directory that holds the tier databases.

        Order: OFFLINE_CACHE_DIR env var, absolute cache_dir, LOCALAPPDATA,
        then the user's home directory.
        """
        env_dir = os.getenv(CACHE_DIR_ENV_VAR)
        if env_dir:
            return Path(env_dir).expanduser().resolve()
        raw_dir = Path(self.cache_dir).expanduser()
        if raw_dir.is_absolute():
            return raw_dir
        local = os.getenv('LOCALAPPDATA')
        if local:
            return (Path(local) / 'OfflineMapCache' / raw_dir).resolve()
        return (Path.home() / '.offline_map_cache' / raw_dir).resolve()


def load_settings(path: str | Path | None = None) -> CacheSettings:
    """Load settings from a TOML file; defaults when path is None.

    Raises:
        FileNotFoundError: if an explicit path does not exist.
    """
    if path is None:
        return CacheSettings()
    p = Path(path)
    if not p.exists():
        msg = f'Settings file not found: {p}'
        raise FileNotFoundError(msg)
    data = tomlkit.parse(p.read_text(encoding='utf-8')).unwrap()
    settings = CacheSettings.model_validate(sectioned_to_flat(data))
    logger.info('Settings loaded from %s (version=%s)', p, settings.cache_version)
    return settings


def save_settings(settings: CacheSettings, path: str | Path) -> None:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    doc = tomlkit.document()
    for section, values in flat_to_sectioned(settings.model_dump()).items():
        table = tomlkit.table()
        for key, value in values.items():
            table.add(key, value)
        doc.add(section, table)
    p.write_text(tomlkit.dumps(doc), encoding='utf-8')
