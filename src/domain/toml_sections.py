"""Mapping layer between flat CacheSettings fields and sectioned TOML format.

CacheSettings remains a flat Pydantic model. This module provides two functions:
- flat_to_sectioned(): flat dict → sectioned dict (for TOML save)
- sectioned_to_flat(): sectioned dict → flat dict (for TOML load)
"""

from __future__ import annotations

# {section_name: {flat_field_name: short_name_in_toml}}
SECTION_MAP: dict[str, dict[str, str]] = {
    'tiers': {
        'cache_version': 'version',
        'static_cache_name': 'static_assets',
        'tile_cache_name': 'tile_data',
        'meta_cache_name': 'map_metadata',
        'html_cache_name': 'page_html',
    },
    'hosts': {
        'provider_hosts': 'provider',
        'provider_path_markers': 'provider_path_markers',
        'cdn_hosts': 'cdn',
        'api_hosts': 'api',
        'extension_schemes': 'extension_schemes',
    },
    'tiles': {
        'tile_path_markers': 'path_markers',
        'tile_extensions': 'extensions',
        'metadata_path_markers': 'metadata_markers',
        'max_tile_entries': 'max_entries',
    },
    'prefetch': {
        'prefetch_concurrency': 'concurrency',
        'progress_every': 'progress_every',
        'prefetch_retries': 'retries',
        'http_timeout_s': 'http_timeout_s',
    },
    'proxy': {
        'proxy_host': 'host',
        'proxy_port': 'port',
    },
    'app': {
        'app_scope_url': 'scope_url',
        'static_assets': 'static_assets',
        'cache_dir': 'cache_dir',
    },
}

# Reverse index: flat_field → (section, short_name)
_FLAT_TO_SECTION: dict[str, tuple[str, str]] = {}
for _section, _fields in SECTION_MAP.items():
    for _flat, _short in _fields.items():
        _FLAT_TO_SECTION[_flat] = (_section, _short)

# Reverse index: (section, short_name) → flat_field
_SECTION_TO_FLAT: dict[str, dict[str, str]] = {}
for _section, _fields in SECTION_MAP.items():
    _SECTION_TO_FLAT[_section] = {v: k for k, v in _fields.items()}


def flat_to_sectioned(flat: dict) -> dict:
    """Convert flat CacheSettings dict to sectioned dict for TOML output."""
    result: dict = {}
    for key, value in flat.items():
        if value is None:
            # TOML has no null
            continue
        if key in _FLAT_TO_SECTION:
            section, short_name = _FLAT_TO_SECTION[key]
            result.setdefault(section, {})[short_name] = value
        else:
            result.setdefault('common', {})[key] = value
    return result


def sectioned_to_flat(data: dict) -> dict:
    """Convert sectioned TOML dict to flat dict for CacheSettings validation."""
    flat: dict = {}
    for key, value in data.items():
        if isinstance(value, dict) and key in _SECTION_TO_FLAT:
            # Known section: expand short names to flat names
            mapping = _SECTION_TO_FLAT[key]
            for short_name, field_value in value.items():
                flat[mapping.get(short_name, short_name)] = field_value
        elif isinstance(value, dict):
            # Common or unknown section: pass through keys as-is
            flat.update(value)
        else:
            # Top-level key (flat TOML)
            flat[key] = value
    return flat
