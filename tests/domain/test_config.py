"""Tests for CacheSettings loading and saving."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from domain.config import CacheSettings, load_settings, save_settings
from shared.constants import CACHE_DIR_ENV_VAR, TierKind

DEFAULT_TOML = Path(__file__).parent.parent.parent / 'configs' / 'default.toml'


class TestCacheSettings:
    """Tests for the settings model."""

    def test_defaults(self):
        s = CacheSettings()
        assert s.max_tile_entries == 500
        assert s.prefetch_concurrency == 10
        assert s.progress_every == 25
        assert 'api.mapbox.com' in s.provider_hosts

    def test_tier_names(self):
        s = CacheSettings()
        assert s.tier_name(TierKind.TILE_DATA) == 'mapbox-tiles-v1'
        assert s.tier_name(TierKind.MAP_METADATA) == 'mapbox-meta-v1'
        assert s.tier_name(TierKind.PAGE_HTML) == 'mapa-html-v3'
        assert s.tier_name(TierKind.STATIC_ASSETS) == s.cache_version

    def test_valid_tiers(self):
        assert CacheSettings().valid_tiers == {
            'mapa-entregas-v5',
            'mapbox-tiles-v1',
            'mapbox-meta-v1',
            'mapa-html-v3',
        }

    @pytest.mark.parametrize('field', ['max_tile_entries', 'prefetch_concurrency', 'progress_every'])
    def test_positive_counts(self, field):
        with pytest.raises(ValidationError):
            CacheSettings(**{field: 0})

    def test_scope_gets_trailing_slash(self):
        assert CacheSettings(app_scope_url='http://x/app').app_scope_url == 'http://x/app/'

    def test_unknown_keys_ignored(self):
        assert CacheSettings.model_validate({'legacy_option': True}).cache_version


class TestResolvedCacheDir:
    """Tests for CacheSettings.resolved_cache_dir()."""

    def test_env_override(self, tmp_path, monkeypatch):
        monkeypatch.setenv(CACHE_DIR_ENV_VAR, str(tmp_path / 'env'))
        assert CacheSettings().resolved_cache_dir() == (tmp_path / 'env').resolve()

    def test_absolute_path(self, tmp_path, monkeypatch):
        monkeypatch.delenv(CACHE_DIR_ENV_VAR, raising=False)
        assert CacheSettings(cache_dir=str(tmp_path)).resolved_cache_dir() == tmp_path

    def test_localappdata(self, tmp_path, monkeypatch):
        monkeypatch.delenv(CACHE_DIR_ENV_VAR, raising=False)
        monkeypatch.setenv('LOCALAPPDATA', str(tmp_path))
        result = CacheSettings(cache_dir='cache').resolved_cache_dir()
        assert result == (tmp_path / 'OfflineMapCache' / 'cache').resolve()

    def test_home_fallback(self, tmp_path, monkeypatch):
        monkeypatch.delenv(CACHE_DIR_ENV_VAR, raising=False)
        monkeypatch.delenv('LOCALAPPDATA', raising=False)
        monkeypatch.setenv('HOME', str(tmp_path))
        result = CacheSettings(cache_dir='cache').resolved_cache_dir()
        assert result == (tmp_path / '.offline_map_cache' / 'cache').resolve()


class TestLoadSave:
    """Tests for load_settings() / save_settings()."""

    def test_none_gives_defaults(self):
        assert load_settings(None) == CacheSettings()

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_settings(tmp_path / 'absent.toml')

    def test_default_toml_matches_defaults(self):
        assert load_settings(DEFAULT_TOML) == CacheSettings()

    def test_save_and_load(self, tmp_path):
        path = tmp_path / 'cfg' / 'settings.toml'
        settings = CacheSettings(cache_version='v6', static_cache_name='v6', max_tile_entries=1000)
        save_settings(settings, path)
        assert path.exists()
        loaded = load_settings(path)
        assert loaded == settings
        assert 'v6' in loaded.valid_tiers

    def test_partial_file(self, tmp_path):
        path = tmp_path / 'partial.toml'
        path.write_text('[prefetch]\nconcurrency = 4\n', encoding='utf-8')
        loaded = load_settings(path)
        assert loaded.prefetch_concurrency == 4
        assert loaded.max_tile_entries == 500

    def test_invalid_value(self, tmp_path):
        path = tmp_path / 'bad.toml'
        path.write_text('[tiles]\nmax_entries = 0\n', encoding='utf-8')
        with pytest.raises(ValidationError):
            load_settings(path)
