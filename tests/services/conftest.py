"""Fixtures for services tests: temporary store, settings and fetcher."""

import tempfile
from pathlib import Path

import pytest
from fakes import FakeFetcher

from domain.config import CacheSettings
from tiles.cache import TierStore


@pytest.fixture
def store():
    with tempfile.TemporaryDirectory() as tmpdir:
        s = TierStore(Path(tmpdir))
        yield s
        s.close()


@pytest.fixture
def settings():
    return CacheSettings(app_scope_url='https://app.example.com/', static_assets=[])


@pytest.fixture
def fetcher():
    return FakeFetcher()
