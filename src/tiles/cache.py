"""SQLite-backed cache tiers.

This module provides TierStore, the persistent storage handle that holds
every named cache tier, and CacheTier, a lightweight per-operation view on
one tier. Entries are keyed by (method, url) and keep their insertion order.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import time
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from domain.models import CachedResponse, RequestIdentity

if TYPE_CHECKING:
    from collections.abc import Iterable

logger = logging.getLogger(__name__)

DB_FILENAME = 'offline_cache.sqlite'


@dataclass
class TierStats:
    """Statistics about one cache tier."""

    name: str
    entries: int
    size_bytes: int
    oldest_entry: int | None
    newest_entry: int | None


def _as_identity(request: RequestIdentity | str) -> RequestIdentity:
    if isinstance(request, str):
        return RequestIdentity.for_key(request)
    return request


class CacheTier:
    """View on a single named tier of a TierStore.

    Usage:
        tier = store.open('mapbox-tiles-v1')
        tier.put(request, response)
        cached = tier.match(request)
    """

    def __init__(self, store: TierStore, name: str) -> None:
        self.store = store
        self.name = name

    @property
    def _conn(self) -> sqlite3.Connection:
        return self.store.connection

    def match(self, request: RequestIdentity | str) -> CachedResponse | None:
        """Exact (method, url) lookup. Non-GET requests never match."""
        method, url = _as_identity(request).key
        if method != 'GET':
            return None
        row = self._conn.execute(
            '''SELECT status, headers, body, url FROM entries
               WHERE tier = ? AND method = ? AND url = ?''',
            (self.name, method, url),
        ).fetchone()
        return _row_to_response(row)

    def match_url(self, url: str) -> CachedResponse | None:
        """Lookup by URL string alone, ignoring the stored method."""
        row = self._conn.execute(
            '''SELECT status, headers, body, url FROM entries
               WHERE tier = ? AND url = ? ORDER BY seq DESC LIMIT 1''',
            (self.name, url),
        ).fetchone()
        return _row_to_response(row)

    def put(self, request: RequestIdentity | str, response: CachedResponse) -> None:
        """Store a response; a re-put moves the entry to the end of the order.

        Raises:
            ValueError: for non-GET requests or non-2xx responses.
        """
        method, url = _as_identity(request).key
        if method != 'GET':
            msg = f'Only GET requests can be cached (got {method})'
            raise ValueError(msg)
        if not response.ok:
            msg = f'Refusing to cache non-2xx response (HTTP {response.status})'
            raise ValueError(msg)
        self._conn.execute(
            '''INSERT OR REPLACE INTO entries
               (tier, method, url, status, headers, body, stored_at, size_bytes)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?)''',
            (
                self.name,
                method,
                url,
                response.status,
                json.dumps(response.headers),
                response.body,
                int(time.time()),
                len(response.body),
            ),
        )
        self._conn.commit()

    def delete(self, request: RequestIdentity | str) -> bool:
        method, url = _as_identity(request).key
        cursor = self._conn.execute(
            'DELETE FROM entries WHERE tier = ? AND method = ? AND url = ?',
            (self.name, method, url),
        )
        self._conn.commit()
        return cursor.rowcount > 0

    def delete_many(self, requests: Iterable[RequestIdentity]) -> int:
        rows = [(self.name, *req.key) for req in requests]
        if not rows:
            return 0
        before = self._conn.total_changes
        self._conn.executemany(
            'DELETE FROM entries WHERE tier = ? AND method = ? AND url = ?',
            rows,
        )
        self._conn.commit()
        return self._conn.total_changes - before

    def keys(self) -> list[RequestIdentity]:
        """Stored identities, oldest insertion first."""
        cursor = self._conn.execute(
            'SELECT method, url FROM entries WHERE tier = ? ORDER BY seq',
            (self.name,),
        )
        return [RequestIdentity(url=url, method=method) for method, url in cursor]

    def first(self) -> tuple[RequestIdentity, CachedResponse] | None:
        """Oldest entry of the tier, or None when it is empty."""
        row = self._conn.execute(
            '''SELECT method, status, headers, body, url FROM entries
               WHERE tier = ? ORDER BY seq LIMIT 1''',
            (self.name,),
        ).fetchone()
        if row is None:
            return None
        method, status, headers, body, url = row
        return (
            RequestIdentity(url=url, method=method),
            CachedResponse(status=status, headers=json.loads(headers), body=body, url=url),
        )

    def __len__(self) -> int:
        row = self._conn.execute(
            'SELECT COUNT(*) FROM entries WHERE tier = ?', (self.name,)
        ).fetchone()
        return int(row[0])

    def stats(self) -> TierStats:
        row = self._conn.execute(
            '''SELECT COUNT(*), COALESCE(SUM(size_bytes), 0), MIN(stored_at), MAX(stored_at)
               FROM entries WHERE tier = ?''',
            (self.name,),
        ).fetchone()
        count, size, oldest, newest = row
        return TierStats(
            name=self.name,
            entries=count,
            size_bytes=size,
            oldest_entry=oldest,
            newest_entry=newest,
        )


def _row_to_response(row: tuple | None) -> CachedResponse | None:
    if row is None:
        return None
    status, headers, body, url = row
    return CachedResponse(status=status, headers=json.loads(headers), body=body, url=url)


class TierStore:
    """Persistent storage handle holding all named cache tiers.

    Features:
    - Single SQLite database, WAL mode
    - Tiers created lazily on first open, listed in creation order
    - Whole-tier deletion for version rotation

    Usage:
        store = TierStore(cache_dir)
        tier = store.open('mapa-html-v3')
        store.close()
    """

    def __init__(self, cache_dir: str | Path) -> None:
        self.cache_dir = Path(cache_dir)
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        self.db_path = self.cache_dir / DB_FILENAME
        self._conn: sqlite3.Connection | None = None
        # Уже зарегистрированные тиры: open() без записи в БД
        self._registered: set[str] = set()
        logger.info('TierStore initialized at %s', self.cache_dir)

    @property
    def connection(self) -> sqlite3.Connection:
        if self._conn is None:
            conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
            conn.execute('PRAGMA journal_mode=WAL')
            conn.execute('PRAGMA synchronous=NORMAL')
            self._init_schema(conn)
            self._conn = conn
        return self._conn

    def _init_schema(self, conn: sqlite3.Connection) -> None:
        conn.executescript('''
            CREATE TABLE IF NOT EXISTS tiers (
                seq INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL UNIQUE,
                created_at INTEGER NOT NULL
            );

            CREATE TABLE IF NOT EXISTS entries (
                seq INTEGER PRIMARY KEY AUTOINCREMENT,
                tier TEXT NOT NULL,
                method TEXT NOT NULL,
                url TEXT NOT NULL,
                status INTEGER NOT NULL,
                headers TEXT NOT NULL,
                body BLOB NOT NULL,
                stored_at INTEGER NOT NULL,
                size_bytes INTEGER NOT NULL,
                UNIQUE (tier, method, url)
            );

            CREATE INDEX IF NOT EXISTS idx_entries_tier_url ON entries(tier, url);
        ''')
        conn.commit()

    def open(self, name: str) -> CacheTier:
        """Open (creating if needed) the tier with the given name.

        Only the first open of a name per connection touches the database.
        """
        if name not in self._registered:
            conn = self.connection
            conn.execute(
                'INSERT OR IGNORE INTO tiers (name, created_at) VALUES (?, ?)',
                (name, int(time.time())),
            )
            conn.commit()
            self._registered.add(name)
        return CacheTier(self, name)

    def has(self, name: str) -> bool:
        row = self.connection.execute(
            'SELECT 1 FROM tiers WHERE name = ?', (name,)
        ).fetchone()
        return row is not None

    def names(self) -> list[str]:
        """Tier names in creation order."""
        cursor = self.connection.execute('SELECT name FROM tiers ORDER BY seq')
        return [row[0] for row in cursor]

    def delete(self, name: str) -> bool:
        """Drop a tier and all its entries."""
        conn = self.connection
        conn.execute('DELETE FROM entries WHERE tier = ?', (name,))
        cursor = conn.execute('DELETE FROM tiers WHERE name = ?', (name,))
        conn.commit()
        self._registered.discard(name)
        deleted = cursor.rowcount > 0
        if deleted:
            logger.info('Tier deleted: %s', name)
        return deleted

    def match(self, request: RequestIdentity | str) -> CachedResponse | None:
        """Exact lookup across every tier, in tier creation order."""
        for name in self.names():
            cached = CacheTier(self, name).match(request)
            if cached is not None:
                return cached
        return None

    def match_url(self, url: str) -> CachedResponse | None:
        for name in self.names():
            cached = CacheTier(self, name).match_url(url)
            if cached is not None:
                return cached
        return None

    def get_stats(self) -> list[TierStats]:
        return [CacheTier(self, name).stats() for name in self.names()]

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None
        self._registered.clear()
        logger.info('TierStore closed')

    def __enter__(self) -> TierStore:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
