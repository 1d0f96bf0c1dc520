"""
SQLite cache of raw REST responses and the cached GET helper built on it.

Only raw rows read from the persistence layer are cached (keyed by table and query),
never computed credit, so a stale entry can at worst delay new activity by max_age.
"""

import sqlite3
import json
import time
from typing import Optional, Any, Dict
import threading

from .retry import perform_request_with_retries, configure_retry

DB_PATH = None  # can be overridden by caller

# noinspection SqlResolve
SQL_CREATE = """
CREATE TABLE IF NOT EXISTS rest_cache (
    key TEXT PRIMARY KEY,
    response TEXT,
    status INTEGER,
    timestamp REAL
);
"""


class Cache:
    def __init__(self, path: Optional[str] = None, max_entries: Optional[int] = None, ttl_seconds: Optional[float] = None):
        """Create a cache instance.

        :param path: SQLite file path or None for in-memory.
        :param max_entries: optional cap; the oldest entries are pruned when exceeded.
        :param ttl_seconds: optional TTL; expired entries are pruned on set and ignored on get.
        """
        self.path = path or DB_PATH or ':memory:'
        self.conn = sqlite3.connect(self.path, check_same_thread=False)
        self._lock = threading.RLock()
        self.max_entries = int(max_entries) if max_entries is not None else None
        self.ttl_seconds = float(ttl_seconds) if ttl_seconds is not None else None
        with self._lock:
            self.conn.executescript(SQL_CREATE)
            self.conn.commit()

    def close(self):
        with self._lock:
            if self.conn is not None:
                self.conn.close()
                self.conn = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    # noinspection SqlResolve
    def stats(self) -> Dict[str, Any]:
        """Return entry count and the oldest/newest timestamps."""
        with self._lock:
            count = self.conn.execute('SELECT COUNT(1) FROM rest_cache').fetchone()[0]
            oldest, newest = self.conn.execute('SELECT MIN(timestamp), MAX(timestamp) FROM rest_cache').fetchone()
        return {
            'count': int(count or 0),
            'oldest': float(oldest) if oldest is not None else None,
            'newest': float(newest) if newest is not None else None,
        }

    # noinspection SqlResolve
    def list_keys(self, limit: int = 1000) -> list:
        """Return cache keys with status and timestamp, newest first."""
        with self._lock:
            rows = self.conn.execute('SELECT key, status, timestamp FROM rest_cache ORDER BY timestamp DESC LIMIT ?', (limit,)).fetchall()
        return [{'key': k, 'status': int(status or 0), 'timestamp': float(ts or 0)} for k, status, ts in rows]

    # noinspection SqlWithoutWhere
    def clear(self):
        with self._lock:
            self.conn.execute('DELETE FROM rest_cache')
            self.conn.commit()

    # noinspection SqlResolve
    def delete_key(self, key: str) -> int:
        """Delete a specific cache key. Returns number of rows deleted."""
        with self._lock:
            cur = self.conn.execute('DELETE FROM rest_cache WHERE key = ?', (key,))
            self.conn.commit()
            return cur.rowcount

    # noinspection SqlResolve
    def get(self, key: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            row = self.conn.execute('SELECT response, status, timestamp FROM rest_cache WHERE key = ?', (key,)).fetchone()
        if not row:
            return None
        response, status, timestamp = row
        if self.ttl_seconds is not None and time.time() - float(timestamp or 0) > self.ttl_seconds:
            self.delete_key(key)
            return None
        return {'response': json.loads(response), 'status': status, 'timestamp': timestamp}

    # noinspection SqlResolve
    def _prune(self):
        with self._lock:
            if self.ttl_seconds is not None:
                self.conn.execute('DELETE FROM rest_cache WHERE timestamp < ?', (time.time() - self.ttl_seconds,))
            if self.max_entries is not None:
                count = self.conn.execute('SELECT COUNT(1) FROM rest_cache').fetchone()[0] or 0
                if count > self.max_entries:
                    self.conn.execute(
                        'DELETE FROM rest_cache WHERE key IN (SELECT key FROM rest_cache ORDER BY timestamp ASC LIMIT ?)',
                        (int(count - self.max_entries),),
                    )
            self.conn.commit()

    # noinspection SqlResolve
    def set(self, key: str, response: Any, status: int = 200):
        payload = json.dumps(response)
        with self._lock:
            self.conn.execute('REPLACE INTO rest_cache(key, response, status, timestamp) VALUES (?, ?, ?, ?)', (key, payload, status, time.time()))
            self.conn.commit()
            self._prune()


def _cached_fresh(cache: Optional[Cache], cache_key: Optional[str], max_age: Optional[float]):
    if cache is None or not cache_key:
        return None
    cached = cache.get(cache_key)
    if not cached:
        return None
    if max_age is not None and time.time() - float(cached.get('timestamp') or 0) > float(max_age):
        return None
    return cached


def cached_get(
    url: str,
    headers: Dict[str, str] = None,
    params: Dict[str, Any] = None,
    cache: Optional[Cache] = None,
    cache_key: Optional[str] = None,
    max_age: Optional[float] = None,
    **retry_options,
) -> Dict[str, Any]:
    """GET through the cache: a fresh cached entry is returned as is, otherwise the request is retried per storage.retry."""
    cached = _cached_fresh(cache, cache_key, max_age)
    if cached:
        return cached
    return perform_request_with_retries(url, headers or {}, params or {}, cache, cache_key or '', **retry_options)


__all__ = ["Cache", "cached_get", "configure_retry"]
