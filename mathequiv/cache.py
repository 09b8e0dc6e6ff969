"""
TTL cache for equivalence verdicts.

A ResultCache stores verdict dicts under a fingerprint of the two markup
strings, the configuration and the rule library. Entries expire after
``ttl_seconds`` (seven days by default); expired entries are removed lazily
on read and in bulk by ``evict_expired``.

Storage is pluggable:
    MemoryStore  in-process LRU, the default
    SqliteStore  a single-table SQLite file shared across processes

Keys are namespaced by ``scope`` so several caches can share one store and
``clear()`` only touches its own scope.
"""

import asyncio
import hashlib
import json
import logging
import sqlite3
import threading
import time
from abc import ABC, abstractmethod
from collections import OrderedDict
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from .config import SEVEN_DAYS, EquivalenceConfig
from .errors import ConfigurationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheEntry:
    value: Dict[str, Any]
    expires_at: float
    created_at: float = 0.0

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


class CacheStore(ABC):
    """Async key/value storage used by ResultCache."""

    @abstractmethod
    async def get(self, key: str) -> Optional[CacheEntry]:
        ...

    @abstractmethod
    async def set(self, key: str, entry: CacheEntry) -> None:
        ...

    @abstractmethod
    async def delete(self, key: str) -> bool:
        ...

    @abstractmethod
    async def items(self, prefix: str) -> List[Tuple[str, CacheEntry]]:
        ...

    @abstractmethod
    async def delete_prefix(self, prefix: str) -> int:
        ...


class MemoryStore(CacheStore):
    """Bounded in-memory store with least-recently-used eviction."""

    def __init__(self, max_entries: int = 10000):
        if max_entries < 1:
            raise ConfigurationError("max_entries must be at least 1",
                                     field="max_entries", value=max_entries)
        self.max_entries = max_entries
        self._data: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._lock = threading.Lock()

    async def get(self, key: str) -> Optional[CacheEntry]:
        with self._lock:
            entry = self._data.get(key)
            if entry is not None:
                self._data.move_to_end(key)
            return entry

    async def set(self, key: str, entry: CacheEntry) -> None:
        with self._lock:
            self._data[key] = entry
            self._data.move_to_end(key)
            while len(self._data) > self.max_entries:
                self._data.popitem(last=False)

    async def delete(self, key: str) -> bool:
        with self._lock:
            return self._data.pop(key, None) is not None

    async def items(self, prefix: str) -> List[Tuple[str, CacheEntry]]:
        with self._lock:
            return [(k, v) for k, v in self._data.items() if k.startswith(prefix)]

    async def delete_prefix(self, prefix: str) -> int:
        with self._lock:
            keys = [k for k in self._data if k.startswith(prefix)]
            for key in keys:
                del self._data[key]
            return len(keys)

    def __len__(self) -> int:
        return len(self._data)


class SqliteStore(CacheStore):
    """SQLite-backed store; blocking calls run in the default executor."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._init_db()

    def _init_db(self):
        with self._get_connection() as conn:
            conn.executescript("""
                CREATE TABLE IF NOT EXISTS verdicts (
                    key TEXT PRIMARY KEY,
                    value JSON NOT NULL,
                    expires_at REAL NOT NULL,
                    created_at REAL NOT NULL DEFAULT 0
                );

                CREATE INDEX IF NOT EXISTS idx_verdicts_expires ON verdicts(expires_at);
            """)

    @contextmanager
    def _get_connection(self):
        conn = sqlite3.connect(self.path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    async def _run(self, func: Callable, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, func, *args)

    @staticmethod
    def _like(prefix: str) -> str:
        escaped = prefix.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        return escaped + "%"

    def _get(self, key: str) -> Optional[CacheEntry]:
        with self._get_connection() as conn:
            row = conn.execute("SELECT value, expires_at, created_at FROM verdicts WHERE key = ?",
                               (key,)).fetchone()
        if row is None:
            return None
        return CacheEntry(json.loads(row["value"]), row["expires_at"], row["created_at"])

    def _set(self, key: str, entry: CacheEntry) -> None:
        with self._get_connection() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO verdicts (key, value, expires_at, created_at) "
                "VALUES (?, ?, ?, ?)",
                (key, json.dumps(entry.value, sort_keys=True), entry.expires_at,
                 entry.created_at),
            )

    def _delete(self, key: str) -> bool:
        with self._get_connection() as conn:
            return conn.execute("DELETE FROM verdicts WHERE key = ?", (key,)).rowcount > 0

    def _items(self, prefix: str) -> List[Tuple[str, CacheEntry]]:
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT key, value, expires_at, created_at FROM verdicts "
                "WHERE key LIKE ? ESCAPE '\\'",
                (self._like(prefix),),
            ).fetchall()
        return [(r["key"], CacheEntry(json.loads(r["value"]), r["expires_at"], r["created_at"]))
                for r in rows]

    def _delete_prefix(self, prefix: str) -> int:
        with self._get_connection() as conn:
            return conn.execute("DELETE FROM verdicts WHERE key LIKE ? ESCAPE '\\'",
                                (self._like(prefix),)).rowcount

    async def get(self, key: str) -> Optional[CacheEntry]:
        return await self._run(self._get, key)

    async def set(self, key: str, entry: CacheEntry) -> None:
        await self._run(self._set, key, entry)

    async def delete(self, key: str) -> bool:
        return await self._run(self._delete, key)

    async def items(self, prefix: str) -> List[Tuple[str, CacheEntry]]:
        return await self._run(self._items, prefix)

    async def delete_prefix(self, prefix: str) -> int:
        return await self._run(self._delete_prefix, prefix)


def fingerprint(expr1: str, expr2: str, config: EquivalenceConfig, engine_tag: str = "") -> str:
    """Stable cache key for one check.

    The argument order is part of the key; the checker never swaps operands.
    """
    payload = {
        "expr1": expr1,
        "expr2": expr2,
        "config": config.to_dict(),
        "engine": engine_tag,
    }
    encoded = json.dumps(payload, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(encoded.encode("utf-8")).hexdigest()


class ResultCache:
    """Namespaced TTL cache of verdict dicts."""

    def __init__(self, store: Optional[CacheStore] = None, scope: str = "default",
                 ttl_seconds: int = SEVEN_DAYS, clock: Callable[[], float] = time.time):
        if ttl_seconds < 0:
            raise ConfigurationError("ttl_seconds must not be negative",
                                     field="ttl_seconds", value=ttl_seconds)
        if not scope or ":" in scope:
            raise ConfigurationError("scope must be a non-empty string without ':'",
                                     field="scope", value=scope)
        self.store = store if store is not None else MemoryStore()
        self.scope = scope
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self.hits = 0
        self.misses = 0

    @property
    def _prefix(self) -> str:
        return f"{self.scope}:"

    def _key(self, key: str) -> str:
        return self._prefix + key

    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        entry = await self.store.get(self._key(key))
        if entry is None:
            self.misses += 1
            return None
        if entry.is_expired(self.clock()):
            await self.store.delete(self._key(key))
            self.misses += 1
            logger.debug("Cache entry expired", extra={"key": key, "scope": self.scope})
            return None
        self.hits += 1
        return entry.value

    async def put(self, key: str, value: Dict[str, Any],
                  ttl_seconds: Optional[int] = None) -> None:
        ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds
        now = self.clock()
        await self.store.set(self._key(key), CacheEntry(dict(value), now + ttl, created_at=now))

    async def delete(self, key: str) -> bool:
        return await self.store.delete(self._key(key))

    async def clear(self) -> int:
        """Remove every entry in this scope."""
        return await self.store.delete_prefix(self._prefix)

    async def evict_expired(self) -> int:
        """Remove expired entries in this scope and return how many went."""
        now = self.clock()
        removed = 0
        for key, entry in await self.store.items(self._prefix):
            if entry.is_expired(now) and await self.store.delete(key):
                removed += 1
        if removed:
            logger.info("Evicted expired cache entries",
                        extra={"removed": removed, "scope": self.scope})
        return removed

    def stats(self) -> Dict[str, Any]:
        total = self.hits + self.misses
        return {
            "scope": self.scope,
            "hits": self.hits,
            "misses": self.misses,
            "hit_rate": self.hits / total if total else 0.0,
        }
