"""
Expiring caches for catalog introspection.

Table layouts read from the database are kept in named cachetools
`TTLCache`s, keyed by `(engine id, lower-cased table)`. Entity metadata
lives in `dbhelper.meta` and does not expire.
"""
import functools
import logging
import threading

import cachetools

logger = logging.getLogger(__name__)

_MISS = object()


class Cache:
    """Process-wide set of named TTL caches.

        Cache.get_instance().clear_for_table('t_user')
    """

    _instance: 'Cache | None' = None
    lock = threading.RLock()

    def __init__(self) -> None:
        self.caches: dict[str, cachetools.TTLCache] = {}

    @classmethod
    def get_instance(cls) -> 'Cache':
        with cls.lock:
            if cls._instance is None:
                cls._instance = cls()
            return cls._instance

    def get_cache(self, name: str, maxsize: int = 100, ttl: int = 300) -> cachetools.TTLCache:
        """The cache called `name`, created with `maxsize`/`ttl` on first use."""
        with self.lock:
            cache = self.caches.get(name)
            if cache is None:
                cache = self.caches[name] = cachetools.TTLCache(maxsize=maxsize, ttl=ttl)
            return cache

    def clear_all(self) -> None:
        with self.lock:
            for cache in self.caches.values():
                cache.clear()

    def clear_for_table(self, table: str) -> None:
        """Forget everything cached about `table` on any engine."""
        table = table.lower()
        with self.lock:
            for name, cache in self.caches.items():
                stale = [key for key in cache if key[1] == table]
                for key in stale:
                    cache.pop(key, None)
                if stale:
                    logger.debug(f'Dropped {len(stale)} {name} entries for {table}')


def _engine_scope(cn) -> int:
    return id(getattr(cn, 'engine', None) or cn)


def introspection_cache(name: str, ttl: int = 300, maxsize: int = 50):
    """Cache a strategy method `(self, cn, table, ...)` per engine and table.

    `bypass_cache=True` reads through to the database and refreshes the entry.
    Empty results (a table that does not exist yet) are not stored.
    """
    def decorator(method):
        @functools.wraps(method)
        def wrapper(self, cn, table, *args, bypass_cache=False, **kwargs):
            cache = Cache.get_instance().get_cache(f'{type(self).__name__}.{name}', maxsize, ttl)
            key = (_engine_scope(cn), table.lower())
            if not bypass_cache:
                with Cache.lock:
                    found = cache.get(key, _MISS)
                if found is not _MISS:
                    logger.debug(f'{name} for {table} served from cache')
                    return found

            result = method(self, cn, table, *args, **kwargs)
            with Cache.lock:
                if result:
                    cache[key] = result
                else:
                    cache.pop(key, None)
            return result
        return wrapper
    return decorator
