"""
Unit tests for the owner-scoped Redis cache, using an in-memory client.
"""

from decimal import Decimal
from fnmatch import fnmatch

from app.services.cache_service import CacheService


class InMemoryRedis:
    def __init__(self):
        self.store = {}

    def get(self, key):
        return self.store.get(key)

    def setex(self, key, ttl, value):
        self.store[key] = value

    def scan_iter(self, match='*', count=None):
        return [k for k in list(self.store) if fnmatch(k, match)]

    def delete(self, key):
        self.store.pop(key, None)


def _cache():
    cache = CacheService()
    cache.client = InMemoryRedis()
    cache._enabled = True
    cache._prefix = 'test'
    return cache


def test_disabled_cache_is_pass_through(app):
    cache = CacheService()
    calls = []

    value = cache.memoize(1, 'discounts', 'stats', lambda: calls.append(1) or {'totalDiscounts': 3})

    assert value == {'totalDiscounts': 3}
    assert cache.get(1, 'discounts', 'stats') is None
    assert calls == [1]


def test_memoize_loads_once_and_keeps_decimals(app):
    cache = _cache()
    calls = []

    def loader():
        calls.append(1)
        return {'totalRevenue': Decimal('125.50')}

    first = cache.memoize(7, 'discounts', 'stats', loader, ttl=30)
    second = cache.memoize(7, 'discounts', 'stats', loader, ttl=30)

    assert calls == [1]
    assert first == second == {'totalRevenue': Decimal('125.50')}
    assert 'test:owner:7:discounts:stats' in cache.client.store


def test_invalidate_is_scoped_to_owner(app):
    cache = _cache()
    cache.set(1, 'discounts', 'stats', {'n': 1})
    cache.set(2, 'discounts', 'stats', {'n': 2})

    assert cache.invalidate_module(1, 'discounts') == 1
    assert cache.get(1, 'discounts', 'stats') is None
    assert cache.get(2, 'discounts', 'stats') == {'n': 2}
