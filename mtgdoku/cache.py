"""
In-memory TTL cache for daily boards.
Sits in front of the puzzle table so repeat requests for a date skip the database.
"""

import os
import time
import threading
from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass
class CacheEntry:
    """A single cache entry with value and expiration"""
    value: Any
    expires_at: float
    created_at: float


class MemoryCache:
    """Thread-safe in-memory cache with TTL support"""

    def __init__(self, clock=time.time):
        self._cache: Dict[str, CacheEntry] = {}
        self._lock = threading.RLock()
        self._clock = clock
        self._stats = {
            'hits': 0,
            'misses': 0,
            'sets': 0,
            'evictions': 0
        }

    def get(self, key: str) -> Optional[Any]:
        """Get a value from cache, return None if not found or expired"""
        with self._lock:
            entry = self._cache.get(key)
            if entry is None:
                self._stats['misses'] += 1
                return None

            if self._clock() > entry.expires_at:
                del self._cache[key]
                self._stats['misses'] += 1
                self._stats['evictions'] += 1
                return None

            self._stats['hits'] += 1
            return entry.value

    def set(self, key: str, value: Any, ttl_seconds: int = 3600) -> None:
        with self._lock:
            now = self._clock()
            self._cache[key] = CacheEntry(value=value, expires_at=now + ttl_seconds, created_at=now)
            self._stats['sets'] += 1

    def cleanup_expired(self) -> int:
        """Remove all expired entries, return count of removed entries"""
        with self._lock:
            now = self._clock()
            expired = [key for key, entry in self._cache.items() if now > entry.expires_at]
            for key in expired:
                del self._cache[key]
            self._stats['evictions'] += len(expired)
            return len(expired)

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            total = self._stats['hits'] + self._stats['misses']
            hit_rate = (self._stats['hits'] / total * 100) if total > 0 else 0
            return {
                **self._stats,
                'total_requests': total,
                'hit_rate_percent': round(hit_rate, 2),
                'cache_size': len(self._cache),
            }


def board_ttl_seconds() -> int:
    return int(os.getenv("BOARD_CACHE_TTL_HOURS", "24")) * 3600


def cache_board(cache: MemoryCache, date: str, board, ttl_seconds: Optional[int] = None) -> None:
    """Cache the board for the given date"""
    # drop expired boards before adding another
    cache.cleanup_expired()
    if ttl_seconds is None:
        ttl_seconds = board_ttl_seconds()
    cache.set(f"board:{date}", board, ttl_seconds)


def get_cached_board(cache: MemoryCache, date: str):
    return cache.get(f"board:{date}")
