"""
In-memory caches for rules and FPL tables.

Both caches are plain objects with their own lifecycle: the service builds
one of each at start-up and injects them where needed. All operations take
an internal lock, so concurrent readers and writers need no coordination;
concurrent population of the same key is last-writer-wins.
"""

import threading
from dataclasses import dataclass
from datetime import datetime, time, timedelta, timezone
from typing import Any, Callable, Dict, Generic, Hashable, List, Optional, Tuple, TypeVar, TYPE_CHECKING

from shared.logging import get_logger

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")

Clock = Callable[[], datetime]

DEFAULT_RULE_TTL = timedelta(minutes=60)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class CacheEntry(Generic[V]):
    """Cached value and the instant it stops being valid."""
    value: V
    expires_at: datetime
    created_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at


@dataclass
class CacheStats:
    hits: int
    misses: int
    entry_count: int
    expired_entries: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total else 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "entry_count": self.entry_count,
            "expired_entries": self.expired_entries,
            "hit_rate": round(self.hit_rate, 4),
        }


class TTLCache(Generic[K, V]):
    """Thread-safe map of keys to expiring entries."""

    def __init__(self, name: str, clock: Optional[Clock] = None,
                 metrics: Optional["MetricsCollector"] = None):
        self.name = name
        self.clock = clock or utc_now
        self.metrics = metrics
        self.logger = get_logger(f"eligibility.cache.{name}")
        self._entries: Dict[K, CacheEntry[V]] = {}
        self._lock = threading.RLock()
        self._hits = 0
        self._misses = 0

    def _normalize_key(self, key: K) -> K:
        return key

    def get(self, key: K) -> Optional[V]:
        """Cached value, or None on a miss; expired entries are dropped on read."""
        key = self._normalize_key(key)
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and entry.is_expired(self.clock()):
                del self._entries[key]
                self.logger.debug("Cache entry expired", key=str(key))
                entry = None

            if entry is None:
                self._record(hit=False)
                return None

            self._record(hit=True)
            return entry.value

    def _store(self, key: K, value: V, expires_at: datetime):
        key = self._normalize_key(key)
        with self._lock:
            self._entries[key] = CacheEntry(value=value, expires_at=expires_at, created_at=self.clock())

    def invalidate(self, key: K) -> bool:
        """Drop one entry; returns whether it existed."""
        key = self._normalize_key(key)
        with self._lock:
            removed = self._entries.pop(key, None) is not None
        if removed:
            self.logger.info("Cache entry invalidated", key=str(key))
        return removed

    def invalidate_all(self):
        """Drop every entry and reset hit/miss counters."""
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
            self._hits = 0
            self._misses = 0
        self.logger.info("Cache cleared", entry_count=count)

    def stats(self) -> CacheStats:
        with self._lock:
            now = self.clock()
            expired = sum(1 for entry in self._entries.values() if entry.is_expired(now))
            return CacheStats(
                hits=self._hits,
                misses=self._misses,
                entry_count=len(self._entries),
                expired_entries=expired,
            )

    def keys(self) -> List[K]:
        with self._lock:
            return list(self._entries)

    def _record(self, hit: bool):
        if hit:
            self._hits += 1
        else:
            self._misses += 1
        if self.metrics is not None:
            self.metrics.record_cache_access(self.name, hit, entries=len(self._entries))


class FPLCache(TTLCache[int, V]):
    """FPL tables keyed by year; an entry expires at 00:00 UTC on January 1 of the next year."""

    def __init__(self, clock: Optional[Clock] = None, metrics: Optional["MetricsCollector"] = None):
        super().__init__("fpl", clock=clock, metrics=metrics)

    @staticmethod
    def expiration_for(year: int) -> datetime:
        return datetime(year + 1, 1, 1, tzinfo=timezone.utc)

    def set(self, year: int, value: V):
        self._store(year, value, self.expiration_for(year))

    def invalidate_years(self, years) -> int:
        return sum(1 for year in years if self.invalidate(year))

    def cached_years(self) -> List[int]:
        return sorted(self.keys())


RuleKey = Tuple[str, str]


class RuleCache(TTLCache[RuleKey, V]):
    """Program rules keyed by (state code, program id) with a rolling TTL.

    Entries hold the rules active on the day they were loaded, so no entry
    outlives the midnight that ends that day.

    ``set_state`` records that every program of a state was loaded together;
    ``get_by_state`` only answers for states loaded that way, so a partially
    populated state is treated as a miss.
    """

    def __init__(self, ttl: timedelta = DEFAULT_RULE_TTL, clock: Optional[Clock] = None,
                 metrics: Optional["MetricsCollector"] = None):
        super().__init__("rules", clock=clock, metrics=metrics)
        self.ttl = ttl
        self._complete_states: Dict[str, datetime] = {}

    def _normalize_key(self, key: RuleKey) -> RuleKey:
        state_code, program_id = key
        return state_code.upper(), program_id

    def expiration_from(self, now: datetime) -> datetime:
        """TTL from ``now``, capped at the start of the next day."""
        next_day = datetime.combine(now.date() + timedelta(days=1), time(), tzinfo=now.tzinfo)
        return min(now + self.ttl, next_day)

    def set(self, key: RuleKey, value: V):
        self._store(key, value, self.expiration_from(self.clock()))

    def set_state(self, state_code: str, values_by_program: Dict[str, V]):
        """Cache every program of a state in one write."""
        state = state_code.upper()
        with self._lock:
            expires_at = self.expiration_from(self.clock())
            for key in [k for k in self._entries if k[0] == state]:
                del self._entries[key]
            for program_id, value in values_by_program.items():
                self._store((state, program_id), value, expires_at)
            self._complete_states[state] = expires_at

    def get_by_state(self, state_code: str) -> Optional[List[V]]:
        """All cached values for a fully loaded state, ordered by program id."""
        state = state_code.upper()
        with self._lock:
            now = self.clock()
            expires_at = self._complete_states.get(state)
            if expires_at is None or now >= expires_at:
                self._complete_states.pop(state, None)
                self._record(hit=False)
                return None

            values = []
            for key in sorted(k for k in self._entries if k[0] == state):
                entry = self._entries[key]
                if entry.is_expired(now):
                    del self._entries[key]
                    continue
                values.append(entry.value)

            self._record(hit=True)
            return values

    def invalidate(self, key: RuleKey) -> bool:
        state, _ = self._normalize_key(key)
        with self._lock:
            self._complete_states.pop(state, None)
        return super().invalidate(key)

    def invalidate_program(self, program_id: str) -> int:
        with self._lock:
            keys = [key for key in self._entries if key[1] == program_id]
            for state, _ in keys:
                self._complete_states.pop(state, None)
        return self._drop(keys)

    def invalidate_state(self, state_code: str) -> int:
        state = state_code.upper()
        with self._lock:
            self._complete_states.pop(state, None)
            keys = [key for key in self._entries if key[0] == state]
        return self._drop(keys)

    def invalidate_all(self):
        with self._lock:
            self._complete_states.clear()
        super().invalidate_all()

    def _drop(self, keys: List[RuleKey]) -> int:
        removed = 0
        for key in keys:
            if TTLCache.invalidate(self, key):
                removed += 1
        return removed
