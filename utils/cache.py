"""
In-memory TTL cache for Engineering Manager MCP.

Every logical cache (sprint data, issue data, standup reports, user/board
metadata) is a separate CacheStore with its own key prefix and default TTL,
so invalidation and eviction never cross domains. Stores are created by a
CacheRegistry that the composition root passes to the components needing them.

Example:
    >>> caches = CacheRegistry()
    >>> caches.sprint.set(CacheKeys.sprint(42), {"id": 7, "name": "Sprint 42"})
    >>> caches.sprint.get(CacheKeys.sprint(42))["name"]
    'Sprint 42'
"""

import asyncio
import logging
import re
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple


logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    """A cached value with its absolute expiry time (seconds since epoch)."""
    data: Any
    expiry: float
    key: str


class CacheStore:
    """
    TTL key-value store with bounded size and hit/miss accounting.

    Expired entries are removed lazily on read and proactively by a periodic
    sweep task (see start_cleanup()). When the store is full, inserting a new
    key evicts the single entry closest to expiry.

    Attributes:
        prefix: Namespace prepended to every key ("prefix:key")
        default_ttl: TTL in seconds used when set() is called without one
        max_size: Maximum number of entries held at once
        cleanup_interval: Seconds between background sweeps
    """

    def __init__(
        self,
        prefix: Optional[str] = None,
        default_ttl: float = 300,
        max_size: int = 1000,
        cleanup_interval: float = 60,
        clock: Callable[[], float] = time.time
    ):
        self.prefix = prefix
        self.default_ttl = default_ttl
        self.max_size = max_size
        self.cleanup_interval = cleanup_interval
        self._clock = clock

        self._entries: Dict[str, CacheEntry] = {}
        self._inflight: Dict[str, "asyncio.Future[Any]"] = {}
        self._cleanup_task: Optional["asyncio.Task[None]"] = None
        self.hits = 0
        self.misses = 0

    def _full_key(self, key: str) -> str:
        return f"{self.prefix}:{key}" if self.prefix else key

    def __len__(self) -> int:
        return len(self._entries)

    def set(self, key: str, data: Any, ttl_seconds: Optional[float] = None) -> None:
        """
        Store a value.

        Args:
            key: Cache key (without prefix)
            data: Value to cache
            ttl_seconds: Time to live; defaults to the store's default_ttl
        """
        ttl = self.default_ttl if ttl_seconds is None else ttl_seconds
        full_key = self._full_key(key)

        if len(self._entries) >= self.max_size and full_key not in self._entries:
            self._evict_soonest_expiry()

        self._entries[full_key] = CacheEntry(data=data, expiry=self._clock() + ttl, key=full_key)

    def _lookup(self, key: str) -> Tuple[bool, Any]:
        full_key = self._full_key(key)
        entry = self._entries.get(full_key)

        if entry is None:
            self.misses += 1
            return False, None

        if self._clock() > entry.expiry:
            del self._entries[full_key]
            self.misses += 1
            return False, None

        self.hits += 1
        return True, entry.data

    def get(self, key: str, default: Any = None) -> Any:
        """Return the cached value, or ``default`` if missing or expired."""
        found, data = self._lookup(key)
        return data if found else default

    def has(self, key: str) -> bool:
        """Check that a key exists and has not expired (counts as a read)."""
        found, _ = self._lookup(key)
        return found

    def delete(self, key: str) -> bool:
        """Delete a key. Returns True if it was present."""
        return self._entries.pop(self._full_key(key), None) is not None

    def clear(self) -> None:
        """Remove every entry and reset the hit/miss counters."""
        self._entries.clear()
        self.hits = 0
        self.misses = 0

    def invalidate_pattern(self, pattern: str) -> int:
        """
        Delete every entry whose full (prefixed) key matches a glob pattern.

        ``*`` matches any run of characters and ``?`` a single character;
        everything else is literal. The match is anchored at both ends.

        Returns:
            Number of entries removed
        """
        regex = re.compile(
            "^" + re.escape(pattern).replace(r"\*", ".*").replace(r"\?", ".") + "$"
        )
        matched = [key for key in self._entries if regex.match(key)]
        for key in matched:
            del self._entries[key]

        if matched:
            logger.debug(f"Invalidated {len(matched)} cache entries matching '{pattern}'")
        return len(matched)

    async def get_or_set(
        self,
        key: str,
        factory: Callable[[], Awaitable[Any]],
        ttl_seconds: Optional[float] = None
    ) -> Any:
        """
        Return the cached value, or await ``factory`` and cache its result.

        Concurrent misses for the same key share a single factory call. The
        call runs as its own task and every caller awaits it through
        ``asyncio.shield``, so cancelling one caller never cancels the fetch
        the others are waiting on. A failing factory caches nothing and every
        waiting caller receives the same error.
        """
        found, data = self._lookup(key)
        if found:
            logger.debug(f"Cache hit: {self._full_key(key)}")
            return data

        full_key = self._full_key(key)
        task = self._inflight.get(full_key)
        if task is not None:
            logger.debug(f"Joining in-flight request for {full_key}")
        else:
            logger.debug(f"Cache miss: {full_key}")
            task = asyncio.ensure_future(self._fill(key, factory, ttl_seconds))
            self._inflight[full_key] = task
            task.add_done_callback(lambda done: self._fill_done(full_key, done))
        return await asyncio.shield(task)

    async def _fill(
        self,
        key: str,
        factory: Callable[[], Awaitable[Any]],
        ttl_seconds: Optional[float]
    ) -> Any:
        data = await factory()
        self.set(key, data, ttl_seconds)
        return data

    def _fill_done(self, full_key: str, task: "asyncio.Future[Any]") -> None:
        if self._inflight.get(full_key) is task:
            del self._inflight[full_key]
        # Mark retrieved so a failure nobody is left to await does not log a warning
        if not task.cancelled():
            task.exception()

    def stats(self) -> Dict[str, Any]:
        """Return size and hit/miss statistics."""
        total = self.hits + self.misses
        return {
            "size": len(self._entries),
            "hits": self.hits,
            "misses": self.misses,
            "hit_rate": (self.hits / total) if total > 0 else 0,
        }

    def _evict_soonest_expiry(self) -> None:
        if not self._entries:
            return
        victim = min(self._entries.values(), key=lambda entry: entry.expiry)
        del self._entries[victim.key]
        logger.debug(f"Evicted cache entry {victim.key} (store full)")

    def cleanup(self) -> int:
        """Remove all expired entries. Returns the number removed."""
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if now > entry.expiry]
        for key in expired:
            del self._entries[key]
        return len(expired)

    async def _cleanup_loop(self) -> None:
        while True:
            await asyncio.sleep(self.cleanup_interval)
            removed = self.cleanup()
            if removed:
                logger.debug(f"Cache sweep removed {removed} expired entries from '{self.prefix}'")

    def start_cleanup(self) -> None:
        """Start the periodic sweep. Must be called from a running event loop."""
        if self._cleanup_task is None or self._cleanup_task.done():
            self._cleanup_task = asyncio.get_running_loop().create_task(self._cleanup_loop())

    async def stop(self) -> None:
        """Stop the periodic sweep."""
        task, self._cleanup_task = self._cleanup_task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def destroy(self) -> None:
        """Stop the sweep and drop every entry."""
        await self.stop()
        self.clear()


class CacheKeys:
    """Cache key builders, so every caller spells keys the same way."""

    @staticmethod
    def sprint(board_id: int) -> str:
        return f"sprint:{board_id}"

    @staticmethod
    def sprint_issues(sprint_id: int) -> str:
        return f"sprint-issues:{sprint_id}"

    @staticmethod
    def issue(issue_key: str) -> str:
        return f"issue:{issue_key}"

    @staticmethod
    def user_by_email(email: str) -> str:
        return f"user:email:{email.lower()}"

    @staticmethod
    def standup_report(
        board_id: int,
        project_key: Optional[str] = None,
        days_stale: int = 2,
        include_unassigned: bool = True
    ) -> str:
        base = f"standup:{board_id}:{project_key}" if project_key else f"standup:{board_id}"
        suffix = "" if include_unassigned else ":no-unassigned"
        return f"{base}:stale-{days_stale}{suffix}"


@dataclass
class CacheSettings:
    """TTL and sizing settings for the named caches (seconds)."""
    sprint_ttl: float = 600
    issue_ttl: float = 300
    report_ttl: float = 300
    metadata_ttl: float = 1800
    max_size: int = 1000
    cleanup_interval: float = 60


class CacheRegistry:
    """
    Holder of the named cache stores used across the application.

    Stores:
        sprint: active sprint per board
        issue: sprint issue lists and single issues
        report: built standup reports
        metadata: user/board lookups
    """

    def __init__(
        self,
        settings: Optional[CacheSettings] = None,
        clock: Callable[[], float] = time.time
    ):
        self.settings = settings or CacheSettings()
        s = self.settings

        self.sprint = CacheStore("sprint", s.sprint_ttl, s.max_size, s.cleanup_interval, clock)
        self.issue = CacheStore("issue", s.issue_ttl, s.max_size, s.cleanup_interval, clock)
        self.report = CacheStore("report", s.report_ttl, s.max_size, s.cleanup_interval, clock)
        self.metadata = CacheStore("metadata", s.metadata_ttl, s.max_size, s.cleanup_interval, clock)

    def stores(self) -> Dict[str, CacheStore]:
        return {
            "sprint": self.sprint,
            "issue": self.issue,
            "report": self.report,
            "metadata": self.metadata,
        }

    def start_cleanup(self) -> None:
        for store in self.stores().values():
            store.start_cleanup()

    async def stop(self) -> None:
        for store in self.stores().values():
            await store.stop()

    def clear_all(self) -> None:
        for store in self.stores().values():
            store.clear()

    def stats(self) -> Dict[str, Dict[str, Any]]:
        return {name: store.stats() for name, store in self.stores().items()}
