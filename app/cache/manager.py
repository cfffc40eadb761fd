"""
Read-through cache orchestration: serve from cache, refresh when stale.
"""
import threading
import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from starlette.background import BackgroundTasks

from .core import (
    BLOCK_COUNTS_KIND,
    PLAYERS_KIND,
    PLAYERS_SENTINEL_KEY,
    WORLDS_KIND,
    WORLDS_SENTINEL_KEY,
    CachedRecord,
    CacheMeta,
    CacheScope,
    ScopeSelector,
)
from .dispatcher import RefreshDispatcher
from .refresh import RefreshEngine
from .store import CacheStore, cursor_after
from .ttl_policies import is_fresh

logger = logging.getLogger("cache.manager")

DEFAULT_PAGE_SIZE = 30
MAX_PAGE_SIZE = 50


def _age_label(record: CachedRecord, now: datetime) -> str:
    age = record.age_seconds(now)
    return f"{age:.1f}s" if age is not None else "unknown"


class CacheManager:
    """
    Serve/refresh decisions for block counts, players and worlds.

    Every read follows the same protocol:
    - fresh hit: serve cached data, no refresh
    - stale hit: serve cached data, refresh after the response
    - miss: serve zeros, refresh after the response
    """

    def __init__(
        self,
        store: CacheStore,
        engine: RefreshEngine,
        dispatcher: Optional[RefreshDispatcher] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self._store = store
        self._engine = engine
        self._dispatcher = dispatcher or RefreshDispatcher()
        self._clock = clock

        self._stats_lock = threading.Lock()
        self._stats = {
            "hits_fresh": 0,
            "hits_stale": 0,
            "misses": 0,
        }

    def get_block_counts(self, selector: ScopeSelector, background: BackgroundTasks) -> Dict[str, Any]:
        """
        Block counts for a (world, player) scope.

        Returns:
            {pid, wid, data: {broken, placed, rolledback}, cache: {last_update, refreshed}}
        """
        record = self._store.get(BLOCK_COUNTS_KIND, selector.key)
        now = self._clock()

        if record is None:
            # Nothing to serve yet; answer with zeros and fill the cache
            logger.info(f"CACHE MISS: {BLOCK_COUNTS_KIND}/{selector.key}")
            self._bump("misses")
            self._refresh(background, f"{BLOCK_COUNTS_KIND}/{selector.key}",
                          self._engine.refresh_block_counts, selector)
            return self._counts_response(selector.pid, selector.wid, {}, CacheMeta(now, True))

        refreshed = self._check(record, selector.scope, now)
        if refreshed:
            self._refresh(background, f"{BLOCK_COUNTS_KIND}/{selector.key}",
                          self._engine.refresh_block_counts, selector)

        payload = record.payload
        return self._counts_response(
            payload.get("pid", selector.pid),
            payload.get("wid", selector.wid),
            payload,
            CacheMeta(record.timestamp, refreshed),
        )

    def get_players(
        self,
        cursor: Optional[str],
        limit: int,
        background: BackgroundTasks,
    ) -> Dict[str, Any]:
        """
        One page of the player list.

        Only the first page (no cursor) carries cache metadata and can
        trigger a refresh; the sentinel record is stripped from it.

        Raises:
            InvalidCursorError: If the cursor cannot be decoded
        """
        if cursor:
            records, next_cursor = self._store.scan(PLAYERS_KIND, cursor=cursor, limit=limit)
            return {
                "players": [r.payload for r in records],
                "cx": next_cursor or False,
            }

        # First page holds the sentinel in front of the players
        records, next_cursor = self._store.scan(PLAYERS_KIND, limit=limit + 1)
        sentinel = self._pop_sentinel(records, PLAYERS_SENTINEL_KEY)
        if len(records) > limit:
            # No sentinel took the extra slot, so the page ends one record earlier
            records = records[:limit]
            next_cursor = cursor_after(records[-1])
        now = self._clock()

        last_update = sentinel.timestamp if sentinel else None
        refreshed = self._check_list(sentinel, PLAYERS_KIND, CacheScope.PLAYER_LIST, now)
        if refreshed:
            self._refresh(background, PLAYERS_KIND, self._engine.refresh_players, last_update)

        return {
            "players": [r.payload for r in records],
            "cx": next_cursor or False,
            "cache": CacheMeta(last_update, refreshed).to_dict(),
        }

    def get_worlds(self, background: BackgroundTasks) -> Dict[str, Any]:
        """Every cached world, plus cache metadata from the sentinel."""
        records, _ = self._store.scan(WORLDS_KIND)
        sentinel = self._pop_sentinel(records, WORLDS_SENTINEL_KEY)
        now = self._clock()

        refreshed = self._check_list(sentinel, WORLDS_KIND, CacheScope.WORLD_LIST, now)
        if refreshed:
            self._refresh(background, WORLDS_KIND, self._engine.refresh_worlds)

        return {
            "worlds": [r.payload for r in records],
            "cache": CacheMeta(sentinel.timestamp if sentinel else None, refreshed).to_dict(),
        }

    def _check(self, record: CachedRecord, scope: CacheScope, now: datetime) -> bool:
        """Classify a hit. Returns True when a refresh is needed."""
        if is_fresh(record.timestamp, scope, now):
            logger.debug(
                f"CACHE HIT (fresh): {record.kind}/{record.key} "
                f"[age={_age_label(record, now)}]"
            )
            self._bump("hits_fresh")
            return False

        logger.info(
            f"CACHE HIT (stale, refreshing): {record.kind}/{record.key} "
            f"[age={_age_label(record, now)}]"
        )
        self._bump("hits_stale")
        return True

    def _check_list(
        self,
        sentinel: Optional[CachedRecord],
        kind: str,
        scope: CacheScope,
        now: datetime,
    ) -> bool:
        if sentinel is None:
            # Never bootstrapped
            logger.info(f"CACHE MISS: {kind} sentinel")
            self._bump("misses")
            return True
        return self._check(sentinel, scope, now)

    @staticmethod
    def _pop_sentinel(records: List[CachedRecord], sentinel_key: int) -> Optional[CachedRecord]:
        """Remove and return the sentinel record, wherever it sits."""
        for i, record in enumerate(records):
            if record.key == str(sentinel_key):
                return records.pop(i)
        return None

    @staticmethod
    def _counts_response(pid: int, wid: int, counts: Dict[str, Any], meta: CacheMeta) -> Dict[str, Any]:
        return {
            "pid": pid,
            "wid": wid,
            "data": {
                "broken": counts.get("broken", 0),
                "placed": counts.get("placed", 0),
                "rolledback": counts.get("rolledback", 0),
            },
            "cache": meta.to_dict(),
        }

    def _refresh(self, background: BackgroundTasks, key: str, job: Callable[..., Any], *args: Any) -> None:
        self._dispatcher.dispatch(background, key, job, *args)

    def _bump(self, counter: str) -> None:
        with self._stats_lock:
            self._stats[counter] += 1

    def get_stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        with self._stats_lock:
            total_hits = self._stats["hits_fresh"] + self._stats["hits_stale"]
            total_requests = total_hits + self._stats["misses"]
            hit_rate = (total_hits / total_requests * 100) if total_requests > 0 else 0

            return {
                "hits_fresh": self._stats["hits_fresh"],
                "hits_stale": self._stats["hits_stale"],
                "misses": self._stats["misses"],
                "hit_rate_percent": round(hit_rate, 1),
                "refreshes": self._dispatcher.get_stats(),
            }


# Global cache manager instance
_cache_manager: Optional[CacheManager] = None


def build_cache_manager(settings) -> CacheManager:
    """Wire the cache manager and its collaborators from settings."""
    from app.db import create_cache_engine, create_session_factory, create_source_engine, init_db
    from app.models import build_source_tables
    from .source import SourceExecutor
    from .store import SQLCacheStore

    cache_engine = create_cache_engine(settings)
    init_db(cache_engine)
    store = SQLCacheStore(create_session_factory(cache_engine), namespace=settings.cache_namespace)
    source = SourceExecutor(create_source_engine(settings), build_source_tables(settings.source_schema))

    return CacheManager(
        store=store,
        engine=RefreshEngine(store, source),
        dispatcher=RefreshDispatcher(
            single_flight=settings.refresh_single_flight,
            inflight_ttl_seconds=settings.refresh_inflight_ttl_seconds,
        ),
    )


def get_cache_manager() -> CacheManager:
    """Get or create the global cache manager."""
    global _cache_manager
    if _cache_manager is None:
        from config.settings import settings
        _cache_manager = build_cache_manager(settings)
    return _cache_manager
