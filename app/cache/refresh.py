"""
Refresh engine: compute from the source database, then upsert into the cache.

Methods raise on source failure. They are meant to run detached from the
request (see dispatcher.RefreshDispatcher), which logs and drops errors so
the previous cached value stays in place.
"""
import logging
import time
from datetime import datetime, timezone
from typing import Callable, Optional

from .source import (
    SourceExecutor,
    block_counts_query,
    players_since_query,
    worlds_query,
)
from .core import (
    BLOCK_COUNTS_KIND,
    PLAYERS_KIND,
    PLAYERS_SENTINEL_KEY,
    SENTINEL_NAME,
    WORLDS_KIND,
    WORLDS_SENTINEL_KEY,
    CachedRecord,
    ScopeSelector,
)
from .store import CacheStore

logger = logging.getLogger("cache.refresh")


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


def to_unix_seconds(timestamp: datetime) -> int:
    """Naive UTC datetime -> whole unix seconds (floored)."""
    return int(timestamp.replace(tzinfo=timezone.utc).timestamp())


class RefreshEngine:
    """
    Recomputes cached scopes from the source.

    Args:
        store: Cache store to write into
        source: Source query executor
        clock: Returns the current naive UTC time
    """

    def __init__(
        self,
        store: CacheStore,
        source: SourceExecutor,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self._store = store
        self._source = source
        self._clock = clock

    def refresh_block_counts(self, selector: ScopeSelector) -> CachedRecord:
        """Recount block edits for one (world, player) scope."""
        started = time.monotonic()
        rows = self._source.execute(block_counts_query(self._source.tables, selector))
        counts = rows[0] if rows else {}

        record = self._store.upsert(
            BLOCK_COUNTS_KIND,
            selector.key,
            {
                "pid": selector.pid,
                "wid": selector.wid,
                "broken": int(counts.get("broken") or 0),
                "placed": int(counts.get("placed") or 0),
                "rolledback": int(counts.get("rolledback") or 0),
            },
            self._clock(),
            compute_duration_ms=_elapsed_ms(started),
        )
        logger.info(f"Refreshed block counts {selector.key} in {record.compute_duration_ms}ms")
        return record

    def refresh_players(self, last_update: Optional[datetime]) -> int:
        """
        Incremental player refresh.

        Only users active since the last bulk refresh are fetched; the rest
        are already cached. With no previous refresh every user is fetched.

        Returns:
            Number of player records written
        """
        started = time.monotonic()
        last_checked = to_unix_seconds(last_update) if last_update else 0
        rows = self._source.execute(players_since_query(self._source.tables, last_checked))

        for row in rows:
            self._store.upsert(
                PLAYERS_KIND,
                row["rowid"],
                {
                    "pid": row["rowid"],
                    "uuid": row["uuid"],
                    "name": row["user"],
                    "joined": datetime.utcfromtimestamp(row["time"]).isoformat() + "Z",
                },
                self._clock(),
            )

        self._store.upsert(
            PLAYERS_KIND,
            PLAYERS_SENTINEL_KEY,
            {"pid": PLAYERS_SENTINEL_KEY, "name": SENTINEL_NAME},
            self._clock(),
            compute_duration_ms=_elapsed_ms(started),
        )
        logger.info(f"Refreshed {len(rows)} players changed since {last_checked}")
        return len(rows)

    def refresh_worlds(self) -> int:
        """
        Full world list snapshot.

        Returns:
            Number of world records written
        """
        started = time.monotonic()
        rows = self._source.execute(worlds_query(self._source.tables))

        for row in rows:
            self._store.upsert(
                WORLDS_KIND,
                row["id"],
                {"wid": row["id"], "name": row["world"]},
                self._clock(),
            )

        self._store.upsert(
            WORLDS_KIND,
            WORLDS_SENTINEL_KEY,
            {"wid": WORLDS_SENTINEL_KEY, "name": SENTINEL_NAME},
            self._clock(),
            compute_duration_ms=_elapsed_ms(started),
        )
        logger.info(f"Refreshed {len(rows)} worlds")
        return len(rows)
