"""
Core cache data structures.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional
from enum import Enum


class CacheScope(Enum):
    """Scopes of cached data, each with its own freshness policy."""
    SERVER = "server"                  # no world, no player
    WORLD = "world"                    # world only
    PLAYER = "player"                  # player only
    PLAYER_WORLD = "player_world"      # player within a world
    PLAYER_LIST = "player_list"        # bulk player list
    WORLD_LIST = "world_list"          # bulk world list


# Entity kinds in the cache store
BLOCK_COUNTS_KIND = "BlockCounts"
PLAYERS_KIND = "Players"
WORLDS_KIND = "Worlds"

# Sentinel records tracking the last bulk refresh of list scopes.
# Player row ids start at 1 so key 0 is always the first record scanned;
# world ids never exceed 999.
SENTINEL_NAME = "_LASTUPDATE"
PLAYERS_SENTINEL_KEY = 0
WORLDS_SENTINEL_KEY = 99999


@dataclass(frozen=True)
class ScopeSelector:
    """
    World/player dimensions of a block count request.

    0 means "all" for either dimension.
    """
    wid: int = 0
    pid: int = 0

    @property
    def scope(self) -> CacheScope:
        if self.wid and self.pid:
            return CacheScope.PLAYER_WORLD
        if self.pid:
            return CacheScope.PLAYER
        if self.wid:
            return CacheScope.WORLD
        return CacheScope.SERVER

    @property
    def key(self) -> str:
        """Cache key, pid-wid."""
        return f"{self.pid}-{self.wid}"


@dataclass
class CachedRecord:
    """
    A record in the cache store.

    The timestamp is the only staleness signal; compute_duration_ms is
    diagnostic.
    """
    kind: str
    key: str
    payload: Dict[str, Any] = field(default_factory=dict)
    timestamp: Optional[datetime] = None
    compute_duration_ms: Optional[int] = None

    def age_seconds(self, now: datetime) -> Optional[float]:
        """Seconds since the record was written."""
        if self.timestamp is None:
            return None
        return (now - self.timestamp).total_seconds()


@dataclass
class CacheMeta:
    """
    Cache metadata included in API responses.
    """
    last_update: Optional[datetime]
    refreshed: bool  # will newer data be available after this request?

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON response."""
        return {
            "last_update": self.last_update.isoformat() + "Z" if self.last_update else None,
            "refreshed": self.refreshed,
        }
