"""
Freshness policy: maximum age per cache scope.
"""
from datetime import datetime, timedelta
from typing import Dict, Optional

from .core import CacheScope


# Max age by scope. Narrower aggregates change faster, so they expire sooner.
MAX_AGE: Dict[CacheScope, timedelta] = {
    CacheScope.SERVER: timedelta(days=7),
    CacheScope.WORLD: timedelta(days=3),
    CacheScope.PLAYER: timedelta(days=2),
    CacheScope.PLAYER_WORLD: timedelta(days=1),
    CacheScope.PLAYER_LIST: timedelta(minutes=15),
    CacheScope.WORLD_LIST: timedelta(hours=1),
}


def max_age(scope: CacheScope) -> timedelta:
    """
    Get the maximum staleness allowed for a scope.

    Args:
        scope: The cache scope

    Returns:
        Duration after which a cached record must be refreshed
    """
    return MAX_AGE[scope]


def refresh_cutoff(scope: CacheScope, now: datetime) -> datetime:
    """Records written at or before this instant are stale."""
    return now - max_age(scope)


def is_fresh(timestamp: Optional[datetime], scope: CacheScope, now: datetime) -> bool:
    """
    Check whether a record written at `timestamp` can be served as-is.

    The comparison is strict: a record exactly max_age old is stale.
    A record with no timestamp is never fresh.
    """
    if timestamp is None:
        return False
    return timestamp > refresh_cutoff(scope, now)
