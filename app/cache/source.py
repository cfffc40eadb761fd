"""
Source query executor for the CoreProtect database.

The source is a read replica; every query opens its own connection and
closes it on the way out, success or failure.
"""
import logging
from typing import Any, Dict, List, Tuple

from sqlalchemy import func, select

from .core import CacheScope, ScopeSelector
from app.models import SourceTables

logger = logging.getLogger("cache.source")


# Dimensions filtered by each aggregate scope
COUNT_FILTERS: Dict[CacheScope, Tuple[str, ...]] = {
    CacheScope.SERVER: (),
    CacheScope.WORLD: ("wid",),
    CacheScope.PLAYER: ("user",),
    CacheScope.PLAYER_WORLD: ("wid", "user"),
}


class SourceExecutor:
    """Runs statements against the source engine and returns rows as dicts."""

    def __init__(self, engine, tables: SourceTables):
        self._engine = engine
        self.tables = tables

    def execute(self, statement) -> List[Dict[str, Any]]:
        with self._engine.connect() as conn:
            result = conn.execute(statement)
            return [dict(row._mapping) for row in result]


def block_counts_query(tables: SourceTables, selector: ScopeSelector):
    """
    Placed, broken and rolled back counts for a scope, as a single row.

    Rolled back edits are counted separately and excluded from placed/broken.
    """
    block = tables.block
    values = {"wid": selector.wid, "user": selector.pid}
    dimension_filters = [
        block.c[name] == values[name] for name in COUNT_FILTERS[selector.scope]
    ]

    def count(*conditions):
        return (
            select(func.count(block.c.rowid))
            .where(*conditions, *dimension_filters)
            .correlate(None)
            .scalar_subquery()
        )

    return select(
        count(block.c.action == 1, block.c.rolled_back == 0).label("placed"),
        count(block.c.action == 0, block.c.rolled_back == 0).label("broken"),
        count(block.c.rolled_back == 1).label("rolledback"),
    )


def players_since_query(tables: SourceTables, last_checked: int):
    """Users with a known uuid whose activity time is after last_checked (unix seconds)."""
    user = tables.user
    return (
        select(user.c.rowid, user.c.time, user.c.user, user.c.uuid)
        .where(user.c.uuid.isnot(None), user.c.time > last_checked)
        .order_by(user.c.rowid)
    )


def worlds_query(tables: SourceTables):
    """Every world. Always a full snapshot."""
    world = tables.world
    return select(world.c.id, world.c.world).order_by(world.c.id)
