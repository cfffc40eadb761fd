"""
Database models
SQLAlchemy ORM model for the cache store, and Core table definitions for the
CoreProtect source database (read-only, owned by the game server)
"""
from collections import namedtuple
from typing import Optional

from sqlalchemy import (
    JSON, Column, DateTime, Integer, MetaData, SmallInteger, String, Table
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class CacheRecordRow(Base):
    """
    One cached record per (namespace, kind, key)
    Overwritten in place on every refresh, never deleted
    """
    __tablename__ = "cache_records"

    namespace = Column(String(64), primary_key=True)
    kind = Column(String(64), primary_key=True)
    entity_key = Column(String(64), primary_key=True)
    # Numeric form of entity_key, used to order list scans
    ordinal = Column(Integer, nullable=True, index=True)
    payload = Column(JSON, nullable=False)
    timestamp = Column(DateTime, nullable=False)
    compute_duration_ms = Column(Integer, nullable=True)

    def __repr__(self):
        return f"<CacheRecordRow(kind='{self.kind}', key='{self.entity_key}', timestamp={self.timestamp})>"


# ===== SOURCE (CoreProtect) =====

SourceTables = namedtuple("SourceTables", ["metadata", "block", "user", "world"])


def build_source_tables(schema: Optional[str] = None) -> SourceTables:
    """
    Describe the CoreProtect tables used by refresh queries.

    Only the columns the queries touch are declared.
    """
    metadata = MetaData(schema=schema)

    block = Table(
        "co_block", metadata,
        Column("rowid", Integer, primary_key=True),
        Column("time", Integer),
        Column("user", Integer, index=True),
        Column("wid", Integer, index=True),
        Column("action", SmallInteger),  # 0 = broken, 1 = placed
        Column("rolled_back", SmallInteger),
    )

    user = Table(
        "co_user", metadata,
        Column("rowid", Integer, primary_key=True),
        Column("time", Integer),  # unix seconds
        Column("user", String(100)),
        Column("uuid", String(64), nullable=True),
    )

    world = Table(
        "co_world", metadata,
        Column("id", Integer, primary_key=True),
        Column("world", String(255)),
    )

    return SourceTables(metadata, block, user, world)
