"""
Cache store adapter.

A key/value store of CachedRecords keyed by (kind, key), supporting point
lookups, ordered paginated scans and idempotent upserts. Records are never
deleted; staleness is decided by the caller from the record timestamp.
"""
import base64
import json
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol, Tuple, Union

from sqlalchemy import and_, or_, select

from app.models import CacheRecordRow
from .core import CachedRecord

logger = logging.getLogger("cache.store")

Key = Union[int, str]

# Cursor ordinals are bound as signed 64-bit integers
_MIN_ORDINAL = -(2 ** 63)
_MAX_ORDINAL = 2 ** 63 - 1


class InvalidCursorError(ValueError):
    """Raised when a pagination cursor cannot be decoded."""


class CacheStore(Protocol):
    """Interface consumed by the cache manager and refresh engine."""

    def get(self, kind: str, key: Key) -> Optional[CachedRecord]:
        ...

    def scan(
        self,
        kind: str,
        cursor: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> Tuple[List[CachedRecord], Optional[str]]:
        ...

    def upsert(
        self,
        kind: str,
        key: Key,
        payload: Dict[str, Any],
        timestamp: datetime,
        compute_duration_ms: Optional[int] = None,
    ) -> CachedRecord:
        ...


def encode_cursor(ordinal: Optional[int], key: str) -> str:
    raw = json.dumps([ordinal, key]).encode("utf-8")
    return base64.urlsafe_b64encode(raw).decode("ascii")


def decode_cursor(cursor: str) -> Tuple[Optional[int], str]:
    """
    Decode a cursor produced by encode_cursor.

    Raises:
        InvalidCursorError: If the cursor was not produced by this store
    """
    try:
        ordinal, key = json.loads(base64.urlsafe_b64decode(cursor.encode("ascii")))
    except (ValueError, TypeError) as e:
        raise InvalidCursorError(f"invalid cursor: {cursor!r}") from e
    if not isinstance(key, str) or not (ordinal is None or _valid_ordinal(ordinal)):
        raise InvalidCursorError(f"invalid cursor: {cursor!r}")
    return ordinal, key


def _valid_ordinal(ordinal) -> bool:
    if isinstance(ordinal, bool) or not isinstance(ordinal, int):
        return False
    return _MIN_ORDINAL <= ordinal <= _MAX_ORDINAL


def _ordinal(key: Key) -> Optional[int]:
    if isinstance(key, int):
        return key
    try:
        return int(key)
    except ValueError:
        return None


def cursor_after(record: CachedRecord) -> str:
    """Cursor for the page that starts right after `record`."""
    return encode_cursor(_ordinal(record.key), record.key)


class SQLCacheStore:
    """
    CacheStore backed by a single SQLAlchemy table.

    Each operation runs in its own session; there is no transaction spanning
    several upserts.
    """

    def __init__(self, session_factory, namespace: str = "if.game"):
        self._session_factory = session_factory
        self.namespace = namespace

    def get(self, kind: str, key: Key) -> Optional[CachedRecord]:
        """Point lookup. Returns None on a miss."""
        with self._session_factory() as session:
            row = session.get(CacheRecordRow, (self.namespace, kind, str(key)))
            return self._to_record(row) if row is not None else None

    def scan(
        self,
        kind: str,
        cursor: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> Tuple[List[CachedRecord], Optional[str]]:
        """
        Ordered enumeration of a kind, by numeric key then key text.

        Args:
            kind: Entity kind
            cursor: Cursor returned by a previous scan, None for the first page
            limit: Page size, None for everything

        Returns:
            (records, next_cursor) - next_cursor is None when nothing is left
        """
        query = (
            select(CacheRecordRow)
            .where(CacheRecordRow.namespace == self.namespace, CacheRecordRow.kind == kind)
            .order_by(CacheRecordRow.ordinal, CacheRecordRow.entity_key)
        )

        if cursor:
            ordinal, key = decode_cursor(cursor)
            if ordinal is None:
                query = query.where(or_(
                    CacheRecordRow.ordinal.isnot(None),
                    and_(CacheRecordRow.ordinal.is_(None), CacheRecordRow.entity_key > key),
                ))
            else:
                query = query.where(or_(
                    CacheRecordRow.ordinal > ordinal,
                    and_(CacheRecordRow.ordinal == ordinal, CacheRecordRow.entity_key > key),
                ))

        if limit is not None:
            # One extra row tells us whether another page exists
            query = query.limit(limit + 1)

        with self._session_factory() as session:
            rows = session.execute(query).scalars().all()
            records = [self._to_record(row) for row in rows]

        next_cursor = None
        if limit is not None and len(records) > limit:
            records = records[:limit]
            next_cursor = cursor_after(records[-1])

        logger.debug(f"Scanned {len(records)} {kind} records (more={next_cursor is not None})")
        return records, next_cursor

    def upsert(
        self,
        kind: str,
        key: Key,
        payload: Dict[str, Any],
        timestamp: datetime,
        compute_duration_ms: Optional[int] = None,
    ) -> CachedRecord:
        """Full overwrite of the record at (kind, key)."""
        row = CacheRecordRow(
            namespace=self.namespace,
            kind=kind,
            entity_key=str(key),
            ordinal=_ordinal(key),
            payload=payload,
            timestamp=timestamp,
            compute_duration_ms=compute_duration_ms,
        )
        with self._session_factory() as session:
            row = session.merge(row)
            session.commit()
            return self._to_record(row)

    @staticmethod
    def _to_record(row: CacheRecordRow) -> CachedRecord:
        return CachedRecord(
            kind=row.kind,
            key=row.entity_key,
            payload=dict(row.payload or {}),
            timestamp=row.timestamp,
            compute_duration_ms=row.compute_duration_ms,
        )
