"""
Tests for engine wiring.
"""
from sqlalchemy import event, text
from sqlalchemy.pool import NullPool

from app.cache import SourceExecutor
from app.db import create_source_engine
from app.models import build_source_tables
from config.settings import Settings


def test_source_connection_closed_after_each_query(tmp_path):
    settings = Settings(source_database_url=f"sqlite:///{tmp_path / 'source.db'}")
    engine = create_source_engine(settings)
    closed = []
    event.listen(engine, "close", lambda dbapi_conn, record: closed.append(dbapi_conn))

    executor = SourceExecutor(engine, build_source_tables())
    assert executor.execute(text("select 1 as one")) == [{"one": 1}]
    executor.execute(text("select 2 as two"))

    assert isinstance(engine.pool, NullPool)
    assert len(closed) == 2
