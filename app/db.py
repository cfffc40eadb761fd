"""
Database connection and setup
SQLAlchemy engines for the cache store and the source database
"""
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import NullPool

from app.models import Base
from config.settings import Settings


def _connect_args(url) -> dict:
    if str(url).startswith("sqlite"):
        return {"check_same_thread": False}  # Needed for SQLite
    return {}


def create_cache_engine(settings: Settings):
    """Engine for the cache store."""
    return create_engine(
        settings.cache_database_url,
        connect_args=_connect_args(settings.cache_database_url),
        echo=False,  # Set to True to see SQL queries
    )


def create_source_engine(settings: Settings):
    """
    Engine for the source database.

    No pooling: each refresh opens its own replica connection and closes it.
    """
    url = settings.source_url
    return create_engine(
        url,
        connect_args=_connect_args(url),
        poolclass=NullPool,
        echo=False,
    )


def create_session_factory(engine):
    """Session factory bound to the cache engine."""
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(engine):
    """
    Initialize the cache store - create the cache table
    Safe to call multiple times (won't recreate existing tables)
    """
    Base.metadata.create_all(bind=engine)
