"""
Read-through caching with per-scope freshness and detached refresh.
"""
from .core import CachedRecord, CacheMeta, CacheScope, ScopeSelector
from .ttl_policies import MAX_AGE, max_age, is_fresh
from .store import CacheStore, SQLCacheStore, InvalidCursorError
from .source import SourceExecutor
from .refresh import RefreshEngine
from .dispatcher import RefreshDispatcher
from .manager import CacheManager, get_cache_manager

__all__ = [
    # Core types
    "CachedRecord",
    "CacheMeta",
    "CacheScope",
    "ScopeSelector",
    # Freshness policy
    "MAX_AGE",
    "max_age",
    "is_fresh",
    # Store
    "CacheStore",
    "SQLCacheStore",
    "InvalidCursorError",
    # Source + refresh
    "SourceExecutor",
    "RefreshEngine",
    "RefreshDispatcher",
    # Manager
    "CacheManager",
    "get_cache_manager",
]
