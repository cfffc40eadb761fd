"""
Game Info - cached block statistics, players and worlds for the web client
Data is served from the cache and refreshed from CoreProtect after the response
"""
import logging
import re
from typing import Optional

from fastapi import BackgroundTasks, Depends, FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware

from app.cache import CacheManager, InvalidCursorError, ScopeSelector, get_cache_manager
from app.cache.manager import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from app.schemas import BlockCountsResponse, PlayerListResponse, WorldListResponse
from config.settings import settings

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger("main")

# Version tracking
APP_VERSION = "v1.0.0"
APP_NAME = "Game Info"

MAX_WID = 999
MAX_PID = 9999

app = FastAPI(
    title=APP_NAME,
    description="Cached block counts, players and worlds from the CoreProtect log",
    version=APP_VERSION,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.cors_origin],
    allow_methods=["GET"],
    allow_headers=["Content-Type"],
)

_INT_PATTERN = re.compile(r"[+-]?\d+")


def parse_int_param(name: str, value: Optional[str], default: int) -> int:
    """
    Parse an integer query parameter.

    Absent or empty values take the default.

    Raises:
        HTTPException: 400 if the value is not an integer
    """
    if value is None or value.strip() == "":
        return default
    value = value.strip()
    if not _INT_PATTERN.fullmatch(value):
        raise HTTPException(status_code=400, detail=f"invalid {name} format")
    return int(value)


def parse_dimension(name: str, value: Optional[str], upper: int) -> int:
    """Parse wid/pid: 0 (all) through upper, anything else is rejected."""
    parsed = parse_int_param(name, value, 0)
    if parsed < 0 or parsed > upper:
        raise HTTPException(status_code=400, detail=f"invalid {name} format")
    return parsed


def parse_page_size(value: Optional[str]) -> int:
    """Parse lx: 0 or absent means the default, anything over the max is clamped."""
    parsed = parse_int_param("lx", value, 0)
    if parsed < 0:
        raise HTTPException(status_code=400, detail="invalid lx format")
    if parsed == 0:
        return DEFAULT_PAGE_SIZE
    return min(parsed, MAX_PAGE_SIZE)


@app.get("/health")
def health_check():
    """Health check endpoint."""
    return {"status": "ok", "source": "coreprotect", "mode": "cached"}


@app.get("/version")
def version_info():
    """Version information endpoint."""
    return {
        "name": APP_NAME,
        "version": APP_VERSION,
        "full": f"{APP_NAME} {APP_VERSION}",
    }


@app.get("/cache/stats")
def cache_stats(manager: CacheManager = Depends(get_cache_manager)):
    """Get cache statistics."""
    return manager.get_stats()


@app.get("/blockcounts", response_model=BlockCountsResponse)
def block_counts(
    background_tasks: BackgroundTasks,
    wid: Optional[str] = Query(None, description="World ID, 0-999 (0 = all worlds)"),
    pid: Optional[str] = Query(None, description="Player ID, 0-9999 (0 = all players)"),
    manager: CacheManager = Depends(get_cache_manager),
):
    """
    Placed, broken and rolled back block counts.

    - no params: entire server
    - wid: one world
    - pid: one player across all worlds
    - wid and pid: one player in one world

    Stale or missing counts are served immediately and recomputed after
    the response; cache.refreshed tells the client newer data is coming.
    """
    selector = ScopeSelector(
        wid=parse_dimension("wid", wid, MAX_WID),
        pid=parse_dimension("pid", pid, MAX_PID),
    )

    try:
        return manager.get_block_counts(selector, background_tasks)
    except Exception as e:
        logger.error(f"Block counts failed for wid={selector.wid} pid={selector.pid}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="server error")


@app.get("/players", response_model=PlayerListResponse, response_model_exclude_unset=True)
def players(
    background_tasks: BackgroundTasks,
    cx: Optional[str] = Query(None, description="Cursor from a previous page"),
    lx: Optional[str] = Query(None, description=f"Page size, 1-{MAX_PAGE_SIZE} (default {DEFAULT_PAGE_SIZE})"),
    manager: CacheManager = Depends(get_cache_manager),
):
    """
    Player list, paginated.

    The first page includes cache metadata and refreshes the list every
    15 minutes; later pages are served straight from the cache.
    """
    limit = parse_page_size(lx)

    try:
        return manager.get_players(cx or None, limit, background_tasks)
    except InvalidCursorError:
        raise HTTPException(status_code=400, detail="invalid cx format")
    except Exception as e:
        logger.error(f"Player list failed (cx={cx!r}, lx={limit}): {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="server error")


@app.get("/worlds", response_model=WorldListResponse)
def worlds(
    background_tasks: BackgroundTasks,
    manager: CacheManager = Depends(get_cache_manager),
):
    """Full world list. Refreshed hourly."""
    try:
        return manager.get_worlds(background_tasks)
    except Exception as e:
        logger.error(f"World list failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="server error")
