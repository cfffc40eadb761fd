"""
Pydantic schemas for API responses
"""
from pydantic import BaseModel
from typing import List, Optional, Union


class CacheInfo(BaseModel):
    """Cache metadata attached to first-page responses"""
    last_update: Optional[str] = None
    refreshed: bool


# ===== BLOCK COUNTS =====

class BlockCountData(BaseModel):
    broken: int
    placed: int
    rolledback: int


class BlockCountsResponse(BaseModel):
    """Block edit counts for a (world, player) scope; 0 means all"""
    pid: int
    wid: int
    data: BlockCountData
    cache: CacheInfo


# ===== PLAYERS =====

class Player(BaseModel):
    pid: int
    uuid: Optional[str] = None
    name: str
    joined: Optional[str] = None


class PlayerListResponse(BaseModel):
    """
    One page of players

    cx is the cursor for the next page, or false on the last page.
    cache is only present on the first page.
    """
    players: List[Player]
    cx: Union[str, bool]
    cache: Optional[CacheInfo] = None


# ===== WORLDS =====

class World(BaseModel):
    wid: int
    name: str


class WorldListResponse(BaseModel):
    worlds: List[World]
    cache: CacheInfo
