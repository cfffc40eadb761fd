"""
Detached refresh dispatch.

Refreshes are submitted as Starlette background tasks, which run only after
the response has been sent. No caller awaits their result, and failures are
logged here and never reach the client.

Redundant refreshes of the same scope are allowed by default. With
single_flight enabled, a per-key in-flight marker (expiring after a TTL so
a hung refresh cannot block a scope forever) drops duplicates.
"""
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

from starlette.background import BackgroundTasks

logger = logging.getLogger("cache.dispatcher")


@dataclass
class InFlightRefresh:
    """Tracks an in-progress refresh."""
    started_at: float = field(default_factory=time.monotonic)


class InFlightRegistry:
    """
    Per-key in-flight markers with expiry.

    Thread-safe; background tasks release markers from worker threads.
    """

    def __init__(self, ttl_seconds: float = 300.0):
        self._in_flight: Dict[str, InFlightRefresh] = {}
        self._lock = threading.Lock()
        self._ttl = ttl_seconds

    def try_acquire(self, key: str) -> Optional[InFlightRefresh]:
        """Mark key in flight. Returns the new marker, or None if a live one exists."""
        with self._lock:
            current = self._in_flight.get(key)
            if current is not None and time.monotonic() - current.started_at < self._ttl:
                return None
            if current is not None:
                logger.warning(f"In-flight marker for {key} expired, allowing a new refresh")
            marker = InFlightRefresh()
            self._in_flight[key] = marker
            return marker

    def release(self, key: str, marker: InFlightRefresh) -> None:
        """Drop the marker for key, unless a newer refresh has replaced it."""
        with self._lock:
            if self._in_flight.get(key) is marker:
                del self._in_flight[key]

    @property
    def active_refreshes(self) -> int:
        with self._lock:
            return len(self._in_flight)


class RefreshDispatcher:
    """
    Submits refresh jobs to run after the response.

    Args:
        single_flight: Drop a refresh if one for the same key is in flight
        inflight_ttl_seconds: Age after which an in-flight marker is ignored
    """

    def __init__(self, single_flight: bool = False, inflight_ttl_seconds: float = 300.0):
        self._registry: Optional[InFlightRegistry] = (
            InFlightRegistry(inflight_ttl_seconds) if single_flight else None
        )
        self._stats_lock = threading.Lock()
        self._stats = {
            "dispatched": 0,
            "suppressed": 0,
            "completed": 0,
            "failed": 0,
        }

    def dispatch(
        self,
        background: BackgroundTasks,
        key: str,
        job: Callable[..., Any],
        *args: Any,
    ) -> bool:
        """
        Queue a refresh job for after the response.

        Returns:
            True if the job was queued, False if suppressed by single-flight
        """
        marker = None
        if self._registry is not None:
            marker = self._registry.try_acquire(key)
            if marker is None:
                logger.debug(f"Refresh already in flight: {key}")
                self._bump("suppressed")
                return False

        background.add_task(self._run, key, marker, job, *args)
        self._bump("dispatched")
        return True

    def _run(
        self,
        key: str,
        marker: Optional[InFlightRefresh],
        job: Callable[..., Any],
        *args: Any,
    ) -> None:
        try:
            logger.debug(f"Background refresh started: {key}")
            job(*args)
            self._bump("completed")
            logger.debug(f"Background refresh complete: {key}")
        except Exception:
            # The stale record stays in place until the next request retries
            logger.exception(f"Background refresh failed: {key}")
            self._bump("failed")
        finally:
            if marker is not None:
                self._registry.release(key, marker)

    def _bump(self, counter: str) -> None:
        with self._stats_lock:
            self._stats[counter] += 1

    def get_stats(self) -> Dict[str, Any]:
        """Get dispatcher statistics."""
        with self._stats_lock:
            stats = dict(self._stats)
        stats["single_flight"] = self._registry is not None
        stats["in_flight"] = self._registry.active_refreshes if self._registry else 0
        return stats
