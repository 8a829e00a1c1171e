import asyncio
import json
import logging

import redis.asyncio as redis
from sqlalchemy import event
from sqlalchemy.orm import Session

from blog_cms.config import settings

logger = logging.getLogger(__name__)

_PENDING_PATHS = "cache_revalidate_paths"


def path_key(path: str, *parts) -> str:
    """Build a cache key scoped to the logical page *path*."""
    suffix = ":".join("" if p is None else str(p) for p in parts)
    return f"page:{path}:{suffix}"


class CacheManager:
    """
    Cache-aside manager backed by Redis.

    Entries are keyed by the logical page path they feed (``/posts``,
    ``/categories``, ``/posts/<slug>`` ...).  Services call
    ``revalidate_on_commit`` with the paths a mutation affects; once the
    session commits, every key under those paths is dropped in a background
    task.  A rollback discards the pending paths.

    All public methods are safe to call even when Redis is unavailable:
    reads return None, writes and invalidations are skipped, and failures
    are logged rather than raised.
    """

    def __init__(self) -> None:
        self._redis: redis.Redis | None = None
        self._hits: int = 0
        self._misses: int = 0
        self._invalidations: int = 0
        self._pending: set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """Open the connection pool.  Called once at application startup."""
        self._redis = redis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            socket_connect_timeout=2,
            socket_timeout=2,
        )
        try:
            await self._redis.ping()
            logger.info("Redis connected: %s", settings.REDIS_URL)
        except Exception as exc:  # pragma: no cover
            logger.warning("Redis ping failed, cache disabled: %s", exc)
            await self._redis.aclose()
            self._redis = None

    async def disconnect(self) -> None:
        """Wait for outstanding invalidations, then close the pool."""
        await self.drain()
        if self._redis:
            await self._redis.aclose()
            self._redis = None

    async def drain(self) -> None:
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)

    # ------------------------------------------------------------------
    # Core cache operations
    # ------------------------------------------------------------------

    async def get(self, key: str) -> dict | list | None:
        if not self._redis:
            self._misses += 1
            return None
        try:
            data = await self._redis.get(key)
            if data is not None:
                self._hits += 1
                return json.loads(data)
            self._misses += 1
            return None
        except Exception as exc:
            logger.debug("Cache GET error for key=%r: %s", key, exc)
            self._misses += 1
            return None

    async def set(self, key: str, value: dict | list, ttl: int | None = None) -> None:
        if not self._redis:
            return
        try:
            serialised = json.dumps(value, default=str)
            await self._redis.set(key, serialised, ex=ttl)
        except Exception as exc:
            logger.debug("Cache SET error for key=%r: %s", key, exc)

    async def delete_pattern(self, pattern: str) -> None:
        """Delete all keys matching *pattern* using SCAN (avoids blocking KEYS)."""
        if not self._redis:
            return
        try:
            keys: list[str] = []
            async for key in self._redis.scan_iter(match=pattern):
                keys.append(key)
            if keys:
                await self._redis.delete(*keys)
                logger.debug("Cache invalidated %d key(s) matching %r", len(keys), pattern)
        except Exception as exc:
            logger.debug("Cache DELETE_PATTERN error for pattern=%r: %s", pattern, exc)

    # ------------------------------------------------------------------
    # Invalidation
    # ------------------------------------------------------------------

    def revalidate(self, *paths: str) -> None:
        """
        Schedule removal of every entry cached under *paths*.

        Returns immediately; the caller's result never depends on the
        outcome.
        """
        self._invalidations += 1
        if not self._redis or not paths:
            return
        try:
            task = asyncio.get_running_loop().create_task(self._purge(paths))
        except RuntimeError:
            logger.debug("No running loop; skipped invalidation of %s", paths)
            return
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    def revalidate_on_commit(self, db, *paths: str) -> None:
        """Queue *paths* on session *db*; they are revalidated after its commit."""
        db.info.setdefault(_PENDING_PATHS, []).extend(paths)

    async def _purge(self, paths: tuple[str, ...]) -> None:
        for path in dict.fromkeys(paths):
            await self.delete_pattern(f"page:{path}:*")

    # ------------------------------------------------------------------
    # Observability
    # ------------------------------------------------------------------

    @property
    def stats(self) -> dict:
        """Return a snapshot of hit/miss counters for the admin dashboard."""
        total = self._hits + self._misses
        return {
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": round(self._hits / total * 100, 1) if total > 0 else 0.0,
            "invalidations": self._invalidations,
        }


# Module-level singleton shared across all request handlers.
cache = CacheManager()


@event.listens_for(Session, "after_commit")
def _revalidate_committed(session: Session) -> None:
    paths = session.info.pop(_PENDING_PATHS, None)
    if paths:
        cache.revalidate(*paths)


@event.listens_for(Session, "after_rollback")
def _discard_rolled_back(session: Session) -> None:
    session.info.pop(_PENDING_PATHS, None)
