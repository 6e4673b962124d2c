"""Score Cache Service - Redis caching and de-duplication of match scores."""
import asyncio
import json
import logging
import uuid
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Tuple
from urllib.parse import urlparse

from redis.asyncio import Redis

from core.scorer.models import CacheEntry, ScoreResult

logger = logging.getLogger(__name__)

# 24 hours in seconds
CACHE_TTL_SECONDS = 24 * 60 * 60

KEY_PREFIX = "match_score:"
TAG_PREFIX = "match_score_tag:"
INFLIGHT_PREFIX = "match_score_inflight:"


def _sanitize_url(url: str) -> str:
    """Remove credentials from URL for safe logging."""
    try:
        parsed = urlparse(url)
        if parsed.password:
            sanitized = parsed._replace(
                netloc=f"{parsed.username or ''}:*@{parsed.hostname}:{parsed.port or 6379}"
            )
            return sanitized.geturl()
        return url
    except ValueError:
        return url


class FingerprintCache:
    """
    Cache of ScoreResults keyed by CacheKey.

    Entries live for a fixed TTL (24h by default) and are tagged by profile
    and opportunity for invalidation. When Redis is unreachable the cache
    runs degraded: reads miss, writes are skipped, and a warning is logged.

    At most one computation per key runs at a time: concurrent callers in
    this process await the leader's future, and other processes see a short
    lived in-progress marker and wait briefly for the leader's write.
    """

    def __init__(
        self,
        redis_url: str = "redis://localhost:6379/0",
        password: Optional[str] = None,
        ttl_seconds: int = CACHE_TTL_SECONDS,
        upsert_timeout_seconds: float = 30.0,
        inflight_marker_seconds: int = 90,
        inflight_wait_seconds: float = 20.0,
        inflight_poll_interval_seconds: float = 0.5,
        client: Optional[Redis] = None
    ):
        self.redis_url = redis_url
        self.ttl_seconds = ttl_seconds
        self.upsert_timeout_seconds = upsert_timeout_seconds
        self.inflight_marker_seconds = inflight_marker_seconds
        self.inflight_wait_seconds = inflight_wait_seconds
        self.inflight_poll_interval_seconds = inflight_poll_interval_seconds
        self._redis: Optional[Redis] = client
        if self._redis is None and redis_url:
            self._redis = Redis.from_url(
                redis_url,
                password=password,
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5
            )
        self._available = False
        self._inflight: Dict[str, asyncio.Future] = {}
        self.hits = 0
        self.misses = 0

    @classmethod
    def from_config(cls, cache_config) -> "FingerprintCache":
        return cls(
            redis_url=cache_config.redis_url if cache_config.enabled else "",
            password=cache_config.password,
            ttl_seconds=cache_config.ttl_seconds,
            upsert_timeout_seconds=cache_config.upsert_timeout_seconds,
            inflight_marker_seconds=cache_config.inflight_marker_seconds,
            inflight_wait_seconds=cache_config.inflight_wait_seconds,
            inflight_poll_interval_seconds=cache_config.inflight_poll_interval_seconds,
        )

    async def connect(self) -> bool:
        """Ping Redis and record whether the cache is usable."""
        if self._redis is None:
            logger.warning("Score cache disabled, running without Redis")
            self._available = False
            return False
        try:
            await self._redis.ping()
            self._available = True
            logger.info(f"Score cache connected to Redis at {_sanitize_url(self.redis_url)}")
        except Exception as e:
            logger.warning(f"Score cache Redis unavailable, running degraded: {e}")
            self._available = False
        return self._available

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()

    @property
    def is_available(self) -> bool:
        """Check if cache is available."""
        return self._available and self._redis is not None

    def _make_key(self, key) -> str:
        return f"{KEY_PREFIX}{key}"

    def _make_tag_key(self, tag: str) -> str:
        return f"{TAG_PREFIX}{tag}"

    def _make_inflight_key(self, key) -> str:
        return f"{INFLIGHT_PREFIX}{key}"

    async def get(self, key) -> Optional[ScoreResult]:
        """Get a cached ScoreResult, or None on miss or cache failure."""
        if not self.is_available:
            return None

        try:
            data = await self._redis.get(self._make_key(key))
        except Exception as e:
            logger.warning(f"Error reading from score cache: {e}")
            return None

        if not data:
            logger.debug(f"Cache miss for {key}")
            return None
        try:
            entry = CacheEntry.from_payload(str(key), json.loads(data))
        except (ValueError, TypeError, KeyError) as e:
            logger.warning(f"Discarding unreadable cache entry for {key}: {e}")
            return None
        logger.debug(f"Cache hit for {key}")
        return entry.value

    async def get_many(self, keys: Iterable) -> List[Optional[ScoreResult]]:
        """Read several keys at once, in order. Never computes or marks in-flight."""
        return list(await asyncio.gather(*(self.get(key) for key in keys)))

    async def set(self, key, result: ScoreResult, tags: Iterable[str] = ()) -> bool:
        """Write a result with the fixed TTL and register it under its tags."""
        if not self.is_available:
            return False

        entry = CacheEntry(key=str(key), value=result, ttl_seconds=self.ttl_seconds)
        storage_key = self._make_key(key)
        try:
            await asyncio.wait_for(
                self._write(storage_key, json.dumps(entry.to_payload()), tags),
                timeout=self.upsert_timeout_seconds,
            )
            logger.debug(f"Cached score for {key} (TTL: {self.ttl_seconds}s)")
            return True
        except asyncio.TimeoutError:
            logger.warning(f"Score cache write timed out after {self.upsert_timeout_seconds}s for {key}")
            return False
        except Exception as e:
            logger.warning(f"Error writing to score cache: {e}")
            return False

    async def _write(self, storage_key: str, payload: str, tags: Iterable[str]) -> None:
        await self._redis.setex(storage_key, self.ttl_seconds, payload)
        for tag in tags:
            tag_key = self._make_tag_key(tag)
            await self._redis.sadd(tag_key, storage_key)
            await self._redis.expire(tag_key, self.ttl_seconds)

    async def _acquire_marker(self, key) -> Optional[str]:
        """SET NX EX the in-progress marker. Returns the owner token, or None if held elsewhere."""
        token = uuid.uuid4().hex
        if not self.is_available:
            return token
        try:
            acquired = await self._redis.set(
                self._make_inflight_key(key), token, nx=True, ex=self.inflight_marker_seconds
            )
        except Exception as e:
            logger.warning(f"Could not set in-progress marker for {key}: {e}")
            return token
        return token if acquired else None

    async def _release_marker(self, key, token: str) -> None:
        if not self.is_available:
            return
        marker = self._make_inflight_key(key)
        try:
            if await self._redis.get(marker) == token:
                await self._redis.delete(marker)
        except Exception as e:
            logger.warning(f"Could not release in-progress marker for {key}: {e}")

    async def _wait_for_other_process(self, key) -> Optional[ScoreResult]:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.inflight_wait_seconds
        while loop.time() < deadline:
            await asyncio.sleep(self.inflight_poll_interval_seconds)
            cached = await self.get(key)
            if cached is not None:
                return cached
            try:
                if not await self._redis.exists(self._make_inflight_key(key)):
                    break
            except Exception as e:
                logger.warning(f"Error polling in-progress marker for {key}: {e}")
                break
        return await self.get(key)

    async def _compute_and_store(
        self,
        key,
        compute: Callable[[], Awaitable[ScoreResult]],
        tags: Iterable[str],
        store: bool = True
    ) -> Tuple[ScoreResult, bool]:
        token = await self._acquire_marker(key)
        if token is None:
            logger.debug(f"Another process is computing {key}, waiting for its result")
            cached = await self._wait_for_other_process(key)
            if cached is not None:
                return cached, True
            logger.info(f"No result appeared for {key}, computing locally")
            token = uuid.uuid4().hex

        try:
            result = await compute()
            # Only completed computations reach the cache.
            if store:
                await self.set(key, result, tags)
            return result, False
        finally:
            await self._release_marker(key, token)

    async def get_or_compute(
        self,
        key,
        compute: Callable[[], Awaitable[ScoreResult]],
        tags: Iterable[str] = (),
        store: bool = True
    ) -> Tuple[ScoreResult, bool]:
        """
        Return ``(result, from_cache)``.

        On a miss ``compute`` runs once and its result is written through
        unless ``store`` is False.
        Callers that joined another caller's computation get ``from_cache=True``.
        """
        cached = await self.get(key)
        if cached is not None:
            self.hits += 1
            return cached, True

        inflight_key = str(key)
        leader = self._inflight.get(inflight_key)
        if leader is not None:
            try:
                result = await asyncio.shield(leader)
                self.hits += 1
                return result, True
            except asyncio.CancelledError:
                if not leader.cancelled():
                    raise
                logger.debug(f"Leader computation for {key} was cancelled, computing locally")

        loop = asyncio.get_running_loop()
        future = loop.create_future()
        self._inflight[inflight_key] = future
        try:
            result, from_cache = await self._compute_and_store(key, compute, tags, store)
        except asyncio.CancelledError:
            future.cancel()
            raise
        except Exception as e:
            future.set_exception(e)
            # Followers re-raise it; mark it retrieved so asyncio does not warn when there are none.
            future.exception()
            raise
        finally:
            if self._inflight.get(inflight_key) is future:
                del self._inflight[inflight_key]

        future.set_result(result)
        if from_cache:
            self.hits += 1
        else:
            self.misses += 1
        return result, from_cache

    async def invalidate_tag(self, tag: str) -> int:
        """Delete every entry registered under ``tag``. Returns the number removed."""
        if not self.is_available:
            return 0
        tag_key = self._make_tag_key(tag)
        try:
            keys = list(await self._redis.smembers(tag_key))
            removed = await self._redis.delete(*keys) if keys else 0
            await self._redis.delete(tag_key)
            logger.info(f"Invalidated {removed} cached scores for {tag}")
            return int(removed)
        except Exception as e:
            logger.warning(f"Error invalidating score cache tag {tag}: {e}")
            return 0

    async def _count(self, pattern: str) -> int:
        count = 0
        cursor = 0
        while True:
            cursor, keys = await self._redis.scan(cursor=cursor, match=pattern, count=1000)
            count += len(keys)
            if cursor == 0:
                break
        return count

    async def get_cache_stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        stats: Dict[str, Any] = {"hits": self.hits, "misses": self.misses, "ttl_seconds": self.ttl_seconds}
        if not self.is_available:
            stats["available"] = False
            return stats

        try:
            info = await self._redis.info()
            stats.update({
                "available": True,
                "used_memory_human": info.get("used_memory_human", "unknown"),
                "score_cache_keys": await self._count(f"{KEY_PREFIX}*"),
                "ttl_human": f"{self.ttl_seconds // 3600} hours",
            })
        except Exception as e:
            logger.warning(f"Error getting cache stats: {e}")
            stats.update({"available": False, "error": str(e)})
        return stats

    async def clear_all(self) -> int:
        """Clear all cached scores and tag sets. Use with caution."""
        if not self.is_available:
            return 0

        deleted = 0
        try:
            for pattern in (f"{KEY_PREFIX}*", f"{TAG_PREFIX}*"):
                cursor = 0
                while True:
                    cursor, keys = await self._redis.scan(cursor=cursor, match=pattern, count=100)
                    if keys:
                        deleted += await self._redis.delete(*keys)
                    if cursor == 0:
                        break
            logger.info(f"Cleared {deleted} keys from score cache")
        except Exception as e:
            logger.warning(f"Error clearing score cache: {e}")
        return deleted

