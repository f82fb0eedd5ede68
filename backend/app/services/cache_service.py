"""
Newsroom Workflow Engine - Cache Service
========================================
Redis-backed cache for work-queue snapshots.
Fail-open: any Redis problem degrades to a cache miss, never to an error.
Write paths never read from here.
"""

import json
from datetime import timedelta
from typing import Iterable, Optional

import redis.asyncio as redis
from redis.exceptions import WatchError

from app.core.config import get_settings
from app.core.logging import get_logger

logger = get_logger("cache_service")
settings = get_settings()

WORK_QUEUE_PREFIX = "work_queue"
GENERATION_TTL = timedelta(days=1)


def work_queue_key(user_id: int) -> str:
    return f"{WORK_QUEUE_PREFIX}:user:{user_id}"


def follow_up_key() -> str:
    return f"{WORK_QUEUE_PREFIX}:follow_ups"


def workload_key() -> str:
    return f"{WORK_QUEUE_PREFIX}:workload"


def generation_key(key: str) -> str:
    return f"{key}:gen"


class CacheService:
    """Redis-based cache for read-side projections."""

    def __init__(self):
        self._client: Optional[redis.Redis] = None

    async def _ensure_client(self) -> Optional[redis.Redis]:
        """Lazily connect Redis."""
        if not settings.redis_enabled:
            return None
        if self._client is None:
            await self.connect()
        return self._client

    async def connect(self):
        """Initialize Redis connection."""
        try:
            self._client = redis.from_url(
                settings.redis_url,
                encoding="utf-8",
                decode_responses=True,
            )
            await self._client.ping()
            logger.info("redis_connected", url=settings.redis_host)
        except Exception as e:
            logger.error("redis_connection_failed", error=str(e))
            self._client = None

    async def disconnect(self):
        """Close Redis connection."""
        if self._client:
            await self._client.close()
            self._client = None

    @property
    def connected(self) -> bool:
        return self._client is not None

    async def get(self, key: str) -> Optional[str]:
        client = await self._ensure_client()
        if not client:
            return None
        try:
            return await client.get(key)
        except Exception:
            return None

    async def get_json(self, key: str) -> Optional[dict]:
        raw = await self.get(key)
        if raw:
            try:
                return json.loads(raw)
            except json.JSONDecodeError:
                return None
        return None

    # ── Work-queue snapshots ──

    async def generation(self, key: str) -> Optional[str]:
        """Current invalidation generation of a snapshot key; read before building the snapshot."""
        client = await self._ensure_client()
        if not client:
            return None
        try:
            return await client.get(generation_key(key)) or "0"
        except Exception as e:
            logger.warning("cache_generation_error", key=key, error=str(e))
            return None

    async def set_json_if_current(
        self, key: str, value: dict, *, generation: Optional[str], ttl: timedelta = None
    ) -> bool:
        """
        Store a snapshot only if no invalidation happened since `generation` was read.
        A snapshot built from rows read before a commit must not outlive that commit.
        """
        if generation is None:
            return False
        client = await self._ensure_client()
        if not client:
            return False
        payload = json.dumps(value, ensure_ascii=False, default=str)
        gen_key = generation_key(key)
        try:
            async with client.pipeline(transaction=True) as pipe:
                await pipe.watch(gen_key)
                if (await pipe.get(gen_key) or "0") != generation:
                    logger.info("cache_snapshot_stale", key=key)
                    return False
                pipe.multi()
                if ttl:
                    pipe.setex(key, ttl, payload)
                else:
                    pipe.set(key, payload)
                await pipe.execute()
            return True
        except WatchError:
            logger.info("cache_snapshot_stale", key=key)
            return False
        except Exception as e:
            logger.warning("cache_set_error", key=key, error=str(e))
            return False

    async def invalidate_work_queues(self, user_ids: Iterable[int | None]) -> None:
        """Drop cached snapshots of every touched user plus the shared views and bump their generations."""
        keys = sorted(
            {work_queue_key(user_id) for user_id in user_ids if user_id is not None}
            | {follow_up_key(), workload_key()}
        )
        client = await self._ensure_client()
        if not client:
            return
        try:
            async with client.pipeline(transaction=True) as pipe:
                for key in keys:
                    pipe.incr(generation_key(key))
                    pipe.expire(generation_key(key), GENERATION_TTL)
                pipe.delete(*keys)
                await pipe.execute()
        except Exception as e:
            logger.warning("cache_invalidate_error", keys=keys, error=str(e))


# Singleton
cache_service = CacheService()
