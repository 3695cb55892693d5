"""
Hybrid in-memory + Redis rate limiting for public webhooks
Counters live in process memory and are mirrored to Redis every few seconds
"""

import logging
import os
import time
from threading import Lock
from typing import Optional

import redis
from fastapi import HTTPException, Request, status

from .config import WEBHOOK_RATE_LIMIT, WEBHOOK_RATE_WINDOW_SECONDS

logger = logging.getLogger(__name__)

redis_client: Optional[redis.Redis] = None

# {key: {"count": int, "reset_time": int, "last_redis_sync": int}}
memory_cache: dict[str, dict] = {}
cache_lock = Lock()

MEMORY_CACHE_SYNC_INTERVAL = 10
MEMORY_CACHE_CLEANUP_INTERVAL = 60
last_cleanup_time = 0

_CLIENT_OPTIONS = {
    "decode_responses": True,
    "socket_connect_timeout": 15,
    "socket_timeout": 30,
    "retry_on_timeout": True,
    "health_check_interval": 30,
    "max_connections": 20,
}


def _mask_url(redis_url: str) -> str:
    if "@" not in redis_url:
        return "****"
    credentials, host = redis_url.split("@", 1)
    return f"{credentials.split(':')[0]}:****@{host}"


def get_redis_client() -> redis.Redis:
    """Get or create the Redis client (REDIS_URL or REDIS_HOST/PORT/...)"""
    global redis_client

    if redis_client is not None:
        return redis_client

    redis_url = os.getenv("REDIS_URL")
    try:
        if redis_url:
            logger.info(f"📡 Connecting rate limiter to Redis URL: {_mask_url(redis_url)}")
            client = redis.from_url(redis_url, **_CLIENT_OPTIONS)
        else:
            redis_host = os.getenv("REDIS_HOST", "localhost")
            redis_port = int(os.getenv("REDIS_PORT", "6379"))
            logger.info(f"📡 Connecting rate limiter to Redis at {redis_host}:{redis_port}")
            client = redis.Redis(
                host=redis_host,
                port=redis_port,
                password=os.getenv("REDIS_PASSWORD"),
                db=int(os.getenv("REDIS_DB", "0")),
                ssl=os.getenv("REDIS_SSL", "false").lower() == "true",
                **_CLIENT_OPTIONS,
            )
        client.ping()
    except Exception as e:
        logger.error(f"❌ Failed to connect to Redis: {str(e)}")
        raise

    logger.info("✅ Redis connected for rate limiting")
    redis_client = client
    return redis_client


def cleanup_expired_cache():
    """Drop expired windows from the memory cache"""
    global last_cleanup_time
    now = int(time.time())
    if now - last_cleanup_time < MEMORY_CACHE_CLEANUP_INTERVAL:
        return

    with cache_lock:
        expired = [k for k, v in memory_cache.items() if now >= v.get("reset_time", 0)]
        for k in expired:
            del memory_cache[k]
    if expired:
        logger.debug(f"🧹 Cleaned up {len(expired)} expired rate limit entries")

    last_cleanup_time = now


def _load_entry(key: str, window_seconds: int, client: Optional[redis.Redis], now: int) -> dict:
    """Seed a memory entry from Redis so limits survive process restarts"""
    if client is not None:
        try:
            stored = client.get(key)
            ttl = client.ttl(key)
            if stored and ttl > 0:
                return {"count": int(stored), "reset_time": now + ttl, "last_redis_sync": now}
        except Exception as e:
            logger.warning(f"⚠️ Failed to load {key} from Redis, using memory only: {e}")
    return {"count": 0, "reset_time": now + window_seconds, "last_redis_sync": now}


def check_rate_limit(
    key: str, limit: int, window_seconds: int, client: Optional[redis.Redis] = None
) -> tuple[bool, int, int]:
    """
    Count one request against key.

    With no Redis client the count lives in process memory only.

    Returns:
        Tuple of (is_allowed, current_count, ttl_seconds)
    """
    try:
        now = int(time.time())
        cleanup_expired_cache()

        with cache_lock:
            entry = memory_cache.get(key)
            if entry is None:
                entry = memory_cache[key] = _load_entry(key, window_seconds, client, now)

            if now >= entry["reset_time"]:
                entry.update(count=0, reset_time=now + window_seconds, last_redis_sync=0)

            is_allowed = entry["count"] < limit
            if is_allowed:
                entry["count"] += 1

            if client is not None and now - entry.get("last_redis_sync", 0) >= MEMORY_CACHE_SYNC_INTERVAL:
                try:
                    client.set(key, entry["count"], ex=window_seconds)
                    entry["last_redis_sync"] = now
                except Exception as e:
                    logger.warning(f"⚠️ Failed to sync {key} to Redis: {e}")

            return is_allowed, entry["count"], max(0, entry["reset_time"] - now)

    except Exception as e:
        logger.error(f"❌ Rate limit check failed, allowing request: {str(e)}")
        return True, 0, window_seconds


def client_ip_of(request: Request) -> str:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


async def rate_limit_dependency(
    request: Request,
    limit: int,
    window_seconds: int,
    key_prefix: str = "rate_limit",
    use_ip: bool = True,
):
    """Enforce a limit for the request; without Redis the limit is counted per process"""
    try:
        client = get_redis_client()
    except Exception as e:
        logger.warning(f"⚠️ Redis unavailable, rate limiting in memory only: {str(e)}")
        client = None

    key = f"{key_prefix}:{client_ip_of(request) if use_ip else 'global'}"

    is_allowed, current_count, ttl = check_rate_limit(key, limit, window_seconds, client)
    if not is_allowed:
        logger.warning(f"🚫 Rate limit EXCEEDED for {key} - {current_count}/{limit}")
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail={
                "message": f"Rate limit exceeded. Maximum {limit} requests per {window_seconds} seconds.",
                "retry_after": ttl,
            },
            headers={"Retry-After": str(ttl)},
        )

    request.state.rate_limit_remaining = limit - current_count


def create_rate_limiter(
    limit: int, window_seconds: int, key_prefix: str = "rate_limit", use_ip: bool = True
):
    """
    Create a rate limiter dependency with specific parameters

        @router.post("/webhooks/message")
        async def handle(request: Request, _: None = Depends(webhook_rate_limit)):
            ...
    """

    async def rate_limiter(request: Request):
        return await rate_limit_dependency(request, limit, window_seconds, key_prefix, use_ip)

    return rate_limiter


webhook_rate_limit = create_rate_limiter(
    limit=WEBHOOK_RATE_LIMIT, window_seconds=WEBHOOK_RATE_WINDOW_SECONDS, key_prefix="webhook"
)
