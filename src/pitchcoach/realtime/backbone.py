from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Optional

import redis.asyncio as aioredis
import socketio
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)


class BackboneMode(str, Enum):
    SINGLE_INSTANCE = "single-instance"
    REDIS = "redis"


async def probe_redis(redis_url: str, timeout: float) -> bool:
    client = aioredis.from_url(redis_url)
    try:
        await asyncio.wait_for(client.ping(), timeout=timeout)
        return True
    except (RedisError, OSError, asyncio.TimeoutError) as exc:
        logger.warning("Redis backbone at %s unreachable: %s", redis_url, exc)
        return False
    finally:
        await client.aclose()


async def attach_backbone(
    sio: socketio.AsyncServer,
    redis_url: Optional[str],
    *,
    timeout: float = 3.0,
) -> BackboneMode:
    """Install the Redis pub/sub client manager when Redis answers in time.

    Must run before the server accepts its first connection. Without a
    reachable Redis the server keeps its in-process manager and room
    broadcasts only reach sockets connected to this process.
    """

    if not redis_url:
        logger.info("No REDIS_URL configured; real-time channel running single-instance")
        return BackboneMode.SINGLE_INSTANCE

    if sio.manager_initialized:
        logger.warning("Socket server already accepted connections; keeping its in-process manager")
        return BackboneMode.SINGLE_INSTANCE

    if not await probe_redis(redis_url, timeout):
        logger.warning("Falling back to single-instance real-time channel")
        return BackboneMode.SINGLE_INSTANCE

    # AsyncServer initializes its client manager on the first connection
    # (manager_initialized); a replacement installed before then is the one
    # it initializes.
    manager = socketio.AsyncRedisManager(redis_url)
    manager.set_server(sio)
    sio.manager = manager
    logger.info("Real-time channel using Redis pub/sub backbone")
    return BackboneMode.REDIS
