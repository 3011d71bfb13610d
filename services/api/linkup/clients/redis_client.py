"""
Redis client wrapper.

Responsibilities:
  • Change notifications — PUBLISH on posts:{location_key} and
                           linkups:{owner_user_id} after every committed write.
                           Watches (linkup.watch) subscribe and re-query.
  • Notification mailboxes — ZSET keyed by notifications:{user_id}
                             score = event timestamp, member = JSON payload.

The notification-worker writes mailboxes; the API only reads them.
"""
import json
import logging
from typing import Optional

import redis.asyncio as aioredis

from linkup.config import settings

logger = logging.getLogger(__name__)

_redis: Optional[aioredis.Redis] = None


async def init_redis() -> None:
    global _redis
    _redis = aioredis.Redis(
        host=settings.redis_host,
        port=settings.redis_port,
        decode_responses=True,
    )
    await _redis.ping()
    logger.info("Redis connected at %s:%s", settings.redis_host, settings.redis_port)


async def close_redis() -> None:
    if _redis is not None:
        await _redis.aclose()


def get_redis() -> aioredis.Redis:
    if _redis is None:
        raise RuntimeError("Redis not initialised — call init_redis() at startup")
    return _redis


# ─────────────────────── Change Channels (PUB/SUB) ────────────────────────

def location_channel(location_key: str) -> str:
    return f"posts:{location_key}"


def incoming_channel(owner_user_id: str) -> str:
    return f"linkups:{owner_user_id}"


async def publish_change(channel: str) -> None:
    """Tell watchers on `channel` that their query result may have changed."""
    r = get_redis()
    receivers = await r.publish(channel, "changed")
    logger.debug("Change on %s delivered to %d watcher(s)", channel, receivers)


# ─────────────────────── Notification Mailbox (ZSET) ──────────────────────

async def get_notifications(user_id: str, limit: int = 50) -> list[dict]:
    """Newest-first notifications from the user's mailbox."""
    r = get_redis()
    raw: list[str] = await r.zrevrange(f"notifications:{user_id}", 0, limit - 1)
    return [json.loads(item) for item in raw]
