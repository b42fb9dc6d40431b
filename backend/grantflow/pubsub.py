from __future__ import annotations

import json
import logging
import os
from contextlib import suppress
from datetime import datetime
from typing import Any, AsyncIterator
from uuid import UUID

import redis.asyncio as redis
from redis.exceptions import RedisError

REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")
_redis = None
logger = logging.getLogger(__name__)

async def get_redis():
    global _redis
    if _redis is None:
        if os.getenv("TESTING") == "1":
            from fakeredis import aioredis
            _redis = aioredis.FakeRedis()
        else:
            _redis = redis.from_url(REDIS_URL)
    return _redis

def _json_default(value: Any) -> Any:
    # purpose: convert datetimes and ids to strings for event payloads
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, UUID):
        return str(value)
    raise TypeError(f"{type(value).__name__} is not JSON serializable")


def _serialize_event(event: dict[str, Any]) -> str:
    return json.dumps(event, default=_json_default)


async def publish_decision_event(topic: str, event: dict[str, Any]) -> None:
    """Publish award decisions and archive toggles for dashboard listeners."""

    r = await get_redis()
    await r.publish(f"decisions:{topic}", _serialize_event(event))


async def announce_decision_event(topic: str, event: dict[str, Any]) -> bool:
    """Publish a committed change; delivery failures are logged and reported as False."""

    try:
        await publish_decision_event(topic, event)
    except (RedisError, OSError):
        logger.exception("could not publish %s event", topic)
        return False
    return True


async def iter_decision_events(topic: str) -> AsyncIterator[str]:
    """Yield decision messages for a websocket consumer."""

    r = await get_redis()
    channel = f"decisions:{topic}"
    pubsub = r.pubsub()
    await pubsub.subscribe(channel)
    try:
        async for message in pubsub.listen():
            if message.get("type") != "message":
                continue
            data = message.get("data")
            if isinstance(data, bytes):
                yield data.decode()
            else:
                yield str(data)
    finally:
        with suppress(Exception):
            await pubsub.unsubscribe(channel)
        with suppress(AttributeError):
            await pubsub.close()
