from __future__ import annotations

from uuid import UUID

import redis.asyncio as redis

from . import schemas
from .config import get_settings

_redis = None


async def get_redis():
    global _redis
    if _redis is None:
        settings = get_settings()
        if settings.testing:
            from fakeredis import aioredis
            _redis = aioredis.FakeRedis()
        else:
            _redis = redis.from_url(settings.redis_url)
    return _redis


def lab_channel(user_id: UUID | str) -> str:
    return f"lab:{user_id}"


async def publish_lab_event(user_id: UUID | str, event: schemas.LabEvent) -> None:
    """Broadcast a committed state change to every instance watching the user's lab."""

    # purpose: let other API instances refresh their projections on external changes
    r = await get_redis()
    await r.publish(lab_channel(user_id), event.model_dump_json())


async def publish_lab_events(user_id: UUID | str, events: list[schemas.LabEvent]) -> None:
    for event in events:
        await publish_lab_event(user_id, event)
