# app/common/redis_client.py
import asyncio
import weakref

import redis.asyncio as redis
from django.conf import settings


# asyncio connections are bound to the loop that opened them, so one client
# per running loop (ASGI server loop, async_to_sync loops in sync views).
_clients = weakref.WeakKeyDictionary()


def get_redis() -> redis.Redis:
    loop = asyncio.get_running_loop()
    client = _clients.get(loop)
    if client is None:
        client = redis.Redis(
            host=settings.REDIS_HOST,
            port=settings.REDIS_PORT,
            db=settings.REDIS_DB,
            decode_responses=True,  # bytes 말고 str로 받게
        )
        _clients[loop] = client
    return client
