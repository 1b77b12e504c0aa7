# app/common/redis_store.py
import asyncio
import copy
import json
import logging
from contextlib import asynccontextmanager
from typing import Callable

from redis.exceptions import ConnectionError, TimeoutError, WatchError

from app.common.document_store import (
    DocumentStore,
    Subscription,
    apply_query,
    join_path,
    paths_overlap,
    resolve_server_values,
    split_path,
)
from app.common.exceptions import StoreUnavailable
from app.common.redis_client import get_redis

logger = logging.getLogger(__name__)

KEY_PREFIX = "hf"
CHANGES_CHANNEL = "hf:changes"


def doc_key(path: str) -> str:
    return f"{KEY_PREFIX}:doc:{join_path(*split_path(path))}"


def children_key(path: str) -> str:
    return f"{KEY_PREFIX}:children:{join_path(*split_path(path))}"


@asynccontextmanager
async def _redis_errors(op: str, path: str):
    try:
        yield
    except (ConnectionError, TimeoutError) as e:
        logger.error("redis %s %s failed: %s", op, path, e)
        raise StoreUnavailable() from e


class RedisDocumentStore(DocumentStore):
    """
    Documents as JSON strings under hf:doc:<path>; every parent keeps a set
    of its children under hf:children:<parent> so collections can be read
    back. Writers publish the changed path on hf:changes.
    """

    def __init__(self, client_factory: Callable = None):
        self._client_factory = client_factory or get_redis

    @property
    def _r(self):
        return self._client_factory()

    @staticmethod
    def _index(pipe, path: str):
        parts = split_path(path)
        for depth in range(1, len(parts)):
            pipe.sadd(children_key(join_path(*parts[:depth])), parts[depth])

    async def _server_time(self, client) -> int:
        seconds, micros = await client.time()
        return int(seconds) * 1000 + int(micros) // 1000

    async def _publish(self, path: str):
        await self._r.publish(CHANGES_CHANNEL, join_path(*split_path(path)))

    async def _read(self, path: str):
        raw = await self._r.get(doc_key(path))
        if raw is not None:
            return json.loads(raw)

        children = await self._r.smembers(children_key(path))
        if not children:
            return None
        tree = {}
        for child in sorted(children):
            value = await self._read(join_path(path, child))
            if value is not None:
                tree[child] = value
        return tree or None

    async def get(self, path: str):
        async with _redis_errors("get", path):
            return await self._read(path)

    async def set(self, path: str, value: dict):
        if value is None:
            await self.delete(path)
            return None
        async with _redis_errors("set", path):
            resolved = resolve_server_values(copy.deepcopy(value), await self._server_time(self._r))
            async with self._r.pipeline(transaction=True) as pipe:
                pipe.set(doc_key(path), json.dumps(resolved))
                self._index(pipe, path)
                await pipe.execute()
            await self._publish(path)
        return resolved

    async def update(self, path: str, fields: dict):
        def merge(current):
            merged = dict(current) if isinstance(current, dict) else {}
            merged.update(fields)
            return merged

        _committed, document = await self.transaction(path, merge)
        return document

    async def delete(self, path: str):
        async with _redis_errors("delete", path):
            children = await self._r.smembers(children_key(path))
            for child in children:
                await self.delete(join_path(path, child))

            parts = split_path(path)
            async with self._r.pipeline(transaction=True) as pipe:
                pipe.delete(doc_key(path), children_key(path))
                if len(parts) > 1:
                    pipe.srem(children_key(join_path(*parts[:-1])), parts[-1])
                await pipe.execute()
            await self._publish(path)

    async def transaction(self, path: str, fn: Callable):
        key = doc_key(path)
        async with _redis_errors("transaction", path):
            async with self._r.pipeline(transaction=True) as pipe:
                while True:
                    try:
                        await pipe.watch(key)
                        raw = await pipe.get(key)
                        current = json.loads(raw) if raw is not None else None
                        proposed = fn(copy.deepcopy(current))
                        if proposed is None:
                            await pipe.unwatch()
                            return False, current

                        resolved = resolve_server_values(proposed, await self._server_time(pipe))
                        pipe.multi()
                        pipe.set(key, json.dumps(resolved))
                        self._index(pipe, path)
                        await pipe.execute()
                        break
                    except WatchError:
                        # another writer touched the document; re-read and re-decide
                        logger.debug("transaction on %s raced, re-running", path)
                        continue
            await self._publish(path)
        return True, resolved

    async def query(self, path: str, **options) -> list:
        return apply_query(await self.get(path), **options)

    async def subscribe(self, path: str) -> Subscription:
        split_path(path)
        async with _redis_errors("subscribe", path):
            pubsub = self._r.pubsub()
            await pubsub.subscribe(CHANGES_CHANNEL)

        async def detach(_sub):
            pump.cancel()
            try:
                await pubsub.unsubscribe(CHANGES_CHANNEL)
                await pubsub.aclose()
            except (ConnectionError, TimeoutError) as e:
                logger.warning("could not close pubsub for %s: %s", path, e)

        sub = Subscription(path, on_cancel=detach)
        sub.push(await self.get(path))
        pump = asyncio.create_task(self._pump(sub, pubsub))
        return sub

    async def _pump(self, sub: Subscription, pubsub):
        try:
            async for message in pubsub.listen():
                if message.get("type") != "message":
                    continue
                changed = message.get("data")
                if changed and paths_overlap(sub.path, changed):
                    sub.push(await self._read(sub.path))
        except asyncio.CancelledError:
            raise
        except (ConnectionError, TimeoutError):
            logger.exception("change feed for %s lost", sub.path)

    async def now(self) -> int:
        async with _redis_errors("time", "-"):
            return await self._server_time(self._r)
