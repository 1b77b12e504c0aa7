# app/common/document_store.py
"""
Key-path document store used for every high five entity.

Paths are slash separated ("high_five_sessions/alice_bob"). A path holds
either a document (a dict of fields) or, one level up, the collection of its
children. Subscriptions deliver the full snapshot of the subscribed path on
every change underneath or above it, never a diff.
"""
import asyncio
import copy
import logging
from typing import Callable, Optional

from django.utils.module_loading import import_string

from app.common.clock import now_ms

logger = logging.getLogger(__name__)


class ServerTimestamp:
    """Write value the store replaces with its own clock at write time."""

    def __repr__(self):
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP = ServerTimestamp()

_CLOSED = object()


def split_path(path: str) -> tuple:
    parts = tuple(p for p in str(path).strip("/").split("/"))
    if not parts or any(not p for p in parts):
        raise ValueError(f"invalid document path: {path!r}")
    return parts


def join_path(*parts) -> str:
    return "/".join(str(p).strip("/") for p in parts)


def paths_overlap(a: str, b: str) -> bool:
    """True when one path is the other or one of its ancestors."""
    pa, pb = split_path(a), split_path(b)
    n = min(len(pa), len(pb))
    return pa[:n] == pb[:n]


def resolve_server_values(value, now: int):
    if isinstance(value, ServerTimestamp):
        return now
    if isinstance(value, dict):
        return {k: resolve_server_values(v, now) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [resolve_server_values(v, now) for v in value]
    return value


def apply_query(
    children: Optional[dict],
    *,
    order_by: str = None,
    start_at=None,
    end_at=None,
    equal_to=None,
    limit: int = None,
) -> list:
    if not children:
        return []

    docs = [doc for _key, doc in sorted(children.items()) if isinstance(doc, dict)]
    if order_by is None:
        return docs[:limit] if limit else docs

    picked = []
    for doc in docs:
        value = doc.get(order_by)
        if equal_to is not None and value != equal_to:
            continue
        if start_at is not None and (value is None or value < start_at):
            continue
        if end_at is not None and (value is None or value > end_at):
            continue
        picked.append(doc)

    picked.sort(key=lambda d: (d.get(order_by) is not None, d.get(order_by)))
    return picked[:limit] if limit else picked


class Subscription:
    """
    Scoped handle on a live path.

        async with await store.subscribe("high_five_sessions/a_b") as sub:
            async for snapshot in sub:
                ...

    Leaving the block (or calling cancel()) detaches it from the store.
    """

    def __init__(self, path: str, on_cancel: Callable = None):
        self.path = path
        self.cancelled = False
        self._queue = asyncio.Queue()
        self._on_cancel = on_cancel

    def push(self, snapshot):
        if self.cancelled:
            return
        self._queue.put_nowait(copy.deepcopy(snapshot))

    def __aiter__(self):
        return self

    async def __anext__(self):
        if self.cancelled and self._queue.empty():
            raise StopAsyncIteration
        snapshot = await self._queue.get()
        if snapshot is _CLOSED:
            raise StopAsyncIteration
        return snapshot

    async def cancel(self):
        if self.cancelled:
            return
        self.cancelled = True
        while not self._queue.empty():
            self._queue.get_nowait()
        self._queue.put_nowait(_CLOSED)
        if self._on_cancel is not None:
            result = self._on_cancel(self)
            if asyncio.iscoroutine(result):
                await result
        logger.debug("subscription on %s cancelled", self.path)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.cancel()


class DocumentStore:
    async def get(self, path: str):
        raise NotImplementedError

    async def set(self, path: str, value: dict):
        raise NotImplementedError

    async def update(self, path: str, fields: dict):
        raise NotImplementedError

    async def delete(self, path: str):
        raise NotImplementedError

    async def transaction(self, path: str, fn: Callable):
        """
        Conditional write. fn receives the current document (or None) and
        returns the new document, or None to leave it untouched.
        Returns (committed, document).
        """
        raise NotImplementedError

    async def query(self, path: str, **options) -> list:
        raise NotImplementedError

    async def subscribe(self, path: str) -> Subscription:
        raise NotImplementedError

    async def now(self) -> int:
        raise NotImplementedError

    async def close(self):
        pass


class MemoryDocumentStore(DocumentStore):
    """In-process JSON tree. Single process only: development and tests."""

    def __init__(self, clock: Callable[[], int] = None):
        self._clock = clock or now_ms
        self._root = {}
        self._subscriptions = []

    def _read(self, path: str):
        node = self._root
        for part in split_path(path):
            if not isinstance(node, dict) or part not in node:
                return None
            node = node[part]
        return copy.deepcopy(node)

    def _write(self, path: str, value):
        parts = split_path(path)
        node = self._root
        for part in parts[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                child = node[part] = {}
            node = child
        node[parts[-1]] = value

    def _remove(self, path: str):
        parts = split_path(path)
        trail = [self._root]
        for part in parts[:-1]:
            child = trail[-1].get(part)
            if not isinstance(child, dict):
                return
            trail.append(child)
        trail[-1].pop(parts[-1], None)
        # prune emptied parents
        for depth in range(len(parts) - 1, 0, -1):
            if trail[depth]:
                break
            trail[depth - 1].pop(parts[depth - 1], None)

    def _notify(self, path: str):
        for sub in list(self._subscriptions):
            if paths_overlap(sub.path, path):
                sub.push(self._read(sub.path))

    async def get(self, path: str):
        return self._read(path)

    async def set(self, path: str, value: dict):
        if value is None:
            await self.delete(path)
            return None
        resolved = resolve_server_values(copy.deepcopy(value), self._clock())
        self._write(path, resolved)
        self._notify(path)
        return copy.deepcopy(resolved)

    async def update(self, path: str, fields: dict):
        current = self._read(path)
        merged = dict(current) if isinstance(current, dict) else {}
        merged.update(resolve_server_values(copy.deepcopy(fields), self._clock()))
        self._write(path, merged)
        self._notify(path)
        return copy.deepcopy(merged)

    async def delete(self, path: str):
        self._remove(path)
        self._notify(path)

    async def transaction(self, path: str, fn: Callable):
        # no await between read and write: atomic on the event loop
        current = self._read(path)
        proposed = fn(copy.deepcopy(current))
        if proposed is None:
            return False, current
        resolved = resolve_server_values(proposed, self._clock())
        self._write(path, resolved)
        self._notify(path)
        return True, copy.deepcopy(resolved)

    async def query(self, path: str, **options) -> list:
        return apply_query(self._read(path), **options)

    async def subscribe(self, path: str) -> Subscription:
        split_path(path)
        sub = Subscription(path, on_cancel=self._subscriptions.remove)
        self._subscriptions.append(sub)
        sub.push(self._read(path))
        return sub

    async def now(self) -> int:
        return self._clock()

    @property
    def subscription_count(self) -> int:
        return len(self._subscriptions)


def build_document_store(backend: str, **kwargs) -> DocumentStore:
    store_class = import_string(backend)
    logger.info("Using document store %s", backend)
    return store_class(**kwargs)
