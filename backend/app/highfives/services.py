# app/highfives/services.py
import logging

from asgiref.sync import async_to_sync

from app.common.document_store import DocumentStore, build_document_store
from app.highfives.conf import HighFiveConfig
from app.highfives.engine import MatchEngine
from app.highfives.readiness import ReadinessTracker
from app.highfives.sessions import SessionRegistry
from app.notifications.dispatcher import NotificationDispatcher, build_dispatcher

logger = logging.getLogger(__name__)


class HighFiveService:
    """Registry, readiness tracker and match engine wired on one store."""

    def __init__(
        self,
        store: DocumentStore,
        dispatcher: NotificationDispatcher = None,
        config: HighFiveConfig = None,
        clock=None,
    ):
        self.config = config or HighFiveConfig.from_settings()
        self.store = store
        self.dispatcher = dispatcher or build_dispatcher(self.config.notification_backends, store)
        self.registry = SessionRegistry(store, self.dispatcher, self.config)
        self.tracker = ReadinessTracker(self.registry)
        self.engine = MatchEngine(self.tracker, self.config, clock=clock)

    async def connect(self, self_id, partner_id):
        return await self.registry.connect(self_id, partner_id)

    async def leave(self, user_id, session_id):
        return await self.registry.leave(user_id, session_id)

    async def set_ready(self, user_id, session_id, ready):
        return await self.tracker.set_ready(user_id, session_id, ready)

    async def initiate(self, initiator_id, receiver_id, timeout_ms=None):
        return await self.engine.initiate(initiator_id, receiver_id, timeout_ms=timeout_ms)

    async def respond(self, attempt_id, receiver_id):
        return await self.engine.respond(attempt_id, receiver_id)

    async def evaluate(self, attempt_id):
        return await self.engine.evaluate(attempt_id)

    async def sweep(self) -> dict:
        expired = await self.engine.expire_overdue()
        removed = await self.registry.collect_stale()
        pruned = await self.engine.prune_finished()
        return {
            "expiredHighFives": expired,
            "removedSessions": removed,
            "removedHighFives": pruned,
        }

    async def close(self):
        await self.engine.close()
        await self.dispatcher.drain()
        await self.store.close()


_service = None


def get_highfive_service() -> HighFiveService:
    global _service
    if _service is None:
        config = HighFiveConfig.from_settings()
        _service = HighFiveService(build_document_store(config.store_backend), config=config)
    return _service


def set_highfive_service(service):
    global _service
    _service = service


def run_sync(fn, *args, **kwargs):
    """
    Call a coroutine function from a sync DRF view. Notifications fired
    during the call are flushed before the request's loop goes away.
    """

    async def call():
        service = get_highfive_service()
        try:
            return await fn(*args, **kwargs)
        finally:
            await service.dispatcher.drain()

    return async_to_sync(call)()
