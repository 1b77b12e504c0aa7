# app/notifications/dispatcher.py
"""
Fire-and-forget notifications to the other side of a high five.

notify() returns immediately. Each backend delivers on its own task; a
failing backend is logged and dropped, it never blocks or retries inside
the caller.
"""
import asyncio
import enum
import logging
import uuid

from channels.layers import get_channel_layer
from django.utils.module_loading import import_string

from app.common.document_store import SERVER_TIMESTAMP, join_path

logger = logging.getLogger(__name__)

NOTIFICATIONS_PATH = "notifications"


class NotificationKind(str, enum.Enum):
    HIGH_FIVE_REQUEST = "high_five_request"
    HIGH_FIVE_READY = "high_five_ready"
    HIGH_FIVE_COMPLETE = "high_five_complete"
    HIGH_FIVE_EXPIRED = "high_five_expired"


def user_group(user_id: str) -> str:
    return f"notifications_{user_id}"


class NotificationBackend:
    def __init__(self, store=None):
        self.store = store

    async def deliver(self, target_user_id: str, kind: str, payload: dict):
        raise NotImplementedError


class StoreNotificationBackend(NotificationBackend):
    """Queues the event under notifications/<user>/<pushId> for the push worker."""

    async def deliver(self, target_user_id, kind, payload):
        path = join_path(NOTIFICATIONS_PATH, target_user_id, uuid.uuid4().hex)
        await self.store.set(path, {"type": kind, "timestamp": SERVER_TIMESTAMP, **payload})


class ChannelLayerNotificationBackend(NotificationBackend):
    """Pushes the event to the user's open notification websocket, if any."""

    async def deliver(self, target_user_id, kind, payload):
        layer = get_channel_layer()
        if layer is None:
            logger.debug("no channel layer configured; skipping %s", kind)
            return
        await layer.group_send(
            user_group(target_user_id),
            {"type": "notification.message", "kind": kind, "payload": payload},
        )


class NotificationDispatcher:
    def __init__(self, backends):
        self.backends = list(backends)
        self._pending = set()

    def notify(self, target_user_id: str, kind, payload: dict = None) -> None:
        kind = NotificationKind(kind).value
        payload = dict(payload or {})
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("no running loop, dropping %s for %s", kind, target_user_id)
            return

        logger.debug("notify %s -> %s %s", kind, target_user_id, payload)
        for backend in self.backends:
            task = loop.create_task(self._deliver(backend, target_user_id, kind, payload))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

    async def _deliver(self, backend, target_user_id, kind, payload):
        try:
            await backend.deliver(target_user_id, kind, payload)
        except Exception:
            logger.exception(
                "%s failed to deliver %s to %s", type(backend).__name__, kind, target_user_id
            )

    async def drain(self):
        """Wait for in-flight deliveries (request teardown, tests)."""
        while True:
            in_flight = [task for task in self._pending if not task.done()]
            if not in_flight:
                return
            await asyncio.gather(*in_flight, return_exceptions=True)


def build_dispatcher(backend_paths, store) -> NotificationDispatcher:
    return NotificationDispatcher([import_string(path)(store=store) for path in backend_paths])
